# src/promptimport/domain/catalog.py
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional
import json

from loguru import logger

STABLE_DIFFUSION = "Stable-Diffusion"
LORA = "LoRA"
VAE = "VAE"
EMBEDDING = "Embedding"
CONTROLNET = "ControlNet"

CATEGORY_FOR_KIND: Dict[str, str] = {
    "checkpoint": STABLE_DIFFUSION,
    "model": STABLE_DIFFUSION,
    "lora": LORA,
    "vae": VAE,
    "embedding": EMBEDDING,
    "textualinversion": EMBEDDING,
    "controlnet": CONTROLNET,
}


@dataclass
class CatalogEntry:
    """
    One installed model file.

    ``name`` is both the lookup key and the display name used for partial
    matches; ``path`` is what a resolved dependency points at.
    """

    name: str
    path: str
    sha256: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    trigger_phrase: Optional[str] = None
    description: Optional[str] = None
    preview_image: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    license: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: dict) -> "CatalogEntry":
        tags = raw.get("tags") or []
        return cls(
            name=str(raw["name"]),
            path=str(raw["path"]),
            sha256=raw.get("sha256") or raw.get("hash"),
            title=raw.get("title"),
            author=raw.get("author"),
            trigger_phrase=raw.get("trigger_phrase"),
            description=raw.get("description"),
            preview_image=raw.get("preview_image"),
            tags=[str(t) for t in tags] if isinstance(tags, list) else [],
            license=raw.get("license"),
        )


class ModelHandler:
    """Insertion-ordered view over one category of installed models."""

    def __init__(self, category: str, entries: Iterable[CatalogEntry] = ()) -> None:
        self.category = category
        self._models: Dict[str, CatalogEntry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: CatalogEntry) -> None:
        self._models[entry.name] = entry

    def get(self, key: str) -> Optional[CatalogEntry]:
        return self._models.get(key)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models)

    def find_by_hash(self, sha256: str) -> Optional[CatalogEntry]:
        wanted = sha256.lower()
        for entry in self:
            if entry.sha256 and entry.sha256.lower() == wanted:
                return entry
        return None

    def find_by_name(self, filename: str) -> Optional[CatalogEntry]:
        """Exact key, then key + .safetensors, then first case-insensitive substring."""
        exact = self.get(filename)
        if exact is not None:
            return exact

        if not filename.endswith(".safetensors"):
            suffixed = self.get(filename + ".safetensors")
            if suffixed is not None:
                return suffixed

        needle = filename.lower()
        for entry in self:
            if needle in entry.name.lower():
                logger.info(
                    "Resolved '{}' to '{}' via partial match", filename, entry.name
                )
                return entry
        return None


class ModelCatalog:
    """Read-only lookup over the locally installed model sets."""

    def __init__(self, handlers: Optional[Dict[str, ModelHandler]] = None) -> None:
        self._handlers: Dict[str, ModelHandler] = dict(handlers or {})

    @classmethod
    def from_dict(cls, raw: dict) -> "ModelCatalog":
        handlers: Dict[str, ModelHandler] = {}
        for category, items in raw.items():
            if not isinstance(items, list):
                logger.warning("Catalog category {} is not a list, skipping", category)
                continue
            entries: List[CatalogEntry] = []
            for item in items:
                if not isinstance(item, dict):
                    continue
                try:
                    entries.append(CatalogEntry.from_dict(item))
                except KeyError as e:
                    logger.warning("Catalog entry in {} missing field {}", category, e)
            handlers[category] = ModelHandler(category, entries)
        return cls(handlers)

    @classmethod
    def from_index_file(cls, path: str | Path) -> "ModelCatalog":
        """
        Load a JSON index of the form ``{category: [entry, ...]}``.
        A missing or unreadable index yields an empty catalog.
        """
        filepath = Path(path)
        if not filepath.exists():
            logger.warning("Catalog index {} not found, starting empty", filepath)
            return cls()

        with filepath.open("r") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError:
                logger.exception("Catalog index {} is not valid JSON", filepath)
                return cls()

        if not isinstance(data, dict):
            logger.warning("Catalog index {} is not a JSON object", filepath)
            return cls()

        catalog = cls.from_dict(data)
        logger.info(
            "Loaded catalog index {} ({} categories)", filepath, len(catalog._handlers)
        )
        return catalog

    def handler(self, category: str) -> Optional[ModelHandler]:
        return self._handlers.get(category)

    def handler_for_kind(self, kind: str) -> Optional[ModelHandler]:
        category = CATEGORY_FOR_KIND.get((kind or "").lower())
        if category is None:
            return None
        return self._handlers.get(category)

    def categories(self) -> List[str]:
        return list(self._handlers)
