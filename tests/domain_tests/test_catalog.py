"""Tests for the local model catalog."""

import json

from promptimport.domain.catalog import (
    LORA,
    STABLE_DIFFUSION,
    CatalogEntry,
    ModelCatalog,
    ModelHandler,
)

from tests.helpers import SDXL_SHA


class TestModelHandler:
    def _handler(self):
        return ModelHandler(
            LORA,
            [
                CatalogEntry(name="anime/Hero_v2.safetensors", path="/l/hero2"),
                CatalogEntry(name="hero.safetensors", path="/l/hero"),
                CatalogEntry(name="styleA", path="/l/styleA-bare"),
                CatalogEntry(name="styleA.safetensors", path="/l/styleA", sha256="AbCd"),
            ],
        )

    def test_exact_name(self):
        assert self._handler().find_by_name("styleA").path == "/l/styleA-bare"

    def test_safetensors_suffix_is_tried(self):
        assert self._handler().find_by_name("hero").path == "/l/hero"

    def test_partial_match_takes_first_in_insertion_order(self):
        assert self._handler().find_by_name("HERO_v").path == "/l/hero2"

    def test_no_match(self):
        assert self._handler().find_by_name("missing") is None

    def test_hash_lookup_is_case_insensitive(self):
        assert self._handler().find_by_hash("aBcD").path == "/l/styleA"

    def test_hash_lookup_miss(self):
        assert self._handler().find_by_hash("ffff") is None

    def test_len_and_iteration_follow_insertion(self):
        handler = self._handler()
        assert len(handler) == 4
        assert [e.name for e in handler][0] == "anime/Hero_v2.safetensors"


class TestModelCatalog:
    def test_handler_for_kind(self, catalog):
        assert catalog.handler_for_kind("checkpoint").category == STABLE_DIFFUSION
        assert catalog.handler_for_kind("LoRA").category == LORA
        assert catalog.handler_for_kind("embedding") is None
        assert catalog.handler_for_kind("upscaler") is None

    def test_entry_accepts_hash_alias(self):
        entry = CatalogEntry.from_dict({"name": "a", "path": "/a", "hash": "00ff"})
        assert entry.sha256 == "00ff"

    def test_bad_entries_are_skipped(self):
        catalog = ModelCatalog.from_dict(
            {LORA: [{"name": "ok", "path": "/ok"}, {"name": "no-path"}, "junk"], "VAE": "junk"}
        )
        assert [e.name for e in catalog.handler(LORA)] == ["ok"]
        assert catalog.categories() == [LORA]

    def test_load_index_file(self, tmp_path):
        index = tmp_path / "catalog.json"
        index.write_text(
            json.dumps({STABLE_DIFFUSION: [{"name": "m", "path": "/m", "sha256": SDXL_SHA}]})
        )
        catalog = ModelCatalog.from_index_file(index)
        assert catalog.handler(STABLE_DIFFUSION).find_by_hash(SDXL_SHA.lower()).path == "/m"

    def test_missing_index_is_empty(self, tmp_path):
        assert ModelCatalog.from_index_file(tmp_path / "nope.json").categories() == []

    def test_invalid_index_is_empty(self, tmp_path):
        index = tmp_path / "catalog.json"
        index.write_text("{not json")
        assert ModelCatalog.from_index_file(index).categories() == []

    def test_non_object_index_is_empty(self, tmp_path):
        index = tmp_path / "catalog.json"
        index.write_text("[1, 2]")
        assert ModelCatalog.from_index_file(str(index)).categories() == []
