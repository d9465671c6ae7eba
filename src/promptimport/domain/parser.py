"""
parser.py
=========

Extracts model dependency references from prompt/workflow payloads.

Three export formats are understood:

- ``swarmui``: native metadata (``sui_image_params`` / ``sui_models``)
- ``comfyui``: node graphs, either at the root or under ``workflow``
- ``a1111``: flat generation settings plus ``<lora:...>`` prompt tags

Parsing never raises. Every section of a payload is read inside its own
guard; a section that blows up is logged and contributes nothing, and the
rest of the payload is still read.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from .models import SHA256_PREFIX, DependencyReference, create_dependency

SWARMUI = "swarmui"
COMFYUI = "comfyui"
A1111 = "a1111"
UNKNOWN = "unknown"
AUTO = "auto"

_FORMAT_ALIASES = {
    SWARMUI: SWARMUI,
    "native": SWARMUI,
    COMFYUI: COMFYUI,
    "node-graph": COMFYUI,
    A1111: A1111,
    "flat-settings": A1111,
}

# Literal VAE value meaning "let the backend pick one".
AUTOMATIC_VAE = "Automatic"

# (class_type substring, input field, dependency kind), checked in order.
_NODE_LOADERS = (
    ("checkpointloader", "ckpt_name", "checkpoint"),
    ("loraloader", "lora_name", "lora"),
    ("vaeloader", "vae_name", "vae"),
    ("controlnet", "control_net_name", "controlnet"),
    ("embedding", "embedding_name", "embedding"),
)

LORA_TAG_PATTERN = re.compile(r"<lora:([^:>]+)(?::[^>]*)?>")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


def _section(name: str, fn: Callable[[], List[DependencyReference]]) -> List[DependencyReference]:
    try:
        return fn()
    except Exception:
        logger.exception("Error parsing {} section, skipping it", name)
        return []


def _add(deps: List[DependencyReference], kind: str, value: Any) -> None:
    text = _as_text(value).strip()
    if not text:
        logger.debug("Skipping blank {} reference", kind)
        return
    deps.append(create_dependency(kind, text))


def _split_list(value: Any) -> List[str]:
    if isinstance(value, list):
        items = [_as_text(v) for v in value]
    else:
        items = _as_text(value).split(",")
    return [item.strip() for item in items if item and item.strip()]


# ---------- Detection ----------


def normalize_format(format_hint: Optional[str]) -> str:
    hint = (format_hint or AUTO).strip().lower()
    if hint == AUTO:
        return AUTO
    return _FORMAT_ALIASES.get(hint, UNKNOWN)


def detect_format(data: Dict[str, Any]) -> str:
    """Pick a format from structural markers, in priority order."""
    if not isinstance(data, dict):
        return UNKNOWN

    if "sui_image_params" in data or "sui_models" in data:
        return SWARMUI

    if (
        "nodes" in data
        or "workflow" in data
        or any(isinstance(v, dict) and "class_type" in v for v in data.values())
    ):
        return COMFYUI

    if "sd_model_checkpoint" in data or "override_settings" in data:
        return A1111

    return UNKNOWN


# ---------- SwarmUI ----------


def _parse_swarm_image_params(data: Dict[str, Any]) -> List[DependencyReference]:
    deps: List[DependencyReference] = []
    params = data.get("sui_image_params")
    if not isinstance(params, dict):
        return deps

    if "model" in params:
        _add(deps, "checkpoint", params["model"])

    if "vae" in params:
        vae = _as_text(params["vae"]).strip()
        if vae and vae != AUTOMATIC_VAE:
            _add(deps, "vae", vae)

    for lora in _split_list(params.get("loras")):
        _add(deps, "lora", lora)

    for embedding in _split_list(params.get("embeddings")):
        _add(deps, "embedding", embedding)

    return deps


def _parse_swarm_models(data: Dict[str, Any]) -> List[DependencyReference]:
    deps: List[DependencyReference] = []
    models = data.get("sui_models")
    if not isinstance(models, list):
        return deps

    for entry in models:
        if not isinstance(entry, dict):
            continue
        name = _as_text(entry.get("name")).strip()
        if not name:
            continue
        kind = _as_text(entry.get("param")).strip() or "checkpoint"
        dep = create_dependency(kind, name)

        model_hash = _as_text(entry.get("hash")).strip()
        if model_hash.lower().startswith(SHA256_PREFIX):
            # the hash rides alongside the name rather than replacing it
            dep = DependencyReference(
                kind=dep.kind,
                raw_reference=dep.raw_reference,
                sha256=model_hash[len(SHA256_PREFIX):].strip(),
                registry_version_id=dep.registry_version_id,
                filename=dep.filename,
            )
        deps.append(dep)

    return deps


def parse_swarmui(data: Dict[str, Any]) -> List[DependencyReference]:
    return _section("sui_image_params", lambda: _parse_swarm_image_params(data)) + _section(
        "sui_models", lambda: _parse_swarm_models(data)
    )


# ---------- ComfyUI ----------


def _parse_comfy_node(node: Dict[str, Any]) -> List[DependencyReference]:
    deps: List[DependencyReference] = []
    class_type = _as_text(node.get("class_type")).lower()
    inputs = node.get("inputs")
    if not isinstance(inputs, dict):
        return deps

    for marker, field_name, kind in _NODE_LOADERS:
        if marker in class_type:
            value = inputs.get(field_name)
            # link inputs look like ["4", 0]; only literal names are references
            if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                _add(deps, kind, value)
            break

    return deps


def parse_comfyui(data: Dict[str, Any]) -> List[DependencyReference]:
    workflow = data.get("workflow")
    if not isinstance(workflow, dict):
        workflow = data

    deps: List[DependencyReference] = []
    for node_id, node in workflow.items():
        if isinstance(node, dict) and "class_type" in node:
            deps.extend(_section(f"node {node_id}", lambda n=node: _parse_comfy_node(n)))
    return deps


# ---------- A1111 ----------


def _parse_a1111_checkpoint(data: Dict[str, Any]) -> List[DependencyReference]:
    deps: List[DependencyReference] = []
    if "sd_model_checkpoint" in data:
        _add(deps, "checkpoint", data["sd_model_checkpoint"])
    return deps


def _parse_a1111_overrides(data: Dict[str, Any]) -> List[DependencyReference]:
    deps: List[DependencyReference] = []
    overrides = data.get("override_settings")
    if not isinstance(overrides, dict):
        return deps

    if "sd_model_checkpoint" in overrides:
        _add(deps, "checkpoint", overrides["sd_model_checkpoint"])

    if "sd_vae" in overrides:
        vae = _as_text(overrides["sd_vae"]).strip()
        if vae and vae != AUTOMATIC_VAE:
            _add(deps, "vae", vae)

    return deps


def _parse_a1111_prompt(data: Dict[str, Any]) -> List[DependencyReference]:
    deps: List[DependencyReference] = []
    if "prompt" not in data:
        return deps
    for match in LORA_TAG_PATTERN.finditer(_as_text(data["prompt"])):
        _add(deps, "lora", match.group(1))
    return deps


def parse_a1111(data: Dict[str, Any]) -> List[DependencyReference]:
    return (
        _section("sd_model_checkpoint", lambda: _parse_a1111_checkpoint(data))
        + _section("override_settings", lambda: _parse_a1111_overrides(data))
        + _section("prompt", lambda: _parse_a1111_prompt(data))
    )


# ---------- Entry point ----------

_PARSERS = {
    SWARMUI: parse_swarmui,
    COMFYUI: parse_comfyui,
    A1111: parse_a1111,
}


def parse_dependencies(payload: Any, format_hint: str = AUTO) -> List[DependencyReference]:
    """
    Parse model dependencies out of a prompt payload.

    A named format skips detection. ``auto`` consults detect_format(); when
    that (or the hint) comes back unknown, the parsers are tried in the
    fixed order swarmui, comfyui, a1111 and the first non-empty result wins.
    """
    if not isinstance(payload, dict):
        logger.warning("Prompt payload is not a JSON object, nothing to parse")
        return []

    fmt = normalize_format(format_hint)
    if fmt == AUTO:
        fmt = detect_format(payload)

    parser = _PARSERS.get(fmt)
    if parser is not None:
        deps = parser(payload)
    else:
        deps = []
        for name in (SWARMUI, COMFYUI, A1111):
            deps = _PARSERS[name](payload)
            if deps:
                fmt = name
                break

    logger.debug("Parsed {} dependencies from {} format", len(deps), fmt)
    return deps
