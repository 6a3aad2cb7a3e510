"""
Preset serialisation.

Every generator and smoother is stored structurally as its type tag plus its
parameter values:

    {"type": "perlin_noise", "params": {"octaves": 4, ...}}

Missing parameters fall back to the documented defaults and unknown ones are
ignored. An entry with an unknown type tag or invalid parameters is skipped
with a warning and the rest of the preset still loads.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import ValidationError

from .generators import GENERATOR_TYPES, TerrainGenerator
from .pipeline import TerrainPreset
from .erosion import SMOOTHER_TYPES
from .smoothers import TerrainSmoother

logger = structlog.get_logger()

PRESET_SUFFIX = ".json"


def _entry_to_dict(algorithm) -> Dict[str, Any]:
    return {"type": algorithm.type_tag, "params": algorithm.options.model_dump(mode="json")}


def _entry_from_dict(data: Dict[str, Any], registry: Dict[str, type], kind: str):
    if not isinstance(data, dict):
        logger.warning("Skipping malformed preset entry", kind=kind, entry=repr(data))
        return None

    type_tag = data.get("type")
    cls = registry.get(type_tag)
    if cls is None:
        logger.warning("Unknown algorithm type, skipping", kind=kind, type=type_tag)
        return None

    params = data.get("params") or {}
    try:
        options = cls.options_class.model_validate(params)
    except ValidationError as e:
        logger.warning("Invalid algorithm parameters, skipping", kind=kind, type=type_tag, errors=str(e))
        return None

    return cls(options)


def generator_to_dict(generator: TerrainGenerator) -> Dict[str, Any]:
    return _entry_to_dict(generator)


def generator_from_dict(data: Dict[str, Any]) -> Optional[TerrainGenerator]:
    return _entry_from_dict(data, GENERATOR_TYPES, "generator")


def smoother_to_dict(smoother: TerrainSmoother) -> Dict[str, Any]:
    return _entry_to_dict(smoother)


def smoother_from_dict(data: Dict[str, Any]) -> Optional[TerrainSmoother]:
    return _entry_from_dict(data, SMOOTHER_TYPES, "smoother")


def preset_to_dict(preset: TerrainPreset) -> Dict[str, Any]:
    return {
        "name": preset.name,
        "reset_free_region": preset.reset_free_region,
        "generators": [generator_to_dict(g) for g in preset.generators],
        "smoothers": [smoother_to_dict(s) for s in preset.smoothers],
    }


def preset_from_dict(data: Dict[str, Any], skipped: Optional[List[Dict[str, Any]]] = None) -> TerrainPreset:
    """
    Build a preset from its dictionary form.

    Args:
        data: Preset dictionary
        skipped: If given, entries that could not be loaded are appended to it
    """
    generators = []
    for entry in data.get("generators") or []:
        generator = generator_from_dict(entry)
        if generator is None:
            if skipped is not None:
                skipped.append(entry)
            continue
        generators.append(generator)

    smoothers = []
    for entry in data.get("smoothers") or []:
        smoother = smoother_from_dict(entry)
        if smoother is None:
            if skipped is not None:
                skipped.append(entry)
            continue
        smoothers.append(smoother)

    return TerrainPreset(
        name=data.get("name") or "Unnamed Preset",
        generators=generators,
        smoothers=smoothers,
        reset_free_region=bool(data.get("reset_free_region", True)),
    )


def preset_filename(name: str) -> str:
    return name.replace(" ", "_").replace("/", "_").replace("\\", "_") + PRESET_SUFFIX


def save_preset(preset: TerrainPreset, directory: Union[str, Path], overwrite: bool = False) -> Path:
    """
    Write a preset to `<directory>/<name>.json`.

    Raises:
        FileExistsError: The file exists and `overwrite` is False
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / preset_filename(preset.name)

    if path.exists() and not overwrite:
        raise FileExistsError(f"Preset file {path} already exists")

    with open(path, "w") as f:
        json.dump(preset_to_dict(preset), f, indent=2)

    logger.info("Preset saved", preset=preset.name, path=str(path))
    return path


def load_preset(path: Union[str, Path]) -> TerrainPreset:
    with open(path) as f:
        data = json.load(f)
    preset = preset_from_dict(data)
    logger.info(
        "Preset loaded",
        preset=preset.name,
        generators=len(preset.generators),
        smoothers=len(preset.smoothers),
    )
    return preset


def load_presets(directory: Union[str, Path]) -> List[TerrainPreset]:
    """Load every preset file in a directory, skipping unreadable ones."""
    directory = Path(directory)
    if not directory.exists():
        return []

    presets = []
    for path in sorted(directory.glob(f"*{PRESET_SUFFIX}")):
        try:
            presets.append(load_preset(path))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load preset", path=str(path), error=str(e))
    return presets
