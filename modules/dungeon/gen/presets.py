"""Named growth presets read from ``config/dungeon.yaml``."""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Mapping

from config.config_loader import ConfigLoader


@lru_cache(maxsize=1)
def _default_presets() -> dict[str, dict[str, Any]]:
    return ConfigLoader().section("presets")


def load_presets(loader: ConfigLoader | None = None) -> dict[str, dict[str, Any]]:
    """Return every preset keyed by name."""

    presets = _default_presets() if loader is None else loader.section("presets")
    return {name: dict(values) for name, values in presets.items()}


def preset_names(loader: ConfigLoader | None = None) -> list[str]:
    return sorted(load_presets(loader))


def get_preset(name: str, loader: ConfigLoader | None = None) -> dict[str, Any]:
    """Return a copy of preset ``name``; matching ignores case."""

    presets = load_presets(loader)
    for key, values in presets.items():
        if key.lower() == name.lower():
            return dict(values)
    raise ValueError(f"unknown preset '{name}' (known: {', '.join(sorted(presets))})")


def merge_preset(name: str | None, overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Preset values for ``name`` updated with ``overrides``."""

    merged = get_preset(name) if name else {}
    if overrides:
        merged.update(overrides)
    return merged


__all__ = ["get_preset", "load_presets", "merge_preset", "preset_names"]
