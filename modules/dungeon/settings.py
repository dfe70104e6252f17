"""Bundle of every generation config record, loadable from YAML."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

from config.config_loader import ConfigLoader
from modules.dungeon.gen.params import (
    DoorwayConfig,
    GeometryConfig,
    GrowthConfig,
    IncrementalConfig,
)
from modules.dungeon.gen.presets import merge_preset


@dataclass(slots=True)
class DungeonSettings:
    growth: GrowthConfig = field(default_factory=GrowthConfig)
    incremental: IncrementalConfig = field(default_factory=IncrementalConfig)
    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    doorways: DoorwayConfig = field(default_factory=DoorwayConfig)

    @classmethod
    def from_loader(cls, loader: ConfigLoader | None = None) -> "DungeonSettings":
        loader = loader or ConfigLoader()
        return cls(
            growth=GrowthConfig.from_mapping(loader.section("growth")),
            incremental=IncrementalConfig.from_mapping(loader.section("incremental")),
            geometry=GeometryConfig.from_mapping(loader.section("geometry")),
            doorways=DoorwayConfig.from_mapping(loader.section("doorways")),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "DungeonSettings":
        return cls.from_loader(ConfigLoader(path))

    def copy(self) -> "DungeonSettings":
        return DungeonSettings(
            growth=replace(self.growth),
            incremental=replace(self.incremental),
            geometry=replace(self.geometry, height_multipliers=dict(self.geometry.height_multipliers)),
            doorways=replace(self.doorways),
        )

    def with_overrides(
        self,
        *,
        seed: int | str | None = None,
        preset: str | None = None,
        growth: Mapping[str, Any] | None = None,
        incremental: Mapping[str, Any] | None = None,
    ) -> "DungeonSettings":
        """Copy with a seed, a growth preset and sparse overrides applied."""

        settings = self.copy()
        growth_values = merge_preset(preset, growth)
        if growth_values:
            settings.growth.configure(**growth_values)
        if incremental:
            settings.incremental.configure(**dict(incremental))
        if seed is not None:
            settings.growth.seed = seed
            settings.incremental.seed = seed
        settings.geometry.base_unit = settings.incremental.base_unit
        return settings


__all__ = ["DungeonSettings"]
