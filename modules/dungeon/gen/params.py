"""User-facing parameters for dungeon generation.

Every configuration record supports a sparse merge through ``configure``:
fields that are not mentioned keep their current value.  Range fields accept
``(min, max)`` pairs as well as ``{"min": .., "max": ..}`` mappings, which is
how they appear in YAML files.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Mapping, Sequence

from modules.dungeon.gen.geometry import Vec3

logger = logging.getLogger(__name__)

IntRange = tuple[int, int]
FloatRange = tuple[float, float]
Bounds = tuple[Vec3, Vec3]


def _as_range(value: Any, cast: type = float) -> tuple[Any, Any]:
    if isinstance(value, Mapping):
        low, high = value["min"], value["max"]
    else:
        low, high = value
    return cast(low), cast(high)


def _as_bounds(value: Any) -> Bounds | None:
    if value is None:
        return None
    if isinstance(value, Mapping):
        low, high = value["min"], value["max"]
    else:
        low, high = value
    return (
        (float(low[0]), float(low[1]), float(low[2])),
        (float(high[0]), float(high[1]), float(high[2])),
    )


def _check_range(name: str, value: Sequence[float], *, minimum: float = 0) -> None:
    low, high = value
    if low < minimum or high < minimum:
        raise ValueError(f"{name} must not be below {minimum}")
    if low > high:
        raise ValueError(f"{name} range must be increasing")


def _check_percent(name: str, value: float | None) -> None:
    if value is not None and not 0 <= value <= 100:
        raise ValueError(f"{name} must lie between 0 and 100")


class _Configurable:
    """Sparse-merge helpers shared by the configuration dataclasses."""

    __slots__ = ()

    #: Field name to converter used when merging raw values.
    CONVERTERS: ClassVar[dict[str, Any]] = {}

    def configure(self, **overrides: Any) -> "_Configurable":
        """Merge ``overrides`` into this record and re-validate it."""

        known = {f.name for f in fields(self)}  # type: ignore[arg-type]
        for key, value in overrides.items():
            if key not in known:
                logger.warning("Ignoring unknown %s option '%s'", type(self).__name__, key)
                continue
            converter = self.CONVERTERS.get(key)
            if converter is not None and value is not None:
                value = converter(value)
            setattr(self, key, value)
        self.validate()
        return self

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None):
        instance = cls()
        if mapping:
            instance.configure(**dict(mapping))
        return instance

    def as_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}  # type: ignore[arg-type]

    def validate(self) -> None:  # pragma: no cover - overridden
        raise NotImplementedError


@dataclass(slots=True)
class GrowthConfig(_Configurable):
    """Parameters of the batch growth engine."""

    CONVERTERS: ClassVar[dict[str, Any]] = {
        "spur_count": lambda v: _as_range(v, int),
        "spur_segments": lambda v: _as_range(v, int),
        "size_range": _as_range,
        "height_scale": _as_range,
        "aspect_ratio": _as_range,
        "bounds": _as_bounds,
        "phases": lambda v: [dict(phase) for phase in v],
    }

    base_unit: float = 15.0
    seed: int | str | None = None
    spur_count: IntRange = (2, 5)
    max_segments_per_branch: int = 10
    spur_segments: IntRange = (1, 3)
    # Horizon scan cap, in base units.
    scan_distance: float = 5.0
    size_range: FloatRange = (1.2, 2.5)
    height_scale: FloatRange = (0.8, 1.2)
    aspect_ratio: FloatRange = (0.6, 1.4)
    grid_snap: float = 5.0
    # Floors on the reserved box; unset means 2 and 3 base units, enough to
    # hold the largest resolver room with default geometry.
    min_room_size: float | None = None
    min_room_height: float | None = None
    straightness: int = 0
    goal_bias: int = 0
    vertical_chance: int | None = None
    allow_up: bool = True
    allow_down: bool = True
    min_y: float = -200.0
    max_y: float = 500.0
    bounds: Bounds | None = None
    phases: list[dict[str, Any]] | None = None

    def __post_init__(self) -> None:
        self.validate()

    @property
    def scan_cap(self) -> float:
        return self.scan_distance * self.base_unit

    @property
    def effective_min_room_size(self) -> float:
        return 2 * self.base_unit if self.min_room_size is None else self.min_room_size

    @property
    def effective_min_room_height(self) -> float:
        return 3 * self.base_unit if self.min_room_height is None else self.min_room_height

    def validate(self) -> None:
        if self.base_unit <= 0:
            raise ValueError("base_unit must be positive")
        if self.max_segments_per_branch < 0:
            raise ValueError("max_segments_per_branch must not be negative")
        if self.scan_distance <= 0:
            raise ValueError("scan_distance must be positive")
        if self.grid_snap < 0:
            raise ValueError("grid_snap must not be negative")
        for name in ("min_room_size", "min_room_height"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive")
        _check_range("spur_count", self.spur_count)
        _check_range("spur_segments", self.spur_segments)
        for name in ("size_range", "height_scale", "aspect_ratio"):
            _check_range(name, getattr(self, name))
        if self.aspect_ratio[0] <= 0:
            raise ValueError("aspect_ratio must be positive")
        _check_percent("straightness", self.straightness)
        _check_percent("goal_bias", self.goal_bias)
        _check_percent("vertical_chance", self.vertical_chance)
        if self.min_y > self.max_y:
            raise ValueError("min_y must not exceed max_y")


@dataclass(slots=True)
class IncrementalConfig(_Configurable):
    """Parameters of the incremental (negotiating) growth engine."""

    CONVERTERS: ClassVar[dict[str, Any]] = {
        "spur_count": lambda v: _as_range(v, int),
        "spur_segments": lambda v: _as_range(v, int),
        "segment_length": lambda v: _as_range(v, int),
        "spur_segment_length": lambda v: _as_range(v, int),
    }

    base_unit: float = 15.0
    seed: int | str | None = None
    spur_count: IntRange = (2, 5)
    max_segments_per_branch: int = 10
    segment_length: IntRange = (2, 4)
    spur_segments: IntRange = (1, 3)
    spur_segment_length: IntRange = (2, 3)
    max_retries_per_segment: int = 25

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.base_unit <= 0:
            raise ValueError("base_unit must be positive")
        if self.max_segments_per_branch < 0:
            raise ValueError("max_segments_per_branch must not be negative")
        if self.max_retries_per_segment < 0:
            raise ValueError("max_retries_per_segment must not be negative")
        _check_range("spur_count", self.spur_count)
        _check_range("spur_segments", self.spur_segments)
        _check_range("segment_length", self.segment_length, minimum=1)
        _check_range("spur_segment_length", self.spur_segment_length, minimum=1)


@dataclass(slots=True)
class GeometryConfig(_Configurable):
    """Room and hallway sizing used by both conflict resolvers."""

    CONVERTERS: ClassVar[dict[str, Any]] = {
        "height_multipliers": dict,
    }

    hall_scale: float = 1.0
    height_scale: float = 2.0
    room_scale: float = 1.5
    junction_scale: float = 2.0
    corridor_scale: float = 1.0
    height_multipliers: dict[str, float] = field(
        default_factory=lambda: {
            "junction": 1.5,
            "start": 1.5,
            "goal": 1.5,
            "deadend": 1.0,
            "corridor": 0.8,
            "hall": 1.0,
        }
    )
    max_shift_attempts: int = 10
    touch_tolerance: float = 0.1
    fallback_base_unit: float = 15.0
    max_base_unit: float = 100.0
    # Only read by the incremental resolver, which cannot infer a unit.
    base_unit: float = 15.0

    def __post_init__(self) -> None:
        self.validate()

    def configure(self, **overrides: Any) -> "GeometryConfig":
        multipliers = overrides.pop("height_multipliers", None)
        if multipliers:
            merged = dict(self.height_multipliers)
            merged.update(multipliers)
            overrides["height_multipliers"] = merged
        _Configurable.configure(self, **overrides)
        return self

    def height_multiplier(self, room_type: str) -> float:
        return self.height_multipliers.get(room_type, 1.0)

    def validate(self) -> None:
        for name in ("hall_scale", "height_scale", "room_scale", "junction_scale", "corridor_scale", "base_unit"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.max_shift_attempts < 0:
            raise ValueError("max_shift_attempts must not be negative")
        if self.touch_tolerance < 0:
            raise ValueError("touch_tolerance must not be negative")


@dataclass(slots=True)
class DoorwayConfig(_Configurable):
    """Door opening sizing rules."""

    wall_thickness: float = 1.0
    min_door_size: float = 4.0
    margin: float = 2.0
    width_ratio: float = 0.75
    max_width: float = 12.0
    height_ratio: float = 0.8
    max_height: float = 10.0
    adjacency_tolerance: float = 1.0

    def __post_init__(self) -> None:
        self.validate()

    @property
    def door_depth(self) -> float:
        return self.wall_thickness * 6 + 2

    def validate(self) -> None:
        if self.wall_thickness < 0:
            raise ValueError("wall_thickness must not be negative")
        if self.min_door_size <= 0:
            raise ValueError("min_door_size must be positive")
        if self.margin < 0:
            raise ValueError("margin must not be negative")
        if not 0 < self.width_ratio <= 1 or not 0 < self.height_ratio <= 1:
            raise ValueError("door ratios must lie in (0, 1]")


__all__ = [
    "Bounds",
    "DoorwayConfig",
    "FloatRange",
    "GeometryConfig",
    "GrowthConfig",
    "IncrementalConfig",
    "IntRange",
]
