"""Room and hallway volumes derived from the point graph.

Room types follow connectivity and role: the start and goal points keep their
role, otherwise one connection makes a dead end, two a corridor and three or
more a junction.  Rooms are bottom aligned: a point's ``y`` is its floor.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import reduce
from math import gcd
from typing import Iterable, Literal, Sequence

from modules.dungeon.gen.geometry import AABB, AXIS_NAMES, Vec3
from modules.dungeon.gen.params import GeometryConfig

RoomType = Literal["start", "goal", "deadend", "corridor", "junction"]


def classify_room(connection_count: int, role: str | None = None) -> RoomType:
    if role == "start":
        return "start"
    if role == "goal":
        return "goal"
    if connection_count <= 1:
        return "deadend"
    if connection_count == 2:
        return "corridor"
    return "junction"


def room_scale(room_type: str, config: GeometryConfig) -> float:
    if room_type in ("start", "goal", "junction"):
        return config.junction_scale
    if room_type == "deadend":
        return config.room_scale
    return config.corridor_scale


def derive_base_unit(lengths: Iterable[float], config: GeometryConfig, hint: float | None = None) -> float:
    """GCD of the rounded segment lengths, clamped to a sane range.

    No lengths at all yields 1; a GCD below 1 becomes 1 and one above
    ``max_base_unit`` falls back to ``fallback_base_unit``.  A ``hint`` (the
    grid the graph was grown on) wins whenever every length is a whole
    multiple of it.
    """

    spans = [abs(length) for length in lengths]
    if hint and all(abs(span / hint - round(span / hint)) < 1e-6 for span in spans):
        return hint
    rounded = [round(span) for span in spans]
    if not rounded:
        return 1
    unit = reduce(gcd, rounded, 0)
    if unit < 1:
        return 1
    if unit > config.max_base_unit:
        return config.fallback_base_unit
    return unit


@dataclass(slots=True)
class RoomVolume:
    point_id: int
    pos: Vec3
    size: Vec3
    type: str
    connection_count: int
    overlapping: bool = False
    aabb: AABB = field(init=False)

    def __post_init__(self) -> None:
        self.aabb = AABB.from_floor(self.pos, self.size)

    def as_dict(self) -> dict[str, object]:
        return {
            "point_id": self.point_id,
            "pos": list(self.pos),
            "size": list(self.size),
            "type": self.type,
            "connection_count": self.connection_count,
            "overlapping": self.overlapping,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RoomVolume":
        return cls(
            point_id=int(data["point_id"]),
            pos=tuple(data["pos"]),  # type: ignore[arg-type]
            size=tuple(data["size"]),  # type: ignore[arg-type]
            type=str(data["type"]),
            connection_count=int(data["connection_count"]),
            overlapping=bool(data.get("overlapping", False)),
        )


@dataclass(slots=True)
class HallwayVolume:
    segment_id: int
    from_id: int
    to_id: int
    pos: Vec3
    size: Vec3
    axis: str
    length: float
    aabb: AABB
    overlapping: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "segment_id": self.segment_id,
            "from": self.from_id,
            "to": self.to_id,
            "pos": list(self.pos),
            "size": list(self.size),
            "axis": self.axis,
            "length": self.length,
            "overlapping": self.overlapping,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HallwayVolume":
        pos = tuple(float(v) for v in data["pos"])
        size = tuple(float(v) for v in data["size"])
        axis = str(data["axis"])
        return cls(
            segment_id=int(data["segment_id"]),
            from_id=int(data["from"]),
            to_id=int(data["to"]),
            pos=pos,  # type: ignore[arg-type]
            size=size,  # type: ignore[arg-type]
            axis=axis,
            length=float(data["length"]),
            aabb=AABB.from_floor(pos, size),
            overlapping=bool(data.get("overlapping", False)),
        )


def room_volume(
    point_id: int,
    pos: Sequence[float],
    connection_count: int,
    base_unit: float,
    config: GeometryConfig,
    role: str | None = None,
) -> RoomVolume:
    room_type = classify_room(connection_count, role)
    size = base_unit * room_scale(room_type, config)
    height = base_unit * config.height_scale * config.height_multiplier(room_type)
    return RoomVolume(
        point_id=point_id,
        pos=(float(pos[0]), float(pos[1]), float(pos[2])),
        size=(size, height, size),
        type=room_type,
        connection_count=connection_count,
    )


def hallway_volume(
    segment_id: int,
    from_id: int,
    to_id: int,
    from_pos: Sequence[float],
    to_pos: Sequence[float],
    base_unit: float,
    config: GeometryConfig,
) -> HallwayVolume | None:
    """Box spanning the two endpoints, or ``None`` when they coincide."""

    dx, dy, dz = (to_pos[i] - from_pos[i] for i in range(3))
    length = abs(dx) + abs(dy) + abs(dz)
    if length < 1:
        return None

    mid_x = (from_pos[0] + to_pos[0]) / 2
    mid_z = (from_pos[2] + to_pos[2]) / 2
    hall_size = base_unit * config.hall_scale
    height = base_unit * config.height_scale * config.height_multiplier("hall")

    if abs(dx) > 0.1:
        axis, size = 0, (length, height, hall_size)
    elif abs(dz) > 0.1:
        axis, size = 2, (hall_size, height, length)
    else:
        axis, size = 1, (hall_size, length, hall_size)

    floor_y = min(from_pos[1], to_pos[1])
    return HallwayVolume(
        segment_id=segment_id,
        from_id=from_id,
        to_id=to_id,
        pos=(mid_x, floor_y, mid_z),
        size=size,
        axis=AXIS_NAMES[axis],
        length=length,
        aabb=AABB.from_floor((mid_x, floor_y, mid_z), size),
    )


@dataclass(slots=True)
class LayoutGeometry:
    """Materialisation ready rooms and hallways."""

    rooms: list[RoomVolume] = field(default_factory=list)
    hallways: list[HallwayVolume] = field(default_factory=list)
    base_unit: float = 1.0

    def room(self, point_id: int) -> RoomVolume | None:
        return next((room for room in self.rooms if room.point_id == point_id), None)

    def as_dict(self) -> dict[str, object]:
        return {
            "rooms": [room.as_dict() for room in self.rooms],
            "hallways": [hallway.as_dict() for hallway in self.hallways],
            "base_unit": self.base_unit,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LayoutGeometry":
        return cls(
            rooms=[RoomVolume.from_dict(room) for room in data.get("rooms", [])],
            hallways=[HallwayVolume.from_dict(hall) for hall in data.get("hallways", [])],
            base_unit=float(data.get("base_unit", 1.0)),
        )


__all__ = [
    "HallwayVolume",
    "LayoutGeometry",
    "RoomType",
    "RoomVolume",
    "classify_room",
    "derive_base_unit",
    "hallway_volume",
    "room_scale",
    "room_volume",
]
