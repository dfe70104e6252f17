"""Axis aligned primitives shared by the growth engines and the resolvers."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Literal, Sequence

Vec3 = tuple[float, float, float]
VolumeKind = Literal["room", "hall"]

AXIS_NAMES = ("X", "Y", "Z")
X, Y, Z = 0, 1, 2


class Direction(str, Enum):
    """The six cardinal growth directions.

    North and south run along Z, east and west along X, up and down along Y.
    """

    NORTH = "N"
    SOUTH = "S"
    EAST = "E"
    WEST = "W"
    UP = "U"
    DOWN = "D"

    @property
    def vector(self) -> tuple[int, int, int]:
        return _VECTORS[self]

    @property
    def axis(self) -> int:
        return _AXES[self]

    @property
    def sign(self) -> int:
        return self.vector[self.axis]

    @property
    def opposite(self) -> "Direction":
        return _OPPOSITES[self]

    @property
    def is_vertical(self) -> bool:
        return self.axis == Y

    @classmethod
    def from_axis(cls, axis: int, sign: int) -> "Direction":
        for direction, (dir_axis, dir_sign) in _AXIS_SIGNS.items():
            if dir_axis == axis and dir_sign == (1 if sign >= 0 else -1):
                return direction
        raise ValueError(f"invalid axis {axis}")


_VECTORS = {
    Direction.NORTH: (0, 0, 1),
    Direction.SOUTH: (0, 0, -1),
    Direction.EAST: (1, 0, 0),
    Direction.WEST: (-1, 0, 0),
    Direction.UP: (0, 1, 0),
    Direction.DOWN: (0, -1, 0),
}
_AXES = {direction: next(i for i, v in enumerate(vec) if v) for direction, vec in _VECTORS.items()}
_AXIS_SIGNS = {direction: (_AXES[direction], vec[_AXES[direction]]) for direction, vec in _VECTORS.items()}
_OPPOSITES = {
    Direction.NORTH: Direction.SOUTH,
    Direction.SOUTH: Direction.NORTH,
    Direction.EAST: Direction.WEST,
    Direction.WEST: Direction.EAST,
    Direction.UP: Direction.DOWN,
    Direction.DOWN: Direction.UP,
}

HORIZONTAL_DIRECTIONS = (Direction.NORTH, Direction.SOUTH, Direction.EAST, Direction.WEST)
VERTICAL_DIRECTIONS = (Direction.UP, Direction.DOWN)
ALL_DIRECTIONS = HORIZONTAL_DIRECTIONS + VERTICAL_DIRECTIONS


def perpendicular_axes(axis: int) -> tuple[int, int]:
    """Return the two axes orthogonal to ``axis`` in ascending order."""

    return tuple(other for other in (X, Y, Z) if other != axis)  # type: ignore[return-value]


@dataclass(frozen=True, slots=True)
class AABB:
    """Axis aligned bounding box stored as min/max corners."""

    min_x: float
    min_y: float
    min_z: float
    max_x: float
    max_y: float
    max_z: float

    @classmethod
    def from_center(cls, center: Sequence[float], size: Sequence[float]) -> "AABB":
        hx, hy, hz = size[0] / 2, size[1] / 2, size[2] / 2
        return cls(
            center[0] - hx,
            center[1] - hy,
            center[2] - hz,
            center[0] + hx,
            center[1] + hy,
            center[2] + hz,
        )

    @classmethod
    def from_floor(cls, floor_center: Sequence[float], size: Sequence[float]) -> "AABB":
        """Box standing on ``floor_center``: centred on X and Z, bottom at Y."""

        x, y, z = floor_center[0], floor_center[1], floor_center[2]
        return cls.from_center((x, y + size[1] / 2, z), size)

    @property
    def mins(self) -> Vec3:
        return (self.min_x, self.min_y, self.min_z)

    @property
    def maxs(self) -> Vec3:
        return (self.max_x, self.max_y, self.max_z)

    @property
    def center(self) -> Vec3:
        return (
            (self.min_x + self.max_x) / 2,
            (self.min_y + self.max_y) / 2,
            (self.min_z + self.max_z) / 2,
        )

    @property
    def size(self) -> Vec3:
        return (
            self.max_x - self.min_x,
            self.max_y - self.min_y,
            self.max_z - self.min_z,
        )

    def overlaps(self, other: "AABB", tolerance: float = 0.0) -> bool:
        """Return True when the boxes interpenetrate by more than ``tolerance``.

        Faces that merely touch never count as overlapping.
        """

        return (
            self.min_x < other.max_x - tolerance
            and self.max_x > other.min_x + tolerance
            and self.min_y < other.max_y - tolerance
            and self.max_y > other.min_y + tolerance
            and self.min_z < other.max_z - tolerance
            and self.max_z > other.min_z + tolerance
        )

    def overlap_extent(self, other: "AABB", axis: int) -> float:
        """Length of the shared interval on ``axis`` (0 when disjoint)."""

        low = max(self.mins[axis], other.mins[axis])
        high = min(self.maxs[axis], other.maxs[axis])
        return max(0.0, high - low)


@dataclass(frozen=True, slots=True)
class PlacedVolume:
    """Registry entry tagging a box with the graph element that owns it."""

    aabb: AABB
    owner_id: int
    kind: VolumeKind
    # Point ids this volume touches by construction (a hallway's endpoints).
    incident: tuple[int, ...] = ()


class VolumeRegistry:
    """Append-only spatial index of committed room and hallway boxes."""

    def __init__(self) -> None:
        self._volumes: list[PlacedVolume] = []

    def __len__(self) -> int:
        return len(self._volumes)

    def __iter__(self) -> Iterator[PlacedVolume]:
        return iter(self._volumes)

    def add(self, volume: PlacedVolume) -> None:
        self._volumes.append(volume)

    def clear(self) -> None:
        self._volumes.clear()

    def overlapping(
        self,
        aabb: AABB,
        *,
        tolerance: float = 0.0,
        exclude_rooms: Iterable[int] = (),
        exclude_incident: Iterable[int] = (),
    ) -> list[PlacedVolume]:
        """Return every placed volume ``aabb`` overlaps.

        Rooms owned by ``exclude_rooms`` are skipped, and so are hallways
        attached to any point in ``exclude_incident``.
        """

        skip_rooms = set(exclude_rooms)
        skip_incident = set(exclude_incident)
        hits: list[PlacedVolume] = []
        for volume in self._volumes:
            if volume.kind == "room" and volume.owner_id in skip_rooms:
                continue
            if volume.kind == "hall" and skip_incident.intersection(volume.incident):
                continue
            if aabb.overlaps(volume.aabb, tolerance):
                hits.append(volume)
        return hits


__all__ = [
    "AABB",
    "ALL_DIRECTIONS",
    "AXIS_NAMES",
    "Direction",
    "HORIZONTAL_DIRECTIONS",
    "PlacedVolume",
    "VERTICAL_DIRECTIONS",
    "Vec3",
    "VolumeKind",
    "VolumeRegistry",
    "X",
    "Y",
    "Z",
    "perpendicular_axes",
]
