"""Door openings between adjacent rooms.

Rooms are described by their interior extents.  Two rooms are adjacent along
an axis when their centres are exactly two wall thicknesses further apart
than their combined half extents, i.e. their wall shells touch.  The shared
wall is the overlap of the two rooms on the other two axes; the door is cut
near the bottom of that rectangle.  Every "no door" outcome is a ``None``
return, never an exception.

Resolved layouts join rooms with hallways, so :class:`DoorwayPlacer` treats
the stretch of each hallway between its two rooms as a narrow room of its own
and cuts one door where it meets each room.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Protocol

from modules.dungeon.events import DoorwayCreated, DoorwaysComplete
from modules.dungeon.gen.geometry import AXIS_NAMES, X, Y, Z, Vec3
from modules.dungeon.gen.params import DoorwayConfig
from modules.dungeon.resolve.sizing import HallwayVolume, LayoutGeometry, RoomVolume

logger = logging.getLogger(__name__)


class _EventBus(Protocol):
    def publish(self, event_type: str, **payload: object) -> None:
        ...


@dataclass(frozen=True, slots=True)
class RoomExtent:
    """Interior box of a room: centre and full dimensions."""

    room_id: int
    center: Vec3
    dims: Vec3


@dataclass(frozen=True, slots=True)
class SharedWall:
    center: Vec3
    width: float
    height: float
    width_axis: int
    height_axis: int
    axis: int
    direction: int


@dataclass(frozen=True, slots=True)
class Doorway:
    center: Vec3
    width: float
    height: float
    width_axis: int
    height_axis: int
    axis: int
    direction: int
    size: Vec3
    from_room_id: int | None = None
    to_room_id: int | None = None
    room_id: int | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "from_room_id": self.from_room_id,
            "to_room_id": self.to_room_id,
            "room_id": self.room_id,
            "position": list(self.center),
            "width": self.width,
            "height": self.height,
            "size": list(self.size),
            "axis": AXIS_NAMES[self.axis],
            "width_axis": AXIS_NAMES[self.width_axis],
            "height_axis": AXIS_NAMES[self.height_axis],
            "direction": self.direction,
        }


def find_adjacency_axis(a: RoomExtent, b: RoomExtent, config: DoorwayConfig | None = None) -> tuple[int, int] | None:
    """Return ``(axis, sign)`` pointing from ``a`` to ``b``, or ``None``."""

    config = config or DoorwayConfig()
    for axis in (X, Y, Z):
        distance = b.center[axis] - a.center[axis]
        touching = a.dims[axis] / 2 + b.dims[axis] / 2 + 2 * config.wall_thickness
        if abs(abs(distance) - touching) < config.adjacency_tolerance:
            return axis, 1 if distance > 0 else -1
    return None


def shared_wall(
    a: RoomExtent,
    b: RoomExtent,
    axis: int,
    direction: int,
    config: DoorwayConfig | None = None,
) -> SharedWall | None:
    """Rectangle where the two rooms face each other, ``None`` if disjoint."""

    config = config or DoorwayConfig()
    center = [0.0, 0.0, 0.0]
    center[axis] = a.center[axis] + (a.dims[axis] / 2 + config.wall_thickness) * direction

    spans: dict[int, float] = {}
    for other in (X, Y, Z):
        if other == axis:
            continue
        low = max(a.center[other] - a.dims[other] / 2, b.center[other] - b.dims[other] / 2)
        high = min(a.center[other] + a.dims[other] / 2, b.center[other] + b.dims[other] / 2)
        if high <= low:
            return None
        spans[other] = high - low
        center[other] = (low + high) / 2

    if axis == Y:
        width_axis, height_axis = X, Z
    else:
        width_axis, height_axis = (Z if axis == X else X), Y
    return SharedWall(
        center=(center[0], center[1], center[2]),
        width=spans[width_axis],
        height=spans[height_axis],
        width_axis=width_axis,
        height_axis=height_axis,
        axis=axis,
        direction=direction,
    )


def _fit(available: float, ratio: float, cap: float, minimum: float) -> float:
    return min(max(min(available * ratio, cap), minimum), available)


def compute_doorway(wall: SharedWall, config: DoorwayConfig | None = None) -> Doorway | None:
    """Door inside ``wall`` sitting ``margin`` above its bottom edge."""

    config = config or DoorwayConfig()
    margin = config.margin
    available_width = wall.width - margin * 2
    available_height = wall.height - margin * 2
    if available_width < config.min_door_size or available_height < config.min_door_size:
        return None

    width = _fit(available_width, config.width_ratio, config.max_width, config.min_door_size)
    height = _fit(available_height, config.height_ratio, config.max_height, config.min_door_size)

    center = list(wall.center)
    wall_bottom = wall.center[wall.height_axis] - wall.height / 2
    center[wall.height_axis] = wall_bottom + margin + height / 2

    size = [0.0, 0.0, 0.0]
    size[wall.axis] = config.door_depth
    size[wall.width_axis] = width
    size[wall.height_axis] = height
    return Doorway(
        center=(center[0], center[1], center[2]),
        width=width,
        height=height,
        width_axis=wall.width_axis,
        height_axis=wall.height_axis,
        axis=wall.axis,
        direction=wall.direction,
        size=(size[0], size[1], size[2]),
    )


def doorway_between(a: RoomExtent, b: RoomExtent, config: DoorwayConfig | None = None) -> Doorway | None:
    config = config or DoorwayConfig()
    adjacency = find_adjacency_axis(a, b, config)
    if adjacency is None:
        return None
    wall = shared_wall(a, b, *adjacency, config)
    if wall is None:
        return None
    door = compute_doorway(wall, config)
    if door is None:
        return None
    return replace(door, from_room_id=a.room_id, to_room_id=b.room_id)


def interior_extent(room: RoomVolume, wall_thickness: float) -> RoomExtent:
    """Interior of a resolved room: its box minus one wall on every side."""

    inner = tuple(max(0.0, d - 2 * wall_thickness) for d in room.aabb.size)
    return RoomExtent(room.point_id, room.aabb.center, inner)  # type: ignore[arg-type]


def _hallway_stretch(hallway: HallwayVolume, axis: int, start: float, end: float, wall_thickness: float) -> RoomExtent:
    """Interior of the part of ``hallway`` running between two room faces."""

    center = list(hallway.aabb.center)
    dims = [max(0.0, d - 2 * wall_thickness) for d in hallway.aabb.size]
    center[axis] = (start + end) / 2
    dims[axis] = max(0.0, abs(end - start) - 2 * wall_thickness)
    return RoomExtent(hallway.segment_id, (center[0], center[1], center[2]), (dims[0], dims[1], dims[2]))


def hallway_doorways(
    a: RoomVolume,
    b: RoomVolume,
    hallway: HallwayVolume,
    config: DoorwayConfig | None = None,
) -> list[Doorway]:
    """Openings that let ``hallway`` through the walls of rooms ``a`` and ``b``.

    Rooms whose walls meet share one door.  Otherwise the hallway stretch
    between them acts as a narrow room and gets a door at each end.
    """

    config = config or DoorwayConfig()
    wall = config.wall_thickness
    axis = AXIS_NAMES.index(hallway.axis)
    sign = 1 if b.aabb.center[axis] >= a.aabb.center[axis] else -1
    a_face = a.aabb.maxs[axis] if sign > 0 else a.aabb.mins[axis]
    b_face = b.aabb.mins[axis] if sign > 0 else b.aabb.maxs[axis]
    gap = (b_face - a_face) * sign

    inner_a, inner_b = interior_extent(a, wall), interior_extent(b, wall)
    if gap < config.adjacency_tolerance:
        pairs = [(inner_a, inner_b, a.point_id)]
    elif gap <= 2 * wall:
        logger.debug("Rooms %d and %d are a wall apart; no doorway", a.point_id, b.point_id)
        return []
    else:
        stretch = _hallway_stretch(hallway, axis, a_face, b_face, wall)
        pairs = [(inner_a, stretch, a.point_id), (stretch, inner_b, b.point_id)]

    doors: list[Doorway] = []
    for first, second, owner in pairs:
        door = doorway_between(first, second, config)
        if door is not None:
            doors.append(replace(door, from_room_id=a.point_id, to_room_id=b.point_id, room_id=owner))
    return doors


class DoorwayPlacer:
    """Compute and announce the doorways of a resolved layout."""

    def __init__(self, config: DoorwayConfig | None = None, *, event_bus: _EventBus | None = None) -> None:
        self.config = config or DoorwayConfig()
        self._bus = event_bus

    def process(self, geometry: LayoutGeometry) -> list[Doorway]:
        """Walk every hallway and cut doors where it meets its two rooms."""

        rooms = {room.point_id: room for room in geometry.rooms}
        doorways: list[Doorway] = []
        for hallway in geometry.hallways:
            a, b = rooms.get(hallway.from_id), rooms.get(hallway.to_id)
            if a is None or b is None:
                logger.debug("Skipping doorways of hallway %d: room missing", hallway.segment_id)
                continue
            doors = hallway_doorways(a, b, hallway, self.config)
            if not doors:
                logger.debug("No doorway between %d and %d", a.point_id, b.point_id)
            for door in doors:
                doorways.append(door)
                if self._bus is not None:
                    DoorwayCreated(
                        from_room_id=a.point_id,
                        to_room_id=b.point_id,
                        room_id=door.room_id,
                        position=door.center,
                        width=door.width,
                        height=door.height,
                        size=door.size,
                    ).publish(self._bus)

        logger.debug("Placed %d doorways", len(doorways))
        if self._bus is not None:
            DoorwaysComplete(total_doorways=len(doorways)).publish(self._bus)
        return doorways


__all__ = [
    "Doorway",
    "DoorwayPlacer",
    "RoomExtent",
    "SharedWall",
    "compute_doorway",
    "doorway_between",
    "find_adjacency_axis",
    "hallway_doorways",
    "interior_extent",
    "shared_wall",
]
