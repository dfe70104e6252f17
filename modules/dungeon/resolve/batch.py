"""Batch conflict resolution: size every point and push overlaps apart.

Points are visited breadth-first from the start.  A room that overlaps
anything already placed, or whose incoming hallway cuts through a volume that
does not belong to either of its ends, is moved together with everything
beyond it, one base unit at a time along the hallway it was reached by.  Moving whole
downstream subtrees along a single axis keeps every segment orthogonal.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from modules.dungeon.events import GeometryBuilt, GeometryCleared, GeometryReady, PointsShifted
from modules.dungeon.gen.geometry import PlacedVolume, Vec3, VolumeRegistry
from modules.dungeon.gen.graph import DungeonGraph
from modules.dungeon.gen.params import GeometryConfig
from modules.dungeon.resolve.sizing import (
    HallwayVolume,
    LayoutGeometry,
    RoomVolume,
    derive_base_unit,
    hallway_volume,
    room_volume,
)

logger = logging.getLogger(__name__)


class _EventBus(Protocol):
    def publish(self, event_type: str, **payload: object) -> None:
        ...


@dataclass(slots=True)
class ResolveResult:
    graph: DungeonGraph
    geometry: LayoutGeometry
    updates: dict[int, Vec3] = field(default_factory=dict)
    shift_count: int = 0
    unresolved: list[int] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.unresolved


def point_role(graph: DungeonGraph, point_id: int) -> str | None:
    if point_id == graph.start_id:
        return "start"
    if point_id in graph.goal_ids:
        return "goal"
    return None


def hallway_shift(graph: DungeonGraph, point_id: int, came_from: int | None) -> tuple[int, int, int]:
    """Unit vector along the incoming hallway, +X for the root."""

    if came_from is None:
        return (1, 0, 0)
    pos = graph.position(point_id)
    prev = graph.position(came_from)
    delta = [pos[i] - prev[i] for i in range(3)]
    axis = max(range(3), key=lambda i: abs(delta[i]))
    vector = [0, 0, 0]
    vector[axis] = 1 if delta[axis] >= 0 else -1
    return (vector[0], vector[1], vector[2])


class BatchResolver:
    """Turn a finished graph into non-overlapping room and hallway volumes."""

    def __init__(self, config: GeometryConfig | None = None, *, event_bus: _EventBus | None = None) -> None:
        self.config = config or GeometryConfig()
        self.registry = VolumeRegistry()
        self._bus = event_bus

    def clear(self) -> None:
        self.registry.clear()
        self._publish(GeometryCleared())

    def resolve(self, graph: DungeonGraph) -> ResolveResult:
        """Resolve ``graph`` without mutating it; the returned copy holds the shifts."""

        work = graph.copy()
        original = {point_id: work.position(point_id) for point_id in work.points}
        base_unit = derive_base_unit(
            (
                sum(abs(a - b) for a, b in zip(work.position(s.from_id), work.position(s.to_id)))
                for s in work.segments.values()
            ),
            self.config,
            hint=work.base_unit,
        )
        self.registry.clear()
        result = ResolveResult(graph=work, geometry=LayoutGeometry(base_unit=base_unit))

        for point_id, came_from in work.bfs_order():
            room, hallway = self._place(work, point_id, came_from, base_unit, result)
            self.registry.add(PlacedVolume(room.aabb, point_id, "room"))
            result.geometry.rooms.append(room)
            if hallway is not None:
                self.registry.add(
                    PlacedVolume(hallway.aabb, hallway.segment_id, "hall", incident=(hallway.from_id, hallway.to_id))
                )
                result.geometry.hallways.append(hallway)

        if result.shift_count:
            result.updates = {
                point_id: work.position(point_id)
                for point_id in work.points
                if work.position(point_id) != original[point_id]
            }
            self._publish(PointsShifted(updates=dict(result.updates), shift_count=result.shift_count))

        geometry = result.geometry
        logger.info(
            "Built %d rooms and %d hallways (base unit %s, %d shifts, %d unresolved)",
            len(geometry.rooms),
            len(geometry.hallways),
            base_unit,
            result.shift_count,
            len(result.unresolved),
        )
        self._publish(
            GeometryReady(
                rooms=tuple(room.as_dict() for room in geometry.rooms),
                hallways=tuple(hallway.as_dict() for hallway in geometry.hallways),
                base_unit=base_unit,
            )
        )
        self._publish(
            GeometryBuilt(
                base_unit=base_unit,
                room_count=len(geometry.rooms),
                hallway_count=len(geometry.hallways),
                shifts_applied=result.shift_count,
                unresolved=tuple(result.unresolved),
            )
        )
        return result

    def _room_for(self, graph: DungeonGraph, point_id: int, base_unit: float) -> RoomVolume:
        point = graph.points[point_id]
        return room_volume(
            point_id,
            point.pos,
            point.connection_count,
            base_unit,
            self.config,
            role=point_role(graph, point_id),
        )

    def _hallway_for(
        self,
        graph: DungeonGraph,
        from_id: int | None,
        to_id: int,
        base_unit: float,
    ) -> HallwayVolume | None:
        if from_id is None:
            return None
        segment = graph.segment_between(from_id, to_id)
        if segment is None:
            return None
        return hallway_volume(
            segment.id,
            segment.from_id,
            segment.to_id,
            graph.position(segment.from_id),
            graph.position(segment.to_id),
            base_unit,
            self.config,
        )

    def _room_blocked(self, room: RoomVolume) -> bool:
        return bool(self.registry.overlapping(room.aabb, tolerance=self.config.touch_tolerance))

    def _hallway_blocked(self, hallway: HallwayVolume | None) -> bool:
        # A hallway runs through both of its rooms and meets its neighbours'
        # hallways inside them, so only volumes away from its endpoints count.
        if hallway is None:
            return False
        ends = (hallway.from_id, hallway.to_id)
        return bool(
            self.registry.overlapping(
                hallway.aabb,
                tolerance=self.config.touch_tolerance,
                exclude_rooms=ends,
                exclude_incident=ends,
            )
        )

    def _place(
        self,
        graph: DungeonGraph,
        point_id: int,
        came_from: int | None,
        base_unit: float,
        result: ResolveResult,
    ) -> tuple[RoomVolume, HallwayVolume | None]:
        """Size a room and its incoming hallway, shifting until both are clear."""

        room = self._room_for(graph, point_id, base_unit)
        hallway = self._hallway_for(graph, came_from, point_id, base_unit)
        attempts = 0
        while (self._room_blocked(room) or self._hallway_blocked(hallway)) and attempts < self.config.max_shift_attempts:
            dx, dy, dz = hallway_shift(graph, point_id, came_from)
            moved = graph.downstream(point_id, exclude=came_from)
            graph.shift(moved, (dx * base_unit, dy * base_unit, dz * base_unit))
            attempts += 1
            result.shift_count += 1
            room = self._room_for(graph, point_id, base_unit)
            hallway = self._hallway_for(graph, came_from, point_id, base_unit)
        if attempts:
            logger.debug("Point %d moved %d time(s) to clear overlaps", point_id, attempts)

        room.overlapping = self._room_blocked(room)
        if hallway is not None:
            hallway.overlapping = self._hallway_blocked(hallway)
        if room.overlapping or (hallway is not None and hallway.overlapping):
            logger.warning(
                "Point %d still overlaps after %d shift attempts; placing it anyway",
                point_id,
                attempts,
            )
            result.unresolved.append(point_id)
        return room, hallway

    def _publish(self, event: object) -> None:
        if self._bus is not None:
            event.publish(self._bus)  # type: ignore[attr-defined]


def resolve_layout(graph: DungeonGraph, config: GeometryConfig | None = None) -> ResolveResult:
    return BatchResolver(config).resolve(graph)


__all__ = ["BatchResolver", "ResolveResult", "hallway_shift", "point_role", "resolve_layout"]
