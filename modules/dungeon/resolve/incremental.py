"""Resolver half of the incremental propose/validate handshake."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Mapping, Protocol, Sequence

from modules.dungeon.events import GeometryCleared, SegmentProposed, SegmentResult
from modules.dungeon.gen.geometry import AABB, X, Z, PlacedVolume, VolumeRegistry
from modules.dungeon.gen.graph import DungeonGraph
from modules.dungeon.gen.params import GeometryConfig
from modules.dungeon.resolve.batch import point_role
from modules.dungeon.resolve.sizing import (
    HallwayVolume,
    LayoutGeometry,
    RoomVolume,
    classify_room,
    hallway_volume,
    room_volume,
)

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("segment_id", "from_point_id", "to_point_id", "from_pos", "to_pos")


class _EventBus(Protocol):
    def subscribe(self, event_type: str, callback: Callable[..., None]) -> None:
        ...

    def publish(self, event_type: str, **payload: object) -> None:
        ...


def _as_proposal(message: SegmentProposed | Mapping[str, Any] | None) -> SegmentProposed | None:
    if isinstance(message, SegmentProposed):
        return message
    if not isinstance(message, Mapping):
        return None
    if any(message.get(key) is None for key in _REQUIRED_FIELDS):
        return None
    known = {key: message[key] for key in SegmentProposed.__dataclass_fields__ if key in message}
    known.setdefault("direction", "E")
    known.setdefault("length", 0)
    try:
        known["from_pos"] = tuple(float(v) for v in known["from_pos"])
        known["to_pos"] = tuple(float(v) for v in known["to_pos"])
    except (TypeError, ValueError):
        return None
    if len(known["from_pos"]) != 3 or len(known["to_pos"]) != 3:
        return None
    return SegmentProposed(**known)


class IncrementalResolver:
    """Validate proposed segments one at a time against placed volumes."""

    def __init__(
        self,
        config: GeometryConfig | None = None,
        *,
        base_unit: float | None = None,
        event_bus: _EventBus | None = None,
    ) -> None:
        self.config = config or GeometryConfig()
        self.base_unit = base_unit if base_unit is not None else self.config.base_unit
        self.registry = VolumeRegistry()
        self._rooms: dict[int, RoomVolume] = {}
        self._hallways: dict[int, HallwayVolume] = {}
        self._bus = event_bus
        if event_bus is not None:
            event_bus.subscribe(SegmentProposed.topic, self._on_segment)

    @property
    def geometry(self) -> LayoutGeometry:
        return LayoutGeometry(
            rooms=list(self._rooms.values()),
            hallways=list(self._hallways.values()),
            base_unit=self.base_unit,
        )

    def clear(self) -> None:
        """Forget every placed volume."""

        self.registry.clear()
        self._rooms.clear()
        self._hallways.clear()
        logger.debug("Incremental resolver cleared")
        if self._bus is not None:
            GeometryCleared().publish(self._bus)

    def _on_segment(self, **payload: Any) -> None:
        self.handle_segment(payload)

    def handle_segment(self, message: SegmentProposed | Mapping[str, Any] | None) -> SegmentResult | None:
        """Check one proposal and reply; malformed input produces no reply."""

        proposal = _as_proposal(message)
        if proposal is None:
            logger.warning("Ignoring malformed segment proposal: %r", message)
            return None

        from_id, to_id = proposal.from_point_id, proposal.to_point_id
        if from_id in self._rooms:
            self._refresh_room(from_id, proposal.from_connections, proposal.from_role)
        else:
            self._build_room(from_id, proposal.from_pos, proposal.from_connections, proposal.from_role)

        candidate = room_volume(
            to_id,
            proposal.to_pos,
            proposal.to_connections,
            self.base_unit,
            self.config,
            role=proposal.to_role,
        )
        hallway = hallway_volume(
            proposal.segment_id,
            from_id,
            to_id,
            proposal.from_pos,
            proposal.to_pos,
            self.base_unit,
            self.config,
        )
        amounts = [
            amount
            for amount in (
                self.overlap_amount(candidate, exclude_room=from_id),
                self._stacking_overlap(candidate, self._rooms[from_id], proposal),
                self._hallway_overlap(hallway),
            )
            if amount is not None
        ]
        if amounts:
            logger.debug(
                "Segment %d rejected: room %d or its hallway overlaps by %.2f",
                proposal.segment_id,
                to_id,
                max(amounts),
            )
            return self._reply(SegmentResult(ok=False, overlap_amount=max(amounts)))

        if to_id not in self._rooms:
            self._register_room(candidate)
        self._register_hallway(hallway)
        return self._reply(SegmentResult(ok=True, overlap_amount=0.0))

    def overlap_amount(self, candidate: RoomVolume, *, exclude_room: int | None = None) -> float | None:
        """Largest horizontal push needed against any overlapping volume.

        Each hit contributes the smaller of its X and Z overlaps; ``None``
        means the candidate is clear.
        """

        hits = self.registry.overlapping(
            candidate.aabb,
            tolerance=self.config.touch_tolerance,
            exclude_rooms=() if exclude_room is None else (exclude_room,),
        )
        return _horizontal_push(candidate.aabb, hits)

    def refresh_rooms(self, graph: DungeonGraph) -> None:
        """Bring every placed room up to date with the finished graph."""

        for point_id in list(self._rooms):
            point = graph.points.get(point_id)
            if point is not None:
                self._refresh_room(point_id, point.connection_count, point_role(graph, point_id))

    def _stacking_overlap(self, candidate: RoomVolume, from_room: RoomVolume, proposal: SegmentProposed) -> float | None:
        # Neighbours sit at least two units apart horizontally, so only a
        # vertical segment can bury the new room inside the one it grows from.
        if not candidate.aabb.overlaps(from_room.aabb, self.config.touch_tolerance):
            return None
        delta = [proposal.to_pos[i] - proposal.from_pos[i] for i in range(3)]
        axis = max(range(3), key=lambda i: abs(delta[i]))
        return candidate.aabb.overlap_extent(from_room.aabb, axis)

    def _hallway_overlap(self, hallway: HallwayVolume | None) -> float | None:
        if hallway is None:
            return None
        ends = (hallway.from_id, hallway.to_id)
        hits = self.registry.overlapping(
            hallway.aabb,
            tolerance=self.config.touch_tolerance,
            exclude_rooms=ends,
            exclude_incident=ends,
        )
        return _horizontal_push(hallway.aabb, hits)

    def _reply(self, result: SegmentResult) -> SegmentResult:
        if self._bus is not None:
            result.publish(self._bus)
        return result

    def _build_room(self, point_id: int, pos, connections: int, role: str | None) -> RoomVolume:
        room = room_volume(point_id, pos, connections, self.base_unit, self.config, role=role)
        self._register_room(room)
        return room

    def _register_room(self, room: RoomVolume) -> None:
        self._rooms[room.point_id] = room
        self.registry.add(PlacedVolume(room.aabb, room.point_id, "room"))

    def _refresh_room(self, point_id: int, connections: int, role: str | None) -> None:
        """Resize a placed room whose connection count or role changed.

        The larger box is only taken when it is clear of everything but the
        room's own hallways; otherwise the room keeps its validated size and
        just reports the new type and count.
        """

        room = self._rooms[point_id]
        if classify_room(connections, role) == room.type and connections == room.connection_count:
            return
        updated = room_volume(point_id, room.pos, connections, self.base_unit, self.config, role=role)
        if updated.size != room.size:
            blocked = self.registry.overlapping(
                updated.aabb,
                tolerance=self.config.touch_tolerance,
                exclude_rooms=(point_id,),
                exclude_incident=(point_id,),
            )
            if blocked:
                logger.debug("Room %d keeps its %s size; a %s would overlap", point_id, room.type, updated.type)
                updated = replace(room, type=updated.type, connection_count=connections)
            else:
                # Stale entries for the same owner stay in the registry;
                # lookups skip them together with the current one.
                self.registry.add(PlacedVolume(updated.aabb, point_id, "room"))
        self._rooms[point_id] = updated

    def _register_hallway(self, hallway: HallwayVolume | None) -> None:
        if hallway is None or hallway.segment_id in self._hallways:
            return
        self._hallways[hallway.segment_id] = hallway
        self.registry.add(
            PlacedVolume(
                hallway.aabb,
                hallway.segment_id,
                "hall",
                incident=(hallway.from_id, hallway.to_id),
            )
        )


def _horizontal_push(aabb: AABB, hits: Sequence[PlacedVolume]) -> float | None:
    if not hits:
        return None
    return max(min(aabb.overlap_extent(hit.aabb, X), aabb.overlap_extent(hit.aabb, Z)) for hit in hits)


__all__ = ["IncrementalResolver"]
