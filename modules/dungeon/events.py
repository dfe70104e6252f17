"""Event definitions exchanged by the dungeon generation stages."""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any, ClassVar, Mapping, Protocol, runtime_checkable

from core.events.topics import EventTopic

Vec3 = tuple[float, float, float]

if TYPE_CHECKING:  # pragma: no cover
    from modules.dungeon.spec import DungeonLayout


GENERATE_DUNGEON = EventTopic.GENERATE.value
"""Event topic requesting a dungeon layout to be generated."""

DUNGEON_GENERATED = EventTopic.GENERATED.value
"""Event topic emitted once a :class:`DungeonLayout` is available."""

SEGMENT_PROPOSED = EventTopic.SEGMENT_PROPOSED.value
SEGMENT_RESULT = EventTopic.SEGMENT_RESULT.value


@runtime_checkable
class _PublishesEvents(Protocol):
    """Protocol capturing the subset of the event bus used here."""

    def publish(self, event_type: str, **payload: object) -> None:
        """Publish an event to all subscribers."""


class _Event:
    """Shared ``publish`` helper: every dataclass field becomes a payload key."""

    __slots__ = ()

    topic: ClassVar[str]

    def payload(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}  # type: ignore[arg-type]

    def publish(self, bus: _PublishesEvents) -> None:
        """Convenience helper mirroring ``EventBus.publish``."""

        bus.publish(self.topic, **self.payload())


@dataclass(frozen=True, slots=True)
class GenerateDungeon(_Event):
    """Request a full generation run."""

    start: Vec3 = (0.0, 0.0, 0.0)
    goal: Vec3 = (150.0, 0.0, 150.0)
    mode: str = "batch"
    seed: int | str | None = None
    growth: Mapping[str, Any] | None = None

    topic: ClassVar[str] = GENERATE_DUNGEON


@dataclass(frozen=True, slots=True)
class DungeonGenerated(_Event):
    """Notification carrying the finished layout."""

    layout: "DungeonLayout"

    topic: ClassVar[str] = DUNGEON_GENERATED


@dataclass(frozen=True, slots=True)
class RoomLayout(_Event):
    point_id: int
    position: Vec3
    dims: Vec3
    connections: tuple[int, ...]

    topic: ClassVar[str] = EventTopic.ROOM_LAYOUT.value


@dataclass(frozen=True, slots=True)
class SegmentProposed(_Event):
    """One tentative segment awaiting validation by the resolver.

    Both endpoint positions are absolute and reflect every shift applied so
    far.  Connection counts let the resolver size rooms by connectivity.
    """

    segment_id: int
    from_point_id: int
    to_point_id: int
    from_pos: Vec3
    to_pos: Vec3
    direction: str
    length: int
    is_new_point: bool = True
    from_connections: int = 2
    to_connections: int = 2
    from_role: str | None = None
    to_role: str | None = None
    attempt: int = 0

    topic: ClassVar[str] = SEGMENT_PROPOSED


@dataclass(frozen=True, slots=True)
class SegmentResult(_Event):
    """Resolver verdict for the pending segment."""

    ok: bool
    overlap_amount: float | None = None

    topic: ClassVar[str] = SEGMENT_RESULT


@dataclass(frozen=True, slots=True)
class BranchComplete(_Event):
    branch_index: int
    branch_type: str
    segment_count: int
    abandoned_segments: int = 0

    topic: ClassVar[str] = EventTopic.BRANCH_COMPLETE.value


@dataclass(frozen=True, slots=True)
class PhaseChanged(_Event):
    phase: int
    preset: str | None
    total_phases: int

    topic: ClassVar[str] = EventTopic.PHASE_CHANGED.value


@dataclass(frozen=True, slots=True)
class GenerationComplete(_Event):
    """Totals for replay and auditing."""

    seed: int | str
    total_points: int
    total_segments: int

    topic: ClassVar[str] = EventTopic.GENERATION_COMPLETE.value


@dataclass(frozen=True, slots=True)
class PointsShifted(_Event):
    """Authoritative position corrections made by conflict resolution."""

    updates: Mapping[int, Vec3]
    shift_count: int

    topic: ClassVar[str] = EventTopic.POINTS_SHIFTED.value


@dataclass(frozen=True, slots=True)
class GeometryReady(_Event):
    rooms: tuple[Mapping[str, Any], ...]
    hallways: tuple[Mapping[str, Any], ...]
    base_unit: float

    topic: ClassVar[str] = EventTopic.GEOMETRY.value


@dataclass(frozen=True, slots=True)
class GeometryBuilt(_Event):
    base_unit: float
    room_count: int
    hallway_count: int
    shifts_applied: int
    unresolved: tuple[int, ...] = ()

    topic: ClassVar[str] = EventTopic.GEOMETRY_BUILT.value


@dataclass(frozen=True, slots=True)
class GeometryCleared(_Event):
    topic: ClassVar[str] = EventTopic.GEOMETRY_CLEARED.value


@dataclass(frozen=True, slots=True)
class DoorwayCreated(_Event):
    from_room_id: int
    to_room_id: int
    # Room whose wall the opening is cut into.
    room_id: int
    position: Vec3
    width: float
    height: float
    size: Vec3

    topic: ClassVar[str] = EventTopic.DOORWAY_CREATED.value


@dataclass(frozen=True, slots=True)
class DoorwaysComplete(_Event):
    total_doorways: int

    topic: ClassVar[str] = EventTopic.DOORWAYS_COMPLETE.value


__all__ = [
    "BranchComplete",
    "DUNGEON_GENERATED",
    "DoorwayCreated",
    "DoorwaysComplete",
    "DungeonGenerated",
    "GENERATE_DUNGEON",
    "GenerateDungeon",
    "GenerationComplete",
    "GeometryBuilt",
    "GeometryCleared",
    "GeometryReady",
    "PhaseChanged",
    "PointsShifted",
    "RoomLayout",
    "SEGMENT_PROPOSED",
    "SEGMENT_RESULT",
    "SegmentProposed",
    "SegmentResult",
]
