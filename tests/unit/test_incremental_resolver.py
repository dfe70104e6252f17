from __future__ import annotations

import logging

import pytest

from modules.dungeon.events import GeometryCleared, SegmentProposed, SegmentResult
from modules.dungeon.gen.geometry import Direction
from modules.dungeon.gen.graph import DungeonGraph
from modules.dungeon.gen.incremental import IncrementalGrowthEngine, NegotiationState
from modules.dungeon.gen.params import GeometryConfig, IncrementalConfig
from modules.dungeon.resolve.incremental import IncrementalResolver
from modules.dungeon.resolve.sizing import room_volume
from tests.helpers.bus import LoggedEventBus


_UNIFORM = GeometryConfig(room_scale=1, junction_scale=1, corridor_scale=1)


def _proposal(segment_id, from_id, to_id, from_pos, to_pos, direction="E", **extra) -> SegmentProposed:
    values = dict(
        segment_id=segment_id,
        from_point_id=from_id,
        to_point_id=to_id,
        from_pos=from_pos,
        to_pos=to_pos,
        direction=direction,
        length=3,
        from_connections=1,
        to_connections=1,
    )
    values.update(extra)
    return SegmentProposed(**values)


def _resolver_with_room_ahead() -> IncrementalResolver:
    """Room 2 sits at x=30, reached by a hallway from the south."""

    resolver = IncrementalResolver(_UNIFORM, base_unit=10)
    reply = resolver.handle_segment(_proposal(1, 1, 2, (30, 0, -30), (30, 0, 0), "N"))
    assert reply == SegmentResult(ok=True, overlap_amount=0.0)
    return resolver


def test_overlap_amount_and_shift_by_amount_plus_unit_clears() -> None:
    resolver = _resolver_with_room_ahead()
    candidate = room_volume(6, (26, 0, 0), 1, 10, _UNIFORM)

    amount = resolver.overlap_amount(candidate, exclude_room=5)
    assert amount == pytest.approx(6.0)

    shifted = room_volume(6, (26 + amount + 10, 0, 0), 1, 10, _UNIFORM)
    assert resolver.overlap_amount(shifted, exclude_room=5) is None


def test_rejected_proposal_is_accepted_once_clear() -> None:
    resolver = _resolver_with_room_ahead()

    rejected = resolver.handle_segment(_proposal(2, 5, 6, (100, 0, 0), (36, 0, 0), "W"))
    assert not rejected.ok
    assert rejected.overlap_amount == pytest.approx(4.0)
    assert resolver.geometry.room(6) is None

    accepted = resolver.handle_segment(_proposal(2, 5, 6, (100, 0, 0), (46, 0, 0), "W", attempt=1))
    assert accepted.ok
    geometry = resolver.geometry
    assert sorted(room.point_id for room in geometry.rooms) == [1, 2, 5, 6]
    assert sorted(hall.segment_id for hall in geometry.hallways) == [1, 2]


def test_hallway_through_a_placed_room_is_rejected() -> None:
    resolver = _resolver_with_room_ahead()

    reply = resolver.handle_segment(_proposal(2, 5, 6, (-100, 0, 0), (100, 0, 0)))

    assert not reply.ok
    assert reply.overlap_amount == pytest.approx(10.0)
    assert resolver.geometry.room(6) is None
    assert [hall.segment_id for hall in resolver.geometry.hallways] == [1]


def test_room_stacked_on_its_from_room_is_rejected() -> None:
    resolver = IncrementalResolver(_UNIFORM, base_unit=10)

    buried = resolver.handle_segment(_proposal(1, 1, 2, (0, 0, 0), (0, 10, 0), "U"))
    assert not buried.ok
    assert buried.overlap_amount == pytest.approx(10.0)

    above = resolver.handle_segment(_proposal(1, 1, 2, (0, 0, 0), (0, 20, 0), "U", attempt=1))
    assert above.ok


def test_from_room_is_never_counted_against_its_own_segment() -> None:
    resolver = IncrementalResolver(_UNIFORM, base_unit=10)
    # rooms touch face to face across a single unit
    reply = resolver.handle_segment(_proposal(1, 1, 2, (0, 0, 0), (10, 0, 0)))
    assert reply.ok


@pytest.mark.parametrize(
    "message",
    [
        None,
        {"segment_id": 1},
        {"segment_id": 1, "from_point_id": 1, "to_point_id": 2, "from_pos": (0, 0), "to_pos": (1, 0, 0)},
        {"segment_id": 1, "from_point_id": 1, "to_point_id": 2, "from_pos": "abc", "to_pos": (1, 0, 0)},
    ],
)
def test_malformed_messages_get_no_reply(message, caplog) -> None:
    caplog.set_level(logging.WARNING)
    bus = LoggedEventBus()
    resolver = IncrementalResolver(event_bus=bus)

    assert resolver.handle_segment(message) is None
    assert bus.events(SegmentResult.topic) == []
    assert "malformed" in caplog.text


def test_bus_proposals_receive_bus_replies() -> None:
    bus = LoggedEventBus()
    IncrementalResolver(_UNIFORM, base_unit=10, event_bus=bus)

    _proposal(1, 1, 2, (0, 0, 0), (30, 0, 0)).publish(bus)

    assert bus.events(SegmentResult.topic) == [{"ok": True, "overlap_amount": 0.0}]


def test_clear_forgets_volumes() -> None:
    bus = LoggedEventBus()
    resolver = IncrementalResolver(_UNIFORM, base_unit=10, event_bus=bus)
    resolver.handle_segment(_proposal(1, 1, 2, (0, 0, 0), (30, 0, 0)))
    resolver.clear()

    assert resolver.geometry.rooms == []
    assert len(resolver.registry) == 0
    assert bus.topics()[-1] == GeometryCleared.topic


def test_negotiation_pushes_past_an_obstacle() -> None:
    bus = LoggedEventBus()
    resolver = IncrementalResolver(event_bus=bus)
    # A room just north of the path at x=45, with its hallway leading away.
    resolver.handle_segment(_proposal(900, 900, 901, (45, 0, 20), (45, 0, 300), "N", to_connections=2, from_connections=2))

    engine = IncrementalGrowthEngine(
        IncrementalConfig(seed="wall", spur_count=(0, 0), max_segments_per_branch=1),
        event_bus=bus,
    )
    engine.generate((0, 0, 0), (150, 0, 0))

    assert engine.state is NegotiationState.DONE
    assert engine.abandoned_segments == []
    goal = engine.graph.goal_ids[0]
    assert engine.graph.position(goal)[0] > 67.5
    retries = [p for p in bus.events(SegmentProposed.topic) if p["attempt"] > 0]
    assert retries
    assert all(p["segment_id"] == 1 for p in retries)


def test_from_room_grows_when_a_spur_makes_it_a_junction() -> None:
    resolver = IncrementalResolver(GeometryConfig(), base_unit=10)
    resolver.handle_segment(_proposal(1, 1, 2, (0, 0, 0), (30, 0, 0)))
    assert resolver.geometry.room(2).type == "deadend"

    resolver.handle_segment(_proposal(2, 2, 3, (30, 0, 0), (30, 0, 30), "N", from_connections=2))
    assert resolver.geometry.room(2).type == "corridor"

    resolver.handle_segment(_proposal(3, 2, 4, (30, 0, 0), (30, 0, -30), "S", from_connections=3))
    room = resolver.geometry.room(2)
    assert (room.type, room.connection_count, room.size) == ("junction", 3, (20, 30, 20))


def test_blocked_room_keeps_its_size_but_reports_new_type() -> None:
    resolver = IncrementalResolver(GeometryConfig(), base_unit=10)
    resolver.handle_segment(_proposal(1, 1, 2, (0, 0, 0), (30, 0, 0)))
    resolver.handle_segment(_proposal(2, 2, 3, (30, 0, 0), (30, 0, 30), "N", from_connections=2))
    # Neighbour 17 units east: fine for a corridor, too close for a junction.
    assert resolver.handle_segment(_proposal(9, 7, 8, (47, 0, 0), (47, 0, 60), "N")).ok

    assert resolver.handle_segment(_proposal(3, 2, 4, (30, 0, 0), (30, 0, -30), "S", from_connections=3)).ok
    room = resolver.geometry.room(2)
    assert (room.type, room.connection_count, room.size) == ("junction", 3, (10, 16, 10))


def test_refresh_rooms_applies_final_counts_and_roles() -> None:
    resolver = IncrementalResolver(GeometryConfig(), base_unit=10)
    resolver.handle_segment(_proposal(1, 1, 2, (0, 0, 0), (30, 0, 0)))
    graph = DungeonGraph()
    first = graph.add_point((0, 0, 0))
    second = graph.add_point((30, 0, 0))
    third = graph.add_point((30, 0, 30))
    graph.connect(first.id, second.id, Direction.EAST, 3)
    graph.connect(second.id, third.id, Direction.NORTH, 3)
    graph.goal_ids.append(second.id)

    resolver.refresh_rooms(graph)

    assert resolver.geometry.room(1).type == "start"
    room = resolver.geometry.room(2)
    assert (room.type, room.connection_count, room.size) == ("goal", 2, (20, 30, 20))
    assert resolver.geometry.room(3) is None
