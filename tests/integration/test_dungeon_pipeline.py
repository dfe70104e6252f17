"""End-to-end checks over both generation pipelines."""
from __future__ import annotations

import pytest

from modules.dungeon.events import (
    DoorwaysComplete,
    GenerationComplete,
    GeometryBuilt,
    SegmentProposed,
    SegmentResult,
)
from modules.dungeon.gen.presets import preset_names
from modules.dungeon.settings import DungeonSettings
from modules.dungeon.systems.dungeon_generator import generate_dungeon, run_incremental
from modules.dungeon.validate import LayoutValidator
from tests.helpers.bus import LoggedEventBus


_SEEDS = ["abc123", 1, 2024, "mossy-halls"]


@pytest.mark.parametrize("seed", _SEEDS)
def test_batch_pipeline_produces_a_valid_tree(seed) -> None:
    bus = LoggedEventBus()
    layout = generate_dungeon(DungeonSettings().with_overrides(seed=seed), event_bus=bus)
    graph = layout.graph

    validator = LayoutValidator(graph, layout.geometry)
    assert validator.orthogonality_problems() == []
    assert validator.tree_problems() == []
    assert validator.base_unit_problems(layout.geometry.base_unit) == []
    assert layout.room_count == len(graph.points)
    assert layout.hallway_count == len(graph.segments)
    assert layout.unresolved == []
    assert validator.overlap_problems() == []
    assert layout.doorways
    assert all(door.room_id in (door.from_room_id, door.to_room_id) for door in layout.doorways)

    (built,) = bus.events(GeometryBuilt.topic)
    assert built["room_count"] == layout.room_count
    (doors,) = bus.events(DoorwaysComplete.topic)
    assert doors["total_doorways"] == len(layout.doorways)


@pytest.mark.parametrize("preset", preset_names())
def test_every_preset_generates(preset) -> None:
    layout = generate_dungeon(DungeonSettings().with_overrides(seed="preset", preset=preset))
    assert layout.graph.segments
    assert LayoutValidator(layout.graph).orthogonality_problems() == []


@pytest.mark.parametrize("seed", _SEEDS)
def test_incremental_pipeline_terminates_without_overlaps(seed) -> None:
    bus = LoggedEventBus()
    layout = run_incremental(DungeonSettings().with_overrides(seed=seed), event_bus=bus)

    proposals = bus.events(SegmentProposed.topic)
    replies = bus.events(SegmentResult.topic)
    assert len(proposals) == len(replies)
    assert bus.events(GenerationComplete.topic)

    validator = LayoutValidator(layout.graph, layout.geometry)
    assert validator.orthogonality_problems() == []
    assert validator.tree_problems() == []
    assert validator.overlap_problems() == []
    assert layout.doorways
    (doors,) = bus.events(DoorwaysComplete.topic)
    assert doors["total_doorways"] == len(layout.doorways)
    assert {h.segment_id for h in layout.geometry.hallways} == set(layout.graph.segments)


def test_batch_doorways_join_connected_rooms() -> None:
    layout = generate_dungeon(DungeonSettings().with_overrides(seed="doors", growth={"spur_count": (0, 0)}))
    pairs = {(s.from_id, s.to_id) for s in layout.graph.segments.values()}
    for door in layout.doorways:
        assert (door.from_room_id, door.to_room_id) in pairs


def test_incremental_handshake_does_not_recurse_per_segment() -> None:
    bus = LoggedEventBus()
    layout = run_incremental(DungeonSettings().with_overrides(seed="depth"), event_bus=bus)
    assert len(layout.graph.segments) > 4
    assert bus.depth == 0
    assert bus.peak_depth <= 4
