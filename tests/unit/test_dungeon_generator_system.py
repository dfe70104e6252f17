from __future__ import annotations

from collections import defaultdict

import pytest

from modules.dungeon.events import DungeonGenerated, GenerateDungeon, PointsShifted
from modules.dungeon.settings import DungeonSettings
from modules.dungeon.spec import DungeonLayout
from modules.dungeon.systems.dungeon_generator import DungeonGeneratorSystem, generate_layout


class _DummyBus:
    def __init__(self) -> None:
        self.subscribers = defaultdict(list)
        self.published: list[tuple[str, dict[str, object]]] = []

    def subscribe(self, event_type: str, callback) -> None:
        self.subscribers[event_type].append(callback)

    def publish(self, event_type: str, **payload: object) -> None:
        self.published.append((event_type, payload))
        for callback in self.subscribers.get(event_type, []):
            callback(**payload)


def test_dungeon_generator_system_emits_dungeon_generated_event():
    bus = _DummyBus()
    DungeonGeneratorSystem(event_bus=bus)

    GenerateDungeon(seed="abc123", growth={"max_segments_per_branch": 5, "spur_count": (0, 0)}).publish(bus)

    generated_events = [payload for event, payload in bus.published if event == DungeonGenerated.topic]
    assert generated_events, "Expected a DungeonGenerated event"
    layout = generated_events[-1]["layout"]
    assert isinstance(layout, DungeonLayout)
    assert layout.seed == "abc123"
    assert layout.mode == "batch"
    assert len(layout.graph.branches) == 1
    assert layout.room_count == len(layout.graph.points)


def test_batch_stage_events_share_the_system_bus():
    bus = _DummyBus()
    DungeonGeneratorSystem(event_bus=bus)
    GenerateDungeon(seed=3).publish(bus)

    topics = [event for event, _ in bus.published]
    assert topics[0] == GenerateDungeon.topic
    assert topics[-1] == DungeonGenerated.topic
    shifts = [payload for event, payload in bus.published if event == PointsShifted.topic]
    for payload in shifts:
        assert payload["shift_count"] > 0


def test_incremental_requests_negotiate_privately():
    bus = _DummyBus()
    DungeonGeneratorSystem(event_bus=bus)
    GenerateDungeon(seed="inc", mode="incremental").publish(bus)

    topics = [event for event, _ in bus.published]
    assert topics == [GenerateDungeon.topic, DungeonGenerated.topic]
    layout = bus.published[-1][1]["layout"]
    assert layout.mode == "incremental"
    assert layout.room_count >= 2


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        generate_layout(DungeonSettings(), (0, 0, 0), (150, 0, 150), "teleport")


def test_failed_generation_is_logged_and_raised(caplog):
    bus = _DummyBus()
    DungeonGeneratorSystem(event_bus=bus)
    with pytest.raises(ValueError):
        GenerateDungeon(seed=1, mode="teleport").publish(bus)
    assert "Dungeon generation failed" in caplog.text
    assert all(event != DungeonGenerated.topic for event, _ in bus.published)
