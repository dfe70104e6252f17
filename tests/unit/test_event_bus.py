from __future__ import annotations

from core.event_bus import EventBus
from core.events.topics import EventTopic


def test_enum_and_string_topics_reach_the_same_subscribers() -> None:
    bus = EventBus()
    seen: list[dict] = []

    def handler(**payload) -> None:
        seen.append(payload)

    bus.subscribe(EventTopic.GENERATED, handler)
    bus.subscribe("dungeon.generated", handler)
    bus.publish("dungeon.generated", {"seed": 1})
    bus.publish(EventTopic.GENERATED, {"seed": 2})

    assert seen == [{"seed": 1}, {"seed": 2}]


def test_keywords_override_mapping_payload() -> None:
    bus = EventBus()
    seen: list[dict] = []
    bus.subscribe("dungeon.segment", lambda **payload: seen.append(payload))

    bus.publish("dungeon.segment", {"ok": False, "amount": 3}, ok=True)

    assert seen == [{"ok": True, "amount": 3}]


def test_publishing_without_subscribers_is_a_no_op() -> None:
    bus = EventBus()
    bus.publish("dungeon.unknown", value=1)
    assert bus.peak_depth == 0


def test_peak_depth_counts_nested_deliveries() -> None:
    bus = EventBus()
    order: list[str] = []

    def on_proposal(**_) -> None:
        order.append("proposal")
        bus.publish("dungeon.segment_result", ok=True)
        order.append("proposal done")

    bus.subscribe("dungeon.segment", on_proposal)
    bus.subscribe("dungeon.segment_result", lambda **_: order.append("result"))

    bus.publish("dungeon.segment")

    assert order == ["proposal", "result", "proposal done"]
    assert bus.peak_depth == 2
    assert bus.depth == 0
