from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Protocol, Sequence

from core.event_bus import EventBus, Topic
from modules.dungeon.doorways import DoorwayPlacer
from modules.dungeon.events import DungeonGenerated, GenerateDungeon
from modules.dungeon.gen.growth import GrowthEngine
from modules.dungeon.gen.incremental import IncrementalGrowthEngine, NegotiationState
from modules.dungeon.resolve.batch import BatchResolver
from modules.dungeon.resolve.incremental import IncrementalResolver
from modules.dungeon.settings import DungeonSettings
from modules.dungeon.spec import DungeonLayout


logger = logging.getLogger(__name__)

GENERATION_MODES = ("batch", "incremental")


class _EventBus(Protocol):
    def subscribe(self, event_type: Topic, callback: Callable[..., None]) -> None:
        ...

    def publish(
        self, event_type: Topic, payload: Mapping[str, object] | None = None, /, **kwargs: object
    ) -> None:
        ...


def generate_dungeon(
    settings: DungeonSettings | None = None,
    start: Sequence[float] = (0.0, 0.0, 0.0),
    goal: Sequence[float] | None = (150.0, 0.0, 150.0),
    *,
    event_bus: _EventBus | None = None,
) -> DungeonLayout:
    """Batch pipeline: grow, resolve overlaps, then cut doorways."""

    settings = settings or DungeonSettings()
    engine = GrowthEngine(settings.growth, event_bus=event_bus)
    growth = engine.generate(start, goal)

    resolved = BatchResolver(settings.geometry, event_bus=event_bus).resolve(growth.graph)
    if resolved.updates:
        engine.apply_point_updates(resolved.updates)

    doorways = DoorwayPlacer(settings.doorways, event_bus=event_bus).process(resolved.geometry)
    return DungeonLayout(
        seed=growth.seed,
        graph=engine.graph,
        geometry=resolved.geometry,
        doorways=doorways,
        mode="batch",
        unresolved=list(resolved.unresolved),
        degenerate=growth.degenerate,
    )


def run_incremental(
    settings: DungeonSettings | None = None,
    start: Sequence[float] = (0.0, 0.0, 0.0),
    goal: Sequence[float] = (150.0, 0.0, 150.0),
    *,
    event_bus: EventBus | None = None,
) -> DungeonLayout:
    """Incremental pipeline: negotiate every segment over an event bus."""

    settings = settings or DungeonSettings()
    bus = event_bus if event_bus is not None else EventBus()
    resolver = IncrementalResolver(
        settings.geometry,
        base_unit=settings.incremental.base_unit,
        event_bus=bus,
    )
    engine = IncrementalGrowthEngine(settings.incremental, event_bus=bus)
    engine.generate(start, goal)
    if engine.state is not NegotiationState.DONE:
        raise RuntimeError(f"incremental negotiation stalled in state {engine.state.value}")

    growth = engine.result()
    resolver.refresh_rooms(growth.graph)
    geometry = resolver.geometry
    doorways = DoorwayPlacer(settings.doorways, event_bus=bus).process(geometry)
    return DungeonLayout(
        seed=growth.seed,
        graph=growth.graph,
        geometry=geometry,
        doorways=doorways,
        mode="incremental",
        degenerate=growth.degenerate,
    )


def generate_layout(
    settings: DungeonSettings,
    start: Sequence[float],
    goal: Sequence[float],
    mode: str = "batch",
    *,
    event_bus: Any = None,
) -> DungeonLayout:
    if mode not in GENERATION_MODES:
        raise ValueError(f"unknown generation mode '{mode}'")
    if mode == "incremental":
        return run_incremental(settings, start, goal, event_bus=event_bus)
    return generate_dungeon(settings, start, goal, event_bus=event_bus)


class DungeonGeneratorSystem:
    """Listen for :class:`GenerateDungeon` events and publish :class:`DungeonGenerated`."""

    def __init__(self, *, event_bus: _EventBus, settings: DungeonSettings | None = None) -> None:
        self._bus = event_bus
        self._settings = settings or DungeonSettings()
        self._bus.subscribe(GenerateDungeon.topic, self._on_generate_requested)

    def _on_generate_requested(
        self,
        *,
        start: Sequence[float] = (0.0, 0.0, 0.0),
        goal: Sequence[float] = (150.0, 0.0, 150.0),
        mode: str = "batch",
        seed: int | str | None = None,
        growth: Mapping[str, Any] | None = None,
        **_: object,
    ) -> None:
        settings = self._settings.with_overrides(seed=seed, growth=growth)
        try:
            # Incremental sessions negotiate on a private bus.
            layout = generate_layout(
                settings,
                start,
                goal,
                mode,
                event_bus=self._bus if mode == "batch" else None,
            )
        except Exception:
            logger.exception("Dungeon generation failed: mode=%s seed=%s", mode, seed)
            raise
        DungeonGenerated(layout=layout).publish(self._bus)


__all__ = [
    "DungeonGeneratorSystem",
    "GENERATION_MODES",
    "generate_dungeon",
    "generate_layout",
    "run_incremental",
]
