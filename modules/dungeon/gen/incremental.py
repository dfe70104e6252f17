"""Incremental graph growth negotiated segment by segment with a resolver.

The engine plans each branch as a list of recipes (direction plus length in
base units), assigns tentative positions by walking the recipes, then offers
the segments one at a time.  Exactly one proposal is outstanding at any
moment; the resolver answers through :meth:`IncrementalGrowthEngine.segment_result`
either accepting it, or rejecting it with an overlap amount.  On rejection the
not-yet-validated part of the tree beyond the segment is pushed further along
the segment's own axis and the same segment is offered again.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Protocol, Sequence

from modules.dungeon.events import (
    BranchComplete,
    GenerationComplete,
    SegmentProposed,
    SegmentResult,
)
from modules.dungeon.gen.geometry import ALL_DIRECTIONS, Direction, Vec3
from modules.dungeon.gen.graph import Branch, DungeonGraph, Segment
from modules.dungeon.gen.growth import GrowthResult
from modules.dungeon.gen.params import IncrementalConfig
from modules.dungeon.gen.random import XorShiftRandom, generate_seed, rand_int

logger = logging.getLogger(__name__)


class _EventBus(Protocol):
    def subscribe(self, event_type: str, callback: Callable[..., None]) -> None:
        ...

    def publish(self, event_type: str, **payload: object) -> None:
        ...


class NegotiationState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting_for_response"
    DONE = "done"


class IncrementalGrowthEngine:
    """Growth engine half of the propose/validate handshake."""

    def __init__(self, config: IncrementalConfig | None = None, *, event_bus: _EventBus | None = None) -> None:
        self.config = replace(config) if config is not None else IncrementalConfig()
        self._bus = event_bus
        self.state = NegotiationState.IDLE
        self.graph = DungeonGraph()
        self.seed: int | str = ""
        self.pending: SegmentProposed | None = None
        self.abandoned_segments: list[int] = []
        self._rng = XorShiftRandom(1)
        self._unplaced: set[int] = set()
        self._validated: set[int] = set()
        self._branch_index = 0
        self._cursor = 0
        self._retries = 0
        self._outbox: deque[SegmentProposed] = deque()
        self._emitting = False
        if event_bus is not None:
            event_bus.subscribe(SegmentResult.topic, self._on_segment_result)

    @property
    def waiting_for_response(self) -> bool:
        return self.state is NegotiationState.WAITING

    def configure(self, **overrides: Any) -> IncrementalConfig:
        self.config.configure(**overrides)
        return self.config

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------
    def generate(self, start: Sequence[float], goal: Sequence[float]) -> SegmentProposed | None:
        """Start a session; returns (and publishes) the first proposal."""

        self.seed = self.config.seed if self.config.seed is not None else generate_seed()
        self._rng = XorShiftRandom(self.seed)
        self.graph = DungeonGraph()
        self.graph.base_unit = self.config.base_unit
        self.pending = None
        self.abandoned_segments = []
        self._unplaced = set()
        self._validated = set()
        self._branch_index = 0
        self._cursor = 0
        self._retries = 0

        root = self.graph.add_point(start)
        self._validated.add(root.id)
        main = self._plan_main_branch(root.id, tuple(float(v) for v in goal))  # type: ignore[arg-type]
        self.calculate_all_positions()
        logger.debug("Incremental session %s planned %d main segments", self.seed, len(main.segment_ids))
        if not main.segment_ids:
            logger.warning("Main branch has no segments (start already at goal, seed %s)", self.seed)
        return self._offer_branch_start()

    def segment_result(self, ok: bool, overlap_amount: float | None = None) -> SegmentProposed | None:
        """Handle the resolver's verdict; returns the next proposal, if any."""

        if not self.waiting_for_response or self.pending is None:
            logger.warning("Segment result received with no segment pending; ignoring")
            return None
        if ok:
            return self._accept()
        return self._reject(overlap_amount)

    def _on_segment_result(self, *, ok: bool, overlap_amount: float | None = None, **_: object) -> None:
        self.segment_result(ok, overlap_amount)

    def result(self) -> GrowthResult:
        main = self.graph.branches[0] if self.graph.branches else None
        return GrowthResult(
            seed=self.seed,
            graph=self.graph,
            degenerate=main is None or not main.segment_ids,
        )

    # ------------------------------------------------------------------
    # Recipes
    # ------------------------------------------------------------------
    def _recipe(self, branch: Branch, from_id: int, direction: Direction, length: int) -> Segment:
        point = self.graph.add_point((0.0, 0.0, 0.0))
        self._unplaced.add(point.id)
        segment = self.graph.connect(from_id, point.id, direction, length)
        branch.segment_ids.append(segment.id)
        return segment

    def _plan_main_branch(self, start_id: int, goal: Vec3) -> Branch:
        branch = self.graph.start_branch("main", start_id)
        unit = self.config.base_unit
        current_id = start_id
        current = list(self.graph.position(start_id))
        last: Direction | None = None

        for _ in range(self.config.max_segments_per_branch):
            delta = [goal[i] - current[i] for i in range(3)]
            if all(abs(d) < unit for d in delta):
                break
            preferred = [
                Direction.from_axis(axis, 1 if delta[axis] > 0 else -1)
                for axis in (0, 2, 1)
                if abs(delta[axis]) >= unit
            ]
            self._rng.shuffle(preferred)
            direction = next((d for d in preferred if last is None or d is not last.opposite), None)
            if direction is None:
                direction = self._rng.random_choice(self._non_reversing(last))
            if direction is None:
                break
            length = rand_int(self._rng, *self.config.segment_length)
            segment = self._recipe(branch, current_id, direction, length)
            for axis, component in enumerate(direction.vector):
                current[axis] += component * length * unit
            current_id = segment.to_id
            last = direction

        if branch.segment_ids:
            self.graph.goal_ids.append(current_id)
        return branch

    def _plan_spur(self, root_id: int) -> Branch | None:
        count = rand_int(self._rng, *self.config.spur_segments)
        if count <= 0:
            return None
        branch = self.graph.start_branch("spur", root_id)
        used = self._used_directions(root_id)
        current_id = root_id
        last: Direction | None = None
        for index in range(count):
            options = self._non_reversing(last)
            if index == 0:
                options = [d for d in options if d not in used] or options
            direction = self._rng.random_choice(options)
            if direction is None:
                break
            length = rand_int(self._rng, *self.config.spur_segment_length)
            current_id = self._recipe(branch, current_id, direction, length).to_id
            last = direction
        return branch

    def _plan_spurs(self) -> None:
        budget = rand_int(self._rng, *self.config.spur_count)
        candidates = self.graph.junction_candidates()
        planned = 0
        while planned < budget and candidates:
            root_id = candidates.pop(self._rng.random_int(0, len(candidates) - 1))
            if self._plan_spur(root_id) is not None:
                planned += 1
        self.calculate_all_positions()
        logger.debug("Planned %d spurs (budget %d)", planned, budget)

    def _used_directions(self, point_id: int) -> set[Direction]:
        used: set[Direction] = set()
        for segment in self.graph.segments.values():
            if segment.from_id == point_id:
                used.add(segment.direction)
            elif segment.to_id == point_id:
                used.add(segment.direction.opposite)
        return used

    @staticmethod
    def _non_reversing(last: Direction | None) -> list[Direction]:
        return [d for d in ALL_DIRECTIONS if last is None or d is not last.opposite]

    def calculate_all_positions(self) -> None:
        """Walk the recipes once, giving every unplaced point a position.

        Points that already have a position keep it, so shifts applied while
        negotiating earlier branches survive planning new ones.
        """

        unit = self.config.base_unit
        for branch in self.graph.branches:
            for segment_id in branch.segment_ids:
                segment = self.graph.segments[segment_id]
                if segment.to_id not in self._unplaced:
                    continue
                x, y, z = self.graph.position(segment.from_id)
                dx, dy, dz = segment.direction.vector
                distance = segment.length * unit
                self.graph.points[segment.to_id].pos[:] = [
                    x + dx * distance,
                    y + dy * distance,
                    z + dz * distance,
                ]
                self._unplaced.discard(segment.to_id)

    # ------------------------------------------------------------------
    # Handshake
    # ------------------------------------------------------------------
    def _current_branch(self) -> Branch | None:
        if self._branch_index < len(self.graph.branches):
            return self.graph.branches[self._branch_index]
        return None

    def _offer_branch_start(self) -> SegmentProposed | None:
        while True:
            branch = self._current_branch()
            if branch is None:
                self._complete()
                return None
            if branch.segment_ids:
                self._cursor = 0
                return self._offer(attempt=0)
            self._finish_branch(branch, abandoned=0)

    def _offer(self, attempt: int) -> SegmentProposed:
        branch = self._current_branch()
        assert branch is not None
        segment = self.graph.segments[branch.segment_ids[self._cursor]]
        from_point = self.graph.points[segment.from_id]
        to_point = self.graph.points[segment.to_id]
        proposal = SegmentProposed(
            segment_id=segment.id,
            from_point_id=segment.from_id,
            to_point_id=segment.to_id,
            from_pos=self.graph.position(segment.from_id),
            to_pos=self.graph.position(segment.to_id),
            direction=segment.direction.value,
            length=segment.length,
            is_new_point=segment.to_id not in self._validated,
            from_connections=from_point.connection_count,
            to_connections=to_point.connection_count,
            from_role=self._role(segment.from_id),
            to_role=self._role(segment.to_id),
            attempt=attempt,
        )
        self.pending = proposal
        self.state = NegotiationState.WAITING
        logger.debug("Proposing segment %d (attempt %d)", segment.id, attempt)
        self._emit(proposal)
        return proposal

    def _role(self, point_id: int) -> str | None:
        if point_id == self.graph.start_id:
            return "start"
        if point_id in self.graph.goal_ids:
            return "goal"
        return None

    def _emit(self, proposal: SegmentProposed) -> None:
        # Replies arrive re-entrantly when the resolver answers on the bus;
        # queue proposals so the call stack stays flat.
        if self._bus is None:
            return
        self._outbox.append(proposal)
        if self._emitting:
            return
        self._emitting = True
        try:
            while self._outbox:
                self._outbox.popleft().publish(self._bus)
        finally:
            self._emitting = False

    def _accept(self) -> SegmentProposed | None:
        assert self.pending is not None
        self._validated.add(self.pending.to_point_id)
        self._retries = 0
        self.pending = None
        branch = self._current_branch()
        assert branch is not None
        self._cursor += 1
        if self._cursor < len(branch.segment_ids):
            return self._offer(attempt=0)
        return self._end_branch(branch, abandoned=0)

    def _reject(self, overlap_amount: float | None) -> SegmentProposed | None:
        pending = self.pending
        assert pending is not None
        self._retries += 1
        if self._retries > self.config.max_retries_per_segment:
            return self._abandon_rest_of_branch()

        unit = self.config.base_unit
        amount = (overlap_amount if overlap_amount is not None else unit) + unit
        direction = Direction(pending.direction)
        offset = tuple(component * amount for component in direction.vector)
        moved = self.graph.downstream(pending.to_point_id, exclude=pending.from_point_id)
        self.graph.shift(moved, offset)
        logger.debug(
            "Segment %d rejected; shifted %d points by %s",
            pending.segment_id,
            len(moved),
            offset,
        )
        return self._offer(attempt=self._retries)

    def _abandon_rest_of_branch(self) -> SegmentProposed | None:
        branch = self._current_branch()
        pending = self.pending
        assert branch is not None and pending is not None
        dropped = branch.segment_ids[self._cursor:]
        for segment_id in dropped:
            self.graph.detach_segment(segment_id)
        del branch.segment_ids[self._cursor:]
        self.abandoned_segments.extend(dropped)
        logger.warning(
            "Segment %d still rejected after %d retries; abandoning %d segment(s) of %s branch %d",
            pending.segment_id,
            self.config.max_retries_per_segment,
            len(dropped),
            branch.kind,
            branch.index,
        )
        if branch.kind == "main":
            self.graph.goal_ids = [] if pending.from_point_id == self.graph.start_id else [pending.from_point_id]
        self._retries = 0
        self.pending = None
        return self._end_branch(branch, abandoned=len(dropped))

    def _end_branch(self, branch: Branch, *, abandoned: int) -> SegmentProposed | None:
        self._finish_branch(branch, abandoned=abandoned)
        return self._offer_branch_start()

    def _finish_branch(self, branch: Branch, *, abandoned: int) -> None:
        event = BranchComplete(branch.index, branch.kind, len(branch.segment_ids), abandoned)
        if self._bus is not None:
            event.publish(self._bus)
        if branch.kind == "main":
            self._plan_spurs()
        self._branch_index += 1

    def _complete(self) -> None:
        self.state = NegotiationState.DONE
        self.pending = None
        totals = GenerationComplete(
            seed=self.seed,
            total_points=len(self.graph.live_point_ids()),
            total_segments=len(self.graph.segments),
        )
        logger.info(
            "Incremental growth complete: seed=%s points=%d segments=%d",
            totals.seed,
            totals.total_points,
            totals.total_segments,
        )
        if self._bus is not None:
            totals.publish(self._bus)


__all__ = ["IncrementalGrowthEngine", "NegotiationState"]
