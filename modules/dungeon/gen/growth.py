"""Batch graph growth driven by horizon scanning.

The engine grows a tree of rooms outward from a start position.  Before each
new room it casts along every candidate direction to measure how much free
space lies ahead of the current room, so rooms avoid each other by
construction rather than by later repair.  Growth is an explicit state
machine::

    IDLE -> GROWING_MAIN -> GROWING_SPUR(n) ... -> DONE

advanced one segment at a time by :meth:`GrowthEngine.step` and driven to
completion by :meth:`GrowthEngine.run`.

Each room reserves a box standing on its point (the point is the floor
centre).  Boxes may touch but never interpenetrate, and they are at least as
large as the room and hallway volumes the resolver later derives, so those
volumes inherit the separation.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence

from modules.dungeon.events import (
    BranchComplete,
    GenerationComplete,
    PhaseChanged,
    RoomLayout,
)
from modules.dungeon.gen.geometry import (
    AABB,
    ALL_DIRECTIONS,
    HORIZONTAL_DIRECTIONS,
    VERTICAL_DIRECTIONS,
    Direction,
    Vec3,
    Y,
    perpendicular_axes,
)
from modules.dungeon.gen.graph import Branch, DungeonGraph
from modules.dungeon.gen.params import GrowthConfig
from modules.dungeon.gen.presets import merge_preset
from modules.dungeon.gen.random import XorShiftRandom, generate_seed, rand_int

logger = logging.getLogger(__name__)

_PHASE_CONTROL_KEYS = ("preset", "rooms", "paths")
# Reserved boxes may touch; anything deeper than this counts as a collision.
_EPSILON = 1e-6


class _EventBus(Protocol):
    def publish(self, event_type: str, **payload: object) -> None:
        ...


class GrowthState(str, Enum):
    IDLE = "idle"
    GROWING_MAIN = "growing_main"
    GROWING_SPUR = "growing_spur"
    DONE = "done"


@dataclass(slots=True)
class GrowthResult:
    """Finished graph plus everything needed to replay it."""

    seed: int | str
    graph: DungeonGraph
    layouts: dict[int, Vec3] = field(default_factory=dict)
    degenerate: bool = False

    @property
    def total_points(self) -> int:
        return len(self.graph.live_point_ids())

    @property
    def total_segments(self) -> int:
        return len(self.graph.segments)

    def room_box(self, point_id: int) -> AABB:
        return AABB.from_floor(self.graph.position(point_id), self.layouts[point_id])


def snap(value: float, grid: float) -> float:
    """Round ``value`` to the nearest multiple of ``grid`` (no-op for 0)."""

    if grid <= 0:
        return value
    return round(value / grid) * grid


class GrowthEngine:
    """Seeded batch growth of a point/segment tree."""

    def __init__(self, config: GrowthConfig | None = None, *, event_bus: _EventBus | None = None) -> None:
        self._base_config = replace(config) if config is not None else GrowthConfig()
        self.config = replace(self._base_config)
        self._bus = event_bus
        self.state = GrowthState.IDLE
        self.spur_index = 0
        self.graph = DungeonGraph()
        self.seed: int | str = ""
        self._rng = XorShiftRandom(1)
        self._goal: Vec3 | None = None
        self._dims: dict[int, Vec3] = {}
        self._branch: Branch | None = None
        self._branch_limit = 0
        self._current_id = 0
        self._last_direction: Direction | None = None
        self._spur_budget = 0
        self._degenerate = False
        self._phase_index = 0
        self._rooms_in_phase = 0
        self._paths_in_phase = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def configure(self, preset: str | None = None, **overrides: Any) -> GrowthConfig:
        """Sparse merge into the base configuration, optionally from a preset."""

        self._base_config.configure(**merge_preset(preset, overrides))
        self.config = replace(self._base_config)
        return self.config

    def switch_mode(self, preset: str | None = None, **overrides: Any) -> None:
        """Change growth behaviour mid-run without touching the base unit."""

        values = merge_preset(preset, overrides)
        if values.pop("base_unit", None) is not None:
            logger.debug("Ignoring base_unit change while growing")
        self.config.configure(**values)
        logger.info("Switched growth mode to %s", preset or "custom")

    # ------------------------------------------------------------------
    # Driving
    # ------------------------------------------------------------------
    def generate(self, start: Sequence[float] = (0.0, 0.0, 0.0), goal: Sequence[float] | None = None) -> GrowthResult:
        """Grow a complete graph from ``start`` and return it."""

        self.reset(start, goal)
        return self.run()

    def reset(self, start: Sequence[float] = (0.0, 0.0, 0.0), goal: Sequence[float] | None = None) -> None:
        self.config = replace(self._base_config)
        self.seed = self.config.seed if self.config.seed is not None else generate_seed()
        self._rng = XorShiftRandom(self.seed)
        self.graph = DungeonGraph()
        self._dims = {}
        self._goal = (float(goal[0]), float(goal[1]), float(goal[2])) if goal is not None else None
        self._degenerate = False
        self.spur_index = 0
        self._spur_budget = 0
        self._phase_index = 0
        self._rooms_in_phase = 0
        self._paths_in_phase = 0
        self._apply_phase(0)
        self.graph.base_unit = self.config.base_unit

        root = self.graph.add_point(start)
        self._dims[root.id] = self._roll_room_dims()
        self._emit_room(root.id)
        self._begin_branch("main", root.id, self.config.max_segments_per_branch)
        self.state = GrowthState.GROWING_MAIN
        logger.debug("Growth started with seed %s at %s", self.seed, tuple(root.pos))

    def run(self) -> GrowthResult:
        if self.state is GrowthState.IDLE:
            self.reset()
        while self.state is not GrowthState.DONE:
            self.step()
        return self.result()

    def step(self) -> GrowthState:
        """Grow one segment, or close the current branch when it cannot grow."""

        if self.state in (GrowthState.IDLE, GrowthState.DONE):
            return self.state
        branch = self._branch
        assert branch is not None
        if len(branch.segment_ids) >= self._branch_limit or not self._grow_once():
            self._finish_branch()
        return self.state

    def result(self) -> GrowthResult:
        return GrowthResult(
            seed=self.seed,
            graph=self.graph,
            layouts=dict(self._dims),
            degenerate=self._degenerate,
        )

    def apply_point_updates(self, updates: Mapping[int, Sequence[float]]) -> int:
        """Accept authoritative positions from conflict resolution."""

        applied = self.graph.apply_positions(updates)
        logger.debug("Applied %d point updates", applied)
        return applied

    # ------------------------------------------------------------------
    # Branch bookkeeping
    # ------------------------------------------------------------------
    def _begin_branch(self, kind: str, root_id: int, limit: int) -> None:
        self._branch = self.graph.start_branch(kind, root_id)  # type: ignore[arg-type]
        self._branch_limit = limit
        self._current_id = root_id
        self._last_direction = None

    def _finish_branch(self) -> None:
        branch = self._branch
        assert branch is not None
        if branch.kind == "main":
            if not branch.segment_ids:
                self._degenerate = True
                logger.warning("Main branch could not grow from the start point (seed %s)", self.seed)
            else:
                self.graph.goal_ids.append(self._current_id)
        elif not branch.segment_ids:
            self.graph.branches.remove(branch)
        if branch.segment_ids or branch.kind == "main":
            self._publish(BranchComplete(branch.index, branch.kind, len(branch.segment_ids)))
            self._paths_in_phase += 1
            self._check_phase_advance()

        if branch.kind == "main":
            self._spur_budget = rand_int(self._rng, *self.config.spur_count)
            logger.debug("Main branch done with %d segments, %d spurs planned", len(branch.segment_ids), self._spur_budget)
        self._start_next_spur()

    def _start_next_spur(self) -> None:
        candidates = self.graph.junction_candidates()
        if self.spur_index >= self._spur_budget or not candidates:
            self._complete()
            return
        self.spur_index += 1
        root_id = self._rng.random_choice(candidates)
        assert root_id is not None
        limit = rand_int(self._rng, *self.config.spur_segments)
        self._begin_branch("spur", root_id, limit)
        self.state = GrowthState.GROWING_SPUR
        logger.debug("Spur %d rooted at point %d (up to %d segments)", self.spur_index, root_id, limit)

    def _complete(self) -> None:
        self.state = GrowthState.DONE
        self._branch = None
        totals = GenerationComplete(
            seed=self.seed,
            total_points=len(self.graph.live_point_ids()),
            total_segments=len(self.graph.segments),
        )
        logger.info(
            "Growth complete: seed=%s points=%d segments=%d",
            totals.seed,
            totals.total_points,
            totals.total_segments,
        )
        self._publish(totals)

    # ------------------------------------------------------------------
    # Growth step
    # ------------------------------------------------------------------
    def _grow_once(self) -> bool:
        current = self._current_id
        distances = self._scan_all(current)
        while distances:
            direction = self._choose_direction(current, distances)
            if direction is None:
                break
            placement = self._fit_room(current, direction, distances[direction])
            if placement is not None:
                self._add_room(current, direction, *placement)
                return True
            logger.debug("No room fits %s of point %d", direction.value, current)
            del distances[direction]
        logger.debug("No direction available from point %d", current)
        return False

    def _add_room(self, current: int, direction: Direction, units: int, dims: Vec3) -> None:
        offset = units * self.config.base_unit
        x, y, z = self.graph.position(current)
        dx, dy, dz = direction.vector
        new_point = self.graph.add_point((x + dx * offset, y + dy * offset, z + dz * offset))
        self._dims[new_point.id] = dims
        segment = self.graph.connect(current, new_point.id, direction, units)
        assert self._branch is not None
        self._branch.segment_ids.append(segment.id)
        logger.debug(
            "Segment %d: %d -> %d heading %s for %d units",
            segment.id,
            current,
            new_point.id,
            direction.value,
            units,
        )

        self._emit_room(new_point.id)
        self._current_id = new_point.id
        self._last_direction = direction
        self._rooms_in_phase += 1
        self._check_phase_advance()

    def _fit_room(self, current: int, direction: Direction, available: float) -> tuple[int, Vec3] | None:
        """Size a room flush against ``current`` inside the scanned free space.

        Returns the segment length in base units and the room dimensions, or
        ``None`` when no room of at least the minimum size fits that way.
        """

        unit = self.config.base_unit
        axis = direction.axis
        from_dims = self._dims[current]
        dims = list(self._roll_room_dims())

        if axis == Y:
            min_height = self.config.effective_min_room_height
            if direction.sign > 0:
                units = math.ceil(from_dims[Y] / unit - 1e-9)
                dims[Y] = min(dims[Y], available - (units * unit - from_dims[Y]))
            else:
                dims[Y] = min(dims[Y], math.floor(available / unit + 1e-9) * unit)
                units = max(1, math.ceil(dims[Y] / unit - 1e-9))
            if dims[Y] < min_height - 1e-9:
                return None
        else:
            aligned = self._align_to_units(from_dims[axis] / 2, dims[axis], available)
            if aligned is None:
                return None
            units, dims[axis] = aligned

        x, y, z = self.graph.position(current)
        offset = [component * units * unit for component in direction.vector]
        floor = (x + offset[0], y + offset[1], z + offset[2])
        if self._collides(AABB.from_floor(floor, dims)):
            # Narrowing to the current room's cross-section keeps the new room
            # inside the slab the scan swept.
            for other in perpendicular_axes(axis):
                dims[other] = min(dims[other], from_dims[other])
            if self._collides(AABB.from_floor(floor, dims)):
                return None
        return units, (dims[0], dims[1], dims[2])

    def _align_to_units(self, from_half: float, to_dim: float, max_dim: float) -> tuple[int, float] | None:
        """Pick a whole number of base units between centres and resize to stay flush.

        ``None`` means even the smallest allowed room would reach past ``max_dim``.
        """

        unit = self.config.base_unit
        min_size = self.config.effective_min_room_size
        units_min = max(1, math.ceil((from_half + min_size / 2) / unit - 1e-9))
        if 2 * (units_min * unit - from_half) > max_dim + 1e-9:
            return None
        units = max(units_min, round((from_half + to_dim / 2) / unit))
        while units > units_min and 2 * (units * unit - from_half) > max_dim + 1e-9:
            units -= 1
        return units, 2 * (units * unit - from_half)

    def _roll_room_dims(self) -> Vec3:
        cfg = self.config
        scale = self._rng.random_float(*cfg.size_range)
        aspect = self._rng.random_float(*cfg.aspect_ratio)
        height_mult = self._rng.random_float(*cfg.height_scale)
        base = cfg.base_unit * scale
        min_size = cfg.effective_min_room_size
        width = max(snap(base * math.sqrt(aspect), cfg.grid_snap), min_size)
        height = max(snap(base * height_mult, cfg.grid_snap), cfg.effective_min_room_height)
        depth = max(snap(base / math.sqrt(aspect), cfg.grid_snap), min_size)
        return (width, height, depth)

    def _box(self, point_id: int) -> AABB:
        return AABB.from_floor(self.graph.position(point_id), self._dims[point_id])

    def _collides(self, box: AABB) -> bool:
        return any(box.overlaps(self._box(point_id), _EPSILON) for point_id in self._dims)

    # ------------------------------------------------------------------
    # Horizon scan
    # ------------------------------------------------------------------
    def _candidate_directions(self) -> list[Direction]:
        reverse = self._last_direction.opposite if self._last_direction is not None else None
        excluded = {reverse}
        if not self.config.allow_up:
            excluded.add(Direction.UP)
        if not self.config.allow_down:
            excluded.add(Direction.DOWN)
        return [d for d in ALL_DIRECTIONS if d not in excluded]

    def _scan_all(self, point_id: int) -> dict[Direction, float]:
        return {direction: self.scan_direction(point_id, direction) for direction in self._candidate_directions()}

    def scan_direction(self, point_id: int, direction: Direction) -> float:
        """Free distance ahead of the room at ``point_id``, capped at the scan cap.

        Only rooms whose cross-section overlaps this room's cross-section (the
        slab swept by a move along ``direction``) can block it.
        """

        cap = self.config.scan_cap
        axis, sign = direction.axis, direction.sign
        box = self._box(point_id)
        face = box.maxs[axis] if sign > 0 else box.mins[axis]
        slab_axes = perpendicular_axes(axis)
        nearest = cap

        for other_id in self._dims:
            if other_id == point_id:
                continue
            other = self._box(other_id)
            if any(box.overlap_extent(other, p) <= _EPSILON for p in slab_axes):
                continue
            near = other.mins[axis] if sign > 0 else other.maxs[axis]
            far = other.maxs[axis] if sign > 0 else other.mins[axis]
            if (far - face) * sign <= 0:
                continue
            nearest = min(nearest, max(0.0, (near - face) * sign))

        limit = self._limit_distance(axis, sign, face)
        if limit is not None:
            nearest = min(nearest, max(0.0, limit))
        return nearest

    def _limit_distance(self, axis: int, sign: int, face: float) -> float | None:
        cfg = self.config
        limits: list[float] = []
        if cfg.bounds is not None:
            low, high = cfg.bounds
            limits.append(high[axis] - face if sign > 0 else face - low[axis])
        if axis == Y:
            limits.append(cfg.max_y - face if sign > 0 else face - cfg.min_y)
        return min(limits) if limits else None

    def _choose_direction(self, point_id: int, distances: Mapping[Direction, float]) -> Direction | None:
        pools = self._direction_pools(distances)
        for pool in pools:
            choice = self._choose_from(point_id, pool, distances)
            if choice is not None:
                return choice
        return None

    def _direction_pools(self, distances: Mapping[Direction, float]) -> list[list[Direction]]:
        candidates = list(distances)
        chance = self.config.vertical_chance
        if chance is None:
            return [candidates]
        vertical = [d for d in candidates if d in VERTICAL_DIRECTIONS]
        horizontal = [d for d in candidates if d in HORIZONTAL_DIRECTIONS]
        if chance > 0 and self._rng.random_int(1, 100) <= chance:
            return [vertical, horizontal]
        return [horizontal, vertical] if chance > 0 else [horizontal]

    def _choose_from(
        self,
        point_id: int,
        pool: Sequence[Direction],
        distances: Mapping[Direction, float],
    ) -> Direction | None:
        cap = self.config.scan_cap
        unit = self.config.base_unit
        clear = [d for d in pool if distances[d] >= cap]
        blocked = [d for d in pool if unit <= distances[d] < cap]

        last = self._last_direction
        if clear and last in clear and self._roll(self.config.straightness):
            return last
        if clear and self._goal is not None and self._roll(self.config.goal_bias):
            toward = self._toward_goal(point_id, clear)
            if toward:
                return self._rng.random_choice(toward)
        if clear:
            return self._rng.random_choice(clear)
        if blocked:
            return max(blocked, key=lambda d: distances[d])
        return None

    def _roll(self, percent: int) -> bool:
        return percent > 0 and self._rng.random_int(1, 100) <= percent

    def _toward_goal(self, point_id: int, directions: Sequence[Direction]) -> list[Direction]:
        assert self._goal is not None
        pos = self.graph.position(point_id)
        toward = []
        for direction in directions:
            if direction.is_vertical:
                continue
            delta = self._goal[direction.axis] - pos[direction.axis]
            if abs(delta) >= self.config.base_unit and delta * direction.sign > 0:
                toward.append(direction)
        return toward

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------
    def _apply_phase(self, index: int) -> None:
        phases = self.config.phases
        if not phases or index >= len(phases):
            return
        phase = phases[index]
        overrides = {k: v for k, v in phase.items() if k not in _PHASE_CONTROL_KEYS}
        if index == 0:
            self.config.configure(**merge_preset(phase.get("preset"), overrides))
        else:
            self.switch_mode(phase.get("preset"), **overrides)

    def _check_phase_advance(self) -> None:
        phases = self.config.phases
        if not phases or self._phase_index >= len(phases):
            return
        phase = phases[self._phase_index]
        rooms, paths = phase.get("rooms"), phase.get("paths")
        if not (rooms and self._rooms_in_phase >= rooms) and not (paths and self._paths_in_phase >= paths):
            return

        self._phase_index += 1
        self._rooms_in_phase = 0
        self._paths_in_phase = 0
        if self._phase_index < len(phases):
            next_phase = phases[self._phase_index]
            self._apply_phase(self._phase_index)
            logger.info("Entering growth phase %d/%d", self._phase_index + 1, len(phases))
            self._publish(PhaseChanged(self._phase_index + 1, next_phase.get("preset"), len(phases)))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def _emit_room(self, point_id: int) -> None:
        point = self.graph.points[point_id]
        self._publish(
            RoomLayout(
                point_id=point_id,
                position=self.graph.position(point_id),
                dims=self._dims[point_id],
                connections=tuple(point.connections),
            )
        )

    def _publish(self, event: Any) -> None:
        if self._bus is not None:
            event.publish(self._bus)


def grow(
    config: GrowthConfig | None = None,
    start: Sequence[float] = (0.0, 0.0, 0.0),
    goal: Sequence[float] | None = None,
    *,
    event_bus: _EventBus | None = None,
) -> GrowthResult:
    """One-shot helper: build an engine, grow and return the result."""

    return GrowthEngine(config, event_bus=event_bus).generate(start, goal)


__all__ = ["GrowthEngine", "GrowthResult", "GrowthState", "grow", "snap"]
