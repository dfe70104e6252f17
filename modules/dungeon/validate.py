"""Structural and geometric checks for generated layouts."""
from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from typing import List

from modules.dungeon.gen.graph import DungeonGraph
from modules.dungeon.resolve.sizing import LayoutGeometry

_EPSILON = 1e-6


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    problems: List[str] = field(default_factory=list)


class LayoutValidator:
    """Check graph shape, orthogonality and overlap invariants."""

    def __init__(self, graph: DungeonGraph, geometry: LayoutGeometry | None = None, *, tolerance: float = 0.1) -> None:
        self.graph = graph
        self.geometry = geometry
        self.tolerance = tolerance

    def is_valid(self) -> bool:
        return self.validate().valid

    def validate(self) -> ValidationResult:
        problems: List[str] = []
        problems.extend(self.orthogonality_problems())
        problems.extend(self.tree_problems())
        if self.geometry is not None:
            problems.extend(self.overlap_problems())
        return ValidationResult(valid=not problems, problems=problems)

    def orthogonality_problems(self) -> List[str]:
        problems: List[str] = []
        for segment in self.graph.segments.values():
            start = self.graph.position(segment.from_id)
            end = self.graph.position(segment.to_id)
            moved = [axis for axis in range(3) if abs(end[axis] - start[axis]) > _EPSILON]
            axis = segment.direction.axis
            if moved != [axis]:
                problems.append(f"segment {segment.id} is not aligned with axis {axis}")
            elif (end[axis] - start[axis]) * segment.direction.sign <= 0:
                problems.append(f"segment {segment.id} points against its direction")
        return problems

    def tree_problems(self) -> List[str]:
        live = set(self.graph.live_point_ids())
        if not live:
            return []
        problems: List[str] = []
        reached = {point_id for point_id, _ in self.graph.bfs_order()}
        missing = live - reached
        if missing:
            problems.append(f"points not connected to the start: {sorted(missing)}")
        if len(self.graph.segments) != len(live) - 1:
            problems.append(
                f"expected {len(live) - 1} segments for {len(live)} points, found {len(self.graph.segments)}"
            )
        reused = set(self.graph.segments) & set(self.graph.detached)
        if reused:
            problems.append(f"segment ids reused: {sorted(reused)}")
        return problems

    def overlap_problems(self) -> List[str]:
        assert self.geometry is not None
        problems: List[str] = []
        rooms = self.geometry.rooms
        for a, b in combinations(rooms, 2):
            if a.aabb.overlaps(b.aabb, self.tolerance):
                problems.append(f"rooms {a.point_id} and {b.point_id} overlap")
        for room in rooms:
            for hallway in self.geometry.hallways:
                if room.point_id in (hallway.from_id, hallway.to_id):
                    continue
                if room.aabb.overlaps(hallway.aabb, self.tolerance):
                    problems.append(f"room {room.point_id} intersects hallway {hallway.segment_id}")
        for h1, h2 in combinations(self.geometry.hallways, 2):
            # Hallways sharing a room meet inside it.
            if {h1.from_id, h1.to_id} & {h2.from_id, h2.to_id}:
                continue
            if h1.aabb.overlaps(h2.aabb, self.tolerance):
                problems.append(f"hallways {h1.segment_id} and {h2.segment_id} intersect")
        return problems

    def base_unit_problems(self, base_unit: float) -> List[str]:
        problems: List[str] = []
        for segment in self.graph.segments.values():
            start = self.graph.position(segment.from_id)
            end = self.graph.position(segment.to_id)
            length = round(sum(abs(end[i] - start[i]) for i in range(3)))
            if base_unit and length % base_unit:
                problems.append(f"segment {segment.id} length {length} is not a multiple of {base_unit}")
        return problems


def validate_layout(graph: DungeonGraph, geometry: LayoutGeometry | None = None, *, tolerance: float = 0.1) -> ValidationResult:
    return LayoutValidator(graph, geometry, tolerance=tolerance).validate()


__all__ = ["LayoutValidator", "ValidationResult", "validate_layout"]
