"""Point/segment graph produced by the growth engines."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Literal, Mapping, Sequence

from modules.dungeon.gen.geometry import Direction, Vec3

BranchKind = Literal["main", "spur"]


@dataclass(slots=True)
class Point:
    """A room centre on the floor plane of its room."""

    id: int
    pos: list[float]
    connections: list[int] = field(default_factory=list)

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    def as_dict(self) -> dict[str, object]:
        return {"id": self.id, "pos": list(self.pos), "connections": list(self.connections)}


@dataclass(frozen=True, slots=True)
class Segment:
    """A straight hallway between two points, ``length`` in base units."""

    id: int
    from_id: int
    to_id: int
    direction: Direction
    length: int

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "direction": self.direction.value,
            "length": self.length,
        }


@dataclass(slots=True)
class Branch:
    index: int
    kind: BranchKind
    root_id: int
    segment_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "index": self.index,
            "kind": self.kind,
            "root": self.root_id,
            "segments": list(self.segment_ids),
        }


class DungeonGraph:
    """Tree of points joined by orthogonal segments.

    Points and segments receive monotonically increasing ids which are never
    reused, even when a segment is later detached.
    """

    def __init__(self) -> None:
        self.points: dict[int, Point] = {}
        self.segments: dict[int, Segment] = {}
        self.branches: list[Branch] = []
        self.detached: dict[int, Segment] = {}
        self.start_id: int | None = None
        self.goal_ids: list[int] = []
        # Grid the positions were laid out on, when the grower knows it.
        self.base_unit: float | None = None
        self._next_point_id = 1
        self._next_segment_id = 1

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def add_point(self, pos: Sequence[float]) -> Point:
        point = Point(self._next_point_id, [float(pos[0]), float(pos[1]), float(pos[2])])
        self._next_point_id += 1
        self.points[point.id] = point
        if self.start_id is None:
            self.start_id = point.id
        return point

    def connect(self, from_id: int, to_id: int, direction: Direction, length: int) -> Segment:
        segment = Segment(self._next_segment_id, from_id, to_id, direction, int(length))
        self._next_segment_id += 1
        self.segments[segment.id] = segment
        self.points[from_id].connections.append(to_id)
        self.points[to_id].connections.append(from_id)
        return segment

    def detach_segment(self, segment_id: int) -> Segment | None:
        """Remove a segment's connections, keeping its record for auditing."""

        segment = self.segments.pop(segment_id, None)
        if segment is None:
            return None
        from_point = self.points[segment.from_id]
        to_point = self.points[segment.to_id]
        if segment.to_id in from_point.connections:
            from_point.connections.remove(segment.to_id)
        if segment.from_id in to_point.connections:
            to_point.connections.remove(segment.from_id)
        self.detached[segment.id] = segment
        return segment

    def start_branch(self, kind: BranchKind, root_id: int) -> Branch:
        branch = Branch(len(self.branches), kind, root_id)
        self.branches.append(branch)
        return branch

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def position(self, point_id: int) -> Vec3:
        x, y, z = self.points[point_id].pos
        return (x, y, z)

    def neighbours(self, point_id: int) -> list[int]:
        return list(self.points[point_id].connections)

    def segment_between(self, a: int, b: int) -> Segment | None:
        for segment in self.segments.values():
            if {segment.from_id, segment.to_id} == {a, b}:
                return segment
        return None

    def live_point_ids(self) -> list[int]:
        """Ids of points attached to the tree (the start always counts)."""

        return [
            point_id
            for point_id, point in self.points.items()
            if point.connections or point_id == self.start_id
        ]

    def junction_candidates(self) -> list[int]:
        """Points with exactly two connections, excluding the start."""

        return [
            point_id
            for point_id, point in sorted(self.points.items())
            if point.connection_count == 2 and point_id != self.start_id
        ]

    def bfs_order(self, root: int | None = None) -> list[tuple[int, int | None]]:
        """Breadth-first ``(point_id, came_from)`` pairs starting at ``root``."""

        root = self.start_id if root is None else root
        if root is None:
            return []
        order: list[tuple[int, int | None]] = [(root, None)]
        visited = {root}
        queue: deque[int] = deque([root])
        while queue:
            current = queue.popleft()
            for neighbour in self.points[current].connections:
                if neighbour in visited:
                    continue
                visited.add(neighbour)
                order.append((neighbour, current))
                queue.append(neighbour)
        return order

    def downstream(self, point_id: int, exclude: int | None) -> list[int]:
        """Points reachable from ``point_id`` without passing through ``exclude``."""

        visited = {point_id}
        if exclude is not None:
            visited.add(exclude)
        result = [point_id]
        queue: deque[int] = deque([point_id])
        while queue:
            current = queue.popleft()
            for neighbour in self.points[current].connections:
                if neighbour in visited:
                    continue
                visited.add(neighbour)
                result.append(neighbour)
                queue.append(neighbour)
        return result

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def shift(self, point_ids: Iterable[int], offset: Sequence[float]) -> None:
        """Translate every point in ``point_ids`` by the same ``offset``."""

        for point_id in point_ids:
            pos = self.points[point_id].pos
            pos[0] += offset[0]
            pos[1] += offset[1]
            pos[2] += offset[2]

    def apply_positions(self, updates: Mapping[int, Sequence[float]]) -> int:
        """Overwrite positions from ``updates``; unknown ids are ignored."""

        applied = 0
        for point_id, pos in updates.items():
            point = self.points.get(int(point_id))
            if point is None:
                continue
            point.pos[:] = [float(pos[0]), float(pos[1]), float(pos[2])]
            applied += 1
        return applied

    def copy(self) -> "DungeonGraph":
        clone = DungeonGraph()
        clone.points = {
            point_id: Point(point.id, list(point.pos), list(point.connections))
            for point_id, point in self.points.items()
        }
        clone.segments = dict(self.segments)
        clone.detached = dict(self.detached)
        clone.branches = [
            Branch(branch.index, branch.kind, branch.root_id, list(branch.segment_ids))
            for branch in self.branches
        ]
        clone.start_id = self.start_id
        clone.goal_ids = list(self.goal_ids)
        clone.base_unit = self.base_unit
        clone._next_point_id = self._next_point_id
        clone._next_segment_id = self._next_segment_id
        return clone

    # ------------------------------------------------------------------
    # Plain records
    # ------------------------------------------------------------------
    def as_dict(self) -> dict[str, object]:
        return {
            "start": self.start_id,
            "goals": list(self.goal_ids),
            "base_unit": self.base_unit,
            "points": [point.as_dict() for point in self.points.values()],
            "segments": [segment.as_dict() for segment in self.segments.values()],
            "detached": [segment.as_dict() for segment in self.detached.values()],
            "branches": [branch.as_dict() for branch in self.branches],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "DungeonGraph":
        graph = cls()
        for record in data.get("points", []):  # type: ignore[union-attr]
            point = Point(int(record["id"]), [float(v) for v in record["pos"]], [int(c) for c in record.get("connections", [])])
            graph.points[point.id] = point
        for key, target in (("segments", graph.segments), ("detached", graph.detached)):
            for record in data.get(key, []):  # type: ignore[union-attr]
                target[int(record["id"])] = Segment(
                    int(record["id"]),
                    int(record["from"]),
                    int(record["to"]),
                    Direction(record["direction"]),
                    int(record["length"]),
                )
        for record in data.get("branches", []):  # type: ignore[union-attr]
            graph.branches.append(
                Branch(int(record["index"]), record["kind"], int(record["root"]), [int(s) for s in record["segments"]])
            )
        start = data.get("start")
        graph.start_id = int(start) if start is not None else None  # type: ignore[arg-type]
        graph.goal_ids = [int(goal) for goal in data.get("goals", [])]  # type: ignore[union-attr]
        base_unit = data.get("base_unit")
        graph.base_unit = float(base_unit) if base_unit is not None else None  # type: ignore[arg-type]
        graph._next_point_id = max(graph.points, default=0) + 1
        graph._next_segment_id = max([*graph.segments, *graph.detached], default=0) + 1
        return graph


__all__ = ["Branch", "BranchKind", "DungeonGraph", "Point", "Segment"]
