from __future__ import annotations

import pytest

from modules.dungeon.gen.geometry import AABB, Direction, PlacedVolume, VolumeRegistry, X, Z
from modules.dungeon.gen.graph import DungeonGraph


def _chain() -> DungeonGraph:
    """Start -> 2 -> 3 with a side branch 2 -> 4."""

    graph = DungeonGraph()
    start = graph.add_point((0, 0, 0))
    b = graph.add_point((30, 0, 0))
    c = graph.add_point((60, 0, 0))
    d = graph.add_point((30, 0, 30))
    graph.connect(start.id, b.id, Direction.EAST, 2)
    graph.connect(b.id, c.id, Direction.EAST, 2)
    graph.connect(b.id, d.id, Direction.NORTH, 2)
    return graph


@pytest.mark.parametrize(
    ("direction", "vector", "opposite"),
    [
        (Direction.NORTH, (0, 0, 1), Direction.SOUTH),
        (Direction.SOUTH, (0, 0, -1), Direction.NORTH),
        (Direction.EAST, (1, 0, 0), Direction.WEST),
        (Direction.WEST, (-1, 0, 0), Direction.EAST),
        (Direction.UP, (0, 1, 0), Direction.DOWN),
        (Direction.DOWN, (0, -1, 0), Direction.UP),
    ],
)
def test_direction_vectors_and_opposites(direction, vector, opposite) -> None:
    assert direction.vector == vector
    assert direction.opposite is opposite
    assert Direction.from_axis(direction.axis, direction.sign) is direction


def test_touching_boxes_do_not_overlap() -> None:
    a = AABB.from_center((0, 0, 0), (10, 10, 10))
    b = AABB.from_center((10, 0, 0), (10, 10, 10))
    c = AABB.from_center((9, 0, 0), (10, 10, 10))
    assert not a.overlaps(b, 0.1)
    assert a.overlaps(c, 0.1)
    assert a.overlap_extent(c, X) == pytest.approx(1.0)
    assert a.overlap_extent(c, Z) == pytest.approx(10.0)


def test_registry_excludes_one_room_owner() -> None:
    registry = VolumeRegistry()
    box = AABB.from_center((0, 0, 0), (10, 10, 10))
    registry.add(PlacedVolume(box, 1, "room"))
    registry.add(PlacedVolume(box, 1, "hall"))
    hits = registry.overlapping(box, tolerance=0.1, exclude_rooms=(1,))
    assert [hit.kind for hit in hits] == ["hall"]


def test_registry_excludes_hallways_incident_to_a_point() -> None:
    registry = VolumeRegistry()
    box = AABB.from_center((0, 0, 0), (10, 10, 10))
    registry.add(PlacedVolume(box, 1, "hall", incident=(1, 2)))
    registry.add(PlacedVolume(box, 2, "hall", incident=(3, 4)))
    hits = registry.overlapping(box, tolerance=0.1, exclude_incident=(2,))
    assert [hit.owner_id for hit in hits] == [2]


def test_floor_box_rests_on_its_point() -> None:
    box = AABB.from_floor((5, 2, 0), (10, 6, 4))
    assert (box.min_x, box.max_x) == (0, 10)
    assert (box.min_y, box.max_y) == (2, 8)
    assert (box.min_z, box.max_z) == (-2, 2)


def test_first_point_is_start_and_ids_increase() -> None:
    graph = _chain()
    assert graph.start_id == 1
    assert sorted(graph.points) == [1, 2, 3, 4]
    assert sorted(graph.segments) == [1, 2, 3]


def test_downstream_stops_at_excluded_neighbour() -> None:
    graph = _chain()
    assert sorted(graph.downstream(2, exclude=1)) == [2, 3, 4]
    assert sorted(graph.downstream(3, exclude=2)) == [3]


def test_shift_moves_every_point_by_the_same_vector() -> None:
    graph = _chain()
    before = {pid: graph.position(pid) for pid in graph.points}
    moved = graph.downstream(2, exclude=1)
    graph.shift(moved, (15, 0, 0))
    for pid in graph.points:
        expected = before[pid]
        if pid in moved:
            expected = (expected[0] + 15, expected[1], expected[2])
        assert graph.position(pid) == expected


def test_junction_candidates_exclude_start() -> None:
    graph = DungeonGraph()
    a = graph.add_point((0, 0, 0))
    b = graph.add_point((30, 0, 0))
    c = graph.add_point((60, 0, 0))
    e = graph.add_point((-30, 0, 0))
    graph.connect(a.id, b.id, Direction.EAST, 2)
    graph.connect(b.id, c.id, Direction.EAST, 2)
    graph.connect(a.id, e.id, Direction.WEST, 2)
    assert graph.junction_candidates() == [b.id]


def test_detached_segment_leaves_ids_unused() -> None:
    graph = _chain()
    graph.detach_segment(3)
    assert 3 not in graph.segments
    assert 3 in graph.detached
    assert graph.live_point_ids() == [1, 2, 3]
    restored = DungeonGraph.from_dict(graph.as_dict())
    new_point = restored.add_point((0, 0, 90))
    assert restored.connect(3, new_point.id, Direction.NORTH, 2).id == 4


def test_bfs_order_records_parents() -> None:
    graph = _chain()
    assert graph.bfs_order() == [(1, None), (2, 1), (3, 2), (4, 2)]
