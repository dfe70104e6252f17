from __future__ import annotations

import pytest

from modules.dungeon.doorways import (
    DoorwayPlacer,
    RoomExtent,
    SharedWall,
    compute_doorway,
    doorway_between,
    find_adjacency_axis,
    hallway_doorways,
    interior_extent,
    shared_wall,
)
from modules.dungeon.events import DoorwayCreated, DoorwaysComplete
from modules.dungeon.gen.geometry import X, Y, Z
from modules.dungeon.gen.params import DoorwayConfig, GeometryConfig
from modules.dungeon.resolve.sizing import LayoutGeometry, RoomVolume, hallway_volume, room_volume
from tests.helpers.bus import LoggedEventBus


def _room(room_id: int, center, dims=(10, 10, 10)) -> RoomExtent:
    return RoomExtent(room_id, tuple(float(v) for v in center), tuple(float(v) for v in dims))


def test_rooms_two_walls_apart_are_adjacent_on_x() -> None:
    assert find_adjacency_axis(_room(1, (0, 0, 0)), _room(2, (12, 0, 0))) == (X, 1)
    assert find_adjacency_axis(_room(2, (12, 0, 0)), _room(1, (0, 0, 0))) == (X, -1)


def test_adjacency_tolerates_small_error_only() -> None:
    assert find_adjacency_axis(_room(1, (0, 0, 0)), _room(2, (0, 0, 12.5))) == (Z, 1)
    assert find_adjacency_axis(_room(1, (0, 0, 0)), _room(2, (13.5, 0, 0))) is None


def test_shared_wall_geometry() -> None:
    wall = shared_wall(_room(1, (0, 0, 0)), _room(2, (12, 2, 0)), X, 1)
    assert wall.center == pytest.approx((6.0, 1.0, 0.0))
    assert (wall.width_axis, wall.height_axis) == (Z, Y)
    assert wall.width == pytest.approx(10.0)
    assert wall.height == pytest.approx(8.0)


def test_vertical_wall_uses_x_and_z() -> None:
    wall = shared_wall(_room(1, (0, 0, 0)), _room(2, (0, 12, 0)), Y, 1)
    assert (wall.width_axis, wall.height_axis) == (X, Z)
    assert wall.center[Y] == pytest.approx(6.0)


def test_disjoint_faces_have_no_wall() -> None:
    assert shared_wall(_room(1, (0, 0, 0)), _room(2, (12, 0, 20)), X, 1) is None


def test_door_is_sized_by_ratio_and_sits_above_the_margin() -> None:
    door = doorway_between(_room(1, (0, 0, 0)), _room(2, (12, 0, 0)))

    assert door.width == pytest.approx(4.5)
    assert door.height == pytest.approx(4.8)
    # wall bottom -5, margin 2, half height 2.4
    assert door.center == pytest.approx((6.0, -0.6, 0.0))
    assert door.size == pytest.approx((8.0, 4.8, 4.5))
    assert (door.from_room_id, door.to_room_id) == (1, 2)


def test_large_walls_hit_the_caps() -> None:
    door = doorway_between(_room(1, (0, 0, 0), (40, 40, 40)), _room(2, (42, 0, 0), (40, 40, 40)))
    assert door.width == pytest.approx(12.0)
    assert door.height == pytest.approx(10.0)


def test_small_wall_gets_no_door() -> None:
    wall = SharedWall(center=(0.0, 0.0, 0.0), width=3, height=3, width_axis=Z, height_axis=Y, axis=X, direction=1)
    assert compute_doorway(wall) is None


def test_wide_margin_config_blocks_doors() -> None:
    config = DoorwayConfig(margin=4)
    assert doorway_between(_room(1, (0, 0, 0)), _room(2, (12, 0, 0)), config) is None


def _start(point_id: int, pos) -> RoomVolume:
    return room_volume(point_id, pos, 1, 10, GeometryConfig(), role="start")


def _deadend(point_id: int, pos) -> RoomVolume:
    return room_volume(point_id, pos, 1, 10, GeometryConfig())


def _hall(segment_id: int, a: RoomVolume, b: RoomVolume):
    return hallway_volume(segment_id, a.point_id, b.point_id, a.pos, b.pos, 10, GeometryConfig())


def test_interior_extent_strips_one_wall_per_side() -> None:
    room = _start(4, (0, 0, 0))
    extent = interior_extent(room, 1.0)
    assert extent.room_id == 4
    assert extent.center == pytest.approx((0.0, 15.0, 0.0))
    assert extent.dims == pytest.approx((18.0, 28.0, 18.0))


def test_touching_rooms_share_a_single_door() -> None:
    a, b = _start(1, (0, 0, 0)), _start(2, (20, 0, 0))

    (door,) = hallway_doorways(a, b, _hall(7, a, b))

    assert door.axis == X
    assert door.center == pytest.approx((10.0, 8.0, 0.0))
    assert (door.width, door.height) == pytest.approx((10.5, 10.0))
    assert (door.from_room_id, door.to_room_id, door.room_id) == (1, 2, 1)


def test_hallway_between_distant_rooms_gets_a_door_at_each_end() -> None:
    a, b = _start(1, (0, 0, 0)), _deadend(2, (40, 0, 0))

    first, second = hallway_doorways(a, b, _hall(7, a, b))

    assert first.center == pytest.approx((10.0, 8.0, 0.0))
    assert second.center == pytest.approx((32.5, 8.0, 0.0))
    assert (first.room_id, second.room_id) == (1, 2)
    assert {(door.from_room_id, door.to_room_id) for door in (first, second)} == {(1, 2)}
    # The hallway interior is 8 wide: the door is floored at the minimum.
    assert first.width == pytest.approx(4.0)


def test_rooms_a_wall_apart_get_no_door() -> None:
    a, b = _start(1, (0, 0, 0)), _start(2, (21.5, 0, 0))
    assert hallway_doorways(a, b, _hall(7, a, b)) == []


def test_vertical_hallway_doors_sit_in_floor_and_ceiling() -> None:
    a, b = _deadend(1, (0, 0, 0)), _deadend(2, (0, 30, 0))

    doors = hallway_doorways(a, b, _hall(7, a, b))

    assert [door.axis for door in doors] == [Y, Y]
    assert [door.center[Y] for door in doors] == pytest.approx([20.0, 30.0])
    assert all((door.width_axis, door.height_axis) == (X, Z) for door in doors)


def test_placer_walks_hallways_and_emits_events() -> None:
    bus = LoggedEventBus()
    start, goal, dead = _start(1, (0, 0, 0)), _start(2, (20, 0, 0)), _deadend(3, (20, 0, 40))
    orphan = hallway_volume(9, 3, 99, (20, 0, 40), (20, 0, 80), 10, GeometryConfig())
    geometry = LayoutGeometry(
        rooms=[start, goal, dead],
        hallways=[_hall(7, start, goal), _hall(8, goal, dead), orphan],
        base_unit=10,
    )

    doors = DoorwayPlacer(event_bus=bus).process(geometry)

    assert [door.room_id for door in doors] == [1, 2, 3]
    created = bus.events(DoorwayCreated.topic)
    assert [(event["from_room_id"], event["to_room_id"], event["room_id"]) for event in created] == [
        (1, 2, 1),
        (2, 3, 2),
        (2, 3, 3),
    ]
    assert bus.events(DoorwaysComplete.topic) == [{"total_doorways": 3}]
