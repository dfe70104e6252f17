"""Canonical registry of event bus topics used by the dungeon generator.

Each entry documents the producer, the intended consumers and the payload
guarantees for the associated event.  Event dataclasses in
:mod:`modules.dungeon.events` bind to these members so topic names cannot
drift between producers and consumers.
"""

from __future__ import annotations

from enum import Enum

__all__ = ["EventTopic"]


class EventTopic(str, Enum):
    """Enumeration of every topic published on the generation event bus."""

    GENERATE = "dungeon.generate"
    """Request handled by :class:`modules.dungeon.systems.dungeon_generator.DungeonGeneratorSystem`.

    Guarantees: carries ``start``, ``goal``, ``mode``, ``seed`` and optional
    ``growth`` overrides.
    """

    GENERATED = "dungeon.generated"
    """Published by the generator system once a layout is available.

    Subscribers: materialisers and persistence layers.
    Guarantees: contains the finished ``layout``.
    """

    ROOM_LAYOUT = "dungeon.room_layout"
    """Published by the batch growth engine for every planned room.

    Guarantees: ``point_id``, ``position``, ``dims`` and ``connections``.
    """

    SEGMENT_PROPOSED = "dungeon.segment"
    """Published by the incremental growth engine for one tentative segment.

    Subscribers: the incremental conflict resolver.
    Guarantees: exactly one proposal is outstanding at any time.
    """

    SEGMENT_RESULT = "dungeon.segment_result"
    """Published by the incremental resolver in reply to a proposal.

    Subscribers: the incremental growth engine.
    Guarantees: ``ok`` and ``overlap_amount`` fields.
    """

    BRANCH_COMPLETE = "dungeon.branch_complete"
    """Published by both growth engines when a branch stops growing.

    Guarantees: ``branch_index``, ``branch_type`` and segment counts.
    """

    PHASE_CHANGED = "dungeon.phase_changed"
    """Published by the batch growth engine when a generation phase ends.

    Guarantees: ``phase``, ``preset`` and ``total_phases``.
    """

    GENERATION_COMPLETE = "dungeon.generation_complete"
    """Published by the growth engines after the last branch.

    Subscribers: auditing and replay tooling.
    Guarantees: ``seed``, ``total_points`` and ``total_segments``.
    """

    POINTS_SHIFTED = "dungeon.points_shifted"
    """Published by the batch resolver when conflict resolution moved points.

    Subscribers: anything caching point positions; the payload is authoritative.
    Guarantees: ``updates`` maps point ids to positions, plus ``shift_count``.
    """

    GEOMETRY = "dungeon.geometry"
    """Published by the resolvers with materialisation ready volumes.

    Guarantees: ``rooms``, ``hallways`` and ``base_unit``.
    """

    GEOMETRY_BUILT = "dungeon.geometry_built"
    """Published by the batch resolver with a summary of the build.

    Guarantees: counts, ``shifts_applied`` and ``unresolved`` room ids.
    """

    GEOMETRY_CLEARED = "dungeon.cleared"
    """Published by a resolver after its placed volume registry was reset."""

    DOORWAY_CREATED = "dungeon.doorway_created"
    """Published by the doorway placer for each door opening.

    Subscribers: wall cutting materialisers.
    Guarantees: ``from_room_id``, ``to_room_id``, ``position``, ``width``,
    ``height`` and ``size``.
    """

    DOORWAYS_COMPLETE = "dungeon.doorways_complete"
    """Published by the doorway placer after a batch of room pairs.

    Guarantees: ``total_doorways``.
    """
