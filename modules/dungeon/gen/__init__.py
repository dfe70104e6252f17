"""Dungeon graph growth: parameters, randomness and the two growth engines."""

from .geometry import AABB, Direction
from .graph import Branch, DungeonGraph, Point, Segment
from .growth import GrowthEngine, GrowthResult, GrowthState, grow
from .incremental import IncrementalGrowthEngine, NegotiationState
from .params import DoorwayConfig, GeometryConfig, GrowthConfig, IncrementalConfig
from .random import XorShiftRandom, generate_seed, rand_int

__all__ = [
    "AABB",
    "Branch",
    "Direction",
    "DoorwayConfig",
    "DungeonGraph",
    "GeometryConfig",
    "GrowthConfig",
    "GrowthEngine",
    "GrowthResult",
    "GrowthState",
    "IncrementalConfig",
    "IncrementalGrowthEngine",
    "NegotiationState",
    "Point",
    "Segment",
    "XorShiftRandom",
    "generate_seed",
    "grow",
    "rand_int",
]
