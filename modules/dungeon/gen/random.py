"""Deterministic random utilities dedicated to dungeon generation.

The generator never touches :mod:`random`'s global state: every session owns
an :class:`XorShiftRandom` whose output depends only on the seed and on the
sequence of calls made against it, so a stored seed replays a layout exactly
on any machine.
"""
from __future__ import annotations

import secrets
import string
from typing import MutableSequence, Sequence, TypeVar

_T = TypeVar("_T")

MASK_32 = 0xFFFFFFFF
SEED_ALPHABET = string.ascii_lowercase + string.digits
SEED_LENGTH = 12


def hash_seed(seed: int | str) -> int:
    """Fold ``seed`` into a non-zero 32-bit state.

    String seeds weight each UTF-8 byte by ``position * 31`` (1-based
    positions).  Zero is the xorshift fixed point and is remapped to 1.
    """

    if isinstance(seed, str):
        state = 0
        for index, byte in enumerate(seed.encode("utf-8"), start=1):
            state += byte * (index * 31)
    else:
        state = int(seed)
    state &= MASK_32
    return state or 1


class XorShiftRandom:
    """Three-shift xorshift generator over a 32-bit state."""

    __slots__ = ("seed", "_state")

    def __init__(self, seed: int | str) -> None:
        self.seed = seed
        self._state = hash_seed(seed)

    @property
    def state(self) -> int:
        return self._state

    def next(self) -> int:
        """Advance the generator and return the raw 32-bit value."""

        state = self._state
        state ^= (state << 13) & MASK_32
        state ^= state >> 17
        state ^= (state << 5) & MASK_32
        self._state = state
        return state

    def random_int(self, minimum: int, maximum: int) -> int:
        """Return an integer ``N`` such that ``minimum <= N <= maximum``."""

        return minimum + self.next() % (maximum - minimum + 1)

    def random_float(self, minimum: float = 0.0, maximum: float = 1.0) -> float:
        """Return a float between ``minimum`` and ``maximum`` inclusive."""

        return minimum + (self.next() / MASK_32) * (maximum - minimum)

    def random_choice(self, sequence: Sequence[_T] | None) -> _T | None:
        """Return a uniformly chosen element, or ``None`` for an empty input."""

        if not sequence:
            return None
        return sequence[self.random_int(0, len(sequence) - 1)]

    def weighted_choice(self, items: Sequence[_T], weights: Sequence[float]) -> _T | None:
        """Pick from ``items`` with probability proportional to ``weights``.

        Returns ``None`` when there is nothing to pick or every weight is zero.
        """

        total = sum(weights)
        if not items or total <= 0:
            return None
        roll = self.random_float(0.0, total)
        for item, weight in zip(items, weights):
            if roll < weight:
                return item
            roll -= weight
        return items[-1]

    def shuffle(self, sequence: MutableSequence[_T]) -> None:
        """Fisher-Yates shuffle of ``sequence`` in place."""

        for index in range(len(sequence) - 1, 0, -1):
            other = self.random_int(0, index)
            sequence[index], sequence[other] = sequence[other], sequence[index]


def generate_seed(length: int = SEED_LENGTH) -> str:
    """Return a fresh lowercase alphanumeric seed for unseeded runs."""

    return "".join(secrets.choice(SEED_ALPHABET) for _ in range(length))


def rand_int(rng: XorShiftRandom, start: int, stop: int) -> int:
    """Return a random integer ``N`` such that ``start <= N <= stop``."""

    return rng.random_int(start, stop)

