from __future__ import annotations

from functools import lru_cache
from itertools import product
from typing import Sequence, Tuple

Coordinates = Tuple[int, ...]


@lru_cache(maxsize=512)
def _box(shape: Tuple[int, ...]) -> Tuple[Coordinates, ...]:
    return tuple(product(*(range(length) for length in shape)))


def local_coordinates(shape: Sequence[int]) -> Tuple[Coordinates, ...]:
    """Return every coordinate tuple inside a box with the given side lengths.

    Coordinates start at ``(0, 0, ...)`` and exclude the upper bound on every
    axis. The last axis varies fastest. An empty shape yields a single empty
    tuple; any zero side length yields no coordinates at all.
    """
    return _box(tuple(shape))


def offset_coordinates(corner: Sequence[int], shape: Sequence[int]) -> Tuple[Coordinates, ...]:
    origin = tuple(corner)
    return tuple(
        tuple(base + delta for base, delta in zip(origin, local))
        for local in local_coordinates(shape)
    )
