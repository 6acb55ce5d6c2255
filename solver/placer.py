from __future__ import annotations

import random
from typing import Optional, Sequence

from .coordinates import offset_coordinates
from .models import BlockShape, Grid, GridShape, Placement


class RandomPlacer:
    """Drops one block at a random orientation and corner of a grid.

    The placer never mutates a grid: a successful attempt returns a new grid
    and a failed one returns ``None`` having only consumed ``rng`` state.
    """

    def __init__(self, grid_shape: Sequence[int], rng: Optional[random.Random] = None) -> None:
        self.grid_shape: GridShape = tuple(grid_shape)
        self.rng = rng or random.Random()
        self.attempts = 0
        self.successes = 0

    def propose(self, block_shape: Sequence[int]) -> Optional[Placement]:
        orientation = list(block_shape)
        self.rng.shuffle(orientation)
        oriented: BlockShape = tuple(orientation)
        for block_length, grid_length in zip(oriented, self.grid_shape):
            if block_length > grid_length:
                return None
        corner = tuple(
            self.rng.randint(0, grid_length - block_length)
            for block_length, grid_length in zip(oriented, self.grid_shape)
        )
        return Placement(corner, oriented, offset_coordinates(corner, oriented))

    def attempt_once(self, grid: Grid, block_shape: Sequence[int], identifier: str) -> Optional[Grid]:
        self.attempts += 1
        placement = self.propose(block_shape)
        if placement is None:
            return None
        for point in placement.cells:
            if grid.is_occupied(point):
                return None
        self.successes += 1
        return grid.with_occupied(placement.cells, identifier)

    def attempt(
        self,
        grid: Grid,
        block_shape: Sequence[int],
        identifier: str,
        max_attempts: int,
    ) -> Optional[Grid]:
        for _ in range(max_attempts):
            placed = self.attempt_once(grid, block_shape, identifier)
            if placed is not None:
                return placed
        return None


def attempt_once(
    grid: Grid,
    block_shape: Sequence[int],
    identifier: str,
    grid_shape: Sequence[int],
    rng: random.Random,
) -> Optional[Grid]:
    return RandomPlacer(grid_shape, rng).attempt_once(grid, block_shape, identifier)


def attempt_bounded(
    grid: Grid,
    block_shape: Sequence[int],
    identifier: str,
    grid_shape: Sequence[int],
    rng: random.Random,
    max_attempts: int,
) -> Optional[Grid]:
    return RandomPlacer(grid_shape, rng).attempt(grid, block_shape, identifier, max_attempts)


__all__ = ["RandomPlacer", "attempt_once", "attempt_bounded"]
