from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .coordinates import local_coordinates

BlockShape = Tuple[int, ...]
GridShape = Tuple[int, ...]
Coordinates = Tuple[int, ...]


class ConfigurationError(ValueError):
    """Raised for malformed puzzle configuration (catalog, shapes or budgets)."""


def normalize_shape(shape: Sequence[int], what: str = "shape") -> Tuple[int, ...]:
    try:
        values = tuple(shape)
    except TypeError:
        raise ConfigurationError(f"{what} must be a sequence of side lengths, got {shape!r}") from None
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"{what} {values!r} must contain integers only")
        if value <= 0:
            raise ConfigurationError(f"{what} {values!r} must contain positive side lengths")
    return values


def shape_volume(shape: Sequence[int]) -> int:
    volume = 1
    for length in shape:
        volume *= length
    return volume


@dataclass(frozen=True)
class Block:
    identifier: str
    shape: BlockShape

    @property
    def volume(self) -> int:
        return shape_volume(self.shape)

    @property
    def dimensionality(self) -> int:
        return len(self.shape)


@dataclass(frozen=True)
class Placement:
    corner: Coordinates
    orientation: BlockShape
    cells: Tuple[Coordinates, ...]


@dataclass(frozen=True)
class Grid:
    """Immutable N-dimensional grid of optional block identifiers.

    Cells are stored flat in row-major order (last axis fastest), matching the
    order produced by :func:`solver.coordinates.local_coordinates`. Every
    mutation returns a new grid; the receiver is never modified.
    """

    shape: GridShape
    cells: Tuple[Optional[str], ...]

    @classmethod
    def empty(cls, shape: Sequence[int]) -> "Grid":
        grid_shape = normalize_shape(shape, "grid shape")
        return cls(grid_shape, (None,) * shape_volume(grid_shape))

    @property
    def dimensionality(self) -> int:
        return len(self.shape)

    @property
    def cell_count(self) -> int:
        return len(self.cells)

    @property
    def occupied_count(self) -> int:
        return sum(1 for cell in self.cells if cell is not None)

    @property
    def is_full(self) -> bool:
        return all(cell is not None for cell in self.cells)

    def get(self, coords: Sequence[int]) -> Optional[str]:
        return self.cells[self._checked_index(coords)]

    def is_occupied(self, coords: Sequence[int]) -> bool:
        return self.cells[self._checked_index(coords)] is not None

    def with_occupied(self, coords: Iterable[Sequence[int]], identifier: str) -> "Grid":
        cells = list(self.cells)
        for point in coords:
            cells[self._checked_index(point)] = identifier
        return Grid(self.shape, tuple(cells))

    def identifiers(self) -> List[str]:
        seen: Dict[str, None] = {}
        for cell in self.cells:
            if cell is not None:
                seen.setdefault(cell, None)
        return list(seen)

    def region(self, identifier: str) -> FrozenSet[Coordinates]:
        return frozenset(
            point
            for point, cell in zip(local_coordinates(self.shape), self.cells)
            if cell == identifier
        )

    def to_nested(self):
        """Return the grid as nested tuples so ``nested[x][y]...`` yields a cell."""
        if not self.shape:
            return self.cells[0]
        level: List = list(self.cells)
        for length in reversed(self.shape[1:]):
            level = [tuple(level[i:i + length]) for i in range(0, len(level), length)]
        return tuple(level)

    def _checked_index(self, coords: Sequence[int]) -> int:
        point = tuple(coords)
        if len(point) != len(self.shape):
            raise IndexError(
                f"expected {len(self.shape)} coordinates for grid {self.shape}, got {point!r}"
            )
        index = 0
        for value, length in zip(point, self.shape):
            if not 0 <= value < length:
                raise IndexError(f"coordinates {point!r} outside grid {self.shape}")
            index = index * length + value
        return index


@dataclass
class SolveRequest:
    grid_shape: GridShape
    blocks: List[Block]
    placement_tries: int
    recur_tries: int


@dataclass
class SolveResult:
    grid: Grid
    puzzle_name: str
    blocks: List[Block]
    attempt_index: int
    seed: Optional[int]


@dataclass
class SolverStats:
    placement_attempts: int = 0
    placements: int = 0
    recursion_attempts: int = 0
    backtracks: int = 0
    elapsed: float = 0.0
