from __future__ import annotations

import string
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .models import Block, BlockShape, ConfigurationError, normalize_shape

IDENTIFIER_ALPHABET = string.ascii_uppercase


def _checked_count(count: object, owner: str) -> int:
    if isinstance(count, bool) or not isinstance(count, int):
        raise ConfigurationError(f"Block count for {owner} must be an integer, got {count!r}")
    if count <= 0:
        raise ConfigurationError(f"Block count for {owner} must be positive, got {count}")
    return count


def _block_shape(raw_shape: Sequence[int], what: str) -> BlockShape:
    shape = normalize_shape(raw_shape, what)
    if not shape:
        raise ConfigurationError(f"{what} must have at least one side length")
    return shape


def _number_copies(name: str, shape: BlockShape, count: int) -> List[Block]:
    return [Block(f"{name}{index}", shape) for index in range(1, count + 1)]


def expand(shape_counts: Mapping[Sequence[int], int]) -> List[Block]:
    """Flatten ``{shape: count}`` into blocks named ``A1``, ``A2``, ``B1`` ...

    Shapes are ordered lexicographically and each group takes the next letter,
    so the result depends only on the mapping's contents, never on its
    iteration order.
    """
    groups: Dict[BlockShape, int] = {}
    for raw_shape, count in shape_counts.items():
        shape = _block_shape(raw_shape, "block shape")
        if shape in groups:
            raise ConfigurationError(f"Block shape {shape!r} listed more than once")
        groups[shape] = _checked_count(count, f"shape {shape!r}")
    if len(groups) > len(IDENTIFIER_ALPHABET):
        raise ConfigurationError(
            f"{len(groups)} distinct block shapes exceed the {len(IDENTIFIER_ALPHABET)} available identifiers"
        )
    blocks: List[Block] = []
    for letter, shape in zip(IDENTIFIER_ALPHABET, sorted(groups)):
        blocks.extend(_number_copies(letter, shape, groups[shape]))
    return blocks


def expand_named(
    block_shapes: Mapping[str, Sequence[int]],
    block_counts: Mapping[str, int],
) -> List[Block]:
    for name in list(block_shapes) + list(block_counts):
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"Block names must be non-empty strings, got {name!r}")
    missing_counts = sorted(set(block_shapes) - set(block_counts))
    if missing_counts:
        raise ConfigurationError(f"No count given for blocks: {', '.join(missing_counts)}")
    missing_shapes = sorted(set(block_counts) - set(block_shapes))
    if missing_shapes:
        raise ConfigurationError(f"No shape given for blocks: {', '.join(missing_shapes)}")
    blocks: List[Block] = []
    for name in sorted(block_shapes):
        shape = _block_shape(block_shapes[name], f"block {name} shape")
        count = _checked_count(block_counts[name], f"block {name}")
        blocks.extend(_number_copies(name, shape, count))
    identifiers = [block.identifier for block in blocks]
    if len(set(identifiers)) != len(identifiers):
        raise ConfigurationError("Block names produce clashing identifiers (e.g. 'A' x11 and 'A1')")
    return blocks


@dataclass(frozen=True)
class BlockCatalog:
    """Puzzle block inventory in one of its two configuration forms."""

    shape_counts: Optional[Tuple[Tuple[BlockShape, int], ...]] = None
    named_shapes: Optional[Tuple[Tuple[str, BlockShape], ...]] = None
    named_counts: Optional[Tuple[Tuple[str, int], ...]] = None

    @classmethod
    def from_shape_counts(cls, shape_counts: Mapping[Sequence[int], int]) -> "BlockCatalog":
        return cls(shape_counts=tuple(shape_counts.items()))

    @classmethod
    def from_named(
        cls,
        block_shapes: Mapping[str, Sequence[int]],
        block_counts: Mapping[str, int],
    ) -> "BlockCatalog":
        return cls(
            named_shapes=tuple(block_shapes.items()),
            named_counts=tuple(block_counts.items()),
        )

    def expand(self) -> List[Block]:
        if self.named_shapes is not None or self.named_counts is not None:
            return expand_named(dict(self.named_shapes or ()), dict(self.named_counts or ()))
        return expand(dict(self.shape_counts or ()))

    @property
    def total_volume(self) -> int:
        return sum(block.volume for block in self.expand())

    def dimensionalities(self) -> List[int]:
        return sorted({block.dimensionality for block in self.expand()})
