from __future__ import annotations

from itertools import product
from typing import Dict, List, Sequence, Tuple

from solver.models import Block, Grid

EMPTY_CELL = "."


def _fmt_shape(shape: Sequence[int]) -> str:
    return "x".join(str(length) for length in shape) or "()"


def render_layers(grid: Grid) -> str:
    """Render a grid as 2-D text slices, one block identifier per cell.

    The last two axes form the rows and columns of each slice; every leading
    axis combination gets its own ``layer`` header.
    """
    width = max([len(EMPTY_CELL)] + [len(name) for name in grid.identifiers()])

    def cell_text(coords: Tuple[int, ...]) -> str:
        value = grid.get(coords)
        return (value if value is not None else EMPTY_CELL).ljust(width)

    if grid.dimensionality == 0:
        return cell_text(()).rstrip()
    if grid.dimensionality == 1:
        return " ".join(cell_text((x,)) for x in range(grid.shape[0])).rstrip()

    leading = grid.shape[:-2]
    rows, columns = grid.shape[-2:]
    blocks: List[str] = []
    for prefix in product(*(range(length) for length in leading)):
        lines: List[str] = []
        if prefix:
            lines.append(f"layer {', '.join(str(index) for index in prefix)}:")
        for row in range(rows):
            lines.append(
                " ".join(cell_text(prefix + (row, column)) for column in range(columns)).rstrip()
            )
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def render_legend(blocks: Sequence[Block]) -> str:
    groups: Dict[Tuple[int, ...], List[str]] = {}
    for block in blocks:
        groups.setdefault(block.shape, []).append(block.identifier)
    lines = []
    for shape, identifiers in groups.items():
        count = len(identifiers)
        noun = "block" if count == 1 else "blocks"
        lines.append(f"{_fmt_shape(shape)}: {count} {noun} ({', '.join(identifiers)})")
    return "\n".join(lines)


def render_coords(grid: Grid, blocks: Sequence[Block]) -> str:
    axes = range(grid.dimensionality)
    header = ["BlockID", "Shape"]
    header.extend(f"Corner{axis}" for axis in axes)
    header.extend(f"Extent{axis}" for axis in axes)
    lines = [",".join(header)]
    for block in sorted(blocks, key=lambda b: b.identifier):
        region = grid.region(block.identifier)
        if not region:
            continue
        corner = [min(point[axis] for point in region) for axis in axes]
        extent = [max(point[axis] for point in region) - corner[axis] + 1 for axis in axes]
        row = [block.identifier, _fmt_shape(block.shape)]
        row.extend(str(value) for value in corner)
        row.extend(str(value) for value in extent)
        lines.append(",".join(row))
    return "\n".join(lines)


__all__ = ["render_layers", "render_legend", "render_coords", "EMPTY_CELL"]
