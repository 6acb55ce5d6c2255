from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .models import Block, shape_volume


@dataclass
class FeasibilityIssue:
    """One necessary condition the block inventory fails to meet."""

    key: str
    description: str

    def to_dict(self) -> Dict[str, object]:
        return {"key": self.key, "description": self.description}


@dataclass
class FeasibilityReport:
    grid_volume: int
    block_volume: int
    issues: List[FeasibilityIssue] = field(default_factory=list)

    @property
    def feasible(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict[str, object]:
        return {
            "feasible": self.feasible,
            "grid_volume": self.grid_volume,
            "block_volume": self.block_volume,
            "issues": [issue.to_dict() for issue in self.issues],
        }


def check_feasibility(grid_shape: Sequence[int], blocks: Sequence[Block]) -> FeasibilityReport:
    """Report the cheap necessary conditions for an exact tiling.

    Passing the check does not mean a tiling exists; failing it means none can.
    """
    grid_volume = shape_volume(grid_shape)
    block_volume = sum(block.volume for block in blocks)
    report = FeasibilityReport(grid_volume=grid_volume, block_volume=block_volume)
    if block_volume != grid_volume:
        report.issues.append(
            FeasibilityIssue(
                key="volume",
                description=f"Blocks cover {block_volume} cells but the grid has {grid_volume}.",
            )
        )
    sorted_grid = sorted(grid_shape)
    seen_shapes = set()
    for block in blocks:
        if block.shape in seen_shapes:
            continue
        seen_shapes.add(block.shape)
        # sorted sides against sorted sides decides whether any permutation fits
        if any(side > limit for side, limit in zip(sorted(block.shape), sorted_grid)):
            report.issues.append(
                FeasibilityIssue(
                    key="fit",
                    description=f"Block {block.identifier} {block.shape} does not fit the grid in any orientation.",
                )
            )
    return report


__all__ = ["FeasibilityIssue", "FeasibilityReport", "check_feasibility"]
