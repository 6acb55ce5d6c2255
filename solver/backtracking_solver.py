from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence, Union

from .catalog import BlockCatalog
from .feasibility import check_feasibility
from .models import Block, ConfigurationError, Grid, SolveRequest, SolverStats, normalize_shape
from .placer import RandomPlacer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[["BacktrackingSolver"], None]


@dataclass
class _Frame:
    grid: Grid
    remaining: List[Block]
    attempts_left: int


class BacktrackingSolver:
    """Monte Carlo backtracker over random block placements.

    Each level picks a random unplaced block, tries to drop it somewhere at
    random (``placement_tries`` times) and descends. A level that fails
    ``recur_tries`` times hands control back to its parent, which tries again
    with a fresh random choice. Levels live on an explicit frame stack, so the
    depth of the search is not limited by the interpreter's recursion limit.
    """

    def __init__(
        self,
        request: SolveRequest,
        rng: Optional[random.Random] = None,
        progress_callback: Optional[ProgressCallback] = None,
        progress_interval_sec: float = 0.25,
    ) -> None:
        self.request = request
        self.rng = rng or random.Random()
        self.placer = RandomPlacer(request.grid_shape, self.rng)
        self.stats = SolverStats()
        self._progress_callback = progress_callback
        self._progress_interval = progress_interval_sec
        self._start_time = 0.0
        self._last_progress_report = 0.0

    def solve(self, grid: Optional[Grid] = None) -> Optional[Grid]:
        start = grid if grid is not None else Grid.empty(self.request.grid_shape)
        self._start_time = time.time()
        try:
            return self._search(start, list(self.request.blocks))
        finally:
            self._sync_stats()
            logger.debug(
                "search finished: placements=%d/%d recursion_attempts=%d backtracks=%d elapsed=%.3fs",
                self.stats.placements,
                self.stats.placement_attempts,
                self.stats.recursion_attempts,
                self.stats.backtracks,
                self.stats.elapsed,
            )

    def _search(self, grid: Grid, blocks: List[Block]) -> Optional[Grid]:
        if not blocks:
            return grid
        stack: List[_Frame] = [_Frame(grid, blocks, self.request.recur_tries)]
        while stack:
            frame = stack[-1]
            if frame.attempts_left <= 0:
                stack.pop()
                self.stats.backtracks += 1
                continue
            frame.attempts_left -= 1
            self.stats.recursion_attempts += 1
            self._report_progress()
            block, rest = self._select_block(frame.remaining)
            placed = self.placer.attempt(
                frame.grid,
                block.shape,
                block.identifier,
                self.request.placement_tries,
            )
            if placed is None:
                continue
            if not rest:
                return placed
            stack.append(_Frame(placed, rest, self.request.recur_tries))
        return None

    def _select_block(self, remaining: List[Block]):
        index = self.rng.randrange(len(remaining))
        return remaining[index], remaining[:index] + remaining[index + 1:]

    def _sync_stats(self) -> None:
        self.stats.placement_attempts = self.placer.attempts
        self.stats.placements = self.placer.successes
        self.stats.elapsed = time.time() - self._start_time

    def _report_progress(self) -> None:
        if not self._progress_callback:
            return
        now = time.time()
        if now - self._last_progress_report < self._progress_interval:
            return
        self._last_progress_report = now
        self._sync_stats()
        self._progress_callback(self)


def _checked_budget(value: object, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def build_request(
    grid_shape: Sequence[int],
    block_catalog: Union[BlockCatalog, Mapping[Sequence[int], int]],
    placement_tries: int,
    recur_tries: int,
) -> SolveRequest:
    """Validate a puzzle configuration and flatten it into a solve request."""
    shape = normalize_shape(grid_shape, "grid shape")
    catalog = (
        block_catalog
        if isinstance(block_catalog, BlockCatalog)
        else BlockCatalog.from_shape_counts(block_catalog)
    )
    blocks = catalog.expand()
    for block in blocks:
        if block.dimensionality != len(shape):
            raise ConfigurationError(
                f"Block {block.identifier} has {block.dimensionality} dimensions "
                f"but the grid {shape} has {len(shape)}"
            )
    return SolveRequest(
        grid_shape=shape,
        blocks=blocks,
        placement_tries=_checked_budget(placement_tries, "placement_tries"),
        recur_tries=_checked_budget(recur_tries, "recur_tries"),
    )


def solve(
    grid_shape: Sequence[int],
    block_catalog: Union[BlockCatalog, Mapping[Sequence[int], int]],
    placement_tries: int,
    recur_tries: int,
    rng: Optional[random.Random] = None,
) -> Optional[Grid]:
    """Return a grid with every block placed, or ``None`` if the search gave up.

    ``None`` is the ordinary outcome of an under-budgeted or infeasible search;
    only malformed configuration raises (:class:`ConfigurationError`). A
    catalog whose volume does not match the grid never yields a grid.
    """
    request = build_request(grid_shape, block_catalog, placement_tries, recur_tries)
    if request.blocks:
        report = check_feasibility(request.grid_shape, request.blocks)
        if not report.feasible:
            logger.debug(
                "skipping search: %s",
                "; ".join(issue.description for issue in report.issues),
            )
            return None
    return BacktrackingSolver(request, rng).solve()


__all__ = ["BacktrackingSolver", "ProgressCallback", "build_request", "solve"]
