from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from config import SETTINGS, PuzzleConfig

from .backtracking_solver import BacktrackingSolver, build_request
from .feasibility import check_feasibility
from .models import Grid, SolveResult

logger = logging.getLogger(__name__)


@dataclass
class AttemptLog:
    attempt_index: int
    seed: int
    elapsed: float
    placement_attempts: int
    recursion_attempts: int
    backtracks: int
    success: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "attempt_index": self.attempt_index,
            "seed": self.seed,
            "elapsed": round(self.elapsed, 4),
            "placement_attempts": self.placement_attempts,
            "recursion_attempts": self.recursion_attempts,
            "backtracks": self.backtracks,
            "success": self.success,
        }


class PuzzleOrchestrator:
    """Runs independent Monte Carlo searches until one of them fills the grid.

    Every restart owns a fresh ``random.Random`` whose seed is drawn from a
    master stream, so a run seeded with the same value replays exactly.
    """

    def __init__(
        self,
        max_restarts: Optional[int] = None,
        time_limit_sec: Optional[float] = None,
        progress_interval_sec: Optional[float] = None,
    ) -> None:
        self.max_restarts = max_restarts if max_restarts is not None else SETTINGS.MAX_RESTARTS
        self.time_limit_sec = time_limit_sec if time_limit_sec is not None else SETTINGS.RUN_TIME_LIMIT_SEC
        self.progress_interval_sec = (
            progress_interval_sec
            if progress_interval_sec is not None
            else SETTINGS.PROGRESS_INTERVAL_SEC
        )

    def solve(
        self,
        puzzle: PuzzleConfig,
        seed: Optional[int] = None,
        progress_callback: Optional[Callable[[Dict[str, object]], None]] = None,
    ) -> Tuple[Optional[SolveResult], List[AttemptLog]]:
        def emit(event_type: str, **payload: object) -> None:
            if progress_callback:
                event = {"type": event_type}
                event.update(payload)
                progress_callback(event)

        request = build_request(
            puzzle.grid_shape,
            puzzle.catalog(),
            puzzle.placement_tries,
            puzzle.recur_tries,
        )
        restarts = max(0, min(puzzle.restarts, self.max_restarts))
        report = check_feasibility(request.grid_shape, request.blocks)
        emit(
            "run_started",
            puzzle=puzzle.name,
            grid_shape=list(request.grid_shape),
            block_count=len(request.blocks),
            placement_tries=request.placement_tries,
            recur_tries=request.recur_tries,
            restarts=restarts,
            seed=seed,
            feasibility=report.to_dict(),
        )
        overall_start = time.time()
        logs: List[AttemptLog] = []
        if request.blocks and not report.feasible:
            logger.info(
                "puzzle %s cannot be tiled: %s",
                puzzle.name,
                "; ".join(issue.description for issue in report.issues),
            )
            emit("run_completed", success=False, overall_elapsed=0.0, attempts=0)
            return None, logs

        master = random.Random(seed)
        for attempt_index in range(1, restarts + 1):
            if self.time_limit_sec is not None and time.time() - overall_start >= self.time_limit_sec:
                logger.info("puzzle %s: time limit reached after %d attempts", puzzle.name, len(logs))
                break
            attempt_seed = master.getrandbits(32)
            emit(
                "attempt_started",
                attempt_index=attempt_index,
                total_attempts=restarts,
                seed=attempt_seed,
                overall_elapsed=time.time() - overall_start,
            )

            def report_solver_progress(solver_instance: BacktrackingSolver) -> None:
                emit(
                    "attempt_progress",
                    attempt_index=attempt_index,
                    total_attempts=restarts,
                    placement_attempts=solver_instance.stats.placement_attempts,
                    recursion_attempts=solver_instance.stats.recursion_attempts,
                    backtracks=solver_instance.stats.backtracks,
                    attempt_elapsed=solver_instance.stats.elapsed,
                    overall_elapsed=time.time() - overall_start,
                )

            solver = BacktrackingSolver(
                request,
                random.Random(attempt_seed),
                progress_callback=report_solver_progress if progress_callback else None,
                progress_interval_sec=self.progress_interval_sec,
            )
            grid: Optional[Grid] = solver.solve()
            attempt = AttemptLog(
                attempt_index=attempt_index,
                seed=attempt_seed,
                elapsed=solver.stats.elapsed,
                placement_attempts=solver.stats.placement_attempts,
                recursion_attempts=solver.stats.recursion_attempts,
                backtracks=solver.stats.backtracks,
                success=grid is not None,
            )
            logs.append(attempt)
            logger.info(
                "puzzle %s attempt %d/%d (seed %d): %s in %.2fs, %d backtracks",
                puzzle.name,
                attempt_index,
                restarts,
                attempt_seed,
                "solved" if grid is not None else "no solution",
                attempt.elapsed,
                attempt.backtracks,
            )
            emit(
                "attempt_completed",
                overall_elapsed=time.time() - overall_start,
                **attempt.to_dict(),
            )
            if grid is not None:
                result = SolveResult(
                    grid=grid,
                    puzzle_name=puzzle.name,
                    blocks=list(request.blocks),
                    attempt_index=attempt_index,
                    seed=attempt_seed,
                )
                emit(
                    "run_completed",
                    success=True,
                    overall_elapsed=time.time() - overall_start,
                    attempts=len(logs),
                )
                return result, logs

        emit(
            "run_completed",
            success=False,
            overall_elapsed=time.time() - overall_start,
            attempts=len(logs),
        )
        return None, logs


__all__ = ["PuzzleOrchestrator", "AttemptLog"]
