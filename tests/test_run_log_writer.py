from pathlib import Path

import pytest

from app import RunLogWriter
from config import PuzzleConfig
from solver.models import Block, Grid, SolveResult
from solver.orchestrator import AttemptLog


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    return tmp_path / "run.log"


def _attempt(index: int, backtracks: int, success: bool) -> AttemptLog:
    return AttemptLog(
        attempt_index=index,
        seed=100 + index,
        elapsed=1.0,
        placement_attempts=10,
        recursion_attempts=5,
        backtracks=backtracks,
        success=success,
    )


def _sample_result() -> SolveResult:
    grid = Grid.empty((2, 2)).with_occupied([(0, 0), (0, 1)], "A1").with_occupied([(1, 0), (1, 1)], "A2")
    return SolveResult(
        grid=grid,
        puzzle_name="strip",
        blocks=[Block("A1", (1, 2)), Block("A2", (1, 2))],
        attempt_index=1,
        seed=101,
    )


def test_append_summary_lists_solution(log_path: Path) -> None:
    writer = RunLogWriter(log_path)

    writer.append_summary([_attempt(1, 0, True)], _sample_result())

    content = log_path.read_text(encoding="utf-8")
    assert "Solution (attempt 1):" in content
    assert "  A1 A1" in content
    assert "  A2 A2" in content
    assert "Run ended with a successful solution." in content


def test_header_includes_timestamp_and_puzzle(log_path: Path) -> None:
    puzzle = PuzzleConfig(
        "plates",
        grid_shape=(3, 3, 3),
        block_shapes={"A": (1, 1, 1), "B": (1, 2, 2)},
        block_counts={"A": 3, "B": 6},
    )
    RunLogWriter(log_path, puzzle)

    content = log_path.read_text(encoding="utf-8")
    assert "Generated at:" in content
    assert "Puzzle: plates" in content
    assert "  Grid: 3 x 3 x 3" in content
    assert "    - 1x1x1: 3 blocks (A1, A2, A3)" in content
    assert "  Total blocks: 9" in content
    assert "  Total volume: 27" in content


def test_summary_includes_total_backtracks(log_path: Path) -> None:
    writer = RunLogWriter(log_path)

    writer.append_summary([_attempt(1, 1234, False), _attempt(2, 4321, False)], None)

    content = log_path.read_text(encoding="utf-8")
    assert "Total backtracks performed: 5,555" in content
    assert "Total placement attempts: 20" in content
    assert "Run completed without a solution." in content


def test_summary_written_once_and_records_error(log_path: Path) -> None:
    writer = RunLogWriter(log_path)

    writer.log_error("boom")
    writer.append_summary([], None, "boom")
    writer.append_summary([_attempt(1, 0, False)], None)

    content = log_path.read_text(encoding="utf-8")
    assert "Error: boom" in content
    assert "No search attempts" in content
    assert content.count("Summary:") == 1
    assert "Run ended with error: boom" in content


def test_events_are_appended(log_path: Path) -> None:
    writer = RunLogWriter(log_path)

    writer.handle_event({"type": "run_started", "restarts": 3, "seed": None, "feasibility": {"issues": []}})
    writer.handle_event({"type": "attempt_started", "attempt_index": 1, "total_attempts": 3, "seed": 7})
    writer.handle_event({"type": "attempt_progress", "attempt_index": 1})
    writer.handle_event({"type": "run_completed", "overall_elapsed": 0.5, "success": False})

    lines = log_path.read_text(encoding="utf-8").splitlines()
    events = lines[lines.index("Events:") + 1:]
    assert events == [
        "Run started with 3 restarts (seed: random).",
        "Attempt 1/3 started (seed 7).",
        "Run completed in 0.50s (success: no).",
    ]
