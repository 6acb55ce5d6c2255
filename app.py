from __future__ import annotations

import dataclasses
import json
import logging
import queue
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from flask import (
    Flask,
    Response,
    abort,
    jsonify,
    request,
    send_from_directory,
    stream_with_context,
)

from config import SETTINGS, PuzzleConfig
from render import render_coords, render_layers, render_legend
from solver.models import ConfigurationError, SolveResult
from solver.orchestrator import AttemptLog, PuzzleOrchestrator

app = Flask(__name__)
app.secret_key = "block-puzzle-secret"

logger = logging.getLogger(__name__)

orchestrator = PuzzleOrchestrator()
PUZZLE_FILE = Path("puzzles.json")


def configure_logging() -> logging.Logger:
    root = logging.getLogger("solver")
    if root.handlers:
        return root
    try:
        SETTINGS.LOG_DIR.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(SETTINGS.LOG_DIR / "solver.log", encoding="utf-8")
    except OSError as exc:
        # Read-only deployments still serve requests, just without solver.log.
        logger.warning("solver log disabled: %s", exc)
        return root
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)
    root.setLevel(SETTINGS.LOG_LEVEL)
    return root


configure_logging()


def load_saved_puzzles() -> Dict[str, PuzzleConfig]:
    if not PUZZLE_FILE.exists():
        return {}
    try:
        raw_content = PUZZLE_FILE.read_text(encoding="utf-8")
    except OSError:
        return {}
    try:
        parsed = json.loads(raw_content)
    except json.JSONDecodeError:
        logger.warning("ignoring %s: not valid JSON", PUZZLE_FILE)
        return {}

    if not isinstance(parsed, list):
        return {}

    puzzles: Dict[str, PuzzleConfig] = {}
    for entry in parsed:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        try:
            puzzle = _apply_budgets(_puzzle_from_mapping(entry, name=name.strip()), entry)
            puzzle.catalog().expand()
        except (ConfigurationError, TypeError, ValueError) as exc:
            logger.warning("ignoring saved puzzle %r: %s", name, exc)
            continue
        puzzles[puzzle.name] = puzzle
    return puzzles


def available_puzzles() -> Dict[str, PuzzleConfig]:
    puzzles = dict(SETTINGS.PUZZLES)
    for name, puzzle in load_saved_puzzles().items():
        puzzles.setdefault(name, puzzle)
    return puzzles


class RunLogWriter:
    def __init__(self, path: Path, puzzle: Optional[PuzzleConfig] = None):
        self.path = path
        self._lock = threading.Lock()
        self._summary_written = False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        header = self._build_header(puzzle)
        with self._lock:
            with self.path.open("w", encoding="utf-8") as fh:
                for line in header:
                    fh.write(f"{line}\n")

    def _build_header(self, puzzle: Optional[PuzzleConfig]) -> List[str]:
        timestamp = datetime.now().astimezone().isoformat(timespec="seconds")
        header: List[str] = [
            "BLOCK PUZZLE RUN LOG",
            f"Generated at: {timestamp}",
            f"MAX_RESTARTS={SETTINGS.MAX_RESTARTS}",
            f"RUN_TIME_LIMIT_SEC={SETTINGS.RUN_TIME_LIMIT_SEC}",
        ]
        header.extend(self._puzzle_lines(puzzle))
        header.extend(["", "Events:"])
        return header

    def _puzzle_lines(self, puzzle: Optional[PuzzleConfig]) -> List[str]:
        if puzzle is None:
            return ["Puzzle: none selected"]
        lines: List[str] = [
            f"Puzzle: {puzzle.name}",
            "  Grid: {shape}".format(shape=" x ".join(str(side) for side in puzzle.grid_shape)),
            f"  Budgets: placement_tries={puzzle.placement_tries} recur_tries={puzzle.recur_tries} restarts={puzzle.restarts}",
        ]
        try:
            blocks = puzzle.catalog().expand()
        except ConfigurationError as exc:
            lines.append(f"  Blocks: invalid ({exc})")
            return lines
        if not blocks:
            lines.append("  Blocks: none")
            return lines
        lines.append("  Blocks:")
        for legend_line in render_legend(blocks).splitlines():
            lines.append(f"    - {legend_line}")
        lines.append(f"  Total blocks: {len(blocks)}")
        lines.append(f"  Total volume: {sum(block.volume for block in blocks)}")
        return lines

    def handle_event(self, event: Dict[str, object]) -> None:
        event_type = event.get("type")
        lines: List[str] = []
        if event_type == "run_started":
            lines.append(
                "Run started with {restarts} restarts (seed: {seed}).".format(
                    restarts=event.get("restarts"),
                    seed=event.get("seed") if event.get("seed") is not None else "random",
                )
            )
            feasibility = event.get("feasibility") or {}
            for issue in feasibility.get("issues", []) if isinstance(feasibility, dict) else []:
                lines.append(f"  Infeasible: {issue.get('description')}")
        elif event_type == "attempt_started":
            lines.append(
                "Attempt {idx}/{total} started (seed {seed}).".format(
                    idx=event.get("attempt_index"),
                    total=event.get("total_attempts"),
                    seed=event.get("seed"),
                )
            )
        elif event_type == "attempt_completed":
            elapsed = event.get("elapsed")
            elapsed_text = f"{elapsed:.2f}s" if isinstance(elapsed, (int, float)) else "unknown"
            lines.append(
                "Attempt {idx} completed in {elapsed} (success: {success}, placements tried: {placements}, backtracks: {backtracks}).".format(
                    idx=event.get("attempt_index"),
                    elapsed=elapsed_text,
                    success="yes" if event.get("success") else "no",
                    placements=event.get("placement_attempts"),
                    backtracks=event.get("backtracks"),
                )
            )
        elif event_type == "run_completed":
            elapsed = event.get("overall_elapsed")
            elapsed_text = f"{elapsed:.2f}s" if isinstance(elapsed, (int, float)) else "unknown"
            success = "yes" if event.get("success") else "no"
            lines.append(f"Run completed in {elapsed_text} (success: {success}).")
        elif event_type == "error":
            message = event.get("message")
            if message:
                lines.append(f"Error: {message}")

        if lines:
            self._append_lines(lines)

    def log_error(self, message: str) -> None:
        self._append_lines([f"Error: {message}"])

    def append_summary(
        self,
        logs: List[AttemptLog],
        result: Optional[SolveResult],
        error: Optional[str] = None,
    ) -> None:
        if self._summary_written:
            return
        lines: List[str] = ["", "Summary:"]
        if not logs:
            lines.append("  No search attempts")
        for attempt in logs:
            lines.append(
                "  Attempt {idx} | seed={seed} | elapsed={elapsed:.2f}s | placements={placements} | backtracks={backtracks} | success={success}".format(
                    idx=attempt.attempt_index,
                    seed=attempt.seed,
                    elapsed=attempt.elapsed,
                    placements=attempt.placement_attempts,
                    backtracks=attempt.backtracks,
                    success="yes" if attempt.success else "no",
                )
            )
        total_backtracks = sum(attempt.backtracks for attempt in logs)
        total_placements = sum(attempt.placement_attempts for attempt in logs)
        lines.append(f"  Total placement attempts: {total_placements:,}")
        lines.append(f"  Total backtracks performed: {total_backtracks:,}")
        if result:
            lines.append("")
            lines.append(f"Solution (attempt {result.attempt_index}):")
            for layout_line in render_layers(result.grid).splitlines():
                lines.append(f"  {layout_line}")
        lines.append("")
        if error:
            lines.append(f"Run ended with error: {error}")
        elif result:
            lines.append("Run ended with a successful solution.")
        else:
            lines.append("Run completed without a solution.")
        self._append_lines(lines)
        self._summary_written = True

    def _append_lines(self, lines: List[str]) -> None:
        if not lines:
            return
        with self._lock:
            with self.path.open("a", encoding="utf-8") as fh:
                for line in lines:
                    fh.write(f"{line}\n")


@dataclass
class RunState:
    queue: "queue.Queue[Dict[str, object]]"
    puzzle: PuzzleConfig
    seed: Optional[int] = None
    result: Optional[SolveResult] = None
    logs: Optional[List[AttemptLog]] = None
    error: Optional[str] = None
    done: bool = False
    thread: Optional[threading.Thread] = None
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    log_path: Optional[Path] = None
    log_writer: Optional[RunLogWriter] = None


class RunManager:
    def __init__(self) -> None:
        self._runs: Dict[str, RunState] = {}
        self._lock = threading.Lock()

    def start_run(self, puzzle: PuzzleConfig, seed: Optional[int] = None) -> str:
        run_id = uuid.uuid4().hex
        log_path = SETTINGS.LOG_DIR / "run_log.txt"
        log_writer = RunLogWriter(log_path, puzzle)
        state = RunState(
            queue.Queue(),
            puzzle=puzzle,
            seed=seed,
            log_path=log_path,
            log_writer=log_writer,
        )
        with self._lock:
            self._prune_finished()
            self._runs[run_id] = state
        thread = threading.Thread(
            target=self._worker,
            args=(run_id,),
            daemon=True,
        )
        state.thread = thread
        thread.start()
        return run_id

    def get_state(self, run_id: str) -> Optional[RunState]:
        with self._lock:
            return self._runs.get(run_id)

    def _prune_finished(self) -> None:
        cutoff = time.time() - SETTINGS.RUN_RETENTION_SEC
        expired = [
            run_id
            for run_id, state in self._runs.items()
            if state.done and state.finished_at is not None and state.finished_at < cutoff
        ]
        for run_id in expired:
            del self._runs[run_id]

    def _worker(self, run_id: str) -> None:
        state = self.get_state(run_id)
        if state is None:
            return

        log_writer = state.log_writer

        def progress(event: Dict[str, object]) -> None:
            event.setdefault("run_id", run_id)
            state.queue.put(event)
            if log_writer:
                log_writer.handle_event(event)

        logs: List[AttemptLog] = []
        try:
            result, logs = orchestrator.solve(state.puzzle, seed=state.seed, progress_callback=progress)
            state.result = result
            state.logs = logs
        except ValueError as exc:
            state.error = str(exc)
            if log_writer:
                log_writer.log_error(state.error)
            state.queue.put({"type": "error", "message": state.error, "run_id": run_id})
        finally:
            if log_writer:
                final_logs = state.logs if state.logs is not None else logs
                log_writer.append_summary(final_logs or [], state.result, state.error)
            state.finished_at = time.time()
            state.done = True
            state.queue.put(
                {
                    "type": "finished",
                    "success": state.result is not None,
                    "error": state.error,
                    "run_id": run_id,
                }
            )


run_manager = RunManager()


@app.route("/")
def index():
    return jsonify(
        {
            "default_puzzle": SETTINGS.DEFAULT_PUZZLE,
            "puzzles": [_puzzle_summary(puzzle) for puzzle in available_puzzles().values()],
        }
    )


@app.route("/solve", methods=["POST"])
def solve_puzzle():
    try:
        puzzle, seed = _parse_run_request(_request_data())
    except ValueError as exc:
        return jsonify({"success": False, "error": str(exc)}), 400
    log_path = SETTINGS.LOG_DIR / "run_log.txt"
    log_writer = RunLogWriter(log_path, puzzle)

    def progress(event: Dict[str, object]) -> None:
        log_writer.handle_event(event)

    try:
        result, logs = orchestrator.solve(puzzle, seed=seed, progress_callback=progress)
    except ValueError as exc:
        message = str(exc)
        log_writer.log_error(message)
        log_writer.append_summary([], None, message)
        return jsonify({"success": False, "error": message, "outputs": {"run_log": log_path.name}}), 400
    log_writer.append_summary(logs, result, None)
    outputs = _write_outputs(result, log_writer.path)
    return jsonify(_result_payload(puzzle, result, logs, outputs))


@app.route("/runs", methods=["POST"])
def start_run():
    try:
        puzzle, seed = _parse_run_request(_request_data())
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    run_id = run_manager.start_run(puzzle, seed)
    return jsonify({"run_id": run_id}), 202


@app.route("/runs/<run_id>/stream")
def stream_run(run_id: str):
    state = run_manager.get_state(run_id)
    if state is None:
        abort(404)

    def event_stream():
        while True:
            if state.done and state.queue.empty():
                break
            try:
                event = state.queue.get(timeout=1)
            except queue.Empty:
                continue
            yield f"data: {json.dumps(event)}\n\n"
        yield "event: end\ndata: {}\n\n"

    return Response(stream_with_context(event_stream()), mimetype="text/event-stream")


@app.route("/runs/<run_id>/result")
def run_result(run_id: str):
    state = run_manager.get_state(run_id)
    if state is None:
        abort(404)
    if not state.done:
        return "", 202
    logs = state.logs or []
    if state.error:
        outputs: Dict[str, str] = {}
        if state.log_path:
            outputs["run_log"] = state.log_path.name
        return jsonify({"success": False, "error": state.error, "outputs": outputs})
    outputs = _write_outputs(state.result, state.log_path)
    return jsonify(_result_payload(state.puzzle, state.result, logs, outputs))


@app.route("/outputs/<path:filename>")
def serve_output(filename: str):
    return send_from_directory(SETTINGS.OUTPUT_DIR.resolve(), filename)


@app.route("/logs/<path:filename>")
def serve_log(filename: str):
    return send_from_directory(SETTINGS.LOG_DIR.resolve(), filename, as_attachment=True)


def _request_data() -> Mapping[str, Any]:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def _parse_int(value: Any, name: str, *, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{name} must be an integer, got {value}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer") from None
    if number < minimum:
        raise ValueError(f"{name} must be at least {minimum}")
    return number


def _parse_shape(value: Any, name: str) -> tuple:
    if isinstance(value, str):
        parts = [part for part in value.replace(",", "x").split("x") if part.strip()]
        return tuple(_parse_int(part.strip(), name, minimum=1) for part in parts)
    if isinstance(value, (list, tuple)):
        return tuple(_parse_int(part, name, minimum=1) for part in value)
    raise ValueError(f"{name} must be a list of side lengths")


def _puzzle_from_mapping(data: Mapping[str, Any], name: str = "custom") -> PuzzleConfig:
    if "grid_shape" not in data:
        raise ValueError("grid_shape is required for a custom puzzle")
    grid_shape = _parse_shape(data["grid_shape"], "grid_shape")
    block_shapes = data.get("block_shapes")
    block_counts = data.get("block_counts")
    if isinstance(block_shapes, dict) and isinstance(block_counts, dict):
        return PuzzleConfig(
            name,
            grid_shape=grid_shape,
            block_shapes={key: _parse_shape(shape, f"block {key}") for key, shape in block_shapes.items()},
            block_counts={key: _parse_int(count, f"count for {key}", minimum=1) for key, count in block_counts.items()},
        )
    blocks = data.get("blocks")
    if not isinstance(blocks, list):
        raise ValueError("blocks must be a list of {shape, count} entries")
    shape_counts: Dict[tuple, int] = {}
    for entry in blocks:
        if not isinstance(entry, dict):
            raise ValueError("blocks must be a list of {shape, count} entries")
        shape = _parse_shape(entry.get("shape"), "block shape")
        if shape in shape_counts:
            raise ValueError(f"Block shape {shape} listed more than once")
        shape_counts[shape] = _parse_int(entry.get("count"), f"count for {shape}", minimum=1)
    return PuzzleConfig(name, grid_shape=grid_shape, shape_counts=tuple(shape_counts.items()))


def _apply_budgets(puzzle: PuzzleConfig, data: Mapping[str, Any]) -> PuzzleConfig:
    overrides: Dict[str, int] = {}
    for key, minimum in (("placement_tries", 0), ("recur_tries", 0), ("restarts", 1)):
        value = data.get(key)
        if value not in (None, ""):
            overrides[key] = _parse_int(value, key, minimum=minimum)
    if overrides:
        puzzle = dataclasses.replace(puzzle, **overrides)
    return puzzle


def _parse_run_request(data: Mapping[str, Any]):
    if "grid_shape" in data:
        puzzle = _puzzle_from_mapping(data)
    else:
        name = data.get("puzzle") or SETTINGS.DEFAULT_PUZZLE
        puzzle = available_puzzles().get(name)
        if puzzle is None:
            raise ValueError(f"Unknown puzzle: {name}")
    puzzle = _apply_budgets(puzzle, data)
    seed_value = data.get("seed")
    seed = None if seed_value in (None, "") else _parse_int(seed_value, "seed")
    return puzzle, seed


def _puzzle_summary(puzzle: PuzzleConfig) -> Dict[str, object]:
    return {
        "name": puzzle.name,
        "description": puzzle.description,
        "grid_shape": list(puzzle.grid_shape),
        "blocks": render_legend(puzzle.catalog().expand()).splitlines(),
        "placement_tries": puzzle.placement_tries,
        "recur_tries": puzzle.recur_tries,
        "restarts": puzzle.restarts,
    }


def _result_payload(
    puzzle: PuzzleConfig,
    result: Optional[SolveResult],
    logs: List[AttemptLog],
    outputs: Dict[str, str],
) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "success": result is not None,
        "puzzle": puzzle.name,
        "attempts": [attempt.to_dict() for attempt in logs],
        "outputs": outputs,
        "error": None if result else "No solution within the configured restarts",
    }
    if result:
        payload.update(
            grid=result.grid.to_nested(),
            layout=render_layers(result.grid),
            legend=render_legend(result.blocks),
            attempt_index=result.attempt_index,
            seed=result.seed,
        )
    return payload


def _write_outputs(
    result: SolveResult | None,
    log_path: Optional[Path] = None,
) -> Dict[str, str]:
    SETTINGS.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    outputs: Dict[str, str] = {}
    if result:
        layout_path = SETTINGS.OUTPUT_DIR / "layout.txt"
        coords_path = SETTINGS.OUTPUT_DIR / "coords.txt"
        _write_layout(layout_path, result)
        coords_path.write_text(render_coords(result.grid, result.blocks), encoding="utf-8")
        outputs["layout"] = layout_path.name
        outputs["coords"] = coords_path.name
    if log_path is not None:
        outputs["run_log"] = log_path.name
    return outputs


def _write_layout(path: Path, result: SolveResult) -> None:
    shape = " x ".join(str(side) for side in result.grid.shape)
    lines = [
        f"Solution for {result.puzzle_name} ({shape})",
        f"Found on attempt {result.attempt_index} (seed {result.seed})",
        "",
        render_layers(result.grid),
        "",
        "Blocks:",
        render_legend(result.blocks),
    ]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


if __name__ == "__main__":
    app.run(debug=True)
