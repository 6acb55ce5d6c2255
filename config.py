from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from solver.catalog import BlockCatalog


@dataclass(frozen=True)
class PuzzleConfig:
    """A packing puzzle together with the search budgets tuned for it.

    Attributes:
        placement_tries: Random placements tried for one block before the
            current level counts the attempt as failed.
        recur_tries: Attempts made at each search level before backtracking.
        restarts: Independent whole-search restarts made by the orchestrator.
    """
    name: str
    grid_shape: Tuple[int, ...]
    block_shapes: Dict[str, Tuple[int, ...]] = field(default_factory=dict, hash=False)
    block_counts: Dict[str, int] = field(default_factory=dict, hash=False)
    shape_counts: Tuple[Tuple[Tuple[int, ...], int], ...] = ()
    placement_tries: int = 10000
    recur_tries: int = 20
    restarts: int = 10
    description: str = ""

    def catalog(self) -> BlockCatalog:
        if self.shape_counts:
            return BlockCatalog.from_shape_counts(dict(self.shape_counts))
        return BlockCatalog.from_named(self.block_shapes, self.block_counts)


class Settings:
    # Three 1x1x1 cubes and six 1x2x2 plates fill a 3x3x3 box.
    SLOTHOUBER_GRAATSMA = PuzzleConfig(
        "slothouber-graatsma",
        grid_shape=(3, 3, 3),
        block_shapes={"A": (1, 1, 1), "B": (1, 2, 2)},
        block_counts={"A": 3, "B": 6},
        placement_tries=10000,
        recur_tries=20,
        restarts=10,
        description="Slothouber-Graatsma puzzle: 3 unit cubes and 6 1x2x2 blocks in a 3x3x3 box.",
    )

    # Much harder for the random search; expect many restarts.
    CONWAY = PuzzleConfig(
        "conway",
        grid_shape=(5, 5, 5),
        block_shapes={"A": (1, 1, 3), "B": (1, 2, 2), "C": (2, 2, 2), "D": (1, 2, 4)},
        block_counts={"A": 3, "B": 1, "C": 1, "D": 13},
        placement_tries=10000,
        recur_tries=10,
        restarts=50,
        description="Conway's puzzle: 3 1x1x3, 1 1x2x2, 1 2x2x2 and 13 1x2x4 blocks in a 5x5x5 box.",
    )

    PUZZLES = {
        SLOTHOUBER_GRAATSMA.name: SLOTHOUBER_GRAATSMA,
        CONWAY.name: CONWAY,
    }
    DEFAULT_PUZZLE = SLOTHOUBER_GRAATSMA.name

    MAX_RESTARTS = 100
    # ``None`` lets a run use every configured restart regardless of wall time.
    RUN_TIME_LIMIT_SEC: Optional[float] = 600.0
    PROGRESS_INTERVAL_SEC = 0.25
    # Finished runs stay readable through /runs/<id>/result for this long.
    RUN_RETENTION_SEC = 3600.0

    OUTPUT_DIR = Path("outputs")
    LOG_DIR = Path("static")
    LOG_LEVEL = "INFO"


SETTINGS = Settings()
