"""Monte Carlo detection trials for pooled sequencing.

A trial sequences one site in one pool: `coverage` reads are drawn, each
carrying the resistant allele with probability equal to the cell's
expected frequency. The number of resistant reads is therefore

    k ~ Binomial(n = coverage, p = expected_frequency)

and the allele is detected iff k ≥ 1. A trial with k = 0 is a false
negative, since the spiked-in allele is always present.

Trials are folded into per-cell fail/success counters as they are drawn;
raw outcomes are held for at most one chunk at a time.

Each grid cell draws from its own RNG stream (see ``pooldetect.rng``),
so serial and threaded runs with the same master seed agree exactly.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

import numpy as np

from pooldetect.errors import InvalidParameter
from pooldetect.grid import grid_from_config, validate_coverage
from pooldetect.rng import cell_streams
from pooldetect.types import BINOMIAL_N_MAX, AggregateResult, GridCell, SimulationResult

logger = logging.getLogger(__name__)

DEFAULT_REPETITIONS = 1000
DEFAULT_CHUNK_SIZE = 10000


def _check_repetitions(repetitions) -> int:
    if isinstance(repetitions, bool) or not isinstance(repetitions, (int, np.integer)):
        raise InvalidParameter(f"repetitions must be an integer, got {repetitions!r}")
    if repetitions < 1:
        raise InvalidParameter(f"repetitions must be >= 1, got {repetitions}")
    return int(repetitions)


def _check_cell(cell: GridCell) -> None:
    # Hand-built cells skip build_grid; hold them to the sampler's hard range
    validate_coverage(cell.coverage, BINOMIAL_N_MAX)
    if not 0.0 <= cell.expected_frequency <= 1.0:
        raise InvalidParameter(
            f"expected_frequency must be in [0, 1], got {cell.expected_frequency}"
        )


# ═══════════════════════════════════════════════════════════════════════
# TRIALS
# ═══════════════════════════════════════════════════════════════════════

def draw_detections(
    cell: GridCell,
    repetitions: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw `repetitions` independent trials for one cell.

    Args:
        cell: Grid cell supplying n (coverage) and p (expected frequency).
        repetitions: Number of trials R.
        rng: Random source for this cell.

    Returns:
        (R,) bool array, True where at least one resistant read was seen.
    """
    repetitions = _check_repetitions(repetitions)
    _check_cell(cell)
    reads = rng.binomial(cell.coverage, cell.expected_frequency, size=repetitions)
    return reads > 0


def aggregate_outcomes(outcomes: np.ndarray) -> AggregateResult:
    """Tally a finished outcome array into fail/success counts."""
    outcomes = np.asarray(outcomes, dtype=bool).ravel()
    if outcomes.size == 0:
        raise InvalidParameter("cannot aggregate an empty outcome array")
    successes = int(np.count_nonzero(outcomes))
    return AggregateResult(
        fail_count=int(outcomes.size - successes),
        success_count=successes,
    )


def simulate_cell(
    cell: GridCell,
    repetitions: int,
    rng: np.random.Generator,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> AggregateResult:
    """Run R trials for one cell, folding each chunk into the counters.

    Memory is bounded by chunk_size regardless of R.

    Returns:
        AggregateResult with fail_count + success_count == repetitions.
    """
    repetitions = _check_repetitions(repetitions)
    _check_cell(cell)
    if chunk_size < 1:
        raise InvalidParameter(f"chunk_size must be >= 1, got {chunk_size}")

    fails = 0
    remaining = repetitions
    while remaining > 0:
        k = min(chunk_size, remaining)
        reads = rng.binomial(cell.coverage, cell.expected_frequency, size=k)
        fails += int(np.count_nonzero(reads == 0))
        remaining -= k

    return AggregateResult(fail_count=fails, success_count=repetitions - fails)


# ═══════════════════════════════════════════════════════════════════════
# GRID RUNS
# ═══════════════════════════════════════════════════════════════════════

def run_simulation(
    cells: Sequence[GridCell],
    repetitions: int = DEFAULT_REPETITIONS,
    seed: Optional[int] = None,
    parallel_workers: int = 1,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> SimulationResult:
    """Simulate every grid cell.

    Args:
        cells: Grid cells, e.g. from ``build_grid``.
        repetitions: Trials per cell.
        seed: Master seed. None draws fresh entropy; the value used is
            recorded in the result so the run can be replayed.
        parallel_workers: 1 runs serially; >1 uses a thread pool over cells.
        chunk_size: Trials drawn per fold step.

    Returns:
        SimulationResult in the same order as `cells`.
    """
    cells = tuple(cells)
    repetitions = _check_repetitions(repetitions)
    if len(cells) == 0:
        raise InvalidParameter("cells must be non-empty")
    if parallel_workers < 1:
        raise InvalidParameter(
            f"parallel_workers must be >= 1, got {parallel_workers}"
        )
    for cell in cells:
        _check_cell(cell)

    used_seed, streams = cell_streams(seed, len(cells))
    logger.info(
        "Simulating %d cells × %d trials (seed=%d, workers=%d)",
        len(cells), repetitions, used_seed, parallel_workers,
    )

    def _one(i: int) -> AggregateResult:
        return simulate_cell(cells[i], repetitions, streams[i], chunk_size)

    if parallel_workers == 1:
        aggregates = [_one(i) for i in range(len(cells))]
    else:
        with ThreadPoolExecutor(max_workers=parallel_workers) as pool:
            aggregates = list(pool.map(_one, range(len(cells))))

    return SimulationResult(
        cells=cells,
        aggregates=tuple(aggregates),
        repetitions=repetitions,
        seed=used_seed,
        parallel_workers=parallel_workers,
    )


def simulate_from_config(config) -> SimulationResult:
    """Build the configured grid and simulate it."""
    sim = config.simulation
    return run_simulation(
        grid_from_config(config),
        repetitions=sim.repetitions,
        seed=sim.seed,
        parallel_workers=sim.parallel_workers,
        chunk_size=sim.chunk_size,
    )
