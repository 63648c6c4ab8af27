"""Core data types for pooldetect.

This module is the single source of truth for:
  - Model constants (ploidy, alleles per homozygous carrier, sampler range)
  - GridCell: one (coverage, pool size) combination with its implied frequency
  - AggregateResult: per-cell fail/success tallies
  - RateRecord: per-cell false-negative rate on the coverage-per-individual axis
  - SimulationResult: the ordered collection returned by a simulation run

All modules import these types from here.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# MODEL CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

PLOIDY = 2                   # Diploid individuals
ALLELES_PER_HOMOZYGOTE = 2   # Spiked-in carriers are homozygous resistant

# numpy.random.Generator.binomial takes n as int64
BINOMIAL_N_MAX = int(np.iinfo(np.int64).max)

# Default sampler ceiling; the C-long range of the legacy sampler
DEFAULT_MAX_COVERAGE = 2**31 - 1


# ═══════════════════════════════════════════════════════════════════════
# GRID
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GridCell:
    """One point of the (coverage, pool size) parameter grid.

    expected_frequency = total resistant alleles / (pool_size × ploidy).
    """
    coverage: int
    pool_size: int
    expected_frequency: float

    @property
    def coverage_per_individual(self) -> float:
        return self.coverage / self.pool_size

    @property
    def label(self) -> str:
        return f"cov{self.coverage}_pool{self.pool_size}"


# ═══════════════════════════════════════════════════════════════════════
# RESULTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AggregateResult:
    """Fail/success tallies for one grid cell.

    fail_count: trials with zero resistant-allele reads (false negatives).
    success_count: trials with at least one resistant-allele read.
    """
    fail_count: int
    success_count: int

    def __post_init__(self):
        if self.fail_count < 0 or self.success_count < 0:
            raise ValueError(
                f"counts must be non-negative, got fail={self.fail_count}, "
                f"success={self.success_count}"
            )

    @property
    def repetitions(self) -> int:
        return self.fail_count + self.success_count


@dataclass(frozen=True)
class RateRecord:
    """False-negative rate for one grid cell."""
    coverage: int
    pool_size: int
    expected_frequency: float
    mean_false_negative_rate: float
    coverage_per_individual: float


@dataclass
class SimulationResult:
    """Output of ``run_simulation``.

    Cells and aggregates are parallel sequences in grid order.

    Attributes:
        cells: Grid cells in construction order (coverage-major).
        aggregates: One AggregateResult per cell.
        repetitions: Trials per cell (R).
        seed: Master seed actually used (entropy when the run was unseeded).
        parallel_workers: Worker threads used.
    """
    cells: Tuple[GridCell, ...]
    aggregates: Tuple[AggregateResult, ...]
    repetitions: int
    seed: Optional[int] = None
    parallel_workers: int = 1

    def __post_init__(self):
        if len(self.cells) != len(self.aggregates):
            raise ValueError(
                f"cells ({len(self.cells)}) and aggregates "
                f"({len(self.aggregates)}) must have equal length"
            )

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[Tuple[GridCell, AggregateResult]]:
        return iter(zip(self.cells, self.aggregates))

    @property
    def pool_sizes(self) -> List[int]:
        """Distinct pool sizes, ascending."""
        return sorted({c.pool_size for c in self.cells})

    @property
    def coverages(self) -> List[int]:
        """Distinct coverages, ascending."""
        return sorted({c.coverage for c in self.cells})

    def lookup(self, coverage: int, pool_size: int) -> AggregateResult:
        """Return the aggregate for one (coverage, pool size) cell.

        Raises:
            KeyError: If the cell is not part of the grid.
        """
        for cell, agg in self:
            if cell.coverage == coverage and cell.pool_size == pool_size:
                return agg
        raise KeyError(f"No grid cell for coverage={coverage}, pool_size={pool_size}")
