"""Parameter grid for the detection simulation.

Every cell pairs a sequencing coverage with a pool size. A fixed number of
homozygous resistant individuals is diluted into each pool, so the allele
frequency implied by a cell is

    q = A / (N × ploidy)

where A is the total number of resistant alleles (constant across cells)
and N the pool size.
"""

from __future__ import annotations

import numbers
from typing import List, Sequence

from pooldetect.errors import InvalidParameter, NumericOverflow
from pooldetect.types import (
    ALLELES_PER_HOMOZYGOTE,
    BINOMIAL_N_MAX,
    DEFAULT_MAX_COVERAGE,
    PLOIDY,
    GridCell,
)


def _as_int(name: str, value) -> int:
    """Accept Python and numpy integers; reject bools, floats and others."""
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidParameter(f"{name} must be an integer, got {value!r}")
    return int(value)


def total_resistant_alleles(
    n_spiked: int,
    alleles_per_individual: int = ALLELES_PER_HOMOZYGOTE,
) -> int:
    """Resistant alleles contributed by the spiked-in individuals.

    Args:
        n_spiked: Number of resistant individuals added to each pool.
        alleles_per_individual: Resistant alleles each carries
            (2 for homozygotes).

    Returns:
        n_spiked × alleles_per_individual.
    """
    n_spiked = _as_int("n_spiked", n_spiked)
    alleles_per_individual = _as_int("alleles_per_individual", alleles_per_individual)
    if n_spiked < 0:
        raise InvalidParameter(f"n_spiked must be >= 0, got {n_spiked}")
    if alleles_per_individual < 0:
        raise InvalidParameter(
            f"alleles_per_individual must be >= 0, got {alleles_per_individual}"
        )
    return n_spiked * alleles_per_individual


def expected_frequency(
    pool_size: int,
    total_alleles: int,
    ploidy: int = PLOIDY,
) -> float:
    """Resistant allele frequency implied by diluting total_alleles into a pool.

    Raises:
        InvalidParameter: If pool_size <= 0, total_alleles < 0, or the
            frequency would exceed 1 (pool too small for the spiked alleles).
    """
    pool_size = _as_int("pool_size", pool_size)
    total_alleles = _as_int("total_alleles", total_alleles)
    ploidy = _as_int("ploidy", ploidy)
    if pool_size <= 0:
        raise InvalidParameter(f"pool_size must be > 0, got {pool_size}")
    if ploidy <= 0:
        raise InvalidParameter(f"ploidy must be > 0, got {ploidy}")
    if total_alleles < 0:
        raise InvalidParameter(f"total_alleles must be >= 0, got {total_alleles}")

    n_alleles = pool_size * ploidy
    if total_alleles > n_alleles:
        raise InvalidParameter(
            f"{total_alleles} resistant alleles exceed the {n_alleles} alleles "
            f"in a pool of {pool_size}; expected frequency would be "
            f"{total_alleles / n_alleles:.3f} > 1"
        )
    return total_alleles / n_alleles


def validate_coverage(coverage, max_coverage: int = DEFAULT_MAX_COVERAGE) -> int:
    """Check a coverage value against the binomial sampler's range.

    Raises:
        InvalidParameter: If coverage is not a non-negative integer.
        NumericOverflow: If coverage exceeds max_coverage.
    """
    coverage = _as_int("coverage", coverage)
    if coverage < 0:
        raise InvalidParameter(f"coverage must be >= 0, got {coverage}")
    limit = min(int(max_coverage), BINOMIAL_N_MAX)
    if coverage > limit:
        raise NumericOverflow(
            f"coverage {coverage} exceeds the binomial sampler limit ({limit})"
        )
    return coverage


def build_grid(
    coverages: Sequence[int],
    pool_sizes: Sequence[int],
    total_alleles: int,
    ploidy: int = PLOIDY,
    max_coverage: int = DEFAULT_MAX_COVERAGE,
) -> List[GridCell]:
    """Cartesian product of coverages × pool sizes, coverage-major.

    All parameters are validated before any cell is returned, so a bad
    grid fails before simulation starts.

    Args:
        coverages: Ordered coverage levels (reads per site).
        pool_sizes: Ordered pool sizes (individuals per pool).
        total_alleles: Resistant alleles spiked into every pool.
        ploidy: Alleles per individual.
        max_coverage: Largest coverage the sampler accepts.

    Returns:
        List of GridCell, len(coverages) × len(pool_sizes).
    """
    if len(coverages) == 0:
        raise InvalidParameter("coverages must be non-empty")
    if len(pool_sizes) == 0:
        raise InvalidParameter("pool_sizes must be non-empty")

    checked_cov = [validate_coverage(c, max_coverage) for c in coverages]
    freqs = {n: expected_frequency(n, total_alleles, ploidy) for n in pool_sizes}

    return [
        GridCell(coverage=c, pool_size=int(n), expected_frequency=freqs[n])
        for c in checked_cov
        for n in pool_sizes
    ]


def grid_from_config(config) -> List[GridCell]:
    """Build the grid described by an AnalysisConfig."""
    g = config.grid
    return build_grid(
        g.coverages,
        g.pool_sizes,
        total_resistant_alleles(g.n_spiked_individuals, g.alleles_per_individual),
        ploidy=g.ploidy,
        max_coverage=g.max_coverage,
    )
