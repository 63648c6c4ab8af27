"""Rate analysis: from fail/success tallies to the false-negative curve.

For each grid cell:
  mean_false_negative_rate = fail_count / R
  coverage_per_individual  = coverage / pool_size

The exact probability of zero resistant reads, (1 − q)^n, is provided as
a reference for the simulated rates.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.ndimage import uniform_filter1d

from pooldetect.errors import InvalidParameter
from pooldetect.types import AggregateResult, GridCell, RateRecord, SimulationResult


RATE_COLUMNS = [
    'pool_size',
    'coverage',
    'expected_frequency',
    'coverage_per_individual',
    'mean_false_negative_rate',
    'expected_false_negative_rate',
]


def compute_rate_record(cell: GridCell, aggregate: AggregateResult) -> RateRecord:
    """Convert one cell's tallies into a RateRecord."""
    r = aggregate.repetitions
    if r <= 0:
        raise InvalidParameter("aggregate has no trials")
    if cell.pool_size <= 0:
        raise InvalidParameter(f"pool_size must be > 0, got {cell.pool_size}")
    return RateRecord(
        coverage=cell.coverage,
        pool_size=cell.pool_size,
        expected_frequency=cell.expected_frequency,
        mean_false_negative_rate=aggregate.fail_count / r,
        coverage_per_individual=cell.coverage / cell.pool_size,
    )


def compute_rates(result: SimulationResult) -> List[RateRecord]:
    """RateRecords for a whole run, ordered by pool size then coverage."""
    records = [compute_rate_record(c, a) for c, a in result]
    records.sort(key=lambda rec: (rec.pool_size, rec.coverage))
    return records


def group_by_pool(records: Sequence[RateRecord]) -> Dict[int, List[RateRecord]]:
    """Split records into one coverage-ordered series per pool size."""
    groups: Dict[int, List[RateRecord]] = OrderedDict()
    for rec in sorted(records, key=lambda r: (r.pool_size, r.coverage)):
        groups.setdefault(rec.pool_size, []).append(rec)
    return groups


def expected_false_negative_rate(coverage, frequency):
    """Exact P(no resistant reads) = P(Binomial(n, q) = 0) = (1 − q)^n.

    Accepts scalars or broadcastable arrays. Non-integer coverage is
    allowed so the curve can be drawn continuously.
    """
    n = np.asarray(coverage, dtype=float)
    q = np.asarray(frequency, dtype=float)
    if np.any(n < 0):
        raise InvalidParameter("coverage must be >= 0")
    if np.any((q < 0) | (q > 1)):
        raise InvalidParameter("frequency must be in [0, 1]")
    out = np.power(1.0 - q, n)
    return float(out) if np.ndim(out) == 0 else out


def required_coverage(frequency: float, target_fnr: float = 0.05) -> int:
    """Smallest coverage n with (1 − q)^n ≤ target_fnr.

    n = ⌈ln(target) / ln(1 − q)⌉

    Args:
        frequency: Resistant allele frequency q in the pool.
        target_fnr: Acceptable probability of missing the allele.

    Returns:
        Required coverage (int ≥ 0).

    Raises:
        InvalidParameter: If q ≤ 0 (never detectable) or target not in (0, 1).
    """
    if not 0 < target_fnr < 1:
        raise InvalidParameter(f"target_fnr must be in (0, 1), got {target_fnr}")
    if not 0 < frequency <= 1:
        raise InvalidParameter(f"frequency must be in (0, 1], got {frequency}")
    if frequency == 1:
        return 1
    return int(np.ceil(np.log(target_fnr) / np.log1p(-frequency)))


def required_coverage_table(
    records: Sequence[RateRecord],
    target_fnr: float = 0.05,
) -> pd.DataFrame:
    """Required coverage (total and per individual) for each pool size."""
    rows = []
    for pool, series in group_by_pool(records).items():
        q = series[0].expected_frequency
        n = required_coverage(q, target_fnr) if q > 0 else None
        rows.append({
            'pool_size': pool,
            'expected_frequency': q,
            'target_false_negative_rate': target_fnr,
            'required_coverage': n,
            'required_coverage_per_individual': None if n is None else n / pool,
        })
    return pd.DataFrame(rows)


def smooth_curve(
    x: Sequence[float],
    y: Sequence[float],
    window: int = 3,
) -> Tuple[np.ndarray, np.ndarray]:
    """Moving-average smoothing of y along sorted x, for display only."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape:
        raise ValueError(f"x and y shapes differ: {x.shape} vs {y.shape}")
    if x.size == 0:
        return x, y
    order = np.argsort(x, kind='stable')
    window = max(1, min(int(window), x.size))
    return x[order], uniform_filter1d(y[order], size=window, mode='nearest')


# ═══════════════════════════════════════════════════════════════════════
# TABULAR VIEWS
# ═══════════════════════════════════════════════════════════════════════

def rates_to_frame(records: Sequence[RateRecord]) -> pd.DataFrame:
    """DataFrame of rate records with the analytic reference column."""
    df = pd.DataFrame(
        [
            {
                'pool_size': r.pool_size,
                'coverage': r.coverage,
                'expected_frequency': r.expected_frequency,
                'coverage_per_individual': r.coverage_per_individual,
                'mean_false_negative_rate': r.mean_false_negative_rate,
            }
            for r in records
        ],
        columns=RATE_COLUMNS[:-1],
    )
    if len(df) > 0:
        df['expected_false_negative_rate'] = expected_false_negative_rate(
            df['coverage'].to_numpy(), df['expected_frequency'].to_numpy()
        )
    else:
        df['expected_false_negative_rate'] = pd.Series(dtype=float)
    return df


def aggregates_to_frame(result: SimulationResult) -> pd.DataFrame:
    """One row per grid cell with raw fail/success counts."""
    return pd.DataFrame(
        [
            {
                'coverage': c.coverage,
                'pool_size': c.pool_size,
                'expected_frequency': c.expected_frequency,
                'fail_count': a.fail_count,
                'success_count': a.success_count,
                'repetitions': a.repetitions,
            }
            for c, a in result
        ],
        columns=[
            'coverage', 'pool_size', 'expected_frequency',
            'fail_count', 'success_count', 'repetitions',
        ],
    )
