"""Detection-power visualizations for pooldetect.

Every function:
  - Accepts simulation/analysis results as input
  - Returns a matplotlib Figure
  - Has an optional ``save_path`` parameter (format from the suffix; SVG
    for vector output)
  - Uses the shared dark theme from ``pooldetect.viz.style``

matplotlib backend is forced to Agg (no display) on import.
"""

from __future__ import annotations

import matplotlib
matplotlib.use('Agg')

import math
from typing import Optional, Sequence, TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np

from pooldetect.analysis import expected_false_negative_rate, group_by_pool, smooth_curve
from pooldetect.viz.style import (
    EMPIRICAL_COLOR,
    GRID_COLOR,
    OUTCOME_COLORS,
    TEXT_COLOR,
    dark_figure,
    dark_legend,
    pool_color,
    save_figure,
)

if TYPE_CHECKING:
    from pooldetect.dataset import ComparisonResult
    from pooldetect.types import RateRecord, SimulationResult


# ═══════════════════════════════════════════════════════════════════════
# 1. RAW OUTCOME COUNTS
# ═══════════════════════════════════════════════════════════════════════

def plot_outcome_counts(
    result: 'SimulationResult',
    save_path: Optional[str] = None,
    dpi: int = 150,
) -> plt.Figure:
    """Detected vs not-detected trial counts, one panel per pool size.

    Args:
        result: SimulationResult.
        save_path: Path to save figure.
        dpi: Raster resolution (ignored by vector formats).

    Returns:
        matplotlib Figure.
    """
    pools = result.pool_sizes
    coverages = result.coverages
    ncols = min(3, len(pools))
    nrows = math.ceil(len(pools) / ncols)
    fig, axes = dark_figure(nrows, ncols, squeeze=False, sharey=True)

    x = np.arange(len(coverages))
    width = 0.4
    for k, pool in enumerate(pools):
        ax = axes.flat[k]
        fails = [result.lookup(c, pool).fail_count for c in coverages]
        succ = [result.lookup(c, pool).success_count for c in coverages]
        ax.bar(x - width / 2, succ, width, color=OUTCOME_COLORS['detected'],
               label='Detected')
        ax.bar(x + width / 2, fails, width, color=OUTCOME_COLORS['not_detected'],
               label='Not detected')
        ax.set_xticks(x)
        ax.set_xticklabels([str(c) for c in coverages], rotation=45, fontsize=8)
        ax.set_title(f'Pool of {pool}', fontsize=11)
        if k % ncols == 0:
            ax.set_ylabel('Trials', fontsize=10)
        if k >= len(pools) - ncols:
            ax.set_xlabel('Coverage (reads)', fontsize=10)

    for ax in list(axes.flat)[len(pools):]:
        ax.set_visible(False)

    dark_legend(axes.flat[0], fontsize=8, loc='center right')
    fig.suptitle(
        f'Detection outcomes ({result.repetitions} trials per cell)',
        color=TEXT_COLOR, fontsize=14, fontweight='bold',
    )

    if save_path:
        save_figure(fig, save_path, dpi=dpi)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 2. FALSE-NEGATIVE CURVE
# ═══════════════════════════════════════════════════════════════════════

def plot_false_negative_curve(
    records: Sequence['RateRecord'],
    show_expected: bool = True,
    save_path: Optional[str] = None,
    dpi: int = 150,
) -> plt.Figure:
    """False-negative rate vs coverage per individual (log x), per pool size.

    Zero-coverage cells are left off the log axis. Dashed lines give the
    exact (1 − q)^n for the same pool.
    """
    fig, ax = dark_figure()

    for k, (pool, series) in enumerate(group_by_pool(records).items()):
        color = pool_color(k)
        pts = [r for r in series if r.coverage_per_individual > 0]
        if not pts:
            continue
        x = np.array([r.coverage_per_individual for r in pts])
        y = np.array([r.mean_false_negative_rate for r in pts])
        ax.plot(x, y, 'o-', color=color, linewidth=1.8, markersize=5,
                label=f'Pool {pool}')

        if show_expected and len(pts) > 1:
            cov = np.geomspace(pts[0].coverage, pts[-1].coverage, 100)
            ax.plot(cov / pool,
                    expected_false_negative_rate(cov, pts[0].expected_frequency),
                    '--', color=color, linewidth=1.0, alpha=0.6)

    ax.set_xscale('log')
    ax.set_ylim(-0.03, 1.03)
    ax.set_xlabel('Coverage per individual (reads / pool size)', fontsize=12)
    ax.set_ylabel('False-negative rate', fontsize=12)
    ax.set_title('Missed rare alleles vs sequencing effort',
                 fontsize=14, fontweight='bold')
    if show_expected:
        ax.plot([], [], '--', color=TEXT_COLOR, linewidth=1.0, label='$(1-q)^n$')
    dark_legend(ax, fontsize=9, loc='upper right')

    if save_path:
        save_figure(fig, save_path, dpi=dpi)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 3. EMPIRICAL VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def plot_empirical_comparison(
    comparison: 'ComparisonResult',
    records: Optional[Sequence['RateRecord']] = None,
    smooth_window: int = 5,
    save_path: Optional[str] = None,
    dpi: int = 150,
) -> plt.Figure:
    """Empirical per-bin false-negative rate against the simulated curve.

    Args:
        comparison: ComparisonResult from the reference dataset.
        records: Simulated RateRecords; drawn as faint points with a
            moving-average trend line.
        smooth_window: Window (points) of the moving average.
        save_path: Path to save figure.
        dpi: Raster resolution.

    Returns:
        matplotlib Figure.
    """
    fig, ax = dark_figure()

    if records:
        pts = [r for r in records if r.coverage_per_individual > 0]
        x = [r.coverage_per_individual for r in pts]
        y = [r.mean_false_negative_rate for r in pts]
        ax.scatter(x, y, s=12, color=TEXT_COLOR, alpha=0.3, label='Simulated cells')
        xs, ys = smooth_curve(x, y, window=smooth_window)
        ax.plot(xs, ys, color=pool_color(1), linewidth=2.0,
                label=f'Simulated (moving average, {smooth_window})')

    table = comparison.by_individual_bin
    table = table[(table['n_sites'] > 0) & (table['median_coverage'] > 0)]
    if len(table) > 0:
        sizes = 20 + 180 * table['n_sites'] / table['n_sites'].max()
        ax.scatter(table['median_coverage'], table['false_negative_rate'],
                   s=sizes, color=EMPIRICAL_COLOR, edgecolor=GRID_COLOR,
                   zorder=3, label='Reference dataset (per bin)')
        for _, row in table.iterrows():
            ax.annotate(str(row['bin']),
                        xy=(row['median_coverage'], row['false_negative_rate']),
                        xytext=(4, 6), textcoords='offset points',
                        color=TEXT_COLOR, fontsize=7)

    ax.axhline(comparison.overall_false_negative_rate, color=EMPIRICAL_COLOR,
               linestyle=':', linewidth=1.2, alpha=0.8,
               label=f'Reference overall '
                     f'({comparison.n_false_negative}/{comparison.n_sites})')

    ax.set_xscale('log')
    ax.set_ylim(-0.03, 1.03)
    ax.set_xlabel('Coverage per individual', fontsize=12)
    ax.set_ylabel('False-negative rate', fontsize=12)
    ax.set_title('Simulated vs observed pool false negatives',
                 fontsize=14, fontweight='bold')
    dark_legend(ax, fontsize=9, loc='upper right')

    if save_path:
        save_figure(fig, save_path, dpi=dpi)
    return fig
