"""Tests for pooldetect.viz — figures render and save as vector output."""

import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt
import pandas as pd
import pytest

from pooldetect.analysis import compute_rates
from pooldetect.dataset import compare_detection
from pooldetect.grid import build_grid
from pooldetect.simulation import run_simulation
from pooldetect.viz import (
    DARK_BG,
    plot_empirical_comparison,
    plot_false_negative_curve,
    plot_outcome_counts,
)
from pooldetect.viz.style import pool_color, save_figure


@pytest.fixture(scope="module")
def result():
    cells = build_grid([0, 5, 20, 100], [5, 20, 50, 200], total_alleles=4)
    return run_simulation(cells, repetitions=200, seed=11)


@pytest.fixture(scope="module")
def comparison():
    df = pd.DataFrame({
        'ind_cov_sum': [5, 20, 80, 200, 200, 400],
        'pool_cov_sum': [30, 60, 90, 120, 150, 180],
        'ind_af': [0.1, 0.0, 0.2, 0.1, 0.05, 0.3],
        'pool_af': [0.0, 0.0, 0.1, 0.0, 0.1, 0.2],
    })
    return compare_detection(df, panel_size=10)


@pytest.fixture(autouse=True)
def _close_figures():
    yield
    plt.close('all')


class TestStyle:
    def test_pool_color_cycles(self):
        assert pool_color(0) == pool_color(8 * 100)
        assert pool_color(0) != pool_color(1)

    def test_save_figure_makes_dirs(self, tmp_path):
        fig, ax = plt.subplots()
        ax.plot([0, 1], [0, 1])
        out = save_figure(fig, tmp_path / "a" / "b" / "fig.svg")
        assert out.exists()
        assert "<svg" in out.read_text()


class TestOutcomeCounts:
    def test_returns_figure(self, result):
        fig = plot_outcome_counts(result)
        assert isinstance(fig, plt.Figure)
        visible = [ax for ax in fig.axes if ax.get_visible()]
        assert len(visible) == len(result.pool_sizes)

    def test_dark_background(self, result):
        fig = plot_outcome_counts(result)
        assert matplotlib.colors.to_hex(fig.get_facecolor()) == DARK_BG.lower()

    def test_saves_svg(self, result, tmp_path):
        path = tmp_path / "outcomes.svg"
        plot_outcome_counts(result, save_path=str(path))
        assert "<svg" in path.read_text()


class TestFalseNegativeCurve:
    def test_one_line_per_pool(self, result):
        records = compute_rates(result)
        fig = plot_false_negative_curve(records, show_expected=False)
        ax = fig.axes[0]
        assert ax.get_xscale() == 'log'
        assert len(ax.get_lines()) == len(result.pool_sizes)

    def test_expected_overlay(self, result):
        records = compute_rates(result)
        fig = plot_false_negative_curve(records, show_expected=True)
        # simulated + dashed reference per pool, plus the legend proxy
        assert len(fig.axes[0].get_lines()) == 2 * len(result.pool_sizes) + 1

    def test_saves_svg(self, result, tmp_path):
        path = tmp_path / "curve.svg"
        plot_false_negative_curve(compute_rates(result), save_path=str(path))
        assert "<svg" in path.read_text()


class TestEmpiricalComparison:
    def test_with_simulated_records(self, result, comparison, tmp_path):
        path = tmp_path / "cmp.svg"
        fig = plot_empirical_comparison(comparison, compute_rates(result),
                                        save_path=str(path))
        assert isinstance(fig, plt.Figure)
        assert "<svg" in path.read_text()

    def test_without_records(self, comparison):
        fig = plot_empirical_comparison(comparison, None)
        assert isinstance(fig, plt.Figure)
