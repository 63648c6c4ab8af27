"""Tests for pooldetect.analysis — rate records and reference curves."""

import numpy as np
import pandas as pd
import pytest

from pooldetect.analysis import (
    RATE_COLUMNS,
    aggregates_to_frame,
    compute_rate_record,
    compute_rates,
    expected_false_negative_rate,
    group_by_pool,
    rates_to_frame,
    required_coverage,
    required_coverage_table,
    smooth_curve,
)
from pooldetect.errors import InvalidParameter
from pooldetect.grid import build_grid
from pooldetect.simulation import run_simulation
from pooldetect.types import AggregateResult, GridCell, RateRecord


@pytest.fixture
def small_result():
    cells = build_grid([0, 1, 10, 100], [5, 20], total_alleles=4)
    return run_simulation(cells, repetitions=1000, seed=42)


class TestComputeRateRecord:
    def test_values(self):
        cell = GridCell(coverage=100, pool_size=20, expected_frequency=0.1)
        rec = compute_rate_record(cell, AggregateResult(fail_count=25, success_count=975))
        assert rec.mean_false_negative_rate == 0.025
        assert rec.coverage_per_individual == 5.0
        assert rec.pool_size == 20
        assert rec.coverage == 100

    def test_empty_aggregate_rejected(self):
        cell = GridCell(coverage=1, pool_size=5, expected_frequency=0.4)
        with pytest.raises(InvalidParameter):
            compute_rate_record(cell, AggregateResult(0, 0))


class TestComputeRates:
    def test_rates_in_unit_interval(self, small_result):
        for rec in compute_rates(small_result):
            assert 0.0 <= rec.mean_false_negative_rate <= 1.0

    def test_zero_coverage_rate_is_one(self, small_result):
        zero = [r for r in compute_rates(small_result) if r.coverage == 0]
        assert len(zero) == 2
        assert all(r.mean_false_negative_rate == 1.0 for r in zero)

    def test_ordered_by_pool_then_coverage(self, small_result):
        keys = [(r.pool_size, r.coverage) for r in compute_rates(small_result)]
        assert keys == sorted(keys)

    def test_group_by_pool(self, small_result):
        groups = group_by_pool(compute_rates(small_result))
        assert list(groups) == [5, 20]
        assert [r.coverage for r in groups[20]] == [0, 1, 10, 100]


class TestExpectedFalseNegativeRate:
    def test_zero_coverage(self):
        assert expected_false_negative_rate(0, 0.3) == 1.0

    def test_certain_frequency(self):
        assert expected_false_negative_rate(1, 1.0) == 0.0

    def test_known_value(self):
        assert expected_false_negative_rate(100, 0.1) == pytest.approx(0.9 ** 100)
        assert expected_false_negative_rate(100, 0.1) == pytest.approx(2.656e-5, rel=1e-3)

    def test_vectorized(self):
        out = expected_false_negative_rate(np.array([0, 1, 2]), 0.5)
        np.testing.assert_allclose(out, [1.0, 0.5, 0.25])

    def test_bad_inputs(self):
        with pytest.raises(InvalidParameter):
            expected_false_negative_rate(-1, 0.5)
        with pytest.raises(InvalidParameter):
            expected_false_negative_rate(5, 1.5)


class TestRequiredCoverage:
    def test_known_value(self):
        # 0.9^28 ≈ 0.052 > 0.05, 0.9^29 ≈ 0.047
        assert required_coverage(0.1, 0.05) == 29

    def test_certain_frequency(self):
        assert required_coverage(1.0, 0.05) == 1

    def test_result_meets_target(self):
        for q in (0.01, 0.04, 0.2, 0.4):
            n = required_coverage(q, 0.01)
            assert (1 - q) ** n <= 0.01
            assert (1 - q) ** (n - 1) > 0.01

    def test_bad_inputs(self):
        with pytest.raises(InvalidParameter):
            required_coverage(0.0, 0.05)
        with pytest.raises(InvalidParameter):
            required_coverage(0.1, 1.0)

    def test_table(self, small_result):
        df = required_coverage_table(compute_rates(small_result), 0.05)
        assert list(df['pool_size']) == [5, 20]
        row = df[df['pool_size'] == 20].iloc[0]
        assert row['required_coverage'] == 29
        assert row['required_coverage_per_individual'] == pytest.approx(29 / 20)


class TestSmoothCurve:
    def test_sorts_and_smooths(self):
        xs, ys = smooth_curve([3, 1, 2], [0.0, 1.0, 0.5], window=1)
        np.testing.assert_array_equal(xs, [1, 2, 3])
        np.testing.assert_array_equal(ys, [1.0, 0.5, 0.0])

    def test_moving_average(self):
        _, ys = smooth_curve([1, 2, 3, 4, 5], [0, 0, 3, 0, 0], window=3)
        assert ys[2] == pytest.approx(1.0)
        assert ys.max() <= 1.0

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            smooth_curve([1, 2], [1.0])


class TestFrames:
    def test_rates_frame(self, small_result):
        df = rates_to_frame(compute_rates(small_result))
        assert list(df.columns) == RATE_COLUMNS
        assert len(df) == 8
        assert df['mean_false_negative_rate'].between(0, 1).all()

    def test_empty_rates_frame(self):
        df = rates_to_frame([])
        assert list(df.columns) == RATE_COLUMNS
        assert len(df) == 0

    def test_aggregates_frame(self, small_result):
        df = aggregates_to_frame(small_result)
        assert len(df) == 8
        assert (df['fail_count'] + df['success_count'] == 1000).all()
        assert (df['repetitions'] == 1000).all()
