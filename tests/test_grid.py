"""Tests for pooldetect.grid — parameter grid and expected frequencies."""

import dataclasses

import numpy as np
import pytest

from pooldetect.config import default_config
from pooldetect.errors import InvalidParameter, NumericOverflow
from pooldetect.grid import (
    build_grid,
    expected_frequency,
    grid_from_config,
    total_resistant_alleles,
    validate_coverage,
)
from pooldetect.types import GridCell


class TestTotalResistantAlleles:
    def test_homozygous_default(self):
        assert total_resistant_alleles(2) == 4

    def test_explicit_alleles(self):
        assert total_resistant_alleles(3, alleles_per_individual=1) == 3

    def test_zero_spiked(self):
        assert total_resistant_alleles(0) == 0

    def test_negative_rejected(self):
        with pytest.raises(InvalidParameter):
            total_resistant_alleles(-1)

    def test_float_rejected(self):
        with pytest.raises(InvalidParameter):
            total_resistant_alleles(2.0)


class TestExpectedFrequency:
    def test_pool10_alleles4_exact(self):
        assert expected_frequency(pool_size=10, total_alleles=4) == 4 / 20
        assert expected_frequency(pool_size=10, total_alleles=4) == 0.2

    def test_pool20_alleles4(self):
        assert expected_frequency(20, 4) == pytest.approx(0.1)

    def test_frequency_shrinks_with_pool(self):
        freqs = [expected_frequency(n, 4) for n in (5, 10, 20, 50, 100, 200)]
        assert all(a > b for a, b in zip(freqs, freqs[1:]))

    def test_full_pool_is_one(self):
        assert expected_frequency(2, 4) == 1.0

    def test_zero_pool_rejected(self):
        with pytest.raises(InvalidParameter, match="pool_size"):
            expected_frequency(0, 4)

    def test_negative_pool_rejected(self):
        with pytest.raises(InvalidParameter):
            expected_frequency(-5, 4)

    def test_frequency_above_one_rejected(self):
        """Pool of 1 diploid holds only 2 alleles; 4 cannot fit."""
        with pytest.raises(InvalidParameter, match="exceed"):
            expected_frequency(1, 4)

    def test_invalid_parameter_is_value_error(self):
        with pytest.raises(ValueError):
            expected_frequency(0, 4)

    def test_numpy_integers_accepted(self):
        assert expected_frequency(np.int64(10), np.int32(4)) == 0.2


class TestValidateCoverage:
    def test_zero_ok(self):
        assert validate_coverage(0) == 0

    def test_negative_rejected(self):
        with pytest.raises(InvalidParameter):
            validate_coverage(-1)

    def test_non_integer_rejected(self):
        with pytest.raises(InvalidParameter):
            validate_coverage(10.5)

    def test_bool_rejected(self):
        with pytest.raises(InvalidParameter):
            validate_coverage(True)

    def test_overflow(self):
        with pytest.raises(NumericOverflow):
            validate_coverage(1001, max_coverage=1000)

    def test_overflow_is_overflow_error(self):
        with pytest.raises(OverflowError):
            validate_coverage(2**63)


class TestBuildGrid:
    def test_cartesian_product_size(self):
        cells = build_grid([1, 5, 10], [5, 10], total_alleles=4)
        assert len(cells) == 6
        assert all(isinstance(c, GridCell) for c in cells)

    def test_coverage_major_order(self):
        cells = build_grid([1, 5], [5, 10], total_alleles=4)
        assert [(c.coverage, c.pool_size) for c in cells] == [
            (1, 5), (1, 10), (5, 5), (5, 10),
        ]

    def test_frequency_depends_only_on_pool(self):
        cells = build_grid([1, 50, 500], [5, 20], total_alleles=4)
        for c in cells:
            assert c.expected_frequency == 4 / (c.pool_size * 2)

    def test_cells_are_immutable(self):
        cell = build_grid([1], [5], total_alleles=4)[0]
        with pytest.raises(dataclasses.FrozenInstanceError):
            cell.coverage = 10

    def test_zero_pool_fails_whole_grid(self):
        with pytest.raises(InvalidParameter):
            build_grid([1, 5], [5, 0], total_alleles=4)

    def test_small_pool_fails_whole_grid(self):
        with pytest.raises(InvalidParameter):
            build_grid([1, 5], [1, 10], total_alleles=4)

    def test_empty_axes_rejected(self):
        with pytest.raises(InvalidParameter):
            build_grid([], [5], total_alleles=4)
        with pytest.raises(InvalidParameter):
            build_grid([1], [], total_alleles=4)

    def test_large_coverage_rejected_early(self):
        with pytest.raises(NumericOverflow):
            build_grid([1, 10**12], [5], total_alleles=4)

    def test_coverage_per_individual(self):
        cell = build_grid([100], [20], total_alleles=4)[0]
        assert cell.coverage_per_individual == 5.0
        assert cell.label == "cov100_pool20"


class TestGridFromConfig:
    def test_default_grid(self):
        cells = grid_from_config(default_config())
        assert len(cells) == 8 * 6
        # 2 homozygous individuals = 4 alleles
        pool10 = [c for c in cells if c.pool_size == 10]
        assert all(c.expected_frequency == 0.2 for c in pool10)
