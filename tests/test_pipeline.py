"""Integration tests for pooldetect.pipeline.run_analysis."""

import json

import pandas as pd
import pytest

from pooldetect.config import config_from_dict
from pooldetect.errors import InvalidParameter
from pooldetect.pipeline import run_analysis


def _config(tmp_path, **comparison):
    data = {
        'simulation': {'seed': 5, 'repetitions': 200, 'parallel_workers': 2},
        'grid': {'coverages': [0, 5, 20, 100], 'pool_sizes': [5, 20]},
        'output': {'directory': str(tmp_path / "out")},
    }
    if comparison:
        data['comparison'] = comparison
    return config_from_dict(data)


@pytest.fixture
def reference_csv(tmp_path):
    path = tmp_path / "reference.csv"
    pd.DataFrame({
        'Ind Cov Sum': [5, 20, 80, 200, 200, 400],
        'Pool Cov Sum': [30, 60, 90, 120, 150, 180],
        'Ind AF': [0.1, 0.0, 0.2, 0.1, 0.05, 0.3],
        'Pool AF': [0.0, 0.0, 0.1, 0.0, 0.1, 0.2],
    }).to_csv(path, index=False)
    return path


class TestRunAnalysis:
    def test_writes_simulation_outputs(self, tmp_path):
        config = _config(tmp_path)
        report = run_analysis(config)
        out = tmp_path / "out"
        for name in ("aggregates.csv", "rates.csv", "required_coverage.csv",
                     "outcome_counts.svg", "false_negative_rate.svg",
                     "run_metadata.json"):
            assert (out / name).exists(), name
        assert report.comparison is None
        assert report.comparison_error is None
        assert len(report.rates) == 8

    def test_rates_table_matches_report(self, tmp_path):
        report = run_analysis(_config(tmp_path), make_figures=False)
        df = pd.read_csv(report.outputs['rates_table'])
        assert len(df) == len(report.rates)
        zero = df[df['coverage'] == 0]
        assert (zero['mean_false_negative_rate'] == 1.0).all()
        assert not (tmp_path / "out" / "outcome_counts.svg").exists()

    def test_metadata(self, tmp_path):
        report = run_analysis(_config(tmp_path), make_figures=False)
        meta = json.loads(report.outputs['metadata'].read_text())
        assert meta['seed'] == 5
        assert meta['repetitions'] == 200
        assert meta['n_cells'] == 8
        assert len(meta['config_sha256']) == 64

    def test_unseeded_run_records_seed(self, tmp_path):
        config = _config(tmp_path)
        config.simulation.seed = None
        report = run_analysis(config, make_figures=False)
        meta = json.loads(report.outputs['metadata'].read_text())
        assert isinstance(meta['seed'], int)
        assert meta['seed'] == report.simulation.seed

    def test_explicit_outdir(self, tmp_path):
        other = tmp_path / "elsewhere"
        run_analysis(_config(tmp_path), outdir=other, make_figures=False)
        assert (other / "rates.csv").exists()

    def test_bad_grid_raises_before_output(self, tmp_path):
        config = _config(tmp_path)
        config.grid.pool_sizes = [1]
        with pytest.raises(InvalidParameter):
            run_analysis(config)
        assert not (tmp_path / "out" / "rates.csv").exists()


class TestComparisonStep:
    def test_unavailable_dataset_keeps_simulation(self, tmp_path):
        with pytest.warns(UserWarning):
            config = _config(tmp_path, enabled=True, url="",
                             data_path=str(tmp_path / "missing.csv"))
        report = run_analysis(config, fetch=True)
        assert report.comparison is None
        assert "No dataset URL" in report.comparison_error
        assert (tmp_path / "out" / "rates.csv").exists()
        assert (tmp_path / "out" / "false_negative_rate.svg").exists()
        meta = json.loads(report.outputs['metadata'].read_text())
        assert meta['comparison_error'] == report.comparison_error

    def test_with_reference_dataset(self, tmp_path, reference_csv):
        config = _config(tmp_path, enabled=True, data_path=str(reference_csv),
                         panel_size=10)
        report = run_analysis(config)
        assert report.comparison is not None
        assert report.comparison.n_sites == 6
        assert report.comparison.n_false_negative == 2
        out = tmp_path / "out"
        assert (out / "empirical_comparison.svg").exists()
        assert (out / "reference_bins.csv").exists()
        pool_bins = pd.read_csv(out / "reference_pool_bins.csv")
        assert pool_bins['bin'].tolist() == ['0-10', '10-50', '50-100', '100-200',
                                          '200-500', '500+']
        assert pool_bins['n_sites'].tolist() == [0, 1, 2, 3, 0, 0]
        assert pool_bins['n_false_negative'].tolist() == [0, 1, 0, 1, 0, 0]
        meta = json.loads(report.outputs['metadata'].read_text())
        assert len(meta['dataset_sha256']) == 64
