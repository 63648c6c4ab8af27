"""End-to-end detection analysis.

Order of work:
  1. Build the grid and simulate every cell
  2. Derive rate records, write figures (a) and (b) and CSV tables
  3. Optionally fetch/load the reference dataset and write the
     validation figure

Step 3 is independent of steps 1–2: a dataset failure is logged and
recorded in the report, and the simulation outputs are kept.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import yaml

from pooldetect import __version__
from pooldetect.analysis import (
    aggregates_to_frame,
    compute_rates,
    rates_to_frame,
    required_coverage_table,
)
from pooldetect.config import AnalysisConfig
from pooldetect.dataset import ComparisonResult, compare_from_config
from pooldetect.errors import ExternalResourceUnavailable
from pooldetect.simulation import simulate_from_config
from pooldetect.types import RateRecord, SimulationResult
from pooldetect.utils import config_hash, file_sha256, get_git_hash, timer

logger = logging.getLogger(__name__)

OUTCOME_FIGURE = "outcome_counts"
CURVE_FIGURE = "false_negative_rate"
COMPARISON_FIGURE = "empirical_comparison"


@dataclass
class AnalysisReport:
    """Everything one run produced.

    comparison is None when the comparison step was disabled or failed;
    in the latter case comparison_error holds the reason.
    """
    simulation: SimulationResult
    rates: List[RateRecord]
    outputs: Dict[str, Path] = field(default_factory=dict)
    comparison: Optional[ComparisonResult] = None
    comparison_error: Optional[str] = None

    @property
    def rates_frame(self) -> pd.DataFrame:
        return rates_to_frame(self.rates)


def _write_tables(report: AnalysisReport, config: AnalysisConfig, outdir: Path) -> None:
    tables = {
        'aggregates': aggregates_to_frame(report.simulation),
        'rates': report.rates_frame,
        'required_coverage': required_coverage_table(
            report.rates, config.simulation.target_false_negative_rate
        ),
    }
    for name, df in tables.items():
        path = outdir / f"{name}.csv"
        df.to_csv(path, index=False)
        report.outputs[f"{name}_table"] = path


def _write_metadata(report: AnalysisReport, config: AnalysisConfig, outdir: Path) -> Path:
    config_text = yaml.safe_dump(config.to_dict(), sort_keys=True)
    meta = {
        'pooldetect_version': __version__,
        'seed': report.simulation.seed,
        'repetitions': report.simulation.repetitions,
        'n_cells': len(report.simulation),
        'parallel_workers': report.simulation.parallel_workers,
        'config_sha256': config_hash(config_text),
        'git_commit': get_git_hash(),
        'comparison_error': report.comparison_error,
    }
    data_path = Path(config.comparison.data_path)
    if report.comparison is not None and data_path.is_file():
        meta['dataset_sha256'] = file_sha256(data_path)
        meta['dataset_sites'] = report.comparison.n_sites
        meta['dataset_false_negative_rate'] = report.comparison.overall_false_negative_rate

    path = outdir / "run_metadata.json"
    with open(path, 'w') as f:
        json.dump(meta, f, indent=2, default=str)
    return path


def run_analysis(
    config: AnalysisConfig,
    outdir: Optional[str | Path] = None,
    fetch: bool = True,
    make_figures: bool = True,
) -> AnalysisReport:
    """Run simulation, analysis, outputs and (optionally) the comparison.

    Args:
        config: Validated AnalysisConfig.
        outdir: Output directory; defaults to config.output.directory.
        fetch: Download the reference dataset when it is not cached.
        make_figures: Write figures (tables and metadata are always written).

    Returns:
        AnalysisReport.

    Raises:
        InvalidParameter, NumericOverflow: Bad grid parameters. Raised
            before any output is written.
    """
    outdir = Path(outdir if outdir is not None else config.output.directory)
    outdir.mkdir(parents=True, exist_ok=True)
    fmt = config.output.figure_format
    dpi = config.output.dpi

    with timer("simulation"):
        sim = simulate_from_config(config)
    report = AnalysisReport(simulation=sim, rates=compute_rates(sim))

    if config.output.write_tables:
        _write_tables(report, config, outdir)

    if make_figures:
        from pooldetect.viz.detection import (
            plot_false_negative_curve,
            plot_outcome_counts,
        )
        path = outdir / f"{OUTCOME_FIGURE}.{fmt}"
        plot_outcome_counts(sim, save_path=str(path), dpi=dpi)
        report.outputs[OUTCOME_FIGURE] = path
        path = outdir / f"{CURVE_FIGURE}.{fmt}"
        plot_false_negative_curve(report.rates, save_path=str(path), dpi=dpi)
        report.outputs[CURVE_FIGURE] = path

    if config.comparison.enabled:
        try:
            with timer("comparison"):
                report.comparison = compare_from_config(config, fetch=fetch)
        except ExternalResourceUnavailable as exc:
            report.comparison_error = str(exc)
            logger.error("Comparison step skipped: %s", exc)
        else:
            if config.output.write_tables:
                for name, table in (
                    ('reference_bins', report.comparison.by_individual_bin),
                    ('reference_pool_bins', report.comparison.by_pool_bin),
                ):
                    path = outdir / f"{name}.csv"
                    table.to_csv(path, index=False)
                    report.outputs[f"{name}_table"] = path
            if make_figures:
                from pooldetect.viz.detection import plot_empirical_comparison
                path = outdir / f"{COMPARISON_FIGURE}.{fmt}"
                plot_empirical_comparison(
                    report.comparison, report.rates, save_path=str(path), dpi=dpi,
                )
                report.outputs[COMPARISON_FIGURE] = path

    report.outputs['metadata'] = _write_metadata(report, config, outdir)
    logger.info("Wrote %d outputs to %s", len(report.outputs), outdir)
    return report
