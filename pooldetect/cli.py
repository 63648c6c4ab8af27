"""Command-line entry point.

Usage:
    pooldetect --config configs/default.yaml
    pooldetect --config configs/default.yaml --scenario configs/deep.yaml --workers 4
    pooldetect --seed 7 --repetitions 5000 --no-compare --outdir results/run7
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Dict, Iterable, Optional

import yaml

from pooldetect.config import config_from_dict, deep_merge, default_config, load_config
from pooldetect.errors import PoolDetectError
from pooldetect.pipeline import run_analysis

logger = logging.getLogger("pooldetect")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pooldetect",
        description="Monte Carlo false-negative rates for rare alleles in pooled sequencing",
    )
    parser.add_argument("--config", help="Base YAML config (defaults built in if omitted)")
    parser.add_argument("--scenario", help="Scenario YAML merged over the base config")
    parser.add_argument("--seed", type=int, help="Master RNG seed")
    parser.add_argument("--unseeded", action="store_true",
                        help="Draw a fresh seed (recorded in run_metadata.json)")
    parser.add_argument("--repetitions", type=int, help="Trials per grid cell")
    parser.add_argument("--workers", type=int, help="Worker threads over grid cells")
    parser.add_argument("--outdir", help="Output directory")
    parser.add_argument("--no-compare", action="store_true",
                        help="Skip the reference dataset comparison")
    parser.add_argument("--no-fetch", action="store_true",
                        help="Use only a cached reference dataset")
    parser.add_argument("--no-figures", action="store_true", help="Write tables only")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _overrides(args: argparse.Namespace) -> Dict:
    sim: Dict = {}
    if args.unseeded:
        sim['seed'] = None
    elif args.seed is not None:
        sim['seed'] = args.seed
    if args.repetitions is not None:
        sim['repetitions'] = args.repetitions
    if args.workers is not None:
        sim['parallel_workers'] = args.workers
    out: Dict = {}
    if sim:
        out['simulation'] = sim
    if args.outdir:
        out['output'] = {'directory': args.outdir}
    if args.no_compare:
        out['comparison'] = {'enabled': False}
    return out


def main(argv: Optional[Iterable[str]] = None) -> int:
    """Run the analysis. Returns a process exit code."""
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.config:
            config = load_config(args.config, args.scenario, _overrides(args))
        else:
            if args.scenario:
                logger.warning("--scenario ignored without --config")
            base = default_config().to_dict()
            config = config_from_dict(deep_merge(base, _overrides(args)))
        report = run_analysis(config, fetch=not args.no_fetch,
                              make_figures=not args.no_figures)
    except (PoolDetectError, ValueError, FileNotFoundError, yaml.YAMLError) as exc:
        logger.error("%s", exc)
        return 2

    for name, path in sorted(report.outputs.items()):
        logger.info("  %-24s %s", name, path)
    if report.comparison is not None:
        logger.info(
            "Reference false-negative rate: %d/%d = %.4f",
            report.comparison.n_false_negative,
            report.comparison.n_sites,
            report.comparison.overall_false_negative_rate,
        )
    elif report.comparison_error:
        logger.warning("Comparison unavailable: %s", report.comparison_error)
    return 0


if __name__ == "__main__":
    sys.exit(main())
