#!/usr/bin/env python3
"""Download the individual-vs-pool reference dataset.

Reads the URL and destination from the comparison section of a config
file (or from the command line), downloads once, and prints a summary of
the empirical false-negative rate.

Usage:
    python scripts/fetch_reference_dataset.py --config configs/default.yaml
    python scripts/fetch_reference_dataset.py --url https://... --dest data/reference_dataset.csv --force
"""

import argparse
import logging
import sys
from pathlib import Path

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from pooldetect.config import default_config, load_config
from pooldetect.dataset import (
    columns_from_config,
    compare_detection,
    fetch_dataset,
    load_dataset,
)
from pooldetect.errors import ExternalResourceUnavailable
from pooldetect.utils import file_sha256


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--config", help="YAML config with a comparison section")
    parser.add_argument("--url", help="Override comparison.url")
    parser.add_argument("--dest", help="Override comparison.data_path")
    parser.add_argument("--force", action="store_true", help="Re-download if cached")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    config = load_config(args.config) if args.config else default_config()
    section = config.comparison
    url = args.url or section.url
    dest = Path(args.dest or section.data_path)

    try:
        path = fetch_dataset(url, dest, timeout=section.timeout, force=args.force)
        columns = columns_from_config(section)
        result = compare_detection(
            load_dataset(path, columns),
            columns,
            individual_bins=section.individual_bins,
            pool_bins=section.pool_bins,
            panel_size=section.panel_size,
            n_pool_replicates=section.n_pool_replicates,
        )
    except ExternalResourceUnavailable as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"Dataset:   {path}")
    print(f"SHA-256:   {file_sha256(path)}")
    print(f"Sites:     {result.n_sites}")
    print(f"Missed:    {result.n_false_negative} "
          f"(FNR = {result.overall_false_negative_rate:.4f})")
    print()
    print(result.by_individual_bin.to_string(index=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
