"""External individual-vs-pool dataset: fetch, load, bin, compare.

The reference dataset lists, per genomic site, the summed coverage over a
panel of individually sequenced animals, the summed coverage over the pool
replicates, and the allele frequency estimated each way. A site is an
empirical false negative when the individuals show the allele (frequency
≠ 0) and the pool does not (frequency == 0):

  overall FNR = #{individual ≠ 0 and pool == 0} / #sites

The network download is a one-shot collaborator step. It is not retried;
failures surface as ExternalResourceUnavailable so that callers can still
report simulation-only results.
"""

from __future__ import annotations

import logging
import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import requests

from pooldetect.errors import ExternalResourceUnavailable, InvalidParameter

logger = logging.getLogger(__name__)

USER_AGENT = "pooldetect/0.1"


@dataclass(frozen=True)
class DatasetColumns:
    """Normalized names of the four fields the comparison needs."""
    individual_coverage: str = "ind_cov_sum"
    pool_coverage: str = "pool_cov_sum"
    individual_frequency: str = "ind_af"
    pool_frequency: str = "pool_af"

    def required(self) -> List[str]:
        return [
            self.individual_coverage,
            self.pool_coverage,
            self.individual_frequency,
            self.pool_frequency,
        ]


@dataclass
class ComparisonResult:
    """Empirical false-negative summary of the reference dataset.

    Attributes:
        n_sites: Sites compared.
        n_false_negative: Sites called by individuals but missed by the pool.
        overall_false_negative_rate: n_false_negative / n_sites.
        by_individual_bin: Per-bin counts/rates over coverage per individual.
        by_pool_bin: Per-bin counts/rates over coverage per pool replicate.
        sites: Site table with derived coverage, bins and the FN flag.
    """
    n_sites: int
    n_false_negative: int
    overall_false_negative_rate: float
    by_individual_bin: pd.DataFrame
    by_pool_bin: pd.DataFrame
    sites: pd.DataFrame = field(repr=False)


# ═══════════════════════════════════════════════════════════════════════
# FETCH
# ═══════════════════════════════════════════════════════════════════════

def fetch_dataset(
    url: str,
    destination: Union[str, Path],
    timeout: float = 60.0,
    force: bool = False,
    session: Optional[requests.Session] = None,
) -> Path:
    """Download the reference dataset once.

    An existing file at `destination` is reused unless force=True.

    Raises:
        ExternalResourceUnavailable: Empty URL, network/HTTP failure, or
            an empty response body.
    """
    destination = Path(destination)
    if destination.is_file() and not force:
        logger.info("Reusing cached dataset %s", destination)
        return destination
    if not url:
        raise ExternalResourceUnavailable(
            f"No dataset URL configured and '{destination}' does not exist"
        )

    getter = session.get if session is not None else requests.get
    logger.info("Fetching reference dataset from %s", url)
    try:
        resp = getter(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise ExternalResourceUnavailable(
            f"Failed to fetch dataset from {url}: {exc}"
        ) from exc

    content = resp.content
    if not content:
        raise ExternalResourceUnavailable(f"Empty response from {url}")

    destination.parent.mkdir(parents=True, exist_ok=True)
    tmp = destination.with_name(destination.name + ".part")
    try:
        with open(tmp, 'wb') as f:
            f.write(content)
        os.replace(tmp, destination)
    except OSError as exc:
        raise ExternalResourceUnavailable(
            f"Could not write dataset to {destination}: {exc}"
        ) from exc
    logger.info("Saved %d bytes to %s", len(content), destination)
    return destination


# ═══════════════════════════════════════════════════════════════════════
# LOAD
# ═══════════════════════════════════════════════════════════════════════

_SEPARATORS = re.compile(r'[^0-9a-z]+')


def normalize_column_name(name) -> str:
    """'Ind.Cov Sum' → 'ind_cov_sum'."""
    return _SEPARATORS.sub('_', str(name).strip().lower()).strip('_')


def normalize_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Return a copy with normalized column headers.

    Raises:
        ExternalResourceUnavailable: If two headers collide after
            normalization.
    """
    names = [normalize_column_name(c) for c in frame.columns]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ExternalResourceUnavailable(
            f"Columns collide after header normalization: {dupes}"
        )
    out = frame.copy()
    out.columns = names
    return out


def load_dataset(
    path: Union[str, Path],
    columns: DatasetColumns = DatasetColumns(),
    **read_csv_kwargs,
) -> pd.DataFrame:
    """Read the reference CSV and return its four required fields as floats.

    Rows with a missing or non-numeric value in any required field are
    dropped (logged at WARNING).

    Raises:
        ExternalResourceUnavailable: Missing/unreadable file or missing
            required columns.
    """
    path = Path(path)
    try:
        raw = pd.read_csv(path, **read_csv_kwargs)
    except FileNotFoundError as exc:
        raise ExternalResourceUnavailable(f"Dataset file not found: {path}") from exc
    except (pd.errors.ParserError, pd.errors.EmptyDataError,
            UnicodeDecodeError, OSError) as exc:
        raise ExternalResourceUnavailable(f"Could not parse dataset {path}: {exc}") from exc

    frame = normalize_columns(raw)
    missing = [c for c in columns.required() if c not in frame.columns]
    if missing:
        raise ExternalResourceUnavailable(
            f"Dataset {path} is missing required columns {missing}; "
            f"found {list(frame.columns)}"
        )

    data = frame[columns.required()].apply(pd.to_numeric, errors='coerce')
    bad = data.isna().any(axis=1)
    if bad.any():
        logger.warning(
            "Dropping %d of %d rows with missing or non-numeric values in %s",
            int(bad.sum()), len(data), path.name,
        )
        data = data.loc[~bad]
    return data.reset_index(drop=True)


# ═══════════════════════════════════════════════════════════════════════
# BINNING & COMPARISON
# ═══════════════════════════════════════════════════════════════════════

def _fmt_edge(x: float) -> str:
    return f"{x:g}"


def bin_labels(edges: Sequence[float]) -> List[str]:
    """Labels for left-closed bins: [0, 1, 5, inf] → ['0-1', '1-5', '5+']."""
    labels = []
    for lo, hi in zip(edges, edges[1:]):
        if math.isinf(hi):
            labels.append(f"{_fmt_edge(lo)}+")
        else:
            labels.append(f"{_fmt_edge(lo)}-{_fmt_edge(hi)}")
    return labels


def bin_coverage(
    values,
    edges: Sequence[float],
    labels: Optional[Sequence[str]] = None,
) -> pd.Categorical:
    """Assign coverage values to ordinal, left-closed bins.

    Values outside [edges[0], edges[-1]) become NaN.
    """
    edges = [float(e) for e in edges]
    if len(edges) < 2 or any(b <= a for a, b in zip(edges, edges[1:])):
        raise InvalidParameter(f"bin edges must be strictly increasing, got {edges}")
    if labels is None:
        labels = bin_labels(edges)
    if len(labels) != len(edges) - 1:
        raise InvalidParameter(
            f"{len(edges) - 1} bins need {len(edges) - 1} labels, got {len(labels)}"
        )
    return pd.cut(
        np.asarray(values, dtype=float),
        bins=edges,
        labels=list(labels),
        right=False,
        ordered=True,
    )


def _bin_summary(sites: pd.DataFrame, bin_col: str, cov_col: str) -> pd.DataFrame:
    grouped = sites.groupby(bin_col, observed=False)
    table = pd.DataFrame({
        'n_sites': grouped.size(),
        'n_false_negative': grouped['false_negative'].sum().astype(int),
        'median_coverage': grouped[cov_col].median(),
    })
    # empty bins get NaN, not 0
    table['false_negative_rate'] = (
        table['n_false_negative'] / table['n_sites'].replace(0, np.nan)
    )
    table.index.name = 'bin'
    return table.reset_index()


def compare_detection(
    frame: pd.DataFrame,
    columns: DatasetColumns = DatasetColumns(),
    individual_bins: Sequence[float] = (0, 1, 5, 10, 20, 50, float('inf')),
    pool_bins: Sequence[float] = (0, 10, 50, 100, 200, 500, float('inf')),
    panel_size: int = 50,
    n_pool_replicates: int = 1,
) -> ComparisonResult:
    """Empirical false-negative rate of pooled vs individual sequencing.

    Args:
        frame: Table with the four required (normalized) columns.
        columns: Column names.
        individual_bins: Edges for coverage per individual
            (individual summed coverage / panel_size).
        pool_bins: Edges for coverage per pool replicate
            (pool summed coverage / n_pool_replicates).
        panel_size: Individuals in the sequenced panel.
        n_pool_replicates: Pool replicates summed into the pool coverage.

    Returns:
        ComparisonResult.

    Raises:
        InvalidParameter: Empty table, missing columns or bad divisors.
    """
    if panel_size < 1:
        raise InvalidParameter(f"panel_size must be >= 1, got {panel_size}")
    if n_pool_replicates < 1:
        raise InvalidParameter(
            f"n_pool_replicates must be >= 1, got {n_pool_replicates}"
        )
    missing = [c for c in columns.required() if c not in frame.columns]
    if missing:
        raise InvalidParameter(f"frame is missing required columns {missing}")
    n_sites = len(frame)
    if n_sites == 0:
        raise InvalidParameter("cannot compute a false-negative rate over zero sites")

    sites = pd.DataFrame({
        'individual_coverage': frame[columns.individual_coverage].to_numpy(dtype=float) / panel_size,
        'pool_coverage': frame[columns.pool_coverage].to_numpy(dtype=float) / n_pool_replicates,
        'individual_frequency': frame[columns.individual_frequency].to_numpy(dtype=float),
        'pool_frequency': frame[columns.pool_frequency].to_numpy(dtype=float),
    })
    sites['false_negative'] = (
        (sites['individual_frequency'] != 0) & (sites['pool_frequency'] == 0)
    )
    sites['individual_bin'] = bin_coverage(sites['individual_coverage'], individual_bins)
    sites['pool_bin'] = bin_coverage(sites['pool_coverage'], pool_bins)

    n_fn = int(sites['false_negative'].sum())
    result = ComparisonResult(
        n_sites=n_sites,
        n_false_negative=n_fn,
        overall_false_negative_rate=n_fn / n_sites,
        by_individual_bin=_bin_summary(sites, 'individual_bin', 'individual_coverage'),
        by_pool_bin=_bin_summary(sites, 'pool_bin', 'pool_coverage'),
        sites=sites,
    )
    logger.info(
        "Reference dataset: %d/%d sites missed by pool (FNR=%.4f)",
        n_fn, n_sites, result.overall_false_negative_rate,
    )
    return result


def columns_from_config(section) -> DatasetColumns:
    """DatasetColumns from a ComparisonSection."""
    return DatasetColumns(
        individual_coverage=section.individual_coverage_column,
        pool_coverage=section.pool_coverage_column,
        individual_frequency=section.individual_frequency_column,
        pool_frequency=section.pool_frequency_column,
    )


def compare_from_config(config, fetch: bool = True) -> ComparisonResult:
    """Fetch (if configured), load and compare the reference dataset."""
    section = config.comparison
    path = Path(section.data_path)
    if fetch:
        path = fetch_dataset(section.url, path, timeout=section.timeout)
    columns = columns_from_config(section)
    frame = load_dataset(path, columns)
    return compare_detection(
        frame,
        columns,
        individual_bins=section.individual_bins,
        pool_bins=section.pool_bins,
        panel_size=section.panel_size,
        n_pool_replicates=section.n_pool_replicates,
    )
