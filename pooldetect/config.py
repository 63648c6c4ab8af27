"""Configuration system for pooldetect.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → command-line overrides

Sections map 1:1 to YAML top-level keys. Unknown keys are ignored so
that older scenario files keep loading.
"""

from __future__ import annotations

import dataclasses
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from pooldetect.errors import InvalidParameter, NumericOverflow
from pooldetect.types import BINOMIAL_N_MAX, DEFAULT_MAX_COVERAGE, PLOIDY


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Monte Carlo control."""
    seed: Optional[int] = 42        # None = fresh entropy (non-reproducible)
    repetitions: int = 1000         # Trials per grid cell (R)
    parallel_workers: int = 1       # 1 = serial; >1 = thread pool over cells
    chunk_size: int = 10000         # Max trials drawn per fold step
    target_false_negative_rate: float = 0.05  # For the required-coverage table


@dataclass
class GridSection:
    """Parameter grid and the spiked-in resistant subpopulation.

    total resistant alleles = n_spiked_individuals × alleles_per_individual,
    constant across every cell.
    """
    coverages: List[int] = field(
        default_factory=lambda: [1, 5, 10, 20, 50, 100, 200, 500]
    )
    pool_sizes: List[int] = field(
        default_factory=lambda: [5, 10, 20, 50, 100, 200]
    )
    n_spiked_individuals: int = 2
    alleles_per_individual: int = 2   # homozygous carriers
    ploidy: int = PLOIDY
    max_coverage: int = DEFAULT_MAX_COVERAGE

    @property
    def total_resistant_alleles(self) -> int:
        return self.n_spiked_individuals * self.alleles_per_individual


@dataclass
class ComparisonSection:
    """External individual-vs-pool dataset used for validation.

    Column names refer to headers after normalization
    (lower-case, separators unified to underscores).
    """
    enabled: bool = False
    url: str = ""
    data_path: str = "data/reference_dataset.csv"
    timeout: float = 60.0
    individual_coverage_column: str = "ind_cov_sum"
    pool_coverage_column: str = "pool_cov_sum"
    individual_frequency_column: str = "ind_af"
    pool_frequency_column: str = "pool_af"
    panel_size: int = 50              # individuals sequenced separately
    n_pool_replicates: int = 1        # pool replicates summed into pool coverage
    individual_bins: List[float] = field(
        default_factory=lambda: [0, 1, 5, 10, 20, 50, float('inf')]
    )
    pool_bins: List[float] = field(
        default_factory=lambda: [0, 10, 50, 100, 200, 500, float('inf')]
    )


@dataclass
class OutputSection:
    """Output control."""
    directory: str = "results/"
    figure_format: str = "svg"
    dpi: int = 150
    write_tables: bool = True


@dataclass
class AnalysisConfig:
    """Complete analysis configuration.

    Load from YAML via `load_config()`.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    grid: GridSection = field(default_factory=GridSection)
    comparison: ComparisonSection = field(default_factory=ComparisonSection)
    output: OutputSection = field(default_factory=OutputSection)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view, suitable for YAML/JSON dumps and hashing."""
        return dataclasses.asdict(self)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Args:
        base: Base dictionary (modified in place).
        override: Override dictionary.

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> AnalysisConfig:
    """Convert a merged YAML dict to an AnalysisConfig."""
    sections = {}
    section_map = {
        'simulation': SimulationSection,
        'grid': GridSection,
        'comparison': ComparisonSection,
        'output': OutputSection,
    }
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()

    # YAML has no literal for infinity other than .inf; accept "inf" strings too
    for attr in ('individual_bins', 'pool_bins'):
        edges = getattr(sections['comparison'], attr)
        setattr(sections['comparison'], attr, [float(e) for e in edges])

    return AnalysisConfig(**sections)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config: AnalysisConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    A grid that cannot be simulated raises the same errors the grid
    builder does: InvalidParameter (a ValueError) when a pool cannot
    hold the spiked alleles, NumericOverflow when a coverage is past
    grid.max_coverage.

    Checks:
      - Repetition count, worker count and chunk size are positive
      - Grid axes are non-empty integer sequences in range
      - Every pool size can hold the spiked-in alleles (frequency ≤ 1)
      - Comparison bins are strictly increasing
      - Output format is one matplotlib can write
    """
    sim = config.simulation
    if sim.seed is not None and (not _is_int(sim.seed) or sim.seed < 0):
        raise ValueError(
            f"simulation.seed must be a non-negative integer or null, got {sim.seed!r}"
        )
    if not _is_int(sim.repetitions) or sim.repetitions < 1:
        raise ValueError(
            f"simulation.repetitions must be >= 1, got {sim.repetitions!r}"
        )
    if not _is_int(sim.parallel_workers) or sim.parallel_workers < 1:
        raise ValueError(
            f"simulation.parallel_workers must be >= 1, got {sim.parallel_workers!r}"
        )
    if not _is_int(sim.chunk_size) or sim.chunk_size < 1:
        raise ValueError(
            f"simulation.chunk_size must be >= 1, got {sim.chunk_size!r}"
        )
    if not 0 < sim.target_false_negative_rate < 1:
        raise ValueError(
            f"simulation.target_false_negative_rate must be in (0, 1), "
            f"got {sim.target_false_negative_rate}"
        )

    # Grid
    g = config.grid
    if len(g.coverages) == 0:
        raise ValueError("grid.coverages must be non-empty")
    if len(g.pool_sizes) == 0:
        raise ValueError("grid.pool_sizes must be non-empty")
    if not (_is_int(g.max_coverage) and 0 < g.max_coverage <= BINOMIAL_N_MAX):
        raise ValueError(
            f"grid.max_coverage must be in [1, {BINOMIAL_N_MAX}], got {g.max_coverage!r}"
        )
    for c in g.coverages:
        if not _is_int(c) or c < 0:
            raise ValueError(
                f"grid.coverages must be non-negative integers, got {c!r}"
            )
        if c > g.max_coverage:
            raise NumericOverflow(
                f"grid.coverages value {c} exceeds grid.max_coverage ({g.max_coverage})"
            )
    for n in g.pool_sizes:
        if not _is_int(n) or n < 1:
            raise ValueError(
                f"grid.pool_sizes must be positive integers, got {n!r}"
            )
    if g.n_spiked_individuals < 0:
        raise ValueError(
            f"grid.n_spiked_individuals must be >= 0, got {g.n_spiked_individuals}"
        )
    if g.alleles_per_individual < 1 or g.alleles_per_individual > g.ploidy:
        raise ValueError(
            f"grid.alleles_per_individual must be in [1, ploidy={g.ploidy}], "
            f"got {g.alleles_per_individual}"
        )
    smallest = min(g.pool_sizes)
    if g.total_resistant_alleles > smallest * g.ploidy:
        raise InvalidParameter(
            f"{g.total_resistant_alleles} resistant alleles do not fit in a pool "
            f"of {smallest} (max {smallest * g.ploidy} alleles); "
            f"expected frequency would exceed 1"
        )

    # Comparison
    cmp_ = config.comparison
    if cmp_.panel_size < 1:
        raise ValueError(f"comparison.panel_size must be >= 1, got {cmp_.panel_size}")
    if cmp_.n_pool_replicates < 1:
        raise ValueError(
            f"comparison.n_pool_replicates must be >= 1, got {cmp_.n_pool_replicates}"
        )
    if cmp_.timeout <= 0:
        raise ValueError(f"comparison.timeout must be positive, got {cmp_.timeout}")
    for name in ('individual_bins', 'pool_bins'):
        edges = getattr(cmp_, name)
        if len(edges) < 2:
            raise ValueError(f"comparison.{name} needs at least 2 edges")
        if any(b <= a for a, b in zip(edges, edges[1:])):
            raise ValueError(
                f"comparison.{name} must be strictly increasing, got {edges}"
            )
    if cmp_.enabled and not cmp_.url and not os.path.isfile(cmp_.data_path):
        warnings.warn(
            f"comparison.url is empty and comparison.data_path "
            f"'{cmp_.data_path}' does not exist. The comparison step will fail "
            f"at runtime.",
            UserWarning,
            stacklevel=2,
        )

    # Output
    valid_formats = {"svg", "pdf", "eps", "png"}
    if config.output.figure_format not in valid_formats:
        raise ValueError(
            f"output.figure_format must be one of {valid_formats}, "
            f"got '{config.output.figure_format}'"
        )
    if config.output.dpi < 1:
        raise ValueError(f"output.dpi must be positive, got {config.output.dpi}")


def _read_yaml(path: Path) -> Dict:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid config root in '{path}': expected mapping, got {type(data).__name__}"
        )
    return data


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> AnalysisConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        overrides: Optional dict of overrides (e.g. from the command line).

    Returns:
        Validated AnalysisConfig.

    Raises:
        FileNotFoundError: If base_path or scenario_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")
    config_dict = _read_yaml(base_path)

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        deep_merge(config_dict, _read_yaml(scenario_path))

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def config_from_dict(data: Dict) -> AnalysisConfig:
    """Build and validate a config from an already-merged dict."""
    config = _yaml_to_config(data)
    validate_config(config)
    return config


def default_config() -> AnalysisConfig:
    """Return an AnalysisConfig with all default values."""
    config = AnalysisConfig()
    validate_config(config)
    return config
