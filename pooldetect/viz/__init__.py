"""pooldetect visualization library.

Modules:
  - style: Dark theme colours and helpers
  - detection: Outcome counts, false-negative curve, empirical comparison
"""

from pooldetect.viz.style import (  # noqa: F401
    ACCENT_COLORS,
    DARK_BG,
    DARK_PANEL,
    EMPIRICAL_COLOR,
    GRID_COLOR,
    OUTCOME_COLORS,
    TEXT_COLOR,
    apply_dark_theme,
    dark_figure,
    save_figure,
)

from pooldetect.viz.detection import (  # noqa: F401
    plot_empirical_comparison,
    plot_false_negative_curve,
    plot_outcome_counts,
)
