"""
Data loading, normalization and merge modules.
"""

from hiv_poverty.data.normalize import (
    BURDEN_COLUMNS,
    POVERTY_COLUMNS,
    normalize_burden,
    normalize_poverty,
    parse_point_estimate,
)
from hiv_poverty.data.loaders import load_burden_table, load_poverty_table
from hiv_poverty.data.merge import (
    EmptyMergeError,
    MergeDiagnostics,
    merge_datasets,
    merge_diagnostics,
    subset_series,
)

__all__ = [
    "BURDEN_COLUMNS",
    "POVERTY_COLUMNS",
    "normalize_burden",
    "normalize_poverty",
    "parse_point_estimate",
    "load_burden_table",
    "load_poverty_table",
    "EmptyMergeError",
    "MergeDiagnostics",
    "merge_datasets",
    "merge_diagnostics",
    "subset_series",
]
