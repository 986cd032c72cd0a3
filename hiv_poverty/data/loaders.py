"""
Raw file readers for the burden estimates and the poverty workbook.

These readers only get the files into DataFrames. All typing, cleaning and
row exclusion happens in ``hiv_poverty.data.normalize``.
"""

import logging
from pathlib import Path

import pandas as pd

from hiv_poverty.data.normalize import POVERTY_COLUMNS

logger = logging.getLogger(__name__)

BURDEN_RAW_COLUMNS = ["location", "period", "value"]

# WHO Global Health Observatory export headers
GHO_COLUMN_MAP = {
    "Location": "location",
    "Period": "period",
    "Value": "value",
}


def load_burden_table(path: str | Path) -> pd.DataFrame:
    """
    Read the burden estimates CSV.

    Accepts the canonical lower-case headers or the GHO export headers.

    Args:
        path: CSV file path

    Returns:
        DataFrame with location, period and value columns (raw strings)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Burden file not found at {path}")

    df = pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[""])
    df = df.rename(columns={k: v for k, v in GHO_COLUMN_MAP.items() if k in df.columns})

    missing = [c for c in BURDEN_RAW_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(
            f"Burden file {path.name} is missing columns {missing}. "
            f"Found: {list(df.columns)}"
        )

    logger.info(f"Loaded {len(df)} burden rows from {path}")
    return df[BURDEN_RAW_COLUMNS].copy()


def load_poverty_table(path: str | Path, header_rows: int = 2) -> pd.DataFrame:
    """
    Read the poverty table by position.

    The first ``header_rows`` rows are human-readable captions and are
    discarded. Columns past the sixteenth are ignored.

    Args:
        path: .xlsx/.xls workbook or .csv file
        header_rows: Number of caption rows to skip

    Returns:
        DataFrame with positional integer column labels 0..15
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Poverty file not found at {path}")

    if path.suffix.lower() in (".xlsx", ".xls"):
        df = pd.read_excel(path, header=None, skiprows=header_rows, dtype=object)
    else:
        df = pd.read_csv(path, header=None, skiprows=header_rows, dtype=str)

    n_expected = len(POVERTY_COLUMNS)
    if df.shape[1] < n_expected:
        raise ValueError(
            f"Poverty file {path.name} has {df.shape[1]} columns, "
            f"expected at least {n_expected}"
        )

    df = df.iloc[:, :n_expected]
    df.columns = range(n_expected)

    logger.info(f"Loaded {len(df)} poverty rows from {path}")
    return df
