"""
Record normalization for burden and poverty sources.

Turns raw tables into canonical typed frames:

- Burden: country, year, value (point estimate of people living with HIV)
- Poverty: 16 positional columns renamed to canonical field names

Rows that cannot be used are dropped, never coerced. Missing estimates
and missing survey years are routine in both sources, so exclusion is
silent at row level; callers compare row counts to report it.
"""

import logging
import math
import re
from typing import Any

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

BURDEN_COLUMNS = ["country", "year", "value"]

# Positional layout of the multidimensional poverty table. The header row in
# the source is a caption, so columns are mapped by position only.
POVERTY_COLUMNS = [
    "region",
    "country_code",
    "country",
    "year",
    "survey_name",
    "survey_year",
    "survey_coverage",
    "welfare_type",
    "survey_comparability",
    "poverty_headcount",
    "education_attainment",
    "education_enrollment",
    "electricity_access",
    "sanitation_access",
    "water_access",
    "mpm_headcount",
]

POVERTY_NUMERIC_COLUMNS = [
    "year",
    "survey_year",
    "poverty_headcount",
    "education_attainment",
    "education_enrollment",
    "electricity_access",
    "sanitation_access",
    "water_access",
    "mpm_headcount",
]

POVERTY_REQUIRED_COLUMNS = ["country", "year", "poverty_headcount"]

# Leading point estimate: digits with interior spaces, before any "[low - high]"
_POINT_ESTIMATE = re.compile(r"^\s*(\d[\d ]*)")
_SPACE_VARIANTS = str.maketrans({"\u00a0": " ", "\u2009": " ", "\u202f": " "})


def parse_point_estimate(raw: Any) -> float | None:
    """
    Extract the point estimate from a burden value field.

    "1 200 000 [900 000 - 1 500 000]" -> 1200000.0

    Returns None when no leading number is present ("No data", "<100",
    empty, NaN) or when a numeric input is negative or non-finite.
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float, np.integer, np.floating)):
        value = float(raw)
        if not math.isfinite(value) or value < 0:
            return None
        return value

    text = str(raw).translate(_SPACE_VARIANTS)
    match = _POINT_ESTIMATE.match(text)
    if not match:
        return None

    digits = match.group(1).replace(" ", "")
    return float(digits)


def _parse_year(series: pd.Series) -> pd.Series:
    """Coerce to numeric and blank out anything that is not a whole year."""
    years = pd.to_numeric(series, errors="coerce")
    return years.where(years.notna() & (years % 1 == 0))


def _clean_country(series: pd.Series) -> pd.Series:
    country = series.astype("string").str.strip()
    return country.mask(country == "")


def normalize_burden(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize raw burden rows.

    Args:
        raw: DataFrame with location, period and value columns

    Returns:
        DataFrame with country (str), year (int64) and value (float64),
        in source order with a fresh index
    """
    missing = [c for c in ("location", "period", "value") if c not in raw.columns]
    if missing:
        raise ValueError(
            f"Burden data missing required columns {missing}. Found: {list(raw.columns)}"
        )

    df = pd.DataFrame(
        {
            "country": _clean_country(raw["location"]),
            "year": _parse_year(raw["period"]),
            "value": raw["value"].map(parse_point_estimate).astype("float64"),
        }
    )
    df = df.dropna(subset=BURDEN_COLUMNS)

    normalized = pd.DataFrame(
        {
            "country": df["country"].astype(str),
            "year": df["year"].astype("int64"),
            "value": df["value"],
        }
    ).reset_index(drop=True)

    dropped = len(raw) - len(normalized)
    if dropped:
        logger.debug(f"Excluded {dropped} of {len(raw)} burden rows without a usable estimate")

    return normalized


def normalize_poverty(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize the positional poverty table.

    Args:
        raw: DataFrame whose first 16 columns follow POVERTY_COLUMNS order

    Returns:
        DataFrame with canonical column names, numeric covariates and
        int64 year; rows missing country, year or poverty_headcount dropped
    """
    n_expected = len(POVERTY_COLUMNS)
    if raw.shape[1] < n_expected:
        raise ValueError(
            f"Poverty data has {raw.shape[1]} columns, expected {n_expected}"
        )

    df = raw.iloc[:, :n_expected].copy()
    df.columns = POVERTY_COLUMNS

    df["country"] = _clean_country(df["country"])
    for col in POVERTY_NUMERIC_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["year"] = _parse_year(df["year"])

    df = df.dropna(subset=POVERTY_REQUIRED_COLUMNS)
    df["country"] = df["country"].astype(str)
    df["year"] = df["year"].astype("int64")
    df = df.reset_index(drop=True)

    dropped = len(raw) - len(df)
    if dropped:
        logger.debug(f"Excluded {dropped} of {len(raw)} poverty rows missing keys or headcount")

    return df
