"""
Series subsetting and burden/poverty merge.

The selected country set gates everything downstream: the full burden
series (all years) is filtered to it, then inner-joined with the poverty
series on (country, year). Survey years are irregular, so the join is
sparse and its size is not known in advance.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

import pandas as pd

from hiv_poverty.model.selection import TopCountrySelection, as_country_set

logger = logging.getLogger(__name__)

JOIN_KEYS = ["country", "year"]


class EmptyMergeError(ValueError):
    """Burden and poverty series share no (country, year) pair."""


@dataclass(frozen=True)
class MergeDiagnostics:
    """Shape of the merged table."""

    n_rows: int
    n_countries: int
    n_years: int
    rows_per_country: pd.Series

    @property
    def max_rows_per_country(self) -> int:
        return int(self.rows_per_country.max()) if self.n_rows else 0


def subset_series(
    records: pd.DataFrame,
    countries: TopCountrySelection | Iterable[str],
) -> pd.DataFrame:
    """
    Keep records whose country is in the selected set.

    All years are preserved, row order is unchanged, nothing is aggregated.
    """
    selected = set(as_country_set(countries))
    mask = records["country"].isin(selected)
    return records.loc[mask].reset_index(drop=True)


def _collapse_burden(burden: pd.DataFrame) -> pd.DataFrame:
    """Sum duplicate (country, year) burden rows so the join cannot fan out."""
    duplicated = burden.duplicated(subset=JOIN_KEYS, keep=False)
    if not duplicated.any():
        return burden

    logger.warning(
        f"Summing {int(duplicated.sum())} burden rows that share a (country, year)"
    )
    return burden.groupby(JOIN_KEYS, as_index=False, sort=False)["value"].sum()


def _dedupe_poverty(poverty: pd.DataFrame) -> pd.DataFrame:
    """Keep the first survey row per (country, year)."""
    duplicated = poverty.duplicated(subset=JOIN_KEYS, keep="first")
    if not duplicated.any():
        return poverty

    logger.warning(
        f"Dropping {int(duplicated.sum())} duplicate poverty rows per (country, year)"
    )
    return poverty.loc[~duplicated]


def merge_datasets(burden: pd.DataFrame, poverty: pd.DataFrame) -> pd.DataFrame:
    """
    Inner-join burden and poverty series on (country, year).

    Args:
        burden: Subsetted burden records (country, year, value)
        poverty: Normalized poverty records

    Returns:
        Merged DataFrame with burden as ``plhiv`` plus all poverty columns

    Raises:
        EmptyMergeError: If no (country, year) pair is present on both sides
    """
    left = _collapse_burden(burden[JOIN_KEYS + ["value"]]).rename(
        columns={"value": "plhiv"}
    )
    right = _dedupe_poverty(poverty)

    merged = pd.merge(left, right, on=JOIN_KEYS, how="inner", sort=False)

    if merged.empty:
        burden_countries = sorted(burden["country"].unique())
        poverty_countries = sorted(poverty["country"].unique())
        raise EmptyMergeError(
            "CRITICAL: Burden and poverty data share no (country, year) pair. "
            f"Burden rows: {len(burden)} across {burden_countries}; "
            f"poverty rows: {len(poverty)} across {len(poverty_countries)} countries. "
            "Check country naming and survey years before modeling."
        )

    merged = merged.reset_index(drop=True)
    logger.info(f"Merged dataset: {len(merged)} rows")
    return merged


def merge_diagnostics(merged: pd.DataFrame) -> MergeDiagnostics:
    """Row, country and year counts of a merged table."""
    return MergeDiagnostics(
        n_rows=len(merged),
        n_countries=int(merged["country"].nunique()),
        n_years=int(merged["year"].nunique()),
        rows_per_country=merged.groupby("country")["year"].size(),
    )
