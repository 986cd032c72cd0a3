"""
Burden threshold selection.

Finds the smallest set of countries that together account for a given
share of total burden in the reference year:

1. Reference year = latest year in the data (unless configured)
2. Sum burden per country for that year
3. Sort descending by total, ties broken by country name
4. Running cumulative share of the grand total
5. Cut at the first country whose cumulative share reaches the threshold

If no position reaches the threshold (zero grand total), every country is
kept rather than failing.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.75

# Absorbs rounding in shares such as 150/200 that should equal the threshold
SHARE_TOLERANCE = 1e-12

SUMMARY_COLUMNS = ["rank", "country", "plhiv_latest", "cum_share"]


@dataclass(frozen=True)
class TopCountrySelection:
    """Countries covering the threshold share of reference-year burden."""

    countries: tuple[str, ...]
    reference_year: int
    threshold: float
    cutoff_position: int
    covered_share: float
    summary: pd.DataFrame = field(repr=False, compare=False)

    def __len__(self) -> int:
        return len(self.countries)

    def __iter__(self):
        return iter(self.countries)

    def __contains__(self, country: object) -> bool:
        return country in self.countries


def resolve_reference_year(
    records: pd.DataFrame,
    reference_year: int | None = None,
) -> int:
    """Latest year in the records, or the explicit year if it is present."""
    if records.empty:
        raise ValueError("No burden records: cannot determine a reference year")

    years = set(records["year"].unique())
    if reference_year is None:
        return int(max(years))

    if reference_year not in years:
        raise ValueError(
            f"Reference year {reference_year} not in burden data. "
            f"Available years: {min(years)}-{max(years)}"
        )
    return int(reference_year)


def summarize_reference_year(
    records: pd.DataFrame,
    reference_year: int | None = None,
) -> pd.DataFrame:
    """
    Build the per-country burden summary for the reference year.

    Args:
        records: Normalized burden records (country, year, value)
        reference_year: Year to summarize (default: latest in records)

    Returns:
        DataFrame with rank, country, plhiv_latest and cum_share, sorted by
        plhiv_latest descending then country ascending
    """
    year = resolve_reference_year(records, reference_year)
    latest = records[records["year"] == year]

    totals = (
        latest.groupby("country", sort=True)["value"]
        .sum()
        .rename("plhiv_latest")
        .reset_index()
    )
    # Equal totals are ordered by country name
    totals = totals.sort_values(
        ["plhiv_latest", "country"], ascending=[False, True], kind="mergesort"
    ).reset_index(drop=True)

    grand_total = totals["plhiv_latest"].sum()
    if grand_total > 0:
        cum_share = totals["plhiv_latest"].cumsum() / grand_total
        cum_share.iloc[-1] = 1.0
    else:
        cum_share = pd.Series(np.zeros(len(totals)), index=totals.index)

    totals["cum_share"] = cum_share.astype("float64")
    totals["rank"] = np.arange(1, len(totals) + 1)

    return totals[SUMMARY_COLUMNS]


def find_cutoff(cum_share: pd.Series, threshold: float) -> int | None:
    """1-indexed position of the first cumulative share reaching threshold."""
    reached = np.flatnonzero(cum_share.to_numpy() >= threshold - SHARE_TOLERANCE)
    if len(reached) == 0:
        return None
    return int(reached[0]) + 1


def select_top_countries(
    records: pd.DataFrame,
    threshold: float = DEFAULT_THRESHOLD,
    reference_year: int | None = None,
) -> TopCountrySelection:
    """
    Select the minimal country set covering ``threshold`` of burden.

    Args:
        records: Normalized burden records, any number of years
        threshold: Target cumulative share in (0, 1]
        reference_year: Year used for selection (default: latest)

    Returns:
        TopCountrySelection with ordered countries and the summary table
    """
    if not 0 < threshold <= 1:
        raise ValueError(f"Threshold must be in (0, 1], got {threshold}")

    summary = summarize_reference_year(records, reference_year)
    year = resolve_reference_year(records, reference_year)

    cutoff = find_cutoff(summary["cum_share"], threshold)
    if cutoff is None:
        logger.warning(
            f"No country reaches cumulative share {threshold:.2f} in {year}; "
            f"keeping all {len(summary)} countries"
        )
        cutoff = len(summary)

    countries = tuple(summary["country"].iloc[:cutoff])
    covered = float(summary["cum_share"].iloc[cutoff - 1])

    logger.info(
        f"Reference year {year}: {cutoff} of {len(summary)} countries "
        f"cover {covered:.1%} of burden (threshold {threshold:.0%})"
    )

    return TopCountrySelection(
        countries=countries,
        reference_year=year,
        threshold=threshold,
        cutoff_position=cutoff,
        covered_share=covered,
        summary=summary,
    )


def as_country_set(countries: TopCountrySelection | Iterable[str]) -> tuple[str, ...]:
    """Ordered tuple of country identifiers from a selection or iterable."""
    if isinstance(countries, TopCountrySelection):
        return countries.countries
    if isinstance(countries, str):
        return (countries,)
    return tuple(countries)
