"""
Tests for burden threshold country selection.
"""

import numpy as np
import pandas as pd
import pytest

from hiv_poverty.data.normalize import normalize_burden
from hiv_poverty.model.selection import (
    TopCountrySelection,
    find_cutoff,
    resolve_reference_year,
    select_top_countries,
    summarize_reference_year,
)
from tests.fixtures.synthetic_data import make_burden_raw


def burden(rows: list[tuple[str, int, float]]) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=["country", "year", "value"])


class TestWorkedExample:
    """A:100, B:50, C:50 with threshold 0.75 selects {A, B}."""

    @pytest.fixture
    def records(self):
        return burden([("A", 2023, 100), ("B", 2023, 50), ("C", 2023, 50)])

    def test_cumulative_shares(self, records):
        summary = summarize_reference_year(records)
        assert summary["country"].tolist() == ["A", "B", "C"]
        np.testing.assert_allclose(summary["cum_share"], [0.5, 0.75, 1.0])

    def test_selection(self, records):
        selection = select_top_countries(records, threshold=0.75)
        assert selection.countries == ("A", "B")
        assert selection.cutoff_position == 2
        assert selection.covered_share == pytest.approx(0.75)
        assert selection.reference_year == 2023

    def test_default_threshold_is_three_quarters(self, records):
        assert select_top_countries(records).countries == ("A", "B")


class TestReferenceYear:
    """Test the latest-year policy and its override."""

    @pytest.fixture
    def records(self):
        return burden(
            [
                ("A", 2021, 10),
                ("B", 2021, 1000),
                ("A", 2023, 900),
                ("B", 2023, 100),
            ]
        )

    def test_latest_year_used(self, records):
        assert resolve_reference_year(records) == 2023
        assert select_top_countries(records, threshold=0.5).countries == ("A",)

    def test_explicit_year(self, records):
        selection = select_top_countries(records, threshold=0.5, reference_year=2021)
        assert selection.countries == ("B",)
        assert selection.reference_year == 2021

    def test_unknown_year_raises(self, records):
        with pytest.raises(ValueError, match="not in burden data"):
            select_top_countries(records, reference_year=1999)

    def test_empty_records_raise(self):
        with pytest.raises(ValueError, match="No burden records"):
            select_top_countries(burden([]))


class TestAggregationAndTies:
    """Test per-country summing and deterministic tie-breaking."""

    def test_multiple_records_per_country_summed(self):
        records = burden([("A", 2023, 30), ("A", 2023, 40), ("B", 2023, 50)])
        summary = summarize_reference_year(records)
        assert summary["country"].tolist() == ["A", "B"]
        assert summary["plhiv_latest"].tolist() == [70, 50]

    def test_ties_broken_by_country_name(self):
        records = burden([("Zambia", 2023, 50), ("Angola", 2023, 50), ("Malawi", 2023, 50)])
        summary = summarize_reference_year(records)
        assert summary["country"].tolist() == ["Angola", "Malawi", "Zambia"]

    def test_tie_order_independent_of_input_order(self):
        rows = [("C", 2023, 10), ("B", 2023, 10), ("A", 2023, 20), ("D", 2023, 10)]
        forward = select_top_countries(burden(rows), threshold=0.6)
        backward = select_top_countries(burden(rows[::-1]), threshold=0.6)
        assert forward.countries == backward.countries == ("A", "B")

    def test_zero_totals_retained(self):
        records = burden([("A", 2023, 100), ("B", 2023, 0), ("C", 2023, 0)])
        summary = summarize_reference_year(records)
        assert summary["country"].tolist() == ["A", "B", "C"]
        assert summary["cum_share"].tolist() == [1.0, 1.0, 1.0]


class TestThresholdProperties:
    """Test cumulative-share invariants across thresholds."""

    @pytest.fixture
    def records(self):
        return normalize_burden(make_burden_raw())

    def test_cum_share_non_decreasing_and_ends_at_one(self, records):
        cum_share = summarize_reference_year(records)["cum_share"]
        assert (cum_share.diff().dropna() >= 0).all()
        assert cum_share.iloc[-1] == pytest.approx(1.0)

    def test_cutoff_is_first_position_reaching_threshold(self, records):
        summary = summarize_reference_year(records)
        for threshold in [0.1, 0.3, 0.5, 0.75, 0.9, 0.99, 1.0]:
            selection = select_top_countries(records, threshold=threshold)
            k = selection.cutoff_position
            assert summary["cum_share"].iloc[k - 1] >= threshold - 1e-12
            if k > 1:
                assert summary["cum_share"].iloc[k - 2] < threshold

    def test_set_size_monotone_in_threshold(self, records):
        sizes = [
            len(select_top_countries(records, threshold=t))
            for t in np.linspace(0.05, 1.0, 20)
        ]
        assert sizes == sorted(sizes)

    def test_threshold_one_keeps_every_country(self, records):
        selection = select_top_countries(records, threshold=1.0)
        assert len(selection) == records["country"].nunique()

    @pytest.mark.parametrize("threshold", [0.01, 0.5, 1.0])
    def test_single_country_with_all_burden(self, threshold):
        records = burden([("A", 2023, 500), ("B", 2023, 0), ("C", 2022, 900)])
        assert select_top_countries(records, threshold=threshold).countries == ("A",)

    @pytest.mark.parametrize("threshold", [0, -0.1, 1.5])
    def test_invalid_threshold_raises(self, records, threshold):
        with pytest.raises(ValueError, match="Threshold"):
            select_top_countries(records, threshold=threshold)


class TestFallback:
    """Test the keep-everything fallback when no share reaches the threshold."""

    def test_zero_grand_total_keeps_all(self):
        records = burden([("B", 2023, 0), ("A", 2023, 0)])
        selection = select_top_countries(records, threshold=0.75)
        assert selection.countries == ("A", "B")
        assert selection.cutoff_position == 2

    def test_find_cutoff_none_when_unreachable(self):
        assert find_cutoff(pd.Series([0.0, 0.0]), 0.5) is None
        assert find_cutoff(pd.Series([0.2, 0.7, 1.0]), 0.7) == 2


class TestTopCountrySelection:
    """Test the selection value object."""

    def test_immutable(self):
        selection = select_top_countries(burden([("A", 2023, 1)]))
        with pytest.raises(AttributeError):
            selection.countries = ("B",)

    def test_container_protocol(self):
        selection = select_top_countries(
            burden([("A", 2023, 3), ("B", 2023, 1)]), threshold=0.5
        )
        assert isinstance(selection, TopCountrySelection)
        assert "A" in selection
        assert "B" not in selection
        assert list(selection) == ["A"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
