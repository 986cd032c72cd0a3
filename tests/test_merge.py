"""
Tests for series subsetting and the burden/poverty merge.
"""

import pandas as pd
import pytest

from hiv_poverty.data.merge import (
    EmptyMergeError,
    merge_datasets,
    merge_diagnostics,
    subset_series,
)
from hiv_poverty.data.normalize import normalize_burden, normalize_poverty
from hiv_poverty.model.selection import select_top_countries
from tests.fixtures.synthetic_data import make_burden_raw, make_poverty_raw


@pytest.fixture
def burden():
    return normalize_burden(make_burden_raw())


@pytest.fixture
def poverty():
    return normalize_poverty(
        make_poverty_raw(
            {
                "Country_A": [2015, 2018, 2021],
                "Country_B": [2017],
                "Country_C": [2016, 2030],
                "Country_J": [2019],
            }
        )
    )


class TestSubsetSeries:
    """Test the country filter."""

    def test_pure_filter(self, burden):
        selection = select_top_countries(burden, threshold=0.75)
        subset = subset_series(burden, selection)

        assert len(subset) <= len(burden)
        assert set(subset["country"]) <= set(selection.countries)

    def test_all_years_preserved(self, burden):
        subset = subset_series(burden, ["Country_A"])
        expected = burden[burden["country"] == "Country_A"]
        assert subset["year"].tolist() == expected["year"].tolist()
        assert subset["value"].tolist() == expected["value"].tolist()

    def test_order_preserved(self, burden):
        subset = subset_series(burden, ["Country_C", "Country_A"])
        expected = burden[burden["country"].isin(["Country_A", "Country_C"])]
        assert subset["country"].tolist() == expected["country"].tolist()

    def test_no_aggregation(self):
        records = pd.DataFrame(
            {"country": ["A", "A", "B"], "year": [2020, 2020, 2020], "value": [1.0, 2.0, 3.0]}
        )
        assert len(subset_series(records, ["A"])) == 2

    def test_input_not_mutated(self, burden):
        before = burden.copy()
        subset_series(burden, ["Country_A"])
        pd.testing.assert_frame_equal(burden, before)


class TestMergeDatasets:
    """Test the (country, year) inner join."""

    def test_only_matching_pairs(self, burden, poverty):
        subset = subset_series(burden, ["Country_A", "Country_B", "Country_C"])
        merged = merge_datasets(subset, poverty)

        pairs = set(zip(merged["country"], merged["year"]))
        assert pairs == {
            ("Country_A", 2015),
            ("Country_A", 2018),
            ("Country_A", 2021),
            ("Country_B", 2017),
            ("Country_C", 2016),
        }

    def test_no_pair_outside_either_source(self, burden, poverty):
        subset = subset_series(burden, ["Country_A", "Country_B", "Country_C"])
        merged = merge_datasets(subset, poverty)

        burden_pairs = set(zip(subset["country"], subset["year"]))
        poverty_pairs = set(zip(poverty["country"], poverty["year"]))
        for pair in zip(merged["country"], merged["year"]):
            assert pair in burden_pairs
            assert pair in poverty_pairs

        assert len(merged) <= min(len(subset), len(poverty))

    def test_burden_renamed_and_covariates_attached(self, burden, poverty):
        merged = merge_datasets(subset_series(burden, ["Country_B"]), poverty)
        assert "plhiv" in merged.columns
        assert "value" not in merged.columns
        assert merged.loc[0, "poverty_headcount"] == pytest.approx(
            poverty.loc[poverty["country"] == "Country_B", "poverty_headcount"].iloc[0]
        )

    def test_empty_intersection_raises(self, burden, poverty):
        subset = subset_series(burden, ["Country_D", "Country_E"])
        with pytest.raises(EmptyMergeError, match="share no"):
            merge_datasets(subset, poverty)

    def test_empty_merge_is_value_error(self):
        assert issubclass(EmptyMergeError, ValueError)

    def test_duplicate_burden_rows_summed(self, poverty):
        burden = pd.DataFrame(
            {
                "country": ["Country_B", "Country_B"],
                "year": [2017, 2017],
                "value": [100.0, 50.0],
            }
        )
        merged = merge_datasets(burden, poverty)
        assert len(merged) == 1
        assert merged.loc[0, "plhiv"] == 150.0

    def test_duplicate_poverty_rows_do_not_fan_out(self, burden):
        poverty = normalize_poverty(make_poverty_raw({"Country_A": [2016, 2016]}))
        merged = merge_datasets(subset_series(burden, ["Country_A"]), poverty)
        assert len(merged) == 1
        assert merged.loc[0, "poverty_headcount"] == poverty.loc[0, "poverty_headcount"]


class TestMergeDiagnostics:
    """Test merged-table counts."""

    def test_counts(self, burden, poverty):
        subset = subset_series(burden, ["Country_A", "Country_B", "Country_C"])
        diagnostics = merge_diagnostics(merge_datasets(subset, poverty))

        assert diagnostics.n_rows == 5
        assert diagnostics.n_countries == 3
        assert diagnostics.n_years == 5
        assert diagnostics.rows_per_country.to_dict() == {
            "Country_A": 3,
            "Country_B": 1,
            "Country_C": 1,
        }
        assert diagnostics.max_rows_per_country == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
