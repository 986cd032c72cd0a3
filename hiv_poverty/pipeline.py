"""
Analysis pipeline orchestration.

raw inputs -> normalize -> select top countries (reference year)
           -> subset burden series -> merge with poverty
           -> model dispatch + association

Each step returns a new frame; nothing downstream mutates an upstream
result. Fatal conditions (empty merge, model failure) propagate.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import pandas as pd

from config.settings import Settings, get_settings
from hiv_poverty.data.loaders import load_burden_table, load_poverty_table
from hiv_poverty.data.merge import merge_datasets, merge_diagnostics, subset_series
from hiv_poverty.data.normalize import normalize_burden, normalize_poverty
from hiv_poverty.model.association import AssociationResult, analyze_association
from hiv_poverty.model.dispatcher import ModelFit, fit_model
from hiv_poverty.model.selection import TopCountrySelection, select_top_countries

logger = logging.getLogger(__name__)


@dataclass
class DataQualityReport:
    """Report on data quality issues."""

    source: str
    total_rows: int
    dropped_rows: int
    missing_values: dict[str, int]
    year_range: tuple[int, int] | None
    warnings: list[str]
    timestamp: datetime


@dataclass
class AnalysisResult:
    """Everything one pipeline run produces."""

    selection: TopCountrySelection
    burden_subset: pd.DataFrame
    poverty: pd.DataFrame
    merged: pd.DataFrame
    model: ModelFit
    association: AssociationResult
    quality_reports: list[DataQualityReport] = field(default_factory=list)


class AnalysisPipeline:
    """Runs country selection, merge and modeling end to end."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._quality_reports: list[DataQualityReport] = []

    def load_burden_raw(self) -> pd.DataFrame:
        """Read the raw burden table from the configured path."""
        return load_burden_table(self.settings.burden_path)

    def load_poverty_raw(self) -> pd.DataFrame:
        """Read the raw poverty table from the configured path."""
        return load_poverty_table(
            self.settings.poverty_path,
            header_rows=self.settings.poverty_header_rows,
        )

    def select_countries(self, burden: pd.DataFrame) -> TopCountrySelection:
        return select_top_countries(
            burden,
            threshold=self.settings.burden_threshold,
            reference_year=self.settings.reference_year,
        )

    def run(
        self,
        burden_raw: pd.DataFrame | None = None,
        poverty_raw: pd.DataFrame | None = None,
    ) -> AnalysisResult:
        """
        Run the full analysis.

        Args:
            burden_raw: Raw burden rows (default: read from settings.burden_path)
            poverty_raw: Raw positional poverty rows (default: read from settings.poverty_path)

        Returns:
            AnalysisResult
        """
        self._quality_reports = []

        # Each input falls back to its configured file independently
        if burden_raw is None:
            burden_raw = self.load_burden_raw()
        if poverty_raw is None:
            poverty_raw = self.load_poverty_raw()

        burden = normalize_burden(burden_raw)
        poverty = normalize_poverty(poverty_raw)
        self._generate_quality_report(burden, "burden", raw_rows=len(burden_raw))
        self._generate_quality_report(poverty, "poverty", raw_rows=len(poverty_raw))

        selection = self.select_countries(burden)
        burden_subset = subset_series(burden, selection)

        uncovered = sorted(set(selection.countries) - set(poverty["country"]))
        merged = merge_datasets(burden_subset, poverty)

        report = self._generate_quality_report(merged, "merged", raw_rows=len(burden_subset))
        if uncovered:
            report.warnings.append(f"Selected countries without any poverty survey: {uncovered}")
            logger.warning(f"Selected countries without any poverty survey: {uncovered}")

        diagnostics = merge_diagnostics(merged)
        logger.info(
            f"Merged rows: {diagnostics.n_rows} "
            f"({diagnostics.n_countries} countries, {diagnostics.n_years} years)"
        )

        model = fit_model(merged)
        association = analyze_association(merged)

        return AnalysisResult(
            selection=selection,
            burden_subset=burden_subset,
            poverty=poverty,
            merged=merged,
            model=model,
            association=association,
            quality_reports=list(self._quality_reports),
        )

    def _generate_quality_report(
        self, df: pd.DataFrame, source: str, raw_rows: int
    ) -> DataQualityReport:
        """Generate data quality report for a DataFrame."""
        warnings = []

        missing = df.isnull().sum().to_dict()
        missing = {k: int(v) for k, v in missing.items() if v > 0}

        year_range = None
        if "year" in df.columns and not df.empty:
            year_range = (int(df["year"].min()), int(df["year"].max()))

        dropped = raw_rows - len(df)
        if dropped > 0:
            warnings.append(f"{dropped} of {raw_rows} rows excluded")
        if missing:
            warnings.append(f"Missing values in columns: {list(missing.keys())}")

        report = DataQualityReport(
            source=source,
            total_rows=len(df),
            dropped_rows=max(dropped, 0),
            missing_values=missing,
            year_range=year_range,
            warnings=warnings,
            timestamp=datetime.now(),
        )

        for warning in warnings:
            logger.warning(f"[{source}] {warning}")

        self._quality_reports.append(report)
        return report

    def get_quality_reports(self) -> list[DataQualityReport]:
        """Get all data quality reports."""
        return self._quality_reports

    def save_outputs(
        self,
        result: AnalysisResult,
        output_dir: Path | None = None,
    ) -> dict[str, Path]:
        """Write the country shares, merged table, coefficients and association."""
        if output_dir is None:
            output_dir = self.settings.project_root / self.settings.output_dir
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = {
            "country_shares": output_dir / "country_shares.csv",
            "merged": output_dir / "merged.csv",
            "model_coefficients": output_dir / "model_coefficients.csv",
            "association": output_dir / "association.csv",
        }

        shares = result.selection.summary.copy()
        shares["selected"] = shares["rank"] <= result.selection.cutoff_position
        shares.to_csv(paths["country_shares"], index=False)
        result.merged.to_csv(paths["merged"], index=False)

        coefficients = result.model.coefficients.copy()
        coefficients.insert(0, "model_form", result.model.form.value)
        coefficients.to_csv(paths["model_coefficients"], index_label="covariate")

        result.association.to_frame().to_csv(paths["association"], index=False)

        logger.info(f"Saved outputs to {output_dir}")
        return paths


def run_pipeline(save: bool = True) -> AnalysisResult:
    """Run the complete analysis from the configured input files."""
    pipeline = AnalysisPipeline()

    logger.info("Running burden / poverty analysis...")
    result = pipeline.run()

    if save:
        pipeline.save_outputs(result)

    return result
