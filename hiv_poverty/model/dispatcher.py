"""
Model dispatch for the merged burden/poverty table.

Two model forms, chosen from the shape of the merged data:

- CROSS-SECTIONAL: every country has exactly one merged row.
  OLS: plhiv ~ poverty_headcount + education_enrollment + electricity_access
       + sanitation_access + water_access + year
  Year enters as a numeric covariate.

- MIXED EFFECTS: at least one country has repeated rows.
  Same fixed effects plus a random intercept by year, fit by maximum
  likelihood (reml=False) so log-likelihoods are comparable across models.

education_attainment is left out of both forms.

Fitting failures (rank-deficient design, too few rows, non-finite
estimates) raise ModelFitError. There is no fallback to a smaller model.
"""

import logging
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy import stats
from statsmodels.tools.sm_exceptions import ConvergenceWarning

logger = logging.getLogger(__name__)

OUTCOME = "plhiv"

MODEL_COVARIATES = [
    "poverty_headcount",
    "education_enrollment",
    "electricity_access",
    "sanitation_access",
    "water_access",
    "year",
]

GROUP_COLUMN = "year"

COEFFICIENT_COLUMNS = [
    "estimate",
    "std_error",
    "ci_lower",
    "ci_upper",
    "statistic",
    "pvalue",
]


class ModelFitError(RuntimeError):
    """The requested model could not be estimated on the merged data."""


class ModelForm(Enum):
    """Regression form chosen for the merged data."""

    CROSS_SECTIONAL = "cross_sectional"
    MIXED_EFFECTS = "mixed_effects"


def build_formula(outcome: str = OUTCOME, covariates: list[str] | None = None) -> str:
    covariates = covariates or MODEL_COVARIATES
    return f"{outcome} ~ {' + '.join(covariates)}"


def _significance_stars(pvalue: float) -> str:
    if pvalue < 0.01:
        return "***"
    elif pvalue < 0.05:
        return "**"
    elif pvalue < 0.1:
        return "*"
    return ""


def _format_coefficients(coefficients: pd.DataFrame) -> list[str]:
    lines = [
        f"\n{'Coefficient':<24} {'Estimate':>14} {'Std.Err':>14} {'Stat':>9} {'p-value':>10}",
        "-" * 75,
    ]
    for var, row in coefficients.iterrows():
        lines.append(
            f"{var:<24} {row['estimate']:>14.4f} {row['std_error']:>14.4f} "
            f"{row['statistic']:>9.3f} {row['pvalue']:>8.4f}{_significance_stars(row['pvalue'])}"
        )
    return lines


@dataclass(frozen=True)
class CrossSectionalFit:
    """OLS fit with one row per country."""

    coefficients: pd.DataFrame
    nobs: int
    formula: str
    r_squared: float
    adj_r_squared: float
    form: ModelForm = ModelForm.CROSS_SECTIONAL
    statsmodels_result: Any = field(default=None, repr=False, compare=False)

    def summary(self) -> str:
        lines = [
            f"\n{'='*75}",
            "Model: cross-sectional OLS",
            f"{'='*75}",
            f"Formula: {self.formula}",
            f"N obs: {self.nobs:,}",
            f"R²: {self.r_squared:.4f} (adj. {self.adj_r_squared:.4f})",
        ]
        return "\n".join(lines + _format_coefficients(self.coefficients))


@dataclass(frozen=True)
class MixedEffectsFit:
    """Linear mixed model with a random intercept by year."""

    coefficients: pd.DataFrame
    nobs: int
    formula: str
    n_groups: int
    group_variance: float
    log_likelihood: float
    converged: bool
    form: ModelForm = ModelForm.MIXED_EFFECTS
    statsmodels_result: Any = field(default=None, repr=False, compare=False)

    def summary(self) -> str:
        lines = [
            f"\n{'='*75}",
            f"Model: mixed effects (random intercept by {GROUP_COLUMN}, ML)",
            f"{'='*75}",
            f"Formula: {self.formula}",
            f"N obs: {self.nobs:,}  Groups: {self.n_groups}",
            f"Group variance: {self.group_variance:.4g}",
            f"Log-likelihood: {self.log_likelihood:.3f}",
        ]
        if not self.converged:
            lines.append("WARNING: optimizer did not converge")
        return "\n".join(lines + _format_coefficients(self.coefficients))


ModelFit = Union[CrossSectionalFit, MixedEffectsFit]


def choose_model_form(merged: pd.DataFrame) -> ModelForm:
    """Cross-sectional when every country has exactly one merged row."""
    if merged.empty:
        raise ValueError("Cannot choose a model form for an empty merged table")

    rows_per_country = merged.groupby("country").size()
    if (rows_per_country == 1).all():
        return ModelForm.CROSS_SECTIONAL
    return ModelForm.MIXED_EFFECTS


class ModelDispatcher:
    """Selects and fits the regression form that matches the merged data."""

    def __init__(self, merged: pd.DataFrame, covariates: list[str] | None = None):
        """
        Initialize with the merged table.

        Args:
            merged: Merged burden/poverty rows
            covariates: Fixed-effect covariates (default: MODEL_COVARIATES)
        """
        self.merged = merged.copy()
        self.covariates = list(covariates or MODEL_COVARIATES)
        self.formula = build_formula(OUTCOME, self.covariates)

    @property
    def form(self) -> ModelForm:
        return choose_model_form(self.merged)

    def fit(self) -> ModelFit:
        """Fit whichever form the data shape calls for."""
        form = self.form
        logger.info(f"Model form: {form.value} ({len(self.merged)} merged rows)")

        if form is ModelForm.CROSS_SECTIONAL:
            return self.fit_cross_sectional()
        return self.fit_mixed_effects()

    def _model_frame(self) -> pd.DataFrame:
        """Rows complete for outcome and covariates."""
        columns = [OUTCOME] + [c for c in self.covariates if c != OUTCOME]
        missing = [c for c in columns if c not in self.merged.columns]
        if missing:
            raise ModelFitError(f"Merged data missing model columns: {missing}")

        data = self.merged[columns].apply(pd.to_numeric, errors="coerce")
        if "country" in self.merged.columns:
            data["country"] = self.merged["country"]
        complete = data.dropna(subset=columns).reset_index(drop=True)

        dropped = len(data) - len(complete)
        if dropped:
            logger.warning(f"Dropped {dropped} merged rows with missing model variables")

        return complete

    def _check_design(self, data: pd.DataFrame) -> None:
        """Fail early on designs statsmodels would fit to garbage."""
        n_params = len(self.covariates) + 1
        if len(data) < n_params:
            raise ModelFitError(
                f"Too few observations for {self.formula}: "
                f"{len(data)} rows, {n_params} parameters"
            )

        X = np.column_stack(
            [np.ones(len(data))] + [data[c].to_numpy(dtype=float) for c in self.covariates]
        )
        rank = np.linalg.matrix_rank(X)
        if rank < n_params:
            raise ModelFitError(
                f"Design matrix is rank deficient (rank {rank} < {n_params} parameters). "
                "Covariates are collinear in the merged data."
            )

    def _coefficient_table(
        self,
        params: pd.Series,
        std_errors: pd.Series,
        statistics: pd.Series,
        pvalues: pd.Series,
        conf_int: pd.DataFrame,
    ) -> pd.DataFrame:
        """Covariate rows only: intercept and variance terms are dropped."""
        table = pd.DataFrame(
            {
                "estimate": params,
                "std_error": std_errors,
                "ci_lower": conf_int.iloc[:, 0],
                "ci_upper": conf_int.iloc[:, 1],
                "statistic": statistics,
                "pvalue": pvalues,
            }
        )
        table = table.loc[self.covariates, COEFFICIENT_COLUMNS].astype(float)

        bad = ~np.isfinite(table[["estimate", "std_error"]]).all(axis=1)
        if bad.any():
            raise ModelFitError(
                f"Non-finite estimates for {list(table.index[bad])}; "
                "the model is not identified on this data"
            )
        return table

    def fit_cross_sectional(self) -> CrossSectionalFit:
        """
        Fit OLS with year as a numeric covariate.

        Returns:
            CrossSectionalFit with covariate estimates, SEs, t-stats, p-values
        """
        data = self._model_frame()
        self._check_design(data)

        try:
            result = smf.ols(self.formula, data=data).fit()
        except (np.linalg.LinAlgError, ValueError) as e:
            raise ModelFitError(f"OLS fit failed: {e}") from e

        coefficients = self._coefficient_table(
            result.params,
            result.bse,
            result.tvalues,
            result.pvalues,
            result.conf_int(),
        )

        return CrossSectionalFit(
            coefficients=coefficients,
            nobs=int(result.nobs),
            formula=self.formula,
            r_squared=float(result.rsquared),
            adj_r_squared=float(result.rsquared_adj),
            statsmodels_result=result,
        )

    def fit_mixed_effects(self) -> MixedEffectsFit:
        """
        Fit a linear mixed model with a random intercept by year.

        Estimated by maximum likelihood, not REML.

        Returns:
            MixedEffectsFit with fixed-effect estimates, SEs, z-stats, p-values
        """
        data = self._model_frame()
        self._check_design(data)

        n_groups = int(data[GROUP_COLUMN].nunique())
        if n_groups < 2:
            raise ModelFitError(
                f"Mixed model needs at least 2 {GROUP_COLUMN} groups, found {n_groups}"
            )

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            try:
                model = smf.mixedlm(self.formula, data=data, groups=data[GROUP_COLUMN])
                result = model.fit(reml=False)
            except (np.linalg.LinAlgError, ValueError) as e:
                raise ModelFitError(f"Mixed model fit failed: {e}") from e

        converged = bool(getattr(result, "converged", True))
        if not converged:
            logger.warning("Mixed model optimizer did not converge")

        # Wald inference on the fixed effects only (variance terms excluded)
        fe_params = pd.Series(np.asarray(result.fe_params), index=result.model.exog_names)
        bse_fe = pd.Series(np.asarray(result.bse_fe), index=fe_params.index)
        z_values = fe_params / bse_fe
        z_crit = stats.norm.ppf(0.975)
        coefficients = self._coefficient_table(
            fe_params,
            bse_fe,
            z_values,
            pd.Series(2 * stats.norm.sf(np.abs(z_values)), index=fe_params.index),
            pd.DataFrame(
                {"lower": fe_params - z_crit * bse_fe, "upper": fe_params + z_crit * bse_fe}
            ),
        )

        return MixedEffectsFit(
            coefficients=coefficients,
            nobs=len(data),
            formula=self.formula,
            n_groups=n_groups,
            group_variance=float(result.cov_re.iloc[0, 0]),
            log_likelihood=float(result.llf),
            converged=converged,
            statsmodels_result=result,
        )


def fit_model(merged: pd.DataFrame) -> ModelFit:
    """
    Convenience function to dispatch and fit.

    Args:
        merged: Merged burden/poverty rows

    Returns:
        CrossSectionalFit or MixedEffectsFit
    """
    return ModelDispatcher(merged).fit()


def fit_cross_sectional(merged: pd.DataFrame) -> CrossSectionalFit:
    """Fit the cross-sectional OLS form regardless of data shape."""
    return ModelDispatcher(merged).fit_cross_sectional()


def fit_mixed_effects(merged: pd.DataFrame) -> MixedEffectsFit:
    """Fit the year random-intercept form regardless of data shape."""
    return ModelDispatcher(merged).fit_mixed_effects()
