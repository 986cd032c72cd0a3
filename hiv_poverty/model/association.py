"""
Poverty / burden association.

Two fixed questions, independent of the dispatcher's model choice:

1. Pearson correlation between poverty_headcount and burden over
   pairwise-complete rows
2. OLS of burden on poverty_headcount adjusting for year; the poverty
   coefficient's estimate and p-value are reported
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy import stats

from hiv_poverty.model.dispatcher import OUTCOME, ModelFitError

logger = logging.getLogger(__name__)

EXPOSURE = "poverty_headcount"
ADJUSTMENT = "year"

MIN_CORRELATION_PAIRS = 3


@dataclass(frozen=True)
class CorrelationResult:
    """Pearson correlation over pairwise-complete rows."""

    r: float
    pvalue: float
    n: int


@dataclass(frozen=True)
class AdjustedEffect:
    """Poverty coefficient from the year-adjusted OLS."""

    estimate: float
    std_error: float
    pvalue: float
    nobs: int
    formula: str


@dataclass(frozen=True)
class AssociationResult:
    """Correlation and year-adjusted effect of poverty on burden."""

    correlation: CorrelationResult
    adjusted: AdjustedEffect

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "measure": "pearson_r",
                    "estimate": self.correlation.r,
                    "std_error": np.nan,
                    "pvalue": self.correlation.pvalue,
                    "n": self.correlation.n,
                },
                {
                    "measure": f"{EXPOSURE}_adjusted_for_{ADJUSTMENT}",
                    "estimate": self.adjusted.estimate,
                    "std_error": self.adjusted.std_error,
                    "pvalue": self.adjusted.pvalue,
                    "n": self.adjusted.nobs,
                },
            ]
        )

    def summary(self) -> str:
        return "\n".join(
            [
                f"Pearson r ({EXPOSURE}, {OUTCOME}): {self.correlation.r:.4f} "
                f"(p = {self.correlation.pvalue:.4f}, n = {self.correlation.n})",
                f"{EXPOSURE} effect adjusted for {ADJUSTMENT}: {self.adjusted.estimate:.4f} "
                f"(SE = {self.adjusted.std_error:.4f}, p = {self.adjusted.pvalue:.4f}, "
                f"n = {self.adjusted.nobs})",
            ]
        )


def pairwise_correlation(
    merged: pd.DataFrame,
    x: str = EXPOSURE,
    y: str = OUTCOME,
) -> CorrelationResult:
    """
    Pearson correlation using only rows where both columns are present.

    Too few pairs or a constant column gives NaN r and p rather than an
    error.
    """
    pairs = merged[[x, y]].apply(pd.to_numeric, errors="coerce").dropna()
    n = len(pairs)

    if n < MIN_CORRELATION_PAIRS or pairs[x].nunique() < 2 or pairs[y].nunique() < 2:
        logger.warning(f"Correlation of {x} and {y} undefined on {n} complete pairs")
        return CorrelationResult(r=np.nan, pvalue=np.nan, n=n)

    r, pvalue = stats.pearsonr(pairs[x], pairs[y])
    return CorrelationResult(r=float(r), pvalue=float(pvalue), n=n)


def year_adjusted_effect(merged: pd.DataFrame) -> AdjustedEffect:
    """
    OLS of burden on poverty_headcount and year.

    Always the cross-sectional form, whatever the data shape.
    """
    formula = f"{OUTCOME} ~ {EXPOSURE} + {ADJUSTMENT}"
    data = merged[[OUTCOME, EXPOSURE, ADJUSTMENT]].apply(pd.to_numeric, errors="coerce").dropna()

    if len(data) < 4:
        raise ModelFitError(f"Too few observations for {formula}: {len(data)} rows")

    X = np.column_stack([np.ones(len(data)), data[EXPOSURE], data[ADJUSTMENT]])
    if np.linalg.matrix_rank(X) < 3:
        raise ModelFitError(
            f"Design matrix for {formula} is rank deficient; "
            f"{EXPOSURE} or {ADJUSTMENT} does not vary independently"
        )

    try:
        result = smf.ols(formula, data=data).fit()
    except (np.linalg.LinAlgError, ValueError) as e:
        raise ModelFitError(f"Year-adjusted OLS failed: {e}") from e

    estimate = float(result.params[EXPOSURE])
    std_error = float(result.bse[EXPOSURE])
    if not (np.isfinite(estimate) and np.isfinite(std_error)):
        raise ModelFitError(f"Non-finite {EXPOSURE} estimate in {formula}")

    return AdjustedEffect(
        estimate=estimate,
        std_error=std_error,
        pvalue=float(result.pvalues[EXPOSURE]),
        nobs=int(result.nobs),
        formula=formula,
    )


def analyze_association(merged: pd.DataFrame) -> AssociationResult:
    """
    Correlation and year-adjusted effect of poverty on burden.

    Args:
        merged: Merged burden/poverty rows

    Returns:
        AssociationResult
    """
    correlation = pairwise_correlation(merged)
    adjusted = year_adjusted_effect(merged)

    logger.info(
        f"Association: r = {correlation.r:.3f} (n = {correlation.n}); "
        f"adjusted {EXPOSURE} effect = {adjusted.estimate:.4g} (p = {adjusted.pvalue:.3g})"
    )
    return AssociationResult(correlation=correlation, adjusted=adjusted)
