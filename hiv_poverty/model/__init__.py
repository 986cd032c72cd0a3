"""
Country selection and statistical model modules.
"""

from hiv_poverty.model.selection import (
    DEFAULT_THRESHOLD,
    TopCountrySelection,
    select_top_countries,
    summarize_reference_year,
)
from hiv_poverty.model.dispatcher import (
    MODEL_COVARIATES,
    CrossSectionalFit,
    MixedEffectsFit,
    ModelDispatcher,
    ModelFitError,
    ModelForm,
    choose_model_form,
    fit_cross_sectional,
    fit_mixed_effects,
    fit_model,
)
from hiv_poverty.model.association import AssociationResult, analyze_association

__all__ = [
    "DEFAULT_THRESHOLD",
    "TopCountrySelection",
    "select_top_countries",
    "summarize_reference_year",
    "MODEL_COVARIATES",
    "CrossSectionalFit",
    "MixedEffectsFit",
    "ModelDispatcher",
    "ModelFitError",
    "ModelForm",
    "choose_model_form",
    "fit_cross_sectional",
    "fit_mixed_effects",
    "fit_model",
    "AssociationResult",
    "analyze_association",
]
