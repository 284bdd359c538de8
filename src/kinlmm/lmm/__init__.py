"""Linear mixed model with covariance sigma2 * (h2*K + (1-h2)*I).

Key components:
- eigendecompose_kinship: Validated eigendecomposition of the kinship matrix
- rotate_data: Rotation of phenotypes and covariates into K's eigenbasis
- wls: QR-based weighted least squares
- log_likelihood: Profile (ML or REML) log-likelihood of the rotated data
- estimate_variance_components: Numerical maximisation over (sigma2, h2)
"""

from kinlmm.lmm.eigen import eigendecompose_kinship
from kinlmm.lmm.likelihood import log_likelihood, profile_sigma2
from kinlmm.lmm.optimize import (
    VarianceComponents,
    estimate_variance_components,
    minimize_variance_components,
)
from kinlmm.lmm.rotate import RotatedData, rotate_data
from kinlmm.lmm.transforms import (
    from_unconstrained,
    invlogit,
    logit,
    to_unconstrained,
)
from kinlmm.lmm.wls import WLSFit, wls, wls_fit

__all__ = [
    "eigendecompose_kinship",
    "rotate_data",
    "RotatedData",
    "wls",
    "wls_fit",
    "WLSFit",
    "log_likelihood",
    "profile_sigma2",
    "estimate_variance_components",
    "minimize_variance_components",
    "VarianceComponents",
    "logit",
    "invlogit",
    "to_unconstrained",
    "from_unconstrained",
]
