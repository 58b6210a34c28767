"""
Sharp RDD estimator.

Fits OLS of the outcome on a piecewise polynomial design and extracts the
coefficient on the treatment indicator as the discontinuity estimate.

Inference uses the t distribution with n - p residual degrees of freedom.
AIC is statsmodels' -2 llf + 2p, which equals n ln(RSS/n) + 2p plus a
constant that depends only on n, so rankings agree on a common sample.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

import numpy as np
import pandas as pd
import statsmodels.api as sm

from shared.rdd.design import (
    TREATMENT_COLUMN,
    ModelSpec,
    Observations,
    PiecewiseDesignBuilder,
    SlopeMode,
)
from shared.rdd.errors import (
    InsufficientDataError,
    InvalidSpecError,
    OutOfRangeCutpointError,
    SingularDesignError,
)

logger = logging.getLogger(__name__)

SUPPORTED_COV_TYPES = ("nonrobust", "HC0", "HC1", "HC2", "HC3")


@dataclass(frozen=True)
class FitResult:
    """Results from one sharp RDD fit."""

    # Main estimate
    discontinuity_estimate: float
    discontinuity_se: float
    confidence_interval: tuple[float, float]
    pvalue: float

    # Full coefficient vector
    coefficients: Mapping[str, float]
    std_errors: Mapping[str, float]

    # Fit statistics
    aic: float
    bic: float
    rss: float
    r_squared: float

    # Sample info
    n_observations: int
    n_parameters: int
    n_below: int
    n_above: int

    # Specification details
    cutpoint: float
    spec: ModelSpec
    confidence_level: float = 0.95
    cov_type: str = "nonrobust"

    @property
    def ci_low(self) -> float:
        return self.confidence_interval[0]

    @property
    def ci_high(self) -> float:
        return self.confidence_interval[1]

    @property
    def df_resid(self) -> int:
        return self.n_observations - self.n_parameters

    def predict(self, x: np.ndarray) -> np.ndarray:
        """Evaluate the fitted piecewise polynomial at assignment values ``x``."""
        design = PiecewiseDesignBuilder.regressors(np.asarray(x, dtype=float), self.cutpoint, self.spec)
        beta = np.array([self.coefficients[c] for c in design.columns])
        return design.to_numpy() @ beta

    def fitted_line(self, x_min: float, x_max: float, n_points: int = 200) -> pd.DataFrame:
        """Plot-ready fitted values on a grid, split by side of the cutpoint."""
        grid = np.linspace(x_min, x_max, n_points)
        return pd.DataFrame({
            "x": grid,
            "fitted": self.predict(grid),
            "side": np.where(grid >= self.cutpoint, "treatment", "control"),
        })

    def coefficient_table(self) -> dict[str, tuple[float, float]]:
        """Coefficient name -> (estimate, standard error)."""
        return {name: (value, self.std_errors[name]) for name, value in self.coefficients.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.spec.label,
            "polynomial_order": self.spec.polynomial_order,
            "slope_mode": self.spec.slope_mode.value,
            "cutpoint": self.cutpoint,
            "discontinuity_estimate": self.discontinuity_estimate,
            "discontinuity_se": self.discontinuity_se,
            "ci_low": self.ci_low,
            "ci_high": self.ci_high,
            "pvalue": self.pvalue,
            "aic": self.aic,
            "bic": self.bic,
            "r_squared": self.r_squared,
            "n_observations": self.n_observations,
            "n_parameters": self.n_parameters,
        }


class RDEstimator:
    """
    Sharp RDD estimator using global piecewise polynomial OLS.

    Each call builds its own design and returns a new FitResult; the
    estimator holds configuration only and is safe to share across threads.
    """

    def __init__(
        self,
        confidence_level: float = 0.95,
        cov_type: str = "nonrobust",
        strict_range: bool = True,
        builder: PiecewiseDesignBuilder | None = None,
    ):
        """
        Initialize estimator.

        Args:
            confidence_level: Coverage of the reported interval, in (0, 1)
            cov_type: statsmodels covariance type (nonrobust or HC0-HC3)
            strict_range: Raise when the cutpoint lies outside the observed range
            builder: Design builder (default PiecewiseDesignBuilder)
        """
        if not 0 < confidence_level < 1:
            raise InvalidSpecError(
                f"Confidence level must be in (0, 1), got {confidence_level}"
            )
        if cov_type not in SUPPORTED_COV_TYPES:
            raise InvalidSpecError(
                f"Unsupported covariance type {cov_type!r} (expected one of {SUPPORTED_COV_TYPES})"
            )
        self.confidence_level = confidence_level
        self.cov_type = cov_type
        self.strict_range = strict_range
        self.builder = builder or PiecewiseDesignBuilder()

    def fit(
        self,
        observations: Observations,
        cutpoint: float,
        order: int = 1,
        slope_mode: SlopeMode | str = SlopeMode.SEPARATE,
    ) -> FitResult:
        """
        Estimate the discontinuity at ``cutpoint``.

        Raises:
            InvalidSpecError: malformed specification
            OutOfRangeCutpointError: cutpoint outside observed range (strict mode)
            InsufficientDataError: too few observations overall or on one side
            SingularDesignError: design not full column rank
        """
        spec = ModelSpec(order, slope_mode)
        cutpoint = float(cutpoint)
        n = len(observations)

        if n == 0:
            raise InsufficientDataError(
                "No observations to fit",
                n_observations=0,
                n_parameters=spec.n_parameters,
                n_below=0,
                n_above=0,
            )

        self._check_range(observations, cutpoint)

        design = self.builder.build(observations, cutpoint, spec.polynomial_order, spec.slope_mode)
        p = design.n_parameters

        if n <= p:
            raise InsufficientDataError(
                f"{n} observations for {p} parameters leaves no residual degrees of freedom",
                n_observations=n,
                n_parameters=p,
                n_below=design.n_below,
                n_above=design.n_above,
            )

        rank = design.rank()
        if rank < p:
            raise SingularDesignError(
                f"Design for {spec.label} at cutpoint {cutpoint:g} has rank {rank} < {p} "
                f"(below={design.n_below}, above={design.n_above})",
                rank=rank,
                n_parameters=p,
                n_below=design.n_below,
                n_above=design.n_above,
            )

        model = sm.OLS(design.outcome, design.matrix).fit(cov_type=self.cov_type, use_t=True)

        alpha = 1 - self.confidence_level
        ci = model.conf_int(alpha=alpha).loc[TREATMENT_COLUMN]

        result = FitResult(
            discontinuity_estimate=float(model.params[TREATMENT_COLUMN]),
            discontinuity_se=float(model.bse[TREATMENT_COLUMN]),
            confidence_interval=(float(ci.iloc[0]), float(ci.iloc[1])),
            pvalue=float(model.pvalues[TREATMENT_COLUMN]),
            coefficients=MappingProxyType({k: float(v) for k, v in model.params.items()}),
            std_errors=MappingProxyType({k: float(v) for k, v in model.bse.items()}),
            aic=float(model.aic),
            bic=float(model.bic),
            rss=float(model.ssr),
            r_squared=float(model.rsquared),
            n_observations=n,
            n_parameters=p,
            n_below=design.n_below,
            n_above=design.n_above,
            cutpoint=cutpoint,
            spec=spec,
            confidence_level=self.confidence_level,
            cov_type=self.cov_type,
        )

        logger.debug(
            f"RDD fit ({spec.label}) at {cutpoint:g}: "
            f"jump={result.discontinuity_estimate:.4f} (se={result.discontinuity_se:.4f}), "
            f"AIC={result.aic:.2f}, n={n}"
        )
        return result

    def fit_spec(self, observations: Observations, cutpoint: float, spec: ModelSpec) -> FitResult:
        return self.fit(observations, cutpoint, spec.polynomial_order, spec.slope_mode)

    def _check_range(self, observations: Observations, cutpoint: float) -> None:
        low, high = observations.observed_range
        if low <= cutpoint <= high:
            return
        if self.strict_range:
            raise OutOfRangeCutpointError(cutpoint, (low, high))
        logger.warning(
            f"Cutpoint {cutpoint:g} outside observed range [{low:g}, {high:g}]; "
            f"estimate extrapolates"
        )


def fit_rdd(
    observations: Observations,
    cutpoint: float,
    order: int = 1,
    slope_mode: SlopeMode | str = SlopeMode.SEPARATE,
    confidence_level: float = 0.95,
) -> FitResult:
    """
    Convenience function to fit a single sharp RDD.

    Args:
        observations: Assignment/outcome pairs
        cutpoint: Threshold of the assignment variable
        order: Polynomial order
        slope_mode: shared or separate slopes
        confidence_level: Coverage of the reported interval

    Returns:
        FitResult
    """
    estimator = RDEstimator(confidence_level=confidence_level)
    return estimator.fit(observations, cutpoint, order, slope_mode)
