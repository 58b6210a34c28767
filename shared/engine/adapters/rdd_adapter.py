"""
RDD Adapter.

Wraps the sharp RDD engine into the EstimatorAdapter interface.
"""

from __future__ import annotations

import statsmodels.api as sm

from shared.engine.adapters.base import EstimationRequest, EstimationResult, EstimatorAdapter
from shared.rdd.design import Observations
from shared.rdd.errors import InvalidSpecError
from shared.rdd.estimator import RDEstimator
from shared.rdd.restriction import SampleRestrictor


class RDDAdapter(EstimatorAdapter):
    """Adapter for sharp Regression Discontinuity Design estimation.

    Uses a global piecewise polynomial fit at ``req.cutoff``. When
    ``req.window`` is set, the sample is first restricted to that
    inclusive window.
    """

    def supported_designs(self) -> list[str]:
        return ["RDD", "SHARP_RDD"]

    def estimate(self, req: EstimationRequest) -> EstimationResult:
        """Run sharp RDD estimation."""
        errors = self.validate_request(req)
        if errors:
            raise InvalidSpecError("; ".join(errors))

        observations = Observations.from_frame(req.df, req.running_variable, req.outcome)
        estimator = RDEstimator(
            confidence_level=req.confidence_level,
            cov_type=req.se_type,
        )

        if req.window is not None:
            lower, upper = req.window
            fit = SampleRestrictor(estimator).fit(
                observations, req.cutoff, lower, upper,
                req.polynomial_order, req.slope_mode,
            )
        else:
            fit = estimator.fit(
                observations, req.cutoff, req.polynomial_order, req.slope_mode,
            )

        return EstimationResult(
            point=fit.discontinuity_estimate,
            se=fit.discontinuity_se,
            ci_lower=fit.ci_low,
            ci_upper=fit.ci_high,
            pvalue=fit.pvalue,
            n_obs=fit.n_observations,
            method_name="SHARP_RDD",
            library="statsmodels",
            library_version=getattr(sm, "__version__", "unknown"),
            diagnostics={
                "aic": fit.aic,
                "bic": fit.bic,
                "r_squared": fit.r_squared,
                "rss": fit.rss,
            },
            metadata={
                "label": req.label,
                "cutoff": fit.cutpoint,
                "model": fit.spec.label,
                "polynomial_order": fit.spec.polynomial_order,
                "slope_mode": fit.spec.slope_mode.value,
                "window": req.window,
                "n_above": fit.n_above,
                "n_below": fit.n_below,
                "coefficients": dict(fit.coefficients),
            },
        )
