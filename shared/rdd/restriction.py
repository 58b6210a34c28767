"""
Sample restriction around the cutpoint.

Drops observations outside [lower, upper] and re-estimates, to check that
the discontinuity does not hinge on observations far from the threshold.
"""

from __future__ import annotations

import logging

from shared.rdd.design import ModelSpec, Observations, SlopeMode
from shared.rdd.errors import InsufficientDataError, InvalidSpecError
from shared.rdd.estimator import FitResult, RDEstimator

logger = logging.getLogger(__name__)


def symmetric_window(cutpoint: float, bandwidth: float) -> tuple[float, float]:
    """Return (cutpoint - bandwidth, cutpoint + bandwidth)."""
    if bandwidth < 0:
        raise InvalidSpecError(f"Bandwidth must be >= 0, got {bandwidth}")
    return cutpoint - bandwidth, cutpoint + bandwidth


class SampleRestrictor:
    """Restrict observations to an estimation window and refit."""

    def __init__(self, estimator: RDEstimator | None = None):
        self.estimator = estimator or RDEstimator()

    def restrict(
        self,
        observations: Observations,
        lower_bound: float,
        upper_bound: float,
    ) -> Observations:
        """Keep observations with lower_bound <= x <= upper_bound, in input order."""
        if lower_bound > upper_bound:
            raise InvalidSpecError(
                f"Lower bound {lower_bound:g} exceeds upper bound {upper_bound:g}"
            )
        x = observations.assignment
        mask = (x >= lower_bound) & (x <= upper_bound)
        restricted = observations.subset(mask)
        logger.info(
            f"Restricted sample to [{lower_bound:g}, {upper_bound:g}]: "
            f"{len(restricted)} of {len(observations)} observations"
        )
        return restricted

    def fit(
        self,
        observations: Observations,
        cutpoint: float,
        lower_bound: float,
        upper_bound: float,
        order: int = 1,
        slope_mode: SlopeMode | str = SlopeMode.SEPARATE,
    ) -> FitResult:
        """
        Restrict the sample and estimate the discontinuity on what remains.

        Raises:
            InvalidSpecError: window does not contain the cutpoint
            InsufficientDataError: window leaves too few observations per side
        """
        if not lower_bound <= cutpoint <= upper_bound:
            raise InvalidSpecError(
                f"Window [{lower_bound:g}, {upper_bound:g}] does not contain cutpoint {cutpoint:g}"
            )
        spec = ModelSpec(order, slope_mode)
        restricted = self.restrict(observations, lower_bound, upper_bound)

        # Window contains the cutpoint, so a short side means missing data
        n_below, n_above = restricted.side_counts(cutpoint)
        needed = spec.columns_per_side
        if n_below < needed or n_above < needed:
            raise InsufficientDataError(
                f"Window [{lower_bound:g}, {upper_bound:g}] leaves too few observations "
                f"for {spec.label} (below={n_below}, above={n_above}, need >= {needed} per side)",
                n_observations=len(restricted),
                n_parameters=spec.n_parameters,
                n_below=n_below,
                n_above=n_above,
            )
        return self.estimator.fit_spec(restricted, cutpoint, spec)
