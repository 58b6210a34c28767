"""
Error taxonomy for the sharp RDD engine.

Builder and estimator raise these eagerly; the placebo sweeper catches
``RDDError`` per candidate cutpoint and records it instead of propagating.
"""

from __future__ import annotations


class RDDError(ValueError):
    """Base class for all RDD engine errors."""


class InvalidSpecError(RDDError):
    """Malformed model specification (negative order, unknown slope mode, bad window)."""


class InsufficientDataError(RDDError):
    """Not enough observations relative to the number of design columns."""

    def __init__(
        self,
        message: str,
        n_observations: int = 0,
        n_parameters: int = 0,
        n_below: int | None = None,
        n_above: int | None = None,
    ):
        self.n_observations = n_observations
        self.n_parameters = n_parameters
        self.n_below = n_below
        self.n_above = n_above
        super().__init__(message)


class SingularDesignError(RDDError):
    """Design matrix is not full column rank."""

    def __init__(
        self,
        message: str,
        rank: int,
        n_parameters: int,
        n_below: int,
        n_above: int,
    ):
        self.rank = rank
        self.n_parameters = n_parameters
        self.n_below = n_below
        self.n_above = n_above
        super().__init__(message)


class OutOfRangeCutpointError(RDDError):
    """Cutpoint lies outside the observed range of the assignment variable."""

    def __init__(self, cutpoint: float, observed_range: tuple[float, float]):
        self.cutpoint = cutpoint
        self.observed_range = observed_range
        low, high = observed_range
        super().__init__(
            f"Cutpoint {cutpoint:g} outside observed assignment range [{low:g}, {high:g}]"
        )
