"""
Placebo cutpoint sweep.

Re-estimates the discontinuity at counterfactual cutpoints. A genuine
effect should show up at the true cutpoint only; significant jumps
elsewhere point at misspecification or a spurious discontinuity.

Candidates that cannot be fitted (too few points on one side, singular
design, cutpoint out of range) are logged and recorded as omitted. They
never abort the sweep.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator

import numpy as np
import pandas as pd

from shared.rdd.design import ModelSpec, Observations, SlopeMode
from shared.rdd.errors import InvalidSpecError, RDDError
from shared.rdd.estimator import RDEstimator

logger = logging.getLogger(__name__)


class Position(Enum):
    """Location of a candidate cutpoint relative to the true one."""

    BELOW = "below"
    ABOVE = "above"
    TRUE_CUTPOINT = "true_cutpoint"


@dataclass(frozen=True)
class PlaceboRow:
    """Discontinuity estimate at one candidate cutpoint."""

    cutpoint: float
    local_average_treatment_effect: float
    ci_low: float
    ci_high: float
    se: float
    pvalue: float
    position: Position

    @property
    def excludes_zero(self) -> bool:
        return self.ci_low > 0 or self.ci_high < 0


@dataclass(frozen=True)
class OmittedCutpoint:
    """Candidate that could not be estimated."""

    cutpoint: float
    reason: str
    message: str


@dataclass
class PlaceboProfile:
    """Placebo rows in candidate order plus the candidates that were skipped."""

    true_cutpoint: float
    spec: ModelSpec
    rows: list[PlaceboRow] = field(default_factory=list)
    omitted: list[OmittedCutpoint] = field(default_factory=list)
    cancelled: bool = False

    def __iter__(self) -> Iterator[PlaceboRow]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index: int) -> PlaceboRow:
        return self.rows[index]

    @property
    def true_row(self) -> PlaceboRow | None:
        for row in self.rows:
            if row.position is Position.TRUE_CUTPOINT:
                return row
        return None

    def significant_placebos(self) -> list[PlaceboRow]:
        """Placebo rows (excluding the true cutpoint) whose interval excludes zero."""
        return [
            row for row in self.rows
            if row.position is not Position.TRUE_CUTPOINT and row.excludes_zero
        ]

    def to_frame(self) -> pd.DataFrame:
        columns = ["cutpoint", "late", "ci_low", "ci_high", "se", "pvalue", "position"]
        return pd.DataFrame(
            [
                {
                    "cutpoint": row.cutpoint,
                    "late": row.local_average_treatment_effect,
                    "ci_low": row.ci_low,
                    "ci_high": row.ci_high,
                    "se": row.se,
                    "pvalue": row.pvalue,
                    "position": row.position.value,
                }
                for row in self.rows
            ],
            columns=columns,
        )

    def summary(self) -> str:
        lines = []
        lines.append(f"\nPlacebo Cutpoints ({self.spec.label}, true cutpoint {self.true_cutpoint:g}):")
        for row in self.rows:
            flag = "*" if row.excludes_zero else ""
            tag = " <- true" if row.position is Position.TRUE_CUTPOINT else ""
            lines.append(
                f"  {row.cutpoint:8.3f}: LATE={row.local_average_treatment_effect:8.4f} "
                f"[{row.ci_low:.4f}, {row.ci_high:.4f}]{flag}{tag}"
            )
        if self.omitted:
            lines.append(f"  Omitted {len(self.omitted)} candidate(s):")
            for skipped in self.omitted:
                lines.append(f"    {skipped.cutpoint:g}: {skipped.reason}")
        if self.cancelled:
            lines.append("  Sweep cancelled before all candidates were fitted")
        return "\n".join(lines)


def placebo_grid(observations: Observations, trim: int = 1) -> list[float]:
    """
    Default placebo grid: every distinct observed assignment value, ascending,
    without the ``trim`` smallest and ``trim`` largest values.

    Args:
        observations: Observation set providing the grid
        trim: Number of distinct extreme values dropped on each end

    Returns:
        Candidate cutpoints in ascending order
    """
    if trim < 0:
        raise InvalidSpecError(f"Trim must be >= 0, got {trim}")
    values = np.unique(observations.assignment)
    if trim:
        values = values[trim:-trim]
    return [float(v) for v in values]


def _position(candidate: float, true_cutpoint: float) -> Position:
    if math.isclose(candidate, true_cutpoint, rel_tol=0.0, abs_tol=1e-12):
        return Position.TRUE_CUTPOINT
    return Position.BELOW if candidate < true_cutpoint else Position.ABOVE


class PlaceboSweeper:
    """
    Estimate the discontinuity over a grid of candidate cutpoints.

    Fits are independent, so ``max_workers > 1`` spreads them over a
    thread pool; rows are returned in candidate order either way.
    """

    def __init__(
        self,
        estimator: RDEstimator | None = None,
        max_workers: int = 1,
        trim: int = 1,
    ):
        if max_workers < 1:
            raise InvalidSpecError(f"max_workers must be >= 1, got {max_workers}")
        self.estimator = estimator or RDEstimator(strict_range=True)
        self.max_workers = max_workers
        self.trim = trim

    def sweep(
        self,
        observations: Observations,
        true_cutpoint: float,
        candidate_cutpoints: Iterable[float] | None = None,
        order: int = 1,
        slope_mode: SlopeMode | str = SlopeMode.SEPARATE,
        cancel_event: threading.Event | None = None,
    ) -> PlaceboProfile:
        """
        Run the placebo sweep.

        Args:
            observations: Full observation set
            true_cutpoint: Actual policy threshold, used to tag positions
            candidate_cutpoints: Cutpoints to test (default: observed grid, trimmed)
            order: Polynomial order
            slope_mode: shared or separate slopes
            cancel_event: When set, remaining candidates are skipped

        Returns:
            PlaceboProfile; shorter than the candidate list when fits fail
        """
        spec = ModelSpec(order, slope_mode)
        true_cutpoint = float(true_cutpoint)
        if candidate_cutpoints is None:
            candidates = placebo_grid(observations, self.trim)
        else:
            candidates = [float(c) for c in candidate_cutpoints]

        logger.info(
            f"Placebo sweep over {len(candidates)} cutpoints ({spec.label}, "
            f"true cutpoint {true_cutpoint:g})"
        )

        outcomes: list[PlaceboRow | OmittedCutpoint | None] = [None] * len(candidates)

        if self.max_workers == 1:
            for i, candidate in enumerate(candidates):
                if cancel_event is not None and cancel_event.is_set():
                    break
                outcomes[i] = self._evaluate(observations, true_cutpoint, candidate, spec)
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(
                        self._evaluate_unless_cancelled,
                        observations, true_cutpoint, candidate, spec, cancel_event,
                    ): i
                    for i, candidate in enumerate(candidates)
                }
                for future in as_completed(futures):
                    outcomes[futures[future]] = future.result()

        profile = PlaceboProfile(true_cutpoint=true_cutpoint, spec=spec)
        for outcome in outcomes:
            if isinstance(outcome, PlaceboRow):
                profile.rows.append(outcome)
            elif isinstance(outcome, OmittedCutpoint):
                profile.omitted.append(outcome)
        profile.cancelled = any(outcome is None for outcome in outcomes)

        if profile.cancelled:
            logger.warning(
                f"Placebo sweep cancelled after {len(profile.rows) + len(profile.omitted)} "
                f"of {len(candidates)} candidates"
            )
        if profile.omitted:
            logger.info(f"Placebo sweep omitted {len(profile.omitted)} candidate cutpoints")
        return profile

    def _evaluate_unless_cancelled(
        self,
        observations: Observations,
        true_cutpoint: float,
        candidate: float,
        spec: ModelSpec,
        cancel_event: threading.Event | None,
    ) -> PlaceboRow | OmittedCutpoint | None:
        if cancel_event is not None and cancel_event.is_set():
            return None
        return self._evaluate(observations, true_cutpoint, candidate, spec)

    def _evaluate(
        self,
        observations: Observations,
        true_cutpoint: float,
        candidate: float,
        spec: ModelSpec,
    ) -> PlaceboRow | OmittedCutpoint:
        try:
            fit = self.estimator.fit_spec(observations, candidate, spec)
        except RDDError as e:
            logger.warning(f"Skipping placebo cutpoint {candidate:g}: {e}")
            return OmittedCutpoint(cutpoint=candidate, reason=type(e).__name__, message=str(e))

        return PlaceboRow(
            cutpoint=candidate,
            local_average_treatment_effect=fit.discontinuity_estimate,
            ci_low=fit.ci_low,
            ci_high=fit.ci_high,
            se=fit.discontinuity_se,
            pvalue=fit.pvalue,
            position=_position(candidate, true_cutpoint),
        )
