"""
Minimum legal drinking age RDD analysis.

Design: Turning 21 makes alcohol legally available in the US. Mortality by
cause is compared just below and just above age 21.

Steps per outcome:
1. Fit a ladder of increasingly flexible piecewise polynomials and rank by AIC
2. Placebo sweep over counterfactual age cutpoints
3. Re-estimate on a restricted age window around 21
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import yaml

from config.settings import Settings, get_settings
from shared.rdd.design import ModelSpec, Observations
from shared.rdd.errors import RDDError
from shared.rdd.estimator import FitResult, RDEstimator
from shared.rdd.placebo import PlaceboProfile, PlaceboSweeper
from shared.rdd.restriction import SampleRestrictor
from shared.rdd.scoring import ModelScorer, RankedFit

logger = logging.getLogger(__name__)


@dataclass
class LadderEntry:
    """One candidate specification as configured (validated when fitted)."""

    label: str
    polynomial_order: Any
    slope_mode: Any


DEFAULT_LADDER = [
    LadderEntry("linear, same slope", 1, "shared"),
    LadderEntry("linear, different slopes", 1, "separate"),
    LadderEntry("quadratic, same slope", 2, "shared"),
    LadderEntry("quadratic, different slopes", 2, "separate"),
]


def load_ladder(path: Path) -> list[LadderEntry]:
    """
    Load candidate specifications from YAML.

    Expected layout::

        models:
          - label: linear, same slope
            polynomial_order: 1
            slope_mode: shared

    Args:
        path: YAML file

    Returns:
        List of LadderEntry in file order
    """
    if not path.exists():
        raise FileNotFoundError(f"Model ladder not found: {path}")
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    entries = []
    for i, model in enumerate(data.get("models", [])):
        order = model.get("polynomial_order", 1)
        mode = model.get("slope_mode", "separate")
        label = model.get("label") or f"model_{i + 1} (order={order}, {mode})"
        entries.append(LadderEntry(label=label, polynomial_order=order, slope_mode=mode))

    if not entries:
        raise ValueError(f"No models listed in {path}")
    return entries


@dataclass
class SpecFailure:
    """A ladder entry that could not be fitted."""

    label: str
    reason: str
    message: str


@dataclass
class OutcomeAnalysis:
    """Results of the full RDD walkthrough for one outcome."""

    outcome: str
    cutpoint: float
    n_observations: int

    # Model comparison
    ranking: list[RankedFit] = field(default_factory=list)
    failures: list[SpecFailure] = field(default_factory=list)

    # Sensitivity checks
    placebo: PlaceboProfile | None = None
    restriction_window: tuple[float, float] | None = None
    restricted_fit: FitResult | None = None
    restriction_error: str | None = None

    @property
    def selected(self) -> RankedFit | None:
        """Lowest-AIC specification."""
        return self.ranking[0] if self.ranking else None

    def fits(self) -> dict[str, FitResult]:
        return {entry.label: entry.fit for entry in self.ranking}

    def summary(self) -> str:
        """Generate summary of results."""
        lines = []
        lines.append("=" * 60)
        lines.append(f"SHARP RDD RESULTS: {self.outcome}")
        lines.append("=" * 60)

        lines.append(f"\nCutpoint: {self.cutpoint:g}")
        lines.append(f"N observations: {self.n_observations:,}")

        lines.append("\nModel Comparison (ascending AIC):")
        for entry in self.ranking:
            fit = entry.fit
            lines.append(
                f"  {entry.rank}. {entry.label:<30} jump={fit.discontinuity_estimate:9.4f} "
                f"se={fit.discontinuity_se:7.4f} AIC={fit.aic:9.2f} dAIC={entry.delta_aic:6.2f}"
            )
        for failure in self.failures:
            lines.append(f"  -  {failure.label:<30} FAILED ({failure.reason}): {failure.message}")

        if self.selected is not None:
            fit = self.selected.fit
            level = int(round(fit.confidence_level * 100))
            lines.append(f"\nSelected: {self.selected.label}")
            lines.append(f"  Discontinuity: {fit.discontinuity_estimate:.4f}")
            lines.append(f"  Std. Error: {fit.discontinuity_se:.4f}")
            lines.append(f"  {level}% CI: [{fit.ci_low:.4f}, {fit.ci_high:.4f}]")
            lines.append(f"  p-value: {fit.pvalue:.4f}")

        if self.placebo is not None:
            lines.append(self.placebo.summary())
            n_sig = len(self.placebo.significant_placebos())
            lines.append(f"  Placebo cutpoints with CI excluding zero: {n_sig}")

        if self.restriction_window is not None:
            lower, upper = self.restriction_window
            lines.append(f"\nRestricted Sample [{lower:g}, {upper:g}]:")
            if self.restricted_fit is not None:
                fit = self.restricted_fit
                lines.append(
                    f"  Discontinuity: {fit.discontinuity_estimate:.4f} "
                    f"[{fit.ci_low:.4f}, {fit.ci_high:.4f}] (n={fit.n_observations})"
                )
            else:
                lines.append(f"  Not estimated: {self.restriction_error}")

        return "\n".join(lines)


def compare_specifications(
    observations: Observations,
    cutpoint: float,
    ladder: list[LadderEntry],
    estimator: RDEstimator | None = None,
    scorer: ModelScorer | None = None,
) -> tuple[list[RankedFit], list[SpecFailure]]:
    """
    Fit every ladder entry and rank the successful fits by AIC.

    A failing entry is logged and reported; it does not stop the others.

    Returns:
        (ranking, failures)
    """
    estimator = estimator or RDEstimator()
    scorer = scorer or ModelScorer()

    fits: list[tuple[str, FitResult]] = []
    failures: list[SpecFailure] = []
    for entry in ladder:
        try:
            fit = estimator.fit(observations, cutpoint, entry.polynomial_order, entry.slope_mode)
        except RDDError as e:
            logger.warning(f"Specification '{entry.label}' failed: {e}")
            failures.append(SpecFailure(entry.label, type(e).__name__, str(e)))
            continue
        fits.append((entry.label, fit))

    return scorer.rank(fits), failures


def binned_means(observations: Observations, bin_width: float, cutpoint: float) -> pd.DataFrame:
    """
    Bin the running variable and average the outcome within each bin.

    Bins are anchored at the cutpoint so no bin straddles it.

    Returns:
        DataFrame with bin_center, mean, count and side columns
    """
    if bin_width <= 0:
        raise ValueError(f"Bin width must be positive, got {bin_width}")
    if len(observations) == 0:
        return pd.DataFrame(columns=["bin_center", "mean", "count", "side"])

    df = observations.to_frame()
    df["bin"] = np.floor((df["x"] - cutpoint) / bin_width).astype(int)
    grouped = df.groupby("bin")["y"].agg(["mean", "count"]).reset_index()
    grouped["bin_center"] = cutpoint + (grouped["bin"] + 0.5) * bin_width
    grouped["side"] = np.where(grouped["bin"] >= 0, "treatment", "control")
    return grouped[["bin_center", "mean", "count", "side"]]


class RDDAnalysis:
    """
    Runs model comparison, placebo sweep and sample restriction for outcomes.

    Placebo and restriction checks use the configured specification
    (``polynomial_order``/``slope_mode`` in settings), not the AIC winner,
    so the checks are comparable across outcomes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        ladder: list[LadderEntry] | None = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings

        if ladder is None:
            ladder = load_ladder(s.ladder_path) if s.ladder_path.exists() else DEFAULT_LADDER
        self.ladder = ladder

        spec = ModelSpec(s.polynomial_order, s.slope_mode)
        self.cutpoint = s.cutpoint
        self.order = spec.polynomial_order
        self.slope_mode = spec.slope_mode

        self.estimator = RDEstimator(
            confidence_level=s.confidence_level,
            cov_type=s.cov_type,
            strict_range=s.strict_range,
        )
        self.scorer = ModelScorer()
        self.sweeper = PlaceboSweeper(
            RDEstimator(confidence_level=s.confidence_level, cov_type=s.cov_type),
            max_workers=s.placebo_workers,
            trim=s.placebo_trim,
        )
        self.restrictor = SampleRestrictor(self.estimator)

    def estimate(self, observations: Observations) -> FitResult:
        """Single fit with the configured specification."""
        return self.estimator.fit(observations, self.cutpoint, self.order, self.slope_mode)

    def run_outcome(
        self,
        observations: Observations,
        outcome: str,
        run_placebo: bool = True,
        run_restriction: bool = True,
    ) -> OutcomeAnalysis:
        """
        Run the full walkthrough for one outcome.

        Args:
            observations: Assignment/outcome pairs
            outcome: Outcome name (for reporting)
            run_placebo: Run the placebo sweep
            run_restriction: Run the restricted-window fit

        Returns:
            OutcomeAnalysis
        """
        logger.info(f"Analysing {outcome} at cutpoint {self.cutpoint:g} (n={len(observations)})")

        ranking, failures = compare_specifications(
            observations, self.cutpoint, self.ladder, self.estimator, self.scorer,
        )
        result = OutcomeAnalysis(
            outcome=outcome,
            cutpoint=self.cutpoint,
            n_observations=len(observations),
            ranking=ranking,
            failures=failures,
        )
        if result.selected is not None:
            logger.info(f"{outcome}: lowest AIC is '{result.selected.label}'")

        if run_placebo:
            result.placebo = self.sweeper.sweep(
                observations, self.cutpoint, order=self.order, slope_mode=self.slope_mode,
            )

        if run_restriction:
            lower, upper = self.settings.restriction_bandwidth
            result.restriction_window = (lower, upper)
            try:
                result.restricted_fit = self.restrictor.fit(
                    observations, self.cutpoint, lower, upper, self.order, self.slope_mode,
                )
            except RDDError as e:
                logger.warning(f"{outcome}: restricted fit failed: {e}")
                result.restriction_error = str(e)

        return result

    def run_study(
        self,
        df: pd.DataFrame,
        outcomes: list[str] | None = None,
        **kwargs: Any,
    ) -> dict[str, OutcomeAnalysis]:
        """Run ``run_outcome`` for every outcome column present in ``df``."""
        outcomes = outcomes or self.settings.outcomes
        running = self.settings.running_variable

        results = {}
        for outcome in outcomes:
            if outcome not in df.columns:
                logger.warning(f"Outcome '{outcome}' not in data, skipping")
                continue
            observations = Observations.from_frame(df, running, outcome)
            results[outcome] = self.run_outcome(observations, outcome, **kwargs)
        return results


def run_mlda_analysis(
    outcome: str = "all",
    path: Path | None = None,
    settings: Settings | None = None,
) -> OutcomeAnalysis:
    """
    Convenience function to run the walkthrough on the MLDA dataset.

    Args:
        outcome: Cause-of-death column
        path: Dataset path (default from settings)
        settings: Settings override

    Returns:
        OutcomeAnalysis
    """
    from shared.data.mlda import MLDALoader

    settings = settings or get_settings()
    loader = MLDALoader(path=path, running_variable=settings.running_variable)
    analysis = RDDAnalysis(settings=settings)
    return analysis.run_outcome(loader.observations(outcome), outcome)
