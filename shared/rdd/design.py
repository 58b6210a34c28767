"""
Observations, model specifications and piecewise polynomial designs.

Two layouts are supported around a cutpoint c with treatment D = 1(x >= c):

shared slope:    [const, x, x^2, ..., x^p, treated]
separate slopes: [const, treated, x_c, ..., x_c^p, treated:x_c, ..., treated:x_c^p]
                 with x_c = x - c

In both layouts the coefficient on ``treated`` is the discontinuity at c.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

import numpy as np
import pandas as pd

from shared.rdd.errors import InsufficientDataError, InvalidSpecError

logger = logging.getLogger(__name__)

TREATMENT_COLUMN = "treated"
CONSTANT_COLUMN = "const"


class SlopeMode(Enum):
    """How the running-variable polynomial is allowed to differ across the cutpoint."""

    SHARED = "shared"
    SEPARATE = "separate"


def _coerce_slope_mode(slope_mode: SlopeMode | str) -> SlopeMode:
    if isinstance(slope_mode, SlopeMode):
        return slope_mode
    try:
        return SlopeMode(str(slope_mode).lower())
    except ValueError:
        valid = ", ".join(m.value for m in SlopeMode)
        raise InvalidSpecError(
            f"Unknown slope mode {slope_mode!r} (expected one of: {valid})"
        ) from None


_ORDER_NAMES = {0: "constant", 1: "linear", 2: "quadratic", 3: "cubic", 4: "quartic"}


@dataclass(frozen=True)
class ModelSpec:
    """Polynomial order and slope mode of one candidate RDD specification."""

    polynomial_order: int = 1
    slope_mode: SlopeMode = SlopeMode.SEPARATE

    def __post_init__(self):
        order = self.polynomial_order
        if isinstance(order, bool) or not isinstance(order, (int, np.integer)):
            raise InvalidSpecError(f"Polynomial order must be an integer, got {order!r}")
        if order < 0:
            raise InvalidSpecError(f"Polynomial order must be >= 0, got {order}")
        object.__setattr__(self, "polynomial_order", int(order))
        object.__setattr__(self, "slope_mode", _coerce_slope_mode(self.slope_mode))

    @property
    def n_parameters(self) -> int:
        """Number of design columns this specification produces."""
        if self.slope_mode is SlopeMode.SHARED:
            return self.polynomial_order + 2
        return 2 * (self.polynomial_order + 1)

    @property
    def columns_per_side(self) -> int:
        """Minimum observations each side needs to identify its own terms."""
        if self.slope_mode is SlopeMode.SHARED:
            return 1
        return self.polynomial_order + 1

    @property
    def label(self) -> str:
        order = _ORDER_NAMES.get(self.polynomial_order, f"order-{self.polynomial_order}")
        slopes = "same slope" if self.slope_mode is SlopeMode.SHARED else "different slopes"
        return f"{order}, {slopes}"


@dataclass(frozen=True, eq=False)
class Observations:
    """Assignment/outcome pairs, optionally tagged with a cell identifier.

    Arrays are copied to float and made read-only on construction, so an
    instance can be shared between concurrent fits.
    """

    assignment: np.ndarray
    outcome: np.ndarray
    cell: np.ndarray | None = None

    def __post_init__(self):
        assignment = np.array(self.assignment, dtype=float).reshape(-1)
        outcome = np.array(self.outcome, dtype=float).reshape(-1)
        if assignment.shape != outcome.shape:
            raise ValueError(
                f"Assignment and outcome lengths differ: {len(assignment)} vs {len(outcome)}"
            )
        assignment.setflags(write=False)
        outcome.setflags(write=False)
        object.__setattr__(self, "assignment", assignment)
        object.__setattr__(self, "outcome", outcome)

        if self.cell is not None:
            cell = np.array(self.cell).reshape(-1)
            if cell.shape != assignment.shape:
                raise ValueError("Cell identifiers must align with observations")
            cell.setflags(write=False)
            object.__setattr__(self, "cell", cell)

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[float, float]]) -> Observations:
        pairs = list(pairs)
        if not pairs:
            return cls(np.empty(0), np.empty(0))
        assignment, outcome = zip(*pairs)
        return cls(np.asarray(assignment), np.asarray(outcome))

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        running_var: str,
        outcome: str,
        cell: str | None = None,
    ) -> Observations:
        """Extract observations from a DataFrame, dropping rows with missing values."""
        missing = [c for c in (running_var, outcome) if c not in df.columns]
        if missing:
            raise KeyError(f"Missing required columns: {missing}")

        clean = df.dropna(subset=[running_var, outcome])
        dropped = len(df) - len(clean)
        if dropped:
            logger.debug(f"Dropped {dropped} rows with missing {running_var}/{outcome}")

        if cell is None:
            cells = clean.index.to_numpy()
        else:
            cells = clean[cell].to_numpy()
        return cls(clean[running_var].to_numpy(), clean[outcome].to_numpy(), cells)

    def __len__(self) -> int:
        return len(self.assignment)

    @property
    def observed_range(self) -> tuple[float, float]:
        if len(self) == 0:
            raise InsufficientDataError("No observations: assignment range undefined")
        return float(self.assignment.min()), float(self.assignment.max())

    def side_counts(self, cutpoint: float) -> tuple[int, int]:
        """Return (n_below, n_above) for a cutpoint; the cutpoint itself counts as above."""
        n_above = int(np.count_nonzero(self.assignment >= cutpoint))
        return len(self) - n_above, n_above

    def subset(self, mask: np.ndarray) -> Observations:
        mask = np.asarray(mask, dtype=bool)
        cell = None if self.cell is None else self.cell[mask]
        return Observations(self.assignment[mask], self.outcome[mask], cell)

    def to_frame(self, running_var: str = "x", outcome: str = "y") -> pd.DataFrame:
        df = pd.DataFrame({running_var: self.assignment, outcome: self.outcome})
        if self.cell is not None:
            df["cell"] = self.cell
        return df


@dataclass
class DesignMatrix:
    """Regressors and outcome for one piecewise fit."""

    matrix: pd.DataFrame
    outcome: pd.Series
    cutpoint: float
    spec: ModelSpec
    n_below: int
    n_above: int
    columns: list[str] = field(default_factory=list)

    @property
    def n_observations(self) -> int:
        return len(self.matrix)

    @property
    def n_parameters(self) -> int:
        return self.matrix.shape[1]

    def rank(self) -> int:
        """Column rank of the design after scaling each column to unit norm.

        Raw powers of the running variable differ by orders of magnitude,
        so the SVD tolerance is applied to the normalized matrix.
        """
        values = self.matrix.to_numpy(dtype=float)
        norms = np.linalg.norm(values, axis=0)
        norms[norms == 0] = 1.0
        return int(np.linalg.matrix_rank(values / norms))


def _power_name(base: str, k: int) -> str:
    return base if k == 1 else f"{base}^{k}"


class PiecewiseDesignBuilder:
    """Builds polynomial designs split at a cutpoint."""

    @staticmethod
    def column_names(spec: ModelSpec) -> list[str]:
        order = spec.polynomial_order
        if spec.slope_mode is SlopeMode.SHARED:
            powers = [_power_name("x", k) for k in range(1, order + 1)]
            return [CONSTANT_COLUMN] + powers + [TREATMENT_COLUMN]

        powers = [_power_name("x_c", k) for k in range(1, order + 1)]
        interactions = [f"{TREATMENT_COLUMN}:{name}" for name in powers]
        return [CONSTANT_COLUMN, TREATMENT_COLUMN] + powers + interactions

    @staticmethod
    def regressors(x: np.ndarray, cutpoint: float, spec: ModelSpec) -> pd.DataFrame:
        """Evaluate the design columns at arbitrary assignment values.

        No sample-size checks; used both for fitting and for predicting
        fitted lines on a plotting grid.
        """
        x = np.asarray(x, dtype=float)
        treated = (x >= cutpoint).astype(float)
        order = spec.polynomial_order

        cols: dict[str, np.ndarray] = {CONSTANT_COLUMN: np.ones_like(x)}
        if spec.slope_mode is SlopeMode.SHARED:
            for k in range(1, order + 1):
                cols[_power_name("x", k)] = x ** k
            cols[TREATMENT_COLUMN] = treated
        else:
            x_c = x - cutpoint
            cols[TREATMENT_COLUMN] = treated
            for k in range(1, order + 1):
                cols[_power_name("x_c", k)] = x_c ** k
            for k in range(1, order + 1):
                cols[f"{TREATMENT_COLUMN}:{_power_name('x_c', k)}"] = treated * x_c ** k

        return pd.DataFrame(cols, columns=PiecewiseDesignBuilder.column_names(spec))

    def build(
        self,
        observations: Observations,
        cutpoint: float,
        order: int = 1,
        slope_mode: SlopeMode | str = SlopeMode.SEPARATE,
    ) -> DesignMatrix:
        """
        Build the design matrix for a piecewise polynomial fit.

        Args:
            observations: Non-empty observation set
            cutpoint: Threshold; x >= cutpoint is treated
            order: Polynomial order (>= 0)
            slope_mode: shared or separate slopes

        Returns:
            DesignMatrix with named columns

        Raises:
            InvalidSpecError: order < 0 or unknown slope mode
            InsufficientDataError: a side has fewer observations than its own columns
        """
        spec = ModelSpec(order, slope_mode)
        cutpoint = float(cutpoint)

        if len(observations) == 0:
            raise InsufficientDataError(
                "No observations to build a design from",
                n_observations=0,
                n_parameters=spec.n_parameters,
                n_below=0,
                n_above=0,
            )

        n_below, n_above = observations.side_counts(cutpoint)
        needed = spec.columns_per_side
        if n_below < needed or n_above < needed:
            side = "below" if n_below < needed else "above"
            raise InsufficientDataError(
                f"Too few observations {side} cutpoint {cutpoint:g} for {spec.label} "
                f"(below={n_below}, above={n_above}, need >= {needed} per side)",
                n_observations=len(observations),
                n_parameters=spec.n_parameters,
                n_below=n_below,
                n_above=n_above,
            )

        matrix = self.regressors(observations.assignment, cutpoint, spec)
        outcome = pd.Series(observations.outcome, name="y")

        return DesignMatrix(
            matrix=matrix,
            outcome=outcome,
            cutpoint=cutpoint,
            spec=spec,
            n_below=n_below,
            n_above=n_above,
            columns=list(matrix.columns),
        )
