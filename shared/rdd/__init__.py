"""
Sharp regression discontinuity engine.

Contains:
- design.py: Observations, ModelSpec, piecewise polynomial designs
- estimator.py: OLS discontinuity estimate, SE, CI and AIC
- scoring.py: AIC ranking of competing specifications
- placebo.py: Placebo cutpoint sweep
- restriction.py: Sample restriction around the cutpoint
"""

from shared.rdd.errors import (
    RDDError,
    InvalidSpecError,
    InsufficientDataError,
    SingularDesignError,
    OutOfRangeCutpointError,
)
from shared.rdd.design import (
    DesignMatrix,
    ModelSpec,
    Observations,
    PiecewiseDesignBuilder,
    SlopeMode,
)
from shared.rdd.estimator import FitResult, RDEstimator, fit_rdd
from shared.rdd.scoring import ModelScorer, RankedFit
from shared.rdd.placebo import (
    OmittedCutpoint,
    PlaceboProfile,
    PlaceboRow,
    PlaceboSweeper,
    Position,
    placebo_grid,
)
from shared.rdd.restriction import SampleRestrictor, symmetric_window

__all__ = [
    # Errors
    "RDDError",
    "InvalidSpecError",
    "InsufficientDataError",
    "SingularDesignError",
    "OutOfRangeCutpointError",
    # Design
    "DesignMatrix",
    "ModelSpec",
    "Observations",
    "PiecewiseDesignBuilder",
    "SlopeMode",
    # Estimation
    "FitResult",
    "RDEstimator",
    "fit_rdd",
    # Scoring
    "ModelScorer",
    "RankedFit",
    # Placebo
    "OmittedCutpoint",
    "PlaceboProfile",
    "PlaceboRow",
    "PlaceboSweeper",
    "Position",
    "placebo_grid",
    # Restriction
    "SampleRestrictor",
    "symmetric_window",
]
