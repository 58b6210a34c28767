"""
Estimator Adapter Base Classes.

Defines the DataFrame-facing EstimationRequest/EstimationResult dataclasses
and the EstimatorAdapter ABC. Adapters translate between these and the
array-based engine in ``shared.rdd``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import pandas as pd


@dataclass
class EstimationRequest:
    """Standardized estimation request over a DataFrame."""

    df: pd.DataFrame
    outcome: str
    running_variable: str
    cutoff: float

    # Specification
    polynomial_order: int = 1
    slope_mode: str = "separate"

    # Optional inclusive estimation window (lower, upper)
    window: tuple[float, float] | None = None

    # Inference
    confidence_level: float = 0.95
    se_type: str = "nonrobust"

    # Free-form label carried into the result metadata
    label: str = ""

    # Extra adapter-specific parameters
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class EstimationResult:
    """Standardized estimation result."""

    point: float
    se: float
    ci_lower: float
    ci_upper: float
    pvalue: float | None
    n_obs: int
    method_name: str
    library: str
    library_version: str
    diagnostics: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


class EstimatorAdapter(ABC):
    """Abstract base class for estimation adapters."""

    @abstractmethod
    def estimate(self, req: EstimationRequest) -> EstimationResult:
        """Run estimation and return standardized result.

        Args:
            req: Standardized estimation request.

        Returns:
            Standardized estimation result.
        """
        ...

    @abstractmethod
    def supported_designs(self) -> list[str]:
        """Return list of design IDs this adapter supports."""
        ...

    def validate_request(self, req: EstimationRequest) -> list[str]:
        """Validate request before estimation. Returns list of error messages.

        An empty list means the request is valid.
        """
        errors = []
        if req.outcome not in req.df.columns:
            errors.append(f"Outcome column '{req.outcome}' not in DataFrame")
        if req.running_variable not in req.df.columns:
            errors.append(f"Running variable '{req.running_variable}' not in DataFrame")
        if req.window is not None and req.window[0] > req.window[1]:
            errors.append(f"Window lower bound exceeds upper bound: {req.window}")
        return errors
