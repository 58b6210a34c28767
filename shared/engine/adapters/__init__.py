"""Estimator Adapter Framework.

DataFrame-facing interface over the sharp RDD engine.
"""

from shared.engine.adapters.base import EstimationRequest, EstimationResult, EstimatorAdapter
from shared.engine.adapters.rdd_adapter import RDDAdapter

__all__ = [
    "EstimationRequest",
    "EstimationResult",
    "EstimatorAdapter",
    "RDDAdapter",
]
