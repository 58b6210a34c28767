"""
AIC ranking of competing RDD specifications.

Consumes FitResult objects only; fits are assumed to share the same sample.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd

from shared.rdd.estimator import FitResult


@dataclass(frozen=True)
class RankedFit:
    """One entry of an AIC ranking."""

    rank: int
    label: str
    fit: FitResult
    delta_aic: float
    akaike_weight: float


class ModelScorer:
    """Rank fitted specifications by ascending AIC.

    Sorting is stable: entries with equal AIC keep their input order.
    """

    def rank(self, fit_results: Iterable[tuple[str, FitResult]]) -> list[RankedFit]:
        entries = list(fit_results)
        if not entries:
            return []

        ordered = sorted(entries, key=lambda entry: entry[1].aic)
        best_aic = ordered[0][1].aic
        deltas = np.array([fit.aic - best_aic for _, fit in ordered])
        relative = np.exp(-0.5 * deltas)
        weights = relative / relative.sum()

        return [
            RankedFit(
                rank=i + 1,
                label=label,
                fit=fit,
                delta_aic=float(delta),
                akaike_weight=float(weight),
            )
            for i, ((label, fit), delta, weight) in enumerate(zip(ordered, deltas, weights))
        ]

    @staticmethod
    def to_frame(ranking: list[RankedFit]) -> pd.DataFrame:
        """Tabular view of a ranking for report renderers."""
        rows = []
        for entry in ranking:
            row = {"rank": entry.rank, "label": entry.label}
            row.update(entry.fit.to_dict())
            row["delta_aic"] = entry.delta_aic
            row["akaike_weight"] = entry.akaike_weight
            rows.append(row)
        return pd.DataFrame(rows)
