"""
Minimum legal drinking age (MLDA) mortality data.

Age-cell aggregates of US death rates per 100,000 person-years by cause,
with ``agecell`` as the running variable and 21 as the legal threshold
(Carpenter and Dobkin, 2009).
"""

import logging
from pathlib import Path
from typing import Any

import pandas as pd

from config.settings import get_settings
from shared.data.base import HTTPDataSource
from shared.rdd.design import Observations

logger = logging.getLogger(__name__)

# Cause-of-death rate columns found in the standard MLDA extract.
MLDA_OUTCOMES = [
    "all",
    "internal",
    "external",
    "alcohol",
    "homicide",
    "suicide",
    "mva",
    "drugs",
    "externalother",
]


class MLDALoader(HTTPDataSource):
    """Load the MLDA age-cell dataset from disk, downloading it on first use if configured."""

    def __init__(
        self,
        path: Path | None = None,
        url: str | None = None,
        running_variable: str | None = None,
    ):
        settings = get_settings()
        super().__init__()
        self.path = path or self.data_dir / settings.dataset_file
        self.url = settings.dataset_url if url is None else url
        self.running_variable = running_variable or settings.running_variable
        self._frame: pd.DataFrame | None = None

    @property
    def source_name(self) -> str:
        return "mlda"

    def fetch(self, **kwargs: Any) -> pd.DataFrame:
        """Return the dataset, downloading it first when missing and a URL is set."""
        if self._frame is not None:
            return self._frame

        if not self.path.exists():
            if not self.url:
                raise FileNotFoundError(
                    f"MLDA dataset not found at {self.path} and no download URL configured "
                    f"(set RDD_DATASET_URL)"
                )
            self.download(self.url, self.path)

        df = self.read_table(self.path)
        if self.running_variable not in df.columns:
            raise ValueError(
                f"Running variable '{self.running_variable}' not in dataset columns: "
                f"{list(df.columns)}"
            )
        self._frame = df.sort_values(self.running_variable, kind="stable").reset_index(drop=True)
        return self._frame

    def available_outcomes(self) -> list[str]:
        """Outcome columns present in the data (fitted-value columns excluded)."""
        df = self.fetch()
        return [
            c for c in df.columns
            if c != self.running_variable
            and not c.endswith("fitted")
            and pd.api.types.is_numeric_dtype(df[c])
        ]

    def observations(self, outcome: str) -> Observations:
        """Assignment/outcome pairs for one cause of death."""
        df = self.fetch()
        if outcome not in df.columns:
            raise ValueError(
                f"Outcome '{outcome}' not in dataset (available: {self.available_outcomes()})"
            )
        return Observations.from_frame(df, self.running_variable, outcome)


def load_mlda(path: Path | None = None) -> pd.DataFrame:
    """
    Convenience function to load the MLDA dataset.

    Args:
        path: CSV or parquet file (default from settings)

    Returns:
        DataFrame sorted by the running variable
    """
    return MLDALoader(path=path).fetch()
