"""
Abstract base classes for data sources.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any
import logging

import pandas as pd

from config.settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class DataSourceMetadata:
    """Metadata about a data source fetch."""

    source_name: str
    fetch_time: datetime
    path: str | None = None
    url: str | None = None
    row_count: int | None = None
    columns: list[str] = field(default_factory=list)
    notes: str = ""


class DataSource(ABC):
    """Abstract base class for tabular data sources."""

    def __init__(self, data_dir: Path | None = None):
        settings = get_settings()
        self.data_dir = data_dir or settings.project_root / settings.data_dir
        self._metadata: list[DataSourceMetadata] = []

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Unique identifier for this data source."""
        pass

    @abstractmethod
    def fetch(self, **kwargs: Any) -> pd.DataFrame:
        """Fetch data from the source."""
        pass

    @property
    def metadata(self) -> list[DataSourceMetadata]:
        return list(self._metadata)

    def read_table(self, path: Path) -> pd.DataFrame:
        """Read a CSV or parquet file."""
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")

        suffix = path.suffix.lower()
        if suffix == ".csv":
            df = pd.read_csv(path)
        elif suffix == ".parquet":
            df = pd.read_parquet(path)
        else:
            raise ValueError(f"Unsupported file format: {suffix}")

        self._metadata.append(DataSourceMetadata(
            source_name=self.source_name,
            fetch_time=datetime.now(),
            path=str(path),
            row_count=len(df),
            columns=list(df.columns),
        ))
        logger.info(f"Loaded {len(df)} rows from {path}")
        return df


class HTTPDataSource(DataSource):
    """Base class for data sources that can be downloaded over HTTP."""

    def __init__(self, data_dir: Path | None = None):
        super().__init__(data_dir)
        self._client = None

    @property
    def client(self):
        """Lazy-loaded HTTP client."""
        if self._client is None:
            import httpx

            settings = get_settings()
            self._client = httpx.Client(
                timeout=settings.http_timeout,
                follow_redirects=True,
            )
        return self._client

    def download(self, url: str, destination: Path) -> Path:
        """Download ``url`` to ``destination`` and return the path."""
        logger.info(f"Downloading {self.source_name} from {url}")
        response = self.client.get(url)
        response.raise_for_status()

        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(response.content)
        self._metadata.append(DataSourceMetadata(
            source_name=self.source_name,
            fetch_time=datetime.now(),
            path=str(destination),
            url=url,
        ))
        return destination

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
