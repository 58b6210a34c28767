"""
Shared data infrastructure.

Contains:
- base.py: Abstract DataSource base classes (local files, HTTP download)
- mlda.py: Minimum legal drinking age mortality data
"""

from shared.data.base import DataSource, HTTPDataSource, DataSourceMetadata
from shared.data.mlda import MLDA_OUTCOMES, MLDALoader, load_mlda

__all__ = [
    # Base classes
    "DataSource",
    "HTTPDataSource",
    "DataSourceMetadata",
    # MLDA
    "MLDA_OUTCOMES",
    "MLDALoader",
    "load_mlda",
]
