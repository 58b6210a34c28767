"""
Shared engine infrastructure.

Contains:
- adapters/: DataFrame request/result adapters over the RDD engine
"""
