"""
Minimum Legal Drinking Age Study.

Research Question: Does legal access to alcohol at 21 raise mortality?

Identification: Sharp RDD in age at the 21st birthday, using age-cell
death rates by cause.

Key files:
- src/analysis.py: Model ladder, placebo sweep, sample restriction
- src/cli.py: Command-line interface
"""
