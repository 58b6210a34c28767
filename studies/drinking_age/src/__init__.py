"""
Drinking age study source modules.
"""

from studies.drinking_age.src.analysis import (
    DEFAULT_LADDER,
    LadderEntry,
    OutcomeAnalysis,
    RDDAnalysis,
    SpecFailure,
    binned_means,
    compare_specifications,
    load_ladder,
    run_mlda_analysis,
)

__all__ = [
    "DEFAULT_LADDER",
    "LadderEntry",
    "OutcomeAnalysis",
    "RDDAnalysis",
    "SpecFailure",
    "binned_means",
    "compare_specifications",
    "load_ladder",
    "run_mlda_analysis",
]
