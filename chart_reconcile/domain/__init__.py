"""Domain layer for chart-reconcile.

This module contains the clinical record model, the merge/conflict services
and the Tier-1 analyzers. All domain models are pure Python with no external
dependencies beyond Pydantic.
"""

from .clinical_record import (
    Demographics,
    SourceSnapshot,
    SourceTag,
)
from .conflicts import Conflict
from .merged import MergeResult

__all__ = [
    "Demographics",
    "SourceSnapshot",
    "SourceTag",
    "Conflict",
    "MergeResult",
]
