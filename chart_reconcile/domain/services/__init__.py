"""Domain services: patient matching, merging and conflict detection."""

from chart_reconcile.domain.services.conflict_detector import (
    ConflictDetector,
    detect_all_conflicts,
    detect_allergy_gap,
)
from chart_reconcile.domain.services.merge_engine import MergeEngine, merge_all_domains
from chart_reconcile.domain.services.patient_matcher import (
    MatchResult,
    PatientMatcher,
    match_patients,
)

__all__ = [
    'ConflictDetector',
    'detect_all_conflicts',
    'detect_allergy_gap',
    'MergeEngine',
    'merge_all_domains',
    'MatchResult',
    'PatientMatcher',
    'match_patients',
]
