"""Tier-1 deterministic analyzers."""

from chart_reconcile.domain.rules.care_gaps import CARE_GAP_RULES, CareGapInput, detect_care_gaps
from chart_reconcile.domain.rules.conflict_alerts import generate_conflict_alerts
from chart_reconcile.domain.rules.drug_interactions import detect_drug_interactions
from chart_reconcile.domain.rules.engine import run_tier1_analysis
from chart_reconcile.domain.rules.lab_flags import analyze_lab_abnormal_flags
from chart_reconcile.domain.rules.lab_trends import analyze_lab_trends
from chart_reconcile.domain.rules.vital_correlations import detect_vital_correlations

__all__ = [
    'CARE_GAP_RULES',
    'CareGapInput',
    'detect_care_gaps',
    'generate_conflict_alerts',
    'detect_drug_interactions',
    'run_tier1_analysis',
    'analyze_lab_abnormal_flags',
    'analyze_lab_trends',
    'detect_vital_correlations',
]
