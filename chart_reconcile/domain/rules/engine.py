"""Tier-1 Rule Engine.

Runs the six deterministic analyzers over one merge result and collects their
output into a single Tier1Results.

Security Impact:
    - Every analyzer is rule-based; no model output reaches the patient
    - Results are wrapped by ``apply_guardrails`` before presentation

Architecture:
    - Analyzers are pure functions; this module only wires them together
    - Thresholds are plain parameters so the caller decides where they come from
"""

import logging
from collections.abc import Sequence
from datetime import date, datetime, timezone
from typing import Optional

from chart_reconcile.domain.clinical_record import Demographics
from chart_reconcile.domain.conflicts import Conflict
from chart_reconcile.domain.insights import Tier1Results
from chart_reconcile.domain.merged import MergeResult
from chart_reconcile.domain.rules.care_gaps import CareGapInput, detect_care_gaps
from chart_reconcile.domain.rules.conflict_alerts import generate_conflict_alerts
from chart_reconcile.domain.rules.drug_interactions import detect_drug_interactions
from chart_reconcile.domain.rules.lab_flags import DEFAULT_CRITICAL_FACTOR, analyze_lab_abnormal_flags
from chart_reconcile.domain.rules.lab_trends import DEFAULT_STABLE_THRESHOLD_PERCENT, analyze_lab_trends
from chart_reconcile.domain.rules.vital_correlations import detect_vital_correlations

logger = logging.getLogger(__name__)


def run_tier1_analysis(
    demographics: Optional[Demographics],
    merge_result: MergeResult,
    conflicts: Sequence[Conflict] = (),
    today: Optional[date] = None,
    stable_threshold_percent: float = DEFAULT_STABLE_THRESHOLD_PERCENT,
    critical_factor: float = DEFAULT_CRITICAL_FACTOR,
) -> Tier1Results:
    """Run every Tier-1 analyzer.

    Parameters:
        demographics: Primary patient demographics; age/sex rules are skipped
            when unknown
        merge_result: Output of the merge engine
        conflicts: Output of the conflict detector
        today: Evaluation date for care gaps (defaults to the current UTC date)
        stable_threshold_percent: Lab trend stability threshold
        critical_factor: Lab critical-abnormality multiplier

    Returns:
        Tier1Results: All analyzer outputs with an analysis timestamp
    """
    today = today or datetime.now(timezone.utc).date()
    patient = demographics or Demographics(patient_id="unknown")

    results = Tier1Results(
        lab_flags=analyze_lab_abnormal_flags(merge_result.lab_results, critical_factor),
        lab_trends=analyze_lab_trends(merge_result.lab_results, stable_threshold_percent),
        care_gaps=detect_care_gaps(CareGapInput(
            patient=patient,
            today=today,
            conditions=merge_result.conditions,
            immunizations=merge_result.immunizations,
            encounters=merge_result.encounters,
            lab_results=merge_result.lab_results,
            vitals=merge_result.vitals,
        )),
        drug_interactions=detect_drug_interactions(merge_result.medications),
        source_conflict_alerts=generate_conflict_alerts(conflicts),
        vital_correlations=detect_vital_correlations(
            merge_result.vitals, merge_result.medications, merge_result.conditions
        ),
    )

    logger.info("Tier-1 analysis complete: %s", results.counts())
    return results
