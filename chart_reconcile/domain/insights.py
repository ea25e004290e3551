"""Tier-1 Insight Definitions.

Result types emitted by the deterministic rule engine. Every insight is a
pure derived view over merged records and/or conflicts; none carries
mutable state.

Architecture:
    - Frozen Pydantic models, no infrastructure dependencies
    - ``Tier1Results`` aggregates the six analyzer outputs for one run
    - ``GuardedOutput`` wraps any result with disclaimer and attribution text
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from chart_reconcile.domain.clinical_record import ClinicalCode, ReferenceRange, SourceTag
from chart_reconcile.domain.enums import (
    ConflictSeverity,
    CorrelationType,
    InteractionSeverity,
    LabFlagStatus,
    Priority,
    TrendDirection,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LabAbnormalFlag(BaseModel):
    """Interpretation of one numeric lab value against a reference range."""

    model_config = ConfigDict(frozen=True)

    lab_id: str
    lab_name: str
    value: float
    unit: str = ""
    reference_range: ReferenceRange
    range_from_source: bool = Field(True, description="False when a standard adult range was used")
    status: LabFlagStatus
    message: str
    source: SourceTag


class TrendReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float
    date: str


class LabTrend(BaseModel):
    """Direction of a lab series from its first to its last reading."""

    model_config = ConfigDict(frozen=True)

    lab_name: str
    code: ClinicalCode
    direction: TrendDirection
    change_percent: float
    reading_count: int = Field(..., ge=2)
    first_reading: TrendReading
    last_reading: TrendReading
    span_days: int
    message: str


class CareGap(BaseModel):
    """A preventive-care action that is due or overdue."""

    model_config = ConfigDict(frozen=True)

    id: str
    recommendation: str
    reason: str
    last_performed: Optional[str] = None
    is_overdue: bool
    guideline: str
    priority: Priority
    guideline_source: str


class DrugInteraction(BaseModel):
    """A clinically significant interaction between two active medications."""

    model_config = ConfigDict(frozen=True)

    id: str
    drug_a: str
    drug_b: str
    severity: InteractionSeverity
    description: str
    effect: str
    data_source: str
    drug_a_sources: list[SourceTag] = Field(default_factory=list)
    drug_b_sources: list[SourceTag] = Field(default_factory=list)


class SourceConflictAlert(BaseModel):
    """Patient-facing rendering of a conflict."""

    model_config = ConfigDict(frozen=True)

    conflict_id: str
    severity: ConflictSeverity
    title: str
    explanation: str
    action_item: str
    sources: list[SourceTag]


class VitalCorrelation(BaseModel):
    """A vital-sign observation correlated with an active medication."""

    model_config = ConfigDict(frozen=True)

    id: str
    vital_name: str
    medication_name: str
    correlation_type: CorrelationType
    message: str
    detail: str
    significance: Priority


class Tier1Results(BaseModel):
    """Aggregate output of the six Tier-1 analyzers for one run."""

    model_config = ConfigDict(frozen=True)

    lab_flags: list[LabAbnormalFlag] = Field(default_factory=list)
    lab_trends: list[LabTrend] = Field(default_factory=list)
    care_gaps: list[CareGap] = Field(default_factory=list)
    drug_interactions: list[DrugInteraction] = Field(default_factory=list)
    source_conflict_alerts: list[SourceConflictAlert] = Field(default_factory=list)
    vital_correlations: list[VitalCorrelation] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=_utc_now)

    def counts(self) -> dict[str, int]:
        return {
            "lab_flags": len(self.lab_flags),
            "lab_trends": len(self.lab_trends),
            "care_gaps": len(self.care_gaps),
            "drug_interactions": len(self.drug_interactions),
            "source_conflict_alerts": len(self.source_conflict_alerts),
            "vital_correlations": len(self.vital_correlations),
        }


class GuardedOutput(BaseModel):
    """A rule-engine result wrapped with safety framing for display."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    result: Any
    disclaimer: str
    source_attribution: str
    confidence_frame: str
    model_label: str
    provider_cta: str
    generated_at: datetime = Field(default_factory=_utc_now)
