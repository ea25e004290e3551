"""Domain Enumerations.

This module defines the closed vocabularies used across the reconciliation
pipeline: merge statuses, conflict kinds and severities, vital types, and the
status values emitted by the Tier-1 analyzers.

Architecture:
    - Pure domain definitions with zero infrastructure dependencies
    - All enums subclass ``str`` so they serialize as their wire value
"""

from enum import Enum


class MergeStatus(str, Enum):
    """How a record was produced by the merge engine."""
    SINGLE_SOURCE = "single-source"
    CONFIRMED = "confirmed"
    CONFLICT = "conflict"


class ConflictType(str, Enum):
    """Category of cross-source disagreement."""
    DOSE_MISMATCH = "dose-mismatch"
    ALLERGY_PRESCRIPTION = "allergy-prescription"
    MISSING_CROSSREF = "missing-crossref"
    CONTRADICTORY_CONDITION = "contradictory-condition"
    ALLERGY_GAP = "allergy-gap"


class ConflictSeverity(str, Enum):
    """Clinical severity of a conflict.

    critical = blocks prescribing in production
    high     = requires acknowledgment
    medium   = informational
    """
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class ResourceType(str, Enum):
    """Domain of a record referenced by a conflict."""
    MEDICATION = "Medication"
    ALLERGY = "Allergy"
    CONDITION = "Condition"


class VitalType(str, Enum):
    """Vital sign category used for grouping and matching."""
    BLOOD_PRESSURE = "blood-pressure"
    HEART_RATE = "heart-rate"
    BODY_WEIGHT = "body-weight"
    BMI = "bmi"
    BODY_TEMPERATURE = "body-temperature"
    RESPIRATORY_RATE = "respiratory-rate"
    OXYGEN_SATURATION = "oxygen-saturation"
    BODY_HEIGHT = "body-height"
    OTHER = "other"


class LabFlagStatus(str, Enum):
    """Interpretation of a numeric lab value against its reference range."""
    NORMAL = "normal"
    HIGH = "high"
    LOW = "low"
    CRITICAL_HIGH = "critical-high"
    CRITICAL_LOW = "critical-low"


class TrendDirection(str, Enum):
    """Direction of a lab series from first to last reading."""
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


class InteractionSeverity(str, Enum):
    """Severity of a drug-drug interaction."""
    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"


class Priority(str, Enum):
    """Priority / significance scale shared by care gaps and vital correlations."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CorrelationType(str, Enum):
    """Kind of vital/medication correlation."""
    EFFECTIVENESS = "effectiveness"
    SIDE_EFFECT = "side-effect"
    RISK_FACTOR = "risk-factor"
    EXPECTED_EFFECT = "expected-effect"


class StageState(str, Enum):
    """Status of a single pipeline stage."""
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    COMPLETE = "complete"


# Fixed ordering tables used for stable output sorting
CONFLICT_SEVERITY_ORDER = {
    ConflictSeverity.CRITICAL: 0,
    ConflictSeverity.HIGH: 1,
    ConflictSeverity.MEDIUM: 2,
}

CONFLICT_TYPE_ORDER = {
    ConflictType.ALLERGY_GAP: 0,
    ConflictType.ALLERGY_PRESCRIPTION: 1,
    ConflictType.DOSE_MISMATCH: 2,
    ConflictType.MISSING_CROSSREF: 3,
    ConflictType.CONTRADICTORY_CONDITION: 4,
}

INTERACTION_SEVERITY_ORDER = {
    InteractionSeverity.CRITICAL: 0,
    InteractionSeverity.HIGH: 1,
    InteractionSeverity.MODERATE: 2,
    InteractionSeverity.LOW: 3,
}

PRIORITY_ORDER = {
    Priority.HIGH: 0,
    Priority.MEDIUM: 1,
    Priority.LOW: 2,
}
