"""Vital-sign / medication correlation.

Cross-references the most recent vital of each type with active medications
to surface effectiveness, side-effect and expected-effect observations. A
medication from one system is often correlated with a vital measured by
another, which neither system could report on its own.

A standalone check flags an elevated BMI as a combined risk factor when paired
with an active diabetes diagnosis, or on its own at BMI >= 30.
"""

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional

from chart_reconcile.domain.enums import PRIORITY_ORDER, CorrelationType, Priority, VitalType
from chart_reconcile.domain.insights import VitalCorrelation
from chart_reconcile.domain.merged import MergedCondition, MergedMedication, MergedVital
from chart_reconcile.domain.rules.drug_interactions import is_active_equivalent
from chart_reconcile.domain.utils import SequentialIdGenerator, newest_first_key

SYSTOLIC_LOINC = "8480-6"
DIASTOLIC_LOINC = "8462-4"

BP_TARGET_SYSTOLIC = 140
BP_TARGET_DIASTOLIC = 90


def _fmt(value: Optional[float]) -> str:
    return "unknown" if value is None else f"{value:g}"


def systolic(vital: MergedVital) -> Optional[float]:
    return vital.component_value("systolic", SYSTOLIC_LOINC)


def diastolic(vital: MergedVital) -> Optional[float]:
    return vital.component_value("diastolic", DIASTOLIC_LOINC)


# ============================================================================
# Message builders
# ============================================================================

def _bp_message(vital: MergedVital, med: MergedMedication) -> str:
    sys_value, dia_value = systolic(vital), diastolic(vital)
    if sys_value is not None and dia_value is not None:
        reading = f"{_fmt(sys_value)}/{_fmt(dia_value)}"
        if sys_value < BP_TARGET_SYSTOLIC and dia_value < BP_TARGET_DIASTOLIC:
            return f"Your blood pressure ({reading}) appears well-controlled while taking {med.name}."
        return (
            f"Your blood pressure ({reading}) may still be elevated despite taking {med.name}. "
            f"Discuss this with your provider."
        )
    return f"You are taking {med.name} for blood pressure management. Regular BP monitoring is important."


def _bp_detail(vital: MergedVital, med: MergedMedication) -> str:
    sys_value = systolic(vital)
    detail = (
        f"BP reading from {vital.source.system_name}, {med.name} from {med.source.system_name}. "
        f"Target: <140/90 mmHg."
    )
    if sys_value is not None and sys_value >= BP_TARGET_SYSTOLIC:
        detail += " Current reading exceeds target."
    return detail


def _weight_message(vital: MergedVital, med: MergedMedication) -> str:
    return (
        f"{med.name} is commonly associated with weight changes. If you've noticed weight gain, "
        f"this may be a contributing factor worth discussing with your provider."
    )


def _weight_detail(vital: MergedVital, med: MergedMedication) -> str:
    return (
        f"Weight data from {vital.source.system_name}, {med.name} from {med.source.system_name}. "
        f"Weight changes are a known side effect of this medication class."
    )


def _beta_blocker_message(vital: MergedVital, med: MergedMedication) -> str:
    hr = vital.value
    if hr is not None and hr < 60:
        return (
            f"Your heart rate ({_fmt(hr)} bpm) is on the lower side, which is expected with "
            f"{med.name} (a beta-blocker). If you feel dizzy or faint, contact your provider."
        )
    if hr is not None and hr > 100:
        return f"Your heart rate ({_fmt(hr)} bpm) is elevated despite taking {med.name}. This may need attention."
    return (
        f"{med.name} (beta-blocker) is expected to lower your heart rate. "
        f"Your current rate is {_fmt(hr)} bpm."
    )


def _beta_blocker_detail(vital: MergedVital, med: MergedMedication) -> str:
    return (
        f"HR from {vital.source.system_name}, {med.name} from {med.source.system_name}. "
        f"Beta-blockers typically reduce resting heart rate by 10-20%."
    )


def _stimulant_message(vital: MergedVital, med: MergedMedication) -> str:
    hr = vital.value
    if hr is not None and hr > 100:
        return (
            f"Your heart rate ({_fmt(hr)} bpm) is elevated. {med.name} can increase heart rate. "
            f"Discuss with your provider if this persists."
        )
    return f"{med.name} can affect heart rate. Your current rate is {_fmt(hr)} bpm, which appears normal."


def _stimulant_detail(vital: MergedVital, med: MergedMedication) -> str:
    return (
        f"HR from {vital.source.system_name}, {med.name} from {med.source.system_name}. "
        f"Stimulant medications may increase heart rate."
    )


# ============================================================================
# Rule table
# ============================================================================

@dataclass(frozen=True)
class CorrelationRule:
    """Maps vital types to medication-name patterns and message builders."""

    id: str
    vital_types: tuple[VitalType, ...]
    med_patterns: tuple[re.Pattern, ...]
    correlation_type: CorrelationType
    significance: Priority
    build_message: Callable[[MergedVital, MergedMedication], str]
    build_detail: Callable[[MergedVital, MergedMedication], str]

    def matches_medication(self, name: str) -> bool:
        return any(p.search(name) for p in self.med_patterns)


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


CORRELATION_RULES: tuple[CorrelationRule, ...] = (
    CorrelationRule(
        id="bp-antihypertensive",
        vital_types=(VitalType.BLOOD_PRESSURE,),
        med_patterns=(
            _rx(r"lisinopril|enalapril|ramipril|benazepril"),
            _rx(r"losartan|valsartan|irbesartan|olmesartan"),
            _rx(r"amlodipine|nifedipine|diltiazem|verapamil"),
            _rx(r"hydrochlorothiazide|chlorthalidone|furosemide"),
            _rx(r"metoprolol|atenolol|carvedilol|propranolol"),
        ),
        correlation_type=CorrelationType.EFFECTIVENESS,
        significance=Priority.HIGH,
        build_message=_bp_message,
        build_detail=_bp_detail,
    ),
    CorrelationRule(
        id="weight-gain-med",
        vital_types=(VitalType.BODY_WEIGHT, VitalType.BMI),
        med_patterns=(
            _rx(r"prednisone|prednisolone|dexamethasone|methylprednisolone"),
            _rx(r"sertraline|paroxetine|mirtazapine|amitriptyline|olanzapine|quetiapine|risperidone"),
            _rx(r"insulin|glipizide|glyburide|pioglitazone"),
            _rx(r"gabapentin|pregabalin"),
            _rx(r"propranolol|metoprolol|atenolol"),
        ),
        correlation_type=CorrelationType.SIDE_EFFECT,
        significance=Priority.MEDIUM,
        build_message=_weight_message,
        build_detail=_weight_detail,
    ),
    CorrelationRule(
        id="hr-beta-blocker",
        vital_types=(VitalType.HEART_RATE,),
        med_patterns=(_rx(r"metoprolol|atenolol|propranolol|carvedilol|bisoprolol|nadolol"),),
        correlation_type=CorrelationType.EXPECTED_EFFECT,
        significance=Priority.MEDIUM,
        build_message=_beta_blocker_message,
        build_detail=_beta_blocker_detail,
    ),
    CorrelationRule(
        id="hr-stimulant",
        vital_types=(VitalType.HEART_RATE,),
        med_patterns=(
            _rx(r"methylphenidate|ritalin|adderall|amphetamine|dextroamphetamine|lisdexamfetamine|vyvanse"),
            _rx(r"pseudoephedrine|phenylephrine"),
            _rx(r"albuterol|levalbuterol"),
        ),
        correlation_type=CorrelationType.SIDE_EFFECT,
        significance=Priority.MEDIUM,
        build_message=_stimulant_message,
        build_detail=_stimulant_detail,
    ),
)

_DIABETES = _rx(r"diabetes|diabetic|prediabetes")


def latest_vitals_by_type(vitals: Sequence[MergedVital]) -> dict[VitalType, MergedVital]:
    """Most recent vital per type; undated vitals lose to dated ones."""
    latest: dict[VitalType, MergedVital] = {}
    for vital in sorted(vitals, key=lambda v: newest_first_key(v.effective_date)):
        latest.setdefault(vital.vital_type, vital)
    return latest


def detect_bmi_risk(
    vitals: Sequence[MergedVital],
    conditions: Sequence[MergedCondition],
) -> Optional[VitalCorrelation]:
    """Flag BMI >= 25 with active diabetes, or BMI >= 30 on its own."""
    bmi = latest_vitals_by_type(
        [v for v in vitals if v.vital_type == VitalType.BMI and v.value is not None]
    ).get(VitalType.BMI)
    if bmi is None or bmi.value < 25:
        return None

    has_diabetes = any(
        c.clinical_status == "active" and _DIABETES.search(c.name) for c in conditions
    )
    if not has_diabetes and bmi.value < 30:
        return None

    value = _fmt(bmi.value)
    category = "obese" if bmi.value >= 30 else "overweight"
    if has_diabetes:
        message = (
            f"Your BMI of {value} ({category} range) combined with your diabetes diagnosis "
            f"increases cardiovascular risk. Weight management is especially important."
        )
        detail = f"BMI from {bmi.source.system_name}. Active diabetes diagnosis found in conditions."
    else:
        message = (
            f"Your BMI of {value} is in the {category} range, which is associated with increased "
            f"risk for diabetes, heart disease, and other conditions."
        )
        detail = f"BMI from {bmi.source.system_name}. Consider glucose screening if not recently done."

    return VitalCorrelation(
        id="bmi-glucose-risk",
        vital_name=f"BMI ({value})",
        medication_name="Diabetes diagnosis" if has_diabetes else "Elevated BMI",
        correlation_type=CorrelationType.RISK_FACTOR,
        message=message,
        detail=detail,
        significance=Priority.HIGH,
    )


def detect_vital_correlations(
    vitals: Sequence[MergedVital],
    medications: Sequence[MergedMedication],
    conditions: Sequence[MergedCondition],
    rules: Sequence[CorrelationRule] = CORRELATION_RULES,
    id_generator: Optional[SequentialIdGenerator] = None,
) -> list[VitalCorrelation]:
    """Correlate the latest vital per type with active-equivalent medications.

    Parameters:
        vitals: Merged vitals
        medications: Merged medications
        conditions: Merged conditions (BMI risk check only)
        rules: Correlation rules to evaluate
        id_generator: Identifier source for ``vc-<n>`` ids

    Returns:
        list[VitalCorrelation]: Sorted by significance, high first
    """
    ids = id_generator or SequentialIdGenerator("vc")
    latest = latest_vitals_by_type(vitals)
    active = [m for m in medications if is_active_equivalent(m)]
    seen: set[str] = set()
    correlations: list[VitalCorrelation] = []

    for rule in rules:
        for vital_type in rule.vital_types:
            vital = latest.get(vital_type)
            if vital is None:
                continue
            for med in active:
                if not rule.matches_medication(med.name):
                    continue
                key = f"{rule.id}:{vital.id}:{med.id}"
                if key in seen:
                    continue
                seen.add(key)
                correlations.append(VitalCorrelation(
                    id=ids.next(),
                    vital_name=vital.name,
                    medication_name=med.name,
                    correlation_type=rule.correlation_type,
                    message=rule.build_message(vital, med),
                    detail=rule.build_detail(vital, med),
                    significance=rule.significance,
                ))

    bmi_risk = detect_bmi_risk(vitals, conditions)
    if bmi_risk is not None:
        correlations.append(bmi_risk)

    correlations.sort(key=lambda c: PRIORITY_ORDER[c.significance])
    return correlations
