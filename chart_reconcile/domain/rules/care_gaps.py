"""Preventive care-gap detection.

Each rule decides independently whether it applies to the patient (age, sex,
active conditions), finds the most recent qualifying record across
encounters, labs, immunizations and vitals, and compares it against its own
interval. Month arithmetic uses calendar months; years are months / 12.
"""

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from chart_reconcile.domain.clinical_record import Demographics
from chart_reconcile.domain.enums import PRIORITY_ORDER, Priority, VitalType
from chart_reconcile.domain.insights import CareGap
from chart_reconcile.domain.merged import (
    MergedCondition,
    MergedEncounter,
    MergedImmunization,
    MergedLabResult,
    MergedVital,
)
from chart_reconcile.domain.utils import months_between, parse_clinical_datetime, to_date


@dataclass(frozen=True)
class CareGapInput:
    """Everything a care-gap rule may look at, plus the evaluation date."""

    patient: Demographics
    today: date
    conditions: Sequence[MergedCondition] = ()
    immunizations: Sequence[MergedImmunization] = ()
    encounters: Sequence[MergedEncounter] = ()
    lab_results: Sequence[MergedLabResult] = ()
    vitals: Sequence[MergedVital] = ()

    @property
    def age(self) -> Optional[int]:
        return self.patient.age_on(self.today)

    def months_since(self, value: str) -> Optional[int]:
        when = to_date(value)
        return months_between(when, self.today) if when else None


# ============================================================================
# Record lookups
# ============================================================================

def latest_date(values: Iterable[Optional[str]]) -> Optional[str]:
    """Most recent parseable date string, or None."""
    dated = [(parse_clinical_datetime(v), v) for v in values if v]
    dated = [(when, v) for when, v in dated if when is not None]
    if not dated:
        return None
    return max(dated, key=lambda pair: pair[0])[1]


def has_active_condition(conditions: Sequence[MergedCondition], pattern: re.Pattern) -> bool:
    return any(
        c.clinical_status in ("active", "recurrence") and pattern.search(c.name)
        for c in conditions
    )


def latest_lab(labs: Sequence[MergedLabResult], pattern: re.Pattern) -> Optional[str]:
    return latest_date(l.effective_date for l in labs if pattern.search(l.name))


def latest_immunization(immunizations: Sequence[MergedImmunization], pattern: re.Pattern) -> Optional[str]:
    return latest_date(
        i.occurrence_date for i in immunizations
        if i.status == "completed" and pattern.search(i.vaccine_name)
    )


def latest_encounter(encounters: Sequence[MergedEncounter], pattern: re.Pattern) -> Optional[str]:
    return latest_date(
        e.period_start for e in encounters
        if pattern.search(e.type or "") or pattern.search(e.reason or "")
    )


def latest_blood_pressure(vitals: Sequence[MergedVital]) -> Optional[str]:
    return latest_date(v.effective_date for v in vitals if v.vital_type == VitalType.BLOOD_PRESSURE)


# ============================================================================
# Rule table
# ============================================================================

@dataclass(frozen=True)
class CareGapRule:
    """One preventive-care rule.

    Attributes:
        id: Stable rule identifier, reused as the gap id
        recommendation: Display name of the recommended action
        guideline: Human-readable interval / threshold
        guideline_source: Guideline body and year
        priority: Base priority when overdue
        applies: Whether the rule applies to the patient
        last_performed: Most recent qualifying date, or None if never
        max_months: Overdue when more than this many months have passed;
            None means "overdue only if never performed"
        reason: Why the gap matters for this patient
    """

    id: str
    recommendation: str
    guideline: str
    guideline_source: str
    priority: Priority
    applies: Callable[[CareGapInput], bool]
    last_performed: Callable[[CareGapInput], Optional[str]]
    max_months: Optional[int]
    reason: Callable[[CareGapInput], str] = field(default=lambda _: "")

    def is_overdue(self, data: CareGapInput, last_done: Optional[str]) -> bool:
        if last_done is None:
            return True
        if self.max_months is None:
            return False
        elapsed = data.months_since(last_done)
        return elapsed is None or elapsed > self.max_months


def _age_at_least(years: int) -> Callable[[CareGapInput], bool]:
    def check(data: CareGapInput) -> bool:
        return data.age is not None and data.age >= years
    return check


_DIABETES = re.compile(r"diabetes|diabetic|type 2 dm|type 1 dm|t2dm|t1dm", re.IGNORECASE)
_HYPERTENSION = re.compile(r"hypertension|high blood pressure|htn", re.IGNORECASE)


def _diabetes_reason(data: CareGapInput) -> str:
    name = next(
        (c.name for c in data.conditions if re.search(r"diabetes|diabetic", c.name, re.IGNORECASE)),
        "diabetes",
    )
    return f"You have {name}. Regular A1c monitoring helps track blood sugar control."


CARE_GAP_RULES: tuple[CareGapRule, ...] = (
    CareGapRule(
        id="colonoscopy-screening",
        recommendation="Colorectal Cancer Screening",
        guideline="Colonoscopy every 10 years starting at age 45",
        guideline_source="USPSTF 2021",
        priority=Priority.MEDIUM,
        applies=_age_at_least(45),
        last_performed=lambda d: latest_date([
            latest_encounter(d.encounters, re.compile(r"colonoscopy|colorectal", re.IGNORECASE)),
            latest_lab(d.lab_results, re.compile(r"fit|fobt|cologuard|colonoscopy", re.IGNORECASE)),
        ]),
        max_months=120,
        reason=lambda _: "Colorectal cancer screening is recommended for adults aged 45-75.",
    ),
    CareGapRule(
        id="mammogram-screening",
        recommendation="Breast Cancer Screening (Mammogram)",
        guideline="Mammogram every 2 years starting at age 40",
        guideline_source="USPSTF 2024",
        priority=Priority.MEDIUM,
        applies=lambda d: _age_at_least(40)(d) and (d.patient.gender or "").lower() == "female",
        last_performed=lambda d: latest_encounter(
            d.encounters, re.compile(r"mammogram|mammography|breast", re.IGNORECASE)
        ),
        max_months=24,
        reason=lambda _: "Biennial screening mammography is recommended for women aged 40-74.",
    ),
    CareGapRule(
        id="shingrix-vaccine",
        recommendation="Shingles Vaccine (Shingrix)",
        guideline="Two-dose Shingrix series for adults >= 50",
        guideline_source="CDC/ACIP 2023",
        priority=Priority.LOW,
        applies=_age_at_least(50),
        last_performed=lambda d: latest_immunization(
            d.immunizations, re.compile(r"shingrix|zoster|shingles", re.IGNORECASE)
        ),
        max_months=None,
        reason=lambda _: (
            "Shingles risk increases with age. The Shingrix vaccine is >90% effective at prevention."
        ),
    ),
    CareGapRule(
        id="diabetic-a1c",
        recommendation="Hemoglobin A1c Monitoring",
        guideline="A1c every 3-6 months for patients with diabetes",
        guideline_source="ADA Standards of Care 2024",
        priority=Priority.HIGH,
        applies=lambda d: has_active_condition(d.conditions, _DIABETES),
        last_performed=lambda d: latest_lab(
            d.lab_results, re.compile(r"a1c|hemoglobin a1c|hba1c|glycated", re.IGNORECASE)
        ),
        max_months=6,
        reason=_diabetes_reason,
    ),
    CareGapRule(
        id="annual-bp-check",
        recommendation="Blood Pressure Check",
        guideline="Annual blood pressure screening for all adults",
        guideline_source="USPSTF 2021",
        priority=Priority.LOW,
        applies=_age_at_least(18),
        last_performed=lambda d: latest_blood_pressure(d.vitals),
        max_months=12,
        reason=lambda _: (
            "High blood pressure often has no symptoms but is a major risk factor for heart "
            "disease and stroke."
        ),
    ),
    CareGapRule(
        id="lipid-panel",
        recommendation="Cholesterol Screening (Lipid Panel)",
        guideline="Lipid panel every 5 years for adults >= 35 (or >= 20 with risk factors)",
        guideline_source="USPSTF 2023",
        priority=Priority.LOW,
        applies=_age_at_least(35),
        last_performed=lambda d: latest_lab(
            d.lab_results, re.compile(r"cholesterol|lipid|ldl|hdl|triglyceride", re.IGNORECASE)
        ),
        max_months=60,
        reason=lambda _: "Regular cholesterol screening helps assess cardiovascular disease risk.",
    ),
    CareGapRule(
        id="flu-vaccine",
        recommendation="Annual Influenza Vaccine",
        guideline="Annual flu vaccination for all adults",
        guideline_source="CDC/ACIP 2024",
        priority=Priority.LOW,
        applies=_age_at_least(18),
        last_performed=lambda d: latest_immunization(
            d.immunizations, re.compile(r"influenza|flu", re.IGNORECASE)
        ),
        max_months=12,
        reason=lambda _: (
            "Annual flu vaccination reduces the risk of flu illness, hospitalization, and death."
        ),
    ),
    CareGapRule(
        id="covid-booster",
        recommendation="COVID-19 Vaccine (Updated Booster)",
        guideline="Updated COVID-19 booster annually",
        guideline_source="CDC/ACIP 2024",
        priority=Priority.LOW,
        applies=_age_at_least(18),
        last_performed=lambda d: latest_immunization(
            d.immunizations, re.compile(r"covid|sars-cov|moderna|pfizer|biontech", re.IGNORECASE)
        ),
        max_months=12,
        reason=lambda _: "Updated COVID-19 boosters provide protection against current variants.",
    ),
    CareGapRule(
        id="hypertension-bp-followup",
        recommendation="Blood Pressure Monitoring (Hypertension)",
        guideline="BP check every 3-6 months for patients with hypertension",
        guideline_source="AHA/ACC 2023",
        priority=Priority.HIGH,
        applies=lambda d: has_active_condition(d.conditions, _HYPERTENSION),
        last_performed=lambda d: latest_blood_pressure(d.vitals),
        max_months=6,
        reason=lambda _: (
            "With hypertension, regular BP monitoring is essential to ensure your medication "
            "is working and your blood pressure is controlled."
        ),
    ),
)


def effective_priority(base: Priority, overdue: bool) -> Priority:
    """Not overdue -> low; overdue keeps the base priority, floored at medium."""
    if not overdue:
        return Priority.LOW
    return Priority.MEDIUM if base == Priority.LOW else base


def detect_care_gaps(
    data: CareGapInput,
    rules: Sequence[CareGapRule] = CARE_GAP_RULES,
) -> list[CareGap]:
    """Evaluate every applicable rule.

    Returns:
        list[CareGap]: Overdue gaps first, then by priority
    """
    gaps: list[CareGap] = []
    for rule in rules:
        if not rule.applies(data):
            continue
        last_done = rule.last_performed(data)
        overdue = rule.is_overdue(data, last_done)
        gaps.append(CareGap(
            id=rule.id,
            recommendation=rule.recommendation,
            reason=rule.reason(data),
            last_performed=last_done,
            is_overdue=overdue,
            guideline=rule.guideline,
            priority=effective_priority(rule.priority, overdue),
            guideline_source=rule.guideline_source,
        ))

    gaps.sort(key=lambda g: (0 if g.is_overdue else 1, PRIORITY_ORDER[g.priority]))
    return gaps
