"""
Tests for preventive-care gap detection.

All tests evaluate against a fixed date so results never depend on the
calendar.
"""

from datetime import date

from chart_reconcile.domain.clinical_record import (
    Condition,
    Demographics,
    Encounter,
    Immunization,
    LabResult,
    Vital,
)
from chart_reconcile.domain.enums import Priority
from chart_reconcile.domain.merged import (
    MergedCondition,
    MergedEncounter,
    MergedImmunization,
    MergedLabResult,
    MergedVital,
    build_merged,
)
from chart_reconcile.domain.rules.care_gaps import (
    CARE_GAP_RULES,
    CareGapInput,
    detect_care_gaps,
    effective_priority,
    latest_date,
)

TODAY = date(2024, 6, 1)


def _gaps_by_id(data):
    return {gap.id: gap for gap in detect_care_gaps(data)}


class TestHelpers:
    """Test date and priority helpers."""

    def test_latest_date_ignores_unparseable(self):
        """Test that missing or malformed dates are skipped."""
        assert latest_date(["2023-01-01", None, "garbage", "2024-02-01"]) == "2024-02-01"
        assert latest_date([None, ""]) is None

    def test_effective_priority(self):
        """Test priority adjustment for overdue and current gaps."""
        assert effective_priority(Priority.HIGH, overdue=True) == Priority.HIGH
        assert effective_priority(Priority.LOW, overdue=True) == Priority.MEDIUM
        assert effective_priority(Priority.HIGH, overdue=False) == Priority.LOW

    def test_rule_ids_unique(self):
        """Test that every rule has a distinct id."""
        ids = [rule.id for rule in CARE_GAP_RULES]
        assert len(ids) == len(set(ids))


class TestDetectCareGaps:
    """Test rule applicability and overdue status."""

    def test_age_and_gender_applicability(self):
        """Test that a 30-year-old man gets only the adult-wide rules."""
        data = CareGapInput(
            patient=Demographics(patient_id="p1", gender="male", birth_date="1994-01-01"),
            today=TODAY,
        )
        assert set(_gaps_by_id(data)) == {"annual-bp-check", "flu-vaccine", "covid-booster"}

    def test_unknown_age_gets_only_condition_rules(self, epic):
        """Test that a patient without a birth date gets no age-based rules."""
        data = CareGapInput(
            patient=Demographics(patient_id="p1"),
            today=TODAY,
            conditions=[build_merged(MergedCondition, Condition(
                id="c1", source=epic, name="Essential hypertension", clinical_status="active",
            ))],
        )
        assert set(_gaps_by_id(data)) == {"hypertension-bp-followup"}

    def test_overdue_and_current(self, epic, patient):
        """Test a 64-year-old woman with diabetes and a partial history."""
        data = CareGapInput(
            patient=patient,
            today=TODAY,
            conditions=[build_merged(MergedCondition, Condition(
                id="c1", source=epic, name="Type 2 diabetes mellitus", clinical_status="active",
            ))],
            lab_results=[build_merged(MergedLabResult, LabResult(
                id="l1", source=epic, name="Hemoglobin A1c", value=7.1, effective_date="2024-03-01",
            ))],
            immunizations=[build_merged(MergedImmunization, Immunization(
                id="i1", source=epic, vaccine_name="Influenza, seasonal", occurrence_date="2023-10-01",
            ))],
            vitals=[build_merged(MergedVital, Vital(
                id="v1", source=epic, name="Blood Pressure", vital_type="blood-pressure",
                effective_date="2023-01-01",
            ))],
            encounters=[build_merged(MergedEncounter, Encounter(
                id="e1", source=epic, type="Screening mammogram", period_start="2023-01-01",
            ))],
        )
        gaps = _gaps_by_id(data)

        assert not gaps["diabetic-a1c"].is_overdue
        assert gaps["diabetic-a1c"].priority == Priority.LOW
        assert gaps["diabetic-a1c"].reason.startswith("You have Type 2 diabetes mellitus.")
        assert not gaps["flu-vaccine"].is_overdue
        assert not gaps["mammogram-screening"].is_overdue
        assert gaps["annual-bp-check"].is_overdue
        assert gaps["annual-bp-check"].priority == Priority.MEDIUM
        assert gaps["annual-bp-check"].last_performed == "2023-01-01"
        assert gaps["shingrix-vaccine"].is_overdue
        assert gaps["shingrix-vaccine"].last_performed is None
        assert gaps["colonoscopy-screening"].is_overdue

    def test_exactly_one_interval_is_current(self, epic, patient):
        """Test that a check exactly twelve months ago is not yet overdue."""
        def bp_on(day):
            return CareGapInput(patient=patient, today=TODAY, vitals=[build_merged(MergedVital, Vital(
                id="v1", source=epic, name="Blood Pressure", vital_type="blood-pressure", effective_date=day,
            ))])

        assert not _gaps_by_id(bp_on("2023-06-01"))["annual-bp-check"].is_overdue
        assert _gaps_by_id(bp_on("2023-05-31"))["annual-bp-check"].is_overdue

    def test_shingrix_never_overdue_once_given(self, epic, patient):
        """Test that a one-time vaccine given long ago is not overdue."""
        data = CareGapInput(
            patient=patient,
            today=TODAY,
            immunizations=[build_merged(MergedImmunization, Immunization(
                id="i1", source=epic, vaccine_name="Zoster recombinant (Shingrix)",
                occurrence_date="2015-01-01",
            ))],
        )
        assert not _gaps_by_id(data)["shingrix-vaccine"].is_overdue

    def test_not_done_immunization_ignored(self, epic, patient):
        """Test that a not-done immunization does not count."""
        data = CareGapInput(
            patient=patient,
            today=TODAY,
            immunizations=[build_merged(MergedImmunization, Immunization(
                id="i1", source=epic, vaccine_name="Influenza", status="not-done",
                occurrence_date="2024-01-01",
            ))],
        )
        assert _gaps_by_id(data)["flu-vaccine"].is_overdue

    def test_resolved_condition_does_not_apply(self, epic, patient):
        """Test that a resolved diagnosis does not trigger its rule."""
        data = CareGapInput(
            patient=patient,
            today=TODAY,
            conditions=[build_merged(MergedCondition, Condition(
                id="c1", source=epic, name="Hypertension", clinical_status="resolved",
            ))],
        )
        assert "hypertension-bp-followup" not in _gaps_by_id(data)

    def test_overdue_sorted_first(self, epic, patient):
        """Test that overdue gaps come before current ones, high priority first."""
        data = CareGapInput(
            patient=patient,
            today=TODAY,
            conditions=[build_merged(MergedCondition, Condition(
                id="c1", source=epic, name="Hypertension", clinical_status="active",
            ))],
            immunizations=[build_merged(MergedImmunization, Immunization(
                id="i1", source=epic, vaccine_name="Influenza", occurrence_date="2024-01-01",
            ))],
        )
        gaps = detect_care_gaps(data)
        overdue_flags = [gap.is_overdue for gap in gaps]

        assert overdue_flags == sorted(overdue_flags, reverse=True)
        assert gaps[0].id == "hypertension-bp-followup"
        assert gaps[-1].id == "flu-vaccine"
