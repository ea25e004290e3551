"""
Tests for vital-sign / medication correlations.
"""

from chart_reconcile.domain.clinical_record import Condition, Medication, Vital, VitalComponent
from chart_reconcile.domain.enums import CorrelationType, Priority, VitalType
from chart_reconcile.domain.merged import MergedCondition, MergedMedication, MergedVital, build_merged
from chart_reconcile.domain.rules.vital_correlations import (
    detect_bmi_risk,
    detect_vital_correlations,
    latest_vitals_by_type,
)


def _bp(source, record_id, systolic, diastolic, date="2024-05-01"):
    return build_merged(MergedVital, Vital(
        id=record_id, source=source, name="Blood Pressure", vital_type="blood-pressure",
        effective_date=date,
        components=[
            VitalComponent(name="Systolic blood pressure", value=systolic),
            VitalComponent(name="Diastolic blood pressure", value=diastolic),
        ],
    ))


def _vital(source, record_id, vital_type, value, name="Vital", date="2024-05-01"):
    return build_merged(MergedVital, Vital(
        id=record_id, source=source, name=name, vital_type=vital_type, value=value, effective_date=date,
    ))


def _med(source, record_id, name, status="active"):
    return build_merged(MergedMedication, Medication(id=record_id, source=source, name=name, status=status))


def _condition(source, name, status="active"):
    return build_merged(MergedCondition, Condition(id="c1", source=source, name=name, clinical_status=status))


class TestLatestVitals:
    """Test latest-per-type selection."""

    def test_most_recent_wins(self, epic):
        """Test that the newest reading per type is selected."""
        latest = latest_vitals_by_type([
            _bp(epic, "v-old", 150, 95, "2023-01-01"),
            _bp(epic, "v-new", 128, 78, "2024-05-01"),
            _vital(epic, "v-hr", "heart-rate", 72),
        ])

        assert latest[VitalType.BLOOD_PRESSURE].id == "v-new"
        assert latest[VitalType.HEART_RATE].id == "v-hr"


class TestDetectVitalCorrelations:
    """Test medication correlations."""

    def test_controlled_blood_pressure(self, epic, community):
        """Test the well-controlled message for a reading under target."""
        correlations = detect_vital_correlations(
            [_bp(epic, "v1", 130, 80)], [_med(community, "m1", "Lisinopril 10 mg")], [],
        )

        assert len(correlations) == 1
        correlation = correlations[0]
        assert correlation.id == "vc-1"
        assert correlation.correlation_type == CorrelationType.EFFECTIVENESS
        assert correlation.significance == Priority.HIGH
        assert correlation.message == (
            "Your blood pressure (130/80) appears well-controlled while taking Lisinopril 10 mg."
        )
        assert "Epic MyHealth" in correlation.detail
        assert "Community Medical Center" in correlation.detail

    def test_elevated_blood_pressure(self, epic):
        """Test the elevated message and the exceeds-target detail."""
        correlations = detect_vital_correlations([_bp(epic, "v1", 152, 92)], [_med(epic, "m1", "Amlodipine")], [])

        assert "may still be elevated" in correlations[0].message
        assert correlations[0].detail.endswith("Current reading exceeds target.")

    def test_beta_blocker_low_heart_rate(self, epic):
        """Test that a beta-blocker correlates with both BP and heart rate."""
        correlations = detect_vital_correlations(
            [_bp(epic, "v1", 120, 70), _vital(epic, "v2", "heart-rate", 55, name="Heart rate")],
            [_med(epic, "m1", "Metoprolol succinate 25 mg")],
            [],
        )
        by_type = {c.correlation_type: c for c in correlations}

        assert len(correlations) == 2
        assert correlations[0].significance == Priority.HIGH
        assert "on the lower side" in by_type[CorrelationType.EXPECTED_EFFECT].message

    def test_inactive_medication_ignored(self, epic):
        """Test that a stopped medication produces no correlation."""
        correlations = detect_vital_correlations(
            [_vital(epic, "v1", "heart-rate", 110)], [_med(epic, "m1", "Albuterol", status="stopped")], [],
        )
        assert correlations == []

    def test_weight_and_stimulant(self, epic):
        """Test side-effect correlations for weight and heart rate."""
        correlations = detect_vital_correlations(
            [_vital(epic, "v1", "body-weight", 82), _vital(epic, "v2", "heart-rate", 110)],
            [_med(epic, "m1", "Prednisone 10 mg"), _med(epic, "m2", "Albuterol inhaler")],
            [],
        )
        messages = [c.message for c in correlations]

        assert len(correlations) == 2
        assert any("weight changes" in m for m in messages)
        assert any("heart rate (110 bpm) is elevated" in m for m in messages)


class TestBmiRisk:
    """Test the BMI risk-factor check."""

    def test_overweight_with_diabetes(self, epic):
        """Test that BMI 27 with active diabetes is flagged."""
        risk = detect_bmi_risk(
            [_vital(epic, "v1", "bmi", 27.4, name="BMI")], [_condition(epic, "Type 2 diabetes")],
        )

        assert risk.id == "bmi-glucose-risk"
        assert risk.medication_name == "Diabetes diagnosis"
        assert "overweight range" in risk.message
        assert risk.significance == Priority.HIGH

    def test_overweight_without_diabetes_not_flagged(self, epic):
        """Test that BMI 27 alone is not flagged."""
        assert detect_bmi_risk([_vital(epic, "v1", "bmi", 27.4)], []) is None

    def test_obese_alone_flagged(self, epic):
        """Test that BMI 31 alone is flagged as obese."""
        risk = detect_bmi_risk([_vital(epic, "v1", "bmi", 31)], [_condition(epic, "Diabetes", status="resolved")])

        assert risk.medication_name == "Elevated BMI"
        assert "obese range" in risk.message

    def test_included_in_correlations(self, epic):
        """Test that the BMI risk is appended to the correlation list."""
        correlations = detect_vital_correlations([_vital(epic, "v1", "bmi", 33)], [], [])
        assert [c.id for c in correlations] == ["bmi-glucose-risk"]
