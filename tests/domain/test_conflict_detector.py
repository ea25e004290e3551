"""
Tests for cross-source conflict detection.

Covers each of the five conflict categories, the same-source suppression
rule for allergy/prescription pairs and the severity ordering.
"""

from chart_reconcile.domain.clinical_record import (
    Allergy,
    AllergyReaction,
    ClinicalCode,
    Condition,
    Dosage,
    Medication,
    SourceSnapshot,
)
from chart_reconcile.domain.enums import ConflictSeverity, ConflictType
from chart_reconcile.domain.services.conflict_detector import (
    ConflictDetector,
    detect_all_conflicts,
    detect_allergy_gap,
)
from chart_reconcile.domain.services.merge_engine import MergeEngine

SNOMED = "http://snomed.info/sct"


def _merge(*snapshots):
    return MergeEngine().merge_all(snapshots)


def _of_type(conflicts, conflict_type):
    return [c for c in conflicts if c.type == conflict_type]


class TestDoseMismatch:
    """Test dose-mismatch detection."""

    def test_different_doses_flagged_high(self, epic, community):
        """Test that a conflicting medication merge produces one high conflict."""
        result = _merge(
            SourceSnapshot(source=epic, medications=[
                Medication(id="e-m1", source=epic, status="active", name="Lisinopril",
                           dosage=Dosage(value=10, unit="mg"), dosage_instruction="10 mg daily"),
            ]),
            SourceSnapshot(source=community, medications=[
                Medication(id="c-m1", source=community, status="active", name="Lisinopril",
                           dosage=Dosage(value=20, unit="mg"), dosage_instruction="20 mg daily"),
            ]),
        )
        conflicts = ConflictDetector().detect_dose_mismatch(result)

        assert len(conflicts) == 1
        assert conflicts[0].severity == ConflictSeverity.HIGH
        assert conflicts[0].id == "conflict-dose-1"
        assert {r.resource_id for r in conflicts[0].resources} == {"e-m1", "c-m1"}
        assert "Lisinopril" in conflicts[0].description


class TestAllergyPrescription:
    """Test allergy-prescription detection."""

    def test_cross_source_prescription_flagged(self, epic, community):
        """Test that an allergy in one source and a related drug in another is critical."""
        result = _merge(
            SourceSnapshot(source=epic, allergies=[
                Allergy(id="e-a1", source=epic, substance="Penicillin", criticality="high",
                        reactions=[AllergyReaction(manifestations=["Hives"])]),
            ]),
            SourceSnapshot(source=community, medications=[
                Medication(id="c-m1", source=community, status="active", name="Amoxicillin 500 mg"),
            ]),
        )
        conflicts = ConflictDetector().detect_allergy_prescription(result)

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.severity == ConflictSeverity.CRITICAL
        assert conflict.source_a.system_id == "epic"
        assert conflict.source_b.system_id == "community-mc"
        assert "(Hives)" in conflict.description
        assert [r.resource_id for r in conflict.resources] == ["e-a1", "c-m1"]

    def test_same_source_not_flagged(self, epic):
        """Test that an allergy and a related drug from the same source are not flagged."""
        result = _merge(SourceSnapshot(
            source=epic,
            allergies=[Allergy(id="e-a1", source=epic, substance="Penicillin", criticality="high")],
            medications=[Medication(id="e-m1", source=epic, status="active", name="Amoxicillin")],
        ))
        assert ConflictDetector().detect_allergy_prescription(result) == []

    def test_inactive_medication_not_flagged(self, epic, community):
        """Test that a stopped medication is not flagged."""
        result = _merge(
            SourceSnapshot(source=epic, allergies=[
                Allergy(id="e-a1", source=epic, substance="Sulfa drugs"),
            ]),
            SourceSnapshot(source=community, medications=[
                Medication(id="c-m1", source=community, status="stopped", name="Bactrim DS"),
            ]),
        )
        assert ConflictDetector().detect_allergy_prescription(result) == []


class TestMissingCrossref:
    """Test missing-crossref detection."""

    def test_high_risk_single_source_drug(self, epic, community):
        """Test that a high-risk drug known to one source is high severity."""
        result = _merge(
            SourceSnapshot(source=epic, medications=[
                Medication(id="e-m1", source=epic, status="active", name="Warfarin 5 mg"),
            ]),
            SourceSnapshot(source=community, medications=[
                Medication(id="c-m1", source=community, status="active", name="Vitamin D3"),
            ]),
        )
        conflicts = ConflictDetector().detect_missing_crossref(result)
        by_drug = {c.resources[0].resource_id: c for c in conflicts}

        assert by_drug["e-m1"].severity == ConflictSeverity.HIGH
        assert "anticoagulant" in by_drug["e-m1"].description
        assert by_drug["e-m1"].source_b.system_id == "community-mc"
        assert by_drug["c-m1"].severity == ConflictSeverity.MEDIUM

    def test_confirmed_medication_not_flagged(self, epic, community):
        """Test that a medication known to both sources is not flagged."""
        result = _merge(
            SourceSnapshot(source=epic, medications=[
                Medication(id="e-m1", source=epic, status="active", name="Metformin"),
            ]),
            SourceSnapshot(source=community, medications=[
                Medication(id="c-m1", source=community, status="active", name="Metformin"),
            ]),
        )
        assert ConflictDetector().detect_missing_crossref(result) == []


class TestContradictoryCondition:
    """Test contradictory-condition detection."""

    def test_status_difference_flagged_medium(self, epic, community):
        """Test that active vs resolved produces one medium conflict."""
        code = [ClinicalCode(system=SNOMED, code="195967001")]
        result = _merge(
            SourceSnapshot(source=epic, conditions=[
                Condition(id="e-c1", source=epic, name="Asthma", codes=code, clinical_status="active"),
            ]),
            SourceSnapshot(source=community, conditions=[
                Condition(id="c-c1", source=community, name="Asthma", codes=code, clinical_status="resolved"),
            ]),
        )
        conflicts = ConflictDetector().detect_contradictory_condition(result)

        assert len(conflicts) == 1
        assert conflicts[0].severity == ConflictSeverity.MEDIUM


class TestAllergyGap:
    """Test allergy-gap detection."""

    def test_absence_marker_against_real_allergies(self, epic, community):
        """Test that a source saying "no allergies" is flagged against real allergies elsewhere."""
        result = _merge(
            SourceSnapshot(source=epic, allergies=[Allergy(id="e-a1", source=epic, substance="Not on File")]),
            SourceSnapshot(source=community, allergies=[
                Allergy(id="c-a1", source=community, substance="Penicillin", criticality="high"),
                Allergy(id="c-a2", source=community, substance="Latex", criticality="low"),
            ]),
        )
        conflicts = detect_allergy_gap(result)

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.id == "conflict-allergy-gap-1"
        assert conflict.severity == ConflictSeverity.CRITICAL
        assert conflict.source_a.system_id == "community-mc"
        assert conflict.source_b.system_id == "epic"
        assert "2 known allergies" in conflict.description
        assert "Penicillin (SEVERE)" in conflict.description
        assert len(conflict.resources) == 2

    def test_no_gap_without_real_allergies(self, epic, community):
        """Test that two absence markers produce no conflict."""
        result = _merge(
            SourceSnapshot(source=epic, allergies=[Allergy(id="e-a1", source=epic, substance="NKDA")]),
            SourceSnapshot(source=community, allergies=[Allergy(id="c-a1", source=community, substance="None")]),
        )
        assert detect_allergy_gap(result) == []

    def test_marker_source_with_own_allergies_not_flagged(self, epic, community):
        """Test that a source listing a marker and a real allergy has no gap."""
        result = _merge(
            SourceSnapshot(source=epic, allergies=[
                Allergy(id="e-a1", source=epic, substance="NKDA"),
                Allergy(id="e-a2", source=epic, substance="Latex", criticality="low"),
            ]),
            SourceSnapshot(source=community, allergies=[
                Allergy(id="c-a1", source=community, substance="Penicillin", criticality="high"),
            ]),
        )

        assert [s.system_id for s in result.allergy_absence_sources] == ["epic"]
        assert detect_allergy_gap(result) == []


class TestDetectAll:
    """Test the combined scan."""

    def test_end_to_end_counts_and_order(self, epic, community):
        """Test the warfarin/NKDA vs ibuprofen-allergy scenario."""
        result = _merge(
            SourceSnapshot(
                source=epic,
                medications=[Medication(id="e-m1", source=epic, status="active", name="Warfarin 5 mg")],
                allergies=[Allergy(id="e-a1", source=epic, substance="NKDA")],
            ),
            SourceSnapshot(
                source=community,
                allergies=[Allergy(id="c-a1", source=community, substance="Ibuprofen", criticality="low")],
            ),
        )
        conflicts = detect_all_conflicts(result)

        assert len(_of_type(conflicts, ConflictType.ALLERGY_GAP)) == 1
        assert len(_of_type(conflicts, ConflictType.ALLERGY_PRESCRIPTION)) == 0
        crossref = _of_type(conflicts, ConflictType.MISSING_CROSSREF)
        assert len(crossref) == 1
        assert crossref[0].severity == ConflictSeverity.HIGH
        assert conflicts[0].type == ConflictType.ALLERGY_GAP

    def test_sorted_by_severity(self, epic, community):
        """Test that conflicts are ordered critical, high, medium."""
        code = [ClinicalCode(system=SNOMED, code="195967001")]
        result = _merge(
            SourceSnapshot(
                source=epic,
                medications=[Medication(id="e-m1", source=epic, status="active", name="Amoxicillin")],
                conditions=[Condition(id="e-c1", source=epic, name="Asthma", codes=code, clinical_status="active")],
            ),
            SourceSnapshot(
                source=community,
                allergies=[Allergy(id="c-a1", source=community, substance="Penicillin", criticality="high")],
                conditions=[Condition(id="c-c1", source=community, name="Asthma", codes=code,
                                      clinical_status="inactive")],
            ),
        )
        conflicts = detect_all_conflicts(result)
        ranks = {"critical": 0, "high": 1, "medium": 2}

        severities = [ranks[c.severity.value] for c in conflicts]
        assert severities == sorted(severities)
        assert conflicts[0].type == ConflictType.ALLERGY_PRESCRIPTION

    def test_ids_restart_per_detector(self, epic, community):
        """Test that a fresh detector reproduces the same ids."""
        result = _merge(
            SourceSnapshot(source=epic, medications=[
                Medication(id="e-m1", source=epic, status="active", name="Warfarin"),
            ]),
            SourceSnapshot(source=community, allergies=[
                Allergy(id="c-a1", source=community, substance="Latex"),
            ]),
        )
        first = [c.id for c in detect_all_conflicts(result)]
        second = [c.id for c in detect_all_conflicts(result)]
        assert first == second
