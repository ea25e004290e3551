"""Multi-Source Merge Engine.

Takes one snapshot per health system and produces a single deduplicated
dataset per clinical domain, each output record carrying full provenance.

Security Impact:
    - No input record is ever silently discarded; every input id appears in
      exactly one output record's ``merged_from_ids`` (or, for within-source
      duplicate conditions, in ``MergeResult.collapsed_duplicates``)
    - When in doubt records are kept separate; a false split is safer than a
      false merge in clinical data
    - Allergy absence markers ("NKDA", "Not on File") are never merged as
      allergies; their sources are tracked for the conflict detector

Architecture:
    - Pure domain service: no I/O, no exceptions for missing data
    - Greedy pairwise matching, O(n^2) per domain; per-patient volumes are
      tens to low hundreds of records
    - Records from the same source are never merged with each other here

Matching per domain:
    Medications   -> shared code, or normalized-name heuristic
    Lab results   -> shared code AND effective dates within the lab window
    Vitals        -> same vital type AND effective dates within the lab window
    Conditions    -> shared code (after within-source SNOMED dedup)
    Allergies     -> shared code or normalized substance
    Immunizations -> (shared code or normalized name) AND dates within 30 days
    Encounters    -> no dedup
"""

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from datetime import timedelta
from typing import Optional

from chart_reconcile.domain.clinical_record import (
    Allergy,
    ClinicalCode,
    ClinicalRecord,
    Condition,
    Encounter,
    Immunization,
    LabResult,
    Medication,
    SourceSnapshot,
    SourceTag,
    Vital,
)
from chart_reconcile.domain.enums import MergeStatus
from chart_reconcile.domain.merged import (
    CollapsedDuplicate,
    MergedAllergy,
    MergedCondition,
    MergedEncounter,
    MergedImmunization,
    MergedLabResult,
    MergedMedication,
    MergedVital,
    MergeResult,
    build_merged,
)
from chart_reconcile.domain.utils import newest_first_key, parse_clinical_datetime, within_window

logger = logging.getLogger(__name__)

DEFAULT_LAB_VITAL_WINDOW = timedelta(hours=24)
DEFAULT_IMMUNIZATION_WINDOW = timedelta(days=30)

_DOSE_AMOUNT = re.compile(r"\d+(\.\d+)?\s*(mg|mcg|ml|units?|tablets?|capsules?|%)", re.IGNORECASE)
_DOSE_FORM = re.compile(r"oral|injectable|topical|tablet|capsule", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_SUBSTANCE_NOISE = re.compile(r"\s+(drug|class|allergy|intolerance|sensitivity)")
_TRAILING_PUNCT = re.compile(r"[\s.,;:]+$")

_ABSENCE_FRAGMENTS = ("not on file", "no known", "nkda", "no allergy", "no drug allergy")
_ABSENCE_EXACT = ("nka", "none", "n/a", "")

_CRITICALITY_ORDER = {"high": 0, "low": 1, "unable-to-assess": 2}


# ============================================================================
# Matching helpers
# ============================================================================

def codes_match(codes_a: Sequence[ClinicalCode], codes_b: Sequence[ClinicalCode]) -> bool:
    """True if any (system, code) pair is shared; entries missing either part are ignored."""
    keys_a = {(c.system, c.code) for c in codes_a if c.system and c.code}
    if not keys_a:
        return False
    return any((c.system, c.code) in keys_a for c in codes_b if c.system and c.code)


def normalize_text(text: Optional[str]) -> str:
    """Strip dose amounts, units and dosage-form words, collapse whitespace, lowercase."""
    if not text:
        return ""
    stripped = _DOSE_AMOUNT.sub("", text.lower())
    stripped = _DOSE_FORM.sub("", stripped)
    return _WHITESPACE.sub(" ", stripped).strip()


def medication_names_match(name_a: str, name_b: str) -> bool:
    """Same drug if normalized names are equal or share the leading significant word.

    "Metformin" matches "Metformin HCl 500 MG Oral Tablet".
    """
    a = normalize_text(name_a)
    b = normalize_text(name_b)
    if not a or not b:
        return False
    if a == b:
        return True
    words_a = [w for w in a.split(" ") if len(w) > 2]
    words_b = [w for w in b.split(" ") if len(w) > 2]
    return bool(words_a) and bool(words_b) and words_a[0] == words_b[0]


def normalize_dose_text(instruction: Optional[str]) -> str:
    """Normalize free-text dosage: case, whitespace and trailing punctuation."""
    if not instruction:
        return ""
    collapsed = _WHITESPACE.sub(" ", instruction.lower()).strip()
    return _TRAILING_PUNCT.sub("", collapsed)


def same_dose(med_a: Medication, med_b: Medication) -> bool:
    """Structured dose comparison when both sides have one, else normalized instruction text."""
    if med_a.dosage is not None and med_b.dosage is not None:
        unit_a = (med_a.dosage.unit or "").strip().lower()
        unit_b = (med_b.dosage.unit or "").strip().lower()
        return med_a.dosage.value == med_b.dosage.value and unit_a == unit_b
    return normalize_dose_text(med_a.dosage_instruction) == normalize_dose_text(med_b.dosage_instruction)


def same_vital_value(vital_a: Vital, vital_b: Vital) -> bool:
    """Compare simple values, or every component by name for compound vitals."""
    if vital_a.components and vital_b.components:
        values_a = {c.name.strip().lower(): c.value for c in vital_a.components}
        values_b = {c.name.strip().lower(): c.value for c in vital_b.components}
        return values_a == values_b
    return vital_a.value == vital_b.value


def is_allergy_absence_marker(allergy: Allergy) -> bool:
    """True when the substance text asserts "no known allergies" rather than an allergy."""
    substance = (allergy.substance or "").lower().strip()
    if substance in _ABSENCE_EXACT:
        return True
    return any(fragment in substance for fragment in _ABSENCE_FRAGMENTS)


def normalize_substance(substance: str) -> str:
    stripped = _SUBSTANCE_NOISE.sub("", substance.lower())
    return _WHITESPACE.sub(" ", stripped).strip()


def _active_first_key(status: Optional[str], name: str) -> tuple:
    return (0 if status == "active" else 1, name.lower())


# ============================================================================
# Merge engine
# ============================================================================

class MergeEngine:
    """Per-domain deduplication and reconciliation across sources.

    The engine is stateless between calls; windows are fixed at construction.
    """

    def __init__(
        self,
        lab_vital_window: timedelta = DEFAULT_LAB_VITAL_WINDOW,
        immunization_window: timedelta = DEFAULT_IMMUNIZATION_WINDOW,
    ):
        """Initialize merge engine.

        Parameters:
            lab_vital_window: Maximum distance between effective dates for
                lab results and vitals to be considered the same observation
            immunization_window: Maximum distance between administration dates
                for immunizations to be considered the same dose
        """
        self.lab_vital_window = lab_vital_window
        self.immunization_window = immunization_window

    @staticmethod
    def _pair_greedily(
        records: Sequence[ClinicalRecord],
        is_same: Callable[[ClinicalRecord, ClinicalRecord], bool],
    ) -> list[tuple[ClinicalRecord, Optional[ClinicalRecord]]]:
        """Greedy pairwise matching over not-yet-consumed records.

        For each unconsumed record A, the first later unconsumed record B from a
        different source for which ``is_same(A, B)`` holds is consumed with it.

        Returns:
            (A, B) pairs in input order; B is None when A matched nothing
        """
        used: set[int] = set()
        pairs: list[tuple[ClinicalRecord, Optional[ClinicalRecord]]] = []
        for i, record_a in enumerate(records):
            if i in used:
                continue
            partner = None
            for j in range(i + 1, len(records)):
                if j in used:
                    continue
                record_b = records[j]
                if record_a.source.system_id == record_b.source.system_id:
                    continue
                if is_same(record_a, record_b):
                    used.add(j)
                    partner = record_b
                    break
            pairs.append((record_a, partner))
        return pairs

    # ------------------------------------------------------------------
    # Domains
    # ------------------------------------------------------------------

    def merge_medications(self, medications: Sequence[Medication]) -> list[MergedMedication]:
        """Match by code or name; same dose -> confirmed, otherwise conflict."""
        merged: list[MergedMedication] = []
        pairs = self._pair_greedily(
            medications,
            lambda a, b: codes_match(a.codes, b.codes) or medication_names_match(a.name, b.name),
        )
        for med_a, med_b in pairs:
            if med_b is None:
                merged.append(build_merged(MergedMedication, med_a))
                continue
            status = MergeStatus.CONFIRMED if same_dose(med_a, med_b) else MergeStatus.CONFLICT
            merged.append(build_merged(MergedMedication, med_a, status, (med_a, med_b)))

        merged.sort(key=lambda m: _active_first_key(m.status, m.name))
        return merged

    def merge_lab_results(self, lab_results: Sequence[LabResult]) -> list[MergedLabResult]:
        """Match by code within the window; divergent values are kept as two records."""
        merged: list[MergedLabResult] = []
        pairs = self._pair_greedily(
            lab_results,
            lambda a, b: codes_match(a.codes, b.codes)
            and within_window(a.effective_date, b.effective_date, self.lab_vital_window),
        )
        for lab_a, lab_b in pairs:
            if lab_b is None:
                merged.append(build_merged(MergedLabResult, lab_a))
            elif lab_a.value == lab_b.value:
                merged.append(build_merged(MergedLabResult, lab_a, MergeStatus.CONFIRMED, (lab_a, lab_b)))
            else:
                merged.append(build_merged(MergedLabResult, lab_a))
                merged.append(build_merged(MergedLabResult, lab_b))

        merged.sort(key=lambda r: newest_first_key(r.effective_date))
        return merged

    def merge_vitals(self, vitals: Sequence[Vital]) -> list[MergedVital]:
        """Match by vital type within the window; divergent values are kept as two records."""
        merged: list[MergedVital] = []
        pairs = self._pair_greedily(
            vitals,
            lambda a, b: a.vital_type == b.vital_type
            and within_window(a.effective_date, b.effective_date, self.lab_vital_window),
        )
        for vital_a, vital_b in pairs:
            if vital_b is None:
                merged.append(build_merged(MergedVital, vital_a))
            elif same_vital_value(vital_a, vital_b):
                merged.append(build_merged(MergedVital, vital_a, MergeStatus.CONFIRMED, (vital_a, vital_b)))
            else:
                merged.append(build_merged(MergedVital, vital_a))
                merged.append(build_merged(MergedVital, vital_b))

        merged.sort(key=lambda v: newest_first_key(v.effective_date))
        return merged

    @staticmethod
    def collapse_condition_duplicates(
        conditions: Sequence[Condition],
    ) -> tuple[list[Condition], list[CollapsedDuplicate]]:
        """Fold conditions repeated within one source (same SNOMED code) into the first occurrence."""
        kept: list[Condition] = []
        collapsed: list[CollapsedDuplicate] = []
        first_by_key: dict[tuple[str, str], Condition] = {}
        for condition in conditions:
            snomed = condition.code_for_system("snomed")
            if snomed:
                key = (condition.source.system_id, snomed)
                first = first_by_key.get(key)
                if first is not None:
                    collapsed.append(CollapsedDuplicate(
                        source=condition.source, record_id=condition.id, kept_id=first.id,
                    ))
                    continue
                first_by_key[key] = condition
            kept.append(condition)
        return kept, collapsed

    def merge_conditions(
        self, conditions: Sequence[Condition]
    ) -> tuple[list[MergedCondition], list[CollapsedDuplicate]]:
        """Match by code; differing clinical status -> conflict.

        The record with the more recent recorded (or onset) date becomes the
        representative of a merged pair.
        """
        deduped, collapsed = self.collapse_condition_duplicates(conditions)
        merged: list[MergedCondition] = []
        pairs = self._pair_greedily(deduped, lambda a, b: codes_match(a.codes, b.codes))
        for cond_a, cond_b in pairs:
            if cond_b is None:
                merged.append(build_merged(MergedCondition, cond_a))
                continue
            status = (
                MergeStatus.CONFIRMED
                if cond_a.clinical_status == cond_b.clinical_status
                else MergeStatus.CONFLICT
            )
            date_a = parse_clinical_datetime(cond_a.reference_date)
            date_b = parse_clinical_datetime(cond_b.reference_date)
            representative = cond_b if date_a and date_b and date_b > date_a else cond_a
            merged.append(build_merged(MergedCondition, representative, status, (cond_a, cond_b)))

        merged.sort(key=lambda c: _active_first_key(c.clinical_status, c.name))
        return merged, collapsed

    def merge_allergies(
        self, allergies: Sequence[Allergy]
    ) -> tuple[list[MergedAllergy], list[SourceTag]]:
        """Separate absence markers, then match real allergies by code or substance.

        Returns:
            (merged allergies, absence-marker sources, one entry per source)
        """
        real: list[Allergy] = []
        absence_sources: list[SourceTag] = []
        for allergy in allergies:
            if is_allergy_absence_marker(allergy):
                if all(s.system_id != allergy.source.system_id for s in absence_sources):
                    absence_sources.append(allergy.source)
            else:
                real.append(allergy)

        merged: list[MergedAllergy] = []
        pairs = self._pair_greedily(
            real,
            lambda a, b: codes_match(a.codes, b.codes)
            or normalize_substance(a.substance) == normalize_substance(b.substance),
        )
        for allergy_a, allergy_b in pairs:
            if allergy_b is None:
                merged.append(build_merged(MergedAllergy, allergy_a))
            else:
                merged.append(build_merged(
                    MergedAllergy, allergy_a, MergeStatus.CONFIRMED, (allergy_a, allergy_b)
                ))

        merged.sort(key=lambda a: (_CRITICALITY_ORDER.get(a.criticality or "", 3), a.substance.lower()))
        return merged, absence_sources

    def merge_immunizations(self, immunizations: Sequence[Immunization]) -> list[MergedImmunization]:
        """Match by code or name within the immunization window; matches are confirmed."""
        merged: list[MergedImmunization] = []
        pairs = self._pair_greedily(
            immunizations,
            lambda a, b: (
                codes_match(a.codes, b.codes)
                or normalize_text(a.vaccine_name) == normalize_text(b.vaccine_name)
            )
            and within_window(a.occurrence_date, b.occurrence_date, self.immunization_window),
        )
        for imm_a, imm_b in pairs:
            if imm_b is None:
                merged.append(build_merged(MergedImmunization, imm_a))
            else:
                merged.append(build_merged(
                    MergedImmunization, imm_a, MergeStatus.CONFIRMED, (imm_a, imm_b)
                ))

        merged.sort(key=lambda i: newest_first_key(i.occurrence_date))
        return merged

    def merge_encounters(self, encounters: Sequence[Encounter]) -> list[MergedEncounter]:
        """No deduplication: every encounter is kept as single-source."""
        merged = [build_merged(MergedEncounter, encounter) for encounter in encounters]
        merged.sort(key=lambda e: newest_first_key(e.period_start))
        return merged

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def merge_all(self, snapshots: Iterable[SourceSnapshot]) -> MergeResult:
        """Merge every domain across the given source snapshots.

        Parameters:
            snapshots: One snapshot per included source, in priority order
                (primary first)

        Returns:
            MergeResult: Seven merged domain lists, the allergy-absence sources
            and any collapsed within-source duplicates
        """
        snapshots = list(snapshots)

        def flatten(domain: str) -> list:
            return [record for snapshot in snapshots for record in getattr(snapshot, domain)]

        allergies, absence_sources = self.merge_allergies(flatten("allergies"))
        conditions, collapsed = self.merge_conditions(flatten("conditions"))

        result = MergeResult(
            medications=self.merge_medications(flatten("medications")),
            lab_results=self.merge_lab_results(flatten("lab_results")),
            vitals=self.merge_vitals(flatten("vitals")),
            allergies=allergies,
            conditions=conditions,
            immunizations=self.merge_immunizations(flatten("immunizations")),
            encounters=self.merge_encounters(flatten("encounters")),
            allergy_absence_sources=absence_sources,
            collapsed_duplicates=collapsed,
        )

        total_input = sum(s.record_count for s in snapshots)
        logger.info(
            "Merge complete: %d input records from %d sources -> %d output records "
            "(%d confirmed, %d conflict, %d collapsed duplicates, %d allergy-absence sources)",
            total_input, len(snapshots), result.total_records,
            result.count_by_status(MergeStatus.CONFIRMED),
            result.count_by_status(MergeStatus.CONFLICT),
            len(collapsed), len(absence_sources),
        )
        return result


def merge_all_domains(
    snapshots: Iterable[SourceSnapshot],
    lab_vital_window: timedelta = DEFAULT_LAB_VITAL_WINDOW,
    immunization_window: timedelta = DEFAULT_IMMUNIZATION_WINDOW,
) -> MergeResult:
    """Convenience wrapper around ``MergeEngine(...).merge_all``."""
    return MergeEngine(lab_vital_window, immunization_window).merge_all(snapshots)
