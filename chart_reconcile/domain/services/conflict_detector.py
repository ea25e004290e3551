"""Cross-Source Conflict Detector.

Scans merge-engine output for safety-relevant disagreements between health
systems and returns one severity-ranked list.

Conflict types:
    1. dose-mismatch            same drug, different doses              (high)
    2. allergy-prescription     allergy in A, related drug active in B  (critical)
    3. missing-crossref         active drug known to one source only    (high/medium)
    4. contradictory-condition  same condition, different status        (medium)
    5. allergy-gap              real allergies in A, absence marker in B (critical)

Security Impact:
    - Over-alerting is the policy: a false positive can be dismissed by a
      reviewer, a missed critical conflict cannot
    - Same-source allergy/medication pairs are not flagged; the source's own
      system is assumed to reconcile them

Architecture:
    - Pure domain service; ids come from an injected SequentialIdGenerator
      so identical input yields identical ids
"""

import logging
from collections import Counter
from typing import Optional

from chart_reconcile.domain.clinical_record import SourceTag
from chart_reconcile.domain.conflicts import Conflict, ConflictResource
from chart_reconcile.domain.enums import (
    CONFLICT_SEVERITY_ORDER,
    CONFLICT_TYPE_ORDER,
    ConflictSeverity,
    ConflictType,
    MergeStatus,
    ResourceType,
)
from chart_reconcile.domain.merged import MergeResult
from chart_reconcile.domain.reference_data import (
    DRUG_ALLERGY_CROSSREF,
    CrossReactivityClass,
    high_risk_reason,
)
from chart_reconcile.domain.utils import SequentialIdGenerator

logger = logging.getLogger(__name__)


def _unique_sources(tags) -> dict[str, SourceTag]:
    """Map system_id -> first SourceTag seen, preserving first-seen order."""
    unique: dict[str, SourceTag] = {}
    for tag in tags:
        unique.setdefault(tag.system_id, tag)
    return unique


class ConflictDetector:
    """Detects the five conflict categories over one MergeResult.

    Parameters:
        crossref: Drug-allergy cross-reactivity table to evaluate
        id_generator: Identifier source; a fresh one is created when omitted
    """

    def __init__(
        self,
        crossref: tuple[CrossReactivityClass, ...] = DRUG_ALLERGY_CROSSREF,
        id_generator: Optional[SequentialIdGenerator] = None,
    ):
        self.crossref = crossref
        self.ids = id_generator or SequentialIdGenerator("conflict")

    # ------------------------------------------------------------------
    # dose-mismatch
    # ------------------------------------------------------------------

    def detect_dose_mismatch(self, merge_result: MergeResult) -> list[Conflict]:
        conflicts = []
        for med in merge_result.medications:
            if med.merge_status != MergeStatus.CONFLICT:
                continue
            names = " and ".join(med.source_names)
            conflicts.append(Conflict(
                id=self.ids.next("dose"),
                type=ConflictType.DOSE_MISMATCH,
                severity=ConflictSeverity.HIGH,
                description=(
                    f"{med.name} is prescribed at different doses by {names}. "
                    f"Patient may be confused about the correct dose. "
                    f'Dosage: "{med.dosage_instruction or "unknown"}"; verify with both providers.'
                ),
                resources=[
                    ConflictResource(
                        resource_type=ResourceType.MEDICATION,
                        resource_id=record_id,
                        display=med.name,
                        source=source,
                    )
                    for source, record_id in zip(med.all_sources, med.merged_from_ids)
                ],
                source_a=med.all_sources[0],
                source_b=med.all_sources[1],
            ))
        return conflicts

    # ------------------------------------------------------------------
    # allergy-prescription
    # ------------------------------------------------------------------

    def detect_allergy_prescription(self, merge_result: MergeResult) -> list[Conflict]:
        """Flag active medications related to a known allergy and prescribed by another source.

        A medication is flagged when at least one of its sources did not also
        report the allergy; that source is named as the prescribing side.
        """
        conflicts = []
        for allergy in merge_result.allergies:
            allergy_systems = {s.system_id for s in allergy.all_sources}
            reaction = allergy.first_manifestation
            for drug_class in self.crossref:
                if not drug_class.applies_to(allergy.substance):
                    continue
                for med in merge_result.medications:
                    if med.status != "active":
                        continue
                    prescribing = [s for s in med.all_sources if s.system_id not in allergy_systems]
                    if not prescribing:
                        continue
                    if not drug_class.matches_drug(med.name):
                        continue
                    prescriber = prescribing[0]
                    med_record_id = med.merged_from_ids[med.all_sources.index(prescriber)]
                    reaction_text = f" ({reaction})" if reaction else ""
                    conflicts.append(Conflict(
                        id=self.ids.next("allergy-rx"),
                        type=ConflictType.ALLERGY_PRESCRIPTION,
                        severity=ConflictSeverity.CRITICAL,
                        description=(
                            f"CRITICAL SAFETY ALERT: {allergy.source.system_name} records "
                            f"{allergy.criticality or 'unspecified'}-criticality {allergy.substance} "
                            f"allergy{reaction_text}, but {prescriber.system_name} has prescribed "
                            f"{med.name}. {drug_class.allergen}-class drug prescribed without "
                            f"knowledge of allergy."
                        ),
                        resources=[
                            ConflictResource(
                                resource_type=ResourceType.ALLERGY,
                                resource_id=allergy.id,
                                display=(
                                    f"{allergy.substance} allergy "
                                    f"({allergy.criticality or 'unspecified'} criticality)"
                                ),
                                source=allergy.source,
                            ),
                            ConflictResource(
                                resource_type=ResourceType.MEDICATION,
                                resource_id=med_record_id,
                                display=med.name,
                                source=prescriber,
                            ),
                        ],
                        source_a=allergy.source,
                        source_b=prescriber,
                    ))
        return conflicts

    # ------------------------------------------------------------------
    # missing-crossref
    # ------------------------------------------------------------------

    def detect_missing_crossref(self, merge_result: MergeResult) -> list[Conflict]:
        """Flag active single-source medications; high severity for high-risk drugs.

        The unaware side is every other source that contributed any record to
        the run, in any domain.
        """
        known_sources = _unique_sources(
            [tag for records in merge_result.domains().values() for r in records for tag in r.all_sources]
            + list(merge_result.allergy_absence_sources)
        )
        conflicts = []
        for med in merge_result.medications:
            if med.merge_status != MergeStatus.SINGLE_SOURCE or med.status != "active":
                continue

            others = [s for sid, s in known_sources.items() if sid != med.source.system_id]
            other_names = ", ".join(s.system_name for s in others) or "other systems"
            verb = "is" if len(others) == 1 else "are"
            reason = high_risk_reason(med.name)

            if reason:
                severity = ConflictSeverity.HIGH
                description = (
                    f"{med.name} ({reason}) is only recorded at {med.source.system_name}. "
                    f"{other_names} {verb} unaware of this medication and may prescribe "
                    f"interacting drugs or perform procedures without accounting for it."
                )
            else:
                severity = ConflictSeverity.MEDIUM
                description = (
                    f"{med.name} is only recorded at {med.source.system_name}. "
                    f"{other_names} {verb} unaware of this active medication."
                )

            conflicts.append(Conflict(
                id=self.ids.next("crossref"),
                type=ConflictType.MISSING_CROSSREF,
                severity=severity,
                description=description,
                resources=[ConflictResource(
                    resource_type=ResourceType.MEDICATION,
                    resource_id=med.id,
                    display=f"{med.name} ({med.status})",
                    source=med.source,
                )],
                source_a=med.source,
                source_b=others[0] if others else med.source,
            ))
        return conflicts

    # ------------------------------------------------------------------
    # contradictory-condition
    # ------------------------------------------------------------------

    def detect_contradictory_condition(self, merge_result: MergeResult) -> list[Conflict]:
        conflicts = []
        for condition in merge_result.conditions:
            if condition.merge_status != MergeStatus.CONFLICT:
                continue
            conflicts.append(Conflict(
                id=self.ids.next("condition"),
                type=ConflictType.CONTRADICTORY_CONDITION,
                severity=ConflictSeverity.MEDIUM,
                description=(
                    f"{condition.name} has different clinical status across systems. "
                    f"One system may have it as active while another shows it as resolved. "
                    f"Verify current status with the patient's care team."
                ),
                resources=[
                    ConflictResource(
                        resource_type=ResourceType.CONDITION,
                        resource_id=record_id,
                        display=condition.name,
                        source=source,
                    )
                    for source, record_id in zip(condition.all_sources, condition.merged_from_ids)
                ],
                source_a=condition.all_sources[0],
                source_b=condition.all_sources[1],
            ))
        return conflicts

    # ------------------------------------------------------------------
    # allergy-gap
    # ------------------------------------------------------------------

    def detect_allergy_gap(self, merge_result: MergeResult) -> list[Conflict]:
        """One critical conflict per source that reported only an allergy absence marker."""
        allergies = merge_result.allergies
        if not allergies or not merge_result.allergy_absence_sources:
            return []

        allergy_sources = _unique_sources(tag for a in allergies for tag in a.all_sources)
        holder = next(iter(allergy_sources.values()))

        summaries = []
        for allergy in allergies:
            severity = "SEVERE" if allergy.criticality == "high" else (allergy.criticality or "unspecified")
            reaction = allergy.first_manifestation
            summaries.append(f"{allergy.substance} ({severity}{', ' + reaction if reaction else ''})")
        allergy_list = ", ".join(summaries)
        count = len(allergies)
        noun = "allergy" if count == 1 else "allergies"

        conflicts = []
        for absent in merge_result.allergy_absence_sources:
            if absent.system_id in allergy_sources:
                continue
            conflicts.append(Conflict(
                id=self.ids.next("allergy-gap"),
                type=ConflictType.ALLERGY_GAP,
                severity=ConflictSeverity.CRITICAL,
                description=(
                    f'CRITICAL SAFETY GAP: {absent.system_name} records NO allergies ("Not on File"), '
                    f"but {holder.system_name} has {count} known {noun}: {allergy_list}. "
                    f"Providers using {absent.system_name} alone would prescribe without "
                    f"knowledge of these allergies."
                ),
                resources=[
                    ConflictResource(
                        resource_type=ResourceType.ALLERGY,
                        resource_id=allergy.id,
                        display=f"{allergy.substance} ({allergy.criticality or 'unspecified'})",
                        source=allergy.source,
                    )
                    for allergy in allergies
                ],
                source_a=holder,
                source_b=absent,
            ))
        return conflicts

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def detect_all(self, merge_result: MergeResult) -> list[Conflict]:
        """Run every detector and return conflicts sorted by severity, then type.

        Parameters:
            merge_result: Output of the merge engine

        Returns:
            list[Conflict]: critical first, then high, then medium; within a
            severity ordered allergy-gap, allergy-prescription, dose-mismatch,
            missing-crossref, contradictory-condition
        """
        conflicts = (
            self.detect_allergy_gap(merge_result)
            + self.detect_allergy_prescription(merge_result)
            + self.detect_dose_mismatch(merge_result)
            + self.detect_missing_crossref(merge_result)
            + self.detect_contradictory_condition(merge_result)
        )
        conflicts.sort(key=lambda c: (CONFLICT_SEVERITY_ORDER[c.severity], CONFLICT_TYPE_ORDER[c.type]))

        by_severity = Counter(c.severity.value for c in conflicts)
        logger.info(
            "Conflict scan complete: %d conflicts (critical=%d, high=%d, medium=%d)",
            len(conflicts), by_severity["critical"], by_severity["high"], by_severity["medium"],
        )
        for conflict in conflicts:
            logger.debug("[%s/%s] %s", conflict.severity.value, conflict.type.value, conflict.description[:120])
        return conflicts


def detect_all_conflicts(
    merge_result: MergeResult,
    id_generator: Optional[SequentialIdGenerator] = None,
) -> list[Conflict]:
    """Detect all conflicts with a fresh (or injected) id generator."""
    return ConflictDetector(id_generator=id_generator).detect_all(merge_result)


def detect_allergy_gap(merge_result: MergeResult) -> list[Conflict]:
    """Detect allergy-gap conflicts only."""
    return ConflictDetector().detect_allergy_gap(merge_result)
