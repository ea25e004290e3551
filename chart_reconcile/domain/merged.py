"""Merged Record Definitions - Provenance-carrying merge engine output.

Every record leaving the merge engine carries its audit trail: the sources
that contributed it, how it was produced, and the source-local ids it was
built from. The trail is validated on construction; a malformed trail is a
programmer error and fails loudly with ``pydantic.ValidationError``.

Security Impact:
    - Provenance is never dropped or summarized; every output fact traces back
      to the exact source records it came from
    - Same-source duplicates can never be represented as one merged record

Architecture:
    - Merged* types extend the per-domain record with ``MergeMetadata``
    - Models are frozen (immutable)
"""

from typing import Any, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chart_reconcile.domain.clinical_record import (
    Allergy,
    ClinicalRecord,
    Condition,
    Encounter,
    Immunization,
    LabResult,
    Medication,
    SourceTag,
    Vital,
)
from chart_reconcile.domain.enums import MergeStatus


class MergeMetadata(BaseModel):
    """Audit trail attached to every merged record.

    Parameters:
        all_sources: Every contributing source, exactly once each
        merge_status: single-source, confirmed or conflict
        merged_from_ids: One source-local record id per contributing source,
            in the same order as ``all_sources``

    Raises:
        pydantic.ValidationError: If the trail is empty, misaligned, lists a
            source twice, or disagrees with the merge status
    """

    model_config = ConfigDict(frozen=True)

    all_sources: list[SourceTag] = Field(..., description="Contributing sources")
    merge_status: MergeStatus = Field(..., description="How the record was produced")
    merged_from_ids: list[str] = Field(..., description="Originating source-local ids")

    @model_validator(mode="after")
    def check_provenance(self):
        if not self.all_sources:
            raise ValueError("all_sources must not be empty")
        if len(self.merged_from_ids) != len(self.all_sources):
            raise ValueError(
                f"merged_from_ids has {len(self.merged_from_ids)} entries "
                f"but all_sources has {len(self.all_sources)}"
            )
        system_ids = [s.system_id for s in self.all_sources]
        if len(set(system_ids)) != len(system_ids):
            raise ValueError(f"Duplicate source in all_sources: {system_ids}")
        if self.merge_status == MergeStatus.SINGLE_SOURCE and len(system_ids) != 1:
            raise ValueError("single-source records must have exactly one source")
        if self.merge_status != MergeStatus.SINGLE_SOURCE and len(system_ids) < 2:
            raise ValueError(f"{self.merge_status.value} records need at least two sources")
        return self

    @property
    def source_names(self) -> list[str]:
        return [s.system_name for s in self.all_sources]


class MergedMedication(Medication, MergeMetadata):
    pass


class MergedLabResult(LabResult, MergeMetadata):
    pass


class MergedVital(Vital, MergeMetadata):
    pass


class MergedAllergy(Allergy, MergeMetadata):
    pass


class MergedCondition(Condition, MergeMetadata):
    pass


class MergedImmunization(Immunization, MergeMetadata):
    pass


class MergedEncounter(Encounter, MergeMetadata):
    pass


M = TypeVar("M", bound=MergeMetadata)


def build_merged(
    merged_cls: Type[M],
    representative: ClinicalRecord,
    status: MergeStatus = MergeStatus.SINGLE_SOURCE,
    contributors: Optional[Sequence[ClinicalRecord]] = None,
) -> M:
    """Construct a merged record from a representative and its contributors.

    The representative's clinical fields are kept; provenance lists every
    contributor in the order given.

    Parameters:
        merged_cls: Target Merged* class
        representative: Record whose clinical fields become the merged record's fields
        status: Merge status to assign
        contributors: Every contributing record, representative included;
            defaults to the representative alone

    Returns:
        The validated merged record
    """
    contributors = tuple(contributors) if contributors else (representative,)
    fields: dict[str, Any] = {
        name: value for name, value in representative if name not in MergeMetadata.model_fields
    }
    return merged_cls(
        **fields,
        all_sources=[r.source for r in contributors],
        merge_status=status,
        merged_from_ids=[r.id for r in contributors],
    )


class CollapsedDuplicate(BaseModel):
    """A record folded into an earlier record from the same source.

    Conditions repeated within one source (same SNOMED code) are collapsed
    before cross-source matching. The folded record is listed here so the
    audit trail still accounts for it.
    """

    model_config = ConfigDict(frozen=True)

    source: SourceTag
    record_id: str
    kept_id: str


class MergeResult(BaseModel):
    """Unified output of the merge engine for one pipeline run."""

    model_config = ConfigDict(frozen=True)

    medications: list[MergedMedication] = Field(default_factory=list)
    lab_results: list[MergedLabResult] = Field(default_factory=list)
    vitals: list[MergedVital] = Field(default_factory=list)
    allergies: list[MergedAllergy] = Field(default_factory=list)
    conditions: list[MergedCondition] = Field(default_factory=list)
    immunizations: list[MergedImmunization] = Field(default_factory=list)
    encounters: list[MergedEncounter] = Field(default_factory=list)
    allergy_absence_sources: list[SourceTag] = Field(
        default_factory=list,
        description=(
            "Sources that reported an allergy absence marker; a source listed here may also "
            "have reported real allergies"
        ),
    )
    collapsed_duplicates: list[CollapsedDuplicate] = Field(
        default_factory=list,
        description="Within-source duplicate conditions folded into a kept record",
    )

    def domains(self) -> dict[str, list]:
        return {
            "medications": self.medications,
            "lab_results": self.lab_results,
            "vitals": self.vitals,
            "allergies": self.allergies,
            "conditions": self.conditions,
            "immunizations": self.immunizations,
            "encounters": self.encounters,
        }

    @property
    def total_records(self) -> int:
        return sum(len(v) for v in self.domains().values())

    def count_by_status(self, status: MergeStatus) -> int:
        return sum(
            1 for records in self.domains().values() for r in records if r.merge_status == status
        )
