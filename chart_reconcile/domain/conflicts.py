"""Conflict Model - Clinically meaningful disagreements between sources.

A conflict is a derived fact, not a clinical fact. Conflicts are regenerated
on every pipeline run and carry only a per-run sequential identifier.

Architecture:
    - Pure domain models, frozen
    - Produced by the conflict detector, consumed by the source-conflict
      alert translator, the report generator and the CLI
"""

from pydantic import BaseModel, ConfigDict, Field

from chart_reconcile.domain.clinical_record import SourceTag
from chart_reconcile.domain.enums import ConflictSeverity, ConflictType, ResourceType


class ConflictResource(BaseModel):
    """A specific record involved in a conflict."""

    model_config = ConfigDict(frozen=True)

    resource_type: ResourceType = Field(..., description="Domain of the record")
    resource_id: str = Field(..., description="Source-local record id")
    display: str = Field(..., description="Human-readable label")
    source: SourceTag = Field(..., description="Source system of the record")


class Conflict(BaseModel):
    """A severity-ranked disagreement between two sources.

    Parameters:
        id: Per-run identifier such as ``conflict-dose-1``
        type: Kind of disagreement
        severity: critical, high or medium
        description: Clinician-facing explanation
        resources: Records that produced the conflict
        source_a: Source holding the data (first side)
        source_b: Source disagreeing with or unaware of it (second side)
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Per-run conflict identifier")
    type: ConflictType = Field(..., description="Conflict category")
    severity: ConflictSeverity = Field(..., description="Clinical severity")
    description: str = Field(..., description="Human-readable explanation")
    resources: list[ConflictResource] = Field(..., min_length=1, description="Involved records")
    source_a: SourceTag = Field(..., description="First source")
    source_b: SourceTag = Field(..., description="Second source")

    def first_resource_of(self, resource_type: ResourceType):
        for resource in self.resources:
            if resource.resource_type == resource_type:
                return resource
        return None
