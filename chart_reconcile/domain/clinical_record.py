"""Clinical Record Schema Definitions.

This module defines the common per-domain record shapes that every source is
parsed into before reconciliation: medications, lab results, vitals, allergies,
conditions, immunizations and encounters, plus the provenance tag and the
demographics used for patient matching.

Every record is an immutable fact reported by exactly one source at fetch
time. A new fetch produces a new generation of records; nothing here is ever
mutated in place.

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Models are frozen (immutable) and validated on construction via Pydantic V2
    - Dates are kept as the source's raw ISO-8601 strings and parsed on demand,
      so a record with a missing or malformed date is still accepted
"""

from datetime import date, datetime, timezone
from typing import ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from chart_reconcile.domain.enums import VitalType
from chart_reconcile.domain.utils import coerce_date_text, parse_clinical_datetime

_TEXT_ANNOTATIONS = (str, Optional[str])


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SourceTag(BaseModel):
    """Provenance tag attached to every clinical record.

    Parameters:
        system_name: Display name of the health system (e.g. "Community Medical Center")
        system_id: Machine identifier of the health system (e.g. "community-mc")
        fetched_at: When this generation of records was fetched
    """

    model_config = ConfigDict(frozen=True)

    system_name: str = Field(..., description="Display name of the source system")
    system_id: str = Field(..., min_length=1, description="Machine identifier of the source system")
    fetched_at: datetime = Field(default_factory=_utc_now, description="Fetch timestamp")


class ClinicalCode(BaseModel):
    """One coding of a clinical concept (RxNorm, LOINC, SNOMED, CVX, ...)."""

    model_config = ConfigDict(frozen=True)

    system: Optional[str] = Field(None, description="Code system URI")
    code: Optional[str] = Field(None, description="Code value")
    display: Optional[str] = Field(None, description="Human-readable display text")


class ClinicalRecord(BaseModel):
    """Base class for all per-domain clinical records.

    A malformed field degrades instead of rejecting the record: an explicit
    null takes the field default, a number in a text field becomes text, and
    a date field that cannot be read becomes None. A null in a required
    field (such as the name) still rejects the record.

    Parameters:
        id: Source-local record identifier
        codes: Zero or more codings identifying the clinical concept
        source: Provenance tag of the reporting system
    """

    model_config = ConfigDict(frozen=True)

    DATE_FIELDS: ClassVar[tuple[str, ...]] = ()

    id: str = Field(..., min_length=1, description="Source-local record identifier")
    codes: list[ClinicalCode] = Field(default_factory=list, description="Coded identity")
    source: SourceTag = Field(..., description="Reporting source system")

    @field_validator("*", mode="before")
    @classmethod
    def degrade_malformed_field(cls, v, info: ValidationInfo):
        if info.field_name in cls.DATE_FIELDS:
            return coerce_date_text(v)
        field = cls.model_fields[info.field_name]
        if v is None and not field.is_required():
            return field.get_default(call_default_factory=True)
        if field.annotation in _TEXT_ANNOTATIONS and isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    def code_for_system(self, system_fragment: str) -> Optional[str]:
        """Return the first code whose system URI contains ``system_fragment``.

        Parameters:
            system_fragment: Case-insensitive fragment such as "rxnorm" or "loinc"

        Returns:
            The code value, or None if no coding matches
        """
        fragment = system_fragment.lower()
        for coding in self.codes:
            if coding.system and coding.code and fragment in coding.system.lower():
                return coding.code
        return None


# ============================================================================
# Medications
# ============================================================================

class Dosage(BaseModel):
    """Structured dose of a medication order."""

    model_config = ConfigDict(frozen=True)

    value: Optional[float] = None
    unit: Optional[str] = None
    frequency: Optional[str] = None


class Medication(ClinicalRecord):
    """A medication order as reported by one source.

    Parameters:
        status: Order status (active, completed, stopped, on-hold, ...)
        intent: Order intent (order, plan, proposal, ...)
        name: Display name of the medication
        dosage_instruction: Free-text dosage instruction
        dosage: Structured dose, when the source provides one
        prescriber: Prescriber display name
        date_written: Date the order was written
    """

    DATE_FIELDS = ("date_written",)

    status: str = Field("unknown", description="Order status")
    intent: str = Field("order", description="Order intent")
    name: str = Field(..., description="Medication display name")
    dosage_instruction: Optional[str] = Field(None, description="Free-text dosage instruction")
    dosage: Optional[Dosage] = Field(None, description="Structured dose")
    prescriber: Optional[str] = Field(None, description="Prescriber name")
    date_written: Optional[str] = Field(None, description="Date written (ISO-8601)")


# ============================================================================
# Lab results
# ============================================================================

class ReferenceRange(BaseModel):
    """Reference range reported alongside a lab value."""

    model_config = ConfigDict(frozen=True)

    low: Optional[float] = None
    high: Optional[float] = None
    text: Optional[str] = None

    def has_bounds(self) -> bool:
        return self.low is not None or self.high is not None


class LabResult(ClinicalRecord):
    """A laboratory observation as reported by one source.

    Parameters:
        status: Observation status (final, preliminary, amended, ...)
        name: Test display name (e.g. "Hemoglobin A1c")
        value: Numeric or textual result
        unit: Unit of measurement
        reference_range: Source-reported reference range
        interpretation: Source-reported interpretation flag
        category: Observation category
        effective_date: When the specimen was taken / result became effective
    """

    DATE_FIELDS = ("effective_date",)

    status: str = Field("final", description="Observation status")
    name: str = Field(..., description="Test display name")
    value: Optional[Union[float, str]] = Field(None, description="Numeric or text value")
    unit: Optional[str] = Field(None, description="Unit of measurement")
    reference_range: Optional[ReferenceRange] = Field(None, description="Reference range")
    interpretation: Optional[str] = Field(None, description="Interpretation flag")
    category: Optional[str] = Field(None, description="Observation category")
    effective_date: Optional[str] = Field(None, description="Effective date (ISO-8601)")

    @property
    def numeric_value(self) -> Optional[float]:
        """The value as a float, or None for textual results."""
        if isinstance(self.value, (int, float)) and not isinstance(self.value, bool):
            return float(self.value)
        return None


# ============================================================================
# Vitals
# ============================================================================

class VitalComponent(BaseModel):
    """One component of a compound vital (e.g. systolic of a blood pressure)."""

    model_config = ConfigDict(frozen=True)

    name: str
    codes: list[ClinicalCode] = Field(default_factory=list)
    value: Optional[float] = None
    unit: Optional[str] = None


class Vital(ClinicalRecord):
    """A vital-sign observation as reported by one source.

    Parameters:
        status: Observation status
        name: Display name (e.g. "Blood Pressure")
        vital_type: Category used for grouping and matching
        value: Primary value for simple vitals
        unit: Unit of measurement
        components: Components of compound vitals such as blood pressure
        effective_date: When the vital was measured
    """

    DATE_FIELDS = ("effective_date",)

    status: str = Field("final", description="Observation status")
    name: str = Field(..., description="Vital display name")
    vital_type: VitalType = Field(VitalType.OTHER, description="Vital category")
    value: Optional[float] = Field(None, description="Primary value")
    unit: Optional[str] = Field(None, description="Unit of measurement")
    components: list[VitalComponent] = Field(default_factory=list, description="Compound components")
    effective_date: Optional[str] = Field(None, description="Effective date (ISO-8601)")

    @field_validator("vital_type", mode="before")
    @classmethod
    def coerce_vital_type(cls, v):
        """Map unknown vital categories to ``other`` instead of rejecting the record."""
        if v is None:
            return VitalType.OTHER
        if isinstance(v, VitalType):
            return v
        try:
            return VitalType(str(v).strip().lower())
        except ValueError:
            return VitalType.OTHER

    def component_value(self, name_fragment: str, loinc_code: Optional[str] = None) -> Optional[float]:
        """Return the value of the first component matching by name fragment or code."""
        fragment = name_fragment.lower()
        for component in self.components:
            if fragment in component.name.lower():
                return component.value
            if loinc_code and any(c.code == loinc_code for c in component.codes):
                return component.value
        return None


# ============================================================================
# Allergies
# ============================================================================

class AllergyReaction(BaseModel):
    """A reaction recorded against an allergy."""

    model_config = ConfigDict(frozen=True)

    description: Optional[str] = None
    manifestations: list[str] = Field(default_factory=list)
    severity: Optional[str] = None


class Allergy(ClinicalRecord):
    """An allergy or intolerance as reported by one source.

    A record whose substance text says "no known allergies" (NKDA, "Not on
    File", empty, ...) is an absence marker, not an allergy. Such records are
    accepted here and separated out by the merge engine.
    """

    DATE_FIELDS = ("recorded_date",)

    clinical_status: Optional[str] = Field(None, description="active | inactive | resolved")
    verification_status: Optional[str] = Field(None, description="Verification status")
    type: Optional[str] = Field(None, description="allergy | intolerance")
    category: list[str] = Field(default_factory=list, description="food | medication | ...")
    criticality: Optional[str] = Field(None, description="low | high | unable-to-assess")
    substance: str = Field("", description="Substance display text")
    reactions: list[AllergyReaction] = Field(default_factory=list, description="Recorded reactions")
    recorded_date: Optional[str] = Field(None, description="Recorded date (ISO-8601)")

    @property
    def first_manifestation(self) -> Optional[str]:
        for reaction in self.reactions:
            if reaction.manifestations:
                return reaction.manifestations[0]
        return None


# ============================================================================
# Conditions, immunizations, encounters
# ============================================================================

class Condition(ClinicalRecord):
    """A problem-list or encounter diagnosis as reported by one source."""

    DATE_FIELDS = ("onset_date", "abatement_date", "recorded_date")

    clinical_status: Optional[str] = Field(None, description="active | resolved | ...")
    verification_status: Optional[str] = Field(None, description="Verification status")
    category: Optional[str] = Field(None, description="Condition category")
    name: str = Field(..., description="Condition display name")
    severity: Optional[str] = Field(None, description="mild | moderate | severe")
    onset_date: Optional[str] = Field(None, description="Onset date (ISO-8601)")
    abatement_date: Optional[str] = Field(None, description="Abatement date (ISO-8601)")
    recorded_date: Optional[str] = Field(None, description="Recorded date (ISO-8601)")

    @property
    def reference_date(self) -> Optional[str]:
        """Recorded date, falling back to onset date."""
        return self.recorded_date or self.onset_date


class Immunization(ClinicalRecord):
    """An administered (or not-done) vaccine as reported by one source."""

    DATE_FIELDS = ("occurrence_date",)

    status: str = Field("completed", description="completed | entered-in-error | not-done")
    vaccine_name: str = Field(..., description="Vaccine display name")
    occurrence_date: Optional[str] = Field(None, description="Administration date (ISO-8601)")
    primary_source: Optional[bool] = Field(None, description="Reported by the administering party")
    lot_number: Optional[str] = Field(None, description="Lot number")
    site: Optional[str] = Field(None, description="Administration site")


class Encounter(ClinicalRecord):
    """A visit or admission as reported by one source."""

    DATE_FIELDS = ("period_start", "period_end")

    status: str = Field("finished", description="Encounter status")
    encounter_class: Optional[str] = Field(None, description="inpatient | ambulatory | ...")
    type: Optional[str] = Field(None, description="Encounter type display")
    reason: Optional[str] = Field(None, description="Reason for visit")
    period_start: Optional[str] = Field(None, description="Start (ISO-8601)")
    period_end: Optional[str] = Field(None, description="End (ISO-8601)")
    location: Optional[str] = Field(None, description="Facility name")
    provider: Optional[str] = Field(None, description="Provider name")


# ============================================================================
# Demographics and per-source snapshot
# ============================================================================

class Demographics(BaseModel):
    """Patient demographics reported by one source, used only for matching.

    Parameters:
        patient_id: Source-local patient identifier
        first_name: Given name
        last_name: Family name
        gender: Administrative gender
        birth_date: Birth date as YYYY-MM-DD
        mrn: Medical record number (never compared across sources)
    """

    model_config = ConfigDict(frozen=True)

    patient_id: str = Field(..., description="Source-local patient identifier")
    full_name: Optional[str] = Field(None, description="Display name")
    first_name: Optional[str] = Field(None, description="Given name")
    last_name: Optional[str] = Field(None, description="Family name")
    gender: Optional[str] = Field(None, description="Administrative gender")
    birth_date: Optional[str] = Field(None, description="Birth date (YYYY-MM-DD)")
    mrn: Optional[str] = Field(None, description="Medical record number")

    @field_validator("birth_date", mode="before")
    @classmethod
    def coerce_birth_date(cls, v):
        return coerce_date_text(v)

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or self.patient_id

    def age_on(self, today: date) -> Optional[int]:
        """Age in whole years on ``today``, or None if the birth date is unknown."""
        born = parse_clinical_datetime(self.birth_date)
        if born is None:
            return None
        born_date = born.date()
        years = today.year - born_date.year
        if (today.month, today.day) < (born_date.month, born_date.day):
            years -= 1
        return years


class SourceSnapshot(BaseModel):
    """One source's complete parsed data for one pipeline run."""

    model_config = ConfigDict(frozen=True)

    source: SourceTag
    demographics: Optional[Demographics] = None
    medications: list[Medication] = Field(default_factory=list)
    lab_results: list[LabResult] = Field(default_factory=list)
    vitals: list[Vital] = Field(default_factory=list)
    allergies: list[Allergy] = Field(default_factory=list)
    conditions: list[Condition] = Field(default_factory=list)
    immunizations: list[Immunization] = Field(default_factory=list)
    encounters: list[Encounter] = Field(default_factory=list)

    @classmethod
    def empty(cls, source: SourceTag) -> "SourceSnapshot":
        """Snapshot contributed by a source that failed to respond."""
        return cls(source=source)

    def domain_counts(self) -> dict[str, int]:
        return {
            "medications": len(self.medications),
            "lab_results": len(self.lab_results),
            "vitals": len(self.vitals),
            "allergies": len(self.allergies),
            "conditions": len(self.conditions),
            "immunizations": len(self.immunizations),
            "encounters": len(self.encounters),
        }

    @property
    def record_count(self) -> int:
        return sum(self.domain_counts().values())
