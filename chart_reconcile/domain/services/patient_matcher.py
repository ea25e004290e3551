"""Patient Identity Matching Service.

Scores whether two demographic records describe the same person. The result
gates whether a secondary source's data may be merged at all: data whose
identity is not verified is never merged.

Security Impact:
    - Below-threshold sources are excluded from the merge entirely
    - Medical record numbers are never compared; they differ legitimately
      across systems and must not penalize the score
    - Raw names are only logged at DEBUG level

Architecture:
    - Pure domain service, deterministic weighted scoring
    - A field missing on either side contributes neither points nor a conflict
"""

import logging
import re
import unicodedata
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from chart_reconcile.domain.clinical_record import Demographics

logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.80

_NON_LETTERS = re.compile(r"[^a-z\s]")


class MatchResult(BaseModel):
    """Outcome of comparing two demographic records."""

    model_config = ConfigDict(frozen=True)

    is_match: bool = Field(..., description="True iff confidence >= threshold")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Weighted score")
    matched_on: list[str] = Field(default_factory=list, description="Fields that agreed")
    conflicts: list[str] = Field(default_factory=list, description="Fields present on both sides that disagreed")


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, strip diacritics and remove everything but letters and spaces."""
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFD", name.lower().strip())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_LETTERS.sub("", stripped)


class PatientMatcher:
    """Deterministic weighted patient matcher.

    Weights:
        last name  +0.30
        first name +0.30
        birth date +0.30 (exact)
        gender     +0.10
    """

    WEIGHTS = (
        ("lastName", 0.30),
        ("firstName", 0.30),
        ("birthDate", 0.30),
        ("gender", 0.10),
    )

    def __init__(self, threshold: float = DEFAULT_MATCH_THRESHOLD):
        """Initialize matcher.

        Parameters:
            threshold: Minimum confidence for a match (0..1)
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be between 0 and 1, got {threshold}")
        self.threshold = threshold

    @staticmethod
    def _field_values(demographics: Demographics, field: str) -> tuple[str, Optional[str]]:
        """Return (comparison value, raw value) for one weighted field."""
        if field == "lastName":
            return normalize_name(demographics.last_name), demographics.last_name
        if field == "firstName":
            return normalize_name(demographics.first_name), demographics.first_name
        if field == "birthDate":
            raw = demographics.birth_date
            return (raw.strip() if raw else ""), raw
        raw = demographics.gender
        return (raw.strip().lower() if raw else ""), raw

    def match(self, primary: Demographics, candidate: Demographics) -> MatchResult:
        """Score whether ``candidate`` is the same person as ``primary``.

        Parameters:
            primary: Demographics from the primary source
            candidate: Demographics from a secondary source

        Returns:
            MatchResult: Decision, confidence in [0, 1], agreeing fields and
            human-readable mismatches
        """
        score = 0.0
        matched_on: list[str] = []
        conflicts: list[str] = []

        for field, weight in self.WEIGHTS:
            left, left_raw = self._field_values(primary, field)
            right, right_raw = self._field_values(candidate, field)
            if not left or not right:
                continue
            if left == right:
                score += weight
                matched_on.append(field)
            else:
                conflicts.append(f'{field}: "{left_raw}" vs "{right_raw}"')

        confidence = round(min(score, 1.0), 4)
        is_match = confidence >= self.threshold

        logger.debug(
            "Patient match %s <-> %s: confidence=%.2f match=%s on=%s conflicts=%s",
            primary.display_name, candidate.display_name, confidence, is_match,
            matched_on, conflicts,
        )

        return MatchResult(
            is_match=is_match,
            confidence=confidence,
            matched_on=matched_on,
            conflicts=conflicts,
        )


def match_patients(
    primary: Demographics,
    candidate: Demographics,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> MatchResult:
    """Convenience wrapper around ``PatientMatcher(threshold).match``."""
    return PatientMatcher(threshold).match(primary, candidate)
