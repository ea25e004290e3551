"""JSON Source Snapshot Adapter.

This adapter implements the SourcePort contract for JSON snapshot files. A
snapshot file holds one health system's already-parsed records: a ``source``
tag, optional ``demographics``, and one array per clinical domain.

Security Impact:
    - Triage logic rejects malformed records without failing the whole source
    - Rejected records are logged with their index and domain, never their content
    - A missing or unreadable document fails the source, not the pipeline

Architecture:
    - Implements SourcePort (Hexagonal Architecture)
    - Isolated from domain core - only depends on ports and models
    - Fail-safe design: bad records don't crash the pipeline
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from chart_reconcile.domain.clinical_record import (
    Allergy,
    Condition,
    Demographics,
    Encounter,
    Immunization,
    LabResult,
    Medication,
    SourceSnapshot,
    SourceTag,
    Vital,
)
from chart_reconcile.domain.ports import Result, SourceLoadError, SourcePort

logger = logging.getLogger(__name__)

# Snapshot key -> record model
DOMAIN_MODELS = {
    "medications": Medication,
    "lab_results": LabResult,
    "vitals": Vital,
    "allergies": Allergy,
    "conditions": Condition,
    "immunizations": Immunization,
    "encounters": Encounter,
}


class JSONSourceAdapter(SourcePort):
    """JSON snapshot loader with per-record triage.

    Each record is validated on its own. A record that fails validation is
    logged at WARNING, counted in ``rejected_records`` and skipped; the rest
    of the source is still loaded.

    Records that carry no ``source`` inherit the snapshot's source tag.

    Attributes:
        rejected_records: Number of records rejected by the most recent load
        adapter_name: Name used in error reporting
    """

    def __init__(self):
        self.adapter_name = "json_source"
        self.rejected_records = 0

    def can_load(self, source: str) -> bool:
        """Check if this adapter can handle the given source.

        Parameters:
            source: Source identifier (file path)

        Returns:
            bool: True if source is a JSON file, False otherwise
        """
        if not source:
            return False
        return Path(source).suffix.lower() == ".json"

    def get_source_info(self, source: str) -> Optional[dict]:
        path = Path(source)
        if not path.is_file():
            return None
        return {
            'format': 'json',
            'size': path.stat().st_size,
            'encoding': 'utf-8',
            'exists': True,
        }

    def load(self, source: str) -> Result[SourceSnapshot]:
        """Load and validate one snapshot file.

        Parameters:
            source: Path to the JSON snapshot

        Returns:
            Result[SourceSnapshot]: Snapshot on success. Failure when the file
            is missing, is not valid JSON, or has no valid source tag.
        """
        self.rejected_records = 0
        try:
            document = self._read_document(source)
            snapshot = self._build_snapshot(document, source)
        except SourceLoadError as e:
            logger.warning("Source %s could not be loaded: %s", source, e)
            return Result.failure_result(e, error_details={'source': source, **e.details})

        if self.rejected_records:
            logger.warning(
                "Source %s: %d record(s) rejected during validation",
                snapshot.source.system_id, self.rejected_records,
            )
        logger.info(
            "Loaded source %s (%s): %d records",
            snapshot.source.system_id, snapshot.source.system_name, snapshot.record_count,
        )
        return Result.success_result(snapshot)

    def _read_document(self, source: str) -> dict:
        path = Path(source)
        if not path.is_file():
            raise SourceLoadError(f"Source file not found: {source}", source=source)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise SourceLoadError(
                f"Invalid JSON in {source}: {e}", source=source, details={'line': e.lineno}
            )
        except OSError as e:
            raise SourceLoadError(f"Cannot read source {source}: {e}", source=source)

        if not isinstance(document, dict):
            raise SourceLoadError(
                f"Snapshot {source} must be a JSON object, got {type(document).__name__}",
                source=source,
            )
        return document

    def _build_snapshot(self, document: dict, source: str) -> SourceSnapshot:
        try:
            tag = SourceTag.model_validate(document.get("source") or {})
        except PydanticValidationError as e:
            raise SourceLoadError(
                f"Snapshot {source} has no valid source tag", source=source,
                details={'errors': e.error_count()},
            )

        demographics = None
        if document.get("demographics") is not None:
            try:
                demographics = Demographics.model_validate(document["demographics"])
            except PydanticValidationError as e:
                logger.warning(
                    "Source %s: demographics rejected (%d validation errors)",
                    tag.system_id, e.error_count(),
                )

        domains = {
            key: self._validate_records(document.get(key) or [], model, key, tag)
            for key, model in DOMAIN_MODELS.items()
        }
        return SourceSnapshot(source=tag, demographics=demographics, **domains)

    def _validate_records(self, raw_records: Any, model, domain: str, tag: SourceTag) -> list:
        if not isinstance(raw_records, list):
            logger.warning("Source %s: '%s' is not a list; domain skipped", tag.system_id, domain)
            self.rejected_records += 1
            return []

        records = []
        for index, raw in enumerate(raw_records):
            if not isinstance(raw, dict):
                self._reject(tag, domain, index, "record is not an object")
                continue
            payload = {**raw, "source": raw.get("source") or tag.model_dump()}
            try:
                records.append(model.model_validate(payload))
            except PydanticValidationError as e:
                fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
                self._reject(tag, domain, index, f"invalid fields: {fields}")
        return records

    def _reject(self, tag: SourceTag, domain: str, index: int, reason: str) -> None:
        self.rejected_records += 1
        logger.warning("Source %s: %s[%d] rejected (%s)", tag.system_id, domain, index, reason)
