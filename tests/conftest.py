"""Shared fixtures for chart-reconcile tests."""

import json
from datetime import datetime, timezone

import pytest

from chart_reconcile.domain.clinical_record import Demographics, SourceTag

FETCHED_AT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def epic():
    """Primary source tag."""
    return SourceTag(system_name="Epic MyHealth", system_id="epic", fetched_at=FETCHED_AT)


@pytest.fixture
def community():
    """Secondary source tag."""
    return SourceTag(
        system_name="Community Medical Center", system_id="community-mc", fetched_at=FETCHED_AT
    )


@pytest.fixture
def patient():
    """Demographics shared by the primary and a matching secondary source."""
    return Demographics(
        patient_id="epic-123",
        first_name="Jane",
        last_name="Doe",
        gender="female",
        birth_date="1960-04-15",
    )


@pytest.fixture
def write_snapshot(tmp_path):
    """Write a snapshot document to ``tmp_path`` and return its path as a string."""
    def write(name, document):
        path = tmp_path / name
        path.write_text(json.dumps(document), encoding="utf-8")
        return str(path)
    return write


@pytest.fixture
def epic_document():
    """Primary snapshot: warfarin and lisinopril, no allergies on file."""
    return {
        "source": {"system_name": "Epic MyHealth", "system_id": "epic"},
        "demographics": {
            "patient_id": "epic-123", "first_name": "Jane", "last_name": "Doe",
            "gender": "female", "birth_date": "1960-04-15",
        },
        "medications": [
            {"id": "e-m1", "name": "Warfarin 5 mg", "status": "active", "dosage_instruction": "5 mg daily"},
            {"id": "e-m2", "name": "Lisinopril 10 mg", "status": "active", "dosage_instruction": "10 mg daily"},
        ],
        "allergies": [{"id": "e-a1", "substance": "Not on File"}],
        "vitals": [{
            "id": "e-v1", "name": "Blood Pressure", "vital_type": "blood-pressure",
            "effective_date": "2024-05-01",
            "components": [{"name": "Systolic", "value": 128}, {"name": "Diastolic", "value": 78}],
        }],
    }


@pytest.fixture
def community_document():
    """Secondary snapshot for the same patient with a different lisinopril dose."""
    return {
        "source": {"system_name": "Community Medical Center", "system_id": "community-mc"},
        "demographics": {
            "patient_id": "cmc-9", "first_name": "Jane", "last_name": "Doe",
            "gender": "female", "birth_date": "1960-04-15",
        },
        "medications": [
            {"id": "c-m1", "name": "Lisinopril", "status": "active", "dosage_instruction": "20 mg daily"},
            {"id": "c-m2", "name": "Ibuprofen 400 mg", "status": "active"},
        ],
        "allergies": [
            {"id": "c-a1", "substance": "Penicillin", "criticality": "high",
             "reactions": [{"manifestations": ["Hives"]}]},
        ],
    }
