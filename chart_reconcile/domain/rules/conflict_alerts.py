"""Patient-facing conflict alerts.

Translates each detected Conflict into a title, a plain-language explanation
and an action item. This is a presentation transform over existing conflicts;
it performs no new analysis.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from chart_reconcile.domain.conflicts import Conflict
from chart_reconcile.domain.enums import ConflictType, ResourceType
from chart_reconcile.domain.insights import SourceConflictAlert


def _first_display(conflict: Conflict, fallback: str) -> str:
    return conflict.resources[0].display if conflict.resources else fallback


@dataclass(frozen=True)
class AlertTemplate:
    title: Callable[[Conflict], str]
    explanation: Callable[[Conflict], str]
    action: str


def _dose_explanation(c: Conflict) -> str:
    sources = f"{c.source_a.system_name} and {c.source_b.system_name}"
    return (
        f"{_first_display(c, 'A medication')} appears with different dosage instructions in {sources}. "
        f"This could mean your doctors prescribed different amounts, or one record may be outdated."
    )


def _allergy_rx_title(c: Conflict) -> str:
    allergy = c.first_resource_of(ResourceType.ALLERGY)
    med = c.first_resource_of(ResourceType.MEDICATION)
    return (
        f"Allergy Alert: {allergy.display if allergy else 'Allergy'} "
        f"vs {med.display if med else 'Medication'}"
    )


def _allergy_rx_explanation(c: Conflict) -> str:
    allergy = c.first_resource_of(ResourceType.ALLERGY)
    med = c.first_resource_of(ResourceType.MEDICATION)
    return (
        f"{allergy.source.system_name if allergy else 'One provider'} has an allergy to "
        f"{allergy.display if allergy else 'a substance'} on file, but "
        f"{med.source.system_name if med else 'another provider'} prescribed "
        f"{med.display if med else 'a medication'} which may be related. "
        f"This could be a safety concern that needs immediate attention."
    )


def _crossref_explanation(c: Conflict) -> str:
    item = c.resources[0]
    source_name = item.source.system_name
    other = c.source_b.system_name if source_name == c.source_a.system_name else c.source_a.system_name
    return (
        f"{item.display} appears in {source_name} but is not in {other}. "
        f"This means {other} may not know about it when making treatment decisions."
    )


def _condition_explanation(c: Conflict) -> str:
    return (
        f"{_first_display(c, 'A condition')} is recorded as active by {c.source_a.system_name} "
        f"but may have a different status in {c.source_b.system_name}. "
        f"Your providers may have different assessments of this condition."
    )


def _gap_explanation(c: Conflict) -> str:
    return (
        f"{c.source_a.system_name} has allergy information on file, but {c.source_b.system_name} "
        f"has no allergy records. This is a significant safety gap: providers using "
        f"{c.source_b.system_name} may not know about your allergies."
    )


ALERT_TEMPLATES: dict[ConflictType, AlertTemplate] = {
    ConflictType.DOSE_MISMATCH: AlertTemplate(
        title=lambda c: f"Different Doses: {_first_display(c, 'A medication')}",
        explanation=_dose_explanation,
        action="Bring this to your next appointment and ask your provider to confirm the correct dose.",
    ),
    ConflictType.ALLERGY_PRESCRIPTION: AlertTemplate(
        title=_allergy_rx_title,
        explanation=_allergy_rx_explanation,
        action="Contact your provider or pharmacist as soon as possible to verify this is safe for you.",
    ),
    ConflictType.MISSING_CROSSREF: AlertTemplate(
        title=lambda c: f"Missing From Other System: {_first_display(c, 'A record')}",
        explanation=_crossref_explanation,
        action="Mention this to your provider so it can be added to all your records.",
    ),
    ConflictType.CONTRADICTORY_CONDITION: AlertTemplate(
        title=lambda c: f"Condition Status Conflict: {_first_display(c, 'A condition')}",
        explanation=_condition_explanation,
        action="Ask your provider to review and update the status of this condition.",
    ),
    ConflictType.ALLERGY_GAP: AlertTemplate(
        title=lambda c: "Missing Allergy Records",
        explanation=_gap_explanation,
        action=(
            "At your next visit, ask the provider to update your allergy list. "
            "This is important for your safety."
        ),
    ),
}


def generate_conflict_alerts(conflicts: Sequence[Conflict]) -> list[SourceConflictAlert]:
    """One alert per conflict, in input order."""
    alerts = []
    for conflict in conflicts:
        template = ALERT_TEMPLATES[conflict.type]
        alerts.append(SourceConflictAlert(
            conflict_id=conflict.id,
            severity=conflict.severity,
            title=template.title(conflict),
            explanation=template.explanation(conflict),
            action_item=template.action,
            sources=[conflict.source_a, conflict.source_b],
        ))
    return alerts
