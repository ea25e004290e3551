"""Drug-drug interaction lookup.

Compares every unordered pair of active-equivalent medications, across all
sources, against the versioned interaction table. A drug prescribed by one
system and a drug prescribed by another can interact without either
prescriber knowing about the other.
"""

from collections.abc import Sequence
from typing import Optional

from chart_reconcile.domain.enums import INTERACTION_SEVERITY_ORDER
from chart_reconcile.domain.insights import DrugInteraction
from chart_reconcile.domain.merged import MergedMedication
from chart_reconcile.domain.reference_data import (
    INTERACTION_DATA_SOURCE,
    INTERACTION_TABLE,
    InteractionRule,
)
from chart_reconcile.domain.utils import SequentialIdGenerator

ACTIVE_EQUIVALENT_STATUSES = frozenset({"active", "completed", "on-hold"})


def is_active_equivalent(medication: MergedMedication) -> bool:
    return (medication.status or "").lower() in ACTIVE_EQUIVALENT_STATUSES


def detect_drug_interactions(
    medications: Sequence[MergedMedication],
    table: Sequence[InteractionRule] = INTERACTION_TABLE,
    id_generator: Optional[SequentialIdGenerator] = None,
) -> list[DrugInteraction]:
    """Find interacting pairs among active-equivalent medications.

    Parameters:
        medications: Merged medication list
        table: Interaction rules to evaluate
        id_generator: Identifier source for ``ddi-<n>`` ids

    Returns:
        list[DrugInteraction]: Deduplicated by (sorted name pair, effect),
        sorted critical -> low
    """
    ids = id_generator or SequentialIdGenerator("ddi")
    active = [m for m in medications if is_active_equivalent(m)]
    seen: set[str] = set()
    interactions: list[DrugInteraction] = []

    for i, med_a in enumerate(active):
        for med_b in active[i + 1:]:
            name_a = med_a.name.lower().strip()
            name_b = med_b.name.lower().strip()
            for rule in table:
                forward = rule.orientation(name_a, name_b)
                if forward is None:
                    continue
                key = "|".join(sorted((name_a, name_b))) + f":{rule.effect}"
                if key in seen:
                    continue
                seen.add(key)

                first, second = (med_a, med_b) if forward else (med_b, med_a)
                interactions.append(DrugInteraction(
                    id=ids.next(),
                    drug_a=first.name,
                    drug_b=second.name,
                    severity=rule.severity,
                    description=rule.description,
                    effect=rule.effect,
                    data_source=INTERACTION_DATA_SOURCE,
                    drug_a_sources=first.all_sources,
                    drug_b_sources=second.all_sources,
                ))

    interactions.sort(key=lambda d: INTERACTION_SEVERITY_ORDER[d.severity])
    return interactions
