"""Domain Guardrails - Safety Framing for Patient-Facing Output.

Every Tier-1 result passes through ``apply_guardrails`` before it is shown to
a patient. The wrapper attaches the "not medical advice" disclaimer, names the
health systems the result was derived from, and labels the output as
rule-based, and closes with a call to discuss the findings with a
provider.

Security Impact:
    - No analysis output is presented without a disclaimer
    - Source attribution lets a reader trace an insight back to its systems
    - Model label makes clear that no generative model was involved

Architecture:
    - Pure domain logic with no infrastructure dependencies
"""

from collections.abc import Sequence
from typing import Any

from chart_reconcile.domain.clinical_record import SourceTag
from chart_reconcile.domain.insights import GuardedOutput

DISCLAIMER = (
    "This information is based on standard clinical guidelines and your health records. "
    "It is not a diagnosis or medical advice. Always consult your healthcare provider for "
    "personalized medical guidance."
)

CONFIDENCE_FRAME = "Based on standard clinical guidelines"

MODEL_LABEL = "Rule-based analysis (no AI model)"

PROVIDER_CTA = "Discuss these findings with your healthcare provider at your next visit."


def build_source_attribution(sources: Sequence[SourceTag]) -> str:
    """Describe which systems contributed, deduplicated by display name.

    Examples:
        [] -> "Based on available health records."
        [A] -> "Based on data from A."
        [A, B] -> "Based on cross-system data from A and B."
    """
    if not sources:
        return "Based on available health records."
    names = list(dict.fromkeys(s.system_name for s in sources))
    if len(names) == 1:
        return f"Based on data from {names[0]}."
    return f"Based on cross-system data from {' and '.join(names)}."


def apply_guardrails(result: Any, sources: Sequence[SourceTag]) -> GuardedOutput:
    """Wrap an analysis result in the patient-safety framing.

    Parameters:
        result: Any analysis output (typically Tier1Results)
        sources: Source tags the result was derived from

    Returns:
        GuardedOutput: The result with disclaimer, attribution and labels
    """
    return GuardedOutput(
        result=result,
        disclaimer=DISCLAIMER,
        source_attribution=build_source_attribution(sources),
        confidence_frame=CONFIDENCE_FRAME,
        model_label=MODEL_LABEL,
        provider_cta=PROVIDER_CTA,
    )
