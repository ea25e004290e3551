"""Lab abnormal-value flagging.

Every lab with a numeric value is compared against a reference range: the
lab's own reported range when it has a bound, else the standard adult range
for its test name, else it is skipped. Values beyond the bound by the
critical factor are flagged critical.
"""

from collections.abc import Sequence
from typing import Optional

from chart_reconcile.domain.clinical_record import ReferenceRange
from chart_reconcile.domain.enums import LabFlagStatus
from chart_reconcile.domain.insights import LabAbnormalFlag
from chart_reconcile.domain.merged import MergedLabResult
from chart_reconcile.domain.reference_data import standard_range_for

DEFAULT_CRITICAL_FACTOR = 1.5


def _fmt(number: float) -> str:
    return f"{number:g}"


def resolve_range(lab: MergedLabResult) -> tuple[Optional[ReferenceRange], bool]:
    """Return (range, reported_by_source) or (None, False) when no range is known."""
    if lab.reference_range is not None and lab.reference_range.has_bounds():
        return lab.reference_range, True
    standard = standard_range_for(lab.name)
    if standard is None:
        return None, False
    return ReferenceRange(low=standard.low, high=standard.high), False


def classify(
    value: float,
    low: Optional[float],
    high: Optional[float],
    critical_factor: float = DEFAULT_CRITICAL_FACTOR,
) -> LabFlagStatus:
    """Classify a value; critical-high at >= high*factor, critical-low at <= low/factor."""
    if high is not None and value > high:
        return LabFlagStatus.CRITICAL_HIGH if value >= high * critical_factor else LabFlagStatus.HIGH
    if low is not None and value < low:
        return LabFlagStatus.CRITICAL_LOW if value <= low / critical_factor else LabFlagStatus.LOW
    return LabFlagStatus.NORMAL


def build_flag_message(
    lab_name: str,
    value: float,
    unit: str,
    status: LabFlagStatus,
    low: Optional[float],
    high: Optional[float],
) -> str:
    if low is not None and high is not None:
        range_text = f"(normal range: {_fmt(low)}-{_fmt(high)} {unit})"
    elif low is not None:
        range_text = f"(normal: >={_fmt(low)} {unit})"
    elif high is not None:
        range_text = f"(normal: <={_fmt(high)} {unit})"
    else:
        range_text = ""
    reading = f"{_fmt(value)} {unit}"

    if status == LabFlagStatus.CRITICAL_HIGH:
        return f"{lab_name} is critically high at {reading} {range_text}. Discuss with your provider urgently."
    if status == LabFlagStatus.CRITICAL_LOW:
        return f"{lab_name} is critically low at {reading} {range_text}. Discuss with your provider urgently."
    if status == LabFlagStatus.HIGH:
        return f"{lab_name} is above normal at {reading} {range_text}."
    if status == LabFlagStatus.LOW:
        return f"{lab_name} is below normal at {reading} {range_text}."
    return f"{lab_name} is within normal range at {reading} {range_text}."


def analyze_lab_abnormal_flags(
    lab_results: Sequence[MergedLabResult],
    critical_factor: float = DEFAULT_CRITICAL_FACTOR,
) -> list[LabAbnormalFlag]:
    """Flag every numeric lab that has a resolvable reference range.

    Labs with textual values or no known range are skipped, never flagged.
    """
    flags: list[LabAbnormalFlag] = []
    for lab in lab_results:
        value = lab.numeric_value
        if value is None:
            continue
        reference, from_source = resolve_range(lab)
        if reference is None:
            continue

        unit = lab.unit or ""
        status = classify(value, reference.low, reference.high, critical_factor)
        flags.append(LabAbnormalFlag(
            lab_id=lab.id,
            lab_name=lab.name,
            value=value,
            unit=unit,
            reference_range=ReferenceRange(
                low=reference.low,
                high=reference.high,
                text=lab.reference_range.text if lab.reference_range else None,
            ),
            range_from_source=from_source,
            status=status,
            message=build_flag_message(lab.name, value, unit, status, reference.low, reference.high),
            source=lab.source,
        ))
    return flags
