"""Lab trend-direction analysis.

Groups labs by coded identity (LOINC code when present, else normalized
name), requires at least two numeric dated readings, and reports the percent
change from the first to the last reading.
"""

from collections.abc import Sequence

from chart_reconcile.domain.clinical_record import ClinicalCode
from chart_reconcile.domain.enums import TrendDirection
from chart_reconcile.domain.insights import LabTrend, TrendReading
from chart_reconcile.domain.merged import MergedLabResult
from chart_reconcile.domain.utils import parse_clinical_datetime

DEFAULT_STABLE_THRESHOLD_PERCENT = 5.0

SECONDS_PER_DAY = 86400


def _loinc(lab: MergedLabResult):
    for coding in lab.codes:
        if coding.system and coding.code and "loinc" in coding.system.lower():
            return coding
    return None


def group_key(lab: MergedLabResult) -> str:
    loinc = _loinc(lab)
    if loinc is not None:
        return f"loinc:{loinc.code}"
    return f"name:{lab.name.lower().strip()}"


def primary_code(lab: MergedLabResult) -> ClinicalCode:
    loinc = _loinc(lab)
    if loinc is not None:
        return loinc
    if lab.codes:
        return lab.codes[0]
    return ClinicalCode(display=lab.name)


def _span_text(span_days: float) -> str:
    if span_days >= 30:
        return f"{round(span_days / 30)} months"
    return f"{round(span_days)} days"


def build_trend_message(
    lab_name: str,
    direction: TrendDirection,
    change_percent: float,
    first_value: float,
    last_value: float,
    unit: str,
    span_days: float,
) -> str:
    span = _span_text(span_days)
    pct = f"{abs(change_percent):.1f}"
    if direction == TrendDirection.RISING:
        return f"{lab_name} has risen {pct}% (from {first_value:g} to {last_value:g} {unit}) over the past {span}."
    if direction == TrendDirection.FALLING:
        return f"{lab_name} has decreased {pct}% (from {first_value:g} to {last_value:g} {unit}) over the past {span}."
    return f"{lab_name} has been stable around {last_value:g} {unit} over the past {span}."


def analyze_lab_trends(
    lab_results: Sequence[MergedLabResult],
    stable_threshold_percent: float = DEFAULT_STABLE_THRESHOLD_PERCENT,
) -> list[LabTrend]:
    """One trend per group with at least two numeric, dated readings.

    Returns:
        list[LabTrend]: Sorted by absolute percent change, largest first
    """
    groups: dict[str, list[tuple]] = {}
    for lab in lab_results:
        value = lab.numeric_value
        when = parse_clinical_datetime(lab.effective_date)
        if value is None or when is None:
            continue
        groups.setdefault(group_key(lab), []).append((when, value, lab))

    trends: list[LabTrend] = []
    for readings in groups.values():
        if len(readings) < 2:
            continue
        readings.sort(key=lambda r: r[0])
        first_when, first_value, first = readings[0]
        last_when, last_value, last = readings[-1]
        unit = last.unit or first.unit or ""

        change = (last_value - first_value) / abs(first_value) * 100 if first_value != 0 else 0.0
        if abs(change) < stable_threshold_percent:
            direction = TrendDirection.STABLE
        elif change > 0:
            direction = TrendDirection.RISING
        else:
            direction = TrendDirection.FALLING

        span_days = abs((last_when - first_when).total_seconds()) / SECONDS_PER_DAY

        trends.append(LabTrend(
            lab_name=last.name,
            code=primary_code(last),
            direction=direction,
            change_percent=round(change, 1),
            reading_count=len(readings),
            first_reading=TrendReading(value=first_value, date=first.effective_date),
            last_reading=TrendReading(value=last_value, date=last.effective_date),
            span_days=round(span_days),
            message=build_trend_message(
                last.name, direction, change, first_value, last_value, unit, span_days
            ),
        ))

    trends.sort(key=lambda t: abs(t.change_percent), reverse=True)
    return trends
