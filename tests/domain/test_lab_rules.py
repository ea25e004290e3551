"""
Tests for lab abnormal-flag classification and lab trend analysis.
"""

import pytest

from chart_reconcile.domain.clinical_record import ClinicalCode, LabResult, ReferenceRange
from chart_reconcile.domain.enums import LabFlagStatus, TrendDirection
from chart_reconcile.domain.merged import MergedLabResult, build_merged
from chart_reconcile.domain.rules.lab_flags import analyze_lab_abnormal_flags, classify
from chart_reconcile.domain.rules.lab_trends import analyze_lab_trends

LOINC = "http://loinc.org"


def _lab(source, record_id, name, value, date=None, low=None, high=None, loinc=None, unit="mg/dL"):
    reference = ReferenceRange(low=low, high=high) if low is not None or high is not None else None
    codes = [ClinicalCode(system=LOINC, code=loinc)] if loinc else []
    return build_merged(MergedLabResult, LabResult(
        id=record_id, source=source, name=name, value=value, unit=unit,
        reference_range=reference, effective_date=date, codes=codes,
    ))


class TestClassify:
    """Test value classification against a range."""

    def test_high_boundary(self):
        """Test the critical-high boundary at 1.5x the upper limit."""
        assert classify(149, 70, 100) == LabFlagStatus.HIGH
        assert classify(150, 70, 100) == LabFlagStatus.CRITICAL_HIGH

    def test_low_boundary(self):
        """Test the critical-low boundary at the lower limit divided by 1.5."""
        assert classify(60, 70, 100) == LabFlagStatus.LOW
        assert classify(45, 70, 100) == LabFlagStatus.CRITICAL_LOW

    def test_inclusive_normal(self):
        """Test that values on the limits are normal."""
        assert classify(70, 70, 100) == LabFlagStatus.NORMAL
        assert classify(100, 70, 100) == LabFlagStatus.NORMAL

    def test_custom_factor(self):
        """Test a tighter critical factor."""
        assert classify(125, 70, 100, critical_factor=1.2) == LabFlagStatus.CRITICAL_HIGH


class TestAnalyzeLabAbnormalFlags:
    """Test flag generation over merged lab results."""

    def test_source_range_used(self, epic):
        """Test that a reported range takes precedence."""
        flags = analyze_lab_abnormal_flags([_lab(epic, "l1", "Glucose", 150, low=70, high=100)])

        assert len(flags) == 1
        assert flags[0].status == LabFlagStatus.CRITICAL_HIGH
        assert flags[0].range_from_source
        assert "critically high at 150 mg/dL" in flags[0].message
        assert "(normal range: 70-100 mg/dL)" in flags[0].message

    def test_standard_range_fallback(self, epic):
        """Test that a known test name without a range uses the adult standard."""
        flags = analyze_lab_abnormal_flags([_lab(epic, "l1", "Hemoglobin A1c", 7.2, unit="%")])

        assert flags[0].status == LabFlagStatus.HIGH
        assert not flags[0].range_from_source
        assert flags[0].reference_range.high == 5.6

    def test_unknown_and_textual_skipped(self, epic):
        """Test that text values and unknown tests produce no flag."""
        flags = analyze_lab_abnormal_flags([
            _lab(epic, "l1", "Urine culture", "No growth"),
            _lab(epic, "l2", "Mystery panel", 12),
        ])
        assert flags == []


class TestAnalyzeLabTrends:
    """Test trend direction and grouping."""

    def test_small_change_is_stable(self, epic):
        """Test that a 4% change is stable."""
        trends = analyze_lab_trends([
            _lab(epic, "l1", "Glucose", 100, "2024-01-01", loinc="2345-7"),
            _lab(epic, "l2", "Glucose", 104, "2024-03-01", loinc="2345-7"),
        ])

        assert len(trends) == 1
        assert trends[0].direction == TrendDirection.STABLE
        assert trends[0].change_percent == pytest.approx(4.0)
        assert "stable around 104" in trends[0].message

    def test_rising_and_falling(self, epic):
        """Test both directions with readings given out of order."""
        trends = analyze_lab_trends([
            _lab(epic, "l2", "Glucose", 106, "2024-03-01", loinc="2345-7"),
            _lab(epic, "l1", "Glucose", 100, "2024-01-01", loinc="2345-7"),
            _lab(epic, "l3", "LDL Cholesterol", 160, "2023-01-01"),
            _lab(epic, "l4", "LDL cholesterol", 120, "2024-01-01"),
        ])
        by_name = {t.lab_name.lower(): t for t in trends}

        assert by_name["glucose"].direction == TrendDirection.RISING
        assert by_name["glucose"].first_reading.value == 100
        assert by_name["ldl cholesterol"].direction == TrendDirection.FALLING
        assert by_name["ldl cholesterol"].change_percent == pytest.approx(-25.0)
        assert trends[0].lab_name == "LDL cholesterol"

    def test_single_reading_no_trend(self, epic):
        """Test that one reading is not a trend."""
        assert analyze_lab_trends([_lab(epic, "l1", "Glucose", 100, "2024-01-01")]) == []

    def test_undated_readings_ignored(self, epic):
        """Test that readings without a date are not used."""
        trends = analyze_lab_trends([
            _lab(epic, "l1", "Glucose", 100, "2024-01-01"),
            _lab(epic, "l2", "Glucose", 150),
        ])
        assert trends == []

    def test_threshold_is_configurable(self, epic):
        """Test that a wider stable band absorbs a 6% change."""
        trends = analyze_lab_trends(
            [
                _lab(epic, "l1", "Glucose", 100, "2024-01-01"),
                _lab(epic, "l2", "Glucose", 106, "2024-03-01"),
            ],
            stable_threshold_percent=10.0,
        )
        assert trends[0].direction == TrendDirection.STABLE
