"""
Unit tests for format detection.

Run: pytest tests/unit/test_format_detector.py -v
"""
import pytest

from app.schemas.series import DataType, FormatDetection, InputFormat
from app.services.format_detector import (
    FormatCheck,
    FormatDetector,
    classify_data_type,
    is_text,
    parse_float,
    parse_number,
)


@pytest.fixture
def detector():
    return FormatDetector()


class TestNumberHelpers:
    """Tests for leading-number parsing."""

    def test_parse_float_reads_leading_number(self):
        assert parse_float("12.5kg") == 12.5
        assert parse_float("  -3") == -3.0
        assert parse_float(".5") == 0.5

    def test_parse_float_returns_none_for_text(self):
        assert parse_float("abc") is None
        assert parse_float("") is None

    def test_parse_number_strips_thousands(self):
        assert parse_number("1,234") == 1234.0

    def test_is_text(self):
        assert is_text("Apples")
        assert not is_text("42")


class TestDetectFormats:
    """One representative input per format."""

    def test_empty_is_unknown(self, detector):
        result = detector.detect("")
        assert result.format == InputFormat.UNKNOWN
        assert result.confidence == 0

    def test_whitespace_is_unknown(self, detector):
        assert detector.detect("   \n  ").format == InputFormat.UNKNOWN

    def test_non_string_is_unknown(self, detector):
        assert detector.detect(None).format == InputFormat.UNKNOWN

    def test_valid_json(self, detector):
        result = detector.detect('{"labels": ["X", "Y"], "data": [1, 2]}')
        assert result.format == InputFormat.JSON
        assert result.confidence == 0.95
        assert result.hints["valid"] is True

    def test_invalid_json_is_low_confidence(self, detector):
        result = detector.detect("{abc")
        assert result.format == InputFormat.JSON
        assert result.confidence == 0.3
        assert result.hints["valid"] is False

    def test_row_headers(self, detector):
        result = detector.detect("Apples Oranges Pears\n10 20 30")
        assert result.format == InputFormat.ROW_HEADERS
        assert result.confidence == 0.92
        assert result.hints["headers"] == ["Apples", "Oranges", "Pears"]
        assert result.hints["values"] == [10.0, 20.0, 30.0]

    def test_comma_rows_prefer_row_headers_over_csv(self, detector):
        """Both checks match; row headers carries the higher confidence."""
        formats = {c.format for c in detector.candidates("A,B,C\n10,20,30")}
        assert {InputFormat.ROW_HEADERS, InputFormat.CSV} <= formats

        result = detector.detect("A,B,C\n10,20,30")
        assert result.format == InputFormat.ROW_HEADERS

    def test_mixed_separator(self, detector):
        result = detector.detect("A,B,C / 10,20,30")
        assert result.format == InputFormat.MIXED_SEPARATOR
        assert result.confidence == 0.88
        assert result.hints["labels"] == ["A", "B", "C"]
        assert result.hints["values"] == [10.0, 20.0, 30.0]

    def test_pipe_slash(self, detector):
        result = detector.detect("Product | Sales / Apple 100 / Orange 200")
        assert result.format == InputFormat.PIPE_SLASH
        assert result.hints["pairs"] == [
            {"label": "Apple", "value": 100.0},
            {"label": "Orange", "value": 200.0},
        ]

    def test_keyvalue(self, detector):
        result = detector.detect("Apples: 10\nOranges: 20")
        assert result.format == InputFormat.KEYVALUE
        assert result.confidence == 0.9
        assert result.hints["type"] == "colon"
        assert result.hints["pairs"] == 2

    def test_table(self, detector):
        result = detector.detect("| Alice | 90\nBob | 85")
        assert result.format == InputFormat.TABLE
        assert result.confidence == 0.8

    def test_prose(self, detector):
        result = detector.detect("Sales were 100 in January, 200 in February, and 150 in March")
        assert result.format == InputFormat.PROSE
        assert [m["label"] for m in result.hints["matches"]] == ["January", "February", "March"]

    def test_natural(self, detector):
        result = detector.detect("Jan 100 Feb 200 Mar 150")
        assert result.format == InputFormat.NATURAL
        assert result.confidence == 0.6

    def test_numbers(self, detector):
        result = detector.detect("10 20 30")
        assert result.format == InputFormat.NUMBERS
        assert result.confidence == 0.4

    @pytest.mark.parametrize("text", [
        "Wait ... then ...",
        "Apple: , Banana: .",
        "Hello , world , again ,",
    ])
    def test_punctuation_is_not_a_value(self, detector, text):
        assert detector.candidates(text) == []
        assert detector.detect(text).format == InputFormat.UNKNOWN

    def test_keyvalue_counts_only_numeric_pairs(self, detector):
        result = detector.detect("Apples: 10\nPears: .\nPlums: 30")
        assert result.format == InputFormat.KEYVALUE
        assert result.hints["pairs"] == 2


class TestTieBreaking:
    """Equal confidence goes to the check listed first."""

    def test_pipe_slash_beats_csv_on_tie(self, detector):
        text = "| Apple 100 /\n| Orange 200 /"
        confidences = {c.format: c.confidence for c in detector.candidates(text)}
        assert confidences[InputFormat.PIPE_SLASH] == confidences[InputFormat.CSV]

        assert detector.detect(text).format == InputFormat.PIPE_SLASH

    def test_custom_checks_first_listed_wins(self):
        def propose(fmt):
            return lambda text, lines: [FormatDetection(format=fmt, confidence=0.5)]

        detector = FormatDetector([
            FormatCheck(InputFormat.TABLE, propose(InputFormat.TABLE)),
            FormatCheck(InputFormat.CSV, propose(InputFormat.CSV)),
        ])
        for _ in range(3):
            assert detector.detect("anything").format == InputFormat.TABLE

    def test_detection_is_deterministic(self, detector):
        text = "Apples: 10\nOranges: 20"
        assert detector.detect(text) == detector.detect(text)


class TestDataType:
    """Tests for classify_data_type."""

    def test_time_series(self):
        assert classify_data_type("Q1 10 Q2 20", {}) == DataType.TIME_SERIES
        assert classify_data_type("sales in 2024", {}) == DataType.TIME_SERIES

    def test_percentage(self):
        assert classify_data_type("Share: 40%", {}) == DataType.PERCENTAGE

    def test_currency(self):
        assert classify_data_type("Revenue $100, Costs $50", {}) == DataType.CURRENCY
        assert classify_data_type("100 usd", {}) == DataType.CURRENCY

    def test_comparison(self):
        assert classify_data_type("A vs B", {}) == DataType.COMPARISON

    def test_categorical_from_hints(self):
        assert classify_data_type("A B", {"labels": ["A", "B"]}) == DataType.CATEGORICAL

    def test_numeric_default(self):
        assert classify_data_type("10 20", {}) == DataType.NUMERIC

    def test_detect_attaches_data_type(self, detector):
        assert detector.detect("Jan 100 Feb 200").data_type == DataType.TIME_SERIES
