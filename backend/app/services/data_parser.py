"""
Series parser: extracts a label/value series from messy user input.

Handles JSON, CSV, tables, key-value pairs, row headers, mixed separators
and prose:
- "item1 item2 item3 \\n 1 2 3"          (row headers + values)
- "A,B,C / 10,20,30"                     (mixed separators)
- "Product | Sales / Apple 100 / Orange 200"
- "we sold 10 of X and 20 of Y"          (prose)

Parsing never raises. Input that yields no usable series degrades to
synthetic labels over the numbers found, or to placeholder sample data.
"""
import json
import logging
import re
from typing import Any, Callable

from app.exceptions import ParseError
from app.schemas.series import (
    ChartTypeSuggestion,
    DataType,
    FormatDetection,
    InputFormat,
    ParsedSeries,
    SeriesMetadata,
)
from app.services.format_detector import (
    ITEM_SPLIT,
    KEYVALUE_PATTERNS,
    LETTERS,
    NUMBER,
    NUMBER_TOKEN,
    PAIR_AT_END,
    ROW_SPLIT,
    SLASH_SPLIT,
    FormatDetector,
    is_text,
    parse_float,
    parse_number,
    split_lines,
)

logger = logging.getLogger(__name__)

MAX_FALLBACK_POINTS = 8

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
QUARTERS = ["Q1", "Q2", "Q3", "Q4"]
REGIONS = ["North", "South", "East", "West", "Central", "Northeast"]

SAMPLE_LABELS = ["Category A", "Category B", "Category C", "Category D"]
SAMPLE_DATA = [25.0, 35.0, 20.0, 20.0]
SAMPLE_WARNING = "Could not parse input. Showing sample data."

# Label fragments that mark a time axis
TIME_TOKENS = ("jan", "feb", "mar", "q1", "q2", "mon", "2023", "2024", "2025")

PAIR_AT_START = re.compile(rf"^({NUMBER})\s+([{LETTERS}\s]+)$", re.ASCII)
PROSE_EXTRACTORS = (
    (re.compile(rf"(\d+)\s+(?:of|for)\s+([{LETTERS}]+)", re.ASCII | re.IGNORECASE), 2, 1),
    (re.compile(rf"([{LETTERS}]+)\s+(?:was|were|is|are|had|has)\s+(\d+)", re.ASCII | re.IGNORECASE), 1, 2),
    (re.compile(rf"sold\s+(\d+)\s+([{LETTERS}]+)", re.ASCII | re.IGNORECASE), 2, 1),
    (re.compile(rf"bought\s+(\d+)\s+([{LETTERS}]+)", re.ASCII | re.IGNORECASE), 2, 1),
    (re.compile(rf"made\s+(\d+)\s+([{LETTERS}]+)", re.ASCII | re.IGNORECASE), 2, 1),
)
NATURAL_PATTERNS = (
    re.compile(rf"([{LETTERS}]+)\s+(?:was|were|is|are|had|has)?\s*({NUMBER})", re.ASCII | re.IGNORECASE),
    re.compile(rf"([{LETTERS}]+)\s+({NUMBER})", re.ASCII),
)
WORD = re.compile(rf"[{LETTERS}]{{2,}}")
QUOTES = re.compile(r"^[\"']|[\"']$")
TABLE_EDGES = re.compile(r"^\||\|$")
NON_NUMERIC = re.compile(r"[^0-9.-]")

TIME_WORDS = re.compile(r"month|quarter|year", re.IGNORECASE)
PRODUCT_WORDS = re.compile(r"product|item", re.IGNORECASE)
REGION_WORDS = re.compile(r"region|country", re.IGNORECASE)

Series = dict[str, Any]


def _numeric_pairs(pairs) -> list[tuple[str, float]]:
    """Keep (label, raw) pairs whose raw value is a number."""
    numeric = []
    for label, raw in pairs:
        value = parse_number(str(raw))
        if value is not None:
            numeric.append((label, value))
    return numeric


def _to_number(value: Any) -> float:
    """Loose numeric coercion for JSON values; raises on non-numeric text."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    return float(str(value).replace(",", "").strip() or 0)


def _series(labels: list, data: list, title: str | None = None, **extra) -> Series:
    return {"labels": [str(label) for label in labels], "data": list(data), "title": title, **extra}


def generate_labels(text: str, count: int) -> list[str]:
    """Topic-flavoured placeholder labels, exactly `count` of them."""
    if TIME_WORDS.search(text):
        if count <= len(QUARTERS):
            return QUARTERS[:count]
        return [MONTHS[i % len(MONTHS)] for i in range(count)]

    if PRODUCT_WORDS.search(text):
        return [f"Product {i + 1}" for i in range(count)]

    if REGION_WORDS.search(text):
        return [REGIONS[i] if i < len(REGIONS) else f"Region {i + 1}" for i in range(count)]

    return [f"Category {chr(65 + i)}" for i in range(count)]


def suggest_chart_type(labels: list[str], data: list[float]) -> ChartTypeSuggestion:
    """First matching rule wins."""
    count = len(data)
    total = sum(data)
    all_positive = all(d >= 0 for d in data)
    is_percentage = abs(total - 100) < 5 or all(0 <= d <= 1 for d in data)

    is_time_series = any(
        token in str(label).lower() for label in labels for token in TIME_TOKENS
    )

    if is_time_series:
        return ChartTypeSuggestion(type="line", reason="Time series data detected")
    if is_percentage and all_positive and count <= 6:
        return ChartTypeSuggestion(type="doughnut", reason="Percentage distribution")
    if count <= 4 and all_positive:
        return ChartTypeSuggestion(type="pie", reason="Small category count")
    if count > 10:
        return ChartTypeSuggestion(type="line", reason="Many data points")
    return ChartTypeSuggestion(type="bar", reason="Default comparison chart")


class SeriesParser:
    """Turns raw text into a ParsedSeries using the detected format."""

    def __init__(self, detector: FormatDetector | None = None):
        self.detector = detector or FormatDetector()
        self.parsers: dict[InputFormat, Callable[[str, dict], Series | None]] = {
            InputFormat.JSON: self._parse_json,
            InputFormat.ROW_HEADERS: self._parse_row_headers,
            InputFormat.MIXED_SEPARATOR: self._parse_mixed_separator,
            InputFormat.PIPE_SLASH: self._parse_pipe_slash,
            InputFormat.CSV: self._parse_csv,
            InputFormat.KEYVALUE: self._parse_keyvalue,
            InputFormat.TABLE: self._parse_table,
            InputFormat.PROSE: self._parse_prose,
            InputFormat.NATURAL: self._parse_natural,
            InputFormat.NUMBERS: self._parse_numbers,
        }

    def detect(self, text: str) -> FormatDetection:
        return self.detector.detect(text)

    def parse(self, text: str) -> ParsedSeries:
        if not isinstance(text, str):
            text = ""
        detection = self.detector.detect(text)
        text = text.strip()

        logger.info(
            f"Detected format: {detection.format.value} ({detection.confidence * 100:.0f}%)"
        )

        parser = self.parsers.get(detection.format)
        if parser:
            try:
                result = parser(text, detection.hints)
            except Exception as e:
                logger.warning(f"{detection.format.value} parser failed: {e}")
                result = None

            if result and self._is_valid(result):
                return ParsedSeries(
                    success=True,
                    labels=result["labels"],
                    data=result["data"],
                    title=result.get("title"),
                    is_percentage=result.get("is_percentage"),
                    data_type=detection.data_type,
                    metadata=SeriesMetadata(
                        format=detection.format.value,
                        confidence=detection.confidence,
                        data_type=detection.data_type,
                        original_length=len(text),
                    ),
                )

        return self._fallback(text, detection.data_type)

    def suggest_chart_type(self, labels: list[str], data: list[float]) -> ChartTypeSuggestion:
        return suggest_chart_type(labels, data)

    @staticmethod
    def _is_valid(result: Series) -> bool:
        labels, data = result.get("labels") or [], result.get("data") or []
        return len(labels) == len(data) and len(data) >= 2

    # === Format parsers ===

    def _parse_json(self, text: str, hints: dict) -> Series | None:
        value = json.loads(text)

        # {"labels": [...], "data": [...]}
        if isinstance(value, dict) and value.get("labels") and value.get("data"):
            return _series(
                value["labels"],
                [_to_number(v) for v in value["data"]],
                title=value.get("title") or None,
            )

        if isinstance(value, list) and value:
            first = value[0]

            # [{"label": "A", "value": 10}, ...]
            if isinstance(first, dict) and any(k in first for k in ("label", "name", "category")):
                items = [item for item in value if isinstance(item, dict)]
                return _series(
                    [item.get("label") or item.get("name") or item.get("category") or "" for item in items],
                    [_to_number(item.get("value") or item.get("amount") or item.get("count") or 0) for item in items],
                )

            # [["A", "B"], [10, 20]]
            if len(value) >= 2 and isinstance(value[0], list) and isinstance(value[1], list):
                return _series(value[0], [_to_number(v) for v in value[1]])

        # {"A": 10, "B": 20}
        if isinstance(value, dict):
            entries = [
                (k, v) for k, v in value.items()
                if isinstance(v, (int, float)) and not isinstance(v, bool)
            ]
            if len(entries) >= 2:
                return _series([k for k, _ in entries], [float(v) for _, v in entries])

        return None

    def _parse_row_headers(self, text: str, hints: dict) -> Series | None:
        if hints.get("headers") and hints.get("values"):
            return _series(hints["headers"], hints["values"])

        lines = split_lines(text)
        if len(lines) != 2:
            return None
        headers = [w for w in ROW_SPLIT.split(lines[0].strip()) if w]
        values = [n for n in (parse_number(s) for s in ROW_SPLIT.split(lines[1].strip())) if n is not None]
        if len(headers) >= 2 and len(headers) == len(values):
            return _series(headers, values)
        return None

    def _parse_mixed_separator(self, text: str, hints: dict) -> Series | None:
        if hints.get("labels") and hints.get("values"):
            return _series(hints["labels"], hints["values"])

        parts = SLASH_SPLIT.split(text)
        if len(parts) != 2:
            return None
        labels = [i for i in ITEM_SPLIT.split(parts[0]) if i]
        values = [n for n in (parse_number(v) for v in ITEM_SPLIT.split(parts[1]) if v) if n is not None]
        if len(labels) >= 2 and len(values) >= 2:
            size = min(len(labels), len(values))
            return _series(labels[:size], values[:size])
        return None

    def _parse_pipe_slash(self, text: str, hints: dict) -> Series | None:
        pairs = hints.get("pairs")
        if not pairs or len(pairs) < 2:
            pairs = []
            for segment in (s for s in SLASH_SPLIT.split(text) if s):
                # "Apple 100" or "100 Apple"
                match = PAIR_AT_END.search(segment) or PAIR_AT_START.search(segment)
                if not match:
                    continue
                number_first = not is_text(match.group(1).replace(",", ""))
                label, raw = (match.group(2), match.group(1)) if number_first else match.groups()
                value = parse_number(raw)
                if label.strip() and value is not None:
                    pairs.append({"label": label.strip(), "value": value})

        if len(pairs) >= 2:
            return _series([p["label"] for p in pairs], [p["value"] for p in pairs])
        return None

    def _parse_prose(self, text: str, hints: dict) -> Series | None:
        matches = hints.get("matches")
        pairs = _numeric_pairs((m["label"], m["value"]) for m in matches or [])
        if len(pairs) >= 2:
            return _series([label for label, _ in pairs], [value for _, value in pairs])

        for pattern, label_group, value_group in PROSE_EXTRACTORS:
            found = list(pattern.finditer(text))
            if len(found) >= 2:
                return _series(
                    [m.group(label_group) for m in found],
                    [float(m.group(value_group)) for m in found],
                )
        return None

    def _parse_csv(self, text: str, hints: dict) -> Series | None:
        delimiter = hints.get("delimiter") or ","
        rows = [
            [QUOTES.sub("", cell.strip()) for cell in line.split(delimiter)]
            for line in split_lines(text)
        ]
        if len(rows) < 2:
            return None

        header = rows[0]
        header_is_text = all(is_text(cell) for cell in header)

        # Two text columns: one label/value pair per row.
        # A wider text header is read as a single horizontal data row.
        if header_is_text and len(header) == 2:
            pairs = []
            for row in rows[1:]:
                value = parse_float(row[1]) if len(row) > 1 else None
                if value is not None:
                    pairs.append((row[0], value))
            if not pairs:
                raise ParseError("CSV value column holds no numbers")
            return _series([label for label, _ in pairs], [value for _, value in pairs])

        if header_is_text:
            values = [parse_float(v) for v in rows[1][1:]]
            if all(v is None for v in values):
                raise ParseError("CSV data row holds no numbers")
            return _series(
                header[1:],
                [v or 0.0 for v in values],
                title=rows[1][0] or None,
            )

        return None

    def _parse_keyvalue(self, text: str, hints: dict) -> Series | None:
        for _kind, pattern in KEYVALUE_PATTERNS:
            pairs = _numeric_pairs((m.group(1).strip(), m.group(2)) for m in pattern.finditer(text))
            if len(pairs) >= 2:
                return _series(
                    [label for label, _ in pairs],
                    [value for _, value in pairs],
                    is_percentage=bool(hints.get("has_percent")) or "%" in text,
                )
        return None

    def _parse_table(self, text: str, hints: dict) -> Series | None:
        results = []
        for line in split_lines(text):
            if "|" not in line:
                continue
            cleaned = TABLE_EDGES.sub("", line).strip()
            parts = [p.strip() for p in cleaned.split("|") if p.strip()]
            if len(parts) < 2:
                continue
            value = parse_float(NON_NUMERIC.sub("", parts[-1]))
            if value is not None:
                results.append((parts[0], value))

        if len(results) >= 2:
            return _series([label for label, _ in results], [value for _, value in results])
        return None

    def _parse_natural(self, text: str, hints: dict) -> Series | None:
        for pattern in NATURAL_PATTERNS:
            pairs = _numeric_pairs((m.group(1), m.group(2)) for m in pattern.finditer(text))
            if len(pairs) >= 2:
                return _series([label for label, _ in pairs], [value for _, value in pairs])
        return None

    def _parse_numbers(self, text: str, hints: dict) -> Series | None:
        numbers = [n for n in (parse_number(t) for t in NUMBER_TOKEN.findall(text)) if n is not None and n > 0]
        if len(numbers) < 2:
            return None

        numbers = numbers[:MAX_FALLBACK_POINTS]
        words = WORD.findall(text)
        if len(words) >= len(numbers):
            labels = words[:len(numbers)]
        else:
            labels = generate_labels(text, len(numbers))
        return _series(labels, numbers)

    # === Fallback ===

    def _fallback(self, text: str, data_type: DataType = DataType.NUMERIC) -> ParsedSeries:
        numbers = [n for n in (parse_number(t) for t in NUMBER_TOKEN.findall(text)) if n is not None]

        if len(numbers) >= 2:
            numbers = numbers[:MAX_FALLBACK_POINTS]
            return ParsedSeries(
                success=True,
                labels=generate_labels(text, len(numbers)),
                data=numbers,
                title="Data Visualization",
                data_type=data_type,
                metadata=SeriesMetadata(
                    format="fallback",
                    confidence=0.3,
                    data_type=data_type,
                    original_length=len(text),
                ),
            )

        logger.warning("No numeric data found, returning sample series")
        return ParsedSeries(
            success=False,
            labels=list(SAMPLE_LABELS),
            data=list(SAMPLE_DATA),
            title="Sample Data",
            data_type=data_type,
            warning=SAMPLE_WARNING,
            metadata=SeriesMetadata(format="sample", confidence=0, original_length=len(text)),
        )
