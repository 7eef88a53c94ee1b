"""
Format detection for free-form data input.

Runs an ordered battery of independent checks over the text. Each check may
propose one or more candidate formats with a fixed confidence; the highest
confidence wins and exact ties go to the check listed first.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from app.schemas.series import DataType, FormatDetection, InputFormat

logger = logging.getLogger(__name__)

LETTERS = "A-Za-zА-Яа-яёЁ"
# Digits with optional thousands or decimal separators, at least one digit
NUMBER = r"[\d,.]*\d[\d,.]*"

LINE_SPLIT = re.compile(r"[\n\r]+")
ROW_SPLIT = re.compile(r"[\s,\t]+", re.ASCII)
SLASH_SPLIT = re.compile(r"\s*/\s*", re.ASCII)
ITEM_SPLIT = re.compile(r"[,;\s]+", re.ASCII)
NUMBER_TOKEN = re.compile(NUMBER, re.ASCII)
FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)", re.ASCII)

PAIR_AT_END = re.compile(rf"([{LETTERS}\s]+?)\s*({NUMBER})\s*\Z", re.ASCII)
WORD_NUMBER = re.compile(rf"([{LETTERS}]+)\s+({NUMBER})", re.ASCII)

KEYVALUE_PATTERNS = (
    ("colon", re.compile(rf"([{LETTERS}0-9\s_-]+):\s*({NUMBER})\s*%?", re.ASCII)),
    ("equals", re.compile(rf"([{LETTERS}0-9\s_-]+)\s*=\s*({NUMBER})\s*%?", re.ASCII)),
)

PROSE_PATTERNS = (
    re.compile(rf"(\d+)\s+(?:of|for|in|on)\s+([{LETTERS}]+)", re.ASCII | re.IGNORECASE),
    re.compile(
        rf"([{LETTERS}]+)\s+(?:was|were|is|are|had|has|got|sold|bought|made)\s+(\d+)",
        re.ASCII | re.IGNORECASE,
    ),
    re.compile(rf"sold\s+(\d+)\s+([{LETTERS}]+)", re.ASCII | re.IGNORECASE),
)

TIME_PATTERNS = tuple(
    re.compile(p, re.ASCII | re.IGNORECASE)
    for p in (
        r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\b",
        r"\b(january|february|march|april|may|june|july|august|september|october|november|december)\b",
        r"\b(q1|q2|q3|q4)\b",
        r"\b(mon|tue|wed|thu|fri|sat|sun)\b",
        r"\b(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
        r"\b20[0-9]{2}\b",
        r"\b(week|month|year|quarter|day)\b",
    )
)
PERCENT_WORDS = re.compile(r"\b(percent|percentage)\b", re.ASCII | re.IGNORECASE)
CURRENCY_SYMBOLS = re.compile(r"[$€£¥₽₴]")
CURRENCY_WORDS = re.compile(r"\b(dollar|euro|pound|yen|usd|eur|gbp)\b", re.ASCII | re.IGNORECASE)
COMPARISON_WORDS = re.compile(r"\b(vs|versus|compared|ratio)\b", re.ASCII | re.IGNORECASE)


def parse_float(value: str) -> float | None:
    """Leading numeric prefix of a string, like JavaScript's parseFloat.

    Returns None where parseFloat would give NaN.
    """
    match = FLOAT_PREFIX.match(value)
    if not match:
        return None
    return float(match.group(1))


def parse_number(token: str) -> float | None:
    """parse_float with thousands separators removed."""
    return parse_float(token.replace(",", ""))


def is_text(token: str) -> bool:
    return parse_float(token) is None


def split_lines(text: str) -> list[str]:
    return [line for line in LINE_SPLIT.split(text) if line.strip()]


@dataclass(frozen=True)
class FormatCheck:
    """One detection strategy: text and its non-blank lines in, candidates out."""
    format: InputFormat
    run: Callable[[str, list[str]], list[FormatDetection]]


def _candidate(fmt: InputFormat, confidence: float, hints: dict[str, Any]) -> FormatDetection:
    return FormatDetection(format=fmt, confidence=confidence, hints=hints)


def check_json(text: str, lines: list[str]) -> list[FormatDetection]:
    if not text.startswith(("{", "[")):
        return []
    try:
        json.loads(text)
    except (ValueError, RecursionError):
        return [_candidate(InputFormat.JSON, 0.3, {"valid": False, "error": "Invalid JSON"})]
    return [_candidate(InputFormat.JSON, 0.95, {"valid": True})]


def check_row_headers(text: str, lines: list[str]) -> list[FormatDetection]:
    """item1 item2 item3 / 1 2 3 on two lines."""
    if len(lines) != 2:
        return []
    headers = [w for w in ROW_SPLIT.split(lines[0].strip()) if w]
    values = [n for n in (parse_number(s) for s in ROW_SPLIT.split(lines[1].strip())) if n is not None]

    if (
        len(headers) >= 2
        and len(values) >= 2
        and all(is_text(w) for w in headers)
        and len(headers) == len(values)
    ):
        return [_candidate(InputFormat.ROW_HEADERS, 0.92, {"headers": headers, "values": values})]
    return []


def check_mixed_separator(text: str, lines: list[str]) -> list[FormatDetection]:
    """A,B,C / 10,20,30"""
    parts = SLASH_SPLIT.split(text)
    if len(parts) != 2:
        return []
    labels = [i for i in ITEM_SPLIT.split(parts[0]) if i]
    raw_values = [i for i in ITEM_SPLIT.split(parts[1]) if i]

    labels_are_text = all(is_text(i.replace(",", "")) for i in labels)
    values_are_numbers = all(parse_number(i) is not None for i in raw_values)
    if len(labels) >= 2 and labels_are_text and values_are_numbers and len(labels) == len(raw_values):
        return [_candidate(
            InputFormat.MIXED_SEPARATOR,
            0.88,
            {"labels": labels, "values": [parse_number(v) for v in raw_values]},
        )]
    return []


def check_pipe_slash(text: str, lines: list[str]) -> list[FormatDetection]:
    """Product | Sales / Apple 100 / Orange 200"""
    if "/" not in text or ("|" not in text and ":" not in text):
        return []
    segments = [s for s in SLASH_SPLIT.split(text) if s]
    if len(segments) < 2:
        return []

    pairs = []
    for segment in segments:
        match = PAIR_AT_END.search(segment)
        if not match:
            continue
        label = match.group(1).strip()
        value = parse_number(match.group(2))
        if label and value is not None:
            pairs.append({"label": label, "value": value})

    if len(pairs) >= 2:
        return [_candidate(InputFormat.PIPE_SLASH, 0.85, {"pairs": pairs})]
    return []


def check_csv(text: str, lines: list[str]) -> list[FormatDetection]:
    if len(lines) < 2:
        return []
    for delimiter in (",", "\t", ";", "|"):
        counts = [line.count(delimiter) for line in lines]
        if all(c > 0 and c == counts[0] for c in counts):
            return [_candidate(
                InputFormat.CSV,
                0.85,
                {"delimiter": delimiter, "rows": len(lines), "cols": counts[0] + 1},
            )]
    return []


def check_keyvalue(text: str, lines: list[str]) -> list[FormatDetection]:
    """Label: Value or Label = Value, at least two of them."""
    found = []
    for kind, pattern in KEYVALUE_PATTERNS:
        matches = [m for m in pattern.finditer(text) if parse_number(m.group(2)) is not None]
        if len(matches) >= 2:
            found.append(_candidate(InputFormat.KEYVALUE, 0.9, {
                "type": kind,
                "pairs": len(matches),
                "has_percent": "%" in text,
                "sample": [{"label": m.group(1).strip(), "value": m.group(2)} for m in matches[:3]],
            }))
    return found


def check_table(text: str, lines: list[str]) -> list[FormatDetection]:
    if "|" not in text:
        return []
    rows = [line for line in lines if "|" in line]
    if rows:
        return [_candidate(InputFormat.TABLE, 0.8, {"rows": len(rows)})]
    return []


def check_prose(text: str, lines: list[str]) -> list[FormatDetection]:
    """we sold 10 of X and 20 of Y"""
    for pattern in PROSE_PATTERNS:
        matches = list(pattern.finditer(text))
        if len(matches) >= 2:
            return [_candidate(InputFormat.PROSE, 0.7, {
                "pattern": pattern.pattern,
                "matches": [
                    {
                        "label": m.group(1) if is_text(m.group(1)) else m.group(2),
                        "value": m.group(2) if is_text(m.group(1)) else m.group(1),
                    }
                    for m in matches
                ],
            })]
    return []


def check_natural(text: str, lines: list[str]) -> list[FormatDetection]:
    matches = [m for m in WORD_NUMBER.finditer(text) if parse_number(m.group(2)) is not None]
    if len(matches) >= 2:
        return [_candidate(InputFormat.NATURAL, 0.6, {
            "pairs": len(matches),
            "sample": [{"word": m.group(1), "number": m.group(2)} for m in matches[:3]],
        })]
    return []


def check_numbers(text: str, lines: list[str]) -> list[FormatDetection]:
    numbers = NUMBER_TOKEN.findall(text)
    if len(numbers) >= 2:
        return [_candidate(InputFormat.NUMBERS, 0.4, {"count": len(numbers), "values": numbers[:5]})]
    return []


DEFAULT_CHECKS = (
    FormatCheck(InputFormat.JSON, check_json),
    FormatCheck(InputFormat.ROW_HEADERS, check_row_headers),
    FormatCheck(InputFormat.MIXED_SEPARATOR, check_mixed_separator),
    FormatCheck(InputFormat.PIPE_SLASH, check_pipe_slash),
    FormatCheck(InputFormat.CSV, check_csv),
    FormatCheck(InputFormat.KEYVALUE, check_keyvalue),
    FormatCheck(InputFormat.TABLE, check_table),
    FormatCheck(InputFormat.PROSE, check_prose),
    FormatCheck(InputFormat.NATURAL, check_natural),
    FormatCheck(InputFormat.NUMBERS, check_numbers),
)


def classify_data_type(text: str, hints: dict[str, Any]) -> DataType:
    """Classify the raw text, independent of which format won."""
    lower = text.lower()

    if any(p.search(lower) for p in TIME_PATTERNS):
        return DataType.TIME_SERIES
    if "%" in text or PERCENT_WORDS.search(lower):
        return DataType.PERCENTAGE
    if CURRENCY_SYMBOLS.search(text) or CURRENCY_WORDS.search(lower):
        return DataType.CURRENCY
    if COMPARISON_WORDS.search(lower):
        return DataType.COMPARISON
    if hints.get("labels") or hints.get("headers") or hints.get("pairs"):
        return DataType.CATEGORICAL
    return DataType.NUMERIC


class FormatDetector:
    """Picks the most likely structured format of a piece of raw text."""

    def __init__(self, checks: tuple[FormatCheck, ...] | list[FormatCheck] = DEFAULT_CHECKS):
        self.checks = tuple(checks)

    def candidates(self, text: str) -> list[FormatDetection]:
        """Every candidate proposed by the checks, in check order."""
        if not text or not isinstance(text, str):
            return []
        stripped = text.strip()
        lines = split_lines(stripped)
        found: list[FormatDetection] = []
        for check in self.checks:
            found.extend(check.run(stripped, lines))
        return found

    def detect(self, text: str) -> FormatDetection:
        if not isinstance(text, str):
            text = ""
        found = self.candidates(text)

        if found:
            # max() keeps the first of equal keys, so earlier checks win ties
            best = max(found, key=lambda c: c.confidence)
        else:
            best = FormatDetection(format=InputFormat.UNKNOWN, confidence=0, hints={})

        data_type = classify_data_type(text.strip(), best.hints)
        return best.model_copy(update={"data_type": data_type})
