from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class InputFormat(str, Enum):
    JSON = "json"
    ROW_HEADERS = "row-headers"
    MIXED_SEPARATOR = "mixed-separator"
    PIPE_SLASH = "pipe-slash"
    CSV = "csv"
    KEYVALUE = "keyvalue"
    TABLE = "table"
    PROSE = "prose"
    NATURAL = "natural"
    NUMBERS = "numbers"
    UNKNOWN = "unknown"


class DataType(str, Enum):
    TIME_SERIES = "time-series"
    PERCENTAGE = "percentage"
    CURRENCY = "currency"
    COMPARISON = "comparison"
    CATEGORICAL = "categorical"
    NUMERIC = "numeric"


class FormatDetection(BaseModel):
    format: InputFormat
    confidence: float = Field(ge=0, le=1)
    hints: dict[str, Any] = {}
    data_type: DataType = DataType.NUMERIC


class SeriesMetadata(BaseModel):
    # An InputFormat value, or "fallback" / "sample"
    format: str
    confidence: float
    data_type: DataType | None = None
    original_length: int = 0


class ParsedSeries(BaseModel):
    success: bool
    labels: list[str]
    data: list[float]
    title: str | None = None
    is_percentage: bool | None = None
    data_type: DataType | None = None
    warning: str | None = None
    metadata: SeriesMetadata


class ChartTypeSuggestion(BaseModel):
    type: str
    reason: str
