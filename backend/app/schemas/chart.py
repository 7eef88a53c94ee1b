from typing import Any, Literal

from pydantic import BaseModel, Field

from app.schemas.series import ChartTypeSuggestion, ParsedSeries


ChartType = Literal["bar", "line", "pie", "doughnut", "polarArea", "radar", "scatter"]


class TextRequest(BaseModel):
    text: str


class ParseResponse(BaseModel):
    parsed: ParsedSeries
    suggestion: ChartTypeSuggestion


class ChartRequest(BaseModel):
    input: str = Field(min_length=1)
    chart_type: ChartType | None = None
    skip_ai: bool = False


class ChartResponse(BaseModel):
    success: bool
    chart_type: str | None = None
    config: dict[str, Any] | None = None
    parsed_data: ParsedSeries | None = None
    suggestion: ChartTypeSuggestion | None = None
    used_ai: bool = False
    warning: str | None = None
    error: str | None = None


class AnalyzeRequest(BaseModel):
    prompt: str = ""
    template_id: str | None = None
    template_params: dict[str, Any] | None = None
    enable_cache: bool = True
