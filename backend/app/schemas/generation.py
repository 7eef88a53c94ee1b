from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class ApiError(BaseModel):
    code: str
    message: str
    status: int | None = None
    retryable: bool = False
    request_id: str | None = None
    details: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class GenerationOptions(BaseModel):
    temperature: float | None = None
    max_tokens: int | None = None
    enable_cache: bool | None = None
    enable_feedback: bool | None = None
    estimated_duration_ms: int | None = None


class GenerationRequest(BaseModel):
    prompt: str
    system_prompt: str | None = None
    template_id: str | None = None
    template_params: dict[str, Any] | None = None
    options: GenerationOptions = Field(default_factory=GenerationOptions)


class ResponseMetadata(BaseModel):
    request_id: str
    cached: bool = False
    processing_time_ms: float = 0
    tokens_used: int | None = None
    confidence: float = 0


class GenerationResponse(BaseModel):
    success: bool
    data: dict[str, Any] | None = None
    error: ApiError | None = None
    metadata: ResponseMetadata


class PartialResultModel(BaseModel):
    id: str
    timestamp: float
    data: Any = None
    confidence: float
    is_complete: bool = False


class RequestSnapshot(BaseModel):
    id: str
    type: str
    status: str
    progress: float
    current_step: str
    steps: list[str]
    partial_results: list[PartialResultModel] = []
    error: str | None = None
    started_at: float
    ended_at: float | None = None
