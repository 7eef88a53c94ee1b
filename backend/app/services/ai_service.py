"""
AI Service - chart generation and data analysis through any chat provider.

Every call is wrapped in the request lifecycle (progress, cancellation),
checked against the response cache, retried on transient provider errors
and bounded by a timeout. Failures come back as GenerationResponse objects
with an ApiError; nothing raises to the caller except stream_response.
"""
import json
import logging
import time
from itertools import count
from typing import Any, AsyncIterator

from app.clients.base import BaseChatClient
from app.config import Config
from app.errors import ErrorType
from app.exceptions import AppException, RequestCancelledError
from app.schemas.generation import GenerationRequest, GenerationResponse, ResponseMetadata
from app.services.cache import ResponseCache
from app.services.cancellation import CancelToken, run_cancellable
from app.services.chart_prompt import (
    ANALYSIS_SYSTEM_PROMPT,
    CHART_SYSTEM_PROMPT,
    parse_ai_response,
    parse_analysis_response,
)
from app.services.prompt_templates import PromptTemplateRegistry
from app.services.request_lifecycle import RequestLifecycleManager
from app.services.retry import CircuitBreaker, RetryPolicy

logger = logging.getLogger(__name__)

STREAM_SYSTEM_PROMPT = "Provide responses in valid JSON format."

CACHED_CONFIDENCE = {"chart": 0.9, "analysis": 0.8}
RAW_JSON_CONFIDENCE = 0.95
FENCED_JSON_CONFIDENCE = 0.85
STREAM_PARTIAL_CONFIDENCE = 0.3

START_MESSAGES = {
    "chart": "Generating your chart...",
    "analysis": "Analyzing your data...",
    "default": "Starting streaming response...",
}


class AIService:
    """Provider-agnostic generation with caching, retries and lifecycle tracking."""

    def __init__(
        self,
        client: BaseChatClient | None,
        lifecycle: RequestLifecycleManager | None = None,
        cache: ResponseCache | None = None,
        templates: PromptTemplateRegistry | None = None,
        retry: RetryPolicy | None = None,
        breaker: CircuitBreaker | None = None,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        cache_ttl: float | None = None,
        enable_cache: bool | None = None,
        enable_feedback: bool | None = None,
    ):
        self.client = client
        self.lifecycle = lifecycle
        self.cache = cache
        self.templates = templates or PromptTemplateRegistry()
        self.retry = retry
        self.breaker = breaker
        self.temperature = Config.AI_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or Config.AI_MAX_TOKENS
        self.timeout = timeout or Config.AI_TIMEOUT_SECONDS
        self.cache_ttl = cache_ttl or Config.CACHE_TTL_SECONDS
        self.enable_cache = Config.CACHE_ENABLED if enable_cache is None else enable_cache
        self.enable_feedback = Config.FEEDBACK_ENABLED if enable_feedback is None else enable_feedback

        self._request_counter = count(1)
        self._metrics = {
            "requests": 0,
            "successes": 0,
            "failures": 0,
            "cancellations": 0,
            "cache_hits": 0,
            "tokens_used": 0,
        }

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def new_request_id(self) -> str:
        return f"ds-{next(self._request_counter)}-{int(time.time() * 1000)}"

    async def generate_chart(
        self,
        request: GenerationRequest,
        timeout: float | None = None,
        request_id: str | None = None,
    ) -> GenerationResponse:
        """Chart.js config for the request; `data` is the enhanced config."""
        return await self._generate("chart", request, timeout, request_id)

    async def analyze_data(
        self,
        request: GenerationRequest,
        timeout: float | None = None,
        request_id: str | None = None,
    ) -> GenerationResponse:
        """Summary / insights / recommendations / visualizations for the request."""
        return await self._generate("analysis", request, timeout, request_id)

    async def stream_response(self, request: GenerationRequest) -> AsyncIterator[Any]:
        """
        Stream a completion, yielding each JSON document as soon as it parses.

        Raises:
            AppException: NOT_CONFIGURED, transport errors, REQUEST_CANCELLED
        """
        if self.client is None:
            raise AppException(ErrorType.NOT_CONFIGURED, "AI provider not configured")

        messages = self._messages("default", request)
        request_id = self.new_request_id()
        token = self._start("default", request_id, request)
        options = request.options
        finished = False
        buffer = ""
        self._metrics["requests"] += 1

        try:
            stream = self.client.stream(
                messages,
                self.temperature if options.temperature is None else options.temperature,
                options.max_tokens or self.max_tokens,
            )
            async for delta in stream:
                if token is not None:
                    token.raise_if_aborted()
                buffer += delta
                try:
                    partial = json.loads(buffer)
                except ValueError:
                    continue
                buffer = ""
                if self.lifecycle is not None:
                    self.lifecycle.add_partial_result(request_id, partial, STREAM_PARTIAL_CONFIDENCE)
                yield partial

            finished = True
            self._metrics["successes"] += 1
            if self.lifecycle is not None:
                self.lifecycle.complete_request(request_id)
        except RequestCancelledError:
            finished = True
            self._metrics["cancellations"] += 1
            raise
        except AppException as e:
            finished = True
            self._metrics["failures"] += 1
            if self.lifecycle is not None:
                self.lifecycle.fail_request(request_id, e.message)
            raise
        except Exception as e:
            finished = True
            self._metrics["failures"] += 1
            logger.error(f"Unexpected error in stream {request_id}: {e}")
            if self.lifecycle is not None:
                self.lifecycle.fail_request(request_id, str(e))
            raise
        finally:
            # Consumer stopped iterating early
            if not finished and self.lifecycle is not None:
                self.lifecycle.cancel_request(request_id)

    def get_metrics(self) -> dict:
        return {
            "provider": self.client.provider if self.client else None,
            "model": self.client.model if self.client else None,
            "requests": dict(self._metrics),
            "cache": self.cache.stats() if self.cache else None,
            "circuit_breaker": self.breaker.get_state() if self.breaker else None,
            "active_requests": len(self.lifecycle.get_active_requests()) if self.lifecycle else 0,
        }

    # === Internals ===

    async def _generate(
        self,
        kind: str,
        request: GenerationRequest,
        timeout: float | None,
        request_id: str | None,
    ) -> GenerationResponse:
        request_id = request_id or self.new_request_id()
        started = time.perf_counter()
        token = self._start(kind, request_id, request)
        use_cache = self.cache is not None and self.enable_cache and request.options.enable_cache is not False
        self._metrics["requests"] += 1

        try:
            if token is not None:
                token.raise_if_aborted()

            if use_cache:
                cached = self._cache_get(kind, request)
                if cached is not None:
                    self._metrics["cache_hits"] += 1
                    self._metrics["successes"] += 1
                    logger.info(f"Cache hit for {kind} request {request_id}")
                    if self.lifecycle is not None:
                        self.lifecycle.complete_request(request_id, cached)
                    return self._response(request_id, started, data=cached, cached=True,
                                          confidence=CACHED_CONFIDENCE[kind])

            if self.client is None:
                raise AppException(ErrorType.NOT_CONFIGURED, "AI provider not configured")

            messages = self._messages(kind, request)
            result = await run_cancellable(
                self._call(messages, request, request_id),
                token,
                timeout or self.timeout,
            )

            content = result.get("content") or ""
            if kind == "chart":
                data = parse_ai_response(content)
            else:
                data = parse_analysis_response(content)
            confidence = FENCED_JSON_CONFIDENCE if content.strip().startswith("```") else RAW_JSON_CONFIDENCE

            if use_cache:
                self._cache_set(kind, request, data)

            tokens = result.get("tokens_used")
            self._metrics["successes"] += 1
            self._metrics["tokens_used"] += tokens or 0
            if self.lifecycle is not None:
                self.lifecycle.complete_request(request_id, data)
            return self._response(request_id, started, data=data, tokens_used=tokens, confidence=confidence)

        except RequestCancelledError as e:
            # Already terminal in the lifecycle; not reported as a failure
            self._metrics["cancellations"] += 1
            logger.info(f"{kind.capitalize()} request {request_id} cancelled")
            e.request_id = request_id
            return self._response(request_id, started, error=e)
        except AppException as e:
            self._metrics["failures"] += 1
            logger.warning(f"{kind.capitalize()} request {request_id} failed: {e.error_type.value}: {e.message}")
            if self.lifecycle is not None:
                self.lifecycle.fail_request(request_id, e.message)
            e.request_id = e.request_id or request_id
            return self._response(request_id, started, error=e)
        except Exception as e:
            self._metrics["failures"] += 1
            logger.error(f"Unexpected error in {kind} request {request_id}: {e}")
            if self.lifecycle is not None:
                self.lifecycle.fail_request(request_id, str(e))
            error = AppException(ErrorType.INTERNAL_ERROR, str(e), request_id=request_id)
            return self._response(request_id, started, error=error)

    def _start(self, kind: str, request_id: str, request: GenerationRequest) -> CancelToken | None:
        enabled = request.options.enable_feedback
        if enabled is None:
            enabled = self.enable_feedback
        if self.lifecycle is None or not enabled:
            return None
        return self.lifecycle.start_request(
            request_id,
            type=kind,
            message=START_MESSAGES.get(kind, START_MESSAGES["default"]),
            estimated_duration_ms=request.options.estimated_duration_ms,
        )

    def _messages(self, kind: str, request: GenerationRequest) -> list[dict]:
        if kind == "chart":
            system_prompt = CHART_SYSTEM_PROMPT
        elif kind == "analysis":
            system_prompt = ANALYSIS_SYSTEM_PROMPT
        else:
            system_prompt = STREAM_SYSTEM_PROMPT
        system_prompt = request.system_prompt or system_prompt
        user_prompt = request.prompt

        if request.template_id:
            pair = self.templates.generate_prompt(request.template_id, request.template_params or {})
            if pair is None:
                logger.warning(f"Unknown template '{request.template_id}', using raw prompt")
            else:
                system_prompt, user_prompt = pair.system_prompt, pair.user_prompt

        if not user_prompt or not user_prompt.strip():
            raise AppException(ErrorType.TEMPLATE_ERROR, "Prompt is empty")

        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    async def _call(self, messages: list[dict], request: GenerationRequest, request_id: str) -> dict:
        options = request.options
        temperature = self.temperature if options.temperature is None else options.temperature
        max_tokens = options.max_tokens or self.max_tokens

        async def attempt():
            if self.breaker is not None:
                return await self.breaker.call(lambda: self.client.complete(messages, temperature, max_tokens))
            return await self.client.complete(messages, temperature, max_tokens)

        if self.retry is not None:
            return await self.retry.run(attempt, context=f"AI request ({request_id})")
        return await attempt()

    @staticmethod
    def _cache_key(request: GenerationRequest) -> dict:
        return {
            "prompt": request.prompt,
            "system_prompt": request.system_prompt,
            "template_id": request.template_id,
            "template_params": request.template_params,
        }

    def _cache_get(self, kind: str, request: GenerationRequest) -> Any:
        if kind == "analysis" and not request.template_id:
            return self.cache.get_semantic(kind, request.prompt)
        return self.cache.get(kind, self._cache_key(request))

    def _cache_set(self, kind: str, request: GenerationRequest, data: Any) -> None:
        tags = (request.template_id or "custom",)
        if kind == "analysis" and not request.template_id:
            self.cache.set_semantic(kind, request.prompt, data, ttl=self.cache_ttl * 2, tags=tags)
        else:
            self.cache.set(kind, self._cache_key(request), data, ttl=self.cache_ttl, tags=tags)

    @staticmethod
    def _response(
        request_id: str,
        started: float,
        *,
        data: dict | None = None,
        error: AppException | None = None,
        cached: bool = False,
        tokens_used: int | None = None,
        confidence: float = 0,
    ) -> GenerationResponse:
        return GenerationResponse(
            success=error is None,
            data=data,
            error=error.to_api_error() if error else None,
            metadata=ResponseMetadata(
                request_id=request_id,
                cached=cached,
                processing_time_ms=(time.perf_counter() - started) * 1000,
                tokens_used=tokens_used,
                confidence=confidence,
            ),
        )
