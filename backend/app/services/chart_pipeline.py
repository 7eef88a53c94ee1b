"""
Chart Pipeline - complete flow from user input to chart config.

Flow: user input -> SeriesParser -> AI (optional, bounded) -> local fallback
-> renderer (optional).

AI problems never fail the pipeline; they degrade to the locally built
config. Only input with nothing plotable in it is a failure.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from app.config import Config
from app.errors import ErrorType
from app.exceptions import AppException
from app.schemas.generation import GenerationOptions, GenerationRequest
from app.schemas.series import ChartTypeSuggestion, FormatDetection, ParsedSeries
from app.services.ai_service import AIService
from app.services.chart_prompt import build_prompt, create_fallback_config, enhance_config
from app.services.data_parser import SeriesParser

logger = logging.getLogger(__name__)

AI_ESTIMATED_DURATION_MS = 5000


class Renderer(Protocol):
    """Mounts a chart config into a container; disposes any prior chart there."""

    def render(self, config: dict, container: Any) -> Any: ...


ProgressCallback = Callable[[str, str], Any]


@dataclass
class PipelineResult:
    success: bool
    config: dict | None = None
    parsed_data: ParsedSeries | None = None
    chart_type: str | None = None
    suggestion: ChartTypeSuggestion | None = None
    used_ai: bool = False
    chart: Any = None
    request_id: str | None = None
    warning: str | None = None
    error: str | None = None


class ChartPipeline:
    """Parses input, picks a chart type and produces a chart config."""

    def __init__(
        self,
        parser: SeriesParser | None = None,
        ai_service: AIService | None = None,
        renderer: Renderer | None = None,
        *,
        use_ai: bool | None = None,
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.parser = parser or SeriesParser()
        self.ai_service = ai_service
        self.renderer = renderer
        self.use_ai = Config.USE_AI if use_ai is None else use_ai
        self.timeout = timeout or Config.PIPELINE_TIMEOUT_SECONDS
        self.on_progress = on_progress

    async def process(
        self,
        user_input: str,
        chart_type: str | None = None,
        container: Any = None,
        skip_ai: bool = False,
        request_id: str | None = None,
    ) -> PipelineResult:
        """
        Run the pipeline.

        `request_id` names the AI request in the lifecycle manager so callers
        can cancel it; one is generated when omitted.
        """
        logger.info("Starting chart pipeline")
        self._progress("parsing", "Analyzing your data...")

        # 1. Parse
        parsed = self.parser.parse(user_input)
        if not parsed.success and not parsed.data:
            return PipelineResult(success=False, parsed_data=parsed, error="Could not parse input data")

        # 2. Chart type: explicit override wins
        suggestion = self.parser.suggest_chart_type(parsed.labels, parsed.data)
        final_type = chart_type or suggestion.type
        logger.info(f"Chart type: {final_type} ({suggestion.reason})")

        # 3. AI config
        config = None
        if self.use_ai and not skip_ai and self.ai_service is not None:
            self._progress("ai", "AI is generating your chart...")
            request_id = request_id or self.ai_service.new_request_id()
            config = await self._generate_with_ai(parsed, final_type, user_input, request_id)

        # 4. Local fallback
        used_ai = config is not None
        if config is None:
            self._progress("fallback", "Creating chart...")
            config = create_fallback_config(parsed, final_type)
            logger.info("Using fallback config")

        result = PipelineResult(
            success=True,
            config=config,
            parsed_data=parsed,
            chart_type=final_type,
            suggestion=suggestion,
            used_ai=used_ai,
            request_id=request_id,
            warning=parsed.warning,
        )

        # 5. Render
        if container is not None:
            if self.renderer is None:
                raise AppException(ErrorType.INTERNAL_ERROR, "No renderer configured")
            self._progress("rendering", "Rendering chart...")
            result.chart = self.renderer.render(config, container)

        return result

    async def _generate_with_ai(
        self,
        parsed: ParsedSeries,
        chart_type: str,
        user_prompt: str,
        request_id: str,
    ) -> dict | None:
        request = GenerationRequest(
            prompt=build_prompt(parsed, chart_type, user_prompt),
            options=GenerationOptions(estimated_duration_ms=AI_ESTIMATED_DURATION_MS),
        )
        try:
            response = await self.ai_service.generate_chart(request, timeout=self.timeout, request_id=request_id)
        except Exception as e:
            logger.warning(f"AI generation failed: {e}")
            return None

        if not response.success or not response.data:
            error = response.error
            logger.warning(
                f"AI generation failed: {error.code if error else 'no data'}"
                f"{': ' + error.message if error else ''}"
            )
            return None

        logger.info("AI config generated successfully")
        return enhance_config(response.data)

    def quick_parse(self, text: str) -> dict:
        """Parse and suggest a chart type without generating anything."""
        parsed = self.parser.parse(text)
        return {
            "parsed": parsed,
            "suggestion": self.parser.suggest_chart_type(parsed.labels, parsed.data),
        }

    def detect_format(self, text: str) -> FormatDetection:
        return self.parser.detect(text)

    def _progress(self, step: str, message: str) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(step, message)
        except Exception as e:
            logger.error(f"Progress callback failed at {step}: {e}")
