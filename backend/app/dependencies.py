"""Service instances for the routers (lazy initialization).

Routers receive these through FastAPI Depends, so tests can swap them via
app.dependency_overrides.
"""
import logging

from app.clients import get_chat_client
from app.config import Config
from app.exceptions import AppException
from app.services.ai_service import AIService
from app.services.cache import ResponseCache
from app.services.chart_pipeline import ChartPipeline
from app.services.data_parser import SeriesParser
from app.services.prompt_templates import PromptTemplateRegistry
from app.services.request_lifecycle import RequestLifecycleManager
from app.services.retry import CircuitBreaker, RetryPolicy

logger = logging.getLogger(__name__)

_lifecycle = None
_ai_service = None
_pipeline = None


def get_lifecycle() -> RequestLifecycleManager:
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = RequestLifecycleManager(
            show_partial_results=Config.FEEDBACK_ENABLED,
            max_partial_results=Config.MAX_PARTIAL_RESULTS,
        )
    return _lifecycle


def get_ai_service() -> AIService:
    global _ai_service
    if _ai_service is None:
        try:
            client = get_chat_client()
        except AppException as e:
            # Charts still work without AI, through the local fallback
            logger.warning(f"AI disabled: {e.message}")
            client = None

        _ai_service = AIService(
            client,
            lifecycle=get_lifecycle(),
            cache=ResponseCache(Config.CACHE_MAX_ENTRIES, Config.CACHE_TTL_SECONDS),
            templates=PromptTemplateRegistry(),
            retry=RetryPolicy(max_retries=Config.MAX_RETRIES),
            breaker=CircuitBreaker(),
        )
    return _ai_service


def get_pipeline() -> ChartPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = ChartPipeline(SeriesParser(), get_ai_service())
    return _pipeline


def reset_services() -> None:
    global _lifecycle, _ai_service, _pipeline
    _lifecycle = _ai_service = _pipeline = None
