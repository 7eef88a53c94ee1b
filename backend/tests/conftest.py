import asyncio

import pytest
from httpx import AsyncClient, ASGITransport

from app.clients.base import BaseChatClient
from app.dependencies import get_ai_service, get_lifecycle, get_pipeline
from app.main import app
from app.services.ai_service import AIService
from app.services.cache import ResponseCache
from app.services.chart_pipeline import ChartPipeline
from app.services.data_parser import SeriesParser
from app.services.request_lifecycle import RequestLifecycleManager


VALID_CHART_REPLY = (
    '{"type": "bar", "data": {"labels": ["A", "B"], '
    '"datasets": [{"label": "Sales", "data": [1, 2]}]}}'
)

VALID_ANALYSIS_REPLY = (
    '{"summary": {"totalRecords": 3}, "insights": ["B is highest"], '
    '"recommendations": ["Watch A"], "visualizations": ["bar"]}'
)


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class ManualHandle:
    def __init__(self, when: float, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when the test advances time."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: list[ManualHandle] = []

    def call_later(self, delay, callback):
        handle = ManualHandle(self.clock.now + delay, callback)
        self.timers.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for t in self.timers if not t.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.clock.now = max(self.clock.now, timer.when)
            timer.callback()
        self.clock.now = target


class FakeChatClient(BaseChatClient):
    """Chat client that replays scripted outcomes (reply text or exception)."""

    provider = "fake"
    model = "fake-model"

    def __init__(self, outcomes=None, delay: float = 0.0, chunks=None, tokens: int = 42):
        self.outcomes = list(outcomes or [VALID_CHART_REPLY])
        self.delay = delay
        self.chunks = list(chunks or [])
        self.tokens = tokens
        self.calls = []
        self.closed = False

    async def complete(self, messages, temperature, max_tokens):
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return {"content": outcome, "tokens_used": self.tokens}

    async def stream(self, messages, temperature, max_tokens):
        self.calls.append({"messages": messages, "stream": True})
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk

    async def aclose(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def lifecycle(scheduler, clock):
    """Lifecycle manager on a manual scheduler and clock."""
    return RequestLifecycleManager(scheduler=scheduler, clock=clock)


@pytest.fixture
def chat_client():
    return FakeChatClient()


@pytest.fixture
def make_chat_client():
    """Factory for scripted chat clients."""
    return FakeChatClient


@pytest.fixture
def ai_service(chat_client, lifecycle, clock):
    return AIService(
        chat_client,
        lifecycle=lifecycle,
        cache=ResponseCache(max_entries=10, default_ttl=300, clock=clock),
        timeout=5,
        enable_cache=True,
        enable_feedback=True,
    )


@pytest.fixture
def pipeline(ai_service):
    return ChartPipeline(SeriesParser(), ai_service, use_ai=True, timeout=5)


@pytest.fixture
async def client(pipeline, ai_service, lifecycle):
    """Async test client with injected services."""
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_ai_service] = lambda: ai_service
    app.dependency_overrides[get_lifecycle] = lambda: lifecycle

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
