"""
Request lifecycle - progress, partial results and terminal bookkeeping
around one outbound AI request.

The manager is a pure state machine: it never renders anything. Observers
subscribe to RequestEvent notifications and poll snapshots. Terminal states
are sticky and linger for a short delay before the state is dropped.
"""
import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from typing import Any, Callable, Protocol

from app.schemas.generation import PartialResultModel, RequestSnapshot
from app.services.cancellation import CancelToken

logger = logging.getLogger(__name__)

SYNTHETIC_PROGRESS_CAP = 95.0
SYNTHETIC_RATE = 2.5
DEFAULT_ESTIMATED_DURATION_MS = 3000
TICK_INTERVAL_SECONDS = 0.1

CLEANUP_DELAYS = {
    "completed": 2.0,
    "error": 3.0,
    "cancelled": 1.0,
}

DEFAULT_STEPS = {
    "chart": [
        "Analyzing your data...",
        "Choosing the best chart type...",
        "Generating visualization...",
        "Applying styles and animations...",
    ],
    "analysis": [
        "Processing your data...",
        "Running statistical analysis...",
        "Identifying patterns...",
        "Generating insights...",
    ],
    "export": [
        "Preparing export...",
        "Optimizing file format...",
        "Applying compression...",
        "Finalizing export...",
    ],
    "default": [
        "Processing request...",
        "Analyzing requirements...",
        "Generating response...",
        "Finalizing results...",
    ],
}


class RequestStatus(str, Enum):
    PENDING = "pending"
    THINKING = "thinking"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {RequestStatus.COMPLETED, RequestStatus.ERROR, RequestStatus.CANCELLED}


class RequestEventType(str, Enum):
    REQUEST_STARTED = "request-started"
    PROGRESS_UPDATED = "progress-updated"
    PARTIAL_RESULT_ADDED = "partial-result-added"
    REQUEST_COMPLETED = "request-completed"
    REQUEST_FAILED = "request-failed"
    REQUEST_CANCELLED = "request-cancelled"


class Handle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle | None: ...


class AsyncioScheduler:
    """Schedules on the running event loop; outside a loop nothing is scheduled."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, timer not scheduled")
            return None
        return loop.call_later(delay, callback)


@dataclass
class PartialResult:
    id: str
    timestamp: float
    data: Any
    confidence: float
    is_complete: bool = False


@dataclass
class RequestState:
    id: str
    type: str
    message: str
    steps: list[str]
    cancel_token: CancelToken
    started_at: float
    estimated_duration_ms: int
    partial_results: deque
    status: RequestStatus = RequestStatus.PENDING
    progress: float = 0.0
    current_step: str = "Initializing..."
    synthetic: bool = False
    error: str | None = None
    ended_at: float | None = None
    tick_handle: Handle | None = field(default=None, repr=False)
    cleanup_handle: Handle | None = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def step_for(self, progress: float) -> str:
        if not self.steps:
            return self.current_step
        index = math.floor(progress / 100 * len(self.steps))
        return self.steps[max(0, min(index, len(self.steps) - 1))]

    def snapshot(self) -> RequestSnapshot:
        return RequestSnapshot(
            id=self.id,
            type=self.type,
            status=self.status.value,
            progress=self.progress,
            current_step=self.current_step,
            steps=list(self.steps),
            partial_results=[
                PartialResultModel(
                    id=p.id,
                    timestamp=p.timestamp,
                    data=p.data,
                    confidence=p.confidence,
                    is_complete=p.is_complete,
                )
                for p in self.partial_results
            ],
            error=self.error,
            started_at=self.started_at,
            ended_at=self.ended_at,
        )


@dataclass(frozen=True)
class RequestEvent:
    type: RequestEventType
    request_id: str
    snapshot: RequestSnapshot
    data: Any = None


Listener = Callable[[RequestEvent], Any]


def synthetic_progress(elapsed_ms: float, estimated_ms: float) -> float:
    """Approaches SYNTHETIC_PROGRESS_CAP asymptotically, never reaches it."""
    if estimated_ms <= 0:
        return 0.0
    ratio = max(0.0, elapsed_ms) / estimated_ms
    return SYNTHETIC_PROGRESS_CAP * (1 - math.exp(-SYNTHETIC_RATE * ratio))


def default_steps(request_type: str) -> list[str]:
    return list(DEFAULT_STEPS.get(request_type, DEFAULT_STEPS["default"]))


class RequestLifecycleManager:
    """Owns every live RequestState; nothing else mutates them."""

    def __init__(
        self,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
        *,
        show_thinking_indicator: bool = True,
        show_partial_results: bool = True,
        max_partial_results: int = 5,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        cleanup_delays: dict[str, float] | None = None,
    ):
        self.scheduler = scheduler or AsyncioScheduler()
        self.clock = clock
        self.show_thinking_indicator = show_thinking_indicator
        self.show_partial_results = show_partial_results
        self.max_partial_results = max_partial_results
        self.tick_interval = tick_interval
        self.cleanup_delays = {**CLEANUP_DELAYS, **(cleanup_delays or {})}
        self._requests: dict[str, RequestState] = {}
        self._listeners: list[Listener] = []
        self._partial_ids = count(1)

    # === Observers ===

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event_type: RequestEventType, state: RequestState, data: Any = None) -> None:
        event = RequestEvent(type=event_type, request_id=state.id, snapshot=state.snapshot(), data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Listener failed on {event_type.value} for {state.id}: {e}")

    # === Lifecycle ===

    def default_steps(self, request_type: str) -> list[str]:
        return default_steps(request_type)

    def start_request(
        self,
        request_id: str,
        type: str = "default",
        message: str = "Processing...",
        steps: list[str] | None = None,
        estimated_duration_ms: int | None = None,
    ) -> CancelToken:
        """Register a new request and return its cancel token."""
        previous = self._requests.get(request_id)
        if previous is not None:
            logger.warning(f"Request {request_id} restarted, dropping previous state")
            if not previous.is_terminal:
                previous.cancel_token.abort("restarted")
            self._cancel_timers(previous)

        state = RequestState(
            id=request_id,
            type=type,
            message=message,
            steps=list(steps) if steps else default_steps(type),
            cancel_token=CancelToken(request_id),
            started_at=self.clock(),
            estimated_duration_ms=estimated_duration_ms or DEFAULT_ESTIMATED_DURATION_MS,
            partial_results=deque(maxlen=max(1, self.max_partial_results)),
        )
        self._requests[request_id] = state

        if self.show_thinking_indicator:
            state.status = RequestStatus.THINKING
            state.synthetic = True
            state.current_step = state.steps[0] if state.steps else message
            self._schedule_tick(state)

        logger.info(f"Request started: {request_id} ({type})")
        self._emit(RequestEventType.REQUEST_STARTED, state)
        return state.cancel_token

    def update_progress(self, request_id: str, progress: float, step: str | None = None) -> None:
        """Caller-reported progress; replaces the synthetic estimate from now on."""
        state = self._live(request_id)
        if state is None:
            return

        state.synthetic = False
        self._cancel_tick(state)
        state.status = RequestStatus.PROCESSING
        state.progress = max(0.0, min(100.0, float(progress)))
        state.current_step = step or state.step_for(state.progress)
        self._emit(RequestEventType.PROGRESS_UPDATED, state)

    def add_partial_result(self, request_id: str, data: Any, confidence: float = 0.5) -> PartialResult | None:
        if not self.show_partial_results:
            return None
        state = self._live(request_id)
        if state is None:
            return None

        result = self._append_partial(state, data, confidence)
        self._emit(RequestEventType.PARTIAL_RESULT_ADDED, state, data=result)
        return result

    def complete_request(self, request_id: str, final_result: Any = None) -> None:
        state = self._live(request_id)
        if state is None:
            return

        self._finish(state, RequestStatus.COMPLETED)
        state.progress = 100.0
        state.current_step = "Complete!"
        if final_result is not None:
            self._append_partial(state, final_result, 1.0, is_complete=True)

        logger.info(f"Request completed: {request_id}")
        self._emit(RequestEventType.REQUEST_COMPLETED, state, data=final_result)

    def fail_request(self, request_id: str, message: str) -> None:
        state = self._live(request_id)
        if state is None:
            return

        self._finish(state, RequestStatus.ERROR)
        state.error = message
        state.current_step = f"Error: {message}"

        logger.warning(f"Request failed: {request_id}: {message}")
        self._emit(RequestEventType.REQUEST_FAILED, state, data=message)

    def cancel_request(self, request_id: str) -> bool:
        """Cancel a live request. Returns False if it was unknown or already finished."""
        state = self._live(request_id)
        if state is None:
            return False

        self._finish(state, RequestStatus.CANCELLED)
        state.current_step = "Request cancelled"
        state.cancel_token.abort("cancelled")

        logger.info(f"Request cancelled: {request_id}")
        self._emit(RequestEventType.REQUEST_CANCELLED, state)
        return True

    def get_request_state(self, request_id: str) -> RequestState | None:
        return self._requests.get(request_id)

    def get_active_requests(self) -> list[RequestState]:
        return [state for state in self._requests.values() if not state.is_terminal]

    def cleanup_request(self, request_id: str) -> None:
        state = self._requests.pop(request_id, None)
        if state is not None:
            self._cancel_timers(state)

    # === Internals ===

    def _live(self, request_id: str) -> RequestState | None:
        """State that can still change; None when unknown or terminal."""
        state = self._requests.get(request_id)
        if state is None or state.is_terminal:
            return None
        return state

    def _append_partial(self, state: RequestState, data: Any, confidence: float, is_complete: bool = False) -> PartialResult:
        result = PartialResult(
            id=f"partial-{next(self._partial_ids)}",
            timestamp=self.clock(),
            data=data,
            confidence=confidence,
            is_complete=is_complete,
        )
        # deque(maxlen) drops the oldest entry
        state.partial_results.append(result)
        return result

    def _finish(self, state: RequestState, status: RequestStatus) -> None:
        state.status = status
        state.synthetic = False
        state.ended_at = self.clock()
        self._cancel_tick(state)

        delay = self.cleanup_delays[status.value]
        request_id = state.id

        def cleanup():
            # A restarted request under the same id owns the slot now
            if self._requests.get(request_id) is state:
                self.cleanup_request(request_id)

        state.cleanup_handle = self.scheduler.call_later(delay, cleanup)

    def _schedule_tick(self, state: RequestState) -> None:
        state.tick_handle = self.scheduler.call_later(self.tick_interval, lambda: self._tick(state))

    def _tick(self, state: RequestState) -> None:
        state.tick_handle = None
        if not state.synthetic or state.is_terminal or self._requests.get(state.id) is not state:
            return

        elapsed_ms = (self.clock() - state.started_at) * 1000
        state.progress = synthetic_progress(elapsed_ms, state.estimated_duration_ms)
        state.current_step = state.step_for(state.progress)
        self._emit(RequestEventType.PROGRESS_UPDATED, state)
        self._schedule_tick(state)

    def _cancel_tick(self, state: RequestState) -> None:
        if state.tick_handle is not None:
            state.tick_handle.cancel()
            state.tick_handle = None

    def _cancel_timers(self, state: RequestState) -> None:
        self._cancel_tick(state)
        if state.cleanup_handle is not None:
            state.cleanup_handle.cancel()
            state.cleanup_handle = None
