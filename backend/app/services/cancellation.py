"""Cooperative cancellation for in-flight AI calls."""
import asyncio
import logging
from typing import Any, Awaitable, Callable

from app.exceptions import RequestCancelledError, RequestTimeoutError

logger = logging.getLogger(__name__)


class CancelToken:
    """
    Single-fire cancellation signal.

    abort() only has an effect the first time. Callbacks registered after
    the token fired run straight away.
    """

    def __init__(self, request_id: str | None = None):
        self.request_id = request_id
        self.reason: str | None = None
        self._aborted = False
        self._callbacks: list[Callable[[], Any]] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self, reason: str | None = None) -> bool:
        """Fire the token. Returns False if it had already fired."""
        if self._aborted:
            return False
        self._aborted = True
        self.reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Abort callback failed for {self.request_id}: {e}")
        return True

    def on_abort(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        if self._aborted:
            callback()
            return lambda: None

        self._callbacks.append(callback)

        def remove():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def raise_if_aborted(self) -> None:
        if self._aborted:
            raise RequestCancelledError(request_id=self.request_id)


async def run_cancellable(
    awaitable: Awaitable,
    token: CancelToken | None = None,
    timeout: float | None = None,
):
    """
    Await `awaitable` as a task bounded by `timeout` seconds and `token`.

    Raises:
        RequestTimeoutError: timeout elapsed first
        RequestCancelledError: token fired first
    """
    task = asyncio.ensure_future(awaitable)
    request_id = token.request_id if token else None
    remove = token.on_abort(task.cancel) if token else (lambda: None)

    try:
        if timeout is not None and timeout > 0:
            return await asyncio.wait_for(task, timeout)
        return await task
    except asyncio.TimeoutError:
        raise RequestTimeoutError(f"Request timed out after {timeout}s", request_id=request_id)
    except asyncio.CancelledError:
        if token is not None and token.aborted:
            raise RequestCancelledError(request_id=request_id)
        raise
    finally:
        remove()
