"""DeepSeek client - OpenAI-compatible chat completions over httpx."""
import logging
from typing import AsyncIterator

import httpx

from app.clients.base import BaseChatClient, iter_sse_events
from app.config import Config
from app.errors import ErrorType
from app.exceptions import AppException, RequestTimeoutError, TransportError

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return f"HTTP {response.status_code}"


class DeepSeekClient(BaseChatClient):
    """Chat client for the DeepSeek API."""

    provider = "deepseek"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        api_key = api_key if api_key is not None else Config.DEEPSEEK_API_KEY
        if not api_key:
            raise AppException(ErrorType.NOT_CONFIGURED, "DEEPSEEK_API_KEY not configured")

        self.model = model or Config.DEEPSEEK_MODEL
        self.timeout = timeout or Config.AI_TIMEOUT_SECONDS
        self._client = httpx.AsyncClient(
            base_url=base_url or Config.DEEPSEEK_BASE_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )

    def _payload(self, messages: list[dict], temperature: float, max_tokens: int, stream: bool) -> dict:
        return {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": stream,
        }

    async def complete(self, messages: list[dict], temperature: float, max_tokens: int) -> dict:
        try:
            response = await self._client.post(
                "/chat/completions",
                json=self._payload(messages, temperature, max_tokens, stream=False),
            )
        except httpx.TimeoutException:
            raise RequestTimeoutError(f"DeepSeek request timed out after {self.timeout}s")
        except httpx.TransportError as e:
            raise TransportError(ErrorType.NETWORK_ERROR, f"Network error: {e}", retryable=True)

        if response.status_code >= 400:
            raise TransportError.from_status(response.status_code, _error_message(response))

        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise AppException(ErrorType.INVALID_RESPONSE, "Malformed completion from DeepSeek")

        usage = body.get("usage") or {}
        logger.info(f"DeepSeek completion: {usage.get('total_tokens')} tokens")
        return {"content": content or "", "tokens_used": usage.get("total_tokens")}

    async def stream(self, messages: list[dict], temperature: float, max_tokens: int) -> AsyncIterator[str]:
        payload = self._payload(messages, temperature, max_tokens, stream=True)
        try:
            async with self._client.stream("POST", "/chat/completions", json=payload) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise TransportError.from_status(response.status_code, _error_message(response))

                async for event in iter_sse_events(response.aiter_bytes()):
                    choices = event.get("choices") or [{}]
                    content = (choices[0].get("delta") or {}).get("content")
                    if content:
                        yield content
        except httpx.TimeoutException:
            raise RequestTimeoutError(f"DeepSeek stream timed out after {self.timeout}s")
        except httpx.TransportError as e:
            raise TransportError(ErrorType.STREAM_ERROR, f"Stream interrupted: {e}", retryable=True)

    async def aclose(self) -> None:
        await self._client.aclose()
