"""Base chat client and server-sent-event decoding."""
import codecs
import json
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class BaseChatClient(ABC):
    """One chat-completion provider.

    Messages use the OpenAI shape: [{"role": "system" | "user" | "assistant", "content": str}].
    """

    provider: str = "unknown"
    model: str = ""

    @abstractmethod
    async def complete(self, messages: list[dict], temperature: float, max_tokens: int) -> dict:
        """
        Single completion.

        Returns:
            {"content": str, "tokens_used": int | None}
        """

    @abstractmethod
    def stream(self, messages: list[dict], temperature: float, max_tokens: int) -> AsyncIterator[str]:
        """Async iterator of content deltas."""

    async def aclose(self) -> None:
        """Release transport resources."""


async def iter_sse_events(chunks: AsyncIterator[bytes]) -> AsyncIterator[dict]:
    """
    Decode an SSE byte stream into JSON payloads of its `data:` lines.

    Bytes are decoded incrementally and buffered up to the next newline, so
    chunk boundaries may fall anywhere. A line that is not valid JSON is
    logged and skipped. `[DONE]` ends the stream.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""

    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            payload = _data_payload(line)
            if payload is None:
                continue
            if payload == SSE_DONE:
                return
            try:
                yield json.loads(payload)
            except ValueError as e:
                logger.warning(f"Skipping malformed stream line: {e}")

    buffer += decoder.decode(b"", final=True)
    payload = _data_payload(buffer)
    if payload and payload != SSE_DONE:
        try:
            yield json.loads(payload)
        except ValueError as e:
            logger.warning(f"Skipping malformed stream line: {e}")


def _data_payload(line: str) -> str | None:
    line = line.rstrip("\r")
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    return line[len(SSE_DATA_PREFIX):].strip()
