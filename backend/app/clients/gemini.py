"""Gemini client - google-generativeai chat completions."""
import logging
from typing import AsyncIterator

import google.generativeai as genai

from app.clients.base import BaseChatClient
from app.config import Config
from app.errors import ErrorType
from app.exceptions import AppException

logger = logging.getLogger(__name__)


def _provider_error(e: Exception) -> AppException:
    error_str = str(e)
    if "429" in error_str or "quota" in error_str.lower() or "rate" in error_str.lower():
        return AppException(ErrorType.RATE_LIMIT, "Rate limit exceeded", status=429, retryable=True)
    return AppException(ErrorType.API_ERROR, error_str)


class GeminiClient(BaseChatClient):
    """Chat client using Gemini."""

    provider = "gemini"

    def __init__(self, api_key: str | None = None, model: str | None = None):
        api_key = api_key if api_key is not None else Config.GEMINI_API_KEY
        if not api_key:
            raise AppException(ErrorType.NOT_CONFIGURED, "GEMINI_API_KEY not configured")
        genai.configure(api_key=api_key)
        self.model = model or Config.GEMINI_MODEL

    def _build(self, messages: list[dict]) -> tuple[genai.GenerativeModel, list[dict]]:
        """Split the system prompt off and convert the rest to Gemini chat format."""
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system" and m["content"])
        contents = [
            {"role": "user" if m["role"] == "user" else "model", "parts": [m["content"]]}
            for m in messages
            if m["role"] != "system"
        ]
        model = genai.GenerativeModel(self.model, system_instruction=system or None)
        return model, contents

    @staticmethod
    def _config(temperature: float, max_tokens: int) -> genai.GenerationConfig:
        return genai.GenerationConfig(temperature=temperature, max_output_tokens=max_tokens)

    async def complete(self, messages: list[dict], temperature: float, max_tokens: int) -> dict:
        model, contents = self._build(messages)
        try:
            response = await model.generate_content_async(
                contents, generation_config=self._config(temperature, max_tokens)
            )
        except AppException:
            raise
        except Exception as e:
            raise _provider_error(e)

        if not response.candidates:
            raise AppException(ErrorType.INVALID_RESPONSE, "No response from Gemini")

        try:
            text = response.text
        except ValueError:
            raise AppException(ErrorType.INVALID_RESPONSE, "Gemini returned empty response")

        usage = getattr(response, "usage_metadata", None)
        tokens = getattr(usage, "total_token_count", None) if usage else None
        return {"content": text, "tokens_used": tokens}

    async def stream(self, messages: list[dict], temperature: float, max_tokens: int) -> AsyncIterator[str]:
        model, contents = self._build(messages)
        try:
            response = await model.generate_content_async(
                contents, generation_config=self._config(temperature, max_tokens), stream=True
            )
            async for chunk in response:
                try:
                    text = chunk.text
                except ValueError:
                    # Chunk carried no text parts (e.g. only safety metadata)
                    logger.debug("Skipping Gemini chunk without text")
                    continue
                if text:
                    yield text
        except AppException:
            raise
        except Exception as e:
            raise _provider_error(e)
