"""Chat clients - swap AI provider here."""
from app.clients.base import BaseChatClient
from app.config import Config

_chat_client = None


def get_chat_client() -> BaseChatClient:
    """Get or create the chat client (lazy initialization).

    Raises:
        AppException: NOT_CONFIGURED when the provider has no API key
    """
    global _chat_client
    if _chat_client is None:
        if Config.AI_PROVIDER == "gemini":
            from app.clients.gemini import GeminiClient
            _chat_client = GeminiClient()
        else:
            # Default to DeepSeek
            from app.clients.deepseek import DeepSeekClient
            _chat_client = DeepSeekClient()
    return _chat_client


async def close_chat_client() -> None:
    global _chat_client
    if _chat_client is not None:
        await _chat_client.aclose()
        _chat_client = None
