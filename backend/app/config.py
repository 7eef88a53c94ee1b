import os


def _as_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # AI Provider: "deepseek" or "gemini"
    AI_PROVIDER = os.getenv("AI_PROVIDER", "deepseek")

    # DeepSeek (OpenAI-compatible chat completions)
    DEEPSEEK_API_KEY = os.getenv("DEEPSEEK_API_KEY", "")
    DEEPSEEK_BASE_URL = os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com/v1")
    DEEPSEEK_MODEL = os.getenv("DEEPSEEK_MODEL", "deepseek-chat")

    # Gemini
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    # Generation defaults
    AI_MAX_TOKENS = int(os.getenv("AI_MAX_TOKENS", "4000"))
    AI_TEMPERATURE = float(os.getenv("AI_TEMPERATURE", "0.7"))
    AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))
    MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))

    # Pipeline
    USE_AI = _as_bool("USE_AI", True)
    PIPELINE_TIMEOUT_SECONDS = float(os.getenv("PIPELINE_TIMEOUT_SECONDS", "15"))

    # Response cache
    CACHE_ENABLED = _as_bool("CACHE_ENABLED", True)
    CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", "300"))
    CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "100"))

    # Progress feedback
    FEEDBACK_ENABLED = _as_bool("FEEDBACK_ENABLED", True)
    MAX_PARTIAL_RESULTS = int(os.getenv("MAX_PARTIAL_RESULTS", "5"))
