import os
from typing import Optional
from dotenv import load_dotenv


load_dotenv(override=True)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Runtime settings read from the environment (and .env when present)"""

    def __init__(self, **overrides):
        self.api_key: Optional[str] = os.getenv("NEBIUS_API_KEY") or None
        self.llm_base_url = os.getenv("LLM_BASE_URL", "https://api.studio.nebius.com/v1/")
        self.llm_model = os.getenv("LLM_MODEL", "openai/gpt-oss-120b")
        self.llm_temperature = float(os.getenv("LLM_TEMPERATURE", "0.3"))
        self.llm_max_tokens = int(os.getenv("LLM_MAX_TOKENS", "800"))
        self.llm_timeout_seconds = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))

        self.frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000")
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", "3002"))

        self.rate_limit_max_requests = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
        self.rate_limit_window_seconds = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))
        self.max_body_bytes = int(os.getenv("MAX_BODY_BYTES", str(10 * 1024 * 1024)))
        self.redis_url: Optional[str] = os.getenv("REDIS_URL") or None

        self.expose_error_details = _env_bool("EXPOSE_ERROR_DETAILS")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_file = os.getenv("LOG_FILE", "logs/app.log")

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)


def get_settings() -> Settings:
    return Settings()
