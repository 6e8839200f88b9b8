# settings.py
import os
from typing import List, Optional

from pydantic import BaseModel


def _split(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _flag(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


class DispatcherConfig(BaseModel):
    models: List[str]
    credentials: List[str]
    base_url: Optional[str] = None
    max_output_tokens: int = 1024
    temperature: float = 0.7
    top_p: float = 0.95
    top_k: int = 40
    max_retries: int = 2
    backoff_base: float = 1.0
    backoff_cap: float = 8.0
    fallback_delay: float = 1.0
    request_timeout: float = 30.0


class RateLimitConfig(BaseModel):
    max_per_hour: int = 10
    max_per_day: int = 50
    ip_whitelist: List[str] = []
    localhost_bypass: bool = True


class Settings(BaseModel):
    # comma-separated, tried in order; a single key disables rotation
    API_KEYS: str = os.getenv("GEMINI_API_KEYS", os.getenv("GOOGLE_GENAI_API_KEY", ""))
    PRIMARY_MODEL: str = os.getenv("PRIMARY_MODEL", "gemini-2.5-flash-lite")
    FALLBACK_MODEL: str = os.getenv("FALLBACK_MODEL", "gemini-2.5-flash")
    API_BASE_URL: str = os.getenv("API_BASE_URL", "")
    MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "1024"))
    TEMPERATURE: float = float(os.getenv("TEMPERATURE", "0.7"))
    TOP_P: float = float(os.getenv("TOP_P", "0.95"))
    TOP_K: int = int(os.getenv("TOP_K", "40"))
    # retry knobs
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "2"))
    BACKOFF_BASE: float = float(os.getenv("BACKOFF_BASE", "1.0"))
    BACKOFF_CAP: float = float(os.getenv("BACKOFF_CAP", "8.0"))
    FALLBACK_DELAY: float = float(os.getenv("FALLBACK_DELAY", "1.0"))
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "30"))
    # rate limiting knobs
    RATE_LIMIT_ENABLED: bool = _flag(os.getenv("RATE_LIMIT_ENABLED", "true"))
    MAX_REQUESTS_PER_HOUR: int = int(os.getenv("MAX_REQUESTS_PER_HOUR", "10"))
    MAX_REQUESTS_PER_DAY: int = int(os.getenv("MAX_REQUESTS_PER_DAY", "50"))
    IP_WHITELIST: str = os.getenv("IP_WHITELIST", "")
    LOCALHOST_BYPASS: bool = _flag(os.getenv("LOCALHOST_BYPASS", "true"))
    REDIS_URL: str = os.getenv("REDIS_URL", "")
    # prompt knobs
    KNOWLEDGE_BASE_PATH: str = os.getenv("KNOWLEDGE_BASE_PATH", "knowledge_base.txt")
    HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "20"))
    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "*")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def dispatcher_config(self) -> DispatcherConfig:
        models = [m for m in (self.PRIMARY_MODEL, self.FALLBACK_MODEL) if m]
        return DispatcherConfig(
            models=list(dict.fromkeys(models)),
            credentials=_split(self.API_KEYS),
            base_url=self.API_BASE_URL or None,
            max_output_tokens=self.MAX_OUTPUT_TOKENS,
            temperature=self.TEMPERATURE,
            top_p=self.TOP_P,
            top_k=self.TOP_K,
            max_retries=self.MAX_RETRIES,
            backoff_base=self.BACKOFF_BASE,
            backoff_cap=self.BACKOFF_CAP,
            fallback_delay=self.FALLBACK_DELAY,
            request_timeout=self.REQUEST_TIMEOUT,
        )

    def rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            max_per_hour=self.MAX_REQUESTS_PER_HOUR,
            max_per_day=self.MAX_REQUESTS_PER_DAY,
            ip_whitelist=_split(self.IP_WHITELIST),
            localhost_bypass=self.LOCALHOST_BYPASS,
        )

    def cors_origins(self) -> List[str]:
        return _split(self.CORS_ALLOW_ORIGINS) or ["*"]
