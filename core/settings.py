"""Environment configuration for the memory pipeline."""
from __future__ import annotations

from datetime import tzinfo
from functools import cached_property
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    CHAT_MODEL: str = "gpt-4o"
    EMBEDDING_MODEL: str = "text-embedding-3-large"
    TRANSCRIPTION_MODEL: str = "gpt-4o-transcribe"

    PINECONE_API_KEY: Optional[str] = None
    PINECONE_HOST: Optional[str] = None
    PINECONE_API_VERSION: str = "2024-07"

    REQUEST_TIMEOUT_SEC: float = 6.0
    HTTP_TIMEOUT_SEC: float = 30.0

    QUERY_TOP_K: int = 2
    MIN_MATCH_SCORE: float = 0.3
    MAX_CONTEXT_MATCHES: int = 2

    LANGUAGE: Optional[str] = None
    TIMEZONE: Optional[str] = None

    LOG_LEVEL: str = "INFO"
    ENV: str = "dev"
    DIAG: int = 0

    DB_PATH: str = "mnemovault.db"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @cached_property
    def is_prod(self) -> bool:
        return self.ENV.lower() == "prod"

    @cached_property
    def is_diag(self) -> bool:
        return bool(int(self.DIAG))

    def tz(self) -> Optional[tzinfo]:
        """Configured zone, or ``None`` to follow the system local time."""
        name = (self.TIMEZONE or "").strip()
        return ZoneInfo(name) if name else None


settings = Settings()
