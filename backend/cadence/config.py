import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    cadence_agent_model: str = Field("gpt-5-mini", alias="CADENCE_AGENT_MODEL")
    cadence_agent_reasoning: Literal["minimal", "low", "medium", "high"] = Field("low", alias="CADENCE_AGENT_REASONING")
    cadence_embedding_model: str = Field("text-embedding-3-small", alias="CADENCE_EMBEDDING_MODEL")
    cadence_embeddings_enabled: bool = Field(False, alias="CADENCE_EMBEDDINGS_ENABLED")
    database_url: Optional[str] = Field(None, alias="CADENCE_DATABASE_URL")
    database_pool_size: int = Field(10, alias="CADENCE_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="CADENCE_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="CADENCE_DATABASE_ECHO")
    cadence_persistence_mode: Literal["database", "memory"] = Field(
        "database",
        alias="CADENCE_PERSISTENCE_MODE",
    )
    coaching_card_ttl_hours: int = Field(24, ge=1, alias="CADENCE_COACHING_CARD_TTL_HOURS")
    cold_start_session_threshold: int = Field(5, ge=0, alias="CADENCE_COLD_START_SESSIONS")
    assessment_event_limit: int = Field(5, ge=1, alias="CADENCE_ASSESSMENT_EVENT_LIMIT")
    default_session_quality: int = Field(3, ge=0, le=5, alias="CADENCE_DEFAULT_SESSION_QUALITY")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()  # type: ignore[arg-type]
        if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
            os.environ["OPENAI_API_KEY"] = settings.openai_api_key
        return settings
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
