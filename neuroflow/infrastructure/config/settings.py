from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from neuroflow.domain.telemetry.classifier_config import ClassifierConfig


class Settings(BaseSettings):
    """
    Centralized service settings.
    Loaded from environment variables prefixed with NEUROFLOW_ or a .env file;
    nested classifier fields use a double underscore, e.g.
    NEUROFLOW_CLASSIFIER__HYSTERESIS_SAMPLES=5.
    """
    model_config = SettingsConfigDict(
        env_prefix="NEUROFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    # Logging
    service_name: str = "neuroflow-core"
    log_level: str = Field("INFO", description="Logging level, e.g. DEBUG, INFO, WARNING")
    log_format: str = Field("json", description="json or console")

    # Generation backend
    chat_model: str = "gemini-2.0-flash"
    model_provider: str = "google_genai"
    generation_temperature: float = Field(0.2, ge=0.0, le=2.0)
    generation_timeout_seconds: float = Field(20.0, gt=0)

    # Embedding backend
    embedding_model: str = "google_genai:models/text-embedding-004"
    embedding_dimension: int = Field(768, gt=0)
    embedding_timeout_seconds: float = Field(10.0, gt=0)

    # Semantic cache
    redis_url: Optional[str] = Field(None, description="Redis URL; in-memory cache when unset")
    cache_ttl_seconds: int = Field(7 * 24 * 3600, gt=0)
    cache_timeout_seconds: float = Field(0.5, gt=0)

    # Vector store
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    memory_table: str = "memory_entries"
    vector_store_timeout_seconds: float = Field(5.0, gt=0)

    # Telemetry classification
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    sweep_interval_seconds: float = Field(10.0, gt=0)
    dnd_minutes: int = Field(90, gt=0, description="Do-not-disturb length requested on entering hyperfocus")
    actuator_timeout_seconds: float = Field(5.0, gt=0)

    # Tracing
    langfuse_public_key: Optional[str] = None
    langfuse_secret_key: Optional[str] = None
    langfuse_host: Optional[str] = None

    @property
    def langfuse_enabled(self) -> bool:
        return bool(self.langfuse_public_key and self.langfuse_secret_key)

    @property
    def supabase_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
