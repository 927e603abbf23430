"""Application-wide configuration management using Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SYNONYM_GROUPS: List[List[str]] = [
    ["phone", "smartphone", "iphone", "cellphone", "mobile"],
    ["laptop", "computer", "macbook", "notebook", "pc", "desktop", "chromebook"],
    ["sofa", "couch", "loveseat", "sectional", "settee"],
    ["tv", "television", "telly"],
    ["speaker", "soundbar", "subwoofer"],
    ["lamp", "light", "sconce"],
    ["rug", "carpet", "mat"],
    ["painting", "artwork", "canvas", "print", "poster"],
    ["fridge", "refrigerator", "freezer"],
    ["armchair", "chair", "recliner"],
    ["pillow", "cushion"],
]


class Settings(BaseSettings):
    """Central configuration shared across services.

    Environment variables mirror the compose setup and allow overrides per service.
    """

    model_config = SettingsConfigDict(env_file=".env", env_nested_delimiter="__", extra="allow")

    environment: str = "development"
    service_name: str = "inventory-service"
    log_level: str = "INFO"

    # Database
    database_url: Optional[str] = None
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "inventory"
    postgres_user: str = "inventory"
    postgres_password: str = "changeme"

    # Video host (Mux)
    mux_api_base: str = "https://api.mux.com"
    mux_stream_base: str = "https://stream.mux.com"
    mux_image_base: str = "https://image.mux.com"
    mux_token_id: Optional[str] = None
    mux_token_secret: Optional[str] = None
    mux_webhook_secret: Optional[str] = None
    mux_signing_key_id: Optional[str] = None
    mux_signing_private_key: Optional[str] = None  # base64 encoded PEM
    mux_playback_token_ttl_seconds: int = 7200
    mux_audio_rendition_name: str = "audio.m4a"
    mux_cors_origin: str = "*"

    # Webhook verification
    skip_webhook_signature: bool = False  # local testing only
    webhook_tolerance_seconds: Optional[int] = None

    # Speech to text (Deepgram)
    deepgram_api_base: str = "https://api.deepgram.com"
    deepgram_api_key: Optional[str] = None
    deepgram_model: str = "nova-2"
    deepgram_language: str = "en-US"

    # Language model / vision
    llm_provider: str = "openai"
    llm_base_url: str = "https://api.openai.com"
    llm_api_key: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    vision_model: Optional[str] = None
    llm_timeout_seconds: float = 120.0

    # Extraction retry budget
    extraction_max_attempts: int = 2
    extraction_backoff_seconds: float = 1.0

    # Merge tuning
    merge_cluster_window_seconds: float = 3.0
    merge_cross_source_window_seconds: float = 15.0
    merge_synonym_groups: List[List[str]] = DEFAULT_SYNONYM_GROUPS
    heuristics_path: Optional[str] = None

    # Scratch item retention
    delete_scratch_items_after_merge: bool = False

    # Background tasks
    frame_sample_interval_seconds: float = 5.0
    frame_sampling_on_ready: bool = False
    task_worker_concurrency: int = 2
    task_max_retries: int = 2

    # Reconciliation sweep
    reconcile_interval_minutes: int = 0
    reconcile_batch_size: int = 100
    reconcile_max_attempts: int = 50  # 0 keeps retrying forever

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache configuration for the current process."""

    return Settings()  # type: ignore[arg-type]


settings = get_settings()
