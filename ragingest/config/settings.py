"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK (Junior Developer Guide) ───────────────────────
#
# pydantic-settings reads configuration from TWO sources (priority order):
#
#   1. Environment variables, e.g. COHERE_API_KEY=...  (always wins)
#   2. A .env file in the working directory            (local development)
#
# Field `cohere_api_key` maps to env var `COHERE_API_KEY`; defaults apply
# when neither source sets a value.
#
# Fields validate on construction: CHUNK_OVERLAP >= CHUNK_SIZE fails at
# startup, not on the first upload.  Copy .env.example to .env to start.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """ragingest application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Embedding providers ===
    # Empty string = "not configured"; main.py skips providers without keys.
    cohere_api_key: str = ""
    cohere_base_url: str = "https://api.cohere.com"
    cohere_embedding_model: str = "embed-english-v3.0"
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = Field(default=1024, gt=0)
    embedding_timeout: float = 30.0

    # === Document processing ===
    chunk_size: int = Field(default=512, gt=0)
    chunk_overlap: int = Field(default=50, ge=0)
    max_embedding_retries: int = Field(default=3, ge=0)
    embedding_batch_size: int = Field(default=5, gt=0)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    retry_max_delay: float = Field(default=30.0, ge=0.0)
    cleanup_partial_chunks: bool = False
    max_upload_bytes: int = 50 * 1024 * 1024

    # === Progress tracking ===
    progress_retention_seconds: float = 300.0
    progress_orphan_ttl_seconds: float = 1800.0
    progress_sweep_interval_seconds: float = 30.0
    progress_max_entries: int = Field(default=10_000, gt=0)
    progress_poll_interval_seconds: float = 0.25

    # === Storage ===
    document_db_path: str = "data/documents.db"

    # === App config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        # Rejected here so a bad deployment fails at startup, not per upload.
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
        return self

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that have non-empty API keys configured."""
        providers: list[str] = []
        if self.cohere_api_key:
            providers.append("cohere")
        if self.openai_api_key:
            providers.append("openai")
        return providers
