from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process config, read from CASELENS_* env vars with local dev defaults.

    Values that influence how a run talks to the classifier are copied into
    the run's config snapshot at creation time, so a stored run never depends
    on whatever the environment looks like later.
    """

    model_config = SettingsConfigDict(env_prefix="CASELENS_", extra="ignore")

    # DuckDB file by default (portable, zero-setup)
    db_url: str = "duckdb:///data/caselens.duckdb"

    # Classifier endpoint (OpenAI-compatible chat completions)
    llm_provider: str = "openai_compatible"
    llm_api_url: str = "http://localhost:1234/v1/chat/completions"
    llm_api_key: str | None = None
    llm_timeout_s: float = 30.0

    # 0 = one attempt per item per pass; errored items are picked up by a
    # later retry-errors-only resume.
    classifier_max_retries: int = 0
    classifier_backoff_s: float = 0.5

    # Filesystem footprint
    lock_dir: str = "data"
    reports_dir: str = "reports"
    log_dir: str = "logs/runs"
    log_level: str = "INFO"

    progress_every: int = 5


settings = Settings()
