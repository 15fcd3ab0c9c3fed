"""
Operator settings using Pydantic.

Provides environment-based configuration loading with KEELSON_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Operator settings."""

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # Kubernetes access for the crate cluster
    kubeconfig: str | None = None
    kube_context: str | None = None
    namespace: str | None = None
    store_timeout: float = 30.0
    store_max_retries: int = 3
    store_retry_backoff_factor: float = 0.5

    # Controller runtime
    max_concurrent_reconciles: int = 4
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 300.0

    # Component reconciliation
    dependency_requeue_seconds: float = 60.0
    deletion_requeue_seconds: float = 10.0

    # APIServer worker
    worker_interval_seconds: float = 10.0
    worker_max_workers: int = 1

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "KEELSON_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
