"""Application configuration using Pydantic Settings."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings shared by the coordinator, worker nodes and the producer CLI."""

    # Database
    DATABASE_URL: str = "sqlite:///./taskqueue.db"

    # Redis stream
    REDIS_URL: str = "redis://localhost:6379/0"
    STREAM_NAME: str = "task-queue"
    CONSUMER_GROUP: str = "worker-group"
    CONSUMER_NAME: Optional[str] = None  # Defaults to the worker id
    BATCH_SIZE: int = 10
    BLOCK_TIMEOUT_MS: int = 5000
    IDLE_WAIT_SECONDS: float = 1.0
    CONSUME_ERROR_BACKOFF_SECONDS: float = 5.0
    RESULT_TTL_SECONDS: int = 86400

    # Abandoned pending entries
    PENDING_CLAIM_INTERVAL_SECONDS: float = 60.0
    PENDING_CLAIM_MIN_IDLE_MS: int = 300000

    # Worker identity
    WORKER_ID: Optional[str] = None
    WORKER_HOST_ADDRESS: Optional[str] = None
    WORKER_PORT: int = 0

    # Heartbeats
    HEARTBEAT_INTERVAL_SECONDS: float = 30.0
    HEARTBEAT_RETRY_SECONDS: float = 10.0
    WORKER_LIVENESS_WINDOW_SECONDS: int = 300

    # Stale task reclaimer
    TASK_TIMEOUT_MINUTES: int = 30
    STALE_SCAN_INTERVAL_SECONDS: float = 300.0
    MAX_TASK_RETRIES: int = 3
    RECLAIMER_ENABLED: bool = True

    # Coordinator HTTP
    COORDINATOR_URL: str = "http://localhost:8000"
    COORDINATOR_API_TOKEN: str = ""
    COORDINATOR_HOST: str = "0.0.0.0"
    COORDINATOR_PORT: int = 8000
    HTTP_TIMEOUT_SECONDS: float = 10.0
    BOOTSTRAP_ADMIN_TOKEN: str = ""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
