"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Workflow configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Cashier backend
    cashier_api_base: str = "http://localhost:8003"
    cashier_api_token: str | None = None

    # Service
    service_name: str = "cashier-workflow"
    log_level: str = "INFO"
    currency: str = "TRY"

    # HTTP Client
    http_timeout_seconds: float = 10.0
    submission_max_retries: int = 3
    submission_backoff_base: float = 0.5  # Exponential backoff base in seconds


settings = Settings()
