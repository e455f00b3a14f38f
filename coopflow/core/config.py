from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "coopflow"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./coopflow.db"

    # Store retry policy for transient I/O errors
    store_max_retries: int = 3
    store_retry_delay: float = 0.1  # seconds, doubles each retry

    # Workflow configuration (YAML with stage chains and loan products)
    stage_policy_path: Optional[str] = None

    # Security
    secret_key: str = "dev-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Notifications
    webhook_urls: str = ""
    webhook_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_dir: str = "/var/log/coopflow"
    file_logging: bool = False

    @property
    def webhook_urls_list(self) -> list[str]:
        return [url.strip() for url in self.webhook_urls.split(",") if url.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="COOPFLOW_",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
