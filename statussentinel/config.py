from pydantic_settings import BaseSettings

# ~90 days of history at one sample per minute
HISTORY_CAPACITY = 129_600


class Settings(BaseSettings):
    """Daemon settings loaded from environment variables."""

    # Database
    sentinel_database_url: str | None = None
    # Split connection variables, used when no URL is given
    database_host: str | None = None
    database_port: int = 5432
    database_name: str | None = None
    database_user: str | None = None
    database_password: str | None = None

    # Services
    sentinel_services_file: str = "services.json"

    # Probing
    sentinel_poll_interval: float = 60.0
    sentinel_probe_timeout: float = 2.0
    sentinel_failure_threshold: int = 5
    sentinel_history_capacity: int = HISTORY_CAPACITY

    # Logging
    sentinel_log_level: str = "info"
    sentinel_log_format: str = "json"  # "json" or "console"

    model_config = {"env_prefix": "", "case_sensitive": False, "env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def database_url(self) -> str:
        if self.sentinel_database_url:
            return self.sentinel_database_url
        if self.database_host:
            return (
                f"postgresql+asyncpg://{self.database_user or ''}:{self.database_password or ''}"
                f"@{self.database_host}:{self.database_port}/{self.database_name or ''}"
            )
        return "sqlite+aiosqlite:///data/sentinel.db"


settings = Settings()
