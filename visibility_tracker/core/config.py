from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "vt_user"
    postgres_password: str = "changeme"
    postgres_db: str = "visibility_tracker"

    @property
    def postgres_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def postgres_url_sync(self) -> str:
        """For Alembic migrations (sync driver)."""
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (Celery broker + result backend)
    redis_url: str = "redis://localhost:6379/0"

    # AI provider gateway: dotted path to a class implementing ProviderGateway
    gateway_class: str = ""

    # Analysis batches
    analysis_unit_timeout_seconds: float = 60.0  # per (prompt, provider) unit
    analysis_max_concurrency: int = 10
    mention_context_radius: int = 100  # chars each side of the first match

    # Visibility recalculation
    recalculation_window_days: int = 30

    # Operator notifications (provider health failures)
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    # App
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if settings.analysis_unit_timeout_seconds <= 0:
        errors.append("ANALYSIS_UNIT_TIMEOUT_SECONDS must be positive")

    if settings.analysis_max_concurrency < 1:
        errors.append("ANALYSIS_MAX_CONCURRENCY must be at least 1")

    if settings.app_env == "production":
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")
        if not settings.gateway_class:
            errors.append("GATEWAY_CLASS must point to a ProviderGateway implementation in production")
        if settings.postgres_password == "changeme":
            errors.append("POSTGRES_PASSWORD must be changed in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
