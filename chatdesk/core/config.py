from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_AUTH_SECRET = "local-dev-chatdesk-auth-secret-change-me"


class Settings(BaseSettings):
    app_env: str = "local"
    api_port: int = 8000
    log_level: str = "INFO"

    postgres_host: str = "127.0.0.1"
    postgres_port: int = 5432
    postgres_db: str = "chatdesk"
    postgres_user: str = "chatdesk"
    postgres_password: str = "chatdesk_password"
    database_url_override: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL_OVERRIDE", "DATABASE_URL"),
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_auto_create: bool = False
    db_seed_defaults: bool = True

    auth_secret: str = DEFAULT_AUTH_SECRET
    auth_token_ttl_minutes: int = 60 * 24 * 7
    cors_allowed_origins_raw: str = "http://127.0.0.1:5173,http://localhost:5173"
    trusted_hosts_raw: str = "127.0.0.1,localhost"
    force_https: bool = False
    api_rate_limit: int = 100
    api_rate_window_seconds: int = 15 * 60

    completion_base_url: str = "https://api.openai.com/v1"
    completion_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("COMPLETION_API_KEY", "OPENAI_API_KEY"),
    )
    completion_model: str = "gpt-3.5-turbo"
    completion_max_tokens: int = 500
    completion_temperature: float = 0.7
    completion_presence_penalty: float = 0.1
    completion_frequency_penalty: float = 0.1
    completion_timeout_seconds: float = 30.0
    completion_history_window: int = 10
    completion_max_reply_chars: int = 2000
    auto_reply_enabled: bool = True

    history_cache_max_keys: int = 5000
    history_cache_max_messages: int = 20
    history_cache_ttl_seconds: int = 6 * 60 * 60

    facebook_verify_token: str | None = None
    facebook_app_secret: str | None = None
    facebook_page_access_token: str | None = None
    line_channel_secret: str | None = None
    line_channel_access_token: str | None = None
    telegram_bot_token: str | None = None
    telegram_secret_token: str | None = None
    instagram_access_token: str | None = None
    platform_timeout_seconds: float = 10.0

    telemetry_enabled: bool = True
    telemetry_bot_token: str | None = None
    telemetry_chat_id: str | None = None
    telemetry_interval_seconds: int = 12 * 60 * 60
    telemetry_startup_delay_seconds: int = 30
    public_base_url: str = ""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def cors_allowed_origins(self) -> list[str]:
        return [
            origin.strip()
            for origin in self.cors_allowed_origins_raw.split(",")
            if origin.strip()
        ]

    @property
    def trusted_hosts(self) -> list[str]:
        return [
            host.strip() for host in self.trusted_hosts_raw.split(",") if host.strip()
        ]

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    def validate_security_settings(self) -> None:
        if not self.is_production:
            return

        if self.auth_secret == DEFAULT_AUTH_SECRET:
            raise ValueError("AUTH_SECRET must be overridden in production.")
        if len(self.auth_secret) < 32:
            raise ValueError("AUTH_SECRET must be at least 32 characters in production.")
        if not self.cors_allowed_origins:
            raise ValueError(
                "CORS_ALLOWED_ORIGINS_RAW must define explicit origins in production."
            )
        if "*" in self.cors_allowed_origins:
            raise ValueError("Wildcard CORS origin is not allowed in production.")
        if not self.trusted_hosts:
            raise ValueError(
                "TRUSTED_HOSTS_RAW must define explicit hosts in production."
            )
        if "*" in self.trusted_hosts:
            raise ValueError("Wildcard trusted host is not allowed in production.")


@lru_cache
def get_settings() -> Settings:
    return Settings()
