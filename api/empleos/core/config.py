from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "empleos-inclusivos-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    jwt_secret: str = "dev-only-jwt-secret-change-me-before-deploying"
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 900
    refresh_token_ttl_seconds: int = 7 * 24 * 3600
    impersonation_token_ttl_seconds: int = 3600
    email_verification_ttl_hours: int = 24
    password_reset_ttl_hours: int = 1
    frontend_url: str = "http://localhost:3000"
    mail_api_url: str | None = None
    mail_api_key: str | None = None
    mail_from: str = "noreply@empleosinclusivos.cl"
    mail_timeout_seconds: float = 5.0
    cors_allow_origins: list[str] = ["http://localhost:3000"]
    otel_enabled: bool = True
    otel_service_name: str = "empleos-inclusivos-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0

    model_config = SettingsConfigDict(env_prefix="EI_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
