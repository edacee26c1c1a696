from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Expense Tracker API"
    database_url: str = ""
    # Comma-separated origins for CORS. Use "*" only for local development.
    cors_allow_origins: str = "*"
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    access_token_ttl_days: int = 7
    log_level: str = "INFO"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 20
    default_currency: str = "INR"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]


settings = Settings()
