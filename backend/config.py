from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"  # development | test | staging | production
    APP_NAME: str = "Pokrok"
    DATABASE_URL: str = "sqlite:///data/pokrok.db"
    DATA_DIR: Path = Path("data")
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:8050",
        "https://localhost:8050",
    ]
    AUTH_JWT_SECRET: str = "change-me-in-production"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_ISSUER: str | None = None
    AUTH_TOKEN_EXPIRY_HOURS: int = 72
    AUTH_COOKIE_NAME: str = "pokrok_session"
    CRON_SECRET: str | None = None
    DAILY_RESET_CATCH_UP: bool = False
    DEFAULT_TIMEZONE: str = "Europe/Prague"
    DEFAULT_DAILY_STEPS_COUNT: int = 3
    DEFAULT_DAILY_RESET_HOUR: int = 0
    DEFAULT_SHORT_TERM_DAYS: int = 90
    DEFAULT_LONG_TERM_DAYS: int = 365
    SECURITY_HEADERS_ENABLED: bool = True
    SECURITY_CSP: str = (
        "default-src 'self'; "
        "img-src 'self' data:; "
        "style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; "
        "connect-src 'self' https:; "
        "frame-ancestors 'none'; "
        "base-uri 'self'; "
        "form-action 'self';"
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production_like(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in {"production", "prod", "staging"}

    def validate_security_configuration(self) -> None:
        if not self.is_production_like:
            return

        errors: list[str] = []
        if self.AUTH_JWT_SECRET == "change-me-in-production":
            errors.append("AUTH_JWT_SECRET must be changed from the default value")
        if len((self.AUTH_JWT_SECRET or "").strip()) < 32:
            errors.append("AUTH_JWT_SECRET must be at least 32 characters")
        if len((self.CRON_SECRET or "").strip()) < 16:
            errors.append("CRON_SECRET must be set to at least 16 characters")
        if errors:
            joined = "; ".join(errors)
            raise RuntimeError(f"Insecure production configuration: {joined}")


settings = Settings()
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
