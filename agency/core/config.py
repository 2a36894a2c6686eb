from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "agency-site"

    ADMIN_JWT_TTL_MINUTES: int = 240
    ADMIN_JWT_SECRET: str = "change_me_admin"
    ADMIN_COOKIE_NAME: str = "admin_jwt"
    ADMIN_MIN_PASSWORD_LENGTH: int = 8
    ADMIN_BOOTSTRAP_ENABLED: bool = True
    ADMIN_BOOTSTRAP_EMAIL: str = "admin@example.com"
    ADMIN_BOOTSTRAP_PASSWORD: str = "admin123"
    ADMIN_BOOTSTRAP_NAME: str = "Site admin"

    CORS_ORIGINS: str = "http://localhost:3000"

    DATABASE_URL: str
    REDIS_URL: str

    SITE_LOCK_PASSWORD: str = ""
    SITE_UNLOCK_COOKIE: str = "site_unlocked"
    SITE_UNLOCK_COOKIE_MAX_AGE_DAYS: int = 7

    EMAIL_PROVIDER: str = "dummy"  # dummy | service | smtp
    EMAIL_SERVICE_URL: str = "http://email-service:8010"
    INTERNAL_SERVICE_TOKEN: str = "change_me_internal_service_token"
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    INTERNAL_EMAIL: str = ""
    ENQUIRE_FROM_EMAIL: str = "Enquiries <enquire@example.com>"
    JOIN_FROM_EMAIL: str = "Artists <jobs@example.com>"
    CONTACT_FROM_EMAIL: str = "Contact <contact@example.com>"

    SUBMIT_RATE_LIMIT: int = 10
    SUBMIT_RATE_LIMIT_WINDOW_SECONDS: int = 600
    SUBMIT_MAX_FILES: int = 3
    SUBMIT_MAX_FILE_MB: int = 5

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()
