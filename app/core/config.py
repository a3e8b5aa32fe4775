from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "ZimTravel Payments API"
    # Comma-separated origins for CORS (e.g. https://zimtravel.co.zw). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    PUBLIC_URL: str = "http://localhost:8080"  # browser origin; Paynow return URL defaults to {PUBLIC_URL}/payment-status
    API_PUBLIC_URL: str = ""  # e.g. https://api.zimtravel.co.zw - Paynow result (status) callbacks go to {API_PUBLIC_URL}/api/v1/webhooks/paynow

    # Stripe (card payments)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_API_VERSION: str = "2023-10-16"

    # Paynow (mobile money / web checkout)
    PAYNOW_INTEGRATION_ID: str = ""
    PAYNOW_INTEGRATION_KEY: str = ""
    PAYNOW_BASE_URL: str = "https://www.paynow.co.zw/interface"
    PAYNOW_TIMEOUT: int = 25
    PAYNOW_POLL_MAX_AGE_MINUTES: int = 120  # background poller gives up on older pending attempts


settings = Settings()
