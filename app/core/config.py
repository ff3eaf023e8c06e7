from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Hydrus Billing"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"  # "production" switches logs to JSON

    DATABASE_URL: str = "sqlite:///./hydrus.db"

    # Session tokens are minted by the magic-link provider with this key
    SECRET_KEY: str = ""  # Must be set via environment variable
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 days

    # Frontend URL for CORS and email links
    FRONTEND_URL: str = "http://localhost:3000"

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_API_VERSION: str = "2024-04-10"
    STRIPE_WEBHOOK_TOLERANCE: int = 300  # seconds, 0 disables the timestamp check

    # Resend Email
    RESEND_API_KEY: str = ""
    FROM_EMAIL: str = "Hydrus Billing <noreply@hydrusbilling.com>"

    # Error tracking (optional)
    SENTRY_DSN: str = ""

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
