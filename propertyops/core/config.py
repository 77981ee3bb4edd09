from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Property Ops"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"  # "development", "staging" or "production"
    LOG_LEVEL: str = "INFO"

    # Database (Supabase Postgres in production)
    DATABASE_URL: str = "sqlite:///./propertyops.db"

    # Sentry error tracking (disabled when empty)
    SENTRY_DSN: str = ""

    # Run the preventive maintenance cron inside the API process
    RUN_SCHEDULER: bool = False

    # Circuit breaker defaults for lazily created records
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_SUCCESS_THRESHOLD: int = 2
    CIRCUIT_RESET_TIMEOUT_SECONDS: int = 60
    CIRCUIT_WRITE_RETRIES: int = 3  # Optimistic-lock conflicts before giving up

    # Outbound HTTP retry defaults
    HTTP_MAX_ATTEMPTS: int = 3
    HTTP_BASE_DELAY_SECONDS: float = 1.0
    HTTP_TIMEOUT_SECONDS: float = 30.0
    HTTP_MAX_RETRY_AFTER_SECONDS: float = 300.0  # Longer Retry-After waits fail the call instead

    # Preventive maintenance task generation
    PREVENTIVE_LOOKAHEAD_DAYS: int = 30
    VACANCY_SEARCH_DAYS: int = 7

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
