from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Simulated store behaviour
    SIMULATE_LATENCY: bool = True
    LATENCY_MIN_MS: int = 100
    LATENCY_MAX_MS: int = 800
    FAILURE_RATE: float = 0.05
    RANDOM_SEED: int | None = None

    # Transaction directory
    SEED_TRANSACTIONS: int = 200
    MAX_RETRIES: int = 3
    RETRY_DELAY_MS: int = 1000

    # Listing
    PAGE_SIZE: int = 10
    AUDIT_PAGE_SIZE: int = 50

    # Realtime
    REALTIME_TICK_MS: int = 1000
    # Undelivered events beyond this are evicted oldest first and never delivered.
    EVENT_QUEUE_MAX: int = 1000

    # Drafts
    DRAFT_AUTOSAVE_DEBOUNCE_MS: int = 1000

    # App
    APP_ENV: str = "development"
    ALLOWED_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
