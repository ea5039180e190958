from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # SQLite for local runs, PostgreSQL in production. The engine picks the dialect.
    DATABASE_URL: str = "sqlite:///./bnb_booking.db"

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Hosting providers hand out postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[len("postgres://"):]
        return v

    # All "today" calculations for sweeps and reminders use this zone
    TIMEZONE: str = "Asia/Taipei"

    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_NOTIFICATION_TOPIC: str = "booking_notifications"

    REDIS_URL: str = "redis://localhost:6379/0"
    PUBLIC_RATE_LIMIT_PER_MINUTE: int = 30

    SCHEDULER_POLL_INTERVAL_SECONDS: int = 3600
    OUTBOX_POLL_INTERVAL_SECONDS: int = 5

    VERIFICATION_CODE_TTL_MINUTES: int = 15

    # Shared with the payment gateway; result callbacks must present it. Empty refuses every callback.
    PAYMENT_GATEWAY_SECRET: str = ""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
