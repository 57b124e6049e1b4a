from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from datetime import date, datetime, timezone
from typing import List


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./cruise_parking.db",
        alias="DATABASE_URL"
    )

    # CORS - Frontend URLs from environment (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="ALLOWED_ORIGINS"
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # ==============================================
    # WooCommerce order feed (Server-Side Only!)
    # ==============================================
    woo_base_url: str = Field(
        default="https://jaxportparking.com/wp-json/wc/v3",
        alias="WOO_BASE_URL"
    )
    woo_consumer_key: str = Field(default="", alias="WOO_CONSUMER_KEY")
    woo_consumer_secret: str = Field(default="", alias="WOO_CONSUMER_SECRET")

    # Only completed orders occupy the lot
    woo_order_status: str = Field(default="completed", alias="WOO_ORDER_STATUS")
    woo_per_page: int = Field(default=100, alias="WOO_PER_PAGE")

    # HTTP timeout for feed requests
    woo_timeout_seconds: float = Field(default=20.0, alias="WOO_TIMEOUT_SECONDS")

    # Upper bound on pages fetched in parallel after page 1
    woo_max_concurrent_pages: int = Field(default=8, alias="WOO_MAX_CONCURRENT_PAGES")

    # Line item meta key that carries the drop-off (embarkation) date
    booking_date_meta_key: str = Field(default="_prdd_lite_date", alias="BOOKING_DATE_META_KEY")

    # ==============================================
    # Lot & occupancy
    # ==============================================
    lot_capacity: int = Field(default=115, alias="LOT_CAPACITY")
    high_occupancy_threshold: int = Field(default=80, alias="HIGH_OCCUPANCY_THRESHOLD")
    max_query_days: int = Field(default=731, alias="MAX_QUERY_DAYS")

    # ==============================================
    # Sync
    # ==============================================
    # Starting point for full syncs and for the very first incremental sync
    sync_epoch: date = Field(default=date(2025, 1, 1), alias="SYNC_EPOCH")

    sync_schedule_enabled: bool = Field(default=False, alias="SYNC_SCHEDULE_ENABLED")
    sync_interval_minutes: int = Field(default=60, alias="SYNC_INTERVAL_MINUTES")

    # A lock older than this is considered abandoned (crashed worker)
    sync_lock_stale_minutes: int = Field(default=30, alias="SYNC_LOCK_STALE_MINUTES")

    # Rate limiter backend, e.g. "redis://localhost:6379"
    ratelimit_storage_uri: str = Field(default="memory://", alias="RATELIMIT_STORAGE_URI")

    @field_validator('lot_capacity')
    @classmethod
    def validate_lot_capacity(cls, v: int) -> int:
        """Capacity is a divisor for every percentage we compute"""
        if v <= 0:
            raise ValueError("LOT_CAPACITY must be a positive integer")
        return v

    @field_validator('database_url')
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        # Hosted Postgres providers hand out postgres://, SQLAlchemy needs postgresql://
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def has_feed_credentials(self) -> bool:
        """Check if WooCommerce credentials are configured"""
        return bool(self.woo_consumer_key and self.woo_consumer_secret)

    @property
    def sync_epoch_datetime(self) -> datetime:
        """Epoch as a UTC-aware datetime, used as the feed watermark"""
        return datetime(
            self.sync_epoch.year, self.sync_epoch.month, self.sync_epoch.day,
            tzinfo=timezone.utc
        )

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)

        return origins or ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
