from dataclasses import dataclass
from typing import Optional

from pydantic_settings import BaseSettings

PRACTICES_FOR_SALE_URL = (
    "https://www.ft-associates.com/buying-a-dental-practice/dental-practices-for-sale/"
)
PRACTICE_DETAIL_URL_TEMPLATE = "https://www.ft-associates.com/dental-practices/{ref}/"


@dataclass(frozen=True)
class AdminOverrides:
    """Operator overrides for the onboarding flow, loaded once per process."""

    skip_onboarding: bool = False
    force_onboarding: bool = False

    def should_show_onboarding(self, completed: bool) -> bool:
        # force wins over skip
        if self.force_onboarding:
            return True
        if self.skip_onboarding:
            return False
        return not completed


class Settings(BaseSettings):
    database_url: str = "sqlite:///./marketplace.db"

    # Remote mutation sinks (outbox). Empty means "not configured".
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # Pull side
    listings_source_url: str = PRACTICES_FOR_SALE_URL
    listings_detail_url_template: str = PRACTICE_DETAIL_URL_TEMPLATE
    listings_enrich_details: bool = False
    listings_sync_throttle_hours: float = 12.0
    listings_sync_interval_minutes: int = 60
    detail_cache_max_age_hours: float = 24.0 * 7

    # Push side
    outbox_flush_limit: int = 25
    outbox_flush_interval_minutes: int = 15
    outbox_lease_seconds: int = 300

    http_timeout_seconds: float = 20.0

    # Admin overrides, read once at startup
    admin_skip_onboarding: bool = False
    admin_force_onboarding: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def admin_overrides(self) -> AdminOverrides:
        return AdminOverrides(
            skip_onboarding=self.admin_skip_onboarding,
            force_onboarding=self.admin_force_onboarding,
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
