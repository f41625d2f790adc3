import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"))

DEFAULT_STORE_URL = "http://localhost:8100"


class PortalSettings(BaseModel):
    test_start_time: datetime
    test_duration_minutes: int = Field(60, gt=0)
    max_tab_switches: int = Field(2, ge=0)
    warning_seconds: int = Field(5, ge=0)
    store_url: str = DEFAULT_STORE_URL
    store_api_key: str = "local-dev-key"
    admin_password: Optional[str] = None

    @field_validator("test_start_time")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        # Naive timestamps are taken as UTC so every client compares the same instant
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.test_duration_minutes)

    @property
    def test_end_time(self) -> datetime:
        return self.test_start_time + self.duration


def load_settings() -> PortalSettings:
    start = os.getenv("TEST_START_TIME")
    if not start:
        raise RuntimeError("TEST_START_TIME is not set. Put it in .env or environment variables.")

    return PortalSettings(
        test_start_time=datetime.fromisoformat(start),
        test_duration_minutes=int(os.getenv("TEST_DURATION_MINUTES", 60)),
        max_tab_switches=int(os.getenv("MAX_TAB_SWITCHES", 2)),
        warning_seconds=int(os.getenv("TAB_WARNING_SECONDS", 5)),
        store_url=os.getenv("STORE_URL", DEFAULT_STORE_URL),
        store_api_key=os.getenv("STORE_API_KEY", "local-dev-key"),
        admin_password=os.getenv("ADMIN_PASSWORD") or None,
    )
