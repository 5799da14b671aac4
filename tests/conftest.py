from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from localedge.auth.verify import auth_dependency, current_business, require_admin
from localedge.models.domain.appointment_domain import Appointment, Business, ContactSummary

JERUSALEM = ZoneInfo("Asia/Jerusalem")


def make_appointment(
    appointment_id: str,
    start: datetime,
    duration: int | None = 30,
    status: str = "confirmed",
    **extra,
) -> Appointment:
    return Appointment(
        id=appointment_id,
        business_id=extra.pop("business_id", "biz-1"),
        scheduled_at=start,
        duration_minutes=duration,
        status=status,
        **extra,
    )


def at(hour: int, minute: int = 0, day: int = 15) -> datetime:
    return datetime(2025, 1, day, hour, minute, tzinfo=UTC)


@pytest.fixture
def business():
    return Business(
        id="biz-1",
        name="Dana's Salon",
        owner_user_id="user-123",
        timezone="UTC",
        twilio_phone_number="+15550001111",
        ai_language="english",
    )


@pytest.fixture
def appointment_factory():
    return make_appointment


@pytest.fixture
def contact_summary():
    return ContactSummary(id="contact-1", name="Noa", phone_number="+15550002222")


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


class FakeRedis:
    """In-memory stand-in for FastRedisClient's coordination keys."""

    def __init__(self, available: bool = True):
        self.store: dict[str, str] = {}
        self.available = available

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool | None:
        if not self.available:
            return None
        if key in self.store:
            return False
        self.store[key] = value
        return True

    async def delete_if_equals(self, key: str, value: str) -> bool:
        if self.store.get(key) == value:
            del self.store[key]
            return True
        return False


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def apply_auth_override(auth_override, business):
    def _apply(app, *, admin: bool = False):
        app.dependency_overrides[auth_dependency] = auth_override
        app.dependency_overrides[current_business] = lambda: business
        if admin:
            app.dependency_overrides[require_admin] = auth_override

    return _apply
