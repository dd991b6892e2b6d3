import os

# Settings are read at import time; point them at throwaway values first.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./slotwise-test-unused.db"
os.environ["DATABASE_SSL"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"
os.environ["SMTP_HOST"] = ""
os.environ["PAYMENT_CURRENCY"] = "INR"
os.environ["DEFAULT_DEPOSIT_PERCENT"] = "30"
os.environ["PAYMENT_HOLD_MINUTES"] = "10"

import json
from datetime import UTC, date, datetime
from types import SimpleNamespace

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

import slotwise.models  # noqa: F401 - register tables
from slotwise.core.errors import GatewayError
from slotwise.models.appointment import ClientContact
from slotwise.models.business import Business
from slotwise.models.service import Service
from slotwise.models.staff import StaffMember, StaffServiceLink
from slotwise.services import locks
from slotwise.services.local_time import to_instant
from slotwise.services.payment_gateway import (
    GatewayOrder,
    PaymentGateway,
    RazorpayGateway,
    compute_hmac_sha256,
)

TZ = "America/New_York"
MONDAY = date(2030, 1, 7)
SUNDAY = date(2030, 1, 6)
# Fixed clock well before the booking dates used in tests
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)
WEBHOOK_SECRET = "whsec_test"


def at(hhmm: str, day: date = MONDAY) -> datetime:
    """Business-local wall time on `day` as an aware UTC instant."""
    return to_instant(day, hhmm, TZ)


def working_day(start: str = "09:00", end: str = "17:00", breaks: list | None = None) -> dict:
    return {"isWorking": True, "startTime": start, "endTime": end, "breaks": breaks or []}


def client_contact(name: str = "Jamie Rivera", email: str = "jamie@example.com") -> ClientContact:
    return ClientContact(name=name, email=email, phone="+1 555 0100")


def signed_webhook(
    event: str, order_id: str, payment_id: str = "pay_001", secret: str = WEBHOOK_SECRET
) -> tuple[bytes, str]:
    payload = {
        "event": event,
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "order_id": order_id,
                    "method": "card",
                    "amount": 1200,
                    "status": event.split(".")[-1],
                }
            }
        },
    }
    body = json.dumps(payload).encode("utf-8")
    return body, compute_hmac_sha256(secret, body)


class FakeGateway(PaymentGateway):
    """Records orders in memory; callbacks are verified like the real Razorpay adapter."""

    public_key = "rzp_test_key"
    signature_header = RazorpayGateway.signature_header

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.orders: list[tuple[GatewayOrder, dict[str, str]]] = []
        self._verifier = RazorpayGateway(
            key_id="rzp_test_key", key_secret="rzp_test_secret", webhook_secret=WEBHOOK_SECRET
        )

    async def create_order(self, amount: int, currency: str, metadata: dict[str, str]) -> GatewayOrder:
        if self.fail:
            raise GatewayError()
        order = GatewayOrder(order_id=f"order_{len(self.orders) + 1:04d}", amount=amount, currency=currency)
        self.orders.append((order, metadata))
        return order

    def verify_and_parse_callback(self, raw_body: bytes, signature: str | None):
        return self._verifier.verify_and_parse_callback(raw_body, signature)


@pytest.fixture(autouse=True)
def fresh_staff_locks(monkeypatch):
    # asyncio locks must not leak between per-test event loops
    monkeypatch.setattr(locks, "staff_locks", locks.StaffLockRegistry())


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'slotwise.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


@pytest_asyncio.fixture
async def seed(session):
    business = Business(name="Downtown Studio", slug="downtown", timezone=TZ, slot_interval_minutes=15)
    other = Business(name="Uptown Studio", slug="uptown", timezone=TZ, slot_interval_minutes=15)
    session.add_all([business, other])
    await session.flush()

    haircut = Service(business_id=business.id, name="Haircut", duration_minutes=60, buffer_minutes=0, price=4000)
    consult = Service(business_id=business.id, name="Consultation", duration_minutes=30, buffer_minutes=15, price=0)
    unassigned = Service(business_id=business.id, name="Colour", duration_minutes=90, price=9000)
    foreign = Service(business_id=other.id, name="Shave", duration_minutes=30, price=1500)
    session.add_all([haircut, consult, unassigned, foreign])

    alex = StaffMember(business_id=business.id, name="Alex", schedule={"monday": working_day()})
    blair = StaffMember(
        business_id=business.id,
        name="Blair",
        schedule={"monday": working_day(breaks=[{"startTime": "12:00", "endTime": "13:00"}])},
    )
    session.add_all([alex, blair])
    await session.flush()

    session.add_all(
        [
            StaffServiceLink(staff_id=alex.id, service_id=haircut.id),
            StaffServiceLink(staff_id=alex.id, service_id=consult.id),
            StaffServiceLink(staff_id=blair.id, service_id=haircut.id),
            StaffServiceLink(staff_id=blair.id, service_id=consult.id),
        ]
    )
    await session.commit()
    return SimpleNamespace(
        business=business,
        other=other,
        haircut=haircut,
        consult=consult,
        unassigned=unassigned,
        foreign=foreign,
        alex=alex,
        blair=blair,
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def client(session_maker, gateway, seed):
    from slotwise.api.deps import get_gateway, get_session
    from slotwise.main import app

    async def _session():
        async with session_maker() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_gateway] = lambda: gateway
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
