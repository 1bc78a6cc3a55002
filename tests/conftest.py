"""Shared fixtures for dispute tests."""

import shutil
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from dispute_resolution.collaborators import ConversationLog
from dispute_resolution.config import ResilienceConfig
from dispute_resolution.data.seed import seed_data
from dispute_resolution.data.storage import Storage
from dispute_resolution.disputes.service import DisputeService
from dispute_resolution.models.user import Actor
from dispute_resolution.utils.logging import AuditLogger
from dispute_resolution.utils.resilience import TTLCounterStore

NOW = datetime(2026, 3, 2, 10, 0, 0)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeLedger:
    """Ledger double that records instructions and can fail on demand."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls: list[tuple[str, str, Decimal, str | None]] = []
        self.accepted: dict[str, tuple[str, str, Decimal]] = {}

    def _instruct(self, kind, reference_id, amount, idempotency_key):
        self.calls.append((kind, reference_id, amount, idempotency_key))
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("ledger unavailable")
        if idempotency_key not in self.accepted:
            self.accepted[idempotency_key] = (kind, reference_id, amount)
        return f"ledger_{idempotency_key}"

    def refund(self, reference_id, amount, idempotency_key=None):
        return self._instruct("refund", reference_id, amount, idempotency_key)

    def release(self, reference_id, amount, idempotency_key=None):
        return self._instruct("release", reference_id, amount, idempotency_key)

    def total(self, kind: str) -> Decimal:
        return sum(
            (amount for k, _, amount in self.accepted.values() if k == kind), Decimal("0")
        )


class RecordingNotifier:
    """Notifier double that keeps every event."""

    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    def notify(self, user_id, event, payload):
        self.events.append((user_id, event, payload))

    def names(self) -> list[str]:
        return [event for _, event, _ in self.events]


CUSTOMER = Actor(user_id="user_001")
SHOP = Actor(user_id="shop_001")
OTHER_CUSTOMER = Actor(user_id="user_002")
DESIGNER = Actor(user_id="designer_001")
ARBITER = Actor(user_id="admin_001", role="arbiter")


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory for tests."""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    shutil.rmtree(temp_dir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def seeded_storage(temp_data_dir):
    """Create a storage instance with seeded data."""
    return seed_data(temp_data_dir, now=NOW)


@pytest.fixture
def audit_logger(temp_data_dir):
    return AuditLogger(log_dir=temp_data_dir / "logs", use_presidio=False)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def conversations():
    return ConversationLog()


@pytest.fixture
def resilience():
    return ResilienceConfig(max_retries=3, retry_base_delay=0, rate_limit_per_window=1000)


@pytest.fixture
def service(seeded_storage, ledger, conversations, notifier, audit_logger, resilience, clock):
    """Dispute service wired to fakes and the seeded data directory."""
    return DisputeService(
        storage=seeded_storage,
        ledger=ledger,
        conversations=conversations,
        notifier=notifier,
        audit_logger=audit_logger,
        counter_store=TTLCounterStore(),
        resilience=resilience,
        clock=clock,
        sleep=lambda _: None,
    )


@pytest.fixture
def filed(service):
    """A dispute filed by user_001 against shop_001 on order O1 (total 1000.00)."""
    return service.file(
        CUSTOMER,
        "order",
        "O1",
        "shipping_damaged",
        "The mug arrived cracked in two places.",
    )
