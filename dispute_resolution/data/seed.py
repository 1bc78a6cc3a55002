"""Seed the data directory with sample orders, customizations and users."""

import shutil
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

from dispute_resolution.config import settings
from dispute_resolution.data.storage import Storage
from dispute_resolution.models.transaction import TransactionReference
from dispute_resolution.models.user import UserProfile


def sample_users() -> list[UserProfile]:
    return [
        UserProfile(id="user_001", display_name="Andrea Cruz", role="customer", email="andrea@example.com"),
        UserProfile(id="user_002", display_name="Ben Santos", role="customer", email="ben@example.com"),
        UserProfile(id="shop_001", display_name="Manila Print Co.", role="shop_owner"),
        UserProfile(id="shop_002", display_name="Cebu Tees", role="shop_owner"),
        UserProfile(id="designer_001", display_name="Carla Reyes", role="designer"),
        UserProfile(id="admin_001", display_name="Dispute Desk", role="arbiter"),
    ]


def sample_orders(now: datetime) -> list[TransactionReference]:
    return [
        TransactionReference(
            id="O1", kind="order", customer_id="user_001", counterparty_id="shop_001",
            total_paid=Decimal("1000.00"), status="delivered",
            status_changed_at=now - timedelta(days=1),
        ),
        TransactionReference(
            id="O2", kind="order", customer_id="user_001", counterparty_id="shop_002",
            total_paid=Decimal("450.00"), status="shipped",
            status_changed_at=now - timedelta(days=2),
        ),
        # Filing window already closed
        TransactionReference(
            id="O3", kind="order", customer_id="user_001", counterparty_id="shop_001",
            total_paid=Decimal("780.00"), status="delivered",
            status_changed_at=now - timedelta(days=30),
        ),
        # Not shipped yet
        TransactionReference(
            id="O4", kind="order", customer_id="user_002", counterparty_id="shop_002",
            total_paid=Decimal("320.00"), status="processing",
            status_changed_at=now - timedelta(hours=5),
        ),
        TransactionReference(
            id="O5", kind="order", customer_id="user_002", counterparty_id="shop_001",
            total_paid=Decimal("1299.99"), status="delivered",
            status_changed_at=now - timedelta(days=3),
        ),
    ]


def sample_customizations(now: datetime) -> list[TransactionReference]:
    return [
        TransactionReference(
            id="C1", kind="customization", customer_id="user_001", counterparty_id="designer_001",
            total_paid=Decimal("2500.00"), status="in_progress",
            status_changed_at=now - timedelta(days=2),
        ),
        TransactionReference(
            id="C2", kind="customization", customer_id="user_002", counterparty_id="designer_001",
            total_paid=Decimal("1800.00"), status="awaiting_customer_approval",
            status_changed_at=now - timedelta(days=1),
        ),
        # No designer assigned yet
        TransactionReference(
            id="C3", kind="customization", customer_id="user_002", counterparty_id=None,
            total_paid=Decimal("900.00"), status="in_progress",
            status_changed_at=now - timedelta(days=1),
        ),
    ]


def seed_data(data_dir: Path | None = None, now: datetime | None = None) -> Storage:
    """Write sample data, relative to now, into the data directory."""
    now = now or datetime.now()
    storage = Storage(data_dir or settings.data_dir)
    storage.save_users(sample_users())
    storage.save_references("order", sample_orders(now))
    storage.save_references("customization", sample_customizations(now))
    return storage


def reset_data(data_dir: Path | None = None) -> Storage:
    """Delete disputes, settlements and ledger entries, then reseed."""
    data_dir = Path(data_dir or settings.data_dir)
    shutil.rmtree(data_dir / "disputes", ignore_errors=True)
    for name in ("settlements.json", "ledger.json"):
        (data_dir / name).unlink(missing_ok=True)
    return seed_data(data_dir)
