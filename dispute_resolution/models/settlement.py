"""Settlement result model."""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, Field

from dispute_resolution.models.dispute import ResolutionOutcome


class SettlementResult(BaseModel):
    """Record of the money movement executed for a resolved dispute."""

    settlement_ref: str = Field(default_factory=lambda: f"stl_{uuid4().hex[:16]}")
    dispute_id: str
    reference_id: str
    outcome: ResolutionOutcome
    refunded_amount: Decimal = Decimal("0")
    released_amount: Decimal = Decimal("0")
    ledger_refs: list[str] = Field(
        default_factory=list, description="References returned by the ledger collaborator"
    )
    settled_at: datetime = Field(default_factory=datetime.now)


class LedgerEntry(BaseModel):
    """A single refund or release instruction accepted by the local ledger."""

    ref: str = Field(default_factory=lambda: f"ldg_{uuid4().hex[:16]}")
    kind: str = Field(description="refund or release")
    reference_id: str
    amount: Decimal
    idempotency_key: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
