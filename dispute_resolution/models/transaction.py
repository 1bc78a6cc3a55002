"""Transaction reference model."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class TransactionReference(BaseModel):
    """Read-only view of an order or customization request that can be disputed."""

    id: str = Field(description="Order or customization request identifier")
    kind: Literal["order", "customization"] = Field(description="Kind of transaction")
    customer_id: str = Field(description="Customer who paid")
    counterparty_id: str | None = Field(
        default=None, description="Shop owner for orders, assigned designer for customizations"
    )
    total_paid: Decimal = Field(description="Total amount paid on the transaction")
    currency: str = Field(default="PHP", description="Currency code")
    status: str = Field(description="Order or customization status")
    status_changed_at: datetime = Field(
        description="When the status that opens the filing window was reached"
    )
    payment_status: Literal["pending", "captured", "refunded"] = Field(
        default="captured", description="Payment status"
    )

    def is_party(self, user_id: str) -> bool:
        """Check whether a user took part in this transaction."""
        return user_id in (self.customer_id, self.counterparty_id)

    def to_display_dict(self) -> dict:
        """Return a dictionary suitable for display to users."""
        return {
            "id": self.id,
            "kind": self.kind,
            "total_paid": f"{self.currency} {self.total_paid:.2f}",
            "status": self.status,
            "status_changed_at": self.status_changed_at.strftime("%Y-%m-%d %H:%M"),
            "payment_status": self.payment_status,
        }
