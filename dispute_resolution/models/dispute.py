"""Dispute record model."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dispute_resolution.models.transaction import TransactionReference
from dispute_resolution.models.user import UserProfile

DisputeCategory = Literal[
    # Design phase: customer vs designer
    "design_ghosting",
    "design_quality_mismatch",
    "design_copyright_infringement",
    # Shipping phase: customer vs shop
    "shipping_not_received",
    "shipping_damaged",
    "shipping_wrong_item",
    "shipping_print_quality",
    "shipping_late_delivery",
    "shipping_incomplete_order",
]
DisputeStage = Literal["negotiation", "admin_review", "resolved"]
DisputeStatus = Literal["open", "closed"]
ResolutionOutcome = Literal["refunded", "released", "dismissed", "partial_refund"]
ReferenceKind = Literal["order", "customization"]
OfferStatus = Literal["pending", "accepted", "rejected"]

# Stages only move forward along this order
STAGE_ORDER: tuple[str, ...] = ("negotiation", "admin_review", "resolved")


class EvidenceFile(BaseModel):
    """Reference to an uploaded evidence file."""

    model_config = ConfigDict(extra="forbid")

    url: str = Field(description="Public URL returned by the storage collaborator")
    name: str = Field(description="Original file name")


class PartialRefundOffer(BaseModel):
    """Offer made by the accused party to refund part of the amount paid."""

    amount: Decimal = Field(description="Amount to refund to the filer")
    percentage: Decimal = Field(description="Amount as a percentage of the total paid")
    offered_by: str = Field(description="User who made the offer")
    status: OfferStatus = Field(default="pending", description="Offer status")
    offered_at: datetime = Field(default_factory=datetime.now)
    responded_at: datetime | None = Field(default=None, description="When the filer answered")


class PendingResolution(BaseModel):
    """A terminal outcome that has been claimed but not yet settled."""

    action: str = Field(description="Transition that claimed the resolution")
    outcome: ResolutionOutcome
    amount: Decimal | None = Field(default=None, description="Refund amount for partial refunds")
    reason: str | None = None
    requested_by: str = Field(description="Actor who triggered the resolution")
    requested_at: datetime = Field(default_factory=datetime.now)
    admin_notes: str | None = None
    issue_strike: bool = False


class Dispute(BaseModel):
    """Represents a dispute over a single order or customization request."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Unique dispute ID")
    category: DisputeCategory = Field(description="Type of complaint")
    reference_kind: ReferenceKind = Field(description="Kind of the disputed transaction")
    reference_id: str = Field(description="ID of the disputed order or customization request")
    filed_by: str = Field(description="User who filed the dispute")
    accused_party: str = Field(description="Designer or shop owner named in the dispute")
    description: str = Field(min_length=1, description="Filer's account of the problem")

    evidence_images: list[EvidenceFile] = Field(default_factory=list)
    evidence_video: EvidenceFile | None = None

    conversation_id: str | None = Field(
        default=None, description="Dedicated dispute conversation, assigned once"
    )

    stage: DisputeStage = Field(default="negotiation")
    status: DisputeStatus = Field(default="open")

    partial_refund_offer: PartialRefundOffer | None = None
    offer_history: list[PartialRefundOffer] = Field(
        default_factory=list, description="Offers answered before the current one"
    )

    pending_resolution: PendingResolution | None = Field(
        default=None, description="Outcome awaiting settlement acknowledgment"
    )
    resolution_outcome: ResolutionOutcome | None = None
    resolution_reason: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    settlement_ref: str | None = None

    negotiation_deadline: datetime | None = Field(
        default=None, description="Auto-escalation deadline for the negotiation stage"
    )
    escalated_at: datetime | None = None
    escalation_reason: str | None = None

    admin_notes: str | None = None
    strike_issued: bool = False

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    version: int = Field(default=0, description="Optimistic concurrency counter")

    @model_validator(mode="after")
    def check_lifecycle(self) -> "Dispute":
        if self.filed_by == self.accused_party:
            raise ValueError("filed_by and accused_party must differ")
        if not self.description.strip():
            raise ValueError("description must not be blank")
        if self.status == "closed" and self.stage != "resolved":
            raise ValueError("a closed dispute must be in the resolved stage")
        if self.stage == "resolved" and self.status != "closed":
            raise ValueError("a resolved dispute must be closed")
        terminal_fields = (self.resolution_outcome, self.resolved_at)
        if self.status == "closed" and None in terminal_fields:
            raise ValueError("a closed dispute needs an outcome and resolved_at")
        if self.status == "open" and any(f is not None for f in terminal_fields):
            raise ValueError("an open dispute cannot carry an outcome")
        if (
            self.status == "closed"
            and self.partial_refund_offer is not None
            and self.partial_refund_offer.status == "pending"
        ):
            raise ValueError("a closed dispute cannot have a pending offer")
        return self

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @property
    def has_pending_offer(self) -> bool:
        return self.partial_refund_offer is not None and self.partial_refund_offer.status == "pending"

    def to_display_dict(self) -> dict:
        """Return a dictionary suitable for display."""
        offer = self.partial_refund_offer
        return {
            "id": self.id,
            "reference": f"{self.reference_kind}:{self.reference_id}",
            "category": self.category,
            "stage": self.stage,
            "status": self.status,
            "created_at": self.created_at.strftime("%Y-%m-%d %H:%M"),
            "outcome": self.resolution_outcome,
            "settlement_pending": self.pending_resolution is not None,
            "offer": (
                {"amount": f"{offer.amount:.2f}", "status": offer.status} if offer else None
            ),
            "description": self.description[:100] + "..." if len(self.description) > 100 else self.description,
        }


class DisputeFilters(BaseModel):
    """Optional filters for listing disputes."""

    filed_by: str | None = None
    accused_party: str | None = None
    party: str | None = Field(default=None, description="Matches either the filer or the accused")
    stage: DisputeStage | None = None
    status: DisputeStatus | None = None
    category: DisputeCategory | None = None
    reference_kind: ReferenceKind | None = None
    reference_id: str | None = None
    resolution_outcome: ResolutionOutcome | None = None

    def matches(self, dispute: Dispute) -> bool:
        """Check whether a dispute satisfies every filter that is set."""
        if self.party is not None and self.party not in (dispute.filed_by, dispute.accused_party):
            return False
        for field_name in (
            "filed_by",
            "accused_party",
            "stage",
            "status",
            "category",
            "reference_kind",
            "reference_id",
            "resolution_outcome",
        ):
            expected = getattr(self, field_name)
            if expected is not None and getattr(dispute, field_name) != expected:
                return False
        return True


class DisputeStats(BaseModel):
    """Aggregate counts for the arbiter dashboard."""

    total: int = 0
    open: int = 0
    closed: int = 0
    negotiation: int = 0
    admin_review: int = 0
    resolved: int = 0
    settlement_pending: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    by_outcome: dict[str, int] = Field(default_factory=dict)
    average_resolution_hours: float = 0.0


class DisputeWithParties(BaseModel):
    """A dispute together with the display identities of both parties."""

    dispute: Dispute
    filer: UserProfile | None = None
    accused: UserProfile | None = None
    reference: TransactionReference | None = None
    available_actions: list[str] = Field(
        default_factory=list, description="Actions the viewing actor may take now"
    )
