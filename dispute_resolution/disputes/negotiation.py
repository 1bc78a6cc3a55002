"""Partial refund offers made inside a dispute negotiation."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable

from dispute_resolution.disputes.state_machine import DisputeStateMachine, replace
from dispute_resolution.errors import ConflictError, ValidationError
from dispute_resolution.models.dispute import Dispute, PartialRefundOffer
from dispute_resolution.models.user import Actor

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def _to_decimal(value: Decimal | float | int | str, field_name: str) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return number


def quote_refund(
    total_paid: Decimal,
    amount: Decimal | float | str | None = None,
    percentage: Decimal | float | str | None = None,
) -> tuple[Decimal, Decimal]:
    """Derive the (amount, percentage) pair from exactly one of them.

    Amounts are rounded half-up to cents and percentages to two decimals.
    Values over the total are rejected, never clamped.
    """
    if (amount is None) == (percentage is None):
        raise ValidationError("Provide exactly one of amount or percentage")
    if total_paid <= 0:
        raise ValidationError("Nothing was paid on this transaction, so nothing can be refunded")

    if amount is not None:
        refund = _to_decimal(amount, "Amount").quantize(CENT, rounding=ROUND_HALF_UP)
        if refund <= 0:
            raise ValidationError("Refund amount must be greater than zero")
        if refund > total_paid:
            raise ValidationError(
                f"Refund amount cannot exceed the total amount paid ({total_paid:.2f})"
            )
        share = (refund / total_paid * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
        return refund, share

    share = _to_decimal(percentage, "Percentage")
    if share <= 0 or share > HUNDRED:
        raise ValidationError("Percentage must be greater than 0 and at most 100")
    refund = (total_paid * share / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    if refund <= 0:
        raise ValidationError("Percentage is too small to refund any amount")
    if refund > total_paid:
        raise ValidationError(
            f"Refund amount cannot exceed the total amount paid ({total_paid:.2f})"
        )
    return refund, share.quantize(CENT, rounding=ROUND_HALF_UP)


class PartialRefundNegotiator:
    """Offer, accept and reject sub-protocol of the negotiation stage."""

    def __init__(
        self,
        state_machine: DisputeStateMachine,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.state_machine = state_machine
        self.clock = clock

    def offer(
        self,
        dispute: Dispute,
        actor: Actor,
        total_paid: Decimal,
        amount: Decimal | float | str | None = None,
        percentage: Decimal | float | str | None = None,
    ) -> Dispute:
        """Record a new pending offer from the accused party."""
        self.state_machine.authorize(dispute, actor, "offer_partial_refund")
        if dispute.has_pending_offer:
            raise ConflictError("A partial refund offer is already awaiting a response")

        refund, share = quote_refund(total_paid, amount=amount, percentage=percentage)

        history = list(dispute.offer_history)
        if dispute.partial_refund_offer is not None:
            history.append(dispute.partial_refund_offer)

        new_offer = PartialRefundOffer(
            amount=refund,
            percentage=share,
            offered_by=actor.user_id,
            status="pending",
            offered_at=self.clock(),
        )
        return replace(dispute, partial_refund_offer=new_offer, offer_history=history)

    def accept(self, dispute: Dispute, actor: Actor) -> Dispute:
        """Claim a partial refund resolution for the pending offer.

        The offer flips to accepted when the resolution completes, after
        settlement of the offered amount.
        """
        self.state_machine.authorize(dispute, actor, "accept_partial_refund")
        offer = self._pending_offer(dispute)
        return self.state_machine.begin_resolution(
            dispute,
            actor,
            "accept_partial_refund",
            "partial_refund",
            amount=offer.amount,
            reason=f"Filer accepted a partial refund of {offer.amount:.2f}",
        )

    def reject(self, dispute: Dispute, actor: Actor) -> Dispute:
        """Reject the pending offer; negotiation continues."""
        self.state_machine.authorize(dispute, actor, "reject_partial_refund")
        offer = self._pending_offer(dispute)
        rejected = offer.model_copy(update={"status": "rejected", "responded_at": self.clock()})
        return replace(dispute, partial_refund_offer=rejected)

    def _pending_offer(self, dispute: Dispute) -> PartialRefundOffer:
        if not dispute.has_pending_offer:
            raise ConflictError("No pending partial refund offer found")
        return dispute.partial_refund_offer
