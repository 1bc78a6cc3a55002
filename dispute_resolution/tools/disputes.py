"""Dispute tools exposed to callers acting on behalf of the session user."""

from typing import Any

from langchain_core.tools import tool

from dispute_resolution.collaborators import ConversationLog
from dispute_resolution.config import settings
from dispute_resolution.data.storage import Storage
from dispute_resolution.disputes.service import DisputeService
from dispute_resolution.errors import DisputeError
from dispute_resolution.models.dispute import Dispute, DisputeFilters
from dispute_resolution.utils.logging import AuditLogger
from dispute_resolution.utils.resilience import CircuitBreaker, RateLimitExceeded, TTLCounterStore
from dispute_resolution.utils.session import get_current_actor

# Shared across tool calls in this process
_conversations = ConversationLog()
_counters = TTLCounterStore()
_circuit_breaker = CircuitBreaker(
    failure_threshold=settings.resilience.circuit_breaker_threshold,
    recovery_timeout=settings.resilience.circuit_breaker_recovery,
)


def _service() -> DisputeService:
    return DisputeService(
        storage=Storage(),
        conversations=_conversations,
        audit_logger=AuditLogger(log_dir=settings.log_dir, use_presidio=settings.pii_use_presidio),
        counter_store=_counters,
        circuit_breaker=_circuit_breaker,
    )


def _failure(error: Exception) -> dict[str, Any]:
    if isinstance(error, DisputeError):
        return error.to_dict()
    return {"success": False, "error": "rate_limited", "message": str(error)}


def _summary(dispute: Dispute) -> dict[str, Any]:
    offer = dispute.partial_refund_offer
    pending = dispute.pending_resolution
    return {
        "id": dispute.id,
        "reference": f"{dispute.reference_kind}:{dispute.reference_id}",
        "category": dispute.category,
        "stage": dispute.stage,
        "status": dispute.status,
        "filed_by": dispute.filed_by,
        "accused_party": dispute.accused_party,
        "description": dispute.description,
        "evidence_images": len(dispute.evidence_images),
        "has_video": dispute.evidence_video is not None,
        "conversation_id": dispute.conversation_id,
        "negotiation_deadline": (
            dispute.negotiation_deadline.strftime("%Y-%m-%d %H:%M")
            if dispute.negotiation_deadline
            else None
        ),
        "partial_refund_offer": (
            {
                "amount": f"{offer.amount:.2f}",
                "percentage": f"{offer.percentage}",
                "status": offer.status,
            }
            if offer
            else None
        ),
        "settlement_pending": (
            {"action": pending.action, "outcome": pending.outcome} if pending else None
        ),
        "resolution_outcome": dispute.resolution_outcome,
        "resolution_reason": dispute.resolution_reason,
        "settlement_ref": dispute.settlement_ref,
    }


@tool
def check_dispute_eligibility(reference_kind: str, reference_id: str) -> dict[str, Any]:
    """Check whether the current user can file a dispute for a transaction.

    Args:
        reference_kind: "order" or "customization"
        reference_id: The order or customization request ID

    Returns:
        Dictionary with can_file and, when false, the reason
    """
    actor = get_current_actor()
    result = _service().check_eligibility(actor, reference_kind, reference_id)
    return result.to_dict()


@tool
def file_dispute(
    reference_kind: str,
    reference_id: str,
    category: str,
    description: str,
    evidence_images: list[dict] | None = None,
    evidence_video: dict | None = None,
) -> dict[str, Any]:
    """File a dispute against the other party of an order or customization.

    Evidence must already be uploaded; pass each file as {"url": ..., "name": ...}.

    Args:
        reference_kind: "order" or "customization"
        reference_id: The order or customization request ID
        category: Dispute category, e.g. shipping_damaged or design_ghosting
        description: What went wrong
        evidence_images: Optional list of image references
        evidence_video: Optional video reference

    Returns:
        Dictionary with the filed dispute or an error
    """
    actor = get_current_actor()
    try:
        dispute = _service().file(
            actor,
            reference_kind,
            reference_id,
            category,
            description,
            evidence_images=evidence_images,
            evidence_video=evidence_video,
        )
    except (DisputeError, RateLimitExceeded) as e:
        return _failure(e)

    return {
        "success": True,
        "dispute_id": dispute.id,
        "message": "Your dispute has been filed. The other party has been notified.",
        "dispute": _summary(dispute),
        "next_steps": [
            "Use the dispute conversation to negotiate with the other party.",
            f"If nothing is agreed by {dispute.negotiation_deadline:%Y-%m-%d %H:%M}, "
            "the dispute is escalated to admin review.",
            f"Your dispute reference number is: {dispute.id}",
        ],
    }


@tool
def get_dispute(dispute_id: str) -> dict[str, Any]:
    """Get a dispute with both parties and the actions available to you.

    Args:
        dispute_id: The dispute ID

    Returns:
        Dictionary with the dispute or an error
    """
    actor = get_current_actor()
    try:
        details = _service().get_by_id(actor, dispute_id)
    except DisputeError as e:
        return _failure(e)

    return {
        "success": True,
        "dispute": _summary(details.dispute),
        "filer": details.filer.to_display_dict() if details.filer else None,
        "accused": details.accused.to_display_dict() if details.accused else None,
        "transaction": details.reference.to_display_dict() if details.reference else None,
        "available_actions": details.available_actions,
    }


@tool
def accept_dispute(dispute_id: str) -> dict[str, Any]:
    """Accept a dispute filed against you and refund the customer in full.

    Args:
        dispute_id: The dispute ID

    Returns:
        Dictionary with the resolved dispute or an error
    """
    actor = get_current_actor()
    try:
        dispute = _service().accept_dispute(actor, dispute_id)
    except (DisputeError, RateLimitExceeded) as e:
        return _failure(e)
    return {"success": True, "message": "Dispute accepted and refunded.", "dispute": _summary(dispute)}


@tool
def cancel_dispute(dispute_id: str, reason: str | None = None) -> dict[str, Any]:
    """Withdraw a dispute you filed.

    Args:
        dispute_id: The dispute ID
        reason: Optional reason for withdrawing

    Returns:
        Dictionary with the closed dispute or an error
    """
    actor = get_current_actor()
    try:
        dispute = _service().cancel_dispute(actor, dispute_id, reason=reason)
    except (DisputeError, RateLimitExceeded) as e:
        return _failure(e)
    return {"success": True, "message": "Dispute cancelled.", "dispute": _summary(dispute)}


@tool
def escalate_dispute(dispute_id: str, reason: str | None = None) -> dict[str, Any]:
    """Escalate a dispute to admin review.

    Args:
        dispute_id: The dispute ID
        reason: Optional reason for escalating

    Returns:
        Dictionary with the dispute or an error
    """
    actor = get_current_actor()
    try:
        dispute = _service().escalate(actor, dispute_id, reason=reason)
    except (DisputeError, RateLimitExceeded) as e:
        return _failure(e)
    return {
        "success": True,
        "message": "Dispute is under admin review.",
        "dispute": _summary(dispute),
    }


@tool
def offer_partial_refund(
    dispute_id: str,
    amount: float | None = None,
    percentage: float | None = None,
) -> dict[str, Any]:
    """Offer the customer a partial refund. Give either amount or percentage.

    Args:
        dispute_id: The dispute ID
        amount: Amount to refund
        percentage: Share of the total paid to refund

    Returns:
        Dictionary with the offer or an error
    """
    actor = get_current_actor()
    try:
        dispute = _service().offer_partial_refund(
            actor,
            dispute_id,
            amount=str(amount) if amount is not None else None,
            percentage=str(percentage) if percentage is not None else None,
        )
    except (DisputeError, RateLimitExceeded) as e:
        return _failure(e)
    offer = dispute.partial_refund_offer
    return {
        "success": True,
        "message": f"Offered a partial refund of {offer.amount:.2f} ({offer.percentage}%).",
        "dispute": _summary(dispute),
    }


@tool
def respond_to_partial_refund(dispute_id: str, action: str) -> dict[str, Any]:
    """Accept or reject a pending partial refund offer.

    Args:
        dispute_id: The dispute ID
        action: "accept" or "reject"

    Returns:
        Dictionary with the dispute or an error
    """
    actor = get_current_actor()
    try:
        dispute = _service().respond_to_partial_refund(actor, dispute_id, action)
    except (DisputeError, RateLimitExceeded) as e:
        return _failure(e)
    message = (
        "Partial refund accepted. The dispute is resolved."
        if action == "accept"
        else "Partial refund rejected. Negotiation continues."
    )
    return {"success": True, "message": message, "dispute": _summary(dispute)}


@tool
def resolve_dispute(
    dispute_id: str,
    outcome: str,
    reason: str,
    partial_refund_amount: float | None = None,
    admin_notes: str | None = None,
    issue_strike: bool = False,
) -> dict[str, Any]:
    """Decide an escalated dispute. Arbiters only.

    Args:
        dispute_id: The dispute ID
        outcome: refunded, released, dismissed or partial_refund
        reason: Reason shown to both parties
        partial_refund_amount: Required for partial_refund
        admin_notes: Internal notes
        issue_strike: Record a strike against the accused party

    Returns:
        Dictionary with the resolved dispute or an error
    """
    actor = get_current_actor()
    try:
        dispute = _service().admin_resolve(
            actor,
            dispute_id,
            outcome,
            reason,
            partial_refund_amount=(
                str(partial_refund_amount) if partial_refund_amount is not None else None
            ),
            admin_notes=admin_notes,
            issue_strike=issue_strike,
        )
    except (DisputeError, RateLimitExceeded) as e:
        return _failure(e)
    return {"success": True, "message": f"Dispute resolved: {outcome}.", "dispute": _summary(dispute)}


@tool
def list_user_disputes(stage: str | None = None, status: str | None = None) -> dict[str, Any]:
    """List disputes the current user filed or was named in.

    Args:
        stage: Optional stage filter (negotiation, admin_review, resolved)
        status: Optional status filter (open, closed)

    Returns:
        Dictionary with the list of disputes
    """
    actor = get_current_actor()
    try:
        filters = DisputeFilters(stage=stage, status=status)
    except ValueError as e:
        return {"success": False, "error": "validation_error", "message": str(e)}

    disputes = _service().list_disputes(actor, filters)
    if not disputes:
        return {
            "success": True,
            "count": 0,
            "disputes": [],
            "message": "You have no disputes on file.",
        }

    return {
        "success": True,
        "count": len(disputes),
        "disputes": [d.to_display_dict() for d in disputes],
        "message": f"Found {len(disputes)} dispute(s) on file.",
    }


@tool
def retry_settlement(dispute_id: str) -> dict[str, Any]:
    """Retry the refund or payout of a resolved dispute whose settlement failed.

    Args:
        dispute_id: The dispute ID

    Returns:
        Dictionary with the resolved dispute or an error
    """
    actor = get_current_actor()
    try:
        dispute = _service().retry_settlement(actor, dispute_id)
    except DisputeError as e:
        return _failure(e)
    return {
        "success": True,
        "message": f"Settlement completed: {dispute.resolution_outcome}.",
        "dispute": _summary(dispute),
    }


@tool
def get_dispute_stats() -> dict[str, Any]:
    """Get dispute counts by stage, category and outcome. Arbiters only.

    Returns:
        Dictionary with the statistics or an error
    """
    actor = get_current_actor()
    try:
        stats = _service().get_stats(actor)
    except DisputeError as e:
        return _failure(e)
    return {"success": True, "stats": stats.model_dump()}
