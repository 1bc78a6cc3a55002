"""Lookup tools for the orders and customization requests a user can dispute."""

from typing import Any

from langchain_core.tools import tool

from dispute_resolution.data.storage import Storage
from dispute_resolution.utils.session import get_current_user_id


@tool
def list_my_transactions(reference_kind: str | None = None, limit: int = 10) -> dict[str, Any]:
    """List orders and customization requests the current user took part in.

    Args:
        reference_kind: Optional "order" or "customization" filter
        limit: Maximum number of results to return (default 10)

    Returns:
        Dictionary with:
        - transactions: List of matching transactions
        - count: Number of matches found
        - message: Human-readable summary
    """
    storage = Storage()
    user_id = get_current_user_id()

    kinds = [reference_kind] if reference_kind else ["order", "customization"]
    if any(kind not in ("order", "customization") for kind in kinds):
        return {
            "transactions": [],
            "count": 0,
            "message": f"Unknown transaction kind: {reference_kind}",
        }

    references = [
        reference
        for kind in kinds
        for reference in storage.get_references(kind)
        if reference.is_party(user_id)
    ]
    references.sort(key=lambda r: r.status_changed_at, reverse=True)

    if not references:
        return {
            "transactions": [],
            "count": 0,
            "message": "No transactions found.",
        }

    total_count = len(references)
    shown = [r.to_display_dict() for r in references[:limit]]

    if total_count == 1:
        message = "Found 1 transaction."
    elif total_count > limit:
        message = f"Found {total_count} transactions. Showing the {limit} most recent."
    else:
        message = f"Found {total_count} transactions."

    return {
        "transactions": shown,
        "count": total_count,
        "total_shown": len(shown),
        "message": message,
    }


@tool
def get_transaction_reference(reference_kind: str, reference_id: str) -> dict[str, Any]:
    """Get a specific order or customization request with both parties.

    Args:
        reference_kind: "order" or "customization"
        reference_id: The order or customization request ID

    Returns:
        Transaction details or error message
    """
    storage = Storage()
    user_id = get_current_user_id()

    try:
        reference = storage.get_reference(reference_kind, reference_id)
    except ValueError as e:
        return {"found": False, "message": str(e)}

    # Only the parties can see a transaction
    if reference is None or not reference.is_party(user_id):
        return {
            "found": False,
            "message": f"{reference_kind.capitalize()} {reference_id} not found for this user.",
        }

    customer = storage.get_user(reference.customer_id)
    counterparty = storage.get_user(reference.counterparty_id) if reference.counterparty_id else None
    open_dispute = storage.find_open_dispute(reference_kind, reference_id)

    return {
        "found": True,
        "transaction": {
            **reference.to_display_dict(),
            "raw_amount": float(reference.total_paid),
            "currency": reference.currency,
        },
        "customer": customer.to_display_dict() if customer else None,
        "counterparty": counterparty.to_display_dict() if counterparty else None,
        "open_dispute_id": open_dispute.id if open_dispute else None,
    }
