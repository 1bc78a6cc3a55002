"""Tools module - LangChain tools acting for the session user."""

from .references import list_my_transactions, get_transaction_reference
from .disputes import (
    check_dispute_eligibility,
    file_dispute,
    get_dispute,
    accept_dispute,
    cancel_dispute,
    escalate_dispute,
    offer_partial_refund,
    respond_to_partial_refund,
    resolve_dispute,
    list_user_disputes,
    retry_settlement,
    get_dispute_stats,
)

ALL_TOOLS = [
    list_my_transactions,
    get_transaction_reference,
    check_dispute_eligibility,
    file_dispute,
    get_dispute,
    accept_dispute,
    cancel_dispute,
    escalate_dispute,
    offer_partial_refund,
    respond_to_partial_refund,
    resolve_dispute,
    list_user_disputes,
    retry_settlement,
    get_dispute_stats,
]

__all__ = [
    "list_my_transactions",
    "get_transaction_reference",
    "check_dispute_eligibility",
    "file_dispute",
    "get_dispute",
    "accept_dispute",
    "cancel_dispute",
    "escalate_dispute",
    "offer_partial_refund",
    "respond_to_partial_refund",
    "resolve_dispute",
    "list_user_disputes",
    "retry_settlement",
    "get_dispute_stats",
    "ALL_TOOLS",
]
