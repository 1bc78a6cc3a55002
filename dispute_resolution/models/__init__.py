"""Models module - Pydantic data models."""

from .transaction import TransactionReference
from .user import Actor, UserProfile
from .dispute import (
    Dispute,
    DisputeFilters,
    DisputeStats,
    DisputeWithParties,
    EvidenceFile,
    PartialRefundOffer,
    PendingResolution,
)
from .settlement import LedgerEntry, SettlementResult

__all__ = [
    "TransactionReference",
    "Actor",
    "UserProfile",
    "Dispute",
    "DisputeFilters",
    "DisputeStats",
    "DisputeWithParties",
    "EvidenceFile",
    "PartialRefundOffer",
    "PendingResolution",
    "LedgerEntry",
    "SettlementResult",
]
