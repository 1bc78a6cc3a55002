"""Disputes module - lifecycle, negotiation and settlement of disputes."""

from .eligibility import Eligibility, EligibilityChecker
from .evidence import EvidenceAttacher
from .negotiation import PartialRefundNegotiator, quote_refund
from .settlement import ResolutionSettlement
from .state_machine import TRANSITIONS, DisputeStateMachine, Transition
from .service import DisputeService

__all__ = [
    "Eligibility",
    "EligibilityChecker",
    "EvidenceAttacher",
    "PartialRefundNegotiator",
    "quote_refund",
    "ResolutionSettlement",
    "TRANSITIONS",
    "DisputeStateMachine",
    "Transition",
    "DisputeService",
]
