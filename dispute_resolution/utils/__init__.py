"""Utilities module - Logging, PII masking, resilience, session."""

from .pii import mask_pii, hash_user_id
from .logging import get_logger, AuditLogger
from .resilience import with_retry, RateLimiter, TTLCounterStore, CircuitBreaker
from .session import get_current_actor, get_current_user_id, set_current_actor, reset_current_actor

__all__ = [
    "mask_pii",
    "hash_user_id",
    "get_logger",
    "AuditLogger",
    "with_retry",
    "RateLimiter",
    "TTLCounterStore",
    "CircuitBreaker",
    "get_current_actor",
    "get_current_user_id",
    "set_current_actor",
    "reset_current_actor",
]
