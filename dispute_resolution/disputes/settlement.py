"""Translate a terminal dispute outcome into refund and release instructions."""

import time
from datetime import datetime
from decimal import Decimal
from typing import Callable

from dispute_resolution.collaborators import SettlementLedger
from dispute_resolution.config import ResilienceConfig, settings
from dispute_resolution.data.storage import Storage
from dispute_resolution.errors import AlreadySettledError, ConflictError, SettlementError, ValidationError
from dispute_resolution.models.dispute import Dispute
from dispute_resolution.models.settlement import SettlementResult
from dispute_resolution.utils.logging import get_logger
from dispute_resolution.utils.resilience import (
    CircuitBreaker,
    CircuitBreakerOpen,
    RetryError,
    with_retry,
)

logger = get_logger("disputes.settlement", settings.log_level)


class ResolutionSettlement:
    """Executes the money movement of a resolved dispute, once per dispute.

    Ledger calls carry an idempotency key per dispute and direction, so a
    settlement retried after a partial failure never moves money twice.
    """

    def __init__(
        self,
        ledger: SettlementLedger,
        storage: Storage,
        resilience: ResilienceConfig | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ledger = ledger
        self.storage = storage
        self.resilience = resilience or settings.resilience
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=self.resilience.circuit_breaker_threshold,
            recovery_timeout=self.resilience.circuit_breaker_recovery,
        )
        self.clock = clock
        self.sleep = sleep

    def get_result(self, dispute_id: str) -> SettlementResult | None:
        return self.storage.get_settlement(dispute_id)

    def plan(
        self, outcome: str, total_paid: Decimal, amount: Decimal | None = None
    ) -> tuple[Decimal, Decimal]:
        """Return (refund, release) amounts for an outcome."""
        zero = Decimal("0")
        if outcome == "refunded":
            return total_paid, zero
        if outcome == "released":
            return zero, total_paid
        if outcome == "dismissed":
            return zero, zero
        if outcome == "partial_refund":
            if amount is None or amount <= 0:
                raise ValidationError("Partial refund amount is required")
            if amount > total_paid:
                raise ValidationError(
                    f"Refund amount cannot exceed the total amount paid ({total_paid:.2f})"
                )
            return amount, total_paid - amount
        raise ValidationError(f"Unknown resolution outcome: {outcome}")

    def settle(
        self,
        dispute: Dispute,
        outcome: str,
        total_paid: Decimal,
        amount: Decimal | None = None,
    ) -> SettlementResult:
        """Instruct the ledger for a dispute outcome.

        Raises:
            AlreadySettledError: If this dispute was settled before
            ValidationError: For an unknown outcome or bad partial amount
            SettlementError: If the ledger could not be reached
        """
        if self.get_result(dispute.id) is not None:
            raise AlreadySettledError(f"Dispute {dispute.id} is already settled")

        refund, release = self.plan(outcome, total_paid, amount)
        ledger_refs = []
        if refund > 0:
            ledger_refs.append(self._instruct("refund", dispute, refund))
        if release > 0:
            ledger_refs.append(self._instruct("release", dispute, release))

        result = SettlementResult(
            dispute_id=dispute.id,
            reference_id=dispute.reference_id,
            outcome=outcome,
            refunded_amount=refund,
            released_amount=release,
            ledger_refs=ledger_refs,
            settled_at=self.clock(),
        )
        try:
            self.storage.save_settlement(result)
        except ConflictError:
            raise AlreadySettledError(f"Dispute {dispute.id} is already settled")

        logger.info(
            f"Settled dispute {dispute.id} ({outcome}): refund={refund} release={release} "
            f"ref={result.settlement_ref}"
        )
        return result

    def _instruct(self, kind: str, dispute: Dispute, amount: Decimal) -> str:
        call = self.ledger.refund if kind == "refund" else self.ledger.release
        retrying_call = with_retry(
            max_attempts=self.resilience.max_retries,
            base_delay=self.resilience.retry_base_delay,
            sleep=self.sleep,
        )(call)
        try:
            return self.circuit_breaker.call(
                retrying_call,
                dispute.reference_id,
                amount,
                idempotency_key=f"{dispute.id}:{kind}",
            )
        except (RetryError, CircuitBreakerOpen) as e:
            raise SettlementError(f"Ledger {kind} of {amount:.2f} failed: {e}") from e
