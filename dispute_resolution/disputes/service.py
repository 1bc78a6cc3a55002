"""Dispute service - the public contract used by the rest of the application."""

import functools
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from dispute_resolution.collaborators import (
    AuditNotifier,
    ConversationGateway,
    ConversationLog,
    LocalLedger,
    Notifier,
    SettlementLedger,
)
from dispute_resolution.config import DisputePolicyConfig, ResilienceConfig, settings
from dispute_resolution.data.storage import Storage
from dispute_resolution.disputes.eligibility import Eligibility, EligibilityChecker
from dispute_resolution.disputes.evidence import EvidenceAttacher
from dispute_resolution.disputes.negotiation import PartialRefundNegotiator, quote_refund
from dispute_resolution.disputes.settlement import ResolutionSettlement
from dispute_resolution.disputes.state_machine import ALL_OUTCOMES, DisputeStateMachine, replace
from dispute_resolution.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    SettlementError,
    ValidationError,
)
from dispute_resolution.models.dispute import (
    Dispute,
    DisputeFilters,
    DisputeStats,
    DisputeWithParties,
)
from dispute_resolution.models.transaction import TransactionReference
from dispute_resolution.models.user import Actor
from dispute_resolution.utils.logging import AuditLogger, get_logger
from dispute_resolution.utils.resilience import (
    CircuitBreaker,
    CounterStore,
    RateLimiter,
    TTLCounterStore,
)

logger = get_logger("disputes.service", settings.log_level)

# Notification event per terminal action
_RESOLUTION_EVENTS = {
    "accept_dispute": "dispute.accepted",
    "cancel": "dispute.cancelled",
    "accept_partial_refund": "dispute.partial_refund_accepted",
    "admin_resolve": "dispute.resolved",
}


def _audit_denials(method):
    """Record authorization failures in the audit trail before re-raising."""
    @functools.wraps(method)
    def wrapper(self, actor: Actor, *args, **kwargs):
        try:
            return method(self, actor, *args, **kwargs)
        except AuthorizationError as e:
            try:
                self.audit_logger.for_user(actor.user_id).log_security_event(
                    "authorization_denied", f"{method.__name__}: {e.message}"
                )
            except Exception as audit_error:
                logger.error(f"Could not audit denied {method.__name__}: {audit_error}")
            raise
    return wrapper


class DisputeService:
    """Orchestrates eligibility, the state machine, negotiation and settlement.

    Every operation reloads the dispute, re-checks the actor against the
    stored state, and writes back with a version-checked update. Terminal
    transitions claim the dispute first, settle with no lock held, and only
    then close the dispute.
    """

    def __init__(
        self,
        storage: Storage | None = None,
        ledger: SettlementLedger | None = None,
        conversations: ConversationGateway | None = None,
        notifier: Notifier | None = None,
        audit_logger: AuditLogger | None = None,
        counter_store: CounterStore | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        policy: DisputePolicyConfig | None = None,
        resilience: ResilienceConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.storage = storage or Storage()
        self.policy = policy or settings.policy
        self.resilience = resilience or settings.resilience
        self.clock = clock
        self.audit_logger = audit_logger or AuditLogger(
            log_dir=settings.log_dir, use_presidio=settings.pii_use_presidio
        )
        self.conversations = conversations or ConversationLog()
        self.notifier = notifier or AuditNotifier(self.audit_logger)
        self.rate_limiter = RateLimiter(
            counter_store or TTLCounterStore(),
            limit=self.resilience.rate_limit_per_window,
            window_seconds=self.resilience.rate_limit_window_seconds,
        )

        self.state_machine = DisputeStateMachine(clock=clock)
        self.eligibility = EligibilityChecker(self.storage, self.policy, clock=clock)
        self.evidence = EvidenceAttacher(max_images=self.policy.max_evidence_images)
        self.negotiator = PartialRefundNegotiator(self.state_machine, clock=clock)
        self.settlement = ResolutionSettlement(
            ledger or LocalLedger(self.storage),
            self.storage,
            resilience=self.resilience,
            circuit_breaker=circuit_breaker,
            clock=clock,
            sleep=sleep,
        )

    # -- queries ------------------------------------------------------

    def check_eligibility(self, actor: Actor, reference_kind: str, reference_id: str) -> Eligibility:
        """Probe whether the actor may file a dispute for a transaction."""
        return self.eligibility.can_file(reference_kind, reference_id, actor.user_id)

    @_audit_denials
    def get_by_id(self, actor: Actor, dispute_id: str) -> DisputeWithParties:
        """Load a dispute with both parties' display identities."""
        dispute = self._load(dispute_id)
        self._check_can_view(dispute, actor)
        return DisputeWithParties(
            dispute=dispute,
            filer=self.storage.get_user(dispute.filed_by),
            accused=self.storage.get_user(dispute.accused_party),
            reference=self.storage.get_reference(dispute.reference_kind, dispute.reference_id),
            available_actions=self.state_machine.available_actions(dispute, actor),
        )

    def list_disputes(self, actor: Actor, filters: DisputeFilters | None = None) -> list[Dispute]:
        """List disputes; non-arbiters only see disputes they are a party to."""
        filters = filters or DisputeFilters()
        if not (actor.is_arbiter or actor.is_system):
            filters = filters.model_copy(update={"party": actor.user_id})
        return self.storage.get_disputes(filters)

    @_audit_denials
    def get_stats(self, actor: Actor) -> DisputeStats:
        """Aggregate counts for arbiters."""
        if not actor.is_arbiter:
            raise AuthorizationError("Only an arbiter can view dispute statistics")
        disputes = self.storage.get_disputes()
        stats = DisputeStats(total=len(disputes))
        resolution_hours = []
        for dispute in disputes:
            if dispute.is_open:
                stats.open += 1
            else:
                stats.closed += 1
            if dispute.stage == "negotiation":
                stats.negotiation += 1
            elif dispute.stage == "admin_review":
                stats.admin_review += 1
            else:
                stats.resolved += 1
            if dispute.pending_resolution is not None:
                stats.settlement_pending += 1
            stats.by_category[dispute.category] = stats.by_category.get(dispute.category, 0) + 1
            if dispute.resolution_outcome:
                outcome = dispute.resolution_outcome
                stats.by_outcome[outcome] = stats.by_outcome.get(outcome, 0) + 1
            if dispute.resolved_at:
                elapsed = dispute.resolved_at - dispute.created_at
                resolution_hours.append(elapsed.total_seconds() / 3600)
        if resolution_hours:
            stats.average_resolution_hours = round(sum(resolution_hours) / len(resolution_hours), 2)
        return stats

    # -- filing -------------------------------------------------------

    @_audit_denials
    def file(
        self,
        actor: Actor,
        reference_kind: str,
        reference_id: str,
        category: str,
        description: str,
        evidence_images: list[Any] | None = None,
        evidence_video: Any | None = None,
    ) -> Dispute:
        """File a new dispute in the negotiation stage."""
        self.rate_limiter.hit(actor.user_id)

        eligibility = self.eligibility.can_file(reference_kind, reference_id, actor.user_id)
        if not eligibility.can_file:
            raise eligibility.to_error()
        reference = self._load_reference(reference_kind, reference_id)

        now = self.clock()
        try:
            draft = Dispute(
                category=category,
                reference_kind=reference_kind,
                reference_id=reference_id,
                filed_by=actor.user_id,
                accused_party=reference.counterparty_id,
                description=(description or "").strip(),
                negotiation_deadline=now + timedelta(hours=self.policy.negotiation_deadline_hours),
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as e:
            raise ValidationError(self._describe_validation(e))

        draft = self.evidence.attach(draft, evidence_images, evidence_video)
        dispute = self.storage.create_dispute(draft)
        dispute = self._ensure_conversation(dispute)

        self.audit_logger.for_user(actor.user_id).log_dispute_filed(
            dispute_id=dispute.id,
            reference=f"{reference_kind}:{reference_id}",
            category=category,
            description=dispute.description,
        )
        self._notify(
            [dispute.accused_party],
            "dispute.filed",
            self._payload(dispute, filed_by=dispute.filed_by, category=dispute.category),
        )
        return dispute

    # -- lifecycle ----------------------------------------------------

    @_audit_denials
    def accept_dispute(self, actor: Actor, dispute_id: str) -> Dispute:
        """Accused party accepts the dispute and refunds in full."""
        self.rate_limiter.hit(actor.user_id)
        dispute = self._load(dispute_id)
        claimed = self.state_machine.begin_resolution(
            dispute,
            actor,
            "accept_dispute",
            "refunded",
            reason=f"Accused party accepted the dispute: {dispute.category}",
        )
        return self._claim_and_settle(claimed, dispute.version)

    @_audit_denials
    def cancel_dispute(self, actor: Actor, dispute_id: str, reason: str | None = None) -> Dispute:
        """Filer withdraws the dispute; no money moves."""
        self.rate_limiter.hit(actor.user_id)
        dispute = self._load(dispute_id)
        claimed = self.state_machine.begin_resolution(
            dispute,
            actor,
            "cancel",
            "dismissed",
            reason=reason or "Cancelled by the filer",
        )
        return self._claim_and_settle(claimed, dispute.version)

    @_audit_denials
    def escalate(self, actor: Actor, dispute_id: str, reason: str | None = None) -> Dispute:
        """Move a negotiation to admin review; a no-op if already there."""
        if not actor.is_system:
            self.rate_limiter.hit(actor.user_id)
        dispute = self._load(dispute_id)
        escalated, changed = self.state_machine.escalate(dispute, actor, reason)
        if not changed:
            return dispute
        stored = self._save(escalated, dispute.version)
        self.audit_logger.for_user(actor.user_id).log_transition(
            stored.id, "escalate", dispute.stage, stored.stage,
            metadata={"reason": stored.escalation_reason},
        )
        stored = self._post_message(stored, f"Dispute escalated to admin review: {stored.escalation_reason}")
        self._notify(
            [stored.filed_by, stored.accused_party],
            "dispute.escalated",
            self._payload(stored, from_stage=dispute.stage, reason=stored.escalation_reason),
        )
        return stored

    def escalate_expired(self, now: datetime | None = None) -> list[Dispute]:
        """Auto-escalate negotiations past their deadline."""
        now = now or self.clock()
        escalated = []
        for dispute in self.storage.find_expired_negotiations(now):
            try:
                escalated.append(self.escalate(Actor.system(), dispute.id))
            except ConflictError as e:
                logger.info(f"Skipping auto-escalation of {dispute.id}: {e.message}")
        if escalated:
            logger.info(f"Auto-escalated {len(escalated)} dispute(s) past their negotiation deadline")
        return escalated

    # -- partial refunds ----------------------------------------------

    @_audit_denials
    def offer_partial_refund(
        self,
        actor: Actor,
        dispute_id: str,
        amount: Decimal | float | str | None = None,
        percentage: Decimal | float | str | None = None,
    ) -> Dispute:
        """Accused party offers to refund part of the amount paid."""
        self.rate_limiter.hit(actor.user_id)
        dispute = self._load(dispute_id)
        reference = self._load_reference(dispute.reference_kind, dispute.reference_id)
        updated = self.negotiator.offer(
            dispute, actor, reference.total_paid, amount=amount, percentage=percentage
        )
        stored = self._save(updated, dispute.version)
        offer = stored.partial_refund_offer

        self.audit_logger.for_user(actor.user_id).log_transition(
            stored.id, "offer_partial_refund", stored.stage, stored.stage,
            metadata={"amount": str(offer.amount), "percentage": str(offer.percentage)},
        )
        stored = self._post_message(
            stored,
            f"Partial refund offered: {reference.currency} {offer.amount:.2f} ({offer.percentage}%)",
            sender_id=actor.user_id,
        )
        self._notify(
            [stored.filed_by],
            "dispute.partial_refund_offered",
            self._payload(stored, amount=str(offer.amount), percentage=str(offer.percentage)),
        )
        return stored

    @_audit_denials
    def respond_to_partial_refund(self, actor: Actor, dispute_id: str, action: str) -> Dispute:
        """Filer accepts (resolving the dispute) or rejects the pending offer."""
        if action not in ("accept", "reject"):
            raise ValidationError("Action must be 'accept' or 'reject'")
        self.rate_limiter.hit(actor.user_id)
        dispute = self._load(dispute_id)

        if action == "accept":
            claimed = self.negotiator.accept(dispute, actor)
            return self._claim_and_settle(claimed, dispute.version)

        updated = self.negotiator.reject(dispute, actor)
        stored = self._save(updated, dispute.version)
        self.audit_logger.for_user(actor.user_id).log_transition(
            stored.id, "reject_partial_refund", stored.stage, stored.stage
        )
        stored = self._post_message(stored, "Partial refund offer rejected", sender_id=actor.user_id)
        self._notify(
            [stored.accused_party],
            "dispute.partial_refund_rejected",
            self._payload(stored, rejected_by=actor.user_id),
        )
        return stored

    # -- arbitration --------------------------------------------------

    @_audit_denials
    def admin_resolve(
        self,
        actor: Actor,
        dispute_id: str,
        outcome: str,
        reason: str,
        partial_refund_amount: Decimal | float | str | None = None,
        admin_notes: str | None = None,
        issue_strike: bool = False,
    ) -> Dispute:
        """Arbiter decides an escalated dispute."""
        if outcome not in ALL_OUTCOMES:
            raise ValidationError(f"Unknown resolution outcome: {outcome}")
        if not reason or not reason.strip():
            raise ValidationError("A resolution reason is required")
        self.rate_limiter.hit(actor.user_id)
        dispute = self._load(dispute_id)

        amount = None
        if outcome == "partial_refund":
            self.state_machine.authorize(dispute, actor, "admin_resolve")
            if partial_refund_amount is None:
                raise ValidationError("Partial refund amount is required")
            reference = self._load_reference(dispute.reference_kind, dispute.reference_id)
            amount, _ = quote_refund(reference.total_paid, amount=partial_refund_amount)

        claimed = self.state_machine.begin_resolution(
            dispute,
            actor,
            "admin_resolve",
            outcome,
            amount=amount,
            reason=reason.strip(),
            admin_notes=admin_notes,
            issue_strike=issue_strike,
        )
        return self._claim_and_settle(claimed, dispute.version)

    @_audit_denials
    def retry_settlement(self, actor: Actor, dispute_id: str) -> Dispute:
        """Resume a resolution whose settlement failed earlier."""
        dispute = self._load(dispute_id)
        if dispute.pending_resolution is None:
            if not dispute.is_open:
                raise ConflictError("Dispute is already resolved")
            raise ConflictError("Dispute has no settlement awaiting retry")
        self._check_can_view(dispute, actor)
        return self._settle_and_complete(dispute)

    def retry_pending_settlements(self) -> list[Dispute]:
        """Resume every resolution left pending by a failed settlement."""
        resolved = []
        for dispute in self.storage.find_pending_settlements():
            try:
                resolved.append(self.retry_settlement(Actor.system(), dispute.id))
            except (ConflictError, SettlementError) as e:
                logger.warning(f"Settlement of {dispute.id} still pending: {e.message}")
        if resolved:
            logger.info(f"Completed {len(resolved)} pending settlement(s)")
        return resolved

    # -- internals ----------------------------------------------------

    def _save(self, dispute: Dispute, expected_version: int) -> Dispute:
        return self.storage.update_dispute(dispute, expected_version, now=self.clock())

    def _load(self, dispute_id: str) -> Dispute:
        dispute = self.storage.get_dispute_by_id(dispute_id)
        if dispute is None:
            raise NotFoundError(f"Dispute {dispute_id} not found")
        return dispute

    def _load_reference(self, kind: str, reference_id: str) -> TransactionReference:
        reference = self.storage.get_reference(kind, reference_id)
        if reference is None:
            raise NotFoundError(f"{kind.capitalize()} {reference_id} not found")
        return reference

    def _check_can_view(self, dispute: Dispute, actor: Actor):
        if actor.is_arbiter or actor.is_system:
            return
        if actor.user_id not in (dispute.filed_by, dispute.accused_party):
            raise AuthorizationError("You can only view your own disputes")

    def _claim_and_settle(self, claimed: Dispute, expected_version: int) -> Dispute:
        pending = claimed.pending_resolution
        stored = self._save(claimed, expected_version)
        self.audit_logger.for_user(pending.requested_by).log_transition(
            stored.id, pending.action, stored.stage, "resolved",
            metadata={"outcome": pending.outcome, "phase": "settlement_requested"},
        )
        return self._settle_and_complete(stored)

    def _settle_and_complete(self, dispute: Dispute) -> Dispute:
        pending = dispute.pending_resolution
        reference = self._load_reference(dispute.reference_kind, dispute.reference_id)

        result = self.settlement.get_result(dispute.id)
        if result is None:
            try:
                result = self.settlement.settle(
                    dispute, pending.outcome, reference.total_paid, pending.amount
                )
            except SettlementError as e:
                self.audit_logger.for_user(pending.requested_by).log_settlement_failure(
                    dispute.id, pending.outcome, e.message
                )
                raise

        resolved = self.state_machine.complete_resolution(dispute, result.settlement_ref)
        stored = self._save(resolved, dispute.version)

        self.audit_logger.for_user(pending.requested_by).log_resolution(
            stored.id, stored.resolution_outcome, stored.resolution_reason, stored.settlement_ref
        )
        summary = f"Dispute resolved: {stored.resolution_outcome.replace('_', ' ')}"
        if result.refunded_amount > 0:
            summary += f", {reference.currency} {result.refunded_amount:.2f} refunded"
        stored = self._post_message(stored, summary)
        self._notify(
            [stored.filed_by, stored.accused_party],
            _RESOLUTION_EVENTS.get(pending.action, "dispute.resolved"),
            self._payload(
                stored,
                from_stage=dispute.stage,
                outcome=stored.resolution_outcome,
                resolved_by=stored.resolved_by,
                refunded_amount=str(result.refunded_amount),
                released_amount=str(result.released_amount),
            ),
        )
        if stored.strike_issued:
            self._notify(
                [stored.accused_party],
                "dispute.strike_issued",
                self._payload(stored, reason=stored.resolution_reason),
            )
        return stored

    def _ensure_conversation(self, dispute: Dispute) -> Dispute:
        """Create the dispute conversation the first time one is needed."""
        if dispute.conversation_id:
            return dispute
        try:
            conversation_id = self.conversations.create_conversation(
                dispute.filed_by, dispute.accused_party
            )
        except Exception as e:
            logger.warning(f"Could not create conversation for dispute {dispute.id}: {e}")
            return dispute
        try:
            return self._save(replace(dispute, conversation_id=conversation_id), dispute.version)
        except ConflictError:
            # Someone else wrote first; keep whatever conversation they stored
            current = self._load(dispute.id)
            logger.warning(f"Conversation for dispute {dispute.id} not stored: record changed")
            return current

    def _post_message(self, dispute: Dispute, content: str, sender_id: str | None = None) -> Dispute:
        dispute = self._ensure_conversation(dispute)
        if not dispute.conversation_id:
            return dispute
        try:
            self.conversations.send_message(dispute.conversation_id, sender_id or "system", content)
        except Exception as e:
            logger.warning(f"Could not post to conversation {dispute.conversation_id}: {e}")
        return dispute

    def _notify(self, user_ids: list[str], event: str, payload: dict[str, Any]):
        for user_id in user_ids:
            try:
                self.notifier.notify(user_id, event, payload)
            except Exception as e:
                logger.warning(f"Notification {event} to {user_id} failed: {e}")

    def _payload(self, dispute: Dispute, **extra: Any) -> dict[str, Any]:
        return {
            "dispute_id": dispute.id,
            "reference": f"{dispute.reference_kind}:{dispute.reference_id}",
            "stage": dispute.stage,
            "status": dispute.status,
            **extra,
        }

    def _describe_validation(self, error: PydanticValidationError) -> str:
        problems = []
        for err in error.errors():
            location = ".".join(str(p) for p in err["loc"])
            problems.append(f"{location}: {err['msg']}" if location else err["msg"])
        return "Invalid dispute: " + "; ".join(problems)
