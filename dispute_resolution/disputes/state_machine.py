"""Dispute lifecycle state machine.

Stages: negotiation -> admin_review -> resolved

Every transition is looked up in ``TRANSITIONS`` by (current stage, action)
and guarded, in order, by the stage/status preconditions, the relation of
the acting user to the dispute, and idempotency. Terminal transitions are
two-phase: ``begin_resolution`` claims the outcome while the dispute stays
open, ``complete_resolution`` closes it once settlement is acknowledged.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from dispute_resolution.errors import AuthorizationError, ConflictError, ValidationError
from dispute_resolution.models.dispute import STAGE_ORDER, Dispute, PendingResolution
from dispute_resolution.models.user import Actor

# Relations an actor can have to a dispute
FILER = "filer"
ACCUSED = "accused"
ARBITER = "arbiter"
SYSTEM = "system"

ALL_OUTCOMES = frozenset({"refunded", "released", "dismissed", "partial_refund"})


@dataclass(frozen=True)
class Transition:
    next_stage: str
    allowed: frozenset[str]
    outcomes: frozenset[str] = frozenset()

    @property
    def is_terminal(self) -> bool:
        return self.next_stage == "resolved"


TRANSITIONS: dict[tuple[str, str], Transition] = {
    ("negotiation", "accept_dispute"): Transition(
        "resolved", frozenset({ACCUSED}), frozenset({"refunded"})
    ),
    ("negotiation", "cancel"): Transition(
        "resolved", frozenset({FILER}), frozenset({"dismissed"})
    ),
    ("admin_review", "cancel"): Transition(
        "resolved", frozenset({FILER}), frozenset({"dismissed"})
    ),
    ("negotiation", "escalate"): Transition(
        "admin_review", frozenset({FILER, ACCUSED, SYSTEM})
    ),
    ("admin_review", "escalate"): Transition(
        "admin_review", frozenset({FILER, ACCUSED, SYSTEM})
    ),
    ("negotiation", "offer_partial_refund"): Transition(
        "negotiation", frozenset({ACCUSED})
    ),
    ("negotiation", "accept_partial_refund"): Transition(
        "resolved", frozenset({FILER}), frozenset({"partial_refund"})
    ),
    ("negotiation", "reject_partial_refund"): Transition(
        "negotiation", frozenset({FILER})
    ),
    ("admin_review", "admin_resolve"): Transition(
        "resolved", frozenset({ARBITER}), ALL_OUTCOMES
    ),
}

_DENIALS = {
    "accept_dispute": "Only the accused party can accept a dispute",
    "cancel": "Only the filer can cancel a dispute",
    "escalate": "Only the parties to the dispute can escalate it",
    "offer_partial_refund": "Only the accused party can offer a partial refund",
    "accept_partial_refund": "Only the filer can accept a partial refund offer",
    "reject_partial_refund": "Only the filer can reject a partial refund offer",
    "admin_resolve": "Only an arbiter can resolve an escalated dispute",
}


_NEEDS_PENDING_OFFER = frozenset({"accept_partial_refund", "reject_partial_refund"})


def replace(dispute: Dispute, **changes: Any) -> Dispute:
    """Copy a dispute with changes applied, re-running model validation."""
    return Dispute.model_validate({**dispute.model_dump(), **changes})


class DisputeStateMachine:
    """Owns every stage and status change of a dispute."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock

    def relations(self, dispute: Dispute, actor: Actor) -> set[str]:
        """Relations the actor has to this dispute."""
        relations = set()
        if actor.is_system:
            relations.add(SYSTEM)
        elif actor.is_arbiter:
            relations.add(ARBITER)
        if actor.user_id == dispute.filed_by:
            relations.add(FILER)
        if actor.user_id == dispute.accused_party:
            relations.add(ACCUSED)
        return relations

    def authorize(self, dispute: Dispute, actor: Actor, action: str) -> Transition:
        """Check that the action may fire now for this actor.

        Raises:
            ConflictError: Dispute is closed, awaiting settlement, or in a stage
                where the action does not apply
            AuthorizationError: The actor's relation does not allow the action
        """
        if not dispute.is_open:
            raise ConflictError(
                f"Dispute is already resolved (outcome: {dispute.resolution_outcome})"
            )
        if dispute.pending_resolution is not None:
            raise ConflictError(
                "Dispute resolution is already in progress and awaiting settlement"
            )
        transition = TRANSITIONS.get((dispute.stage, action))
        if transition is None:
            raise ConflictError(
                f"Action '{action}' is not allowed while the dispute is in the {dispute.stage} stage"
            )
        if not self.relations(dispute, actor) & transition.allowed:
            raise AuthorizationError(_DENIALS.get(action, "Action not allowed"))
        self._check_forward(dispute.stage, transition.next_stage)
        return transition

    def available_actions(self, dispute: Dispute, actor: Actor) -> list[str]:
        """Actions the actor could take on the dispute right now."""
        if not dispute.is_open or dispute.pending_resolution is not None:
            return []
        relations = self.relations(dispute, actor)
        actions = []
        for (stage, action), transition in TRANSITIONS.items():
            if stage != dispute.stage or not relations & transition.allowed:
                continue
            if action in _NEEDS_PENDING_OFFER and not dispute.has_pending_offer:
                continue
            if action == "offer_partial_refund" and dispute.has_pending_offer:
                continue
            actions.append(action)
        return actions

    def escalate(
        self, dispute: Dispute, actor: Actor, reason: str | None = None
    ) -> tuple[Dispute, bool]:
        """Move a negotiation to admin review.

        Returns:
            The dispute and whether it changed; escalating a dispute that is
            already in admin review is a no-op.
        """
        transition = self.authorize(dispute, actor, "escalate")
        if dispute.stage == transition.next_stage:
            return dispute, False
        if reason is None:
            reason = (
                "Negotiation deadline expired"
                if actor.is_system
                else f"Escalated by the {self._describe(dispute, actor)}"
            )
        escalated = replace(
            dispute,
            stage=transition.next_stage,
            escalated_at=self.clock(),
            escalation_reason=reason,
        )
        return escalated, True

    def begin_resolution(
        self,
        dispute: Dispute,
        actor: Actor,
        action: str,
        outcome: str,
        amount: Decimal | None = None,
        reason: str | None = None,
        admin_notes: str | None = None,
        issue_strike: bool = False,
    ) -> Dispute:
        """Claim a terminal outcome; the dispute stays open until settled."""
        transition = self.authorize(dispute, actor, action)
        if not transition.is_terminal:
            raise ValueError(f"Action '{action}' does not resolve a dispute")
        if outcome not in transition.outcomes:
            raise ValidationError(f"Outcome '{outcome}' is not valid for {action}")
        pending = PendingResolution(
            action=action,
            outcome=outcome,
            amount=amount,
            reason=reason,
            requested_by=actor.user_id,
            requested_at=self.clock(),
            admin_notes=admin_notes,
            issue_strike=issue_strike,
        )
        return replace(dispute, pending_resolution=pending)

    def complete_resolution(self, dispute: Dispute, settlement_ref: str) -> Dispute:
        """Close a dispute whose claimed outcome has been settled.

        Stage, status, outcome, reason, resolver and timestamps change together.
        """
        pending = dispute.pending_resolution
        if pending is None:
            raise ConflictError("Dispute has no resolution awaiting settlement")
        if dispute.resolution_outcome is not None:
            raise ConflictError("Dispute outcome is already set")
        self._check_forward(dispute.stage, "resolved")

        now = self.clock()
        offer = dispute.partial_refund_offer
        if offer is not None and offer.status == "pending":
            # A pending offer is accepted only by its own transition; any other
            # outcome supersedes it.
            offer_status = "accepted" if pending.action == "accept_partial_refund" else "rejected"
            offer = offer.model_copy(update={"status": offer_status, "responded_at": now})

        return replace(
            dispute,
            stage="resolved",
            status="closed",
            resolution_outcome=pending.outcome,
            resolution_reason=pending.reason,
            resolved_by=pending.requested_by,
            resolved_at=now,
            settlement_ref=settlement_ref,
            admin_notes=pending.admin_notes,
            strike_issued=pending.issue_strike,
            partial_refund_offer=offer,
            pending_resolution=None,
        )

    def _check_forward(self, current: str, target: str):
        if STAGE_ORDER.index(target) < STAGE_ORDER.index(current):
            raise ConflictError(f"Dispute cannot move back from {current} to {target}")

    def _describe(self, dispute: Dispute, actor: Actor) -> str:
        if actor.user_id == dispute.filed_by:
            return "filer"
        if actor.user_id == dispute.accused_party:
            return "accused party"
        return actor.role
