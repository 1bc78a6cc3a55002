"""Eligibility rules for filing a dispute."""

from datetime import datetime, timedelta
from typing import Callable, NamedTuple

from dispute_resolution.config import DisputePolicyConfig, settings
from dispute_resolution.data.storage import Storage
from dispute_resolution.errors import (
    AuthorizationError,
    ConflictError,
    DisputeError,
    NotFoundError,
    ValidationError,
)


class Eligibility(NamedTuple):
    """Result of an eligibility probe."""
    can_file: bool
    reason: str | None = None
    code: str | None = None

    def to_dict(self) -> dict:
        result = {"can_file": self.can_file}
        if self.reason:
            result["reason"] = self.reason
        return result

    def to_error(self) -> DisputeError:
        """Error to raise when a committing operation fails this check."""
        error_class = {
            "not_found": NotFoundError,
            "not_party": AuthorizationError,
            "not_customer": AuthorizationError,
            "open_dispute": ConflictError,
        }.get(self.code, ValidationError)
        return error_class(self.reason or "Cannot file dispute")


_LABELS = {"order": "Order", "customization": "Customization request"}


class EligibilityChecker:
    """Decides whether a dispute may be opened for a transaction."""

    def __init__(
        self,
        storage: Storage,
        policy: DisputePolicyConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.storage = storage
        self.policy = policy or settings.policy
        self.clock = clock

    def can_file(self, reference_kind: str, reference_id: str, requester_id: str | None) -> Eligibility:
        """Check the filing rules in order; never raises for a failed rule."""
        if not requester_id:
            return Eligibility(False, "User ID is required", "missing_requester")
        if reference_kind not in _LABELS:
            return Eligibility(False, f"Unknown reference kind: {reference_kind}", "invalid_reference")

        label = _LABELS[reference_kind]

        # (a) reference exists and is in a disputable state
        reference = self.storage.get_reference(reference_kind, reference_id)
        if reference is None:
            return Eligibility(False, f"{label} not found", "not_found")

        if reference.payment_status == "refunded":
            return Eligibility(False, f"{label} has already been fully refunded", "ineligible_state")
        if reference.payment_status != "captured":
            return Eligibility(False, f"Payment for this {label.lower()} has not been captured", "ineligible_state")

        allowed = (
            self.policy.disputable_order_statuses
            if reference_kind == "order"
            else self.policy.disputable_customization_statuses
        )
        if reference.status not in allowed:
            return Eligibility(
                False,
                f"Disputes can only be filed when status is {' or '.join(allowed)}. "
                f"Current status: {reference.status}",
                "ineligible_state",
            )

        if not reference.counterparty_id:
            who = "shop" if reference_kind == "order" else "designer"
            return Eligibility(False, f"No {who} is assigned to this {label.lower()}", "ineligible_state")

        # (b) requester is a party; the customer side files
        if not reference.is_party(requester_id):
            return Eligibility(False, f"You are not a party to this {label.lower()}", "not_party")
        if requester_id != reference.customer_id:
            return Eligibility(
                False, f"Only the customer can file a dispute for this {label.lower()}", "not_customer"
            )

        # (c) one open dispute per transaction
        existing = self.storage.find_open_dispute(reference_kind, reference_id)
        if existing is not None:
            return Eligibility(False, "An active dispute already exists for this transaction", "open_dispute")

        # (d) filing window
        window = timedelta(days=self.policy.filing_window_days)
        if self.clock() - reference.status_changed_at > window:
            return Eligibility(
                False,
                f"Dispute filing deadline has passed. You have {self.policy.filing_window_days} "
                f"days from {reference.status.replace('_', ' ')} to file a dispute.",
                "window_closed",
            )

        return Eligibility(True)
