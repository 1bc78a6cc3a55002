"""Dispute error taxonomy."""


class DisputeError(Exception):
    """Base class for errors raised by dispute operations."""

    kind = "dispute_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Return a dictionary suitable for a failed tool response."""
        return {"success": False, "error": self.kind, "message": self.message}


class ValidationError(DisputeError):
    """Malformed input, amount exceeding the paid total, missing field."""

    kind = "validation_error"


class AuthorizationError(DisputeError):
    """The actor is not allowed to perform the attempted transition."""

    kind = "authorization_error"


class ConflictError(DisputeError):
    """The dispute is terminal, in an incompatible stage, or changed underneath us."""

    kind = "conflict"


class AlreadySettledError(ConflictError):
    """Settlement was already executed for this dispute."""

    kind = "already_settled"


class NotFoundError(DisputeError):
    """The dispute or the referenced transaction does not exist."""

    kind = "not_found"


class SettlementError(DisputeError):
    """The external ledger could not be reached or refused the instruction."""

    kind = "settlement_error"
