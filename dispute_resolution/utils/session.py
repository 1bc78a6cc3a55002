"""Session context management for identifying the acting user."""

import contextvars
from typing import Optional

from dispute_resolution.config import settings
from dispute_resolution.models.user import Actor

# Context variable for the current actor
_current_actor: contextvars.ContextVar[Optional[Actor]] = contextvars.ContextVar(
    "current_actor", default=None
)


def get_current_actor() -> Actor:
    """Get the acting user from session context.

    Returns the actor from the context variable if set, otherwise falls
    back to the default user ID from settings.

    Raises:
        RuntimeError: If no actor is available (context not set and no default)
    """
    actor = _current_actor.get()
    if actor is not None:
        return actor

    # Fall back to default user for the CLI
    if settings.default_user_id:
        return Actor(user_id=settings.default_user_id)

    raise RuntimeError(
        "No actor in session context. Ensure set_current_actor() is called "
        "before running dispute operations."
    )


def get_current_user_id() -> str:
    """Get the current user's ID from session context."""
    return get_current_actor().user_id


def set_current_actor(user_id: str, role: str = "user") -> contextvars.Token[Optional[Actor]]:
    """Set the acting user in session context.

    Args:
        user_id: The user ID to set
        role: "user" for transaction parties, "arbiter" for admins

    Returns:
        Token that can be used to reset the context
    """
    return _current_actor.set(Actor(user_id=user_id, role=role))


def reset_current_actor(token: contextvars.Token[Optional[Actor]]) -> None:
    """Reset the actor context to its previous value."""
    _current_actor.reset(token)
