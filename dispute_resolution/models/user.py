"""User profile and acting-user models."""

from typing import Literal

from pydantic import BaseModel, Field

SYSTEM_USER_ID = "system"


class UserProfile(BaseModel):
    """Represents a marketplace user taking part in disputes."""

    id: str = Field(description="Unique user identifier")
    display_name: str = Field(description="Name shown to the other party")
    role: Literal["customer", "designer", "shop_owner", "arbiter"] = Field(
        default="customer", description="Marketplace role"
    )
    email: str | None = Field(default=None, description="Contact email")

    def to_display_dict(self) -> dict:
        """Return a dictionary suitable for display to users."""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "role": self.role,
        }


class Actor(BaseModel):
    """The authenticated user on whose behalf an operation runs."""

    user_id: str
    role: Literal["user", "arbiter", "system"] = "user"

    @property
    def is_arbiter(self) -> bool:
        return self.role == "arbiter"

    @property
    def is_system(self) -> bool:
        return self.role == "system"

    @classmethod
    def system(cls) -> "Actor":
        """Actor used by scheduled sweeps."""
        return cls(user_id=SYSTEM_USER_ID, role="system")
