"""
Authenticated principal module.

This module defines the AuthUser entity that represents the outcome of a
successful authorization, plus the tagged success/failure result returned by
the request authorizer.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AuthUser(BaseModel):
    """
    Represents an authenticated user in the system.

    Built from a users row (session or SSO auth) or entirely from configuration
    (dev bypass) and stored in the request state for the rest of the request.

    Attributes:
        id: The unique identifier for the user ('usr_...' or 'dev')
        email: Normalized email address
        name: Display name
        is_admin: Whether the user administers the workspace
        is_approver: Whether the user can approve content
        status: Lifecycle status (pending, active, disabled)
        features: Dashboard features the user can access
        avatar_url: Optional avatar (URL or data URI)
        has_password: Whether a local password is set
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "usr_6f1c0a4e-8d2b-4f55-9a71-3c1f0b2e9d10",
                "email": "user@example.com",
                "name": "Jane Doe",
                "isAdmin": False,
                "isApprover": True,
                "status": "active",
                "features": ["calendar", "kanban"],
                "avatarUrl": None,
                "hasPassword": True,
            }
        },
    )

    id: str = Field(..., description="Unique identifier for the user")
    email: str = Field(..., description="Normalized email address")
    name: str = Field(..., description="User's display name")
    is_admin: bool = False
    is_approver: bool = False
    status: str = "pending"
    features: list[str] = Field(default_factory=list)
    avatar_url: str | None = None
    has_password: bool = False


class AuthSuccess(BaseModel):
    ok: Literal[True] = True
    user: AuthUser


class AuthFailure(BaseModel):
    ok: Literal[False] = False
    status: int
    error: str


AuthResult = AuthSuccess | AuthFailure
