"""API models for profile endpoints."""

from typing import Any

from pydantic import BaseModel

from servo_adjust.models.profile import Profile


class Pong(BaseModel):
    message: str = "pong"


class ListResponse(BaseModel):
    """Sorted profile names of one kind."""

    items: list[str]


class CreateProfileBody(BaseModel):
    """Request body for creating a profile; the profile defaults to empty."""

    name: str
    profile: Profile | None = None


class ErrorBody(BaseModel):
    """JSON body of every profile error response."""

    code: int
    error: str
    message: str
    details: dict[str, Any] | None = None
