"""API models package."""

from servo_adjust.models.api.profile import (
    CreateProfileBody,
    ErrorBody,
    ListResponse,
    Pong,
)

__all__ = [
    "CreateProfileBody",
    "ErrorBody",
    "ListResponse",
    "Pong",
]
