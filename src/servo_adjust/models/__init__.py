"""Data models for servo-adjust."""

from servo_adjust.models.config import AppConfig, StoreConfig
from servo_adjust.models.profile import Joint, JointPatch, Kind, Profile, ProfileMeta, ProfilePatch

__all__ = [
    "AppConfig",
    "Joint",
    "JointPatch",
    "Kind",
    "Profile",
    "ProfileMeta",
    "ProfilePatch",
    "StoreConfig",
]
