"""Calibration profile services."""

from .store import ANY_VERSION, ProfileStore, compute_version, validate_name
from .updater import ProfileUpdater

__all__ = ["ANY_VERSION", "ProfileStore", "ProfileUpdater", "compute_version", "validate_name"]
