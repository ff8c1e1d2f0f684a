"""Centralized exception hierarchy for servo-adjust.

Every failure raised by the profile store or the update protocol carries a
stable ``code`` (the error kind), a recommended HTTP status and the parameters
describing the offending field or path.
"""

from pathlib import Path


class ProfileError(Exception):
    """Base exception for all profile store errors."""

    code = "error"

    def __init__(self, message: str, status_code: int = 500, **params: object) -> None:
        """
        Initialize the error.

        Args:
            message: Human-readable cause (English)
            status_code: Recommended HTTP status code
            **params: Structured details (joint, field, reason, path...)
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.params = params

    def __str__(self) -> str:
        return self.message

    def details(self) -> dict[str, object]:
        """Return params in a JSON-friendly form."""
        out: dict[str, object] = {}
        for key, value in self.params.items():
            if isinstance(value, Path):
                out[key] = str(value)
            elif isinstance(value, (list, tuple)):
                out[key] = [str(v) if isinstance(v, Path) else v for v in value]
            else:
                out[key] = value
        return out


class ProfileNotFoundError(ProfileError):
    """Raised when a profile has no backing file."""

    code = "not_found"

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"not found: {kind}:{name}", status_code=404, kind=kind, name=name)


class InvalidJointError(ProfileError):
    """Raised when a single joint violates its invariants."""

    code = "invalid_joint"

    def __init__(self, field: str, reason: str, joint: str | None = None) -> None:
        if joint is None:
            message = f"invalid joint: {reason}"
        else:
            message = f"joint `{joint}` invalid: {reason}"
        super().__init__(message, status_code=400, joint=joint, field=field, reason=reason)
        self.joint = joint
        self.field = field
        self.reason = reason


class InvalidProfileError(ProfileError):
    """Raised when a profile contains at least one invalid joint."""

    code = "invalid_profile"

    def __init__(self, joint: str, field: str, reason: str) -> None:
        super().__init__(f"joint `{joint}` invalid: {reason}", status_code=400, joint=joint, field=field, reason=reason)
        self.joint = joint
        self.field = field
        self.reason = reason


class UnknownJointError(ProfileError):
    """Raised when a patch references a joint absent from the profile."""

    code = "unknown_joint"

    def __init__(self, joint: str) -> None:
        super().__init__(f"unknown joint: {joint}", status_code=400, joint=joint)
        self.joint = joint


class MalformedDataError(ProfileError):
    """Raised when stored content cannot be parsed as a profile."""

    code = "malformed_data"

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"malformed profile data in {path}: {reason}", status_code=400, path=path, reason=reason)


class IoFailureError(ProfileError):
    """Raised when a filesystem operation fails (permissions, disk full, ...)."""

    code = "io_failure"

    def __init__(self, operation: str, path: Path, reason: str) -> None:
        super().__init__(
            f"io error during {operation} of {path}: {reason}",
            status_code=500,
            operation=operation,
            path=path,
            reason=reason,
        )


class AmbiguousNameError(ProfileError):
    """Raised when several files in one kind share the same profile name."""

    code = "ambiguous_name"

    def __init__(self, kind: str, name: str, candidates: list[Path]) -> None:
        super().__init__(
            f"ambiguous profile name {kind}:{name} ({len(candidates)} matching files)",
            status_code=409,
            kind=kind,
            name=name,
            candidates=candidates,
        )
        self.candidates = candidates


class VersionConflictError(ProfileError):
    """Raised when a write is based on a stale version of the profile."""

    code = "version_conflict"

    def __init__(self, kind: str, name: str, expected: str, actual: str | None) -> None:
        super().__init__(
            f"version conflict on {kind}:{name}",
            status_code=412,
            kind=kind,
            name=name,
            expected=expected,
            actual=actual,
        )


class InvalidKindError(ProfileError):
    """Raised for a namespace token other than robots/teleoperators."""

    code = "invalid_kind"

    def __init__(self, kind: str) -> None:
        super().__init__("invalid kind", status_code=400, kind=kind)


class InvalidNameError(ProfileError):
    """Raised when a profile name cannot be mapped to a file safely."""

    code = "invalid_name"

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"invalid profile name {name!r}: {reason}", status_code=400, name=name, reason=reason)


class ReadOnlyError(ProfileError):
    """Raised when a mutating operation is attempted in read-only mode."""

    code = "read_only"

    def __init__(self) -> None:
        super().__init__("server is in read-only mode", status_code=403)
