"""
Filesystem-backed calibration profile store.

Layout under the configured root:
- <root>/robots/**/<name>.json
- <root>/teleoperators/**/<name>.json

A profile name resolves to its canonical file <kind>/<name>.json when that
file exists, otherwise to the single file with that stem found anywhere in the
kind's subtree. Several candidates without a canonical file is an error.

Writes go to <name>.json.tmp first and are renamed over the target, so readers
see either the complete old file or the complete new one. An overwrite can
keep one backup generation in <name>.json.bak.
"""

import contextlib
import hashlib
import os
import shutil
import threading
from collections.abc import Iterator
from pathlib import Path

from pydantic import ValidationError

from servo_adjust.exceptions import (
    AmbiguousNameError,
    InvalidNameError,
    InvalidProfileError,
    IoFailureError,
    MalformedDataError,
    ProfileNotFoundError,
    VersionConflictError,
)
from servo_adjust.logger import get_logger
from servo_adjust.models.config import StoreConfig
from servo_adjust.models.profile import Kind, Profile, ProfileMeta

logger = get_logger(__name__)

PROFILE_SUFFIX = ".json"
BACKUP_SUFFIX = ".json.bak"
TEMP_SUFFIX = ".json.tmp"

# Expected version matching any existing profile (HTTP `If-Match: *`)
ANY_VERSION = "*"


def validate_name(name: str) -> None:
    """Reject names that cannot be mapped to a single file inside the kind directory."""
    if not name:
        raise InvalidNameError(name, "name must not be empty")
    if any(sep in name for sep in ("/", "\\", "\x00")):
        raise InvalidNameError(name, "name must not contain path separators")
    if name.startswith("."):
        raise InvalidNameError(name, "name must not start with '.'")


def compute_version(data: bytes) -> str:
    """Return the version token of a profile file's content."""
    return hashlib.sha256(data).hexdigest()


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}" for err in error.errors()
    )


class ProfileStore:
    """CRUD over calibration profiles stored as JSON files.

    The store keeps no state besides its immutable configuration and a registry
    of per-profile locks, so a single instance can be shared by all request
    handlers.
    """

    def __init__(self, config: StoreConfig) -> None:
        self.config = config
        # (kind, name) -> [lock, number of holders and waiters]; entries go away when unused
        self._locks: dict[tuple[Kind, str], list] = {}
        self._locks_guard = threading.Lock()

    @property
    def root(self) -> Path:
        return self.config.root

    def kind_dir(self, kind: Kind) -> Path:
        return self.config.kind_dir(kind)

    def canonical_path(self, kind: Kind, name: str) -> Path:
        """Return <root>/<kind>/<name>.json."""
        validate_name(name)
        return self.kind_dir(kind) / f"{name}{PROFILE_SUFFIX}"

    def ensure_layout(self) -> None:
        """Create the root and both kind directories."""
        for kind in Kind:
            directory = self.kind_dir(kind)
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise IoFailureError("mkdir", directory, str(e)) from e

    @contextlib.contextmanager
    def lock(self, kind: Kind, name: str) -> Iterator[None]:
        """Hold the re-entrant in-process lock of one profile."""
        key = (kind, name)
        with self._locks_guard:
            entry = self._locks.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _scan(self, kind: Kind) -> dict[str, list[Path]]:
        """Map every profile name in the kind's subtree to its files (sorted)."""
        directory = self.kind_dir(kind)
        found: dict[str, list[Path]] = {}
        if not directory.is_dir():
            return found
        try:
            for path in sorted(directory.rglob(f"*{PROFILE_SUFFIX}")):
                if path.name.startswith(".") or not path.is_file():
                    continue
                found.setdefault(path.stem, []).append(path)
        except OSError as e:
            raise IoFailureError("scan", directory, str(e)) from e
        return found

    def resolve(self, kind: Kind, name: str) -> Path | None:
        """Return the file backing ``name``, or None when the profile is absent.

        Raises:
            AmbiguousNameError: when there is no canonical file and several
                files in the subtree share the name
        """
        canonical = self.canonical_path(kind, name)
        if canonical.is_file():
            return canonical
        candidates = self._scan(kind).get(name, [])
        if len(candidates) > 1:
            logger.error("ambiguous profile name", kind=kind.value, name=name, candidates=[str(p) for p in candidates])
            raise AmbiguousNameError(kind.value, name, candidates)
        return candidates[0] if candidates else None

    def _read_bytes(self, kind: Kind, name: str, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            # Removed between resolution and read
            raise ProfileNotFoundError(kind.value, name) from e
        except OSError as e:
            logger.error("read file error", path=str(path), error=str(e))
            raise IoFailureError("read", path, str(e)) from e

    def current_version(self, kind: Kind, name: str) -> str | None:
        """Return the version token of the stored profile, or None if absent."""
        path = self.resolve(kind, name)
        if path is None:
            return None
        return compute_version(self._read_bytes(kind, name, path))

    def _check_version(self, kind: Kind, name: str, expected: str) -> None:
        actual = self.current_version(kind, name)
        matches = actual is not None if expected == ANY_VERSION else actual == expected
        if not matches:
            logger.warning("version conflict", kind=kind.value, name=name, expected=expected, actual=actual)
            raise VersionConflictError(kind.value, name, expected, actual)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def list_profiles(self, kind: Kind) -> list[ProfileMeta]:
        """List profiles of ``kind`` sorted by name; a missing directory yields []."""
        directory = self.kind_dir(kind)
        metas = []
        for name, paths in sorted(self._scan(kind).items()):
            canonical = directory / f"{name}{PROFILE_SUFFIX}"
            metas.append(ProfileMeta(name=name, path=canonical if canonical in paths else paths[0]))
        logger.info("list profiles", kind=kind.value, count=len(metas))
        return metas

    def list_names(self, kind: Kind) -> list[str]:
        return [meta.name for meta in self.list_profiles(kind)]

    def read_versioned(self, kind: Kind, name: str) -> tuple[Profile, str]:
        """Read, parse and validate a profile.

        Returns:
            The profile and the version token of the bytes it was parsed from

        Raises:
            ProfileNotFoundError, AmbiguousNameError, IoFailureError,
            MalformedDataError, InvalidProfileError
        """
        path = self.resolve(kind, name)
        if path is None:
            logger.error("profile not found", kind=kind.value, name=name)
            raise ProfileNotFoundError(kind.value, name)

        data = self._read_bytes(kind, name, path)
        try:
            profile = Profile.model_validate_json(data)
        except ValidationError as e:
            logger.error("json parse error", path=str(path), error=_describe(e))
            raise MalformedDataError(path, _describe(e)) from e

        try:
            profile.validate()
        except InvalidProfileError as e:
            logger.error("validation error", path=str(path), error=str(e))
            raise

        logger.info("read profile", kind=kind.value, name=name, path=str(path))
        return profile, compute_version(data)

    def read_profile(self, kind: Kind, name: str) -> Profile:
        return self.read_versioned(kind, name)[0]

    def write_profile(
        self,
        kind: Kind,
        name: str,
        profile: Profile,
        backup: bool,
        expected_version: str | None = None,
    ) -> Path:
        """Validate and atomically persist a profile.

        Args:
            kind: Profile namespace
            name: Profile name
            profile: Profile to persist
            backup: Copy an existing file to <name>.json.bak before overwriting
            expected_version: When set, the write fails unless the stored
                profile still has this version token (``ANY_VERSION``: unless
                it exists)

        Returns:
            Path of the written file

        Raises:
            InvalidNameError, InvalidProfileError: before touching the filesystem
            AmbiguousNameError, VersionConflictError, IoFailureError
        """
        validate_name(name)
        try:
            profile.validate()
        except InvalidProfileError as e:
            logger.error("validation error", kind=kind.value, name=name, error=str(e))
            raise
        if duplicates := profile.duplicate_ids():
            logger.warning("profile repeats joint ids", kind=kind.value, name=name, ids=duplicates)
        payload = profile.model_dump_json(indent=2).encode("utf-8")

        with self.lock(kind, name):
            if expected_version is not None:
                self._check_version(kind, name, expected_version)

            target = self.resolve(kind, name) or self.canonical_path(kind, name)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise IoFailureError("mkdir", target.parent, str(e)) from e

            if backup and target.exists():
                bak = target.with_name(f"{name}{BACKUP_SUFFIX}")
                try:
                    shutil.copyfile(target, bak)
                except OSError as e:
                    logger.error("backup error", path=str(bak), error=str(e))
                    raise IoFailureError("backup", bak, str(e)) from e

            tmp = target.with_name(f"{name}{TEMP_SUFFIX}")
            try:
                with open(tmp, "wb") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, target)
            except OSError as e:
                logger.error("write error", tmp=str(tmp), path=str(target), error=str(e))
                with contextlib.suppress(OSError):
                    tmp.unlink(missing_ok=True)
                raise IoFailureError("write", target, str(e)) from e

        logger.info("write profile ok", kind=kind.value, name=name, path=str(target), backup=backup)
        return target

    def delete_profile(self, kind: Kind, name: str, expected_version: str | None = None) -> None:
        """Remove the file backing a profile; siblings (including its .bak) stay.

        Raises:
            ProfileNotFoundError, AmbiguousNameError, VersionConflictError, IoFailureError
        """
        with self.lock(kind, name):
            path = self.resolve(kind, name)
            if path is None:
                logger.error("profile not found", kind=kind.value, name=name)
                raise ProfileNotFoundError(kind.value, name)
            if expected_version is not None:
                self._check_version(kind, name, expected_version)
            try:
                path.unlink()
            except FileNotFoundError as e:
                raise ProfileNotFoundError(kind.value, name) from e
            except OSError as e:
                logger.error("delete error", path=str(path), error=str(e))
                raise IoFailureError("delete", path, str(e)) from e

        logger.info("delete profile ok", kind=kind.value, name=name, path=str(path))
