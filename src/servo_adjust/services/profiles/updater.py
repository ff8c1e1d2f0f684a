"""Create, full-replace and merge-patch operations over the profile store."""

from pathlib import Path

from servo_adjust.exceptions import InvalidJointError, UnknownJointError, VersionConflictError
from servo_adjust.logger import get_logger
from servo_adjust.models.profile import Kind, Profile, ProfilePatch

from .store import ANY_VERSION, ProfileStore

logger = get_logger(__name__)


class ProfileUpdater:
    """Write-side protocol used by the API and the HTML front-end."""

    def __init__(self, store: ProfileStore) -> None:
        self.store = store

    def create(self, kind: Kind, name: str, profile: Profile | None = None) -> Path:
        """Write a new profile without backup; an omitted profile is empty."""
        return self.store.write_profile(kind, name, profile or Profile(), backup=False)

    def replace(self, kind: Kind, name: str, profile: Profile, expected_version: str | None = None) -> Path:
        """Replace a profile wholesale, keeping the previous file as .bak."""
        return self.store.write_profile(kind, name, profile, backup=True, expected_version=expected_version)

    def merge_patch(
        self,
        kind: Kind,
        name: str,
        patch: ProfilePatch,
        expected_version: str | None = None,
    ) -> Profile:
        """Apply a partial update to existing joints, all or nothing.

        Only the fields present in each joint patch are changed. Nothing is
        persisted unless every patched joint exists and is valid after merging;
        on success the pre-patch file is kept as .bak.

        Args:
            kind: Profile namespace
            name: Profile name
            patch: Joint name to partial joint record
            expected_version: Version token the caller based the patch on

        Returns:
            The merged profile as persisted

        Raises:
            ProfileNotFoundError, MalformedDataError, InvalidProfileError: reading the base
            VersionConflictError: when ``expected_version`` is stale
            UnknownJointError: patch references a joint absent from the profile
            InvalidJointError: a merged joint violates its invariants
        """
        with self.store.lock(kind, name):
            current, version = self.store.read_versioned(kind, name)
            if expected_version not in (None, ANY_VERSION, version):
                raise VersionConflictError(kind.value, name, expected_version, version)

            joints = dict(current.root)
            for joint_name, joint_patch in patch.root.items():
                existing = joints.get(joint_name)
                if existing is None:
                    logger.info("patch rejected", kind=kind.value, name=name, unknown_joint=joint_name)
                    raise UnknownJointError(joint_name)

                merged = existing.model_copy(update=joint_patch.changes())
                try:
                    merged.validate()
                except InvalidJointError as e:
                    logger.info("patch rejected", kind=kind.value, name=name, joint=joint_name, reason=e.reason)
                    raise InvalidJointError(e.field, e.reason, joint=joint_name) from e
                joints[joint_name] = merged

            updated = Profile(joints)
            self.store.write_profile(kind, name, updated, backup=True, expected_version=version)

        logger.info("patch applied", kind=kind.value, name=name, joints=sorted(patch.root))
        return updated
