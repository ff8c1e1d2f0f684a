"""Calibration profile models (compatible with the lerobot calibration format)."""

from collections import Counter
from enum import Enum
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, RootModel, Strict

from servo_adjust.exceptions import InvalidJointError, InvalidKindError, InvalidProfileError

# Calibration values are signed 32-bit integers; JSON strings or floats are not coerced
Int32 = Annotated[int, Strict(), Field(ge=-(2**31), le=2**31 - 1)]


class Kind(str, Enum):
    """Storage namespace of a profile."""

    ROBOTS = "robots"  # Follower arms
    TELEOPERATORS = "teleoperators"  # Leader arms

    @classmethod
    def parse(cls, value: "str | Kind") -> "Kind":
        """Map a namespace token to a Kind, raising InvalidKindError otherwise."""
        try:
            return cls(value)
        except ValueError as e:
            raise InvalidKindError(str(value)) from e


class Joint(BaseModel):
    """Calibration of one actuator."""

    model_config = ConfigDict(extra="forbid")

    id: Int32 = Field(..., description="Motor ID on the bus (physical address)")
    drive_mode: Int32 = Field(..., description="Device specific drive mode (0 = normal, 1 = inverted)")
    homing_offset: Int32 = Field(..., description="Encoder offset for zero position (raw units)")
    range_min: Int32 = Field(..., description="Minimum position limit (raw encoder units)")
    range_max: Int32 = Field(..., description="Maximum position limit (raw encoder units)")

    def validate(self) -> None:  # type: ignore[override]
        """Check the joint invariants.

        Raises:
            InvalidJointError: if ``id <= 0`` or ``range_min >= range_max``
        """
        if self.id <= 0:
            raise InvalidJointError("id", "id must be > 0")
        if self.range_min >= self.range_max:
            raise InvalidJointError("range_min", "range_min must be < range_max")


class Profile(RootModel[dict[str, Joint]]):
    """Mapping of joint name to joint calibration."""

    root: dict[str, Joint] = Field(default_factory=dict)

    def validate(self) -> None:  # type: ignore[override]
        """Validate every joint.

        Raises:
            InvalidProfileError: for the first invalid joint found
        """
        for name, joint in self.root.items():
            try:
                joint.validate()
            except InvalidJointError as e:
                raise InvalidProfileError(name, e.field, e.reason) from e

    def joint_by_id(self, joint_id: int) -> tuple[str, Joint] | None:
        """Return the first (name, joint) whose id matches."""
        for name, joint in self.root.items():
            if joint.id == joint_id:
                return name, joint
        return None

    def duplicate_ids(self) -> list[int]:
        """Return joint ids used by more than one joint."""
        counts = Counter(joint.id for joint in self.root.values())
        return sorted(joint_id for joint_id, n in counts.items() if n > 1)


class JointPatch(BaseModel):
    """Partial joint record; absent (or null) fields keep their previous value."""

    model_config = ConfigDict(extra="forbid")

    id: Int32 | None = None
    drive_mode: Int32 | None = None
    homing_offset: Int32 | None = None
    range_min: Int32 | None = None
    range_max: Int32 | None = None

    def changes(self) -> dict[str, int]:
        """Return only the fields present in the patch."""
        return self.model_dump(exclude_none=True)


class ProfilePatch(RootModel[dict[str, JointPatch]]):
    """Merge-patch body: joint name to partial joint record."""

    root: dict[str, JointPatch] = Field(default_factory=dict)


class ProfileMeta(BaseModel):
    """Listing record; never persisted."""

    name: str
    path: Path
