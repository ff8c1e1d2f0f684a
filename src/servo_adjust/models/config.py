"""Configuration data models for servo-adjust."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from servo_adjust.models.profile import Kind


class StoreConfig(BaseModel):
    """Immutable storage settings handed to the profile store."""

    model_config = ConfigDict(frozen=True)

    root: Path
    namespaces: dict[Kind, str] = Field(
        default_factory=lambda: {Kind.ROBOTS: "robots", Kind.TELEOPERATORS: "teleoperators"}
    )

    def kind_dir(self, kind: Kind) -> Path:
        """Return the directory holding profiles of ``kind``."""
        return self.root / self.namespaces[kind]


class ServerConfig(BaseModel):
    """Server configuration."""

    port: int = 3000
    host: str = "0.0.0.0"


class StorageConfig(BaseModel):
    """Calibration storage configuration."""

    calib_root: Path = Path("huggingface/lerobot/calibration")
    robots_dir: str = "robots"
    teleoperators_dir: str = "teleoperators"
    read_only: bool = False

    @field_validator("calib_root", mode="before")
    @classmethod
    def expand_calib_root(cls, v: str | Path) -> Path:
        """Expand user path for calib_root."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    def store_config(self) -> StoreConfig:
        """Build the frozen store settings from this section."""
        return StoreConfig(
            root=self.calib_root,
            namespaces={Kind.ROBOTS: self.robots_dir, Kind.TELEOPERATORS: self.teleoperators_dir},
        )


class UIConfig(BaseModel):
    """HTML front-end configuration."""

    title: str = "LeRobot Servo Adjust"
    arm_image: Path = Path("lerobot-arm.jpg")


class AdvancedConfig(BaseModel):
    """Advanced configuration."""

    log_level: Literal["INFO", "DEBUG", "TRACE"] = "INFO"


class AppConfig(BaseModel):
    """Application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    ui: UIConfig = Field(default_factory=UIConfig)
    advanced: AdvancedConfig = Field(default_factory=AdvancedConfig)
