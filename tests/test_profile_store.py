import hashlib
import json
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from servo_adjust.exceptions import (
    InvalidNameError,
    InvalidProfileError,
    MalformedDataError,
    ProfileNotFoundError,
    VersionConflictError,
)
from servo_adjust.models.config import StoreConfig
from servo_adjust.models.profile import Joint, Kind, Profile
from servo_adjust.services.profiles import ANY_VERSION, ProfileStore


def make_store(root: Path) -> ProfileStore:
    return ProfileStore(StoreConfig(root=root))


def make_profile(**joints: Joint) -> Profile:
    if not joints:
        joints = {"j1": Joint(id=1, drive_mode=0, homing_offset=0, range_min=1, range_max=10)}
    return Profile(joints)


def test_write_then_read_round_trip(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    profile = make_profile(
        shoulder_pan=Joint(id=1, drive_mode=0, homing_offset=-1470, range_min=758, range_max=3292),
        gripper=Joint(id=6, drive_mode=1, homing_offset=1407, range_min=2031, range_max=3476),
    )

    out = store.write_profile(Kind.ROBOTS, "so101_follower", profile, backup=True)

    assert out == tmp_path / "robots" / "so101_follower.json"
    assert out.exists()
    assert store.read_profile(Kind.ROBOTS, "so101_follower") == profile
    # Pretty printed lerobot-compatible JSON
    assert json.loads(out.read_text())["gripper"]["drive_mode"] == 1
    assert "\n  " in out.read_text()


def test_list_missing_directory_is_empty(tmp_path: Path) -> None:
    store = make_store(tmp_path / "does-not-exist")
    assert store.list_profiles(Kind.ROBOTS) == []
    assert store.list_names(Kind.TELEOPERATORS) == []


def test_list_is_sorted(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    store.write_profile(Kind.ROBOTS, "b", make_profile(), backup=False)
    store.write_profile(Kind.ROBOTS, "a", make_profile(), backup=False)

    assert store.list_names(Kind.ROBOTS) == ["a", "b"]
    metas = store.list_profiles(Kind.ROBOTS)
    assert [m.path for m in metas] == [tmp_path / "robots" / "a.json", tmp_path / "robots" / "b.json"]


def test_list_ignores_backup_and_temp_artifacts(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=False)
    store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=True)
    (tmp_path / "robots" / "stale.json.tmp").write_text("{}")
    (tmp_path / "robots" / ".hidden.json").write_text("{}")
    (tmp_path / "robots" / "notes.txt").write_text("x")

    assert (tmp_path / "robots" / "arm.json.bak").exists()
    assert store.list_names(Kind.ROBOTS) == ["arm"]


def test_list_scans_subdirectories(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    nested = tmp_path / "teleoperators" / "so101_leader"
    nested.mkdir(parents=True)
    (nested / "left.json").write_text(make_profile().model_dump_json())

    metas = store.list_profiles(Kind.TELEOPERATORS)

    assert [m.name for m in metas] == ["left"]
    assert metas[0].path == nested / "left.json"


def test_kinds_are_independent(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=False)

    assert store.list_names(Kind.TELEOPERATORS) == []
    with pytest.raises(ProfileNotFoundError):
        store.read_profile(Kind.TELEOPERATORS, "arm")


def test_custom_namespace_directories(tmp_path: Path) -> None:
    namespaces = {Kind.ROBOTS: "followers", Kind.TELEOPERATORS: "leaders"}
    store = ProfileStore(StoreConfig(root=tmp_path, namespaces=namespaces))
    out = store.write_profile(Kind.TELEOPERATORS, "leader", make_profile(), backup=False)
    assert out == tmp_path / "leaders" / "leader.json"


def test_read_missing_profile(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    with pytest.raises(ProfileNotFoundError) as exc:
        store.read_profile(Kind.ROBOTS, "nope")
    assert exc.value.status_code == 404
    assert str(exc.value) == "not found: robots:nope"


def test_read_malformed_json(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    (tmp_path / "robots").mkdir()
    (tmp_path / "robots" / "broken.json").write_text("{not json")

    with pytest.raises(MalformedDataError):
        store.read_profile(Kind.ROBOTS, "broken")


def test_read_wrong_field_types_is_malformed(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    (tmp_path / "robots").mkdir()
    (tmp_path / "robots" / "typed.json").write_text(
        json.dumps({"j1": {"id": "1", "drive_mode": 0, "homing_offset": 0, "range_min": 0, "range_max": 1}})
    )

    with pytest.raises(MalformedDataError) as exc:
        store.read_profile(Kind.ROBOTS, "typed")
    assert exc.value.params["path"] == tmp_path / "robots" / "typed.json"


def test_read_never_returns_invalid_profile(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    (tmp_path / "robots").mkdir()
    (tmp_path / "robots" / "legacy.json").write_text(
        json.dumps({"j1": {"id": 0, "drive_mode": 0, "homing_offset": 0, "range_min": 0, "range_max": 1}})
    )

    with pytest.raises(InvalidProfileError) as exc:
        store.read_profile(Kind.ROBOTS, "legacy")
    assert exc.value.joint == "j1"


def test_write_validates_before_touching_filesystem(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    bad = make_profile(j1=Joint(id=1, drive_mode=0, homing_offset=0, range_min=10, range_max=10))

    with pytest.raises(InvalidProfileError):
        store.write_profile(Kind.ROBOTS, "bad", bad, backup=True)

    assert not (tmp_path / "robots").exists()


def test_write_creates_empty_profile(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    out = store.write_profile(Kind.ROBOTS, "empty", Profile(), backup=False)
    assert json.loads(out.read_text()) == {}
    assert store.read_profile(Kind.ROBOTS, "empty") == Profile()


def test_delete_missing_profile(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    with pytest.raises(ProfileNotFoundError):
        store.delete_profile(Kind.ROBOTS, "ghost")


def test_delete_removes_only_that_file(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    store.write_profile(Kind.ROBOTS, "a", make_profile(), backup=False)
    store.write_profile(Kind.ROBOTS, "a", make_profile(), backup=True)
    store.write_profile(Kind.ROBOTS, "b", make_profile(), backup=False)

    store.delete_profile(Kind.ROBOTS, "a")

    robots = tmp_path / "robots"
    assert not (robots / "a.json").exists()
    assert (robots / "a.json.bak").exists()
    assert (robots / "b.json").exists()
    assert store.list_names(Kind.ROBOTS) == ["b"]


@pytest.mark.parametrize("name", ["", "../escape", "a/b", "a\\b", ".hidden", ".."])
def test_unsafe_names_are_rejected(tmp_path: Path, name: str) -> None:
    store = make_store(tmp_path)
    with pytest.raises(InvalidNameError):
        store.write_profile(Kind.ROBOTS, name, make_profile(), backup=False)
    assert not (tmp_path / "escape.json").exists()


def test_version_is_hash_of_file_bytes(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    out = store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=False)

    _, version = store.read_versioned(Kind.ROBOTS, "arm")

    assert version == hashlib.sha256(out.read_bytes()).hexdigest()
    assert store.current_version(Kind.ROBOTS, "arm") == version
    assert store.current_version(Kind.ROBOTS, "other") is None


def test_write_with_stale_version_is_rejected(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    out = store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=False)
    _, version = store.read_versioned(Kind.ROBOTS, "arm")
    store.write_profile(
        Kind.ROBOTS,
        "arm",
        make_profile(j1=Joint(id=2, drive_mode=0, homing_offset=0, range_min=1, range_max=10)),
        backup=True,
    )
    before = out.read_bytes()

    with pytest.raises(VersionConflictError):
        store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=True, expected_version=version)

    assert out.read_bytes() == before


def test_write_and_delete_with_current_version(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=False)
    _, version = store.read_versioned(Kind.ROBOTS, "arm")

    store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=True, expected_version=version)

    with pytest.raises(VersionConflictError):
        store.delete_profile(Kind.ROBOTS, "arm", expected_version="0" * 64)
    store.delete_profile(Kind.ROBOTS, "arm", expected_version=store.current_version(Kind.ROBOTS, "arm"))
    assert store.list_names(Kind.ROBOTS) == []


def test_ensure_layout(tmp_path: Path) -> None:
    store = make_store(tmp_path / "calibration")
    store.ensure_layout()
    assert (tmp_path / "calibration" / "robots").is_dir()
    assert (tmp_path / "calibration" / "teleoperators").is_dir()


def test_any_version_requires_existing_file(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    with pytest.raises(VersionConflictError):
        store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=False, expected_version=ANY_VERSION)
    assert not (tmp_path / "robots" / "arm.json").exists()

    store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=False)
    store.write_profile(Kind.ROBOTS, "arm", make_profile(), backup=True, expected_version=ANY_VERSION)
    store.delete_profile(Kind.ROBOTS, "arm", expected_version=ANY_VERSION)
    assert store.list_names(Kind.ROBOTS) == []


def test_lock_registry_is_released(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    with store.lock(Kind.ROBOTS, "arm"), store.lock(Kind.ROBOTS, "arm"):
        assert len(store._locks) == 1
    for i in range(20):
        store.write_profile(Kind.ROBOTS, f"p{i}", make_profile(), backup=False)
        store.delete_profile(Kind.ROBOTS, f"p{i}")
    assert store._locks == {}


def test_duplicate_joint_ids_are_logged(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    joint = Joint(id=3, drive_mode=0, homing_offset=0, range_min=1, range_max=10)
    with capture_logs() as logs:
        store.write_profile(Kind.ROBOTS, "arm", make_profile(a=joint, b=joint), backup=False)

    warnings = [entry for entry in logs if entry["event"] == "profile repeats joint ids"]
    assert [(w["log_level"], w["ids"], w["name"]) for w in warnings] == [("warning", [3], "arm")]


def test_failures_are_logged_before_raising(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    bad = make_profile(j1=Joint(id=0, drive_mode=0, homing_offset=0, range_min=1, range_max=10))
    with capture_logs() as logs:
        with pytest.raises(ProfileNotFoundError):
            store.read_profile(Kind.ROBOTS, "ghost")
        with pytest.raises(ProfileNotFoundError):
            store.delete_profile(Kind.ROBOTS, "ghost")
        with pytest.raises(InvalidProfileError):
            store.write_profile(Kind.ROBOTS, "bad", bad, backup=False)

    errors = [(entry["event"], entry["name"]) for entry in logs if entry["log_level"] == "error"]
    assert errors == [
        ("profile not found", "ghost"),
        ("profile not found", "ghost"),
        ("validation error", "bad"),
    ]
