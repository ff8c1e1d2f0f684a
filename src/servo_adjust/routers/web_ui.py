"""Server-rendered HTML front-end.

Routes:
    GET  /                          → robot and teleoperator profile index
    GET  /profiles/<kind>/<name>    → profile JSON editor
    POST /profiles/<kind>/<name>    → replace (json) or delete (action=delete)
    GET  /arm/<kind>/<name>?sel=N   → arm picture with joint hotspots and editor
    POST /arm/<kind>/<name>         → merge-patch the joint whose id is posted
    GET  /assets/lerobot-arm.jpg    → arm picture
"""

import html as _html

from fastapi import APIRouter, Depends, Form, Query
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, RedirectResponse, Response
from pydantic import ValidationError

from servo_adjust.exceptions import ProfileError, ReadOnlyError, VersionConflictError
from servo_adjust.logger import get_logger
from servo_adjust.models.config import AppConfig
from servo_adjust.models.profile import JointPatch, Kind, Profile, ProfilePatch
from servo_adjust.routers.deps import get_app_config, get_store, get_updater
from servo_adjust.services.profiles import ProfileStore, ProfileUpdater

logger = get_logger(__name__)

router = APIRouter(tags=["ui"], include_in_schema=False)

CONFIG = Depends(get_app_config)
STORE = Depends(get_store)
UPDATER = Depends(get_updater)
# Form() instances must not be shared between parameters
ACTION_FORM = Form(default=None)
JSON_FORM = Form(default=None, alias="json")
VERSION_FORM = Form(default=None)
ARM_VERSION_FORM = Form(default=None)
ID_FORM = Form(...)
DRIVE_MODE_FORM = Form(...)
HOMING_OFFSET_FORM = Form(...)
RANGE_MIN_FORM = Form(...)
RANGE_MAX_FORM = Form(...)
SEL_QUERY = Query(default=None)

JOINT_FIELDS = ("id", "drive_mode", "homing_offset", "range_min", "range_max")

# Hotspot positions (top %, left %) of joints 1..6 on the arm picture
ARM_HOTSPOTS = {
    Kind.ROBOTS: [(86, 79), (68, 77), (25, 85), (22, 70), (18, 56), (35, 49)],
    Kind.TELEOPERATORS: [(83, 36), (58, 31), (20, 45), (19, 28), (15, 16), (30, 9)],
}

_CSS = """
body{font-family:system-ui,sans-serif;margin:2rem;max-width:960px;color:#222}
a{color:#0b63c5;text-decoration:none}
.error{background:#fde8e8;border:1px solid #f5a3a3;padding:.5rem 1rem;margin:1rem 0}
textarea{width:100%;font-family:monospace}
.arm{position:relative;display:inline-block}
.arm img{max-width:640px;display:block}
.hotspot{position:absolute;transform:translate(-50%,-50%);background:#fff;border:2px solid #0b63c5;
border-radius:1rem;padding:0 .4rem;font-size:.8rem}
.hotspot.sel{background:#0b63c5;color:#fff}
.btn{display:inline-block;border:1px solid #ccc;border-radius:4px;padding:.1rem .5rem;margin:.1rem}
.btn.on{background:#222;color:#fff}
label{display:block;margin:.3rem 0}
"""


def _e(value: object) -> str:
    return _html.escape(str(value))


def _page(title: str, body: str) -> str:
    return (
        "<!doctype html><html><head><meta charset='utf-8'>"
        f"<title>{_e(title)}</title><style>{_CSS}</style></head>"
        f"<body><p><a href='/'>&larr; index</a></p><h1>{_e(title)}</h1>{body}</body></html>"
    )


def _error_block(error: str | None) -> str:
    return f"<div class='error'>{_e(error)}</div>" if error else ""


def _parse_kind(kind: str) -> Kind | None:
    try:
        return Kind.parse(kind)
    except ProfileError:
        return None


# ============================================================================
# Index
# ============================================================================


@router.get("/", response_class=HTMLResponse)
def index(config: AppConfig = CONFIG, store: ProfileStore = STORE) -> HTMLResponse:
    """List robot and teleoperator profiles."""
    sections = []
    for kind, heading in ((Kind.ROBOTS, "Robots"), (Kind.TELEOPERATORS, "Teleoperators")):
        try:
            names = store.list_names(kind)
        except ProfileError as e:
            sections.append(f"<h2>{heading}</h2>{_error_block(str(e))}")
            continue
        items = "".join(
            f"<li><a href='/profiles/{kind.value}/{_e(n)}'>{_e(n)}</a> "
            f"(<a href='/arm/{kind.value}/{_e(n)}'>arm</a>)</li>"
            for n in names
        )
        sections.append(f"<h2>{heading}</h2><ul>{items or '<li><em>none</em></li>'}</ul>")
    return HTMLResponse(_page(config.ui.title, "".join(sections)))


# ============================================================================
# Profile JSON editor
# ============================================================================


def _version_input(version: str | None) -> str:
    return f"<input type='hidden' name='version' value='{_e(version)}'>" if version else ""


def _profile_page(
    kind: str,
    name: str,
    text: str,
    error: str | None,
    read_only: bool,
    version: str | None = None,
) -> str:
    if read_only:
        form = f"<pre>{_e(text)}</pre>"
    else:
        form = (
            f"<form method='post' action='/profiles/{_e(kind)}/{_e(name)}'>"
            f"{_version_input(version)}"
            f"<textarea name='json' rows='30'>{_e(text)}</textarea>"
            "<p><button type='submit' name='action' value='save'>Save</button> "
            "<button type='submit' name='action' value='delete'>Delete</button></p></form>"
        )
    return _page(f"Profile {kind}/{name}", _error_block(error) + form)


@router.get("/profiles/{kind}/{name}", response_class=HTMLResponse)
def view_profile(kind: str, name: str, config: AppConfig = CONFIG, store: ProfileStore = STORE) -> HTMLResponse:
    """Show the profile JSON; the form carries the version it was rendered from."""
    read_only = config.storage.read_only
    parsed = _parse_kind(kind)
    if parsed is None:
        return HTMLResponse(_profile_page(kind, name, "", "invalid kind", read_only), status_code=400)
    try:
        profile, version = store.read_versioned(parsed, name)
    except ProfileError as e:
        return HTMLResponse(_profile_page(kind, name, "", str(e), read_only), status_code=e.status_code)
    page = _profile_page(kind, name, profile.model_dump_json(indent=2), None, read_only, version)
    return HTMLResponse(page)


@router.post("/profiles/{kind}/{name}", response_model=None)
def update_profile(
    kind: str,
    name: str,
    action: str | None = ACTION_FORM,
    json_text: str | None = JSON_FORM,
    version: str | None = VERSION_FORM,
    config: AppConfig = CONFIG,
    store: ProfileStore = STORE,
    updater: ProfileUpdater = UPDATER,
) -> Response:
    """Replace the profile with the posted JSON, or delete it.

    A posted ``version`` must still match the stored profile, otherwise the
    page is re-rendered with a version conflict (412).
    """
    text = json_text or ""
    expected = version or None
    if config.storage.read_only:
        return HTMLResponse(_profile_page(kind, name, text, str(ReadOnlyError()), True), status_code=403)
    parsed = _parse_kind(kind)
    if parsed is None:
        return HTMLResponse(_profile_page(kind, name, text, "invalid kind", False), status_code=400)

    if action == "delete":
        try:
            store.delete_profile(parsed, name, expected_version=expected)
        except ProfileError as e:
            page = _profile_page(kind, name, text, str(e), False, version)
            return HTMLResponse(page, status_code=e.status_code)
        return RedirectResponse("/", status_code=303)

    if not json_text:
        return HTMLResponse(_profile_page(kind, name, "", "missing json", False, version), status_code=400)
    try:
        profile = Profile.model_validate_json(json_text)
    except ValidationError as e:
        page = _profile_page(kind, name, text, f"invalid json: {e}", False, version)
        return HTMLResponse(page, status_code=400)
    try:
        updater.replace(parsed, name, profile, expected_version=expected)
    except ProfileError as e:
        page = _profile_page(kind, name, text, str(e), False, version)
        return HTMLResponse(page, status_code=e.status_code)
    return RedirectResponse(f"/profiles/{parsed.value}/{name}", status_code=303)


# ============================================================================
# Arm view
# ============================================================================


def _profile_buttons(store: ProfileStore, kind: Kind, name: str) -> str:
    rows = []
    for button_kind, heading in ((Kind.ROBOTS, "Followers"), (Kind.TELEOPERATORS, "Leaders")):
        try:
            names = store.list_names(button_kind)
        except ProfileError as e:
            rows.append(f"<p>{heading}: {_error_block(str(e))}</p>")
            continue
        buttons = " ".join(
            f"<a class='btn{' on' if button_kind == kind and n == name else ''}' "
            f"href='/arm/{button_kind.value}/{_e(n)}'>{_e(n)}</a>"
            for n in names
        )
        rows.append(f"<p>{heading}: {buttons}</p>")
    return "".join(rows)


def _joint_form(
    kind: Kind,
    name: str,
    joint_name: str,
    values: dict[str, int],
    version: str,
    read_only: bool,
) -> str:
    disabled = " disabled" if read_only else ""
    inputs = f"<input type='hidden' name='id' value='{_e(values['id'])}'>{_version_input(version)}"
    for field in JOINT_FIELDS[1:]:
        inputs += (
            f"<label>{field} <input type='number' name='{field}' value='{_e(values[field])}'{disabled}></label>"
        )
    submit = "" if read_only else "<button type='submit'>Apply</button>"
    return (
        f"<h2>{_e(joint_name)} (id {_e(values['id'])})</h2>"
        f"<form method='post' action='/arm/{kind.value}/{_e(name)}'>{inputs}{submit}</form>"
    )


def _arm_page(
    config: AppConfig,
    store: ProfileStore,
    kind: Kind,
    name: str,
    sel: int | None,
    error: str | None = None,
    values: dict[str, int] | None = None,
) -> str:
    label_prefix = "L" if kind == Kind.TELEOPERATORS else "F"
    profile: Profile | None = None
    version = ""
    try:
        profile, version = store.read_versioned(kind, name)
    except ProfileError as e:
        error = error or str(e)

    spots = []
    for n, (top, left) in enumerate(ARM_HOTSPOTS[kind], start=1):
        match = profile.joint_by_id(n) if profile else None
        label = match[0] if match else f"{label_prefix}{n}"
        cls = "hotspot sel" if sel == n else "hotspot"
        href = f"/arm/{kind.value}/{_e(name)}?sel={n}"
        spots.append(f"<a class='{cls}' style='top:{top}%;left:{left}%' href='{href}'>{_e(label)}</a>")
    picture = f"<div class='arm'><img src='/assets/lerobot-arm.jpg' alt='arm'>{''.join(spots)}</div>"

    editor = ""
    if sel is not None and profile is not None:
        match = profile.joint_by_id(sel)
        if match is None:
            error = error or f"joint with id={sel} not found"
        else:
            joint_name, joint = match
            form_values = values or joint.model_dump()
            editor = _joint_form(kind, name, joint_name, form_values, version, config.storage.read_only)

    body = _profile_buttons(store, kind, name) + _error_block(error) + picture + editor
    return _page(f"Arm - {kind.value} / {name}", body)


@router.get("/arm/{kind}/{name}", response_class=HTMLResponse)
def view_arm(
    kind: str,
    name: str,
    sel: int | None = SEL_QUERY,
    config: AppConfig = CONFIG,
    store: ProfileStore = STORE,
) -> HTMLResponse:
    parsed = _parse_kind(kind)
    if parsed is None:
        return HTMLResponse(_page("Arm", _error_block("invalid kind")), status_code=400)
    if sel is not None and not 1 <= sel <= len(ARM_HOTSPOTS[parsed]):
        sel = None
    return HTMLResponse(_arm_page(config, store, parsed, name, sel))


@router.post("/arm/{kind}/{name}", response_model=None)
def update_arm(
    kind: str,
    name: str,
    id: int = ID_FORM,  # noqa: A002
    drive_mode: int = DRIVE_MODE_FORM,
    homing_offset: int = HOMING_OFFSET_FORM,
    range_min: int = RANGE_MIN_FORM,
    range_max: int = RANGE_MAX_FORM,
    version: str | None = ARM_VERSION_FORM,
    config: AppConfig = CONFIG,
    store: ProfileStore = STORE,
    updater: ProfileUpdater = UPDATER,
) -> Response:
    """Merge-patch the joint whose id matches the posted id.

    The posted ``version`` is the one the editor was rendered from; without it
    the version read here is used.
    """
    parsed = _parse_kind(kind)
    if parsed is None:
        return HTMLResponse(_page("Arm", _error_block("invalid kind")), status_code=400)
    values = {
        "id": id,
        "drive_mode": drive_mode,
        "homing_offset": homing_offset,
        "range_min": range_min,
        "range_max": range_max,
    }
    if config.storage.read_only:
        return HTMLResponse(_arm_page(config, store, parsed, name, id, str(ReadOnlyError())), status_code=403)

    try:
        profile, current = store.read_versioned(parsed, name)
    except ProfileError as e:
        return HTMLResponse(_arm_page(config, store, parsed, name, None, str(e)), status_code=e.status_code)

    match = profile.joint_by_id(id)
    if match is None:
        return HTMLResponse(_arm_page(config, store, parsed, name, None, "invalid id"), status_code=400)
    joint_name, _joint = match

    try:
        patch = ProfilePatch({joint_name: JointPatch(**values)})
    except ValidationError as e:
        page = _arm_page(config, store, parsed, name, id, f"invalid value: {e.error_count()} error(s)", values)
        return HTMLResponse(page, status_code=400)
    try:
        updater.merge_patch(parsed, name, patch, expected_version=version or current)
    except VersionConflictError as e:
        logger.info("arm update rejected", kind=parsed.value, name=name, joint=joint_name, error=str(e))
        # Show the stored values so the user edits the current state
        return HTMLResponse(_arm_page(config, store, parsed, name, id, str(e)), status_code=e.status_code)
    except ProfileError as e:
        logger.info("arm update rejected", kind=parsed.value, name=name, joint=joint_name, error=str(e))
        page = _arm_page(config, store, parsed, name, id, str(e), values)
        return HTMLResponse(page, status_code=e.status_code)
    return RedirectResponse(f"/arm/{parsed.value}/{name}?sel={id}", status_code=303)


@router.get("/assets/lerobot-arm.jpg", response_model=None)
def arm_image(config: AppConfig = CONFIG) -> Response:
    image = config.ui.arm_image
    if not image.is_file():
        return PlainTextResponse("image not found", status_code=404)
    return FileResponse(image, media_type="image/jpeg")
