"""Calibration profile API endpoints."""

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status

from servo_adjust.exceptions import ReadOnlyError
from servo_adjust.models.api import CreateProfileBody, ListResponse, Pong
from servo_adjust.models.profile import Kind, Profile, ProfilePatch
from servo_adjust.routers.deps import get_store, get_updater, is_read_only
from servo_adjust.services.profiles import ProfileStore, ProfileUpdater

router = APIRouter(prefix="/api", tags=["profiles"])


def require_writable(request: Request) -> None:
    """Reject mutating requests when the server runs read-only."""
    if is_read_only(request):
        raise ReadOnlyError()


def parse_if_match(value: str | None) -> str | None:
    """Extract the version token from an If-Match header value.

    ``*`` is passed through as ``ANY_VERSION``: the profile only has to exist.
    """
    if value is None:
        return None
    token = value.strip()
    if token.startswith("W/"):
        token = token[2:]
    return token.strip('"') or None


# Parameter constants to avoid B008 issues
STORE = Depends(get_store)
UPDATER = Depends(get_updater)
WRITABLE = Depends(require_writable)
KIND_QUERY = Query(..., description="robots or teleoperators")
IF_MATCH = Header(default=None, description="Version token (ETag) the change is based on")


@router.get("/ping", response_model=Pong, operation_id="profiles_ping")
def ping() -> Pong:
    return Pong()


@router.get("/profiles", response_model=ListResponse, operation_id="profiles_list")
def list_profiles(kind: str = KIND_QUERY, store: ProfileStore = STORE) -> ListResponse:
    """List profile names of one kind, sorted."""
    return ListResponse(items=store.list_names(Kind.parse(kind)))


@router.get("/profiles/{kind}/{name}", response_model=Profile, operation_id="profiles_get")
def get_profile(kind: str, name: str, response: Response, store: ProfileStore = STORE) -> Profile:
    """Return a validated profile; the ETag header carries its version token."""
    profile, version = store.read_versioned(Kind.parse(kind), name)
    response.headers["ETag"] = f'"{version}"'
    return profile


@router.post(
    "/profiles/{kind}",
    status_code=status.HTTP_201_CREATED,
    dependencies=[WRITABLE],
    operation_id="profiles_create",
)
def create_profile(kind: str, body: CreateProfileBody, updater: ProfileUpdater = UPDATER) -> Response:
    """Create a profile (empty when no profile is supplied)."""
    parsed = Kind.parse(kind)
    updater.create(parsed, body.name, body.profile)
    return Response(
        status_code=status.HTTP_201_CREATED,
        headers={"Location": f"/api/profiles/{parsed.value}/{body.name}"},
    )


@router.put(
    "/profiles/{kind}/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[WRITABLE],
    operation_id="profiles_replace",
)
def put_profile(
    kind: str,
    name: str,
    body: Profile,
    updater: ProfileUpdater = UPDATER,
    if_match: str | None = IF_MATCH,
) -> Response:
    """Replace a profile wholesale; the previous file is kept as .bak."""
    updater.replace(Kind.parse(kind), name, body, expected_version=parse_if_match(if_match))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch(
    "/profiles/{kind}/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[WRITABLE],
    operation_id="profiles_merge_patch",
)
def patch_profile(
    kind: str,
    name: str,
    patch: ProfilePatch,
    updater: ProfileUpdater = UPDATER,
    if_match: str | None = IF_MATCH,
) -> Response:
    """Merge-patch existing joints; either every change applies or none does."""
    updater.merge_patch(Kind.parse(kind), name, patch, expected_version=parse_if_match(if_match))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/profiles/{kind}/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[WRITABLE],
    operation_id="profiles_delete",
)
def delete_profile(
    kind: str,
    name: str,
    store: ProfileStore = STORE,
    if_match: str | None = IF_MATCH,
) -> Response:
    """Delete a profile file."""
    store.delete_profile(Kind.parse(kind), name, expected_version=parse_if_match(if_match))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
