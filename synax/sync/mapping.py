"""
Entity-to-Request Mapping

Translates queued items into concrete HTTP requests against the Synax API.
Pure functions with no state: a mutation record is first parsed into one of
the typed mutation variants below via a fixed (entity type, action) table,
and the variant then builds its request.

    checklistItem/update  PUT  /checklists/items/{id}
    asset/create          POST /assets/rooms/{data.roomId}
    asset/update          PUT  /assets/{id}
    issue/create          POST /issues
    issue/update          PUT  /issues/{id}
    room/update           PUT  /rooms/{id}

Photos go to /checklists/items/{id}/photos or /issues/{id}/photos.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Union
from urllib.parse import quote

from synax.exceptions import InvalidPayloadError, UnmappedMutationError
from synax.store.models import EntityType, MutationAction, MutationRecord, PendingImage


def _segment(value: str) -> str:
    """Escape an identifier for use as one path segment."""
    return quote(str(value), safe="")


@dataclass(frozen=True)
class ApiRequest:
    """A JSON request against the API, path relative to the base URL."""

    method: str
    path: str
    body: dict[str, Any] | None = None


@dataclass(frozen=True)
class UploadRequest:
    """A multipart file upload against the API."""

    path: str
    filename: str
    content: bytes
    field_name: str = "file"
    method: str = "POST"


# ============================================================================
# TYPED MUTATIONS
# ============================================================================


@dataclass(frozen=True)
class ChecklistItemUpdate:
    """Tick/untick or annotate a checklist item."""

    item_id: str
    changes: dict[str, Any] = field(default_factory=dict)

    def to_request(self) -> ApiRequest:
        return ApiRequest("PUT", f"/checklists/items/{_segment(self.item_id)}", self.changes)


@dataclass(frozen=True)
class AssetCreate:
    """Register a new asset in a room."""

    room_id: str
    fields: dict[str, Any] = field(default_factory=dict)

    def to_request(self) -> ApiRequest:
        return ApiRequest("POST", f"/assets/rooms/{_segment(self.room_id)}", self.fields)


@dataclass(frozen=True)
class AssetUpdate:
    """Change an existing asset."""

    asset_id: str
    changes: dict[str, Any] = field(default_factory=dict)

    def to_request(self) -> ApiRequest:
        return ApiRequest("PUT", f"/assets/{_segment(self.asset_id)}", self.changes)


@dataclass(frozen=True)
class IssueCreate:
    """Raise a new issue."""

    fields: dict[str, Any] = field(default_factory=dict)

    def to_request(self) -> ApiRequest:
        return ApiRequest("POST", "/issues", self.fields)


@dataclass(frozen=True)
class IssueUpdate:
    """Change an existing issue."""

    issue_id: str
    changes: dict[str, Any] = field(default_factory=dict)

    def to_request(self) -> ApiRequest:
        return ApiRequest("PUT", f"/issues/{_segment(self.issue_id)}", self.changes)


@dataclass(frozen=True)
class RoomUpdate:
    """Change an existing room."""

    room_id: str
    changes: dict[str, Any] = field(default_factory=dict)

    def to_request(self) -> ApiRequest:
        return ApiRequest("PUT", f"/rooms/{_segment(self.room_id)}", self.changes)


Mutation = Union[
    ChecklistItemUpdate,
    AssetCreate,
    AssetUpdate,
    IssueCreate,
    IssueUpdate,
    RoomUpdate,
]


def _asset_create(entity_id: str, data: dict[str, Any]) -> AssetCreate:
    room_id = data.get("roomId")
    if not room_id:
        raise InvalidPayloadError("asset/create requires roomId in data", "roomId")
    return AssetCreate(room_id=str(room_id), fields=data)


_MUTATIONS: dict[tuple[EntityType, MutationAction], Callable[[str, dict[str, Any]], Mutation]] = {
    (EntityType.CHECKLIST_ITEM, MutationAction.UPDATE): lambda eid, data: ChecklistItemUpdate(eid, data),
    (EntityType.ASSET, MutationAction.CREATE): _asset_create,
    (EntityType.ASSET, MutationAction.UPDATE): lambda eid, data: AssetUpdate(eid, data),
    (EntityType.ISSUE, MutationAction.CREATE): lambda eid, data: IssueCreate(data),
    (EntityType.ISSUE, MutationAction.UPDATE): lambda eid, data: IssueUpdate(eid, data),
    (EntityType.ROOM, MutationAction.UPDATE): lambda eid, data: RoomUpdate(eid, data),
}

# Entity types with at least one route; the rest are unknown to the replayer
_ROUTED_TYPES = frozenset(entity for entity, _ in _MUTATIONS)

# Entity types that carry photos, and the collection each uploads into
_PHOTO_COLLECTIONS: dict[EntityType, str] = {
    EntityType.CHECKLIST_ITEM: "/checklists/items",
    EntityType.ISSUE: "/issues",
}


def parse_mutation(
    entity_type: str,
    action: str,
    entity_id: str,
    data: dict[str, Any],
) -> Mutation:
    """
    Parse a queued change into its typed mutation.

    Raises:
        UnmappedMutationError: If the entity type has no routes at all
            ("Unknown entity type") or none for the action ("No sync handler")
        InvalidPayloadError: If data lacks a field the request needs
    """
    try:
        entity = EntityType(entity_type)
    except ValueError:
        entity = None
    if entity not in _ROUTED_TYPES:
        raise UnmappedMutationError(
            f"Unknown entity type: {entity_type}",
            entity_type=str(entity_type),
            action=str(action),
        )

    try:
        verb = MutationAction(action)
    except ValueError:
        verb = None

    builder = _MUTATIONS.get((entity, verb)) if verb is not None else None
    if builder is None:
        raise UnmappedMutationError(
            f"No sync handler for {entity_type}/{action}",
            entity_type=str(entity_type),
            action=str(action),
        )

    return builder(entity_id, dict(data))


def request_for_mutation(record: MutationRecord) -> ApiRequest:
    """Build the HTTP request that replays a mutation record."""
    mutation = parse_mutation(record.entity_type, record.action, record.entity_id, record.data)
    return mutation.to_request()


def request_for_image(image: PendingImage) -> UploadRequest:
    """
    Build the upload request for a pending image.

    Raises:
        UnmappedMutationError: If the entity type does not accept photos
    """
    try:
        collection = _PHOTO_COLLECTIONS[EntityType(image.entity_type)]
    except (ValueError, KeyError):
        raise UnmappedMutationError(
            f"Unknown image entity type: {image.entity_type}",
            entity_type=str(image.entity_type),
        )

    return UploadRequest(
        path=f"{collection}/{_segment(image.entity_id)}/photos",
        filename=image.filename,
        content=image.blob,
    )


def is_mapped(entity_type: str, action: str) -> bool:
    """Check whether a mutation of this entity type/action can be replayed."""
    try:
        return (EntityType(entity_type), MutationAction(action)) in _MUTATIONS
    except ValueError:
        return False
