"""
Offline Mutation Payloads — tagged union keyed by ``action``.

  - add:    AddMutation(item)        item created while offline (id may be a client temp id)
  - update: UpdateMutation(item)     full item state after the edit (id required)
  - remove: RemoveMutation(item_id)  item pulled from the shelf
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from core.exceptions import InvalidMutationError


class ItemPayload(BaseModel):
    id: str | None = None
    name: str
    expiry: date | datetime | None = None
    quantity: int = Field(default=0, ge=0)
    reorder_point: int | None = Field(default=None, ge=0)
    location: str = ""
    removed: bool = False
    removed_at: datetime | None = None
    unit_price: float | None = None
    barcode: str | None = None


class UpdateItemPayload(ItemPayload):
    """Updates target an existing item, so the id is required."""

    id: str


class AddMutation(BaseModel):
    action: Literal["add"] = "add"
    item: ItemPayload


class UpdateMutation(BaseModel):
    action: Literal["update"] = "update"
    item: UpdateItemPayload


class RemoveMutation(BaseModel):
    action: Literal["remove"] = "remove"
    item_id: str
    removed_at: datetime | None = None


MutationPayload = Annotated[
    Union[AddMutation, UpdateMutation, RemoveMutation],
    Field(discriminator="action"),
]

_payload_adapter: TypeAdapter[MutationPayload] = TypeAdapter(MutationPayload)

ACTIONS = ("add", "update", "remove")


def parse_payload(action: str, payload: Any) -> AddMutation | UpdateMutation | RemoveMutation:
    """
    Validate ``payload`` for ``action``. Accepts a model instance or a mapping;
    for add/update a bare item mapping is wrapped automatically.
    """
    if action not in ACTIONS:
        raise InvalidMutationError(f"Unknown mutation action: {action!r}")

    if isinstance(payload, BaseModel):
        if getattr(payload, "action", None) != action:
            raise InvalidMutationError(f"Payload action {getattr(payload, 'action', None)!r} does not match {action!r}")
        return payload

    if not isinstance(payload, dict):
        raise InvalidMutationError(f"Payload for {action!r} must be a mapping")

    data = dict(payload)
    if action in ("add", "update") and "item" not in data:
        data = {"item": data}
    data["action"] = action
    try:
        return _payload_adapter.validate_python(data)
    except ValidationError as exc:
        raise InvalidMutationError(f"Invalid {action!r} payload: {exc}") from exc


def load_payload(data: dict[str, Any]) -> AddMutation | UpdateMutation | RemoveMutation:
    """Rehydrate a stored payload (already validated when it was enqueued)."""
    return _payload_adapter.validate_python(data)


@dataclass(frozen=True)
class QueuedMutation:
    """One buffered user action. Once ``synced`` it is never replayed."""

    id: uuid.UUID
    sequence: int
    action: str
    payload: AddMutation | UpdateMutation | RemoveMutation
    enqueued_at: datetime
    synced: bool = False
    synced_at: datetime | None = None
