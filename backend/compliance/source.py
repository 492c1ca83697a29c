"""Host-side collaborators the engine reads from on every tick."""

from __future__ import annotations

import inspect
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from compliance.models import AuditEntry, EngineSettings, Item
from compliance.sla import REMOVAL_ACTION


class ComplianceSource(Protocol):
    """
    Read view supplied by the host. Each method may be a plain function or a
    coroutine function; the engine awaits whatever comes back.
    """

    def get_items(self) -> Iterable[Item | Mapping[str, Any]]: ...

    def get_settings(self) -> EngineSettings | Mapping[str, Any]: ...

    def get_removal_audit_entries(self, item_id: str | None = None) -> Iterable[AuditEntry | Mapping[str, Any]]: ...


async def resolve(value):
    if inspect.isawaitable(value):
        return await value
    return value


def coerce_settings(raw: EngineSettings | Mapping[str, Any] | None) -> EngineSettings:
    if raw is None:
        return EngineSettings()
    if isinstance(raw, EngineSettings):
        return raw
    return EngineSettings.from_mapping(raw)


class StaticSource:
    """Fixed items/settings/audit trail, for hosts that hand the engine a snapshot."""

    def __init__(
        self,
        items: Iterable[Item | Mapping[str, Any]],
        settings: EngineSettings | Mapping[str, Any] | None = None,
        audit_entries: Iterable[AuditEntry | Mapping[str, Any]] = (),
    ):
        self.items = list(items)
        self.settings = coerce_settings(settings)
        self.audit_entries = list(audit_entries)

    def get_items(self):
        return list(self.items)

    def get_settings(self):
        return self.settings

    def get_removal_audit_entries(self, item_id: str | None = None):
        entries = []
        for entry in self.audit_entries:
            if not isinstance(entry, AuditEntry):
                entry = AuditEntry.from_record(entry)
            if entry.action != REMOVAL_ACTION:
                continue
            if item_id is not None and entry.item_id != item_id:
                continue
            entries.append(entry)
        return entries
