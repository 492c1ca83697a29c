"""
Compliance Engine Types

Items and audit entries are borrowed read-only from the host on every tick.
Everything else here is derived per tick and never persisted by the engine.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from core.clock import resolve_timezone
from core.exceptions import ConfigurationError


class LifecycleState(str, Enum):
    SAFE = "SAFE"
    WARNING = "WARNING"
    EXPIRED = "EXPIRED"


class AlertType(str, Enum):
    EXPIRED = "expired"
    EXPIRING = "expiring"
    LOW_STOCK = "low_stock"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SLAStatus(str, Enum):
    RESOLVED = "resolved"
    PENDING = "pending"


class RiskBand(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


def _first(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


_TRUE_STRINGS = {"true", "1", "yes", "y"}
_FALSE_STRINGS = {"false", "0", "no", "n", ""}


def _flag(value: Any) -> bool:
    """Read a host boolean. Strings like "false" are parsed, not truth-tested."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"not a boolean: {value!r}")


# ─── Borrowed Host Data ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Item:
    """A tracked unit of stock. ``expiry`` is kept raw; the classifier parses it."""

    id: str
    name: str = ""
    expiry: date | datetime | str | None = None
    quantity: int = 0
    reorder_point: int | None = None
    location: str = ""
    removed: bool = False
    removed_at: datetime | str | None = None
    unit_price: float | None = None

    @property
    def active(self) -> bool:
        return not self.removed

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Item:
        """Build from a host row, accepting camelCase or snake_case keys."""
        item_id = _first(record, "id", "item_id", "itemId")
        if item_id is None:
            raise ValueError("item record has no id")
        reorder = _first(record, "reorder_point", "reorderPoint")
        price = _first(record, "unit_price", "price", "cost")
        return cls(
            id=str(item_id),
            name=str(_first(record, "name", default="")),
            expiry=_first(record, "expiry", "expiry_date", "expiryDate"),
            quantity=int(_first(record, "quantity", default=0)),
            reorder_point=int(reorder) if reorder is not None else None,
            location=str(_first(record, "location", default="")),
            removed=_flag(_first(record, "removed", default=False)),
            removed_at=_first(record, "removed_at", "removedAt"),
            unit_price=float(price) if price is not None else None,
        )


@dataclass(frozen=True)
class AuditEntry:
    item_id: str
    action: str
    timestamp: datetime | str
    user_name: str | None = None
    location: str | None = None
    photo: str | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> AuditEntry:
        return cls(
            item_id=str(_first(record, "item_id", "itemId")),
            action=str(_first(record, "action", default="")),
            timestamp=_first(record, "timestamp", "created_at"),
            user_name=_first(record, "user_name", "userName"),
            location=_first(record, "location"),
            photo=_first(record, "photo"),
        )


@dataclass(frozen=True)
class EngineSettings:
    """Per-account settings the host returns from ``get_settings()`` on each tick."""

    warning_days: int = 3
    timezone: str = "UTC"
    sla_threshold_minutes: int = 30
    default_location: str = ""

    def validate(self) -> EngineSettings:
        resolve_timezone(self.timezone)
        if self.warning_days < 0:
            raise ConfigurationError(f"warning_days must not be negative, got {self.warning_days}")
        if self.sla_threshold_minutes < 0:
            raise ConfigurationError(f"sla_threshold_minutes must not be negative, got {self.sla_threshold_minutes}")
        return self

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> EngineSettings:
        defaults = cls()
        return cls(
            warning_days=int(_first(raw, "warning_days", "warningDays", default=defaults.warning_days)),
            timezone=str(_first(raw, "timezone", default=defaults.timezone)),
            sla_threshold_minutes=int(
                _first(raw, "sla_threshold_minutes", "slaThresholdMinutes", default=defaults.sla_threshold_minutes)
            ),
            default_location=str(_first(raw, "default_location", "defaultLocation", default="")),
        )

    @classmethod
    def from_app_settings(cls, settings) -> EngineSettings:
        return cls(
            warning_days=settings.warning_days,
            timezone=settings.default_timezone,
            sla_threshold_minutes=settings.sla_threshold_minutes,
            default_location=settings.default_location,
        )


# ─── Derived Per Tick ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ClassificationResult:
    item_id: str
    days_until_expiry: int
    state: LifecycleState


@dataclass(frozen=True)
class Alert:
    type: AlertType
    priority: Priority
    item_id: str
    days_until: int | None
    message: str
    generated_at: datetime
    item_name: str = ""
    location: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "priority": self.priority.value,
            "item_id": self.item_id,
            "days_until": self.days_until,
            "message": self.message,
            "generated_at": self.generated_at.isoformat(),
            "item_name": self.item_name,
            "location": self.location,
        }


@dataclass(frozen=True)
class SLAViolation:
    item_id: str
    expired_at: datetime
    removed_at: datetime | None
    delay_minutes: int
    status: SLAStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "expired_at": self.expired_at.isoformat(),
            "removed_at": self.removed_at.isoformat() if self.removed_at else None,
            "delay_minutes": self.delay_minutes,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class RiskScoreSnapshot:
    score: int
    band: RiskBand
    expired_ratio: float
    warning_ratio: float
    total_items: int
    expired_count: int = 0
    warning_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["band"] = self.band.value
        return payload


@dataclass
class ResultBundle:
    """Everything one tick produced. Handed to the host's ``on_result``."""

    classifications: list[ClassificationResult]
    alerts: list[Alert]
    sla_violations: list[SLAViolation]
    risk_score: RiskScoreSnapshot
    timestamp: datetime
    timezone: str = "UTC"
    skipped_count: int = 0
    skipped_item_ids: list[str] = field(default_factory=list)
    locations: dict[str, dict[str, list[str]]] = field(default_factory=dict)

    @property
    def expired_alerts(self) -> list[Alert]:
        return [a for a in self.alerts if a.type == AlertType.EXPIRED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "timezone": self.timezone,
            "classifications": [
                {"item_id": c.item_id, "days_until_expiry": c.days_until_expiry, "state": c.state.value}
                for c in self.classifications
            ],
            "alerts": [a.to_dict() for a in self.alerts],
            "sla_violations": [v.to_dict() for v in self.sla_violations],
            "risk_score": self.risk_score.to_dict(),
            "skipped_count": self.skipped_count,
            "skipped_item_ids": list(self.skipped_item_ids),
            "locations": self.locations,
        }
