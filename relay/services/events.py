"""GoCardless webhook events as typed values.

Every inbound event is parsed into a WebhookEvent whose resource_type and
action are enum members. Anything GoCardless sends that we don't model
lands on the UNKNOWN member of each enum instead of failing, so the
receiver can degrade it to an "unknown" record.

The status tables below are the whole state machine:
- ACTION_STATUS maps (resource type, action) to the local status it implies
- ALLOWED_TRANSITIONS lists, per resource type, where each status may go
- a status with no outgoing transitions is terminal
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

UNKNOWN_STATUS = "unknown"


class ResourceType(str, Enum):
    PAYMENTS = "payments"
    MANDATES = "mandates"
    SUBSCRIPTIONS = "subscriptions"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value):
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class Action(str, Enum):
    CREATED = "created"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PAID_OUT = "paid_out"
    ACTIVE = "active"
    EXPIRED = "expired"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value):
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


ACTION_STATUS = {
    ResourceType.PAYMENTS: {
        Action.CREATED: "pending",
        Action.SUBMITTED: "submitted",
        Action.CONFIRMED: "confirmed",
        Action.FAILED: "failed",
        Action.CANCELLED: "cancelled",
        Action.PAID_OUT: "paid_out",
    },
    ResourceType.MANDATES: {
        Action.CREATED: "created",
        Action.SUBMITTED: "submitted",
        Action.ACTIVE: "active",
        Action.FAILED: "failed",
        Action.CANCELLED: "cancelled",
        Action.EXPIRED: "expired",
    },
    ResourceType.SUBSCRIPTIONS: {
        Action.CREATED: "created",
        Action.ACTIVE: "active",
        Action.CANCELLED: "cancelled",
    },
}

ALLOWED_TRANSITIONS = {
    ResourceType.PAYMENTS: {
        "pending": {"submitted", "confirmed", "failed", "cancelled"},
        "submitted": {"confirmed", "failed", "cancelled"},
        "confirmed": {"paid_out", "failed"},
        "failed": {"submitted", "cancelled"},
        "paid_out": set(),
        "cancelled": set(),
    },
    ResourceType.MANDATES: {
        "created": {"submitted", "active", "failed", "cancelled", "expired"},
        "submitted": {"active", "failed", "cancelled"},
        "active": {"cancelled", "expired"},
        "failed": {"submitted", "cancelled"},
        "cancelled": set(),
        "expired": set(),
    },
    ResourceType.SUBSCRIPTIONS: {
        "created": {"active", "cancelled"},
        "active": {"cancelled"},
        "cancelled": set(),
    },
}

# Status changes the frontend wants to hear about.
NOTIFY_ON = {
    ResourceType.PAYMENTS: {"pending", "submitted", "confirmed", "failed", "cancelled"},
    ResourceType.MANDATES: {"active", "cancelled", "expired"},
}

# GoCardless puts the resource id under the singular name in event.links.
_LINK_KEYS = {
    ResourceType.PAYMENTS: "payment",
    ResourceType.MANDATES: "mandate",
    ResourceType.SUBSCRIPTIONS: "subscription",
}


@dataclass(frozen=True)
class WebhookEvent:
    id: Optional[str]
    resource_type: ResourceType
    action: Action
    raw_resource_type: str
    raw_action: str
    links: dict = field(default_factory=dict)
    details: dict = field(default_factory=dict)
    resource_metadata: dict = field(default_factory=dict)
    created_at: Optional[str] = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> "WebhookEvent":
        raw_resource_type = str(payload.get("resource_type") or "")
        raw_action = str(payload.get("action") or "")
        event_id = payload.get("id")
        return cls(
            id=str(event_id) if event_id else None,
            resource_type=ResourceType.parse(raw_resource_type),
            action=Action.parse(raw_action),
            raw_resource_type=raw_resource_type,
            raw_action=raw_action,
            links=_as_dict(payload.get("links")),
            details=_as_dict(payload.get("details")),
            resource_metadata=_as_dict(payload.get("resource_metadata")),
            created_at=payload.get("created_at"),
            raw=payload,
        )

    @property
    def resource_id(self) -> Optional[str]:
        link_key = _LINK_KEYS.get(self.resource_type)
        if link_key is None and self.raw_resource_type.endswith("s"):
            link_key = self.raw_resource_type[:-1]
        value = self.links.get(link_key) if link_key else None
        return str(value) if value else None

    @property
    def key(self) -> Optional[str]:
        """Record key: the linked resource id, else the event id."""
        return self.resource_id or self.id

    @property
    def target_status(self) -> Optional[str]:
        """Status this event implies, or None when type/action is not modelled."""
        return ACTION_STATUS.get(self.resource_type, {}).get(self.action)

    @property
    def failure_reason(self) -> Optional[str]:
        return self.details.get("cause") or self.details.get("reason_code")


def can_transition(resource_type: ResourceType, current: str, target: str) -> bool:
    if current == UNKNOWN_STATUS:
        return True
    return target in ALLOWED_TRANSITIONS.get(resource_type, {}).get(current, set())


def is_terminal(resource_type: ResourceType, status: str) -> bool:
    table = ALLOWED_TRANSITIONS.get(resource_type, {})
    return status in table and not table[status]


def should_notify(resource_type: ResourceType, status: str) -> bool:
    return status in NOTIFY_ON.get(resource_type, set())


def _as_dict(value):
    return value if isinstance(value, dict) else {}
