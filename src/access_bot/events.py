"""
Structured event trail for access-bot.

Every grant, denial and audit action is emitted as one event: a log line with
a JSON payload, plus an entry in a bounded in-memory history that admin
tooling and tests can read back.
"""

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .models import utc_now

logger = logging.getLogger("access_bot.events")


class EventType(str, Enum):
    """Event names emitted by the workflow and the audit loop."""

    # Verification
    VERIFY_REQUESTED = "verify_requested"
    VERIFY_INVALID_EMAIL = "verify_invalid_email"
    VERIFY_EMAIL_ALREADY_LINKED = "verify_email_already_linked"
    SHOPIFY_LINE_ITEMS = "shopify_line_items"
    VERIFY_NO_PAID_ORDERS = "verify_no_paid_orders"
    TIER_MATCHED = "tier_matched"
    VERIFY_PAID_BUT_NO_TIER_MATCH = "verify_paid_but_no_tier_match"
    VERIFY_ROLE_CONFIG_ERROR = "verify_role_config_error"
    VERIFY_SUCCESS = "verify_success"
    VERIFY_ERROR = "verify_error"

    # Admin
    ADMIN_LOOKUP = "admin_lookup"
    ADMIN_STATUS = "admin_status"
    ADMIN_STATUS_ERROR = "admin_status_error"

    # Audit
    AUDIT_DISABLED = "audit_disabled"
    AUDIT_LOOP_STARTED = "audit_loop_started"
    AUDIT_START = "audit_start"
    AUDIT_SKIP_MISSING_LAST_PAID_AT = "audit_skip_missing_lastPaidAt"
    AUDIT_SKIP_INVALID_LAST_PAID_AT = "audit_skip_invalid_lastPaidAt"
    AUDIT_MEMBER_NOT_FOUND = "audit_member_not_found"
    AUDIT_SKIP_RECORD_CHANGED = "audit_skip_record_changed"
    AUDIT_OVERDUE_DETECTED = "audit_overdue_detected"
    AUDIT_DOWNGRADE_SUCCESS = "audit_downgrade_success"
    AUDIT_ERROR = "audit_error"
    AUDIT_END = "audit_end"


def mask_email(email: str) -> str:
    """Mask an email for logs, e.g. john@example.com -> jo***@ex***.com."""
    if not email or "@" not in email:
        return email or ""
    user, domain = email.split("@", 1)
    safe_user = f"{user[:1]}*" if len(user) <= 2 else f"{user[:2]}***"
    parts = domain.split(".")
    first = parts[0]
    safe_domain = f"{first[:2]}***" if first else "***"
    tld = ".".join(parts[1:])
    return f"{safe_user}@{safe_domain}" + (f".{tld}" if tld else "")


@dataclass
class Event:
    """A single emitted event."""

    event_type: EventType
    level: int
    ts: str
    payload: dict[str, Any] = field(default_factory=dict)


class EventLog:
    """Emits events to the log and keeps the most recent ones in memory."""

    def __init__(self, mask_emails: bool = False, history_size: int = 200):
        self.mask_emails = mask_emails
        self._history: deque[Event] = deque(maxlen=history_size)

    def emit(
        self,
        event_type: EventType,
        level: int = logging.INFO,
        **payload: Any,
    ) -> Event:
        """Record one event."""
        if self.mask_emails and payload.get("email"):
            payload["email"] = mask_email(payload["email"])

        event = Event(
            event_type=event_type,
            level=level,
            ts=utc_now().isoformat(),
            payload=payload,
        )
        self._history.append(event)

        logger.log(
            level,
            f"{event_type.value} {json.dumps(payload, default=str, sort_keys=True)}",
        )
        return event

    def recent(self, event_type: EventType | None = None) -> list[Event]:
        """Return recent events, oldest first, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.event_type == event_type]

    def types(self) -> list[EventType]:
        """Event types in emission order."""
        return [e.event_type for e in self._history]
