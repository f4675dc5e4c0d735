"""
Data models for access-bot.
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str | None) -> str:
    """Trim and lower-case an email address."""
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    """Check that a normalized email looks like local@domain.tld."""
    return bool(EMAIL_PATTERN.match(email))


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Parse an ISO-8601 timestamp.

    Naive timestamps are treated as UTC. Returns None for missing or
    unparseable values rather than guessing.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class VerificationOutcome(str, Enum):
    """Terminal states of a verification request."""

    INVALID_EMAIL = "invalid_email"
    ALREADY_LINKED_CONFLICT = "already_linked_conflict"
    NO_PAID_ORDER = "no_paid_order"
    PAID_NO_TIER_MATCH = "paid_no_tier_match"
    ROLE_CONFIG_ERROR = "role_config_error"
    VERIFICATION_FAILED = "verification_failed"
    VERIFIED = "verified"


# One stable message per outcome, for whatever renders replies to users
OUTCOME_MESSAGES: dict[VerificationOutcome, str] = {
    VerificationOutcome.INVALID_EMAIL: (
        "That doesn't look like a real email. Use the exact email from checkout."
    ),
    VerificationOutcome.ALREADY_LINKED_CONFLICT: (
        "That email is already linked to another account. Open a support ticket."
    ),
    VerificationOutcome.NO_PAID_ORDER: (
        "No paid order was found for that email."
    ),
    VerificationOutcome.PAID_NO_TIER_MATCH: (
        "A paid order was found, but it could not be matched to an access tier."
    ),
    VerificationOutcome.ROLE_CONFIG_ERROR: (
        "Access roles are misconfigured on the server. Staff have been notified."
    ),
    VerificationOutcome.VERIFICATION_FAILED: (
        "Something went wrong on our side. Please try again in a minute."
    ),
    VerificationOutcome.VERIFIED: "Verification complete. Access granted.",
}


@dataclass(frozen=True)
class Role:
    """A guild role."""

    id: str
    name: str


@dataclass
class Member:
    """A live guild member and the role IDs they currently hold."""

    id: str
    tag: str = ""
    role_ids: set[str] = field(default_factory=set)

    def has_role(self, role: Role) -> bool:
        return role.id in self.role_ids


@dataclass(frozen=True)
class PurchaseLineItem:
    """A paid line item returned by the commerce gateway."""

    title: str
    is_subscription: bool = False
    subscription_plan_name: str | None = None
    paid_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {
            "title": self.title,
            "isSubscription": self.is_subscription,
        }
        if self.subscription_plan_name:
            result["subscriptionPlanName"] = self.subscription_plan_name
        if self.paid_at:
            result["paidAt"] = self.paid_at
        return result


@dataclass
class EmailRecord:
    """
    A verified email bound to exactly one Discord member.

    Persisted with camelCase keys so existing email-map.json files load as-is.
    """

    email: str
    community_user_id: str
    display_tag: str = ""
    tier: str | None = None
    is_subscription: bool = False
    last_paid_at: str | None = None
    updated_at: str | None = None
    last_audit_at: str | None = None
    last_audit_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted dictionary shape (email is the map key)."""
        return {
            "discordUserId": self.community_user_id,
            "userTag": self.display_tag,
            "tier": self.tier,
            "isSubscription": self.is_subscription,
            "lastPaidAt": self.last_paid_at,
            "updatedAt": self.updated_at,
            "lastAuditAt": self.last_audit_at,
            "lastAuditReason": self.last_audit_reason,
        }

    @classmethod
    def from_dict(cls, email: str, data: dict[str, Any]) -> "EmailRecord":
        """Create from the persisted dictionary shape."""
        return cls(
            email=normalize_email(email),
            community_user_id=str(data.get("discordUserId") or ""),
            display_tag=data.get("userTag") or "",
            tier=data.get("tier"),
            is_subscription=data.get("isSubscription") is True,
            last_paid_at=data.get("lastPaidAt"),
            updated_at=data.get("updatedAt"),
            last_audit_at=data.get("lastAuditAt"),
            last_audit_reason=data.get("lastAuditReason"),
        )


@dataclass
class VerificationResult:
    """What a verification request ended in, plus the facts behind it."""

    outcome: VerificationOutcome
    email: str
    tier: str | None = None
    is_subscription: bool = False
    last_paid_at: str | None = None
    item_count: int = 0
    error: str | None = None

    @property
    def message(self) -> str:
        return OUTCOME_MESSAGES[self.outcome]

    @property
    def ok(self) -> bool:
        return self.outcome == VerificationOutcome.VERIFIED


@dataclass
class StatusReport:
    """Admin view of what the commerce system says about an email."""

    email: str
    items: list[PurchaseLineItem]
    matched_role: str | None
    any_subscription: bool

    @property
    def item_count(self) -> int:
        return len(self.items)


@dataclass
class AuditReport:
    """Counts from one audit sweep."""

    started_at: str
    finished_at: str | None = None
    checked: int = 0
    skipped: int = 0
    overdue: int = 0
    downgraded: int = 0
    errored: int = 0
    dry_run: bool = False
