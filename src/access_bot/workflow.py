"""
Verification workflow for access-bot.

A member claims a checkout email; we look up their paid Shopify orders,
resolve the highest tier, reconcile their guild roles, and remember the
email -> member binding for the subscription audit.

Each request ends in exactly one VerificationOutcome, and every step emits one
event so any grant or denial can be traced afterwards.
"""

import logging
from typing import Any, Protocol

from .errors import GatewayError, RoleConfigError
from .events import EventLog, EventType
from .models import (
    EmailRecord,
    Member,
    PurchaseLineItem,
    StatusReport,
    VerificationOutcome,
    VerificationResult,
    is_valid_email,
    normalize_email,
    utc_now,
)
from .roles import RoleReconciler
from .store import LinkStore
from .tiers import TierResolver

logger = logging.getLogger(__name__)

# Line items included in event payloads
EVENT_ITEM_LIMIT = 3


class CommerceGateway(Protocol):
    """Source of paid purchase records."""

    async def fetch_paid_line_items(self, email: str) -> list[PurchaseLineItem]: ...


class Verifier:
    """Runs verification requests and admin lookups."""

    def __init__(
        self,
        resolver: TierResolver,
        reconciler: RoleReconciler,
        gateway: CommerceGateway,
        store: LinkStore,
        events: EventLog | None = None,
    ):
        self.resolver = resolver
        self.reconciler = reconciler
        self.gateway = gateway
        self.store = store
        self.events = events or EventLog()

    @staticmethod
    def _context(email: str, member: Member) -> dict[str, Any]:
        return {"email": email, "user_id": member.id, "user_tag": member.tag}

    def _failed(
        self, email: str, member: Member, error: Exception, item_count: int = 0
    ) -> VerificationResult:
        if isinstance(error, GatewayError):
            logger.warning(f"Commerce lookup failed for member {member.id}: {error}")
        else:
            logger.error(f"Verification failed for member {member.id}", exc_info=error)
        self.events.emit(
            EventType.VERIFY_ERROR,
            logging.ERROR,
            error=str(error) or type(error).__name__,
            **self._context(email, member),
        )
        return VerificationResult(
            outcome=VerificationOutcome.VERIFICATION_FAILED,
            email=email,
            item_count=item_count,
            error=str(error) or type(error).__name__,
        )

    async def verify(self, email: str, member: Member) -> VerificationResult:
        """
        Verify a purchase email for a member and grant their tier role.

        Requests for the same email run one at a time, so a conflict is
        always detected before any role is granted.

        Safe to repeat: re-verifying an email already bound to the same member
        re-resolves the tier and re-reconciles roles, updating only the record.
        """
        email = normalize_email(email)
        ctx = self._context(email, member)
        self.events.emit(EventType.VERIFY_REQUESTED, **ctx)

        if not is_valid_email(email):
            self.events.emit(EventType.VERIFY_INVALID_EMAIL, logging.WARNING, **ctx)
            return VerificationResult(VerificationOutcome.INVALID_EMAIL, email)

        async with self.store.email_lock(email):
            return await self._verify_locked(email, member, ctx)

    async def _verify_locked(
        self, email: str, member: Member, ctx: dict[str, Any]
    ) -> VerificationResult:
        """Binding check through persist, run while holding the email lock."""
        existing = await self.store.get(email)
        if existing and existing.community_user_id != member.id:
            self.events.emit(
                EventType.VERIFY_EMAIL_ALREADY_LINKED,
                logging.WARNING,
                existing_user_id=existing.community_user_id,
                **ctx,
            )
            return VerificationResult(VerificationOutcome.ALREADY_LINKED_CONFLICT, email)

        try:
            items = await self.gateway.fetch_paid_line_items(email)
        except Exception as e:
            return self._failed(email, member, e)

        titles = [li.title for li in items if li.title]
        self.events.emit(
            EventType.SHOPIFY_LINE_ITEMS,
            count=len(items),
            subscription=any(li.is_subscription for li in items),
            items=[li.to_dict() for li in items[:EVENT_ITEM_LIMIT]],
            **ctx,
        )

        if not titles:
            self.events.emit(EventType.VERIFY_NO_PAID_ORDERS, logging.WARNING, **ctx)
            return VerificationResult(VerificationOutcome.NO_PAID_ORDER, email)

        tier = self.resolver.resolve(titles)
        self.events.emit(
            EventType.TIER_MATCHED,
            matched_role=tier.role_name if tier else None,
            **ctx,
        )

        if tier is None:
            self.events.emit(
                EventType.VERIFY_PAID_BUT_NO_TIER_MATCH,
                logging.WARNING,
                titles=titles,
                **ctx,
            )
            return VerificationResult(
                VerificationOutcome.PAID_NO_TIER_MATCH, email, item_count=len(items)
            )

        is_subscription = self.resolver.is_subscription_for(items, tier)
        last_paid = self.resolver.last_paid_at_for(items, tier)
        last_paid_at = last_paid.isoformat() if last_paid else None

        try:
            await self.reconciler.grant_exclusive(member, tier.role_name)
        except RoleConfigError as e:
            self.events.emit(
                EventType.VERIFY_ROLE_CONFIG_ERROR,
                logging.ERROR,
                role=e.role_name,
                error=str(e),
                **ctx,
            )
            return VerificationResult(
                VerificationOutcome.ROLE_CONFIG_ERROR,
                email,
                tier=tier.role_name,
                item_count=len(items),
                error=str(e),
            )
        except Exception as e:
            return self._failed(email, member, e, item_count=len(items))

        try:
            conflict = await self._save_binding(
                email, member, tier.role_name, is_subscription, last_paid_at
            )
        except Exception as e:
            return self._failed(email, member, e, item_count=len(items))

        if conflict is not None:
            # Bound outside the email lock, e.g. by a direct store write
            self.events.emit(
                EventType.VERIFY_EMAIL_ALREADY_LINKED,
                logging.WARNING,
                existing_user_id=conflict.community_user_id,
                **ctx,
            )
            return VerificationResult(VerificationOutcome.ALREADY_LINKED_CONFLICT, email)

        self.events.emit(
            EventType.VERIFY_SUCCESS,
            logging.INFO if last_paid_at else logging.WARNING,
            granted_role=tier.role_name,
            subscription=is_subscription,
            last_paid_at=last_paid_at or "missing",
            **ctx,
        )
        return VerificationResult(
            VerificationOutcome.VERIFIED,
            email,
            tier=tier.role_name,
            is_subscription=is_subscription,
            last_paid_at=last_paid_at,
            item_count=len(items),
        )

    async def _save_binding(
        self,
        email: str,
        member: Member,
        tier: str,
        is_subscription: bool,
        last_paid_at: str | None,
    ) -> EmailRecord | None:
        """
        Write the binding, re-checking ownership under the store lock.

        Returns the conflicting record if the email now belongs to someone else.
        """
        async with self.store.transaction() as records:
            current = records.get(email)
            if current and current.community_user_id != member.id:
                return current

            records[email] = EmailRecord(
                email=email,
                community_user_id=member.id,
                display_tag=member.tag,
                tier=tier,
                is_subscription=is_subscription,
                last_paid_at=last_paid_at,
                updated_at=utc_now().isoformat(),
                last_audit_at=current.last_audit_at if current else None,
                last_audit_reason=current.last_audit_reason if current else None,
            )
        return None

    # -------------------------------------------------------------------------
    # Admin
    # -------------------------------------------------------------------------

    async def lookup(self, email: str, requested_by: Member | None = None) -> EmailRecord | None:
        """Return the stored binding for an email."""
        email = normalize_email(email)
        record = await self.store.get(email)
        self.events.emit(
            EventType.ADMIN_LOOKUP,
            email=email,
            user_id=requested_by.id if requested_by else None,
            found=record is not None,
        )
        return record

    async def status(self, email: str, requested_by: Member | None = None) -> StatusReport:
        """
        Report what Shopify says about an email without changing anything.

        Raises GatewayError if the lookup fails.
        """
        email = normalize_email(email)
        user_id = requested_by.id if requested_by else None
        try:
            items = await self.gateway.fetch_paid_line_items(email)
        except Exception as e:
            self.events.emit(
                EventType.ADMIN_STATUS_ERROR,
                logging.ERROR,
                email=email,
                user_id=user_id,
                error=str(e),
            )
            raise

        tier = self.resolver.resolve([li.title for li in items if li.title])
        report = StatusReport(
            email=email,
            items=items,
            matched_role=tier.role_name if tier else None,
            any_subscription=any(li.is_subscription for li in items),
        )
        self.events.emit(
            EventType.ADMIN_STATUS,
            email=email,
            user_id=user_id,
            count=report.item_count,
            matched_role=report.matched_role,
            subscription=report.any_subscription,
        )
        return report
