"""
Subscription audit loop for access-bot.

Periodically re-checks every subscription-tier binding and downgrades members
whose last payment is older than the grace period. Any doubt about the payment
date means the record is skipped: wrongly stripping a paying member is worse
than missing an audit cycle.

Sweeps work from a snapshot of the store. Before acting on an overdue record
the sweep takes that email's lock and re-reads it; if a verification touched
the record in the meantime, the record is left for the next sweep.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from .config import AuditConfig
from .events import EventLog, EventType
from .models import AuditReport, EmailRecord, parse_timestamp, utc_now
from .roles import MembershipPlatform, RoleReconciler
from .store import LinkStore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def days_between(now: datetime, past: datetime) -> int:
    """Whole days elapsed from past to now."""
    return int((now - past).total_seconds() // SECONDS_PER_DAY)


class AuditScheduler:
    """Runs audit sweeps, once or on a fixed interval."""

    def __init__(
        self,
        store: LinkStore,
        reconciler: RoleReconciler,
        platform: MembershipPlatform,
        config: AuditConfig,
        events: EventLog | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.reconciler = reconciler
        self.platform = platform
        self.config = config
        self.events = events or EventLog()
        self.clock = clock

    @property
    def base_role(self) -> str:
        return self.reconciler.base_role

    async def run_audit_sweep(self) -> AuditReport:
        """Audit every subscription record once. Never raises for one bad record."""
        now = self.clock()
        report = AuditReport(started_at=now.isoformat(), dry_run=self.config.dry_run)

        self.events.emit(
            EventType.AUDIT_START,
            grace_days=self.config.grace_days,
            interval_hours=self.config.interval_hours,
            dry_run=self.config.dry_run,
        )

        records = await self.store.all()
        for record in records:
            if not record.is_subscription or not record.community_user_id:
                continue
            # Already downgraded; stays skipped until the member re-verifies
            if record.tier == self.base_role:
                continue
            report.checked += 1
            try:
                await self._audit_record(record, now, report)
            except Exception as e:
                report.errored += 1
                logger.exception(f"Audit failed for member {record.community_user_id}")
                self.events.emit(
                    EventType.AUDIT_ERROR,
                    logging.ERROR,
                    email=record.email,
                    user_id=record.community_user_id,
                    user_tag=record.display_tag,
                    error=str(e) or type(e).__name__,
                )

        report.finished_at = self.clock().isoformat()
        self.events.emit(
            EventType.AUDIT_END,
            checked=report.checked,
            skipped=report.skipped,
            overdue=report.overdue,
            downgraded=report.downgraded,
            errored=report.errored,
        )
        return report

    async def _audit_record(
        self, record: EmailRecord, now: datetime, report: AuditReport
    ) -> None:
        ctx = {
            "email": record.email,
            "user_id": record.community_user_id,
            "user_tag": record.display_tag,
        }

        if not record.last_paid_at:
            report.skipped += 1
            self.events.emit(
                EventType.AUDIT_SKIP_MISSING_LAST_PAID_AT, logging.WARNING, **ctx
            )
            return

        last_paid = parse_timestamp(record.last_paid_at)
        if last_paid is None:
            report.skipped += 1
            self.events.emit(
                EventType.AUDIT_SKIP_INVALID_LAST_PAID_AT,
                logging.WARNING,
                last_paid_at=record.last_paid_at,
                **ctx,
            )
            return

        days_since_paid = days_between(now, last_paid)
        if days_since_paid < self.config.grace_days:
            report.skipped += 1
            return

        member = await self.platform.fetch_member(record.community_user_id)
        if member is None:
            report.skipped += 1
            self.events.emit(
                EventType.AUDIT_MEMBER_NOT_FOUND,
                logging.WARNING,
                days_since_paid=days_since_paid,
                last_paid_at=record.last_paid_at,
                **ctx,
            )
            return

        async with self.store.email_lock(record.email):
            # A verification may have refreshed the record since the snapshot
            current = await self.store.get(record.email)
            if not self._unchanged(record, current):
                self._skip_changed(record, current, report, ctx)
                return

            report.overdue += 1
            self.events.emit(
                EventType.AUDIT_OVERDUE_DETECTED,
                logging.WARNING,
                days_since_paid=days_since_paid,
                last_paid_at=record.last_paid_at,
                dry_run=self.config.dry_run,
                **ctx,
            )
            if self.config.dry_run:
                return

            await self.reconciler.downgrade_to_base(member)

            stamp = self.clock().isoformat()
            async with self.store.transaction() as records:
                current = records.get(record.email)
                written = self._unchanged(record, current)
                if written:
                    current.tier = self.base_role
                    current.last_audit_at = stamp
                    current.last_audit_reason = f"overdue_{days_since_paid}d"
                    current.updated_at = stamp

            if not written:
                self._skip_changed(record, current, report, ctx)
                return

        report.downgraded += 1
        self.events.emit(
            EventType.AUDIT_DOWNGRADE_SUCCESS,
            days_since_paid=days_since_paid,
            last_paid_at=record.last_paid_at,
            granted_role=self.base_role,
            **ctx,
        )

    def _unchanged(self, snapshot: EmailRecord, current: EmailRecord | None) -> bool:
        """True if current is still the overdue binding the sweep started from."""
        return (
            current is not None
            and current.community_user_id == snapshot.community_user_id
            and current.is_subscription
            and current.tier != self.base_role
            and current.last_paid_at == snapshot.last_paid_at
            and current.updated_at == snapshot.updated_at
        )

    def _skip_changed(
        self,
        snapshot: EmailRecord,
        current: EmailRecord | None,
        report: AuditReport,
        ctx: dict,
    ) -> None:
        report.skipped += 1
        self.events.emit(
            EventType.AUDIT_SKIP_RECORD_CHANGED,
            logging.WARNING,
            last_paid_at=snapshot.last_paid_at,
            current_last_paid_at=current.last_paid_at if current else None,
            current_tier=current.tier if current else None,
            **ctx,
        )

    async def run_forever(self) -> None:
        """Sweep after the startup delay, then every interval."""
        interval_seconds = self.config.interval_hours * 60 * 60

        await asyncio.sleep(self.config.startup_delay_seconds)
        while True:
            try:
                await self.run_audit_sweep()
            except Exception:
                logger.exception("Audit sweep failed")
            await asyncio.sleep(interval_seconds)

    def start(self) -> asyncio.Task | None:
        """Schedule the audit loop on the running event loop."""
        if not self.config.enabled:
            self.events.emit(EventType.AUDIT_DISABLED)
            return None

        self.events.emit(
            EventType.AUDIT_LOOP_STARTED,
            interval_hours=self.config.interval_hours,
            grace_days=self.config.grace_days,
            dry_run=self.config.dry_run,
        )
        return asyncio.create_task(self.run_forever(), name="access-bot-audit")
