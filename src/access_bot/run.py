"""
CLI runner for access-bot.

Usage:
    python -m access_bot.run [OPTIONS]

    # Run one subscription audit sweep and exit
    python -m access_bot.run --audit-once

    # Run the audit loop as a daemon
    python -m access_bot.run --daemon

    # Verify a purchase email for a guild member
    python -m access_bot.run --verify buyer@example.com --member-id 123456789
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from .audit import AuditScheduler
from .config import BotConfig
from .discord_api import DiscordPlatform
from .errors import AccessBotError
from .events import EventLog
from .roles import RoleReconciler
from .shopify import ShopifyGateway
from .store import LinkStore
from .tiers import TierResolver
from .workflow import Verifier

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("access-bot")


@dataclass
class Services:
    """Everything wired together from one config."""

    config: BotConfig
    events: EventLog
    store: LinkStore
    platform: DiscordPlatform
    verifier: Verifier
    auditor: AuditScheduler


def build_services(config: BotConfig) -> Services:
    """Construct the bot's components from configuration."""
    events = EventLog(
        mask_emails=config.logging.mask_emails,
        history_size=config.logging.history_size,
    )
    store = LinkStore(config.store_path)
    platform = DiscordPlatform.from_config(config.discord)
    resolver = TierResolver.from_config(config.tiers)
    reconciler = RoleReconciler(platform, config.base_role, resolver.role_names)
    gateway = ShopifyGateway.from_config(config.shopify)

    return Services(
        config=config,
        events=events,
        store=store,
        platform=platform,
        verifier=Verifier(resolver, reconciler, gateway, store, events),
        auditor=AuditScheduler(store, reconciler, platform, config.audit, events),
    )


async def audit_once(services: Services) -> int:
    """Run one sweep. Returns the number of records that errored."""
    report = await services.auditor.run_audit_sweep()
    logger.info(
        f"Audit complete: {report.checked} checked, {report.overdue} overdue, "
        f"{report.downgraded} downgraded, {report.errored} errors"
    )
    return report.errored


async def run_daemon(services: Services) -> None:
    """Run the audit loop until interrupted."""
    logger.info("Starting access-bot audit daemon")
    logger.info(f"Store: {services.config.store_path}")

    task = services.auditor.start()
    if task is None:
        logger.info("Audit disabled in config; nothing to run")
        return
    await task


async def verify_member(services: Services, email: str, member_id: str) -> bool:
    member = await services.platform.fetch_member(member_id)
    if member is None:
        logger.error(f"Member not found in guild: {member_id}")
        return False

    result = await services.verifier.verify(email, member)
    print(f"{result.outcome.value}: {result.message}")
    if result.ok:
        print(f"  tier={result.tier} subscription={result.is_subscription} "
              f"last_paid_at={result.last_paid_at or 'missing'}")
    return result.ok


async def show_lookup(services: Services, email: str) -> bool:
    record = await services.verifier.lookup(email)
    if record is None:
        print(f"No record found for {email}")
        return False
    for key, value in record.to_dict().items():
        print(f"  {key}: {value if value is not None else 'unknown'}")
    return True


async def show_status(services: Services, email: str) -> bool:
    report = await services.verifier.status(email)
    print(f"Email: {report.email}")
    print(f"Items: {report.item_count}")
    print(f"Matched tier: {report.matched_role or 'none'}")
    print(f"Subscription: {'yes' if report.any_subscription else 'no'}")
    for item in report.items:
        kind = f"sub ({item.subscription_plan_name})" if item.is_subscription else "one-time"
        print(f"  - {item.title} [{kind}] {item.paid_at or ''}")
    return True


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="access-bot: Purchase-backed Discord role access",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run one audit sweep without changing anything
    python -m access_bot.run --audit-once --dry-run

    # Run as daemon
    python -m access_bot.run --daemon

    # Inspect a stored binding
    python -m access_bot.run --lookup buyer@example.com

    # Use a specific config file
    python -m access_bot.run --config access-bot.yaml --audit-once
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("access-bot.yaml"),
        help="Path to config file (default: access-bot.yaml)",
    )
    parser.add_argument(
        "--store",
        type=Path,
        help="Override email map path from config",
    )
    parser.add_argument(
        "--audit-once",
        action="store_true",
        help="Run one subscription audit sweep and exit",
    )
    parser.add_argument(
        "--daemon",
        action="store_true",
        help="Run the audit loop on its configured interval",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Audit without changing roles or records",
    )
    parser.add_argument("--verify", metavar="EMAIL", help="Verify a purchase email")
    parser.add_argument("--member-id", help="Guild member ID for --verify")
    parser.add_argument("--lookup", metavar="EMAIL", help="Show the stored record for an email")
    parser.add_argument("--status", metavar="EMAIL", help="Show Shopify status for an email")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = BotConfig.from_yaml(args.config)
        if args.store:
            config.store_path = args.store
        if args.dry_run:
            config.audit.dry_run = True

        logger.info(f"Config loaded from {args.config}")
        logger.info(
            f"Tiers: {', '.join(t.role for t in config.tiers)} (base={config.base_role})"
        )

        if args.verify and not args.member_id:
            parser.error("--verify requires --member-id")

        services = build_services(config)

        if args.verify:
            ok = asyncio.run(verify_member(services, args.verify, args.member_id))
            return 0 if ok else 1

        if args.lookup:
            return 0 if asyncio.run(show_lookup(services, args.lookup)) else 1

        if args.status:
            return 0 if asyncio.run(show_status(services, args.status)) else 1

        if args.audit_once:
            errored = asyncio.run(audit_once(services))
            return 0 if errored == 0 else 1

        if args.daemon:
            try:
                asyncio.run(run_daemon(services))
            except KeyboardInterrupt:
                logger.info("Daemon stopped by user")
            return 0

    except AccessBotError as e:
        logger.error(str(e))
        return 1

    # Default: show help
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
