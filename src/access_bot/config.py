"""
Configuration for access-bot.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError


@dataclass(frozen=True)
class TierConfig:
    """One product-title marker mapped to the role it grants."""

    product: str
    role: str

    def __post_init__(self):
        if not self.product or not self.product.strip():
            raise ConfigError("Tier product match key must not be empty")
        if not self.role or not self.role.strip():
            raise ConfigError(f"Tier role name must not be empty (product={self.product!r})")


# Highest priority first
DEFAULT_TIERS: tuple[TierConfig, ...] = (
    TierConfig("ELITE TRADER MENTORSHIP", "Elite Member"),
    TierConfig("MARKET EXECUTION PROGRAM", "Execution Member"),
    TierConfig("MARKET FOUNDATION PROGRAM", "Foundation Member"),
    TierConfig("VIP ACCESS", "VIP"),
    TierConfig("FREE DISCORD ACCESS", "Members"),
)


@dataclass
class AuditConfig:
    """Subscription audit loop configuration."""

    enabled: bool = True
    dry_run: bool = False  # Log overdue members without touching roles
    interval_hours: float = 24.0
    grace_days: int = 35
    startup_delay_seconds: float = 60.0


@dataclass
class ShopifyConfig:
    """Shopify Admin API connection configuration."""

    store_domain: str = ""
    api_version: str = "2024-10"
    access_token: str | None = None
    access_token_env: str | None = "SHOPIFY_ADMIN_ACCESS_TOKEN"
    timeout_seconds: float = 15.0

    def get_access_token(self) -> str | None:
        """Get access token from config or environment."""
        if self.access_token:
            return self.access_token
        if self.access_token_env:
            return os.environ.get(self.access_token_env)
        return None


@dataclass
class DiscordConfig:
    """Discord REST API configuration for the single guild we manage."""

    guild_id: str = ""
    api_base: str = "https://discord.com/api/v10"
    bot_token: str | None = None
    bot_token_env: str | None = "DISCORD_TOKEN"
    timeout_seconds: float = 10.0

    def get_bot_token(self) -> str | None:
        """Get bot token from config or environment."""
        if self.bot_token:
            return self.bot_token
        if self.bot_token_env:
            return os.environ.get(self.bot_token_env)
        return None


@dataclass
class LoggingConfig:
    """Event logging options."""

    mask_emails: bool = False
    history_size: int = 200


@dataclass
class BotConfig:
    """Complete access-bot configuration."""

    store_path: Path = field(default_factory=lambda: Path("data/email-map.json"))
    base_role: str = "Members"
    tiers: tuple[TierConfig, ...] = DEFAULT_TIERS

    audit: AuditConfig = field(default_factory=AuditConfig)
    shopify: ShopifyConfig = field(default_factory=ShopifyConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BotConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "store_path" in data:
            config.store_path = Path(data["store_path"])
        if "base_role" in data:
            config.base_role = data["base_role"]

        if "tiers" in data:
            tiers = data["tiers"] or []
            config.tiers = tuple(
                TierConfig(product=t.get("product", ""), role=t.get("role", ""))
                for t in tiers
            )
            if not config.tiers:
                raise ConfigError("At least one tier must be configured")

        if "audit" in data:
            audit = data["audit"]
            config.audit = AuditConfig(
                enabled=audit.get("enabled", True),
                dry_run=audit.get("dry_run", False),
                interval_hours=float(audit.get("interval_hours", 24.0)),
                grace_days=int(audit.get("grace_days", 35)),
                startup_delay_seconds=float(audit.get("startup_delay_seconds", 60.0)),
            )

        if "shopify" in data:
            shopify = data["shopify"]
            config.shopify = ShopifyConfig(
                store_domain=shopify.get("store_domain", ""),
                api_version=shopify.get("api_version", config.shopify.api_version),
                access_token=shopify.get("access_token"),
                access_token_env=shopify.get(
                    "access_token_env", config.shopify.access_token_env
                ),
                timeout_seconds=shopify.get("timeout_seconds", 15.0),
            )

        if "discord" in data:
            discord = data["discord"]
            config.discord = DiscordConfig(
                guild_id=str(discord.get("guild_id", "")),
                api_base=discord.get("api_base", config.discord.api_base),
                bot_token=discord.get("bot_token"),
                bot_token_env=discord.get("bot_token_env", config.discord.bot_token_env),
                timeout_seconds=discord.get("timeout_seconds", 10.0),
            )

        if "logging" in data:
            log_cfg = data["logging"]
            config.logging = LoggingConfig(
                mask_emails=log_cfg.get("mask_emails", False),
                history_size=log_cfg.get("history_size", 200),
            )

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "BotConfig":
        """Load config from a YAML file. Missing file means defaults."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for logging. Secrets are never included."""
        return {
            "store_path": str(self.store_path),
            "base_role": self.base_role,
            "tiers": [{"product": t.product, "role": t.role} for t in self.tiers],
            "audit": {
                "enabled": self.audit.enabled,
                "dry_run": self.audit.dry_run,
                "interval_hours": self.audit.interval_hours,
                "grace_days": self.audit.grace_days,
                "startup_delay_seconds": self.audit.startup_delay_seconds,
            },
            "shopify": {
                "store_domain": self.shopify.store_domain,
                "api_version": self.shopify.api_version,
            },
            "discord": {
                "guild_id": self.discord.guild_id,
                "api_base": self.discord.api_base,
            },
            "logging": {
                "mask_emails": self.logging.mask_emails,
            },
        }
