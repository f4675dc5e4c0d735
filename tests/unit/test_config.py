"""Tests for access-bot configuration."""

import tempfile
from pathlib import Path

import pytest

from access_bot.config import (
    DEFAULT_TIERS,
    BotConfig,
    DiscordConfig,
    ShopifyConfig,
    TierConfig,
)
from access_bot.errors import ConfigError


class TestBotConfig:
    """Test configuration loading and parsing."""

    def test_default_config(self):
        """Default config should match the production tier ladder."""
        config = BotConfig()

        assert config.base_role == "Members"
        assert config.tiers == DEFAULT_TIERS
        assert config.tiers[0].role == "Elite Member"
        assert config.audit.enabled is True
        assert config.audit.dry_run is False
        assert config.audit.interval_hours == 24
        assert config.audit.grace_days == 35
        assert config.audit.startup_delay_seconds == 60

    def test_from_dict(self):
        """Should parse config from dictionary."""
        data = {
            "base_role": "Everyone",
            "tiers": [
                {"product": "gold", "role": "Gold"},
                {"product": "silver", "role": "Silver"},
            ],
            "audit": {"dry_run": True, "grace_days": 40},
            "discord": {"guild_id": 1234},
        }

        config = BotConfig.from_dict(data)

        assert config.base_role == "Everyone"
        assert [t.role for t in config.tiers] == ["Gold", "Silver"]
        assert config.audit.dry_run is True
        assert config.audit.grace_days == 40
        assert config.audit.interval_hours == 24
        assert config.discord.guild_id == "1234"

    def test_empty_tier_list_rejected(self):
        with pytest.raises(ConfigError):
            BotConfig.from_dict({"tiers": []})

    def test_blank_tier_rejected(self):
        with pytest.raises(ConfigError):
            TierConfig(product="  ", role="VIP")

    def test_from_yaml(self):
        """Should load config from YAML file."""
        yaml_content = """
store_path: /var/data/email-map.json
tiers:
  - product: VIP ACCESS
    role: VIP
audit:
  enabled: false
  interval_hours: 6
shopify:
  store_domain: shop.myshopify.com
  access_token_env: MY_SHOPIFY_TOKEN
"""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write(yaml_content)
            f.flush()
            yaml_path = Path(f.name)

        try:
            config = BotConfig.from_yaml(yaml_path)

            assert config.store_path == Path("/var/data/email-map.json")
            assert config.tiers == (TierConfig("VIP ACCESS", "VIP"),)
            assert config.audit.enabled is False
            assert config.audit.interval_hours == 6
            assert config.shopify.store_domain == "shop.myshopify.com"
            assert config.shopify.access_token_env == "MY_SHOPIFY_TOKEN"
        finally:
            yaml_path.unlink()

    def test_from_yaml_missing_file(self):
        """Should return defaults for missing file."""
        config = BotConfig.from_yaml(Path("/nonexistent/access-bot.yaml"))

        assert config.base_role == "Members"
        assert config.audit.grace_days == 35

    def test_to_dict_omits_secrets(self):
        """Serialized config is safe to log."""
        config = BotConfig()
        config.shopify.access_token = "shpat_secret"
        config.discord.bot_token = "bot_secret"

        data = config.to_dict()

        assert "shpat_secret" not in str(data)
        assert "bot_secret" not in str(data)
        assert data["audit"]["grace_days"] == 35
        assert data["tiers"][0] == {"product": "ELITE TRADER MENTORSHIP", "role": "Elite Member"}


class TestSecrets:
    """Test credential resolution."""

    def test_shopify_token_direct(self):
        assert ShopifyConfig(access_token="direct").get_access_token() == "direct"

    def test_shopify_token_from_env(self, monkeypatch):
        monkeypatch.setenv("TEST_SHOPIFY_TOKEN", "env_token")
        config = ShopifyConfig(access_token_env="TEST_SHOPIFY_TOKEN")
        assert config.get_access_token() == "env_token"

    def test_discord_token_prefers_direct(self, monkeypatch):
        monkeypatch.setenv("DISCORD_TOKEN", "env")
        assert DiscordConfig(bot_token="direct").get_bot_token() == "direct"

    def test_discord_token_none(self):
        config = DiscordConfig(bot_token_env=None)
        assert config.get_bot_token() is None
