"""Tests for exclusive role reconciliation."""

import pytest

from access_bot.errors import RoleConfigError
from access_bot.roles import RoleReconciler


class TestGrantExclusive:
    """Test granting a single tier role."""

    async def test_replaces_other_tier(self, platform, reconciler):
        """Granting VIP to an Elite member leaves exactly Members + VIP."""
        member = platform.add_member("1", "Elite Member")

        await reconciler.grant_exclusive(member, "VIP")

        assert platform.role_names_of(member) == {"Members", "VIP"}

    async def test_keeps_unrelated_roles(self, platform, reconciler):
        """Roles outside the tier set are never touched."""
        member = platform.add_member("1", "Moderator", "Foundation Member")

        await reconciler.grant_exclusive(member, "Elite Member")

        assert platform.role_names_of(member) == {"Members", "Elite Member", "Moderator"}

    async def test_adds_before_removing(self, platform, reconciler):
        """Base and target are added before any tier role is removed."""
        member = platform.add_member("1", "Elite Member")

        await reconciler.grant_exclusive(member, "VIP")

        assert platform.calls == [
            ("add", "1", "Members"),
            ("add", "1", "VIP"),
            ("remove", "1", "Elite Member"),
        ]

    async def test_base_tier_grant(self, platform, reconciler):
        """Granting the base role as a tier strips paid tiers but keeps base."""
        member = platform.add_member("1", "Members", "VIP")

        await reconciler.grant_exclusive(member, "Members")

        assert platform.role_names_of(member) == {"Members"}

    async def test_regrant_is_noop(self, platform, reconciler):
        """Granting the role a member already has makes no calls."""
        member = platform.add_member("1", "Members", "VIP")

        await reconciler.grant_exclusive(member, "VIP")

        assert platform.calls == []
        assert platform.role_names_of(member) == {"Members", "VIP"}

    async def test_missing_target_role(self, platform, reconciler):
        """Unknown target role is a configuration error, nothing changes."""
        member = platform.add_member("1", "VIP")

        with pytest.raises(RoleConfigError) as exc:
            await reconciler.grant_exclusive(member, "Platinum")

        assert exc.value.role_name == "Platinum"
        assert exc.value.kind == "target"
        assert platform.calls == []

    async def test_missing_base_role(self, make_platform):
        """A guild without the base role is a configuration error."""
        platform = make_platform(["VIP"])
        reconciler = RoleReconciler(platform, "Members", ["VIP", "Members"])
        member = platform.add_member("1")

        with pytest.raises(RoleConfigError) as exc:
            await reconciler.grant_exclusive(member, "VIP")

        assert exc.value.kind == "base"

    async def test_platform_error_propagates(self, platform, reconciler):
        """Per-call failures surface to the caller."""
        platform.fail_on_add = "VIP"
        member = platform.add_member("1")

        with pytest.raises(RuntimeError):
            await reconciler.grant_exclusive(member, "VIP")


class TestDowngradeToBase:
    """Test removing all tier roles."""

    async def test_downgrade(self, platform, reconciler):
        """Only the base role (and non-tier roles) remain."""
        member = platform.add_member("1", "Elite Member", "VIP", "Moderator")

        await reconciler.downgrade_to_base(member)

        assert platform.role_names_of(member) == {"Members", "Moderator"}

    async def test_downgrade_without_base_role(self, make_platform):
        """Missing base role aborts before anything is removed."""
        platform = make_platform(["VIP"])
        reconciler = RoleReconciler(platform, "Members", ["VIP"])
        member = platform.add_member("1", "VIP")

        with pytest.raises(RoleConfigError):
            await reconciler.downgrade_to_base(member)

        assert platform.role_names_of(member) == {"VIP"}
