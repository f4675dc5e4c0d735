"""
Exclusive tier role reconciliation.

A member holds the base role plus at most one tier role. Roles are always
added before others are removed, so a member is never left without access
mid-change (they may briefly hold two tier roles, which only widens channel
visibility).
"""

import logging
from collections.abc import Iterable
from typing import Protocol

from .errors import RoleConfigError
from .models import Member, Role

logger = logging.getLogger(__name__)


class MembershipPlatform(Protocol):
    """The guild membership operations the reconciler needs."""

    async def lookup_role_by_name(self, name: str) -> Role | None: ...

    async def add_role(self, member: Member, role: Role) -> None: ...

    async def remove_roles(self, member: Member, roles: Iterable[Role]) -> None: ...

    async def fetch_member(self, member_id: str) -> Member | None: ...


class RoleReconciler:
    """Applies tier roles to members as a set reconciliation."""

    def __init__(
        self,
        platform: MembershipPlatform,
        base_role: str,
        tier_roles: Iterable[str],
    ):
        self.platform = platform
        self.base_role = base_role
        self.tier_roles: tuple[str, ...] = tuple(tier_roles)

    async def _require(self, name: str, kind: str) -> Role:
        role = await self.platform.lookup_role_by_name(name)
        if role is None:
            logger.error(f"{kind.capitalize()} role not found in guild: {name!r}")
            raise RoleConfigError(name, kind)
        return role

    async def _held_tier_roles(self, member: Member, exclude: set[str]) -> list[Role]:
        roles: list[Role] = []
        for name in self.tier_roles:
            if name in exclude:
                continue
            role = await self.platform.lookup_role_by_name(name)
            if role is not None and member.has_role(role):
                roles.append(role)
        return roles

    async def grant_exclusive(self, member: Member, target_role: str) -> None:
        """
        Leave the member holding exactly the base role plus target_role.

        Raises RoleConfigError if the base or target role does not exist.
        Platform failures propagate as PlatformError.

        The complement is computed from member.role_ids; member must reflect
        the guild's current state.
        """
        base = await self._require(self.base_role, "base")
        target = await self._require(target_role, "target")

        await self.platform.add_role(member, base)
        await self.platform.add_role(member, target)

        to_remove = await self._held_tier_roles(
            member, exclude={self.base_role, target_role}
        )
        if to_remove:
            await self.platform.remove_roles(member, to_remove)

        logger.info(
            f"Granted {target_role!r} to member {member.id}"
            + (f", removed {[r.name for r in to_remove]}" if to_remove else "")
        )

    async def downgrade_to_base(self, member: Member) -> None:
        """Strip every tier role, keeping only the base role."""
        base = await self._require(self.base_role, "base")

        await self.platform.add_role(member, base)

        to_remove = await self._held_tier_roles(member, exclude={self.base_role})
        if to_remove:
            await self.platform.remove_roles(member, to_remove)

        logger.info(
            f"Downgraded member {member.id} to {self.base_role!r}, "
            f"removed {[r.name for r in to_remove]}"
        )
