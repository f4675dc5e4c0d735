"""
Discord REST client for access-bot.

Covers the handful of guild membership calls the role reconciler and the
audit loop need. All calls target a single configured guild.
"""

import logging
from collections.abc import Iterable

import httpx

from .config import DiscordConfig
from .errors import ConfigError, PlatformError
from .models import Member, Role

logger = logging.getLogger(__name__)


def parse_member(data: dict) -> Member:
    """Build a Member from a Discord guild member object."""
    user = data.get("user") or {}
    username = user.get("username") or ""
    discriminator = user.get("discriminator")
    tag = f"{username}#{discriminator}" if discriminator and discriminator != "0" else username
    return Member(
        id=str(user.get("id", "")),
        tag=tag,
        role_ids={str(r) for r in data.get("roles", [])},
    )


class DiscordPlatform:
    """Guild membership operations over the Discord REST API."""

    def __init__(
        self,
        guild_id: str,
        bot_token: str | None,
        api_base: str = "https://discord.com/api/v10",
        timeout_seconds: float = 10.0,
    ):
        if not guild_id:
            raise ConfigError("Discord guild_id is required")
        if not bot_token:
            raise ConfigError("Discord bot token is required")
        self.guild_id = str(guild_id)
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout_seconds
        self._token = bot_token
        self._roles: dict[str, Role] | None = None

    @classmethod
    def from_config(cls, config: DiscordConfig) -> "DiscordPlatform":
        return cls(
            guild_id=config.guild_id,
            bot_token=config.get_bot_token(),
            api_base=config.api_base,
            timeout_seconds=config.timeout_seconds,
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bot {self._token}"}

    def _guild_url(self, path: str = "") -> str:
        return f"{self.api_base}/guilds/{self.guild_id}{path}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                return await client.request(method, url, headers=self._headers, **kwargs)
            except httpx.RequestError as e:
                raise PlatformError(f"Discord {method} {url} failed: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.status_code >= 400:
            raise PlatformError(
                f"Discord {action} failed: HTTP {response.status_code} {response.text[:300]}",
                status_code=response.status_code,
            )

    # -------------------------------------------------------------------------
    # Roles
    # -------------------------------------------------------------------------

    async def refresh_roles(self) -> dict[str, Role]:
        """Reload the guild role list into the name cache."""
        response = await self._request("GET", self._guild_url("/roles"))
        self._raise_for_status(response, "list roles")
        roles: dict[str, Role] = {}
        for data in response.json():
            role = Role(id=str(data["id"]), name=data["name"])
            # Keep the first role when names collide
            roles.setdefault(role.name, role)
        self._roles = roles
        logger.debug(f"Loaded {len(roles)} guild role(s)")
        return roles

    async def lookup_role_by_name(self, name: str) -> Role | None:
        """Exact, case-sensitive role lookup by name."""
        if self._roles is None:
            await self.refresh_roles()
        return self._roles.get(name)

    async def add_role(self, member: Member, role: Role) -> None:
        """
        Grant a role. Already-held roles are left alone.

        "Held" is judged from member.role_ids, so pass a member fetched from
        the guild or taken from the current interaction. A stale member can
        skip a grant that is actually needed.
        """
        if member.has_role(role):
            return
        response = await self._request(
            "PUT", self._guild_url(f"/members/{member.id}/roles/{role.id}")
        )
        self._raise_for_status(response, f"add role {role.name}")
        member.role_ids.add(role.id)

    async def remove_roles(self, member: Member, roles: Iterable[Role]) -> None:
        """Remove each role the member holds, judged from member.role_ids."""
        for role in roles:
            if not member.has_role(role):
                continue
            response = await self._request(
                "DELETE", self._guild_url(f"/members/{member.id}/roles/{role.id}")
            )
            self._raise_for_status(response, f"remove role {role.name}")
            member.role_ids.discard(role.id)

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    async def fetch_member(self, member_id: str) -> Member | None:
        """Fetch a live member, or None if they are no longer in the guild."""
        response = await self._request("GET", self._guild_url(f"/members/{member_id}"))
        if response.status_code == 404:
            return None
        self._raise_for_status(response, f"fetch member {member_id}")
        return parse_member(response.json())
