"""Shared pytest fixtures for access-bot tests."""

from collections.abc import Iterable

import pytest

from access_bot.config import BotConfig
from access_bot.events import EventLog
from access_bot.models import Member, PurchaseLineItem, Role
from access_bot.roles import RoleReconciler
from access_bot.store import LinkStore
from access_bot.tiers import TierResolver
from access_bot.workflow import Verifier

GUILD_ROLE_NAMES = [
    "Members",
    "Elite Member",
    "Execution Member",
    "Foundation Member",
    "VIP",
    "Moderator",
]


class FakePlatform:
    """In-memory stand-in for the Discord guild."""

    def __init__(self, role_names: Iterable[str] = GUILD_ROLE_NAMES):
        self.roles = {name: Role(id=f"r{i}", name=name) for i, name in enumerate(role_names)}
        self.members: dict[str, Member] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.fail_on_add: str | None = None
        self.fail_on_fetch: set[str] = set()

    def add_member(self, member_id: str, *role_names: str, tag: str = "") -> Member:
        member = Member(
            id=member_id,
            tag=tag or f"user{member_id}",
            role_ids={self.roles[n].id for n in role_names},
        )
        self.members[member_id] = member
        return member

    def role_names_of(self, member: Member) -> set[str]:
        by_id = {r.id: r.name for r in self.roles.values()}
        return {by_id[rid] for rid in member.role_ids}

    async def lookup_role_by_name(self, name: str) -> Role | None:
        return self.roles.get(name)

    async def add_role(self, member: Member, role: Role) -> None:
        if self.fail_on_add == role.name:
            raise RuntimeError(f"network error adding {role.name}")
        if role.id in member.role_ids:
            return
        self.calls.append(("add", member.id, role.name))
        member.role_ids.add(role.id)

    async def remove_roles(self, member: Member, roles: Iterable[Role]) -> None:
        for role in roles:
            if role.id in member.role_ids:
                self.calls.append(("remove", member.id, role.name))
                member.role_ids.discard(role.id)

    async def fetch_member(self, member_id: str) -> Member | None:
        if member_id in self.fail_on_fetch:
            raise RuntimeError(f"fetch failed for {member_id}")
        return self.members.get(member_id)


class FakeGateway:
    """Commerce gateway returning canned line items per email."""

    def __init__(self, items: dict[str, list[PurchaseLineItem]] | None = None):
        self.items = items or {}
        self.error: Exception | None = None
        self.calls: list[str] = []

    async def fetch_paid_line_items(self, email: str) -> list[PurchaseLineItem]:
        self.calls.append(email)
        if self.error is not None:
            raise self.error
        return list(self.items.get(email, []))


@pytest.fixture
def config(tmp_path):
    """Default config pointed at a temp store."""
    config = BotConfig()
    config.store_path = tmp_path / "data" / "email-map.json"
    return config


@pytest.fixture
def store(config):
    return LinkStore(config.store_path)


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def resolver(config):
    return TierResolver.from_config(config.tiers)


@pytest.fixture
def reconciler(platform, config, resolver):
    return RoleReconciler(platform, config.base_role, resolver.role_names)


@pytest.fixture
def verifier(resolver, reconciler, gateway, store, events):
    return Verifier(resolver, reconciler, gateway, store, events)


@pytest.fixture
def make_platform():
    """Factory for a fake guild with a custom role set."""
    return FakePlatform
