"""Collaborators consumed by the authorization flow.

The flow never talks to a database directly. It resolves the signed-in user,
their organization membership, and persists installations through these
protocols. In-memory implementations are provided for development and tests.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from aiohttp import web


class Role(str, Enum):
    """Organization membership role."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


@dataclass(frozen=True)
class Identity:
    """The authenticated user behind a request."""

    user_id: str
    email: str | None = None


@dataclass(frozen=True)
class Membership:
    """A user's membership in an organization."""

    organization_id: str
    role: Role


@dataclass(frozen=True)
class InstallGrant:
    """Result of exchanging an authorization code with the platform."""

    access_token: str
    team_id: str
    team_name: str | None = None
    bot_user_id: str | None = None
    scope: str | None = None


@dataclass
class Installation:
    """An organization's installed integration, as handed to storage."""

    organization_id: str
    installed_by_user_id: str
    team_id: str
    team_name: str | None
    bot_user_id: str | None
    scope: str | None
    encrypted_access_token: str
    enabled_events: list[str] = field(default_factory=list)
    enabled: bool = True
    installed_at: float = field(default_factory=time.time)


class SessionStore(Protocol):
    async def get_current_user(self, request: web.Request) -> Identity | None: ...


class PermissionStore(Protocol):
    async def get_membership(self, user_id: str) -> Membership | None: ...

    async def get_role(self, user_id: str, organization_id: str) -> Role | None: ...


class TokenExchanger(Protocol):
    async def exchange(self, code: str) -> InstallGrant: ...


class IntegrationStore(Protocol):
    async def save_installation(self, installation: Installation) -> None: ...


class HeaderSessionStore:
    """Resolves the current user from a trusted upstream header.

    For deployments behind an authenticating proxy, and for local runs.
    """

    def __init__(self, header: str = "X-User-Id") -> None:
        self._header = header

    async def get_current_user(self, request: web.Request) -> Identity | None:
        user_id = request.headers.get(self._header, "").strip()
        if not user_id:
            return None
        return Identity(user_id=user_id)


class InMemoryPermissionStore:
    """Membership lookup backed by a dict of user id to membership."""

    def __init__(self, memberships: dict[str, Membership] | None = None) -> None:
        self._memberships: dict[str, Membership] = dict(memberships or {})

    def add(self, user_id: str, organization_id: str, role: Role | str) -> None:
        self._memberships[user_id] = Membership(
            organization_id=organization_id,
            role=Role(role),
        )

    async def get_membership(self, user_id: str) -> Membership | None:
        return self._memberships.get(user_id)

    async def get_role(self, user_id: str, organization_id: str) -> Role | None:
        membership = self._memberships.get(user_id)
        if membership is None or membership.organization_id != organization_id:
            return None
        return membership.role


class InMemoryIntegrationStore:
    """Keeps one installation per organization, replacing on reinstall."""

    def __init__(self) -> None:
        self._installations: dict[str, Installation] = {}
        self._lock = asyncio.Lock()

    async def save_installation(self, installation: Installation) -> None:
        async with self._lock:
            self._installations[installation.organization_id] = installation

    async def get_installation(self, organization_id: str) -> Installation | None:
        async with self._lock:
            return self._installations.get(organization_id)

