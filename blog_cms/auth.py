"""
Authorization guard and identity collaborators.

The caller's identity is always passed explicitly into service functions;
there is no process-wide "current user".  A role is resolved once per call
into a ``Caller`` so every check downstream sees the same answer.

Every authenticated identity is at least an ``Author``: a missing or
unrecognised role claim defaults to ``Author``.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

import httpx

from blog_cms.config import settings
from blog_cms.errors import Forbidden, Unauthenticated

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    AUTHOR = "Author"
    ADMIN = "Admin"


@dataclass(frozen=True)
class Identity:
    """A verified identity as issued by the external identity provider."""

    subject_id: str
    email: str = ""
    name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Caller:
    identity: Identity
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def resolve_role(identity: Identity) -> Role:
    claim = identity.metadata.get("role") if identity.metadata else None
    try:
        return Role(claim)
    except ValueError:
        return Role.AUTHOR


def require_role(identity: Identity | None, allowed_roles: Iterable[Role]) -> Caller:
    if identity is None:
        raise Unauthenticated("You must be logged in")
    role = resolve_role(identity)
    if role not in set(allowed_roles):
        raise Forbidden("You do not have permission to perform this action")
    return Caller(identity=identity, role=role)


def check_author(identity: Identity | None) -> Caller:
    return require_role(identity, (Role.AUTHOR, Role.ADMIN))


def check_admin(identity: Identity | None) -> Caller:
    return require_role(identity, (Role.ADMIN,))


def ensure_owner(caller: Caller, user_id: int, owner_id: int, action: str = "modify") -> None:
    """Admins may act on any post; authors only on their own."""
    if caller.is_admin:
        return
    if owner_id != user_id:
        raise Forbidden(f"You do not have permission to {action} this post")


# ---------------------------------------------------------------------------
# Identity providers (role lookups for users other than the caller)
# ---------------------------------------------------------------------------

class IdentityProvider(Protocol):
    async def fetch_identity(self, subject_id: str) -> Identity | None:
        ...


class StaticIdentityProvider:
    """In-memory directory, used in development and tests."""

    def __init__(self, identities: Iterable[Identity] = ()) -> None:
        self._identities = {i.subject_id: i for i in identities}

    def register(self, identity: Identity) -> None:
        self._identities[identity.subject_id] = identity

    async def fetch_identity(self, subject_id: str) -> Identity | None:
        return self._identities.get(subject_id)


class HttpIdentityProvider:
    """
    Looks identities up in the provider's user directory over HTTP.

    Expects ``GET {base_url}/users/{subject_id}`` to answer with a JSON
    object carrying ``id``, ``email``, ``name`` and ``public_metadata``.
    A 404 or a body that is not a JSON object means the identity is
    unknown; any other failure is raised.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.IDENTITY_PROVIDER_TIMEOUT
        self._transport = transport

    async def fetch_identity(self, subject_id: str) -> Identity | None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(f"{self.base_url}/users/{subject_id}")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()

        if not isinstance(payload, dict):
            logger.warning("Identity provider returned a non-object for %s", subject_id)
            return None
        return Identity(
            subject_id=str(payload.get("id", subject_id)),
            email=payload.get("email") or "",
            name=payload.get("name"),
            metadata=payload.get("public_metadata") or {},
        )


_default_provider: IdentityProvider | None = None


def get_identity_provider() -> IdentityProvider:
    """Return the process-wide provider configured by ``IDENTITY_PROVIDER_URL``."""
    global _default_provider
    if _default_provider is None:
        if settings.IDENTITY_PROVIDER_URL:
            _default_provider = HttpIdentityProvider(settings.IDENTITY_PROVIDER_URL)
        else:
            logger.warning("IDENTITY_PROVIDER_URL not set; using an empty static identity directory")
            _default_provider = StaticIdentityProvider()
    return _default_provider
