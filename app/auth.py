"""
Acting identity and capability checks.

Authentication happens upstream (the identity provider and the proxy in
front of this service); requests arrive with the signed-in user's email,
display name and role claims in headers. This module only maps roles to
capabilities.
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Mapping, Optional, Sequence

import structlog
from fastapi import Depends, Header, HTTPException, status

from app.config import Settings, get_settings
from app.models.enums import Capability

logger = structlog.get_logger(__name__)

ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class Identity:
    """The signed-in user as seen by this service."""
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    roles: FrozenSet[str] = field(default_factory=frozenset)


def parse_roles(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(role.strip() for role in raw.split(",") if role.strip())


class CapabilityPolicy:
    """Role -> capability table, plus an allow-list of identities that get everything."""

    def __init__(
        self,
        role_capabilities: Mapping[str, Iterable[str]],
        admin_identities: Sequence[str] = ()
    ):
        self.role_capabilities = {
            role: frozenset(Capability(c) for c in capabilities)
            for role, capabilities in role_capabilities.items()
        }
        self.admin_identities = frozenset(i.strip().lower() for i in admin_identities if i.strip())

    @classmethod
    def from_settings(cls, settings: Settings) -> "CapabilityPolicy":
        return cls(settings.ROLE_CAPABILITIES, settings.ADMIN_IDENTITIES)

    def capabilities_for(self, identity: Identity) -> FrozenSet[Capability]:
        if identity.email and identity.email.lower() in self.admin_identities:
            return frozenset(Capability)
        granted = set()
        for role in identity.roles:
            granted |= self.role_capabilities.get(role, frozenset())
        return frozenset(granted)

    def has_capability(self, identity: Identity, capability: Capability) -> bool:
        return capability in self.capabilities_for(identity)


def get_policy() -> CapabilityPolicy:
    """Dependency for FastAPI endpoints to get the configured capability policy."""
    return CapabilityPolicy.from_settings(get_settings())


def get_current_identity(
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_roles: Optional[str] = Header(None)
) -> Identity:
    """Dependency that reads the acting identity forwarded by the auth proxy."""
    email = x_user_email.strip() if x_user_email and x_user_email.strip() else None
    name = x_user_name.strip() if x_user_name and x_user_name.strip() else None
    user_id = email or name or ANONYMOUS
    return Identity(user_id=user_id, name=name, email=email, roles=parse_roles(x_user_roles))


def require_capability(capability: Capability):
    """Build a dependency that returns the identity or refuses with 403."""

    def dependency(
        identity: Identity = Depends(get_current_identity),
        policy: CapabilityPolicy = Depends(get_policy)
    ) -> Identity:
        if not policy.has_capability(identity, capability):
            logger.warning(
                "capability_refused",
                actor=identity.user_id,
                capability=capability.value,
                roles=sorted(identity.roles)
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "kind": "forbidden",
                    "message": f"Missing the '{capability.value}' capability"
                }
            )
        return identity

    return dependency
