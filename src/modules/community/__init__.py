"""
Community core shared by guilds and parties.

- AuthorizationPolicy / evaluate: table-driven role checks
- GroupAdapter: per-kind wiring (models, roles, notification wording)
- InvitationService / MembershipService: generic engines over an adapter
"""

from .adapters import GUILD_ADAPTER, PARTY_ADAPTER, GroupAdapter
from .invitation_service import InvitationService
from .membership_repository import MembershipRepository
from .membership_service import MembershipService
from .policy import (
    AUTHOR_BOUND_ACTIONS,
    DEFAULT_PERMISSIONS,
    LOCK_GUARDED_ACTIONS,
    AuthorizationPolicy,
    CommunityAction,
    GroupKind,
    ResourceFlags,
    evaluate,
)

__all__ = [
    "AuthorizationPolicy",
    "CommunityAction",
    "GroupKind",
    "ResourceFlags",
    "evaluate",
    "DEFAULT_PERMISSIONS",
    "LOCK_GUARDED_ACTIONS",
    "AUTHOR_BOUND_ACTIONS",
    "GroupAdapter",
    "GUILD_ADAPTER",
    "PARTY_ADAPTER",
    "InvitationService",
    "MembershipRepository",
    "MembershipService",
]
