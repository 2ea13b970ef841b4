"""Authorization decision procedure.

``check`` answers ALLOW/DENY for (user, branch context, module, action, resource).
DENY is a value, not an exception; only store failures propagate.

Roles held by the user in the given context are expanded into grants and the
union is matched with precedence exact > action wildcard > module wildcard >
global wildcard. Holding more roles can only add access.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import select

from erp_rbac.models.authz import Role
from erp_rbac.errors import ValidationError
from erp_rbac.services.assignments import clean_user_id, roles_for
from erp_rbac.services.cache import decision_cache
from erp_rbac.services.catalog import find
from erp_rbac.services.grants import Grant, best_match, format_code, grant_for, normalize_part
from erp_rbac.services.roles import permission_triples_for_roles

logger = logging.getLogger(__name__)


class DenyReason(str, Enum):
    NO_ROLE_ASSIGNED = 'NoRoleAssigned'
    PERMISSION_NOT_GRANTED = 'PermissionNotGranted'
    UNKNOWN_PERMISSION = 'UnknownPermission'


@dataclass(frozen=True)
class Decision:
    user_id: str
    branch_id: Optional[int]
    module: str
    action: str
    resource: str
    allowed: bool
    reason: Optional[DenyReason] = None
    matched: Optional[Grant] = None

    @property
    def code(self) -> str:
        return format_code(self.module, self.action, self.resource)

    def __bool__(self) -> bool:
        return self.allowed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'branch_id': self.branch_id,
            'permission': self.code,
            'allowed': self.allowed,
            'reason': self.reason.value if self.reason else None,
            'matched': self.matched.code if self.matched else None,
        }


def resolve_grants(session, user_id: str, branch_id: Optional[int]) -> Tuple[FrozenSet[int], FrozenSet[Grant]]:
    """Role ids and the union of their grants for this user in this context."""
    user_id = clean_user_id(user_id)
    hit = decision_cache.get(user_id, branch_id)
    if hit is not None:
        return hit
    generation = decision_cache.generation
    role_ids = frozenset(roles_for(session, user_id, branch_id))
    grants = frozenset(grant_for(*t) for t in permission_triples_for_roles(session, role_ids))
    value = (role_ids, grants)
    decision_cache.put(user_id, branch_id, value, generation)
    return value


def check(session, user_id, branch_id: Optional[int], module: str, action: str,
          resource: Optional[str] = '') -> Decision:
    try:
        user_id = clean_user_id(user_id)
    except ValidationError:
        # an anonymous or blank identity holds no roles
        user_id = ''
    module, action, resource = normalize_part(module), normalize_part(action), normalize_part(resource)
    request = dict(user_id=user_id, branch_id=branch_id, module=module, action=action, resource=resource)

    role_ids, grants = resolve_grants(session, user_id, branch_id) if user_id else (frozenset(), frozenset())
    if not role_ids:
        decision = Decision(allowed=False, reason=DenyReason.NO_ROLE_ASSIGNED, **request)
    else:
        matched = best_match(grants, module, action, resource)
        if matched is not None:
            decision = Decision(allowed=True, matched=matched, **request)
        elif find(session, module, action, resource) is None:
            decision = Decision(allowed=False, reason=DenyReason.UNKNOWN_PERMISSION, **request)
        else:
            decision = Decision(allowed=False, reason=DenyReason.PERMISSION_NOT_GRANTED, **request)

    if decision.allowed:
        logger.debug('ALLOW %s user=%s branch=%s via %s', decision.code, user_id, branch_id, decision.matched.code)
    else:
        logger.debug('DENY %s user=%s branch=%s (%s)', decision.code, user_id, branch_id, decision.reason.value)
    return decision


def effective_grants(session, user_id, branch_id: Optional[int] = None) -> List[Grant]:
    _, grants = resolve_grants(session, user_id, branch_id)
    return sorted(grants, key=lambda g: (g.precedence, g.code))


def describe_access(session, user_id, branch_id: Optional[int] = None) -> Dict[str, Any]:
    """Roles and grant codes a user holds in a context, for permission views."""
    user_id = clean_user_id(user_id)
    role_ids, grants = resolve_grants(session, user_id, branch_id)
    roles = []
    if role_ids:
        stmt = select(Role).where(Role.id.in_(role_ids)).order_by(Role.name.asc())
        roles = [{'id': r.id, 'name': r.name, 'is_system': r.is_system} for r in session.execute(stmt).scalars()]
    return {
        'user_id': user_id,
        'branch_id': branch_id,
        'roles': roles,
        'permissions': sorted(g.code for g in grants),
        'superuser': any(g.precedence == 3 for g in grants),
    }


__all__ = ['DenyReason', 'Decision', 'resolve_grants', 'check', 'effective_grants', 'describe_access']
