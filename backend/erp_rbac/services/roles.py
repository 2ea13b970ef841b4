"""Role registry: named bundles of catalog permissions."""
from __future__ import annotations
import logging
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, delete, func

from erp_rbac.errors import ConflictError, DuplicateError, NotFoundError, ValidationError
from erp_rbac.models.authz import Permission, Role, RolePermission, UserRoleAssignment
from erp_rbac.services.cache import mark_all_dirty
from erp_rbac.services.catalog import get_permission
from erp_rbac.services.grants import Triple
from erp_rbac.utils.db import get_or_create, finish

logger = logging.getLogger(__name__)


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or '').strip()
    if not cleaned:
        raise ValidationError('name required')
    return cleaned


def ensure_role(session, name: str, description: Optional[str] = None,
                is_system: bool = False) -> Tuple[Role, bool]:
    """Upsert by name. An existing role keeps its is_system flag and grants."""
    role, created = get_or_create(
        session, Role, defaults={'description': description, 'is_system': bool(is_system)},
        name=_clean_name(name),
    )
    if not created and description is not None and role.description != description:
        role.description = description
    return role, created


def define_role(session, name: str, description: Optional[str] = None,
                is_system: bool = False, commit: bool = True) -> int:
    role, created = ensure_role(session, name, description, is_system)
    finish(session, commit)
    if created:
        logger.info('Role defined: %s (system=%s)', role.name, role.is_system)
    return role.id


def create_role(session, name: str, description: Optional[str] = None,
                is_system: bool = False, commit: bool = True) -> Role:
    name = _clean_name(name)
    if find_role(session, name) is not None:
        raise DuplicateError('role exists', name=name)
    role, _ = ensure_role(session, name, description, is_system)
    finish(session, commit)
    logger.info('Role created: %s', role.name)
    return role


def find_role(session, name: str) -> Optional[Role]:
    return session.execute(select(Role).where(Role.name == (name or '').strip())).scalar_one_or_none()


def get_role(session, role_id: int) -> Role:
    role = session.get(Role, role_id)
    if role is None:
        raise NotFoundError('role not found', role_id=role_id)
    return role


def list_roles(session) -> List[Role]:
    return list(session.execute(select(Role).order_by(Role.id.asc())).scalars())


def update_role(session, role_id: int, name: Optional[str] = None,
                description: Optional[str] = None, commit: bool = True) -> Role:
    role = get_role(session, role_id)
    if name is not None:
        new_name = _clean_name(name)
        if new_name != role.name:
            if role.is_system:
                raise ConflictError('system role cannot be renamed', role=role.name)
            if find_role(session, new_name) is not None:
                raise DuplicateError('role name in use', name=new_name)
            role.name = new_name
    if description is not None:
        role.description = description
    finish(session, commit)
    return role


def ensure_grant(session, role: Role, permission: Permission) -> bool:
    _, created = get_or_create(session, RolePermission, role_id=role.id, permission_id=permission.id)
    if created:
        session.expire(role, ['permissions'])
        mark_all_dirty(session)
    return created


def grant_permission(session, role_id: int, permission_id: int, commit: bool = True) -> bool:
    """Idempotent; returns True when a new grant was stored."""
    role = get_role(session, role_id)
    perm = get_permission(session, permission_id)
    created = ensure_grant(session, role, perm)
    finish(session, commit)
    if created:
        logger.info('Granted %s to role %s', perm.code, role.name)
    return created


def revoke_permission(session, role_id: int, permission_id: int, commit: bool = True) -> bool:
    """Idempotent; revoking an ungranted permission is a no-op returning False."""
    role = get_role(session, role_id)
    result = session.execute(
        delete(RolePermission).where(RolePermission.role_id == role.id, RolePermission.permission_id == permission_id)
    )
    removed = bool(result.rowcount)
    if removed:
        session.expire(role, ['permissions'])
        mark_all_dirty(session)
    finish(session, commit)
    if removed:
        logger.info('Revoked permission %s from role %s', permission_id, role.name)
    return removed


def set_role_permissions(session, role_id: int, permission_ids: Iterable[int], commit: bool = True) -> Role:
    """Replace the role's grant set in one transaction."""
    role = get_role(session, role_id)
    wanted = set(permission_ids)
    found = set(session.execute(select(Permission.id).where(Permission.id.in_(wanted))).scalars()) if wanted else set()
    missing = wanted - found
    if missing:
        raise NotFoundError('unknown permission ids', permission_ids=sorted(missing))
    session.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
    for pid in sorted(wanted):
        session.add(RolePermission(role_id=role.id, permission_id=pid))
    session.flush()
    session.expire(role, ['permissions'])
    mark_all_dirty(session)
    finish(session, commit)
    logger.info('Role %s permissions replaced (%d)', role.name, len(wanted))
    return role


def count_assignments(session, role_id: int) -> int:
    return session.execute(
        select(func.count(UserRoleAssignment.id)).where(UserRoleAssignment.role_id == role_id)
    ).scalar_one()


def delete_role(session, role_id: int, commit: bool = True) -> None:
    """Rejects system roles and roles that still have assignments (no cascade)."""
    role = get_role(session, role_id)
    if role.is_system:
        raise ConflictError('system role cannot be deleted', role=role.name)
    assigned = count_assignments(session, role.id)
    if assigned:
        raise ConflictError('role has active assignments', role=role.name, assignments=assigned)
    name = role.name
    session.delete(role)
    mark_all_dirty(session)
    finish(session, commit)
    logger.info('Role deleted: %s', name)


def effective_permissions(session, role_id: int) -> Set[Permission]:
    role = get_role(session, role_id)
    stmt = (
        select(Permission)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(RolePermission.role_id == role.id)
    )
    return set(session.execute(stmt).scalars())


def permission_triples_for_roles(session, role_ids: Iterable[int]) -> Set[Triple]:
    ids = list(role_ids)
    if not ids:
        return set()
    stmt = (
        select(Permission.module, Permission.action, Permission.resource)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(RolePermission.role_id.in_(ids))
    )
    return {(m, a, r) for m, a, r in session.execute(stmt).all()}


__all__ = [
    'ensure_role', 'define_role', 'create_role', 'find_role', 'get_role', 'list_roles', 'update_role',
    'ensure_grant', 'grant_permission', 'revoke_permission', 'set_role_permissions',
    'count_assignments', 'delete_role', 'effective_permissions', 'permission_triples_for_roles',
]
