"""Permission catalog: the single source of truth for (module, action, resource) triples."""
from __future__ import annotations
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func

from erp_rbac.errors import ConflictError, DuplicateError, NotFoundError
from erp_rbac.models.authz import Permission, RolePermission
from erp_rbac.services.grants import grant_for, normalize_part
from erp_rbac.utils.db import get_or_create, finish

logger = logging.getLogger(__name__)


def ensure_permission(session, module: str, action: str, resource: Optional[str] = '',
                      description: Optional[str] = None) -> Tuple[Permission, bool]:
    """Upsert by triple; returns (permission, created). Description is refreshed when given."""
    module, action, resource = grant_for(module, action, resource).triple
    perm, created = get_or_create(
        session, Permission, defaults={'description': description},
        module=module, action=action, resource=resource,
    )
    if not created and description is not None and perm.description != description:
        perm.description = description
    return perm, created


def define(session, module: str, action: str, resource: Optional[str] = '',
           description: Optional[str] = None, commit: bool = True) -> int:
    """Idempotent: safe to call on every startup with the same triple."""
    perm, created = ensure_permission(session, module, action, resource, description)
    finish(session, commit)
    if created:
        logger.info('Permission defined: %s', perm.code)
    return perm.id


def create_permission(session, module: str, action: str, resource: Optional[str] = '',
                      description: Optional[str] = None, commit: bool = True) -> Permission:
    existing = find(session, module, action, resource)
    if existing is not None:
        raise DuplicateError('permission exists', permission=existing.code)
    perm, _ = ensure_permission(session, module, action, resource, description)
    finish(session, commit)
    logger.info('Permission created: %s', perm.code)
    return perm


def find(session, module: str, action: str, resource: Optional[str] = '') -> Optional[Permission]:
    stmt = select(Permission).where(
        Permission.module == normalize_part(module),
        Permission.action == normalize_part(action),
        Permission.resource == normalize_part(resource),
    )
    return session.execute(stmt).scalar_one_or_none()


def get_permission(session, permission_id: int) -> Permission:
    perm = session.get(Permission, permission_id)
    if perm is None:
        raise NotFoundError('permission not found', permission_id=permission_id)
    return perm


def list_by_module(session, module: str) -> List[Permission]:
    stmt = (
        select(Permission)
        .where(Permission.module == normalize_part(module))
        .order_by(Permission.action.asc(), Permission.resource.asc())
    )
    return list(session.execute(stmt).scalars())


def list_permissions(session, module: Optional[str] = None) -> List[Permission]:
    if module:
        return list_by_module(session, module)
    stmt = select(Permission).order_by(Permission.module.asc(), Permission.action.asc(), Permission.resource.asc())
    return list(session.execute(stmt).scalars())


def group_by_module(permissions: Iterable[Permission]) -> Dict[str, List[Permission]]:
    grouped: Dict[str, List[Permission]] = OrderedDict()
    for perm in permissions:
        grouped.setdefault(perm.module, []).append(perm)
    return grouped


def delete_permission(session, permission_id: int, commit: bool = True) -> None:
    perm = get_permission(session, permission_id)
    in_use = session.execute(
        select(func.count(RolePermission.id)).where(RolePermission.permission_id == perm.id)
    ).scalar_one()
    if in_use:
        raise ConflictError('permission is granted to roles', permission=perm.code, roles=in_use)
    code = perm.code
    session.delete(perm)
    finish(session, commit)
    logger.info('Permission deleted: %s', code)


__all__ = [
    'ensure_permission', 'define', 'create_permission', 'find', 'get_permission',
    'list_by_module', 'list_permissions', 'group_by_module', 'delete_permission',
]
