"""Test seeding utilities to reduce duplication.

These helpers create permissions, roles, branches and assignments through the
service layer, so tests exercise the same upserts production code uses.
"""
from typing import Iterable, Dict, Optional
from flask_jwt_extended import create_access_token
from erp_rbac import get_db
from erp_rbac.models.authz import Role, Permission, Branch
from erp_rbac.services import catalog, roles, assignments
from erp_rbac.services.grants import parse_grant_code


def ensure_permissions(codes: Iterable[str]) -> Dict[str, Permission]:
    """Ensure each dotted code (e.g. 'SALES.READ.LEAD', 'PRODUCTION.*') exists; return dict code->Permission."""
    session = get_db()
    out: Dict[str, Permission] = {}
    for code in codes:
        module, action, resource = parse_grant_code(code).triple
        perm_id = catalog.define(session, module, action, resource, description=code)
        out[code] = catalog.get_permission(session, perm_id)
    return out


def ensure_role(name: str, perm_codes: Iterable[str] = (), is_system: bool = False) -> Role:
    session = get_db()
    role_id = roles.define_role(session, name, description=name, is_system=is_system)
    for perm in ensure_permissions(perm_codes).values():
        roles.grant_permission(session, role_id, perm.id)
    return roles.get_role(session, role_id)


def ensure_branch(code: str, name: Optional[str] = None) -> Branch:
    session = get_db()
    branch_id = assignments.define_branch(session, code, name or f'{code} Branch')
    return assignments.get_branch(session, branch_id)


def assign(user_id: str, role: Role, branch: Optional[Branch] = None) -> int:
    return assignments.assign(get_db(), user_id, role.id, branch.id if branch else None)


def seed_user_with_role(user_id: str, role_name: str, perm_codes: Iterable[str], branch: Optional[Branch] = None) -> Role:
    """High level convenience: role (with perms) + assignment, globally or in one branch."""
    role = ensure_role(role_name, perm_codes)
    assign(user_id, role, branch)
    return role


def auth_headers(user_id: str, branch: Optional[Branch] = None) -> Dict[str, str]:
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    headers = {'Authorization': f'Bearer {create_access_token(identity=str(user_id))}'}
    if branch is not None:
        headers['X-Branch-Id'] = str(branch.id)
    return headers


def rbac_admin(user_id: str = 'rbac_admin') -> Dict[str, str]:
    """A user holding RBAC.* globally; returns its auth headers."""
    seed_user_with_role(user_id, 'RBAC_ADMIN', ['RBAC.*'])
    return auth_headers(user_id)


__all__ = [
    'ensure_permissions', 'ensure_role', 'ensure_branch', 'assign', 'seed_user_with_role',
    'auth_headers', 'rbac_admin',
]
