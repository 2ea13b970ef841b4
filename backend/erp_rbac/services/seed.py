"""Idempotent bootstrap of catalog, roles, branches and default assignments.

``seed`` is safe to run on every process start and from several replicas at
once: each row goes through an upsert backed by a unique constraint, and the
whole run is one transaction. Running it twice yields the same tables and a
second report with nothing created.
"""
from __future__ import annotations
import hashlib
import json
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy import select

from erp_rbac.constants.permissions import ACTIONS, MODULES, WILDCARD
from erp_rbac.errors import ValidationError
from erp_rbac.models.authz import Permission, Role, RolePermission
from erp_rbac.services.assignments import ensure_assignment, ensure_branch, find_branch_by_code
from erp_rbac.services.catalog import ensure_permission, find
from erp_rbac.services.grants import format_code, grant_for, normalize_part, parse_grant_code
from erp_rbac.services.roles import ensure_grant, ensure_role, find_role

logger = logging.getLogger(__name__)

GrantRef = Union[str, Tuple[str, str, str]]


@dataclass(frozen=True)
class PermissionDef:
    module: str
    action: str
    resource: str = ''
    description: Optional[str] = None

    @property
    def code(self) -> str:
        return format_code(normalize_part(self.module), normalize_part(self.action), normalize_part(self.resource))


@dataclass(frozen=True)
class RoleDef:
    name: str
    description: Optional[str] = None
    is_system: bool = False
    # dotted codes ('INVENTORY.*', 'SALES.READ.LEAD') or (module, action, resource) tuples
    permissions: Sequence[GrantRef] = ()


@dataclass(frozen=True)
class BranchDef:
    code: str
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    gst_number: Optional[str] = None

    def details(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop('code')
        data.pop('name')
        return data


@dataclass(frozen=True)
class AssignmentDef:
    user_id: str
    role: str
    branch_code: Optional[str] = None


@dataclass
class SeedReport:
    permissions_created: int = 0
    permissions_existing: int = 0
    roles_created: int = 0
    roles_existing: int = 0
    grants_created: int = 0
    branches_created: int = 0
    assignments_created: int = 0
    skipped_grants: List[Tuple[str, str]] = field(default_factory=list)
    skipped_assignments: List[Tuple[str, str, Optional[str]]] = field(default_factory=list)

    @property
    def created_total(self) -> int:
        return (self.permissions_created + self.roles_created + self.grants_created
                + self.branches_created + self.assignments_created)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['skipped_grants'] = [list(s) for s in self.skipped_grants]
        data['skipped_assignments'] = [list(s) for s in self.skipped_assignments]
        data['created_total'] = self.created_total
        return data


def _resolve(session, ref: GrantRef) -> Optional[Permission]:
    """Catalog row for a role's grant reference, or None when it is not in the catalog."""
    try:
        if isinstance(ref, str):
            triple = parse_grant_code(ref).triple
        else:
            triple = grant_for(*ref).triple
    except ValidationError:
        return None
    module, action, resource = triple
    return find(session, module, action, resource)


def _ref_label(ref: GrantRef) -> str:
    if isinstance(ref, str):
        return ref
    return format_code(*(normalize_part(p) for p in ref))


def seed(session, catalog: Iterable[PermissionDef], roles: Iterable[RoleDef],
         branches: Iterable[BranchDef] = (), assignments: Iterable[AssignmentDef] = (),
         commit: bool = True) -> SeedReport:
    """Upsert everything declared; references the catalog lacks are skipped and reported."""
    report = SeedReport()
    try:
        for perm in catalog:
            _, created = ensure_permission(session, perm.module, perm.action, perm.resource, perm.description)
            if created:
                report.permissions_created += 1
            else:
                report.permissions_existing += 1

        for role_def in roles:
            role, created = ensure_role(session, role_def.name, role_def.description, role_def.is_system)
            if created:
                report.roles_created += 1
            else:
                report.roles_existing += 1
            for ref in role_def.permissions:
                perm = _resolve(session, ref)
                if perm is None:
                    label = _ref_label(ref)
                    logger.warning('Seed: role %s references unknown permission %s; skipped', role.name, label)
                    report.skipped_grants.append((role.name, label))
                    continue
                if ensure_grant(session, role, perm):
                    report.grants_created += 1

        for branch_def in branches:
            _, created = ensure_branch(session, branch_def.code, branch_def.name, **branch_def.details())
            if created:
                report.branches_created += 1

        for item in assignments:
            role = find_role(session, item.role)
            branch = find_branch_by_code(session, item.branch_code) if item.branch_code else None
            if role is None or (item.branch_code and branch is None):
                logger.warning('Seed: assignment %s -> %s@%s unresolved; skipped',
                               item.user_id, item.role, item.branch_code or 'global')
                report.skipped_assignments.append((item.user_id, item.role, item.branch_code))
                continue
            _, created = ensure_assignment(session, item.user_id, role.id, branch.id if branch else None)
            if created:
                report.assignments_created += 1

        if commit:
            session.commit()
        else:
            session.flush()
    except Exception:
        session.rollback()
        raise
    logger.info(
        'Seed finished: %d permissions, %d roles, %d grants, %d branches, %d assignments created; %d grants skipped',
        report.permissions_created, report.roles_created, report.grants_created,
        report.branches_created, report.assignments_created, len(report.skipped_grants),
    )
    return report


def seed_defaults(session, admin_user_id: Optional[str] = 'system_admin', include_demo: bool = False,
                  commit: bool = True) -> SeedReport:
    """Seed the steel-ERP catalog, system roles, branches and the bootstrap administrator."""
    from erp_rbac.seeds import defaults  # defaults imports the *Def types from here

    assignments: List[AssignmentDef] = []
    if admin_user_id:
        assignments.append(defaults.admin_assignment(admin_user_id))
    if include_demo:
        assignments.extend(defaults.DEMO_ASSIGNMENTS)
    return seed(
        session,
        defaults.DEFAULT_PERMISSIONS,
        defaults.DEFAULT_ROLES,
        branches=defaults.DEFAULT_BRANCHES,
        assignments=assignments,
        commit=commit,
    )


def role_permission_map(session) -> Dict[str, List[str]]:
    stmt = (
        select(Role.name, Permission.module, Permission.action, Permission.resource)
        .join(RolePermission, RolePermission.role_id == Role.id)
        .join(Permission, Permission.id == RolePermission.permission_id)
    )
    mapping: Dict[str, set] = {name: set() for name in session.execute(select(Role.name)).scalars()}
    for name, module, action, resource in session.execute(stmt).all():
        mapping[name].add(format_code(module, action, resource))
    return {name: sorted(codes) for name, codes in mapping.items()}


def role_checksum(mapping: Dict[str, List[str]]) -> str:
    canonical = json.dumps(mapping, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


def validate_catalog(session, modules: Iterable[str] = MODULES, actions: Iterable[str] = ACTIONS) -> List[str]:
    """Problems found in stored permissions: unknown modules or actions, illegal wildcard shapes."""
    known_modules = set(modules) | {WILDCARD}
    known_actions = set(actions) | {WILDCARD}
    problems = []
    for perm in session.execute(select(Permission).order_by(Permission.id.asc())).scalars():
        try:
            grant_for(perm.module, perm.action, perm.resource)
        except ValidationError as exc:
            problems.append(f'Invalid wildcard shape in {perm.code}: {exc.detail}')
            continue
        if perm.module not in known_modules:
            problems.append(f"Unknown module '{perm.module}' in {perm.code}")
        if perm.action not in known_actions:
            problems.append(f"Unknown action '{perm.action}' for module '{perm.module}' in {perm.code}")
    return problems


__all__ = [
    'PermissionDef', 'RoleDef', 'BranchDef', 'AssignmentDef', 'SeedReport',
    'seed', 'seed_defaults', 'role_permission_map', 'role_checksum', 'validate_catalog',
]
