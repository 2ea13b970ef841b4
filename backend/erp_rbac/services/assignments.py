"""Assignment store: which user holds which role, globally or within one branch.

Assignments are created and deleted, never edited in place. A row with
``branch_id`` NULL is global and applies in every branch context.
"""
from __future__ import annotations
import logging
from typing import List, Optional, Set, Tuple

from sqlalchemy import select

from erp_rbac.errors import DuplicateError, NotFoundError, ValidationError
from erp_rbac.models.authz import Branch, UserRoleAssignment
from erp_rbac.services.cache import mark_user_dirty
from erp_rbac.services.roles import get_role
from erp_rbac.utils.db import get_or_create, finish

logger = logging.getLogger(__name__)


def clean_user_id(user_id) -> str:
    """Canonical user id; the same string keys assignments and cached decisions."""
    cleaned = str(user_id).strip() if user_id is not None else ''
    if not cleaned:
        raise ValidationError('user_id required')
    return cleaned


# --- Branches ---
def ensure_branch(session, code: str, name: str, **details) -> Tuple[Branch, bool]:
    code = (code or '').strip().upper()
    if not code:
        raise ValidationError('branch code required')
    defaults = {'name': name, **details}
    branch, created = get_or_create(session, Branch, defaults=defaults, code=code)
    if not created:
        for key, value in defaults.items():
            if value is not None and getattr(branch, key) != value:
                setattr(branch, key, value)
    return branch, created


def define_branch(session, code: str, name: str, commit: bool = True, **details) -> int:
    branch, created = ensure_branch(session, code, name, **details)
    finish(session, commit)
    if created:
        logger.info('Branch defined: %s (%s)', branch.code, branch.name)
    return branch.id


def find_branch_by_code(session, code: str) -> Optional[Branch]:
    return session.execute(
        select(Branch).where(Branch.code == (code or '').strip().upper())
    ).scalar_one_or_none()


def get_branch(session, branch_id: int) -> Branch:
    branch = session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError('branch not found', branch_id=branch_id)
    return branch


def list_branches(session, active_only: bool = True) -> List[Branch]:
    stmt = select(Branch).order_by(Branch.code.asc())
    if active_only:
        stmt = stmt.where(Branch.is_active.is_(True))
    return list(session.execute(stmt).scalars())


# --- Assignments ---
def _assignment_stmt(user_id: str, role_id: int, branch_id: Optional[int]):
    stmt = select(UserRoleAssignment).where(
        UserRoleAssignment.user_id == user_id,
        UserRoleAssignment.role_id == role_id,
    )
    if branch_id is None:
        return stmt.where(UserRoleAssignment.branch_id.is_(None))
    return stmt.where(UserRoleAssignment.branch_id == branch_id)


def find_assignment(session, user_id, role_id: int, branch_id: Optional[int] = None) -> Optional[UserRoleAssignment]:
    return session.execute(_assignment_stmt(clean_user_id(user_id), role_id, branch_id)).scalar_one_or_none()


def ensure_assignment(session, user_id, role_id: int, branch_id: Optional[int] = None) -> Tuple[UserRoleAssignment, bool]:
    user_id = clean_user_id(user_id)
    get_role(session, role_id)
    if branch_id is not None:
        get_branch(session, branch_id)
    # branch_id=None renders as IS NULL, so the global row is looked up correctly
    row, created = get_or_create(session, UserRoleAssignment, user_id=user_id, role_id=role_id, branch_id=branch_id)
    if created:
        mark_user_dirty(session, user_id)
    return row, created


def assign(session, user_id, role_id: int, branch_id: Optional[int] = None,
           strict: bool = False, commit: bool = True) -> int:
    """Give ``user_id`` the role, globally when ``branch_id`` is None.

    Idempotent: an existing assignment's id is returned. With ``strict`` the
    existing triple raises DuplicateError instead.
    """
    row, created = ensure_assignment(session, user_id, role_id, branch_id)
    if not created and strict:
        raise DuplicateError('assignment exists', user_id=row.user_id, role_id=role_id, branch_id=branch_id)
    finish(session, commit)
    if created:
        logger.info('Role %s assigned to user %s (branch=%s)', role_id, row.user_id, branch_id)
    return row.id


def revoke(session, user_id, role_id: int, branch_id: Optional[int] = None, commit: bool = True) -> bool:
    """Remove one assignment; False (no-op) when it does not exist."""
    row = find_assignment(session, user_id, role_id, branch_id)
    if row is None:
        return False
    uid = row.user_id
    session.delete(row)
    mark_user_dirty(session, uid)
    finish(session, commit)
    logger.info('Role %s revoked from user %s (branch=%s)', role_id, uid, branch_id)
    return True


def roles_for(session, user_id, branch_id: Optional[int] = None) -> Set[int]:
    """Global roles plus, when a branch context is given, roles scoped to that branch."""
    scope = UserRoleAssignment.branch_id.is_(None)
    if branch_id is not None:
        scope = scope | (UserRoleAssignment.branch_id == branch_id)
    stmt = select(UserRoleAssignment.role_id).where(UserRoleAssignment.user_id == clean_user_id(user_id), scope)
    return set(session.execute(stmt).scalars())


def assignments_for(session, user_id) -> List[UserRoleAssignment]:
    stmt = (
        select(UserRoleAssignment)
        .where(UserRoleAssignment.user_id == clean_user_id(user_id))
        .order_by(UserRoleAssignment.id.asc())
    )
    return list(session.execute(stmt).scalars())


def assignments_stmt(branch_id: Optional[int] = None, user_id=None):
    """Assignments across users; with ``branch_id`` only those scoped to that branch."""
    stmt = select(UserRoleAssignment)
    if branch_id is not None:
        stmt = stmt.where(UserRoleAssignment.branch_id == branch_id)
    if user_id is not None:
        stmt = stmt.where(UserRoleAssignment.user_id == clean_user_id(user_id))
    return stmt.order_by(UserRoleAssignment.user_id.asc(), UserRoleAssignment.id.asc())


def list_assignments(session, branch_id: Optional[int] = None) -> List[UserRoleAssignment]:
    return list(session.execute(assignments_stmt(branch_id)).scalars())


def accessible_branch_ids(session, user_id) -> List[int]:
    """Branches the user can act in: every active branch if any assignment is global."""
    rows = assignments_for(session, user_id)
    if any(r.branch_id is None for r in rows):
        return [b.id for b in list_branches(session)]
    scoped = {r.branch_id for r in rows}
    if not scoped:
        return []
    stmt = select(Branch.id).where(Branch.id.in_(scoped), Branch.is_active.is_(True)).order_by(Branch.id.asc())
    return list(session.execute(stmt).scalars())


__all__ = [
    'ensure_branch', 'define_branch', 'find_branch_by_code', 'get_branch', 'list_branches',
    'clean_user_id', 'find_assignment', 'ensure_assignment', 'assign', 'revoke', 'roles_for', 'assignments_for',
    'assignments_stmt', 'list_assignments', 'accessible_branch_ids',
]
