from functools import wraps
from typing import Optional
from flask import g, request
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity
from erp_rbac import get_db
from erp_rbac.constants.permissions import BRANCH_HEADER
from erp_rbac.errors import NotFoundError, PermissionDenied
from erp_rbac.services.assignments import find_branch_by_code
from erp_rbac.services.policy import check


def current_branch_id() -> Optional[int]:
    """Branch context from the X-Branch-Id header: a branch id or a branch code."""
    raw = (request.headers.get(BRANCH_HEADER) or '').strip()
    if not raw:
        return None
    if raw.isdigit():
        return int(raw)
    branch = find_branch_by_code(get_db(), raw)
    if branch is None:
        raise NotFoundError('unknown branch', branch=raw)
    return branch.id


def require_permission(module: str, action: str, resource: str = ''):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            decision = check(get_db(), get_jwt_identity(), current_branch_id(), module, action, resource)
            if not decision.allowed:
                raise PermissionDenied(decision)
            g.authz_decision = decision
            return fn(*args, **kwargs)
        return wrapper
    return outer
