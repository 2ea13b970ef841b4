"""Error taxonomy for authorization administration.

Mutating operations raise these; the app factory maps each to its HTTP status
with the standard JSON error body. Authorization DENY results are NOT errors:
the decision procedure returns them as values (see services.policy).
"""
from __future__ import annotations
from typing import Any, Dict


class AuthzError(Exception):
    status = 400
    title = 'Bad Request'
    code = 'AUTHZ_ERROR'

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            'status': self.status,
            'title': self.title,
            'code': self.code,
            'detail': self.detail,
        }
        if self.context:
            payload['context'] = self.context
        return {'error': payload}


class ValidationError(AuthzError):
    status = 400
    title = 'Bad Request'
    code = 'VALIDATION'


class NotFoundError(AuthzError):
    status = 404
    title = 'Not Found'
    code = 'NOT_FOUND'


class DuplicateError(AuthzError):
    status = 409
    title = 'Conflict'
    code = 'DUPLICATE'


class ConflictError(AuthzError):
    status = 409
    title = 'Conflict'
    code = 'CONFLICT'


class PermissionDenied(AuthzError):
    """Raised by the HTTP guard only, carrying the DENY reason of a decision."""
    status = 403
    title = 'Forbidden'
    code = 'PERMISSION_DENIED'

    def __init__(self, decision):
        reason = decision.reason.value if decision.reason else None
        super().__init__(
            f'Insufficient permissions for {decision.code}',
            reason=reason,
            permission=decision.code,
        )
        self.decision = decision


__all__ = [
    'AuthzError', 'ValidationError', 'NotFoundError', 'DuplicateError', 'ConflictError', 'PermissionDenied'
]
