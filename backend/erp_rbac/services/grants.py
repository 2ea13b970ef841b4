"""Grant variants and matching.

A permission row stores ``(module, action, resource)`` where ``*`` in a column
means "any". Only four shapes are legal and each maps to one variant:

    (M, A, R)      ExactGrant       R may be '' (module/action only)
    (M, A, '*')    ActionWildcard   any resource
    (M, '*', '*')  ModuleWildcard   any action, any resource
    ('*', '*', '*') GlobalWildcard  superuser

Dotted codes (``'*'``, ``'PRODUCTION.*'``, ``'SALES.READ.*'``, ``'SALES.READ.LEAD'``)
are accepted as input and parsed into the same variants.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import ClassVar, Iterable, Optional, Tuple, Union

from erp_rbac.constants.permissions import WILDCARD
from erp_rbac.errors import ValidationError

Triple = Tuple[str, str, str]


def normalize_part(value: Optional[str]) -> str:
    if value is None:
        return ''
    return str(value).strip().upper()


def format_code(module: str, action: str, resource: str = '') -> str:
    if module == WILDCARD:
        return WILDCARD
    if action == WILDCARD:
        return f'{module}.{WILDCARD}'
    if resource:
        return f'{module}.{action}.{resource}'
    return f'{module}.{action}'


@dataclass(frozen=True)
class ExactGrant:
    module: str
    action: str
    resource: str = ''
    precedence: ClassVar[int] = 0

    def covers(self, module: str, action: str, resource: str) -> bool:
        return self.module == module and self.action == action and self.resource == resource

    @property
    def triple(self) -> Triple:
        return (self.module, self.action, self.resource)

    @property
    def code(self) -> str:
        return format_code(*self.triple)


@dataclass(frozen=True)
class ActionWildcard:
    module: str
    action: str
    precedence: ClassVar[int] = 1

    def covers(self, module: str, action: str, resource: str) -> bool:
        return self.module == module and self.action == action

    @property
    def triple(self) -> Triple:
        return (self.module, self.action, WILDCARD)

    @property
    def code(self) -> str:
        return format_code(*self.triple)


@dataclass(frozen=True)
class ModuleWildcard:
    module: str
    precedence: ClassVar[int] = 2

    def covers(self, module: str, action: str, resource: str) -> bool:
        return self.module == module

    @property
    def triple(self) -> Triple:
        return (self.module, WILDCARD, WILDCARD)

    @property
    def code(self) -> str:
        return format_code(*self.triple)


@dataclass(frozen=True)
class GlobalWildcard:
    precedence: ClassVar[int] = 3

    def covers(self, module: str, action: str, resource: str) -> bool:
        return True

    @property
    def triple(self) -> Triple:
        return (WILDCARD, WILDCARD, WILDCARD)

    @property
    def code(self) -> str:
        return WILDCARD


Grant = Union[ExactGrant, ActionWildcard, ModuleWildcard, GlobalWildcard]


def grant_for(module: Optional[str], action: Optional[str], resource: Optional[str] = '') -> Grant:
    """Build the variant for a stored or requested triple; rejects illegal wildcard placement."""
    module, action, resource = normalize_part(module), normalize_part(action), normalize_part(resource)
    if module == WILDCARD:
        if action not in (WILDCARD, '') or resource not in (WILDCARD, ''):
            raise ValidationError('global wildcard must not name an action or resource',
                                  permission=f'{module}.{action}.{resource}')
        return GlobalWildcard()
    if not module:
        raise ValidationError('module required')
    if action == WILDCARD:
        if resource not in (WILDCARD, ''):
            raise ValidationError('module wildcard must not name a resource',
                                  permission=f'{module}.{action}.{resource}')
        return ModuleWildcard(module)
    if not action:
        raise ValidationError('action required', module=module)
    if resource == WILDCARD:
        return ActionWildcard(module, action)
    if WILDCARD in module or WILDCARD in action or WILDCARD in resource:
        raise ValidationError('wildcard must occupy a whole field', permission=f'{module}.{action}.{resource}')
    return ExactGrant(module, action, resource)


def parse_grant_code(code: str) -> Grant:
    """Parse a dotted grant code such as ``PRODUCTION.*`` or ``SALES.READ.LEAD``."""
    raw = (code or '').strip()
    if raw == WILDCARD:
        return GlobalWildcard()
    parts = raw.split('.', 2)
    if len(parts) < 2 or not all(parts):
        raise ValidationError(f"Permission code '{code}' missing MODULE.ACTION pattern")
    module, action = parts[0], parts[1]
    resource = parts[2] if len(parts) == 3 else ''
    return grant_for(module, action, resource)


def best_match(grants: Iterable[Grant], module: str, action: str, resource: str) -> Optional[Grant]:
    """Return the highest-precedence grant covering the request (exact first, global last)."""
    for grant in sorted(grants, key=lambda g: (g.precedence, g.code)):
        if grant.covers(module, action, resource):
            return grant
    return None


__all__ = [
    'Grant', 'ExactGrant', 'ActionWildcard', 'ModuleWildcard', 'GlobalWildcard', 'Triple',
    'normalize_part', 'format_code', 'grant_for', 'parse_grant_code', 'best_match',
]
