from flask import Blueprint, request
from flask_jwt_extended import jwt_required, get_jwt_identity
from sqlalchemy import select
from erp_rbac import get_db
from erp_rbac.constants.permissions import (
    WILDCARD, RBAC_PERMISSIONS, RBAC_ROLES, RBAC_USER_ROLES, RBAC_USER_PERMISSIONS, RBAC_USERS,
)
from erp_rbac.decorators.audit import audit_log
from erp_rbac.decorators.auth import require_permission, current_branch_id
from erp_rbac.errors import ValidationError
from erp_rbac.models.audit import AuditLog
from erp_rbac.models.authz import Permission, Role
from erp_rbac.services import catalog, roles, assignments
from erp_rbac.services.policy import check, describe_access
from erp_rbac.services.seed import seed_defaults
from erp_rbac.utils.listing import list_response

iam_bp = Blueprint('iam', __name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('JSON object body required')
    return data


def _int_field(data: dict, key: str, required: bool = True):
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f'{key} required')
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{key} must be int')
    return value


def _int_list(data: dict, key: str):
    values = data.get(key) or []
    if not isinstance(values, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in values):
        raise ValidationError(f'{key} must be list[int]')
    return values


def _branch_arg():
    raw = request.args.get('branch_id')
    if raw is None or raw == '':
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError('branch_id must be int')


def _permission_dict(p: Permission):
    return {
        'id': p.id,
        'code': p.code,
        'module': p.module,
        'action': p.action,
        'resource': p.resource,
        'description': p.description,
    }


def _role_dict(r: Role):
    return {
        'id': r.id,
        'name': r.name,
        'description': r.description,
        'is_system': r.is_system,
        'permissions': sorted(rp.permission.code for rp in r.permissions),
    }


def _assignment_dict(a):
    return {
        'id': a.id,
        'user_id': a.user_id,
        'role_id': a.role_id,
        'role': a.role.name if a.role else None,
        'branch_id': a.branch_id,
        'branch_code': a.branch.code if a.branch else None,
    }


# --- Permission catalog ---
@iam_bp.get('/permissions')
@require_permission('RBAC', 'READ', RBAC_PERMISSIONS)
def list_permissions():
    session = get_db()
    module = request.args.get('module')
    if request.args.get('grouped') in ('1', 'true'):
        grouped = catalog.group_by_module(catalog.list_permissions(session, module))
        return {'modules': {m: [_permission_dict(p) for p in perms] for m, perms in grouped.items()}}
    stmt = select(Permission).order_by(Permission.module.asc(), Permission.action.asc(), Permission.resource.asc())
    if module:
        stmt = stmt.where(Permission.module == module.strip().upper())
    return list_response(session, stmt, _permission_dict)


@iam_bp.post('/permissions')
@require_permission('RBAC', 'CREATE', RBAC_PERMISSIONS)
@audit_log('PERMISSION.CREATE', entity='Permission', entity_id_key='id', meta_keys=['code'])
def create_permission():
    data = _json_body()
    perm = catalog.create_permission(
        get_db(), data.get('module'), data.get('action'), data.get('resource') or '', data.get('description'),
    )
    return _permission_dict(perm), 201


@iam_bp.delete('/permissions/<int:permission_id>')
@require_permission('RBAC', 'DELETE', RBAC_PERMISSIONS)
@audit_log('PERMISSION.DELETE', entity='Permission', entity_id_arg='permission_id')
def delete_permission(permission_id: int):
    catalog.delete_permission(get_db(), permission_id)
    return {'status': 'deleted', 'id': permission_id}


# --- Roles ---
@iam_bp.get('/roles')
@require_permission('RBAC', 'READ', RBAC_ROLES)
def list_roles():
    return list_response(get_db(), select(Role).order_by(Role.id.asc()), _role_dict)


@iam_bp.get('/roles/<int:role_id>')
@require_permission('RBAC', 'READ', RBAC_ROLES)
def get_role(role_id: int):
    role = roles.get_role(get_db(), role_id)
    payload = _role_dict(role)
    payload['assignments'] = roles.count_assignments(get_db(), role.id)
    return payload


@iam_bp.post('/roles')
@require_permission('RBAC', 'CREATE', RBAC_ROLES)
@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name', 'permissions'])
def create_role():
    data = _json_body()
    session = get_db()
    permission_ids = _int_list(data, 'permission_ids')
    role = roles.create_role(session, data.get('name'), data.get('description'), commit=False)
    if permission_ids:
        roles.set_role_permissions(session, role.id, permission_ids, commit=False)
    session.commit()
    return _role_dict(role), 201


@iam_bp.put('/roles/<int:role_id>')
@require_permission('RBAC', 'UPDATE', RBAC_ROLES)
@audit_log('ROLE.UPDATE', entity='Role', entity_id_key='id', meta_keys=['name', 'description'])
def update_role(role_id: int):
    data = _json_body()
    role = roles.update_role(get_db(), role_id, name=data.get('name'), description=data.get('description'))
    return _role_dict(role)


@iam_bp.put('/roles/<int:role_id>/permissions')
@require_permission('RBAC', 'UPDATE', RBAC_ROLES)
@audit_log(
    'ROLE.PERM.REPLACE',
    entity='Role',
    entity_id_key='id',
    meta_builder=lambda data, a, kw: {'count': len(data.get('permissions', []))},
)
def replace_role_permissions(role_id: int):
    data = _json_body()
    role = roles.set_role_permissions(get_db(), role_id, _int_list(data, 'permission_ids'))
    return _role_dict(role)


@iam_bp.post('/roles/<int:role_id>/permissions/<int:permission_id>')
@require_permission('RBAC', 'UPDATE', RBAC_ROLES)
@audit_log('ROLE.PERM.GRANT', entity='Role', entity_id_arg='role_id', meta_keys=['permission_id', 'granted'])
def grant_role_permission(role_id: int, permission_id: int):
    created = roles.grant_permission(get_db(), role_id, permission_id)
    return {'role_id': role_id, 'permission_id': permission_id, 'granted': created}, 201 if created else 200


@iam_bp.delete('/roles/<int:role_id>/permissions/<int:permission_id>')
@require_permission('RBAC', 'UPDATE', RBAC_ROLES)
@audit_log('ROLE.PERM.REVOKE', entity='Role', entity_id_arg='role_id', meta_keys=['permission_id', 'revoked'])
def revoke_role_permission(role_id: int, permission_id: int):
    removed = roles.revoke_permission(get_db(), role_id, permission_id)
    return {'role_id': role_id, 'permission_id': permission_id, 'revoked': removed}


@iam_bp.delete('/roles/<int:role_id>')
@require_permission('RBAC', 'DELETE', RBAC_ROLES)
@audit_log('ROLE.DELETE', entity='Role', entity_id_arg='role_id')
def delete_role(role_id: int):
    roles.delete_role(get_db(), role_id)
    return {'status': 'deleted', 'id': role_id}


# --- Assignments ---
@iam_bp.get('/assignments')
@require_permission('RBAC', 'READ', RBAC_USERS)
def list_assignments():
    stmt = assignments.assignments_stmt(_branch_arg(), request.args.get('user_id') or None)
    return list_response(get_db(), stmt, _assignment_dict)


@iam_bp.post('/assignments')
@require_permission('RBAC', 'CREATE', RBAC_USER_ROLES)
@audit_log('ASSIGNMENT.CREATE', entity='Assignment', entity_id_key='id', meta_keys=['user_id', 'role_id', 'branch_id'])
def create_assignment():
    data = _json_body()
    session = get_db()
    user_id = data.get('user_id')
    role_id = _int_field(data, 'role_id')
    branch_id = _int_field(data, 'branch_id', required=False)
    existed = assignments.find_assignment(session, user_id, role_id, branch_id) is not None
    assignments.assign(session, user_id, role_id, branch_id, strict=bool(data.get('strict', False)))
    row = assignments.find_assignment(session, user_id, role_id, branch_id)
    return _assignment_dict(row), 200 if existed else 201


@iam_bp.delete('/assignments')
@require_permission('RBAC', 'DELETE', RBAC_USER_ROLES)
@audit_log('ASSIGNMENT.DELETE', entity='Assignment', meta_keys=['user_id', 'role_id', 'branch_id', 'revoked'])
def delete_assignment():
    data = _json_body()
    role_id = _int_field(data, 'role_id')
    branch_id = _int_field(data, 'branch_id', required=False)
    removed = assignments.revoke(get_db(), data.get('user_id'), role_id, branch_id)
    return {'user_id': data.get('user_id'), 'role_id': role_id, 'branch_id': branch_id, 'revoked': removed}


# --- Effective permissions & checks ---
@iam_bp.get('/users/<user_id>/permissions')
@require_permission('RBAC', 'READ', RBAC_USER_PERMISSIONS)
def user_permissions(user_id: str):
    session = get_db()
    payload = describe_access(session, user_id, _branch_arg())
    payload['assignments'] = [_assignment_dict(a) for a in assignments.assignments_for(session, user_id)]
    return payload


@iam_bp.post('/users/<user_id>/check')
@require_permission('RBAC', 'READ', RBAC_USER_PERMISSIONS)
def user_check(user_id: str):
    data = _json_body()
    if not data.get('module') or not data.get('action'):
        raise ValidationError('module & action required')
    decision = check(
        get_db(), user_id, _int_field(data, 'branch_id', required=False),
        data['module'], data['action'], data.get('resource') or '',
    )
    return decision.to_dict()


@iam_bp.get('/me/permissions')
@jwt_required()
def my_permissions():
    return describe_access(get_db(), get_jwt_identity(), current_branch_id())


@iam_bp.get('/me/branches')
@jwt_required()
def my_branches():
    session = get_db()
    ids = assignments.accessible_branch_ids(session, get_jwt_identity())
    branches = [assignments.get_branch(session, bid) for bid in ids]
    return {'data': [{'id': b.id, 'code': b.code, 'name': b.name, 'city': b.city} for b in branches]}


# --- Bootstrap ---
# only the global wildcard covers ('*', '*', '*'), so this is SUPER_ADMIN only
@iam_bp.post('/initialize')
@require_permission(WILDCARD, WILDCARD, WILDCARD)
@audit_log('RBAC.INITIALIZE', meta_keys=['created_total', 'skipped_grants'])
def initialize():
    report = seed_defaults(get_db(), admin_user_id=None)
    return report.to_dict()


# --- Audit Log Listing ---
@iam_bp.get('/audit/logs')
@require_permission('ADMIN', 'READ', 'AUDIT_LOG')
def list_audit_logs():
    stmt = select(AuditLog)
    for key in ('actor_user_id', 'action', 'entity', 'entity_id'):
        value = request.args.get(key)
        if value:
            stmt = stmt.where(getattr(AuditLog, key) == value)
    stmt = stmt.order_by(AuditLog.id.desc())
    return list_response(get_db(), stmt, lambda r: {
        'id': r.id,
        'actor_user_id': r.actor_user_id,
        'action': r.action,
        'entity': r.entity,
        'entity_id': r.entity_id,
        'meta': r.meta,
        'created_at': r.created_at.isoformat() if r.created_at else None,
    })
