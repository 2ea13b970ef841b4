from erp_rbac.errors import NotFoundError, PermissionDenied
from erp_rbac.services.policy import Decision, DenyReason
from tests.test_utils_seed import rbac_admin


def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert 'error' in body
    assert body['error']['status'] == 404
    assert 'detail' in body['error']


def test_missing_entity_uses_authz_error_shape(client):
    headers = rbac_admin()
    resp = client.get('/iam/roles/4242', headers=headers)
    assert resp.status_code == 404
    body = resp.get_json()['error']
    assert body['code'] == 'NOT_FOUND'
    assert body['title'] == 'Not Found'


def test_non_object_body_is_validation_error(client):
    headers = rbac_admin()
    resp = client.post('/iam/roles', json=['not', 'an', 'object'], headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'JSON object body required'


def test_internal_error_shape(client, monkeypatch):
    headers = rbac_admin()
    import erp_rbac.routes.iam as iam_mod

    class BoomSession:
        def execute(self, *a, **k):
            raise RuntimeError('explode')

        def rollback(self):
            pass
    # guard resolves with the real session; only the listing breaks
    monkeypatch.setattr(iam_mod, 'get_db', lambda: BoomSession())
    resp = client.get('/iam/roles', headers=headers)
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error']['status'] == 500
    assert body['error']['title'] == 'Internal Server Error'


def test_error_payloads():
    err = NotFoundError('role not found', role_id=7)
    assert err.to_dict() == {'error': {
        'status': 404, 'title': 'Not Found', 'code': 'NOT_FOUND', 'detail': 'role not found',
        'context': {'role_id': 7},
    }}
    decision = Decision('U1', 3, 'SALES', 'APPROVE', 'DISCOUNT', False, DenyReason.PERMISSION_NOT_GRANTED)
    denied = PermissionDenied(decision)
    assert denied.status == 403
    assert denied.context == {'reason': 'PermissionNotGranted', 'permission': 'SALES.APPROVE.DISCOUNT'}
    assert denied.decision is decision
