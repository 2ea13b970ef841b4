import erp_rbac
from erp_rbac import create_app
from erp_rbac.services.policy import check
from erp_rbac.services.seed import role_permission_map
from erp_rbac.seeds import defaults

SEEDED_CONFIG = {
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    'JWT_SECRET_KEY': 'test-secret-key-0123456789abcdef0123456789',
    'AUTHZ_DECISION_CACHE': True,
    'AUTHZ_SEED_ON_STARTUP': True,
    'AUTHZ_SEED_ADMIN_USER': 'boot_admin',
    'TESTING': True,
}


def test_healthz(client):
    assert client.get('/healthz').get_json() == {'status': 'ok'}


def test_startup_seed_populates_defaults(monkeypatch):
    # create_app rebinds the module-level engine and session factory
    monkeypatch.setattr(erp_rbac, 'db_engine', erp_rbac.db_engine)
    monkeypatch.setattr(erp_rbac, 'SessionLocal', erp_rbac.SessionLocal)
    app = create_app(SEEDED_CONFIG)
    assert app.config['AUTHZ_SEED_ON_STARTUP'] is True

    session = erp_rbac.SessionLocal()
    try:
        mapping = role_permission_map(session)
        assert sorted(mapping) == sorted(r.name for r in defaults.DEFAULT_ROLES)
        assert mapping['SUPER_ADMIN'] == ['*']
        assert check(session, 'boot_admin', None, 'HR', 'UPDATE', 'PAYROLL').allowed
        assert not check(session, 'system_admin', None, 'HR', 'UPDATE', 'PAYROLL').allowed
    finally:
        erp_rbac.SessionLocal.remove()
