import os, sys, pytest
# Ensure backend directory is on path so 'erp_rbac' can be imported without installing
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
import erp_rbac
from erp_rbac import create_app, get_db
from erp_rbac.models.authz import Base
import erp_rbac.models.audit  # noqa: F401  register audit_logs before create_all
from erp_rbac.services.cache import decision_cache

TEST_CONFIG = {
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    # HS256 keys shorter than 32 bytes trigger warnings in recent PyJWT
    'JWT_SECRET_KEY': 'test-secret-key-0123456789abcdef0123456789',
    'AUTHZ_SEED_ON_STARTUP': False,
    'AUTHZ_DECISION_CACHE': True,
    'TESTING': True,
}

@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = TEST_CONFIG['DATABASE_URL']
    app = create_app(TEST_CONFIG)
    yield app

@pytest.fixture(autouse=True)
def fresh_db(app_instance):
    """Empty schema, empty decision cache and one app context per test."""
    erp_rbac.SessionLocal.remove()
    Base.metadata.drop_all(erp_rbac.db_engine)
    Base.metadata.create_all(erp_rbac.db_engine)
    decision_cache.enabled = True
    decision_cache.clear()
    with app_instance.app_context():
        yield
    erp_rbac.SessionLocal.remove()

@pytest.fixture()
def session():
    return get_db()

@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()
