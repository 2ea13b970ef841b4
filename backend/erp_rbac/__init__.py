from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _sqlite_transactions(engine):
    """Let SQLAlchemy own BEGIN so SAVEPOINT-based upserts work on pysqlite."""
    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    @event.listens_for(engine, 'begin')
    def _on_begin(conn):
        conn.exec_driver_sql('BEGIN')


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    from erp_rbac.config.settings import load_settings
    app = Flask(__name__)
    app.config.update(load_settings())

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger('erp_rbac').setLevel(app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False)
    if db_engine.dialect.name == 'sqlite':
        _sqlite_transactions(db_engine)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from erp_rbac.services.cache import decision_cache
    decision_cache.enabled = bool(app.config['AUTHZ_DECISION_CACHE'])
    decision_cache.clear()

    from .routes.iam import iam_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.teardown_appcontext
    def remove_session(exc):
        SessionLocal.remove()

    from erp_rbac.errors import AuthzError

    @app.errorhandler(AuthzError)
    def handle_authz_error(e):  # type: ignore
        SessionLocal().rollback()
        if e.status == 403:
            app.logger.info('Access denied: %s', e.context)
        return e.to_dict(), e.status

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception
        SessionLocal().rollback()
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    if app.config.get('AUTHZ_SEED_ON_STARTUP'):
        from erp_rbac.models.authz import Base
        from erp_rbac.models import audit  # noqa: F401  registers audit_logs on Base
        from erp_rbac.services.seed import seed_defaults
        # Lightweight bootstrap; real deployments run `alembic upgrade head` first
        Base.metadata.create_all(db_engine)
        report = seed_defaults(SessionLocal(), admin_user_id=app.config.get('AUTHZ_SEED_ADMIN_USER'))
        SessionLocal.remove()
        app.logger.info('Startup seed: %d rows created', report.created_total)

    return app


def get_db():
    return SessionLocal()
