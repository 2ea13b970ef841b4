"""Environment-driven defaults for the application config.

Values come from the process environment (a ``.env`` file is loaded by the
app factory); ``create_app(config)`` overrides win over both.
"""
import os

DEFAULT_LIMIT = 50
MAX_LIMIT = 200

_TRUE = {'1', 'true', 'yes', 'on'}


def env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE


def load_settings():
    return {
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO').upper(),
        # per (user, branch) grant cache in front of the decision procedure
        'AUTHZ_DECISION_CACHE': env_flag('AUTHZ_DECISION_CACHE', True),
        'AUTHZ_SEED_ON_STARTUP': env_flag('AUTHZ_SEED_ON_STARTUP', False),
        'AUTHZ_SEED_ADMIN_USER': os.getenv('AUTHZ_SEED_ADMIN_USER', 'system_admin'),
    }


def normalize_pagination(limit_raw, offset_raw):
    try:
        limit = int(limit_raw) if limit_raw is not None else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    return max(1, min(limit, MAX_LIMIT)), max(0, offset)
