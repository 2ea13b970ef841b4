from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt_identity
from erp_rbac.models.audit import AuditLog


def current_actor() -> Optional[str]:
    """Identity of the authenticated caller, or None outside a verified request."""
    try:
        ident = get_jwt_identity()
    except RuntimeError:
        # no request context or no JWT verified (seed script, tests)
        return None
    return str(ident) if ident is not None else None


def add_audit(session, action: str, entity: Optional[str] = None, entity_id: Optional[Any] = None,
              meta: Optional[Dict[str, Any]] = None, actor: Optional[str] = None):
    """Add an audit log entry to ``session``.

    Parameters:
      action: short action code e.g. ROLE.CREATE, ROLE.PERM.GRANT, ASSIGNMENT.CREATE
      entity: optional entity name (Role, Permission, Assignment)
      entity_id: optional primary key, stored as string
      meta: additional JSON-safe dictionary (shallow copied)
    """
    log = AuditLog(
        actor_user_id=actor if actor is not None else current_actor(),
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
