from __future__ import annotations
import hashlib
import json
from typing import Callable, Iterable, List

from flask import request, make_response
from sqlalchemy import select, func

from erp_rbac.config.settings import normalize_pagination
from erp_rbac.errors import ValidationError


def compute_etag(ids: Iterable, total: int, limit: int, offset: int, content: str = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{content}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def content_digest(rows: list) -> str:
    """Digest of the serialized page; grants and renames change it without touching ids."""
    return hashlib.sha256(json.dumps(rows, sort_keys=True, default=str).encode()).hexdigest()


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def paginate(session, stmt, serialize: Callable) -> tuple:
    """Run ``stmt`` with the request's limit/offset; returns (rows, total, limit, offset)."""
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        raise ValidationError(str(e))
    total = session.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows: List[dict] = [serialize(obj) for obj in session.execute(stmt.offset(offset).limit(limit)).scalars()]
    return rows, total, limit, offset


def list_response(session, stmt, serialize: Callable, **extra):
    """Paginated JSON list with an ETag; answers 304 when If-None-Match matches."""
    rows, total, limit, offset = paginate(session, stmt, serialize)
    etag = compute_etag([r.get('id') for r in rows], total, limit, offset, content_digest(rows))
    if request.headers.get('If-None-Match') == etag:
        resp = make_response('', 304)
    else:
        payload = build_list_payload(rows, total, limit, offset)
        payload.update(extra)
        resp = make_response(payload)
    resp.headers['ETag'] = etag
    return resp
