"""In-process cache of resolved grants per (user_id, branch_id).

Invalidation contract:
  * every mutator that can change a user's transitive permission set marks the
    session (``mark_user_dirty`` / ``mark_all_dirty``); the mark drops matching
    entries immediately and again once the transaction commits or rolls back.
  * each drop bumps ``generation``; a reader stores its result only if the
    generation did not move while it was reading, so a read racing a revoke
    is discarded instead of cached.
Stale entries can therefore only err towards DENY, never ALLOW.
"""
from __future__ import annotations
import logging
import threading
from typing import Dict, FrozenSet, Hashable, Optional, Tuple

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, Optional[int]]
CacheValue = Tuple[FrozenSet[int], FrozenSet[Hashable]]

_PENDING_KEY = 'authz_cache_invalidations'
_ALL = '__all__'


class DecisionCache:
    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._lock = threading.Lock()
        self._entries: Dict[CacheKey, CacheValue] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, user_id: str, branch_id: Optional[int]) -> Optional[CacheValue]:
        if not self.enabled:
            return None
        with self._lock:
            hit = self._entries.get((user_id, branch_id))
        if hit is not None:
            logger.debug('Decision cache hit user=%s branch=%s', user_id, branch_id)
        return hit

    def put(self, user_id: str, branch_id: Optional[int], value: CacheValue, generation: int) -> bool:
        if not self.enabled:
            return False
        with self._lock:
            if generation != self._generation:
                return False
            self._entries[(user_id, branch_id)] = value
            return True

    def invalidate_user(self, user_id: str) -> None:
        with self._lock:
            self._generation += 1
            for key in [k for k in self._entries if k[0] == user_id]:
                del self._entries[key]
        logger.debug('Decision cache invalidated for user=%s', user_id)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._entries.clear()
        logger.debug('Decision cache cleared')

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


decision_cache = DecisionCache()


def mark_user_dirty(session, user_id: str) -> None:
    decision_cache.invalidate_user(user_id)
    session.info.setdefault(_PENDING_KEY, set()).add(user_id)


def mark_all_dirty(session) -> None:
    decision_cache.clear()
    session.info.setdefault(_PENDING_KEY, set()).add(_ALL)


def _apply_pending(session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    if _ALL in pending:
        decision_cache.clear()
        return
    for user_id in pending:
        decision_cache.invalidate_user(user_id)


@event.listens_for(Session, 'after_commit')
def _invalidate_after_commit(session):
    _apply_pending(session)


@event.listens_for(Session, 'after_rollback')
def _invalidate_after_rollback(session):
    _apply_pending(session)


__all__ = ['DecisionCache', 'decision_cache', 'mark_user_dirty', 'mark_all_dirty']
