"""
Per-employee cache of effective permission sets.

The cache is an optimization for read-only endpoints; nothing that produces an
authorization verdict reads through it. TTL is `APP_PERMISSION_CACHE_TTL_SECONDS`
(0 disables caching, which is the default).

Every mutation that can change someone's effective set must call one of the
invalidation hooks below:

- role permission list changed   -> `invalidate_for_role`
- assignment created / replaced  -> `invalidate_for_nodes` (holder + ancestors)
- override added / removed       -> `invalidate_for_nodes`
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz.models.org import PATH_SEPARATOR, OrgNode
from orgauthz.models.security import Assignment
from orgauthz.settings import get_settings

if TYPE_CHECKING:
    from orgauthz.services.permission_aggregator import EffectivePermissions

logger = logging.getLogger(__name__)


class PermissionCache:
    """In-memory TTL cache keyed by employee id."""

    def __init__(self, ttl_seconds: int) -> None:
        self._ttl = max(int(ttl_seconds), 0)
        self._entries: dict[int, tuple[float, EffectivePermissions]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    def get(self, employee_id: int) -> EffectivePermissions | None:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(employee_id)
            if entry is None:
                return None
            stored_at, value = entry
            if time.monotonic() - stored_at >= self._ttl:
                del self._entries[employee_id]
                return None
            return value

    def set(self, employee_id: int, value: EffectivePermissions) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[employee_id] = (time.monotonic(), value)

    def invalidate(self, employee_id: int) -> None:
        with self._lock:
            self._entries.pop(employee_id, None)

    def invalidate_many(self, employee_ids: Iterable[int]) -> int:
        count = 0
        with self._lock:
            for employee_id in employee_ids:
                if self._entries.pop(employee_id, None) is not None:
                    count += 1
        return count

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


_cache: PermissionCache | None = None


def get_permission_cache() -> PermissionCache:
    global _cache
    if _cache is None:
        _cache = PermissionCache(get_settings().permission_cache_ttl_seconds)
    return _cache


def reset_permission_cache(ttl_seconds: int | None = None) -> PermissionCache:
    """Replace the process-wide cache (tests, settings reload)."""
    global _cache
    ttl = get_settings().permission_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
    _cache = PermissionCache(ttl)
    return _cache


def invalidate(employee_id: int) -> None:
    get_permission_cache().invalidate(employee_id)


def clear() -> None:
    get_permission_cache().clear()


def _ancestor_paths(path: str) -> set[str]:
    parts = path.split(PATH_SEPARATOR)
    return {PATH_SEPARATOR.join(parts[: i + 1]) for i in range(len(parts))}


def invalidate_for_nodes(db: Session, node_ids: Iterable[int | None]) -> int:
    """
    Drop cached sets of everyone holding one of `node_ids` or any ancestor of them.

    Ancestors matter because effective sets aggregate upward through the tree.
    """

    cache = get_permission_cache()
    if not cache.enabled or len(cache) == 0:
        return 0

    ids = {node_id for node_id in node_ids if node_id is not None}
    if not ids:
        return 0

    paths: set[str] = set()
    for path in db.scalars(select(OrgNode.path).where(OrgNode.id.in_(ids))):
        paths |= _ancestor_paths(path)

    holders = db.scalars(
        select(Assignment.employee_id)
        .join(OrgNode, OrgNode.id == Assignment.org_node_id)
        .where(Assignment.is_active.is_(True), OrgNode.path.in_(paths))
    ).all()

    dropped = cache.invalidate_many(holders)
    logger.debug("Permission cache: invalidated %s entries for nodes=%s", dropped, sorted(ids))
    return dropped


def invalidate_for_role(db: Session, role_id: int) -> int:
    cache = get_permission_cache()
    if not cache.enabled or len(cache) == 0:
        return 0

    node_ids = db.scalars(
        select(Assignment.org_node_id).where(Assignment.is_active.is_(True), Assignment.role_id == role_id)
    ).all()
    return invalidate_for_nodes(db, node_ids)
