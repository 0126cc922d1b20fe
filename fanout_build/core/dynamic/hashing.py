from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from fanout_build.core.dynamic.shapes import as_shape
from fanout_build.core.errors import CacheMissError, DynamicBranchError

if TYPE_CHECKING:
    from fanout_build.core.session.session import BuildSession

logger = logging.getLogger(__name__)


def dynamic_hashes(value: Any, jobs: int = 1) -> list[str]:
    """Per-element digests of ``value``.

    With jobs > 1 the elements are hashed on a thread pool; if any worker
    fails the whole list is recomputed sequentially.
    """
    shape = as_shape(value)
    n = shape.size
    if jobs <= 1 or n < 2:
        return [shape.digest(i) for i in range(n)]
    try:
        with ThreadPoolExecutor(max_workers=min(jobs, n)) as ex:
            return list(ex.map(shape.digest, range(n)))
    except Exception as e:
        logger.debug("parallel hashing failed (%s), retrying sequentially", e)
        return [shape.digest(i) for i in range(n)]


def read_dynamic_hashes(target: str, session: BuildSession) -> list[str]:
    """Element digests of ``target``, computed and memoized in meta if absent."""
    meta = session.cache.get_meta(target)
    if meta is None:
        raise CacheMissError(
            code="E_CACHE_MISSING",
            message="cannot read element hashes: target has no cache entry",
            target=target,
        )
    if meta.dynamic_hashes is None:
        value = session.cache.get(target)
        hashes = dynamic_hashes(value, session.config.jobs_preprocess)
        meta = replace(meta, dynamic_hashes=hashes)
        session.cache.set_meta(target, meta)
    return list(meta.dynamic_hashes or [])


def get_dynamic_size(target: str, session: BuildSession) -> int:
    if session.ht_dynamic_size.exists(target):
        return session.ht_dynamic_size.get(target)
    meta = session.cache.get_meta(target)
    if meta is None:
        raise CacheMissError(
            code="E_CACHE_MISSING",
            message="cannot read element count: target has no cache entry",
            target=target,
        )
    if meta.size < 1:
        raise DynamicBranchError(
            code="E_DYNAMIC_EMPTY",
            message="cannot branch over a value with no elements",
            target=target,
        )
    session.ht_dynamic_size.set(target, meta.size)
    return meta.size
