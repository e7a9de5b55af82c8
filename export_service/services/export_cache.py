"""TTL cache for terminal export jobs.

Entries are the JSON serialization of a job, so a cache hit returns exactly
what the store read produced when the entry was written.
"""

import json
from typing import Optional

import structlog
from cachetools import TTLCache

from export_service.models.export_job import ExportJob

logger = structlog.get_logger(__name__)

CACHE_KEY_PREFIX = "export:"


def cache_key(job_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}{job_id}"


def serialize_job(job: ExportJob) -> str:
    return json.dumps(job.to_dict(), sort_keys=True)


def deserialize_job(payload: str) -> ExportJob:
    return ExportJob.from_dict(json.loads(payload))


class ExportCache:
    """Key -> serialized job cache with a fixed TTL."""

    def __init__(self, ttl: int = 300, maxsize: int = 1024) -> None:
        self.ttl = ttl
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)

        logger.debug("export_cache_initialized", ttl_seconds=ttl, maxsize=maxsize)

    def get(self, job_id: str) -> Optional[str]:
        return self._cache.get(cache_key(job_id))

    def set(self, job_id: str, payload: str) -> None:
        self._cache[cache_key(job_id)] = payload

    def invalidate(self, job_id: str) -> bool:
        """Drop a cached entry; returns True if one was present."""
        removed = self._cache.pop(cache_key(job_id), None) is not None
        if removed:
            logger.debug("export_cache_invalidated", export_id=job_id)
        return removed

    def clear(self) -> None:
        self._cache.clear()

    def __contains__(self, job_id: str) -> bool:
        return cache_key(job_id) in self._cache

    def __len__(self) -> int:
        return len(self._cache)
