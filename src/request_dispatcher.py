"""
Request Dispatcher - Deduplicates request triggers and submits them in the background

Stremio players tend to open the placeholder stream several times in a row.
Every accepted trigger leaves an entry in the pending table; further triggers
with the same fingerprint are dropped until the entry is older than the TTL.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, NamedTuple, Optional, Tuple

from config_codec import UserConfig
from overseerr_requester import OverseerrRequester, RequestError, RequestIntent

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_TTL_SECONDS = 30 * 60
DEFAULT_CLEANUP_INTERVAL_SECONDS = 5 * 60
DEFAULT_MAX_WORKERS = 4
RECENT_FAILURES_KEPT = 20


class RequestFingerprint(NamedTuple):
    """Identifies one request to one Overseerr instance under one API key"""

    server_url: str
    api_key: str
    tmdb_id: int
    season: Optional[int]
    intent_kind: str


@dataclass(frozen=True)
class PendingRequestEntry:
    created_at: float
    title: str


def make_fingerprint(config: UserConfig, tmdb_id: int, intent: RequestIntent) -> RequestFingerprint:
    return RequestFingerprint(
        server_url=config.overseerr_url.rstrip("/"),
        api_key=config.overseerr_api_key,
        tmdb_id=int(tmdb_id),
        season=intent.season,
        intent_kind=intent.kind,
    )


class PendingRequestTable:
    """Thread-safe map of fingerprints to the time they were dispatched"""

    def __init__(self, ttl_seconds: float = DEFAULT_DEDUP_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        if ttl_seconds <= 0:
            raise ValueError("Dedup TTL must be positive")
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[RequestFingerprint, PendingRequestEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def claim(self, fingerprint: RequestFingerprint, title: str) -> bool:
        """Insert an entry unless a live one exists

        Returns:
            True if the caller now owns the dispatch, False if it is a duplicate
        """
        with self._lock:
            now = self.clock()
            existing = self._entries.get(fingerprint)
            if existing and now - existing.created_at < self.ttl_seconds:
                return False
            self._entries[fingerprint] = PendingRequestEntry(created_at=now, title=title)
            return True

    def sweep(self) -> Tuple[int, int]:
        """Drop expired entries

        Returns:
            (removed, remaining)
        """
        with self._lock:
            now = self.clock()
            expired = [fp for fp, entry in self._entries.items()
                       if now - entry.created_at >= self.ttl_seconds]
            for fp in expired:
                del self._entries[fp]
            return len(expired), len(self._entries)

    def snapshot(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Sample of current entries for the health endpoint, newest first"""
        with self._lock:
            now = self.clock()
            items = sorted(self._entries.items(), key=lambda item: item[1].created_at, reverse=True)

        sample = []
        for fp, entry in items[:limit]:
            sample.append({
                "title": entry.title,
                "tmdb_id": fp.tmdb_id,
                "request_type": fp.intent_kind,
                "season": fp.season,
                "age_seconds": round(now - entry.created_at, 1),
                "expires_in_seconds": round(max(self.ttl_seconds - (now - entry.created_at), 0), 1),
            })
        return sample


class RequestDispatcher:
    """Decides whether a trigger becomes an Overseerr request and submits it"""

    def __init__(self, table: PendingRequestTable,
                 requester_factory: Callable[[UserConfig], OverseerrRequester],
                 executor: Optional[Executor] = None,
                 max_workers: int = DEFAULT_MAX_WORKERS):
        self.table = table
        self.requester_factory = requester_factory
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="overseerr-dispatch"
        )
        self._stats_lock = threading.Lock()
        self._stats = {"dispatched": 0, "suppressed": 0, "succeeded": 0, "failed": 0}
        self._recent_failures: Deque[Dict[str, Any]] = deque(maxlen=RECENT_FAILURES_KEPT)

    def dispatch(self, config: UserConfig, tmdb_id: int, title: str,
                 media_kind: str, intent: RequestIntent) -> bool:
        """Submit a request unless an identical one is still pending

        Returns immediately; the Overseerr call runs on the executor.

        Returns:
            True if a submission was scheduled, False if it was suppressed
        """
        fingerprint = make_fingerprint(config, tmdb_id, intent)

        if not self.table.claim(fingerprint, title):
            self._count("suppressed")
            logger.info(f"Skipping duplicate {intent.describe()} request for {title} (TMDB {tmdb_id})")
            return False

        self._count("dispatched")
        logger.info(f"Dispatching {intent.describe()} request for {title} (TMDB {tmdb_id})")
        self.executor.submit(self._submit, config, tmdb_id, title, media_kind, intent)
        return True

    def cleanup(self) -> Tuple[int, int]:
        removed, remaining = self.table.sweep()
        if removed:
            logger.info(f"Cleaned up {removed} expired pending request(s), {remaining} remaining")
        return removed, remaining

    def stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats: Dict[str, Any] = dict(self._stats)
            stats["recent_failures"] = list(self._recent_failures)
        return stats

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    def _submit(self, config: UserConfig, tmdb_id: int, title: str,
                media_kind: str, intent: RequestIntent) -> None:
        try:
            requester = self.requester_factory(config)
            request_id = requester.submit(tmdb_id, media_kind, intent)
        except (RequestError, ValueError) as e:
            self._record_failure(title, tmdb_id, intent, str(e))
            logger.error(f"Request failed for {title} (TMDB {tmdb_id}): {str(e)}")
            return
        except Exception as e:
            self._record_failure(title, tmdb_id, intent, str(e))
            logger.exception(f"Unexpected error requesting {title} (TMDB {tmdb_id}): {str(e)}")
            return

        self._count("succeeded")
        logger.info(f"Requested {title} in Overseerr - Request ID: {request_id}")

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self._stats[key] += 1

    def _record_failure(self, title: str, tmdb_id: int, intent: RequestIntent, error: str) -> None:
        with self._stats_lock:
            self._stats["failed"] += 1
            self._recent_failures.append({
                "title": title,
                "tmdb_id": tmdb_id,
                "request_type": intent.kind,
                "season": intent.season,
                "error": error,
                "at": time.time(),
            })


class CleanupSweeper(threading.Thread):
    """Daemon thread that periodically expires pending requests"""

    def __init__(self, dispatcher: RequestDispatcher,
                 interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS):
        super().__init__(name="pending-request-sweeper", daemon=True)
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.interval_seconds):
            try:
                self.dispatcher.cleanup()
            except Exception as e:
                logger.error(f"Error cleaning up pending requests: {str(e)}")

    def stop(self) -> None:
        self._stopped.set()
