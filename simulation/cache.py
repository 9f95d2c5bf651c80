"""
simulation/cache.py - Request cache with in-flight deduplication.

CACHE ENTRY LIFECYCLE CONTRACT:
===============================
  pending -> ready    (computation returned)
  pending -> failed   (computation raised)

  - pending: no result, no error; holds the shared asyncio.Task
  - ready:   result populated; served until expires_at, then a miss
  - failed:  error populated; the next caller recomputes

Every miss sweeps expired and failed entries, so keys that are never
requested again do not accumulate.

Any other transition raises RuntimeError. Transitions run synchronously
between awaits on the event loop, so a reader never observes a
half-populated entry.

JOIN / CANCEL CONTRACT:
  - Every caller of a pending entry (including the one that started it)
    is a joiner and awaits the task through asyncio.shield().
  - A cancelled joiner only decrements the joiner count.
  - The task is cancelled, and the entry dropped, when the last joiner
    leaves before it completes.
===============================
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from core.constants import CacheState
from core.logging import get_logger
from core.time import monotonic_ms

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """One keyed cache slot. Mutated only through resolve()/reject()."""
    fingerprint: str
    created_at_ms: int
    state: CacheState = CacheState.PENDING
    result: Optional[T] = None
    error: Optional[BaseException] = None
    expires_at_ms: Optional[int] = None
    joiners: int = 0
    task: Optional["asyncio.Task[T]"] = field(default=None, repr=False)

    def resolve(self, result: T, ttl_ms: int, now_ms: int) -> None:
        self._require_pending(CacheState.READY)
        self.result = result
        self.expires_at_ms = now_ms + ttl_ms
        self.state = CacheState.READY

    def reject(self, error: BaseException, now_ms: int) -> None:
        self._require_pending(CacheState.FAILED)
        self.error = error
        self.expires_at_ms = now_ms
        self.state = CacheState.FAILED

    def is_expired(self, now_ms: int) -> bool:
        return (
            self.state == CacheState.READY
            and self.expires_at_ms is not None
            and now_ms >= self.expires_at_ms
        )

    def _require_pending(self, target: CacheState) -> None:
        if self.state != CacheState.PENDING:
            raise RuntimeError(
                f"Illegal cache transition {self.state.value} -> {target.value} for {self.fingerprint}"
            )


@dataclass(frozen=True)
class EntrySnapshot:
    """Read-only view of a cache entry."""
    fingerprint: str
    state: CacheState
    has_result: bool
    has_error: bool
    joiners: int
    created_at_ms: int
    expires_at_ms: Optional[int]


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    joins: int = 0
    failures: int = 0
    abandoned: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "joins": self.joins,
            "failures": self.failures,
            "abandoned": self.abandoned,
        }


class RequestCache(Generic[T]):
    """
    Memoizes async computations by fingerprint.

    At most one computation per fingerprint is in flight at any time.
    """

    def __init__(
        self,
        ttl_ms: int,
        name: str = "cache",
        clock: Callable[[], int] = monotonic_ms,
    ):
        if ttl_ms < 0:
            raise ValueError(f"ttl_ms must be >= 0, got {ttl_ms}")
        self.ttl_ms = ttl_ms
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_compute(
        self,
        fingerprint: str,
        compute: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Return a fresh cached result, join an in-flight computation, or
        start a new one.

        Raises:
            Whatever compute raises, re-raised to every joiner.
        """
        now = self._clock()
        entry = self._entries.get(fingerprint)

        if entry is not None and entry.state == CacheState.READY:
            if not entry.is_expired(now):
                self.stats.hits += 1
                logger.debug("Cache hit", extra={"context": {"cache": self.name, "fingerprint": fingerprint}})
                return entry.result  # type: ignore[return-value]
            del self._entries[fingerprint]
            entry = None

        if entry is not None and entry.state == CacheState.PENDING:
            self.stats.joins += 1
            logger.debug("Joining in-flight computation", extra={"context": {"cache": self.name, "fingerprint": fingerprint}})
        else:
            # Miss, expired, or failed: start over
            self.stats.misses += 1
            self.purge_expired()
            entry = self._start(fingerprint, compute, now)

        return await self._join(entry)

    def _start(
        self,
        fingerprint: str,
        compute: Callable[[], Awaitable[T]],
        now: int,
    ) -> CacheEntry[T]:
        entry: CacheEntry[T] = CacheEntry(fingerprint=fingerprint, created_at_ms=now)
        entry.task = asyncio.ensure_future(compute())
        entry.task.add_done_callback(lambda task: self._settle(entry, task))
        self._entries[fingerprint] = entry
        return entry

    def _settle(self, entry: CacheEntry[T], task: "asyncio.Task[T]") -> None:
        """Move a pending entry to its final state once the task is done."""
        current = self._entries.get(entry.fingerprint) is entry
        if task.cancelled():
            if current:
                del self._entries[entry.fingerprint]
            return

        error = task.exception()
        now = self._clock()
        if error is not None:
            self.stats.failures += 1
            entry.reject(error, now)
            logger.debug(
                "Computation failed",
                extra={"context": {"cache": self.name, "fingerprint": entry.fingerprint, "error": repr(error)}},
            )
        else:
            entry.resolve(task.result(), self.ttl_ms, now)

    async def _join(self, entry: CacheEntry[T]) -> T:
        task = entry.task
        if task is None:
            raise RuntimeError(f"Cache entry {entry.fingerprint} has no computation to join")
        entry.joiners += 1
        try:
            return await asyncio.shield(task)
        finally:
            entry.joiners -= 1
            if entry.joiners == 0 and not task.done():
                self.stats.abandoned += 1
                logger.debug(
                    "Last joiner left, cancelling computation",
                    extra={"context": {"cache": self.name, "fingerprint": entry.fingerprint}},
                )
                task.cancel()
                if self._entries.get(entry.fingerprint) is entry:
                    del self._entries[entry.fingerprint]

    # -------------------------------------------------------------------------
    # Narrow maintenance interface
    # -------------------------------------------------------------------------

    def peek(self, fingerprint: str) -> Optional[EntrySnapshot]:
        entry = self._entries.get(fingerprint)
        if entry is None:
            return None
        return EntrySnapshot(
            fingerprint=entry.fingerprint,
            state=entry.state,
            has_result=entry.state == CacheState.READY,
            has_error=entry.error is not None,
            joiners=entry.joiners,
            created_at_ms=entry.created_at_ms,
            expires_at_ms=entry.expires_at_ms,
        )

    def invalidate(self, fingerprint: str) -> bool:
        """Drop a settled entry. Pending entries are left to their joiners."""
        entry = self._entries.get(fingerprint)
        if entry is None or entry.state == CacheState.PENDING:
            return False
        del self._entries[fingerprint]
        return True

    def purge_expired(self) -> int:
        """Drop expired and failed entries. Returns how many were removed."""
        now = self._clock()
        stale = [
            fp for fp, e in self._entries.items()
            if e.state == CacheState.FAILED or e.is_expired(now)
        ]
        for fp in stale:
            del self._entries[fp]
        return len(stale)

    def clear(self) -> None:
        """Drop every settled entry."""
        for fp in [fp for fp, e in self._entries.items() if e.state != CacheState.PENDING]:
            del self._entries[fp]

    def states(self) -> Dict[str, CacheState]:
        return {fp: e.state for fp, e in self._entries.items()}

    def get_stats(self) -> Dict[str, Any]:
        data: Dict[str, Any] = self.stats.to_dict()
        data["entries"] = len(self._entries)
        data["pending"] = sum(1 for e in self._entries.values() if e.state == CacheState.PENDING)
        return data
