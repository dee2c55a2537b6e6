"""
Generic in-memory cache engine.

A Store owns a record map kept in recency order (least recently touched
first), a running byte counter, and an optional alias index mapping
secondary ids to primary keys. Every mutation of those structures happens
under one lock, so readers observe either a live record or a clean miss.

Records are evicted by:
1. TTL: lazily on read and by a periodic background sweep
2. Byte budget: before an insert would push the total over the cap
3. Entry count: after an insert pushes the count over the cap
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import threading
from typing import Callable, Generic, Iterable, Protocol, TypeVar

from ..logging_utils import get_logger, log_event


class Expiring(Protocol):
    expires_at: datetime


T = TypeVar("T", bound=Expiring)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Slot(Generic[T]):
    record: T
    size: int
    aliases: tuple[str, ...] = ()


class Store(Generic[T]):
    """Size- and time-bounded record store with LRU eviction.

    Args:
        name: Label used in log events ("search", "fetch")
        max_entries: Maximum number of live records
        max_total_bytes: Maximum sum of record sizes
        sweep_interval: Seconds between background expiry sweeps
        clock: Returns the current time; records expire once clock() > expires_at
        alias_keys: Returns the secondary ids a record answers to
    """

    def __init__(
        self,
        name: str,
        *,
        max_entries: int,
        max_total_bytes: int,
        sweep_interval: float,
        clock: Clock = utcnow,
        alias_keys: Callable[[T], Iterable[str]] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.name = name
        self.max_entries = max_entries
        self.max_total_bytes = max_total_bytes
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._alias_keys = alias_keys
        self._logger = logger or get_logger("store")

        self._records: OrderedDict[str, _Slot[T]] = OrderedDict()
        self._aliases: dict[str, str] = {}
        self._total_bytes = 0
        self._lock = threading.RLock()

        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    # -- introspection -------------------------------------------------

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._records

    def keys(self) -> list[str]:
        """Keys in recency order, least recently touched first."""
        with self._lock:
            return list(self._records)

    def size_of(self, key: str) -> int | None:
        with self._lock:
            slot = self._records.get(key)
            return slot.size if slot else None

    # -- mutations -----------------------------------------------------

    def insert(self, key: str, record: T, size_bytes: int) -> list[str]:
        """Insert a record as most recently touched; returns the evicted keys."""
        with self._lock:
            if key in self._records:
                self._remove_locked(key, "replaced")
            evicted = self._evict_for_budget_locked(size_bytes)
            aliases = tuple(self._alias_keys(record)) if self._alias_keys else ()
            self._records[key] = _Slot(record=record, size=size_bytes, aliases=aliases)
            for alias in aliases:
                self._aliases[alias] = key
            self._total_bytes += size_bytes
            evicted.extend(self._evict_for_count_locked())
            total = self._total_bytes
            count = len(self._records)

        log_event(
            self._logger,
            f"{self.name} cache insert: {key}",
            level=logging.DEBUG,
            event="cache_insert",
            store=self.name,
            key=key,
            size=size_bytes,
            total_bytes=total,
            entries=count,
        )
        return evicted

    def touch(self, key: str) -> bool:
        with self._lock:
            if key not in self._records:
                return False
            self._records.move_to_end(key)
            return True

    def resize(self, key: str, size_bytes: int) -> list[str]:
        """Change the accounted size of a live record, evicting others to make room."""
        with self._lock:
            slot = self._records.get(key)
            if slot is None:
                return []
            growth = size_bytes - slot.size
            evicted = self._evict_for_budget_locked(growth, exclude=key) if growth > 0 else []
            self._total_bytes += growth
            slot.size = size_bytes
            return evicted

    def remove(self, key: str, reason: str = "removed") -> bool:
        with self._lock:
            if key not in self._records:
                return False
            self._remove_locked(key, reason)
            return True

    # -- reads ---------------------------------------------------------

    def get(self, key: str) -> T | None:
        """Return the live record for key, or None on miss or expiry."""
        with self._lock:
            slot = self._records.get(key)
            if slot is None:
                outcome = "miss"
                record = None
            elif self._is_expired(slot.record):
                self._remove_locked(key, "expired")
                outcome = "expired"
                record = None
            else:
                self._records.move_to_end(key)
                outcome = "hit"
                record = slot.record

        log_event(
            self._logger,
            f"{self.name} cache {outcome}: {key}",
            level=logging.DEBUG,
            event=f"cache_{outcome}",
            store=self.name,
            key=key,
        )
        return record

    def get_by_alias(self, alias: str) -> T | None:
        """Resolve a secondary id to its owning record; dangling aliases are dropped."""
        with self._lock:
            key = self._aliases.get(alias)
            if key is None:
                log_event(
                    self._logger,
                    f"{self.name} cache miss: alias {alias}",
                    level=logging.DEBUG,
                    event="cache_miss",
                    store=self.name,
                    alias=alias,
                )
                return None
            record = self.get(key)
            if record is None:
                self._aliases.pop(alias, None)
            return record

    def live_records(self) -> list[T]:
        """Snapshot of all unexpired records; expired ones are removed on the way."""
        with self._lock:
            expired = [k for k, slot in self._records.items() if self._is_expired(slot.record)]
            for key in expired:
                self._remove_locked(key, "expired")
            return [slot.record for slot in self._records.values()]

    # -- expiry --------------------------------------------------------

    def remove_if_expired(self, key: str) -> bool:
        with self._lock:
            slot = self._records.get(key)
            if slot is None or not self._is_expired(slot.record):
                return False
            self._remove_locked(key, "expired")
            return True

    def sweep_expired(self) -> int:
        """Remove every expired record. Never raises; failures are logged."""
        try:
            with self._lock:
                expired = [k for k, slot in self._records.items() if self._is_expired(slot.record)]
                for key in expired:
                    self._remove_locked(key, "expired")
                remaining = len(self._records)
        except Exception:  # noqa: BLE001
            self._logger.exception("%s cache sweep failed", self.name)
            return 0

        if expired:
            log_event(
                self._logger,
                f"{self.name} cache cleanup: removed {len(expired)} expired entries",
                event="cache_sweep",
                store=self.name,
                removed=len(expired),
                entries=remaining,
            )
        return len(expired)

    # -- eviction ------------------------------------------------------

    def evict_for_budget(self, incoming_bytes: int, exclude: str | None = None) -> list[str]:
        with self._lock:
            return self._evict_for_budget_locked(incoming_bytes, exclude=exclude)

    def evict_for_count(self) -> list[str]:
        with self._lock:
            return self._evict_for_count_locked()

    def _evict_for_budget_locked(self, incoming_bytes: int, exclude: str | None = None) -> list[str]:
        evicted: list[str] = []
        if self._total_bytes + incoming_bytes <= self.max_total_bytes:
            return evicted

        log_event(
            self._logger,
            f"{self.name} cache size would exceed limit: "
            f"{self._total_bytes + incoming_bytes} > {self.max_total_bytes}. Evicting old entries.",
            event="cache_budget_pressure",
            store=self.name,
            projected_bytes=self._total_bytes + incoming_bytes,
            max_total_bytes=self.max_total_bytes,
        )
        while self._total_bytes + incoming_bytes > self.max_total_bytes:
            victim = next((k for k in self._records if k != exclude), None)
            if victim is None:
                break
            freed = self._records[victim].size
            self._remove_locked(victim, "budget")
            evicted.append(victim)
            log_event(
                self._logger,
                f"Evicted {self.name} cache entry {victim} ({freed} bytes) for storage limit",
                event="cache_evict",
                store=self.name,
                key=victim,
                reason="budget",
                freed_bytes=freed,
            )
        return evicted

    def _evict_for_count_locked(self) -> list[str]:
        evicted: list[str] = []
        while len(self._records) > self.max_entries:
            victim = next(iter(self._records))
            self._remove_locked(victim, "count")
            evicted.append(victim)
            log_event(
                self._logger,
                f"{self.name} cache eviction: removing oldest entry {victim}",
                event="cache_evict",
                store=self.name,
                key=victim,
                reason="count",
            )
        return evicted

    def _remove_locked(self, key: str, reason: str) -> None:
        slot = self._records.pop(key)
        self._total_bytes -= slot.size
        for alias in slot.aliases:
            if self._aliases.get(alias) == key:
                del self._aliases[alias]
        self._logger.debug("%s cache removed %s (%s, %d bytes)", self.name, key, reason, slot.size)

    def _is_expired(self, record: T) -> bool:
        return self._clock() > record.expires_at

    # -- background sweep ----------------------------------------------

    def start_sweeper(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            name=f"{self.name}-cache-sweeper",
            daemon=True,
        )
        self._sweeper.start()

    def stop_sweeper(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout)
            self._sweeper = None

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            self.sweep_expired()
