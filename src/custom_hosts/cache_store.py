"""
Cache Store for the upstream group snapshot.

The snapshot lives under the ``domain_data`` key as::

    {"domain_data": {domain: ip}, "lastUpdated": ISO-8601,
     "updateCount": int, "version": str}

It is replaced wholesale on every write. Reads serve the snapshot while it is
younger than the validity window (6 hours by default) and refresh it
otherwise; when a refresh fails the last known good snapshot is served.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from custom_hosts.audit_logger import AuditLogger, LoggingMixin
from custom_hosts.exceptions import CustomHostsError, PersistenceError, TamperingError
from custom_hosts.kv_store import KeyValueStore
from custom_hosts.models import CachedSnapshot, CacheStatus, HostEntry


SNAPSHOT_KEY = "domain_data"
SNAPSHOT_VERSION = "2.0"
DEFAULT_VALIDITY_MINUTES = 6 * 60

# Persistence error codes that mean "the stored value is unusable"
MALFORMED_VALUE_CODES = frozenset({"parse_error", "hmac_mismatch"})


class SnapshotSource(Protocol):
    async def fetch_latest(self) -> list[HostEntry]:
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HostsCache(LoggingMixin):
    """Staleness-aware, versioned snapshot cache."""

    COMPONENT = "HostsCache"

    def __init__(
        self,
        store: KeyValueStore,
        fetcher: SnapshotSource,
        validity_minutes: int = DEFAULT_VALIDITY_MINUTES,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the cache.

        Args:
            store: Key-value store holding the snapshot
            fetcher: Source of fresh entries (normally an UpstreamFetcher)
            validity_minutes: Snapshot age below which no refresh happens
            clock: Returns the current aware datetime (injectable for tests)
            logger: Optional audit logger
        """
        self._store = store
        self._fetcher = fetcher
        self._validity_minutes = validity_minutes
        self._clock = clock or utc_now
        self._logger = logger
        self._write_lock = asyncio.Lock()
        self._refresh_lock = asyncio.Lock()

    @property
    def validity_minutes(self) -> int:
        return self._validity_minutes

    async def snapshot(self) -> Optional[CachedSnapshot]:
        """
        Load the current snapshot without fetching.

        A missing key, a malformed value or a tamper-detected value all
        read as None.

        Raises:
            PersistenceError: If the store itself is unreachable
        """
        try:
            raw = await self._store.get(SNAPSHOT_KEY)
        except PersistenceError as e:
            if isinstance(e, TamperingError) or e.code in MALFORMED_VALUE_CODES:
                self._log_warning("Stored snapshot is unreadable, ignoring it", {"code": e.code})
                return None
            raise

        if raw is None:
            return None

        snapshot = self._parse_snapshot(raw)
        if snapshot is None:
            self._log_warning("Stored snapshot is malformed, ignoring it")
        return snapshot

    def age_minutes(self, snapshot: CachedSnapshot) -> int:
        last_updated = _parse_timestamp(snapshot.last_updated)
        return round((self._clock() - last_updated).total_seconds() / 60)

    def is_valid(self, snapshot: CachedSnapshot) -> bool:
        return self.age_minutes(snapshot) < self._validity_minutes

    async def read(self, force_refresh: bool = False) -> list[HostEntry]:
        """
        Return the group entries, refreshing when forced, missing or stale.

        Raises:
            CustomHostsError: Only if the refresh fails and no snapshot has
                ever been stored
        """
        snapshot = await self.snapshot()
        if snapshot is not None and not force_refresh and self.is_valid(snapshot):
            return snapshot.entries()

        async with self._refresh_lock:
            # Another task may have refreshed while this one waited
            if not force_refresh:
                current = await self.snapshot()
                if current is not None and self.is_valid(current):
                    return current.entries()
                snapshot = current or snapshot

            reason = "forced" if force_refresh else ("stale" if snapshot else "missing")
            self._log_info("Refreshing upstream snapshot", {"reason": reason})

            try:
                entries = await self._fetcher.fetch_latest()
            except CustomHostsError as e:
                if snapshot is None:
                    self._log_error("Refresh failed and no snapshot exists", e)
                    raise
                self._log_warning(
                    "Refresh failed, serving last known good snapshot",
                    {"error": e.message, "last_updated": snapshot.last_updated},
                )
                return snapshot.entries()

            try:
                await self.write(entries)
            except PersistenceError as e:
                self._log_error("Failed to persist refreshed snapshot", e)

            return entries

    async def write(self, entries: list[HostEntry]) -> CachedSnapshot:
        """
        Replace the snapshot with ``entries``.

        Sets ``lastUpdated`` to now and increments ``updateCount``. Not a
        merge: domains absent from ``entries`` disappear.
        """
        async with self._write_lock:
            previous = await self.snapshot()
            domain_data: dict[str, str] = {}
            for entry in entries:
                domain_data[entry.domain] = entry.ip

            snapshot = CachedSnapshot(
                domain_data=domain_data,
                last_updated=self._clock().isoformat(),
                update_count=(previous.update_count if previous else 0) + 1,
                version=SNAPSHOT_VERSION,
            )
            await self._store.put(SNAPSHOT_KEY, snapshot.to_dict())

        self._log_info(
            "Snapshot written",
            {"domain_count": len(domain_data), "update_count": snapshot.update_count},
        )
        return snapshot

    async def refresh_now(self) -> list[HostEntry]:
        """
        Fetch and persist a fresh snapshot, raising on any failure.

        This is the entry point for scheduled and manual refreshes.
        """
        async with self._refresh_lock:
            entries = await self._fetcher.fetch_latest()
            await self.write(entries)
            return entries

    async def status(self) -> CacheStatus:
        snapshot = await self.snapshot()
        if snapshot is None:
            return CacheStatus(cached=False)

        age = self.age_minutes(snapshot)
        return CacheStatus(
            cached=True,
            last_updated=snapshot.last_updated,
            age_minutes=age,
            is_valid=age < self._validity_minutes,
            valid_until_minutes=max(0, self._validity_minutes - age),
            domain_count=len(snapshot.domain_data),
            update_count=snapshot.update_count,
            version=snapshot.version,
        )

    async def clear(self) -> None:
        async with self._write_lock:
            await self._store.delete(SNAPSHOT_KEY)
        self._log_info("Snapshot cleared")

    @staticmethod
    def _parse_snapshot(raw: object) -> Optional[CachedSnapshot]:
        if not isinstance(raw, dict):
            return None

        domain_data = raw.get("domain_data")
        last_updated = raw.get("lastUpdated")
        if not isinstance(domain_data, dict) or not isinstance(last_updated, str):
            return None
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in domain_data.items()):
            return None
        try:
            _parse_timestamp(last_updated)
        except ValueError:
            return None

        update_count = raw.get("updateCount", 0)
        if not isinstance(update_count, int):
            update_count = 0

        return CachedSnapshot(
            domain_data=domain_data,
            last_updated=last_updated,
            update_count=update_count,
            version=str(raw.get("version", "unknown")),
        )


def _parse_timestamp(value: str) -> datetime:
    # Accept the trailing 'Z' produced by JavaScript's toISOString()
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
