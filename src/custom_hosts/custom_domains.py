"""
Custom Domain Registry.

User-managed domains are stored under the ``custom_domains`` key as a
mapping keyed by domain name::

    {"example.com": {"domain": "example.com", "ip": "93.184.216.34",
                     "description": "", "timestamp": 1718000000000}}

A record is only ever written together with a freshly resolved IP, so a
failed resolution never replaces a known-good address. Re-adding an existing
domain ("optimize") re-resolves it and overwrites the record in place.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from typing import Any, Callable, Iterable, Optional, Union

from custom_hosts.audit_logger import AuditLogger, LoggingMixin
from custom_hosts.domain_validator import DomainValidator
from custom_hosts.exceptions import CustomHostsError, PersistenceError, ResolutionError, ValidationError
from custom_hosts.kv_store import KeyValueStore
from custom_hosts.models import BatchItemResult, BatchResult, CustomDomainRecord, DomainDiagnostic
from custom_hosts.resolver_client import Resolver


REGISTRY_KEY = "custom_domains"

BatchItem = Union[str, Mapping]


def epoch_millis() -> int:
    return int(time.time() * 1000)


class CustomDomainRegistry(LoggingMixin):
    """Keyed registry of custom domains with resolve-on-write."""

    COMPONENT = "CustomDomains"

    def __init__(
        self,
        store: KeyValueStore,
        resolver: Resolver,
        clock_ms: Optional[Callable[[], int]] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the registry.

        Args:
            store: Key-value store holding the registry record
            resolver: Resolver used on add/optimize
            clock_ms: Returns the current epoch-millis timestamp
            logger: Optional audit logger
        """
        self._store = store
        self._resolver = resolver
        self._clock_ms = clock_ms or epoch_millis
        self._logger = logger
        self._validator = DomainValidator()
        self._lock = asyncio.Lock()

    async def list(self) -> list[CustomDomainRecord]:
        """All records in insertion order."""
        records = await self._load()
        return list(records.values())

    async def get(self, domain: str) -> Optional[CustomDomainRecord]:
        key = self._lookup_key(domain)
        if key is None:
            return None
        records = await self._load()
        return records.get(key)

    async def add(
        self, domain: str, description: Optional[str] = None
    ) -> CustomDomainRecord:
        """
        Validate, resolve and upsert a domain.

        ``description`` overwrites the stored one when given and is kept
        otherwise.

        Raises:
            ValidationError: If the domain is syntactically invalid (no I/O done)
            ResolutionError: If no provider resolved the domain; nothing is written
        """
        record, _ = await self._upsert(domain, description)
        return record

    async def remove(self, domain: str) -> bool:
        """Delete a record. Returns False if it was not present."""
        key = self._lookup_key(domain)
        if key is None:
            return False

        async with self._lock:
            records = await self._load()
            if key not in records:
                return False
            del records[key]
            await self._save(records)

        self._log_info(f"Removed custom domain {key}", {"domain": key})
        return True

    async def clear(self) -> int:
        """
        Delete the whole registry and return how many records it held.

        An unreadable stored value is still deleted and counts as zero.
        """
        async with self._lock:
            try:
                count = len(await self._load())
            except PersistenceError as e:
                self._log_warning("Clearing unreadable custom domains", {"error": e.message})
                count = 0
            await self._store.delete(REGISTRY_KEY)

        self._log_info("Cleared custom domains", {"count": count})
        return count

    async def batch_add(self, items: Iterable[BatchItem]) -> BatchResult:
        """
        Apply ``add`` to every item independently.

        Items are domain names or mappings with ``domain`` and optional
        ``description``. One item's failure never stops the others.

        Raises:
            ValidationError: If ``items`` is empty or a bare string
        """
        if isinstance(items, (str, bytes)):
            raise ValidationError(
                code="invalid_batch",
                message="Domains must be given as a list, not a single string",
            )
        items = list(items or [])
        if not items:
            raise ValidationError(
                code="empty_batch",
                message="Domains array is required",
            )

        batch = BatchResult()
        for item in items:
            domain, description = self._unpack_item(item)
            batch.items.append(await self._try_upsert(domain, description))

        self._log_info(
            "Batch add completed",
            {"added": batch.added, "failed": batch.failed_count},
        )
        return batch

    async def optimize(self, domain: str) -> BatchItemResult:
        """Re-resolve one domain and report its old and new IP."""
        return await self._try_upsert(domain, None)

    async def optimize_all(self) -> BatchResult:
        """Re-resolve every stored domain; per-domain failures are collected."""
        records = await self.list()
        results = await asyncio.gather(
            *(self._try_upsert(record.domain, None) for record in records)
        )
        batch = BatchResult(items=list(results))
        self._log_info(
            "Optimize-all completed",
            {
                "optimized": batch.added,
                "failed": batch.failed_count,
                "changed": sum(1 for item in batch.items if item.updated),
            },
        )
        return batch

    async def diagnose(self) -> list[DomainDiagnostic]:
        """Resolve every stored domain without writing and compare with the stored IP."""
        records = await self.list()
        results = await asyncio.gather(
            *(self._resolver.resolve(record.domain) for record in records)
        )

        diagnostics = []
        for record, result in zip(records, results):
            error = None
            if not result.success:
                error = "; ".join(
                    f"{answer.provider}: {answer.error.message}"
                    for answer in result.failures
                    if answer.error
                ) or "Resolution failed"
            diagnostics.append(DomainDiagnostic(
                domain=record.domain,
                resolved_ip=result.ip if result.success else None,
                stored=record,
                error=error,
            ))
        return diagnostics

    async def _upsert(
        self, domain: Optional[str], description: Optional[str]
    ) -> tuple[CustomDomainRecord, Optional[CustomDomainRecord]]:
        canonical = self._validator.require_valid(domain)

        result = await self._resolver.resolve(canonical)
        if not result.success:
            raise ResolutionError(
                code="resolution_failed",
                message=f"Failed to resolve {canonical}",
                details={
                    "domain": canonical,
                    "errors": {
                        answer.provider: answer.error.code.value
                        for answer in result.failures
                        if answer.error
                    },
                },
            )

        async with self._lock:
            records = await self._load()
            previous = records.get(canonical)
            if description is None:
                description = previous.description if previous else ""
            record = CustomDomainRecord(
                domain=canonical,
                ip=result.ip,
                description=description,
                timestamp=self._clock_ms(),
            )
            records[canonical] = record
            await self._save(records)

        self._log_info(
            f"Stored custom domain {canonical}",
            {
                "domain": canonical,
                "ip": record.ip,
                "previous_ip": previous.ip if previous else None,
                "provider": result.provider,
            },
        )
        return record, previous

    async def _try_upsert(
        self, domain: Optional[str], description: Optional[str]
    ) -> BatchItemResult:
        label = domain if isinstance(domain, str) and domain else "unknown"
        try:
            record, previous = await self._upsert(domain, description)
        except CustomHostsError as e:
            self._log_warning(f"Custom domain update failed for {label}", {"error": e.message})
            stored = await self._safe_get(domain)
            return BatchItemResult(
                domain=label,
                success=False,
                previous_ip=stored.ip if stored else None,
                error=e.message,
            )
        return BatchItemResult(
            domain=record.domain,
            success=True,
            record=record,
            previous_ip=previous.ip if previous else None,
        )

    async def _safe_get(self, domain: Optional[str]) -> Optional[CustomDomainRecord]:
        if not isinstance(domain, str):
            return None
        try:
            return await self.get(domain)
        except PersistenceError:
            return None

    async def _load(self) -> dict[str, CustomDomainRecord]:
        raw = await self._store.get(REGISTRY_KEY)
        if raw is None:
            return {}

        # Older writers stored a list of records; normalize to the keyed form
        if isinstance(raw, list):
            items: Iterable[Any] = raw
        elif isinstance(raw, dict):
            items = raw.values()
        else:
            raise PersistenceError(
                code="parse_error",
                message="Stored custom domains have an unexpected shape",
                details={"type": type(raw).__name__},
            )

        records: dict[str, CustomDomainRecord] = {}
        for item in items:
            record = self._parse_record(item)
            if record is not None:
                records[record.domain] = record
        return records

    async def _save(self, records: dict[str, CustomDomainRecord]) -> None:
        await self._store.put(
            REGISTRY_KEY,
            {domain: record.to_dict() for domain, record in records.items()},
        )

    @staticmethod
    def _parse_record(item: Any) -> Optional[CustomDomainRecord]:
        if not isinstance(item, dict):
            return None
        domain = item.get("domain")
        if not isinstance(domain, str) or not domain:
            return None
        ip = item.get("ip")
        description = item.get("description")
        timestamp = item.get("timestamp")
        return CustomDomainRecord(
            domain=domain,
            ip=ip if isinstance(ip, str) and ip else None,
            description=description if isinstance(description, str) else "",
            timestamp=timestamp if isinstance(timestamp, int) else 0,
        )

    @staticmethod
    def _unpack_item(item: Any) -> tuple[Optional[str], Optional[str]]:
        if isinstance(item, str):
            return item, None
        if isinstance(item, Mapping):
            domain = item.get("domain")
            description = item.get("description")
            return (
                domain if isinstance(domain, str) else None,
                description if isinstance(description, str) else None,
            )
        return None, None

    def _lookup_key(self, domain: Optional[str]) -> Optional[str]:
        if not isinstance(domain, str) or not domain.strip():
            return None
        try:
            return self._validator.normalize_to_canonical(domain)
        except ValidationError:
            return None
