"""
Merge Engine: combines the upstream snapshot and the custom domains into one
host table and renders it as a hosts file.

The merged listing keeps both occurrences when a domain appears in both
sources; keyed lookups prefer the custom record.
"""

import ipaddress
from typing import Callable, Iterable, Optional

from custom_hosts.audit_logger import AuditLogger, LoggingMixin
from custom_hosts.cache_store import HostsCache
from custom_hosts.custom_domains import CustomDomainRegistry
from custom_hosts.domain_validator import DomainValidator
from custom_hosts.exceptions import CustomHostsError, PersistenceError, ValidationError
from custom_hosts.models import CustomDomainRecord, HostEntry


def merge_entries(
    cache_entries: Iterable[HostEntry],
    custom_records: Iterable[CustomDomainRecord],
) -> list[HostEntry]:
    """Cache entries first, then every custom record that has an IP."""
    merged = list(cache_entries)
    merged.extend(
        HostEntry(ip=record.ip, domain=record.domain)
        for record in custom_records
        if record.ip
    )
    return merged


def format_hosts_file(entries: Iterable[HostEntry]) -> str:
    """Render ``"<ip> <domain>"`` lines, newline separated, in input order."""
    return "\n".join(f"{entry.ip} {entry.domain}" for entry in entries)


def parse_hosts_file(text: str) -> list[HostEntry]:
    """
    Parse hosts-file text back into entries.

    Blank lines and ``#`` comments are ignored. A line naming several hosts
    yields one entry per host. Lines whose first field is not an IP address
    are skipped.
    """
    entries = []
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        if not line:
            continue
        fields = line.split()
        try:
            ipaddress.ip_address(fields[0])
        except ValueError:
            continue
        entries.extend(HostEntry(ip=fields[0], domain=name) for name in fields[1:])
    return entries


class MergeEngine(LoggingMixin):
    """Read path over both stores."""

    COMPONENT = "MergeEngine"

    def __init__(
        self,
        cache: HostsCache,
        registry: CustomDomainRegistry,
        group_predicate: Callable[[str], bool],
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Args:
            cache: Upstream snapshot cache
            registry: Custom domain registry
            group_predicate: True for domains of the upstream group
            logger: Optional audit logger
        """
        self._cache = cache
        self._registry = registry
        self._group_predicate = group_predicate
        self._logger = logger
        self._validator = DomainValidator()

    async def complete_hosts(self, force_refresh: bool = False) -> list[HostEntry]:
        """Merged table: upstream snapshot followed by resolved custom domains."""
        cache_entries = await self._cache.read(force_refresh)
        custom_records = await self._custom_records()
        merged = merge_entries(cache_entries, custom_records)
        self._log_debug(
            "Merged host table",
            {"upstream": len(cache_entries), "custom": len(merged) - len(cache_entries)},
        )
        return merged

    async def lookup(self, domain: str) -> Optional[HostEntry]:
        """
        Current entry for ``domain``: the custom record wins over the snapshot.

        Returns None when neither store holds the domain or the snapshot
        cannot be produced at all.
        """
        try:
            name = self._validator.normalize_to_canonical(domain)
        except ValidationError:
            return None

        try:
            record = await self._registry.get(name)
        except PersistenceError as e:
            self._log_warning(f"Custom domains unreadable for lookup of {name}", {"error": e.message})
            record = None
        if record is not None and record.ip:
            return HostEntry(ip=record.ip, domain=record.domain)

        try:
            cache_entries = await self._cache.read(False)
        except CustomHostsError as e:
            self._log_warning(f"Snapshot unavailable for lookup of {name}", {"error": e.message})
            return None

        for entry in cache_entries:
            if entry.domain == name:
                return entry
        return None

    async def _custom_records(self) -> list[CustomDomainRecord]:
        try:
            return await self._registry.list()
        except PersistenceError as e:
            self._log_warning("Custom domains unreadable, listing upstream only", {"error": e.message})
            return []

    def partition(
        self, entries: Iterable[HostEntry]
    ) -> tuple[list[HostEntry], list[HostEntry]]:
        """Split entries into (upstream group, custom) by domain membership."""
        group: list[HostEntry] = []
        custom: list[HostEntry] = []
        for entry in entries:
            (group if self._group_predicate(entry.domain) else custom).append(entry)
        return group, custom
