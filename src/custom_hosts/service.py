"""
Hosts Service: the public surface of the resolution-and-cache core.

Wires the resolver, upstream fetcher, snapshot cache, custom domain registry
and merge engine together from a SystemConfig. Boundary layers (the CLI,
an HTTP router, a cron trigger) call only this class.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional

from custom_hosts.audit_logger import AuditLogger, LoggingMixin
from custom_hosts.cache_store import HostsCache
from custom_hosts.config import SystemConfig
from custom_hosts.custom_domains import BatchItem, CustomDomainRegistry
from custom_hosts.kv_store import JsonFileKVStore, KeyValueStore
from custom_hosts.merge import MergeEngine, format_hosts_file
from custom_hosts.models import (
    BatchItemResult,
    BatchResult,
    CacheStatus,
    CustomDomainRecord,
    DomainDiagnostic,
    HostEntry,
)
from custom_hosts.resolver_client import DoHResolverClient, Resolver
from custom_hosts.retry_manager import RetryManager
from custom_hosts.upstream_fetcher import UpstreamFetcher


class HostsService(LoggingMixin):
    """
    Facade over the core components.

    Use as an async context manager so HTTP clients created here are closed.
    Every collaborator can be injected, which is how the tests run it
    without network access.
    """

    COMPONENT = "HostsService"

    def __init__(
        self,
        config: SystemConfig,
        store: Optional[KeyValueStore] = None,
        resolver: Optional[Resolver] = None,
        fetcher: Optional[UpstreamFetcher] = None,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config
        self._logger = logger
        self._owned: list = []

        if store is None:
            store = JsonFileKVStore(
                config.persistence.state_dir,
                config.persistence.hmac_secret,
            )
        self._store = store

        if resolver is None:
            resolver = DoHResolverClient.from_config(config.resolver, logger=logger)
            self._owned.append(resolver)
        self._resolver = resolver

        if fetcher is None:
            fetcher = UpstreamFetcher(
                resolver=resolver,
                config=config.upstream,
                retry_manager=RetryManager(config.retry),
                logger=logger,
            )
            self._owned.append(fetcher)
        self._fetcher = fetcher

        self._cache = HostsCache(
            store=store,
            fetcher=fetcher,
            validity_minutes=config.cache.validity_minutes,
            clock=clock,
            logger=logger,
        )
        self._registry = CustomDomainRegistry(store=store, resolver=resolver, logger=logger)
        self._merge = MergeEngine(
            cache=self._cache,
            registry=self._registry,
            group_predicate=fetcher.is_group_domain,
            logger=logger,
        )

    async def __aenter__(self) -> "HostsService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        for component in self._owned:
            await component.close()
        self._owned.clear()

    @property
    def config(self) -> SystemConfig:
        return self._config

    @property
    def cache(self) -> HostsCache:
        return self._cache

    @property
    def registry(self) -> CustomDomainRegistry:
        return self._registry

    @property
    def merge_engine(self) -> MergeEngine:
        return self._merge

    # Read paths

    async def get_hosts_data(self, force_refresh: bool = False) -> list[HostEntry]:
        """Upstream group entries only."""
        return await self._cache.read(force_refresh)

    async def get_complete_hosts_data(self, force_refresh: bool = False) -> list[HostEntry]:
        """Upstream group entries followed by resolved custom domains."""
        return await self._merge.complete_hosts(force_refresh)

    @staticmethod
    def format_hosts_file(entries: Iterable[HostEntry]) -> str:
        return format_hosts_file(entries)

    async def get_hosts_json(self, force_refresh: bool = False) -> dict:
        """Merged entries plus the upstream/custom partition, as plain data."""
        entries = await self.get_complete_hosts_data(force_refresh)
        group, custom = self._merge.partition(entries)
        return {
            "entries": [entry.to_list() for entry in entries],
            "total": len(entries),
            "github": [entry.to_list() for entry in group],
            "custom": [entry.to_list() for entry in custom],
            "cacheStatus": "refreshed" if force_refresh else "cached",
        }

    async def get_domain_data(self, domain: str) -> Optional[HostEntry]:
        return await self._merge.lookup(domain)

    # Custom domains

    async def get_custom_domains(self) -> list[CustomDomainRecord]:
        return await self._registry.list()

    async def add_custom_domain(
        self, domain: str, description: Optional[str] = None
    ) -> CustomDomainRecord:
        return await self._registry.add(domain, description)

    async def remove_custom_domain(self, domain: str) -> bool:
        return await self._registry.remove(domain)

    async def add_custom_domains_batch(self, items: Iterable[BatchItem]) -> BatchResult:
        return await self._registry.batch_add(items)

    async def clear_custom_domains(self) -> int:
        return await self._registry.clear()

    async def optimize_custom_domain(self, domain: str) -> BatchItemResult:
        return await self._registry.optimize(domain)

    async def optimize_all_custom_domains(self) -> BatchResult:
        return await self._registry.optimize_all()

    async def diagnose_custom_domains(self) -> list[DomainDiagnostic]:
        return await self._registry.diagnose()

    # Cache administration

    async def reset_hosts_data(self) -> list[HostEntry]:
        """Drop the snapshot and build a new one."""
        await self._cache.clear()
        entries = await self._cache.read(force_refresh=True)
        self._log_info("Hosts data reset", {"entries": len(entries)})
        return entries

    async def cache_status(self) -> CacheStatus:
        return await self._cache.status()

    async def clear_cache(self) -> None:
        await self._cache.clear()

    async def refresh_now(self) -> list[HostEntry]:
        return await self._cache.refresh_now()
