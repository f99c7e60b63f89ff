"""
Upstream Fetcher for the tracked domain group.

Builds a best-effort snapshot of the group: the domain list comes from a
remote source when one is configured (falling back to the built-in list),
and every domain is resolved through the resolver race. Domains that fail
to resolve are left out of the result. Persisting the result is the
caller's job.
"""

import asyncio
import ipaddress
import json
from typing import Any, Optional

import httpx

from custom_hosts.audit_logger import AuditLogger, LoggingMixin
from custom_hosts.config import RetryConfig, UpstreamConfig
from custom_hosts.domain_validator import DomainValidator
from custom_hosts.exceptions import NetworkError
from custom_hosts.models import HostEntry, ResolutionResult
from custom_hosts.resolver_client import Resolver
from custom_hosts.retry_manager import RetryManager, is_transient_http_error


class UpstreamFetcher(LoggingMixin):
    """Fetches and resolves the domains of the tracked upstream group."""

    COMPONENT = "UpstreamFetcher"

    def __init__(
        self,
        resolver: Resolver,
        config: Optional[UpstreamConfig] = None,
        retry_manager: Optional[RetryManager] = None,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the fetcher.

        Args:
            resolver: Resolver used for every group domain
            config: Upstream group configuration (defaults to the GitHub group)
            retry_manager: Retry policy for downloading the remote domain list
            client: Optional HTTP client for the remote domain list
            logger: Optional audit logger
        """
        self._resolver = resolver
        self._config = config or UpstreamConfig()
        self._retry_manager = retry_manager or RetryManager(RetryConfig())
        self._client = client
        self._owns_client = client is None
        self._logger = logger
        self._validator = DomainValidator()
        self._group_domains = set(self._normalize_names(self._config.domains))

    async def __aenter__(self) -> "UpstreamFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def config(self) -> UpstreamConfig:
        return self._config

    def is_group_domain(self, domain: str) -> bool:
        """
        Group-membership predicate.

        True for domains of the built-in list and for any domain containing
        one of the configured group keywords.
        """
        name = domain.strip().lower()
        if name in self._group_domains:
            return True
        return any(keyword.lower() in name for keyword in self._config.group_keywords)

    async def fetch_domain_list(self) -> list[str]:
        """
        Get the group's domain names, de-duplicated in source order.

        A configured ``source_url`` is tried first (with retries); any
        failure or an empty list falls back to the configured domains.
        """
        fallback = self._normalize_names(self._config.domains)
        if not self._config.source_url:
            return fallback

        retry_result = await self._retry_manager.execute_with_retry(
            self._download_source,
            is_retryable=is_transient_http_error,
        )
        if not retry_result.success:
            self._log_warning(
                "Domain list download failed, using built-in list",
                {
                    "source_url": self._config.source_url,
                    "attempts": retry_result.attempts,
                    "error": str(retry_result.last_error),
                },
            )
            return fallback

        domains = self.parse_domain_list(retry_result.result)
        if not domains:
            self._log_warning(
                "Domain list source returned no usable names, using built-in list",
                {"source_url": self._config.source_url},
            )
            return fallback

        # Names added by the remote list also count as group members
        self._group_domains.update(domains)
        return domains

    def parse_domain_list(self, payload: str) -> list[str]:
        """
        Parse a domain list payload.

        Accepted shapes:
        - JSON array of names: ``["github.com", ...]``
        - JSON array of ``[ip, domain]`` pairs
        - JSON object with an ``entries`` array of either of the above
        - hosts-file text (``<ip> <name> [<name> ...]``) or one name per line
        """
        try:
            data: Any = json.loads(payload)
        except (TypeError, ValueError):
            return self._normalize_names(self._names_from_text(payload or ""))

        if isinstance(data, dict):
            data = data.get("entries", [])
        if not isinstance(data, list):
            return []

        names = []
        for item in data:
            if isinstance(item, str):
                names.append(item)
            elif isinstance(item, (list, tuple)) and len(item) >= 2 and isinstance(item[1], str):
                names.append(item[1])
            elif isinstance(item, dict) and isinstance(item.get("domain"), str):
                names.append(item["domain"])
        return self._normalize_names(names)

    async def fetch_latest(self) -> list[HostEntry]:
        """
        Resolve every group domain and return the ones that resolved.

        Returns:
            HostEntry list in domain-list order; unresolved domains omitted

        Raises:
            NetworkError: If not a single domain could be resolved
        """
        domains = await self.fetch_domain_list()
        semaphore = asyncio.Semaphore(max(1, self._config.max_concurrency))

        async def resolve_one(domain: str) -> ResolutionResult:
            async with semaphore:
                return await self._resolver.resolve(domain)

        results = await asyncio.gather(
            *(resolve_one(domain) for domain in domains),
            return_exceptions=True,
        )

        entries: list[HostEntry] = []
        omitted: list[str] = []
        for domain, result in zip(domains, results):
            if isinstance(result, BaseException):
                self._log_error(f"Resolver raised for {domain}", result, {"domain": domain})
                omitted.append(domain)
            elif result.success:
                entries.append(HostEntry(ip=result.ip, domain=domain))
            else:
                omitted.append(domain)

        if not entries:
            raise NetworkError(
                code="no_entries_resolved",
                message="No upstream domain could be resolved",
                details={"domain_count": len(domains)},
            )

        self._log_info(
            "Upstream snapshot fetched",
            {"resolved": len(entries), "omitted": len(omitted), "omitted_domains": omitted},
        )
        return entries

    async def _download_source(self) -> str:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(15.0),
                follow_redirects=True,
            )
            self._owns_client = True

        response = await self._client.get(self._config.source_url)
        response.raise_for_status()
        return response.text

    @staticmethod
    def _names_from_text(text: str) -> list[str]:
        names = []
        for line in text.splitlines():
            line = line.split("#", 1)[0].strip()
            if not line:
                continue
            tokens = line.split()
            try:
                ipaddress.ip_address(tokens[0])
            except ValueError:
                names.extend(tokens)
            else:
                names.extend(tokens[1:])
        return names

    def _normalize_names(self, names: list[str]) -> list[str]:
        seen: set[str] = set()
        out = []
        for name in names:
            result = self._validator.validate(name)
            if not result.valid:
                continue
            if result.canonical_domain not in seen:
                seen.add(result.canonical_domain)
                out.append(result.canonical_domain)
        return out

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
