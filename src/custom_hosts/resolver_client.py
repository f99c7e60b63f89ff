"""
DNS-over-HTTPS resolver client.

Resolves a domain by querying several independent DoH providers (JSON API)
at the same time. The first provider to answer with a syntactically valid
IPv4/IPv6 address wins; the remaining requests are cancelled and their
results discarded. An overall deadline bounds the race even if every
provider hangs.
"""

import asyncio
import ipaddress
import time
from typing import Any, Optional, Protocol

import httpx

from custom_hosts.audit_logger import AuditLogger, LoggingMixin
from custom_hosts.config import DNSProviderConfig, ResolverConfig
from custom_hosts.enums import DNSRecordType, ResolutionStatus, ResolverErrorCode
from custom_hosts.models import ProviderAnswer, ProviderError, ResolutionResult


class Resolver(Protocol):
    """Anything that can turn a domain into a ResolutionResult."""

    async def resolve(self, domain: str) -> ResolutionResult:
        ...


class DoHResolverClient(LoggingMixin):
    """
    Async DoH client racing multiple providers.

    Usable as an async context manager; an injected ``httpx.AsyncClient`` is
    used as-is and never closed by this class.
    """

    COMPONENT = "ResolverClient"

    def __init__(
        self,
        providers: list[DNSProviderConfig],
        request_timeout: float = 5.0,
        overall_timeout: float = 10.0,
        record_type: str = "A",
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the resolver client.

        Args:
            providers: DoH providers to race; disabled ones are skipped
            request_timeout: Per-request timeout in seconds
            overall_timeout: Upper bound for a whole ``resolve`` call
            record_type: 'A' or 'AAAA'
            client: Optional pre-built HTTP client (tests, shared pools)
            logger: Optional audit logger
        """
        self._providers = [p for p in providers if p.enabled]
        if not self._providers:
            raise ValueError("At least one enabled DNS provider is required")
        self._request_timeout = request_timeout
        self._overall_timeout = overall_timeout
        self._record_type = DNSRecordType[record_type.upper()]
        self._client = client
        self._owns_client = client is None
        self._logger = logger

    @classmethod
    def from_config(
        cls,
        config: ResolverConfig,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[AuditLogger] = None,
    ) -> "DoHResolverClient":
        return cls(
            providers=config.providers,
            request_timeout=config.request_timeout_seconds,
            overall_timeout=config.overall_timeout_seconds,
            record_type=config.record_type,
            client=client,
            logger=logger,
        )

    async def __aenter__(self) -> "DoHResolverClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def providers(self) -> list[DNSProviderConfig]:
        return list(self._providers)

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(self._request_timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    def extract_address(self, json_data: Any) -> Optional[str]:
        """
        Pick the first valid IP address from a DoH JSON answer.

        CNAME records in the answer chain carry host names in ``data`` and
        are skipped. A non-zero ``Status`` (e.g. NXDOMAIN) yields None.
        """
        if not isinstance(json_data, dict):
            return None
        if json_data.get("Status", 0) != 0:
            return None

        answers = json_data.get("Answer") or []
        if not isinstance(answers, list):
            return None

        for answer in answers:
            if not isinstance(answer, dict):
                continue
            record_type = answer.get("type")
            if record_type is not None and record_type != self._record_type.value:
                continue
            data = answer.get("data")
            if not isinstance(data, str):
                continue
            try:
                return str(ipaddress.ip_address(data.strip()))
            except ValueError:
                continue

        return None

    async def query_provider(
        self, provider: DNSProviderConfig, domain: str
    ) -> ProviderAnswer:
        """
        Query a single provider. Never raises; failures are reported in the answer.
        """
        start_time = time.perf_counter()
        client = self._ensure_client()

        try:
            response = await client.get(
                provider.endpoint,
                params={"name": domain, "type": self._record_type.name},
                headers={"Accept": "application/dns-json"},
            )
        except httpx.TimeoutException:
            return self._error_answer(
                provider,
                ResolverErrorCode.TIMEOUT,
                f"Request timed out after {self._request_timeout}s",
                start_time,
            )
        except httpx.HTTPError as e:
            return self._error_answer(
                provider, ResolverErrorCode.NETWORK_ERROR, f"Connection error: {e}", start_time
            )
        except Exception as e:
            return self._error_answer(
                provider, ResolverErrorCode.NETWORK_ERROR, f"Unexpected error: {e}", start_time
            )

        if response.status_code == 429:
            return self._error_answer(
                provider,
                ResolverErrorCode.RATE_LIMITED,
                "Rate limited by DNS provider",
                start_time,
                http_status_code=429,
            )
        if response.status_code != 200:
            return self._error_answer(
                provider,
                ResolverErrorCode.SERVER_ERROR,
                f"Unexpected HTTP status: {response.status_code}",
                start_time,
                http_status_code=response.status_code,
            )

        try:
            json_data = response.json()
        except ValueError as e:
            return self._error_answer(
                provider,
                ResolverErrorCode.PARSE_ERROR,
                f"Malformed DoH response: {e}",
                start_time,
                http_status_code=200,
            )

        ip = self.extract_address(json_data)
        if ip is None:
            return self._error_answer(
                provider,
                ResolverErrorCode.NO_ANSWER,
                f"No {self._record_type.name} record in answer",
                start_time,
                http_status_code=200,
            )

        return ProviderAnswer(
            provider=provider.name,
            ip=ip,
            error=None,
            http_status_code=200,
            response_time_ms=self._elapsed_ms(start_time),
        )

    async def resolve(self, domain: str) -> ResolutionResult:
        """
        Race every provider for ``domain``; first valid answer wins.

        Returns:
            A RESOLVED result with the winning IP and provider, or a FAILED
            result listing each provider's failure. Never a placeholder IP.
        """
        start_time = time.perf_counter()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._overall_timeout

        tasks = {
            asyncio.ensure_future(self.query_provider(provider, domain)): provider
            for provider in self._providers
        }
        pending = set(tasks)
        failures: list[ProviderAnswer] = []
        winner: Optional[ProviderAnswer] = None

        try:
            while pending and winner is None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if not done:
                    break
                # Prefer provider order among answers completed in the same step
                for task in sorted(done, key=lambda t: self._providers.index(tasks[t])):
                    answer = task.result()
                    if answer.ip is not None and winner is None:
                        winner = answer
                    elif answer.ip is None:
                        failures.append(answer)
        finally:
            losers = [task for task in tasks if not task.done()]
            for task in losers:
                task.cancel()
            if losers:
                await asyncio.gather(*losers, return_exceptions=True)

        if winner is not None:
            self._log_debug(
                f"Resolved {domain} via {winner.provider}",
                {"domain": domain, "ip": winner.ip, "provider": winner.provider},
            )
            return ResolutionResult(
                domain=domain,
                status=ResolutionStatus.RESOLVED,
                ip=winner.ip,
                provider=winner.provider,
                failures=failures,
                response_time_ms=self._elapsed_ms(start_time),
            )

        answered = {answer.provider for answer in failures}
        for provider in self._providers:
            if provider.name not in answered:
                failures.append(ProviderAnswer(
                    provider=provider.name,
                    ip=None,
                    error=ProviderError(
                        code=ResolverErrorCode.DEADLINE_EXCEEDED,
                        message=f"No answer within {self._overall_timeout}s",
                    ),
                ))

        self._log_warning(
            f"Resolution failed for {domain}",
            {
                "domain": domain,
                "errors": {
                    answer.provider: answer.error.code.value
                    for answer in failures
                    if answer.error
                },
            },
        )
        return ResolutionResult(
            domain=domain,
            status=ResolutionStatus.FAILED,
            failures=failures,
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _error_answer(
        self,
        provider: DNSProviderConfig,
        code: ResolverErrorCode,
        message: str,
        start_time: float,
        http_status_code: Optional[int] = None,
    ) -> ProviderAnswer:
        return ProviderAnswer(
            provider=provider.name,
            ip=None,
            error=ProviderError(code=code, message=message, http_status_code=http_status_code),
            http_status_code=http_status_code or 0,
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _elapsed_ms(self, start_time: float) -> float:
        """Calculate elapsed time in milliseconds."""
        return (time.perf_counter() - start_time) * 1000

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
