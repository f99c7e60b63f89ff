"""
Data models for the custom hosts system.

This module defines the host entries, the cached upstream snapshot, custom
domain records, and the result types returned by resolution and batch
operations.
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional

from custom_hosts.enums import ResolutionStatus, ResolverErrorCode


@dataclass(frozen=True)
class HostEntry:
    """A resolved (ip, domain) pair."""

    ip: str
    domain: str

    def __iter__(self) -> Iterator[str]:
        return iter((self.ip, self.domain))

    def to_list(self) -> list[str]:
        """Serialize as ``[ip, domain]``."""
        return [self.ip, self.domain]


@dataclass
class CachedSnapshot:
    """The stored state of the upstream group cache."""

    domain_data: dict[str, str]
    last_updated: str  # ISO-8601, UTC
    update_count: int
    version: str

    def entries(self) -> list[HostEntry]:
        return [HostEntry(ip=ip, domain=domain) for domain, ip in self.domain_data.items()]

    def to_dict(self) -> dict:
        return {
            "domain_data": dict(self.domain_data),
            "lastUpdated": self.last_updated,
            "updateCount": self.update_count,
            "version": self.version,
        }


@dataclass
class CacheStatus:
    """Read-only diagnostic projection of the snapshot cache."""

    cached: bool
    last_updated: Optional[str] = None
    age_minutes: Optional[int] = None
    is_valid: bool = False
    valid_until_minutes: int = 0
    domain_count: int = 0
    update_count: int = 0
    version: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "cached": self.cached,
            "lastUpdated": self.last_updated,
            "ageMinutes": self.age_minutes,
            "isValid": self.is_valid,
            "validUntilMinutes": self.valid_until_minutes,
            "domainCount": self.domain_count,
            "updateCount": self.update_count,
            "version": self.version,
        }


@dataclass
class CustomDomainRecord:
    """A user-managed domain with its last resolved IP."""

    domain: str
    ip: Optional[str]
    description: str = ""
    timestamp: int = 0  # epoch millis

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "ip": self.ip,
            "description": self.description,
            "timestamp": self.timestamp,
        }


@dataclass
class ProviderError:
    """Error information from a single provider query."""

    code: ResolverErrorCode
    message: str
    http_status_code: Optional[int] = None


@dataclass
class ProviderAnswer:
    """Answer of one DoH provider for one domain."""

    provider: str
    ip: Optional[str]
    error: Optional[ProviderError] = None
    http_status_code: int = 0
    response_time_ms: float = 0.0


@dataclass
class ResolutionResult:
    """Outcome of racing all providers for one domain."""

    domain: str
    status: ResolutionStatus
    ip: Optional[str] = None
    provider: Optional[str] = None
    failures: list[ProviderAnswer] = field(default_factory=list)
    response_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == ResolutionStatus.RESOLVED and self.ip is not None


@dataclass
class BatchItemResult:
    """Per-domain outcome of a batch or optimize operation."""

    domain: str
    success: bool
    record: Optional[CustomDomainRecord] = None
    previous_ip: Optional[str] = None
    error: Optional[str] = None

    @property
    def updated(self) -> bool:
        """True when a successful operation changed the stored IP."""
        return self.success and self.record is not None and self.record.ip != self.previous_ip

    def to_dict(self) -> dict:
        if not self.success:
            return {"domain": self.domain, "error": self.error}
        return {
            "domain": self.domain,
            "status": "success",
            "oldIp": self.previous_ip,
            "newIp": self.record.ip if self.record else None,
            "updated": self.updated,
        }


@dataclass
class BatchResult:
    """Aggregate of independent per-item outcomes."""

    items: list[BatchItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[BatchItemResult]:
        return [item for item in self.items if item.success]

    @property
    def failed(self) -> list[BatchItemResult]:
        return [item for item in self.items if not item.success]

    @property
    def added(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def total(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict:
        return {
            "added": self.added,
            "failed": self.failed_count,
            "total": self.total,
            "results": [item.to_dict() for item in self.succeeded],
            "errors": [item.to_dict() for item in self.failed],
        }


@dataclass
class DomainDiagnostic:
    """Fresh resolution of a stored custom domain compared with its record."""

    domain: str
    resolved_ip: Optional[str]
    stored: Optional[CustomDomainRecord]
    error: Optional[str] = None

    @property
    def matches_stored(self) -> bool:
        return (
            self.resolved_ip is not None
            and self.stored is not None
            and self.stored.ip == self.resolved_ip
        )
