"""
Custom Hosts - hosts file generator for GitHub and user-managed domains.

This package resolves a group of upstream domains through several DNS-over-HTTPS
providers in parallel, caches the result as a time-stamped snapshot, keeps a
registry of custom domains, and merges both into a hosts-file listing.
"""

__version__ = "0.1.0"
__author__ = "Custom Hosts Team"

from custom_hosts.exceptions import (
    CustomHostsError,
    ValidationError,
    NetworkError,
    ResolutionError,
    PersistenceError,
    TamperingError,
)
from custom_hosts.enums import (
    LogLevel,
    DomainValidationErrorCode,
    ResolverErrorCode,
    ResolutionStatus,
    DNSRecordType,
)
from custom_hosts.domain_validator import (
    DomainValidator,
    DomainValidationResult,
    DomainValidationError,
)
from custom_hosts.config import (
    DEFAULT_GITHUB_DOMAINS,
    DEFAULT_DNS_PROVIDERS,
    DNSProviderConfig,
    ResolverConfig,
    UpstreamConfig,
    CacheConfig,
    RetryConfig,
    PersistenceConfig,
    LoggingConfig,
    AdminConfig,
    SystemConfig,
)
from custom_hosts.models import (
    HostEntry,
    CachedSnapshot,
    CacheStatus,
    CustomDomainRecord,
    ProviderError,
    ProviderAnswer,
    ResolutionResult,
    BatchItemResult,
    BatchResult,
    DomainDiagnostic,
)
from custom_hosts.kv_store import (
    KeyValueStore,
    InMemoryKVStore,
    JsonFileKVStore,
)
from custom_hosts.resolver_client import (
    Resolver,
    DoHResolverClient,
)
from custom_hosts.retry_manager import (
    RetryManager,
    RetryResult,
)
from custom_hosts.upstream_fetcher import (
    UpstreamFetcher,
)
from custom_hosts.cache_store import (
    HostsCache,
)
from custom_hosts.custom_domains import (
    CustomDomainRegistry,
)
from custom_hosts.merge import (
    MergeEngine,
    merge_entries,
    format_hosts_file,
    parse_hosts_file,
)
from custom_hosts.audit_logger import (
    AuditLogger,
    LogEntry,
)
from custom_hosts.scheduler import (
    RefreshScheduler,
    RefreshRun,
)
from custom_hosts.service import (
    HostsService,
)
from custom_hosts.cli import (
    main as cli_main,
    create_parser,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Exceptions
    "CustomHostsError",
    "ValidationError",
    "NetworkError",
    "ResolutionError",
    "PersistenceError",
    "TamperingError",
    # Enums
    "LogLevel",
    "DomainValidationErrorCode",
    "ResolverErrorCode",
    "ResolutionStatus",
    "DNSRecordType",
    # Domain Validator
    "DomainValidator",
    "DomainValidationResult",
    "DomainValidationError",
    # Configuration
    "DEFAULT_GITHUB_DOMAINS",
    "DEFAULT_DNS_PROVIDERS",
    "DNSProviderConfig",
    "ResolverConfig",
    "UpstreamConfig",
    "CacheConfig",
    "RetryConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "AdminConfig",
    "SystemConfig",
    # Models
    "HostEntry",
    "CachedSnapshot",
    "CacheStatus",
    "CustomDomainRecord",
    "ProviderError",
    "ProviderAnswer",
    "ResolutionResult",
    "BatchItemResult",
    "BatchResult",
    "DomainDiagnostic",
    # Key-value store
    "KeyValueStore",
    "InMemoryKVStore",
    "JsonFileKVStore",
    # Resolver
    "Resolver",
    "DoHResolverClient",
    # Retry Manager
    "RetryManager",
    "RetryResult",
    # Upstream
    "UpstreamFetcher",
    # Cache
    "HostsCache",
    # Custom domains
    "CustomDomainRegistry",
    # Merge
    "MergeEngine",
    "merge_entries",
    "format_hosts_file",
    "parse_hosts_file",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Scheduler
    "RefreshScheduler",
    "RefreshRun",
    # Service
    "HostsService",
    # CLI
    "cli_main",
    "create_parser",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
]
