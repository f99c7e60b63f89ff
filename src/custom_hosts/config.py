"""
Configuration dataclasses for the custom hosts system.

This module defines all configuration structures used throughout the system,
including DNS-over-HTTPS providers, the upstream domain group, cache policy,
retry logic, persistence, logging and the admin settings handed through to
the boundary layer.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


# Domains of the tracked upstream group (GitHub and its asset CDNs)
DEFAULT_GITHUB_DOMAINS = [
    "github.com",
    "api.github.com",
    "gist.github.com",
    "codeload.github.com",
    "alive.github.com",
    "live.github.com",
    "central.github.com",
    "collector.github.com",
    "education.github.com",
    "github.io",
    "github.dev",
    "github.community",
    "githubstatus.com",
    "githubapp.com",
    "github.blog",
    "github.githubassets.com",
    "github.global.ssl.fastly.net",
    "raw.githubusercontent.com",
    "media.githubusercontent.com",
    "camo.githubusercontent.com",
    "cloud.githubusercontent.com",
    "objects.githubusercontent.com",
    "desktop.githubusercontent.com",
    "favicons.githubusercontent.com",
    "avatars.githubusercontent.com",
    "avatars0.githubusercontent.com",
    "avatars1.githubusercontent.com",
    "avatars2.githubusercontent.com",
    "avatars3.githubusercontent.com",
    "avatars4.githubusercontent.com",
    "avatars5.githubusercontent.com",
    "user-images.githubusercontent.com",
    "private-user-images.githubusercontent.com",
    "pipelines.actions.githubusercontent.com",
    "copilot-proxy.githubusercontent.com",
    "github-cloud.s3.amazonaws.com",
    "github-com.s3.amazonaws.com",
    "github-production-release-asset-2e65be.s3.amazonaws.com",
    "github-production-user-asset-6210df.s3.amazonaws.com",
    "github-production-repository-file-5c1aeb.s3.amazonaws.com",
    "vscode.dev",
]


@dataclass
class DNSProviderConfig:
    """A single DNS-over-HTTPS provider (JSON API)."""

    name: str
    endpoint: str
    enabled: bool = True


DEFAULT_DNS_PROVIDERS = [
    DNSProviderConfig(name="cloudflare", endpoint="https://cloudflare-dns.com/dns-query"),
    DNSProviderConfig(name="google", endpoint="https://dns.google/resolve"),
    DNSProviderConfig(name="alidns", endpoint="https://dns.alidns.com/resolve"),
]


@dataclass
class ResolverConfig:
    """Resolver race configuration."""

    providers: list[DNSProviderConfig] = field(
        default_factory=lambda: list(DEFAULT_DNS_PROVIDERS)
    )
    request_timeout_seconds: float = 5.0
    overall_timeout_seconds: float = 10.0
    record_type: str = "A"  # 'A' or 'AAAA'


@dataclass
class UpstreamConfig:
    """Upstream domain group configuration."""

    domains: list[str] = field(default_factory=lambda: list(DEFAULT_GITHUB_DOMAINS))
    source_url: Optional[str] = None
    group_keywords: list[str] = field(default_factory=lambda: ["github"])
    max_concurrency: int = 8


@dataclass
class CacheConfig:
    """Snapshot cache policy."""

    validity_minutes: int = 360  # 6 hours
    refresh_interval_seconds: float = 3600.0


@dataclass
class RetryConfig:
    """Retry behavior configuration."""

    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0


@dataclass
class PersistenceConfig:
    """Key-value store configuration."""

    state_dir: Path
    hmac_secret: str


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class AdminConfig:
    """
    Admin path and API key for the boundary layer.

    Carried through the configuration only; the core never reads it.
    """

    admin_path: str = "admin"
    api_key: Optional[str] = None


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    resolver: ResolverConfig
    upstream: UpstreamConfig
    cache: CacheConfig
    retry: RetryConfig
    persistence: PersistenceConfig
    logging: LoggingConfig
    admin: AdminConfig = field(default_factory=AdminConfig)
