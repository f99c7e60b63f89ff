"""
Command-line interface for the custom hosts system.

This module provides the main CLI entry point with commands for:
- hosts: Print the merged hosts file (or its JSON form)
- lookup: Show the current IP of one domain
- custom: Manage custom domains (list/add/remove/clear/batch/optimize/diagnose)
- cache: Snapshot status, forced refresh and clearing
- reset: Clear and rebuild the snapshot
- schedule: Refresh the snapshot periodically
- config: Configuration management
"""

import argparse
import asyncio
import json
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Awaitable, Callable, Optional

from dotenv import load_dotenv

from custom_hosts import __version__
from custom_hosts.audit_logger import AuditLogger
from custom_hosts.config import (
    DEFAULT_DNS_PROVIDERS,
    DEFAULT_GITHUB_DOMAINS,
    AdminConfig,
    CacheConfig,
    DNSProviderConfig,
    LoggingConfig,
    PersistenceConfig,
    ResolverConfig,
    RetryConfig,
    SystemConfig,
    UpstreamConfig,
)
from custom_hosts.exceptions import CustomHostsError
from custom_hosts.merge import format_hosts_file
from custom_hosts.scheduler import RefreshScheduler
from custom_hosts.service import HostsService


DEFAULT_CONFIG_PATH = Path.home() / ".custom_hosts" / "config.json"
DEFAULT_STATE_DIR = Path.home() / ".custom_hosts" / "state"


def create_default_config(
    state_dir: Optional[Path] = None,
    hmac_secret: str = "default-secret-change-me",
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        state_dir: Directory for the key-value store files
        hmac_secret: Secret for HMAC protection of stored values
    """
    return SystemConfig(
        resolver=ResolverConfig(),
        upstream=UpstreamConfig(),
        cache=CacheConfig(),
        retry=RetryConfig(),
        persistence=PersistenceConfig(
            state_dir=state_dir or DEFAULT_STATE_DIR,
            hmac_secret=hmac_secret,
        ),
        logging=LoggingConfig(),
        admin=AdminConfig(),
    )


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Missing sections fall back to defaults.

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        resolver_data = data.get("resolver", {})
        providers = [
            DNSProviderConfig(
                name=p["name"],
                endpoint=p["endpoint"],
                enabled=p.get("enabled", True),
            )
            for p in resolver_data.get("providers", [])
        ] or list(DEFAULT_DNS_PROVIDERS)
        resolver = ResolverConfig(
            providers=providers,
            request_timeout_seconds=resolver_data.get("request_timeout_seconds", 5.0),
            overall_timeout_seconds=resolver_data.get("overall_timeout_seconds", 10.0),
            record_type=resolver_data.get("record_type", "A"),
        )

        upstream_data = data.get("upstream", {})
        upstream = UpstreamConfig(
            domains=upstream_data.get("domains") or list(DEFAULT_GITHUB_DOMAINS),
            source_url=upstream_data.get("source_url"),
            group_keywords=upstream_data.get("group_keywords", ["github"]),
            max_concurrency=upstream_data.get("max_concurrency", 8),
        )

        cache_data = data.get("cache", {})
        cache = CacheConfig(
            validity_minutes=cache_data.get("validity_minutes", 360),
            refresh_interval_seconds=cache_data.get("refresh_interval_seconds", 3600.0),
        )

        retry_data = data.get("retry", {})
        retry = RetryConfig(
            max_retries=retry_data.get("max_retries", 2),
            base_delay_seconds=retry_data.get("base_delay_seconds", 1.0),
            max_delay_seconds=retry_data.get("max_delay_seconds", 30.0),
        )

        persistence_data = data.get("persistence", {})
        state_dir = persistence_data.get("state_dir")
        persistence = PersistenceConfig(
            state_dir=Path(state_dir) if state_dir else DEFAULT_STATE_DIR,
            hmac_secret=persistence_data.get("hmac_secret", "default-secret-change-me"),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
        )

        admin_data = data.get("admin", {})
        admin = AdminConfig(
            admin_path=admin_data.get("admin_path", "admin"),
            api_key=admin_data.get("api_key"),
        )

        return SystemConfig(
            resolver=resolver,
            upstream=upstream,
            cache=cache,
            retry=retry,
            persistence=persistence,
            logging=logging_config,
            admin=admin,
        )

    except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        data = asdict(config)
        data["persistence"]["state_dir"] = str(config.persistence.state_dir)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def apply_env_overrides(config: SystemConfig) -> SystemConfig:
    """
    Apply ``CUSTOM_HOSTS_*`` environment variables (and a ``.env`` file).

    Recognized: STATE_DIR, HMAC_SECRET, UPSTREAM_URL, LOG_LEVEL, API_KEY,
    ADMIN_PATH.
    """
    load_dotenv()

    state_dir = os.getenv("CUSTOM_HOSTS_STATE_DIR", "").strip()
    if state_dir:
        config.persistence.state_dir = Path(state_dir)

    hmac_secret = os.getenv("CUSTOM_HOSTS_HMAC_SECRET", "").strip()
    if hmac_secret:
        config.persistence.hmac_secret = hmac_secret

    upstream_url = os.getenv("CUSTOM_HOSTS_UPSTREAM_URL", "").strip()
    if upstream_url:
        config.upstream.source_url = upstream_url

    log_level = os.getenv("CUSTOM_HOSTS_LOG_LEVEL", "").strip().lower()
    if log_level:
        config.logging.level = log_level

    api_key = os.getenv("CUSTOM_HOSTS_API_KEY", "").strip()
    if api_key:
        config.admin.api_key = api_key

    admin_path = os.getenv("CUSTOM_HOSTS_ADMIN_PATH", "").strip()
    if admin_path:
        config.admin.admin_path = admin_path.strip("/")

    return config


def resolve_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """Config file (if given), then environment, then command-line overrides."""
    config = None
    if getattr(args, "config", None):
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
            return None

    if config is None:
        config = create_default_config()

    config = apply_env_overrides(config)

    if getattr(args, "state_dir", None):
        config.persistence.state_dir = Path(args.state_dir)
    if getattr(args, "verbose", False):
        config.logging.level = "debug"

    return config


def create_logger(config: SystemConfig, verbose: bool = False) -> Optional[AuditLogger]:
    """Logger on stderr; quiet below warnings unless verbose or configured lower."""
    level = config.logging.level if verbose or config.logging.level != "info" else "warn"
    return AuditLogger.from_level_name(level, output_format=config.logging.output_format)


def run_with_service(
    args: argparse.Namespace,
    action: Callable[[HostsService, argparse.Namespace], Awaitable[int]],
) -> int:
    """Build the service from the resolved config and run one async action."""
    config = resolve_config(args)
    if config is None:
        return 1

    logger = create_logger(config, getattr(args, "verbose", False))

    async def runner() -> int:
        async with HostsService(config, logger=logger) as service:
            try:
                return await action(service, args)
            except CustomHostsError as e:
                print(f"Error: {e.message}", file=sys.stderr)
                return 1

    return asyncio.run(runner())


def print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def do_hosts(service: HostsService, args: argparse.Namespace) -> int:
    if args.json:
        print_json(await service.get_hosts_json(args.refresh))
        return 0

    if args.no_custom:
        entries = await service.get_hosts_data(args.refresh)
    else:
        entries = await service.get_complete_hosts_data(args.refresh)
    print(format_hosts_file(entries))
    return 0


async def do_lookup(service: HostsService, args: argparse.Namespace) -> int:
    entry = await service.get_domain_data(args.domain)
    if entry is None:
        print(f"Domain not found: {args.domain}", file=sys.stderr)
        return 1
    print_json({"ip": entry.ip, "domain": entry.domain})
    return 0


async def do_custom(service: HostsService, args: argparse.Namespace) -> int:
    action = args.custom_action

    if action == "list":
        print_json([record.to_dict() for record in await service.get_custom_domains()])
        return 0

    if action == "add":
        record = await service.add_custom_domain(args.domain, args.description)
        print_json({"message": "Domain added successfully", "record": record.to_dict()})
        return 0

    if action == "remove":
        if await service.remove_custom_domain(args.domain):
            print(f"Removed: {args.domain}")
            return 0
        print(f"Domain not found: {args.domain}", file=sys.stderr)
        return 1

    if action == "clear":
        count = await service.clear_custom_domains()
        print_json({"message": "Custom domains cleared", "count": count})
        return 0

    if action == "batch":
        items = read_batch_file(Path(args.file))
        batch = await service.add_custom_domains_batch(items)
        print_json(batch.to_dict())
        return 0 if batch.failed_count == 0 else 1

    if action == "optimize":
        if args.domain:
            item = await service.optimize_custom_domain(args.domain)
            print_json(item.to_dict())
            return 0 if item.success else 1
        batch = await service.optimize_all_custom_domains()
        print_json(batch.to_dict())
        return 0 if batch.failed_count == 0 else 1

    if action == "diagnose":
        diagnostics = await service.diagnose_custom_domains()
        print_json([
            {
                "domain": d.domain,
                "resolvedIp": d.resolved_ip,
                "storedIp": d.stored.ip if d.stored else None,
                "matchesStored": d.matches_stored,
                "error": d.error,
            }
            for d in diagnostics
        ])
        return 0

    return 1


async def do_cache(service: HostsService, args: argparse.Namespace) -> int:
    if args.cache_action == "status":
        print_json((await service.cache_status()).to_dict())
        return 0

    if args.cache_action == "refresh":
        entries = await service.refresh_now()
        print_json({"message": "Cache refreshed successfully", "entriesCount": len(entries)})
        return 0

    if args.cache_action == "clear":
        await service.clear_cache()
        print("Cache cleared successfully")
        return 0

    return 1


async def do_reset(service: HostsService, args: argparse.Namespace) -> int:
    entries = await service.reset_hosts_data()
    print_json({"message": "Reset completed", "entriesCount": len(entries)})
    return 0


async def do_schedule(service: HostsService, args: argparse.Namespace) -> int:
    interval = args.interval or service.config.cache.refresh_interval_seconds
    scheduler = RefreshScheduler(
        callback=service.refresh_now,
        interval_seconds=interval,
        logger=create_logger(service.config, verbose=True),
    )
    print(f"Refreshing every {interval:g}s, Ctrl+C to stop")
    await scheduler.run()
    return 0


def read_batch_file(path: Path) -> list:
    """
    Read batch input: a JSON array (names or {"domain", "description"}
    objects) or plain text with one domain per line.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error reading file: {e}", file=sys.stderr)
        return []

    try:
        data = json.loads(text)
    except ValueError:
        return [
            line.strip()
            for line in text.splitlines()
            if line.strip() and not line.strip().startswith("#")
        ]

    if isinstance(data, dict):
        data = data.get("domains", [])
    return data if isinstance(data, list) else []


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        print(f"Configuration from: {config_path}")
        print(f"  DNS providers: {', '.join(p.name for p in config.resolver.providers if p.enabled)}")
        print(f"  Upstream domains: {len(config.upstream.domains)}")
        print(f"  Upstream source: {config.upstream.source_url or '(built-in list)'}")
        print(f"  Cache validity: {config.cache.validity_minutes} min")
        print(f"  State dir: {config.persistence.state_dir}")
        print(f"  Log level: {config.logging.level}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        if save_config_to_file(create_default_config(), config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1

        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--state-dir",
        help="Directory for stored state (overrides config)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="custom-hosts",
        description="Hosts file generator for GitHub and custom domains",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'hosts' command
    hosts_parser = subparsers.add_parser("hosts", help="Print the hosts file")
    hosts_parser.add_argument(
        "--refresh",
        action="store_true",
        help="Force a refresh of the upstream snapshot",
    )
    hosts_parser.add_argument(
        "--no-custom",
        action="store_true",
        help="Only include the upstream group",
    )
    hosts_parser.add_argument(
        "--json",
        action="store_true",
        help="Print entries with the upstream/custom split as JSON",
    )
    _add_common_arguments(hosts_parser)
    hosts_parser.set_defaults(func=lambda args: run_with_service(args, do_hosts))

    # 'lookup' command
    lookup_parser = subparsers.add_parser("lookup", help="Show the current IP of a domain")
    lookup_parser.add_argument("domain", help="Domain to look up (e.g., github.com)")
    _add_common_arguments(lookup_parser)
    lookup_parser.set_defaults(func=lambda args: run_with_service(args, do_lookup))

    # 'custom' command
    custom_parser = subparsers.add_parser("custom", help="Manage custom domains")
    custom_sub = custom_parser.add_subparsers(dest="custom_action", required=True)

    custom_list = custom_sub.add_parser("list", help="List custom domains")
    _add_common_arguments(custom_list)

    custom_add = custom_sub.add_parser("add", help="Resolve and add a domain")
    custom_add.add_argument("domain")
    custom_add.add_argument("--description", "-d", default=None)
    _add_common_arguments(custom_add)

    custom_remove = custom_sub.add_parser("remove", help="Remove a domain")
    custom_remove.add_argument("domain")
    _add_common_arguments(custom_remove)

    custom_clear = custom_sub.add_parser("clear", help="Remove all custom domains")
    _add_common_arguments(custom_clear)

    custom_batch = custom_sub.add_parser("batch", help="Add domains from a file")
    custom_batch.add_argument("file", help="JSON array or one domain per line")
    _add_common_arguments(custom_batch)

    custom_optimize = custom_sub.add_parser(
        "optimize", help="Re-resolve one domain, or all when omitted"
    )
    custom_optimize.add_argument("domain", nargs="?")
    _add_common_arguments(custom_optimize)

    custom_diagnose = custom_sub.add_parser(
        "diagnose", help="Resolve stored domains without saving"
    )
    _add_common_arguments(custom_diagnose)

    custom_parser.set_defaults(func=lambda args: run_with_service(args, do_custom))

    # 'cache' command
    cache_parser = subparsers.add_parser("cache", help="Snapshot cache management")
    cache_parser.add_argument("cache_action", choices=["status", "refresh", "clear"])
    _add_common_arguments(cache_parser)
    cache_parser.set_defaults(func=lambda args: run_with_service(args, do_cache))

    # 'reset' command
    reset_parser = subparsers.add_parser("reset", help="Clear and rebuild the snapshot")
    _add_common_arguments(reset_parser)
    reset_parser.set_defaults(func=lambda args: run_with_service(args, do_reset))

    # 'schedule' command
    schedule_parser = subparsers.add_parser(
        "schedule", help="Refresh the snapshot periodically"
    )
    schedule_parser.add_argument(
        "--interval", "-i",
        type=float,
        default=None,
        help="Seconds between refreshes (default: from config)",
    )
    _add_common_arguments(schedule_parser)
    schedule_parser.set_defaults(func=lambda args: run_with_service(args, do_schedule))

    # 'config' command
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
