"""
Enumeration types for the custom hosts system.

These enums provide type-safe constants for status codes, error codes,
and configuration options throughout the system.
"""

from enum import Enum


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class DomainValidationErrorCode(Enum):
    """Error codes for domain validation failures."""

    EMPTY_INPUT = "empty_input"
    FORBIDDEN_CHARS = "forbidden_chars"
    INVALID_FORMAT = "invalid_format"
    IDNA_ERROR = "idna_error"


class ResolverErrorCode(Enum):
    """Error codes for DNS-over-HTTPS provider queries."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    NO_ANSWER = "no_answer"
    DEADLINE_EXCEEDED = "deadline_exceeded"


class ResolutionStatus(Enum):
    """Outcome of a resolution attempt."""

    RESOLVED = "resolved"
    FAILED = "failed"


class DNSRecordType(Enum):
    """DNS record types understood by the DoH JSON API."""

    A = 1
    AAAA = 28
