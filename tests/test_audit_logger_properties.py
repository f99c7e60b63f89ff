"""
Property-based tests for the Audit Logger module.

Uses Hypothesis to check output formats, level filtering, masking of
sensitive values, and error context.
"""

import json
from io import StringIO

from hypothesis import given, settings
from hypothesis import strategies as st

from custom_hosts.audit_logger import LEVEL_ORDER, AuditLogger, LoggingMixin
from custom_hosts.enums import LogLevel
from custom_hosts.exceptions import NetworkError


# Strategies for generating test data

def log_level_strategy() -> st.SearchStrategy[LogLevel]:
    return st.sampled_from(list(LogLevel))


def component_name_strategy() -> st.SearchStrategy[str]:
    return st.sampled_from([
        "ResolverClient", "UpstreamFetcher", "HostsCache", "CustomDomains",
        "MergeEngine", "HostsService", "Scheduler",
    ])


def message_strategy() -> st.SearchStrategy[str]:
    return st.text(
        alphabet=st.characters(whitelist_categories=("L", "N", "P", "Zs")),
        min_size=1,
        max_size=80,
    )


def sensitive_key_strategy() -> st.SearchStrategy[str]:
    return st.sampled_from([
        "api_key", "API_KEY", "x-api-key", "admin_path", "hmac_secret",
        "secret", "token", "password", "authorization", "credential",
        "CUSTOM_HOSTS_API_KEY",
    ])


def non_sensitive_key_strategy() -> st.SearchStrategy[str]:
    return st.sampled_from([
        "domain", "ip", "provider", "entries", "update_count",
        "reason", "last_updated", "omitted_domains",
    ])


class TestDualFormatProperty:
    """
    Property-based tests for output formats.
    """

    @given(
        level=log_level_strategy(),
        component=component_name_strategy(),
        message=message_strategy(),
    )
    @settings(max_examples=100)
    def test_both_format_writes_json_and_text(
        self, level: LogLevel, component: str, message: str
    ) -> None:
        """
        Property 1: 'both' writes one JSON line and one text line per entry.
        """
        output = StringIO()
        logger = AuditLogger(output_format="both", output_stream=output, min_level=LogLevel.DEBUG)

        logger.log(level, component, message, {"domain": "github.com"})

        lines = output.getvalue().splitlines()
        assert len(lines) == 2
        parsed = json.loads(lines[0])
        assert parsed["level"] == level.value
        assert parsed["component"] == component
        assert parsed["message"] == message
        assert parsed["data"] == {"domain": "github.com"}
        assert lines[1].split(" ")[1] == level.value.upper()
        assert f"[{component}]" in lines[1]

    @given(
        min_level=log_level_strategy(),
        level=log_level_strategy(),
    )
    @settings(max_examples=100)
    def test_entries_below_min_level_dropped(self, min_level: LogLevel, level: LogLevel) -> None:
        """
        Property 2: An entry is emitted iff its level is at or above the minimum.
        """
        output = StringIO()
        logger = AuditLogger(output_format="text", output_stream=output, min_level=min_level)

        entry = logger.log(level, "HostsCache", "Snapshot written")

        if LEVEL_ORDER[level] >= LEVEL_ORDER[min_level]:
            assert entry is not None
            assert len(logger.entries) == 1
            assert output.getvalue()
        else:
            assert entry is None
            assert logger.entries == []
            assert output.getvalue() == ""

    def test_from_level_name(self) -> None:
        assert AuditLogger.from_level_name("DEBUG").is_enabled_for(LogLevel.DEBUG)
        assert not AuditLogger.from_level_name("warn").is_enabled_for(LogLevel.INFO)
        # Unknown names fall back to info
        assert not AuditLogger.from_level_name("verbose").is_enabled_for(LogLevel.DEBUG)


class TestSensitiveDataMaskingProperty:
    """
    Property-based tests for sensitive data masking.
    """

    @given(
        sensitive_key=sensitive_key_strategy(),
        sensitive_value=st.text(alphabet=st.sampled_from("QWXYZ"), min_size=5, max_size=20),
        component=component_name_strategy(),
    )
    @settings(max_examples=100)
    def test_sensitive_data_masked(
        self, sensitive_key: str, sensitive_value: str, component: str
    ) -> None:
        """
        Property 3: Values under sensitive keys never reach the output.
        """
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output)

        entry = logger.log(LogLevel.INFO, component, "Config loaded", {sensitive_key: sensitive_value})

        assert entry.data[sensitive_key] == "***MASKED***"
        parsed = json.loads(output.getvalue().strip())
        assert parsed["data"][sensitive_key] == "***MASKED***"
        assert sensitive_value not in output.getvalue()

    @given(
        key=non_sensitive_key_strategy(),
        value=st.text(min_size=1, max_size=50),
    )
    @settings(max_examples=100)
    def test_non_sensitive_data_not_masked(self, key: str, value: str) -> None:
        """
        Property 3b: Other values are kept unchanged.
        """
        logger = AuditLogger(output_format="json", output_stream=StringIO())

        entry = logger.log(LogLevel.INFO, "HostsCache", "Snapshot written", {key: value})

        assert entry.data[key] == value

    @given(sensitive_key=sensitive_key_strategy(), value=st.text(min_size=1, max_size=50))
    @settings(max_examples=100)
    def test_nested_sensitive_data_masked(self, sensitive_key: str, value: str) -> None:
        """
        Property 3c: Masking applies inside nested dicts and lists of dicts.
        """
        logger = AuditLogger(output_format="json", output_stream=StringIO())

        entry = logger.log(LogLevel.INFO, "HostsService", "Config", {
            "admin": {sensitive_key: value, "other": "visible"},
            "items": [{sensitive_key: value}],
        })

        assert entry.data["admin"][sensitive_key] == "***MASKED***"
        assert entry.data["admin"]["other"] == "visible"
        assert entry.data["items"][0][sensitive_key] == "***MASKED***"


class TestErrorContextProperty:
    """
    Property-based tests for error context logging.
    """

    @given(
        component=component_name_strategy(),
        code=st.sampled_from(["no_entries_resolved", "resolution_failed", "io_error"]),
        message=message_strategy(),
    )
    @settings(max_examples=100)
    def test_error_logs_include_error_context(
        self, component: str, code: str, message: str
    ) -> None:
        """
        Property 4: Error entries carry the exception's type, message and code.
        """
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        error = NetworkError(code=code, message=message)

        entry = logger.log_error(component, "Refresh failed", error, {"domain_count": 3})

        assert entry.level == LogLevel.ERROR
        assert entry.data["error_type"] == "NetworkError"
        assert entry.data["error_message"] == message
        assert entry.data["error_code"] == code
        assert entry.data["domain_count"] == 3

    def test_plain_exception_has_no_code(self) -> None:
        logger = AuditLogger(output_format="text", output_stream=StringIO())

        entry = logger.log_error("Scheduler", "Scheduled refresh failed", RuntimeError("boom"))

        assert entry.data["error_type"] == "RuntimeError"
        assert "error_code" not in entry.data


class TestLoggingMixin:
    """Components log through the mixin; without a logger nothing happens."""

    class Component(LoggingMixin):
        COMPONENT = "TestComponent"

        def __init__(self, logger=None) -> None:
            self._logger = logger

        def work(self) -> None:
            self._log_debug("debug")
            self._log_info("info", {"domain": "github.com"})
            self._log_warning("warning")
            self._log_error("error", ValueError("bad"))

    def test_mixin_routes_to_logger(self) -> None:
        logger = AuditLogger(output_format="text", output_stream=StringIO(), min_level=LogLevel.DEBUG)

        self.Component(logger).work()

        assert [e.level for e in logger.entries] == [
            LogLevel.DEBUG, LogLevel.INFO, LogLevel.WARN, LogLevel.ERROR,
        ]
        assert all(e.component == "TestComponent" for e in logger.entries)

    def test_mixin_without_logger_is_silent(self) -> None:
        self.Component().work()
