"""
Tests for the command-line interface.

Commands run against a state directory seeded through the file store, so no
network access is needed.
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from custom_hosts.cache_store import SNAPSHOT_KEY
from custom_hosts.cli import DEFAULT_STATE_DIR, create_parser, main, read_batch_file
from custom_hosts.custom_domains import REGISTRY_KEY
from custom_hosts.kv_store import JsonFileKVStore


SECRET = "default-secret-change-me"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in [
        "CUSTOM_HOSTS_STATE_DIR",
        "CUSTOM_HOSTS_HMAC_SECRET",
        "CUSTOM_HOSTS_UPSTREAM_URL",
        "CUSTOM_HOSTS_LOG_LEVEL",
        "CUSTOM_HOSTS_API_KEY",
        "CUSTOM_HOSTS_ADMIN_PATH",
    ]:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def seeded_state(tmp_path: Path) -> Path:
    store = JsonFileKVStore(tmp_path, SECRET)

    async def seed():
        await store.put(SNAPSHOT_KEY, {
            "domain_data": {"github.com": "140.82.112.3", "api.github.com": "140.82.112.6"},
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
            "updateCount": 4,
            "version": "2.0",
        })
        await store.put(REGISTRY_KEY, {
            "example.com": {"domain": "example.com", "ip": "93.184.216.34", "description": "", "timestamp": 1},
        })

    asyncio.run(seed())
    return tmp_path


class TestParser:
    """Argument parsing."""

    def test_custom_add_arguments(self) -> None:
        args = create_parser().parse_args(["custom", "add", "example.com", "-d", "docs", "--state-dir", "/tmp/x"])

        assert args.command == "custom"
        assert args.custom_action == "add"
        assert args.domain == "example.com"
        assert args.description == "docs"
        assert args.state_dir == "/tmp/x"

    def test_hosts_flags(self) -> None:
        args = create_parser().parse_args(["hosts", "--refresh", "--no-custom"])

        assert args.refresh and args.no_custom and not args.json

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture) -> None:
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_default_state_dir(self) -> None:
        assert DEFAULT_STATE_DIR.name == "state"


class TestReadCommands:
    """Commands that read the seeded state."""

    def test_hosts(self, seeded_state: Path, capsys: pytest.CaptureFixture) -> None:
        code = main(["hosts", "--state-dir", str(seeded_state)])

        assert code == 0
        assert capsys.readouterr().out.splitlines() == [
            "140.82.112.3 github.com",
            "140.82.112.6 api.github.com",
            "93.184.216.34 example.com",
        ]

    def test_hosts_without_custom(self, seeded_state: Path, capsys: pytest.CaptureFixture) -> None:
        main(["hosts", "--no-custom", "--state-dir", str(seeded_state)])

        assert "example.com" not in capsys.readouterr().out

    def test_hosts_json(self, seeded_state: Path, capsys: pytest.CaptureFixture) -> None:
        main(["hosts", "--json", "--state-dir", str(seeded_state)])

        data = json.loads(capsys.readouterr().out)
        assert data["total"] == 3
        assert data["custom"] == [["93.184.216.34", "example.com"]]

    def test_lookup(self, seeded_state: Path, capsys: pytest.CaptureFixture) -> None:
        assert main(["lookup", "api.github.com", "--state-dir", str(seeded_state)]) == 0
        assert json.loads(capsys.readouterr().out) == {"ip": "140.82.112.6", "domain": "api.github.com"}

        assert main(["lookup", "missing.example", "--state-dir", str(seeded_state)]) == 1

    def test_cache_status(self, seeded_state: Path, capsys: pytest.CaptureFixture) -> None:
        assert main(["cache", "status", "--state-dir", str(seeded_state)]) == 0

        status = json.loads(capsys.readouterr().out)
        assert status["cached"] is True
        assert status["domainCount"] == 2
        assert status["updateCount"] == 4

    def test_custom_list(self, seeded_state: Path, capsys: pytest.CaptureFixture) -> None:
        assert main(["custom", "list", "--state-dir", str(seeded_state)]) == 0
        assert [r["domain"] for r in json.loads(capsys.readouterr().out)] == ["example.com"]


class TestWriteCommands:
    """Commands that change state without resolving anything."""

    def test_custom_remove_and_clear(self, seeded_state: Path, capsys: pytest.CaptureFixture) -> None:
        assert main(["custom", "remove", "example.com", "--state-dir", str(seeded_state)]) == 0
        assert main(["custom", "remove", "example.com", "--state-dir", str(seeded_state)]) == 1
        capsys.readouterr()

        assert main(["custom", "clear", "--state-dir", str(seeded_state)]) == 0
        assert json.loads(capsys.readouterr().out)["count"] == 0

    def test_cache_clear(self, seeded_state: Path, capsys: pytest.CaptureFixture) -> None:
        assert main(["cache", "clear", "--state-dir", str(seeded_state)]) == 0
        capsys.readouterr()

        main(["cache", "status", "--state-dir", str(seeded_state)])
        assert json.loads(capsys.readouterr().out)["cached"] is False

    def test_invalid_custom_add_fails(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        assert main(["custom", "add", "not a domain", "--state-dir", str(tmp_path)]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_batch_of_invalid_names(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        batch_file = tmp_path / "domains.json"
        batch_file.write_text(json.dumps(["bad one", {"description": "no domain"}]), encoding="utf-8")

        code = main(["custom", "batch", str(batch_file), "--state-dir", str(tmp_path / "state")])

        result = json.loads(capsys.readouterr().out)
        assert code == 1
        assert result["added"] == 0
        assert result["failed"] == 2
        assert [e["domain"] for e in result["errors"]] == ["bad one", "unknown"]

    def test_empty_batch_fails(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        batch_file = tmp_path / "domains.txt"
        batch_file.write_text("# nothing here\n", encoding="utf-8")

        assert main(["custom", "batch", str(batch_file), "--state-dir", str(tmp_path / "state")]) == 1
        assert "Domains array is required" in capsys.readouterr().err


class TestBatchFile:
    """Batch input formats."""

    def test_text_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "domains.txt"
        path.write_text("a.com\n\n# skip\n b.com \n", encoding="utf-8")

        assert read_batch_file(path) == ["a.com", "b.com"]

    def test_json_object(self, tmp_path: Path) -> None:
        path = tmp_path / "domains.json"
        path.write_text(json.dumps({"domains": [{"domain": "a.com", "description": "x"}]}), encoding="utf-8")

        assert read_batch_file(path) == [{"domain": "a.com", "description": "x"}]

    def test_missing_file(self, tmp_path: Path) -> None:
        assert read_batch_file(tmp_path / "absent.txt") == []


class TestConfigCommand:
    """config init/show/validate."""

    def test_init_show_validate(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = str(tmp_path / "config.json")

        assert main(["config", "show", "--path", path]) == 1
        assert main(["config", "init", "--path", path]) == 0
        assert main(["config", "init", "--path", path]) == 1
        assert main(["config", "init", "--path", path, "--force"]) == 0
        assert main(["config", "validate", "--path", path]) == 0
        capsys.readouterr()

        assert main(["config", "show", "--path", path]) == 0
        out = capsys.readouterr().out
        assert "cloudflare, google, alidns" in out
        assert "Cache validity: 360 min" in out

    def test_commands_use_config_file(self, seeded_state: Path, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({
            "persistence": {"state_dir": str(seeded_state), "hmac_secret": SECRET},
        }), encoding="utf-8")

        assert main(["custom", "list", "--config", str(config_path)]) == 0
        assert json.loads(capsys.readouterr().out)[0]["domain"] == "example.com"

    def test_missing_config_file_fails(self, tmp_path: Path) -> None:
        assert main(["custom", "list", "--config", str(tmp_path / "absent.json")]) == 1
