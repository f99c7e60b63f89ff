"""
Key-value store backends for the custom hosts system.

The cache and the custom domain registry each persist a single JSON
structure under their own key. Any object with async ``get``/``put``/``delete``
satisfies the interface; two backends are provided:

- InMemoryKVStore: process-local dictionary, used in tests and one-shot runs
- JsonFileKVStore: one HMAC-protected JSON file per key
"""

import asyncio
import copy
import hashlib
import hmac
import json
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

from custom_hosts.exceptions import PersistenceError, TamperingError


class KeyValueStore(Protocol):
    """Minimal async key-value interface consumed by the stores."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def put(self, key: str, value: Any) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryKVStore:
    """Dictionary-backed store. Values are deep-copied on the way in and out."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data.keys())


class JsonFileKVStore:
    """
    File-backed store with HMAC protection.

    Each key lives in ``<directory>/<key>.json`` as::

        {"version": 1, "key": ..., "updated_at": ..., "value": ..., "hmac": ...}

    The HMAC-SHA256 covers every field except ``hmac``. Writes go to a
    temporary file that is then renamed over the target, so a reader never
    sees a half-written value.
    """

    VERSION = 1
    KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

    def __init__(self, directory: Path, hmac_secret: str) -> None:
        """
        Initialize the store.

        Args:
            directory: Directory holding one JSON file per key
            hmac_secret: Secret key for HMAC computation
        """
        if not hmac_secret:
            raise ValueError("HMAC secret cannot be empty")
        self._directory = Path(directory)
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._lock = asyncio.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        if not self.KEY_PATTERN.match(key):
            raise PersistenceError(
                code="invalid_key",
                message=f"Invalid store key: {key!r}",
                details={"key": key},
            )
        return self._directory / f"{key}.json"

    async def get(self, key: str) -> Optional[Any]:
        """
        Load and verify the value stored under ``key``.

        Returns:
            The stored value, or None if the key was never written

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If the file cannot be read or parsed
        """
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse stored value for {key}: {e}",
                details={"file_path": str(path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read stored value for {key}: {e}",
                details={"file_path": str(path)},
            )

        if not isinstance(raw_data, dict) or "value" not in raw_data:
            raise PersistenceError(
                code="parse_error",
                message=f"Stored value for {key} has an unexpected layout",
                details={"file_path": str(path)},
            )

        stored_hmac = raw_data.get("hmac", "")
        computed_hmac = self.compute_hmac(self._signed_part(raw_data))
        if not isinstance(stored_hmac, str) or not hmac.compare_digest(stored_hmac, computed_hmac):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - data may have been tampered with",
                details={"file_path": str(path), "key": key},
            )

        return raw_data["value"]

    async def put(self, key: str, value: Any) -> None:
        """
        Atomically replace the value stored under ``key``.

        Raises:
            PersistenceError: If the value cannot be serialized or written
        """
        path = self.path_for(key)
        document = {
            "version": self.VERSION,
            "key": key,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "value": value,
        }

        try:
            document["hmac"] = self.compute_hmac(document)
        except (TypeError, ValueError) as e:
            raise PersistenceError(
                code="serialize_error",
                message=f"Value for {key} is not JSON serializable: {e}",
                details={"key": key},
            )

        async with self._lock:
            try:
                self._directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self._directory, prefix=f".{key}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        json.dump(document, f, indent=2, ensure_ascii=False)
                    os.replace(tmp_name, path)
                except BaseException:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
                    raise
            except OSError as e:
                raise PersistenceError(
                    code="io_error",
                    message=f"Failed to write stored value for {key}: {e}",
                    details={"file_path": str(path)},
                )

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        async with self._lock:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise PersistenceError(
                    code="io_error",
                    message=f"Failed to delete stored value for {key}: {e}",
                    details={"file_path": str(path)},
                )

    def compute_hmac(self, data: dict) -> str:
        """Compute HMAC-SHA256 over the canonical JSON serialization of ``data``."""
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    @staticmethod
    def _signed_part(raw_data: dict) -> dict:
        return {k: v for k, v in raw_data.items() if k != "hmac"}
