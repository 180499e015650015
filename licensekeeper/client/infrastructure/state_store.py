"""
Infrastructure layer: durable key-value storage and the typed license schema.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from licensekeeper.common.models import ApiCache, LicenseRecord, OfflineState

if TYPE_CHECKING:
    from licensekeeper.common.interfaces import IStateStore

logger = logging.getLogger(__name__)

# Persisted keys
LICENSE_KEY = "licenseKey"
INSTANCE_ID = "instanceId"
API_DATA = "apiData"
LAST_VALIDATED = "lastValidated"
VALID_UNTIL = "validUntil"
OFFLINE_MODE = "offlineMode"
API_CACHE = "apiCache"

RECORD_KEYS = (LICENSE_KEY, INSTANCE_ID, API_DATA, LAST_VALIDATED, VALID_UNTIL)


class MemoryStateStore:
    """Non-durable store, used in tests and for throwaway sessions."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStateStore:
    """Stores all keys in one JSON document, replaced atomically on each write."""

    def __init__(self, file_path: Path):
        self.file_path = file_path
        self._lock = threading.Lock()
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        try:
            with self.file_path.open() as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.warning("State file %s is corrupt, starting empty", self.file_path)
            return {}
        if not isinstance(data, dict):
            logger.warning("State file %s has no mapping, starting empty", self.file_path)
            return {}
        return data

    def _save(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.file_path.parent, prefix=f".{self.file_path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self._data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.file_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Any | None:
        with self._lock:
            return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)
            self._save()

    def delete(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                del self._data[key]
                self._save()


class LicenseStorage:
    """Typed view over a key-value store with one schema per persisted key."""

    def __init__(self, store: IStateStore):
        self.store = store

    def load_record(self) -> LicenseRecord | None:
        """Return the bound license, or None unless both key and instance exist."""
        license_key = self.store.get(LICENSE_KEY)
        instance_id = self.store.get(INSTANCE_ID)
        if not license_key or not instance_id:
            return None
        return LicenseRecord(
            license_key=license_key,
            instance_id=instance_id,
            last_validated_at=_parse_time(self.store.get(LAST_VALIDATED)),
            valid_until=_parse_time(self.store.get(VALID_UNTIL)),
            api_data=self.store.get(API_DATA),
        )

    def is_bound(self) -> bool:
        return self.load_record() is not None

    def save_record(self, record: LicenseRecord) -> None:
        """Write the record so that the key appears last."""
        self.store.set(INSTANCE_ID, record.instance_id)
        if record.api_data is not None:
            self.store.set(API_DATA, record.api_data)
        if record.last_validated_at is not None:
            self.store.set(LAST_VALIDATED, record.last_validated_at.isoformat())
        if record.valid_until is not None:
            self.store.set(VALID_UNTIL, record.valid_until.isoformat())
        else:
            self.store.delete(VALID_UNTIL)
        self.store.set(LICENSE_KEY, record.license_key)

    def clear_record(self) -> None:
        """Erase the record, key first, so a partial clear reads as unbound."""
        for key in RECORD_KEYS:
            self.store.delete(key)

    def load_offline_state(self) -> OfflineState | None:
        raw = self.store.get(OFFLINE_MODE)
        if raw is None:
            return None
        try:
            return OfflineState.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding malformed %s entry", OFFLINE_MODE)
            return None

    def save_offline_state(self, state: OfflineState) -> None:
        self.store.set(OFFLINE_MODE, state.model_dump(mode="json"))

    def load_api_cache(self) -> ApiCache:
        raw = self.store.get(API_CACHE)
        if raw is None:
            return ApiCache()
        try:
            return ApiCache.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding malformed %s entry", API_CACHE)
            return ApiCache()

    def save_api_cache(self, cache: ApiCache) -> None:
        self.store.set(API_CACHE, cache.model_dump(mode="json"))


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Ignoring malformed timestamp %r", value)
        return None
