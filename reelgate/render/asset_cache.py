"""Bounded timestamp-LRU for transient render assets, optionally persisted as JSON."""

from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from reelgate.log import get_logger

_LOG = get_logger(__name__)

DEFAULT_MAX_ENTRIES = 100


def _json_clone(value: Any, fallback: Any) -> Any:
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError):
        return fallback


@dataclass(frozen=True)
class AssetRecord:
    key: str
    asset: Dict[str, Any]
    timestamp: float
    seq: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "asset": _json_clone(self.asset, {}),
            "timestamp": self.timestamp,
            "seq": self.seq,
        }


def asset_cache_key(path: str) -> str:
    """`<path>-<mtime_ns>`, or the bare path when it cannot be stat'ed."""
    try:
        st = os.stat(path)
    except OSError:
        _LOG.debug("Could not get stats for cache key: %s", path)
        return str(path)
    return f"{path}-{st.st_mtime_ns}"


class AssetCache:
    """Thread-safe asset records; a full cache evicts its oldest entry on insert."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        path: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_entries = max(1, int(max_entries or 1))
        self._path = os.path.realpath(path) if path else None
        self._clock = clock
        self._lock = threading.Lock()
        self._records: Dict[str, AssetRecord] = {}
        self._seq = 0
        self._load_locked()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def _load_locked(self) -> None:
        with self._lock:
            self._records = {}
            if not self._path or not os.path.isfile(self._path):
                return
            try:
                with open(self._path, "r", encoding="utf-8") as fh:
                    payload = json.load(fh)
            except (OSError, ValueError) as exc:
                _LOG.warning("Ignoring unreadable asset cache %s: %s", self._path, exc)
                return
            raw_entries = payload.get("entries") if isinstance(payload, dict) else None
            if not isinstance(raw_entries, dict):
                return
            seq_cursor = 0
            for raw_key, raw in raw_entries.items():
                key = str(raw_key or "").strip()
                if not key or not isinstance(raw, dict) or not isinstance(raw.get("asset"), dict):
                    continue
                seq_cursor += 1
                try:
                    timestamp = float(raw.get("timestamp") or 0.0)
                    seq = max(1, int(raw.get("seq") or seq_cursor))
                except (TypeError, ValueError):
                    _LOG.warning("Skipping malformed asset cache record: %s", key)
                    continue
                record = AssetRecord(
                    key=key,
                    asset=_json_clone(raw["asset"], {}),
                    timestamp=timestamp,
                    seq=seq,
                )
                self._seq = max(self._seq, record.seq)
                self._records[key] = record
            while len(self._records) > self._max_entries:
                self._evict_oldest_locked()

    def _persist_locked(self) -> None:
        if not self._path:
            return
        folder = os.path.dirname(self._path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        payload = {
            "version": 1,
            "saved_at": time.time(),
            "entries": {
                key: {"asset": record.asset, "timestamp": record.timestamp, "seq": record.seq}
                for key, record in self._records.items()
            },
        }
        tmp_path = f"{self._path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=True, sort_keys=True, indent=2)
        try:
            os.replace(tmp_path, self._path)
        except PermissionError:
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=True, sort_keys=True, indent=2)
            try:
                os.remove(tmp_path)
            except OSError:
                pass

    def _evict_oldest_locked(self) -> Optional[str]:
        oldest: Optional[AssetRecord] = None
        for record in self._records.values():
            if oldest is None or (record.timestamp, record.seq) < (oldest.timestamp, oldest.seq):
                oldest = record
        if oldest is None:
            return None
        del self._records[oldest.key]
        _LOG.debug("Evicted oldest cache entry: %s", oldest.key)
        return oldest.key

    def evict_oldest(self) -> Optional[str]:
        with self._lock:
            key = self._evict_oldest_locked()
            if key is not None:
                self._persist_locked()
            return key

    def set(self, key: str, asset: Dict[str, Any]) -> None:
        name = str(key or "").strip()
        if not name:
            raise ValueError("asset cache key must be a non-empty string")
        cloned = _json_clone(asset, None)
        if not isinstance(cloned, dict):
            raise ValueError("asset must be a JSON-serializable mapping")
        with self._lock:
            if name not in self._records and len(self._records) >= self._max_entries:
                self._evict_oldest_locked()
            self._seq += 1
            self._records[name] = AssetRecord(key=name, asset=cloned, timestamp=float(self._clock()), seq=self._seq)
            self._persist_locked()
        _LOG.debug("Asset cached: %s", name)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(str(key or ""))
            return _json_clone(record.asset, None) if record else None

    def has(self, key: str) -> bool:
        with self._lock:
            return str(key or "") in self._records

    def delete(self, key: str) -> bool:
        with self._lock:
            if self._records.pop(str(key or ""), None) is None:
                return False
            self._persist_locked()
        _LOG.debug("Asset removed from cache: %s", key)
        return True

    def clear(self) -> int:
        with self._lock:
            count = len(self._records)
            self._records = {}
            self._persist_locked()
        _LOG.info("Asset cache cleared (%d entries)", count)
        return count

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._records.keys())

    def size(self) -> int:
        with self._lock:
            return len(self._records)

    def get_cache_stats(self) -> Dict[str, Any]:
        with self._lock:
            records = list(self._records.values())
        oldest = min(records, key=lambda item: (item.timestamp, item.seq)) if records else None
        newest = max(records, key=lambda item: (item.timestamp, item.seq)) if records else None
        return {
            "size": len(records),
            "max_size": self._max_entries,
            "oldest_entry": oldest.to_dict() if oldest else None,
            "newest_entry": newest.to_dict() if newest else None,
        }
