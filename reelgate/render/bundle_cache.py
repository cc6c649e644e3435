"""Content-addressed bundle cache.

Entries live at `<cache_dir>/<key>.bundle` with a `<key>.json` sidecar. Once
written an entry is never overwritten; nothing is evicted automatically.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
import time
from dataclasses import dataclass
from hashlib import md5, sha256
from typing import Any, Callable, Dict, Mapping, Optional

from reelgate.log import get_logger

_LOG = get_logger(__name__)

BUNDLE_SUFFIX = ".bundle"
SIDECAR_SUFFIX = ".json"
CACHE_KEY_LENGTH = 16


class CachingError(RuntimeError):
    """Raised when the cache directory cannot be read or written."""


@dataclass(frozen=True)
class BundleArtifact:
    path: str
    cached: bool
    key: str = ""

    def read_location(self) -> str:
        """Return the serve location recorded in the bundle file."""
        with open(self.path, "r", encoding="utf-8") as fh:
            return fh.read().strip()


def derive_cache_key(
    composition_id: str,
    input_props: Optional[Mapping[str, Any]] = None,
    source_fingerprint: Optional[str] = None,
) -> str:
    payload = {
        "composition": str(composition_id),
        "props": dict(input_props or {}),
        "source": source_fingerprint,
    }
    try:
        text = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    except TypeError as exc:
        raise ValueError(f"input props must be JSON-serializable: {exc}") from exc
    return sha256(text.encode("utf-8")).hexdigest()[:CACHE_KEY_LENGTH]


def _write_text_atomic(path: str, text: str) -> None:
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as fh:
        fh.write(text)
    try:
        os.replace(tmp_path, path)
    except PermissionError:
        # Some workspace ACLs deny replace; fall back to a direct write.
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text)
        try:
            os.remove(tmp_path)
        except OSError:
            pass


class BuildCache:
    """Thread-safe bundle store keyed by `derive_cache_key`."""

    def __init__(self, path: str) -> None:
        self._path = os.path.realpath(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return self._path

    @staticmethod
    def derive_key(
        composition_id: str,
        input_props: Optional[Mapping[str, Any]] = None,
        source_fingerprint: Optional[str] = None,
    ) -> str:
        return derive_cache_key(composition_id, input_props, source_fingerprint)

    @staticmethod
    def source_fingerprint(entry_point: str) -> Optional[str]:
        """MD5 over the entry point's modification time, None when it cannot be stat'ed."""
        try:
            st = os.stat(entry_point)
        except OSError:
            _LOG.debug("Could not stat entry point for fingerprint: %s", entry_point)
            return None
        return md5(str(st.st_mtime_ns).encode("ascii")).hexdigest()

    def _bundle_path(self, key: str) -> str:
        return os.path.join(self._path, f"{key}{BUNDLE_SUFFIX}")

    def _sidecar_path(self, key: str) -> str:
        return os.path.join(self._path, f"{key}{SIDECAR_SUFFIX}")

    def lookup(self, key: str) -> Optional[BundleArtifact]:
        path = self._bundle_path(key)
        try:
            found = os.path.isfile(path) and os.access(path, os.R_OK)
        except OSError as exc:
            raise CachingError(f"Could not inspect cache entry {key}: {exc}") from exc
        if not found:
            return None
        _LOG.debug("Found cached bundle: %s", key)
        return BundleArtifact(path=path, cached=True, key=key)

    def store(self, key: str, content: str, meta: Optional[Mapping[str, Any]] = None) -> BundleArtifact:
        path = self._bundle_path(key)
        with self._lock:
            if os.path.isfile(path):
                _LOG.debug("Bundle %s already cached, keeping existing entry", key)
                return BundleArtifact(path=path, cached=True, key=key)
            sidecar: Dict[str, Any] = dict(meta or {})
            sidecar.update({"key": key, "size": len(content.encode("utf-8")), "created_at": time.time()})
            try:
                os.makedirs(self._path, exist_ok=True)
                _write_text_atomic(path, content)
                _write_text_atomic(
                    self._sidecar_path(key),
                    json.dumps(sidecar, ensure_ascii=True, sort_keys=True, indent=2),
                )
            except OSError as exc:
                raise CachingError(f"Could not write cache entry {key}: {exc}") from exc
        _LOG.debug("Cached bundle: %s", key)
        return BundleArtifact(path=path, cached=False, key=key)

    def _write_transient(self, key: str, content: str) -> BundleArtifact:
        fd, path = tempfile.mkstemp(prefix=f"reelgate-{key}-", suffix=BUNDLE_SUFFIX)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        return BundleArtifact(path=path, cached=False, key=key)

    def lookup_or_build(
        self,
        key: str,
        build: Callable[[], str],
        meta: Optional[Mapping[str, Any]] = None,
    ) -> BundleArtifact:
        """Return the cached bundle for `key`, building and storing it on a miss.

        Cache failures never fail the caller: a broken lookup counts as a miss
        and a failed store hands back a transient, uncached artifact. Errors
        raised by `build` propagate.
        """
        try:
            hit = self.lookup(key)
        except CachingError as exc:
            _LOG.warning("Bundle cache lookup failed, rebuilding: %s", exc)
            hit = None
        if hit is not None:
            return hit

        _LOG.info("Creating new bundle...")
        content = str(build())
        try:
            artifact = self.store(key, content, meta)
        except CachingError as exc:
            _LOG.warning("Bundle cache write failed, using transient bundle: %s", exc)
            return self._write_transient(key, content)
        _LOG.info("Bundle created successfully")
        return artifact

    def clear(self) -> int:
        """Remove every cache entry; returns the number of bundles removed."""
        removed = 0
        with self._lock:
            if not os.path.isdir(self._path):
                return 0
            for name in sorted(os.listdir(self._path)):
                if not name.endswith((BUNDLE_SUFFIX, SIDECAR_SUFFIX, ".tmp")):
                    continue
                os.remove(os.path.join(self._path, name))
                if name.endswith(BUNDLE_SUFFIX):
                    removed += 1
        _LOG.info("Bundle cache cleared (%d entries)", removed)
        return removed

    def stats(self) -> Dict[str, Any]:
        entries = 0
        total_bytes = 0
        with self._lock:
            if os.path.isdir(self._path):
                for name in os.listdir(self._path):
                    if not name.endswith(BUNDLE_SUFFIX):
                        continue
                    entries += 1
                    try:
                        total_bytes += int(os.path.getsize(os.path.join(self._path, name)))
                    except OSError:
                        continue
        return {"path": self._path, "entries": entries, "total_bytes": total_bytes}
