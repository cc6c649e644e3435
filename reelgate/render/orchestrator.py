"""Render requests: check props, bundle, select, enforce the duration limit, render.

`render` never raises; every failure is reported as a `RenderResult` with
`success=False` and the elapsed time filled in.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from reelgate.intake.catalog import is_valid_composition_id
from reelgate.intake.importer import installed_props_contracts
from reelgate.intake.props_contract import apply_defaults, validate_props
from reelgate.log import get_logger
from reelgate.render.asset_cache import AssetCache, asset_cache_key
from reelgate.render.bundle_cache import BuildCache, BundleArtifact
from reelgate.render.engine import ChromiumOptions, RenderEngine
from reelgate.render.selector import CompositionMetadata, CompositionSelector
from reelgate.settings import Settings

_LOG = get_logger(__name__)

CODEC_EXTENSIONS = {"h264": ".mp4", "vp8": ".webm", "vp9": ".webm", "prores": ".mov"}
DEFAULT_CODEC = "h264"
DEFAULT_MAX_DURATION_SECONDS = 60
DEFAULT_TIMEOUT_MS = 120000


class RenderRequestError(ValueError):
    """Raised for a malformed render request, before any work is done."""


class RenderPolicyViolation(RuntimeError):
    """Raised when a composition breaks a render policy such as the duration limit."""


@dataclass(frozen=True)
class RenderJob:
    composition_id: str
    output_path: str
    input_props: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class RenderResult:
    success: bool
    render_time_ms: int
    output_path: Optional[str] = None
    duration: Optional[float] = None
    size_bytes: Optional[int] = None
    codec: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "outputPath": self.output_path,
            "duration": self.duration,
            "sizeBytes": self.size_bytes,
            "codec": self.codec,
            "error": self.error,
            "renderTimeMs": self.render_time_ms,
        }


def validate_render_options(
    composition_id: str,
    output_path: str,
    codec: str = DEFAULT_CODEC,
    *,
    max_duration_seconds: Optional[float] = DEFAULT_MAX_DURATION_SECONDS,
    concurrency: int = 1,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> None:
    if not composition_id:
        raise RenderRequestError("Composition ID is required")
    if not is_valid_composition_id(composition_id):
        raise RenderRequestError(
            f'Invalid composition ID: "{composition_id}". Must be alphanumeric with hyphens and underscores only.'
        )
    if not output_path:
        raise RenderRequestError("Output path is required")
    if codec not in CODEC_EXTENSIONS:
        raise RenderRequestError(f"Unknown codec: {codec!r}; expected one of {', '.join(CODEC_EXTENSIONS)}")
    extension = CODEC_EXTENSIONS[codec]
    if not str(output_path).lower().endswith(extension):
        raise RenderRequestError(f"Output path must end with {extension} for codec {codec}")
    if max_duration_seconds is not None and max_duration_seconds <= 0:
        raise RenderRequestError("max_duration_seconds must be positive")
    if int(concurrency) < 1:
        raise RenderRequestError("concurrency must be at least 1")
    if int(timeout_ms) < 1:
        raise RenderRequestError("timeout_ms must be positive")


def enforce_duration_limit(meta: CompositionMetadata, max_duration_seconds: Optional[float]) -> None:
    if max_duration_seconds is None or meta.duration_in_seconds <= max_duration_seconds:
        return
    raise RenderPolicyViolation(
        f"Video duration ({meta.duration_in_seconds:.2f}s) exceeds max duration ({max_duration_seconds:g}s). "
        f"Reduce frames ({meta.duration_in_frames}), increase FPS ({meta.fps:g}), or increase --max-duration."
    )


def _elapsed_ms(start: float) -> int:
    return max(0, int(round((time.monotonic() - start) * 1000)))


class RenderOrchestrator:
    def __init__(
        self,
        engine: RenderEngine,
        bundle_cache: BuildCache,
        entry_point: str,
        *,
        selector: Optional[CompositionSelector] = None,
        asset_cache: Optional[AssetCache] = None,
        props_contracts: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> None:
        self._engine = engine
        self._bundle_cache = bundle_cache
        self._entry_point = entry_point
        self._selector = selector or CompositionSelector(engine)
        self._asset_cache = asset_cache
        self._props_contracts = dict(props_contracts or {})

    @classmethod
    def from_settings(cls, settings: Settings, engine: RenderEngine) -> "RenderOrchestrator":
        asset_cache = None
        if settings.asset_cache_file:
            asset_cache = AssetCache(
                max_entries=settings.asset_cache_max_entries,
                path=settings.resolve(settings.asset_cache_file),
            )
        return cls(
            engine,
            BuildCache(settings.resolve(settings.bundle_cache_dir)),
            settings.resolve(settings.entry_point),
            asset_cache=asset_cache,
            props_contracts=installed_props_contracts(settings.resolve(settings.target_dir)),
        )

    @property
    def selector(self) -> CompositionSelector:
        return self._selector

    def _resolve_props(self, composition_id: str, input_props: Any) -> Dict[str, Any]:
        if input_props is None:
            props: Dict[str, Any] = {}
        elif isinstance(input_props, Mapping):
            props = dict(input_props)
        else:
            raise RenderRequestError(f"Input props must be a mapping, got {type(input_props).__name__}")
        contract = self._props_contracts.get(composition_id)
        if contract is None:
            return props
        props = apply_defaults(contract, props)
        problems = validate_props(contract, props)
        if problems:
            raise RenderRequestError(f"Invalid input props for {composition_id}: {'; '.join(problems)}")
        return props

    def bundle(self, composition_id: str, input_props: Optional[Mapping[str, Any]] = None) -> BundleArtifact:
        _LOG.info("Bundling composition: %s", composition_id)
        fingerprint = BuildCache.source_fingerprint(self._entry_point)
        key = BuildCache.derive_key(composition_id, input_props, fingerprint)
        return self._bundle_cache.lookup_or_build(
            key,
            lambda: self._engine.bundle(self._entry_point),
            meta={"composition": composition_id, "fingerprint": fingerprint, "entry_point": self._entry_point},
        )

    def render(
        self,
        composition_id: str,
        output_path: str,
        input_props: Optional[Mapping[str, Any]] = None,
        *,
        codec: str = DEFAULT_CODEC,
        max_duration_seconds: Optional[float] = DEFAULT_MAX_DURATION_SECONDS,
        chromium_options: Optional[ChromiumOptions] = None,
        concurrency: int = 1,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> RenderResult:
        start = time.monotonic()
        _LOG.info("Starting render: %s -> %s", composition_id, output_path)
        try:
            validate_render_options(
                composition_id,
                output_path,
                codec,
                max_duration_seconds=max_duration_seconds,
                concurrency=concurrency,
                timeout_ms=timeout_ms,
            )
            props = self._resolve_props(composition_id, input_props)
            artifact = self.bundle(composition_id, props)
            meta = self._selector.select(artifact, composition_id, props)
            _LOG.info("Composition duration: %.2fs", meta.duration_in_seconds)
            enforce_duration_limit(meta, max_duration_seconds)

            folder = os.path.dirname(os.path.abspath(output_path))
            os.makedirs(folder, exist_ok=True)
            _LOG.info("Starting media render...")
            self._engine.render_media(
                composition_id=composition_id,
                bundle_location=artifact.read_location(),
                codec=codec,
                output_path=output_path,
                input_props=props,
                chromium_options=chromium_options or ChromiumOptions(),
                concurrency=int(concurrency),
                timeout_ms=int(timeout_ms),
            )
            size_bytes = int(os.path.getsize(output_path))
        except Exception as exc:
            elapsed = _elapsed_ms(start)
            _LOG.error("Render failed: %s", exc)
            return RenderResult(success=False, error=str(exc), render_time_ms=elapsed)

        elapsed = _elapsed_ms(start)
        _LOG.info("Render completed successfully in %.2fs", elapsed / 1000.0)
        _LOG.info("Output: %s (%.2f MB)", output_path, size_bytes / 1024.0 / 1024.0)
        if self._asset_cache is not None:
            try:
                self._asset_cache.set(
                    asset_cache_key(output_path),
                    {
                        "path": output_path,
                        "composition": composition_id,
                        "size_bytes": size_bytes,
                        "codec": codec,
                        "render_time_ms": elapsed,
                    },
                )
            except OSError as exc:
                _LOG.warning("Could not record render output in asset cache: %s", exc)
        return RenderResult(
            success=True,
            output_path=output_path,
            duration=meta.duration_in_seconds,
            size_bytes=size_bytes,
            codec=codec,
            render_time_ms=elapsed,
        )

    def render_many(self, jobs: Iterable[RenderJob], **options: Any) -> List[RenderResult]:
        """Render jobs one after another; a failed job does not stop the batch."""
        job_list = list(jobs)
        _LOG.info("Rendering %d composition(s)...", len(job_list))
        results: List[RenderResult] = []
        for job in job_list:
            result = self.render(job.composition_id, job.output_path, job.input_props, **options)
            results.append(result)
            if not result.success:
                _LOG.error("Failed to render %s: %s", job.composition_id, result.error)
        return results
