"""Render domain package: bundle caching, composition selection, rendering."""

from .asset_cache import AssetCache, asset_cache_key
from .bundle_cache import BuildCache, BundleArtifact, CachingError, derive_cache_key
from .engine import ChromiumOptions, EngineError, RemotionCliEngine, RenderEngine, default_gl_mode
from .orchestrator import (
    CODEC_EXTENSIONS,
    RenderJob,
    RenderOrchestrator,
    RenderPolicyViolation,
    RenderRequestError,
    RenderResult,
    validate_render_options,
)
from .selector import CompositionMetadata, CompositionNotFoundError, CompositionSelector

__all__ = [
    "AssetCache",
    "asset_cache_key",
    "BuildCache",
    "BundleArtifact",
    "CachingError",
    "derive_cache_key",
    "ChromiumOptions",
    "EngineError",
    "RemotionCliEngine",
    "RenderEngine",
    "default_gl_mode",
    "CODEC_EXTENSIONS",
    "RenderJob",
    "RenderOrchestrator",
    "RenderPolicyViolation",
    "RenderRequestError",
    "RenderResult",
    "validate_render_options",
    "CompositionMetadata",
    "CompositionNotFoundError",
    "CompositionSelector",
]
