"""Composition metadata lookup against a bundle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from reelgate.log import get_logger
from reelgate.render.bundle_cache import BundleArtifact
from reelgate.render.engine import RenderEngine

_LOG = get_logger(__name__)


class CompositionNotFoundError(LookupError):
    """Raised when a bundle does not expose the requested composition."""


def _positive_int(raw: Mapping[str, Any], *names: str) -> int:
    for name in names:
        if name in raw:
            value = raw[name]
            break
    else:
        raise ValueError(f"composition metadata missing {names[0]}")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0 or int(value) != value:
        raise ValueError(f"composition metadata {names[0]} must be a positive integer, got: {value!r}")
    return int(value)


@dataclass(frozen=True)
class CompositionMetadata:
    id: str
    width: int
    height: int
    fps: float
    duration_in_frames: int

    @property
    def duration_in_seconds(self) -> float:
        return self.duration_in_frames / self.fps

    @classmethod
    def from_mapping(cls, raw: Any) -> "CompositionMetadata":
        if not isinstance(raw, Mapping):
            raise ValueError(f"composition metadata must be a mapping, got: {type(raw).__name__}")
        comp_id = str(raw.get("id") or "").strip()
        if not comp_id:
            raise ValueError("composition metadata missing id")
        fps = raw.get("fps")
        if isinstance(fps, bool) or not isinstance(fps, (int, float)) or fps <= 0:
            raise ValueError(f"composition metadata fps must be positive, got: {fps!r}")
        return cls(
            id=comp_id,
            width=_positive_int(raw, "width"),
            height=_positive_int(raw, "height"),
            fps=fps,
            duration_in_frames=_positive_int(raw, "durationInFrames", "duration_in_frames"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "durationInFrames": self.duration_in_frames,
            "durationInSeconds": self.duration_in_seconds,
        }


class CompositionSelector:
    def __init__(self, engine: RenderEngine) -> None:
        self._engine = engine

    def list_all(
        self,
        artifact: BundleArtifact,
        input_props: Optional[Mapping[str, Any]] = None,
    ) -> List[CompositionMetadata]:
        """Every composition in the bundle, in engine order."""
        raw = self._engine.get_compositions(artifact.read_location(), dict(input_props or {}))
        items = [CompositionMetadata.from_mapping(item) for item in raw or []]
        _LOG.info("Found %d composition(s)", len(items))
        return items

    def select(
        self,
        artifact: BundleArtifact,
        composition_id: str,
        input_props: Optional[Mapping[str, Any]] = None,
    ) -> CompositionMetadata:
        _LOG.info("Selecting composition: %s", composition_id)
        for meta in self.list_all(artifact, input_props):
            if meta.id != composition_id:
                continue
            _LOG.info(
                "Composition found: %s (%dx%d, %sfps, %d frames)",
                meta.id,
                meta.width,
                meta.height,
                meta.fps,
                meta.duration_in_frames,
            )
            return meta
        raise CompositionNotFoundError(f'Composition "{composition_id}" not found')
