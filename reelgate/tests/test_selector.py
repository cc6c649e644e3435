from __future__ import annotations

import pytest

from reelgate.render.bundle_cache import BundleArtifact
from reelgate.render.selector import CompositionMetadata, CompositionNotFoundError, CompositionSelector


@pytest.fixture
def artifact(tmp_path):
    path = tmp_path / "k1.bundle"
    path.write_text("/srv/bundles/1\n", encoding="utf-8")
    return BundleArtifact(path=str(path), cached=True, key="k1")


def test_select_returns_metadata_with_duration_in_seconds(stub_engine, artifact):
    meta = CompositionSelector(stub_engine).select(artifact, "Shapes")
    assert meta == CompositionMetadata(id="Shapes", width=1920, height=1080, fps=30, duration_in_frames=120)
    assert meta.duration_in_seconds == 4.0
    assert meta.to_dict()["durationInSeconds"] == 4.0


def test_unknown_composition_raises(stub_engine, artifact):
    with pytest.raises(CompositionNotFoundError, match='"Missing" not found'):
        CompositionSelector(stub_engine).select(artifact, "Missing")


def test_list_all_keeps_engine_order(stub_engine, artifact):
    items = CompositionSelector(stub_engine).list_all(artifact, {"title": "x"})
    assert [item.id for item in items] == ["SimpleText", "Shapes", "LongIntro"]


def test_malformed_engine_metadata_raises_value_error(stub_engine, artifact):
    stub_engine.compositions = [{"id": "Broken", "width": 1920, "height": 1080, "fps": 0, "durationInFrames": 10}]
    with pytest.raises(ValueError):
        CompositionSelector(stub_engine).list_all(artifact)

    stub_engine.compositions = [{"id": "Broken", "width": 1920, "height": 1080, "fps": 30}]
    with pytest.raises(ValueError, match="durationInFrames"):
        CompositionSelector(stub_engine).select(artifact, "Broken")


def test_metadata_accepts_snake_case_frame_count():
    meta = CompositionMetadata.from_mapping(
        {"id": "X", "width": 10, "height": 10, "fps": 25, "duration_in_frames": 50}
    )
    assert meta.duration_in_seconds == 2.0
