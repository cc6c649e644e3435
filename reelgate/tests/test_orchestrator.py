from __future__ import annotations

import pytest

from reelgate.render.asset_cache import AssetCache
from reelgate.render.bundle_cache import BuildCache
from reelgate.render.engine import ChromiumOptions
from reelgate.render.orchestrator import (
    RenderJob,
    RenderOrchestrator,
    RenderRequestError,
    validate_render_options,
)


@pytest.fixture
def entry_point(tmp_path):
    path = tmp_path / "src" / "index.ts"
    path.parent.mkdir()
    path.write_text("export {}", encoding="utf-8")
    return str(path)


@pytest.fixture
def orchestrator(tmp_path, stub_engine, entry_point):
    return RenderOrchestrator(stub_engine, BuildCache(str(tmp_path / "bundles")), entry_point)


def test_successful_render_reports_size_duration_and_codec(orchestrator, stub_engine, tmp_path):
    out = str(tmp_path / "out" / "simple.mp4")
    result = orchestrator.render("SimpleText", out, {"title": "hi"})

    assert result.success is True
    assert result.error is None
    assert result.output_path == out
    assert result.size_bytes == 2048
    assert result.duration == 3.0
    assert result.codec == "h264"
    assert result.render_time_ms >= 0
    call = stub_engine.render_calls[0]
    assert call["bundle_location"] == "/srv/bundles/1"
    assert call["input_props"] == {"title": "hi"}
    assert call["concurrency"] == 1
    assert call["timeout_ms"] == 120000
    assert isinstance(call["chromium_options"], ChromiumOptions)


def test_bundle_is_reused_for_identical_requests(orchestrator, stub_engine, tmp_path):
    orchestrator.render("SimpleText", str(tmp_path / "a.mp4"))
    orchestrator.render("SimpleText", str(tmp_path / "b.mp4"))
    assert stub_engine.bundle_calls == 1
    orchestrator.render("SimpleText", str(tmp_path / "c.mp4"), {"title": "other"})
    assert stub_engine.bundle_calls == 2


def test_over_long_composition_fails_without_rendering(orchestrator, stub_engine, tmp_path):
    result = orchestrator.render("SimpleText", str(tmp_path / "a.mp4"), max_duration_seconds=1)

    assert result.success is False
    assert "exceeds" in result.error
    assert "(90)" in result.error
    assert "(30)" in result.error
    assert "(1s)" in result.error
    assert result.render_time_ms >= 0
    assert stub_engine.render_calls == []


def test_duration_limit_can_be_disabled(orchestrator, stub_engine, tmp_path):
    assert orchestrator.render("LongIntro", str(tmp_path / "a.mp4")).success is False
    assert orchestrator.render("LongIntro", str(tmp_path / "b.mp4"), max_duration_seconds=None).success is True


def test_invalid_request_fails_before_bundling(orchestrator, stub_engine, tmp_path):
    result = orchestrator.render("SimpleText", str(tmp_path / "a.webm"))
    assert result.success is False
    assert ".mp4" in result.error
    assert stub_engine.bundle_calls == 0


def test_unknown_composition_becomes_a_failure_result(orchestrator, tmp_path):
    result = orchestrator.render("Missing", str(tmp_path / "a.mp4"))
    assert result.success is False
    assert "not found" in result.error


def test_engine_failure_becomes_a_failure_result(tmp_path, entry_point, engine_factory):
    engine = engine_factory(fail_render_for={"Shapes"})
    orch = RenderOrchestrator(engine, BuildCache(str(tmp_path / "bundles")), entry_point)
    result = orch.render("Shapes", str(tmp_path / "a.mp4"))
    assert result.success is False
    assert "engine crashed on Shapes" in result.error


def test_render_many_returns_ordered_results_when_middle_item_fails(orchestrator, stub_engine, tmp_path):
    jobs = [
        RenderJob("SimpleText", str(tmp_path / "one.mp4")),
        RenderJob("Missing", str(tmp_path / "two.mp4")),
        RenderJob("Shapes", str(tmp_path / "three.mp4")),
    ]
    results = orchestrator.render_many(jobs, codec="h264")
    assert [item.success for item in results] == [True, False, True]
    assert [item.output_path for item in results] == [str(tmp_path / "one.mp4"), None, str(tmp_path / "three.mp4")]
    assert len(stub_engine.render_calls) == 2


def test_successful_render_is_recorded_in_the_asset_cache(tmp_path, stub_engine, entry_point):
    assets = AssetCache(max_entries=5)
    orch = RenderOrchestrator(stub_engine, BuildCache(str(tmp_path / "bundles")), entry_point, asset_cache=assets)
    out = tmp_path / "clip.webm"
    orch.render("Shapes", str(out), codec="vp8")

    assert assets.size() == 1
    record = assets.get(assets.keys()[0])
    assert record["path"] == str(out)
    assert record["codec"] == "vp8"
    assert record["size_bytes"] == 2048


@pytest.mark.parametrize(
    "args, message",
    [
        (("", "a.mp4"), "Composition ID is required"),
        (("bad id", "a.mp4"), "Invalid composition ID"),
        (("SimpleText", ""), "Output path is required"),
        (("SimpleText", "a.mp4", "av1"), "Unknown codec"),
        (("SimpleText", "a.mp4", "prores"), "must end with .mov"),
    ],
)
def test_validate_render_options_rejects_bad_requests(args, message):
    with pytest.raises(RenderRequestError, match=message):
        validate_render_options(*args)


def test_validate_render_options_accepts_codec_extensions():
    validate_render_options("SimpleText", "out/A.MP4", "h264")
    validate_render_options("SimpleText", "out/a.webm", "vp9")
    validate_render_options("SimpleText", "out/a.mov", "prores")
    with pytest.raises(RenderRequestError):
        validate_render_options("SimpleText", "a.mp4", max_duration_seconds=0)


def test_non_mapping_props_fail_one_job_without_stopping_the_batch(orchestrator, stub_engine, tmp_path):
    jobs = [
        RenderJob("SimpleText", str(tmp_path / "one.mp4")),
        RenderJob("Shapes", str(tmp_path / "two.mp4"), "notamapping"),
        RenderJob("Shapes", str(tmp_path / "three.mp4")),
    ]
    results = orchestrator.render_many(jobs)
    assert [item.success for item in results] == [True, False, True]
    assert "must be a mapping" in results[1].error
    assert results[1].render_time_ms >= 0
    assert len(stub_engine.render_calls) == 2


CONTRACT = {
    "title": {"type": "string", "default": "Hello", "max": 10},
    "speed": {"type": "number", "min": 0, "max": 5},
}


def test_declared_props_contract_fills_defaults_before_rendering(tmp_path, stub_engine, entry_point):
    orch = RenderOrchestrator(
        stub_engine, BuildCache(str(tmp_path / "bundles")), entry_point, props_contracts={"Shapes": CONTRACT}
    )
    result = orch.render("Shapes", str(tmp_path / "a.mp4"), {"speed": 2})
    assert result.success is True
    assert stub_engine.render_calls[0]["input_props"] == {"title": "Hello", "speed": 2}


def test_props_breaking_the_contract_fail_before_bundling(tmp_path, stub_engine, entry_point):
    orch = RenderOrchestrator(
        stub_engine, BuildCache(str(tmp_path / "bundles")), entry_point, props_contracts={"Shapes": CONTRACT}
    )
    result = orch.render("Shapes", str(tmp_path / "a.mp4"), {"speed": 9})
    assert result.success is False
    assert result.error.startswith("Invalid input props for Shapes: speed:")
    assert stub_engine.bundle_calls == 0
    assert orch.render("SimpleText", str(tmp_path / "b.mp4"), {"speed": 9}).success is True
