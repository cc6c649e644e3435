from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from reelgate.render.engine import EngineError

COMPOSITION_TSX = """import {AbsoluteFill, useCurrentFrame} from 'remotion'

export const Composition = ({title}: {title: string}) => {
  const frame = useCurrentFrame()
  return <AbsoluteFill>{title} {frame}</AbsoluteFill>
}
"""

PROPS_TS = """export const defaultProps = {title: 'Hello'}
"""

REGISTER_TEMPLATE = """import {{Composition}} from './Composition'
import {{defaultProps}} from './props'

export function registerExternalCompositions() {{
  return [
    {{
      id: '{comp_id}',
      component: Composition,
      defaultProps,
      width: {width},
      height: 720,
      fps: 30,
      durationInFrames: 120,
    }},
  ]
}}
"""

ROOT_TSX = """import {Composition} from 'remotion'
import {SimpleText} from '../../../packages/animations-2d/src/compositions/SimpleText'

export const RemotionRoot = () => {
  return (
    <>
      <Composition
        id="SimpleText"
        component={SimpleText}
        durationInFrames={90}
        fps={30}
        width={1920}
        height={1080}
      />
    </>
  )
}
"""


def write_package(
    input_dir: Path,
    name: str,
    *,
    comp_id: Optional[str] = None,
    width: int = 1280,
    composition: str = COMPOSITION_TSX,
    manifest: Optional[Dict[str, Any]] = None,
) -> Path:
    pkg = input_dir / name
    src = pkg / "src"
    src.mkdir(parents=True, exist_ok=True)
    (src / "Composition.tsx").write_text(composition, encoding="utf-8")
    (src / "props.ts").write_text(PROPS_TS, encoding="utf-8")
    (src / "register.ts").write_text(
        REGISTER_TEMPLATE.format(comp_id=comp_id or name, width=width),
        encoding="utf-8",
    )
    if manifest is None:
        manifest = {"name": name.lower(), "version": "1.0.0", "dependencies": {"remotion": "^4.0.0"}}
    if manifest:
        (pkg / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
    return pkg


@pytest.fixture
def project(tmp_path: Path) -> Dict[str, Path]:
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    (input_dir / ".gitkeep").write_text("", encoding="utf-8")
    catalog_file = tmp_path / "apps" / "studio" / "src" / "Root.tsx"
    catalog_file.parent.mkdir(parents=True)
    catalog_file.write_text(ROOT_TSX, encoding="utf-8")
    return {
        "root": tmp_path,
        "input": input_dir,
        "target": tmp_path / "packages" / "animations-external",
        "catalog": catalog_file,
    }


class StubEngine:
    """In-memory render engine that counts its calls."""

    def __init__(self, compositions: Optional[List[Dict[str, Any]]] = None, fail_render_for=()) -> None:
        self.compositions = compositions if compositions is not None else [
            {"id": "SimpleText", "width": 1920, "height": 1080, "fps": 30, "durationInFrames": 90},
            {"id": "Shapes", "width": 1920, "height": 1080, "fps": 30, "durationInFrames": 120},
            {"id": "LongIntro", "width": 1280, "height": 720, "fps": 30, "durationInFrames": 3600},
        ]
        self.fail_render_for = set(fail_render_for)
        self.bundle_calls = 0
        self.composition_calls = 0
        self.render_calls: List[Dict[str, Any]] = []

    def bundle(self, entry_point: str) -> str:
        self.bundle_calls += 1
        return f"/srv/bundles/{self.bundle_calls}"

    def get_compositions(self, bundle_location, input_props):
        self.composition_calls += 1
        return [dict(item) for item in self.compositions]

    def render_media(self, *, composition_id, output_path, **kwargs):
        self.render_calls.append({"composition_id": composition_id, "output_path": output_path, **kwargs})
        if composition_id in self.fail_render_for:
            raise EngineError(f"engine crashed on {composition_id}")
        Path(output_path).write_bytes(b"\x00" * 2048)


@pytest.fixture
def stub_engine() -> StubEngine:
    return StubEngine()


@pytest.fixture
def make_package():
    return write_package


@pytest.fixture
def engine_factory():
    return StubEngine
