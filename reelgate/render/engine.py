"""Boundary to the external render engine.

The engine is a black box: it bundles an entry point into a serve location,
reports the compositions a bundle exposes, and renders one composition to a
media file. `RemotionCliEngine` drives the engine's command line through
`subprocess.run`; tests substitute any object satisfying `RenderEngine`.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from reelgate.log import get_logger

_LOG = get_logger(__name__)

GL_MODES = ("angle", "swangle", "swiftshader", "egl")
_STDERR_TAIL = 4000
# "<id>  <fps>  <width>x<height>  <frames> (<seconds> sec)"
_COMPOSITION_ROW_RE = re.compile(
    r"^\s*(?P<id>[A-Za-z0-9_-]+)\s+(?P<fps>\d+(?:\.\d+)?)\s+(?P<width>\d+)x(?P<height>\d+)\s+(?P<frames>\d+)\b"
)


class EngineError(RuntimeError):
    """Raised when the external engine fails or cannot be started."""


def default_gl_mode(platform: Optional[str] = None) -> str:
    name = str(platform or sys.platform)
    if name == "darwin" or name.startswith("win"):
        return "angle"
    return "swangle"


@dataclass(frozen=True)
class ChromiumOptions:
    gl: str = field(default_factory=default_gl_mode)
    headless: bool = True
    ignore_default_args: bool = False

    def __post_init__(self) -> None:
        if self.gl not in GL_MODES:
            raise ValueError(f"Unknown gl mode: {self.gl!r}; expected one of {', '.join(GL_MODES)}")

    def to_dict(self) -> Dict[str, Any]:
        return {"gl": self.gl, "headless": self.headless, "ignoreDefaultArgs": self.ignore_default_args}


class RenderEngine(Protocol):
    def bundle(self, entry_point: str) -> str:
        ...

    def get_compositions(self, bundle_location: str, input_props: Mapping[str, Any]) -> List[Mapping[str, Any]]:
        ...

    def render_media(
        self,
        *,
        composition_id: str,
        bundle_location: str,
        codec: str,
        output_path: str,
        input_props: Mapping[str, Any],
        chromium_options: ChromiumOptions,
        concurrency: int,
        timeout_ms: int,
    ) -> None:
        ...


def parse_compositions_table(text: str) -> List[Dict[str, Any]]:
    """Parse the engine's `compositions` listing into metadata mappings."""
    rows: List[Dict[str, Any]] = []
    for line in str(text or "").splitlines():
        match = _COMPOSITION_ROW_RE.match(line)
        if not match:
            continue
        fps_text = match.group("fps")
        rows.append(
            {
                "id": match.group("id"),
                "fps": float(fps_text) if "." in fps_text else int(fps_text),
                "width": int(match.group("width")),
                "height": int(match.group("height")),
                "durationInFrames": int(match.group("frames")),
            }
        )
    return rows


class RemotionCliEngine:
    """Runs `npx remotion <command>` for each engine operation."""

    def __init__(
        self,
        cwd: Optional[str] = None,
        command: Sequence[str] = ("npx", "remotion"),
        bundle_dir: Optional[str] = None,
        timeout_sec: float = 600.0,
    ) -> None:
        self._cwd = os.path.realpath(cwd) if cwd else None
        self._command = list(command)
        self._bundle_dir = bundle_dir
        self._timeout_sec = max(1.0, float(timeout_sec))

    def _run(self, args: Sequence[str], timeout_sec: Optional[float] = None) -> subprocess.CompletedProcess:
        executable = shutil.which(self._command[0]) or self._command[0]
        cmd = [executable, *self._command[1:], *args]
        _LOG.debug("Running engine command: %s", " ".join(cmd))
        try:
            proc = subprocess.run(
                cmd,
                cwd=self._cwd,
                capture_output=True,
                text=True,
                timeout=max(1.0, float(timeout_sec or self._timeout_sec)),
                check=False,
            )
        except FileNotFoundError as exc:
            raise EngineError(f"Render engine executable not found: {self._command[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise EngineError(f"Render engine timed out after {exc.timeout:.0f}s: {args[0] if args else ''}") from exc
        if proc.returncode != 0:
            stderr_tail = str((proc.stderr or "")[-_STDERR_TAIL:]).strip()
            raise EngineError(f"Render engine exited with code {proc.returncode}: {stderr_tail or 'no output'}")
        return proc

    def bundle(self, entry_point: str) -> str:
        out_dir = self._bundle_dir or tempfile.mkdtemp(prefix="reelgate-bundle-")
        self._run(["bundle", entry_point, f"--out-dir={out_dir}"])
        return os.path.realpath(out_dir)

    def get_compositions(self, bundle_location: str, input_props: Mapping[str, Any]) -> List[Mapping[str, Any]]:
        proc = self._run(["compositions", bundle_location, f"--props={json.dumps(dict(input_props))}"])
        return parse_compositions_table(proc.stdout)

    def render_media(
        self,
        *,
        composition_id: str,
        bundle_location: str,
        codec: str,
        output_path: str,
        input_props: Mapping[str, Any],
        chromium_options: ChromiumOptions,
        concurrency: int,
        timeout_ms: int,
    ) -> None:
        args = [
            "render",
            bundle_location,
            composition_id,
            output_path,
            f"--codec={codec}",
            f"--props={json.dumps(dict(input_props))}",
            f"--gl={chromium_options.gl}",
            f"--concurrency={int(concurrency)}",
            f"--timeout={int(timeout_ms)}",
            "--overwrite",
        ]
        if not chromium_options.headless:
            args.append("--disable-headless")
        self._run(args)
