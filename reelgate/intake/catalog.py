"""Catalog declaration file: listing entries and registering imported ones.

The declaration is a studio root file holding `<Composition ... />` blocks.
New entries are spliced in immediately before the last `<Composition` marker.
The file is assumed to have a single writer; concurrent import sessions are not
supported and nothing here locks across processes.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from reelgate.intake.errors import CatalogRegistrationError
from reelgate.log import get_logger

_LOG = get_logger(__name__)

ENTRY_MARKER = "<Composition"
COMPOSITION_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
DEFAULT_ENTRY_VALUES = {"width": 1920, "height": 1080, "fps": 30, "durationInFrames": 90}

_ENTRY_BLOCK_RE = re.compile(r"<Composition\b(?P<body>.*?)/>", re.DOTALL)
_BLOCK_ID_RE = re.compile(r"""\bid\s*=\s*(?:"([^"]*)"|'([^']*)'|\{\s*["']([^"']*)["']\s*\})""")
_IMPORT_RE = re.compile(
    r"""^import\b(?:[\s\S]*?\bfrom\s+['"][^'"\n]+['"]|\s+['"][^'"\n]+['"]);?[ \t]*$""",
    re.MULTILINE,
)
_REGISTRATION_ID_RE = re.compile(r"""\bid\s*:\s*['"]([^'"]+)['"]""")
_REGISTRATION_INT_FIELDS = ("width", "height", "fps", "durationInFrames")
_NAMED_IMPORT_RE = re.compile(
    r"""^import\s*\{(?P<names>[^}]*)\}\s*from\s*['"](?P<module>[^'"\n]+)['"]""",
    re.MULTILINE,
)
_DEFAULT_IMPORT_RE = re.compile(
    r"""^import\s+(?P<name>[A-Za-z_$][\w$]*)\s*(?:,|from\s*['"](?P<module>[^'"\n]+)['"])""",
    re.MULTILINE,
)


def is_valid_composition_id(value: Any) -> bool:
    return isinstance(value, str) and bool(COMPOSITION_ID_RE.match(value))


@dataclass(frozen=True)
class CatalogEntry:
    id: str
    width: int
    height: int
    fps: int
    duration_in_frames: int

    def __post_init__(self) -> None:
        if not is_valid_composition_id(self.id):
            raise ValueError(
                f'Invalid composition ID: "{self.id}". Must be alphanumeric with hyphens and underscores only.'
            )
        for name in ("width", "height", "fps", "duration_in_frames"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got: {value!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "durationInFrames": self.duration_in_frames,
        }


def parse_registration(register_text: str) -> Dict[str, Any]:
    """Pull the first composition's id and dimensions out of a registration module."""
    text = str(register_text or "")
    found: Dict[str, Any] = {}
    match = _REGISTRATION_ID_RE.search(text)
    if match:
        found["id"] = match.group(1)
    for name in _REGISTRATION_INT_FIELDS:
        int_match = re.search(rf"\b{name}\s*:\s*(\d+)\b", text)
        if int_match:
            found[name] = int(int_match.group(1))
    return found


def build_entry(fields: Mapping[str, Any], fallback_id: str) -> CatalogEntry:
    values = dict(DEFAULT_ENTRY_VALUES)
    values.update({key: fields[key] for key in _REGISTRATION_INT_FIELDS if key in fields})
    return CatalogEntry(
        id=str(fields.get("id") or fallback_id),
        width=int(values["width"]),
        height=int(values["height"]),
        fps=int(values["fps"]),
        duration_in_frames=int(values["durationInFrames"]),
    )


def component_name(composition_id: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", str(composition_id or "").strip())
    if not cleaned:
        return "Composition"
    if cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned[0].upper() + cleaned[1:]


def imported_names(text: str) -> Dict[str, Optional[str]]:
    """Map each identifier bound by an import in `text` to its module."""
    bound: Dict[str, Optional[str]] = {}
    for match in _NAMED_IMPORT_RE.finditer(text):
        for item in match.group("names").split(","):
            parts = item.split()
            if parts:
                bound.setdefault(parts[-1], match.group("module"))
    for match in _DEFAULT_IMPORT_RE.finditer(text):
        bound.setdefault(match.group("name"), match.group("module"))
    return bound


def unique_component_name(text: str, component: str, import_path: str) -> str:
    """Return `component`, suffixed if another module already binds that name."""
    bound = imported_names(text)
    candidate = component
    suffix = 2
    while candidate in bound and bound[candidate] != import_path:
        candidate = f"{component}{suffix}"
        suffix += 1
    return candidate


def _block_id(body: str) -> Optional[str]:
    match = _BLOCK_ID_RE.search(body)
    if not match:
        return None
    return next(group for group in match.groups() if group is not None)


def _block_int(body: str, name: str) -> Optional[int]:
    match = re.search(rf"\b{name}\s*=\s*\{{\s*(\d+)\s*\}}", body)
    return int(match.group(1)) if match else None


def is_registered(text: str, composition_id: str) -> bool:
    return any(_block_id(match.group("body")) == composition_id for match in _ENTRY_BLOCK_RE.finditer(text))


def parse_entries(text: str) -> List[CatalogEntry]:
    entries: List[CatalogEntry] = []
    seen = set()
    for match in _ENTRY_BLOCK_RE.finditer(str(text or "")):
        body = match.group("body")
        entry_id = _block_id(body)
        values = {name: _block_int(body, name) for name in _REGISTRATION_INT_FIELDS}
        try:
            entry = CatalogEntry(
                id=str(entry_id or ""),
                width=values["width"],
                height=values["height"],
                fps=values["fps"],
                duration_in_frames=values["durationInFrames"],
            )
        except ValueError as exc:
            _LOG.debug("Skipping unparseable catalog entry %r: %s", entry_id, exc)
            continue
        if entry.id in seen:
            _LOG.warning("Duplicate catalog entry id: %s", entry.id)
            continue
        seen.add(entry.id)
        entries.append(entry)
    return entries


def list_entries(path: str) -> List[CatalogEntry]:
    if not os.path.isfile(path):
        return []
    with open(path, "r", encoding="utf-8") as fh:
        return parse_entries(fh.read())


def render_entry_block(entry: CatalogEntry, component: str, indent: str = "") -> str:
    rows = [
        "<Composition",
        f'  id="{entry.id}"',
        f"  component={{{component}}}",
        f"  durationInFrames={{{entry.duration_in_frames}}}",
        f"  fps={{{entry.fps}}}",
        f"  width={{{entry.width}}}",
        f"  height={{{entry.height}}}",
        "/>",
    ]
    return "\n".join(f"{indent}{row}" for row in rows)


def render_import_line(component: str, import_path: str) -> str:
    return f"import {{{component}}} from '{import_path}'"


def _insert_import(text: str, import_line: str) -> str:
    last = None
    for last in _IMPORT_RE.finditer(text):
        pass
    if last is None:
        return f"{import_line}\n{text}"
    return text[: last.end()] + "\n" + import_line + text[last.end() :]


def _remove_entry_block(text: str, composition_id: str) -> str:
    for match in _ENTRY_BLOCK_RE.finditer(text):
        if _block_id(match.group("body")) != composition_id:
            continue
        start = text.rfind("\n", 0, match.start()) + 1
        if text[start : match.start()].strip():
            start = match.start()
        end = match.end()
        while end < len(text) and text[end] in " \t":
            end += 1
        if text.startswith("\n\n", end):
            end += 2
        elif text.startswith("\n", end):
            end += 1
        return text[:start] + text[end:]
    return text


def _write_atomic(path: str, text: str) -> None:
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as fh:
        fh.write(text)
    os.replace(tmp_path, path)


def register_entry(
    path: str,
    entry: CatalogEntry,
    *,
    component: str,
    import_path: str,
    force: bool = False,
) -> bool:
    """Declare `entry` in the catalog file.

    Returns False when the id is already declared and `force` is not set. A
    declaration without any `<Composition` marker is a hard failure.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            text = fh.read()
    except FileNotFoundError as exc:
        raise CatalogRegistrationError(f"Catalog declaration not found: {path}") from exc

    if is_registered(text, entry.id):
        if not force:
            _LOG.info("Composition %s already registered in %s", entry.id, os.path.basename(path))
            return False
        _LOG.warning("Replacing existing registration for %s", entry.id)
        text = _remove_entry_block(text, entry.id)

    marker_index = text.rfind(ENTRY_MARKER)
    if marker_index == -1:
        raise CatalogRegistrationError(f"Could not find a {ENTRY_MARKER} entry marker in {path}")

    chosen = unique_component_name(text, component, import_path)
    if chosen != component:
        _LOG.warning("Component name %s is taken, registering %s as %s", component, entry.id, chosen)
        component = chosen

    line_start = text.rfind("\n", 0, marker_index) + 1
    indent = text[line_start:marker_index]
    if indent.strip():
        line_start, indent = marker_index, ""
    block = render_entry_block(entry, component, indent)
    text = text[:line_start] + block + "\n\n" + indent + text[line_start:].lstrip(" \t")

    import_line = render_import_line(component, import_path)
    if import_line not in text:
        text = _insert_import(text, import_line)

    _write_atomic(path, text)
    _LOG.info("Registered %s in %s", entry.id, os.path.basename(path))
    return True
