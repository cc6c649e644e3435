"""Project settings: defaults, optional reelgate.yaml, REELGATE_* overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

CONFIG_FILE_NAME = "reelgate.yaml"
ENV_PREFIX = "REELGATE_"


class SettingsError(ValueError):
    """Raised when reelgate.yaml or an override holds an unusable value."""


@dataclass(frozen=True)
class Settings:
    root: str = "."
    input_dir: str = "input"
    target_dir: str = "packages/animations-external"
    catalog_file: str = "apps/studio/src/Root.tsx"
    bundle_cache_dir: str = ".cache/bundles"
    entry_point: str = "packages/animations-2d/src/index.ts"
    asset_cache_file: str = ""
    asset_cache_max_entries: int = 100
    max_duration_seconds: int = 60
    timeout_ms: int = 120000
    concurrency: int = 1
    codec: str = "h264"

    def resolve(self, relative: str) -> str:
        """Return `relative` anchored at the project root."""
        text = str(relative or "").strip()
        if not text:
            return ""
        if os.path.isabs(text):
            return os.path.normpath(text)
        return os.path.normpath(os.path.join(self.root, text))


_INT_FIELDS = {"asset_cache_max_entries", "max_duration_seconds", "timeout_ms", "concurrency"}


def _int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(environ.get(name, str(default)))
    except Exception:
        return default


def _str_env(environ: Mapping[str, str], name: str, default: str) -> str:
    value = environ.get(name)
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _load_config_file(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SettingsError(f"{path}: invalid YAML: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise SettingsError(f"{path}: settings must be a mapping")
    known = {item.name for item in fields(Settings)} - {"root"}
    unknown = sorted(str(key) for key in raw if key not in known)
    if unknown:
        raise SettingsError(f"{path}: unknown settings: {', '.join(unknown)}")
    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if key in _INT_FIELDS:
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise SettingsError(f"{path}: field '{key}' must be a positive integer")
        elif not isinstance(value, str):
            raise SettingsError(f"{path}: field '{key}' must be a string")
        values[key] = value
    return values


def load_settings(
    root: Optional[str] = None,
    *,
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build settings for a project root.

    Values come from the dataclass defaults, then `reelgate.yaml` (or
    `config_path`), then `REELGATE_<FIELD>` environment variables.
    """
    env = os.environ if environ is None else environ
    project_root = os.path.realpath(str(root or _str_env(env, ENV_PREFIX + "ROOT", ".")))
    config = Path(config_path) if config_path else Path(project_root) / CONFIG_FILE_NAME
    settings = replace(Settings(root=project_root), **_load_config_file(config))

    overrides: Dict[str, Any] = {}
    for item in fields(Settings):
        if item.name == "root":
            continue
        env_name = ENV_PREFIX + item.name.upper()
        current = getattr(settings, item.name)
        if item.name in _INT_FIELDS:
            value = _int_env(env, env_name, current)
            overrides[item.name] = value if value > 0 else current
        else:
            overrides[item.name] = _str_env(env, env_name, current)
    return replace(settings, **overrides)
