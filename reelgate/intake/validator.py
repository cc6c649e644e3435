"""Structural and contract validation for externally authored packages."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from reelgate.intake import catalog
from reelgate.intake.guardrails import scan
from reelgate.intake.props_contract import validate_props_contract
from reelgate.log import get_logger

_LOG = get_logger(__name__)

PLACEHOLDER_ENTRY = ".gitkeep"
SUSPICIOUS_DEPENDENCY_TOKENS = ("eval", "exec", "script")


@dataclass(frozen=True)
class PackageLayout:
    """File names making up an external package."""

    source_dir: str = "src"
    composition_file: str = "Composition.tsx"
    props_file: str = "props.ts"
    register_file: str = "register.ts"
    manifest_file: str = "package.json"
    entry_point_name: str = "registerExternalCompositions"

    def required_files(self) -> Tuple[str, ...]:
        return (self.composition_file, self.props_file, self.register_file)


DEFAULT_LAYOUT = PackageLayout()


@dataclass(frozen=True)
class ValidationResult:
    package_name: str
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.package_name,
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def _result(name: str, errors: List[str], warnings: List[str]) -> ValidationResult:
    return ValidationResult(package_name=name, errors=tuple(errors), warnings=tuple(warnings))


def read_manifest(path: Path) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Return (manifest, problem); both are None when the manifest is absent."""
    if not path.is_file():
        return None, None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        return None, f"{path.name} could not be parsed: {exc}"
    if not isinstance(payload, dict):
        return None, f"{path.name} must contain a JSON object"
    return payload, None


def find_suspicious_dependencies(manifest: Dict[str, Any]) -> List[str]:
    deps = manifest.get("dependencies")
    if not isinstance(deps, dict):
        return []
    return [
        str(name)
        for name in deps.keys()
        if any(token in str(name).lower() for token in SUSPICIOUS_DEPENDENCY_TOKENS)
    ]


def validate_package(package_path: str | Path, layout: PackageLayout = DEFAULT_LAYOUT) -> ValidationResult:
    pkg_path = Path(package_path)
    name = pkg_path.name or str(package_path)
    errors: List[str] = []
    warnings: List[str] = []

    _LOG.info("Validating: %s", name)

    if not pkg_path.is_dir():
        errors.append("Package directory does not exist")
        return _result(name, errors, warnings)

    src_dir = pkg_path / layout.source_dir
    if not src_dir.is_dir():
        errors.append(f"{layout.source_dir}/ directory missing")
        return _result(name, errors, warnings)

    for file_name in layout.required_files():
        if not (src_dir / file_name).is_file():
            errors.append(f"Required file missing: {layout.source_dir}/{file_name}")
    if errors:
        return _result(name, errors, warnings)

    manifest, manifest_problem = read_manifest(pkg_path / layout.manifest_file)
    if manifest_problem:
        warnings.append(manifest_problem)
    if manifest:
        suspicious = find_suspicious_dependencies(manifest)
        if suspicious:
            warnings.append(f"Suspicious dependencies: {', '.join(suspicious)}")

    try:
        register_code = (src_dir / layout.register_file).read_text(encoding="utf-8")
        composition_code = (src_dir / layout.composition_file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        errors.append(f"Package sources could not be read: {exc}")
        return _result(name, errors, warnings)

    if layout.entry_point_name not in register_code:
        errors.append(f"{layout.entry_point_name}() function not exported")
    else:
        fields = catalog.parse_registration(register_code)
        if "id" not in fields:
            warnings.append(f"{layout.register_file} declares no composition id; '{name}' will be used")
        missing = [key for key in catalog.DEFAULT_ENTRY_VALUES if key not in fields]
        if missing:
            warnings.append(f"{layout.register_file} does not declare {', '.join(missing)}; defaults will apply")
        try:
            catalog.build_entry(fields, name)
        except ValueError as exc:
            errors.append(str(exc))

    report = scan(composition_code)
    errors.extend(report.errors)
    warnings.extend(report.warnings)

    if manifest and "propsSchema" in manifest:
        errors.extend(validate_props_contract(manifest["propsSchema"]))

    if errors:
        _LOG.error("x %s has %d error(s)", name, len(errors))
    else:
        _LOG.info("ok %s is valid", name)
    if warnings:
        _LOG.warning("! %s has %d warning(s)", name, len(warnings))
    return _result(name, errors, warnings)


def discover_packages(input_dir: str | Path) -> List[str]:
    """Return package names under `input_dir`; raises OSError if it is unreadable."""
    return [
        entry
        for entry in sorted(os.listdir(input_dir))
        if not entry.startswith(".") and entry != PLACEHOLDER_ENTRY
    ]


def validate_all(input_dir: str | Path, layout: PackageLayout = DEFAULT_LAYOUT) -> List[ValidationResult]:
    _LOG.info("Validating external animations...")
    try:
        packages = discover_packages(input_dir)
    except OSError:
        _LOG.error("Input directory does not exist: %s", input_dir)
        return []

    _LOG.info("Found %d external animation(s)", len(packages))
    results = [validate_package(Path(input_dir) / name, layout) for name in packages]
    valid_count = sum(1 for item in results if item.valid)
    _LOG.info("Validation complete: %d valid, %d invalid", valid_count, len(results) - valid_count)
    return results
