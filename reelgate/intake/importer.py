"""Promotion of validated packages into the active catalog.

An import session assumes it is the only writer of the target directory and
the catalog declaration. Running two `import_all` sessions concurrently
against the same project is unsupported.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from reelgate.intake import catalog
from reelgate.intake.catalog import CatalogEntry
from reelgate.intake.errors import CatalogRegistrationError, PackageImportError
from reelgate.intake.validator import (
    DEFAULT_LAYOUT,
    PackageLayout,
    ValidationResult,
    discover_packages,
    read_manifest,
    validate_all,
    validate_package,
)
from reelgate.log import get_logger
from reelgate.settings import Settings

_LOG = get_logger(__name__)

_STAGING_SUFFIX = ".staging"
_PREVIOUS_SUFFIX = ".previous"


class PackageImporter:
    """Copies validated packages out of the intake directory and registers them."""

    def __init__(
        self,
        input_dir: str,
        target_dir: str,
        catalog_file: str,
        layout: PackageLayout = DEFAULT_LAYOUT,
    ) -> None:
        self._input_dir = os.path.realpath(input_dir)
        self._target_dir = os.path.realpath(target_dir)
        self._catalog_file = os.path.realpath(catalog_file)
        self._layout = layout

    @classmethod
    def from_settings(cls, settings: Settings, layout: PackageLayout = DEFAULT_LAYOUT) -> "PackageImporter":
        return cls(
            input_dir=settings.resolve(settings.input_dir),
            target_dir=settings.resolve(settings.target_dir),
            catalog_file=settings.resolve(settings.catalog_file),
            layout=layout,
        )

    @property
    def catalog_file(self) -> str:
        return self._catalog_file

    def _read_catalog(self) -> str:
        try:
            with open(self._catalog_file, "r", encoding="utf-8") as fh:
                return fh.read()
        except FileNotFoundError as exc:
            raise CatalogRegistrationError(f"Catalog declaration not found: {self._catalog_file}") from exc

    def _import_path(self, target_path: str) -> str:
        stem = os.path.splitext(self._layout.composition_file)[0]
        module = os.path.join(target_path, self._layout.source_dir, stem)
        rel = os.path.relpath(module, os.path.dirname(self._catalog_file)).replace(os.sep, "/")
        return rel if rel.startswith(".") else f"./{rel}"

    def _stage(self, source_path: str, target_path: str) -> str:
        staging = target_path + _STAGING_SUFFIX
        if os.path.isdir(staging):
            shutil.rmtree(staging)
        os.makedirs(staging)
        shutil.copytree(
            os.path.join(source_path, self._layout.source_dir),
            os.path.join(staging, self._layout.source_dir),
        )
        manifest = os.path.join(source_path, self._layout.manifest_file)
        if os.path.isfile(manifest):
            shutil.copy2(manifest, os.path.join(staging, self._layout.manifest_file))
            _LOG.debug("Copied: %s", self._layout.manifest_file)
        else:
            _LOG.warning("No %s to copy", self._layout.manifest_file)
        return staging

    def _swap_in(self, staging: str, target_path: str) -> Optional[str]:
        previous = None
        if os.path.exists(target_path):
            _LOG.warning("Target directory exists, will overwrite: %s", target_path)
            previous = target_path + _PREVIOUS_SUFFIX
            if os.path.exists(previous):
                shutil.rmtree(previous)
            os.replace(target_path, previous)
        os.replace(staging, target_path)
        return previous

    def _roll_back(self, target_path: str, previous: Optional[str]) -> None:
        shutil.rmtree(target_path, ignore_errors=True)
        if previous and os.path.isdir(previous):
            os.replace(previous, target_path)

    def import_package(
        self,
        name: str,
        validation: Optional[ValidationResult] = None,
        *,
        force: bool = False,
    ) -> CatalogEntry:
        """Promote one package; returns its catalog entry.

        Raises PackageImportError when the source is missing or its latest
        validation is not valid. An id already declared in the catalog is left
        untouched unless `force` is set.
        """
        _LOG.info("Importing: %s", name)
        source_path = os.path.join(self._input_dir, name)
        if not os.path.isdir(source_path):
            _LOG.error("Source package does not exist: %s", name)
            raise PackageImportError(f"Source package not found: {name}")

        result = validation if validation is not None else validate_package(source_path, self._layout)
        if result.package_name != name:
            raise PackageImportError(f"Validation result for {result.package_name} does not belong to {name}")
        if not result.valid:
            raise PackageImportError(f"Package {name} failed validation: {'; '.join(result.errors)}")

        register_file = os.path.join(source_path, self._layout.source_dir, self._layout.register_file)
        try:
            with open(register_file, "r", encoding="utf-8") as fh:
                entry = catalog.build_entry(catalog.parse_registration(fh.read()), fallback_id=name)
        except (OSError, ValueError) as exc:
            raise PackageImportError(f"Package {name} has no usable registration: {exc}") from exc

        if catalog.is_registered(self._read_catalog(), entry.id) and not force:
            _LOG.info("Composition %s already registered, nothing to import", entry.id)
            return entry

        target_path = os.path.join(self._target_dir, name)
        os.makedirs(self._target_dir, exist_ok=True)
        staging = self._stage(source_path, target_path)
        previous = self._swap_in(staging, target_path)
        try:
            catalog.register_entry(
                self._catalog_file,
                entry,
                component=catalog.component_name(entry.id),
                import_path=self._import_path(target_path),
                force=force,
            )
        except (PackageImportError, OSError):
            self._roll_back(target_path, previous)
            raise
        if previous:
            shutil.rmtree(previous, ignore_errors=True)

        _LOG.info("Import complete: %s", target_path)
        return entry

    def import_all(self, *, force: bool = False) -> List[str]:
        """Import every valid package in the intake directory.

        Invalid packages are skipped. Import-phase failures do not stop the
        batch; they are collected and raised together at the end.
        """
        results = validate_all(self._input_dir, self._layout)
        valid_results = [item for item in results if item.valid]
        if not valid_results:
            _LOG.info("No valid packages to import")
            return []

        _LOG.info("Importing %d valid package(s)...", len(valid_results))
        imported: List[str] = []
        failures: List[str] = []
        for result in valid_results:
            name = result.package_name
            try:
                self.import_package(name, result, force=force)
            except (PackageImportError, OSError, ValueError) as exc:
                _LOG.error("x Failed to import %s: %s", name, exc)
                failures.append(f"{name}: {exc}")
                continue
            _LOG.info("ok Imported: %s", name)
            imported.append(name)

        if failures:
            _LOG.error("%d import(s) failed", len(failures))
            raise PackageImportError(f"Import failed for: {', '.join(failures)}")
        _LOG.info("All imports complete")
        return imported


def installed_props_contracts(target_dir: str, layout: PackageLayout = DEFAULT_LAYOUT) -> Dict[str, Dict[str, Any]]:
    """Map composition ids of imported packages to the props contract they declare."""
    try:
        names = discover_packages(target_dir)
    except OSError:
        return {}
    contracts: Dict[str, Dict[str, Any]] = {}
    for name in names:
        if name.endswith((_STAGING_SUFFIX, _PREVIOUS_SUFFIX)):
            continue
        package_path = os.path.join(target_dir, name)
        manifest, problem = read_manifest(Path(package_path) / layout.manifest_file)
        if problem:
            _LOG.warning("Skipping props contract of %s: %s", name, problem)
        if not manifest or not isinstance(manifest.get("propsSchema"), dict):
            continue
        register_file = os.path.join(package_path, layout.source_dir, layout.register_file)
        try:
            with open(register_file, "r", encoding="utf-8") as fh:
                fields = catalog.parse_registration(fh.read())
        except OSError as exc:
            _LOG.warning("Skipping props contract of %s: %s", name, exc)
            continue
        contracts[str(fields.get("id") or name)] = manifest["propsSchema"]
    return contracts
