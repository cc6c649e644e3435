from __future__ import annotations

import pytest

from reelgate.intake import catalog
from reelgate.intake.errors import CatalogRegistrationError, PackageImportError
from reelgate.intake.importer import PackageImporter, installed_props_contracts
from reelgate.intake.validator import ValidationResult


def _importer(project) -> PackageImporter:
    return PackageImporter(str(project["input"]), str(project["target"]), str(project["catalog"]))


def test_import_copies_sources_and_registers_entry(project, make_package):
    make_package(project["input"], "DemoAnimation")
    entry = _importer(project).import_package("DemoAnimation")

    assert entry.id == "DemoAnimation"
    assert (entry.width, entry.height, entry.fps, entry.duration_in_frames) == (1280, 720, 30, 120)
    target = project["target"] / "DemoAnimation"
    assert (target / "src" / "Composition.tsx").is_file()
    assert (target / "package.json").is_file()
    assert not (project["target"] / "DemoAnimation.staging").exists()

    text = project["catalog"].read_text(encoding="utf-8")
    assert (
        "import {DemoAnimation} from '../../../packages/animations-external/DemoAnimation/src/Composition'"
        in text
    )


def test_importing_twice_keeps_one_catalog_entry(project, make_package):
    make_package(project["input"], "DemoAnimation")
    importer = _importer(project)
    importer.import_package("DemoAnimation")
    importer.import_package("DemoAnimation")

    text = project["catalog"].read_text(encoding="utf-8")
    assert text.count('id="DemoAnimation"') == 1
    ids = [entry.id for entry in catalog.list_entries(str(project["catalog"]))]
    assert ids.count("DemoAnimation") == 1


def test_force_reimport_replaces_copy_and_entry(project, make_package):
    make_package(project["input"], "DemoAnimation")
    importer = _importer(project)
    importer.import_package("DemoAnimation")

    make_package(project["input"], "DemoAnimation", width=640)
    importer.import_package("DemoAnimation", force=True)

    widths = {entry.id: entry.width for entry in catalog.list_entries(str(project["catalog"]))}
    assert widths["DemoAnimation"] == 640
    copied = (project["target"] / "DemoAnimation" / "src" / "register.ts").read_text(encoding="utf-8")
    assert "width: 640" in copied
    assert not (project["target"] / "DemoAnimation.previous").exists()


def test_missing_source_package_raises(project):
    with pytest.raises(PackageImportError, match="Source package not found: Ghost"):
        _importer(project).import_package("Ghost")


def test_invalid_package_is_not_copied(project, make_package):
    make_package(project["input"], "Risky", composition="const x = Math.random()\n")
    with pytest.raises(PackageImportError, match="failed validation"):
        _importer(project).import_package("Risky")
    assert not (project["target"] / "Risky").exists()


def test_zero_width_package_fails_validation_before_copy(project, make_package):
    make_package(project["input"], "Zero", width=0)
    with pytest.raises(PackageImportError, match="width must be a positive integer"):
        _importer(project).import_package("Zero")
    assert not (project["target"] / "Zero").exists()


def test_stale_validation_with_broken_registration_raises_import_error(project, make_package):
    make_package(project["input"], "Drift")
    make_package(project["input"], "Drift", width=0)
    with pytest.raises(PackageImportError, match="no usable registration"):
        _importer(project).import_package("Drift", validation=ValidationResult("Drift"))
    assert not (project["target"] / "Drift").exists()
    assert "Drift" not in project["catalog"].read_text(encoding="utf-8")


def test_colliding_ids_import_under_distinct_component_names(project, make_package):
    make_package(project["input"], "a1", comp_id="my-anim")
    make_package(project["input"], "a2", comp_id="my_anim")
    importer = _importer(project)
    importer.import_package("a1")
    importer.import_package("a2")

    text = project["catalog"].read_text(encoding="utf-8")
    assert "import {My_anim} from '../../../packages/animations-external/a1/src/Composition'" in text
    assert "import {My_anim2} from '../../../packages/animations-external/a2/src/Composition'" in text
    ids = sorted(entry.id for entry in catalog.list_entries(str(project["catalog"])))
    assert ids == ["SimpleText", "my-anim", "my_anim"]


def test_missing_manifest_only_warns(project, make_package, caplog):
    make_package(project["input"], "Bare", manifest={})
    with caplog.at_level("WARNING", logger="reelgate"):
        _importer(project).import_package("Bare")
    assert (project["target"] / "Bare" / "src").is_dir()
    assert not (project["target"] / "Bare" / "package.json").exists()
    assert "No package.json to copy" in caplog.text


def test_registration_failure_rolls_back_the_copy(project, make_package):
    make_package(project["input"], "DemoAnimation")
    project["catalog"].write_text("export const RemotionRoot = () => null\n", encoding="utf-8")
    with pytest.raises(CatalogRegistrationError):
        _importer(project).import_package("DemoAnimation")
    assert not (project["target"] / "DemoAnimation").exists()


def test_import_all_imports_only_valid_packages(project, make_package):
    make_package(project["input"], "Alpha")
    make_package(project["input"], "Beta", composition="eval('x')\n")
    make_package(project["input"], "Gamma")

    imported = _importer(project).import_all()
    assert imported == ["Alpha", "Gamma"]
    ids = [entry.id for entry in catalog.list_entries(str(project["catalog"]))]
    assert sorted(ids) == ["Alpha", "Gamma", "SimpleText"]
    assert not (project["target"] / "Beta").exists()


def test_import_all_aggregates_failures(project, make_package):
    make_package(project["input"], "Alpha")
    make_package(project["input"], "Gamma")
    project["catalog"].write_text("export const RemotionRoot = () => null\n", encoding="utf-8")

    with pytest.raises(PackageImportError) as excinfo:
        _importer(project).import_all()
    message = str(excinfo.value)
    assert message.startswith("Import failed for: ")
    assert "Alpha" in message and "Gamma" in message


def test_import_all_with_nothing_valid_returns_empty(project):
    assert _importer(project).import_all() == []


def test_installed_props_contracts_are_keyed_by_composition_id(project, make_package):
    contract = {"title": {"type": "string", "default": "Hi"}}
    manifest = {"name": "titled", "propsSchema": contract}
    make_package(project["input"], "Titled", comp_id="titled-card", manifest=manifest)
    make_package(project["input"], "Plain")
    importer = _importer(project)
    importer.import_package("Titled")
    importer.import_package("Plain")

    contracts = installed_props_contracts(str(project["target"]))
    assert contracts == {"titled-card": contract}
    assert installed_props_contracts(str(project["root"] / "missing")) == {}
