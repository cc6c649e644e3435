"""Command line entry point.

Exit codes: 0 on success, 1 when validation fails or any item in a batch
fails, 2 on an operational or unexpected error.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from reelgate import __version__
from reelgate.intake import catalog, guardrails
from reelgate.intake.errors import PackageImportError
from reelgate.intake.importer import PackageImporter
from reelgate.intake.validator import discover_packages, validate_all, validate_package
from reelgate.log import configure_logging, get_logger
from reelgate.render.bundle_cache import BuildCache
from reelgate.render.engine import GL_MODES, ChromiumOptions, RemotionCliEngine, RenderEngine
from reelgate.render.orchestrator import CODEC_EXTENSIONS, RenderOrchestrator
from reelgate.settings import Settings, SettingsError, load_settings

_LOG = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=True))


def _build_engine(settings: Settings) -> RenderEngine:
    return RemotionCliEngine(cwd=settings.root)


def _read_props(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: props file must contain a JSON object")
    return payload


def cmd_validate(args: argparse.Namespace, settings: Settings) -> int:
    input_dir = settings.resolve(settings.input_dir)
    if args.source:
        results = [validate_package(Path(input_dir) / args.source)]
    else:
        results = validate_all(input_dir)

    if args.json:
        _print_json([item.to_dict() for item in results])
    else:
        valid_count = sum(1 for item in results if item.valid)
        print("Validation Results:")
        print(f"  Total: {len(results)}")
        print(f"  Valid: {valid_count}")
        print(f"  Invalid: {len(results) - valid_count}")
        for item in results:
            print(f"  {'ok' if item.valid else 'x'} {item.package_name}")
            for error in item.errors:
                print(f"    - {error}")
            for warning in item.warnings:
                print(f"    ! {warning}")
    return EXIT_OK if all(item.valid for item in results) else EXIT_FAILED


def cmd_import(args: argparse.Namespace, settings: Settings) -> int:
    importer = PackageImporter.from_settings(settings)
    try:
        entry = importer.import_package(args.source, force=bool(args.force))
    except PackageImportError as exc:
        _LOG.error("Import failed: %s", exc)
        return EXIT_FAILED
    print(f"Import successful: {args.source} ({entry.id})")
    return EXIT_OK


def cmd_import_all(args: argparse.Namespace, settings: Settings) -> int:
    importer = PackageImporter.from_settings(settings)
    try:
        imported = importer.import_all(force=bool(args.force))
    except PackageImportError as exc:
        _LOG.error("Import failed: %s", exc)
        return EXIT_FAILED
    print(f"Import complete: {len(imported)} package(s)")
    for name in imported:
        print(f"  - {name}")
    return EXIT_OK


def cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    if args.catalog:
        entries = catalog.list_entries(settings.resolve(settings.catalog_file))
        if args.json:
            _print_json([entry.to_dict() for entry in entries])
            return EXIT_OK
        print(f"Found {len(entries)} catalog entr{'y' if len(entries) == 1 else 'ies'}:")
        for entry in entries:
            print(
                f"  - {entry.id} ({entry.width}x{entry.height}, {entry.fps}fps, {entry.duration_in_frames} frames)"
            )
        return EXIT_OK

    input_dir = settings.resolve(settings.input_dir)
    packages = discover_packages(input_dir)
    if args.json:
        _print_json(packages)
        return EXIT_OK
    if not packages:
        print(f"No external animations found in {settings.input_dir}/")
        return EXIT_OK
    print(f"Found {len(packages)} external animation(s):")
    for name in packages:
        print(f"  - {name}")
    return EXIT_OK


def cmd_guardrails_scan(args: argparse.Namespace, _settings: Settings) -> int:
    target = Path(args.path)
    if target.is_dir():
        reports = guardrails.scan_directory(target)
    else:
        reports = {target.name: guardrails.scan_file(target)}

    if args.json:
        _print_json({name: report.to_dict() for name, report in reports.items()})
    else:
        for name, report in reports.items():
            if not report.violations:
                continue
            print(name)
            for line in list(report.errors) + list(report.warnings):
                print(f"  {line}")
    has_errors = any(report.error_lines for report in reports.values())
    return EXIT_FAILED if has_errors else EXIT_OK


def cmd_guardrails_explain(args: argparse.Namespace, _settings: Settings) -> int:
    text = guardrails.explain(args.code)
    if text is None:
        print(f"Unknown guardrail rule: {args.code}", file=sys.stderr)
        return EXIT_FAILED
    print(text)
    return EXIT_OK


def cmd_guardrails_rules(args: argparse.Namespace, _settings: Settings) -> int:
    rules = guardrails.list_rules()
    if args.json:
        _print_json([{"code": rule.code, "severity": rule.severity.value, "message": rule.message} for rule in rules])
        return EXIT_OK
    for rule in rules:
        print(f"{rule.code} [{rule.severity.value}] {rule.message}")
    return EXIT_OK


def _option(value, default):
    return default if value is None else value


def cmd_render(args: argparse.Namespace, settings: Settings) -> int:
    input_props = _read_props(args.props)
    orchestrator = RenderOrchestrator.from_settings(settings, _build_engine(settings))
    chromium = ChromiumOptions(gl=args.gl) if args.gl else ChromiumOptions()
    max_duration = None if args.no_max_duration else _option(args.max_duration, settings.max_duration_seconds)
    result = orchestrator.render(
        args.comp,
        args.out,
        input_props,
        codec=_option(args.codec, settings.codec),
        max_duration_seconds=max_duration,
        chromium_options=chromium,
        concurrency=_option(args.concurrency, settings.concurrency),
        timeout_ms=_option(args.timeout, settings.timeout_ms),
    )
    if args.json:
        _print_json(result.to_dict())
    elif result.success:
        print("Render successful!")
        print(f"  Output: {result.output_path}")
        print(f"  Duration: {result.duration:.2f}s")
        print(f"  Size: {(result.size_bytes or 0) / 1024 / 1024:.2f} MB")
        print(f"  Codec: {result.codec}")
        print(f"  Time: {result.render_time_ms / 1000:.2f}s")
    else:
        print(f"Render failed: {result.error}", file=sys.stderr)
    return EXIT_OK if result.success else EXIT_FAILED


def cmd_clear_cache(_args: argparse.Namespace, settings: Settings) -> int:
    removed = BuildCache(settings.resolve(settings.bundle_cache_dir)).clear()
    print(f"Bundle cache cleared ({removed} entries)")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reelgate", description="Admit and render external animation packages.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--root", help="Project root (default: current directory or REELGATE_ROOT).")
    parser.add_argument("--config", help="Settings file (default: <root>/reelgate.yaml).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate", help="Validate packages in the input directory.")
    validate.add_argument("-s", "--source", help="Validate one package by name.")
    validate.add_argument("--json", action="store_true", help="Emit results as JSON.")
    validate.set_defaults(func=cmd_validate)

    single = sub.add_parser("import", help="Import one validated package.")
    single.add_argument("-s", "--source", required=True, help="Package name in the input directory.")
    single.add_argument("--force", action="store_true", help="Replace an existing catalog entry.")
    single.set_defaults(func=cmd_import)

    batch = sub.add_parser("import-all", help="Import every valid package.")
    batch.add_argument("--force", action="store_true", help="Replace existing catalog entries.")
    batch.set_defaults(func=cmd_import_all)

    listing = sub.add_parser("list", help="List input packages or catalog entries.")
    listing.add_argument("--catalog", action="store_true", help="List entries of the catalog declaration.")
    listing.add_argument("--json", action="store_true", help="Emit JSON.")
    listing.set_defaults(func=cmd_list)

    guard = sub.add_parser("guardrails", help="Static safety rules for composition sources.")
    guard_sub = guard.add_subparsers(dest="guardrails_command", required=True)
    guard_scan = guard_sub.add_parser("scan", help="Scan a file or directory.")
    guard_scan.add_argument("path")
    guard_scan.add_argument("--json", action="store_true", help="Emit {\"violations\": [...]} per file.")
    guard_scan.set_defaults(func=cmd_guardrails_scan)
    guard_explain = guard_sub.add_parser("explain", help="Explain a rule code.")
    guard_explain.add_argument("code")
    guard_explain.set_defaults(func=cmd_guardrails_explain)
    guard_rules = guard_sub.add_parser("rules", help="List rules.")
    guard_rules.add_argument("--json", action="store_true", help="Emit JSON.")
    guard_rules.set_defaults(func=cmd_guardrails_rules)

    render = sub.add_parser("render", help="Render a composition.")
    render.add_argument("-c", "--comp", required=True, help="Composition id.")
    render.add_argument("-o", "--out", required=True, help="Output media path.")
    render.add_argument("-p", "--props", help="JSON file with composition props.")
    render.add_argument("--gl", choices=GL_MODES, help="WebGL mode (default: angle/swangle by platform).")
    render.add_argument("--codec", choices=sorted(CODEC_EXTENSIONS), help="Video codec.")
    render.add_argument("--max-duration", type=float, help="Maximum video length in seconds.")
    render.add_argument("--no-max-duration", action="store_true", help="Disable the duration limit.")
    render.add_argument("--concurrency", type=int, help="Engine concurrency hint.")
    render.add_argument("--timeout", type=int, help="Render timeout in milliseconds.")
    render.add_argument("--json", action="store_true", help="Emit the render result as JSON.")
    render.set_defaults(func=cmd_render)

    clear = sub.add_parser("clear-cache", help="Remove every cached bundle.")
    clear.set_defaults(func=cmd_clear_cache)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(verbose=bool(args.verbose))
    try:
        settings = load_settings(args.root, config_path=args.config)
        return int(args.func(args, settings))
    except SettingsError as exc:
        _LOG.error("Invalid settings: %s", exc)
        return EXIT_ERROR
    except Exception as exc:
        _LOG.error("Error: %s", exc)
        _LOG.debug("Traceback", exc_info=True)
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
