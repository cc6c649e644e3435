"""Tagged props contracts declared by packages in their manifest.

A contract maps each prop name to `{type, default?, required?, min?, max?,
enum?, description?}`. It is checked against a bundled JSON meta-schema and
compiled to a plain JSON Schema for validating concrete input props.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from jsonschema import Draft202012Validator

COLOR_PATTERN = r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$"


@lru_cache(maxsize=1)
def _load_contract_meta_schema() -> Dict[str, Any]:
    schema_path = Path(__file__).resolve().parent / "schemas" / "props_contract.schema.json"
    return json.loads(schema_path.read_text(encoding="utf-8"))


def _error_path(parts: Iterable[Any]) -> str:
    return ".".join(str(part) for part in parts)


def _field_schema(field: Mapping[str, Any]) -> Dict[str, Any]:
    kind = str(field.get("type") or "")
    if kind == "color":
        out: Dict[str, Any] = {"type": "string", "pattern": COLOR_PATTERN}
    else:
        out = {"type": kind}
    if kind in {"string", "color"}:
        if "min" in field:
            out["minLength"] = int(field["min"])
        if "max" in field:
            out["maxLength"] = int(field["max"])
    elif kind in {"number", "integer"}:
        if "min" in field:
            out["minimum"] = field["min"]
        if "max" in field:
            out["maximum"] = field["max"]
    if "enum" in field:
        out["enum"] = list(field["enum"])
    return out


def validate_props_contract(contract: Any) -> List[str]:
    """Return contract problems; an empty list means the contract is usable."""
    if not isinstance(contract, Mapping):
        return ["propsSchema must be an object"]

    validator = Draft202012Validator(_load_contract_meta_schema())
    problems = sorted(
        validator.iter_errors(dict(contract)),
        key=lambda error: [str(part) for part in error.absolute_path],
    )
    if problems:
        out = []
        for error in problems:
            path = _error_path(error.absolute_path)
            out.append(f"propsSchema.{path}: {error.message}" if path else f"propsSchema: {error.message}")
        return out

    errors: List[str] = []
    for name in sorted(contract.keys()):
        field = contract[name]
        kind = field["type"]
        low = field.get("min")
        high = field.get("max")
        if kind in {"string", "color"}:
            for label, bound in (("min", low), ("max", high)):
                if bound is not None and (not float(bound).is_integer() or bound < 0):
                    errors.append(f"propsSchema.{name}.{label}: must be a non-negative integer for {kind} fields")
        if kind == "boolean" and (low is not None or high is not None):
            errors.append(f"propsSchema.{name}: min/max are not supported for boolean fields")
        if low is not None and high is not None and low > high:
            errors.append(f"propsSchema.{name}: min ({low}) is greater than max ({high})")
    if errors:
        return errors

    for name in sorted(contract.keys()):
        field = contract[name]
        if "default" not in field:
            continue
        field_validator = Draft202012Validator(_field_schema(field))
        for error in field_validator.iter_errors(field["default"]):
            errors.append(f"propsSchema.{name}.default: {error.message}")
    return errors


def contract_to_json_schema(contract: Mapping[str, Any]) -> Dict[str, Any]:
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for name in sorted(contract.keys()):
        field = contract[name]
        properties[name] = _field_schema(field)
        if field.get("required") is True and "default" not in field:
            required.append(name)
    return {
        "type": "object",
        "properties": properties,
        "required": required,
    }


def apply_defaults(contract: Mapping[str, Any], props: Mapping[str, Any] | None) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for name in sorted(contract.keys()):
        field = contract[name]
        if "default" in field:
            merged[name] = json.loads(json.dumps(field["default"]))
    merged.update(dict(props or {}))
    return merged


def validate_props(contract: Mapping[str, Any], props: Mapping[str, Any] | None) -> List[str]:
    """Validate concrete props (after defaults) against a contract."""
    payload = apply_defaults(contract, props)
    validator = Draft202012Validator(contract_to_json_schema(contract))
    out = []
    for error in sorted(validator.iter_errors(payload), key=lambda item: [str(p) for p in item.absolute_path]):
        path = _error_path(error.absolute_path)
        out.append(f"{path or '(root)'}: {error.message}")
    return out
