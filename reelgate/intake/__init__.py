"""Intake domain package: guardrails, validation and catalog import."""

from .catalog import CatalogEntry, list_entries, register_entry
from .errors import CatalogRegistrationError, PackageImportError
from .guardrails import GUARDRAIL_RULES, GuardrailReport, Violation, explain, scan
from .importer import PackageImporter, installed_props_contracts
from .validator import DEFAULT_LAYOUT, PackageLayout, ValidationResult, validate_all, validate_package

__all__ = [
    "CatalogEntry",
    "list_entries",
    "register_entry",
    "CatalogRegistrationError",
    "PackageImportError",
    "GUARDRAIL_RULES",
    "GuardrailReport",
    "Violation",
    "explain",
    "scan",
    "PackageImporter",
    "installed_props_contracts",
    "DEFAULT_LAYOUT",
    "PackageLayout",
    "ValidationResult",
    "validate_all",
    "validate_package",
]
