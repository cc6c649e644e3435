"""Exceptions raised by the intake importer and catalog registration."""

from __future__ import annotations


class PackageImportError(RuntimeError):
    """Raised when a package cannot be promoted into the catalog."""


class CatalogRegistrationError(PackageImportError):
    """Raised when the catalog declaration cannot take a new entry."""
