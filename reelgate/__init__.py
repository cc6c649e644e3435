"""Admission control and render orchestration for external animation packages."""

__version__ = "0.1.0"

__all__ = ["__version__"]
