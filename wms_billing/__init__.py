"""Warehouse billing automation and reservation expiry service."""

__version__ = "1.0.0"
