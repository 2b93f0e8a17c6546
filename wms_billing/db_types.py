"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from decimal import Decimal

from sqlalchemy import JSON, Numeric, Uuid

# Use JSON instead of JSONB for cross-database compatibility
# JSONB is PostgreSQL-specific, JSON works with both SQLite and PostgreSQL
JSONType = JSON

# Native UUID on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid

# Money columns: 12 digits, 2 decimals
Money = Numeric(12, 2)

# Unit prices keep 4 decimals (e.g. 0.0125 per unit per day)
Rate = Numeric(12, 4)

# Percentages such as tax rate and late fee
Percent = Numeric(5, 2)

CENT = Decimal("0.01")
ZERO = Decimal("0")
