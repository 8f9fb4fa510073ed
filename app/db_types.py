"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import JSON, Numeric

# Use JSON instead of JSONB for cross-database compatibility
# JSONB is PostgreSQL-specific, JSON works with both SQLite and PostgreSQL
JSONType = JSON

# Stock and variance quantities (decimal, fractional units allowed)
QuantityType = Numeric(12, 2)

# Percentages, large enough for variances far beyond 100%
PercentType = Numeric(10, 2)
