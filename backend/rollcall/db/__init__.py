"""Database Primitives - declarative Base and portable column types.

Invariants:
    - Every model inherits from db/base.py Base
    - Timestamps are stored and returned timezone-aware in UTC (db/types.py)

Design Decisions:
    - Engine and sessions live in infrastructure/database.py, not here
"""
