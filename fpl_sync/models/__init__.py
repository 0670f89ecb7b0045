"""
Models for synchronized FPL data.

- ids: Branded identifier types and their range checks
- enums: Entity types and per-entity policies
- domain: Immutable domain records
- tables: SQLAlchemy tables
"""
