"""
School Kernel - shared relational layer for the records migration.

Provides what the migration pipeline consumes from the surrounding
application:
- Engine/session management with commit-or-rollback scopes
- The target schema (courses, disciplines, classes, evaluations, grades)
- Structured JSON logging
- Typed migration exceptions
- Text normalization for name matching
"""

__version__ = "0.1.0"
