"""
birdsql: a guided tour of pooled PostgreSQL access with SQLAlchemy.

Package Structure:
    - config/: pydantic-settings configuration (DATABASE_URL, pool bounds)
    - db/: engine and pool, statement execution, prepared statements, deadlines
    - birds/: the Bird record, its queries and the tour stages
    - utils/: structlog configuration
    - main.py: the ``birdsql`` command line
"""

from __future__ import annotations

__version__ = "1.0.0"

__all__ = ["__version__"]
