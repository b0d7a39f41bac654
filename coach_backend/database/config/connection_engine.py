"""
Connection Engine (SQLAlchemy)

Purpose
-------
Centralizes database initialization for the application:
- Builds the SQLAlchemy connection URL from environment-backed settings.
- Creates the Engine (connection pool + SQL execution entry point).
- Defines shared MetaData and the Declarative Base for ORM models.
- Exposes `SessionFactory`, the session maker every transaction is opened from.

Notes
-----
- Uses `URL.create(...)` to keep configuration environment-driven.
- `SessionFactory.configure(bind=...)` rebinds sessions to another engine
  (the test-suite points it at an in-memory SQLite database).
- `init_schema()` creates missing tables; the entity table is the only schema
  the persistence core needs.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.schema import MetaData
from coach_backend.database.config.config import settings

# --------------------------------------------------------------------
# Construct the SQLAlchemy connection URL using values from Settings.
# --------------------------------------------------------------------
connection_url = URL.create(
    drivername=settings.DB_DRIVER_NAME,
    username=settings.DB_USERNAME,
    password=settings.DB_PASSWORD,
    host=settings.DB_HOST,
    database=settings.DB_DATABASE_NAME,
)
"""SQLAlchemy connection URL built from Settings."""

connection_engine = create_engine(connection_url)
"""Engine object: Core interface to the database."""

metadata = MetaData()
"""Stores schema-level information about tables. Shared across all models."""

declarativeBase = declarative_base(metadata=metadata)
"""Root class for ORM models."""

SessionFactory = sessionmaker(bind=connection_engine)
"""Session maker used by `@transactional`. Rebind with `SessionFactory.configure(bind=engine)`."""


def init_schema(engine: Engine | None = None) -> None:
    """Create every table registered on `metadata` that does not exist yet."""
    # the ORM modules register their tables on import
    import coach_backend.database.entities  # noqa: F401

    metadata.create_all(engine or connection_engine)
