"""Async database engines for the two databases the pipeline touches.

Provides lazy-initialized SQLAlchemy async engines backed by asyncpg, one per
DatabaseTarget:

  SOURCE_OF_TRUTH  — workflow config, batches, result logs (SOURCE_OF_TRUTH_DB_URL)
  WORKSPACE        — source tables and enrichment destination tables (WORKSPACE_DB_URL)

The two may be distinct Supabase projects reached with different credentials.
Both URLs should point at the session pooler (port 5432) because asyncpg uses
prepared statements, which are incompatible with transaction-mode pooling.

Usage in activities:
    from enrich_data_access.client import get_engine

    async with get_engine(DatabaseTarget.WORKSPACE).begin() as conn:
        result = await conn.execute(stmt)
"""

from __future__ import annotations

import os

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from enrich_shared.errors import MissingCredentialsError
from enrich_shared.pipeline_models import DatabaseTarget

_ENV_VARS: dict[DatabaseTarget, str] = {
    DatabaseTarget.SOURCE_OF_TRUTH: "SOURCE_OF_TRUTH_DB_URL",
    DatabaseTarget.WORKSPACE: "WORKSPACE_DB_URL",
}

_engines: dict[DatabaseTarget, AsyncEngine] = {}


def _async_url(db_url: str) -> str:
    """Rewrite a plain Postgres URL to use the asyncpg driver."""
    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if db_url.startswith("postgres://"):
        return db_url.replace("postgres://", "postgresql+asyncpg://", 1)
    return db_url


def get_engine(target: DatabaseTarget = DatabaseTarget.SOURCE_OF_TRUTH) -> AsyncEngine:
    """Return the lazily-initialized engine for a database target.

    Raises MissingCredentialsError when the target's URL is not configured.
    """
    engine = _engines.get(target)
    if engine is not None:
        return engine

    env_var = _ENV_VARS[target]
    db_url = os.environ.get(env_var, "")
    if not db_url:
        raise MissingCredentialsError(
            f"{env_var} environment variable is not set",
            database=target.value,
            hint="Set it to the Supabase direct connection string (session pooler, port 5432).",
        )

    engine = create_async_engine(
        _async_url(db_url),
        pool_size=10,
        max_overflow=0,
        pool_pre_ping=True,
    )
    _engines[target] = engine
    return engine


def reset_engine() -> None:
    """Drop all engine singletons — used in tests to inject mocks."""
    _engines.clear()
