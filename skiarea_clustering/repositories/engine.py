"""SQLAlchemy engine factory for PostGIS connection management."""

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool, QueuePool

from skiarea_clustering.config import DatabaseSettings
from skiarea_clustering.models.db import SCHEMA

logger = logging.getLogger(__name__)


def create_db_engine(
    settings: DatabaseSettings | None = None,
    *,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
    use_null_pool: bool = False,
) -> Engine:
    """Create a SQLAlchemy engine from database settings.

    The configured schema name replaces the model's default schema through
    ``schema_translate_map``, so several runs can share one database.

    Args:
        settings: Database connection settings. If None, uses default settings.
        pool_size: Number of connections to keep in the pool (default: 5)
        max_overflow: Max overflow connections beyond pool_size (default: 10)
        echo: Enable SQLAlchemy query logging (default: False)
        use_null_pool: Use NullPool instead of QueuePool for testing (default: False)

    Returns:
        Configured SQLAlchemy Engine instance
    """
    if settings is None:
        settings = DatabaseSettings()

    url = settings.connection_url
    if settings.local_password:
        url = url.replace(f"{settings.user}@", f"{settings.user}:{settings.local_password}@")

    if use_null_pool:
        engine = create_engine(url, poolclass=NullPool, echo=echo)
    else:
        # Pool must cover the concurrent workers of a clustering stage
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            echo=echo,
        )

    if settings.schema_name != SCHEMA:
        engine = engine.execution_options(schema_translate_map={SCHEMA: settings.schema_name})

    logger.info(f"Created engine for {settings.host}:{settings.port}/{settings.database}")
    return engine
