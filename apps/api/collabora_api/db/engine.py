"""Database engine builder.

- Default pool: NullPool (client-side pooling disabled)
- ENV: COLLABORA_DB_POOL=nullpool|queuepool (default: nullpool)
- ENV: COLLABORA_DB_POOL_SIZE / COLLABORA_DB_MAX_OVERFLOW (queuepool only)
- SQLite: check_same_thread disabled; in-memory databases share one
  connection through StaticPool so every session sees the same tables
"""

import logging
import os
import re
from typing import Any

from sqlalchemy import Engine, NullPool, StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def _mask_password(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


def _is_sqlite_memory(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") in {"sqlite:", "sqlite:/"})


def build_engine(database_url: str | None = None) -> Engine:
    """Build the SQLAlchemy engine.

    Args:
        database_url: Database URL. Defaults to DATABASE_URL.

    Returns:
        Configured Engine

    Raises:
        ValueError: If no URL is available or COLLABORA_DB_POOL is invalid
    """
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise ValueError(
            "DATABASE_URL is required. "
            "Pass as argument or set DATABASE_URL environment variable."
        )

    if url.startswith("sqlite"):
        connect_args: dict[str, Any] = {"check_same_thread": False}
        if _is_sqlite_memory(url):
            engine = create_engine(url, connect_args=connect_args, poolclass=StaticPool)
        else:
            engine = create_engine(url, connect_args=connect_args)
    else:
        app_name = os.getenv("COLLABORA_DB_APPLICATION_NAME", "collabora-api")
        connect_args = {"application_name": app_name} if url.startswith("postgresql") else {}

        pool_mode = os.getenv("COLLABORA_DB_POOL", "nullpool").lower()
        if pool_mode == "nullpool":
            engine = create_engine(
                url,
                poolclass=NullPool,
                pool_pre_ping=True,
                connect_args=connect_args,
            )
        elif pool_mode == "queuepool":
            engine = create_engine(
                url,
                pool_pre_ping=True,
                pool_size=int(os.getenv("COLLABORA_DB_POOL_SIZE", "5")),
                max_overflow=int(os.getenv("COLLABORA_DB_MAX_OVERFLOW", "10")),
                connect_args=connect_args,
            )
        else:
            raise ValueError(
                f"Invalid COLLABORA_DB_POOL value: {pool_mode}. "
                "Must be 'nullpool' or 'queuepool'."
            )

    logger.debug(
        "Database engine created",
        extra={
            "event": "db.engine.created",
            "pool": engine.pool.__class__.__name__,
            "url": _mask_password(url),
        },
    )
    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """Build sessionmaker configured with autocommit=False, autoflush=False."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
