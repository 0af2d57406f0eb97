from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlmodel import create_engine, SQLModel

from clioindex.core.logging import get_logger

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless the pragma is set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create the engine for one store instance and make sure tables exist.

    The caller owns the returned engine; nothing here is module-global.
    """
    if database_url is None:
        from clioindex.config import settings
        database_url = settings.database_url

    url = make_url(database_url)
    is_sqlite = url.get_backend_name() == "sqlite"

    if is_sqlite and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    connect_args = {"check_same_thread": False} if is_sqlite else {}
    if is_sqlite and url.database in (None, "", ":memory:"):
        # One shared connection, otherwise every session sees an empty database
        from sqlalchemy.pool import StaticPool
        engine = create_engine(
            database_url, echo=echo, connect_args=connect_args, poolclass=StaticPool
        )
    else:
        engine = create_engine(database_url, echo=echo, connect_args=connect_args)

    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    init_db(engine)

    logger.info(
        "database_engine_configured",
        backend=url.get_backend_name(),
        database=url.database,
    )
    return engine


def init_db(engine: Engine):
    """Register table models and create any missing tables."""
    # Register Tables
    from clioindex import schema  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info("database_initialized", status="success")
