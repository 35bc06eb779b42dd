"""
Database engine and session factory.

The engine is built explicitly at startup and handed to the gateway; there is
no module-level connection singleton.
"""
import logging
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from premium_sync.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

Base = declarative_base()


def _safe_url(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for DATABASE_URL and check it can connect.

    Raises ConfigurationError when the database is unreachable, so the process
    refuses to start instead of accepting webhooks it cannot persist.
    """
    if url.startswith("sqlite"):
        db_path = url.replace("sqlite:///", "")
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_conn, _connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()
    else:
        engine = create_engine(url, echo=echo, pool_size=5, max_overflow=10, pool_pre_ping=True)

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        engine.dispose()
        raise ConfigurationError(f"Database unreachable at {_safe_url(url)}: {e}")

    logger.info("Database engine created: %s", _safe_url(url))
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
