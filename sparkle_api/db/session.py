import time
from collections.abc import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sparkle_api.core.config import settings
from sparkle_api.core.logging_config import get_logger

logger = get_logger(__name__)

_QUERY_START_KEY = "query_start_time"


def install_slow_query_log(engine: Engine, slow_query_ms: int) -> None:
    """Log a warning for every statement that takes longer than ``slow_query_ms``."""

    @event.listens_for(engine, "before_cursor_execute")
    def _start_timer(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault(_QUERY_START_KEY, []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def _check_duration(conn, cursor, statement, parameters, context, executemany):
        elapsed_ms = (time.perf_counter() - conn.info[_QUERY_START_KEY].pop()) * 1000
        if elapsed_ms >= slow_query_ms:
            logger.warning(
                "Slow query (%.0fms): %s",
                elapsed_ms,
                statement,
                extra={"event": "db.slow_query", "duration_ms": round(elapsed_ms, 2)},
            )


def build_engine(url: str, pool_size: int = 10, slow_query_ms: int = 5000) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            # one shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
    else:
        engine = create_engine(url, pool_size=pool_size, pool_pre_ping=True)

    install_slow_query_log(engine, slow_query_ms)
    return engine


_db_config = settings.database_config

engine = build_engine(
    _db_config.url,
    pool_size=_db_config.pool_size,
    slow_query_ms=_db_config.slow_query_ms,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a SQLAlchemy session.

    Usage in route functions:
        db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
