# File: sparkle_api/db/utils.py

"""
Database utilities: connection management, health, test-only cleanup,
transactions, pagination, soft-delete filtering and post search.
"""

import time
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from math import ceil
from typing import Any, Optional

from sqlalchemy import func, literal, literal_column, or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from sparkle_api.core.config import is_production
from sparkle_api.core.logging_config import get_logger
from sparkle_api.db.session import SessionLocal, engine
from sparkle_api.models.base import Base
from sparkle_api.models.post import STATUS_PUBLISHED, Post
from sparkle_api.schemas.common import HealthStatus, PageMeta, PaginatedResult
from sparkle_api.schemas.post import PostSearchResult

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20


# ---------- CONNECTION MANAGEMENT ----------

def connect() -> None:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.error("Database connection failed", exc_info=True)
        raise
    logger.info("Database connected successfully")


def disconnect() -> None:
    engine.dispose()
    logger.info("Database disconnected successfully")


def health_check() -> HealthStatus:
    start = time.perf_counter()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return HealthStatus(
            status="unhealthy",
            latency=_elapsed_ms(start),
            details={"connected": False, "error": str(exc)},
        )

    latency = _elapsed_ms(start)
    return HealthStatus(
        status="healthy",
        latency=latency,
        details={"connected": True, "response_time": f"{latency}ms"},
    )


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


# ---------- TEST / DEV CLEANUP ----------

def clean_database() -> None:
    """Empty every table. Refuses to run in production."""
    if is_production():
        raise RuntimeError("Cannot clean database in production")

    with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            names = conn.execute(
                text("SELECT tablename FROM pg_tables WHERE schemaname = 'public'")
            ).scalars().all()
            tables = ", ".join(f'"public"."{name}"' for name in names if name != "alembic_version")
            if tables:
                conn.execute(text(f"TRUNCATE TABLE {tables} CASCADE"))
        else:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(table.delete())

    logger.info("Database cleaned successfully")


def reset_sequences() -> None:
    """Restart every PostgreSQL sequence at 1. Refuses to run in production."""
    if is_production():
        raise RuntimeError("Cannot reset sequences in production")

    with engine.begin() as conn:
        if conn.dialect.name != "postgresql":
            logger.debug("reset_sequences: nothing to do for dialect %s", conn.dialect.name)
            return
        names = conn.execute(
            text("SELECT sequence_name FROM information_schema.sequences WHERE sequence_schema = 'public'")
        ).scalars().all()
        for name in names:
            conn.execute(text(f'ALTER SEQUENCE "{name}" RESTART WITH 1'))

    logger.info("Sequences reset successfully")


# ---------- TRANSACTIONS ----------

@contextmanager
def transaction(
    isolation_level: Optional[str] = None,
    session_factory=SessionLocal,
) -> Iterator[Session]:
    """
    Yield a session whose work is committed on exit and rolled back on error.

    ``isolation_level`` is any level the dialect accepts, e.g. "SERIALIZABLE".
    """
    db = session_factory()
    try:
        if isolation_level:
            db.connection(execution_options={"isolation_level": isolation_level})
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ---------- QUERY HELPERS ----------

def exclude_fields(data: Mapping[str, Any], keys: Iterable[str]) -> dict[str, Any]:
    dropped = set(keys)
    return {k: v for k, v in data.items() if k not in dropped}


def exclude_deleted(items: Iterable[Any]) -> list[Any]:
    """Drop soft-deleted rows (objects or dicts with a truthy ``deleted_at``)."""
    kept = []
    for item in items:
        deleted_at = item.get("deleted_at") if isinstance(item, Mapping) else getattr(item, "deleted_at", None)
        if not deleted_at:
            kept.append(item)
    return kept


def paginate(
    db: Session,
    stmt: Select,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> PaginatedResult:
    page = max(page, 1)
    limit = max(limit, 1)

    total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    data = db.scalars(stmt.offset((page - 1) * limit).limit(limit)).all()
    total_pages = ceil(total / limit)

    return PaginatedResult(
        data=list(data),
        meta=PageMeta(
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )


# ---------- FULL-TEXT SEARCH ----------

def search_posts(
    db: Session,
    query: str,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
    author_id: Optional[str] = None,
    category_id: Optional[str] = None,
) -> list[PostSearchResult]:
    """
    Search published, non-deleted posts by title and body.

    PostgreSQL ranks matches with ``ts_rank`` over an English text-search
    vector. Other dialects fall back to a case-insensitive substring match
    ordered by recency, with every rank reported as 0.
    """
    filters = [Post.status == STATUS_PUBLISHED, Post.deleted_at.is_(None)]
    if author_id:
        filters.append(Post.author_id == author_id)
    if category_id:
        filters.append(Post.category_id == category_id)

    if db.get_bind().dialect.name == "postgresql":
        language = literal_column("'english'")
        document = func.to_tsvector(language, Post.title + " " + func.coalesce(Post.content_text, ""))
        ts_query = func.plainto_tsquery(language, query)
        rank = func.ts_rank(document, ts_query).label("rank")
        stmt = (
            select(Post, rank)
            .where(document.op("@@")(ts_query), *filters)
            .order_by(rank.desc(), Post.created_at.desc())
        )
    else:
        matches = or_(
            Post.title.icontains(query, autoescape=True),
            Post.content_text.icontains(query, autoescape=True),
        )
        stmt = (
            select(Post, literal(0.0).label("rank"))
            .where(matches, *filters)
            .order_by(Post.created_at.desc())
        )

    rows = db.execute(stmt.limit(limit).offset(offset)).all()
    return [
        PostSearchResult.model_validate(post).model_copy(update={"rank": float(rank)})
        for post, rank in rows
    ]
