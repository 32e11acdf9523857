# File: sparkle_api/api/v1/routes_posts.py

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from sparkle_api.db.session import get_db
from sparkle_api.db.utils import paginate, search_posts
from sparkle_api.models.post import STATUS_PUBLISHED, Post
from sparkle_api.schemas.common import PaginatedResult
from sparkle_api.schemas.post import PostRead, PostSearchResult

router = APIRouter()


@router.get("", response_model=PaginatedResult[PostRead], summary="List published posts")
def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    author_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    stmt = (
        select(Post)
        .where(Post.status == STATUS_PUBLISHED, Post.deleted_at.is_(None))
        .order_by(Post.created_at.desc())
    )
    if author_id:
        stmt = stmt.where(Post.author_id == author_id)

    result = paginate(db, stmt, page=page, limit=limit)
    return PaginatedResult[PostRead](
        data=[PostRead.model_validate(post) for post in result.data],
        meta=result.meta,
    )


@router.get("/search", response_model=list[PostSearchResult], summary="Full-text post search")
def search(
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    author_id: Optional[str] = None,
    category_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return search_posts(
        db,
        q,
        limit=limit,
        offset=offset,
        author_id=author_id,
        category_id=category_id,
    )
