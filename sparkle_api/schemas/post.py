# File: sparkle_api/schemas/post.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class PostRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    slug: str
    excerpt: Optional[str] = None
    cover_image: Optional[str] = None
    author_id: str
    category_id: Optional[str] = None
    view_count: int
    created_at: datetime


class PostSearchResult(PostRead):
    rank: float = 0.0
