from fastapi import APIRouter, Depends

from sparkle_api.api.deps import enforce_rate_limit
from sparkle_api.api.v1.routes_auth import router as auth_router
from sparkle_api.api.v1.routes_health import router as health_router
from sparkle_api.api.v1.routes_posts import router as posts_router


api_router = APIRouter(dependencies=[Depends(enforce_rate_limit)])

api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(posts_router, prefix="/posts", tags=["posts"])

# health checks stay reachable when the client is rate limited
health_api_router = APIRouter()
health_api_router.include_router(health_router, prefix="/health", tags=["health"])
