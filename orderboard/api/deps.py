"""
Orderboard — Request dependencies
"""
from fastapi import HTTPException, Request, status

from orderboard.core.config import get_settings
from orderboard.core.redis_client import get_redis
from orderboard.feed.base import ChangeFeedClient
from orderboard.feed.redis_feed import RedisChangeFeed

settings = get_settings()


def get_feed() -> ChangeFeedClient:
    return RedisChangeFeed(get_redis(), settings.APP_ID)


def current_user_id(request: Request) -> str:
    return request.state.user["sub"]


def require_staff(request: Request) -> str:
    claims = request.state.user
    if not claims.get("is_staff"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required.")
    return claims["sub"]
