"""API dependencies"""
from fastapi import HTTPException, Request, status

from app.core.redis import RedisClient, redis_client
from app.services.waf_service import WAFService


async def get_waf_service(request: Request) -> WAFService:
    """Get the engine owned by the running application"""
    service = getattr(request.app.state, "waf_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="WAF engine is not initialized"
        )
    return service


async def get_cache() -> RedisClient:
    """Redis cache shared with the analytics worker"""
    return redis_client
