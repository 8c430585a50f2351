from fastapi import APIRouter, Depends

from listing_intake.routers.dependencies import get_dedup_store
from listing_intake.services.dedup_store import DedupStore

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/health/redis")
async def redis_health(dedup: DedupStore = Depends(get_dedup_store)):
    healthy = await dedup.health_check()
    return {"status": "ok" if healthy else "degraded", "redis": healthy}
