from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from typing import Any

from pairchat.dependencies import get_event_bus, get_registry
from pairchat.ws import EventBus, PresenceRegistry

router = APIRouter()


@router.get("/redis")
async def redis_health(events: EventBus = Depends(get_event_bus)) -> Any:
    """Return Redis relay health. If `REDIS_URL` is not configured, returns status `not_configured`."""
    if events.redis is None:
        return JSONResponse({"status": "not_configured", "details": "REDIS_URL not set"}, status_code=200)

    try:
        ok = await events.redis.ping()
        if ok:
            return {"status": "ok", "redis": "connected"}
        else:
            return JSONResponse({"status": "error", "redis": "ping_failed"}, status_code=500)
    except Exception as e:
        return JSONResponse({"status": "error", "error": str(e)}, status_code=500)


@router.get("/presence")
async def presence_health(registry: PresenceRegistry = Depends(get_registry)) -> Any:
    return {"status": "ok", "online": len(registry.online_user_ids())}
