from fastapi import APIRouter, Depends

from speechcoach.api.deps import get_services
from speechcoach.core.bootstrap import TherapyServices
from speechcoach.core.resilience import get_breakers_status
from speechcoach.core.settings import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(services: TherapyServices = Depends(get_services)):
    return {
        "status": "ok",
        "service": "speechcoach-api",
        "llm_provider": settings.llm_provider,
        "sessions": services.store.size(),
        "sessions_by_status": services.store.count_by_status(),
        "active_plan_jobs": services.runner.active_jobs(),
        "event_subscribers": services.event_bus.subscriber_count(),
        "circuits": get_breakers_status(),
    }
