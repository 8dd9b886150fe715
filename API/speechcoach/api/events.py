from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from speechcoach.api.deps import get_services
from speechcoach.core.bootstrap import TherapyServices

router = APIRouter(prefix="/events", tags=["events"])


def _belongs_to(event: dict, session_id: str | None) -> bool:
    return session_id is None or event["data"].get("session_id") == session_id


@router.get("/history")
async def event_history(
    session_id: str | None = Query(None, alias="sessionId"),
    services: TherapyServices = Depends(get_services),
):
    return {"events": services.event_bus.history(session_id)}


@router.get("/stream")
async def stream_events(
    session_id: str | None = Query(None, alias="sessionId"),
    services: TherapyServices = Depends(get_services),
):
    bus = services.event_bus
    queue = await bus.subscribe(replay_last=20)

    async def sse_lines():
        try:
            while True:
                event = await queue.get()
                if _belongs_to(event, session_id):
                    yield f"event: {event['type']}\ndata: {json.dumps(event)}\n\n"
        except asyncio.CancelledError:
            return
        finally:
            await bus.unsubscribe(queue)

    return StreamingResponse(sse_lines(), media_type="text/event-stream")
