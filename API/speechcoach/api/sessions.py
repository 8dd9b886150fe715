from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from speechcoach.api.deps import get_services
from speechcoach.core.bootstrap import TherapyServices
from speechcoach.core.errors import PlanGenerationError, SessionNotFoundError, error_response
from speechcoach.memory.session_store import SessionStatus
from speechcoach.schemas.session import (
    PlanPendingResponse,
    PlanResponse,
    SendMessageRequest,
    SendMessageResponse,
    StartSessionRequest,
    StartSessionResponse,
)

router = APIRouter(prefix="/api/session", tags=["sessions"])


@router.post("/start", response_model=StartSessionResponse)
async def start_session(
    payload: StartSessionRequest | None = None,
    services: TherapyServices = Depends(get_services),
):
    count = payload.practice_question_count if payload else None
    session_id, message = await services.checkin.start_session(count)
    return StartSessionResponse(session_id=session_id, message=message, status=SessionStatus.ACTIVE.value)


@router.post("/demo-skip", response_model=StartSessionResponse)
async def demo_skip(
    payload: StartSessionRequest | None = None,
    services: TherapyServices = Depends(get_services),
):
    count = payload.practice_question_count if payload else None
    session_id, message, status = await services.checkin.start_demo_session(count)
    return StartSessionResponse(session_id=session_id, message=message, status=status.value)


@router.post("/{session_id}/message", response_model=SendMessageResponse)
async def send_message(
    session_id: str,
    payload: SendMessageRequest,
    services: TherapyServices = Depends(get_services),
):
    try:
        outcome = await services.checkin.process_message(session_id, payload.message)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SendMessageResponse(message=outcome.reply, status=outcome.status.value, plan_ready=outcome.plan_ready)


@router.get("/{session_id}/plan", response_model=PlanResponse, responses={202: {"model": PlanPendingResponse}})
async def get_plan(
    session_id: str,
    request: Request,
    services: TherapyServices = Depends(get_services),
):
    lookup = services.checkin.get_plan(session_id)
    if lookup.status == SessionStatus.ERROR:
        return error_response(
            request,
            code=PlanGenerationError.code,
            message="Session plan generation failed. Please start a new session.",
            status_code=500,
            details=lookup.error,
        )
    if lookup.plan is None:
        pending = PlanPendingResponse(status=lookup.status.value)
        return JSONResponse(status_code=202, content=pending.model_dump(by_alias=True))
    return PlanResponse(status=lookup.status.value, plan=lookup.plan)


@router.delete("/{session_id}")
async def delete_session(session_id: str, services: TherapyServices = Depends(get_services)):
    if not services.store.delete(session_id):
        raise SessionNotFoundError(session_id)
    services.practice.discard(session_id)
    return {"deleted": True, "sessionId": session_id}
