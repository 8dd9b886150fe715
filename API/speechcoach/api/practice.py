from fastapi import APIRouter, Depends, HTTPException, Query

from speechcoach.api.deps import get_services
from speechcoach.core.bootstrap import TherapyServices
from speechcoach.orchestrator.engine import PracticeSessionEngine
from speechcoach.schemas.practice import (
    PracticeStateResponse,
    PracticeSummariesResponse,
    SubmitPracticeAnswerRequest,
)

router = APIRouter(prefix="/api/practice", tags=["practice"])


def _project(engine: PracticeSessionEngine) -> PracticeStateResponse:
    return PracticeStateResponse.model_validate(engine.snapshot())


@router.get("/summaries", response_model=PracticeSummariesResponse)
async def list_summaries(
    limit: int = Query(20, ge=1, le=200),
    services: TherapyServices = Depends(get_services),
):
    return PracticeSummariesResponse(summaries=services.summaries.list_recent(limit))


@router.post("/{session_id}/load", response_model=PracticeStateResponse)
async def load_practice(session_id: str, services: TherapyServices = Depends(get_services)):
    engine = services.practice.load(session_id)
    if engine is None:
        raise HTTPException(status_code=409, detail="Session plan is not ready yet.")
    return _project(engine)


@router.get("/{session_id}", response_model=PracticeStateResponse)
async def get_practice(session_id: str, services: TherapyServices = Depends(get_services)):
    return _project(services.practice.get(session_id))


@router.post("/{session_id}/start", response_model=PracticeStateResponse)
async def start_practice(session_id: str, services: TherapyServices = Depends(get_services)):
    engine = services.practice.get(session_id)
    engine.start()
    return _project(engine)


@router.post("/{session_id}/answer", response_model=PracticeStateResponse)
async def submit_practice_answer(
    session_id: str,
    payload: SubmitPracticeAnswerRequest,
    services: TherapyServices = Depends(get_services),
):
    engine = services.practice.get(session_id)
    await engine.submit_answer(payload.answer)
    return _project(engine)


@router.post("/{session_id}/next", response_model=PracticeStateResponse)
async def next_item(session_id: str, services: TherapyServices = Depends(get_services)):
    engine = services.practice.get(session_id)
    previous = engine.state.status
    engine.next()
    await services.practice.record_if_ended(engine, previous)
    return _project(engine)


@router.post("/{session_id}/end", response_model=PracticeStateResponse)
async def end_practice(session_id: str, services: TherapyServices = Depends(get_services)):
    engine = services.practice.get(session_id)
    previous = engine.state.status
    engine.end()
    await services.practice.record_if_ended(engine, previous)
    return _project(engine)
