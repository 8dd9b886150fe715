from fastapi import APIRouter, Depends

from speechcoach.api.deps import get_services
from speechcoach.core.bootstrap import TherapyServices
from speechcoach.schemas.session import EvaluateRequest, EvaluateResponse

router = APIRouter(prefix="/api", tags=["evaluation"])


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate_answer(payload: EvaluateRequest, services: TherapyServices = Depends(get_services)):
    result = await services.evaluator.evaluate(payload.submitted, payload.expected)
    return EvaluateResponse(correct=result.correct, tier=result.tier)
