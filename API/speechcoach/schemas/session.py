from pydantic import Field

from speechcoach.agents.picture_choice import ChoiceId
from speechcoach.schemas.plan import TherapySessionPlan
from speechcoach.schemas.practice import CamelModel


class StartSessionRequest(CamelModel):
    practice_question_count: int | None = Field(default=None, description="Therapy items to generate, clamped to 4..50")


class StartSessionResponse(CamelModel):
    session_id: str
    message: str
    status: str


class SendMessageRequest(CamelModel):
    message: str = Field(..., min_length=1, max_length=4000)


class SendMessageResponse(CamelModel):
    message: str
    status: str
    plan_ready: bool


class PlanResponse(CamelModel):
    status: str
    plan: TherapySessionPlan


class PlanPendingResponse(CamelModel):
    status: str
    message: str = "Plan is still being generated."


class EvaluateRequest(CamelModel):
    submitted: str = Field(..., max_length=2000)
    expected: str = Field(..., max_length=2000)


class EvaluateResponse(CamelModel):
    correct: bool
    tier: str


class PictureChoiceView(CamelModel):
    id: ChoiceId
    image_url: str
    is_correct: bool


class PictureChoicesResponse(CamelModel):
    target_concept: str
    choices: list[PictureChoiceView]


class ImageSearchResult(CamelModel):
    query: str
    url: str
    title: str


class ImageSearchResponse(CamelModel):
    results: list[ImageSearchResult]
