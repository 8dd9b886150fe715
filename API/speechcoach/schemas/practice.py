from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PracticeSummary(CamelModel):
    session_id: str
    completed_at: datetime
    correct: int
    total: int
    accuracy: float
    ended_early: bool
    blocks_completed: int


class SubmitPracticeAnswerRequest(CamelModel):
    answer: str = Field(..., max_length=2000)


class PracticeScore(CamelModel):
    correct: int
    total: int


class PracticeFeedback(CamelModel):
    is_correct: bool
    expected: str
    submitted: str


class PracticeBlockView(CamelModel):
    block_id: str
    type: str
    topic: str
    difficulty: str


class PracticeItemView(CamelModel):
    prompt: str
    answer: str
    distractors: list[str] | None = None


class PracticeStateResponse(CamelModel):
    session_id: str
    status: str
    block_index: int
    item_index: int
    block_count: int
    item_count: int
    score: PracticeScore
    feedback: PracticeFeedback | None = None
    current_block: PracticeBlockView | None = None
    current_item: PracticeItemView | None = None
    evaluating: bool = False
    error: str | None = None


class PracticeSummariesResponse(CamelModel):
    summaries: list[PracticeSummary]
