from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


Mood = Literal["happy", "tired", "anxious", "motivated", "frustrated", "calm"]
Difficulty = Literal["easy", "medium", "hard"]
BlockType = Literal["picture_description", "word_repetition", "sentence_completion", "word_finding"]
QuestionCategory = Literal["reflection", "behavioral_experiment", "values", "coping_skills"]

# Presentation and rebalancing order.
BLOCK_TYPES: tuple[BlockType, ...] = (
    "picture_description",
    "word_repetition",
    "sentence_completion",
    "word_finding",
)
DIFFICULTIES: tuple[Difficulty, ...] = ("easy", "medium", "hard")
QUESTION_CATEGORIES: tuple[QuestionCategory, ...] = ("reflection", "behavioral_experiment", "values", "coping_skills")
REQUIRED_PROFILE_FIELDS = ("mood", "interests", "difficulty", "notes", "estimated_duration_minutes")


def _clean_strings(values) -> list[str]:
    if values is None:
        return []
    if not isinstance(values, (list, tuple, set)):
        values = [values]
    return [str(v).strip() for v in values if str(v or "").strip()]


class PatientProfile(BaseModel):
    """Check-in outcome. The first five fields are required by the finalize trigger."""

    model_config = ConfigDict(frozen=True)

    mood: Mood
    interests: list[str] = Field(min_length=1)
    difficulty: Difficulty
    notes: str
    estimated_duration_minutes: int = Field(ge=1, le=120)

    main_themes: list[str] | None = None
    emotional_tone: list[str] | None = None
    mood_rating: float | None = None
    stress_rating: float | None = None
    challenges: list[str] | None = None
    goals: list[str] | None = None
    safety_concern: bool = False
    safety_notes: str = ""
    user_quotes: list[str] | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_null_enrichment(cls, data):
        # A null enrichment field falls back to its default.
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None or key in REQUIRED_PROFILE_FIELDS}
        return data

    @field_validator("mood", "difficulty", mode="before")
    @classmethod
    def _lower(cls, value):
        return str(value).strip().lower() if value is not None else value

    @field_validator("interests", mode="before")
    @classmethod
    def _interests(cls, value):
        return _clean_strings(value)

    @field_validator("main_themes", "emotional_tone", "challenges", "goals", "user_quotes", mode="before")
    @classmethod
    def _optional_lists(cls, value):
        if value is None:
            return None
        return _clean_strings(value)

    @field_validator("safety_concern", mode="before")
    @classmethod
    def _safety_flag(cls, value):
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "1")
        if isinstance(value, (bool, int, float)):
            return bool(value)
        return False

    @field_validator("safety_notes", mode="before")
    @classmethod
    def _safety_notes(cls, value):
        return str(value).strip()

    @field_validator("estimated_duration_minutes", mode="before")
    @classmethod
    def _duration(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(round(value))
        return value

    @field_validator("mood_rating", "stress_rating", mode="before")
    @classmethod
    def _rating(cls, value):
        if value is None or isinstance(value, bool):
            return None
        try:
            rating = float(value)
        except (TypeError, ValueError):
            return None
        return max(1.0, min(10.0, rating))


class TherapyItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    answer: str
    distractors: list[str] | None = None


class TherapyBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    block_id: str
    type: BlockType
    topic: str
    difficulty: Difficulty
    description: str
    items: list[TherapyItem] = Field(min_length=1)


class SessionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    created_at: datetime
    estimated_duration_minutes: int


class PracticeQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    question_text: str
    category: QuestionCategory = "reflection"
    related_theme: str


class ScalingRatings(BaseModel):
    model_config = ConfigDict(frozen=True)

    mood_rating: float = 5
    stress_rating: float = 5


class SafetyConcerns(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_acute_risk: bool = False
    notes: str = ""


class SessionSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    main_themes: list[str]
    emotional_tone: list[str]
    scaling: ScalingRatings
    strengths_and_resources: list[str] = Field(default_factory=list)
    challenges: list[str] = Field(default_factory=list)
    goals: list[str] = Field(default_factory=list)
    safety_concerns: SafetyConcerns
    user_quotes: list[str] = Field(default_factory=list)
    practice_questions: list[PracticeQuestion] = Field(default_factory=list)


class TherapySessionPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    patient_profile: PatientProfile
    session_metadata: SessionMetadata
    blocks: list[TherapyBlock] = Field(min_length=1)
    summary: SessionSummary | None = None

    def item_count(self) -> int:
        return sum(len(block.items) for block in self.blocks)
