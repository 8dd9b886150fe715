"""
Therapy Plan Agent: turns a finalized patient profile into a session plan.

One reasoning call drafts therapy blocks and reflective practice questions.
The draft is then rebalanced so the plan always carries exactly the configured
number of items: picture description holds a strict majority (or one item per
type when the target is four), missing types are filled with templated items,
and every picture item ends up with three distractor labels.
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime

from speechcoach.agents.prompts import PLAN_GENERATION_SYSTEM_PROMPT
from speechcoach.core.errors import PlanGenerationError, SessionNotFoundError
from speechcoach.core.json_parser import parse_llm_json
from speechcoach.core.llm_provider import ROLE_PLANNER, BaseLLMProvider, get_llm_provider
from speechcoach.core.logging import DOMAIN_PLANNING, get_domain_logger
from speechcoach.core.settings import settings
from speechcoach.memory.session_store import SessionStatus, SessionStore
from speechcoach.schemas.plan import (
    BLOCK_TYPES,
    DIFFICULTIES,
    QUESTION_CATEGORIES,
    BlockType,
    Difficulty,
    PatientProfile,
    PracticeQuestion,
    SafetyConcerns,
    ScalingRatings,
    SessionMetadata,
    SessionSummary,
    TherapyBlock,
    TherapyItem,
    TherapySessionPlan,
)

logger = get_domain_logger(__name__, DOMAIN_PLANNING)

MIN_PRACTICE_QUESTIONS = 4
MAX_PRACTICE_QUESTIONS = 50
# The first three are the standard fillers; the rest only cover answers that collide with them.
FILLER_DISTRACTORS = ("chair", "car", "tree", "house", "book")
DEFAULT_TOPIC = "daily life"


def normalize_practice_question_count(value, default: int | None = None) -> int:
    fallback = settings.practice_question_count if default is None else default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        value = fallback
    return min(MAX_PRACTICE_QUESTIONS, max(MIN_PRACTICE_QUESTIONS, int(value)))


def build_target_counts(total: int) -> dict[BlockType, int]:
    counts: dict[BlockType, int] = {block_type: 0 for block_type in BLOCK_TYPES}
    if total == MIN_PRACTICE_QUESTIONS:
        for block_type in BLOCK_TYPES:
            counts[block_type] = 1
        return counts

    counts["picture_description"] = total // 2 + 1
    others = [t for t in BLOCK_TYPES if t != "picture_description"]
    for idx in range(total - counts["picture_description"]):
        counts[others[idx % len(others)]] += 1
    return counts


def topic_seed(topic: str) -> str:
    words = str(topic or "").split()
    return words[0].lower() if words else "word"


def make_fallback_item(block_type: BlockType, topic: str) -> TherapyItem:
    seed = topic_seed(topic)
    if block_type == "picture_description":
        return TherapyItem(prompt=f"Choose the image of {seed}", answer=seed, distractors=list(FILLER_DISTRACTORS[:3]))
    if block_type == "word_repetition":
        return TherapyItem(prompt=f"Say this word: {seed}", answer=seed)
    if block_type == "sentence_completion":
        return TherapyItem(prompt="Complete: I see a ___", answer=seed)
    return TherapyItem(prompt=f"Name this item: {seed}", answer=seed)


def picture_distractors(raw, answer: str) -> list[str]:
    answer_key = str(answer or "").strip().lower()
    picked: list[str] = []
    seen = {answer_key}
    for label in raw if isinstance(raw, list) else []:
        key = str(label or "").strip().lower()
        if not key or key in seen:
            continue
        picked.append(str(label).strip())
        seen.add(key)
        if len(picked) == 3:
            return picked
    for filler in FILLER_DISTRACTORS:
        if len(picked) == 3:
            break
        if filler not in seen:
            picked.append(filler)
            seen.add(filler)
    return picked


@dataclass(frozen=True)
class SourceItem:
    type: BlockType
    topic: str
    difficulty: Difficulty | None
    description: str
    item: TherapyItem


def flatten_blocks(raw_blocks: list) -> list[SourceItem]:
    rows: list[SourceItem] = []
    for block in raw_blocks:
        if not isinstance(block, dict) or block.get("type") not in BLOCK_TYPES:
            continue
        difficulty = block.get("difficulty") if block.get("difficulty") in DIFFICULTIES else None
        for item in block.get("items") or []:
            if not isinstance(item, dict):
                continue
            prompt = str(item.get("prompt") or "").strip()
            answer = str(item.get("answer") or "").strip()
            if not prompt or not answer:
                continue
            distractors = item.get("distractors")
            rows.append(
                SourceItem(
                    type=block["type"],
                    topic=str(block.get("topic") or "").strip(),
                    difficulty=difficulty,
                    description=str(block.get("description") or "").strip(),
                    item=TherapyItem(
                        prompt=prompt,
                        answer=answer,
                        distractors=[str(d) for d in distractors] if isinstance(distractors, list) else None,
                    ),
                )
            )
    return rows


def rebalance_blocks(raw_blocks: list, profile: PatientProfile, total: int) -> list[TherapyBlock]:
    by_type: dict[BlockType, list[SourceItem]] = {block_type: [] for block_type in BLOCK_TYPES}
    for row in flatten_blocks(raw_blocks):
        by_type[row.type].append(row)

    default_topics = list(profile.interests) or [DEFAULT_TOPIC]
    blocks: list[TherapyBlock] = []
    for block_type, target in build_target_counts(total).items():
        if target <= 0:
            continue
        sources = by_type[block_type]
        items: list[TherapyItem] = []
        topics: list[str] = []
        for i in range(target):
            source = sources[i % len(sources)] if sources else None
            topic = (source.topic if source else "") or default_topics[i % len(default_topics)]
            item = source.item if source else make_fallback_item(block_type, topic)
            if block_type == "picture_description":
                item = item.model_copy(update={"distractors": picture_distractors(item.distractors, item.answer)})
            else:
                item = item.model_copy(update={"distractors": None})
            items.append(item)
            topics.append(topic)

        first = sources[0] if sources else None
        blocks.append(
            TherapyBlock(
                block_id=f"block-{len(blocks) + 1}",
                type=block_type,
                topic=topics[0],
                difficulty=(first.difficulty if first else None) or profile.difficulty,
                description=(first.description if first else "") or f"Practice {block_type.replace('_', ' ')}",
                items=items,
            )
        )
    return blocks


def normalize_practice_questions(raw, profile: PatientProfile) -> list[PracticeQuestion]:
    default_theme = (profile.main_themes or [profile.mood])[0]
    questions: list[PracticeQuestion] = []
    for idx, entry in enumerate(raw if isinstance(raw, list) else []):
        if not isinstance(entry, dict):
            continue
        text = str(entry.get("question_text") or "").strip()
        if not text:
            continue
        category = entry.get("category")
        questions.append(
            PracticeQuestion(
                question_id=str(entry.get("question_id") or f"q-{idx + 1}"),
                question_text=text,
                category=category if category in QUESTION_CATEGORIES else "reflection",
                related_theme=str(entry.get("related_theme") or default_theme),
            )
        )
    return questions


def build_session_summary(profile: PatientProfile, practice_questions: list[PracticeQuestion]) -> SessionSummary:
    return SessionSummary(
        main_themes=profile.main_themes if profile.main_themes is not None else [profile.mood, *profile.interests][:3],
        emotional_tone=profile.emotional_tone if profile.emotional_tone is not None else [profile.mood],
        scaling=ScalingRatings(
            mood_rating=profile.mood_rating if profile.mood_rating is not None else 5,
            stress_rating=profile.stress_rating if profile.stress_rating is not None else 5,
        ),
        challenges=profile.challenges or [],
        goals=profile.goals or [],
        safety_concerns=SafetyConcerns(has_acute_risk=profile.safety_concern, notes=profile.safety_notes),
        user_quotes=profile.user_quotes or [],
        practice_questions=practice_questions,
    )


def build_plan_prompt(profile: PatientProfile, total: int) -> str:
    lines = [
        "Patient profile:",
        f"- Mood today: {profile.mood}",
        f"- Interests: {', '.join(profile.interests)}",
        f"- Chosen difficulty: {profile.difficulty}",
        f"- Clinical notes: {profile.notes}",
        f"- Target session duration: {profile.estimated_duration_minutes} minutes",
        f"- Therapy items required: {total}",
    ]
    optional = [
        ("Main themes from check-in", profile.main_themes),
        ("Emotional tone", profile.emotional_tone),
        ("Challenges mentioned", profile.challenges),
        ("Goals expressed", profile.goals),
    ]
    for label, values in optional:
        if values:
            lines.append(f"- {label}: {', '.join(values)}")
    if profile.safety_concern:
        lines.append(
            f"- Clinical note: safety concern raised during check-in ({profile.safety_notes or 'no details'}). "
            "Keep every item gentle and low pressure."
        )

    lines += [
        "",
        "Generate a therapy session plan for this patient.",
        "Use their interests as topics for therapy blocks and match the difficulty throughout.",
        f"Generate exactly {total} therapy items across all therapy_blocks.",
        "If the total is 4, create one item of each type: picture_description, word_repetition, "
        "sentence_completion, word_finding.",
        "If the total is greater than 4, picture_description must hold strictly more than half of the items.",
        "Use any themes, challenges, or goals to inform the practice questions.",
        "Return valid JSON only.",
    ]
    return "\n".join(lines)


def parse_plan_output(raw_text: str) -> dict:
    try:
        parsed = parse_llm_json(raw_text, strict=True)
    except ValueError as exc:
        raise PlanGenerationError(
            f"Plan generator returned invalid JSON ({exc}). Raw output: {raw_text[:400]}"
        ) from exc
    if not isinstance(parsed, dict):
        raise PlanGenerationError("Plan generator returned JSON that is not an object")
    blocks = parsed.get("therapy_blocks", parsed.get("therapyBlocks"))
    if not isinstance(blocks, list) or not blocks:
        raise PlanGenerationError("Plan generator returned an empty therapy block list")
    return parsed


class TherapyPlanAgent:
    def __init__(self, store: SessionStore, provider: BaseLLMProvider | None = None):
        self.store = store
        self.provider = provider or get_llm_provider(role=ROLE_PLANNER)

    async def build_plan(
        self,
        *,
        session_id: str,
        created_at: datetime,
        profile: PatientProfile,
        total: int,
    ) -> TherapySessionPlan:
        raw_text, usage = await self.provider.generate(
            build_plan_prompt(profile, total),
            system_prompt=PLAN_GENERATION_SYSTEM_PROMPT,
            max_output_tokens=4096,
        )
        parsed = parse_plan_output(raw_text or "")
        blocks = rebalance_blocks(parsed.get("therapy_blocks", parsed.get("therapyBlocks")), profile, total)
        questions = normalize_practice_questions(
            parsed.get("practice_questions", parsed.get("practiceQuestions")), profile
        )

        duration = parsed.get("estimated_duration_minutes", parsed.get("estimatedDurationMinutes"))
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or not 1 <= duration <= 120:
            duration = profile.estimated_duration_minutes

        logger.info(
            json.dumps(
                {
                    "type": "plan_rebalanced",
                    "session_id": session_id,
                    "target_items": total,
                    "blocks": {b.type: len(b.items) for b in blocks},
                    "practice_questions": len(questions),
                    "model": usage.get("model"),
                }
            )
        )
        return TherapySessionPlan(
            patient_profile=profile,
            session_metadata=SessionMetadata(
                session_id=session_id,
                created_at=created_at,
                estimated_duration_minutes=int(duration),
            ),
            blocks=blocks,
            summary=build_session_summary(profile, questions),
        )

    async def generate_for_session(self, session_id: str, profile: PatientProfile) -> TherapySessionPlan:
        record = self.store.get(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        total = normalize_practice_question_count(record.practice_question_count)
        plan = await self.build_plan(
            session_id=session_id,
            created_at=record.created_at,
            profile=profile,
            total=total,
        )
        # Re-read after the model call; the session may have been evicted meanwhile.
        record = self.store.get(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        record.plan = plan
        record.error = None
        record.status = SessionStatus.COMPLETE
        self.store.set(session_id, record)
        return plan
