"""
Check-in Agent: runs the pre-practice conversation.

Each patient message is sent with the whole history to the reasoning service,
which either answers in plain text or calls `finalize_session` with the patient
profile. The reply is classified once into a TextTurn or a FinalizeTurn. A
finalize hands the profile to the plan job runner and returns immediately; the
plan is picked up later through `get_plan`.
"""
from __future__ import annotations

import json
from dataclasses import dataclass

from pydantic import ValidationError

from speechcoach.agents.planner import normalize_practice_question_count
from speechcoach.agents.prompts import CHECK_IN_SYSTEM_PROMPT, FINALIZE_SESSION_TOOL, FINALIZE_TOOL_NAME
from speechcoach.core.errors import SessionNotFoundError
from speechcoach.core.event_bus import SESSION_FINALIZING, SESSION_STARTED, EventBus
from speechcoach.core.llm_provider import ROLE_CHECKIN, BaseLLMProvider, ReasoningReply, get_llm_provider
from speechcoach.core.logging import DOMAIN_CHECKIN, get_domain_logger
from speechcoach.memory.session_store import ConversationTurn, SessionRecord, SessionStatus, SessionStore
from speechcoach.runtime.run_manager import PlanJobRunner
from speechcoach.schemas.plan import PatientProfile, TherapySessionPlan

logger = get_domain_logger(__name__, DOMAIN_CHECKIN)

# The reasoning service needs a conversation that opens with a non-assistant turn.
OPENING_PATIENT_TURN = "Hello, I am ready to start."
DEFAULT_GREETING = "Good to see you. How have you been feeling? Happy, tired, worried, or calm?"
DEFAULT_FOLLOW_UP = "Thank you for telling me. Could you say a little more?"
DEFAULT_CLOSING = "Thank you for sharing with me today. I'm preparing your session now, just a moment."
HOLDING_COMPLETE = "Your session plan is ready. Please continue to the exercises."
HOLDING_PENDING = "Please wait. Preparing your session..."
HOLDING_ERROR = "Something went wrong while preparing your session. Please start a new session."
DEMO_GREETING = "Demo Skip enabled. Skipping counselling and preparing your practice now."

DEMO_PROFILE = PatientProfile(
    mood="motivated",
    interests=["travel", "family", "music"],
    difficulty="easy",
    notes="Demo mode profile generated to skip the check-in and go straight to practice.",
    estimated_duration_minutes=15,
)


@dataclass(frozen=True)
class TextTurn:
    text: str


@dataclass(frozen=True)
class FinalizeTurn:
    profile: PatientProfile
    text: str


TurnResult = TextTurn | FinalizeTurn


@dataclass(frozen=True)
class TurnOutcome:
    reply: str
    status: SessionStatus
    plan_ready: bool


@dataclass(frozen=True)
class PlanLookup:
    status: SessionStatus
    plan: TherapySessionPlan | None = None
    error: str | None = None


def classify_reply(reply: ReasoningReply) -> TurnResult:
    call = reply.tool_call
    if call is None or call.name != FINALIZE_TOOL_NAME:
        return TextTurn(text=reply.text)
    try:
        profile = PatientProfile.model_validate(call.arguments)
    except ValidationError as exc:
        missing = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        logger.warning("finalize_session rejected, invalid or missing fields: %s", ", ".join(missing))
        return TextTurn(text=reply.text)
    return FinalizeTurn(profile=profile, text=reply.text)


def holding_outcome(status: SessionStatus) -> TurnOutcome:
    if status == SessionStatus.COMPLETE:
        return TurnOutcome(reply=HOLDING_COMPLETE, status=status, plan_ready=True)
    if status == SessionStatus.ERROR:
        return TurnOutcome(reply=HOLDING_ERROR, status=status, plan_ready=False)
    return TurnOutcome(reply=HOLDING_PENDING, status=status, plan_ready=False)


def _log_transition(session_id: str, from_state: SessionStatus, to_state: SessionStatus, event: str) -> None:
    logger.info(
        json.dumps(
            {
                "type": "state_transition",
                "session_id": session_id,
                "from_state": from_state.value,
                "to_state": to_state.value,
                "event": event,
            }
        )
    )


class CheckInAgent:
    def __init__(
        self,
        store: SessionStore,
        runner: PlanJobRunner,
        event_bus: EventBus,
        provider: BaseLLMProvider | None = None,
    ):
        self.store = store
        self.runner = runner
        self.event_bus = event_bus
        self.provider = provider or get_llm_provider(role=ROLE_CHECKIN)

    async def start_session(self, practice_question_count: int | None = None) -> tuple[str, str]:
        record = SessionRecord.new(normalize_practice_question_count(practice_question_count))
        opening = ConversationTurn(role="patient", text=OPENING_PATIENT_TURN)
        reply = await self.provider.converse(
            CHECK_IN_SYSTEM_PROMPT,
            [opening],
            tools=[FINALIZE_SESSION_TOOL],
            max_output_tokens=400,
        )
        greeting = reply.text or DEFAULT_GREETING
        record.history.append(opening)
        record.append_turn("assistant", greeting)
        self.store.set(record.id, record)
        await self.event_bus.publish(SESSION_STARTED, "checkin", {"session_id": record.id})
        return record.id, greeting

    async def start_demo_session(self, practice_question_count: int | None = None) -> tuple[str, str, SessionStatus]:
        record = SessionRecord.new(
            normalize_practice_question_count(practice_question_count),
            status=SessionStatus.FINALIZING,
        )
        record.append_turn("assistant", DEMO_GREETING)
        self.store.set(record.id, record)
        self.runner.submit(record.id, DEMO_PROFILE)
        await self.event_bus.publish(SESSION_FINALIZING, "checkin", {"session_id": record.id, "demo": True})
        return record.id, DEMO_GREETING, record.status

    async def process_message(self, session_id: str, text: str) -> TurnOutcome:
        record = self.store.get(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        if record.status != SessionStatus.ACTIVE:
            return holding_outcome(record.status)

        message = (text or "").strip()
        if not message:
            raise ValueError("message must not be empty")

        patient_turn = ConversationTurn(role="patient", text=message)
        reply = await self.provider.converse(
            CHECK_IN_SYSTEM_PROMPT,
            [*record.history, patient_turn],
            tools=[FINALIZE_SESSION_TOOL],
        )

        record = self.store.get(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        if record.status != SessionStatus.ACTIVE:
            return holding_outcome(record.status)

        result = classify_reply(reply)
        record.history.append(patient_turn)

        if isinstance(result, FinalizeTurn):
            closing = result.text or DEFAULT_CLOSING
            record.append_turn("assistant", closing)
            record.status = SessionStatus.FINALIZING
            self.store.set(session_id, record)
            _log_transition(session_id, SessionStatus.ACTIVE, SessionStatus.FINALIZING, FINALIZE_TOOL_NAME)
            if result.profile.safety_concern:
                logger.warning(
                    "Safety concern flagged during check-in | session_id=%s | notes=%s",
                    session_id,
                    result.profile.safety_notes or "-",
                )
            self.runner.submit(session_id, result.profile)
            await self.event_bus.publish(SESSION_FINALIZING, "checkin", {"session_id": session_id})
            return TurnOutcome(reply=closing, status=SessionStatus.FINALIZING, plan_ready=False)

        reply_text = result.text or DEFAULT_FOLLOW_UP
        record.append_turn("assistant", reply_text)
        self.store.set(session_id, record)
        return TurnOutcome(reply=reply_text, status=SessionStatus.ACTIVE, plan_ready=False)

    def get_plan(self, session_id: str) -> PlanLookup:
        record = self.store.get(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        if record.status == SessionStatus.ERROR:
            return PlanLookup(status=record.status, error=record.error)
        if record.status != SessionStatus.COMPLETE or record.plan is None:
            return PlanLookup(status=record.status)
        return PlanLookup(status=record.status, plan=record.plan)
