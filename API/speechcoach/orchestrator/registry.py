from __future__ import annotations

from datetime import datetime, timezone

from speechcoach.agents.assessment import AnswerEvaluator
from speechcoach.core.errors import SessionNotFoundError
from speechcoach.core.event_bus import PRACTICE_ENDED, EventBus
from speechcoach.core.logging import DOMAIN_PRACTICE, get_domain_logger
from speechcoach.memory.practice_summaries import PracticeSummaryStore
from speechcoach.memory.session_store import SessionStatus, SessionStore
from speechcoach.orchestrator.engine import PracticeSessionEngine
from speechcoach.orchestrator.states import EngineState, EngineStatus
from speechcoach.schemas.practice import PracticeSummary

logger = get_domain_logger(__name__, DOMAIN_PRACTICE)


def blocks_completed(state: EngineState) -> int:
    if state.plan is None:
        return 0
    if state.plan.item_count() and state.score.total >= state.plan.item_count():
        return len(state.plan.blocks)
    done = state.block_index
    block = state.plan.blocks[state.block_index] if state.block_index < len(state.plan.blocks) else None
    # The last item of the block was answered before the run was ended.
    if block is not None and state.feedback is not None and state.item_index == len(block.items) - 1:
        done += 1
    return done


def build_summary(session_id: str, state: EngineState) -> PracticeSummary:
    total_items = state.plan.item_count() if state.plan else 0
    score = state.score
    return PracticeSummary(
        session_id=session_id,
        completed_at=datetime.now(timezone.utc),
        correct=score.correct,
        total=score.total,
        accuracy=round(score.correct / score.total, 4) if score.total else 0.0,
        ended_early=score.total < total_items,
        blocks_completed=blocks_completed(state),
    )


class PracticeRegistry:
    """One practice engine per check-in session, created on load."""

    def __init__(
        self,
        store: SessionStore,
        evaluator: AnswerEvaluator,
        summaries: PracticeSummaryStore,
        event_bus: EventBus,
    ):
        self.store = store
        self.evaluator = evaluator
        self.summaries = summaries
        self.event_bus = event_bus
        self._engines: dict[str, PracticeSessionEngine] = {}

    def get(self, session_id: str) -> PracticeSessionEngine:
        engine = self._engines.get(session_id)
        if engine is None:
            raise SessionNotFoundError(session_id)
        return engine

    def load(self, session_id: str) -> PracticeSessionEngine | None:
        """Load the session's finished plan into a fresh engine. None while the plan is not ready."""
        record = self.store.get(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        if record.status != SessionStatus.COMPLETE or record.plan is None:
            return None
        engine = self._engines.get(session_id)
        if engine is None:
            engine = PracticeSessionEngine(self.evaluator, session_id=session_id)
            self._engines[session_id] = engine
        engine.load_plan(record.plan)
        return engine

    def discard(self, session_id: str) -> None:
        self._engines.pop(session_id, None)

    async def record_if_ended(self, engine: PracticeSessionEngine, previous: EngineStatus) -> None:
        if previous == EngineStatus.ENDED or engine.state.status != EngineStatus.ENDED:
            return
        summary = build_summary(engine.session_id, engine.state)
        self.summaries.save(summary)
        logger.info(
            "Practice ended | session_id=%s | score=%s/%s | early=%s",
            summary.session_id,
            summary.correct,
            summary.total,
            summary.ended_early,
        )
        await self.event_bus.publish(
            PRACTICE_ENDED,
            "practice",
            {
                "session_id": summary.session_id,
                "correct": summary.correct,
                "total": summary.total,
                "ended_early": summary.ended_early,
            },
        )
