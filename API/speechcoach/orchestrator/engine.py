"""
Practice Session Engine.

`reduce` is the whole state machine: a pure function from (state, event) to the
next state. Events that do not apply to the current status return the state
unchanged, so UI events arriving out of order are harmless. The evaluator call
lives in `PracticeSessionEngine.submit_answer`, outside the reducer, and its
result comes back in as an `EvaluationComplete` event tagged with the indices it
was started at and the run (one per loaded plan) it belongs to.
"""
from __future__ import annotations

import json
from dataclasses import replace

from speechcoach.agents.assessment import AnswerEvaluator
from speechcoach.core.logging import DOMAIN_PRACTICE, get_domain_logger
from speechcoach.orchestrator.states import (
    TERMINAL_STATUSES,
    End,
    EngineState,
    EngineStatus,
    EvaluationComplete,
    Fail,
    Feedback,
    LoadPlan,
    Next,
    PracticeEvent,
    Score,
    Start,
)
from speechcoach.schemas.plan import TherapyBlock, TherapyItem, TherapySessionPlan

logger = get_domain_logger(__name__, DOMAIN_PRACTICE)


def current_block(state: EngineState) -> TherapyBlock | None:
    if state.plan is None or not 0 <= state.block_index < len(state.plan.blocks):
        return None
    return state.plan.blocks[state.block_index]


def current_item(state: EngineState) -> TherapyItem | None:
    block = current_block(state)
    if block is None or not 0 <= state.item_index < len(block.items):
        return None
    return block.items[state.item_index]


def _missing_item(state: EngineState) -> EngineState:
    return replace(
        state,
        status=EngineStatus.ERROR,
        error=f"No item at block {state.block_index}, item {state.item_index}",
    )


def _advance(state: EngineState) -> EngineState:
    block = current_block(state)
    if block is None:
        return _missing_item(state)
    if state.item_index + 1 < len(block.items):
        return replace(state, status=EngineStatus.PRESENTING, item_index=state.item_index + 1, feedback=None)
    if state.block_index + 1 < len(state.plan.blocks):
        return replace(
            state,
            status=EngineStatus.PRESENTING,
            block_index=state.block_index + 1,
            item_index=0,
            feedback=None,
        )
    return replace(state, status=EngineStatus.ENDED, feedback=None)


def reduce(state: EngineState, event: PracticeEvent) -> EngineState:
    if isinstance(event, Fail):
        return replace(state, status=EngineStatus.ERROR, error=event.message)

    if isinstance(event, LoadPlan):
        return EngineState(status=EngineStatus.LOADED, run=state.run + 1, plan=event.plan)

    if isinstance(event, Start):
        if state.status != EngineStatus.LOADED:
            return state
        started = replace(state, status=EngineStatus.PRESENTING)
        return started if current_item(started) is not None else _missing_item(started)

    if isinstance(event, EvaluationComplete):
        # Late results (after end, after a reload, or for another item) are dropped.
        if (
            state.status != EngineStatus.PRESENTING
            or state.run != event.run
            or state.block_index != event.block_index
            or state.item_index != event.item_index
        ):
            return state
        return replace(
            state,
            status=EngineStatus.SHOWING_FEEDBACK,
            score=Score(
                correct=state.score.correct + (1 if event.correct else 0),
                total=state.score.total + 1,
            ),
            feedback=Feedback(is_correct=event.correct, expected=event.expected, submitted=event.submitted),
        )

    if isinstance(event, Next):
        if state.status != EngineStatus.SHOWING_FEEDBACK:
            return state
        return _advance(state)

    if isinstance(event, End):
        if state.status in TERMINAL_STATUSES:
            return state
        return replace(state, status=EngineStatus.ENDED)

    return state


class PracticeSessionEngine:
    """Holds the current state for one practice run and performs the async evaluation.

    At most one evaluation runs at a time per engine. A second `submit_answer`
    while one is pending is ignored, even for a different item; practice is
    strictly one answer at a time. Loading a plan starts a new run, which is free
    to evaluate even while a result from the previous run is still outstanding.
    """

    def __init__(self, evaluator: AnswerEvaluator, session_id: str = ""):
        self.evaluator = evaluator
        self.session_id = session_id
        self.state = EngineState()
        self._pending_run: int | None = None

    @property
    def evaluating(self) -> bool:
        return self._pending_run == self.state.run

    def dispatch(self, event: PracticeEvent) -> EngineState:
        previous = self.state
        self.state = reduce(previous, event)
        if self.state.status != previous.status:
            logger.info(
                json.dumps(
                    {
                        "type": "practice_transition",
                        "session_id": self.session_id,
                        "from_state": previous.status.value,
                        "to_state": self.state.status.value,
                        "event": type(event).__name__,
                    }
                )
            )
        if self.state.status == EngineStatus.ERROR and previous.status != EngineStatus.ERROR:
            logger.error("Practice engine error | session_id=%s | %s", self.session_id, self.state.error)
        return self.state

    def load_plan(self, plan: TherapySessionPlan) -> EngineState:
        return self.dispatch(LoadPlan(plan=plan))

    def start(self) -> EngineState:
        return self.dispatch(Start())

    def next(self) -> EngineState:
        return self.dispatch(Next())

    def end(self) -> EngineState:
        return self.dispatch(End())

    async def submit_answer(self, text: str) -> EngineState:
        if self.evaluating or self.state.status != EngineStatus.PRESENTING:
            return self.state
        item = current_item(self.state)
        if item is None:
            return self.dispatch(Fail(_missing_item(self.state).error or "item not found"))

        run, block_index, item_index = self.state.run, self.state.block_index, self.state.item_index
        submitted = str(text or "")
        self._pending_run = run
        try:
            result = await self.evaluator.evaluate(submitted, item.answer)
        finally:
            if self._pending_run == run:
                self._pending_run = None
        return self.dispatch(
            EvaluationComplete(
                run=run,
                block_index=block_index,
                item_index=item_index,
                correct=result.correct,
                submitted=submitted,
                expected=item.answer,
            )
        )

    def snapshot(self) -> dict:
        state = self.state
        block = current_block(state)
        item = current_item(state)
        plan_items = state.plan.item_count() if state.plan else 0
        return {
            "session_id": self.session_id,
            "status": state.status.value,
            "block_index": state.block_index,
            "item_index": state.item_index,
            "block_count": len(state.plan.blocks) if state.plan else 0,
            "item_count": plan_items,
            "score": {"correct": state.score.correct, "total": state.score.total},
            "feedback": (
                {
                    "is_correct": state.feedback.is_correct,
                    "expected": state.feedback.expected,
                    "submitted": state.feedback.submitted,
                }
                if state.feedback
                else None
            ),
            "current_block": (
                {"block_id": block.block_id, "type": block.type, "topic": block.topic, "difficulty": block.difficulty}
                if block and state.status not in (EngineStatus.IDLE, EngineStatus.ENDED)
                else None
            ),
            "current_item": (
                item.model_dump()
                if item and state.status in (EngineStatus.PRESENTING, EngineStatus.SHOWING_FEEDBACK)
                else None
            ),
            "evaluating": self.evaluating,
            "error": state.error,
        }
