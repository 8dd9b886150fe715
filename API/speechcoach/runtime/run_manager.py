from __future__ import annotations

import asyncio

from speechcoach.agents.planner import TherapyPlanAgent
from speechcoach.core.event_bus import PLAN_COMPLETED, PLAN_FAILED, EventBus
from speechcoach.core.logging import DOMAIN_PLANNING, get_domain_logger
from speechcoach.memory.session_store import SessionStatus, SessionStore
from speechcoach.schemas.plan import PatientProfile

logger = get_domain_logger(__name__, DOMAIN_PLANNING)


class PlanJobRunner:
    """Runs plan generation detached from the request that triggered it.

    Callers get the task back but are not expected to await it; the outcome is
    written to the session record (complete or error) and published on the bus.
    Jobs are never cancelled once submitted.
    """

    def __init__(self, store: SessionStore, planner: TherapyPlanAgent, event_bus: EventBus):
        self.store = store
        self.planner = planner
        self.event_bus = event_bus
        self._tasks: dict[str, asyncio.Task] = {}

    def submit(self, session_id: str, profile: PatientProfile) -> asyncio.Task:
        existing = self._tasks.get(session_id)
        if existing is not None and not existing.done():
            return existing
        task = asyncio.create_task(self._execute(session_id, profile), name=f"plan:{session_id}")
        self._tasks[session_id] = task
        task.add_done_callback(lambda _t, sid=session_id: self._forget(sid, _t))
        return task

    def _forget(self, session_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(session_id) is task:
            self._tasks.pop(session_id, None)

    def active_jobs(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def wait(self, session_id: str) -> None:
        task = self._tasks.get(session_id)
        if task is not None:
            await asyncio.shield(task)

    async def drain(self) -> None:
        pending = [task for task in self._tasks.values() if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _execute(self, session_id: str, profile: PatientProfile) -> None:
        try:
            plan = await self.planner.generate_for_session(session_id, profile)
        except Exception as exc:
            logger.exception("Plan generation failed | session_id=%s", session_id)
            self._mark_failed(session_id, str(exc) or exc.__class__.__name__)
            await self.event_bus.publish(PLAN_FAILED, "plan_runner", {"session_id": session_id, "error": str(exc)})
            return
        await self.event_bus.publish(
            PLAN_COMPLETED,
            "plan_runner",
            {"session_id": session_id, "items": plan.item_count(), "blocks": len(plan.blocks)},
        )

    def _mark_failed(self, session_id: str, message: str) -> None:
        record = self.store.get(session_id)
        if record is None:
            return
        record.status = SessionStatus.ERROR
        record.error = message
        record.plan = None
        self.store.set(session_id, record)
