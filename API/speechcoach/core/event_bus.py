import asyncio
from collections import deque
from datetime import datetime, timezone

SESSION_STARTED = "session_started"
SESSION_FINALIZING = "session_finalizing"
PLAN_COMPLETED = "plan_completed"
PLAN_FAILED = "plan_failed"
PRACTICE_ENDED = "practice_ended"


class EventBus:
    """In-process fan-out of lifecycle events with a bounded replay history.

    A slow subscriber whose queue is full misses events rather than blocking
    publishers.
    """

    def __init__(self, history_size: int = 200, queue_size: int = 500):
        self._queues: set[asyncio.Queue] = set()
        self._recent: deque[dict] = deque(maxlen=history_size)
        self._queue_size = queue_size
        self._lock = asyncio.Lock()

    async def publish(self, event_type: str, source: str, data: dict) -> dict:
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": event_type,
            "source": source,
            "data": data,
        }
        async with self._lock:
            self._recent.append(event)
            targets = tuple(self._queues)
        for queue in targets:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                continue
        return event

    async def subscribe(self, replay_last: int = 10) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        async with self._lock:
            self._queues.add(queue)
            backlog = list(self._recent)[-replay_last:] if replay_last > 0 else []
        for event in backlog:
            queue.put_nowait(event)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        async with self._lock:
            self._queues.discard(queue)

    def subscriber_count(self) -> int:
        return len(self._queues)

    def history(self, session_id: str | None = None) -> list[dict]:
        events = list(self._recent)
        if session_id is None:
            return events
        return [event for event in events if event["data"].get("session_id") == session_id]
