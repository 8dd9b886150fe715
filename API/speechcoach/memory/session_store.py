"""
Volatile in-process session store.

One record per check-in session. The store is created once per application and
handed to whoever needs it; nothing reaches it through a module global. Writers
are expected to be one-at-a-time per session id (a single patient drives a
session), which the store assumes but does not enforce: two coroutines that
read a record, await, and write it back can overwrite each other.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from speechcoach.schemas.plan import TherapySessionPlan


class SessionStatus(str, Enum):
    ACTIVE = "active"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    ERROR = "error"


TurnRole = Literal["patient", "assistant"]


@dataclass(frozen=True)
class ConversationTurn:
    role: TurnRole
    text: str


@dataclass
class SessionRecord:
    id: str
    created_at: datetime
    practice_question_count: int
    status: SessionStatus = SessionStatus.ACTIVE
    history: list[ConversationTurn] = field(default_factory=list)
    plan: TherapySessionPlan | None = None
    error: str | None = None

    @classmethod
    def new(cls, practice_question_count: int, status: SessionStatus = SessionStatus.ACTIVE) -> "SessionRecord":
        return cls(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            practice_question_count=practice_question_count,
            status=status,
        )

    def append_turn(self, role: TurnRole, text: str) -> None:
        self.history.append(ConversationTurn(role=role, text=text))


class SessionStore:
    def __init__(self):
        self._records: dict[str, SessionRecord] = {}

    def get(self, session_id: str) -> SessionRecord | None:
        return self._records.get(session_id)

    def set(self, session_id: str, record: SessionRecord) -> None:
        self._records[session_id] = record

    def has(self, session_id: str) -> bool:
        return session_id in self._records

    def delete(self, session_id: str) -> bool:
        return self._records.pop(session_id, None) is not None

    def size(self) -> int:
        return len(self._records)

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in SessionStatus}
        for record in self._records.values():
            counts[record.status.value] += 1
        return counts
