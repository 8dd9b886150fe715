from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path
from urllib.parse import quote

import httpx
import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
API_DIR = ROOT / "API"
if str(API_DIR) not in sys.path:
    sys.path.insert(0, str(API_DIR))

# Test-mode runtime guards:
# - no reasoning or image-search traffic
# - runtime files land in a throwaway directory
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LLM_PROVIDER", "none")
os.environ.setdefault("UNSPLASH_ACCESS_KEY", "")
os.environ.setdefault("BING_IMAGE_API_KEY", "")
os.environ.setdefault("RUNTIME_DATA_DIR", tempfile.mkdtemp(prefix="speechcoach-test-"))

from speechcoach.core.bootstrap import build_services  # noqa: E402
from speechcoach.core.llm_provider import BaseLLMProvider, ReasoningReply, ToolCall  # noqa: E402
from speechcoach.core.resilience import reset_breakers  # noqa: E402
from speechcoach.images.providers import ImageHit, ImageSearchProvider  # noqa: E402
from speechcoach.main import create_app  # noqa: E402
from speechcoach.memory.practice_summaries import PracticeSummaryStore  # noqa: E402


class ScriptedLLMProvider(BaseLLMProvider):
    """Replays queued replies in order; an Exception in the queue is raised instead."""

    provider_name = "scripted"
    model_name = "scripted-model"

    def __init__(self, *replies, default: ReasoningReply | None = None):
        self.replies = list(replies)
        self.default = default or ReasoningReply(text="")
        self.calls: list[dict] = []

    def queue(self, *replies) -> None:
        self.replies.extend(replies)

    async def converse(self, system_prompt, turns, *, tools=(), max_output_tokens=600):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "turns": list(turns),
                "tools": [tool.name for tool in tools],
            }
        )
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return ReasoningReply(text=reply)
        return reply


class EchoImageProvider(ImageSearchProvider):
    """Answers every query with one image whose URL and description derive from the query."""

    def __init__(self, name: str = "echo", fail: bool = False, empty: bool = False):
        self.provider_name = name
        self.fail = fail
        self.empty = empty
        self.queries: list[str] = []

    async def search(self, query: str, *, limit: int = 16) -> list[ImageHit]:
        self.queries.append(query)
        if self.fail:
            raise httpx.ConnectError("image service unreachable")
        if self.empty:
            return []
        return [ImageHit(image_url=f"https://images.test/{self.provider_name}/{quote(query)}.jpg", description=query)]


def finalize_reply(text: str = "", **overrides) -> ReasoningReply:
    arguments = {
        "mood": "happy",
        "interests": ["cooking", "gardening"],
        "difficulty": "easy",
        "notes": "Engaged and talkative.",
        "estimated_duration_minutes": 15,
    }
    arguments.update(overrides)
    return ReasoningReply(text=text, tool_call=ToolCall(name="finalize_session", arguments=arguments))


def plan_payload(**overrides) -> dict:
    payload = {
        "therapy_blocks": [
            {
                "block_id": "b1",
                "type": "picture_description",
                "topic": "cooking",
                "difficulty": "easy",
                "description": "Name the kitchen object.",
                "items": [
                    {"prompt": "Select the picture of a pan.", "answer": "pan", "distractors": ["cup", "spoon", "pan"]},
                    {"prompt": "Select the picture of a cup.", "answer": "cup", "distractors": ["pan", "fork", "bowl"]},
                ],
            },
            {
                "block_id": "b2",
                "type": "word_repetition",
                "topic": "gardening",
                "difficulty": "easy",
                "description": "Repeat garden words.",
                "items": [{"prompt": "Say this word: rose", "answer": "rose", "distractors": ["tulip"]}],
            },
            {
                "block_id": "b3",
                "type": "dance_moves",
                "topic": "music",
                "difficulty": "easy",
                "description": "Unknown type.",
                "items": [{"prompt": "Dance", "answer": "waltz"}],
            },
        ],
        "estimated_duration_minutes": 18,
        "practice_questions": [
            {"question_id": "q-1", "question_text": "What helped you this week?", "category": "coping_skills"},
            {"question_text": "What do you enjoy cooking?", "category": "unknown"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def _fresh_breakers():
    reset_breakers()
    yield
    reset_breakers()


@pytest.fixture
def plan_json() -> str:
    return json.dumps(plan_payload())


@pytest.fixture
def checkin_llm() -> ScriptedLLMProvider:
    return ScriptedLLMProvider(default=ReasoningReply(text="How are you feeling today? Happy, tired, or calm?"))


@pytest.fixture
def planner_llm(plan_json) -> ScriptedLLMProvider:
    return ScriptedLLMProvider(default=ReasoningReply(text=plan_json))


@pytest.fixture
def grader_llm() -> ScriptedLLMProvider:
    return ScriptedLLMProvider(default=ReasoningReply(text="incorrect"))


@pytest.fixture
def image_provider() -> EchoImageProvider:
    return EchoImageProvider()


@pytest.fixture
def services(checkin_llm, planner_llm, grader_llm, image_provider, tmp_path):
    return build_services(
        checkin_provider=checkin_llm,
        planner_provider=planner_llm,
        grader_provider=grader_llm,
        image_providers=[image_provider],
        summaries=PracticeSummaryStore(tmp_path),
    )


@pytest.fixture
def client(services) -> TestClient:
    with TestClient(create_app(services)) as tc:
        yield tc
