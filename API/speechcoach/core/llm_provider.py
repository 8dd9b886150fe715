from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx

from speechcoach.core.errors import ReasoningServiceError
from speechcoach.core.resilience import CircuitOpenError, guarded_call
from speechcoach.core.settings import settings
from speechcoach.memory.session_store import ConversationTurn

ROLE_CHECKIN = "checkin"
ROLE_PLANNER = "planner"
ROLE_GRADER = "grader"


def _estimate_tokens(text: str) -> int:
    # Lightweight deterministic estimate used for observability without provider-specific token APIs.
    return max(1, len((text or "").strip()) // 4)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict


@dataclass(frozen=True)
class ToolCall:
    name: str
    arguments: dict


@dataclass(frozen=True)
class ReasoningReply:
    text: str
    tool_call: ToolCall | None = None
    usage: dict = field(default_factory=dict)


class BaseLLMProvider(ABC):
    provider_name: str
    model_name: str = "none"

    @abstractmethod
    async def converse(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        *,
        tools: Sequence[ToolSpec] = (),
        max_output_tokens: int = 600,
    ) -> ReasoningReply:
        raise NotImplementedError

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str = "",
        max_output_tokens: int = 700,
    ) -> tuple[str | None, dict]:
        reply = await self.converse(
            system_prompt,
            [ConversationTurn(role="patient", text=prompt)],
            max_output_tokens=max_output_tokens,
        )
        return (reply.text or None), reply.usage

    def _usage(self, role: str, prompt_text: str, completion: str) -> dict:
        return {
            "provider": self.provider_name,
            "model": self.model_name,
            "role": role,
            "prompt_tokens_estimate": _estimate_tokens(prompt_text),
            "completion_tokens_estimate": _estimate_tokens(completion),
        }


def _prompt_text(system_prompt: str, turns: Sequence[ConversationTurn]) -> str:
    return "\n".join([system_prompt, *(t.text for t in turns)])


class GeminiLLMProvider(BaseLLMProvider):
    provider_name = "gemini"

    def __init__(self, model_name: str | None = None, role: str | None = None, timeout_seconds: float | None = None):
        self.model_name = model_name or settings.llm_model
        self.role = role or ROLE_CHECKIN
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds

    @staticmethod
    def _sanitize_url(raw_url: str) -> str:
        parsed = urlparse(raw_url)
        if not parsed.query:
            return raw_url
        filtered = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k.lower() != "key"]
        return urlunparse(parsed._replace(query=urlencode(filtered)))

    def _endpoint(self) -> str:
        api_url = settings.gemini_api_url.strip()
        if not api_url:
            api_url = (
                f"https://generativelanguage.googleapis.com/v1beta/models/"
                f"{self.model_name}:generateContent"
            )
        return self._sanitize_url(api_url)

    @staticmethod
    def _contents(turns: Sequence[ConversationTurn]) -> list[dict]:
        return [
            {"role": "model" if t.role == "assistant" else "user", "parts": [{"text": t.text}]}
            for t in turns
        ]

    async def converse(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        *,
        tools: Sequence[ToolSpec] = (),
        max_output_tokens: int = 600,
    ) -> ReasoningReply:
        if not settings.gemini_api_key:
            raise ReasoningServiceError("GEMINI_API_KEY is not configured")

        payload: dict = {
            "contents": self._contents(turns),
            "generationConfig": {"temperature": 0.3, "maxOutputTokens": max_output_tokens},
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        if tools:
            payload["tools"] = [
                {
                    "functionDeclarations": [
                        {"name": t.name, "description": t.description, "parameters": t.parameters}
                        for t in tools
                    ]
                }
            ]

        api_url = self._endpoint()

        async def _call() -> dict:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    api_url,
                    json=payload,
                    headers={"x-goog-api-key": settings.gemini_api_key},
                )
                response.raise_for_status()
                return response.json()

        try:
            data = await guarded_call(f"llm:{self.provider_name}:{self.model_name}:{self.role}", _call)
        except CircuitOpenError as exc:
            raise ReasoningServiceError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise ReasoningServiceError(f"Gemini request failed: {exc}") from exc

        prompt_text = _prompt_text(system_prompt, turns)
        candidates = data.get("candidates") or []
        if not candidates:
            usage = self._usage(self.role, prompt_text, "")
            usage["reason"] = "no_candidates"
            return ReasoningReply(text="", usage=usage)

        parts = candidates[0].get("content", {}).get("parts", []) or []
        text = "\n".join(p.get("text", "") for p in parts if isinstance(p, dict) and p.get("text")).strip()
        tool_call = None
        for part in parts:
            call = part.get("functionCall") if isinstance(part, dict) else None
            if isinstance(call, dict) and call.get("name"):
                tool_call = ToolCall(name=str(call["name"]), arguments=dict(call.get("args") or {}))
                break
        return ReasoningReply(text=text, tool_call=tool_call, usage=self._usage(self.role, prompt_text, text))


class OllamaLLMProvider(BaseLLMProvider):
    provider_name = "ollama"

    def __init__(self, model_name: str, role: str | None = None, timeout_seconds: float | None = None):
        self.model_name = model_name
        self.role = role or ROLE_CHECKIN
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds

    async def converse(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        *,
        tools: Sequence[ToolSpec] = (),
        max_output_tokens: int = 600,
    ) -> ReasoningReply:
        messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
        messages += [{"role": "assistant" if t.role == "assistant" else "user", "content": t.text} for t in turns]
        payload: dict = {
            "model": self.model_name,
            "messages": messages,
            "stream": False,
            "options": {"num_predict": max_output_tokens},
        }
        if tools:
            payload["tools"] = [
                {"type": "function", "function": {"name": t.name, "description": t.description, "parameters": t.parameters}}
                for t in tools
            ]

        async def _call() -> dict:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(f"{settings.ollama_base_url.rstrip('/')}/api/chat", json=payload)
                response.raise_for_status()
                return response.json()

        try:
            body = await guarded_call(f"llm:{self.provider_name}:{self.model_name}:{self.role}", _call)
        except CircuitOpenError as exc:
            raise ReasoningServiceError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise ReasoningServiceError(f"Ollama request failed: {exc}") from exc

        message = body.get("message") or {}
        text = (message.get("content") or "").strip()
        tool_call = None
        for call in message.get("tool_calls") or []:
            function = (call or {}).get("function") or {}
            if not function.get("name"):
                continue
            arguments = function.get("arguments") or {}
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError:
                    arguments = {}
            tool_call = ToolCall(name=str(function["name"]), arguments=dict(arguments))
            break
        return ReasoningReply(
            text=text,
            tool_call=tool_call,
            usage=self._usage(self.role, _prompt_text(system_prompt, turns), text),
        )


class NullLLMProvider(BaseLLMProvider):
    provider_name = "none"

    async def converse(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        *,
        tools: Sequence[ToolSpec] = (),
        max_output_tokens: int = 600,
    ) -> ReasoningReply:
        return ReasoningReply(
            text="",
            usage={
                "provider": self.provider_name,
                "model": self.model_name,
                "prompt_tokens_estimate": _estimate_tokens(_prompt_text(system_prompt, turns)),
                "completion_tokens_estimate": 0,
                "reason": "unsupported_provider",
            },
        )


def get_llm_provider(role: str | None = None) -> BaseLLMProvider:
    role = role or ROLE_CHECKIN
    # The check-in talks to the patient; plan writing and grading run on the cheaper model.
    gemini_model = settings.llm_model if role == ROLE_CHECKIN else settings.llm_fast_model
    provider = (settings.llm_provider or "").lower()
    if provider == "gemini":
        return GeminiLLMProvider(model_name=gemini_model, role=role)
    if provider == "ollama":
        return OllamaLLMProvider(model_name=settings.ollama_model, role=role)
    return NullLLMProvider()
