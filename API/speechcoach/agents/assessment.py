"""
Answer Evaluator: two-tier correctness judge for practice answers.

Tier 1 is a local, synchronous comparison that tolerates case, punctuation and
partial or extended phrasing. Tier 2 asks the reasoning service whether the two
answers mean the same thing and is only reached when tier 1 says no. A failing
tier 2 never raises: the tier 1 verdict (incorrect) stands.
"""
import re
from dataclasses import dataclass

from speechcoach.agents.prompts import GRADER_SYSTEM_PROMPT
from speechcoach.core.llm_provider import ROLE_GRADER, BaseLLMProvider, get_llm_provider
from speechcoach.core.logging import DOMAIN_EVALUATION, get_domain_logger

logger = get_domain_logger(__name__, DOMAIN_EVALUATION)

TIER_EXACT = "exact"
TIER_SEMANTIC = "semantic"
CORRECT_TOKEN = "correct"


def normalize_answer(text: str) -> str:
    lowered = str(text or "").lower()
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9\s]", "", lowered)).strip()


def evaluate_exact(submitted: str, expected: str) -> bool:
    s = normalize_answer(submitted)
    e = normalize_answer(expected)
    if not s or not e:
        return False
    return s == e or s in e or e in s


def is_correct_token(raw: str) -> bool:
    words = str(raw or "").strip().lower().split()
    if not words:
        return False
    return words[0].strip(".!\"'`*") == CORRECT_TOKEN


@dataclass(frozen=True)
class EvaluationResult:
    correct: bool
    tier: str


class AnswerEvaluator:
    def __init__(self, provider: BaseLLMProvider | None = None):
        self.provider = provider or get_llm_provider(role=ROLE_GRADER)

    async def evaluate_semantic(self, submitted: str, expected: str) -> bool:
        """Single-token semantic judgment. Raises on service failure."""
        text, _usage = await self.provider.generate(
            f"Reference answer: {expected}\nStudent answer: {submitted}",
            system_prompt=GRADER_SYSTEM_PROMPT,
            max_output_tokens=10,
        )
        return is_correct_token(text or "")

    async def evaluate(self, submitted: str, expected: str) -> EvaluationResult:
        if evaluate_exact(submitted, expected):
            return EvaluationResult(correct=True, tier=TIER_EXACT)
        if not normalize_answer(submitted) or not normalize_answer(expected):
            return EvaluationResult(correct=False, tier=TIER_EXACT)
        try:
            correct = await self.evaluate_semantic(submitted.strip(), expected.strip())
        except Exception as exc:
            logger.warning("Semantic evaluation failed, keeping exact-tier verdict: %s", exc)
            correct = False
        return EvaluationResult(correct=correct, tier=TIER_SEMANTIC)
