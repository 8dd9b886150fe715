"""
Picture Choice Assembler: four image options for a picture-description item.

The target image comes from the provider chain (primary search, then the
secondary, then a labeled placeholder tile). Decoys are drawn from a category
list when the target is a known member, otherwise from a generic list, and are
resolved one by one until three distinct images are in hand. Whatever the path,
the returned set has four entries, unique image URLs and exactly one correct.
"""
from __future__ import annotations

import random
import re
from typing import Literal, Sequence
from urllib.parse import quote

from pydantic import BaseModel

from speechcoach.core.logging import DOMAIN_IMAGERY, get_domain_logger
from speechcoach.images.providers import ImageSearchProvider

logger = get_domain_logger(__name__, DOMAIN_IMAGERY)

ChoiceId = Literal["A", "B", "C", "D"]
CHOICE_IDS: tuple[ChoiceId, ...] = ("A", "B", "C", "D")
DECOY_COUNT = 3
DECOY_CANDIDATES = 6
MAX_SIMPLE_DESCRIPTION = 120

GENERIC_DECOYS = ("chair", "car", "tree", "house", "bicycle", "book", "clock")
_SPORTS = ("rugby", "soccer", "basketball", "tennis", "golf", "table tennis", "baseball", "volleyball")
_ANIMALS = ("cat", "dog", "rabbit", "horse", "bird", "cow")
_FRUIT = ("apple", "banana", "orange", "grape", "strawberry", "pear")
CATEGORY_DECOYS: dict[str, tuple[str, ...]] = {
    **{name: _SPORTS for name in ("rugby", "soccer", "basketball", "tennis", "golf")},
    **{name: _ANIMALS for name in ("cat", "dog")},
    **{name: _FRUIT for name in ("apple", "banana")},
}

BANNED_DESCRIPTION_WORDS = (
    "abstract",
    "art",
    "painting",
    "illustration",
    "pattern",
    "crowd",
    "busy",
    "cityscape",
    "poster",
    "text",
    "typography",
    "logo",
)
_BANNED_RE = re.compile(r"\b(" + "|".join(BANNED_DESCRIPTION_WORDS) + r")\b")
PLACEHOLDER_COLORS = ("#e7f1f4", "#f9f2dc", "#d9e8ec", "#eef3f5")


class PictureChoice(BaseModel):
    id: ChoiceId
    image_url: str
    is_correct: bool


def is_simple_image(description: str, target: str) -> bool:
    desc = str(description or "").lower().strip()
    if _BANNED_RE.search(desc):
        return False
    if target.lower().strip() and target.lower().strip() in desc:
        return True
    return 0 < len(desc) < MAX_SIMPLE_DESCRIPTION


def placeholder_image(label: str, color: str = PLACEHOLDER_COLORS[0]) -> str:
    text = label.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    svg = (
        '<svg xmlns="http://www.w3.org/2000/svg" width="800" height="800">'
        f'<rect width="100%" height="100%" fill="{color}"/>'
        '<text x="50%" y="50%" dominant-baseline="middle" text-anchor="middle" '
        f'font-family="Arial" font-size="72" fill="#111">{text}</text></svg>'
    )
    return f"data:image/svg+xml;utf8,{quote(svg)}"


def query_variants(concept: str, topic: str | None = None) -> list[str]:
    base = " ".join(part for part in ((topic or "").strip(), concept.strip()) if part)
    return [base, f"{base} photo"] if base else []


def decoy_pool(target: str, rng: random.Random) -> list[str]:
    key = target.lower().strip()
    source = CATEGORY_DECOYS.get(key, GENERIC_DECOYS)
    pool = list(dict.fromkeys(c for c in source if c.lower() != key))
    rng.shuffle(pool)
    return pool[:DECOY_CANDIDATES]


def enforce_single_correct(choices: list[PictureChoice]) -> list[PictureChoice]:
    if not choices:
        return choices
    first = next((i for i, choice in enumerate(choices) if choice.is_correct), None)
    if first is None:
        first = 0
    return [choice.model_copy(update={"is_correct": i == first}) for i, choice in enumerate(choices)]


class PictureChoiceAssembler:
    def __init__(self, providers: Sequence[ImageSearchProvider], rng: random.Random | None = None):
        self.providers = list(providers)
        self.rng = rng or random.Random()

    async def resolve_image(self, concept: str, topic: str | None = None) -> str | None:
        for provider in self.providers:
            for query in query_variants(concept, topic):
                try:
                    hits = await provider.search(query)
                except Exception as exc:
                    logger.warning("Image search failed | provider=%s | query=%s | %s", provider.provider_name, query, exc)
                    continue
                simple = [hit for hit in hits if is_simple_image(hit.description, concept)]
                if simple:
                    return self.rng.choice(simple).image_url
        return None

    async def assemble(self, target_concept: str, topic: str | None = None) -> list[PictureChoice]:
        target = (target_concept or "").strip() or "Object"
        correct_url = await self.resolve_image(target, topic)
        if correct_url is None:
            logger.info("No provider image for target, using placeholder | target=%s", target)
            correct_url = placeholder_image(target, PLACEHOLDER_COLORS[0])

        decoy_urls: list[str] = []
        for concept in decoy_pool(target, self.rng):
            if len(decoy_urls) >= DECOY_COUNT:
                break
            url = await self.resolve_image(concept, topic)
            if url is None or url == correct_url or url in decoy_urls:
                continue
            decoy_urls.append(url)

        filler = 1
        while len(decoy_urls) < DECOY_COUNT:
            url = placeholder_image(f"Not {target} {filler}", PLACEHOLDER_COLORS[filler % len(PLACEHOLDER_COLORS)])
            filler += 1
            if url != correct_url and url not in decoy_urls:
                decoy_urls.append(url)

        entries = [(correct_url, True), *((url, False) for url in decoy_urls)]
        self.rng.shuffle(entries)
        choices = [
            PictureChoice(id=choice_id, image_url=url, is_correct=is_correct)
            for choice_id, (url, is_correct) in zip(CHOICE_IDS, entries)
        ]
        return enforce_single_correct(choices)
