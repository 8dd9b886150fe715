from __future__ import annotations

import random

import pytest

from conftest import EchoImageProvider
from speechcoach.agents.picture_choice import (
    GENERIC_DECOYS,
    PictureChoice,
    PictureChoiceAssembler,
    decoy_pool,
    enforce_single_correct,
    is_simple_image,
    placeholder_image,
    query_variants,
)
from speechcoach.images.providers import ImageHit, ImageSearchProvider


class FixedImageProvider(ImageSearchProvider):
    """Returns the same image for every query."""

    provider_name = "fixed"

    async def search(self, query, *, limit=16):
        return [ImageHit(image_url="https://images.test/same.jpg", description="a plain object")]


def _assert_valid(choices):
    assert [c.id for c in choices] == ["A", "B", "C", "D"]
    assert sum(1 for c in choices if c.is_correct) == 1
    assert len({c.image_url for c in choices}) == 4


def test_simple_image_heuristic():
    assert is_simple_image("a cat sitting on a rug", "cat")
    assert is_simple_image("wooden chair", "cat")
    assert not is_simple_image("abstract painting of a cat", "cat")
    assert not is_simple_image("concert poster", "guitar")
    assert not is_simple_image("", "cat")
    assert not is_simple_image("x" * 150, "cat")
    # Whole words only: "art" does not ban "smartphone".
    assert is_simple_image("smartphone on a desk", "phone")


def test_query_variants_prefix_topic():
    assert query_variants("cat") == ["cat", "cat photo"]
    assert query_variants("ball", "rugby") == ["rugby ball", "rugby ball photo"]


def test_decoy_pool_uses_category_and_excludes_target():
    rng = random.Random(3)
    pool = decoy_pool("cat", rng)
    assert "cat" not in pool
    assert set(pool) <= {"dog", "rabbit", "horse", "bird", "cow"}

    generic = decoy_pool("teapot", rng)
    assert len(generic) == 6
    assert set(generic) <= set(GENERIC_DECOYS)

    assert "chair" not in decoy_pool("Chair", rng)


def test_enforce_single_correct():
    url = placeholder_image
    none_correct = [PictureChoice(id=i, image_url=url(i), is_correct=False) for i in ("A", "B", "C", "D")]
    fixed = enforce_single_correct(none_correct)
    assert [c.is_correct for c in fixed] == [True, False, False, False]

    many = [PictureChoice(id=i, image_url=url(i), is_correct=i in ("B", "D")) for i in ("A", "B", "C", "D")]
    fixed = enforce_single_correct(many)
    assert [c.is_correct for c in fixed] == [False, True, False, False]


def test_placeholder_is_svg_data_url():
    url = placeholder_image("cat", "#e7f1f4")
    assert url.startswith("data:image/svg+xml;utf8,")
    assert "cat" in url
    assert placeholder_image("cat") != placeholder_image("dog")


@pytest.mark.asyncio
@pytest.mark.parametrize("concept", ["cat", "rugby", "teapot", "apple", ""])
async def test_choices_from_primary_provider(concept):
    provider = EchoImageProvider("primary")
    choices = await PictureChoiceAssembler([provider], rng=random.Random(7)).assemble(concept)
    _assert_valid(choices)
    correct = next(c for c in choices if c.is_correct)
    expected_target = concept or "Object"
    assert correct.image_url == f"https://images.test/primary/{expected_target}.jpg"


@pytest.mark.asyncio
async def test_secondary_provider_used_when_primary_fails():
    primary = EchoImageProvider("primary", fail=True)
    secondary = EchoImageProvider("secondary")
    choices = await PictureChoiceAssembler([primary, secondary], rng=random.Random(1)).assemble("dog")
    _assert_valid(choices)
    correct = next(c for c in choices if c.is_correct)
    assert correct.image_url.startswith("https://images.test/secondary/")
    assert primary.queries[:2] == ["dog", "dog photo"]


@pytest.mark.asyncio
async def test_placeholders_when_every_provider_is_empty():
    providers = [EchoImageProvider("primary", empty=True), EchoImageProvider("secondary", fail=True)]
    choices = await PictureChoiceAssembler(providers, rng=random.Random(2)).assemble("banana")
    _assert_valid(choices)
    assert all(c.image_url.startswith("data:image/svg+xml") for c in choices)


@pytest.mark.asyncio
async def test_duplicate_decoy_urls_are_topped_up_with_placeholders():
    choices = await PictureChoiceAssembler([FixedImageProvider()], rng=random.Random(4)).assemble("cat")
    _assert_valid(choices)
    correct = next(c for c in choices if c.is_correct)
    assert correct.image_url == "https://images.test/same.jpg"
    assert all(c.image_url.startswith("data:") for c in choices if not c.is_correct)


@pytest.mark.asyncio
async def test_no_providers_configured():
    choices = await PictureChoiceAssembler([], rng=random.Random(5)).assemble("clock")
    _assert_valid(choices)
