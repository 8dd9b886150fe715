from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from speechcoach.core.logging import DOMAIN_IMAGERY, get_domain_logger
from speechcoach.core.resilience import guarded_call
from speechcoach.core.settings import settings

logger = get_domain_logger(__name__, DOMAIN_IMAGERY)

DEFAULT_DESCRIPTION = "simple object photo"


@dataclass(frozen=True)
class ImageHit:
    image_url: str
    description: str = ""


class ImageSearchProvider(ABC):
    provider_name = "base"

    @abstractmethod
    async def search(self, query: str, *, limit: int = 16) -> list[ImageHit]:
        """Return candidate images for the query. Empty when nothing matches."""


class UnsplashImageProvider(ImageSearchProvider):
    provider_name = "unsplash"

    def __init__(self, access_key: str | None = None, timeout_seconds: float | None = None):
        self.access_key = settings.unsplash_access_key if access_key is None else access_key
        self.timeout_seconds = timeout_seconds or settings.image_search_timeout_seconds

    async def search(self, query: str, *, limit: int = 16) -> list[ImageHit]:
        if not self.access_key:
            return []
        params = {
            "query": query,
            "page": 1,
            "per_page": limit,
            "content_filter": "high",
            "orientation": "squarish",
        }

        async def _call() -> dict:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(
                    settings.unsplash_api_url,
                    params=params,
                    headers={"Authorization": f"Client-ID {self.access_key}"},
                )
                response.raise_for_status()
                return response.json()

        data = await guarded_call("images:unsplash", _call, max_retries=2)
        hits: list[ImageHit] = []
        for result in data.get("results") or []:
            urls = result.get("urls") or {}
            url = urls.get("regular") or urls.get("small")
            if not url:
                continue
            description = result.get("alt_description") or result.get("description") or DEFAULT_DESCRIPTION
            hits.append(ImageHit(image_url=url, description=str(description)))
        return hits


class BingImageProvider(ImageSearchProvider):
    provider_name = "bing"

    def __init__(self, api_key: str | None = None, timeout_seconds: float | None = None):
        self.api_key = settings.bing_image_api_key if api_key is None else api_key
        self.timeout_seconds = timeout_seconds or settings.image_search_timeout_seconds

    async def search(self, query: str, *, limit: int = 16) -> list[ImageHit]:
        if not self.api_key:
            return []
        params = {"q": query, "count": limit, "safeSearch": "Strict", "imageType": "Photo"}

        async def _call() -> dict:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(
                    settings.bing_image_api_url,
                    params=params,
                    headers={"Ocp-Apim-Subscription-Key": self.api_key},
                )
                response.raise_for_status()
                return response.json()

        data = await guarded_call("images:bing", _call, max_retries=2)
        return [
            ImageHit(image_url=item["contentUrl"], description=str(item.get("name") or DEFAULT_DESCRIPTION))
            for item in data.get("value") or []
            if item.get("contentUrl")
        ]
