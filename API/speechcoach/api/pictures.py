from fastapi import APIRouter, Depends, HTTPException, Query

from speechcoach.api.deps import get_services
from speechcoach.core.bootstrap import TherapyServices
from speechcoach.core.logging import DOMAIN_IMAGERY, get_domain_logger
from speechcoach.schemas.session import (
    ImageSearchResponse,
    ImageSearchResult,
    PictureChoicesResponse,
    PictureChoiceView,
)

router = APIRouter(prefix="/api", tags=["pictures"])
logger = get_domain_logger(__name__, DOMAIN_IMAGERY)

MAX_SEARCH_QUERIES = 8


@router.get("/picture-images", response_model=PictureChoicesResponse)
async def picture_images(
    target_concept: str = Query("", alias="targetConcept", max_length=120),
    topic: str | None = Query(None, max_length=120),
    services: TherapyServices = Depends(get_services),
):
    target = target_concept.strip()
    if not target:
        raise HTTPException(status_code=400, detail="Missing required 'targetConcept' query parameter.")
    choices = await services.pictures.assemble(target, topic)
    return PictureChoicesResponse(
        target_concept=target,
        choices=[PictureChoiceView(id=c.id, image_url=c.image_url, is_correct=c.is_correct) for c in choices],
    )


@router.get("/image-search", response_model=ImageSearchResponse)
async def image_search(
    query: list[str] = Query(default=[]),
    services: TherapyServices = Depends(get_services),
):
    """One image per query term from the first provider that answers; unresolved terms are dropped."""
    terms = [q.strip() for q in query if q and q.strip()][:MAX_SEARCH_QUERIES]
    if not terms:
        raise HTTPException(status_code=400, detail="Provide at least one 'query' parameter.")
    if not services.image_providers:
        raise HTTPException(status_code=503, detail="Image search is not configured.")

    results: list[ImageSearchResult] = []
    for term in terms:
        for provider in services.image_providers:
            try:
                hits = await provider.search(term, limit=1)
            except Exception as exc:
                logger.warning("Image search failed | provider=%s | query=%s | %s", provider.provider_name, term, exc)
                continue
            if hits:
                results.append(ImageSearchResult(query=term, url=hits[0].image_url, title=hits[0].description))
                break
    return ImageSearchResponse(results=results)
