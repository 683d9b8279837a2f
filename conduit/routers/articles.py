from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError

from conduit.dependencies import (
    PaginationParams,
    article_filter,
    current_user_id,
    get_article_service,
    viewer_id,
)
from conduit.schemas import (
    ArticleFilter,
    ArticlePosted,
    ArticleResponse,
    ArticlesResponse,
    ArticleUpdated,
    TagsResponse,
)
from conduit.services.article_service import ArticleService

router = APIRouter(prefix="/api/v1", tags=["articles"])


def _found(response: ArticleResponse | None) -> ArticleResponse:
    if response is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return response


@router.get("/articles", response_model=ArticlesResponse)
async def list_articles(
    request: ArticleFilter = Depends(article_filter),
    service: ArticleService = Depends(get_article_service),
):
    return await service.get_articles(request)


@router.get("/articles/feed", response_model=ArticlesResponse)
async def feed_articles(
    pagination: PaginationParams = Depends(),
    user_id: int = Depends(current_user_id),
    service: ArticleService = Depends(get_article_service),
):
    return await service.get_feed(user_id, pagination.limit, pagination.offset)


@router.get("/articles/{slug}", response_model=ArticleResponse)
async def get_article(
    slug: str,
    viewer: int | None = Depends(viewer_id),
    service: ArticleService = Depends(get_article_service),
):
    return _found(await service.get_article_by_slug(slug, viewer))


@router.post("/articles", status_code=201, response_model=ArticleResponse)
async def create_article(
    data: ArticlePosted,
    user_id: int = Depends(current_user_id),
    service: ArticleService = Depends(get_article_service),
):
    try:
        return _found(await service.create_article(user_id, data, user_id))
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Conflicting article or tag")


@router.put("/articles/{slug}", response_model=ArticleResponse)
async def update_article(
    slug: str,
    data: ArticleUpdated,
    user_id: int = Depends(current_user_id),
    service: ArticleService = Depends(get_article_service),
):
    try:
        return _found(await service.update_article_by_slug(slug, user_id, data))
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Conflicting article or tag")


@router.delete("/articles/{slug}", status_code=204)
async def delete_article(
    slug: str,
    user_id: int = Depends(current_user_id),
    service: ArticleService = Depends(get_article_service),
):
    if not await service.delete_article_by_slug(slug):
        raise HTTPException(status_code=404, detail="Article not found")


@router.post("/articles/{slug}/favorite", response_model=ArticleResponse)
async def favorite_article(
    slug: str,
    user_id: int = Depends(current_user_id),
    service: ArticleService = Depends(get_article_service),
):
    try:
        return _found(await service.favorite_article(user_id, slug))
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Conflicting favorite")


@router.delete("/articles/{slug}/favorite", response_model=ArticleResponse)
async def unfavorite_article(
    slug: str,
    user_id: int = Depends(current_user_id),
    service: ArticleService = Depends(get_article_service),
):
    try:
        return _found(await service.unfavorite_article(user_id, slug))
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Conflicting favorite")


@router.get("/tags", response_model=TagsResponse)
async def list_tags(service: ArticleService = Depends(get_article_service)):
    return TagsResponse(tags=await service.get_tags())
