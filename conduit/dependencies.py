from fastapi import Depends, Header, HTTPException, Query

from conduit.config import settings
from conduit.database import StorageRunner, get_runner
from conduit.schemas import ArticleFilter
from conduit.services.article_service import ArticleService
from conduit.stores import ArticleStore, TagStore, UserStore


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``limit`` / ``offset`` query
    parameters.

    ``limit`` is clamped to ``settings.MAX_PAGE_SIZE`` regardless of the
    value supplied by the caller.
    """

    def __init__(
        self,
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description="Number of articles returned per page.",
        ),
        offset: int = Query(
            0,
            ge=0,
            description="Number of articles to skip.",
        ),
    ) -> None:
        self.limit = min(limit, settings.MAX_PAGE_SIZE)
        self.offset = offset


def article_filter(
    tag: str | None = Query(None, description="Only articles carrying this tag."),
    author: str | None = Query(None, description="Only articles by this username."),
    favorited: str | None = Query(None, description="Only articles favorited by this username."),
    pagination: PaginationParams = Depends(),
) -> ArticleFilter:
    return ArticleFilter(
        tag=tag,
        author=author,
        favorited=favorited,
        limit=pagination.limit,
        offset=pagination.offset,
    )


# Authentication is handled upstream; the resolved user id arrives in a header.

def viewer_id(x_user_id: int | None = Header(None)) -> int | None:
    return x_user_id


def current_user_id(x_user_id: int | None = Header(None)) -> int:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def get_article_service(runner: StorageRunner = Depends(get_runner)) -> ArticleService:
    return ArticleService(runner, ArticleStore(), UserStore(), TagStore())
