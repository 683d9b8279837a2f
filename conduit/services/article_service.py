"""
Article service: composes article read models from the article, user and
tag stores and performs multi-step article writes.

Design notes
------------
- Every public method opens exactly one unit of work through
  ``StorageRunner``: ``run`` for reads, ``run_in_transaction`` for writes.
  The unit's session is passed explicitly to every store call.
- Collection reads fetch authors and tags once per page, never once per
  article.  Only the feed also fetches favorite flags and counts, again
  once per page.
- Single-article lookups are a chain of dependent steps; the first step
  that finds nothing makes the whole operation return ``None`` and no
  further store calls are made.  Inside a write, absence discovered after
  rows were touched is raised instead, so the transaction rolls back.
- Favorite counts are keyed by article id everywhere.
- The listing is viewer-independent and therefore cached; every committed
  write drops the cached pages.
"""
import logging
import re
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from conduit.cache import CacheManager, article_list_key, cache
from conduit.config import settings
from conduit.database import StorageRunner
from conduit.models import Article, ArticleTag, Tag, User, utcnow
from conduit.schemas import (
    ArticleFilter,
    ArticleForResponse,
    ArticlePosted,
    ArticleResponse,
    ArticlesResponse,
    ArticleUpdated,
    Profile,
)
from conduit.stores import ArticleStore, TagStore, UserStore

logger = logging.getLogger(__name__)


class ArticleUnavailable(Exception):
    """
    Raised inside a write when the written article cannot be composed
    (its author no longer resolves).  The unit of work rolls back and the
    service reports absence.
    """

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def iso8601(value: datetime) -> str:
    """Format *value* as UTC with millisecond precision, e.g. ``2024-05-01T12:00:00.000Z``.

    Naive datetimes (SQLite drops tzinfo) are taken to be UTC already.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def unique_tag_names(names: Sequence[str]) -> list[str]:
    """Strip, drop blanks and collapse duplicates, keeping first-seen order."""
    return list(dict.fromkeys(n.strip() for n in names if n and n.strip()))


def merge_article_update(article: Article, update: ArticleUpdated) -> dict[str, Any]:
    """
    Return the column values *article* should have after applying *update*.

    Fields missing from *update* keep their current value.  The slug is not
    part of the result; it depends on what else is stored and is resolved
    by the caller.
    """
    return {
        "title": update.title if update.title is not None else article.title,
        "description": update.description if update.description is not None else article.description,
        "body": update.body if update.body is not None else article.body,
        "updated_at": utcnow(),
    }


def to_profile(user: User | None) -> Profile:
    # Following is resolved by a different collaborator; this layer always reports False.
    if user is None:
        return Profile(username="")
    return Profile(username=user.username, bio=user.bio, image=user.image, following=False)


def to_article_response(
    article: Article,
    tag_names: list[str],
    author: Profile,
    favorited: bool,
    favorites_count: int,
) -> ArticleForResponse:
    return ArticleForResponse(
        slug=article.slug,
        title=article.title,
        description=article.description,
        body=article.body,
        tag_list=tag_names,
        created_at=iso8601(article.created_at),
        updated_at=iso8601(article.updated_at),
        favorited=favorited,
        favorites_count=favorites_count,
        author=author,
    )


def _composed(response: ArticleResponse | None) -> ArticleResponse:
    if response is None:
        raise ArticleUnavailable()
    return response


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ArticleService:
    def __init__(
        self,
        runner: StorageRunner,
        article_store: ArticleStore,
        user_store: UserStore,
        tag_store: TagStore,
        cache_manager: CacheManager = cache,
    ) -> None:
        self._runner = runner
        self._articles = article_store
        self._users = user_store
        self._tags = tag_store
        self._cache = cache_manager

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_articles(self, request: ArticleFilter) -> ArticlesResponse:
        """
        Return one page of articles matching *request*.

        Favorite data is not requested for the listing, so every entry
        reports ``favorited=False`` and ``favoritesCount=0``.
        """
        cache_key = article_list_key(request)
        cached = await self._cache.get(cache_key)
        if cached:
            return ArticlesResponse(**cached)

        async def work(db: AsyncSession) -> ArticlesResponse:
            articles = await self._articles.get_articles(db, request)
            total = await self._articles.count_articles(db, request)
            return await self._compose_page(db, articles, total)

        response = await self._runner.run(work)
        await self._cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
        return response

    async def get_feed(
        self,
        user_id: int,
        limit: int | None = None,
        offset: int | None = None,
    ) -> ArticlesResponse:
        """Return articles written by the users *user_id* follows, newest first."""
        limit = limit or settings.DEFAULT_PAGE_SIZE
        offset = offset or 0

        async def work(db: AsyncSession) -> ArticlesResponse:
            articles = await self._articles.get_articles_by_followees(db, user_id, limit, offset)
            total = await self._articles.count_articles_by_followees(db, user_id)
            return await self._compose_page(db, articles, total, viewer_id=user_id)

        return await self._runner.run(work)

    async def get_article_by_slug(
        self, slug: str, viewer_id: int | None = None
    ) -> ArticleResponse | None:
        async def work(db: AsyncSession) -> ArticleResponse | None:
            article = await self._articles.get_article_by_slug(db, slug)
            if article is None:
                return None
            return await self._article_response(db, article, viewer_id)

        return await self._runner.run(work)

    async def get_tags(self) -> list[str]:
        async def work(db: AsyncSession) -> list[str]:
            return [t.name for t in await self._tags.get_tags(db)]

        return await self._runner.run(work)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_article(
        self,
        author_id: int,
        posted: ArticlePosted,
        viewer_id: int | None = None,
    ) -> ArticleResponse | None:
        async def work(db: AsyncSession) -> ArticleResponse | None:
            article = await self._articles.create_article(
                db,
                Article(
                    slug=await self._unique_slug(db, posted.title),
                    title=posted.title,
                    description=posted.description,
                    body=posted.body,
                    author_id=author_id,
                ),
            )
            tags = await self._create_tags(db, posted.tag_list)
            await self._connect_tag_article(db, tags, article.id)
            return _composed(await self._article_response(db, article, viewer_id, tags=tags))

        response = await self._write(work)
        if response is not None:
            await self._cache.invalidate_articles()
            logger.info("Article created: slug=%s author_id=%s", response.article.slug, author_id)
        return response

    async def update_article_by_slug(
        self,
        slug: str,
        user_id: int,
        update: ArticleUpdated,
    ) -> ArticleResponse | None:
        """
        Apply the partial *update* to the article at *slug*.

        The slug is regenerated only when a new, different title is supplied.
        A supplied ``tag_list`` replaces the article's tags.
        """

        async def work(db: AsyncSession) -> ArticleResponse | None:
            current = await self._articles.get_article_by_slug(db, slug)
            if current is None:
                return None
            changes = merge_article_update(current, update)
            if changes["title"] != current.title:
                changes["slug"] = await self._unique_slug(db, changes["title"], current.id)
            article = await self._articles.update_article(db, current, changes)

            tags = None
            if update.tag_list is not None:
                await self._articles.delete_article_tags(db, article.id)
                tags = await self._create_tags(db, update.tag_list)
                await self._connect_tag_article(db, tags, article.id)
            return _composed(await self._article_response(db, article, user_id, tags=tags))

        response = await self._write(work)
        if response is not None:
            await self._cache.invalidate_articles()
            logger.info("Article updated: %s -> %s", slug, response.article.slug)
        return response

    async def delete_article_by_slug(self, slug: str) -> bool:
        """Delete the article at *slug*.  Returns False when no such article exists."""

        async def work(db: AsyncSession) -> bool:
            return await self._articles.delete_article_by_slug(db, slug)

        deleted = await self._runner.run_in_transaction(work)
        if deleted:
            await self._cache.invalidate_articles()
            logger.info("Article deleted: %s", slug)
        return deleted

    async def favorite_article(self, user_id: int, slug: str) -> ArticleResponse | None:
        """
        Mark the article at *slug* as favorited by *user_id*.

        The reported count is the number of other users' marks plus one,
        which is what the committed state holds afterwards.
        """

        async def work(db: AsyncSession) -> ArticleResponse | None:
            article = await self._articles.get_article_by_slug(db, slug)
            if article is None:
                return None
            await self._articles.favorite_article(db, user_id, article.id)
            stored = await self._articles.count_favorite(db, article.id, exclude_user_id=user_id)
            return _composed(
                await self._toggled_response(db, article, favorited=True, favorites_count=stored + 1)
            )

        response = await self._write(work)
        if response is not None:
            await self._cache.invalidate_articles()
        return response

    async def unfavorite_article(self, user_id: int, slug: str) -> ArticleResponse | None:
        async def work(db: AsyncSession) -> ArticleResponse | None:
            article = await self._articles.get_article_by_slug(db, slug)
            if article is None:
                return None
            await self._articles.unfavorite_article(db, user_id, article.id)
            stored = await self._articles.count_favorite(db, article.id, exclude_user_id=user_id)
            return _composed(
                await self._toggled_response(db, article, favorited=False, favorites_count=stored)
            )

        response = await self._write(work)
        if response is not None:
            await self._cache.invalidate_articles()
        return response

    async def _write(
        self, work: Callable[[AsyncSession], Awaitable[ArticleResponse | None]]
    ) -> ArticleResponse | None:
        """Run *work* in a transaction; an uncomposable result rolls back and reads as absent."""
        try:
            return await self._runner.run_in_transaction(work)
        except ArticleUnavailable:
            logger.warning("Article write discarded: author could not be resolved")
            return None

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    async def _compose_page(
        self,
        db: AsyncSession,
        articles: Sequence[Article],
        total: int,
        viewer_id: int | None = None,
    ) -> ArticlesResponse:
        article_ids = [a.id for a in articles]

        authors = {
            u.id: u
            for u in await self._users.get_users_by_user_ids(db, {a.author_id for a in articles})
        }
        tag_names: dict[int, list[str]] = defaultdict(list)
        for article_id, tag in await self._tags.get_tags_by_articles(db, article_ids):
            tag_names[article_id].append(tag.name)

        favorited: set[int] = set()
        counts: dict[int, int] = {}
        if viewer_id is not None:
            favorited = await self._articles.is_favorite_article_ids(db, viewer_id, article_ids)
            counts = await self._articles.count_favorites(db, article_ids)

        return ArticlesResponse(
            articles=[
                to_article_response(
                    a,
                    tag_names[a.id],
                    # A dangling author reference must not break the whole page.
                    to_profile(authors.get(a.author_id)),
                    favorited=a.id in favorited,
                    favorites_count=counts.get(a.id, 0),
                )
                for a in articles
            ],
            articles_count=total,
        )

    async def _article_response(
        self,
        db: AsyncSession,
        article: Article,
        viewer_id: int | None,
        tags: Sequence[Tag] | None = None,
    ) -> ArticleResponse | None:
        if viewer_id is None:
            favorited = False
        else:
            favorited = article.id in await self._articles.is_favorite_article_ids(
                db, viewer_id, [article.id]
            )
        favorites_count = await self._articles.count_favorite(db, article.id)
        author = await self._users.get_user(db, article.author_id)
        if author is None:
            return None
        if tags is None:
            tags = await self._tags.get_tags_by_article(db, article.id)
        return ArticleResponse(
            article=to_article_response(
                article, [t.name for t in tags], to_profile(author), favorited, favorites_count
            )
        )

    async def _toggled_response(
        self,
        db: AsyncSession,
        article: Article,
        favorited: bool,
        favorites_count: int,
    ) -> ArticleResponse | None:
        author = await self._users.get_user(db, article.author_id)
        if author is None:
            return None
        tags = await self._tags.get_tags_by_article(db, article.id)
        return ArticleResponse(
            article=to_article_response(
                article, [t.name for t in tags], to_profile(author), favorited, favorites_count
            )
        )

    # ------------------------------------------------------------------
    # Tag synchronisation
    # ------------------------------------------------------------------

    async def _create_tags(self, db: AsyncSession, tag_names: Sequence[str]) -> list[Tag]:
        """
        Return a Tag for every distinct name in *tag_names*, inserting only
        the names that do not exist yet.  A concurrent insert of the same
        name surfaces as an IntegrityError from the unique index.
        """
        names = unique_tag_names(tag_names)
        existing = await self._tags.find_tag_by_names(db, names)
        new_tags = await self._extract_new_tags(db, names, existing)
        return existing + new_tags

    async def _extract_new_tags(
        self, db: AsyncSession, names: list[str], existing: Sequence[Tag]
    ) -> list[Tag]:
        existing_names = {t.name for t in existing}
        return await self._tags.insert_and_get(
            db, [Tag(name=n) for n in names if n not in existing_names]
        )

    async def _connect_tag_article(self, db: AsyncSession, tags: Sequence[Tag], article_id: int) -> None:
        await self._articles.insert_article_tags(
            db, [ArticleTag(article_id=article_id, tag_id=t.id) for t in tags]
        )

    async def _unique_slug(self, db: AsyncSession, title: str, article_id: int | None = None) -> str:
        """
        Slugify *title*, appending a short random suffix when the slug is
        empty or already belongs to another article.
        """
        slug = slugify(title)
        if slug:
            owner = await self._articles.get_article_by_slug(db, slug)
            if owner is None or owner.id == article_id:
                return slug
        return f"{slug}-{uuid.uuid4().hex[:8]}".lstrip("-")
