"""
Article store: persistence for articles, their tag junction rows and
favorite marks.

Batched lookups (``is_favorite_article_ids``, ``count_favorites``) take a
list of article ids and issue one statement regardless of its length; an
empty list short-circuits without touching the database.
"""
from typing import Any, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.models import Article, ArticleTag, Favorite, Follower, Tag, User
from conduit.schemas import ArticleFilter


def _apply_filter(stmt, request: ArticleFilter):
    if request.tag:
        stmt = stmt.where(
            Article.id.in_(
                select(ArticleTag.article_id)
                .join(Tag, Tag.id == ArticleTag.tag_id)
                .where(Tag.name == request.tag)
            )
        )
    if request.author:
        stmt = stmt.where(
            Article.author_id.in_(select(User.id).where(User.username == request.author))
        )
    if request.favorited:
        stmt = stmt.where(
            Article.id.in_(
                select(Favorite.favorited_id)
                .join(User, User.id == Favorite.user_id)
                .where(User.username == request.favorited)
            )
        )
    return stmt


def _followees(user_id: int):
    return select(Follower.followee_id).where(Follower.user_id == user_id)


class ArticleStore:
    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_articles(self, db: AsyncSession, request: ArticleFilter) -> list[Article]:
        stmt = (
            _apply_filter(select(Article), request)
            .order_by(Article.created_at.desc(), Article.id.desc())
            .offset(request.offset)
            .limit(request.limit)
        )
        return list((await db.execute(stmt)).scalars().all())

    async def count_articles(self, db: AsyncSession, request: ArticleFilter) -> int:
        stmt = _apply_filter(select(func.count(Article.id)), request)
        return (await db.execute(stmt)).scalar_one()

    async def get_articles_by_followees(
        self,
        db: AsyncSession,
        user_id: int,
        limit: int,
        offset: int,
    ) -> list[Article]:
        stmt = (
            select(Article)
            .where(Article.author_id.in_(_followees(user_id)))
            .order_by(Article.created_at.desc(), Article.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list((await db.execute(stmt)).scalars().all())

    async def count_articles_by_followees(self, db: AsyncSession, user_id: int) -> int:
        stmt = select(func.count(Article.id)).where(Article.author_id.in_(_followees(user_id)))
        return (await db.execute(stmt)).scalar_one()

    async def get_article_by_slug(self, db: AsyncSession, slug: str) -> Article | None:
        result = await db.execute(select(Article).where(Article.slug == slug))
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_article(self, db: AsyncSession, article: Article) -> Article:
        db.add(article)
        await db.flush()
        return article

    async def update_article(
        self, db: AsyncSession, article: Article, changes: dict[str, Any]
    ) -> Article:
        for field, value in changes.items():
            setattr(article, field, value)
        await db.flush()
        return article

    async def delete_article_by_slug(self, db: AsyncSession, slug: str) -> bool:
        """Delete the article and the rows that hang off it.  False if *slug* is unknown."""
        article = await self.get_article_by_slug(db, slug)
        if article is None:
            return False
        await db.execute(delete(ArticleTag).where(ArticleTag.article_id == article.id))
        await db.execute(delete(Favorite).where(Favorite.favorited_id == article.id))
        await db.delete(article)
        await db.flush()
        return True

    async def insert_article_tags(self, db: AsyncSession, article_tags: Sequence[ArticleTag]) -> None:
        if not article_tags:
            return
        db.add_all(article_tags)
        await db.flush()

    async def delete_article_tags(self, db: AsyncSession, article_id: int) -> None:
        await db.execute(delete(ArticleTag).where(ArticleTag.article_id == article_id))

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    async def favorite_article(self, db: AsyncSession, user_id: int, article_id: int) -> Favorite:
        """Insert the favorite mark unless it already exists; return the mark."""
        result = await db.execute(
            select(Favorite).where(
                Favorite.user_id == user_id, Favorite.favorited_id == article_id
            )
        )
        favorite = result.scalar_one_or_none()
        if favorite is None:
            favorite = Favorite(user_id=user_id, favorited_id=article_id)
            db.add(favorite)
            await db.flush()
        return favorite

    async def unfavorite_article(self, db: AsyncSession, user_id: int, article_id: int) -> int:
        result = await db.execute(
            delete(Favorite).where(
                Favorite.user_id == user_id, Favorite.favorited_id == article_id
            )
        )
        return result.rowcount

    async def is_favorite_article_ids(
        self, db: AsyncSession, user_id: int, article_ids: Sequence[int]
    ) -> set[int]:
        """Return the subset of *article_ids* that *user_id* has favorited."""
        if not article_ids:
            return set()
        result = await db.execute(
            select(Favorite.favorited_id).where(
                Favorite.user_id == user_id, Favorite.favorited_id.in_(article_ids)
            )
        )
        return set(result.scalars().all())

    async def count_favorite(
        self, db: AsyncSession, article_id: int, exclude_user_id: int | None = None
    ) -> int:
        stmt = select(func.count(Favorite.id)).where(Favorite.favorited_id == article_id)
        if exclude_user_id is not None:
            stmt = stmt.where(Favorite.user_id != exclude_user_id)
        return (await db.execute(stmt)).scalar_one()

    async def count_favorites(self, db: AsyncSession, article_ids: Sequence[int]) -> dict[int, int]:
        """Map article id -> favorite count.  Articles nobody favorited are absent."""
        if not article_ids:
            return {}
        result = await db.execute(
            select(Favorite.favorited_id, func.count(Favorite.id))
            .where(Favorite.favorited_id.in_(article_ids))
            .group_by(Favorite.favorited_id)
        )
        return {article_id: count for article_id, count in result.all()}
