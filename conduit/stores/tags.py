from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.models import ArticleTag, Tag


class TagStore:
    async def get_tags(self, db: AsyncSession) -> list[Tag]:
        result = await db.execute(select(Tag).order_by(Tag.name))
        return list(result.scalars().all())

    async def find_tag_by_names(self, db: AsyncSession, names: Iterable[str]) -> list[Tag]:
        names = list(names)
        if not names:
            return []
        result = await db.execute(select(Tag).where(Tag.name.in_(names)))
        return list(result.scalars().all())

    async def insert_and_get(self, db: AsyncSession, tags: Sequence[Tag]) -> list[Tag]:
        """Insert *tags* in one flush and return them with their ids populated."""
        if not tags:
            return []
        db.add_all(tags)
        await db.flush()
        return list(tags)

    async def get_tags_by_article(self, db: AsyncSession, article_id: int) -> list[Tag]:
        result = await db.execute(
            select(Tag)
            .join(ArticleTag, ArticleTag.tag_id == Tag.id)
            .where(ArticleTag.article_id == article_id)
            .order_by(Tag.id)
        )
        return list(result.scalars().all())

    async def get_tags_by_articles(
        self, db: AsyncSession, article_ids: Sequence[int]
    ) -> list[tuple[int, Tag]]:
        """Return ``(article_id, tag)`` pairs for every tag of every article in *article_ids*."""
        if not article_ids:
            return []
        result = await db.execute(
            select(ArticleTag.article_id, Tag)
            .join(Tag, Tag.id == ArticleTag.tag_id)
            .where(ArticleTag.article_id.in_(article_ids))
            .order_by(ArticleTag.article_id, Tag.id)
        )
        return [(article_id, tag) for article_id, tag in result.all()]
