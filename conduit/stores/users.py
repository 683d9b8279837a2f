"""
User store: read access to user accounts for the article layer, plus the
small set of writes the user endpoints need.
"""
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.models import Follower, User
from conduit.schemas import UserCreate


class UserStore:
    async def get_user(self, db: AsyncSession, user_id: int) -> User | None:
        return await db.get(User, user_id)

    async def get_users_by_user_ids(self, db: AsyncSession, user_ids: Iterable[int]) -> list[User]:
        ids = set(user_ids)
        if not ids:
            return []
        result = await db.execute(select(User).where(User.id.in_(ids)))
        return list(result.scalars().all())

    async def get_user_by_username(self, db: AsyncSession, username: str) -> User | None:
        result = await db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def create_user(self, db: AsyncSession, data: UserCreate) -> User:
        # Uniqueness of username/email is left to the database constraints.
        user = User(**data.model_dump())
        db.add(user)
        await db.flush()
        return user

    async def follow(self, db: AsyncSession, user_id: int, followee_id: int) -> None:
        if await db.get(Follower, (user_id, followee_id)) is None:
            db.add(Follower(user_id=user_id, followee_id=followee_id))
            await db.flush()
