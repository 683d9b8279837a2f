"""
User service: the user-facing operations behind ``/api/v1/users``.

Users are owned by the user store; the article layer only ever reads them.
These functions exist so that accounts and follow relations can be set up
through the API.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.models import User
from conduit.schemas import Profile, UserCreate
from conduit.stores import UserStore

_users = UserStore()


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "bio": user.bio,
        "image": user.image,
    }


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """
    Create a new user.  Username and email uniqueness is enforced by the
    database; the router translates the resulting IntegrityError into 409.
    """
    return _user_to_dict(await _users.create_user(db, data))


async def get_user(db: AsyncSession, user_id: int) -> dict | None:
    user = await _users.get_user(db, user_id)
    return _user_to_dict(user) if user else None


async def follow_user(db: AsyncSession, follower_id: int, followee_id: int) -> Profile | None:
    """
    Make *follower_id* follow *followee_id* and return the followee's profile.

    Returns None when the followee does not exist.
    """
    followee = await _users.get_user(db, followee_id)
    if followee is None:
        return None
    await _users.follow(db, follower_id, followee_id)
    return Profile(username=followee.username, bio=followee.bio, image=followee.image, following=True)
