from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import current_user_id
from conduit.schemas import Profile, UserCreate, UserResponse
from conduit.services import user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post("", status_code=201, response_model=UserResponse)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await user_service.create_user(db, data)
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail="A user with this username or email already exists",
        )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await user_service.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/{user_id}/follow", response_model=Profile)
async def follow_user(
    user_id: int,
    follower_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    profile = await user_service.follow_user(db, follower_id, user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return profile
