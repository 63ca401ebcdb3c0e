from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from db.database import get_async_session
from db.preferences import DEFAULT_INVENTORY, DEFAULT_NOTIFICATIONS, UserPreferences
from db.users import User
from schemas.users import PreferencesRead, PreferencesUpdate

router = APIRouter()

# Account routes (register/login/me) come from fastapi-users and are included in main.py.


async def _get_or_create_preferences(db: AsyncSession, user: User) -> UserPreferences:
    res = await db.execute(select(UserPreferences).where(UserPreferences.user_id == user.id))
    prefs = res.scalar_one_or_none()
    if prefs is None:
        prefs = UserPreferences(
            user_id=user.id,
            theme="system",
            notifications=dict(DEFAULT_NOTIFICATIONS),
            inventory=dict(DEFAULT_INVENTORY),
        )
        db.add(prefs)
        await db.commit()
        await db.refresh(prefs)
    return prefs


@router.get("/me/preferences", response_model=PreferencesRead)
async def get_preferences(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Get the caller's preferences, creating the defaults on first access"""
    prefs = await _get_or_create_preferences(db, user)
    return PreferencesRead(**prefs.to_schema)


@router.put("/me/preferences", response_model=PreferencesRead)
async def update_preferences(
    payload: PreferencesUpdate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    prefs = await _get_or_create_preferences(db, user)

    data = payload.model_dump(exclude_unset=True)
    if data.get("theme") is not None:
        prefs.theme = data["theme"]
    # JSON columns are replaced, not mutated, so the change is detected
    if data.get("notifications") is not None:
        prefs.notifications = {**(prefs.notifications or {}), **data["notifications"]}
    if data.get("inventory") is not None:
        prefs.inventory = {**(prefs.inventory or {}), **data["inventory"]}

    await db.commit()
    await db.refresh(prefs)
    return PreferencesRead(**prefs.to_schema)
