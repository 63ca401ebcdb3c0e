# Pydantic schemas for user-related requests/responses
# fastapi-users provides the account schemas; preferences are ours.

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from fastapi_users import schemas
from pydantic import BaseModel, ConfigDict, Field


class UserRead(schemas.BaseUser[UUID]):
    pass


class UserCreate(schemas.BaseUserCreate):
    pass


class UserUpdate(schemas.BaseUserUpdate):
    pass


Theme = Literal["light", "dark", "system"]


class NotificationPreferences(BaseModel):
    model_config = ConfigDict(extra="forbid")

    low_stock: bool = True
    out_of_stock: bool = True
    weekly_report: bool = False


class InventoryPreferences(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_category: str = Field("Other", min_length=1, max_length=50)
    default_unit: str = Field("units", min_length=1, max_length=20)
    low_stock_threshold: float = Field(5, ge=0)


class PreferencesRead(BaseModel):
    user_id: UUID
    theme: Theme
    notifications: NotificationPreferences
    inventory: InventoryPreferences
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PreferencesUpdate(BaseModel):
    # Unknown top-level fields are rejected
    model_config = ConfigDict(extra="forbid")

    theme: Optional[Theme] = None
    notifications: Optional[NotificationPreferences] = None
    inventory: Optional[InventoryPreferences] = None
