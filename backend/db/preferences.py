from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


DEFAULT_NOTIFICATIONS = {
    "low_stock": True,
    "out_of_stock": True,
    "weekly_report": False,
}

DEFAULT_INVENTORY = {
    "default_category": "Other",
    "default_unit": "units",
    "low_stock_threshold": 5,
}


class UserPreferences(Base):
    """Per-user app preferences, created with defaults on first read"""
    __tablename__ = "user_preferences"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    theme = Column(String(20), nullable=False, default="system")
    notifications = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_NOTIFICATIONS))
    inventory = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_INVENTORY))

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    user = relationship("User")

    @property
    def to_schema(self):
        return {
            "user_id": self.user_id,
            "theme": self.theme,
            "notifications": {**DEFAULT_NOTIFICATIONS, **(self.notifications or {})},
            "inventory": {**DEFAULT_INVENTORY, **(self.inventory or {})},
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
