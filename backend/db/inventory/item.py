import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    category = Column(String(50), nullable=False, index=True)
    # Written only by the ledger (create + atomic increment)
    quantity = Column(Numeric(14, 3), nullable=False, default=0)
    min_stock = Column(Numeric(14, 3), nullable=False, default=0)
    unit = Column(String(20), nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    supplier = Column(String(100), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_updated = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    adjustments = relationship(
        "QuantityAdjustment",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "category": self.category,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "unit": self.unit,
            "price": self.price,
            "supplier": self.supplier,
            "created_at": self.created_at,
            "last_updated": self.last_updated,
        }
