import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from ..database import Base


class QuantityAdjustment(Base):
    __tablename__ = "quantity_adjustments"
    __table_args__ = (
        UniqueConstraint("item_id", "idempotency_key", name="ux_quantity_adjustments_item_key"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    item_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)

    previous_quantity = Column(Numeric(14, 3), nullable=False)
    new_quantity = Column(Numeric(14, 3), nullable=False)
    delta = Column(Numeric(14, 3), nullable=False)
    reason = Column(String(200), nullable=False)
    idempotency_key = Column(String(100), nullable=True)

    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)

    item = relationship("InventoryItem", back_populates="adjustments")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "item_id": self.item_id,
            "owner_id": self.owner_id,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "delta": self.delta,
            "reason": self.reason,
            "idempotency_key": self.idempotency_key,
            "timestamp": self.timestamp,
        }
