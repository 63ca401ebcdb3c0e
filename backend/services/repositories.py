"""Storage interfaces consumed by the ledger service.

Implementations: ``db.inventory.repositories`` (SQLAlchemy) and
``services.memory`` (in-process). Implementations raise
``core.errors.StorageError`` for storage failures and return ``None``/``False``
for "not found" rather than raising.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol
from uuid import UUID

from schemas.inventory import AdjustmentRecord, InventoryItemRead


class ItemRepository(Protocol):
    async def find_by_id(self, item_id: UUID, owner_id: UUID) -> Optional[InventoryItemRead]:
        ...

    async def create(self, item: InventoryItemRead) -> InventoryItemRead:
        ...

    async def atomic_adjust_quantity(
        self, item_id: UUID, owner_id: UUID, delta: Decimal, now: datetime
    ) -> Optional[InventoryItemRead]:
        """Apply ``quantity = quantity + delta`` in one step.

        Returns None (rejected) when the item is missing or the result would be negative.
        """
        ...

    async def update_fields(
        self, item_id: UUID, owner_id: UUID, fields: dict, now: datetime
    ) -> Optional[InventoryItemRead]:
        ...

    async def delete(self, item_id: UUID, owner_id: UUID) -> bool:
        ...

    async def list_by_owner(
        self,
        owner_id: UUID,
        *,
        search: Optional[str] = None,
        category: Optional[str] = None,
        low_stock: bool = False,
    ) -> List[InventoryItemRead]:
        ...


class AdjustmentRepository(Protocol):
    async def append(self, record: AdjustmentRecord) -> AdjustmentRecord:
        """Raises ``DuplicateKey`` when the item already has a record with this idempotency key."""
        ...

    async def list_by_item(self, item_id: UUID, limit: Optional[int] = None) -> List[AdjustmentRecord]:
        """Newest first."""
        ...

    async def find_by_idempotency_key(self, item_id: UUID, key: str) -> Optional[AdjustmentRecord]:
        ...

    async def ledger_total(self, item_id: UUID) -> tuple[Decimal, int]:
        """Sum of deltas and number of records for the item."""
        ...

    async def delete_by_item(self, item_id: UUID) -> int:
        ...
