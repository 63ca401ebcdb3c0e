"""In-process repositories.

Back the ledger service in tests and local tooling. Every
method body runs without awaiting, so each call is atomic with respect to
other coroutines on the same event loop.
"""

from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from core.errors import DuplicateKey
from schemas.inventory import AdjustmentRecord, InventoryItemRead


class InMemoryItemRepository:
    def __init__(self):
        self._items: Dict[UUID, InventoryItemRead] = {}

    def _owned(self, item_id: UUID, owner_id: UUID) -> Optional[InventoryItemRead]:
        item = self._items.get(item_id)
        if item is None or item.owner_id != owner_id:
            return None
        return item

    async def find_by_id(self, item_id, owner_id):
        return self._owned(item_id, owner_id)

    async def create(self, item):
        self._items[item.id] = item
        return item

    async def atomic_adjust_quantity(self, item_id, owner_id, delta, now):
        item = self._owned(item_id, owner_id)
        if item is None or item.quantity + delta < 0:
            return None
        updated = item.model_copy(update={"quantity": item.quantity + delta, "last_updated": now})
        self._items[item_id] = updated
        return updated

    async def update_fields(self, item_id, owner_id, fields, now):
        item = self._owned(item_id, owner_id)
        if item is None:
            return None
        updated = item.model_copy(update={**fields, "last_updated": now})
        self._items[item_id] = updated
        return updated

    async def delete(self, item_id, owner_id):
        if self._owned(item_id, owner_id) is None:
            return False
        del self._items[item_id]
        return True

    async def list_by_owner(self, owner_id, *, search=None, category=None, low_stock=False):
        items = [it for it in self._items.values() if it.owner_id == owner_id]
        if search:
            q = search.strip().lower()
            items = [it for it in items if q in it.name.lower() or q in it.category.lower()]
        if category:
            items = [it for it in items if it.category.lower() == category.strip().lower()]
        if low_stock:
            items = [it for it in items if it.is_low_stock]
        return sorted(items, key=lambda it: it.name.lower())


class InMemoryAdjustmentRepository:
    def __init__(self):
        self._records: List[AdjustmentRecord] = []

    async def append(self, record):
        # Same rule as the (item_id, idempotency_key) unique index
        if record.idempotency_key is not None and any(
            r.item_id == record.item_id and r.idempotency_key == record.idempotency_key for r in self._records
        ):
            raise DuplicateKey(record.item_id, record.idempotency_key)
        self._records.append(record)
        return record

    async def list_by_item(self, item_id, limit=None):
        # Insertion order breaks timestamp ties
        out = [r for r in reversed(self._records) if r.item_id == item_id]
        out.sort(key=lambda r: r.timestamp, reverse=True)
        return out[:limit] if limit is not None else out

    async def find_by_idempotency_key(self, item_id, key):
        for r in self._records:
            if r.item_id == item_id and r.idempotency_key == key:
                return r
        return None

    async def ledger_total(self, item_id):
        deltas = [r.delta for r in self._records if r.item_id == item_id]
        return sum(deltas, Decimal("0")), len(deltas)

    async def delete_by_item(self, item_id):
        before = len(self._records)
        self._records = [r for r in self._records if r.item_id != item_id]
        return before - len(self._records)
