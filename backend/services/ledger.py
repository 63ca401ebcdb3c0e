"""Inventory ledger service.

The only code path allowed to change an item's quantity after creation. It
keeps ``item.quantity == sum(adjustment.delta)`` for every item:

- ``create`` seeds the ledger with an "Initial stock" record;
- ``adjust`` applies an atomic conditional increment, then appends the record;
- ``delete`` removes the item, then cascades to its records.

Storage calls run under a timeout and surface ``StorageTimeout`` instead of
hanging. When the item write and the record write diverge, the missing half
is retried once and otherwise reported as ``PartialFailure``.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional, TypeVar
from uuid import UUID

from core.config import settings
from core.constants import INITIAL_STOCK_REASON
from core.errors import (
    DuplicateKey,
    InvalidAdjustment,
    NegativeResult,
    NotFound,
    PartialFailure,
    StorageError,
    StorageTimeout,
    ValidationError,
)
from core.logging import get_logger
from schemas.inventory import AdjustmentRecord, AdjustmentResult, InventoryItemRead, LedgerCheck
from services.quantity import build_adjustment_record, compute_new_quantity, validate_reason
from services.repositories import AdjustmentRepository, ItemRepository
from services.validation import validate_delta, validate_initial_quantity, validate_item_fields

logger = get_logger(__name__)

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerService:
    def __init__(
        self,
        items: ItemRepository,
        adjustments: AdjustmentRepository,
        *,
        timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
        reason_max_length: Optional[int] = None,
        history_limit: Optional[int] = None,
        cascade_attempts: Optional[int] = None,
    ):
        self.items = items
        self.adjustments = adjustments
        self.timeout = settings.storage_timeout_seconds if timeout is None else timeout
        self.clock = clock
        self.reason_max_length = reason_max_length or settings.reason_max_length
        self.history_limit = history_limit or settings.history_limit
        self.cascade_attempts = max(1, cascade_attempts or settings.cascade_retry_attempts)

    # ------------------------------------------------------------------
    # storage plumbing
    # ------------------------------------------------------------------

    async def _call(self, operation: str, awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
        timeout = self.timeout if timeout is None else timeout
        if not timeout or timeout <= 0:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError:
            logger.warning("storage call timed out", operation=operation, timeout=timeout)
            raise StorageTimeout(operation, timeout) from None

    async def _append_with_retry(
        self, operation: str, record: AdjustmentRecord, timeout: Optional[float]
    ) -> AdjustmentRecord:
        """Append after the item write already succeeded: one retry, then PartialFailure."""
        for attempt in (1, 2):
            try:
                return await self._call("adjustments.append", self.adjustments.append(record), timeout)
            except DuplicateKey:
                raise
            except StorageError as e:
                logger.warning(
                    "adjustment append failed",
                    operation=operation,
                    item_id=str(record.item_id),
                    attempt=attempt,
                    error=e.kind,
                )
        logger.error(
            "ledger diverged: item written without its adjustment record",
            operation=operation,
            item_id=str(record.item_id),
            adjustment_id=str(record.id),
            delta=str(record.delta),
        )
        raise PartialFailure(operation, record.item_id, item_written=True, adjustment_written=False)

    async def _load(self, item_id: UUID, owner_id: UUID, timeout: Optional[float]) -> InventoryItemRead:
        item = await self._call("items.find_by_id", self.items.find_by_id(item_id, owner_id), timeout)
        if item is None:
            raise NotFound()
        return item

    async def _settle_duplicate(
        self, updated: InventoryItemRead, record: AdjustmentRecord, timeout: Optional[float]
    ) -> AdjustmentResult:
        """A concurrent request with the same idempotency key recorded first.

        Our increment is reverted and the earlier adjustment is replayed. If the
        stored record is our own (an append that committed but timed out before
        the retry), the adjustment simply stands.
        """
        item_id, owner_id = record.item_id, record.owner_id
        original = await self._call(
            "adjustments.find_by_idempotency_key",
            self.adjustments.find_by_idempotency_key(item_id, record.idempotency_key),
            timeout,
        )
        if original is not None and original.id == record.id:
            return AdjustmentResult(item=updated, adjustment=original)
        if original is None:
            logger.error("duplicate key reported but no record found", item_id=str(item_id))
            raise PartialFailure("adjust", item_id, item_written=True, adjustment_written=False)

        reverted = await self._call(
            "items.atomic_adjust_quantity",
            self.items.atomic_adjust_quantity(item_id, owner_id, -record.delta, self.clock()),
            timeout,
        )
        if reverted is None:
            logger.error(
                "could not revert duplicate adjustment",
                item_id=str(item_id),
                idempotency_key=record.idempotency_key,
                delta=str(record.delta),
            )
            raise PartialFailure("adjust", item_id, item_written=True, adjustment_written=False)
        logger.info(
            "concurrent duplicate adjustment reverted",
            item_id=str(item_id),
            idempotency_key=record.idempotency_key,
        )
        return AdjustmentResult(item=reverted, adjustment=original, replayed=True)

    # ------------------------------------------------------------------
    # ledger operations
    # ------------------------------------------------------------------

    async def create(
        self,
        owner_id: UUID,
        item_fields: dict,
        initial_quantity=0,
        *,
        timeout: Optional[float] = None,
    ) -> InventoryItemRead:
        errors = {}
        cleaned = {}
        initial = None
        try:
            cleaned = validate_item_fields(item_fields)
        except ValidationError as e:
            errors.update(e.fields)
        try:
            initial = validate_initial_quantity(initial_quantity)
        except ValidationError as e:
            errors.update(e.fields)
        if errors:
            raise ValidationError(errors)

        now = self.clock()
        item = InventoryItemRead(
            id=uuid.uuid4(),
            owner_id=owner_id,
            quantity=initial,
            created_at=now,
            last_updated=now,
            **cleaned,
        )
        item = await self._call("items.create", self.items.create(item), timeout)
        logger.info("inventory item created", item_id=str(item.id), owner_id=str(owner_id))

        if initial > 0:
            record = build_adjustment_record(
                item.id,
                Decimal("0"),
                initial,
                initial,
                INITIAL_STOCK_REASON,
                owner_id,
                now,
                max_reason_length=self.reason_max_length,
            )
            await self._append_with_retry("create", record, timeout)
        return item

    async def adjust(
        self,
        item_id: UUID,
        owner_id: UUID,
        delta,
        reason: str,
        *,
        idempotency_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> AdjustmentResult:
        delta = validate_delta(delta)
        if delta == 0:
            raise InvalidAdjustment()
        reason = validate_reason(reason, self.reason_max_length)

        item = await self._load(item_id, owner_id, timeout)

        if idempotency_key:
            previous = await self._call(
                "adjustments.find_by_idempotency_key",
                self.adjustments.find_by_idempotency_key(item_id, idempotency_key),
                timeout,
            )
            if previous is not None:
                logger.info("adjustment replayed", item_id=str(item_id), idempotency_key=idempotency_key)
                return AdjustmentResult(item=item, adjustment=previous, replayed=True)

        # Fail fast on the value just read; the storage re-checks atomically below.
        compute_new_quantity(item.quantity, delta)

        now = self.clock()
        updated = await self._call(
            "items.atomic_adjust_quantity",
            self.items.atomic_adjust_quantity(item_id, owner_id, delta, now),
            timeout,
        )
        if updated is None:
            current = await self._call("items.find_by_id", self.items.find_by_id(item_id, owner_id), timeout)
            if current is None:
                raise NotFound()
            raise NegativeResult(current.quantity, delta)

        # Quantities come from the storage result, not the earlier read, so a
        # concurrent adjustment between the two is recorded correctly.
        record = build_adjustment_record(
            item_id,
            updated.quantity - delta,
            updated.quantity,
            delta,
            reason,
            owner_id,
            now,
            idempotency_key=idempotency_key,
            max_reason_length=self.reason_max_length,
        )
        try:
            record = await self._append_with_retry("adjust", record, timeout)
        except DuplicateKey:
            return await self._settle_duplicate(updated, record, timeout)
        logger.info(
            "quantity adjusted",
            item_id=str(item_id),
            delta=str(delta),
            new_quantity=str(updated.quantity),
            reason=reason,
        )
        return AdjustmentResult(item=updated, adjustment=record)

    async def delete(self, item_id: UUID, owner_id: UUID, *, timeout: Optional[float] = None) -> None:
        deleted = await self._call("items.delete", self.items.delete(item_id, owner_id), timeout)
        if not deleted:
            raise NotFound()

        # The item is gone for good; only the cascade is retried.
        for attempt in range(1, self.cascade_attempts + 1):
            try:
                removed = await self._call(
                    "adjustments.delete_by_item", self.adjustments.delete_by_item(item_id), timeout
                )
            except StorageError as e:
                logger.warning(
                    "adjustment cascade failed",
                    item_id=str(item_id),
                    attempt=attempt,
                    error=e.kind,
                )
                continue
            logger.info("inventory item deleted", item_id=str(item_id), adjustments_removed=removed)
            return

        logger.error("orphaned adjustment records left after delete", item_id=str(item_id))
        raise PartialFailure("delete", item_id, item_written=True, adjustment_written=False)

    # ------------------------------------------------------------------
    # reads and field edits
    # ------------------------------------------------------------------

    async def get_item(self, item_id: UUID, owner_id: UUID, *, timeout: Optional[float] = None) -> InventoryItemRead:
        return await self._load(item_id, owner_id, timeout)

    async def list_items(
        self,
        owner_id: UUID,
        *,
        search: Optional[str] = None,
        category: Optional[str] = None,
        low_stock: bool = False,
        timeout: Optional[float] = None,
    ) -> List[InventoryItemRead]:
        return await self._call(
            "items.list_by_owner",
            self.items.list_by_owner(owner_id, search=search, category=category, low_stock=low_stock),
            timeout,
        )

    async def list_adjustments(
        self,
        item_id: UUID,
        owner_id: UUID,
        limit: Optional[int] = None,
        *,
        timeout: Optional[float] = None,
    ) -> List[AdjustmentRecord]:
        await self._load(item_id, owner_id, timeout)
        return await self._call(
            "adjustments.list_by_item",
            self.adjustments.list_by_item(item_id, limit or self.history_limit),
            timeout,
        )

    async def update_item(
        self,
        item_id: UUID,
        owner_id: UUID,
        fields: dict,
        *,
        timeout: Optional[float] = None,
    ) -> InventoryItemRead:
        """Edit descriptive fields. Quantity is refused here; it only moves through ``adjust``."""
        cleaned = validate_item_fields(fields, partial=True)
        if not cleaned:
            return await self._load(item_id, owner_id, timeout)
        updated = await self._call(
            "items.update_fields",
            self.items.update_fields(item_id, owner_id, cleaned, self.clock()),
            timeout,
        )
        if updated is None:
            raise NotFound()
        return updated

    async def verify_ledger(self, item_id: UUID, owner_id: UUID, *, timeout: Optional[float] = None) -> LedgerCheck:
        item = await self._load(item_id, owner_id, timeout)
        total, count = await self._call(
            "adjustments.ledger_total", self.adjustments.ledger_total(item_id), timeout
        )
        check = LedgerCheck(item_id=item_id, quantity=item.quantity, ledger_total=total, adjustment_count=count)
        if not check.consistent:
            logger.warning(
                "ledger drift detected",
                item_id=str(item_id),
                quantity=str(item.quantity),
                ledger_total=str(total),
            )
        return check
