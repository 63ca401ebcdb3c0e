"""SQLAlchemy-backed ledger repositories.

Each write commits on its own, like the per-call writes of a document store;
the ledger service handles divergence between the two tables. Driver errors
are rolled back and re-raised as ``StorageError`` so their text never reaches
API callers.
"""

from decimal import Decimal
from functools import wraps

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import DuplicateKey, StorageError
from core.logging import get_logger
from schemas.inventory import AdjustmentRecord, InventoryItemRead

from .adjustment import QuantityAdjustment
from .item import InventoryItem

logger = get_logger(__name__)


def _storage_errors(fn):
    @wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("storage call failed", call=fn.__qualname__, error=repr(e))
            raise StorageError() from e
    return wrapper


def _escape_like(text: str) -> str:
    """Make LIKE treat %, _ and the escape character in user text literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlItemRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @_storage_errors
    async def find_by_id(self, item_id, owner_id):
        res = await self.session.execute(
            select(InventoryItem)
            .where(InventoryItem.id == item_id, InventoryItem.owner_id == owner_id)
            # Core UPDATEs bypass the identity map
            .execution_options(populate_existing=True)
        )
        m = res.scalar_one_or_none()
        return InventoryItemRead(**m.to_schema) if m else None

    @_storage_errors
    async def create(self, item):
        m = InventoryItem(**item.model_dump())
        self.session.add(m)
        await self.session.commit()
        await self.session.refresh(m)
        return InventoryItemRead(**m.to_schema)

    @_storage_errors
    async def atomic_adjust_quantity(self, item_id, owner_id, delta, now):
        tbl = InventoryItem.__table__
        # Single conditional UPDATE: concurrent adjustments never overwrite each other
        stmt = (
            update(tbl)
            .where(tbl.c.id == item_id)
            .where(tbl.c.owner_id == owner_id)
            .where(tbl.c.quantity + delta >= 0)
            .values(quantity=tbl.c.quantity + delta, last_updated=now)
            .returning(*tbl.c)
        )
        row = (await self.session.execute(stmt)).first()
        await self.session.commit()
        return InventoryItemRead(**row._mapping) if row else None

    @_storage_errors
    async def update_fields(self, item_id, owner_id, fields, now):
        tbl = InventoryItem.__table__
        stmt = (
            update(tbl)
            .where(tbl.c.id == item_id)
            .where(tbl.c.owner_id == owner_id)
            .values(**fields, last_updated=now)
            .returning(*tbl.c)
        )
        row = (await self.session.execute(stmt)).first()
        await self.session.commit()
        return InventoryItemRead(**row._mapping) if row else None

    @_storage_errors
    async def delete(self, item_id, owner_id):
        res = await self.session.execute(
            delete(InventoryItem.__table__)
            .where(InventoryItem.__table__.c.id == item_id)
            .where(InventoryItem.__table__.c.owner_id == owner_id)
        )
        await self.session.commit()
        return int(getattr(res, "rowcount", 0) or 0) > 0

    @_storage_errors
    async def list_by_owner(self, owner_id, *, search=None, category=None, low_stock=False):
        stmt = select(InventoryItem).where(InventoryItem.owner_id == owner_id)
        if search:
            qq = f"%{_escape_like(search.strip().lower())}%"
            stmt = stmt.where(
                or_(
                    func.lower(InventoryItem.name).like(qq, escape="\\"),
                    func.lower(InventoryItem.category).like(qq, escape="\\"),
                )
            )
        if category:
            stmt = stmt.where(func.lower(InventoryItem.category) == category.strip().lower())
        if low_stock:
            stmt = stmt.where(InventoryItem.quantity <= InventoryItem.min_stock)
        stmt = stmt.order_by(func.lower(InventoryItem.name).asc()).execution_options(populate_existing=True)
        res = await self.session.execute(stmt)
        return [InventoryItemRead(**m.to_schema) for m in res.scalars().all()]


class SqlAdjustmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @_storage_errors
    async def append(self, record):
        m = QuantityAdjustment(**record.model_dump())
        self.session.add(m)
        try:
            await self.session.commit()
        except IntegrityError as e:
            if record.idempotency_key is None:
                raise
            await self.session.rollback()
            raise DuplicateKey(record.item_id, record.idempotency_key) from e
        return record

    @_storage_errors
    async def list_by_item(self, item_id, limit=None):
        stmt = (
            select(QuantityAdjustment)
            .where(QuantityAdjustment.item_id == item_id)
            .order_by(QuantityAdjustment.timestamp.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await self.session.execute(stmt)
        return [AdjustmentRecord(**m.to_schema) for m in res.scalars().all()]

    @_storage_errors
    async def find_by_idempotency_key(self, item_id, key):
        res = await self.session.execute(
            select(QuantityAdjustment)
            .where(QuantityAdjustment.item_id == item_id)
            .where(QuantityAdjustment.idempotency_key == key)
        )
        m = res.scalar_one_or_none()
        return AdjustmentRecord(**m.to_schema) if m else None

    @_storage_errors
    async def ledger_total(self, item_id):
        res = await self.session.execute(
            select(
                func.coalesce(func.sum(QuantityAdjustment.delta), 0),
                func.count(QuantityAdjustment.id),
            ).where(QuantityAdjustment.item_id == item_id)
        )
        total, count = res.one()
        return Decimal(str(total)).quantize(Decimal("0.001")), int(count)

    @_storage_errors
    async def delete_by_item(self, item_id):
        res = await self.session.execute(
            delete(QuantityAdjustment.__table__).where(QuantityAdjustment.__table__.c.item_id == item_id)
        )
        await self.session.commit()
        return int(getattr(res, "rowcount", 0) or 0)
