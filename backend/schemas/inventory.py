from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator


StockStatus = Literal["out_of_stock", "low_stock", "adequate", "in_stock"]


def stock_status(quantity, min_stock) -> str:
    if quantity <= 0:
        return "out_of_stock"
    if quantity <= min_stock:
        return "low_stock"
    if quantity <= min_stock * 2:
        return "adequate"
    return "in_stock"


# ---------------------------------------------------------------------------
# Ledger values (storage-agnostic)
# ---------------------------------------------------------------------------


class InventoryItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    name: str
    category: str
    quantity: Decimal
    min_stock: Decimal
    unit: str
    price: Decimal
    supplier: str
    created_at: datetime
    last_updated: datetime

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock


class AdjustmentRecord(BaseModel):
    """One append-only ledger entry. Never updated once written."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    item_id: UUID
    owner_id: UUID
    previous_quantity: Decimal
    new_quantity: Decimal
    delta: Decimal
    reason: str
    timestamp: datetime
    idempotency_key: Optional[str] = None


class AdjustmentResult(BaseModel):
    item: InventoryItemRead
    adjustment: AdjustmentRecord
    # True when an idempotency key matched an earlier adjustment
    replayed: bool = False


class LedgerCheck(BaseModel):
    item_id: UUID
    quantity: Decimal
    ledger_total: Decimal
    adjustment_count: int

    @property
    def consistent(self) -> bool:
        return self.quantity == self.ledger_total

    @property
    def drift(self) -> Decimal:
        return self.quantity - self.ledger_total


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def _strip(v):
    if isinstance(v, str):
        return v.strip()
    return v


class InventoryItemCreate(BaseModel):
    # Range checks live in the ledger service so every violation is reported at once
    name: Optional[str] = None
    category: Optional[str] = None
    quantity: Decimal = Decimal("0")
    min_stock: Optional[Decimal] = None
    unit: Optional[str] = None
    price: Optional[Decimal] = None
    supplier: Optional[str] = None

    @field_validator("name", "category", "unit", "supplier")
    @classmethod
    def _strip_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip(v)

    def item_fields(self) -> dict:
        return self.model_dump(exclude={"quantity"})


class InventoryItemUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    # Accepted only so the service can refuse it with a clear message
    quantity: Optional[Decimal] = None
    min_stock: Optional[Decimal] = None
    unit: Optional[str] = None
    price: Optional[Decimal] = None
    supplier: Optional[str] = None

    @field_validator("name", "category", "unit", "supplier")
    @classmethod
    def _strip_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip(v)


class AdjustQuantityRequest(BaseModel):
    delta: Decimal
    reason: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def _strip_reason(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("idempotency_key")
    @classmethod
    def _strip_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class InventoryItemOut(BaseModel):
    id: UUID
    name: str
    category: str
    quantity: float
    min_stock: float
    unit: str
    price: float
    supplier: str
    stock_status: StockStatus
    created_at: datetime
    last_updated: datetime

    @classmethod
    def from_item(cls, item: InventoryItemRead) -> "InventoryItemOut":
        return cls(
            id=item.id,
            name=item.name,
            category=item.category,
            quantity=float(item.quantity),
            min_stock=float(item.min_stock),
            unit=item.unit,
            price=float(item.price),
            supplier=item.supplier,
            stock_status=stock_status(item.quantity, item.min_stock),
            created_at=item.created_at,
            last_updated=item.last_updated,
        )


class AdjustmentOut(BaseModel):
    id: UUID
    item_id: UUID
    previous_quantity: float
    new_quantity: float
    delta: float
    reason: str
    timestamp: datetime

    @classmethod
    def from_record(cls, record: AdjustmentRecord) -> "AdjustmentOut":
        return cls(
            id=record.id,
            item_id=record.item_id,
            previous_quantity=float(record.previous_quantity),
            new_quantity=float(record.new_quantity),
            delta=float(record.delta),
            reason=record.reason,
            timestamp=record.timestamp,
        )


class InventoryItemDetailOut(InventoryItemOut):
    adjustments: List[AdjustmentOut] = []


class AdjustQuantityOut(BaseModel):
    item: InventoryItemOut
    adjustment: AdjustmentOut
    replayed: bool = False


class LedgerCheckOut(BaseModel):
    item_id: UUID
    quantity: float
    ledger_total: float
    adjustment_count: int
    consistent: bool
    drift: float

    @classmethod
    def from_check(cls, check: LedgerCheck) -> "LedgerCheckOut":
        return cls(
            item_id=check.item_id,
            quantity=float(check.quantity),
            ledger_total=float(check.ledger_total),
            adjustment_count=check.adjustment_count,
            consistent=check.consistent,
            drift=float(check.drift),
        )


class InventoryOptionsOut(BaseModel):
    categories: List[str]
    units: List[str]
    adjustment_reasons: List[str]
