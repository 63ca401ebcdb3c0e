from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.constants import ADJUSTMENT_REASONS, CATEGORIES, UNITS
from db.database import get_async_session
from db.inventory.repositories import SqlAdjustmentRepository, SqlItemRepository
from db.users import User
from schemas.inventory import (
    AdjustmentOut,
    AdjustQuantityOut,
    AdjustQuantityRequest,
    InventoryItemCreate,
    InventoryItemDetailOut,
    InventoryItemOut,
    InventoryItemUpdate,
    InventoryOptionsOut,
    LedgerCheckOut,
)
from services.ledger import LedgerService

router = APIRouter()


def get_ledger_service(db: AsyncSession = Depends(get_async_session)) -> LedgerService:
    return LedgerService(SqlItemRepository(db), SqlAdjustmentRepository(db))


@router.get("", response_model=List[InventoryItemOut])
async def list_items(
    q: Optional[str] = Query(None, max_length=100),
    category: Optional[str] = None,
    low_stock: bool = False,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """
    List the caller's items sorted by name.

    - q matches name or category (case-insensitive substring).
    - low_stock keeps items at or below their min_stock.
    """
    items = await ledger.list_items(user.id, search=q, category=category, low_stock=low_stock)
    return [InventoryItemOut.from_item(it) for it in items]


@router.post("", response_model=InventoryItemOut, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: InventoryItemCreate,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    item = await ledger.create(user.id, payload.item_fields(), payload.quantity)
    return InventoryItemOut.from_item(item)


@router.get("/options", response_model=InventoryOptionsOut)
async def get_options():
    """Suggested values for the item and adjustment forms"""
    return InventoryOptionsOut(categories=CATEGORIES, units=UNITS, adjustment_reasons=ADJUSTMENT_REASONS)


@router.get("/{item_id}", response_model=InventoryItemDetailOut)
async def get_item(
    item_id: UUID,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Get an item with its most recent adjustments (newest first)"""
    item = await ledger.get_item(item_id, user.id)
    history = await ledger.list_adjustments(item_id, user.id)
    return InventoryItemDetailOut(
        **InventoryItemOut.from_item(item).model_dump(),
        adjustments=[AdjustmentOut.from_record(r) for r in history],
    )


@router.patch("/{item_id}", response_model=InventoryItemOut)
@router.put("/{item_id}", response_model=InventoryItemOut)
async def update_item(
    item_id: UUID,
    payload: InventoryItemUpdate,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Edit descriptive fields. Sending quantity is rejected; use /adjust."""
    item = await ledger.update_item(item_id, user.id, payload.model_dump(exclude_unset=True))
    return InventoryItemOut.from_item(item)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    item_id: UUID,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    await ledger.delete(item_id, user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{item_id}/adjust", response_model=AdjustQuantityOut)
async def adjust_quantity(
    item_id: UUID,
    payload: AdjustQuantityRequest,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    result = await ledger.adjust(
        item_id,
        user.id,
        payload.delta,
        payload.reason,
        idempotency_key=payload.idempotency_key,
    )
    return AdjustQuantityOut(
        item=InventoryItemOut.from_item(result.item),
        adjustment=AdjustmentOut.from_record(result.adjustment),
        replayed=result.replayed,
    )


@router.get("/{item_id}/adjustments", response_model=List[AdjustmentOut])
async def list_adjustments(
    item_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    history = await ledger.list_adjustments(item_id, user.id, limit)
    return [AdjustmentOut.from_record(r) for r in history]


@router.get("/{item_id}/ledger", response_model=LedgerCheckOut)
async def verify_ledger(
    item_id: UUID,
    user: User = Depends(current_active_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Compare the item's quantity with the sum of its recorded adjustments"""
    check = await ledger.verify_ledger(item_id, user.id)
    return LedgerCheckOut.from_check(check)
