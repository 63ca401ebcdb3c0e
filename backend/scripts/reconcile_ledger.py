import argparse
import asyncio
import sys
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

"""
Find (and optionally repair) items whose quantity no longer equals the sum of
their adjustment records, e.g. after a PartialFailure.

Repair appends one "Reconciliation" record per drifted item with
delta = quantity - ledger_total; the item quantity itself is left alone.

Run inside the api container:
  docker compose exec -T api uv run python scripts/reconcile_ledger.py --repair
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from core.constants import RECONCILIATION_REASON  # noqa: E402
from db.database import async_session_maker  # noqa: E402
from db.inventory.adjustment import QuantityAdjustment  # noqa: E402
from db.inventory.item import InventoryItem  # noqa: E402


async def find_drift(session: AsyncSession) -> list[dict]:
    totals = (
        select(
            QuantityAdjustment.item_id.label("item_id"),
            func.sum(QuantityAdjustment.delta).label("total"),
        )
        .group_by(QuantityAdjustment.item_id)
        .subquery()
    )
    res = await session.execute(
        select(InventoryItem.id, InventoryItem.owner_id, InventoryItem.name, InventoryItem.quantity, totals.c.total)
        .outerjoin(totals, totals.c.item_id == InventoryItem.id)
        .order_by(InventoryItem.name)
    )

    out = []
    for item_id, owner_id, name, quantity, total in res.all():
        quantity = Decimal(str(quantity or 0))
        total = Decimal(str(total or 0)).quantize(Decimal("0.001"))
        if quantity != total:
            out.append(
                {
                    "item_id": item_id,
                    "owner_id": owner_id,
                    "name": name,
                    "quantity": quantity,
                    "ledger_total": total,
                    "drift": quantity - total,
                }
            )
    return out


async def repair(session: AsyncSession, drifts: list[dict]) -> int:
    now = datetime.now(timezone.utc)
    for d in drifts:
        session.add(
            QuantityAdjustment(
                id=uuid.uuid4(),
                item_id=d["item_id"],
                owner_id=d["owner_id"],
                previous_quantity=d["ledger_total"],
                new_quantity=d["quantity"],
                delta=d["drift"],
                reason=RECONCILIATION_REASON,
                timestamp=now,
            )
        )
    await session.commit()
    return len(drifts)


async def main(apply_repair: bool):
    async with async_session_maker() as session:
        drifts = await find_drift(session)
        for d in drifts:
            print(
                f"[reconcile_ledger] {d['item_id']} '{d['name']}': "
                f"quantity={d['quantity']} ledger={d['ledger_total']} drift={d['drift']}"
            )
        if not drifts:
            print("[reconcile_ledger] all items consistent")
            return
        if apply_repair:
            n = await repair(session, drifts)
            print(f"[reconcile_ledger] appended {n} reconciliation records")
        else:
            print(f"[reconcile_ledger] DRY RUN: {len(drifts)} items drifted (use --repair)")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--repair", action="store_true", help="append reconciliation records")
    args = parser.parse_args()
    asyncio.run(main(args.repair))
