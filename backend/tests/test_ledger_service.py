"""Ledger service behaviour against the in-memory repositories."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from core.errors import (
    DuplicateKey,
    InvalidAdjustment,
    InvalidReason,
    NegativeResult,
    NotFound,
    PartialFailure,
    StorageError,
    StorageTimeout,
    ValidationError,
)
from services.ledger import LedgerService
from services.memory import InMemoryAdjustmentRepository, InMemoryItemRepository
from services.quantity import build_adjustment_record


class TickingClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class FlakyAdjustments(InMemoryAdjustmentRepository):
    def __init__(self, append_failures=0, delete_failures=0):
        super().__init__()
        self.append_failures = append_failures
        self.delete_failures = delete_failures
        self.append_calls = 0
        self.delete_calls = 0

    async def append(self, record):
        self.append_calls += 1
        if self.append_failures > 0:
            self.append_failures -= 1
            raise StorageError()
        return await super().append(record)

    async def delete_by_item(self, item_id):
        self.delete_calls += 1
        if self.delete_failures > 0:
            self.delete_failures -= 1
            raise StorageError()
        return await super().delete_by_item(item_id)


class SlowItems(InMemoryItemRepository):
    async def find_by_id(self, item_id, owner_id):
        await asyncio.sleep(0.5)
        return await super().find_by_id(item_id, owner_id)


class SlowKeyLookup(InMemoryAdjustmentRepository):
    """Lets two requests with the same key both pass the replay check."""

    async def find_by_idempotency_key(self, item_id, key):
        await asyncio.sleep(0.01)
        return await super().find_by_idempotency_key(item_id, key)


async def _sum_invariant_holds(ledger, item_id, owner_id):
    check = await ledger.verify_ledger(item_id, owner_id)
    return check.consistent


class TestCreate:
    async def test_initial_stock_is_recorded(self, ledger, owner_id, item_fields, adjustments_repo):
        item = await ledger.create(owner_id, item_fields, 20)

        history = await adjustments_repo.list_by_item(item.id)
        assert item.quantity == Decimal("20")
        assert len(history) == 1
        assert history[0].previous_quantity == 0
        assert history[0].new_quantity == 20
        assert history[0].delta == 20
        assert history[0].reason == "Initial stock"

    async def test_zero_initial_quantity_writes_no_record(self, ledger, owner_id, item_fields, adjustments_repo):
        item = await ledger.create(owner_id, item_fields, 0)

        assert await adjustments_repo.list_by_item(item.id) == []
        assert await _sum_invariant_holds(ledger, item.id, owner_id)

    async def test_field_and_quantity_errors_are_reported_together(self, ledger, owner_id, items_repo):
        with pytest.raises(ValidationError) as exc:
            await ledger.create(owner_id, {"name": "", "category": "Cheeses"}, -5)

        assert {"name", "unit", "supplier", "min_stock", "price", "quantity"} <= set(exc.value.fields)
        assert await items_repo.list_by_owner(owner_id) == []

    async def test_append_is_retried_once(self, owner_id, item_fields, items_repo):
        adjustments = FlakyAdjustments(append_failures=1)
        ledger = LedgerService(items_repo, adjustments, timeout=1)

        item = await ledger.create(owner_id, item_fields, 20)

        assert adjustments.append_calls == 2
        assert await _sum_invariant_holds(ledger, item.id, owner_id)

    async def test_append_failing_twice_is_a_partial_failure(self, owner_id, item_fields, items_repo):
        adjustments = FlakyAdjustments(append_failures=2)
        ledger = LedgerService(items_repo, adjustments, timeout=1)

        with pytest.raises(PartialFailure) as exc:
            await ledger.create(owner_id, item_fields, 20)

        assert exc.value.item_written is True
        assert exc.value.adjustment_written is False
        [item] = await items_repo.list_by_owner(owner_id)
        check = await ledger.verify_ledger(item.id, owner_id)
        assert check.drift == Decimal("20")


class TestAdjust:
    async def test_adjust_scenario(self, ledger, owner_id, item_fields):
        item = await ledger.create(owner_id, item_fields, 10)

        result = await ledger.adjust(item.id, owner_id, -7, "Production Usage")
        assert result.item.quantity == Decimal("3")
        assert result.adjustment.previous_quantity == Decimal("10")
        assert result.adjustment.new_quantity == Decimal("3")
        assert result.adjustment.delta == Decimal("-7")
        assert result.replayed is False

        with pytest.raises(NegativeResult):
            await ledger.adjust(item.id, owner_id, -5, "Production Usage")

        assert (await ledger.get_item(item.id, owner_id)).quantity == Decimal("3")
        assert len(await ledger.list_adjustments(item.id, owner_id)) == 2
        assert await _sum_invariant_holds(ledger, item.id, owner_id)

    async def test_negative_result_leaves_state_unchanged(self, ledger, owner_id, item_fields, adjustments_repo):
        item = await ledger.create(owner_id, item_fields, 2)

        with pytest.raises(NegativeResult) as exc:
            await ledger.adjust(item.id, owner_id, Decimal("-2.5"), "Waste/Damage")

        assert exc.value.current == Decimal("2")
        assert (await ledger.get_item(item.id, owner_id)).quantity == Decimal("2")
        assert (await adjustments_repo.ledger_total(item.id)) == (Decimal("2"), 1)

    async def test_adjust_down_to_exactly_zero(self, ledger, owner_id, item_fields):
        item = await ledger.create(owner_id, item_fields, 4)

        result = await ledger.adjust(item.id, owner_id, -4, "Production Usage")

        assert result.item.quantity == 0
        assert result.item.last_updated >= item.last_updated

    async def test_zero_delta_fails_even_for_missing_item(self, ledger, owner_id):
        with pytest.raises(InvalidAdjustment):
            await ledger.adjust(uuid.uuid4(), owner_id, 0, "Stock Count Correction")

    async def test_reason_is_required(self, ledger, owner_id, item_fields):
        item = await ledger.create(owner_id, item_fields, 5)

        with pytest.raises(InvalidReason):
            await ledger.adjust(item.id, owner_id, 1, "   ")

    async def test_delta_out_of_range(self, ledger, owner_id, item_fields):
        item = await ledger.create(owner_id, item_fields, 5)

        with pytest.raises(ValidationError) as exc:
            await ledger.adjust(item.id, owner_id, 100001, "Delivery Received")
        assert "delta" in exc.value.fields

    async def test_missing_item(self, ledger, owner_id):
        with pytest.raises(NotFound):
            await ledger.adjust(uuid.uuid4(), owner_id, 1, "Delivery Received")

    async def test_foreign_item_looks_missing(self, ledger, owner_id, item_fields):
        item = await ledger.create(owner_id, item_fields, 5)
        stranger = uuid.uuid4()

        with pytest.raises(NotFound):
            await ledger.adjust(item.id, stranger, 1, "Delivery Received")
        with pytest.raises(NotFound):
            await ledger.get_item(item.id, stranger)
        with pytest.raises(NotFound):
            await ledger.list_adjustments(item.id, stranger)

    async def test_concurrent_adjustments_both_apply(self, ledger, owner_id, item_fields, adjustments_repo):
        item = await ledger.create(owner_id, item_fields, 10)

        await asyncio.gather(
            ledger.adjust(item.id, owner_id, 5, "Delivery Received"),
            ledger.adjust(item.id, owner_id, -3, "Production Usage"),
        )

        assert (await ledger.get_item(item.id, owner_id)).quantity == Decimal("12")
        records = await adjustments_repo.list_by_item(item.id)
        assert sorted(r.delta for r in records) == [Decimal("-3"), Decimal("5"), Decimal("10")]
        assert await _sum_invariant_holds(ledger, item.id, owner_id)

    async def test_concurrent_withdrawals_never_go_negative(self, ledger, owner_id, item_fields):
        item = await ledger.create(owner_id, item_fields, 5)

        results = await asyncio.gather(
            ledger.adjust(item.id, owner_id, -4, "Production Usage"),
            ledger.adjust(item.id, owner_id, -4, "Production Usage"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, NegativeResult) for r in results) == 1
        assert (await ledger.get_item(item.id, owner_id)).quantity == Decimal("1")
        assert await _sum_invariant_holds(ledger, item.id, owner_id)

    async def test_idempotency_key_replays_previous_result(self, ledger, owner_id, item_fields, adjustments_repo):
        item = await ledger.create(owner_id, item_fields, 10)

        first = await ledger.adjust(item.id, owner_id, -2, "Production Usage", idempotency_key="req-1")
        second = await ledger.adjust(item.id, owner_id, -2, "Production Usage", idempotency_key="req-1")

        assert second.replayed is True
        assert second.adjustment.id == first.adjustment.id
        assert second.item.quantity == Decimal("8")
        assert (await adjustments_repo.ledger_total(item.id)) == (Decimal("8"), 2)

    async def test_same_key_on_another_item_is_independent(self, ledger, owner_id, item_fields):
        a = await ledger.create(owner_id, item_fields, 10)
        b = await ledger.create(owner_id, {**item_fields, "name": "Basil"}, 10)

        await ledger.adjust(a.id, owner_id, -1, "Production Usage", idempotency_key="req-1")
        result = await ledger.adjust(b.id, owner_id, -1, "Production Usage", idempotency_key="req-1")

        assert result.replayed is False
        assert result.item.quantity == Decimal("9")

    async def test_concurrent_requests_with_one_key_apply_once(self, ledger, owner_id, item_fields, adjustments_repo):
        item = await ledger.create(owner_id, item_fields, 10)

        results = await asyncio.gather(
            ledger.adjust(item.id, owner_id, 5, "Delivery Received", idempotency_key="k1"),
            ledger.adjust(item.id, owner_id, 5, "Delivery Received", idempotency_key="k1"),
        )

        assert (await ledger.get_item(item.id, owner_id)).quantity == Decimal("15")
        assert results[0].adjustment.id == results[1].adjustment.id
        assert sorted(r.replayed for r in results) == [False, True]
        records = await adjustments_repo.list_by_item(item.id)
        assert [r.idempotency_key for r in records].count("k1") == 1
        assert await _sum_invariant_holds(ledger, item.id, owner_id)

    async def test_duplicate_key_after_both_increments_is_reverted(self, owner_id, item_fields, items_repo):
        adjustments = SlowKeyLookup()
        ledger = LedgerService(items_repo, adjustments, timeout=1)
        item = await ledger.create(owner_id, item_fields, 10)

        results = await asyncio.gather(
            ledger.adjust(item.id, owner_id, 5, "Delivery Received", idempotency_key="k1"),
            ledger.adjust(item.id, owner_id, 5, "Delivery Received", idempotency_key="k1"),
        )

        replayed = [r for r in results if r.replayed]
        assert len(replayed) == 1
        assert replayed[0].item.quantity == Decimal("15")
        assert (await ledger.get_item(item.id, owner_id)).quantity == Decimal("15")
        assert (await adjustments.ledger_total(item.id)) == (Decimal("15"), 2)

    async def test_memory_repository_refuses_duplicate_keys(self, adjustments_repo, owner_id):
        item_id = uuid.uuid4()
        now = datetime.now(timezone.utc)
        await adjustments_repo.append(
            build_adjustment_record(item_id, 0, 1, 1, "Other", owner_id, now, idempotency_key="k1")
        )

        with pytest.raises(DuplicateKey):
            await adjustments_repo.append(
                build_adjustment_record(item_id, 1, 2, 1, "Other", owner_id, now, idempotency_key="k1")
            )
        # Records without a key are never considered duplicates
        await adjustments_repo.append(build_adjustment_record(item_id, 1, 2, 1, "Other", owner_id, now))
        await adjustments_repo.append(build_adjustment_record(item_id, 2, 3, 1, "Other", owner_id, now))
        assert (await adjustments_repo.ledger_total(item_id))[1] == 3

    async def test_failed_append_after_update_is_a_partial_failure(self, owner_id, item_fields, items_repo):
        adjustments = FlakyAdjustments()
        ledger = LedgerService(items_repo, adjustments, timeout=1)
        item = await ledger.create(owner_id, item_fields, 10)
        adjustments.append_failures = 2

        with pytest.raises(PartialFailure) as exc:
            await ledger.adjust(item.id, owner_id, -4, "Production Usage")

        assert exc.value.operation == "adjust"
        assert (await ledger.get_item(item.id, owner_id)).quantity == Decimal("6")
        check = await ledger.verify_ledger(item.id, owner_id)
        assert not check.consistent
        assert check.drift == Decimal("-4")

    async def test_storage_timeout(self, owner_id, item_fields, adjustments_repo):
        items = SlowItems()
        ledger = LedgerService(items, adjustments_repo, timeout=0.05)
        item = await ledger.create(owner_id, item_fields, 10)

        with pytest.raises(StorageTimeout) as exc:
            await ledger.adjust(item.id, owner_id, 1, "Delivery Received")

        assert exc.value.retryable is True
        assert exc.value.operation == "items.find_by_id"
        assert (await adjustments_repo.ledger_total(item.id)) == (Decimal("10"), 1)

    async def test_per_call_timeout_overrides_default(self, owner_id, item_fields, adjustments_repo):
        ledger = LedgerService(SlowItems(), adjustments_repo, timeout=0.05)
        item = await ledger.create(owner_id, item_fields, 10)

        result = await ledger.adjust(item.id, owner_id, 1, "Delivery Received", timeout=2)

        assert result.item.quantity == Decimal("11")


class TestDelete:
    async def test_delete_removes_item_and_history(self, ledger, owner_id, item_fields, adjustments_repo):
        item = await ledger.create(owner_id, item_fields, 10)
        await ledger.adjust(item.id, owner_id, 2, "Delivery Received")

        await ledger.delete(item.id, owner_id)

        with pytest.raises(NotFound):
            await ledger.get_item(item.id, owner_id)
        assert await adjustments_repo.list_by_item(item.id) == []

    async def test_delete_missing_item(self, ledger, owner_id):
        with pytest.raises(NotFound):
            await ledger.delete(uuid.uuid4(), owner_id)

    async def test_cascade_is_retried(self, owner_id, item_fields, items_repo):
        adjustments = FlakyAdjustments(delete_failures=2)
        ledger = LedgerService(items_repo, adjustments, timeout=1, cascade_attempts=3)
        item = await ledger.create(owner_id, item_fields, 10)

        await ledger.delete(item.id, owner_id)

        assert adjustments.delete_calls == 3
        assert await adjustments.list_by_item(item.id) == []

    async def test_cascade_exhausted_is_a_partial_failure(self, owner_id, item_fields, items_repo):
        adjustments = FlakyAdjustments(delete_failures=5)
        ledger = LedgerService(items_repo, adjustments, timeout=1, cascade_attempts=3)
        item = await ledger.create(owner_id, item_fields, 10)

        with pytest.raises(PartialFailure) as exc:
            await ledger.delete(item.id, owner_id)

        assert exc.value.operation == "delete"
        assert adjustments.delete_calls == 3
        assert await items_repo.find_by_id(item.id, owner_id) is None


class TestReadsAndEdits:
    async def test_history_is_newest_first_and_limited(self, owner_id, item_fields, items_repo, adjustments_repo):
        ledger = LedgerService(items_repo, adjustments_repo, timeout=1, clock=TickingClock(), history_limit=3)
        item = await ledger.create(owner_id, item_fields, 1)
        for delta in (1, 2, 3, 4):
            await ledger.adjust(item.id, owner_id, delta, "Delivery Received")

        history = await ledger.list_adjustments(item.id, owner_id)
        assert [r.delta for r in history] == [4, 3, 2]

        full = await ledger.list_adjustments(item.id, owner_id, limit=50)
        assert [r.delta for r in full] == [4, 3, 2, 1, 1]

    async def test_list_items_filters(self, ledger, owner_id, item_fields):
        await ledger.create(owner_id, item_fields, 2)
        await ledger.create(owner_id, {**item_fields, "name": "basil", "category": "Spices & Herbs"}, 50)
        await ledger.create(uuid.uuid4(), {**item_fields, "name": "Not mine"}, 1)

        names = [it.name for it in await ledger.list_items(owner_id)]
        assert names == ["basil", "Mozzarella"]

        assert [it.name for it in await ledger.list_items(owner_id, search="MOZZ")] == ["Mozzarella"]
        assert [it.name for it in await ledger.list_items(owner_id, search="herbs")] == ["basil"]
        assert [it.name for it in await ledger.list_items(owner_id, category="cheeses")] == ["Mozzarella"]
        assert [it.name for it in await ledger.list_items(owner_id, low_stock=True)] == ["Mozzarella"]

    async def test_update_fields(self, ledger, owner_id, item_fields):
        item = await ledger.create(owner_id, item_fields, 10)

        updated = await ledger.update_item(item.id, owner_id, {"supplier": "Cheese Co", "price": "13.25"})

        assert updated.supplier == "Cheese Co"
        assert updated.price == Decimal("13.25")
        assert updated.quantity == Decimal("10")

    async def test_update_refuses_quantity(self, ledger, owner_id, item_fields):
        item = await ledger.create(owner_id, item_fields, 10)

        with pytest.raises(ValidationError) as exc:
            await ledger.update_item(item.id, owner_id, {"quantity": 99})

        assert "quantity" in exc.value.fields
        assert (await ledger.get_item(item.id, owner_id)).quantity == Decimal("10")

    async def test_empty_update_returns_item(self, ledger, owner_id, item_fields):
        item = await ledger.create(owner_id, item_fields, 10)

        assert (await ledger.update_item(item.id, owner_id, {})).id == item.id

    async def test_update_missing_item(self, ledger, owner_id):
        with pytest.raises(NotFound):
            await ledger.update_item(uuid.uuid4(), owner_id, {"supplier": "Cheese Co"})

    async def test_verify_ledger_detects_drift(self, ledger, owner_id, item_fields, adjustments_repo):
        item = await ledger.create(owner_id, item_fields, 10)
        await adjustments_repo.append(
            build_adjustment_record(item.id, 10, 11, 1, "Other", owner_id, datetime.now(timezone.utc))
        )

        check = await ledger.verify_ledger(item.id, owner_id)

        assert check.adjustment_count == 2
        assert check.ledger_total == Decimal("11")
        assert check.drift == Decimal("-1")
        assert not check.consistent
