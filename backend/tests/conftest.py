import os

# Must be set before core.config is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")

import uuid  # noqa: E402
from dataclasses import dataclass  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from db.database import create_db_and_tables  # noqa: E402
from services.ledger import LedgerService  # noqa: E402
from services.memory import InMemoryAdjustmentRepository, InMemoryItemRepository  # noqa: E402


def pytest_collection_modifyitems(config, items):
    """Mark tests by module name."""
    for item in items:
        name = Path(item.fspath).name
        if name in ("test_quantity.py", "test_validation.py"):
            item.add_marker(pytest.mark.domain)
        elif name == "test_ledger_service.py":
            item.add_marker(pytest.mark.application)
        else:
            item.add_marker(pytest.mark.integration)


@dataclass
class FakeUser:
    id: uuid.UUID
    is_active: bool = True
    is_superuser: bool = False


@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
def current_user(owner_id):
    return FakeUser(id=owner_id)


@pytest.fixture
def item_fields():
    return {
        "name": "Mozzarella",
        "category": "Cheeses",
        "unit": "kg",
        "supplier": "Dairy Bros",
        "min_stock": 5,
        "price": 12.5,
    }


@pytest.fixture
def items_repo():
    return InMemoryItemRepository()


@pytest.fixture
def adjustments_repo():
    return InMemoryAdjustmentRepository()


@pytest.fixture
def ledger(items_repo, adjustments_repo):
    return LedgerService(items_repo, adjustments_repo, timeout=1)


@pytest.fixture
async def sql_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def sql_session(sql_engine):
    maker = async_sessionmaker(sql_engine, expire_on_commit=False)
    async with maker() as session:
        yield session
