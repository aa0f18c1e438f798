import sys
from pathlib import Path


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists() and str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


_configure_path()

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from voltledger_billing.db.base import Base  # noqa: E402
from voltledger_billing.services.billing.store import SqlAlchemyLedgerStore  # noqa: E402


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    # One connection per session, as in production; the ledger store opens sessions concurrently
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def ledger_store(session_factory):
    return SqlAlchemyLedgerStore(session_factory)
