"""Shared fixtures: throwaway sqlite database, controllable clock, session registry, scripted ledger."""
import asyncio

import pytest
import pytest_asyncio

from file_market.core.errors import PaymentFailureReason
from file_market.core.ledger import PayResult
from file_market.core.sessions import SessionRegistry
from file_market.db.migrations import run_migrations
from file_market.db.session import dispose_engine, init_engine
from file_market.repo import UsersRepo

SELLER = "1001"
BUYER = "2002"


class FakeLedger:
    """
    Cards in `good_cards` pay, everything else is rejected.
    barrier: pay() waits until that many payers arrived.
    resolve_barrier: same for resolve_destination_account().
    """

    def __init__(self, good_cards=("GOOD",), barrier=0, resolve_barrier=0):
        self.good_cards = set(good_cards)
        self.calls = []
        self.resolved = 0
        self._barrier = barrier
        self._resolve_barrier = resolve_barrier
        self._paid = asyncio.Event()
        self._all_resolved = asyncio.Event()

    async def pay(self, card_code, to_id, amount_sats):
        self.calls.append((card_code, to_id, amount_sats))
        if self._barrier:
            if len(self.calls) >= self._barrier:
                self._paid.set()
            await asyncio.wait_for(self._paid.wait(), timeout=5)
        if card_code in self.good_cards:
            return PayResult(success=True, tx_id=f"tx-{len(self.calls)}")
        return PayResult(
            success=False,
            error="Insufficient balance",
            status=400,
            reason=PaymentFailureReason.LEDGER_REJECTED,
        )

    async def resolve_destination_account(self, user_id, card_code):
        self.resolved += 1
        if self._resolve_barrier:
            if self.resolved >= self._resolve_barrier:
                self._all_resolved.set()
            await asyncio.wait_for(self._all_resolved.wait(), timeout=5)
        return f"acct-{user_id}"


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh file-backed sqlite per test (file, so concurrent connections share it)."""
    init_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await run_migrations()
    yield
    await dispose_engine()


@pytest_asyncio.fixture
async def seller(db):
    await UsersRepo.ensure_user(SELLER)
    return SELLER


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return SessionRegistry(browse_ttl=900, upload_ttl=300, clock=clock)
