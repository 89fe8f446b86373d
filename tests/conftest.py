"""
Shared fixtures for Shroud tests

``FakeLedger`` stands in for every collaborator of the orchestrator and
records the calls it receives.
"""

import itertools
from typing import Optional

import pytest
from solders.keypair import Keypair

from shroud.config import SendConfig
from shroud.orchestrator import PrivateSendOrchestrator
from shroud.types import BurnerWallet, DerivedIdentity

MASTER_SECRET = "ab" * 32
RECIPIENT = str(Keypair.from_seed(bytes([7] * 32)).pubkey())


class FakeLedger:
    """In-memory pool history, wallet provisioner, pool gateway and balances"""

    def __init__(
        self,
        history: Optional[list[int]] = None,
        balance: int = 10**15,
        failures: Optional[dict[str, BaseException]] = None,
    ):
        self.history = list(history or [])
        self.balance = balance
        self.failures = dict(failures or {})
        self.calls: list[tuple] = []
        self.created: set[str] = set()
        self._sig = itertools.count(1)

    def _maybe_fail(self, op: str) -> None:
        if op in self.failures:
            raise self.failures[op]

    def _signature(self, op: str) -> str:
        return f"{op}_sig_{next(self._sig)}"

    async def recent_deposit_amounts(self, limit: int) -> list[int]:
        self.calls.append(("history", limit))
        self._maybe_fail("history")
        return self.history[:limit]

    def wallet_address(self, identity: DerivedIdentity) -> str:
        return identity.public_address

    async def ensure_wallet(self, identity: DerivedIdentity) -> BurnerWallet:
        self.calls.append(("ensure_wallet", identity.index))
        self._maybe_fail("ensure_wallet")
        self.created.add(identity.public_address)
        return BurnerWallet(
            identity=identity,
            wallet_address=self.wallet_address(identity),
            provisioned=True,
        )

    async def get_balance(self, address: str) -> int:
        self.calls.append(("balance", address))
        return self.balance

    async def deposit(self, wallet: BurnerWallet, amount: int) -> str:
        self.calls.append(("deposit", wallet.index, amount))
        self._maybe_fail("deposit")
        return self._signature("deposit")

    async def withdraw(self, wallet: BurnerWallet, amount: int, recipient: str) -> str:
        self.calls.append(("withdraw", wallet.index, amount, recipient))
        self._maybe_fail("withdraw")
        return self._signature("withdraw")

    def ops(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


class FakeClock:
    """Monotonic clock advanced only by its own sleep"""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def master_secret():
    return MASTER_SECRET


@pytest.fixture
def recipient():
    return RECIPIENT


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_orchestrator(clock):
    """Build an orchestrator wired to a ledger and the fake clock"""

    def _make(ledger: FakeLedger, config: Optional[SendConfig] = None) -> PrivateSendOrchestrator:
        return PrivateSendOrchestrator(
            history=ledger,
            provisioner=ledger,
            pool=ledger,
            balances=ledger,
            config=config,
            sleep=clock.sleep,
            clock=clock,
        )

    return _make


@pytest.fixture
def make_ledger():
    """Factory for ledgers with custom history, balance or failures"""
    return FakeLedger
