"""
Collaborator interfaces used by the orchestrator

The orchestrator only talks to these protocols, so any ledger or pool
backend can be plugged in. ``shroud.solana_client`` provides the Solana
implementation.
"""

from typing import Protocol, runtime_checkable

from .types import BurnerWallet, DerivedIdentity


@runtime_checkable
class PoolHistory(Protocol):
    """Read-only view of recent pool activity"""

    async def recent_deposit_amounts(self, limit: int) -> list[int]:
        """Recent deposit amounts in lamports (may be empty)"""
        ...


@runtime_checkable
class WalletProvisioner(Protocol):
    """Creates smart wallets for derived identities"""

    def wallet_address(self, identity: DerivedIdentity) -> str:
        """Address the identity's wallet has (or will have) on-chain"""
        ...

    async def ensure_wallet(self, identity: DerivedIdentity) -> BurnerWallet:
        """Return the identity's wallet, creating it first if absent"""
        ...


@runtime_checkable
class PoolGateway(Protocol):
    """Deposit into and withdraw from the privacy pool"""

    async def deposit(self, wallet: BurnerWallet, amount: int) -> str:
        """Deposit ``amount`` from ``wallet``, return the transaction signature"""
        ...

    async def withdraw(self, wallet: BurnerWallet, amount: int, recipient: str) -> str:
        """Withdraw ``amount`` owned by ``wallet`` to ``recipient``"""
        ...


@runtime_checkable
class BalanceSource(Protocol):
    """Lamport balance lookup"""

    async def get_balance(self, address: str) -> int:
        ...
