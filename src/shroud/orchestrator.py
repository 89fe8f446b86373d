"""
Private send orchestration

Routes a transfer through the privacy pool twice:

    deposit -> delay -> fan-out to burners -> fan-in -> delay -> withdraw

Each of the 11 steps reports progress through a callback. The first failure
stops the run; nothing is rolled back because broadcast transactions are
final, and burner wallets can always be re-derived from the master secret.
"""

import asyncio
import logging
import random
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from .config import SendConfig
from .derivation import derive_identity
from .errors import (
    CollaboratorFailure,
    InsufficientAmount,
    InsufficientBalance,
    PrivateSendError,
    ProgressCallbackError,
)
from .gateway import BalanceSource, PoolGateway, PoolHistory, WalletProvisioner
from .planner import equal_split, plan_chunks
from .scheduler import format_duration, leg_delay, sleep_with_countdown
from .types import (
    BurnerWallet,
    DerivedIdentity,
    PrivateSendRequest,
    PrivateSendResult,
    StepState,
    StepStatus,
)
from .utils import lamports_to_sol

logger = logging.getLogger(__name__)

StepCallback = Callable[[StepStatus], None]

TOTAL_STEPS = 11

STEP_TITLES = {
    1: "Query previous deposits",
    2: "Setup main wallet",
    3: "Deposit to pool",
    4: "Wait for indexing",
    5: "Wait delay",
    6: "Create burner wallets",
    7: "Withdraw to burners",
    8: "Deposit from burners",
    9: "Wait for indexing",
    10: "Wait delay",
    11: "Withdraw to destination",
}


def validate_send(
    master_secret: Union[str, bytes],
    recipient: str,
    total_amount: int,
    chunk_count: int,
    config: SendConfig,
) -> None:
    """
    Check private send inputs without touching any collaborator

    Raises:
        ValidationError: On malformed input
        InsufficientAmount: If the amount cannot fill every chunk
    """
    PrivateSendRequest(
        master_secret=master_secret,
        recipient=recipient,
        total_amount=total_amount,
        chunk_count=chunk_count,
        min_chunks=config.min_chunks,
        max_chunks=config.max_chunks,
    ).validate()
    if total_amount < chunk_count:
        raise InsufficientAmount(total_amount, chunk_count)


def initial_steps(chunk_count: int) -> list[StepStatus]:
    """Pending snapshots for every step, for display before a run starts"""
    steps = []
    for step, title in STEP_TITLES.items():
        if step == 6:
            title = f"Create {chunk_count} burner wallets"
        steps.append(StepStatus(step=step, message=title, status=StepState.PENDING))
    return steps


class StepTracker:
    """
    State machine for the pipeline steps

    Each step moves pending -> running -> (completed | error) and never goes
    back. Every transition and progress message is published as an
    immutable ``StepStatus`` snapshot.
    """

    _ALLOWED = {
        StepState.PENDING: {StepState.RUNNING},
        StepState.RUNNING: {StepState.RUNNING, StepState.COMPLETED, StepState.ERROR},
        StepState.COMPLETED: set(),
        StepState.ERROR: set(),
    }

    def __init__(self, on_update: Optional[StepCallback] = None, total_steps: int = TOTAL_STEPS):
        self._on_update = on_update
        self._states = {step: StepState.PENDING for step in range(1, total_steps + 1)}
        self._history: list[StepStatus] = []

    @property
    def history(self) -> list[StepStatus]:
        """Every snapshot published so far"""
        return list(self._history)

    def state(self, step: int) -> StepState:
        return self._states[step]

    def _transition(self, step: int, status: StepState, message: str) -> StepStatus:
        current = self._states[step]
        if status not in self._ALLOWED[current]:
            raise RuntimeError(
                f"Illegal transition for step {step}: {current.value} -> {status.value}"
            )
        # Steps run strictly in order
        for earlier in range(1, step):
            if not self._states[earlier].is_terminal:
                raise RuntimeError(f"Step {step} started before step {earlier} finished")

        self._states[step] = status
        snapshot = StepStatus(step=step, message=message, status=status)
        self._history.append(snapshot)
        if self._on_update is not None:
            try:
                self._on_update(snapshot)
            except Exception as e:
                # The run cannot report progress any more; the step ends here
                if not status.is_terminal:
                    self._states[step] = StepState.ERROR
                raise ProgressCallbackError(step, e) from e
        return snapshot

    def start(self, step: int, message: str) -> StepStatus:
        logger.info("Step %d: %s", step, message)
        return self._transition(step, StepState.RUNNING, message)

    def progress(self, step: int, message: str) -> StepStatus:
        logger.debug("Step %d: %s", step, message)
        return self._transition(step, StepState.RUNNING, message)

    def complete(self, step: int, message: str) -> StepStatus:
        logger.info("Step %d completed: %s", step, message)
        return self._transition(step, StepState.COMPLETED, message)

    def fail(self, step: int, message: str) -> StepStatus:
        logger.error("Step %d failed: %s", step, message)
        return self._transition(step, StepState.ERROR, message)


def _report_failure(tracker: StepTracker, step: int, message: str) -> None:
    # The step's own error is raised by the caller either way
    try:
        tracker.fail(step, message)
    except ProgressCallbackError as e:
        logger.warning("Could not report failure of step %d: %s", step, e.__cause__)


class _StepHandle:
    def __init__(self, tracker: StepTracker, step: int, message: str):
        self.tracker = tracker
        self.step = step
        self.message = message
        self.done_message = message

    def update(self, message: str) -> None:
        self.message = message
        self.tracker.progress(self.step, message)

    def done(self, message: str) -> None:
        self.done_message = message


class PrivateSendOrchestrator:
    """
    Drives a private send through the privacy pool

    Example:
        ```python
        client = SolanaClient(config)
        orchestrator = PrivateSendOrchestrator(
            history=client, provisioner=client, pool=client, balances=client
        )
        result = await orchestrator.execute(
            master_secret=my_secret,
            recipient="recipient_address",
            total_amount=1_000_000_000,  # 1 SOL in lamports
            chunk_count=4,
            on_step_update=print,
        )
        ```
    """

    def __init__(
        self,
        history: PoolHistory,
        provisioner: WalletProvisioner,
        pool: PoolGateway,
        balances: Optional[BalanceSource] = None,
        config: Optional[SendConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the orchestrator

        Args:
            history: Source of recent pool deposit amounts
            provisioner: Creates smart wallets for derived identities
            pool: Pool deposit/withdraw primitives
            balances: Optional balance lookup for the sender check
            config: Timing and bounds configuration
            sleep: Awaitable sleep used for every wait
            clock: Monotonic clock used by countdowns
            rng: Random source for chunk planning
        """
        self.history = history
        self.provisioner = provisioner
        self.pool = pool
        self.balances = balances
        self.config = config or SendConfig()
        self._sleep = sleep
        self._clock = clock
        self._rng = rng

    @asynccontextmanager
    async def _step(
        self, tracker: StepTracker, step: int, message: str
    ) -> AsyncIterator[_StepHandle]:
        handle = _StepHandle(tracker, step, message)
        tracker.start(step, message)
        try:
            yield handle
        except ProgressCallbackError:
            raise
        except PrivateSendError as e:
            _report_failure(tracker, step, str(e))
            raise
        except Exception as e:
            _report_failure(tracker, step, f"{handle.message} failed: {e}")
            raise CollaboratorFailure(step, handle.message, e) from e
        tracker.complete(step, handle.done_message)

    def validate(
        self,
        master_secret: Union[str, bytes],
        recipient: str,
        total_amount: int,
        chunk_count: int,
    ) -> None:
        """
        Check inputs without touching any collaborator

        Raises:
            ValidationError: On malformed input
            InsufficientAmount: If the amount cannot fill every chunk
        """
        validate_send(master_secret, recipient, total_amount, chunk_count, self.config)

    async def execute(
        self,
        master_secret: Union[str, bytes],
        recipient: str,
        total_amount: int,
        chunk_count: int,
        on_step_update: Optional[StepCallback] = None,
    ) -> PrivateSendResult:
        """
        Run the full private send pipeline

        Args:
            master_secret: 32-byte seed (bytes or hex) all wallets derive from
            recipient: Final destination address
            total_amount: Lamports to route
            chunk_count: Privacy level (number of burner wallets)
            on_step_update: Receives a snapshot on every step transition

        Returns:
            Result with every transaction signature in broadcast order

        Raises:
            ValidationError: Before any step, on malformed input
            InsufficientAmount: Before any step, if chunks cannot be filled
            InsufficientBalance: In step 2, if the sender wallet is short
            ProvisioningTimeout: If a wallet creation does not confirm
            CollaboratorFailure: If any collaborator call fails
            ProgressCallbackError: If ``on_step_update`` raises
        """
        self.validate(master_secret, recipient, total_amount, chunk_count)

        config = self.config
        tracker = StepTracker(on_step_update)
        delay_ms = leg_delay(
            chunk_count, config.max_delay_ms, config.min_chunks, config.max_chunks
        )
        signatures: list[str] = []

        # Step 1: match chunk sizes to previous deposits
        async with self._step(tracker, 1, "Querying previous pool deposits...") as step:
            previous = await self.history.recent_deposit_amounts(config.history_limit)
            chunks = plan_chunks(
                total_amount,
                chunk_count,
                previous,
                rng=self._rng,
                min_chunks=config.min_chunks,
                max_chunks=config.max_chunks,
            )
            matched_amounts = [chunk.amount for chunk in chunks]
            logger.debug(
                "Matched amounts: %s",
                [f"{lamports_to_sol(a)} SOL" for a in matched_amounts],
            )
            step.done(f"Matched {chunk_count} chunks to previous deposits")

        # Step 2: main wallet
        async with self._step(tracker, 2, "Setting up main wallet...") as step:
            main_wallet = await self._provision(derive_identity(master_secret, 0))
            if self.balances is not None:
                balance = await self.balances.get_balance(main_wallet.wallet_address)
                required = total_amount + config.balance_buffer_lamports
                if balance < required:
                    raise InsufficientBalance(main_wallet.wallet_address, balance, required)
            step.done("Main wallet ready")

        # Step 3: first pool deposit
        async with self._step(tracker, 3, "Depositing to privacy pool...") as step:
            step.update(f"Depositing {lamports_to_sol(total_amount)} SOL to privacy pool...")
            signatures.append(await self.pool.deposit(main_wallet, total_amount))
            step.done("Deposit to pool complete")

        # Step 4: indexing buffer
        async with self._step(tracker, 4, "Waiting for deposit to be indexed...") as step:
            await self._sleep(config.indexing_buffer_seconds)
            step.done("Deposit indexed, ready for withdrawal")

        # Step 5: first privacy delay
        async with self._step(tracker, 5, "Starting privacy delay...") as step:
            await self._privacy_delay(step, delay_ms, "before withdrawal")

        # Step 6: burner wallets
        burners: list[BurnerWallet] = []
        async with self._step(tracker, 6, f"Deriving {chunk_count} burner wallets...") as step:
            for index in range(1, chunk_count + 1):
                step.update(f"Burner {index}: preparing wallet...")
                burners.append(await self._provision(derive_identity(master_secret, index)))
            step.done(f"{chunk_count} burner wallets ready")

        # Equal shares move on-chain; matched chunks are informational only
        shares = equal_split(total_amount, chunk_count)

        # Step 7: fan out to burners
        async with self._step(tracker, 7, "Withdrawing to burner wallets...") as step:
            for i, (burner, amount) in enumerate(zip(burners, shares), start=1):
                step.update(f"Withdrawing {lamports_to_sol(amount)} SOL to burner {i}...")
                signatures.append(
                    await self.pool.withdraw(main_wallet, amount, burner.wallet_address)
                )
            step.done("Withdrawn to all burner wallets")

        # Step 8: fan in from burners
        async with self._step(tracker, 8, "Depositing from burner wallets to pool...") as step:
            for i, (burner, amount) in enumerate(zip(burners, shares), start=1):
                step.update(f"Depositing from burner {i} to pool...")
                signatures.append(await self.pool.deposit(burner, amount))
            step.done("All burner deposits complete")

        # Step 9: indexing buffer
        async with self._step(tracker, 9, "Waiting for deposits to be indexed...") as step:
            await self._sleep(config.indexing_buffer_seconds)
            step.done("Deposits indexed, ready for final withdrawal")

        # Step 10: second privacy delay
        async with self._step(tracker, 10, "Starting privacy delay...") as step:
            await self._privacy_delay(step, delay_ms, "before final withdrawal")

        # Step 11: withdraw to destination
        async with self._step(tracker, 11, "Withdrawing to destination...") as step:
            for i, (burner, amount) in enumerate(zip(burners, shares), start=1):
                step.update(
                    f"Withdrawing {lamports_to_sol(amount)} SOL to destination "
                    f"({i}/{chunk_count})..."
                )
                signatures.append(await self.pool.withdraw(burner, amount, recipient))
            step.done("Private send complete!")

        return PrivateSendResult(
            success=True,
            signatures=signatures,
            total_amount=total_amount,
            recipient=recipient,
            burner_addresses=[burner.wallet_address for burner in burners],
            matched_amounts=matched_amounts,
        )

    async def _provision(self, identity: DerivedIdentity) -> BurnerWallet:
        wallet = await self.provisioner.ensure_wallet(identity)
        label = "Main wallet" if identity.is_primary else f"Burner {identity.index}"
        logger.debug("%s at %s", label, wallet.wallet_address)
        return wallet

    async def _privacy_delay(self, step: _StepHandle, delay_ms: int, purpose: str) -> None:
        if delay_ms <= 0:
            step.update("No privacy delay at this privacy level")
            step.done("Privacy delay skipped")
            return

        step.update(f"Waiting {format_duration(delay_ms)} {purpose}...")
        await sleep_with_countdown(
            delay_ms,
            lambda remaining: step.update(f"Waiting {remaining} {purpose}..."),
            sleep=self._sleep,
            clock=self._clock,
            interval=self.config.countdown_interval_seconds,
        )
        step.done("Privacy delay complete")


def recover_burners(
    master_secret: Union[str, bytes],
    count: int,
    provisioner: Optional[WalletProvisioner] = None,
) -> list[BurnerWallet]:
    """
    Rebuild the burner wallets of a previous run

    Burners are fully determined by the master secret and their index, so
    funds stranded by a failed run can be located and swept.

    Args:
        master_secret: Master secret the run used
        count: Privacy level (number of burners) the run used
        provisioner: Used only to compute wallet addresses; without one the
            identity's own public address is reported

    Returns:
        Burner wallets 1..count, not checked on-chain
    """
    wallets = []
    for index in range(1, count + 1):
        identity = derive_identity(master_secret, index)
        if provisioner is not None:
            address = provisioner.wallet_address(identity)
        else:
            address = identity.public_address
        wallets.append(BurnerWallet(identity=identity, wallet_address=address))
    return wallets


async def execute_private_send(
    master_secret: Union[str, bytes],
    recipient: str,
    total_amount: int,
    chunk_count: int,
    on_step_update: Optional[StepCallback] = None,
    config: Optional[SendConfig] = None,
) -> PrivateSendResult:
    """
    Run a private send against Solana with the default collaborators

    Args:
        master_secret: 32-byte seed (bytes or hex)
        recipient: Destination address
        total_amount: Lamports to route
        chunk_count: Privacy level
        on_step_update: Progress callback
        config: Configuration (defaults to ``SendConfig.from_env()``)

    Returns:
        Result of the completed run

    Raises:
        ValidationError: Before any step, on malformed input or configuration,
            including a missing fee payer
    """
    from .solana_client import SolanaClient

    config = config or SendConfig.from_env()
    config.validate()
    config.require_fee_payer()
    validate_send(master_secret, recipient, total_amount, chunk_count, config)

    client = SolanaClient(config)
    try:
        orchestrator = PrivateSendOrchestrator(
            history=client,
            provisioner=client,
            pool=client,
            balances=client,
            config=config,
        )
        return await orchestrator.execute(
            master_secret, recipient, total_amount, chunk_count, on_step_update
        )
    finally:
        await client.close()
