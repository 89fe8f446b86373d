"""
Solana blockchain interaction for Shroud

This module implements the orchestrator's collaborators on Solana:
- Smart wallet provisioning for derived identities
- Privacy pool deposits and withdrawals
- Pool deposit history and balance queries
"""

import asyncio
import hashlib
import json
import logging
import struct
from typing import Any, Iterable, Optional, Sequence, Tuple

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import Transaction

from .config import SendConfig
from .derivation import routing_id
from .errors import ProvisioningTimeout
from .types import BurnerWallet, DerivedIdentity

logger = logging.getLogger(__name__)

# Seeds for PDAs
WALLET_SEED = b"swig"
TREE_SEED = b"merkle_tree"
TREE_TOKEN_SEED = b"tree_token"
NULLIFIER_SEED = b"nullifier"

# Transactions fetched per round trip when scanning pool history
HISTORY_BATCH_SIZE = 10


def find_wallet_pda(program_id: Pubkey, wallet_id: bytes) -> Tuple[Pubkey, int]:
    """Derive the smart wallet PDA for a 32-byte routing id"""
    return Pubkey.find_program_address([WALLET_SEED, wallet_id], program_id)


def find_tree_pda(program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Derive the pool merkle tree PDA"""
    return Pubkey.find_program_address([TREE_SEED], program_id)


def find_tree_token_pda(program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Derive the pool tree token account (where deposits land)"""
    return Pubkey.find_program_address([TREE_TOKEN_SEED], program_id)


def find_nullifier_pda(
    program_id: Pubkey, tree: Pubkey, nullifier: bytes
) -> Tuple[Pubkey, int]:
    """Derive the nullifier marker PDA address"""
    return Pubkey.find_program_address(
        [NULLIFIER_SEED, bytes(tree), nullifier], program_id
    )


def _discriminator(name: str) -> bytes:
    # Anchor convention: first 8 bytes of sha256("global:<name>")
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def make_commitment(amount: int, secret: bytes, nonce: bytes) -> bytes:
    """
    Deposit commitment: sha3_256(amount || secret || nonce)

    ``nonce`` is the blockhash the deposit transaction was built on, so
    repeated deposits of the same amount by the same identity differ and
    the note can be rebuilt from the deposit transaction.
    """
    return hashlib.sha3_256(struct.pack("<Q", amount) + secret + nonce).digest()


def make_nullifier(
    secret: bytes, nonce: bytes, recipient: Pubkey, amount: int
) -> bytes:
    """Nullifier for one withdrawal of ``amount`` to ``recipient`` from the note ``nonce``"""
    return hashlib.sha3_256(
        NULLIFIER_SEED + secret + nonce + bytes(recipient) + struct.pack("<Q", amount)
    ).digest()


def make_withdraw_proof(
    nullifier: bytes,
    recipient: Pubkey,
    amount: int,
    root: bytes,
    keypair: Keypair,
) -> bytes:
    """
    Withdrawal authorisation

    Ed25519 signature over sha3_256(nullifier || recipient || amount || root)
    followed by the signer's public key, 96 bytes in total.
    """
    message = nullifier + bytes(recipient) + struct.pack("<Q", amount) + root
    signature = keypair.sign_message(hashlib.sha3_256(message).digest())
    return bytes(signature) + bytes(keypair.pubkey())


def parse_deposit_transfers(transaction: Any, destination: str) -> list[int]:
    """
    Extract system transfers into ``destination`` from a jsonParsed transaction

    Walks every ``instructions`` list in the payload, inner instructions
    included.
    """
    amounts: list[int] = []

    def visit(node: Any) -> None:
        if isinstance(node, dict):
            parsed = node.get("parsed")
            if node.get("program") == "system" and isinstance(parsed, dict):
                info = parsed.get("info") or {}
                if parsed.get("type") == "transfer" and info.get("destination") == destination:
                    lamports = int(info.get("lamports", 0))
                    if lamports > 0:
                        amounts.append(lamports)
                return
            for value in node.values():
                visit(value)
        elif isinstance(node, list):
            for item in node:
                visit(item)

    visit(transaction)
    return amounts


class InstructionBuilder:
    """Builds smart wallet and privacy pool instructions"""

    CREATE_WALLET_DISC = _discriminator("create_wallet")
    DEPOSIT_DISC = _discriminator("deposit")
    WITHDRAW_DISC = _discriminator("withdraw")

    def __init__(self, wallet_program_id: Pubkey, pool_program_id: Pubkey):
        """Initialize instruction builder.

        Args:
            wallet_program_id: Smart wallet program public key
            pool_program_id: Privacy pool program public key
        """
        self.wallet_program_id = wallet_program_id
        self.pool_program_id = pool_program_id

    def create_wallet(
        self,
        payer: Pubkey,
        authority: Pubkey,
        wallet_id: bytes,
    ) -> Instruction:
        """Build create smart wallet instruction"""
        if len(wallet_id) != 32:
            raise ValueError("Wallet id must be 32 bytes")

        wallet, bump = find_wallet_pda(self.wallet_program_id, wallet_id)

        accounts = [
            AccountMeta(wallet, is_signer=False, is_writable=True),
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]

        # Instruction data: discriminator + id (32 bytes) + bump (u8) + authority (32 bytes)
        data = (
            self.CREATE_WALLET_DISC
            + wallet_id
            + struct.pack("<B", bump)
            + bytes(authority)
        )

        return Instruction(self.wallet_program_id, data, accounts)

    def deposit(
        self,
        wallet: Pubkey,
        authority: Pubkey,
        commitment: bytes,
        amount: int,
    ) -> Instruction:
        """Build pool deposit instruction"""
        if len(commitment) != 32:
            raise ValueError("Commitment must be 32 bytes")

        tree, _tree_bump = find_tree_pda(self.pool_program_id)
        tree_token, _token_bump = find_tree_token_pda(self.pool_program_id)

        accounts = [
            AccountMeta(tree, is_signer=False, is_writable=True),
            AccountMeta(tree_token, is_signer=False, is_writable=True),
            AccountMeta(wallet, is_signer=False, is_writable=True),
            AccountMeta(authority, is_signer=True, is_writable=False),
            AccountMeta(self.wallet_program_id, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]

        # Instruction data: discriminator + commitment (32 bytes) + amount (u64)
        data = self.DEPOSIT_DISC + commitment + struct.pack("<Q", amount)

        return Instruction(self.pool_program_id, data, accounts)

    def withdraw(
        self,
        relayer: Pubkey,
        recipient: Pubkey,
        nullifier: bytes,
        amount: int,
        proof: bytes,
    ) -> Instruction:
        """Build pool withdraw instruction"""
        if len(nullifier) != 32:
            raise ValueError("Nullifier must be 32 bytes")

        tree, _tree_bump = find_tree_pda(self.pool_program_id)
        tree_token, _token_bump = find_tree_token_pda(self.pool_program_id)
        nullifier_marker, _null_bump = find_nullifier_pda(
            self.pool_program_id, tree, nullifier
        )

        accounts = [
            AccountMeta(tree, is_signer=False, is_writable=True),
            AccountMeta(nullifier_marker, is_signer=False, is_writable=True),
            AccountMeta(tree_token, is_signer=False, is_writable=True),
            AccountMeta(recipient, is_signer=False, is_writable=True),
            AccountMeta(relayer, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]

        # Instruction data: discriminator + nullifier + amount + proof
        data = (
            self.WITHDRAW_DISC
            + nullifier
            + struct.pack("<Q", amount)
            + struct.pack("<I", len(proof))
            + proof
        )

        return Instruction(self.pool_program_id, data, accounts)


class SolanaClient:
    """
    Solana implementation of the private send collaborators

    Serves as pool history, wallet provisioner, pool gateway and balance
    source for ``PrivateSendOrchestrator``.
    """

    def __init__(
        self,
        config: Optional[SendConfig] = None,
        fee_payer: Optional[Keypair] = None,
    ):
        """
        Initialize Solana client

        Args:
            config: Send configuration (RPC endpoint, program ids, timeouts)
            fee_payer: Keypair paying transaction fees; falls back to
                ``config.fee_payer`` and then to the acting identity
        """
        self.config = config or SendConfig()
        self.client = AsyncClient(self.config.rpc_url)
        self.wallet_program_id = Pubkey.from_string(self.config.wallet_program_id)
        self.pool_program_id = Pubkey.from_string(self.config.pool_program_id)
        self.instruction_builder = InstructionBuilder(
            self.wallet_program_id, self.pool_program_id
        )
        self.tree_pda, _ = find_tree_pda(self.pool_program_id)
        self.tree_token_pda, _ = find_tree_token_pda(self.pool_program_id)

        if fee_payer is None and self.config.fee_payer:
            fee_payer = Keypair.from_base58_string(self.config.fee_payer)
        self.fee_payer = fee_payer

        # Latest deposit nonce per wallet address, spent by later withdrawals
        self._notes: dict[str, bytes] = {}

    # =========================================================================
    # Transactions
    # =========================================================================

    async def get_recent_blockhash(self) -> Hash:
        """Get recent blockhash for transaction"""
        response = await self.client.get_latest_blockhash(commitment=Confirmed)
        return response.value.blockhash

    async def send_transaction(
        self,
        instructions: Sequence[Instruction],
        signers: Sequence[Keypair],
        blockhash: Optional[Hash] = None,
    ) -> Signature:
        """Sign and send instructions; the first signer pays the fee"""
        if blockhash is None:
            blockhash = await self.get_recent_blockhash()

        message = Message.new_with_blockhash(
            list(instructions), signers[0].pubkey(), blockhash
        )
        tx = Transaction.new_unsigned(message)
        tx.sign(list(signers), blockhash)

        response = await self.client.send_transaction(
            tx, opts=TxOpts(preflight_commitment=Confirmed)
        )
        return response.value

    async def confirm(self, signature: Signature, timeout: float) -> None:
        """
        Wait until the transaction reaches confirmed commitment

        Raises:
            asyncio.TimeoutError: If it did not confirm within ``timeout``
            RuntimeError: If it landed but failed on-chain
        """
        response = await asyncio.wait_for(
            self.client.confirm_transaction(signature, commitment=Confirmed),
            timeout=timeout,
        )
        statuses = response.value
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise RuntimeError(f"Transaction {signature} failed: {status.err}")

    def _payer(self, actor: Keypair) -> Keypair:
        return self.fee_payer if self.fee_payer is not None else actor

    def _signers(self, actor: Keypair) -> list[Keypair]:
        payer = self._payer(actor)
        if payer.pubkey() == actor.pubkey():
            return [actor]
        return [payer, actor]

    # =========================================================================
    # Queries
    # =========================================================================

    async def account_exists(self, address: Pubkey) -> bool:
        """Check if an account exists on-chain"""
        response = await self.client.get_account_info(address, commitment=Confirmed)
        return response.value is not None

    async def get_balance(self, address: str) -> int:
        """Lamport balance of ``address``"""
        response = await self.client.get_balance(
            Pubkey.from_string(address), commitment=Confirmed
        )
        return response.value

    async def get_merkle_root(self) -> bytes:
        """
        Get current Merkle root from on-chain state

        Returns:
            Merkle root bytes (32 bytes)
        """
        response = await self.client.get_account_info(
            self.tree_pda, commitment=Confirmed
        )
        if response.value is None:
            return bytes(32)

        data = bytes(response.value.data)
        # Skip 8-byte account discriminator
        if len(data) < 8 + 32:
            return bytes(32)
        return data[8:40]

    async def recent_deposit_amounts(self, limit: int = 100) -> list[int]:
        """
        Query recent pool deposit amounts

        Scans the latest transactions touching the tree token account for
        system transfers into it. RPC failures yield whatever was collected
        so far; an empty history only disables chunk matching.

        Args:
            limit: Number of recent signatures to scan

        Returns:
            Unique deposit amounts in ascending order
        """
        destination = str(self.tree_token_pda)
        amounts: list[int] = []

        try:
            response = await self.client.get_signatures_for_address(
                self.tree_token_pda, limit=limit, commitment=Confirmed
            )
            signatures = [status.signature for status in response.value]

            for batch in _batched(signatures, HISTORY_BATCH_SIZE):
                results = await asyncio.gather(
                    *(
                        self.client.get_transaction(
                            sig,
                            encoding="jsonParsed",
                            commitment=Confirmed,
                            max_supported_transaction_version=0,
                        )
                        for sig in batch
                    )
                )
                for result in results:
                    if result.value is None:
                        continue
                    payload = json.loads(result.value.to_json())
                    amounts.extend(parse_deposit_transfers(payload, destination))
        except Exception as e:
            logger.warning("Error querying previous deposits: %s", e)

        return sorted(set(amounts))

    # =========================================================================
    # Wallet provisioning
    # =========================================================================

    def wallet_address(self, identity: DerivedIdentity) -> str:
        """Smart wallet address owned by ``identity``"""
        wallet, _ = find_wallet_pda(
            self.wallet_program_id, routing_id(identity.public_address)
        )
        return str(wallet)

    async def ensure_wallet(self, identity: DerivedIdentity) -> BurnerWallet:
        """
        Get or create the smart wallet for ``identity``

        Raises:
            ProvisioningTimeout: If creation did not confirm in time
        """
        address = self.wallet_address(identity)
        if await self.account_exists(Pubkey.from_string(address)):
            return BurnerWallet(identity=identity, wallet_address=address, provisioned=True)

        logger.info("Creating smart wallet %s for identity %d", address, identity.index)
        keypair = identity.keypair()
        payer = self._payer(keypair)
        instruction = self.instruction_builder.create_wallet(
            payer.pubkey(), keypair.pubkey(), routing_id(identity.public_address)
        )
        signature = await self.send_transaction([instruction], [payer])

        timeout = self.config.provisioning_timeout_seconds
        try:
            await self.confirm(signature, timeout)
        except asyncio.TimeoutError as e:
            raise ProvisioningTimeout(address, timeout) from e

        return BurnerWallet(identity=identity, wallet_address=address, provisioned=True)

    # =========================================================================
    # Pool operations
    # =========================================================================

    async def deposit(self, wallet: BurnerWallet, amount: int) -> str:
        """
        Deposit lamports from a smart wallet into the pool

        Args:
            wallet: Funding wallet
            amount: Lamports to deposit

        Returns:
            Transaction signature
        """
        keypair = wallet.identity.keypair()
        blockhash = await self.get_recent_blockhash()
        nonce = bytes(blockhash)
        commitment = make_commitment(amount, wallet.identity.secret, nonce)

        instruction = self.instruction_builder.deposit(
            Pubkey.from_string(wallet.wallet_address),
            keypair.pubkey(),
            commitment,
            amount,
        )
        signature = await self.send_transaction(
            [instruction], self._signers(keypair), blockhash=blockhash
        )
        await self.confirm(signature, self.config.provisioning_timeout_seconds)
        self._notes[wallet.wallet_address] = nonce
        return str(signature)

    async def withdraw(self, wallet: BurnerWallet, amount: int, recipient: str) -> str:
        """
        Withdraw lamports deposited by ``wallet`` to ``recipient``

        Args:
            wallet: Wallet whose deposit is spent
            amount: Lamports to withdraw
            recipient: Destination address (base58 pubkey)

        Returns:
            Transaction signature

        Raises:
            RuntimeError: If ``wallet`` made no deposit through this client
        """
        nonce = self._notes.get(wallet.wallet_address)
        if nonce is None:
            raise RuntimeError(f"No pool deposit from {wallet.wallet_address} to withdraw")

        keypair = wallet.identity.keypair()
        destination = Pubkey.from_string(recipient)

        nullifier = make_nullifier(wallet.identity.secret, nonce, destination, amount)
        root = await self.get_merkle_root()
        proof = make_withdraw_proof(nullifier, destination, amount, root, keypair)

        # The proof carries the owner signature; only the relayer signs the transaction
        relayer = self._payer(keypair)
        instruction = self.instruction_builder.withdraw(
            relayer.pubkey(), destination, nullifier, amount, proof
        )
        signature = await self.send_transaction([instruction], [relayer])
        await self.confirm(signature, self.config.provisioning_timeout_seconds)
        return str(signature)

    async def close(self) -> None:
        """Close RPC connection"""
        await self.client.close()


def _batched(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]
