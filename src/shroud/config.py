"""
Runtime configuration for private sends

Program IDs default to placeholders. Every field can be overridden through
environment variables named ``SHROUD_<FIELD_NAME>`` (upper case).
"""

import logging
import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

from .errors import ValidationError
from .types import MAX_CHUNKS, MIN_CHUNKS
from .utils import is_valid_keypair_string, validate_solana_address

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://api.devnet.solana.com"

# Program IDs - replace with the actual deployed smart wallet and pool programs
DEFAULT_WALLET_PROGRAM_ID = "ShroudWa11et1111111111111111111111111111111"
DEFAULT_POOL_PROGRAM_ID = "ShroudPoo1111111111111111111111111111111111"

MAX_DELAY_MS = 4 * 60 * 60 * 1000  # 4 hours

# Kept in the sender wallet on top of the routed amount (0.001 SOL)
BALANCE_BUFFER_LAMPORTS = 1_000_000


@dataclass
class SendConfig:
    """Private send configuration"""

    rpc_url: str = DEFAULT_RPC_URL
    wallet_program_id: str = DEFAULT_WALLET_PROGRAM_ID
    pool_program_id: str = DEFAULT_POOL_PROGRAM_ID
    fee_payer: Optional[str] = None
    min_chunks: int = MIN_CHUNKS
    max_chunks: int = MAX_CHUNKS
    max_delay_ms: int = MAX_DELAY_MS
    indexing_buffer_seconds: float = 10.0
    history_limit: int = 100
    balance_buffer_lamports: int = BALANCE_BUFFER_LAMPORTS
    provisioning_timeout_seconds: float = 30.0
    countdown_interval_seconds: float = 1.0

    def validate(self) -> None:
        """Validate configuration invariants"""
        if not 1 <= self.min_chunks <= self.max_chunks:
            raise ValidationError("min_chunks must be >= 1 and <= max_chunks")
        if self.max_delay_ms < 0:
            raise ValidationError("max_delay_ms must not be negative")
        if self.indexing_buffer_seconds < 0:
            raise ValidationError("indexing_buffer_seconds must not be negative")
        if self.history_limit < 0:
            raise ValidationError("history_limit must not be negative")
        if self.balance_buffer_lamports < 0:
            raise ValidationError("balance_buffer_lamports must not be negative")
        if self.provisioning_timeout_seconds <= 0:
            raise ValidationError("provisioning_timeout_seconds must be positive")
        if self.countdown_interval_seconds <= 0:
            raise ValidationError("countdown_interval_seconds must be positive")
        for name in ("wallet_program_id", "pool_program_id"):
            if not validate_solana_address(getattr(self, name)):
                raise ValidationError(f"{name} is not a valid Solana address")
        if self.fee_payer is not None and not is_valid_keypair_string(self.fee_payer):
            raise ValidationError("fee_payer must be a base58 encoded 64-byte secret key")

    def require_fee_payer(self) -> None:
        """
        Check that a fee payer is configured

        Derived burner wallets start empty, so on a live cluster every
        wallet creation and withdrawal must be paid by a funded keypair.
        """
        if not self.fee_payer:
            raise ValidationError(
                "A fee payer is required: set SHROUD_FEE_PAYER or SendConfig.fee_payer"
            )

    @classmethod
    def from_env(
        cls,
        prefix: str = "SHROUD_",
        environ: Optional[Mapping[str, str]] = None,
    ) -> "SendConfig":
        """
        Build a config from environment variables

        Args:
            prefix: Variable name prefix
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            Validated configuration
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            key = prefix + f.name.upper()
            if key not in environ:
                continue
            raw = environ[key]
            try:
                if f.type is int:
                    overrides[f.name] = int(raw)
                elif f.type is float:
                    overrides[f.name] = float(raw)
                else:
                    overrides[f.name] = raw
            except ValueError as e:
                raise ValidationError(f"Invalid value for {key}: {raw!r}") from e
            logger.debug("Config override %s from environment", f.name)

        config = cls(**overrides)
        config.validate()
        return config
