"""Type definitions for Shroud"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from solders.keypair import Keypair

from .errors import ValidationError
from .utils import is_valid_master_secret, validate_solana_address

MIN_CHUNKS = 2
MAX_CHUNKS = 10


class StepState(Enum):
    """Lifecycle of a single pipeline step"""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StepState.COMPLETED, StepState.ERROR)


@dataclass(frozen=True)
class StepStatus:
    """Immutable snapshot of one step, handed to the progress callback"""

    step: int
    message: str
    status: StepState

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary"""
        return {
            "step": self.step,
            "message": self.message,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class DerivedIdentity:
    """Keypair seed derived from the master secret at a given index"""

    index: int
    secret: bytes = field(repr=False)
    public_address: str

    @property
    def is_primary(self) -> bool:
        return self.index == 0

    def keypair(self) -> Keypair:
        """Rebuild the Ed25519 keypair for this identity"""
        return Keypair.from_seed(self.secret)


@dataclass
class BurnerWallet:
    """On-chain smart wallet owned by a derived identity"""

    identity: DerivedIdentity
    wallet_address: str
    provisioned: bool = False

    @property
    def index(self) -> int:
        return self.identity.index


@dataclass(frozen=True)
class Chunk:
    """One slice of the total amount"""

    sequence: int
    amount: int


@dataclass
class PrivateSendRequest:
    """Request to route funds privately to a recipient"""

    master_secret: Union[str, bytes]
    recipient: str
    total_amount: int
    chunk_count: int
    min_chunks: int = MIN_CHUNKS
    max_chunks: int = MAX_CHUNKS

    def validate(self) -> None:
        """Validate private send request"""
        if not is_valid_master_secret(self.master_secret):
            raise ValidationError("Master secret must be 32 bytes (64 hex characters)")
        if not isinstance(self.recipient, str) or not validate_solana_address(self.recipient):
            raise ValidationError("Invalid Solana recipient address")
        if (
            not isinstance(self.total_amount, int)
            or isinstance(self.total_amount, bool)
            or self.total_amount <= 0
        ):
            raise ValidationError("Amount must be positive")
        if (
            not isinstance(self.chunk_count, int)
            or isinstance(self.chunk_count, bool)
            or not self.min_chunks <= self.chunk_count <= self.max_chunks
        ):
            raise ValidationError(
                f"Privacy level must be between {self.min_chunks} and {self.max_chunks}"
            )


@dataclass
class PrivateSendResult:
    """Outcome of a completed private send"""

    success: bool
    signatures: list[str]
    total_amount: int
    recipient: str
    burner_addresses: list[str]
    matched_amounts: list[int]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary"""
        return {
            "success": self.success,
            "signatures": list(self.signatures),
            "total_amount": self.total_amount,
            "recipient": self.recipient,
            "burner_addresses": list(self.burner_addresses),
            "matched_amounts": list(self.matched_amounts),
        }
