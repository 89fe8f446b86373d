"""
Shroud - Private send for Solana

Routes a transfer through a privacy pool twice via deterministically
derived burner wallets, with camouflaged chunk sizes and randomized delays.
"""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Export main API
from .config import SendConfig
from .derivation import derive, derive_identity, routing_id
from .errors import (
    CollaboratorFailure,
    InsufficientAmount,
    InsufficientBalance,
    PrivateSendError,
    ProgressCallbackError,
    ProvisioningTimeout,
    ValidationError,
)
from .orchestrator import (
    PrivateSendOrchestrator,
    StepTracker,
    execute_private_send,
    recover_burners,
)
from .planner import plan_chunks
from .scheduler import schedule
from .types import (
    MAX_CHUNKS,
    MIN_CHUNKS,
    BurnerWallet,
    Chunk,
    DerivedIdentity,
    PrivateSendRequest,
    PrivateSendResult,
    StepState,
    StepStatus,
)
from .utils import generate_secret, validate_solana_address

__all__ = [
    # Main API
    "PrivateSendOrchestrator",
    "execute_private_send",
    "recover_burners",
    "StepTracker",
    "SendConfig",
    # Engine
    "derive",
    "derive_identity",
    "routing_id",
    "plan_chunks",
    "schedule",
    # Types
    "BurnerWallet",
    "Chunk",
    "DerivedIdentity",
    "PrivateSendRequest",
    "PrivateSendResult",
    "StepState",
    "StepStatus",
    "MIN_CHUNKS",
    "MAX_CHUNKS",
    # Errors
    "PrivateSendError",
    "ValidationError",
    "InsufficientAmount",
    "InsufficientBalance",
    "ProvisioningTimeout",
    "CollaboratorFailure",
    "ProgressCallbackError",
    # Utilities
    "generate_secret",
    "validate_solana_address",
    # Module info
    "__version__",
]
