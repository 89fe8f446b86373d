"""Test types, utilities and configuration"""

import dataclasses

import pytest

from solders.keypair import Keypair

from shroud.config import (
    DEFAULT_POOL_PROGRAM_ID,
    DEFAULT_RPC_URL,
    DEFAULT_WALLET_PROGRAM_ID,
    SendConfig,
)
from shroud.errors import (
    CollaboratorFailure,
    InsufficientAmount,
    InsufficientBalance,
    PrivateSendError,
    ProgressCallbackError,
    ProvisioningTimeout,
    ValidationError,
)
from shroud.types import (
    PrivateSendRequest,
    PrivateSendResult,
    StepState,
    StepStatus,
)
from shroud.utils import (
    hex_to_bytes,
    is_valid_master_secret,
    lamports_to_sol,
    validate_solana_address,
)

VALID_ADDRESS = "So11111111111111111111111111111111111111112"


class TestUtils:
    """Test utility functions"""

    def test_validate_solana_address_valid(self):
        """Test valid Solana addresses"""
        valid_addresses = [
            "11111111111111111111111111111111",
            "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
            VALID_ADDRESS,
        ]
        for addr in valid_addresses:
            assert validate_solana_address(addr), f"Should be valid: {addr}"

    def test_validate_solana_address_invalid(self):
        """Test invalid Solana addresses"""
        invalid_addresses = [
            "",
            "short",
            "0x1234567890123456789012345678901234567890",  # Ethereum format
            "not-a-valid-address!@#$",
        ]
        for addr in invalid_addresses:
            assert not validate_solana_address(addr), f"Should be invalid: {addr}"

    def test_master_secret_formats(self):
        assert is_valid_master_secret("ab" * 32)
        assert is_valid_master_secret("0x" + "AB" * 32)
        assert is_valid_master_secret(bytes(32))
        assert not is_valid_master_secret("ab" * 31)
        assert not is_valid_master_secret("zz" * 32)
        assert not is_valid_master_secret(bytes(31))
        assert not is_valid_master_secret(None)

    def test_hex_to_bytes(self):
        assert hex_to_bytes("0x0102") == b"\x01\x02"
        assert hex_to_bytes("0102") == b"\x01\x02"

    def test_lamports_to_sol(self):
        assert lamports_to_sol(1_500_000_000) == "1.5000"


class TestStepStatus:
    """Test step snapshots"""

    def test_snapshot_is_immutable(self):
        status = StepStatus(step=1, message="Querying", status=StepState.RUNNING)
        with pytest.raises(dataclasses.FrozenInstanceError):
            status.status = StepState.COMPLETED

    def test_to_dict(self):
        status = StepStatus(step=3, message="Deposit", status=StepState.ERROR)
        assert status.to_dict() == {"step": 3, "message": "Deposit", "status": "error"}

    def test_terminal_states(self):
        assert StepState.COMPLETED.is_terminal
        assert StepState.ERROR.is_terminal
        assert not StepState.RUNNING.is_terminal
        assert not StepState.PENDING.is_terminal


class TestPrivateSendRequest:
    """Test request validation"""

    def _request(self, **overrides):
        values = dict(
            master_secret="ab" * 32,
            recipient=VALID_ADDRESS,
            total_amount=1_000_000,
            chunk_count=2,
        )
        values.update(overrides)
        return PrivateSendRequest(**values)

    def test_valid(self):
        self._request().validate()

    @pytest.mark.parametrize(
        "overrides, match",
        [
            ({"master_secret": "short"}, "Master secret"),
            ({"recipient": "not-an-address"}, "recipient"),
            ({"total_amount": 0}, "Amount must be positive"),
            ({"total_amount": -5}, "Amount must be positive"),
            ({"total_amount": 1.5}, "Amount must be positive"),
            ({"total_amount": True}, "Amount must be positive"),
            ({"chunk_count": 1}, "Privacy level"),
            ({"chunk_count": 11}, "Privacy level"),
        ],
    )
    def test_invalid(self, overrides, match):
        with pytest.raises(ValidationError, match=match):
            self._request(**overrides).validate()


class TestPrivateSendResult:
    """Test result serialisation"""

    def test_to_dict(self):
        result = PrivateSendResult(
            success=True,
            signatures=["a", "b"],
            total_amount=10,
            recipient=VALID_ADDRESS,
            burner_addresses=["x", "y"],
            matched_amounts=[4, 6],
        )
        assert result.to_dict() == {
            "success": True,
            "signatures": ["a", "b"],
            "total_amount": 10,
            "recipient": VALID_ADDRESS,
            "burner_addresses": ["x", "y"],
            "matched_amounts": [4, 6],
        }


class TestErrors:
    """Test the error taxonomy"""

    def test_hierarchy(self):
        for cls in (
            ValidationError,
            InsufficientAmount,
            InsufficientBalance,
            ProvisioningTimeout,
            ProgressCallbackError,
            CollaboratorFailure,
        ):
            assert issubclass(cls, PrivateSendError)
        assert issubclass(ValidationError, ValueError)

    def test_collaborator_failure_context(self):
        error = CollaboratorFailure(3, "Depositing to privacy pool...", RuntimeError("rpc down"))
        assert error.step == 3
        assert "Step 3" in str(error)
        assert "rpc down" in str(error)

    def test_insufficient_balance_fields(self):
        error = InsufficientBalance("addr", have=5, need=10)
        assert (error.have, error.need) == (5, 10)


class TestSendConfig:
    """Test configuration loading"""

    def test_defaults_are_valid(self):
        config = SendConfig()
        config.validate()
        assert config.min_chunks == 2
        assert config.max_chunks == 10
        assert config.pool_program_id == DEFAULT_POOL_PROGRAM_ID

    def test_from_env_overrides(self):
        config = SendConfig.from_env(
            environ={
                "SHROUD_RPC_URL": "http://localhost:8899",
                "SHROUD_MAX_DELAY_MS": "60000",
                "SHROUD_INDEXING_BUFFER_SECONDS": "2.5",
                "UNRELATED": "ignored",
            }
        )
        assert config.rpc_url == "http://localhost:8899"
        assert config.max_delay_ms == 60000
        assert config.indexing_buffer_seconds == 2.5

    def test_from_env_malformed_value(self):
        with pytest.raises(ValidationError, match="SHROUD_HISTORY_LIMIT"):
            SendConfig.from_env(environ={"SHROUD_HISTORY_LIMIT": "many"})

    def test_invalid_bounds(self):
        with pytest.raises(ValidationError):
            SendConfig(min_chunks=5, max_chunks=3).validate()

    def test_invalid_program_id(self):
        with pytest.raises(ValidationError, match="pool_program_id"):
            SendConfig(pool_program_id="nope").validate()

    def test_defaults_are_placeholders(self):
        assert DEFAULT_WALLET_PROGRAM_ID.startswith("Shroud")
        assert DEFAULT_POOL_PROGRAM_ID.startswith("Shroud")
        assert "mainnet" not in DEFAULT_RPC_URL

    def test_require_fee_payer(self):
        with pytest.raises(ValidationError, match="fee payer"):
            SendConfig().require_fee_payer()
        SendConfig(fee_payer=str(Keypair())).require_fee_payer()

    def test_malformed_fee_payer(self):
        with pytest.raises(ValidationError, match="fee_payer"):
            SendConfig(fee_payer="not-a-key").validate()
