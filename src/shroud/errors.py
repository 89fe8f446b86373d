"""Exception types raised by the private send pipeline"""

from typing import Optional


class PrivateSendError(Exception):
    """Base class for every error raised by Shroud"""


class ValidationError(PrivateSendError, ValueError):
    """Input rejected before any external call was made"""


class InsufficientAmount(PrivateSendError, ValueError):
    """Amount cannot be split into the requested number of positive chunks"""

    def __init__(self, total_amount: int, chunk_count: int):
        self.total_amount = total_amount
        self.chunk_count = chunk_count
        super().__init__(
            f"Cannot split {total_amount} lamports into {chunk_count} chunks"
        )


class InsufficientBalance(PrivateSendError):
    """Sender wallet holds less than the amount plus the required buffer"""

    def __init__(self, address: str, have: int, need: int):
        self.address = address
        self.have = have
        self.need = need
        super().__init__(
            f"Insufficient balance in {address}. "
            f"Have: {have} lamports, Need: {need} lamports"
        )


class ProvisioningTimeout(PrivateSendError):
    """Wallet creation was submitted but did not confirm in time"""

    def __init__(self, address: str, timeout: float):
        self.address = address
        self.timeout = timeout
        super().__init__(
            f"Wallet {address} was not confirmed within {timeout:g}s"
        )


class ProgressCallbackError(PrivateSendError):
    """The ``on_step_update`` callback raised; the original exception is ``__cause__``"""

    def __init__(self, step: int, cause: BaseException):
        self.step = step
        super().__init__(f"Progress callback failed on step {step}: {cause}")


class CollaboratorFailure(PrivateSendError):
    """
    A wallet provisioner or pool gateway call failed mid-run

    The original exception is kept as ``__cause__``.
    """

    def __init__(self, step: int, step_message: str, cause: Optional[BaseException] = None):
        self.step = step
        self.step_message = step_message
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Step {step} ({step_message}) failed{detail}")
