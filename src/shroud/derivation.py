"""
Deterministic key derivation for burner wallets

Every wallet used by a private send is derived from one master secret, so
the whole set can be rebuilt later without storing anything.
"""

import hashlib
from typing import Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from solders.keypair import Keypair

from .errors import ValidationError
from .types import DerivedIdentity
from .utils import master_secret_bytes

DERIVATION_SALT = b"shroud-burner-derivation-v1"


def derive(master_secret: Union[str, bytes], label: str) -> bytes:
    """
    Derive a 32-byte secret from the master secret and a label

    HKDF-SHA256 with a fixed salt and the label as ``info``. Output is
    identical for identical inputs and independent across labels.

    Args:
        master_secret: 32-byte seed (bytes or hex)
        label: Purpose and index specific label

    Returns:
        32-byte derived secret
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=DERIVATION_SALT,
        info=label.encode("utf-8"),
    )
    return hkdf.derive(master_secret_bytes(master_secret))


def owner_address(master_secret: Union[str, bytes]) -> str:
    """Base58 public key of the master keypair"""
    return str(Keypair.from_seed(master_secret_bytes(master_secret)).pubkey())


def primary_label(owner: str) -> str:
    return f"primary_0_{owner}"


def burner_label(index: int, owner: str) -> str:
    return f"burner_{index}_{owner}"


def derive_identity(master_secret: Union[str, bytes], index: int) -> DerivedIdentity:
    """
    Derive the identity at ``index``

    Index 0 is the sender's primary identity, indices from 1 are burners.

    Args:
        master_secret: 32-byte seed (bytes or hex)
        index: Non-negative identity index

    Returns:
        Derived identity with its secret and public address
    """
    if index < 0:
        raise ValidationError("Identity index must not be negative")

    owner = owner_address(master_secret)
    label = primary_label(owner) if index == 0 else burner_label(index, owner)
    secret = derive(master_secret, label)
    public_address = str(Keypair.from_seed(secret).pubkey())
    return DerivedIdentity(index=index, secret=secret, public_address=public_address)


def routing_id(address: str) -> bytes:
    """
    Stable 32-byte identifier for an address string

    Seeds the smart wallet PDA. Not secret.
    """
    if address.startswith("0x"):
        address = address[2:]
    return hashlib.sha256(address.encode("utf-8")).digest()
