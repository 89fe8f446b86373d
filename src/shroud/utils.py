"""Utility functions"""

import re
import secrets
from typing import Union

import base58

LAMPORTS_PER_SOL = 1_000_000_000

_HEX_SECRET = re.compile(r"^[0-9a-fA-F]{64}$")


def generate_secret(length: int = 32) -> str:
    """
    Generate a cryptographically secure secret

    Args:
        length: Length of secret in bytes

    Returns:
        Hex-encoded secret string
    """
    return secrets.token_hex(length)


def hex_to_bytes(hex_str: str) -> bytes:
    """
    Convert hex string to bytes

    Args:
        hex_str: Hex string (with or without 0x prefix)

    Returns:
        Bytes
    """
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def is_valid_master_secret(secret: Union[str, bytes]) -> bool:
    """
    Check that a master secret is a 32-byte seed

    Accepts raw bytes or 64 hex characters, optionally 0x-prefixed.
    """
    if isinstance(secret, (bytes, bytearray)):
        return len(secret) == 32
    if not isinstance(secret, str):
        return False
    if secret.startswith("0x"):
        secret = secret[2:]
    return bool(_HEX_SECRET.match(secret))


def master_secret_bytes(secret: Union[str, bytes]) -> bytes:
    """Normalise a master secret to its 32 raw bytes"""
    if isinstance(secret, (bytes, bytearray)):
        return bytes(secret)
    return hex_to_bytes(secret)


def validate_solana_address(address: str) -> bool:
    """
    Validate Solana address

    Args:
        address: Base58-encoded Solana address

    Returns:
        True if valid
    """
    try:
        decoded = base58.b58decode(address)
        return len(decoded) == 32
    except Exception:
        return False


def is_valid_keypair_string(secret_key: str) -> bool:
    """Check that ``secret_key`` is a base58 encoded 64-byte Solana secret key"""
    try:
        return len(base58.b58decode(secret_key)) == 64
    except Exception:
        return False


def lamports_to_sol(lamports: int) -> str:
    """Format lamports as a SOL amount with four decimals"""
    return f"{lamports / LAMPORTS_PER_SOL:.4f}"
