"""Test deterministic wallet derivation"""

import pytest
from solders.keypair import Keypair

from shroud.derivation import (
    burner_label,
    derive,
    derive_identity,
    owner_address,
    primary_label,
    routing_id,
)
from shroud.errors import ValidationError

SECRET = "11" * 32


class TestDerive:
    """Test label-based secret derivation"""

    def test_deterministic(self):
        """Same inputs always give the same secret"""
        assert derive(SECRET, "burner_1_owner") == derive(SECRET, "burner_1_owner")

    def test_output_length(self):
        assert len(derive(SECRET, "label")) == 32

    def test_distinct_labels_are_independent(self):
        """100 burner indices produce 100 distinct secrets"""
        owner = owner_address(SECRET)
        secrets = {derive(SECRET, burner_label(i, owner)) for i in range(1, 101)}
        assert len(secrets) == 100

    def test_distinct_masters_differ(self):
        assert derive(SECRET, "label") != derive("22" * 32, "label")

    def test_output_does_not_expose_master(self):
        assert derive(SECRET, "label") != bytes.fromhex(SECRET)

    def test_hex_prefix_and_bytes_equivalent(self):
        """Hex with or without 0x and raw bytes derive identically"""
        raw = bytes.fromhex(SECRET)
        assert derive(SECRET, "x") == derive("0x" + SECRET, "x") == derive(raw, "x")


class TestDeriveIdentity:
    """Test identity derivation"""

    def test_identity_is_reproducible(self):
        first = derive_identity(SECRET, 3)
        second = derive_identity(SECRET, 3)
        assert first == second
        assert first.index == 3

    def test_public_address_matches_secret(self):
        identity = derive_identity(SECRET, 1)
        expected = str(Keypair.from_seed(identity.secret).pubkey())
        assert identity.public_address == expected
        assert identity.keypair().pubkey() == Keypair.from_seed(identity.secret).pubkey()

    def test_primary_uses_primary_label(self):
        owner = owner_address(SECRET)
        identity = derive_identity(SECRET, 0)
        assert identity.is_primary
        assert identity.secret == derive(SECRET, primary_label(owner))

    def test_burner_uses_burner_label(self):
        owner = owner_address(SECRET)
        identity = derive_identity(SECRET, 2)
        assert not identity.is_primary
        assert identity.secret == derive(SECRET, burner_label(2, owner))

    def test_primary_differs_from_burners(self):
        addresses = {derive_identity(SECRET, i).public_address for i in range(0, 11)}
        assert len(addresses) == 11

    def test_negative_index_rejected(self):
        with pytest.raises(ValidationError, match="must not be negative"):
            derive_identity(SECRET, -1)

    def test_secret_hidden_from_repr(self):
        identity = derive_identity(SECRET, 1)
        assert identity.secret.hex() not in repr(identity)


class TestRoutingId:
    """Test routing identifier derivation"""

    def test_stable_32_bytes(self):
        address = owner_address(SECRET)
        assert len(routing_id(address)) == 32
        assert routing_id(address) == routing_id(address)

    def test_prefix_ignored(self):
        assert routing_id("0xabcdef") == routing_id("abcdef")

    def test_distinct_addresses(self):
        ids = {routing_id(derive_identity(SECRET, i).public_address) for i in range(20)}
        assert len(ids) == 20
