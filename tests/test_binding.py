"""Tests for binding-tag derivation."""

import re

import pytest
from eth_abi.packed import encode_packed
from eth_utils import keccak, to_checksum_address

from conftest import CHAIN_ID, ESCROW_A, ESCROW_B
from provenance_vc.binding import (
    BINDING_PROTOCOL_V1,
    BINDING_PROTOCOL_V2,
    BindingContext,
    BindingTagError,
    derive_binding_tag,
    derive_tx_hash_binding_tag,
    deterministic_blinding,
)

BUYER = "0x" + "cc" * 20
PREVIOUS_CID = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"
TAG_RE = re.compile(r"^0x[0-9a-f]{64}$")

BASE = dict(chain_id=CHAIN_ID, escrow_address=ESCROW_A, product_id=7, stage=1, schema_version="1.0")


class TestDeriveBindingTag:
    """Tests for the commitment binding tag."""

    def test_format(self):
        assert TAG_RE.match(derive_binding_tag(**BASE))

    def test_deterministic(self):
        assert derive_binding_tag(**BASE) == derive_binding_tag(**BASE)

    def test_byte_layout(self):
        expected = keccak(
            encode_packed(
                ["string", "uint256", "address", "uint256", "uint8", "string"],
                [BINDING_PROTOCOL_V1, CHAIN_ID, to_checksum_address(ESCROW_A), 7, 1, "1.0"],
            )
        )
        assert derive_binding_tag(**BASE) == "0x" + expected.hex()

    def test_byte_layout_with_predecessor(self):
        expected = keccak(
            encode_packed(
                ["string", "uint256", "address", "uint256", "uint8", "string", "string"],
                [BINDING_PROTOCOL_V2, CHAIN_ID, to_checksum_address(ESCROW_A), 7, 1, "1.0", PREVIOUS_CID],
            )
        )
        tag = derive_binding_tag(**BASE, previous_credential_id=PREVIOUS_CID)
        assert tag == "0x" + expected.hex()

    @pytest.mark.parametrize(
        "field, value",
        [
            ("chain_id", 1337),
            ("escrow_address", ESCROW_B),
            ("product_id", 8),
            ("stage", 2),
            ("schema_version", "1.1"),
            ("previous_credential_id", PREVIOUS_CID),
        ],
    )
    def test_every_field_changes_tag(self, field, value):
        assert derive_binding_tag(**{**BASE, field: value}) != derive_binding_tag(**BASE)

    def test_contract_replay(self):
        tag_a = derive_binding_tag(**BASE)
        tag_b = derive_binding_tag(**{**BASE, "escrow_address": ESCROW_B})
        assert tag_a != tag_b

    def test_address_case_irrelevant(self):
        assert derive_binding_tag(**{**BASE, "escrow_address": ESCROW_A.upper().replace("0X", "0x")}) == (
            derive_binding_tag(**BASE)
        )

    def test_empty_predecessor_is_absent(self):
        assert derive_binding_tag(**BASE, previous_credential_id="") == derive_binding_tag(**BASE)

    def test_numeric_strings_accepted(self):
        assert derive_binding_tag(str(CHAIN_ID), ESCROW_A, "7", "1") == derive_binding_tag(**BASE)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"chain_id": 0},
            {"chain_id": "mainnet"},
            {"escrow_address": "0x1234"},
            {"escrow_address": None},
            {"product_id": -1},
            {"stage": -1},
            {"stage": 3},
            {"stage": True},
            {"schema_version": ""},
            {"previous_credential_id": 42},
        ],
    )
    def test_malformed_inputs(self, overrides):
        with pytest.raises(BindingTagError):
            derive_binding_tag(**{**BASE, **overrides})

    def test_binding_tag_error_is_value_error(self):
        with pytest.raises(ValueError):
            derive_binding_tag(**{**BASE, "stage": 9})


class TestBindingContext:
    """Tests for the context record."""

    def test_tag_matches_function(self):
        assert BindingContext(**BASE).tag() == derive_binding_tag(**BASE)

    def test_protocol(self):
        assert BindingContext(**BASE).protocol == BINDING_PROTOCOL_V1
        assert BindingContext(**BASE, previous_credential_id=PREVIOUS_CID).protocol == BINDING_PROTOCOL_V2

    def test_default_schema_version(self):
        context = BindingContext(chain_id=CHAIN_ID, escrow_address=ESCROW_A, product_id=7, stage=1)
        assert context.tag() == derive_binding_tag(**BASE)


class TestTxHashBindingTag:
    """Tests for the purchase/delivery linking tag."""

    def test_format_and_layout(self):
        expected = keccak(
            encode_packed(
                ["string", "uint256", "address", "uint256", "address"],
                ["tx-hash-bind-v1", CHAIN_ID, to_checksum_address(ESCROW_A), 7, to_checksum_address(BUYER)],
            )
        )
        tag = derive_tx_hash_binding_tag(CHAIN_ID, ESCROW_A, 7, BUYER)
        assert TAG_RE.match(tag)
        assert tag == "0x" + expected.hex()

    def test_buyer_bound(self):
        assert derive_tx_hash_binding_tag(CHAIN_ID, ESCROW_A, 7, BUYER) != derive_tx_hash_binding_tag(
            CHAIN_ID, ESCROW_A, 7, ESCROW_B
        )

    def test_invalid_buyer(self):
        with pytest.raises(BindingTagError):
            derive_tx_hash_binding_tag(CHAIN_ID, ESCROW_A, 7, "nobody")


class TestDeterministicBlinding:
    """Tests for the shared blinding factor."""

    def test_format(self):
        blinding = deterministic_blinding(ESCROW_A, BUYER)
        assert re.match(r"^[0-9a-f]{64}$", blinding)

    def test_order_matters(self):
        assert deterministic_blinding(ESCROW_A, BUYER) != deterministic_blinding(BUYER, ESCROW_A)

    def test_invalid_address(self):
        with pytest.raises(BindingTagError):
            deterministic_blinding(ESCROW_A, "0x12")
