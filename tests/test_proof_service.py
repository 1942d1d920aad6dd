"""Tests for the proof service client."""

import json
import logging

import httpx
import pytest
import respx
from httpx import Response

from conftest import CHAIN_ID, ESCROW_A, ESCROW_B
from provenance_vc.binding import BindingContext
from provenance_vc.commitments import serialize_price
from provenance_vc.config import Settings
from provenance_vc.exceptions import PriceEnvelopeError
from provenance_vc.proof_service import (
    ProofServiceClient,
    ProofServiceError,
    verify_credential_commitment,
)

SERVICE = "http://zkp.test"
VALUE_URL = f"{SERVICE}/zkp/verify-value-commitment"
TX_URL = f"{SERVICE}/zkp/verify"

CONTEXT_A = BindingContext(chain_id=CHAIN_ID, escrow_address=ESCROW_A, product_id=3, stage=0)
CONTEXT_B = BindingContext(chain_id=CHAIN_ID, escrow_address=ESCROW_B, product_id=3, stage=0)


def sent_body(route):
    return json.loads(route.calls.last.request.content)


@pytest.fixture
def client():
    return ProofServiceClient(base_url=SERVICE + "/", timeout=5.0)


@pytest.fixture
def committed_credential(credential):
    """Credential whose price carries a commitment bound to escrow A."""
    credential["credentialSubject"]["price"] = serialize_price(
        {
            "hidden": True,
            "zkpProof": {
                "commitment": "0a" * 32,
                "proof": "0b" * 64,
                "protocol": "bulletproofs-pedersen",
                "bindingTag": CONTEXT_A.tag(),
            },
        }
    )
    return credential


class TestProofServiceClient:
    """Tests for the HTTP calls."""

    @respx.mock
    def test_verify_value_commitment(self, client):
        """Test a verified value commitment with a binding tag."""
        route = respx.post(VALUE_URL).mock(return_value=Response(200, json={"verified": True}))

        assert client.verify_value_commitment("aa", "bb", binding_tag="0x" + "cd" * 32) is True
        assert sent_body(route) == {
            "commitment": "aa",
            "proof": "bb",
            "binding_tag_hex": "0x" + "cd" * 32,
        }

    @respx.mock
    def test_tag_omitted_when_absent(self, client):
        """Test that no binding_tag_hex is sent without a tag."""
        route = respx.post(VALUE_URL).mock(return_value=Response(200, json={"verified": True}))

        client.verify_value_commitment("aa", "bb")

        assert "binding_tag_hex" not in sent_body(route)

    @respx.mock
    def test_not_verified(self, client):
        """Test a rejected proof."""
        respx.post(VALUE_URL).mock(return_value=Response(200, json={"verified": False}))
        assert client.verify_value_commitment("aa", "bb") is False

    @respx.mock
    def test_truthy_non_boolean_is_not_verified(self, client):
        respx.post(VALUE_URL).mock(return_value=Response(200, json={"verified": "yes"}))
        assert client.verify_value_commitment("aa", "bb") is False

    @respx.mock
    def test_tx_hash_endpoint(self, client):
        """Test the transaction hash commitment endpoint."""
        route = respx.post(TX_URL).mock(return_value=Response(200, json={"verified": True}))

        assert client.verify_tx_hash_commitment("aa", "bb", binding_tag="ef" * 32) is True
        assert sent_body(route)["binding_tag_hex"] == "ef" * 32

    @respx.mock
    def test_http_error(self, client):
        """Test HTTP error handling."""
        respx.post(VALUE_URL).mock(return_value=Response(500, json={"error": "boom"}))

        with pytest.raises(ProofServiceError, match="500"):
            client.verify_value_commitment("aa", "bb")

    @respx.mock
    def test_network_error(self, client):
        """Test network error handling."""
        respx.post(VALUE_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(ProofServiceError, match="Network error"):
            client.verify_value_commitment("aa", "bb")

    @respx.mock
    def test_invalid_json(self, client):
        respx.post(VALUE_URL).mock(return_value=Response(200, text="not json"))

        with pytest.raises(ProofServiceError, match="Invalid JSON"):
            client.verify_value_commitment("aa", "bb")

    @respx.mock
    def test_missing_verified_flag(self, client):
        respx.post(VALUE_URL).mock(return_value=Response(200, json={"ok": True}))

        with pytest.raises(ProofServiceError, match="verified"):
            client.verify_value_commitment("aa", "bb")

    def test_from_settings(self):
        client = ProofServiceClient.from_settings(
            Settings(proof_service_url="http://zkp:5010/", http_timeout=3.0)
        )
        assert client.base_url == "http://zkp:5010"
        assert client.timeout == 3.0


class TestVerifyCredentialCommitment:
    """Tests for verifying a credential's price commitment in context."""

    @respx.mock
    def test_forwards_derived_tag(self, client, committed_credential):
        """Test that the tag derived from the context is what gets checked."""
        route = respx.post(VALUE_URL).mock(return_value=Response(200, json={"verified": True}))

        assert verify_credential_commitment(committed_credential, CONTEXT_A, client) is True

        body = sent_body(route)
        assert body["binding_tag_hex"] == CONTEXT_A.tag()
        assert body["commitment"] == "0a" * 32

    @respx.mock
    def test_other_contract_context_forwards_its_own_tag(self, client, committed_credential, caplog):
        """Test that a replayed bundle is checked against the new context, not its embedded tag."""
        caplog.set_level(logging.WARNING, logger="provenance_vc.proof_service")
        route = respx.post(VALUE_URL).mock(return_value=Response(200, json={"verified": False}))

        assert verify_credential_commitment(committed_credential, CONTEXT_B, client) is False

        assert route.call_count == 1
        assert sent_body(route)["binding_tag_hex"] == CONTEXT_B.tag()
        assert "differs from derived tag" in caplog.text

    def test_missing_bundle(self, client, credential):
        with pytest.raises(PriceEnvelopeError):
            verify_credential_commitment(credential, CONTEXT_A, client)
