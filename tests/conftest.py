"""Shared fixtures: deterministic keys and credential builders."""

import pytest
from eth_account import Account

from provenance_vc.did import format_ethr_did
from provenance_vc.signing import sign_credential

CHAIN_ID = 11155111
ISSUER_KEY = "0x" + "11" * 32
HOLDER_KEY = "0x" + "22" * 32
OTHER_KEY = "0x" + "33" * 32
ESCROW_A = "0x" + "aa" * 20
ESCROW_B = "0x" + "bb" * 20


def make_credential(
    issuer_address: str,
    holder_address: str,
    chain_id: int = CHAIN_ID,
    schema_version: str | None = "1.0",
    **subject_overrides,
) -> dict:
    """Build an unsigned credential shaped like the marketplace issues them."""
    subject = {
        "id": format_ethr_did(chain_id, issuer_address),
        "productName": "Battery Cell",
        "batch": "B-42",
        "quantity": 10,
        "previousCredential": "",
        "componentCredentials": [],
        "certificateCredential": {"name": "", "cid": ""},
        "price": '{"hidden":true}',
    }
    subject.update(subject_overrides)
    credential = {
        "id": "https://example.com/credentials/1",
        "@context": ["https://www.w3.org/2018/credentials/v1"],
        "type": ["VerifiableCredential", "ProvenanceCredential"],
        "issuer": {"id": format_ethr_did(chain_id, issuer_address), "name": "Seller"},
        "holder": {"id": format_ethr_did(chain_id, holder_address), "name": "Buyer"},
        "issuanceDate": "2025-01-15T10:00:00Z",
        "credentialSubject": subject,
    }
    if schema_version is not None:
        credential["schemaVersion"] = schema_version
    return credential


@pytest.fixture
def issuer():
    return Account.from_key(ISSUER_KEY)


@pytest.fixture
def holder():
    return Account.from_key(HOLDER_KEY)


@pytest.fixture
def other():
    return Account.from_key(OTHER_KEY)


@pytest.fixture
def credential(issuer, holder):
    """Unsigned new-format credential."""
    return make_credential(issuer.address, holder.address)


@pytest.fixture
def legacy_credential(issuer, holder):
    """Unsigned credential without schemaVersion."""
    return make_credential(issuer.address, holder.address, schema_version=None)


@pytest.fixture
def signed_credential(credential):
    """New-format credential signed by issuer and holder, no contract binding."""
    signed = sign_credential(credential, ISSUER_KEY, CHAIN_ID, role="issuer")
    return sign_credential(signed, HOLDER_KEY, CHAIN_ID, role="holder")


@pytest.fixture
def signed_legacy_credential(legacy_credential):
    signed = sign_credential(legacy_credential, ISSUER_KEY, CHAIN_ID, role="issuer", legacy=True)
    return sign_credential(signed, HOLDER_KEY, CHAIN_ID, role="holder", legacy=True)


@pytest.fixture
def contract_bound_credential(credential):
    """New-format credential whose signatures are bound to escrow A."""
    signed = sign_credential(
        credential, ISSUER_KEY, CHAIN_ID, role="issuer", verifying_contract=ESCROW_A
    )
    return sign_credential(
        signed, HOLDER_KEY, CHAIN_ID, role="holder", verifying_contract=ESCROW_A
    )
