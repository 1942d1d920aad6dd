"""
Issuer/holder side: producing proofs over the canonical payload.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Mapping

from eth_account import Account

from provenance_vc.canonical import DEFAULT_SCHEMA_VERSION, HOLDER, ISSUER, canonicalize
from provenance_vc.did import format_ethr_did
from provenance_vc.domains import LEGACY_TYPES, VERSIONED_TYPES, build_domain
from provenance_vc.eip712 import sign_typed_data

PROOF_TYPE = "EcdsaSecp256k1Signature2019"
PROOF_PURPOSE = "assertionMethod"


def build_proof(
    document: Mapping[str, Any],
    private_key: str | bytes,
    chain_id: int,
    role: str = ISSUER,
    verifying_contract: str | None = None,
    legacy: bool = False,
    created: str | None = None,
) -> dict[str, Any]:
    """Sign the canonical payload of ``document`` and return the proof entry.

    Args:
        document: Credential document (proofs, if any, are ignored).
        private_key: secp256k1 key of the signer.
        chain_id: Chain id for the EIP-712 domain and the signer's DID.
        role: ``issuer`` or ``holder``.
        verifying_contract: Escrow contract to bind the signature to.
        legacy: Sign with the pre-``schemaVersion`` type-set.
        created: Proof timestamp; defaults to now (UTC).

    Returns:
        Proof dict with ``jws`` (the signature) and ``payloadHash``.
    """
    if role not in (ISSUER, HOLDER):
        raise ValueError(f"role must be '{ISSUER}' or '{HOLDER}', got {role!r}")

    payload = canonicalize(document, old_format=legacy).payload
    domain = build_domain(chain_id, verifying_contract)
    types = LEGACY_TYPES if legacy else VERSIONED_TYPES

    signature, payload_hash = sign_typed_data(domain, types, payload, private_key)
    address = Account.from_key(private_key).address

    return {
        "type": PROOF_TYPE,
        "created": created or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "proofPurpose": PROOF_PURPOSE,
        "verificationMethod": format_ethr_did(chain_id, address),
        "jws": signature,
        "payloadHash": payload_hash,
        "role": role,
    }


def sign_credential(
    document: Mapping[str, Any],
    private_key: str | bytes,
    chain_id: int,
    role: str = ISSUER,
    verifying_contract: str | None = None,
    legacy: bool = False,
) -> dict[str, Any]:
    """Return a copy of ``document`` with a new proof appended.

    New-format documents get ``schemaVersion`` written into the document so
    that verifiers detect the format the signature was produced under.
    """
    signed = copy.deepcopy(dict(document))
    if legacy:
        signed.pop("schemaVersion", None)
    elif not signed.get("schemaVersion"):
        signed["schemaVersion"] = DEFAULT_SCHEMA_VERSION

    proof = build_proof(
        signed,
        private_key,
        chain_id,
        role=role,
        verifying_contract=verifying_contract,
        legacy=legacy,
    )

    existing = signed.get("proof")
    if isinstance(existing, list):
        signed["proof"] = [*existing, proof]
    elif isinstance(existing, Mapping):
        signed["proof"] = [existing, proof]
    else:
        signed["proof"] = [proof]
    return signed
