"""
Confidential-field envelopes.

The price of a listing never appears in clear text. ``credentialSubject.price``
is a JSON string such as ``{"hidden":true}``, optionally carrying a
``zkpProof`` bundle (Pedersen commitment, range proof and the binding tag the
proof was generated against). Transaction hashes are handled the same way via
``txHashCommitment`` / ``purchaseTxHashCommitment``, which are attached after
signing.

This module only parses and compares these values; the commitment math lives
in the external proof service.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from provenance_vc.exceptions import CommitmentFormatError, PriceEnvelopeError

DEFAULT_COMMITMENT_PROTOCOL = "bulletproofs-pedersen"
DEFAULT_PROOF_TYPE = "zkRangeProof-v1"


@dataclass
class ZKPBundle:
    """Commitment/proof pair embedded in the price envelope."""

    commitment: str
    proof: str
    protocol: str | None = None
    version: str | None = None
    encoding: str | None = None
    proof_type: str | None = None
    binding_tag: str | None = None
    binding_context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ZKPBundle:
        """Create a bundle from the ``zkpProof`` object of a price envelope.

        Raises:
            PriceEnvelopeError: If commitment or proof is missing or not a string.
        """
        commitment = data.get("commitment")
        proof = data.get("proof")
        if not isinstance(commitment, str) or not isinstance(proof, str) or not commitment or not proof:
            raise PriceEnvelopeError(
                "zkpProof must carry string 'commitment' and 'proof' fields"
            )
        context = data.get("bindingContext")
        return cls(
            commitment=commitment,
            proof=proof,
            protocol=data.get("protocol"),
            version=data.get("version"),
            encoding=data.get("encoding"),
            proof_type=data.get("proofType"),
            binding_tag=data.get("bindingTag"),
            binding_context=dict(context) if isinstance(context, Mapping) else {},
        )


@dataclass
class TxHashCommitment:
    """Commitment to a transaction hash, attached after signing."""

    commitment: str
    proof: str
    protocol: str = DEFAULT_COMMITMENT_PROTOCOL
    version: str = "1.0"
    encoding: str = "hex"
    binding_tag: str | None = None

    @classmethod
    def from_dict(cls, data: Any, field_name: str = "txHashCommitment") -> TxHashCommitment:
        if not isinstance(data, Mapping) or not data.get("commitment") or not data.get("proof"):
            raise CommitmentFormatError(
                f"{field_name} is malformed (expected commitment and proof)"
            )
        return cls(
            commitment=data["commitment"],
            proof=data["proof"],
            protocol=data.get("protocol") or DEFAULT_COMMITMENT_PROTOCOL,
            version=data.get("version") or "1.0",
            encoding=data.get("encoding") or "hex",
            binding_tag=data.get("bindingTag") or None,
        )


def serialize_price(value: Any) -> str:
    """Serialize a structured price the way the signing wallet does.

    Compact separators, key insertion order preserved and non-ASCII kept
    verbatim, matching ``JSON.stringify``.
    """
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def parse_price(price: Any) -> dict[str, Any] | None:
    """Parse the price field into its envelope.

    Args:
        price: The raw ``credentialSubject.price`` value (string or mapping).

    Returns:
        The envelope as a new dict, or None if the price is absent or is a
        plain (non-envelope) string.

    Raises:
        PriceEnvelopeError: If the value declares a JSON object that does not
            parse, or carries a malformed ``zkpProof`` bundle.
    """
    if price is None or price == "":
        return None

    if isinstance(price, Mapping):
        envelope = dict(price)
    elif isinstance(price, str):
        if not price.lstrip().startswith("{"):
            return None
        try:
            envelope = json.loads(price)
        except json.JSONDecodeError as e:
            raise PriceEnvelopeError(f"price envelope is not valid JSON: {e}") from e
        if not isinstance(envelope, dict):
            raise PriceEnvelopeError("price envelope must be a JSON object")
    else:
        return None

    zkp = envelope.get("zkpProof")
    if zkp is not None:
        if not isinstance(zkp, Mapping):
            raise PriceEnvelopeError("zkpProof must be a JSON object")
        ZKPBundle.from_dict(zkp)

    return envelope


def _subject(document: Mapping[str, Any]) -> Mapping[str, Any]:
    subject = document.get("credentialSubject") if isinstance(document, Mapping) else None
    return subject if isinstance(subject, Mapping) else {}


def extract_zkp_proof(document: Mapping[str, Any]) -> ZKPBundle:
    """Return the price commitment bundle of a credential.

    Raises:
        PriceEnvelopeError: If the bundle is missing or malformed.
    """
    envelope = parse_price(_subject(document).get("price"))
    zkp = envelope.get("zkpProof") if envelope else None
    if zkp is None:
        raise PriceEnvelopeError(
            "ZKP proof is missing (expected at credentialSubject.price.zkpProof)"
        )
    return ZKPBundle.from_dict(zkp)


def extract_tx_hash_commitment(document: Mapping[str, Any]) -> TxHashCommitment | None:
    """Return the delivery transaction commitment, or None if absent."""
    data = _subject(document).get("txHashCommitment")
    if not data:
        return None
    return TxHashCommitment.from_dict(data, "txHashCommitment")


def extract_purchase_tx_hash_commitment(document: Mapping[str, Any]) -> TxHashCommitment | None:
    """Return the purchase transaction commitment, or None if absent."""
    data = _subject(document).get("purchaseTxHashCommitment")
    if not data:
        return None
    return TxHashCommitment.from_dict(data, "purchaseTxHashCommitment")


def normalize_hex(value: str) -> str:
    """Lower-case a hex string and drop its ``0x`` prefix."""
    value = value.strip().lower()
    return value[2:] if value.startswith("0x") else value


def commitments_match(vc_commitment: str | None, on_chain_commitment: str | None) -> bool:
    """Compare a credential's commitment with the one stored on-chain."""
    if not vc_commitment or not on_chain_commitment:
        return False
    return normalize_hex(vc_commitment) == normalize_hex(on_chain_commitment)


def binding_tags_match(
    purchase: TxHashCommitment | None,
    delivery: TxHashCommitment | None,
) -> bool:
    """Check that purchase and delivery commitments share one binding tag.

    Both commitments must be present and both must carry a tag; two untagged
    commitments are not considered linked.
    """
    if purchase is None or delivery is None:
        return False
    if not purchase.binding_tag or not delivery.binding_tag:
        return False
    return normalize_hex(purchase.binding_tag) == normalize_hex(delivery.binding_tag)
