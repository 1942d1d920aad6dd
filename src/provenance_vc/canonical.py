"""
Canonical signing payload.

Credential documents evolve after they are signed: content hashes, internal
transaction references and commitment bundles are attached for off-chain
convenience, identity fields arrive in mixed case, and older documents lack
fields the current type-set requires. ``canonicalize`` turns such a document
back into the exact structure the issuer and holder signed.

Rules, applied in order:

1. Detect the old (pre-``schemaVersion``) format from the original input.
2. Split the proofs (list or legacy keyed map) out of the payload.
3. Strip unsigned convenience fields from the credential subject.
4. Serialize a structured ``price`` to a string.
5. Fill the fixed-shape subject fields with empty defaults.
6. Lower-case the issuer, holder and subject ``id`` fields.
7. Default ``schemaVersion`` for new-format documents; remove it from
   old-format ones, which were signed without it.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from eth_utils import keccak

from provenance_vc.commitments import parse_price, serialize_price
from provenance_vc.did import DIDFormatError, extract_signer_address
from provenance_vc.exceptions import CredentialStructureError

DEFAULT_SCHEMA_VERSION = "1.0"

# Present in stored documents but never part of the signed payload.
UNSIGNED_SUBJECT_FIELDS = (
    "vcHash",
    "transactionId",
    "txHashCommitment",
    "purchaseTxHashCommitment",
)

ISSUER = "issuer"
HOLDER = "holder"

ROLE_ALIASES = {
    "issuer": ISSUER,
    "seller": ISSUER,
    "holder": HOLDER,
    "buyer": HOLDER,
}


@dataclass
class Proof:
    """One signature entry of a credential."""

    verification_method: str | None
    signature: str | None
    role: str | None = None
    type: str | None = None
    created: str | None = None
    proof_purpose: str | None = None
    payload_hash: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], role_hint: str | None = None) -> Proof:
        role = ROLE_ALIASES.get(str(data.get("role") or "").lower())
        if role is None and role_hint:
            role = ROLE_ALIASES.get(role_hint.lower())
        return cls(
            verification_method=data.get("verificationMethod"),
            signature=data.get("jws") or data.get("proofValue"),
            role=role,
            type=data.get("type"),
            created=data.get("created"),
            proof_purpose=data.get("proofPurpose"),
            payload_hash=data.get("payloadHash"),
            raw=dict(data),
        )

    @property
    def signer_address(self) -> str | None:
        """Lower-cased address from the verification method, if well-formed."""
        try:
            return extract_signer_address(self.verification_method)
        except DIDFormatError:
            return None


@dataclass
class CanonicalCredential:
    """Result of canonicalization."""

    payload: dict[str, Any]
    proofs: list[Proof]
    is_old_format: bool


def is_old_format(document: Mapping[str, Any]) -> bool:
    """True when the document predates ``schemaVersion``.

    Must be evaluated on the original document: the canonical payload of a
    new-format document always carries a schema version.
    """
    return not document.get("schemaVersion")


def _party_id(document: Mapping[str, Any], role: str) -> str | None:
    party = document.get(role)
    if isinstance(party, Mapping) and isinstance(party.get("id"), str):
        return party["id"].lower()
    return None


def _infer_role(proof: Proof, document: Mapping[str, Any]) -> str | None:
    address = proof.signer_address
    if not address:
        return None
    for role in (ISSUER, HOLDER):
        party_id = _party_id(document, role)
        if party_id and address in party_id:
            return role
    return None


def normalize_proofs(document: Mapping[str, Any]) -> list[Proof]:
    """Collect the proofs of a document into a single ordered list.

    Accepts the W3C list form under ``proof`` (a single object is treated as
    a one-element list) and the legacy keyed map under ``proofs``. Proofs
    without a usable role are assigned one by matching their signer address
    against the issuer and holder DIDs.
    """
    raw = document.get("proof")
    entries: list[tuple[str | None, Any]] = []

    if isinstance(raw, list):
        entries = [(None, item) for item in raw]
    elif isinstance(raw, Mapping):
        entries = [(None, raw)]
    elif isinstance(document.get("proofs"), Mapping):
        entries = [(key, item) for key, item in document["proofs"].items()]

    proofs: list[Proof] = []
    for key, item in entries:
        if not isinstance(item, Mapping):
            continue
        proof = Proof.from_dict(item, role_hint=key)
        if proof.role is None:
            proof.role = _infer_role(proof, document)
        proofs.append(proof)
    return proofs


def canonicalize(
    document: Mapping[str, Any],
    old_format: bool | None = None,
) -> CanonicalCredential:
    """Build the canonical signing payload of a credential document.

    The input is never modified.

    Args:
        document: The raw credential document.
        old_format: Format flag recorded before the document was handled by
            other code. When None it is detected from ``document`` itself.

    Returns:
        CanonicalCredential with the payload, the proofs and the format flag.

    Raises:
        CredentialStructureError: If the document is not a JSON object.
        PriceEnvelopeError: If the price declares an unparseable envelope.
    """
    if not isinstance(document, Mapping):
        raise CredentialStructureError(
            f"Credential must be a JSON object, got {type(document).__name__}"
        )

    if old_format is None:
        old_format = is_old_format(document)
    proofs = normalize_proofs(document)

    payload = copy.deepcopy({k: v for k, v in document.items() if k not in ("proof", "proofs")})

    subject = payload.get("credentialSubject")
    if not isinstance(subject, dict):
        subject = {}
        payload["credentialSubject"] = subject

    for name in UNSIGNED_SUBJECT_FIELDS:
        subject.pop(name, None)

    price = subject.get("price")
    if price is not None and not isinstance(price, str):
        subject["price"] = serialize_price(price)
    parse_price(subject.get("price"))

    certificate = subject.get("certificateCredential")
    if not isinstance(certificate, dict) or not certificate:
        subject["certificateCredential"] = {"name": "", "cid": ""}
    else:
        certificate.setdefault("name", "")
        certificate.setdefault("cid", "")
    if subject.get("previousCredential") is None:
        subject["previousCredential"] = ""
    if not isinstance(subject.get("componentCredentials"), list):
        subject["componentCredentials"] = []

    for container in (payload.get("issuer"), payload.get("holder"), subject):
        if isinstance(container, dict) and isinstance(container.get("id"), str) and container["id"]:
            container["id"] = container["id"].lower()

    if old_format:
        payload.pop("schemaVersion", None)
    elif not payload.get("schemaVersion"):
        payload["schemaVersion"] = DEFAULT_SCHEMA_VERSION

    return CanonicalCredential(payload=payload, proofs=proofs, is_old_format=old_format)


def canonical_json(data: Any) -> str:
    """Sorted-key, compact JSON used for content hashing."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def content_hash(document: Mapping[str, Any]) -> str:
    """Keccak-256 content hash of a credential (the ``vcHash`` value).

    Proof material and any previously stored ``vcHash`` are excluded so the
    hash can be embedded in the document without changing it.
    """
    if not isinstance(document, Mapping):
        raise CredentialStructureError("Credential must be a JSON object")

    data = copy.deepcopy({k: v for k, v in document.items() if k not in ("proof", "proofs")})
    subject = data.get("credentialSubject")
    if isinstance(subject, dict):
        subject.pop("vcHash", None)
    return "0x" + keccak(text=canonical_json(data)).hex()
