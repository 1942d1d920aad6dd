"""
Provenance Credential Verifier.

Verifies EIP-712 signed custody-chain credentials.

Supported:
- Signature: EcdsaSecp256k1Signature2019 over EIP-712 typed data
- DID Method: did:ethr
- Type-sets: legacy (no schemaVersion) and versioned
- Domains: with or without a verifying escrow contract
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping

from provenance_vc.canonical import HOLDER, ISSUER, Proof, canonicalize
from provenance_vc.config import Settings
from provenance_vc.did import DIDFormatError, extract_chain_id, extract_signer_address
from provenance_vc.domains import DomainError, VerificationAttempt, resolve_attempts
from provenance_vc.eip712 import recover_signer, typed_data_hash
from provenance_vc.exceptions import NoProofsError

logger = logging.getLogger(__name__)


class VerificationStatus(Enum):
    """Overall verification status."""

    VALID = "valid"
    INVALID = "invalid"


@dataclass
class RoleVerificationResult:
    """Outcome of verifying the proof of one role (issuer or holder).

    A failed verification is reported here, never raised.
    """

    role: str
    matching_vc: bool = False
    matching_signer: bool = False
    signature_verified: bool = False
    recovered_address: str | None = None
    expected_address: str | None = None
    error: str | None = None
    attempt: str | None = None
    payload_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CredentialVerification:
    """Complete verification result."""

    issuer: RoleVerificationResult
    holder: RoleVerificationResult | None
    is_old_format: bool
    credential_id: str | None = None

    @property
    def is_valid(self) -> bool:
        """True when every required signature verified."""
        if not self.issuer.signature_verified:
            return False
        if self.holder is not None and not self.holder.signature_verified:
            return False
        return True

    @property
    def status(self) -> VerificationStatus:
        return VerificationStatus.VALID if self.is_valid else VerificationStatus.INVALID

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "valid": self.is_valid,
            "credential_id": self.credential_id,
            "old_format": self.is_old_format,
            "issuer": self.issuer.to_dict(),
            "holder": self.holder.to_dict() if self.holder else None,
        }


def verify_role_proof(
    proof: Proof | None,
    payload: Mapping[str, Any],
    role: str,
    attempts: list[VerificationAttempt],
) -> RoleVerificationResult:
    """Verify the proof of one role against the canonical payload.

    Attempts are executed in order and the first one whose recovered signer
    equals the address in the proof's verificationMethod wins. A declared
    ``payloadHash`` that differs from the computed hash is logged and
    otherwise ignored; the computed hash is authoritative.

    Args:
        proof: The proof for this role, or None if the document has none.
        payload: Canonical payload (see ``canonicalize``).
        role: ``issuer`` or ``holder``.
        attempts: Ordered attempts from ``resolve_attempts``.

    Returns:
        RoleVerificationResult; failures are recorded in ``error``.
    """
    result = RoleVerificationResult(role=role)

    if proof is None:
        result.error = f"No {role} proof provided"
        logger.warning(result.error)
        return result

    try:
        expected_address = extract_signer_address(proof.verification_method)
    except DIDFormatError:
        result.error = f"Invalid verificationMethod format in {role} proof"
        logger.warning(result.error)
        return result
    result.expected_address = expected_address

    party = payload.get(role)
    declared_id = party.get("id") if isinstance(party, Mapping) else None
    # TODO: switch to exact DID equality once issued credentials are audited for it.
    if not isinstance(declared_id, str) or expected_address not in declared_id.lower():
        result.error = (
            f"DID mismatch: {role}.id ({declared_id}) does not match "
            f"{proof.verification_method}"
        )
        logger.warning(result.error)
        return result
    result.matching_vc = True

    last_error: str | None = None
    for index, attempt in enumerate(attempts, start=1):
        logger.debug(
            "[%s] attempt %d/%d: %s", role, index, len(attempts), attempt.description
        )
        if attempt.error:
            last_error = attempt.error
            logger.warning("[%s] attempt failed with %s: %s", role, attempt.description, attempt.error)
            continue
        try:
            computed_hash = typed_data_hash(attempt.domain, attempt.types, dict(payload))

            if proof.payload_hash and proof.payload_hash.lower() != computed_hash.lower():
                logger.warning(
                    "[%s] payload hash mismatch with %s: declared %s, computed %s",
                    role,
                    attempt.description,
                    proof.payload_hash,
                    computed_hash,
                )

            recovered = recover_signer(
                attempt.domain, attempt.types, dict(payload), proof.signature or ""
            )
        except Exception as e:
            last_error = str(e)
            logger.warning("[%s] attempt failed with %s: %s", role, attempt.description, e)
            continue

        result.recovered_address = recovered
        result.payload_hash = computed_hash
        result.matching_signer = recovered.lower() == expected_address
        result.signature_verified = result.matching_signer

        if result.signature_verified:
            result.attempt = attempt.description
            logger.info("[%s] signature verified with %s", role, attempt.description)
            return result

        last_error = f"Signature does not match expected address for {role}"
        logger.debug("[%s] recovered %s, expected %s", role, recovered, expected_address)

    result.error = (
        f"[{role}] Verification failed with all configurations: "
        f"{last_error or 'Unknown error'}"
    )
    logger.warning(result.error)
    return result


def _party_did(payload: Mapping[str, Any], role: str) -> str | None:
    party = payload.get(role)
    if isinstance(party, Mapping) and isinstance(party.get("id"), str) and party["id"]:
        return party["id"].lower()
    return None


def _first_chain_id(*candidates: int | None) -> int | None:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


class CredentialVerifier:
    """Verifier for provenance credentials.

    Supports:
    - Old-format (no schemaVersion) and new-format credentials
    - Contract-bound EIP-712 domains
    - Certificate-only documents (issuer signature only)
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the verifier.

        Args:
            settings: Process configuration. Defaults are used if not provided.
        """
        self.settings = settings or Settings()

    def verify(
        self,
        document: Mapping[str, Any],
        is_certificate: bool = False,
        verifying_contract: str | None = None,
        default_chain_id: int | None = None,
    ) -> CredentialVerification:
        """Verify the issuer and (unless a certificate) holder signatures.

        Args:
            document: The credential document as stored.
            is_certificate: Certificates carry no holder signature.
            verifying_contract: Escrow contract the credential belongs to.
            default_chain_id: Chain id used when no DID carries one.

        Returns:
            CredentialVerification with one result per role.

        Raises:
            CredentialStructureError: If the document is not an object.
            NoProofsError: If the document carries no proofs.
        """
        canonical = canonicalize(document)
        if not canonical.proofs:
            raise NoProofsError("No proofs found in credential")

        payload = canonical.payload
        logger.info(
            "Verifying credential %s (%s format)",
            payload.get("id"),
            "old" if canonical.is_old_format else "new",
        )

        issuer_did = _party_did(payload, ISSUER)
        holder_did = _party_did(payload, HOLDER)
        issuer_proof = self._find_proof(canonical.proofs, issuer_did, ISSUER)
        holder_proof = self._find_proof(canonical.proofs, holder_did, HOLDER)

        fallback_chain_id = default_chain_id or self.settings.default_chain_id
        issuer_chain_id = _first_chain_id(
            extract_chain_id(issuer_proof.verification_method if issuer_proof else None),
            extract_chain_id(issuer_did),
            fallback_chain_id,
        )
        holder_chain_id = _first_chain_id(
            extract_chain_id(holder_proof.verification_method if holder_proof else None),
            extract_chain_id(holder_did),
            issuer_chain_id,
        )

        issuer_result = self._verify_role(
            issuer_proof, payload, ISSUER, canonical.is_old_format, issuer_chain_id, verifying_contract
        )
        holder_result = None
        if not is_certificate:
            holder_result = self._verify_role(
                holder_proof, payload, HOLDER, canonical.is_old_format, holder_chain_id, verifying_contract
            )

        verification = CredentialVerification(
            issuer=issuer_result,
            holder=holder_result,
            is_old_format=canonical.is_old_format,
            credential_id=payload.get("id"),
        )
        logger.info("Verification finished: %s", verification.status.value)
        return verification

    def _find_proof(self, proofs: list[Proof], did: str | None, role: str) -> Proof | None:
        """Locate the proof signed by the party ``did``.

        Proofs whose verificationMethod contains the full DID are preferred;
        otherwise the signer address is matched against the DID. Among the
        candidates, one tagged with ``role`` wins.
        """
        if not did:
            return None

        candidates = [
            p for p in proofs
            if isinstance(p.verification_method, str) and did in p.verification_method.lower()
        ]
        if not candidates:
            candidates = [p for p in proofs if p.signer_address and p.signer_address in did]
        if not candidates:
            return None

        for proof in candidates:
            if proof.role == role:
                return proof
        return candidates[0]

    def _verify_role(
        self,
        proof: Proof | None,
        payload: Mapping[str, Any],
        role: str,
        is_old_format: bool,
        chain_id: int | None,
        verifying_contract: str | None,
    ) -> RoleVerificationResult:
        try:
            attempts = resolve_attempts(is_old_format, chain_id, verifying_contract)
        except DomainError as e:
            return RoleVerificationResult(role=role, error=f"[{role}] {e}")
        return verify_role_proof(proof, payload, role, attempts)


def verify_credential(
    document: Mapping[str, Any],
    is_certificate: bool = False,
    verifying_contract: str | None = None,
    default_chain_id: int | None = None,
    settings: Settings | None = None,
) -> CredentialVerification:
    """Convenience function to verify a credential.

    Args:
        document: The credential document.
        is_certificate: Skip the holder signature.
        verifying_contract: Optional escrow contract address.
        default_chain_id: Chain id used when no DID carries one.
        settings: Process configuration.

    Returns:
        CredentialVerification with per-role results.
    """
    verifier = CredentialVerifier(settings=settings)
    return verifier.verify(
        document,
        is_certificate=is_certificate,
        verifying_contract=verifying_contract,
        default_chain_id=default_chain_id,
    )
