"""
Client for the external commitment proof service.

The service checks Pedersen commitments and their range proofs. When a
binding tag is forwarded, it only accepts a proof generated against that
exact tag. This client never inspects proof bytes and never retries with a
different tag: a mismatch is reported as ``verified=False``.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from provenance_vc.binding import BindingContext
from provenance_vc.commitments import extract_zkp_proof, normalize_hex
from provenance_vc.config import DEFAULT_HTTP_TIMEOUT, DEFAULT_PROOF_SERVICE_URL, Settings

logger = logging.getLogger(__name__)

VALUE_COMMITMENT_PATH = "/zkp/verify-value-commitment"
TX_HASH_COMMITMENT_PATH = "/zkp/verify"


class ProofServiceError(Exception):
    """Raised when the proof service cannot be reached or answers badly."""


class ProofServiceClient:
    """Calls the proof service's verification endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_PROOF_SERVICE_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Service root, e.g. ``http://localhost:5010``.
            timeout: HTTP request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> ProofServiceClient:
        return cls(base_url=settings.proof_service_url, timeout=settings.http_timeout)

    def verify_value_commitment(
        self,
        commitment: str,
        proof: str,
        binding_tag: str | None = None,
    ) -> bool:
        """Verify a value (price) commitment and its range proof.

        Args:
            commitment: Commitment as hex.
            proof: Range proof as hex.
            binding_tag: Tag the proof must have been generated against.

        Returns:
            The service's ``verified`` flag.

        Raises:
            ProofServiceError: On transport, HTTP or response-format errors.
        """
        return self._verify(VALUE_COMMITMENT_PATH, commitment, proof, binding_tag)

    def verify_tx_hash_commitment(
        self,
        commitment: str,
        proof: str,
        binding_tag: str | None = None,
    ) -> bool:
        """Verify a transaction-hash commitment. See ``verify_value_commitment``."""
        return self._verify(TX_HASH_COMMITMENT_PATH, commitment, proof, binding_tag)

    def _verify(
        self,
        path: str,
        commitment: str,
        proof: str,
        binding_tag: str | None,
    ) -> bool:
        url = f"{self.base_url}{path}"
        body: dict[str, Any] = {"commitment": commitment, "proof": proof}
        if binding_tag:
            body["binding_tag_hex"] = binding_tag

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, json=body)
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            raise ProofServiceError(
                f"HTTP error from proof service at {url}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise ProofServiceError(f"Network error calling proof service: {e}") from e
        except ValueError as e:
            raise ProofServiceError(f"Invalid JSON from proof service at {url}") from e

        if not isinstance(data, Mapping) or "verified" not in data:
            raise ProofServiceError(f"Proof service response from {url} lacks 'verified'")

        verified = data["verified"] is True
        logger.debug("Proof service %s: verified=%s (tag %s)", path, verified, binding_tag)
        return verified


def verify_credential_commitment(
    document: Mapping[str, Any],
    context: BindingContext,
    client: ProofServiceClient,
) -> bool:
    """Verify a credential's price commitment against its binding context.

    The tag is derived from ``context``, not read from the credential, so a
    bundle copied from another product, stage or contract fails.

    Raises:
        PriceEnvelopeError: If the credential carries no usable bundle.
        BindingTagError: If the context is malformed.
        ProofServiceError: If the service call fails.
    """
    bundle = extract_zkp_proof(document)
    tag = context.tag()
    if bundle.binding_tag and normalize_hex(bundle.binding_tag) != normalize_hex(tag):
        logger.warning(
            "Embedded binding tag %s differs from derived tag %s", bundle.binding_tag, tag
        )
    return client.verify_value_commitment(bundle.commitment, bundle.proof, binding_tag=tag)
