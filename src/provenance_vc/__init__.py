"""
Provenance VC - verification library for escrow marketplace credentials.

Supports:
- EIP-712 typed-data signatures (EcdsaSecp256k1Signature2019)
- did:ethr identifiers for issuers and holders
- Legacy and versioned credential type-sets, with optional contract binding
- Binding tags tying price and transaction commitments to their context
"""

from provenance_vc.binding import (
    BindingContext,
    BindingTagError,
    derive_binding_tag,
    derive_tx_hash_binding_tag,
)
from provenance_vc.canonical import CanonicalCredential, canonicalize
from provenance_vc.config import Settings
from provenance_vc.domains import DomainError, resolve_attempts
from provenance_vc.exceptions import (
    CredentialError,
    CredentialStructureError,
    NoProofsError,
    PriceEnvelopeError,
)
from provenance_vc.verifier import (
    CredentialVerification,
    CredentialVerifier,
    RoleVerificationResult,
    verify_credential,
)

__version__ = "0.1.0"

__all__ = [
    "BindingContext",
    "BindingTagError",
    "derive_binding_tag",
    "derive_tx_hash_binding_tag",
    "CanonicalCredential",
    "canonicalize",
    "Settings",
    "DomainError",
    "resolve_attempts",
    "CredentialError",
    "CredentialStructureError",
    "NoProofsError",
    "PriceEnvelopeError",
    "CredentialVerification",
    "CredentialVerifier",
    "RoleVerificationResult",
    "verify_credential",
]
