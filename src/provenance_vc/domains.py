"""
EIP-712 domains and type-sets used to sign credentials.

Credentials have been signed under two type-sets (before and after
``schemaVersion`` was added to the Credential struct) and under two domain
shapes (with and without ``verifyingContract``). Verification therefore tries
an ordered list of (domain, type-set) attempts; the order is part of the
protocol and is fixed by ``resolve_attempts``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_utils import is_address, to_checksum_address

BASE_DOMAIN: dict[str, Any] = {
    "name": "VC",
    "version": "1.0",
}

_PARTY = [
    {"name": "id", "type": "string"},
    {"name": "name", "type": "string"},
]

_CREDENTIAL_SUBJECT = [
    {"name": "id", "type": "string"},
    {"name": "productName", "type": "string"},
    {"name": "batch", "type": "string"},
    {"name": "quantity", "type": "uint256"},
    {"name": "previousCredential", "type": "string"},
    {"name": "componentCredentials", "type": "string[]"},
    {"name": "certificateCredential", "type": "Certificate"},
    {"name": "price", "type": "string"},
]

_CERTIFICATE = [
    {"name": "name", "type": "string"},
    {"name": "cid", "type": "string"},
]

# Credentials issued before schemaVersion existed.
LEGACY_TYPES: dict[str, list[dict[str, str]]] = {
    "Credential": [
        {"name": "id", "type": "string"},
        {"name": "@context", "type": "string[]"},
        {"name": "type", "type": "string[]"},
        {"name": "issuer", "type": "Party"},
        {"name": "holder", "type": "Party"},
        {"name": "issuanceDate", "type": "string"},
        {"name": "credentialSubject", "type": "CredentialSubject"},
    ],
    "Party": _PARTY,
    "CredentialSubject": _CREDENTIAL_SUBJECT,
    "Certificate": _CERTIFICATE,
}

VERSIONED_TYPES: dict[str, list[dict[str, str]]] = {
    "Credential": [
        {"name": "id", "type": "string"},
        {"name": "@context", "type": "string[]"},
        {"name": "type", "type": "string[]"},
        {"name": "schemaVersion", "type": "string"},
        {"name": "issuer", "type": "Party"},
        {"name": "holder", "type": "Party"},
        {"name": "issuanceDate", "type": "string"},
        {"name": "credentialSubject", "type": "CredentialSubject"},
    ],
    "Party": _PARTY,
    "CredentialSubject": _CREDENTIAL_SUBJECT,
    "Certificate": _CERTIFICATE,
}


class DomainError(ValueError):
    """Raised for an unusable chain id or verifying contract."""


def normalize_contract(address: str) -> str:
    """Validate a verifying-contract address and return it checksummed."""
    if not isinstance(address, str) or not is_address(address):
        raise DomainError(f"Invalid verifying contract address: {address}")
    return to_checksum_address(address)


@dataclass(frozen=True)
class VerificationAttempt:
    """One (domain, type-set) configuration tried during signer recovery."""

    description: str
    domain: dict[str, Any] | None
    types: dict[str, list[dict[str, str]]]
    contract_bound: bool = False
    error: str | None = None

    @property
    def versioned(self) -> bool:
        return self.types is VERSIONED_TYPES


def build_domain(chain_id: int, verifying_contract: str | None = None) -> dict[str, Any]:
    """Build an EIP-712 domain on top of the base ``{name, version}``.

    Args:
        chain_id: Chain the signature is scoped to.
        verifying_contract: Escrow contract address. When given, the
            signature is bound to that contract instance.

    Raises:
        DomainError: If the chain id is not a positive integer or the
            contract is not a 20-byte address.
    """
    if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
        raise DomainError(f"Invalid chain id: {chain_id!r}")

    domain = {**BASE_DOMAIN, "chainId": chain_id}
    if verifying_contract:
        domain["verifyingContract"] = normalize_contract(verifying_contract)
    return domain


def resolve_attempts(
    is_old_format: bool,
    chain_id: int,
    verifying_contract: str | None = None,
) -> list[VerificationAttempt]:
    """Return the ordered verification attempts for one credential.

    Old-format credentials predate both ``schemaVersion`` and contract
    binding, so they get exactly one attempt. New-format credentials try,
    in order:

    1. versioned types, no verifying contract
    2. versioned types, with the verifying contract (only if one is given)
    3. legacy types, no verifying contract

    An unusable contract address does not raise: attempt 2 is returned
    without a domain and with ``error`` set, and fails on its own.
    The first attempt whose recovered signer matches wins.
    """
    plain = build_domain(chain_id)

    if is_old_format:
        return [
            VerificationAttempt(
                description="legacy types (no schemaVersion), no verifyingContract",
                domain=plain,
                types=LEGACY_TYPES,
            )
        ]

    attempts = [
        VerificationAttempt(
            description="versioned types (schemaVersion), no verifyingContract",
            domain=plain,
            types=VERSIONED_TYPES,
        )
    ]
    if verifying_contract:
        description = "versioned types (schemaVersion), with verifyingContract"
        try:
            bound = build_domain(chain_id, verifying_contract)
        except DomainError as e:
            attempts.append(
                VerificationAttempt(
                    description=description,
                    domain=None,
                    types=VERSIONED_TYPES,
                    contract_bound=True,
                    error=str(e),
                )
            )
        else:
            attempts.append(
                VerificationAttempt(
                    description=description,
                    domain=bound,
                    types=VERSIONED_TYPES,
                    contract_bound=True,
                )
            )
    attempts.append(
        VerificationAttempt(
            description="fallback: legacy types (no schemaVersion), no verifyingContract",
            domain=build_domain(chain_id),
            types=LEGACY_TYPES,
        )
    )
    return attempts
