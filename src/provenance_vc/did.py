"""
did:ethr identifier handling.

Parties and proof verification methods are identified by DIDs of the form
``did:ethr:<chainId>:<address>``, optionally followed by a ``#fragment``.
Unlike did:web, nothing here needs to be resolved over the network: the
chain id and the signer address are both embedded in the identifier.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DID_ETHR_PREFIX = "did:ethr:"

_DID_ETHR_RE = re.compile(
    r"^did:ethr:(?P<chain_id>\d+):(?P<address>0x[0-9a-f]{40})(?:#(?P<fragment>.*))?$"
)


class DIDFormatError(ValueError):
    """Raised when an identifier is not a well-formed did:ethr DID."""


@dataclass(frozen=True)
class EthrDID:
    """Parsed did:ethr identifier. ``address`` is always lower-cased."""

    chain_id: int
    address: str
    fragment: str | None = None

    def __str__(self) -> str:
        return format_ethr_did(self.chain_id, self.address)


def parse_ethr_did(value: str) -> EthrDID:
    """Parse a strict did:ethr identifier.

    Matching is case-insensitive; the returned address is lower-case.

    Args:
        value: The DID, e.g. ``did:ethr:11155111:0xabc...``.

    Returns:
        The parsed EthrDID.

    Raises:
        DIDFormatError: If the value is not ``did:ethr:<digits>:<20-byte hex>``.
    """
    if not isinstance(value, str):
        raise DIDFormatError(f"DID must be a string, got {type(value).__name__}")

    match = _DID_ETHR_RE.match(value.strip().lower())
    if match is None:
        raise DIDFormatError(f"Invalid did:ethr identifier: {value}")

    return EthrDID(
        chain_id=int(match.group("chain_id")),
        address=match.group("address"),
        fragment=match.group("fragment"),
    )


def format_ethr_did(chain_id: int, address: str) -> str:
    """Build the canonical (lower-case) DID for an address on a chain."""
    return f"{DID_ETHR_PREFIX}{int(chain_id)}:{address.lower()}"


def extract_chain_id(identifier: str | None) -> int | None:
    """Return the chain id segment of a DID, or None.

    Used to walk a priority list of candidate identifiers, so malformed
    input yields None instead of raising.
    """
    if not identifier or not isinstance(identifier, str):
        return None
    parts = identifier.lower().split(":")
    if len(parts) < 4:
        return None
    try:
        return int(parts[2])
    except ValueError:
        return None


def extract_signer_address(verification_method: str | None) -> str:
    """Extract the expected signer address from a proof's verificationMethod.

    Takes the trailing colon-separated segment, lower-cased, with any
    ``#fragment`` removed. The address itself is not validated here; a
    malformed address simply never matches a recovered signer.

    Raises:
        DIDFormatError: If the value is not a did:ethr DID or ends without an address.
    """
    if not isinstance(verification_method, str) or not verification_method.lower().startswith(
        DID_ETHR_PREFIX
    ):
        raise DIDFormatError("invalid verificationMethod format")

    address = verification_method.split(":")[-1].lower().split("#", 1)[0]
    if not address:
        raise DIDFormatError("verificationMethod carries no address")
    return address
