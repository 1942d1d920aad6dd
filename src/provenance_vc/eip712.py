"""
EIP-712 structured-data hashing, signing and signer recovery.

Thin wrapper over eth-account so that the rest of the package deals in
plain (domain, types, message) triples and hex strings.
"""

from __future__ import annotations

import copy
from typing import Any

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak


def encode(domain: dict[str, Any], types: dict[str, Any], message: dict[str, Any]) -> SignableMessage:
    """Encode a typed-data triple as an EIP-191 version 0x01 signable message."""
    return encode_typed_data(
        domain_data=copy.deepcopy(domain),
        message_types=copy.deepcopy(types),
        message_data=copy.deepcopy(message),
    )


def typed_data_hash(domain: dict[str, Any], types: dict[str, Any], message: dict[str, Any]) -> str:
    """Return the EIP-712 digest, ``keccak256(0x19 0x01 ‖ domainSeparator ‖ hashStruct)``.

    This is the value wallets record as ``payloadHash``.
    """
    signable = encode(domain, types, message)
    return "0x" + keccak(b"\x19" + signable.version + signable.header + signable.body).hex()


def recover_signer(
    domain: dict[str, Any],
    types: dict[str, Any],
    message: dict[str, Any],
    signature: str | bytes,
) -> str:
    """Recover the checksummed address that produced ``signature``.

    Raises:
        ValueError: If the message does not fit the types or the signature
            is malformed.
    """
    if isinstance(signature, str) and not signature.startswith("0x"):
        signature = "0x" + signature
    return Account.recover_message(encode(domain, types, message), signature=signature)


def sign_typed_data(
    domain: dict[str, Any],
    types: dict[str, Any],
    message: dict[str, Any],
    private_key: str | bytes,
) -> tuple[str, str]:
    """Sign a typed-data triple.

    Returns:
        ``(signature, payload_hash)`` as 0x-prefixed hex strings.
    """
    signed = Account.sign_message(encode(domain, types, message), private_key=private_key)
    return "0x" + bytes(signed.signature).hex(), "0x" + bytes(signed.message_hash).hex()
