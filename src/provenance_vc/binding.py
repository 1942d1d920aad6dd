"""
Binding tags.

A binding tag ties an opaque commitment/proof pair to the context it was
minted for: chain, escrow contract, product, stage, schema version and, from
the second stage on, the content id of the predecessor credential. The proof
service only accepts a proof together with the exact tag it was generated
against, so a proof lifted onto another context fails verification.

The tag is ``keccak256`` over the Solidity-packed encoding of

    protocol ‖ uint256 chainId ‖ address escrow ‖ uint256 productId
    ‖ uint8 stage ‖ schemaVersion [‖ previousCredentialId]

where ``protocol`` is ``zkp-bind-v1`` without a predecessor and
``zkp-bind-v2`` with one. Field order and widths are fixed; a change
requires a new protocol string.
"""

from __future__ import annotations

from dataclasses import dataclass

from eth_abi.packed import encode_packed
from eth_utils import is_address, keccak, to_checksum_address

from provenance_vc.canonical import DEFAULT_SCHEMA_VERSION

BINDING_PROTOCOL_V1 = "zkp-bind-v1"
BINDING_PROTOCOL_V2 = "zkp-bind-v2"
TX_HASH_BINDING_PROTOCOL = "tx-hash-bind-v1"

# Product listed, purchased, delivered.
MAX_STAGE = 2


class BindingTagError(ValueError):
    """Raised when a binding context cannot be encoded."""


def _as_uint(value: int | str, name: str, positive: bool = False) -> int:
    if isinstance(value, bool):
        raise BindingTagError(f"Invalid {name}: {value!r}")
    if isinstance(value, str):
        try:
            value = int(value.strip(), 10)
        except ValueError as e:
            raise BindingTagError(f"Invalid {name}: {value!r}. Must be a valid number") from e
    if not isinstance(value, int):
        raise BindingTagError(f"Invalid {name}: {value!r}. Must be a valid number")
    if value < 0 or (positive and value == 0):
        raise BindingTagError(f"Invalid {name}: {value}")
    if value >= 2**256:
        raise BindingTagError(f"{name} does not fit in uint256: {value}")
    return value


def _as_address(value: str, name: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise BindingTagError(f"Invalid {name}: {value!r}. Must be a 20-byte address")
    return to_checksum_address(value)


def _hex(digest: bytes) -> str:
    return "0x" + digest.hex()


@dataclass(frozen=True)
class BindingContext:
    """The context a commitment is bound to."""

    chain_id: int
    escrow_address: str
    product_id: int
    stage: int
    schema_version: str = DEFAULT_SCHEMA_VERSION
    previous_credential_id: str | None = None

    @property
    def protocol(self) -> str:
        return BINDING_PROTOCOL_V2 if self.previous_credential_id else BINDING_PROTOCOL_V1

    def tag(self) -> str:
        return derive_binding_tag(
            self.chain_id,
            self.escrow_address,
            self.product_id,
            self.stage,
            schema_version=self.schema_version,
            previous_credential_id=self.previous_credential_id,
        )


def derive_binding_tag(
    chain_id: int | str,
    escrow_address: str,
    product_id: int | str,
    stage: int | str,
    schema_version: str = DEFAULT_SCHEMA_VERSION,
    previous_credential_id: str | None = None,
) -> str:
    """Derive the binding tag for a commitment context.

    Args:
        chain_id: Chain the escrow lives on.
        escrow_address: Escrow (verifying) contract address, any case.
        product_id: Product id assigned by the escrow contract.
        stage: Lifecycle stage, 0 to 2.
        schema_version: Credential schema version.
        previous_credential_id: Content id of the predecessor credential.
            An empty string is treated as absent.

    Returns:
        ``0x`` followed by 64 lower-case hex characters.

    Raises:
        BindingTagError: If any field is malformed.
    """
    chain = _as_uint(chain_id, "chainId", positive=True)
    escrow = _as_address(escrow_address, "escrow address")
    product = _as_uint(product_id, "productId")
    stage_num = _as_uint(stage, "stage")
    if stage_num > MAX_STAGE:
        raise BindingTagError(f"Invalid stage: {stage}. Must be 0, 1, or 2")
    if not isinstance(schema_version, str) or not schema_version:
        raise BindingTagError(f"Invalid schemaVersion: {schema_version!r}. Must be a string")
    if previous_credential_id is not None and not isinstance(previous_credential_id, str):
        raise BindingTagError("previousCredentialId must be a string")

    types = ["string", "uint256", "address", "uint256", "uint8", "string"]
    values: list[object] = [BINDING_PROTOCOL_V1, chain, escrow, product, stage_num, schema_version]
    if previous_credential_id:
        types.append("string")
        values[0] = BINDING_PROTOCOL_V2
        values.append(previous_credential_id)

    return _hex(keccak(encode_packed(types, values)))


def derive_tx_hash_binding_tag(
    chain_id: int | str,
    escrow_address: str,
    product_id: int | str,
    buyer_address: str,
) -> str:
    """Derive the tag shared by the purchase and delivery transaction commitments.

    Both commitments of one sale are generated against this tag, which is
    what lets a verifier link them without revealing either transaction hash.
    """
    chain = _as_uint(chain_id, "chainId", positive=True)
    escrow = _as_address(escrow_address, "escrow address")
    product = _as_uint(product_id, "productId")
    buyer = _as_address(buyer_address, "buyer address")

    packed = encode_packed(
        ["string", "uint256", "address", "uint256", "address"],
        [TX_HASH_BINDING_PROTOCOL, chain, escrow, product, buyer],
    )
    return _hex(keccak(packed))


def deterministic_blinding(product_address: str, seller_address: str) -> str:
    """Blinding factor that seller and buyer can both recompute.

    Returns:
        64 hex characters, without prefix.
    """
    product = _as_address(product_address, "product address")
    seller = _as_address(seller_address, "seller address")
    return keccak(encode_packed(["address", "address"], [product, seller])).hex()
