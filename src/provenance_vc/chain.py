"""
Credential chain traversal.

Two links connect credentials:

- ``previousCredential``: the transaction lifecycle of one product. Each
  stage (listed, purchased, delivered) points at the credential of the
  stage before it, ending at a root without a predecessor.
- ``componentCredentials``: the supply chain. A product built from other
  products lists the final credentials of its components.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from provenance_vc.canonical import HOLDER, ISSUER, normalize_proofs
from provenance_vc.storage import StorageError

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Mapping[str, Any]]

DEFAULT_CHAIN_DEPTH = 64
DEFAULT_COMPONENT_DEPTH = 8


class ChainError(Exception):
    """Raised when a provenance chain loops or is deeper than allowed."""


def _subject(document: Mapping[str, Any]) -> Mapping[str, Any]:
    subject = document.get("credentialSubject")
    return subject if isinstance(subject, Mapping) else {}


def previous_credential_id(document: Mapping[str, Any]) -> str | None:
    """CID of the predecessor credential, or None for a root."""
    previous = _subject(document).get("previousCredential")
    if isinstance(previous, str) and previous.strip():
        return previous.strip()
    return None


def component_credential_ids(document: Mapping[str, Any]) -> list[str]:
    components = _subject(document).get("componentCredentials")
    if not isinstance(components, list):
        return []
    return [c for c in components if isinstance(c, str) and c]


def signed_roles(document: Mapping[str, Any]) -> set[str]:
    """Roles that carry a proof on the document."""
    return {proof.role for proof in normalize_proofs(document) if proof.role}


def is_delivered(document: Mapping[str, Any]) -> bool:
    """True when both the issuer and the holder have signed."""
    roles = signed_roles(document)
    return ISSUER in roles and HOLDER in roles


@dataclass
class ChainLink:
    """One credential on the lifecycle chain. Depth 0 is the head."""

    depth: int
    cid: str | None
    document: Mapping[str, Any]

    @property
    def previous_cid(self) -> str | None:
        return previous_credential_id(self.document)

    @property
    def is_root(self) -> bool:
        return self.previous_cid is None


def walk_provenance(
    head: Mapping[str, Any],
    fetch: Fetcher,
    head_cid: str | None = None,
    max_depth: int = DEFAULT_CHAIN_DEPTH,
) -> list[ChainLink]:
    """Follow ``previousCredential`` from ``head`` back to the root.

    An N-credential chain fetches exactly N-1 documents and returns N links,
    head first.

    Args:
        head: The newest credential.
        fetch: Maps a CID to its document (e.g. ``CredentialStore.fetch``).
        head_cid: CID of ``head`` itself, if known; used for loop detection.
        max_depth: Maximum number of links to return.

    Raises:
        ChainError: If a CID repeats or the chain exceeds ``max_depth``.
        StorageError: If ``fetch`` fails (propagated from the fetcher).
    """
    links = [ChainLink(depth=0, cid=head_cid, document=head)]
    seen = {head_cid} if head_cid else set()

    previous = previous_credential_id(head)
    while previous is not None:
        if previous in seen:
            raise ChainError(f"Provenance chain loops back to {previous}")
        if len(links) >= max_depth:
            raise ChainError(f"Provenance chain is deeper than {max_depth} credentials")
        seen.add(previous)

        document = fetch(previous)
        links.append(ChainLink(depth=len(links), cid=previous, document=document))
        logger.debug("Chain link %d: %s", len(links) - 1, previous)
        previous = previous_credential_id(document)

    return links


@dataclass
class ComponentNode:
    """A credential in the supply-chain tree and the components it lists."""

    cid: str | None
    document: Mapping[str, Any] | None
    error: str | None = None
    components: list[ComponentNode] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.document is not None and is_delivered(self.document)

    @property
    def product_name(self) -> str | None:
        if self.document is None:
            return None
        return _subject(self.document).get("productName")

    def walk(self):
        """Yield this node and all descendants, depth first."""
        yield self
        for child in self.components:
            yield from child.walk()


def component_tree(
    document: Mapping[str, Any],
    fetch: Fetcher,
    cid: str | None = None,
    max_depth: int = DEFAULT_COMPONENT_DEPTH,
) -> ComponentNode:
    """Build the supply-chain tree by following ``componentCredentials``.

    Components that cannot be fetched, or that sit deeper than
    ``max_depth``, appear as nodes with ``error`` set rather than aborting
    the whole tree.
    """
    return _build_node(document, fetch, cid, 0, max_depth, frozenset({cid} if cid else ()))


def _build_node(
    document: Mapping[str, Any],
    fetch: Fetcher,
    cid: str | None,
    depth: int,
    max_depth: int,
    ancestors: frozenset[str],
) -> ComponentNode:
    node = ComponentNode(cid=cid, document=document)

    for child_cid in component_credential_ids(document):
        if child_cid in ancestors:
            node.components.append(
                ComponentNode(cid=child_cid, document=None, error="Component cycle detected")
            )
            continue
        if depth + 1 > max_depth:
            node.components.append(
                ComponentNode(cid=child_cid, document=None, error="Max depth reached")
            )
            continue
        try:
            child = fetch(child_cid)
        except StorageError as e:
            logger.warning("Could not fetch component %s: %s", child_cid, e)
            node.components.append(ComponentNode(cid=child_cid, document=None, error=str(e)))
            continue
        node.components.append(
            _build_node(child, fetch, child_cid, depth + 1, max_depth, ancestors | {child_cid})
        )

    return node
