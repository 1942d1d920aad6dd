"""
Content-addressed credential storage.

Credentials are pinned to IPFS and referenced by content id (CID) from the
escrow contract and from later credentials in the chain. Documents are
immutable once pinned, so fetched documents are cached per CID.
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any

import httpx

from provenance_vc.config import DEFAULT_HTTP_TIMEOUT, DEFAULT_IPFS_GATEWAY, Settings

logger = logging.getLogger(__name__)

IPFS_SCHEME = "ipfs://"

# CIDv0 (base58btc multihash) or CIDv1 in base32.
_CID_RE = re.compile(r"^(Qm[1-9A-HJ-NP-Za-km-z]{44}|b[a-z2-7]{20,})$")


class StorageError(Exception):
    """Raised when a credential cannot be fetched from storage."""


def normalize_cid(value: str) -> str:
    """Strip an ``ipfs://`` or ``/ipfs/`` prefix and validate the CID.

    Raises:
        StorageError: If the value is not a CID.
    """
    if not isinstance(value, str):
        raise StorageError(f"Invalid CID: {value!r}")
    cid = value.strip()
    if cid.startswith(IPFS_SCHEME):
        cid = cid[len(IPFS_SCHEME):]
    elif cid.startswith("/ipfs/"):
        cid = cid[len("/ipfs/"):]
    cid = cid.rstrip("/")
    if not _CID_RE.match(cid):
        raise StorageError(f"Invalid CID: {value}")
    return cid


class CredentialStore:
    """Read-only access to credentials through an IPFS HTTP gateway."""

    def __init__(
        self,
        gateway: str = DEFAULT_IPFS_GATEWAY,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        """Initialize the store.

        Args:
            gateway: Gateway prefix; the CID is appended to it.
            timeout: HTTP request timeout in seconds.
        """
        self.gateway = gateway if gateway.endswith("/") else gateway + "/"
        self.timeout = timeout
        self._cache: dict[str, dict[str, Any]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialStore:
        return cls(gateway=settings.ipfs_gateway, timeout=settings.http_timeout)

    def url_for(self, cid: str) -> str:
        return f"{self.gateway}{normalize_cid(cid)}"

    def fetch(self, cid: str, use_cache: bool = True) -> dict[str, Any]:
        """Fetch a credential document by CID.

        Args:
            cid: Content id, optionally ``ipfs://``-prefixed.
            use_cache: Whether to use cached documents.

        Returns:
            The document. Callers get their own copy.

        Raises:
            StorageError: If the CID is invalid or fetching/decoding fails.
        """
        cid = normalize_cid(cid)
        if use_cache and cid in self._cache:
            return copy.deepcopy(self._cache[cid])

        url = f"{self.gateway}{cid}"
        logger.debug("Fetching credential %s from %s", cid, url)

        try:
            with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                response = client.get(
                    url,
                    headers={"Accept": "application/vc+ld+json, application/json"},
                )
                response.raise_for_status()
                document = response.json()

        except httpx.HTTPStatusError as e:
            raise StorageError(
                f"HTTP error fetching {cid}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise StorageError(f"Network error fetching {cid}: {e}") from e
        except ValueError as e:
            raise StorageError(f"Invalid JSON in credential {cid}") from e

        if not isinstance(document, dict):
            raise StorageError(f"Credential {cid} is not a JSON object")

        if use_cache:
            self._cache[cid] = document
        return copy.deepcopy(document)

    def clear_cache(self) -> None:
        """Clear the document cache."""
        self._cache.clear()
