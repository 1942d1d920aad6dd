"""
Runtime configuration.

Settings are read from the environment once, at process start, and passed
explicitly to the verifier and the HTTP collaborators. Nothing here is
mutated after construction.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)

# Sepolia
DEFAULT_CHAIN_ID = 11155111
DEFAULT_IPFS_GATEWAY = "https://gateway.pinata.cloud/ipfs/"
DEFAULT_PROOF_SERVICE_URL = "http://localhost:5010"
DEFAULT_HTTP_TIMEOUT = 30.0

CHAIN_ID_ENV_VARS = ("VC_CHAIN_ID", "CHAIN_ID")


def _parse_chain_id(raw: str | None) -> int | None:
    if not raw:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value > 0 else None


@dataclass(frozen=True)
class Settings:
    """Immutable process configuration."""

    default_chain_id: int = DEFAULT_CHAIN_ID
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY
    proof_service_url: str = DEFAULT_PROOF_SERVICE_URL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        The chain id is taken from the first of ``VC_CHAIN_ID`` / ``CHAIN_ID``
        holding a positive integer. Invalid values fall back to the default
        rather than failing start-up.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            A frozen Settings instance.
        """
        env = os.environ if environ is None else environ

        chain_id = DEFAULT_CHAIN_ID
        for name in CHAIN_ID_ENV_VARS:
            parsed = _parse_chain_id(env.get(name))
            if parsed is not None:
                chain_id = parsed
                break

        timeout = DEFAULT_HTTP_TIMEOUT
        raw_timeout = env.get("HTTP_TIMEOUT")
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                logger.warning("Ignoring invalid HTTP_TIMEOUT %r", raw_timeout)

        return cls(
            default_chain_id=chain_id,
            ipfs_gateway=env.get("IPFS_GATEWAY") or DEFAULT_IPFS_GATEWAY,
            proof_service_url=env.get("ZKP_BACKEND_URL") or DEFAULT_PROOF_SERVICE_URL,
            http_timeout=timeout,
        )
