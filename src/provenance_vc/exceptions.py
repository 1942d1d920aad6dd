"""Exceptions raised for structurally unusable credential documents."""

from __future__ import annotations


class CredentialError(Exception):
    """Base class for credential document errors."""


class CredentialStructureError(CredentialError):
    """The document cannot be processed at all (e.g. it is not an object)."""


class NoProofsError(CredentialStructureError):
    """The document carries no proofs to verify."""


class CommitmentFormatError(CredentialError):
    """An embedded commitment bundle does not follow its declared format."""


class PriceEnvelopeError(CommitmentFormatError):
    """The ``price`` field declares a JSON envelope that cannot be parsed."""
