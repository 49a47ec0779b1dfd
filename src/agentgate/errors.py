"""Protocol errors — distinct, named failures for every rejected operation.

Every error aborts the operation with no state change. Each class carries
a stable ``code`` so that automated clients can decide whether to retry,
re-derive a fresh commitment, or abandon the request.
"""

from __future__ import annotations


class ProtocolError(Exception):
    """Base class for all protocol rejections."""

    code = "protocol_error"


class Unauthorized(ProtocolError):
    """Caller lacks the role required for the operation (controller or agent)."""

    code = "unauthorized"


class NotAuthorized(ProtocolError):
    """The identity named in a signed request is not an authorized agent."""

    code = "not_authorized"


class Expired(ProtocolError):
    """The request was submitted after its expiry."""

    code = "expired"


class AlreadyConsumed(ProtocolError):
    """The commitment digest or (domain, nonce) pair was already used."""

    code = "already_consumed"


class InvalidSignature(ProtocolError):
    """The signature is malformed, degenerate, or recovers no signer."""

    code = "invalid_signature"


class SignerMismatch(ProtocolError):
    """The recovered signer differs from the identity claimed in the request."""

    code = "signer_mismatch"


class InvalidProof(ProtocolError):
    """A Merkle inclusion proof does not reproduce the current trusted root."""

    code = "invalid_proof"


class DomainNotAllowed(ProtocolError):
    """The payload URI host is not on the allow-list."""

    code = "domain_not_allowed"


class TooLong(ProtocolError):
    """The payload URI exceeds the configured maximum length."""

    code = "too_long"


__all__ = [
    "ProtocolError",
    "Unauthorized",
    "NotAuthorized",
    "Expired",
    "AlreadyConsumed",
    "InvalidSignature",
    "SignerMismatch",
    "InvalidProof",
    "DomainNotAllowed",
    "TooLong",
]
