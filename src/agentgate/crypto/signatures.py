"""EIP-712 signing and signer recovery for update requests.

The typed-data domain binds every signature to one protocol name and
version, one chain id and one verifying contract, so a signature made for
another deployment or another chain never recovers the expected signer
here.

Recovery is strict. A signature is rejected before recovery if it is not
65 bytes, if ``r`` or ``s`` is zero or out of range, if ``s`` lies in the
upper half of the curve order (the malleable twin of a valid signature),
or if ``v`` is not a recovery id. A recovery that yields the zero address
is rejected as well, never treated as a signer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_keys.exceptions import BadSignature
from eth_utils import decode_hex

from agentgate.crypto.hashing import normalize_address, require_uint256
from agentgate.errors import InvalidSignature
from agentgate.models.update import UpdateRequest

logger = logging.getLogger(__name__)

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

UPDATE_REQUEST_TYPE = [
    {"name": "agent", "type": "address"},
    {"name": "targetId", "type": "uint256"},
    {"name": "payloadURI", "type": "string"},
    {"name": "digest", "type": "bytes32"},
    {"name": "expiry", "type": "uint256"},
]

SignatureLike = Union[bytes, bytearray, str]


@dataclass(frozen=True)
class SigningDomain:
    """Versioned EIP-712 domain separator fields."""
    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def __post_init__(self) -> None:
        require_uint256(self.chain_id, "chain_id")
        object.__setattr__(
            self,
            "verifying_contract",
            normalize_address(self.verifying_contract, "verifying_contract"),
        )

    def to_eip712(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


def typed_update(request: UpdateRequest, domain: SigningDomain) -> dict[str, Any]:
    """Full EIP-712 payload for an update request."""
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_TYPE,
            "UpdateRequest": UPDATE_REQUEST_TYPE,
        },
        "primaryType": "UpdateRequest",
        "domain": domain.to_eip712(),
        "message": request.typed_message(),
    }


def encode_update(request: UpdateRequest, domain: SigningDomain) -> SignableMessage:
    return encode_typed_data(full_message=typed_update(request, domain))


def sign_update(
    request: UpdateRequest, domain: SigningDomain, private_key: str | bytes
) -> bytes:
    """Sign an update request; returns the 65-byte ``r || s || v`` signature."""
    signed = Account.sign_message(encode_update(request, domain), private_key=private_key)
    return bytes(signed.signature)


def split_signature(signature: SignatureLike) -> tuple[int, int, int]:
    """Split and validate a 65-byte signature into ``(v, r, s)``.

    Raises:
        InvalidSignature: If the signature is degenerate or malleable.
    """
    if isinstance(signature, str):
        try:
            raw = decode_hex(signature)
        except ValueError as exc:
            raise InvalidSignature(f"signature is not valid hex: {exc}") from exc
    elif isinstance(signature, (bytes, bytearray)):
        raw = bytes(signature)
    else:
        raise InvalidSignature("signature must be bytes or hex")

    if len(raw) != 65:
        raise InvalidSignature(f"signature must be 65 bytes, got {len(raw)}")

    r = int.from_bytes(raw[0:32], "big")
    s = int.from_bytes(raw[32:64], "big")
    v = raw[64]
    if v in (0, 1):
        v += 27

    if v not in (27, 28):
        raise InvalidSignature(f"invalid recovery id v={raw[64]}")
    if r == 0 or s == 0:
        raise InvalidSignature("degenerate signature: zero r or s")
    if r >= SECP256K1_N:
        raise InvalidSignature("signature r out of range")
    if s > SECP256K1_HALF_N:
        raise InvalidSignature("malleable signature: s in upper half order")
    return v, r, s


def recover_signer(message: SignableMessage, signature: SignatureLike) -> str:
    """Recover the signing address, rejecting every form of non-signer.

    Raises:
        InvalidSignature: For malformed, degenerate or unrecoverable
            signatures, including recovery to the zero address.
    """
    vrs = split_signature(signature)
    try:
        recovered = Account.recover_message(message, vrs=vrs)
    except (BadSignature, ValueError) as exc:
        raise InvalidSignature(f"signature recovery failed: {exc}") from exc

    if not recovered or int(recovered, 16) == 0:
        raise InvalidSignature("signature recovers to the zero address")
    logger.debug("Recovered signer %s", recovered)
    return normalize_address(recovered)


def recover_update_signer(
    request: UpdateRequest, domain: SigningDomain, signature: SignatureLike
) -> str:
    return recover_signer(encode_update(request, domain), signature)
