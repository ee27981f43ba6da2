"""Signer capability — account derivation and Ed25519 event signing.

The pipeline talks to :class:`Signer` only; :class:`Ed25519Signer` is the
PyNaCl-backed implementation.

Account derivation (deterministic for a given secret):
    seed    = sha256(blake2b(b"\\0\\0\\0\\0" + secret))
    key     = Ed25519 SigningKey(seed)
    address = network tag + hex(blake2b(public key))[:40]

Event signing:
    message   = canonical JSON of {timestamp, previous, media_type, data, signer_key}
    signature = Ed25519(message)
    hash      = sha256(message)
"""

import hashlib
import json
import time
from typing import Any, Protocol

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from models.package import SignedEvent

_NONCE_PREFIX = b"\x00\x00\x00\x00"


class Account:
    """Handle to a derived account.  Holds the key, never the secret."""

    def __init__(self, signing_key: SigningKey, network: str) -> None:
        self._signing_key = signing_key
        self.network = network
        self.public_key = signing_key.verify_key.encode().hex()
        digest = hashlib.blake2b(signing_key.verify_key.encode(), digest_size=32).hexdigest()
        self.address = f"{network}{digest[:40]}"

    def sign(self, message: bytes) -> bytes:
        return self._signing_key.sign(message).signature

    def __repr__(self) -> str:
        return f"Account(address={self.address!r})"


class Signer(Protocol):
    def derive_account(self, secret: str, network: str) -> Account: ...

    def sign_event(self, account: Account, payload: dict[str, Any], previous: str) -> SignedEvent: ...


def canonical_message(
    timestamp: int,
    previous: str,
    media_type: str,
    data: dict[str, Any],
    signer_key: str,
) -> bytes:
    body = {
        "timestamp": timestamp,
        "previous": previous,
        "media_type": media_type,
        "data": data,
        "signer_key": signer_key,
    }
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")


class Ed25519Signer:
    """PyNaCl implementation of :class:`Signer`."""

    media_type = "application/json"

    def derive_account(self, secret: str, network: str) -> Account:
        inner = hashlib.blake2b(_NONCE_PREFIX + secret.encode("utf-8"), digest_size=32).digest()
        seed = hashlib.sha256(inner).digest()
        return Account(SigningKey(seed), network)

    def sign_event(self, account: Account, payload: dict[str, Any], previous: str) -> SignedEvent:
        timestamp = int(time.time() * 1000)
        message = canonical_message(timestamp, previous, self.media_type, payload, account.public_key)
        return SignedEvent(
            timestamp=timestamp,
            previous=previous,
            media_type=self.media_type,
            data=payload,
            signer_key=account.public_key,
            signature=account.sign(message).hex(),
            hash=hashlib.sha256(message).hexdigest(),
        )


def verify_event(event: SignedEvent) -> bool:
    """Check the hash and Ed25519 signature of a single event."""
    message = canonical_message(
        event.timestamp, event.previous, event.media_type, event.data, event.signer_key
    )
    if hashlib.sha256(message).hexdigest() != event.hash:
        return False
    try:
        VerifyKey(bytes.fromhex(event.signer_key)).verify(message, bytes.fromhex(event.signature))
    except (BadSignatureError, ValueError):
        return False
    return True


__all__ = ["Account", "Signer", "Ed25519Signer", "canonical_message", "verify_event"]
