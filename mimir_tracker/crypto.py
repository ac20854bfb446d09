"""
mimir_tracker.crypto
--------------------
Ed25519 helpers for tracker admission control.

A registration carries a signature over the 16 raw bytes of the announced
IPv6 address, made with the private key whose public half is the identity.
Verification never raises: anything malformed coming off the wire is simply
a failed verification.
"""

from __future__ import annotations
from typing import Tuple
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ed25519

from .constants import IDENTITY_LEN, SIGNATURE_LEN


# --------- Ed25519 (sign/verify) ----------
def ed25519_generate() -> Tuple[bytes, bytes]:
    sk = ed25519.Ed25519PrivateKey.generate()
    pk = sk.public_key()
    return sk.private_bytes_raw(), pk.public_bytes_raw()

def ed25519_public_key(priv_raw: bytes) -> bytes:
    return ed25519.Ed25519PrivateKey.from_private_bytes(priv_raw).public_key().public_bytes_raw()

def ed25519_sign(priv_raw: bytes, data: bytes) -> bytes:
    sk = ed25519.Ed25519PrivateKey.from_private_bytes(priv_raw)
    return sk.sign(data)

def ed25519_verify(pub_raw: bytes, sig: bytes, data: bytes) -> bool:
    if len(pub_raw) != IDENTITY_LEN or len(sig) != SIGNATURE_LEN:
        return False
    try:
        ed25519.Ed25519PublicKey.from_public_bytes(pub_raw).verify(sig, data)
        return True
    except (InvalidSignature, ValueError):
        return False


# --------- Address helpers ----------
def sign_address(priv_raw: bytes, address: bytes) -> bytes:
    """Sign the raw 16-byte address announced in a register request."""
    return ed25519_sign(priv_raw, address)

def verify_address(identity: bytes, signature: bytes, address: bytes) -> bool:
    return ed25519_verify(identity, signature, address)
