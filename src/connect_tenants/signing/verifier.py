"""
Request signature primitives.

Two modes, chosen by the key material a tenant stored at install time:

- symmetric: HMAC-SHA256 of the request digest keyed by the shared secret,
  hex encoded.
- asymmetric: RSASSA-PKCS1-v1_5 / SHA-256 signature of the request digest,
  base64 encoded, checked against the tenant's RSA public key.

Hosts send public keys either as PEM or as bare base64 DER; both load.
"""

import base64
import binascii
import hashlib
import hmac

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import load_der_public_key, load_pem_public_key

SYMMETRIC = "shared_secret"
ASYMMETRIC = "public_key"


def compute_hmac(shared_secret: str, digest: str) -> str:
    """HMAC-SHA256 hex digest of ``digest`` keyed by ``shared_secret``."""
    return hmac.new(
        shared_secret.encode("utf-8"),
        digest.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_hmac(shared_secret: str, digest: str, signature: str) -> bool:
    """Constant-time check of a hex HMAC-SHA256 signature."""
    if not signature:
        return False
    expected = compute_hmac(shared_secret, digest)
    return hmac.compare_digest(
        expected.encode("ascii"), signature.strip().lower().encode("utf-8", "surrogatepass")
    )


def _b64decode(data: str) -> bytes:
    data = "".join(data.split())
    padded = data + "=" * (-len(data) % 4)
    if "-" in data or "_" in data:
        return base64.urlsafe_b64decode(padded)
    return base64.b64decode(padded, validate=True)


def load_public_key(material: str) -> rsa.RSAPublicKey:
    """Load an RSA public key from PEM text or bare base64 DER.

    Raises ValueError when the material is not an RSA public key.
    """
    material = material.strip()
    try:
        if material.startswith("-----BEGIN"):
            key = load_pem_public_key(material.encode("ascii"))
        else:
            key = load_der_public_key(_b64decode(material))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError("Public key is not valid base64") from exc
    except UnsupportedAlgorithm as exc:
        raise ValueError("Public key algorithm is not supported") from exc
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError("Public key is not an RSA key")
    return key


def sign_rsa(private_key: rsa.RSAPrivateKey, digest: str) -> str:
    """Base64 RSASSA-PKCS1-v1_5 / SHA-256 signature of ``digest``."""
    signature = private_key.sign(digest.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


def verify_rsa(public_key: str | rsa.RSAPublicKey, digest: str, signature: str) -> bool:
    """Check a base64 RSA signature over ``digest``.

    Malformed key material or signature encoding yields False.
    """
    if not signature:
        return False
    try:
        key = load_public_key(public_key) if isinstance(public_key, str) else public_key
        raw = _b64decode(signature)
    except (ValueError, binascii.Error):
        return False
    try:
        key.verify(raw, digest.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature:
        return False
    return True


def verify(mode: str, key_material: str, digest: str, signature: str) -> bool:
    """Dispatch to the verifier for ``mode``."""
    if mode == SYMMETRIC:
        return verify_hmac(key_material, digest, signature)
    if mode == ASYMMETRIC:
        return verify_rsa(key_material, digest, signature)
    raise ValueError(f"Unknown credential mode: {mode!r}")
