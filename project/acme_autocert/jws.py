import hmac
import json
from base64 import urlsafe_b64decode
from base64 import urlsafe_b64encode
from typing import Any
from typing import Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.utils import int_to_bytes

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]

# RFC 7518 Section 3.4: curve -> (alg, hash)
_EC_ALGORITHMS = {
    "secp256r1": ("ES256", hashes.SHA256),
    "secp384r1": ("ES384", hashes.SHA384),
    "secp521r1": ("ES512", hashes.SHA512),
}

_EC_CURVE_NAMES = {
    "secp256r1": "P-256",
    "secp384r1": "P-384",
    "secp521r1": "P-521",
}


def b64url_encode(data: Union[bytes, str]) -> str:
    """Base64url encode without padding (RFC 7515 Section 2)."""
    if isinstance(data, str):
        data = data.encode("UTF-8")
    return urlsafe_b64encode(data).strip(b"=").decode("ASCII")


def b64url_decode(data: str) -> bytes:
    return urlsafe_b64decode(data + "=" * (-len(data) % 4))


def get_key_algorithm(key: PrivateKey) -> str:
    """Return the JWS `alg` value to use for signing with the key."""
    if isinstance(key, rsa.RSAPrivateKey):
        return "RS256"
    if isinstance(key, ec.EllipticCurvePrivateKey):
        if key.curve.name not in _EC_ALGORITHMS:
            raise ValueError(f"Unsupported EC curve: {key.curve.name}")
        return _EC_ALGORITHMS[key.curve.name][0]
    raise ValueError(f"Unsupported account key type: {type(key).__name__}")


def create_jwk(key: PrivateKey) -> dict[str, str]:
    # Only the minimum required keys should be here, and in lexicographic
    # order. This is irrelevant for the newAccount ACME server registration,
    # but becomes vital for the JWK Thumbprint generation when responding to
    # challenges, see RFC 8555 Section 8.1 and RFC 7638 Section 3.2.
    if isinstance(key, rsa.RSAPrivateKey):
        numbers = key.public_key().public_numbers()
        return {
            "e": b64url_encode(int_to_bytes(numbers.e)),
            "kty": "RSA",
            "n": b64url_encode(int_to_bytes(numbers.n)),
        }

    get_key_algorithm(key)
    size = (key.curve.key_size + 7) // 8
    numbers = key.public_key().public_numbers()
    return {
        "crv": _EC_CURVE_NAMES[key.curve.name],
        "kty": "EC",
        "x": b64url_encode(int_to_bytes(numbers.x, size)),
        "y": b64url_encode(int_to_bytes(numbers.y, size)),
    }


def sign_jws_input(key: PrivateKey, signing_input: bytes) -> bytes:
    """Produce the raw JWS signature bytes over `signing_input`."""
    if isinstance(key, rsa.RSAPrivateKey):
        return key.sign(signing_input, padding.PKCS1v15(), hashes.SHA256())

    get_key_algorithm(key)
    hash_cls = _EC_ALGORITHMS[key.curve.name][1]
    # The key.sign() method on EllipticCurvePrivateKey returns a DSS format,
    # whereas we want the pure concatenation of r and s bytes (RFC 7518
    # Section 3.4 for procedure specific to ES256, i.e. ECDSA P-256 SHA256)
    (r, s) = decode_dss_signature(
        key.sign(signing_input, signature_algorithm=ec.ECDSA(hash_cls()))
    )
    size = (key.curve.key_size + 7) // 8
    return int_to_bytes(r, size) + int_to_bytes(s, size)


def create_flattened_jws(
    key: PrivateKey, protected_header: dict[str, Any], payload: Union[str, dict, None]
) -> dict[str, str]:
    """Create a flattened JWS (RFC 7515 Section 7.2.2) signed with `key`.

    An empty string or None payload produces the empty payload used by
    POST-as-GET requests.
    """
    b64url_protected_header = b64url_encode(json.dumps(protected_header))
    b64url_payload = encode_payload(payload)

    signature = sign_jws_input(
        key, f"{b64url_protected_header}.{b64url_payload}".encode("ASCII")
    )
    return {
        "protected": b64url_protected_header,
        "payload": b64url_payload,
        "signature": b64url_encode(signature),
    }


def create_hmac_jws(
    hmac_key: bytes, protected_header: dict[str, Any], payload: dict[str, Any]
) -> dict[str, str]:
    """Create an HS256 flattened JWS, as used for external account binding
    (RFC 8555 Section 7.3.4)."""
    b64url_protected_header = b64url_encode(json.dumps(protected_header))
    b64url_payload = encode_payload(payload)
    signature = hmac.new(
        hmac_key,
        f"{b64url_protected_header}.{b64url_payload}".encode("ASCII"),
        "sha256",
    ).digest()
    return {
        "protected": b64url_protected_header,
        "payload": b64url_payload,
        "signature": b64url_encode(signature),
    }


def encode_payload(payload: Union[str, dict, None]) -> str:
    if payload is None or payload == "":
        return ""
    if isinstance(payload, str):
        return b64url_encode(payload)
    return b64url_encode(json.dumps(payload))


def create_jwk_thumbprint(key: PrivateKey) -> str:
    thumbprint = hashes.Hash(hashes.SHA256())
    thumbprint.update(
        json.dumps(
            create_jwk(key=key),
            # Prevent whitespace between items and between key/value, which the
            # default will add. JWK Thumbprint should be computed with zero
            # whitespace as per RFC 7638 Section 3.
            separators=(",", ":"),
            sort_keys=True,
        ).encode("UTF-8")
    )
    return b64url_encode(thumbprint.finalize())
