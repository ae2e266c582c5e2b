from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any
from typing import Optional

from cryptography.hazmat.primitives import hashes

from acme_autocert.acme_client.endpoint import Endpoint
from acme_autocert.errors import UnsupportedChallengeError
from acme_autocert.jws import PrivateKey
from acme_autocert.jws import b64url_encode
from acme_autocert.jws import create_jwk_thumbprint


class ChallengeType(str, Enum):
    HTTP_01 = "http-01"
    DNS_01 = "dns-01"

    @classmethod
    def parse(cls, value: str) -> "ChallengeType":
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedChallengeError(f"Unknown challenge type: {value}") from None


@dataclass(frozen=True)
class ChallengeResponseEndpoint(Endpoint):
    # RFC Section 7.5.1
    valid_status = (200,)


@dataclass(frozen=True)
class Challenge:
    type: str
    respond_url: ChallengeResponseEndpoint
    status: str
    token: Optional[str]
    validated: Optional[str]
    error: Optional[dict[str, Any]]
    additional: dict[str, Any] = field(default_factory=dict)

    @property
    def url(self) -> str:
        return self.respond_url.url

    @staticmethod
    def from_json(response_json: dict[str, Any]):
        # Copy, then use .pop to remove the fields gradually and get the
        # additional fields leftover for each challenge type.
        remaining = dict(response_json)
        return Challenge(
            type=remaining.pop("type"),
            respond_url=ChallengeResponseEndpoint(remaining.pop("url")),
            status=remaining.pop("status"),
            token=remaining.pop("token", None),
            validated=remaining.pop("validated", None),
            error=remaining.pop("error", None),
            additional=remaining,
        )


def get_key_authorization(challenge_type: str, token: str, key: PrivateKey) -> str:
    """Derive the key authorization for a challenge (RFC 8555 Section 8.1).

    For http-01 this is `token.thumbprint`, for dns-01 the base64url SHA-256
    digest of that string (Section 8.4).

    Raises
    ------
    UnsupportedChallengeError
        When the challenge type is not http-01 or dns-01.
    """
    kind = ChallengeType.parse(challenge_type)
    key_authorization = f"{token}.{create_jwk_thumbprint(key)}"

    if kind is ChallengeType.HTTP_01:
        return key_authorization

    digest = hashes.Hash(hashes.SHA256())
    digest.update(key_authorization.encode("ASCII"))
    return b64url_encode(digest.finalize())
