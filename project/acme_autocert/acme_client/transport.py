import json
import logging
from dataclasses import dataclass
from typing import Any
from typing import Optional
from typing import Union

import requests
from requests import Response
from requests import Session

from acme_autocert.acme_client.directory import Directory
from acme_autocert.acme_client.directory import DirectoryEndpoint
from acme_autocert.acme_client.endpoint import problem_document
from acme_autocert.acme_client.new_nonce import NewNonceEndpoint
from acme_autocert.csr import load_private_key
from acme_autocert.errors import ApiError
from acme_autocert.errors import DirectoryError
from acme_autocert.errors import NonceError
from acme_autocert.jws import PrivateKey
from acme_autocert.jws import b64url_decode
from acme_autocert.jws import create_flattened_jws
from acme_autocert.jws import create_hmac_jws
from acme_autocert.jws import create_jwk
from acme_autocert.jws import get_key_algorithm

logger = logging.getLogger(__name__)

USER_AGENT = "acme-autocert/1.0.0"
BAD_NONCE = "urn:ietf:params:acme:error:badNonce"
# Total number of sends for one signed request while the server keeps
# rejecting the nonce
MAX_NONCE_ATTEMPTS = 5


@dataclass(frozen=True)
class ExternalAccountBinding:
    """Key identifier and MAC key provisioned out of band by the CA.

    `hmac_key` is the base64url encoded key as handed out by the CA.
    """

    kid: str
    hmac_key: str

    @property
    def key_bytes(self) -> bytes:
        return b64url_decode(self.hmac_key)


class SignedRequestTransport:
    """Sends ACME requests: plain ones for the directory and nonces, and JWS
    signed POSTs for everything else.

    Parameters
    ----------
    directory_url : str
        The URL to the ACME server directory.
    account_key
        The account private key, as PEM or a `cryptography` key object.
    external_account_binding : ExternalAccountBinding, optional
        Credentials to bind the account to, used on account creation.
    verify_tls : bool or str
        Passed to requests as `verify`; a path selects a CA bundle.
    """

    def __init__(
        self,
        directory_url: str,
        account_key: Any,
        external_account_binding: Optional[ExternalAccountBinding] = None,
        verify_tls: Union[bool, str] = True,
        user_agent: str = USER_AGENT,
        session: Optional[Session] = None,
    ):
        self.directory_url = directory_url
        self.account_key: PrivateKey = load_private_key(account_key)
        self.algorithm = get_key_algorithm(self.account_key)
        self.external_account_binding = external_account_binding
        self.verify_tls = verify_tls
        self.user_agent = user_agent
        self.session = session if session is not None else Session()

        self._directory: Optional[Directory] = None
        self._jwk: Optional[dict[str, str]] = None

    def request(
        self,
        url: str,
        method: str,
        headers: Optional[dict[str, str]] = None,
        data: Optional[str] = None,
    ) -> Response:
        """Send one bare HTTP request. Never retries."""
        headers = (headers or {}) | {"User-Agent": self.user_agent}
        if data is not None:
            headers |= {"Content-Type": "application/jose+json"}

        logger.debug(f"HTTP request: {method} {url}")
        response = self.session.request(
            method, url, headers=headers, data=data, verify=self.verify_tls
        )
        logger.debug(f"RESP {response.status_code} {method} {url}")
        return response

    def get_directory(self) -> Directory:
        """Fetch the directory once; later calls return the cached copy.

        Raises
        ------
        DirectoryError
            When the directory cannot be fetched or is not a JSON object.
        """
        if self._directory is None:
            try:
                response = DirectoryEndpoint(self.directory_url).retrieve(self)
                self._directory = Directory.from_json(response.json())
            except (ApiError, requests.RequestException, ValueError) as e:
                raise DirectoryError(
                    f"Unable to fetch directory {self.directory_url}: {e}"
                ) from e
        return self._directory

    def get_resource_url(self, resource: str) -> str:
        return self.get_directory().get_resource_url(resource)

    def get_jwk(self) -> dict[str, str]:
        if self._jwk is None:
            self._jwk = create_jwk(self.account_key)
        return self._jwk

    def get_nonce(self) -> str:
        """Get a fresh nonce from the newNonce resource.

        Raises
        ------
        NonceError
            When the server does not hand out a nonce.
        """
        url = self.get_resource_url("newNonce")
        try:
            response = NewNonceEndpoint(url).retrieve(self)
        except ApiError as e:
            raise NonceError(f"Failed to get nonce from ACME provider: {e}") from e

        if "Replay-Nonce" not in response.headers:
            raise NonceError("Failed to get nonce from ACME provider")
        return response.headers["Replay-Nonce"]

    def create_protected_header(
        self, url: str, nonce: Optional[str] = None, kid: Optional[str] = None
    ) -> dict[str, Any]:
        """Build the JWS protected header. Without a `kid` the account public
        key is embedded as `jwk` (RFC 8555 Section 6.2)."""
        protected_header: dict[str, Any] = {"alg": self.algorithm, "url": url}

        if nonce is not None:
            protected_header |= {"nonce": nonce}

        if kid is not None:
            protected_header |= {"kid": kid}
        else:
            protected_header |= {"jwk": self.get_jwk()}

        return protected_header

    def create_signed_body(
        self,
        url: str,
        payload: Union[str, dict[str, Any], None],
        nonce: Optional[str] = None,
        kid: Optional[str] = None,
    ) -> dict[str, str]:
        return create_flattened_jws(
            self.account_key, self.create_protected_header(url, nonce, kid), payload
        )

    def create_external_account_binding(self, url: str) -> dict[str, str]:
        """Sign the account JWK with the EAB MAC key (RFC 8555 Section 7.3.4)."""
        if self.external_account_binding is None:
            raise ValueError("No external account binding credentials configured")

        return create_hmac_jws(
            self.external_account_binding.key_bytes,
            {"alg": "HS256", "kid": self.external_account_binding.kid, "url": url},
            self.get_jwk(),
        )

    def signed_request(
        self,
        url: str,
        payload: Union[str, dict[str, Any], None],
        kid: Optional[str] = None,
        nonce: Optional[str] = None,
        include_external_account_binding: bool = False,
        headers: Optional[dict[str, str]] = None,
    ) -> Response:
        """Sign and POST a payload, resending on badNonce rejections.

        Raises
        ------
        NonceError
            When the server rejected the nonce MAX_NONCE_ATTEMPTS times.
        """
        if include_external_account_binding:
            if not isinstance(payload, dict):
                raise ValueError("External account binding needs a JSON object payload")
            payload = payload | {
                "externalAccountBinding": self.create_external_account_binding(url)
            }

        attempt = 1
        while True:
            if nonce is None:
                nonce = self.get_nonce()
            logger.debug(f"Using nonce: {nonce}")

            body = self.create_signed_body(url, payload, nonce, kid)
            response = self.request(url, "POST", headers=headers, data=json.dumps(body))

            if not _is_bad_nonce(response):
                return response

            if attempt >= MAX_NONCE_ATTEMPTS:
                raise NonceError(
                    f"Server rejected the nonce {attempt} times in a row for {url}"
                )

            logger.debug(f"badNonce response, attempt = {attempt}")
            # Use the nonce from the rejection if there is one, otherwise
            # fetch a fresh one on the next pass.
            nonce = response.headers.get("Replay-Nonce")
            attempt += 1


def _is_bad_nonce(response: Response) -> bool:
    return response.status_code == 400 and problem_document(response).get("type") == BAD_NONCE
