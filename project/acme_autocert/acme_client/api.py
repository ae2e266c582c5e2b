import logging
from typing import Any
from typing import Optional
from typing import Union

from requests import Response

from acme_autocert.acme_client.account import MainAccountEndpoint
from acme_autocert.acme_client.account import NewAccountEndpoint
from acme_autocert.acme_client.authorization import GetAuthorizationEndpoint
from acme_autocert.acme_client.certificate import GetCertificateEndpoint
from acme_autocert.acme_client.certificate import RevokeCertEndpoint
from acme_autocert.acme_client.challenge import ChallengeResponseEndpoint
from acme_autocert.acme_client.endpoint import Endpoint
from acme_autocert.acme_client.endpoint import check_status
from acme_autocert.acme_client.key_change import KeyChangeEndpoint
from acme_autocert.acme_client.order import FinalizeOrderEndpoint
from acme_autocert.acme_client.order import GetOrderEndpoint
from acme_autocert.acme_client.order import NewOrderEndpoint
from acme_autocert.acme_client.transport import SignedRequestTransport
from acme_autocert.errors import AccountError
from acme_autocert.errors import DirectoryError

logger = logging.getLogger(__name__)

Payload = Union[str, dict[str, Any], None]


class ResourceAPI:
    """One method per ACME operation, on top of a SignedRequestTransport.

    The account URL, once known, is used as the `kid` of every request that
    needs one. Together with the transport it forms the signing context of an
    account: key rollover replaces the whole ResourceAPI object.
    """

    def __init__(self, transport: SignedRequestTransport, account_url: Optional[str] = None):
        self.transport = transport
        self.account_url = account_url

    def get_account_url(self) -> str:
        if not self.account_url:
            raise AccountError("No account URL found, register account first")
        return self.account_url

    def api_request(
        self,
        url: str,
        payload: Payload,
        valid_status: tuple[int, ...] = (),
        use_kid: bool = True,
    ) -> Response:
        """Send a signed request to an explicit URL and check the status.

        An empty `valid_status` accepts any response.

        Raises
        ------
        ApiError
            When the status code is not in `valid_status`.
        """
        kid = self.get_account_url() if use_kid else None
        response = self.transport.signed_request(url, payload, kid=kid)

        check_status(response, valid_status)
        return response

    def api_resource_request(
        self,
        resource: str,
        payload: Payload,
        valid_status: tuple[int, ...] = (),
        use_kid: bool = True,
    ) -> Response:
        """Like api_request, with the URL looked up in the directory."""
        url = self.transport.get_resource_url(resource)
        return self.api_request(url, payload, valid_status, use_kid)

    def _retrieve(self, endpoint: Endpoint, payload: Payload = "") -> Response:
        kid = self.get_account_url() if endpoint.use_kid else None
        return endpoint.retrieve(self.transport, payload, kid=kid)

    def get_terms_of_service_url(self) -> str:
        tos = self.transport.get_directory().terms_of_service
        if not tos:
            raise DirectoryError("Unable to locate Terms of Service URL")
        return tos

    def create_account(self, payload: dict[str, Any]) -> Response:
        endpoint = NewAccountEndpoint(self.transport.get_resource_url("newAccount"))
        response = endpoint.retrieve(
            self.transport,
            payload,
            include_external_account_binding=self.transport.external_account_binding
            is not None,
        )

        # RFC specifies that the Location header points to the account URL
        if "Location" in response.headers:
            self.account_url = response.headers["Location"]
            logger.debug(f"Using account URL {self.account_url} as kid")
        return response

    def update_account(self, payload: Payload) -> Response:
        return self._retrieve(MainAccountEndpoint(self.get_account_url()), payload)

    def update_account_key(self, payload: dict[str, Any]) -> Response:
        url = self.transport.get_resource_url("keyChange")
        return self._retrieve(KeyChangeEndpoint(url), payload)

    def create_order(self, payload: dict[str, Any]) -> Response:
        url = self.transport.get_resource_url("newOrder")
        return self._retrieve(NewOrderEndpoint(url), payload)

    def get_order(self, url: str) -> Response:
        return self._retrieve(GetOrderEndpoint(url))

    def finalize_order(self, url: str, payload: dict[str, Any]) -> Response:
        return self._retrieve(FinalizeOrderEndpoint(url), payload)

    def get_authorization(self, url: str) -> Response:
        return self._retrieve(GetAuthorizationEndpoint(url))

    def update_authorization(self, url: str, payload: dict[str, Any]) -> Response:
        return self._retrieve(GetAuthorizationEndpoint(url), payload)

    def get_challenge(self, url: str) -> Response:
        return self._retrieve(ChallengeResponseEndpoint(url))

    def complete_challenge(self, url: str, payload: dict[str, Any]) -> Response:
        return self._retrieve(ChallengeResponseEndpoint(url), payload)

    def get_certificate(self, url: str) -> Response:
        return self._retrieve(GetCertificateEndpoint(url))

    def revoke_cert(self, payload: dict[str, Any]) -> Response:
        url = self.transport.get_resource_url("revokeCert")
        return self._retrieve(RevokeCertEndpoint(url), payload)
