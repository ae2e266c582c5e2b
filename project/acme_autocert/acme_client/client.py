import json
import logging
from typing import Any
from typing import Optional
from typing import TypeVar
from typing import Union

import urllib3.util.retry as urllib3
from urllib3.exceptions import InvalidHeader
from requests import Response
from requests import Session
from requests.utils import parse_header_links

from acme_autocert.acme_client.account import Account
from acme_autocert.acme_client.account import AccountStub
from acme_autocert.acme_client.api import ResourceAPI
from acme_autocert.acme_client.authorization import Authorization
from acme_autocert.acme_client.auto import auto as run_auto
from acme_autocert.acme_client.certificate import REVOCATION_REASONS
from acme_autocert.acme_client.certificate import find_chain_for_issuer
from acme_autocert.acme_client.challenge import Challenge
from acme_autocert.acme_client.challenge import get_key_authorization
from acme_autocert.acme_client.endpoint import format_response_error
from acme_autocert.acme_client.endpoint import problem_document
from acme_autocert.acme_client.order import Order
from acme_autocert.acme_client.order import OrderStub
from acme_autocert.acme_client.transport import ExternalAccountBinding
from acme_autocert.acme_client.transport import SignedRequestTransport
from acme_autocert.acme_client.verify import ChallengeVerifier
from acme_autocert.csr import PemInput
from acme_autocert.csr import get_pem_body
from acme_autocert.errors import AbortedError
from acme_autocert.errors import AccountError
from acme_autocert.errors import PollTimeoutError
from acme_autocert.errors import ProtocolError
from acme_autocert.errors import UnsupportedChallengeError
from acme_autocert.jws import b64url_encode
from acme_autocert.retry import AbortToken
from acme_autocert.retry import BackoffPolicy

logger = logging.getLogger(__name__)

Item = TypeVar("Item", Order, Authorization, Challenge)


class ACMEClient:
    """Drives ACME objects through their lifecycle.

    Every lifecycle step is exposed on its own for callers who want manual
    control; `auto` strings them together.

    Parameters
    ----------
    directory_url : str
        The URL to the ACME server directory.
    account_key
        PEM encoded account private key, or a `cryptography` key object.
    account_url : str, optional
        URL of an existing account, if already known.
    external_account_binding : ExternalAccountBinding, optional
        EAB credentials, sent along on account creation.
    backoff_attempts, backoff_min, backoff_max
        Polling and verification retry budget, delays in seconds.
    verify_http_port : int
        Port used to pre-verify http-01 challenges.
    verify_tls : bool or str
        TLS verification for ACME requests, or a CA bundle path.
    verifier : ChallengeVerifier, optional
        Replaces the default verifier, e.g. to query a specific resolver.
    session : requests.Session, optional
        Session shared by all requests of this client.
    """

    def __init__(
        self,
        directory_url: str,
        account_key: Any,
        account_url: Optional[str] = None,
        external_account_binding: Optional[ExternalAccountBinding] = None,
        backoff_attempts: int = 5,
        backoff_min: float = 5.0,
        backoff_max: float = 30.0,
        verify_http_port: int = 80,
        verify_tls: Union[bool, str] = True,
        verifier: Optional[ChallengeVerifier] = None,
        session: Optional[Session] = None,
    ):
        self.directory_url = directory_url
        self.external_account_binding = external_account_binding
        self.verify_tls = verify_tls
        self.session = session
        self.backoff = BackoffPolicy(
            attempts=backoff_attempts, min_delay=backoff_min, max_delay=backoff_max
        )
        self.verifier = verifier if verifier is not None else ChallengeVerifier(http_port=verify_http_port)
        self.api = ResourceAPI(self._create_transport(account_key), account_url)

    @property
    def transport(self) -> SignedRequestTransport:
        return self.api.transport

    def _create_transport(self, account_key: Any) -> SignedRequestTransport:
        return SignedRequestTransport(
            self.directory_url,
            account_key,
            external_account_binding=self.external_account_binding,
            verify_tls=self.verify_tls,
            session=self.session,
        )

    def get_terms_of_service_url(self) -> str:
        return self.api.get_terms_of_service_url()

    def get_account_url(self) -> str:
        return self.api.get_account_url()

    def create_account(self, data: Optional[Union[AccountStub, dict[str, Any]]] = None) -> Account:
        """Create an account, or return the existing one for this key.

        A 200 answer to the creation request means the key already has an
        account; its current state is then fetched through update_account.

        Returns
        -------
        Account
            The Account resource as currently stored on the server.
        """
        try:
            self.api.get_account_url()
        except AccountError:
            response = self.api.create_account(_as_payload(data))

            if self.api.account_url is None:
                raise ProtocolError("Account creation did not return an account URL")

            if response.status_code == 200:
                logger.debug("Account already exists (HTTP 200), returning update_account()")
                return self.update_account(data)

            logger.info(f"Created account {self.api.account_url}")
            return Account.from_json(response.json(), self.api.account_url)

        logger.debug("Account URL exists, returning update_account()")
        return self.update_account(data)

    def update_account(self, data: Optional[Union[AccountStub, dict[str, Any]]] = None) -> Account:
        """Update the account, or fetch it when there is nothing to update."""
        try:
            self.api.get_account_url()
        except AccountError:
            logger.debug("No account URL found, returning create_account()")
            return self.create_account(data)

        # Remove data only applicable to account creation
        payload = _as_payload(data)
        payload.pop("onlyReturnExisting", None)

        response = self.api.update_account(payload if payload else "")
        return Account.from_json(response.json(), self.api.account_url)

    def deactivate_account(self) -> Account:
        """Deactivate the account (RFC 8555 Section 7.3.6). Irreversible."""
        return self.update_account(AccountStub(status="deactivated"))

    def update_account_key(self, new_account_key: Any) -> Account:
        """Roll the account over to a new key (RFC 8555 Section 7.3.5).

        The inner JWS is signed by the new key and carries the old key, the
        outer request is signed by the current key. Only once the server has
        accepted the change does the client switch to the new key.

        Returns
        -------
        Account
            The account, as fetched with the new key.
        """
        account_url = self.api.get_account_url()

        # Create new transport and API using new key
        new_api = ResourceAPI(self._create_transport(new_account_key), account_url)

        url = new_api.transport.get_resource_url("keyChange")
        inner_body = new_api.transport.create_signed_body(
            url, {"account": account_url, "oldKey": self.transport.get_jwk()}
        )

        # Change key using old signing context
        self.api.update_account_key(inner_body)

        self.api = new_api
        logger.info(f"Account key of {account_url} rolled over")
        return self.update_account()

    def create_order(self, data: Union[list[str], OrderStub]) -> Order:
        """Create an order for a list of domains, or from an OrderStub."""
        stub = OrderStub.for_domains(data) if isinstance(data, list) else data
        response = self.api.create_order(stub.to_json())

        if "Location" not in response.headers:
            raise ProtocolError("Creating a new order did not return an order link")

        order = Order.from_json(response.json(), response.headers["Location"])
        logger.info(f"Created order {order.url} for {', '.join(order.domains)}")
        return order

    def get_order(self, order: Order) -> Order:
        return self._get_order(order)[0]

    def finalize_order(self, order: Order, csr: PemInput) -> Order:
        """Submit the CSR to the order's finalize URL.

        Raises
        ------
        ProtocolError
            When the order is not ready, i.e. some authorization is not yet
            valid, or when the server answers for an order other than the one
            finalized.
        """
        if order.status != "ready":
            order = self.get_order(order)
            if order.status != "ready":
                raise ProtocolError(f"Order {order.url} is {order.status}, not ready for finalization")

        payload = {"csr": b64url_encode(get_pem_body(csr))}
        response = self.api.finalize_order(order.finalize.url, payload)

        location = response.headers.get("Location")
        if location is not None and location != order.url:
            raise ProtocolError(
                f"Finalizing order {order.url} returned a different order {location}"
            )
        return Order.from_json(response.json(), order.url)

    def get_authorizations(self, order: Order) -> list[Authorization]:
        return [
            Authorization.from_json(self.api.get_authorization(endpoint.url).json(), endpoint.url)
            for endpoint in order.authorization_urls
        ]

    def deactivate_authorization(self, authz: Authorization) -> Authorization:
        response = self.api.update_authorization(authz.url, {"status": "deactivated"})
        return Authorization.from_json(response.json(), authz.url)

    def get_challenge_key_authorization(self, challenge: Challenge) -> str:
        if challenge.token is None:
            raise ProtocolError(f"Challenge {challenge.url} has no token")
        return get_key_authorization(challenge.type, challenge.token, self.transport.account_key)

    def verify_challenge(self, authz: Authorization, challenge: Challenge) -> bool:
        """Check from here that the challenge response is live, retrying with
        backoff. Does not notify the server."""
        key_authorization = self.get_challenge_key_authorization(challenge)

        def verify_fn(abort: AbortToken) -> bool:
            try:
                return self.verifier.verify(authz, challenge, key_authorization)
            except UnsupportedChallengeError:
                abort.abort()
                raise

        logger.debug(f"Waiting for {challenge.type} verification of {authz.domain}")
        return self.backoff.retry(verify_fn)

    def complete_challenge(self, challenge: Challenge) -> Challenge:
        """Tell the server the challenge is ready to be validated."""
        response = self.api.complete_challenge(challenge.url, {})
        return Challenge.from_json(response.json())

    def wait_for_valid_status(self, item: Item) -> Item:
        """Poll an order, authorization or challenge until it is valid.

        Raises
        ------
        AbortedError
            As soon as the item turns invalid.
        PollTimeoutError
            When the item is still not valid after all attempts.
        """
        if isinstance(item, Order):
            fetch = self._get_order
        elif isinstance(item, Authorization):
            fetch = self._get_authorization
        elif isinstance(item, Challenge):
            fetch = self._get_challenge
        else:
            raise TypeError(f"Unable to verify status of {type(item).__name__}")

        def poll(abort: AbortToken):
            snapshot, response = fetch(item)
            logger.debug(f"Item has status: {snapshot.status}")

            if snapshot.status == "invalid":
                abort.abort()
                raise AbortedError(_invalid_detail(snapshot, response), problem_document(response))
            if snapshot.status == "valid":
                return snapshot

            # pending, ready and processing all mean: not there yet
            raise PollTimeoutError(
                f"{type(snapshot).__name__} {snapshot.url} is still {snapshot.status}",
                status=snapshot.status,
                retry_after=_parse_retry_after(response),
            )

        logger.debug(f"Waiting for valid status from: {item.url}")
        return self.backoff.retry(poll)

    def get_certificate(self, order: Order, preferred_chain: Optional[str] = None) -> str:
        """Download the certificate chain of an order as PEM.

        Parameters
        ----------
        preferred_chain : str, optional
            Issuer common name of the preferred root; alternate chains offered
            by the server are searched for it, falling back to the default.
        """
        if order.status != "valid":
            order = self.wait_for_valid_status(order)

        if order.certificate is None:
            raise ProtocolError("Unable to download certificate, URL not found")

        response = self.api.get_certificate(order.certificate.url)
        chain = response.text

        alternates = [
            link["url"]
            for link in parse_header_links(response.headers.get("Link", ""))
            if link.get("rel") == "alternate"
        ]
        if preferred_chain and alternates:
            logger.debug(f"Found {len(alternates)} alternate certificate chains")
            chains = [chain] + [self.api.get_certificate(url).text for url in alternates]
            chain = find_chain_for_issuer(chains, preferred_chain)

        return chain

    def revoke_certificate(self, cert: PemInput, reason: Optional[Union[int, str]] = None) -> None:
        """Revoke a certificate, optionally with an RFC 5280 reason code or
        its name (e.g. 4 or "superseded")."""
        payload: dict[str, Any] = {"certificate": b64url_encode(get_pem_body(cert))}
        if reason is not None:
            payload["reason"] = REVOCATION_REASONS[reason] if isinstance(reason, str) else reason

        self.api.revoke_cert(payload)
        logger.info("Certificate revoked")

    def auto(self, csr: PemInput, challenge_handler, **kwargs) -> str:
        """Obtain a certificate for the names in `csr`, end to end. See
        acme_autocert.acme_client.auto.auto for the options."""
        return run_auto(self, csr, challenge_handler, **kwargs)

    def _get_order(self, order: Order) -> tuple[Order, Response]:
        response = self.api.get_order(order.url)
        return Order.from_json(response.json(), order.url), response

    def _get_authorization(self, authz: Authorization) -> tuple[Authorization, Response]:
        response = self.api.get_authorization(authz.url)
        return Authorization.from_json(response.json(), authz.url), response

    def _get_challenge(self, challenge: Challenge) -> tuple[Challenge, Response]:
        response = self.api.get_challenge(challenge.url)
        return Challenge.from_json(response.json()), response


def _as_payload(data: Optional[Union[AccountStub, dict[str, Any]]]) -> dict[str, Any]:
    if data is None:
        return {}
    if isinstance(data, dict):
        return dict(data)
    return data.to_json()


def _parse_retry_after(response: Response) -> Optional[float]:
    if "Retry-After" not in response.headers:
        return None
    # We use the urllib3 retry-after parsing function since the value is
    # complex and can be int or date.
    try:
        return urllib3.Retry().parse_retry_after(response.headers["Retry-After"])
    except InvalidHeader:
        return None


def _invalid_detail(snapshot: Any, response: Response) -> str:
    if isinstance(snapshot, Authorization):
        errors = [json.dumps(c.error) for c in snapshot.challenges if c.error]
        if errors:
            # If it was invalid, the failed challenges carry the error.
            return f"Identifier authorization failed for {snapshot.domain}: " + ", ".join(errors)
    return format_response_error(response)
