"""End to end certificate issuance.

`auto` walks one CSR through account registration, ordering, challenge
fulfilment and finalization. Publishing and removing the challenge responses
is delegated to a ChallengeHandler, so the same flow works for any web server
or DNS provider.
"""
import logging
from abc import ABC
from abc import abstractmethod
from typing import TYPE_CHECKING
from typing import Callable
from typing import Optional
from typing import Sequence

from acme_autocert.acme_client.account import AccountStub
from acme_autocert.acme_client.authorization import Authorization
from acme_autocert.acme_client.challenge import Challenge
from acme_autocert.csr import PemInput
from acme_autocert.csr import read_csr_domains
from acme_autocert.errors import AccountError
from acme_autocert.errors import UnsupportedChallengeError

if TYPE_CHECKING:
    from acme_autocert.acme_client.client import ACMEClient

logger = logging.getLogger(__name__)

DEFAULT_CHALLENGE_PRIORITY = ("http-01", "dns-01")


class ChallengeHandler(ABC):
    """Publishes and removes challenge responses.

    For http-01 the key authorization must be served at
    /.well-known/acme-challenge/<token>. For dns-01 it is the value of the TXT
    record at _acme-challenge.<domain>.
    """

    @abstractmethod
    def publish(self, authz: Authorization, challenge: Challenge, key_authorization: str) -> None:
        pass

    @abstractmethod
    def cleanup(self, authz: Authorization, challenge: Challenge, key_authorization: str) -> None:
        pass


class CallbackChallengeHandler(ChallengeHandler):
    """Adapts a pair of plain functions to the ChallengeHandler interface."""

    def __init__(
        self,
        publish_fn: Callable[[Authorization, Challenge, str], None],
        cleanup_fn: Callable[[Authorization, Challenge, str], None],
    ):
        self.publish_fn = publish_fn
        self.cleanup_fn = cleanup_fn

    def publish(self, authz: Authorization, challenge: Challenge, key_authorization: str) -> None:
        self.publish_fn(authz, challenge, key_authorization)

    def cleanup(self, authz: Authorization, challenge: Challenge, key_authorization: str) -> None:
        self.cleanup_fn(authz, challenge, key_authorization)


def select_challenge(authz: Authorization, priority: Sequence[str]) -> Challenge:
    """Pick the first challenge of `authz` whose type comes first in `priority`.

    Raises
    ------
    UnsupportedChallengeError
        When the authorization offers none of the prioritized types.
    """
    for challenge_type in priority:
        for challenge in authz.challenges:
            if challenge.type == challenge_type:
                return challenge

    offered = ", ".join(challenge.type for challenge in authz.challenges)
    raise UnsupportedChallengeError(
        f"Unable to select challenge for {authz.domain}, offered: {offered}"
    )


def complete_authorization(
    client: "ACMEClient",
    authz: Authorization,
    challenge_handler: ChallengeHandler,
    skip_challenge_verification: bool = False,
    challenge_priority: Sequence[str] = DEFAULT_CHALLENGE_PRIORITY,
) -> Authorization:
    """Satisfy one authorization and wait until it is valid.

    The published response is always cleaned up again. A failing cleanup is
    logged and ignored, a failing publish propagates.
    """
    if authz.status == "valid":
        logger.info(f"[{authz.domain}] Authorization already valid, skipping")
        return authz

    challenge = select_challenge(authz, challenge_priority)
    key_authorization = client.get_challenge_key_authorization(challenge)
    logger.info(f"[{authz.domain}] Attempting to complete {challenge.type} challenge")

    try:
        challenge_handler.publish(authz, challenge, key_authorization)

        if skip_challenge_verification:
            logger.debug(f"[{authz.domain}] Skipping challenge verification")
        else:
            client.verify_challenge(authz, challenge)

        client.complete_challenge(challenge)
        client.wait_for_valid_status(challenge)
    finally:
        try:
            challenge_handler.cleanup(authz, challenge, key_authorization)
        except Exception:
            logger.exception(f"[{authz.domain}] Challenge cleanup failed")

    authz = client.wait_for_valid_status(authz)
    logger.info(f"[{authz.domain}] Authorization valid")
    return authz


def auto(
    client: "ACMEClient",
    csr: PemInput,
    challenge_handler: ChallengeHandler,
    email: Optional[str] = None,
    terms_of_service_agreed: bool = False,
    skip_challenge_verification: bool = False,
    challenge_priority: Sequence[str] = DEFAULT_CHALLENGE_PRIORITY,
    preferred_chain: Optional[str] = None,
) -> str:
    """Obtain a certificate for every name in `csr`.

    Parameters
    ----------
    client : ACMEClient
        The client to issue with. An account is created unless the client
        already knows its account URL.
    csr : bytes or str
        PEM encoded CSR. Its common name and SANs make up the order.
    challenge_handler : ChallengeHandler
        Publishes and removes the challenge responses.
    email : str, optional
        Contact address for a newly created account.
    terms_of_service_agreed : bool
        Whether the CA's terms of service are agreed to.
    skip_challenge_verification : bool
        Do not check the published response locally before telling the
        server to validate.
    challenge_priority : sequence of str
        Challenge types to use, most preferred first.
    preferred_chain : str, optional
        Issuer common name of the preferred certificate chain.

    Returns
    -------
    str
        The PEM encoded certificate chain.
    """
    try:
        client.get_account_url()
        logger.info("Using existing account")
    except AccountError:
        logger.info("Creating account")
        client.create_account(AccountStub.for_email(email, terms_of_service_agreed))

    domains = read_csr_domains(csr).identifiers
    logger.info(f"Placing new certificate order for: {', '.join(domains)}")
    order = client.create_order(domains)

    authorizations = client.get_authorizations(order)
    logger.info(f"Resolved {len(authorizations)} authorizations")

    for authz in authorizations:
        complete_authorization(
            client,
            authz,
            challenge_handler,
            skip_challenge_verification=skip_challenge_verification,
            challenge_priority=challenge_priority,
        )

    logger.info("Finalizing order and downloading certificate")
    order = client.finalize_order(order, csr)
    return client.get_certificate(order, preferred_chain)
