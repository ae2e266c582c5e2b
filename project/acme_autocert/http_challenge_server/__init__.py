import logging
import threading

from acme_autocert.acme_client.auto import ChallengeHandler
from acme_autocert.acme_client.authorization import Authorization
from acme_autocert.acme_client.challenge import Challenge
from acme_autocert.http_challenge_server import server

logger = logging.getLogger(__name__)


def start_thread(host: str = "0.0.0.0", port: int = 80):
    """Start the HTTP Challenge Server in another thread.

    Parameters
    ----------
    host : str
        The address to listen on.
    port : int
        The port to listen on. The ACME server always connects to port 80, so
        anything else needs a redirect or port forward in front.
    """
    # Run the server in a separate thread, while we signal to the ACME server
    # and poll its responses.
    http_challenge_thread = threading.Thread(
        target=lambda: server.app.run(host=host, port=port, debug=False),
        # Quit when main thread exists
        daemon=True,
    )
    http_challenge_thread.start()
    logger.info(f"HTTP challenge server listening on {host}:{port}")


class HttpChallengeHandler(ChallengeHandler):
    """Serves http-01 responses from the built-in Flask server."""

    def publish(self, authz: Authorization, challenge: Challenge, key_authorization: str) -> None:
        server.responses[challenge.token] = key_authorization
        logger.debug(f"Published http-01 response for {authz.domain}: {challenge.token}")

    def cleanup(self, authz: Authorization, challenge: Challenge, key_authorization: str) -> None:
        server.responses.pop(challenge.token, None)
        logger.debug(f"Removed http-01 response for {authz.domain}: {challenge.token}")
