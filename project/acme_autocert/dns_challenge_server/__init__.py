import logging
import socketserver
import threading
from typing import Optional

from acme_autocert.acme_client.auto import ChallengeHandler
from acme_autocert.acme_client.authorization import Authorization
from acme_autocert.acme_client.challenge import Challenge
from acme_autocert.dns_challenge_server import server

logger = logging.getLogger(__name__)


def start_thread(host: str = "", port: int = 10053, a_record: Optional[str] = None):
    """Start the DNS Challenge Server in a separate thread.

    Parameters
    ----------
    host : str
        The address to listen on, all interfaces by default.
    port : int
        The UDP port to listen on.
    a_record : str, optional
        The value to respond with for any A record queries.
    """
    server.a_record = a_record

    dns_challenge_thread = threading.Thread(
        target=socketserver.UDPServer((host, port), server.DNSServer).serve_forever,
        daemon=True,
    )
    dns_challenge_thread.start()
    logger.info(f"DNS challenge server listening on {host or '*'}:{port}/udp")


class DnsChallengeHandler(ChallengeHandler):
    """Serves dns-01 TXT records from the built-in DNS server."""

    def publish(self, authz: Authorization, challenge: Challenge, key_authorization: str) -> None:
        name = server.record_name(authz.domain)
        server.txt_records.setdefault(name, []).append(key_authorization)
        logger.debug(f"Published TXT record {name}: {key_authorization}")

    def cleanup(self, authz: Authorization, challenge: Challenge, key_authorization: str) -> None:
        name = server.record_name(authz.domain)
        values = server.txt_records.get(name, [])
        if key_authorization in values:
            values.remove(key_authorization)
        if not values:
            server.txt_records.pop(name, None)
        logger.debug(f"Removed TXT record {name}: {key_authorization}")
