"""Local pre-verification of challenge responses.

Before asking the ACME server to validate a challenge, the client checks from
its own vantage point that the response is already observable. This avoids
burning a challenge (which turns `invalid` on the first failed server-side
check) on a record that has not propagated yet.
"""
import logging
from typing import Optional

import dns.exception
import dns.resolver
import requests

from acme_autocert.acme_client.authorization import Authorization
from acme_autocert.acme_client.challenge import Challenge
from acme_autocert.acme_client.challenge import ChallengeType
from acme_autocert.errors import VerificationError

logger = logging.getLogger(__name__)

HTTP_PATH_PREFIX = "/.well-known/acme-challenge/"
DNS_PREFIX = "_acme-challenge."
MAX_CNAME_DEPTH = 10


class ChallengeVerifier:
    """Checks http-01 and dns-01 responses the way the server will.

    Parameters
    ----------
    http_port : int
        Port the http-01 response is fetched from.
    resolver : dns.resolver.Resolver, optional
        Resolver for CNAME, TXT, SOA and NS lookups. Defaults to the system
        resolver configuration.
    timeout : float
        Timeout in seconds for each HTTP request and DNS lookup.
    max_cname_depth : int
        Longest CNAME chain followed before giving up.
    """

    def __init__(
        self,
        http_port: int = 80,
        resolver: Optional[dns.resolver.Resolver] = None,
        timeout: float = 10.0,
        max_cname_depth: int = MAX_CNAME_DEPTH,
    ):
        self.http_port = http_port
        self.timeout = timeout
        self.max_cname_depth = max_cname_depth
        if resolver is None:
            resolver = dns.resolver.Resolver()
            resolver.lifetime = timeout
        self.resolver = resolver

    def verify(
        self, authz: Authorization, challenge: Challenge, key_authorization: str
    ) -> bool:
        """Verify a challenge response, dispatching on the challenge type.

        Raises
        ------
        UnsupportedChallengeError
            When the challenge type is neither http-01 nor dns-01.
        VerificationError
            When the expected response is not observable.
        """
        kind = ChallengeType.parse(challenge.type)
        if kind is ChallengeType.HTTP_01:
            return self.verify_http_challenge(authz, challenge, key_authorization)
        return self.verify_dns_challenge(authz, challenge, key_authorization)

    def verify_http_challenge(
        self, authz: Authorization, challenge: Challenge, key_authorization: str
    ) -> bool:
        url = f"http://{authz.domain}:{self.http_port}{HTTP_PATH_PREFIX}{challenge.token}"
        logger.debug(f"Sending HTTP query to {url}")

        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise VerificationError(f"HTTP query to {url} failed: {e}") from e

        logger.debug(f"Query successful, HTTP status code: {response.status_code}")
        if response.text.rstrip() != key_authorization:
            raise VerificationError(
                f"Authorization not found in HTTP response from {authz.domain}"
            )

        logger.debug(f"Key authorization match for {challenge.type}/{authz.domain}")
        return True

    def verify_dns_challenge(
        self, authz: Authorization, challenge: Challenge, key_authorization: str
    ) -> bool:
        name = self.follow_cname(f"{DNS_PREFIX}{authz.domain}")
        logger.debug(f"Resolving DNS TXT records for {name}")

        records = self.resolve_txt(name, self.resolver)
        if len(records) == 0:
            # Caching resolvers may still hold a negative answer from before
            # the record was published, so ask the zone's nameservers.
            logger.debug(f"No TXT records for {name}, asking authoritative nameservers")
            records = self.resolve_txt(name, self.get_authoritative_resolver(name))

        logger.debug(f"Found {len(records)} DNS TXT records for {name}")
        if key_authorization not in records:
            raise VerificationError(
                f"Authorization not found in DNS TXT records for {authz.domain}"
            )

        logger.debug(f"Key authorization match for {challenge.type}/{authz.domain}")
        return True

    def follow_cname(self, name: str) -> str:
        """Follow the CNAME chain starting at `name` and return its end.

        Raises
        ------
        VerificationError
            When the chain is longer than `max_cname_depth`.
        """
        hops = 0
        while True:
            try:
                answer = self.resolver.resolve(name, "CNAME")
            except dns.exception.DNSException:
                return name

            hops += 1
            if hops > self.max_cname_depth:
                raise VerificationError(
                    f"CNAME chain exceeds {self.max_cname_depth} hops at {name}"
                )
            target = answer[0].target.to_text(omit_final_dot=True)
            logger.debug(f"Following CNAME {name} -> {target}")
            name = target

    def resolve_txt(self, name: str, resolver: dns.resolver.Resolver) -> list[str]:
        try:
            answer = resolver.resolve(name, "TXT")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.exception.DNSException as e:
            logger.debug(f"Error resolving TXT {name}: {e}")
            return []

        return [b"".join(rdata.strings).decode("UTF-8") for rdata in answer]

    def find_zone(self, name: str) -> str:
        """Walk up the name hierarchy until a name with an SOA record is found.

        Raises
        ------
        VerificationError
            When no enclosing zone below the root has an SOA record.
        """
        labels = name.rstrip(".").split(".")
        for i in range(len(labels)):
            candidate = ".".join(labels[i:])
            try:
                self.resolver.resolve(candidate, "SOA")
            except dns.exception.DNSException:
                continue
            logger.debug(f"Found zone {candidate} for {name}")
            return candidate
        raise VerificationError(f"No zone SOA for {name}")

    def get_authoritative_resolver(self, name: str) -> dns.resolver.Resolver:
        """Build a resolver that queries the nameservers of the zone of `name`.

        Raises
        ------
        VerificationError
            When no nameserver address could be resolved.
        """
        zone = self.find_zone(name)
        try:
            nameservers = [ns.target for ns in self.resolver.resolve(zone, "NS")]
        except dns.exception.DNSException as e:
            raise VerificationError(f"Unable to resolve NS records of {zone}: {e}") from e

        addresses: list[str] = []
        for nameserver in nameservers:
            for rdtype in ("A", "AAAA"):
                try:
                    addresses += [rdata.address for rdata in self.resolver.resolve(nameserver, rdtype)]
                except dns.exception.DNSException:
                    continue

        if len(addresses) == 0:
            raise VerificationError(f"Unable to resolve any nameserver address of {zone}")

        logger.debug(f"Authoritative nameservers for {zone}: {', '.join(addresses)}")
        resolver = dns.resolver.Resolver(configure=False)
        resolver.nameservers = addresses
        resolver.lifetime = self.timeout
        return resolver
