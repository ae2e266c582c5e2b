# -*- coding: utf-8 -*-
"""This module contains the CLI functionality, and the flow invoking the various
other components of this project.

The main components of this project are:
    acme_autocert.acme_client - The ACME client to interface with the ACME server
    acme_autocert.dns_challenge_server - The DNS server to respond to dns-01
    acme_autocert.http_challenge_server - The HTTP server to respond to http-01
"""
import argparse
import logging
import os
from logging.config import dictConfig
from typing import Optional
from typing import Sequence

import dns.nameserver
import dns.resolver

from acme_autocert import dns_challenge_server
from acme_autocert import http_challenge_server
from acme_autocert.acme_client.client import ACMEClient
from acme_autocert.acme_client.transport import ExternalAccountBinding
from acme_autocert.acme_client.verify import ChallengeVerifier
from acme_autocert.csr import create_csr
from acme_autocert.csr import create_ec_private_key
from acme_autocert.errors import ACMEError

logger = logging.getLogger(__name__)

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "[%(asctime)s] %(levelname)s:%(name)s:%(module)s:%(funcName)s: %(message)s",
        },
    },
    "handlers": {
        "stdout.handler": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "level": "DEBUG",
            "formatter": "default",
        },
    },
    "loggers": {
        "werkzeug": {
            "level": "WARNING",
            "handlers": ["stdout.handler"],
            "propagate": False,
        },
    },
    "root": {"level": "INFO", "handlers": ["stdout.handler"]},
}

parser = argparse.ArgumentParser(
    prog="acme-autocert",
    description=f"""
Obtain a certificate from an ACME (RFC 8555) certificate authority, answering
the challenges with a built-in HTTP or DNS server.
Version: 1.0.0
Path: {os.path.abspath(os.path.dirname(__file__))}
""",
    formatter_class=argparse.RawTextHelpFormatter,
)
parser.add_argument(
    "challenge_type",
    choices=["http01", "dns01"],
    help="The ACME challenge type that the client should perform. Valid values are http01 and dns01 for http-01 and dns-01 respectively.",
)
parser.add_argument(
    "--dir",
    required=True,
    help="Directory URL of the ACME server that should be used",
)
parser.add_argument(
    "--domain",
    action="append",
    required=True,
    help="Domain for which to request the certificate. If multiple are present, a single certificate for multiple domains will be requested. Wildcard domains have no special flag and should be denoted by e.g. *.example.net",
)
parser.add_argument(
    "--account-key",
    help="PEM file with the account private key. Created with a new P-256 key if it does not exist. Without it a throwaway key is used.",
)
parser.add_argument("--email", help="Contact email address for the account")
parser.add_argument(
    "--agree-tos",
    action="store_true",
    help="Agree to the terms of service of the ACME server",
)
parser.add_argument("--eab-kid", help="External account binding key identifier")
parser.add_argument(
    "--eab-hmac-key",
    help="External account binding MAC key, base64url encoded as handed out by the CA",
)
parser.add_argument(
    "--preferred-chain",
    help="Issuer common name of the preferred certificate chain",
)
parser.add_argument(
    "--skip-verification",
    action="store_true",
    help="Do not check challenge responses locally before asking the server to validate them",
)
parser.add_argument(
    "--http-port",
    type=int,
    default=80,
    help="Port of the built-in HTTP challenge server",
)
parser.add_argument(
    "--dns-port",
    type=int,
    default=10053,
    help="UDP port of the built-in DNS challenge server",
)
parser.add_argument(
    "--record",
    help="IPv4 address which must be returned by the DNS server for all A-record queries",
)
parser.add_argument(
    "--ca-bundle",
    help="CA bundle used to verify the TLS certificate of the ACME server",
)
parser.add_argument(
    "--cert-out",
    default="./https_cert.pem",
    help="Where to write the PEM certificate chain",
)
parser.add_argument(
    "--key-out",
    default="./https_key.pem",
    help="Where to write the PEM certificate private key",
)
parser.add_argument(
    "--revoke",
    action="store_true",
    help="If present, immediately revoke the certificate after obtaining it.",
)
parser.add_argument(
    "--log",
    default="info",
    choices=["debug", "info", "warning", "error", "critical"],
    help="The logging level to assign to the default standard output handler",
)


def load_account_key(path: Optional[str]) -> bytes:
    """Read the account key at `path`, creating it first if needed."""
    if path is None:
        logger.info("No account key given, using a throwaway key")
        return create_ec_private_key()

    if os.path.exists(path):
        with open(path, "rb") as f:
            return f.read()

    key = create_ec_private_key()
    with open(path, "wb") as f:
        f.write(key)
        logger.info("written new account key PEM to " + f.name)
    return key


def create_verifier(args: argparse.Namespace) -> ChallengeVerifier:
    if args.challenge_type == "http01":
        return ChallengeVerifier(http_port=args.http_port)

    # The built-in DNS server is not part of the public DNS, so check the
    # TXT records against it directly.
    resolver = dns.resolver.Resolver(configure=False)
    resolver.nameservers = [dns.nameserver.Do53Nameserver("127.0.0.1", args.dns_port)]
    return ChallengeVerifier(resolver=resolver)


def run(args: argparse.Namespace) -> None:
    external_account_binding = None
    if args.eab_kid or args.eab_hmac_key:
        if not (args.eab_kid and args.eab_hmac_key):
            raise ACMEError("--eab-kid and --eab-hmac-key must be given together")
        external_account_binding = ExternalAccountBinding(args.eab_kid, args.eab_hmac_key)

    client = ACMEClient(
        args.dir,
        load_account_key(args.account_key),
        external_account_binding=external_account_binding,
        verify_tls=args.ca_bundle if args.ca_bundle else True,
        verifier=create_verifier(args),
    )

    # Start the DNS server regardless of the challenge type when an A record
    # is given, since the ACME server may need to resolve the domain through
    # us even for the http-01 challenge.
    if args.challenge_type == "dns01" or args.record:
        dns_challenge_server.start_thread(port=args.dns_port, a_record=args.record)

    if args.challenge_type == "http01":
        http_challenge_server.start_thread(port=args.http_port)
        handler = http_challenge_server.HttpChallengeHandler()
        priority = ["http-01"]
    else:
        handler = dns_challenge_server.DnsChallengeHandler()
        priority = ["dns-01"]

    (leaf_key, csr) = create_csr(alt_names=args.domain)

    pem_chain = client.auto(
        csr,
        handler,
        email=args.email,
        terms_of_service_agreed=args.agree_tos,
        skip_challenge_verification=args.skip_verification,
        challenge_priority=priority,
        preferred_chain=args.preferred_chain,
    )

    with open(args.cert_out, "w") as f:
        f.write(pem_chain)
        logger.info("written certificate PEM to " + f.name)

    with open(args.key_out, "wb") as f:
        f.write(leaf_key)
        logger.info("written certificate private key PEM to " + f.name)

    # If the revoke flag is set, immediately revoke it
    if args.revoke:
        client.revoke_certificate(pem_chain)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parser.parse_args(argv)

    dictConfig(LOGGING_CONFIG)
    # Change the root log level
    logging.getLogger().setLevel(args.log.upper())
    logger.debug(f"Log level set to {args.log.upper()}")

    try:
        run(args)
    except ACMEError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    return 0
