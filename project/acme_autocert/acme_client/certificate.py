import logging
from dataclasses import dataclass
from typing import Optional

from acme_autocert.acme_client.endpoint import Endpoint
from acme_autocert.csr import read_certificate_info
from acme_autocert.csr import split_pem_chain

logger = logging.getLogger(__name__)

# RFC 5280 Section 5.3.1
REVOCATION_REASONS = {
    "unspecified": 0,
    "keyCompromise": 1,
    "cACompromise": 2,
    "affiliationChanged": 3,
    "superseded": 4,
    "cessationOfOperation": 5,
    "certificateHold": 6,
    "removeFromCRL": 8,
    "privilegeWithdrawn": 9,
    "aACompromise": 10,
}


@dataclass(frozen=True)
class RevokeCertEndpoint(Endpoint):
    # RFC Section 7.6
    valid_status = (200,)


@dataclass(frozen=True)
class GetCertificateEndpoint(Endpoint):
    valid_status = (200,)
    accept = "application/pem-certificate-chain"


def chain_issuer(pem_chain: str) -> Optional[str]:
    """Return the issuer common name of the last certificate in the chain,
    i.e. the root (or topmost intermediate) the chain leads up to."""
    certificates = split_pem_chain(pem_chain)
    if len(certificates) == 0:
        return None
    return read_certificate_info(certificates[-1]).issuer["common_name"]


def find_chain_for_issuer(chains: list[str], issuer: str) -> str:
    """Pick the chain whose top issuer matches, or the first (default) chain."""
    for chain in chains:
        try:
            if chain_issuer(chain) == issuer:
                return chain
        except ValueError:
            logger.warning("Skipping unparseable alternate certificate chain")
    logger.info(f"No certificate chain issued by {issuer!r}, using the default chain")
    return chains[0]
