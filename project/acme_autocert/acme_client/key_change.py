from dataclasses import dataclass

from acme_autocert.acme_client.endpoint import Endpoint


@dataclass(frozen=True)
class KeyChangeEndpoint(Endpoint):
    # RFC Section 7.3.5
    valid_status = (200,)
