from dataclasses import dataclass

from acme_autocert.acme_client.endpoint import Endpoint


@dataclass(frozen=True)
class NewNonceEndpoint(Endpoint):
    # RFC Section 7.2, HEAD answers 200 and GET answers 204
    method = "HEAD"
    use_kid = False
    valid_status = (200, 204)
