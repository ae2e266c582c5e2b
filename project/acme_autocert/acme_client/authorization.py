from dataclasses import dataclass
from typing import Any
from typing import Optional

from acme_autocert.acme_client.challenge import Challenge
from acme_autocert.acme_client.endpoint import Endpoint


@dataclass(frozen=True)
class GetAuthorizationEndpoint(Endpoint):
    # RFC Section 7.5, POST-as-GET and deactivation both answer 200
    valid_status = (200,)


@dataclass(frozen=True)
class Authorization:
    url: str
    identifier: dict[str, str]
    status: str
    expires: Optional[str]
    challenges: list[Challenge]
    wildcard: Optional[bool]

    @property
    def endpoint(self) -> GetAuthorizationEndpoint:
        return GetAuthorizationEndpoint(self.url)

    @property
    def domain(self) -> str:
        return self.identifier["value"]

    @staticmethod
    def from_json(response_json: dict[str, Any], url: str):
        # The URL is not part of the wire representation, so the caller passes
        # in the URL it requested.
        return Authorization(
            url=url,
            identifier=response_json["identifier"],
            status=response_json["status"],
            expires=response_json.get("expires", None),
            challenges=list(map(Challenge.from_json, response_json.get("challenges", []))),
            wildcard=response_json.get("wildcard", None),
        )
