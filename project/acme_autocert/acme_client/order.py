from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Optional

from acme_autocert.acme_client.authorization import GetAuthorizationEndpoint
from acme_autocert.acme_client.certificate import GetCertificateEndpoint
from acme_autocert.acme_client.endpoint import Endpoint


@dataclass(frozen=True)
class NewOrderEndpoint(Endpoint):
    # RFC Section 7.4 specifies it has to return 201 on success
    valid_status = (201,)


@dataclass(frozen=True)
class GetOrderEndpoint(Endpoint):
    valid_status = (200,)


@dataclass(frozen=True)
class FinalizeOrderEndpoint(Endpoint):
    valid_status = (200,)


@dataclass(frozen=True)
class Order:
    url: str
    status: str
    expires: Optional[str]
    identifiers: list[dict[str, str]]
    not_before: Optional[str]
    not_after: Optional[str]
    error: Optional[dict[str, Any]]
    authorization_urls: list[GetAuthorizationEndpoint]
    finalize: FinalizeOrderEndpoint
    certificate: Optional[GetCertificateEndpoint]

    @property
    def endpoint(self) -> GetOrderEndpoint:
        return GetOrderEndpoint(self.url)

    @property
    def domains(self) -> list[str]:
        return [identifier["value"] for identifier in self.identifiers]

    @staticmethod
    def from_json(response_json: dict[str, Any], url: str):
        return Order(
            url=url,
            status=response_json["status"],
            expires=response_json.get("expires", None),
            identifiers=response_json["identifiers"],
            not_before=response_json.get("notBefore", None),
            not_after=response_json.get("notAfter", None),
            error=response_json.get("error", None),
            authorization_urls=list(
                map(GetAuthorizationEndpoint, response_json.get("authorizations", []))
            ),
            finalize=FinalizeOrderEndpoint(response_json["finalize"]),
            certificate=GetCertificateEndpoint(response_json["certificate"])
            if "certificate" in response_json
            else None,
        )


@dataclass
class OrderStub:
    # RFC Section 7.4, for creating a new order
    identifiers: list[dict[str, str]] = field(default_factory=list)
    not_before: Optional[str] = field(default=None)
    not_after: Optional[str] = field(default=None)

    @staticmethod
    def for_domains(domains: list[str], **kwargs):
        return OrderStub(
            identifiers=[{"type": "dns", "value": domain} for domain in domains], **kwargs
        )

    def to_json(self):
        # Optional fields are left out rather than sent as null
        return {
            key: value
            for key, value in {
                "identifiers": self.identifiers,
                "notBefore": self.not_before,
                "notAfter": self.not_after,
            }.items()
            if value is not None
        }
