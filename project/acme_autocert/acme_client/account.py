from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Optional

from acme_autocert.acme_client.endpoint import Endpoint


@dataclass(frozen=True)
class Account:
    # RFC Section 7.1.2
    url: Optional[str]
    status: str
    contact: list[str]
    tos_agreed: Optional[bool]
    orders_url: Optional[str]
    external_account_binding: Optional[dict[str, Any]]

    @staticmethod
    def from_json(response_json: dict[str, Any], url: Optional[str] = None):
        return Account(
            url=url,
            status=response_json["status"],
            contact=response_json.get("contact", []),
            tos_agreed=response_json.get("termsOfServiceAgreed", None),
            orders_url=response_json.get("orders", None),
            external_account_binding=response_json.get("externalAccountBinding", None),
        )


@dataclass
class AccountStub:
    # RFC Section 7.3, for requesting a new account or updating one
    status: Optional[str] = field(default=None)
    contact: Optional[list[str]] = field(default=None)
    tos_agreed: Optional[bool] = field(default=None)
    only_return_existing: Optional[bool] = field(default=None)

    @staticmethod
    def for_email(email: Optional[str], tos_agreed: Optional[bool] = None):
        return AccountStub(
            contact=[f"mailto:{email}"] if email else None, tos_agreed=tos_agreed
        )

    def to_json(self):
        # Fields that are not set are left out, so an update only touches
        # what the caller asked for.
        return {
            key: value
            for key, value in {
                "status": self.status,
                "contact": self.contact,
                "termsOfServiceAgreed": self.tos_agreed,
                "onlyReturnExisting": self.only_return_existing,
            }.items()
            if value is not None
        }


@dataclass(frozen=True)
class NewAccountEndpoint(Endpoint):
    # RFC Section 7.3: 201 for a new account, 200 when it already exists
    use_kid = False
    valid_status = (200, 201)


@dataclass(frozen=True)
class MainAccountEndpoint(Endpoint):
    # RFC Section 7.3.2 and 7.3.6
    valid_status = (200, 202)
