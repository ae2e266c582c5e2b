from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Optional

from acme_autocert.acme_client.endpoint import Endpoint
from acme_autocert.errors import DirectoryError

LETSENCRYPT_STAGING = "https://acme-staging-v02.api.letsencrypt.org/directory"
LETSENCRYPT_PRODUCTION = "https://acme-v02.api.letsencrypt.org/directory"


@dataclass(frozen=True)
class Directory:
    # RFC Section 7.1.1
    resources: dict[str, str]
    metadata: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_json(response_json: Any):
        if not isinstance(response_json, dict):
            raise DirectoryError(f"Malformed directory document: {response_json!r}")
        metadata = response_json.get("meta", {})
        return Directory(
            resources={
                name: url
                for name, url in response_json.items()
                if name != "meta" and isinstance(url, str)
            },
            metadata=metadata if isinstance(metadata, dict) else {},
        )

    def get_resource_url(self, resource: str) -> str:
        if resource not in self.resources:
            raise DirectoryError(f'Could not resolve URL for API resource: "{resource}"')
        return self.resources[resource]

    @property
    def terms_of_service(self) -> Optional[str]:
        return self.metadata.get("termsOfService")

    @property
    def external_account_required(self) -> bool:
        return bool(self.metadata.get("externalAccountRequired", False))


@dataclass(frozen=True)
class DirectoryEndpoint(Endpoint):
    method = "GET"
    use_kid = False
