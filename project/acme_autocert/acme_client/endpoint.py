import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from typing import Any
from typing import ClassVar
from typing import Optional
from typing import Union

from requests import Response

from acme_autocert.errors import ApiError

if TYPE_CHECKING:
    from acme_autocert.acme_client.transport import SignedRequestTransport

logger = logging.getLogger(__name__)


def format_response_error(response: Response) -> str:
    """Find the problem detail in an error response, falling back to the raw
    body when there is no JSON problem document."""
    try:
        data = response.json()
    except ValueError:
        return response.text.replace("\n", "")

    if isinstance(data, dict) and "error" in data:
        error = data["error"]
        result = error.get("detail", json.dumps(error)) if isinstance(error, dict) else str(error)
    elif isinstance(data, dict) and "detail" in data:
        result = str(data["detail"])
    else:
        result = json.dumps(data)
    return result.replace("\n", "")


def problem_document(response: Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def check_status(response: Response, valid_status: tuple[int, ...]) -> None:
    """Raise ApiError unless the status is accepted. An empty tuple accepts
    everything."""
    if valid_status and response.status_code not in valid_status:
        raise ApiError(
            format_response_error(response),
            status_code=response.status_code,
            problem=problem_document(response),
        )


@dataclass(frozen=True)
class Endpoint:
    """A resource URL together with the way it must be requested.

    Subclasses declare the HTTP method, the status codes that count as
    success, whether requests are signed with the account URL as `kid`, and
    an optional Accept header.
    """

    url: str

    method: ClassVar[str] = "POST"
    use_kid: ClassVar[bool] = True
    valid_status: ClassVar[tuple[int, ...]] = (200,)
    accept: ClassVar[Optional[str]] = None

    def retrieve(
        self,
        transport: "SignedRequestTransport",
        payload: Union[str, dict[str, Any], None] = "",
        kid: Optional[str] = None,
        include_external_account_binding: bool = False,
    ) -> Response:
        """Request the endpoint and check the response status.

        Raises
        ------
        ApiError
            When the response status is not one of `valid_status`.
        """
        logger.debug(f"Retrieving {self.method} {self.url}")
        headers = {"Accept": self.accept} if self.accept else {}

        if self.method != "POST":
            response = transport.request(self.url, self.method, headers=headers)
        else:
            if self.use_kid and kid is None:
                raise ValueError(f"{type(self).__name__} requires the kid to be passed in")
            response = transport.signed_request(
                self.url,
                payload,
                kid=kid if self.use_kid else None,
                include_external_account_binding=include_external_account_binding,
                headers=headers,
            )

        check_status(response, self.valid_status)
        return response
