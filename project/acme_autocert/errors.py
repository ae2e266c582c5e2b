"""Exceptions raised by the ACME client.

Every error the client raises derives from ACMEError, so callers that only
care about success or failure can catch that one class.
"""
from typing import Any
from typing import Optional


class ACMEError(Exception):
    """Base class for all errors raised by acme_autocert."""


class DirectoryError(ACMEError):
    """The directory could not be fetched, parsed, or lacks a resource."""


class ApiError(ACMEError):
    """The server answered with a status outside the accepted set.

    Parameters
    ----------
    detail : str
        Human readable problem detail, as formatted from the response body.
    status_code : int, optional
        The HTTP status code of the rejected response.
    problem : dict, optional
        The RFC 7807 problem document, if the server sent one.
    """

    def __init__(
        self,
        detail: str,
        status_code: Optional[int] = None,
        problem: Optional[dict[str, Any]] = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.problem = problem or {}

    @property
    def type(self) -> Optional[str]:
        return self.problem.get("type")


class NonceError(ACMEError):
    """No nonce could be obtained, or bad-nonce retries were exhausted."""


class VerificationError(ACMEError):
    """Local pre-verification of a challenge response failed."""


class UnsupportedChallengeError(VerificationError):
    """The challenge type has no known key authorization or verifier."""


class PollTimeoutError(ACMEError):
    """An object did not reach a terminal status within the attempt budget.

    Parameters
    ----------
    status : str
        The last status seen.
    retry_after : float, optional
        Seconds the server asked us to wait before polling again.
    """

    def __init__(self, message: str, status: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after


class AbortedError(ACMEError):
    """An object reached the terminal `invalid` status."""

    def __init__(self, detail: str, problem: Optional[dict[str, Any]] = None):
        super().__init__(detail)
        self.detail = detail
        self.problem = problem or {}


class AccountError(ACMEError):
    """An operation needs an account URL but none is known yet."""


class ProtocolError(ACMEError):
    """A server response is well-formed HTTP but violates the protocol."""
