"""Error taxonomy for provider requests."""

from typing import Optional


class ProviderError(Exception):
    """
    Base exception for mailbox provider failures.

    Attributes:
        status: HTTP status code, if the failure came from a response
        body: Excerpt of the response body
        systemic: True when retrying other items cannot help (bad credential)
    """

    systemic = False

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: str = ""
    ):
        super().__init__(message)
        self.status = status
        self.body = body


class TransientError(ProviderError):
    """Rate limited (429) or unavailable (503) after all retries were spent."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: str = "",
        retry_after: Optional[float] = None
    ):
        super().__init__(message, status=status, body=body)
        self.retry_after = retry_after


class PermanentError(ProviderError):
    """Any other non-2xx response. Never retried."""


class MalformedResponseError(PermanentError):
    """The provider answered 2xx but the body could not be parsed."""


class CursorExpiredError(PermanentError):
    """The stored sync cursor is no longer accepted by the provider."""


class AuthenticationError(ProviderError):
    """The bearer credential was rejected; aborts the whole operation."""

    systemic = True
