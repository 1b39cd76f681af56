"""Mailbox provider clients, authentication and request pacing."""

from .auth import (
    GmailAuthenticator,
    GoogleTokenProvider,
    MsalTokenProvider,
    StaticTokenProvider,
    TokenProvider,
)
from .base import ProviderClient, ProviderLimits, ProviderType
from .errors import (
    AuthenticationError,
    CursorExpiredError,
    MalformedResponseError,
    PermanentError,
    ProviderError,
    TransientError,
)
from .factory import (
    base_url_for,
    client_from_config,
    create_provider_client,
    token_provider_from_config,
)
from .gmail import GMAIL_API_BASE, GmailClient
from .models import DeltaPage, Message, MessagePage, SyncCursor
from .outlook import GRAPH_API_BASE, OutlookClient
from .rate_limiter import RateLimitedRequester, RetryPolicy

__all__ = [
    "AuthenticationError",
    "CursorExpiredError",
    "DeltaPage",
    "GmailAuthenticator",
    "GmailClient",
    "GoogleTokenProvider",
    "MalformedResponseError",
    "Message",
    "MessagePage",
    "MsalTokenProvider",
    "OutlookClient",
    "PermanentError",
    "ProviderClient",
    "ProviderError",
    "ProviderLimits",
    "ProviderType",
    "RateLimitedRequester",
    "RetryPolicy",
    "StaticTokenProvider",
    "SyncCursor",
    "TokenProvider",
    "TransientError",
    "create_provider_client",
    "base_url_for",
    "client_from_config",
    "token_provider_from_config",
]
