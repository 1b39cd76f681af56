"""Construct provider clients from configuration."""

from typing import Optional

import httpx

from ..utils import Config
from .auth import GmailAuthenticator, GoogleTokenProvider, MsalTokenProvider, TokenProvider
from .base import ProviderClient, ProviderType
from .gmail import GMAIL_API_BASE, GmailClient
from .outlook import GRAPH_API_BASE, OutlookClient
from .rate_limiter import RateLimitedRequester


def create_provider_client(
    provider_type: ProviderType | str,
    requester: RateLimitedRequester,
    user_id: Optional[str] = None
) -> ProviderClient:
    """
    Build the client variant for a provider.

    Args:
        provider_type: ProviderType or its string value ("gmail", "outlook")
        requester: Requester bound to the provider's base URL
        user_id: Graph mailbox owner (ignored for Gmail)

    Raises:
        ValueError: Unknown provider type
    """
    provider_type = ProviderType(provider_type)

    if provider_type is ProviderType.GMAIL:
        return GmailClient(requester)
    return OutlookClient(requester, user_id=user_id)


def base_url_for(provider_type: ProviderType | str) -> str:
    """API root for a provider."""
    if ProviderType(provider_type) is ProviderType.GMAIL:
        return GMAIL_API_BASE
    return GRAPH_API_BASE


def token_provider_from_config(config: Config, provider_type: ProviderType | str) -> TokenProvider:
    """
    Token provider for the configured credentials.

    Raises:
        ValueError: Graph credentials are not configured
        FileNotFoundError: Gmail client secrets are missing
    """
    if ProviderType(provider_type) is ProviderType.GMAIL:
        authenticator = GmailAuthenticator(
            credentials_path=config.GMAIL_CREDENTIALS_PATH,
            token_path=config.GMAIL_TOKEN_PATH
        )
        return GoogleTokenProvider(authenticator)

    if not config.has_graph_credentials:
        raise ValueError(
            "GRAPH_TENANT_ID, GRAPH_CLIENT_ID and GRAPH_CLIENT_SECRET must be set for Outlook"
        )
    return MsalTokenProvider(
        config.GRAPH_TENANT_ID,
        config.GRAPH_CLIENT_ID,
        config.GRAPH_CLIENT_SECRET
    )


def client_from_config(
    config: Config,
    provider_type: ProviderType | str,
    http_client: httpx.AsyncClient,
    user_id: Optional[str] = None,
    token_provider: Optional[TokenProvider] = None
) -> ProviderClient:
    """
    Wire token provider, retry policy and requester into a provider client.

    Example:
        >>> async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS) as http:
        ...     client = client_from_config(config, "gmail", http)
        ...     page = await client.list_inbox()
    """
    provider_type = ProviderType(provider_type)
    requester = RateLimitedRequester(
        http_client,
        token_provider or token_provider_from_config(config, provider_type),
        base_url=base_url_for(provider_type),
        policy=config.retry_policy(),
        name=provider_type.value
    )
    return create_provider_client(provider_type, requester, user_id=user_id)
