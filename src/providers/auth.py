"""Bearer token providers for the mailbox APIs.

The engine never refreshes credentials itself. Every request asks a
``TokenProvider`` for a currently valid access token; refresh is the
provider's business.
"""

import asyncio
import os
from pathlib import Path
from typing import Optional, Protocol

import msal
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from ..utils import get_logger
from .errors import AuthenticationError


logger = get_logger(__name__)


class TokenProvider(Protocol):
    """Supplies a currently valid bearer credential."""

    async def get_token(self) -> str:
        ...


class StaticTokenProvider:
    """Token provider for an access token obtained elsewhere."""

    def __init__(self, token: str):
        if not token:
            raise ValueError("token must not be empty")
        self._token = token

    async def get_token(self) -> str:
        return self._token


class GmailAuthenticator:
    """
    Installed-app OAuth for Gmail with a token file on disk.

    ``authenticate()`` is interactive (browser consent) and is run once from
    scripts/authenticate.py. ``get_credentials()`` never prompts; it is what
    the sync engine uses through GoogleTokenProvider.

    Attributes:
        credentials_path: OAuth client secrets downloaded from Google Cloud
        token_path: Stored access and refresh token
        scopes: Requested Gmail scopes

    Example:
        >>> auth = GmailAuthenticator("credentials/credentials.json", "credentials/token.json")
        >>> creds = auth.authenticate()
    """

    SCOPE_MODIFY = "https://www.googleapis.com/auth/gmail.modify"
    SCOPE_SEND = "https://www.googleapis.com/auth/gmail.send"

    def __init__(
        self,
        credentials_path: str,
        token_path: str,
        scopes: list[str] | None = None
    ):
        """
        Args:
            credentials_path: OAuth client secrets file
            token_path: Where the token is read from and written to
            scopes: Defaults to modify + send, which cover trash, archive
                and mailto unsubscribe

        Raises:
            FileNotFoundError: The client secrets file is missing
        """
        self.credentials_path = Path(credentials_path)
        self.token_path = Path(token_path)
        self.scopes = scopes or [self.SCOPE_MODIFY, self.SCOPE_SEND]

        if not self.credentials_path.exists():
            raise FileNotFoundError(
                f"No OAuth client secrets at {self.credentials_path}; "
                f"see scripts/authenticate.py for setup steps"
            )

        self.token_path.parent.mkdir(parents=True, exist_ok=True)

    def authenticate(self) -> Credentials:
        """Load, refresh or (failing both) run the browser consent flow, then persist."""
        creds = self._load_stored()

        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds = self.refresh_token(creds)
            else:
                creds = self._run_oauth_flow()

            self._save_credentials(creds)

        return creds

    def get_credentials(self) -> Credentials | None:
        """Stored credentials, refreshed if expired; None rather than prompting."""
        creds = self._load_stored()
        if creds is None:
            return None

        if creds.expired and creds.refresh_token:
            creds = self.refresh_token(creds)
            self._save_credentials(creds)

        return creds if creds.valid else None

    def refresh_token(self, credentials: Credentials) -> Credentials:
        """Refresh an expired OAuth2 token in place."""
        credentials.refresh(Request())
        return credentials

    def revoke_credentials(self) -> None:
        """Delete stored credentials so the next authenticate() re-prompts."""
        if self.token_path.exists():
            os.remove(self.token_path)

    def _load_stored(self) -> Credentials | None:
        if not self.token_path.exists():
            return None
        try:
            return Credentials.from_authorized_user_file(str(self.token_path), self.scopes)
        except ValueError as e:
            logger.warning(f"Ignoring unreadable token file {self.token_path}: {e}")
            return None

    def _run_oauth_flow(self) -> Credentials:
        flow = InstalledAppFlow.from_client_secrets_file(
            str(self.credentials_path),
            self.scopes
        )
        return flow.run_local_server(
            port=0,
            authorization_prompt_message='Please authorize in your browser...',
            success_message='Authentication successful! You can close this window.',
            open_browser=True
        )

    def _save_credentials(self, credentials: Credentials) -> None:
        with open(self.token_path, 'w') as token_file:
            token_file.write(credentials.to_json())


class GoogleTokenProvider:
    """
    Token provider backed by stored Google OAuth credentials.

    Refreshes through google-auth when the access token has expired. The
    refresh call is blocking, so it runs in a worker thread.
    """

    def __init__(self, authenticator: GmailAuthenticator):
        self.authenticator = authenticator
        self._credentials: Optional[Credentials] = None
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        async with self._lock:
            creds = self._credentials
            if creds is None or not creds.valid:
                creds = await asyncio.to_thread(self.authenticator.get_credentials)
                if creds is None:
                    raise AuthenticationError(
                        "No valid Gmail credentials; run scripts/authenticate.py"
                    )
                self._credentials = creds
            return creds.token


class MsalTokenProvider:
    """
    Token provider for Microsoft Graph using the client-credentials flow.

    Requires an Azure AD app registration with Mail.ReadWrite and Mail.Send
    application permissions.
    """

    SCOPES = ["https://graph.microsoft.com/.default"]

    def __init__(self, tenant_id: str, client_id: str, client_secret: str):
        self._app = msal.ConfidentialClientApplication(
            client_id,
            authority=f"https://login.microsoftonline.com/{tenant_id}",
            client_credential=client_secret
        )

    async def get_token(self) -> str:
        result = await asyncio.to_thread(self._acquire)

        if "access_token" in result:
            return result["access_token"]

        error = result.get("error_description", result.get("error", "Unknown error"))
        raise AuthenticationError(f"Failed to acquire Graph token: {error}")

    def _acquire(self) -> dict:
        result = self._app.acquire_token_silent(self.SCOPES, account=None)
        if not result:
            result = self._app.acquire_token_for_client(scopes=self.SCOPES)
        return result or {}
