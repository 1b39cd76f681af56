"""List-Unsubscribe header extraction (RFC 2369 / RFC 8058)."""

import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

from ..providers.models import HeaderSource, normalize_headers


_HTTP_BRACKETED = re.compile(r'<(https?://[^>]+)>')
_HTTP_BARE = re.compile(r'(https?://\S+)')
_MAILTO_BRACKETED = re.compile(r'<(mailto:[^>]+)>')
_MAILTO_BARE = re.compile(r'(mailto:\S+)')

ONE_CLICK_MARKER = 'list-unsubscribe=one-click'

DEFAULT_MAILTO_SUBJECT = 'Unsubscribe'
DEFAULT_MAILTO_BODY = 'Unsubscribe'


@dataclass(frozen=True)
class UnsubscribeInfo:
    """
    Unsubscribe affordances advertised by one message.

    Attributes:
        http_link: HTTP(S) unsubscribe URL, if any
        mailto_link: mailto: URI, extracted even when an HTTP link exists
        one_click: List-Unsubscribe-Post carries the one-click marker
    """

    http_link: Optional[str] = None
    mailto_link: Optional[str] = None
    one_click: bool = False

    @property
    def link(self) -> Optional[str]:
        """Preferred link: HTTP first, then mailto."""
        return self.http_link or self.mailto_link

    @property
    def has_unsubscribe(self) -> bool:
        return self.link is not None


def _first_match(value: str, *patterns: re.Pattern) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(value)
        if match:
            return match.group(1)
    return None


def extract_unsubscribe(headers: HeaderSource) -> UnsubscribeInfo:
    """
    Extract unsubscribe links from a message's headers.

    Bracketed forms win over bare ones. Malformed headers yield an empty
    result rather than an error.

    Args:
        headers: Header mapping or provider list of ``{name, value}``

    Returns:
        UnsubscribeInfo

    Example:
        >>> extract_unsubscribe({'List-Unsubscribe': '<https://x.test/unsub>'}).http_link
        'https://x.test/unsub'
    """
    normalized = normalize_headers(headers)
    value = normalized.get('list-unsubscribe') or ''
    if not isinstance(value, str) or not value.strip():
        return UnsubscribeInfo()

    post_value = normalized.get('list-unsubscribe-post') or ''

    return UnsubscribeInfo(
        http_link=_first_match(value, _HTTP_BRACKETED, _HTTP_BARE),
        mailto_link=_first_match(value, _MAILTO_BRACKETED, _MAILTO_BARE),
        one_click=ONE_CLICK_MARKER in str(post_value).lower()
    )


def parse_mailto(link: str) -> Tuple[str, str, str]:
    """
    Split a mailto: URI into (address, subject, body).

    Subject and body default to "Unsubscribe" when the URI omits them.

    Raises:
        ValueError: Not a mailto: URI or no address
    """
    parts = urlsplit(link.strip())
    if parts.scheme.lower() != 'mailto':
        raise ValueError(f"Not a mailto link: {link}")

    address = unquote(parts.path).strip()
    if '@' not in address:
        raise ValueError(f"mailto link has no address: {link}")

    query = {key.lower(): values for key, values in parse_qs(parts.query).items()}
    subject = query.get('subject', [DEFAULT_MAILTO_SUBJECT])[0] or DEFAULT_MAILTO_SUBJECT
    body = query.get('body', [DEFAULT_MAILTO_BODY])[0] or DEFAULT_MAILTO_BODY

    return address, subject, body
