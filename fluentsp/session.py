"""
Request digest retrieval.

SharePoint refuses writes that do not carry a valid ``X-RequestDigest``
header.  The digest is fetched from ``/_api/contextinfo`` and is valid
for ``FormDigestTimeoutSeconds``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import requests

from fluentsp.lib.error import AuthorizationError, ResponseError
from fluentsp.protocol.paths import api_url

## Refresh the digest a bit before the server considers it expired
_EXPIRY_MARGIN = 60


@dataclass
class ContextInfo:
    """Parsed answer of ``/_api/contextinfo``.

    Attributes:
        form_digest: Value for the ``X-RequestDigest`` header.
        expires_at: ``time.monotonic()`` timestamp after which the digest
            should be fetched again.
        web_full_url: Absolute URL of the web that answered.
        library_version: Server library version string.
        raw: The full parsed JSON for anything not captured above.
    """

    form_digest: str
    expires_at: float
    web_full_url: str = ""
    library_version: str = ""
    raw: dict = field(default_factory=dict)

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at


def _parse_context_info(url: str, data: dict) -> ContextInfo:
    ## odata=verbose wraps the answer twice, odata=nometadata not at all
    data = data.get("d", data)
    data = data.get("GetContextWebInformation", data)

    digest = data.get("FormDigestValue")
    if not digest:
        raise ResponseError(url=url, reason="contextinfo response missing 'FormDigestValue'")

    timeout = int(data.get("FormDigestTimeoutSeconds", 1800))
    return ContextInfo(
        form_digest=digest,
        expires_at=time.monotonic() + max(timeout - _EXPIRY_MARGIN, 0),
        web_full_url=data.get("WebFullUrl", ""),
        library_version=data.get("LibraryVersion", ""),
        raw=data,
    )


def fetch_context_info(
    session: requests.Session, site_url: str, timeout: int = 30
) -> ContextInfo:
    """POST to ``/_api/contextinfo`` and parse the answer.

    Args:
        session: A configured :class:`requests.Session` (auth, headers).
        site_url: Absolute URL of the site.

    Raises:
        AuthorizationError: If the server returns HTTP 401 or 403.
        ResponseError: If the answer carries no digest.
        requests.HTTPError: For other non-2xx responses.
    """
    url = api_url(site_url, "contextinfo")
    response = session.post(
        url, headers={"Accept": "application/json;odata=nometadata"}, timeout=timeout
    )
    if response.status_code in (401, 403):
        raise AuthorizationError(url=url, reason=f"HTTP {response.status_code} from contextinfo")
    response.raise_for_status()
    return _parse_context_info(url, response.json())
