"""
Authentication helpers for the SharePoint REST client.

SharePoint Online expects an OAuth bearer token, on-premises farms are
commonly configured for basic authentication.  There is no challenge
negotiation: credentials are sent upfront with every request.
"""

from __future__ import annotations

from requests.auth import AuthBase, HTTPBasicAuth

from fluentsp.lib.error import AuthorizationError


class HTTPBearerAuth(AuthBase):
    def __init__(self, token: str) -> None:
        self.token = token

    def __eq__(self, other: object) -> bool:
        return self.token == getattr(other, "token", None)

    def __ne__(self, other: object) -> bool:
        return not self == other

    def __call__(self, r):
        r.headers["Authorization"] = f"Bearer {self.token}"
        return r


def build_auth(
    url: str,
    username: str | None = None,
    password: str | None = None,
    auth_type: str | None = None,
) -> AuthBase:
    """Select and construct the auth object.

    When ``auth_type`` is ``None`` the type is inferred from the
    credentials supplied: a username triggers Basic, a password alone is
    taken as a bearer token, and neither raises
    :class:`~fluentsp.lib.error.AuthorizationError`.
    """
    effective_type = auth_type
    if effective_type is None:
        if username:
            effective_type = "basic"
        elif password:
            effective_type = "bearer"
        else:
            raise AuthorizationError(
                url=url,
                reason="No credentials provided. Supply username+password or a bearer token.",
            )

    if effective_type == "basic":
        if not username or not password:
            raise AuthorizationError(
                url=url, reason="Basic auth requires both username and password."
            )
        return HTTPBasicAuth(username, password)
    elif effective_type == "bearer":
        if not password:
            raise AuthorizationError(
                url=url,
                reason="Bearer auth requires a token supplied as the password argument.",
            )
        return HTTPBearerAuth(password)
    else:
        raise AuthorizationError(
            url=url,
            reason=f"Unsupported auth_type {effective_type!r}. Use 'basic' or 'bearer'.",
        )
