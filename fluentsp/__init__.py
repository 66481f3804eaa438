#!/usr/bin/env python
import logging

__version__ = "0.4.0"

from .client import SharePointClient
from .fields import FieldType
from .operation import FluentOperation
from .query import CamlQuery
from .scope import ScopeLevel

## We should consider if the NullHandler-logic below is needed or not, and
## if there are better alternatives?
# Silence notification of no default logging handler
log = logging.getLogger("fluentsp")


class NullHandler(logging.Handler):
    def emit(self, record) -> None:
        pass


log.addHandler(NullHandler())


def get_client(**kwargs) -> SharePointClient | None:
    """Create a :class:`SharePointClient` from configuration.

    Configuration is read from, in order of precedence:

    1. Explicit keyword arguments (``url``, ``username``, ``password``, …)
    2. Environment variables (``FLUENTSP_URL``, ``FLUENTSP_USERNAME``, …)
    3. Config file (``~/.config/fluentsp/sharepoint.conf`` or equivalent)

    Returns ``None`` if no configuration is found.

    Example::

        client = get_client(url="https://contoso.sharepoint.com/sites/team",
                            password="eyJ0eXAi...")
    """
    from fluentsp.config import get_connection_params

    conn_params = get_connection_params(**kwargs)
    if conn_params is None:
        return None
    return SharePointClient(**conn_params)


def get_operation(**kwargs) -> FluentOperation | None:
    """Like :func:`get_client`, but wraps the client in a fresh
    :class:`FluentOperation`, ready for chaining::

        get_operation().load_list("Tasks").delete_items().execute()
    """
    client = get_client(**kwargs)
    if client is None:
        return None
    return FluentOperation(client)


__all__ = [
    "__version__",
    "CamlQuery",
    "FieldType",
    "FluentOperation",
    "ScopeLevel",
    "SharePointClient",
    "get_client",
    "get_operation",
]
