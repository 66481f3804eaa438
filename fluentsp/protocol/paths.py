"""
Pure functions for building SharePoint REST resource paths.

Paths are relative to the ``/_api/`` root of a web.  Nothing in here
performs I/O.
"""

from __future__ import annotations

from urllib.parse import quote


def odata_literal(value: str) -> str:
    """Quote ``value`` as an OData string literal, safe for use in a URL.

    Single quotes are doubled as OData requires, everything else that is
    not URL-safe is percent-encoded.

    Example:
        >>> odata_literal("Bob's tasks")
        "'Bob''s%20tasks'"
    """
    return "'%s'" % quote(value.replace("'", "''"), safe="'")


def api_url(web_url: str, path: str) -> str:
    """Join a web URL and an API path into an absolute URL."""
    return "%s/_api/%s" % (web_url.rstrip("/"), path.lstrip("/"))


def join_web_url(web_url: str, relative: str) -> str:
    """Resolve the URL of a sub-web.

    ``relative`` may be relative to ``web_url`` ("projects/alpha") or an
    absolute URL, in which case it is returned as is.
    """
    if relative.startswith("http://") or relative.startswith("https://"):
        return relative.rstrip("/")
    return "%s/%s" % (web_url.rstrip("/"), relative.strip("/"))


def list_path(title: str) -> str:
    return "web/lists/getbytitle(%s)" % odata_literal(title)


def lists_path() -> str:
    return "web/lists"


def items_path(list_title: str) -> str:
    return list_path(list_title) + "/items"


def item_path(list_title: str, item_id: int) -> str:
    return list_path(list_title) + "/items(%d)" % item_id


def get_items_path(list_title: str) -> str:
    return list_path(list_title) + "/getitems"


def field_path(list_title: str, name: str) -> str:
    return list_path(list_title) + "/fields/getbyinternalnameortitle(%s)" % odata_literal(name)


def create_field_path(list_title: str) -> str:
    return list_path(list_title) + "/fields/createfieldasxml"


def list_templates_path(name: str) -> str:
    return "web/listtemplates?$filter=Name%%20eq%%20%s" % odata_literal(name)


def with_select(path: str, properties: tuple[str, ...] | list[str]) -> str:
    """Append a ``$select`` query option when specific properties are wanted."""
    if not properties:
        return path
    separator = "&" if "?" in path else "?"
    return "%s%s$select=%s" % (path, separator, ",".join(properties))
