"""
CAML queries.

The builder treats a query as an opaque piece of view XML and passes it
through to the server unmodified.  The only query it ever builds itself
is the "all items" sentinel.
"""

from __future__ import annotations

from typing import Optional

from lxml import etree


class CamlQuery:
    """A CAML query, as sent to the ``getitems`` endpoint.

    Args:
        view_xml: The ``<View>`` element as a string.
        folder_server_relative_url: Restrict the query to a folder.
    """

    def __init__(
        self,
        view_xml: str = "",
        folder_server_relative_url: Optional[str] = None,
    ) -> None:
        self.view_xml = view_xml
        self.folder_server_relative_url = folder_server_relative_url

    @classmethod
    def create_all_items_query(cls, row_limit: Optional[int] = None) -> "CamlQuery":
        """Query matching every item of a list, including items in folders."""
        view = etree.Element("View", Scope="RecursiveAll")
        etree.SubElement(view, "Query")
        if row_limit is not None:
            etree.SubElement(view, "RowLimit").text = str(row_limit)
        return cls(etree.tostring(view, encoding="unicode"))

    @classmethod
    def objectify(cls, query: "CamlQuery | str | None") -> "CamlQuery":
        """Accept a CamlQuery, a view XML string or None (all items)."""
        if query is None:
            return cls.create_all_items_query()
        if isinstance(query, CamlQuery):
            return query
        return cls(query)

    @property
    def is_all_items(self) -> bool:
        return self == self.create_all_items_query()

    def to_json(self) -> dict:
        """The ``query`` parameter of a ``getitems`` request."""
        d: dict = {"ViewXml": self.view_xml}
        if self.folder_server_relative_url is not None:
            d["FolderServerRelativeUrl"] = self.folder_server_relative_url
        return d

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CamlQuery):
            return NotImplemented
        return (self.view_xml, self.folder_server_relative_url) == (
            other.view_xml,
            other.folder_server_relative_url,
        )

    def __hash__(self) -> int:
        return hash((self.view_xml, self.folder_server_relative_url))

    def __repr__(self) -> str:
        return "CamlQuery(%r)" % self.view_xml
