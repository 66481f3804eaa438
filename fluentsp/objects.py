"""
Local handles for remote SharePoint objects.

A handle knows where its remote object lives and what should be fetched
when it is loaded, but it performs no I/O.  Handles start out lazy; the
executor populates them once a queued Load or Create has been sent, and
invalidates them once a queued Delete has been sent.

Library users get handles from :class:`~fluentsp.operation.FluentOperation`
and read properties from them with item access::

    items = op.load_list("Tasks").get_items()
    for item in items:
        print(item["Title"])
"""

from __future__ import annotations

from typing import Any, Iterator

from fluentsp.lib.error import PropertyNotLoadedError, StaleObjectError
from fluentsp.protocol import paths
from fluentsp.query import CamlQuery


class ClientObject:
    """Base class for all handles.

    Attributes:
        web_url: Absolute URL of the web the object lives in.
        properties: Properties fetched from the server.
        select: Property names a Load should fetch; empty means all.
        loaded: Whether a Load or Create has populated the handle.
        deleted: Whether a Delete has invalidated the handle.
    """

    entity = "object"

    def __init__(self, web_url: str) -> None:
        self.web_url = web_url.rstrip("/")
        self.properties: dict[str, Any] = {}
        self.select: tuple[str, ...] = ()
        self.loaded = False
        self.deleted = False

    @property
    def path(self) -> str:
        raise NotImplementedError

    @property
    def url(self) -> str:
        return paths.api_url(self.web_url, self.path)

    def check_valid(self) -> None:
        if self.deleted:
            raise StaleObjectError(url=self.url, reason=f"{self.entity} has been deleted")

    def __getitem__(self, name: str) -> Any:
        self.check_valid()
        if not self.loaded or name not in self.properties:
            raise PropertyNotLoadedError(
                url=self.url, reason=f"property {name!r} of {self.entity} has not been loaded"
            )
        return self.properties[name]

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except PropertyNotLoadedError:
            return default

    def _populate(self, data: dict | None) -> None:
        self.properties.update(data or {})
        self.loaded = True

    def _invalidate(self) -> None:
        self.deleted = True

    def __repr__(self) -> str:
        return "%s(%r)" % (self.__class__.__name__, self.url)


class Web(ClientObject):
    """A SharePoint web (the site's root web or a sub-web)."""

    entity = "web"

    @property
    def path(self) -> str:
        return "web"


class SPList(ClientObject):
    """A list, addressed by its title.

    A list that is still to be created carries its creation payload in
    ``creation`` until the Load sent with it succeeds.  Property changes
    recorded for a queued Update are kept in ``changes``.
    """

    entity = "list"

    def __init__(self, web: Web, title: str, creation: dict | None = None) -> None:
        super().__init__(web.web_url)
        self.web = web
        self.title = title
        self.creation = creation
        self.changes: dict[str, Any] = {}

    @property
    def path(self) -> str:
        return paths.list_path(self.title)

    def _populate(self, data: dict | None) -> None:
        super()._populate(data)
        self.creation = None
        ## The server may normalize the title on creation
        self.title = self.properties.get("Title", self.title)

    def _merge_changes(self) -> None:
        self.properties.update(self.changes)
        if "Title" in self.changes:
            self.title = self.changes["Title"]
        self.changes = {}

    def __repr__(self) -> str:
        return "SPList(%r)" % self.title


class ListItem(ClientObject):
    """A single list item.

    New items carry the field values to create them with in ``values``
    and get their ``id`` from the server.
    """

    entity = "item"

    def __init__(self, lst: SPList, item_id: int | None = None, values: dict | None = None) -> None:
        super().__init__(lst.web_url)
        self.list = lst
        self.id = item_id
        self.values = dict(values or {})

    @property
    def path(self) -> str:
        if self.id is None:
            return paths.items_path(self.list.title)
        return paths.item_path(self.list.title, self.id)

    def _populate(self, data: dict | None) -> None:
        super()._populate(data)
        self.id = self.properties.get("Id", self.properties.get("ID", self.id))

    def __repr__(self) -> str:
        return "ListItem(%r, id=%r)" % (self.list.title, self.id)


class ItemCollection(ClientObject):
    """The items of a list matching a :class:`~fluentsp.query.CamlQuery`.

    Iterating an unloaded collection raises
    :class:`~fluentsp.lib.error.PropertyNotLoadedError`.
    """

    entity = "item collection"

    def __init__(self, lst: SPList, query: CamlQuery | None = None) -> None:
        super().__init__(lst.web_url)
        self.list = lst
        self.query = query or CamlQuery.create_all_items_query()
        self._items: list[ListItem] = []

    @property
    def path(self) -> str:
        return paths.get_items_path(self.list.title)

    @property
    def items(self) -> list[ListItem]:
        self.check_valid()
        if not self.loaded:
            raise PropertyNotLoadedError(url=self.url, reason="item collection has not been loaded")
        return list(self._items)

    def __iter__(self) -> Iterator[ListItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def _populate(self, data: list | None) -> None:
        self._items = []
        for row in data or []:
            item = ListItem(self.list)
            item._populate(row)
            self._items.append(item)
        self.loaded = True

    def _invalidate(self) -> None:
        super()._invalidate()
        for item in self._items:
            item._invalidate()

    def __repr__(self) -> str:
        return "ItemCollection(%r)" % self.list.title
