"""
The fluent operation builder.

A :class:`FluentOperation` walks down the site → web → list → item
hierarchy one call at a time.  Most calls only record what should
happen; the recorded actions are sent together, in the order they were
declared, when :meth:`FluentOperation.execute` is called::

    op = FluentOperation(client)
    (op.load_list("Tasks")
       .add_column("Priority", FieldType.NUMBER)  # sent at once
       .delete_items()                            # queued
       .execute())                                # Load + Delete, one batch

Column operations are the exception: they are sent to the server as soon
as they are called.  :meth:`FluentOperation.get_items` is a read, so it
sends everything queued so far together with the item query.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Callable, Optional, Union

from fluentsp.actions import ActionKind, DeferredAction, DeferredActionQueue, Executor
from fluentsp.client import DEFAULT_LIST_TEMPLATE, RemoteClient
from fluentsp.fields import FieldPatch, FieldSpec, FieldType
from fluentsp.lib.error import BatchExecutionError, PreconditionError
from fluentsp.objects import ItemCollection, SPList, Web
from fluentsp.protocol import paths
from fluentsp.query import CamlQuery
from fluentsp.scope import ResourceCache, ScopeCursor, ScopeLevel

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self

log = logging.getLogger("fluentsp")

ListLoader = Callable[[RemoteClient, SPList], Any]


class FluentOperation:
    """Fluent builder over a :class:`~fluentsp.client.RemoteClient`.

    One instance owns one scope cursor, one list cache and one queue of
    deferred actions.  It is not thread safe.
    """

    def __init__(self, client: RemoteClient) -> None:
        self.client = client
        self._cursor = ScopeCursor()
        self._cache = ResourceCache()
        self._queue = DeferredActionQueue()
        self._executor = Executor(client)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is None:
            self.execute()

    @property
    def level(self) -> ScopeLevel:
        return self._cursor.level

    @property
    def current_web(self) -> Optional[Web]:
        return self._cursor.web

    @property
    def current_list(self) -> Optional[SPList]:
        return self._cursor.list

    @property
    def current_items(self) -> Optional[ItemCollection]:
        return self._cursor.items

    @property
    def pending(self) -> tuple[DeferredAction, ...]:
        """The queued actions, in the order they will be sent."""
        return self._queue.snapshot()

    def _decide_web(self) -> Web:
        if self._cursor.web is None:
            self._cursor.web = self.client.get_web()
        return self._cursor.web

    def _current_list(self) -> SPList:
        """The selected list, failing early if there is none or it was deleted."""
        self._cursor.require(ScopeLevel.LIST)
        self._cursor.list.check_valid()
        return self._cursor.list

    def select_web(self, url: Optional[str] = None) -> Self:
        """Select a web.

        Without ``url`` this re-selects the current web (the site's root
        web if none was selected yet).  A relative ``url`` is resolved
        under the current web.
        """
        if url is None:
            web = self._decide_web()
        elif self._cursor.web is None:
            web = self.client.get_web(url)
        else:
            web = self.client.get_web(paths.join_web_url(self._cursor.web.web_url, url))
        self._cursor.set_level(ScopeLevel.WEB, web)
        return self

    def load_list(self, name: str, loader: Optional[ListLoader] = None) -> Self:
        """Resolve the list ``name`` under the current web and queue its Load.

        Args:
            name: List title.  Also the key under which the list is cached.
            loader: Called as ``loader(client, lst)`` instead of requesting
                the whole list, typically to restrict the properties
                fetched with ``client.load(lst, "Title", ...)``.  Only one
                Load is queued either way.
        """
        web = self._decide_web()
        lst = self.client.get_list_by_title(web, name)
        if loader is not None:
            loader(self.client, lst)
        else:
            self.client.load(lst)

        self._cursor.set_level(ScopeLevel.LIST, lst)
        self._cache.remember(name, lst)
        self._queue.enqueue(lst, ActionKind.LOAD)
        return self

    def select_list(self, name: str) -> Self:
        """Re-select a list loaded or created earlier by this builder.

        Raises:
            NotFoundError: If ``name`` was never loaded or created here.
        """
        self._cursor.set_level(ScopeLevel.LIST, self._cache.recall(name))
        return self

    def create_list(
        self,
        name: str,
        template: Union[str, int, None] = None,
        description: Optional[str] = None,
    ) -> Self:
        """Queue the creation of a list in the current web.

        Args:
            name: Title of the new list.
            template: List template name (default ``"Custom List"``) or
                template type number.
            description: Optional list description.

        Raises:
            PreconditionError: If no web has been selected or decided yet.
        """
        web = self._cursor.web
        if web is None:
            raise PreconditionError(required=ScopeLevel.WEB, current=self._cursor.level)
        if isinstance(template, int):
            kind = template
        else:
            kind = self.client.resolve_list_template(web, template or DEFAULT_LIST_TEMPLATE)

        lst = self.client.new_list(web, name, kind, description)
        self._cursor.set_level(ScopeLevel.LIST, lst)
        self._cache.remember(name, lst)
        self._queue.enqueue(lst, ActionKind.LOAD)
        return self

    def delete_list(self, name: str) -> Self:
        """Queue the deletion of the list ``name``, looked up on the
        server rather than in the cache."""
        lst = self.client.get_list_by_title(self._decide_web(), name)
        self._queue.enqueue(lst, ActionKind.DELETE)
        return self

    def update_list(self, **properties: Any) -> Self:
        """Queue changes to properties of the current list, i.e.
        ``update_list(Description="Open tasks")``."""
        lst = self._current_list()
        lst.changes.update(properties)
        self._queue.enqueue(lst, ActionKind.UPDATE)
        return self

    def add_column(
        self,
        name: str,
        type: Union[FieldType, str],
        display_name: Optional[str] = None,
        required: bool = False,
        unique_values: bool = False,
    ) -> Self:
        """Add a column to the current list.  Sent immediately."""
        lst = self._current_list()
        spec = FieldSpec(
            internal_name=name,
            type=type,
            display_name=display_name or "",
            required=required,
            unique_values=unique_values,
        )
        log.debug("adding column %r to %r", name, lst)
        self.client.add_field(lst, spec)
        return self

    def change_column(
        self,
        name: str,
        type: Union[FieldType, str, None] = None,
        display_name: Optional[str] = None,
        required: Optional[bool] = None,
        unique_values: Optional[bool] = None,
    ) -> Self:
        """Change the column ``name`` (internal name or title) of the
        current list.  Only the arguments given are changed.  Sent
        immediately."""
        lst = self._current_list()
        patch = FieldPatch(
            type=type,
            display_name=display_name,
            required=required,
            unique_values=unique_values,
        )
        if not patch:
            log.debug("nothing to change on column %r", name)
            return self
        log.debug("changing column %r of %r: %r", name, lst, patch)
        self.client.update_field(lst, name, patch)
        return self

    def delete_column(self, name: str) -> Self:
        """Delete the column ``name`` of the current list.  Sent immediately."""
        lst = self._current_list()
        log.debug("deleting column %r of %r", name, lst)
        self.client.delete_field(lst, name)
        return self

    def add_item(self, **values: Any) -> Self:
        """Queue the creation of an item in the current list."""
        item = self.client.new_item(self._current_list(), values)
        self._queue.enqueue(item, ActionKind.CREATE)
        return self

    def get_items(self, query: Union[CamlQuery, str, None] = None) -> ItemCollection:
        """Fetch the items of the current list matching ``query``.

        Everything queued so far is sent in the same batch, ahead of the
        item query, so the items reflect all of it.

        Args:
            query: A :class:`~fluentsp.query.CamlQuery`, view XML, or
                ``None`` for all items.
        """
        items = self.client.get_items(self._current_list(), CamlQuery.objectify(query))
        self._drain(DeferredAction(items, ActionKind.LOAD))
        self._cursor.set_level(ScopeLevel.ITEM, items)
        return items

    def delete_items(self, query: Union[CamlQuery, str, None] = None) -> Self:
        """Queue the deletion of the items of the current list matching
        ``query`` (all items by default)."""
        items = self.client.get_items(self._current_list(), CamlQuery.objectify(query))
        self._queue.enqueue(items, ActionKind.DELETE)
        self._cursor.set_level(ScopeLevel.ITEM, items)
        return self

    def execute(self) -> Self:
        """Send every queued action as one batch.

        Raises:
            BatchExecutionError: If the batch failed.  Actions that were
                not applied on the server stay queued; calling
                :meth:`execute` again retries them.
        """
        self._drain()
        return self

    def _drain(self, *reads: DeferredAction) -> None:
        try:
            applied = self._executor.drain(self._queue, *reads)
        except BatchExecutionError as e:
            self._forget_deleted(e.applied)
            raise
        self._forget_deleted(applied)

    def _forget_deleted(self, applied: tuple[DeferredAction, ...]) -> None:
        for action in applied:
            if action.kind == ActionKind.DELETE and isinstance(action.target, SPList):
                for dropped in self._cache.forget(action.target.title):
                    log.debug("forgetting deleted list %r", dropped)
                    dropped._invalidate()
