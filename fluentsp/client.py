"""
Remote resource clients.

:class:`RemoteClient` is the contract the fluent builder relies on: it
hands out lazy handles without any I/O, sends a list of deferred actions
as one batch, and performs the few schema changes that are not deferred.

:class:`SharePointClient` implements that contract on top of the
SharePoint REST API, using ``requests``.
"""

from __future__ import annotations

import datetime
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from tempfile import NamedTemporaryFile
from typing import Any

import requests

from fluentsp import __version__
from fluentsp.actions import ActionKind, DeferredAction
from fluentsp.fields import ADD_FIELD_OPTIONS, FieldPatch, FieldSpec
from fluentsp.lib import error
from fluentsp.lib.auth import build_auth
from fluentsp.objects import ClientObject, ItemCollection, ListItem, SPList, Web
from fluentsp.protocol import paths
from fluentsp.protocol.batch import (
    JSON_TYPE,
    BatchPart,
    build_batch_body,
    odata_value,
    parse_batch_response,
)
from fluentsp.protocol.paths import api_url
from fluentsp.query import CamlQuery
from fluentsp.session import ContextInfo, fetch_context_info

log = logging.getLogger("fluentsp.client")

## ListTemplateType values of the built-in templates, by template name
LIST_TEMPLATES = {
    "Custom List": 100,
    "Document Library": 101,
    "Survey": 102,
    "Links": 103,
    "Announcements": 104,
    "Contacts": 105,
    "Calendar": 106,
    "Tasks": 107,
    "Discussion Board": 108,
    "Picture Library": 109,
    "Issue Tracking": 1100,
}

DEFAULT_LIST_TEMPLATE = "Custom List"


def _name_of(target: ClientObject) -> str:
    if isinstance(target, SPList):
        return target.title
    if isinstance(target, (ListItem, ItemCollection)):
        return target.list.title
    return target.web_url


class RemoteClient(ABC):
    """What the fluent builder needs from a remote client.

    Handle factories (``get_web``, ``get_list_by_title``, ``new_list``,
    ``get_items``, ``new_item``) and :meth:`load` never perform I/O.
    :meth:`execute_batch` is the only method that sends deferred work;
    the schema methods and :meth:`resolve_list_template` act at once.
    """

    def __init__(self, url: str) -> None:
        self.url = url.rstrip("/")

    def get_web(self, url: str | None = None) -> Web:
        """The root web of the site, or the sub-web at ``url``."""
        if url is None:
            return Web(self.url)
        return Web(paths.join_web_url(self.url, url))

    def get_list_by_title(self, web: Web, title: str) -> SPList:
        return SPList(web, title)

    def new_list(
        self,
        web: Web,
        title: str,
        template: int,
        description: str | None = None,
    ) -> SPList:
        """A handle for a list that is created when its Load is sent."""
        creation: dict[str, Any] = {"Title": title, "BaseTemplate": template}
        if description is not None:
            creation["Description"] = description
        return SPList(web, title, creation=creation)

    def get_items(self, lst: SPList, query: CamlQuery | None = None) -> ItemCollection:
        return ItemCollection(lst, query)

    def new_item(self, lst: SPList, values: dict) -> ListItem:
        return ListItem(lst, values=values)

    def load(self, obj: ClientObject, *properties: str) -> None:
        """Choose what a Load of ``obj`` fetches; nothing is sent.

        Without ``properties`` the whole object is fetched.
        """
        obj.select = tuple(properties)

    @abstractmethod
    def resolve_list_template(self, web: Web, name: str) -> int:
        """Look up the template type of the list template called ``name``."""

    @abstractmethod
    def execute_batch(self, actions: Sequence[DeferredAction]) -> list:
        """Send ``actions`` in order, as one batch.

        Returns:
            One result per action: the fetched properties for Load and
            Create, the item rows for a Delete of an item collection that
            was not loaded before, ``None`` otherwise.

        Raises:
            BatchExecutionError: If the batch, or any action in it, failed.
                If the server had already applied some leading actions,
                their results are in the error's ``results``.
            NotFoundError: If the server reported a target as missing
                before any action was applied.
            StaleObjectError: If a target was deleted.  Nothing is sent.
        """

    @abstractmethod
    def add_field(self, lst: SPList, spec: FieldSpec) -> dict:
        """Add a column to ``lst`` right away."""

    @abstractmethod
    def update_field(self, lst: SPList, name: str, patch: FieldPatch) -> None:
        """Change the column ``name`` (internal name or title) right away."""

    @abstractmethod
    def delete_field(self, lst: SPList, name: str) -> None:
        """Delete the column ``name`` (internal name or title) right away."""


class SharePointClient(RemoteClient):
    """SharePoint REST client.

    Usage::

        from fluentsp import SharePointClient, FluentOperation

        with SharePointClient("https://contoso.sharepoint.com/sites/team",
                              password="eyJ0eXAi...") as client:
            FluentOperation(client).load_list("Tasks").delete_items().execute()

    Args:
        url: Absolute URL of the site.
        username: Username for Basic auth.
        password: Password for Basic auth, or bearer token if no username.
        auth: A pre-built requests-compatible auth object.  Takes
              precedence over username/password if provided.
        auth_type: Force a specific auth type: ``"basic"`` or ``"bearer"``.
        timeout: HTTP request timeout in seconds.
        ssl_verify_cert: Passed on to requests as ``verify``.
        headers: Extra headers sent with every request.
    """

    def __init__(
        self,
        url: str,
        username: str | None = None,
        password: str | None = None,
        auth=None,
        auth_type: str | None = None,
        timeout: int = 30,
        ssl_verify_cert: bool | str = True,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(url)
        self.username = username
        self.timeout = timeout
        self._context_cache: ContextInfo | None = None

        if auth is not None:
            self._auth = auth
        else:
            self._auth = build_auth(self.url, username, password, auth_type)

        self.session = requests.Session()
        self.session.auth = self._auth
        self.session.verify = ssl_verify_cert
        self.session.headers.update(
            {"Accept": JSON_TYPE, "User-Agent": f"python/fluentsp/{__version__}"}
        )
        if headers:
            self.session.headers.update(headers)

    def __enter__(self) -> SharePointClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def _get_context_info(self) -> ContextInfo:
        """Return the cached request digest, fetching it when missing or stale."""
        if self._context_cache is None or self._context_cache.expired:
            self._context_cache = fetch_context_info(self.session, self.url, timeout=self.timeout)
        return self._context_cache

    def _dump(self, method: str, url: str, headers: dict, body, response) -> None:
        if not error.debug_dump_communication:
            return
        with NamedTemporaryFile(prefix="fluentspcomm", delete=False) as commlog:
            commlog.write(b"=" * 80 + b"\n")
            commlog.write(f"{datetime.datetime.now():%FT%H:%M:%S}".encode("utf-8"))
            commlog.write(b"\n====>\n")
            commlog.write(f"{method} {url}\n".encode("utf-8"))
            commlog.write(b"\n".join(f"{k}: {v}".encode("utf-8") for k, v in headers.items()))
            commlog.write(b"\n\n")
            if body:
                commlog.write(body if isinstance(body, bytes) else body.encode("utf-8"))
            commlog.write(b"<====\n")
            commlog.write(f"{response.status_code} {response.reason}\n".encode("utf-8"))
            commlog.write(response.content)
            commlog.write(b"\n")
            log.debug(f"communication dumped to {commlog.name}")

    def request(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """Send a single request, outside of any batch.

        Writes get the request digest added.  MERGE and DELETE must be
        tunnelled through POST by the caller, with ``X-HTTP-Method``.

        Raises:
            AuthorizationError: On HTTP 401 or 403.
        """
        all_headers = {"Accept": JSON_TYPE}
        data = None
        if body is not None:
            all_headers["Content-Type"] = JSON_TYPE
            data = json.dumps(body)
        if method != "GET":
            all_headers["X-RequestDigest"] = self._get_context_info().form_digest
        all_headers.update(headers or {})

        log.debug("%s %s", method, url)
        response = self.session.request(
            method, url, data=data, headers=all_headers, timeout=self.timeout
        )
        self._dump(method, url, all_headers, data, response)

        if response.status_code in (401, 403):
            raise error.AuthorizationError(url=url, reason=error.errmsg(response))
        return response

    def resolve_list_template(self, web: Web, name: str) -> int:
        if name in LIST_TEMPLATES:
            return LIST_TEMPLATES[name]
        url = api_url(web.web_url, paths.list_templates_path(name))
        response = self.request("GET", url)
        if response.status_code == 404:
            raise error.NotFoundError(name=name, url=url)
        response.raise_for_status()
        templates = odata_value(response.json())
        if not templates:
            raise error.NotFoundError(name=name, url=url, reason=f"no list template named {name!r}")
        if len(templates) > 1:
            error.weirdness(f"{len(templates)} list templates named {name!r}, using the first")
        return int(templates[0]["ListTemplateTypeKind"])

    def _check_field_response(self, response: requests.Response, url: str, name: str) -> None:
        if response.status_code == 404:
            raise error.NotFoundError(name=name, url=url)
        if not response.ok:
            raise error.FieldError(url=url, reason=error.errmsg(response))

    def add_field(self, lst: SPList, spec: FieldSpec) -> dict:
        lst.check_valid()
        url = api_url(lst.web_url, paths.create_field_path(lst.title))
        body = {"parameters": {"SchemaXml": spec.to_xml(), "Options": ADD_FIELD_OPTIONS}}
        response = self.request("POST", url, body)
        self._check_field_response(response, url, lst.title)
        return odata_value(response.json())

    def update_field(self, lst: SPList, name: str, patch: FieldPatch) -> None:
        lst.check_valid()
        properties = patch.to_properties()
        if not properties:
            return
        url = api_url(lst.web_url, paths.field_path(lst.title, name))
        response = self.request(
            "POST", url, properties, headers={"X-HTTP-Method": "MERGE", "IF-MATCH": "*"}
        )
        self._check_field_response(response, url, name)

    def delete_field(self, lst: SPList, name: str) -> None:
        lst.check_valid()
        url = api_url(lst.web_url, paths.field_path(lst.title, name))
        response = self.request("POST", url, headers={"X-HTTP-Method": "DELETE", "IF-MATCH": "*"})
        self._check_field_response(response, url, name)

    def _items_query_part(self, items: ItemCollection) -> BatchPart:
        return BatchPart("POST", items.url, {"query": items.query.to_json()})

    def _delete_part(self, url: str) -> BatchPart:
        return BatchPart("POST", url, headers={"X-HTTP-Method": "DELETE", "IF-MATCH": "*"})

    def _item_urls(self, items: ItemCollection, rows: list) -> list[str]:
        urls = []
        for row in rows:
            item_id = row.get("Id", row.get("ID"))
            if item_id is None:
                error.weirdness("item row without an id", row)
                continue
            urls.append(api_url(items.web_url, paths.item_path(items.list.title, item_id)))
        return urls

    def _parts_for(self, action: DeferredAction) -> list[BatchPart]:
        target = action.target
        if action.kind == ActionKind.LOAD:
            if isinstance(target, SPList) and target.creation is not None:
                return [BatchPart("POST", api_url(target.web_url, paths.lists_path()), target.creation)]
            if isinstance(target, ItemCollection):
                return [self._items_query_part(target)]
            url = api_url(target.web_url, paths.with_select(target.path, target.select))
            return [BatchPart("GET", url)]
        if action.kind == ActionKind.CREATE:
            if isinstance(target, ListItem):
                return [BatchPart("POST", target.url, target.values)]
            if isinstance(target, SPList) and target.creation is not None:
                return [BatchPart("POST", api_url(target.web_url, paths.lists_path()), target.creation)]
            raise ValueError(f"cannot create {target!r}")
        if action.kind == ActionKind.UPDATE:
            return [
                BatchPart(
                    "POST", target.url, target.changes, {"X-HTTP-Method": "MERGE", "IF-MATCH": "*"}
                )
            ]
        if action.kind == ActionKind.DELETE:
            if isinstance(target, ItemCollection):
                return [self._delete_part(item.url) for item in target.items]
            return [self._delete_part(target.url)]
        raise ValueError(f"unknown action kind {action.kind!r}")

    def _send_batch(
        self,
        batch: list[tuple[BatchPart, int | None]],
        actions: Sequence[DeferredAction],
        results: list,
    ) -> None:
        """POST one ``$batch`` request and store the answers in ``results``.

        Parts tagged with an action index store their answer at that index.
        """
        parts = [part for part, _ in batch]
        url = api_url(self.url, "$batch")
        try:
            boundary, body = build_batch_body(parts)
            headers = {
                "Accept": JSON_TYPE,
                "Content-Type": f"multipart/mixed; boundary={boundary}",
                "X-RequestDigest": self._get_context_info().form_digest,
            }
            log.debug("POST %s: %d part(s)", url, len(parts))
            response = self.session.post(url, data=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise error.BatchExecutionError(url=url, reason=str(e)) from e
        self._dump("POST", url, headers, body, response)

        if response.status_code in (401, 403):
            raise error.AuthorizationError(url=url, reason=error.errmsg(response))
        if not response.ok:
            raise error.BatchExecutionError(
                url=url, reason=error.errmsg(response), status=response.status_code
            )

        try:
            answers = parse_batch_response(
                response.content, response.headers.get("Content-Type", "")
            )
        except error.ResponseError as e:
            raise error.BatchExecutionError(url=url, reason=e.reason) from e
        if len(answers) != len(parts):
            raise error.BatchExecutionError(
                url=url, reason=f"sent {len(parts)} request(s), got {len(answers)} answer(s)"
            )

        for (part, index), answer in zip(batch, answers):
            if answer.status == 404:
                name = _name_of(actions[index].target) if index is not None else None
                raise error.NotFoundError(name=name, url=part.url, reason=answer.error_message())
            if not answer.ok:
                raise error.BatchExecutionError(
                    url=part.url, reason=answer.error_message(), status=answer.status
                )
            if index is not None:
                results[index] = odata_value(answer.body)

    def _send_remaining(
        self,
        batch: list[tuple[BatchPart, int | None]],
        actions: Sequence[DeferredAction],
        results: list,
        done: int,
    ) -> None:
        """Send a batch that follows ``done`` actions already applied on the server."""
        try:
            self._send_batch(batch, actions, results)
        except error.SharePointError as e:
            if not done:
                raise
            raise error.BatchExecutionError(
                url=e.url,
                reason=f"{e.reason} (the first {done} action(s) were applied)",
                status=getattr(e, "status", None),
                results=results[:done],
            ) from e

    def execute_batch(self, actions: Sequence[DeferredAction]) -> list:
        ## Everything that can fail locally fails before the first request goes out
        for action in actions:
            action.target.check_valid()
        planned = [
            None if self._needs_item_ids(action) else self._parts_for(action) for action in actions
        ]

        results: list = [None] * len(actions)
        batch: list[tuple[BatchPart, int | None]] = []
        ## Number of leading actions the server has fully applied
        done = 0
        for index, (action, parts) in enumerate(zip(actions, planned)):
            if parts is not None:
                batch.extend((part, index) for part in parts)
                continue
            ## The item ids are unknown until the collection has been read,
            ## so the read ends this batch and the deletes start the next one
            target = action.target
            batch.append((self._items_query_part(target), index))
            self._send_remaining(batch, actions, results, done)
            done = index
            batch = [
                (self._delete_part(url), None)
                for url in self._item_urls(target, results[index] or [])
            ]
        if batch:
            self._send_remaining(batch, actions, results, done)
        return results

    def _needs_item_ids(self, action: DeferredAction) -> bool:
        return (
            action.kind == ActionKind.DELETE
            and isinstance(action.target, ItemCollection)
            and not action.target.loaded
        )
