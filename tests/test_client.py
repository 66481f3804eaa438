"""
Unit tests for the SharePoint REST client.

Rule: zero network calls.  The client's requests.Session is replaced by
a MagicMock wherever HTTP would happen.
"""

import json
from unittest.mock import MagicMock

import pytest
import requests
from requests.auth import HTTPBasicAuth

from fluentsp.actions import ActionKind, DeferredAction
from fluentsp.client import SharePointClient
from fluentsp.fields import FieldPatch, FieldSpec, FieldType
from fluentsp.lib.auth import HTTPBearerAuth
from fluentsp.lib.error import (
    AuthorizationError,
    BatchExecutionError,
    FieldError,
    NotFoundError,
    ResponseError,
    StaleObjectError,
)
from fluentsp.objects import ItemCollection
from fluentsp.operation import FluentOperation
from fluentsp.query import CamlQuery
from fluentsp.session import ContextInfo, fetch_context_info

# ---------------------------------------------------------------------------
# Shared test fixtures
# ---------------------------------------------------------------------------

_SITE_URL = "https://contoso.sharepoint.com/sites/team"
_BATCH_URL = _SITE_URL + "/_api/$batch"
_TOKEN = "eyJ0eXAi"
_DIGEST = "0x1234,01 Jan 2026 00:00:00 -0000"


def _answer(*responses):
    """Render a batch answer from ``(status, reason, body)`` tuples."""
    chunks = []
    for status, reason, body in responses:
        chunks.append(
            "--batchresponse_t\r\n"
            "Content-Type: application/http\r\n"
            "Content-Transfer-Encoding: binary\r\n"
            "\r\n"
            f"HTTP/1.1 {status} {reason}\r\n"
            "CONTENT-TYPE: application/json;odata=nometadata;charset=utf-8\r\n"
            "\r\n" + (json.dumps(body) if body is not None else "") + "\r\n"
        )
    chunks.append("--batchresponse_t--\r\n")
    return "".join(chunks).encode("utf-8")


def _make_mock_response(content=b"", status_code=200, json_data=None, content_type=None):
    mock_resp = MagicMock()
    mock_resp.status_code = status_code
    mock_resp.ok = 200 <= status_code < 300
    mock_resp.reason = "OK" if mock_resp.ok else "Error"
    mock_resp.content = content
    mock_resp.text = content.decode("utf-8") if content else ""
    mock_resp.headers = {
        "Content-Type": content_type or "multipart/mixed; boundary=batchresponse_t"
    }
    mock_resp.json.return_value = json_data
    mock_resp.raise_for_status = MagicMock()
    return mock_resp


def _make_client(*batch_answers):
    """Return a SharePointClient whose HTTP calls are fully mocked.

    Every ``session.post`` call returns the next of ``batch_answers``.
    """
    client = SharePointClient(_SITE_URL, password=_TOKEN)
    client._context_cache = ContextInfo(form_digest=_DIGEST, expires_at=float("inf"))
    client.session = MagicMock()
    client.session.post.side_effect = list(batch_answers)
    return client


def _sent_body(client, call=0):
    return client.session.post.call_args_list[call].kwargs["data"].decode("utf-8")


class TestAuth:
    def test_context_manager_closes_session(self):
        with SharePointClient(_SITE_URL, password=_TOKEN) as client:
            client.session = MagicMock()
        client.session.close.assert_called_once()

    def test_bearer_when_no_username(self):
        client = SharePointClient(_SITE_URL, password=_TOKEN)
        assert client._auth == HTTPBearerAuth(_TOKEN)
        assert client.session.auth is client._auth

    def test_basic_when_username_given(self):
        client = SharePointClient(_SITE_URL, username="u", password="p")
        assert isinstance(client._auth, HTTPBasicAuth)

    def test_explicit_auth_object_wins(self):
        auth = HTTPBasicAuth("a", "b")
        assert SharePointClient(_SITE_URL, auth=auth)._auth is auth

    def test_raises_without_credentials(self):
        with pytest.raises(AuthorizationError):
            SharePointClient(_SITE_URL)

    def test_unsupported_auth_type(self):
        with pytest.raises(AuthorizationError):
            SharePointClient(_SITE_URL, username="u", password="p", auth_type="ntlm")

    def test_basic_without_password(self):
        with pytest.raises(AuthorizationError):
            SharePointClient(_SITE_URL, username="u", auth_type="basic")

    def test_bearer_header(self):
        request = MagicMock()
        request.headers = {}
        HTTPBearerAuth(_TOKEN)(request)
        assert request.headers["Authorization"] == f"Bearer {_TOKEN}"

    def test_url_is_normalized(self):
        assert SharePointClient(_SITE_URL + "/", password=_TOKEN).url == _SITE_URL


class TestContextInfo:
    def test_fetch_parses_nometadata(self):
        session = MagicMock()
        session.post.return_value = _make_mock_response(
            json_data={
                "FormDigestValue": _DIGEST,
                "FormDigestTimeoutSeconds": 1800,
                "WebFullUrl": _SITE_URL,
                "LibraryVersion": "16.0.0.0",
            }
        )
        info = fetch_context_info(session, _SITE_URL)
        assert info.form_digest == _DIGEST
        assert info.web_full_url == _SITE_URL
        assert not info.expired
        assert session.post.call_args.args[0] == _SITE_URL + "/_api/contextinfo"

    def test_fetch_parses_verbose(self):
        session = MagicMock()
        session.post.return_value = _make_mock_response(
            json_data={"d": {"GetContextWebInformation": {"FormDigestValue": _DIGEST}}}
        )
        assert fetch_context_info(session, _SITE_URL).form_digest == _DIGEST

    def test_fetch_raises_auth_error_on_401(self):
        session = MagicMock()
        session.post.return_value = _make_mock_response(status_code=401)
        with pytest.raises(AuthorizationError):
            fetch_context_info(session, _SITE_URL)

    def test_fetch_raises_without_digest(self):
        session = MagicMock()
        session.post.return_value = _make_mock_response(json_data={})
        with pytest.raises(ResponseError):
            fetch_context_info(session, _SITE_URL)

    def test_digest_is_cached(self):
        client = SharePointClient(_SITE_URL, password=_TOKEN)
        client.session = MagicMock()
        client.session.post.return_value = _make_mock_response(
            json_data={"FormDigestValue": _DIGEST}
        )
        assert client._get_context_info() is client._get_context_info()
        assert client.session.post.call_count == 1

    def test_expired_digest_is_refetched(self):
        client = SharePointClient(_SITE_URL, password=_TOKEN)
        client._context_cache = ContextInfo(form_digest="old", expires_at=0)
        client.session = MagicMock()
        client.session.post.return_value = _make_mock_response(
            json_data={"FormDigestValue": _DIGEST}
        )
        assert client._get_context_info().form_digest == _DIGEST


class TestExecuteBatch:
    def test_load_list_is_one_get_part(self):
        client = _make_client(_make_mock_response(_answer((200, "OK", {"Title": "Tasks"}))))
        lst = client.get_list_by_title(client.get_web(), "Tasks")

        results = client.execute_batch([DeferredAction(lst, ActionKind.LOAD)])

        assert results == [{"Title": "Tasks"}]
        client.session.post.assert_called_once()
        args, kwargs = client.session.post.call_args
        assert args[0] == _BATCH_URL
        assert kwargs["headers"]["X-RequestDigest"] == _DIGEST
        assert kwargs["headers"]["Content-Type"].startswith("multipart/mixed; boundary=batch_")
        assert f"GET {_SITE_URL}/_api/web/lists/getbytitle('Tasks') HTTP/1.1" in _sent_body(client)

    def test_load_with_select(self):
        client = _make_client(_make_mock_response(_answer((200, "OK", {"Title": "Tasks"}))))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        client.load(lst, "Title", "ItemCount")
        client.execute_batch([DeferredAction(lst, ActionKind.LOAD)])
        assert "getbytitle('Tasks')?$select=Title,ItemCount HTTP/1.1" in _sent_body(client)

    def test_load_of_new_list_creates_it(self):
        client = _make_client(_make_mock_response(_answer((201, "Created", {"Title": "Backlog"}))))
        lst = client.new_list(client.get_web(), "Backlog", 100)
        client.execute_batch([DeferredAction(lst, ActionKind.LOAD)])
        body = _sent_body(client)
        assert f"POST {_SITE_URL}/_api/web/lists HTTP/1.1" in body
        assert json.dumps({"Title": "Backlog", "BaseTemplate": 100}) in body

    def test_create_item_and_update_list(self):
        client = _make_client(
            _make_mock_response(_answer((201, "Created", {"Id": 5}), (204, "No Content", None)))
        )
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        item = client.new_item(lst, {"Title": "x"})
        lst.changes = {"Description": "d"}
        results = client.execute_batch(
            [DeferredAction(item, ActionKind.CREATE), DeferredAction(lst, ActionKind.UPDATE)]
        )
        assert results == [{"Id": 5}, None]
        body = _sent_body(client)
        assert f"POST {_SITE_URL}/_api/web/lists/getbytitle('Tasks')/items HTTP/1.1" in body
        assert "X-HTTP-Method: MERGE" in body

    def test_delete_of_unloaded_items_reads_then_deletes(self):
        rows = [{"Id": 1, "Title": "a"}, {"Id": 2, "Title": "b"}]
        client = _make_client(
            _make_mock_response(_answer((200, "OK", {"Title": "Tasks"}), (200, "OK", {"value": rows}))),
            _make_mock_response(_answer((204, "No Content", None), (204, "No Content", None))),
        )
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        items = client.get_items(lst, CamlQuery.create_all_items_query())

        results = client.execute_batch(
            [DeferredAction(lst, ActionKind.LOAD), DeferredAction(items, ActionKind.DELETE)]
        )

        assert results == [{"Title": "Tasks"}, rows]
        assert client.session.post.call_count == 2
        first, second = _sent_body(client, 0), _sent_body(client, 1)
        assert first.index("getbytitle('Tasks') HTTP/1.1") < first.index("/getitems HTTP/1.1")
        assert "RecursiveAll" in first
        assert "getbytitle('Tasks')/items(1) HTTP/1.1" in second
        assert "getbytitle('Tasks')/items(2) HTTP/1.1" in second
        assert second.count("X-HTTP-Method: DELETE") == 2

    def test_failure_after_first_request_reports_applied_actions(self):
        client = _make_client(
            _make_mock_response(
                _answer(
                    (200, "OK", {"Title": "Tasks"}),
                    (201, "Created", {"Id": 5}),
                    (200, "OK", {"value": [{"Id": 1}]}),
                )
            ),
            _make_mock_response(b"busy", status_code=503),
        )
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        actions = [
            DeferredAction(lst, ActionKind.LOAD),
            DeferredAction(client.new_item(lst, {"Title": "x"}), ActionKind.CREATE),
            DeferredAction(client.get_items(lst), ActionKind.DELETE),
        ]

        with pytest.raises(BatchExecutionError) as exc_info:
            client.execute_batch(actions)

        assert exc_info.value.results == [{"Title": "Tasks"}, {"Id": 5}]
        assert exc_info.value.status == 503
        assert client.session.post.call_count == 2

    def test_failure_of_first_request_reports_nothing_applied(self):
        client = _make_client(_make_mock_response(b"busy", status_code=503))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        with pytest.raises(BatchExecutionError) as exc_info:
            client.execute_batch(
                [
                    DeferredAction(lst, ActionKind.LOAD),
                    DeferredAction(client.get_items(lst), ActionKind.DELETE),
                ]
            )
        assert exc_info.value.results == []

    def test_stale_target_sends_nothing(self):
        client = _make_client()
        web = client.get_web()
        old = client.get_list_by_title(web, "Old")
        old._invalidate()
        with pytest.raises(StaleObjectError):
            client.execute_batch(
                [
                    DeferredAction(client.get_items(client.get_list_by_title(web, "Tasks")), ActionKind.DELETE),
                    DeferredAction(old, ActionKind.UPDATE),
                ]
            )
        client.session.post.assert_not_called()

    def test_rows_without_id_are_skipped(self):
        client = _make_client(
            _make_mock_response(_answer((200, "OK", {"value": [{"Id": 1}, {"Title": "?"}]}))),
            _make_mock_response(_answer((204, "No Content", None))),
        )
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        client.execute_batch([DeferredAction(client.get_items(lst), ActionKind.DELETE)])
        assert _sent_body(client, 1).count("X-HTTP-Method: DELETE") == 1

    def test_delete_of_empty_unloaded_items_sends_one_batch(self):
        client = _make_client(_make_mock_response(_answer((200, "OK", {"value": []}))))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        results = client.execute_batch([DeferredAction(client.get_items(lst), ActionKind.DELETE)])
        assert results == [[]]
        assert client.session.post.call_count == 1

    def test_delete_of_loaded_items_needs_no_read(self):
        client = _make_client(
            _make_mock_response(_answer((204, "No Content", None), (204, "No Content", None)))
        )
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        items = ItemCollection(lst)
        items._populate([{"Id": 3}, {"Id": 4}])
        results = client.execute_batch([DeferredAction(items, ActionKind.DELETE)])
        assert results == [None]
        assert "getitems" not in _sent_body(client)

    def test_missing_list_raises_not_found(self):
        error_body = {"odata.error": {"message": {"value": "List 'Tasks' does not exist"}}}
        client = _make_client(_make_mock_response(_answer((404, "Not Found", error_body))))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        with pytest.raises(NotFoundError) as exc_info:
            client.execute_batch([DeferredAction(lst, ActionKind.LOAD)])
        assert exc_info.value.name == "Tasks"
        assert "does not exist" in exc_info.value.reason

    def test_failing_part_raises_batch_error(self):
        client = _make_client(
            _make_mock_response(
                _answer((200, "OK", {"Title": "Tasks"}), (500, "Internal Server Error", None))
            )
        )
        web = client.get_web()
        with pytest.raises(BatchExecutionError) as exc_info:
            client.execute_batch(
                [
                    DeferredAction(client.get_list_by_title(web, "Tasks"), ActionKind.LOAD),
                    DeferredAction(client.get_list_by_title(web, "Old"), ActionKind.DELETE),
                ]
            )
        assert exc_info.value.status == 500

    def test_http_error_raises_batch_error(self):
        client = _make_client(_make_mock_response(b"busy", status_code=503))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        with pytest.raises(BatchExecutionError) as exc_info:
            client.execute_batch([DeferredAction(lst, ActionKind.LOAD)])
        assert exc_info.value.status == 503

    def test_unauthorized_raises_auth_error(self):
        client = _make_client(_make_mock_response(b"", status_code=401))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        with pytest.raises(AuthorizationError):
            client.execute_batch([DeferredAction(lst, ActionKind.LOAD)])

    def test_transport_error_raises_batch_error(self):
        client = _make_client(requests.ConnectionError("connection refused"))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        with pytest.raises(BatchExecutionError):
            client.execute_batch([DeferredAction(lst, ActionKind.LOAD)])

    def test_answer_count_mismatch(self):
        client = _make_client(_make_mock_response(_answer()))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        with pytest.raises(BatchExecutionError):
            client.execute_batch([DeferredAction(lst, ActionKind.LOAD)])

    def test_unparseable_answer(self):
        client = _make_client(_make_mock_response(b"{}", content_type="application/json"))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        with pytest.raises(BatchExecutionError):
            client.execute_batch([DeferredAction(lst, ActionKind.LOAD)])


def _make_eager_client(response):
    client = _make_client()
    client.session.request.return_value = response
    return client


class TestEagerCalls:
    def test_add_field(self):
        client = _make_eager_client(
            _make_mock_response(status_code=201, json_data={"InternalName": "Priority"})
        )
        lst = client.get_list_by_title(client.get_web(), "Tasks")

        client.add_field(lst, FieldSpec("Priority", FieldType.NUMBER))

        args, kwargs = client.session.request.call_args
        assert args == (
            "POST",
            f"{_SITE_URL}/_api/web/lists/getbytitle('Tasks')/fields/createfieldasxml",
        )
        body = json.loads(kwargs["data"])
        assert body["parameters"]["Options"] == 24
        assert 'Type="Number"' in body["parameters"]["SchemaXml"]
        assert kwargs["headers"]["X-RequestDigest"] == _DIGEST

    def test_update_field_merges_given_properties(self):
        client = _make_eager_client(_make_mock_response(status_code=204))
        lst = client.get_list_by_title(client.get_web(), "Tasks")

        client.update_field(lst, "Priority", FieldPatch(display_name="Prio"))

        args, kwargs = client.session.request.call_args
        assert args[1].endswith("/fields/getbyinternalnameortitle('Priority')")
        assert json.loads(kwargs["data"]) == {"Title": "Prio"}
        assert kwargs["headers"]["X-HTTP-Method"] == "MERGE"
        assert kwargs["headers"]["IF-MATCH"] == "*"

    def test_update_field_with_empty_patch_sends_nothing(self):
        client = _make_eager_client(_make_mock_response(status_code=204))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        client.update_field(lst, "Priority", FieldPatch())
        client.session.request.assert_not_called()

    def test_delete_field(self):
        client = _make_eager_client(_make_mock_response(status_code=200))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        client.delete_field(lst, "Priority")
        _, kwargs = client.session.request.call_args
        assert kwargs["headers"]["X-HTTP-Method"] == "DELETE"
        assert kwargs["data"] is None

    def test_missing_field_raises_not_found(self):
        client = _make_eager_client(_make_mock_response(status_code=404))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        with pytest.raises(NotFoundError) as exc_info:
            client.delete_field(lst, "Nope")
        assert exc_info.value.name == "Nope"

    def test_rejected_field_raises_field_error(self):
        client = _make_eager_client(_make_mock_response(b"bad schema", status_code=400))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        with pytest.raises(FieldError):
            client.add_field(lst, FieldSpec("Priority", FieldType.NUMBER))

    def test_forbidden_raises_auth_error(self):
        client = _make_eager_client(_make_mock_response(status_code=403))
        lst = client.get_list_by_title(client.get_web(), "Tasks")
        with pytest.raises(AuthorizationError):
            client.delete_field(lst, "Priority")

    def test_known_template_needs_no_request(self):
        client = _make_eager_client(_make_mock_response())
        assert client.resolve_list_template(client.get_web(), "Custom List") == 100
        client.session.request.assert_not_called()

    def test_custom_template_is_looked_up(self):
        client = _make_eager_client(
            _make_mock_response(json_data={"value": [{"ListTemplateTypeKind": 10001}]})
        )
        assert client.resolve_list_template(client.get_web(), "Project Tracker") == 10001
        args, _ = client.session.request.call_args
        assert args[0] == "GET"
        assert "listtemplates?$filter=Name%20eq%20'Project%20Tracker'" in args[1]

    def test_unknown_template_raises_not_found(self):
        client = _make_eager_client(_make_mock_response(json_data={"value": []}))
        with pytest.raises(NotFoundError) as exc_info:
            client.resolve_list_template(client.get_web(), "Nope")
        assert exc_info.value.name == "Nope"


class TestFluentOperationOverRest:
    def test_end_to_end(self):
        rows = [{"Id": 1}]
        client = _make_client(
            _make_mock_response(_answer((200, "OK", {"Title": "Tasks"}), (200, "OK", {"value": rows}))),
            _make_mock_response(_answer((204, "No Content", None))),
        )
        client.session.request.return_value = _make_mock_response(status_code=201, json_data={})
        op = FluentOperation(client)

        op.load_list("Tasks").add_column("Priority", FieldType.NUMBER)
        assert client.session.post.call_count == 0
        assert client.session.request.call_count == 1

        items = op.delete_items().current_items
        op.execute()

        assert op.pending == ()
        assert op.current_list["Title"] == "Tasks"
        assert items.deleted
        assert "items(1) HTTP/1.1" in _sent_body(client, 1)

    def test_retry_after_partial_failure_sends_no_duplicate_create(self):
        rows = [{"Id": 1}]
        client = _make_client(
            _make_mock_response(
                _answer(
                    (200, "OK", {"Title": "Tasks"}),
                    (201, "Created", {"Id": 5}),
                    (200, "OK", {"value": rows}),
                )
            ),
            _make_mock_response(b"busy", status_code=503),
            _make_mock_response(_answer((200, "OK", {"value": rows}))),
            _make_mock_response(_answer((204, "No Content", None))),
        )
        op = FluentOperation(client)
        op.load_list("Tasks").add_item(Title="x").delete_items()
        item = op.pending[1].target

        with pytest.raises(BatchExecutionError):
            op.execute()
        assert [repr(action) for action in op.pending] == ["Delete(ItemCollection('Tasks'))"]
        assert item.id == 5

        op.execute()
        assert op.pending == ()
        assert client.session.post.call_count == 4
        for call in (2, 3):
            body = _sent_body(client, call)
            assert "getbytitle('Tasks')/items HTTP/1.1" not in body
            assert "getbytitle('Tasks') HTTP/1.1" not in body
        assert "items(1) HTTP/1.1" in _sent_body(client, 3)
