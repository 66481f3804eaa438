"""
Pure functions for building and parsing SharePoint ``$batch`` bodies.

A batch is a ``multipart/mixed`` document.  Every part is a complete
HTTP request; requests that change anything are wrapped in a changeset
of their own, so the server executes them in the order they appear.
The answer is a ``multipart/mixed`` document with one HTTP response per
request, in the same order.
"""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass, field
from typing import Any

from fluentsp.lib.error import ResponseError

_CRLF = "\r\n"
_BOUNDARY_RE = re.compile(r'boundary="?([^";]+)"?', re.IGNORECASE)
_STATUS_RE = re.compile(r"^HTTP/\d\.\d\s+(\d{3})\s*(.*)$")

JSON_TYPE = "application/json;odata=nometadata"


@dataclass(frozen=True)
class BatchPart:
    """One request inside a batch.

    Attributes:
        method: HTTP method.  SharePoint wants MERGE and DELETE tunnelled
            through POST, see ``headers``.
        url: Absolute URL of the request.
        body: JSON body, or ``None``.
        headers: Extra headers for this request only.
    """

    method: str
    url: str
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_write(self) -> bool:
        return self.method != "GET"

    def to_http(self) -> str:
        """Render the part as an HTTP/1.1 request message."""
        lines = [f"{self.method} {self.url} HTTP/1.1", f"Accept: {JSON_TYPE}"]
        if self.body is not None:
            lines.append(f"Content-Type: {JSON_TYPE}")
        lines.extend(f"{k}: {v}" for k, v in self.headers.items())
        lines.append("")
        if self.body is not None:
            lines.append(json.dumps(self.body))
        lines.append("")
        return _CRLF.join(lines)


@dataclass(frozen=True)
class BatchResponsePart:
    """One HTTP response inside a batch answer."""

    status: int
    reason: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def error_message(self) -> str:
        """The OData error message, or the reason phrase."""
        body = self.body
        if isinstance(body, dict):
            err = body.get("odata.error") or body.get("error") or {}
            message = err.get("message")
            if isinstance(message, dict):
                message = message.get("value")
            if message:
                return message
        return self.reason or str(self.status)


def _application_http(payload: str) -> str:
    return _CRLF.join(
        [
            "Content-Type: application/http",
            "Content-Transfer-Encoding: binary",
            "",
            payload,
        ]
    )


def build_batch_body(
    parts: list[BatchPart],
    boundary: str | None = None,
) -> tuple[str, bytes]:
    """Build a ``$batch`` request body.

    Args:
        parts: The requests, in the order they must be executed.
        boundary: Batch boundary to use; generated when not given.

    Returns:
        ``(boundary, body)``.  The request's ``Content-Type`` must be
        ``multipart/mixed; boundary=<boundary>``.
    """
    boundary = boundary or f"batch_{uuid.uuid4()}"
    chunks = []
    for part in parts:
        if part.is_write:
            changeset = f"changeset_{uuid.uuid4()}"
            chunks.append(
                _CRLF.join(
                    [
                        f"--{boundary}",
                        f"Content-Type: multipart/mixed; boundary={changeset}",
                        "",
                        f"--{changeset}",
                        _application_http(part.to_http()),
                        f"--{changeset}--",
                        "",
                    ]
                )
            )
        else:
            chunks.append(_CRLF.join([f"--{boundary}", _application_http(part.to_http())]))
    chunks.append(f"--{boundary}--{_CRLF}")
    return boundary, "".join(chunks).encode("utf-8")


def _split_head(text: str) -> tuple[list[str], str]:
    """Split a message into its header lines and its body."""
    head, sep, body = text.partition("\n\n")
    return [line for line in head.split("\n") if line], body


def _headers(lines: list[str]) -> dict[str, str]:
    headers = {}
    for line in lines:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return headers


def _boundary_of(content_type: str) -> str | None:
    match = _BOUNDARY_RE.search(content_type or "")
    return match.group(1) if match else None


def _split_multipart(text: str, boundary: str) -> list[str]:
    delimiter = f"--{boundary}"
    parts = []
    for chunk in text.split(delimiter)[1:]:
        if chunk.startswith("--"):
            break
        parts.append(chunk.strip("\n"))
    return parts


def _parse_http_response(text: str) -> BatchResponsePart:
    lines, body = _split_head(text)
    if not lines:
        raise ResponseError(reason="empty response part in batch answer")
    match = _STATUS_RE.match(lines[0].strip())
    if not match:
        raise ResponseError(reason=f"unexpected status line in batch answer: {lines[0]!r}")
    headers = _headers(lines[1:])
    body = body.strip()
    parsed: Any = None
    if body:
        try:
            parsed = json.loads(body)
        except ValueError:
            parsed = body
    return BatchResponsePart(
        status=int(match.group(1)),
        reason=match.group(2).strip(),
        headers=headers,
        body=parsed,
    )


def parse_batch_response(body: bytes | str, content_type: str = "") -> list[BatchResponsePart]:
    """Parse a ``$batch`` answer into its HTTP responses, in order.

    Changeset answers nested in the batch answer are flattened.

    Args:
        body: The raw answer body.
        content_type: The ``Content-Type`` header of the answer.  When it
            carries no boundary, the boundary is taken from the first line.

    Raises:
        ResponseError: If the answer is not a multipart document.
    """
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    text = body.replace("\r\n", "\n")

    boundary = _boundary_of(content_type)
    if boundary is None:
        first = text.lstrip("\n").split("\n", 1)[0]
        if not first.startswith("--"):
            raise ResponseError(reason="batch answer is not a multipart document")
        boundary = first[2:].strip()

    responses = []
    for part in _split_multipart(text, boundary):
        lines, payload = _split_head(part)
        inner_boundary = _boundary_of(_headers(lines).get("content-type", ""))
        if inner_boundary:
            responses.extend(parse_batch_response(payload, f"boundary={inner_boundary}"))
        else:
            responses.append(_parse_http_response(payload))
    return responses


def odata_value(body: Any) -> Any:
    """Unwrap collection answers (``value`` or verbose ``d.results``)."""
    if not isinstance(body, dict):
        return body
    if "d" in body:
        body = body["d"]
        if isinstance(body, dict) and "results" in body:
            return body["results"]
        return body
    if "value" in body:
        return body["value"]
    return body
