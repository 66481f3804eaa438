#!/usr/bin/env python
import logging
from typing import Optional

from fluentsp import __version__

debug_dump_communication = False
try:
    import os

    ## Environmental variables prepended with "PYTHON_FLUENTSP" are used for debug purposes,
    ## environmental variables prepended with "FLUENTSP_" are for connection parameters
    debug_dump_communication = os.environ.get("PYTHON_FLUENTSP_COMMDUMP", False)
    ## one of DEBUG_PDB, DEBUG, DEVELOPMENT, PRODUCTION
    debugmode = os.environ["PYTHON_FLUENTSP_DEBUGMODE"]
except KeyError:
    if "dev" in __version__ or __version__ == "(unknown)":
        debugmode = "DEVELOPMENT"
    else:
        debugmode = "PRODUCTION"

log = logging.getLogger("fluentsp")
if debugmode.startswith("DEBUG"):
    log.setLevel(logging.DEBUG)
else:
    log.setLevel(logging.WARNING)


def errmsg(r) -> str:
    """Utility for formatting an error response to an error string"""
    return "%s %s\n\n%s" % (r.status_code, r.reason, r.text)


def weirdness(*reasons):
    reason = " : ".join([str(x) for x in reasons])
    log.warning(f"Deviation from expectations found: {reason}")
    if debugmode == "DEBUG_PDB":
        log.error(f"Dropping into debugger due to {reason}")
        import pdb

        pdb.set_trace()


class SharePointError(Exception):
    url: Optional[str] = None
    reason: str = "no reason"

    def __init__(self, url: Optional[str] = None, reason: Optional[str] = None) -> None:
        if url:
            self.url = url
        if reason:
            self.reason = reason

    def __str__(self) -> str:
        return "%s at '%s', reason %s" % (
            self.__class__.__name__,
            self.url,
            self.reason,
        )


class AuthorizationError(SharePointError):
    """
    The client encountered an HTTP 401 or 403 error, or was given
    credentials it cannot use.  The url property will contain the url
    in question, the reason property will contain the excuse the
    server sent.
    """

    pass


class PreconditionError(SharePointError):
    """
    A fluent call needs a deeper scope than the one currently selected,
    i.e. a column operation before any list has been loaded or selected.
    """

    reason = "scope too shallow"

    def __init__(self, required=None, current=None, reason: Optional[str] = None) -> None:
        self.required = required
        self.current = current
        if reason is None and required is not None:
            reason = "operation requires %s scope, current scope is %s" % (
                getattr(required, "name", required),
                getattr(current, "name", current),
            )
        super().__init__(reason=reason)


class NotFoundError(SharePointError):
    """
    A named resource could not be found, either in the builder's list
    cache or on the server.  ``name`` holds the name that was asked for.
    """

    def __init__(
        self,
        name: Optional[str] = None,
        url: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.name = name
        if reason is None and name is not None:
            reason = f"{name!r} not found"
        super().__init__(url=url, reason=reason)


class BatchExecutionError(SharePointError):
    """
    Sending the queued actions failed.  Actions that were not applied on
    the server stay queued, so they may be sent again.

    When the actions went out in more than one request and a later
    request failed, ``results`` holds the results of the leading actions
    that the server did apply, and ``applied`` those actions once the
    executor has dropped them from the queue.
    """

    status: Optional[int] = None

    def __init__(
        self,
        url: Optional[str] = None,
        reason: Optional[str] = None,
        status: Optional[int] = None,
        results: Optional[list] = None,
    ) -> None:
        super().__init__(url=url, reason=reason)
        if status is not None:
            self.status = status
        self.results = list(results or [])
        self.applied: tuple = ()


class FieldError(SharePointError):
    pass


class PropertyNotLoadedError(SharePointError):
    pass


class StaleObjectError(SharePointError):
    pass


class ResponseError(SharePointError):
    pass
