"""
Sans-I/O SharePoint REST protocol helpers.

- paths: Pure functions building REST resource paths and URLs
- batch: Pure functions building ``$batch`` request bodies and parsing
  the multipart answers

Nothing in this package performs I/O; the client sends what is built
here and feeds the answers back in.
"""

from .batch import BatchPart, BatchResponsePart, build_batch_body, parse_batch_response

__all__ = [
    "BatchPart",
    "BatchResponsePart",
    "build_batch_body",
    "parse_batch_response",
]
