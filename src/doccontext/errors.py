"""Exceptions raised by doccontext."""

from __future__ import annotations


class DocContextError(Exception):
    """Base class for doccontext errors."""


class ParseFailure(DocContextError):
    """A single document could not be parsed.

    Raised by the parser and absorbed by the package builder, which skips the
    document and counts it as failed.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to parse {path}: {reason}")
        self.path = path
        self.reason = reason


class IndexUnavailable(DocContextError):
    """The package index is missing, closed or not a valid package."""


class PackageNotFound(DocContextError):
    """No installed package matches the requested library."""

    def __init__(self, library: str) -> None:
        super().__init__(f"Package not found: {library}")
        self.library = library
