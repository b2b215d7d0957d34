"""
Error types raised by the tileset and map core.

Every error is recoverable at the call boundary. The classes also derive from
the matching builtin exception so callers that only know about ValueError,
KeyError or IndexError keep working.
"""


class IsotileError(Exception):
    """Base class for all isotile errors."""


class InvalidInputError(IsotileError, ValueError):
    """Bad threshold, negative sizes or malformed pixel data."""


class NotFoundError(IsotileError, KeyError):
    """A palette operation referenced a GID that does not exist."""

    def __str__(self):
        # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


class IndexOutOfRangeError(IsotileError, IndexError):
    """A palette reorder used a position outside the palette."""
