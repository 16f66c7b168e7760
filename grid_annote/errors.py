# grid_annote/errors.py
from __future__ import annotations


class GridAnnoteError(Exception):
    """Base class for all errors raised by grid_annote."""


# -----------------------------
# Derivation contract violations
# -----------------------------

class InvalidNamespace(GridAnnoteError, ValueError):
    """Empty or blank namespace passed to key derivation."""


class CoordinateOutOfRange(GridAnnoteError, ValueError):
    """Row/column outside 0..255, or a negative time offset."""


# -----------------------------
# Payload / correlation
# -----------------------------

class MalformedGraphPayload(GridAnnoteError):
    """Graph payload that cannot be decoded at all (e.g. not text)."""


class CorrelationCancelled(GridAnnoteError):
    """Raised from inside a correlation run once its owner cancels it."""


class ReadOnlyPoint(GridAnnoteError):
    """Attempt to edit or remove a point that was derived from a tag."""


# -----------------------------
# Transport
# -----------------------------

class TransportError(GridAnnoteError):
    """
    Base class for socket failures.

    These never escape the session client: they are logged and the affected
    request resolves as "no data".
    """


class SocketUnavailable(TransportError):
    pass


class SocketTimeout(TransportError):
    pass


class SocketError(TransportError):
    pass
