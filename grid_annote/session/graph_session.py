# grid_annote/session/graph_session.py
from __future__ import annotations

import json
import logging
from typing import Callable, Dict, Optional, Set

from PyQt5.QtCore import QEventLoop, QObject, QTimer, QUrl, pyqtSignal
from PyQt5.QtNetwork import QNetworkRequest
from PyQt5.QtWebSockets import QWebSocket, QWebSocketProtocol

from ..errors import SocketError, SocketTimeout, SocketUnavailable, TransportError
from ..persistence import DEFAULT_REQUEST_TIMEOUT_S, DEFAULT_SUBPROTOCOL

logger = logging.getLogger(__name__)


# parent -> socket-like QObject (QWebSocket, or a fake in tests)
TransportFactory = Callable[[QObject], QObject]


def default_transport(parent: QObject) -> QObject:
    return QWebSocket("", QWebSocketProtocol.VersionLatest, parent)


class _PendingRequest:
    """One in-flight graph fetch: its socket, its timeout, and whether it has resolved."""

    def __init__(self, public_key: str, socket: QObject, timer: QTimer):
        self.public_key = public_key
        self.socket = socket
        self.timer = timer
        self.settled = False


class GraphSession(QObject):
    """
    Request/response exchange with the remote graph store.

    One session per configured endpoint. Each request opens its own socket,
    sends a get_graph message once connected and resolves on the first
    "graph" response. Every accepted request resolves exactly once through
    graph_ready(public_key, graph); graph is None whenever no data could be
    obtained (timeout, socket error, early close, bad payload, teardown).

    At most one request per public key is in flight at a time.
    """

    # (public_key, graph text or None)
    graph_ready = pyqtSignal(str, object)

    def __init__(
        self,
        endpoint: str = "",
        subprotocol: str = DEFAULT_SUBPROTOCOL,
        timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
        transport_factory: Optional[TransportFactory] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._endpoint = (endpoint or "").strip()
        self._subprotocol = subprotocol
        self._timeout_s = float(timeout_s)
        self._transport_factory = transport_factory or default_transport

        self._pending: Dict[str, _PendingRequest] = {}
        self._requested: Set[str] = set()

    # ---------------- Public API ----------------

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def configure(self, endpoint: str) -> None:
        """Point the session at a new endpoint; in-flight requests resolve as no data."""
        logger.info(f"Graph session endpoint -> {endpoint!r}")
        self._abort_all()
        self._requested.clear()
        self._endpoint = (endpoint or "").strip()

    def has_requested(self, public_key: str) -> bool:
        return public_key in self._requested

    def is_pending(self, public_key: str) -> bool:
        return public_key in self._pending

    def pending_count(self) -> int:
        return len(self._pending)

    def request_graph(self, public_key: str, timeout_s: Optional[float] = None) -> bool:
        """
        Start fetching the graph of public_key.

        Returns False when nothing was started: empty key, or a request for
        the same key is already in flight (its result will still arrive via
        graph_ready).
        """
        if not public_key:
            return False
        if public_key in self._pending:
            logger.debug(f"Graph request for {public_key} already in flight")
            return False

        self._requested.add(public_key)

        timer = QTimer(self)
        timer.setSingleShot(True)
        timeout = self._timeout_s if timeout_s is None else float(timeout_s)
        timer.setInterval(max(0, int(round(timeout * 1000.0))))

        socket = self._transport_factory(self)
        pending = _PendingRequest(public_key, socket, timer)
        self._pending[public_key] = pending

        url = QUrl(self._endpoint)
        if not self._endpoint or not url.isValid() or url.scheme() not in ("ws", "wss"):
            self._resolve(pending, None, SocketUnavailable(f"No usable endpoint configured ({self._endpoint!r})"))
            return True

        timer.timeout.connect(lambda p=pending: self._resolve(
            p, None, SocketTimeout(f"No graph for {p.public_key} within {timeout:.1f}s")))
        socket.connected.connect(lambda p=pending: self._on_connected(p))
        socket.textMessageReceived.connect(lambda text, p=pending: self._on_message(p, text))
        socket.error.connect(lambda code, p=pending: self._on_error(p, code))
        socket.disconnected.connect(lambda p=pending: self._resolve(
            p, None, SocketUnavailable("Socket closed before a graph arrived")))

        request = QNetworkRequest(url)
        if self._subprotocol:
            request.setRawHeader(b"Sec-WebSocket-Protocol", self._subprotocol.encode("ascii"))

        timer.start()
        logger.debug(f"Requesting graph for {public_key} from {self._endpoint}")
        socket.open(request)
        return True

    def cancel(self, public_key: str) -> None:
        pending = self._pending.get(public_key)
        if pending is not None:
            self._resolve(pending, None, None)

    def close(self) -> None:
        self._abort_all()

    def fetch_graph(self, public_key: str, timeout_s: Optional[float] = None) -> Optional[str]:
        """
        Blocking helper: request a graph and spin a local event loop until it resolves.

        Requires a running Q(Core)Application instance.
        """
        if not public_key:
            return None

        result: Dict[str, object] = {"graph": None, "done": False}
        loop = QEventLoop()

        def on_ready(key: str, graph) -> None:
            if key != public_key:
                return
            result["graph"] = graph
            result["done"] = True
            loop.quit()

        self.graph_ready.connect(on_ready)
        try:
            started = self.request_graph(public_key, timeout_s=timeout_s)
            if not started and public_key not in self._pending:
                return None
            if not result["done"]:
                loop.exec_()
        finally:
            self.graph_ready.disconnect(on_ready)

        graph = result["graph"]
        return graph if isinstance(graph, str) else None

    # ---------------- Socket callbacks ----------------

    def _on_connected(self, pending: _PendingRequest) -> None:
        if pending.settled:
            return
        payload = json.dumps({"type": "get_graph", "body": {"public_key": pending.public_key}})
        pending.socket.sendTextMessage(payload)

    def _on_message(self, pending: _PendingRequest, text: str) -> None:
        if pending.settled:
            return
        try:
            data = json.loads(text)
        except ValueError as e:
            self._resolve(pending, None, SocketError(f"Undecodable response: {e}"))
            return

        if not isinstance(data, dict) or data.get("type") != "graph":
            # other message types are not ours
            return
        body = data.get("body")
        graph = body.get("graph") if isinstance(body, dict) else None
        if not isinstance(graph, str):
            logger.debug(f"Ignoring graph message without text body for {pending.public_key}")
            return
        self._resolve(pending, graph, None)

    def _on_error(self, pending: _PendingRequest, code) -> None:
        if pending.settled:
            return
        try:
            detail = pending.socket.errorString()
        except RuntimeError:
            detail = ""
        self._resolve(pending, None, SocketError(f"Socket error {int(code)}: {detail}"))

    # ---------------- Internals ----------------

    def _abort_all(self) -> None:
        for pending in list(self._pending.values()):
            self._resolve(pending, None, None)

    def _resolve(self, pending: _PendingRequest, graph: Optional[str], error: Optional[TransportError]) -> None:
        if pending.settled:
            return
        pending.settled = True
        pending.timer.stop()
        pending.timer.deleteLater()
        if self._pending.get(pending.public_key) is pending:
            del self._pending[pending.public_key]

        if error is not None:
            logger.warning(f"Graph request for {pending.public_key} gave no data: {type(error).__name__}: {error}")

        try:
            pending.socket.close()
        except RuntimeError:
            # underlying C++ object already gone
            pass
        pending.socket.deleteLater()

        self.graph_ready.emit(pending.public_key, graph)
