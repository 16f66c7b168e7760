# tests/test_graph_session.py
from __future__ import annotations

import json
import time

import pytest
from PyQt5.QtCore import QTimer

from grid_annote.session.graph_session import GraphSession

ENDPOINT = "ws://graph.example.test/store"


def graph_message(text: str) -> str:
    return json.dumps({"type": "graph", "body": {"graph": text}})


@pytest.fixture
def session(qapp, transport_factory):
    s = GraphSession(endpoint=ENDPOINT, timeout_s=5.0, transport_factory=transport_factory)
    yield s
    s.close()


def test_request_sends_get_graph_once_connected(session, sockets):
    assert session.request_graph("PK=")
    (sock,) = sockets
    assert sock.sent == []
    assert sock.request.url().toString() == ENDPOINT
    assert bytes(sock.request.rawHeader(b"Sec-WebSocket-Protocol")) == b"consequence.1"

    sock.connected.emit()
    assert [json.loads(m) for m in sock.sent] == [
        {"type": "get_graph", "body": {"public_key": "PK="}},
    ]


def test_graph_response_resolves_request(qtbot, session, sockets):
    session.request_graph("PK=")
    sock = sockets[0]
    with qtbot.waitSignal(session.graph_ready, timeout=1000) as blocker:
        sock.reply(graph_message('"a" [pubkey="x" memo="y"];'))
    assert blocker.args == ["PK=", '"a" [pubkey="x" memo="y"];']
    assert sock.closed
    assert not session.is_pending("PK=")
    assert session.has_requested("PK=")


def test_other_message_types_are_ignored(qtbot, session, sockets):
    session.request_graph("PK=")
    sock = sockets[0]
    with qtbot.assertNotEmitted(session.graph_ready):
        sock.reply(json.dumps({"type": "hello", "body": {}}))
        sock.textMessageReceived.emit(json.dumps({"type": "graph", "body": {"graph": 12}}))
        sock.textMessageReceived.emit("[1, 2]")
    assert session.is_pending("PK=")

    with qtbot.waitSignal(session.graph_ready, timeout=1000) as blocker:
        sock.textMessageReceived.emit(graph_message("g"))
    assert blocker.args == ["PK=", "g"]


@pytest.mark.parametrize("fail", ["bad_json", "error", "disconnect"])
def test_transport_failures_resolve_as_no_data(qtbot, session, sockets, fail):
    session.request_graph("PK=")
    sock = sockets[0]
    with qtbot.waitSignal(session.graph_ready, timeout=1000) as blocker:
        if fail == "bad_json":
            sock.reply("{not json")
        elif fail == "error":
            sock.error.emit(1)
        else:
            sock.disconnected.emit()
    assert blocker.args == ["PK=", None]
    assert not session.is_pending("PK=")


def test_only_one_request_per_key_in_flight(session, sockets):
    assert session.request_graph("PK=")
    assert not session.request_graph("PK=")
    assert session.request_graph("OTHER=")
    assert len(sockets) == 2
    assert session.pending_count() == 2


def test_empty_key_is_not_requested(session, sockets):
    assert not session.request_graph("")
    assert sockets == []


def test_timeout_resolves_as_no_data(qtbot, qapp, transport_factory, sockets):
    session = GraphSession(endpoint=ENDPOINT, timeout_s=0.2, transport_factory=transport_factory)
    started = time.monotonic()
    with qtbot.waitSignal(session.graph_ready, timeout=3000) as blocker:
        session.request_graph("SILENT=")
    elapsed = time.monotonic() - started
    assert blocker.args == ["SILENT=", None]
    assert 0.15 <= elapsed < 3.0
    assert sockets[0].closed


def test_missing_endpoint_resolves_immediately(qtbot, qapp, transport_factory):
    session = GraphSession(endpoint="", transport_factory=transport_factory)
    with qtbot.waitSignal(session.graph_ready, timeout=500) as blocker:
        assert session.request_graph("PK=")
    assert blocker.args == ["PK=", None]


def test_non_websocket_endpoint_is_unavailable(qtbot, qapp, transport_factory, sockets):
    session = GraphSession(endpoint="http://example.test/", transport_factory=transport_factory)
    with qtbot.waitSignal(session.graph_ready, timeout=500) as blocker:
        session.request_graph("PK=")
    assert blocker.args == ["PK=", None]
    assert sockets[0].request is None


def test_configure_tears_down_and_forgets_requests(qtbot, session, sockets):
    session.request_graph("PK=")
    with qtbot.waitSignal(session.graph_ready, timeout=500) as blocker:
        session.configure("ws://other.example.test/")
    assert blocker.args == ["PK=", None]
    assert sockets[0].closed
    assert not session.has_requested("PK=")
    assert session.endpoint == "ws://other.example.test/"


def test_cancel_resolves_as_no_data(qtbot, session, sockets):
    session.request_graph("PK=")
    with qtbot.waitSignal(session.graph_ready, timeout=500) as blocker:
        session.cancel("PK=")
    assert blocker.args == ["PK=", None]
    session.cancel("PK=")  # no-op


def test_fetch_graph_blocks_until_reply(session, sockets):
    QTimer.singleShot(20, lambda: sockets[-1].reply(graph_message("fetched")))
    assert session.fetch_graph("PK=") == "fetched"


def test_fetch_graph_times_out(qapp, transport_factory):
    session = GraphSession(endpoint=ENDPOINT, timeout_s=0.1, transport_factory=transport_factory)
    started = time.monotonic()
    assert session.fetch_graph("SILENT=") is None
    assert time.monotonic() - started < 3.0
