# tests/test_app.py
from __future__ import annotations

import json

from PyQt5.QtCore import QTimer

from conftest import FakeSocket
from grid_annote.app import run_app
from grid_annote.keys import derive_namespace_identity, derive_time_scoped_grid
from grid_annote.persistence import ENDPOINT_ENV_VAR, load_app_config
from grid_annote.session import graph_session


def _run(capsys, tmp_path, *argv):
    code = run_app(["--config-dir", str(tmp_path), *argv])
    return code, capsys.readouterr().out


def test_identity_command(qapp, capsys, tmp_path):
    code, out = _run(capsys, tmp_path, "identity", "ns")
    assert code == 0
    assert json.loads(out) == {"path": "m/0/0", "public_key": derive_namespace_identity("ns").public_key}


def test_grid_command(qapp, capsys, tmp_path):
    code, out = _run(capsys, tmp_path, "grid", "ns", "--second", "3", "--rows", "2", "--columns", "2")
    assert code == 0
    cells = json.loads(out)
    assert [c["public_key"] for c in cells] == [c.public_key for c in derive_time_scoped_grid("ns", 3, 2, 2)]


def test_blank_namespace_is_an_error(qapp, capsys, tmp_path):
    code, out = _run(capsys, tmp_path, "identity", "  ")
    assert code == 2
    assert out == ""


def test_correlate_from_graph_file(qapp, capsys, tmp_path):
    key = derive_time_scoped_grid("ns", 2, 16, 9)[9 + 4].public_key
    graph = tmp_path / "graph.dot"
    graph.write_text(
        f'digraph {{\n  "a" [pubkey="{key}" memo="grid tag"];\n'
        f'  "b" [pubkey="XYZ=" memo="ns/T+7s/2x3/explicit tag"];\n}}\n',
        encoding="utf-8",
    )
    code, out = _run(capsys, tmp_path, "correlate", "ns", "--duration", "4.5", "--graph-file", str(graph))
    assert code == 0
    points = json.loads(out)
    assert [(p["time"], p["row"], p["column"], p["note"]) for p in points] == [
        (2, 2, 5, "grid tag"),
        (7, 3, 2, "explicit tag"),
    ]


def test_correlate_without_endpoint_prints_nothing_found(qapp, capsys, tmp_path, monkeypatch):
    monkeypatch.delenv(ENDPOINT_ENV_VAR, raising=False)
    code, out = _run(capsys, tmp_path, "correlate", "ns", "--duration", "10")
    assert code == 0
    assert json.loads(out) == []


def test_catalog_from_graph_file(qapp, capsys, tmp_path):
    graph = tmp_path / "catalog.dot"
    graph.write_text('"v" [namespace="clips/one" memo="https://youtu.be/M7lc1UVf-VE"];', encoding="utf-8")
    code, out = _run(capsys, tmp_path, "catalog", "--graph-file", str(graph))
    assert code == 0
    assert json.loads(out) == [
        {"video_id": "M7lc1UVf-VE", "source": "https://youtu.be/M7lc1UVf-VE", "namespace": "clips/one"},
    ]


def test_set_endpoint_persists(qapp, capsys, tmp_path, monkeypatch):
    monkeypatch.delenv(ENDPOINT_ENV_VAR, raising=False)
    code, _ = _run(capsys, tmp_path, "set-endpoint", "wss://store.example.test/abc")
    assert code == 0
    assert load_app_config(str(tmp_path)).endpoint == "wss://store.example.test/abc"


def test_missing_graph_file_fails(qapp, capsys, tmp_path):
    code, _ = _run(capsys, tmp_path, "correlate", "ns", "--duration", "3", "--graph-file", str(tmp_path / "nope"))
    assert code == 1


def test_correlate_through_endpoint_uses_tag_loader(qapp, capsys, tmp_path, monkeypatch):
    key = derive_time_scoped_grid("ns", 1, 16, 9)[9 + 2].public_key
    graph = f'"t" [pubkey="{key}" memo="live tag"];'
    sockets = []

    class ReplyingSocket(FakeSocket):
        def open(self, request):
            super().open(request)
            sockets.append(self)
            message = json.dumps({"type": "graph", "body": {"graph": graph}})
            QTimer.singleShot(0, lambda: self.reply(message))

    monkeypatch.setattr(graph_session, "default_transport", lambda parent: ReplyingSocket(parent))
    code, out = _run(capsys, tmp_path, "--endpoint", "ws://graph.example.test/store",
                     "correlate", "ns", "--duration", "3")
    assert code == 0
    (sock,) = sockets
    assert json.loads(sock.sent[0])["body"]["public_key"] == derive_namespace_identity("ns").public_key
    points = json.loads(out)
    assert [(p["time"], p["row"], p["column"], p["note"]) for p in points] == [(1, 2, 3, "live tag")]
    assert points[0]["id"].startswith("video-")


def test_correlate_blank_namespace_is_an_error(qapp, capsys, tmp_path):
    code, out = _run(capsys, tmp_path, "correlate", " ", "--duration", "3")
    assert code == 2
    assert out == ""
