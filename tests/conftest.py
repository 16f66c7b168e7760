# tests/conftest.py
from __future__ import annotations

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from typing import List

import pytest
from PyQt5.QtCore import QObject, pyqtSignal


class FakeSocket(QObject):
    """Stands in for QWebSocket: records what the session does, lets tests drive the signals."""

    connected = pyqtSignal()
    disconnected = pyqtSignal()
    textMessageReceived = pyqtSignal(str)
    error = pyqtSignal(int)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.request = None
        self.sent: List[str] = []
        self.closed = False

    def open(self, request) -> None:
        self.request = request

    def sendTextMessage(self, text: str) -> None:
        self.sent.append(text)

    def close(self) -> None:
        self.closed = True

    def errorString(self) -> str:
        return "connection refused"

    # helpers for tests
    def reply(self, text: str) -> None:
        self.connected.emit()
        self.textMessageReceived.emit(text)


@pytest.fixture
def sockets() -> List[FakeSocket]:
    return []


@pytest.fixture
def transport_factory(sockets):
    def factory(parent):
        s = FakeSocket(parent)
        sockets.append(s)
        return s
    return factory
