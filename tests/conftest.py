import io

import pytest

from ttl_knight.config import is_supported_baud
from ttl_knight.console import Console
from ttl_knight.errors import NotConnected, TransportIOError, UnsupportedBaudRate
from ttl_knight.interpreter import Interpreter
from ttl_knight.script import parse


class RecordingConnection:
    """Stands in for ConnectionManager: records what would hit the wire."""

    def __init__(self, is_open=True, fail_on=None):
        self.is_open = is_open
        self.sent = []
        self.pending_baud = 9600
        self.fail_on = fail_on
        self.closed = False

    def set_baud(self, rate):
        if not is_supported_baud(rate):
            raise UnsupportedBaudRate(rate)
        self.pending_baud = int(rate)
        return self.pending_baud

    def send_line(self, command):
        if not self.is_open:
            raise NotConnected()
        if self.fail_on is not None and command == self.fail_on:
            self.is_open = False
            self.closed = True
            raise TransportIOError("write failed: device gone")
        self.sent.append(command)
        return command + "\r\n"


@pytest.fixture
def out():
    return io.StringIO()


@pytest.fixture
def console(out):
    return Console(stream=out)


@pytest.fixture
def conn():
    return RecordingConnection()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_interp(console, conn, sleeps):
    def _make(text, connection=conn, **kw):
        kw.setdefault("sleep", sleeps.append)
        return Interpreter(parse(text), connection, console, **kw)
    return _make


@pytest.fixture
def run_text(make_interp):
    def _run(text, mode="normal", **kw):
        return make_interp(text, **kw).run(mode)
    return _run
