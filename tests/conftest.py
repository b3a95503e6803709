import pytest

from uid_bus import BusConfig, LoopbackTransport, UidResponder, UidScanner
from uid_bus.errors import BusClosedError
from uid_bus.transport import LineTransport

EOF = object()


class ScriptedTransport(LineTransport):
    """
    Plays back canned replies. `script` maps a sent line to the replies it
    gets, one per send, in order. Unscripted or exhausted lines stay silent.
    The EOF marker closes the line.
    """

    def __init__(self, script=None):
        self.script = {line: list(replies) for line, replies in (script or {}).items()}
        self.sent = []
        self._reply = None

    def send(self, line):
        self.sent.append(line)
        replies = self.script.get(line)
        self._reply = replies.pop(0) if replies else None

    def read_line(self, timeout=None):
        reply, self._reply = self._reply, None
        if reply is EOF:
            raise BusClosedError("scripted end of stream")
        return reply


class Bus:
    def __init__(self, uids, **config):
        self.config = BusConfig(**config)
        self.responder = UidResponder(uids, self.config)
        self.transport = LoopbackTransport(self.responder)
        self.scanner = UidScanner(self.transport, self.config)

    @property
    def sent(self):
        return self.transport.sent

    def probes(self):
        return [line for line in self.sent if ":" not in line and line != "RESETALL"]


@pytest.fixture
def make_bus():
    def _make(uids, **config):
        config.setdefault("rng_seed", 1234)
        return Bus(uids, **config)
    return _make


@pytest.fixture
def scripted():
    return ScriptedTransport
