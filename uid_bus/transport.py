# uid_bus/transport.py
"""
Line transports for the UID bus.

Every transport moves '\\n' terminated text lines and offers the same three
calls: send(line) writes and flushes, read_line(timeout) returns the next
line or None when nothing arrived in time, and reset_input() throws away
anything left over from an earlier exchange. End-of-stream is reported
as BusClosedError.

- StreamLineTransport: a pair of binary streams, normally stdin/stdout
- SerialLineTransport: a pyserial port or URL (socket://, rfc2217://, ...)
- LoopbackTransport: an in-process responder, for simulation and tests
"""
import logging
import os
import select
import sys
import time
from collections import deque
from typing import List, Optional

import serial

from .config import BAUD_RATE, BusConfig
from .errors import BusClosedError

log = logging.getLogger(__name__)

NEWLINE = b"\n"
READ_CHUNK = 4096


def _decode_line(raw: bytes) -> str:
    # Strip the terminator and tolerate CRLF terminals
    if raw.endswith(NEWLINE):
        raw = raw[:-1]
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")

def _encode_line(line: str) -> bytes:
    return line.encode("utf-8") + NEWLINE


class LineTransport:
    """Base class. Subclasses implement send() and read_line()."""

    def open(self):
        pass

    def close(self):
        pass

    # Context manager methods for 'with' statement
    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def send(self, line: str):
        raise NotImplementedError

    def read_line(self, timeout: Optional[float] = None) -> Optional[str]:
        raise NotImplementedError

    def reset_input(self):
        pass


class StreamLineTransport(LineTransport):
    """
    Line framing over a readable and a writable binary stream.

    Reads go straight to the file descriptor so that select() and the
    internal buffer never disagree about what has been consumed.
    """

    def __init__(self, rfile, wfile, name: str = "stream"):
        self.rfile = rfile
        self.wfile = wfile
        self.name = name
        self._fd = rfile.fileno()
        self._buf = bytearray()
        self._eof = False

    @classmethod
    def stdio(cls) -> "StreamLineTransport":
        return cls(sys.stdin.buffer, sys.stdout.buffer, name="stdio")

    def send(self, line: str):
        try:
            self.wfile.write(_encode_line(line))
            self.wfile.flush()
        except (BrokenPipeError, ValueError) as e:
            raise BusClosedError(f"{self.name}: cannot write, peer is gone") from e
        log.debug(f"TX > {line!r}")

    def _pop_line(self) -> Optional[str]:
        idx = self._buf.find(NEWLINE)
        if idx < 0:
            if self._eof and self._buf:
                # Unterminated last line before EOF
                raw = bytes(self._buf)
                self._buf.clear()
                return _decode_line(raw)
            return None
        raw = bytes(self._buf[:idx + 1])
        del self._buf[:idx + 1]
        return _decode_line(raw)

    def _fill(self, wait: Optional[float]) -> bool:
        """Reads whatever is available within wait seconds. False on timeout."""
        ready, _, _ = select.select([self._fd], [], [], wait)
        if not ready:
            return False
        chunk = os.read(self._fd, READ_CHUNK)
        if chunk:
            self._buf += chunk
        else:
            self._eof = True
        return True

    def read_line(self, timeout: Optional[float] = None) -> Optional[str]:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            line = self._pop_line()
            if line is not None:
                log.debug(f"RX < {line!r}")
                return line
            if self._eof:
                raise BusClosedError(f"{self.name}: end of stream")
            wait = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not self._fill(wait):
                return None

    def reset_input(self):
        # Late replies to a probe that already timed out
        while not self._eof and self._fill(0):
            pass
        if self._buf:
            log.debug(f"Discarding stale input: {bytes(self._buf)!r}")
            self._buf.clear()


class SerialLineTransport(LineTransport):
    """Line framing over a pyserial port. The port may be a device path or a pyserial URL."""

    def __init__(self, port: str, baud: int = BAUD_RATE):
        self.port = port
        self.baud = baud
        self.ser = None
        self._buf = bytearray()

    def open(self):
        """Opens the serial port."""
        if self.ser is None or not self.ser.is_open:
            try:
                self.ser = serial.serial_for_url(self.port, baudrate=self.baud, timeout=None)
            except serial.SerialException as e:
                raise BusClosedError(f"Could not open port '{self.port}': {e}") from e
        log.info(f"Serial port {self.port} opened at {self.baud} baud.")

    def close(self):
        """Closes the serial port."""
        if self.ser and self.ser.is_open:
            self.ser.close()
            log.info(f"Serial port {self.port} closed.")

    def send(self, line: str):
        try:
            self.ser.write(_encode_line(line))
            self.ser.flush()
        except serial.SerialException as e:
            raise BusClosedError(f"{self.port}: write failed: {e}") from e
        log.debug(f"TX > {line!r}")

    def read_line(self, timeout: Optional[float] = None) -> Optional[str]:
        self.ser.timeout = timeout
        try:
            chunk = self.ser.read_until(NEWLINE)
        except serial.SerialException as e:
            raise BusClosedError(f"{self.port}: {e}") from e
        self._buf += chunk
        if not self._buf.endswith(NEWLINE):
            # Nothing, or a partial line that will be completed later
            return None
        line = _decode_line(bytes(self._buf))
        self._buf.clear()
        log.debug(f"RX < {line!r}")
        return line

    def reset_input(self):
        try:
            self.ser.reset_input_buffer()
        except serial.SerialException as e:
            raise BusClosedError(f"{self.port}: {e}") from e
        self._buf.clear()


class LoopbackTransport(LineTransport):
    """
    Connects the scanner straight to an in-process UidResponder.

    Replies are queued synchronously, so a probe's answer is ready as soon
    as send() returns. Every line sent is kept in `sent` for inspection.
    """

    def __init__(self, responder):
        self.responder = responder
        self.sent: List[str] = []
        self._pending = deque()
        self._closed = False

    def close(self):
        self._closed = True

    def send(self, line: str):
        if self._closed:
            raise BusClosedError("loopback: closed")
        self.sent.append(line)
        log.debug(f"TX > {line!r}")
        reply = self.responder.handle_line(line)
        if reply is not None:
            self._pending.append(reply)

    def read_line(self, timeout: Optional[float] = None) -> Optional[str]:
        if self._pending:
            line = self._pending.popleft()
            log.debug(f"RX < {line!r}")
            return line
        if self._closed:
            raise BusClosedError("loopback: closed")
        return None

    def reset_input(self):
        self._pending.clear()


def open_transport(config: BusConfig) -> LineTransport:
    """Serial port when one is configured, stdin/stdout otherwise."""
    if config.port:
        return SerialLineTransport(config.port, config.baud_rate)
    return StreamLineTransport.stdio()
