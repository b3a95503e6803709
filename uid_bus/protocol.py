# uid_bus/protocol.py
"""
Wire protocol for the UID discovery bus.

A probe is the vendor prefix followed by the reversed scanner body, so a
probe carries the first two characters of a UID (left anchor) and a suffix
of that UID (right anchor) back to back. Everything in between is a
wildcard. Control lines mute and unmute devices and never get a reply.

Replies come back as one text line per probe: a full UID, an empty line
or a garbage mixture on collision, or nothing at all.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple

from .config import UID_LEN, UID_PREFIX_LEN

# --- Control Lines (case-sensitive, line-anchored) ---
SETADDR = "SETADDR:"
RESETADDR = "RESETADDR:"
RESETALL = "RESETALL"


class ControlCommand(IntEnum):
    SETADDR = 0x01
    RESETADDR = 0x02
    RESETALL = 0x03


class ReplyKind(IntEnum):
    SILENCE = 0x00
    UID = 0x01
    COLLISION = 0x02


@dataclass(frozen=True)
class Reply:
    kind: ReplyKind
    uid: Optional[str] = None

    @classmethod
    def silence(cls) -> "Reply":
        return cls(ReplyKind.SILENCE)

    @classmethod
    def collision(cls) -> "Reply":
        return cls(ReplyKind.COLLISION)

    @classmethod
    def found(cls, uid: str) -> "Reply":
        return cls(ReplyKind.UID, uid)

    @property
    def is_silence(self) -> bool:
        return self.kind == ReplyKind.SILENCE

    @property
    def is_collision(self) -> bool:
        return self.kind == ReplyKind.COLLISION


def matches(pattern: str, uid: str, anchor_len: int = UID_PREFIX_LEN) -> bool:
    """
    Checks whether a probe pattern selects a UID.

    The first min(anchor_len, len(pattern)) characters must equal the start
    of the UID, the rest of the pattern must equal the end of the UID.
    An empty pattern matches nothing.
    """
    if not pattern:
        return False
    n = len(pattern)
    if n > len(uid):
        return False

    left = min(anchor_len, n)
    right = n - left
    if pattern[:left] != uid[:left]:
        return False
    return right == 0 or pattern[left:] == uid[len(uid) - right:]


def encode_probe(prefix: str, body: str) -> str:
    """Builds the wire pattern. The body is kept in natural order and reversed here."""
    return prefix + body[::-1]


def setaddr_line(uid: str) -> str:
    return SETADDR + uid

def resetaddr_line(uid: str) -> str:
    return RESETADDR + uid

def resetall_line() -> str:
    return RESETALL


def parse_control(line: str) -> Optional[Tuple[ControlCommand, Optional[str]]]:
    """Returns (command, argument) for a control line, None for a probe."""
    if line.startswith(SETADDR):
        return ControlCommand.SETADDR, line[len(SETADDR):]
    if line.startswith(RESETADDR):
        return ControlCommand.RESETADDR, line[len(RESETADDR):]
    if line == RESETALL:
        return ControlCommand.RESETALL, None
    return None


def classify_reply(line: Optional[str], pattern: str, uid_len: int = UID_LEN,
                   anchor_len: int = UID_PREFIX_LEN) -> Reply:
    """
    Turns a raw reply line into Silence, Collision or a UID candidate.

    None (timeout) is silence. An empty line is the explicit collision
    marker. Anything that is not uid_len long, or that could not have been
    selected by the probe that triggered it, is a collision too.
    """
    if line is None:
        return Reply.silence()
    if line == "" or len(line) != uid_len:
        return Reply.collision()
    # The tail of a genuine answer is the reversed body we put on the wire
    if not matches(pattern, line, anchor_len):
        return Reply.collision()
    return Reply.found(line)
