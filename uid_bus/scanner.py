# uid_bus/scanner.py
"""
Scanner side of the UID bus.

For each vendor prefix the scanner walks the tree of UID bodies depth
first. A node is probed with prefix + reversed(body): silence prunes the
subtree, a collision opens the node's 64 children, and a UID reply is
confirmed by probing again and by addressing the full UID, then muted
with SETADDR and recorded. After a confirmed UID the node is probed
once more in case another device was hidden behind the one just muted.

The walk keeps an explicit stack of (body, next_index) frames, one per
open level, so its depth never exceeds the body length.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .config import ALPHABET, UID_PREFIX_LEN, BusConfig
from .errors import BusClosedError, ConfigError
from .protocol import (
    Reply,
    ReplyKind,
    classify_reply,
    encode_probe,
    resetaddr_line,
    resetall_line,
    setaddr_line,
)

log = logging.getLogger(__name__)


@dataclass
class SearchFrame:
    body: str
    next_index: int = 0


@dataclass
class PrefixResult:
    prefix: str
    found: List[str] = field(default_factory=list)
    probes: int = 0
    collisions: int = 0
    unresolved: List[str] = field(default_factory=list)
    closed: bool = False


@dataclass
class ScanResult:
    runs: List[PrefixResult] = field(default_factory=list)

    @property
    def found(self) -> List[str]:
        return [uid for run in self.runs for uid in run.found]

    @property
    def probes(self) -> int:
        return sum(run.probes for run in self.runs)

    @property
    def collisions(self) -> int:
        return sum(run.collisions for run in self.runs)

    @property
    def closed(self) -> bool:
        return any(run.closed for run in self.runs)


def _describe(reply: Reply) -> str:
    return reply.uid if reply.kind == ReplyKind.UID else reply.kind.name.lower()


def validate_prefix(prefix: str) -> str:
    if len(prefix) != UID_PREFIX_LEN:
        raise ConfigError(f"prefix must be {UID_PREFIX_LEN} characters, got '{prefix}'")
    return prefix


class UidScanner:
    def __init__(self, transport, config: Optional[BusConfig] = None, alphabet: str = ALPHABET):
        self.transport = transport
        self.config = config or BusConfig()
        self.alphabet = alphabet
        self.uid_len = UID_PREFIX_LEN + self.config.max_len
        self._tried = set()

    # --- Control Plane ---

    def reset_all(self):
        self.transport.send(resetall_line())

    def mute(self, uid: str):
        self.transport.send(setaddr_line(uid))

    def unmute(self, uid: str):
        self.transport.send(resetaddr_line(uid))

    # --- Probing ---

    def probe(self, prefix: str, body: str, result: PrefixResult) -> Reply:
        """Sends one probe and classifies whatever comes back within the timeout."""
        pattern = encode_probe(prefix, body)
        self.transport.reset_input()
        self.transport.send(pattern)
        result.probes += 1
        raw = self.transport.read_line(self.config.timeout_s)
        reply = classify_reply(raw, pattern, self.uid_len)
        if reply.is_collision:
            log.debug(f"COLLISION: {pattern} ({raw!r})")
        return reply

    def confirm(self, prefix: str, body: str, first: Reply, result: PrefixResult) -> Reply:
        """
        Re-probes a candidate. Anything but an identical second answer is a
        collision. A candidate that survives is then addressed by its full
        UID, which only the device owning it can answer.
        """
        pattern = encode_probe(prefix, body)
        second = self.probe(prefix, body, result)
        if second != first:
            log.warning(f"Confirmation mismatch on '{pattern}': "
                        f"got '{first.uid}' then '{_describe(second)}'")
            return Reply.collision()

        uid = first.uid
        if pattern != uid:
            exact = self.probe(uid[:UID_PREFIX_LEN], uid[UID_PREFIX_LEN:][::-1], result)
            if exact != first:
                log.warning(f"Candidate '{uid}' did not answer its own address "
                            f"(got '{_describe(exact)}'), treating as collision")
                return Reply.collision()
        return first

    def _accept(self, uid: str, result: PrefixResult):
        if uid in result.found:
            log.debug(f"Already have {uid}, not muting again")
            return
        log.info(f"FOUND:     {uid}")
        result.found.append(uid)
        self.mute(uid)

    def examine(self, prefix: str, body: str, result: PrefixResult) -> bool:
        """
        Probes one node of the search tree and deals with the reply.
        Returns True when the node's children have to be searched.
        """
        reply = self.probe(prefix, body, result)
        if reply.is_silence:
            return False
        if reply.kind == ReplyKind.UID:
            reply = self.confirm(prefix, body, reply, result)
        if reply.is_collision:
            result.collisions += 1
            return True

        uid = reply.uid
        self._accept(uid, result)

        # Revisit once, another device may have been hidden behind this one.
        # Whatever still answers is left to the children.
        again = self.probe(prefix, body, result)
        if again.is_silence:
            return False
        if again.kind == ReplyKind.UID and again.uid == uid:
            log.warning(f"{uid} still answers after SETADDR")
        result.collisions += 1
        return True

    def _visit(self, prefix: str, body: str, result: PrefixResult) -> bool:
        pattern = encode_probe(prefix, body)
        if pattern in self._tried:
            return False
        self._tried.add(pattern)

        descend = self.examine(prefix, body, result)
        if descend and len(body) >= self.config.max_len:
            log.warning(f"Unresolvable collision at '{pattern}': duplicate UIDs on the bus?")
            result.unresolved.append(pattern)
            return False
        return descend

    # --- Enumeration ---

    def scan_prefix(self, prefix: str) -> PrefixResult:
        """Enumerates every device carrying the given prefix."""
        validate_prefix(prefix)
        result = PrefixResult(prefix)
        self._tried = set()
        log.info(f"Scanning prefix '{prefix}' (timeout {self.config.timeout_ms} ms)...")

        try:
            self.reset_all()
            if not self._visit(prefix, "", result):
                return result

            stack = [SearchFrame("")]
            while stack:
                frame = stack[-1]
                if frame.next_index >= len(self.alphabet):
                    stack.pop()
                    continue
                child = frame.body + self.alphabet[frame.next_index]
                frame.next_index += 1
                if self._visit(prefix, child, result):
                    stack.append(SearchFrame(child))
        except BusClosedError as e:
            log.warning(f"Line closed while scanning '{prefix}': {e}")
            result.closed = True
        finally:
            log.info(f"Prefix '{prefix}': {len(result.found)} found, "
                     f"{result.probes} probes, {result.collisions} collisions")
        return result

    def scan(self, prefixes: Iterable[str]) -> ScanResult:
        """Scans each distinct prefix in turn. Stops early if the line closes."""
        ordered = []
        for prefix in prefixes:
            validate_prefix(prefix)
            if prefix in ordered:
                log.warning(f"Prefix '{prefix}' given more than once, scanning it once")
                continue
            ordered.append(prefix)
        if not ordered:
            raise ConfigError("at least one prefix is required")

        scan = ScanResult()
        for prefix in ordered:
            run = self.scan_prefix(prefix)
            scan.runs.append(run)
            if run.closed:
                break
        return scan
