# uid_bus/responder.py
"""
Device side of the UID bus.

A UidResponder stands in for every device on the line at once: it holds
the list of known UIDs and the set of muted ones, answers probes the way
the devices would answer collectively, and obeys the SETADDR / RESETADDR /
RESETALL control plane.
"""
import logging
import random
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .config import UID_LEN, UID_PREFIX_LEN, BusConfig
from .errors import BusClosedError, UsageError
from .protocol import ControlCommand, matches, parse_control

log = logging.getLogger(__name__)


class CollisionPolicy(Enum):
    EMPTY_LINE = "empty"
    MIXTURE = "mixture"


def generate_collision(uids: Sequence[str], rng: random.Random, max_len: int = 19) -> str:
    """
    Builds a garbage reply out of the colliding UIDs.

    Position i of the result is drawn uniformly from the distinct
    characters the UIDs hold at position i. Stops at max_len or when no
    UID is that long.
    """
    out = []
    for i in range(max_len):
        candidates = sorted({uid[i] for uid in uids if i < len(uid)})
        if not candidates:
            break
        out.append(rng.choice(candidates))
    return "".join(out)


class UidResponder:
    def __init__(self, uids: Iterable[str], config: Optional[BusConfig] = None):
        self.config = config or BusConfig()
        # Duplicates are kept, two devices sharing a UID collide on every probe
        self.uids: List[str] = list(uids)
        self.muted = set()
        self.rng = random.Random(self.config.rng_seed)

        if not self.uids:
            raise UsageError("at least one UID is required")
        for uid in self.uids:
            if len(uid) < UID_PREFIX_LEN:
                raise UsageError(f"UID '{uid}' is shorter than its {UID_PREFIX_LEN}-character prefix")
            if len(uid) != UID_LEN:
                log.warning(f"UID '{uid}' is {len(uid)} characters long, expected {UID_LEN}")

    # --- Control Plane ---

    def set_addr(self, uid: str):
        if uid in self.uids:
            self.muted.add(uid)
            log.debug(f"[muted] {uid}")
        else:
            log.warning(f"tried to mute unknown uid: {uid}")

    def reset_addr(self, uid: str):
        if uid in self.muted:
            self.muted.discard(uid)
            log.info(f"[unmuted] {uid}")
        else:
            log.warning(f"tried to unmute unknown or active uid: {uid}")

    def reset_all(self):
        self.muted.clear()
        log.info("[unmuted all]")

    # --- Data Plane ---

    def matching(self, pattern: str) -> List[str]:
        return [uid for uid in self.uids
                if uid not in self.muted and matches(pattern, uid)]

    def collision_policy(self, matched: Sequence[str]) -> CollisionPolicy:
        mode = self.config.collision_mode
        if mode != "auto":
            return CollisionPolicy(mode)
        prefixes = self.config.empty_collision_prefixes
        if all(uid[:UID_PREFIX_LEN] in prefixes for uid in matched):
            return CollisionPolicy.EMPTY_LINE
        return CollisionPolicy.MIXTURE

    def collision_reply(self, matched: Sequence[str]) -> str:
        if self.collision_policy(matched) is CollisionPolicy.EMPTY_LINE:
            return ""
        return generate_collision(matched, self.rng, self.config.collision_max_len)

    def handle_line(self, line: str) -> Optional[str]:
        """
        Processes one incoming line and returns the reply line, or None
        when the bus stays silent. Control lines never get a reply.
        """
        control = parse_control(line)
        if control is not None:
            command, uid = control
            if command == ControlCommand.SETADDR:
                self.set_addr(uid)
            elif command == ControlCommand.RESETADDR:
                self.reset_addr(uid)
            else:
                self.reset_all()
            return None

        matched = self.matching(line)
        if not matched:
            return None
        if len(matched) == 1:
            return matched[0]
        log.debug(f"collision on {line!r}: {len(matched)} devices")
        return self.collision_reply(matched)

    def serve(self, transport) -> int:
        """Blocking read-eval-reply loop. Returns 0 when the line closes."""
        log.info(f"Responding for {len(self.uids)} device(s).")
        try:
            while True:
                line = transport.read_line(None)
                if line is None:
                    continue
                reply = self.handle_line(line)
                if reply is not None:
                    transport.send(reply)
        except BusClosedError as e:
            log.info(f"Line closed: {e}")
        return 0
