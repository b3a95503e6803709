# uid_bus/config.py
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import ConfigError

# --- UID Layout ---
UID_PREFIX_LEN = 2
UID_BODY_LEN = 17
UID_LEN = UID_PREFIX_LEN + UID_BODY_LEN
MAXLEN = UID_BODY_LEN

# Fixed enumeration order used by the scanner
ALPHABET = (
    "0123456789"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    "-_"
)

# --- Scanner Timing ---
DEFAULT_TIMEOUT_MS = 200

# --- Collision Emulation ---
COLLISION_MAX_LEN = 19
# Vendors whose devices pull the line into a clean empty reply on collision
EMPTY_COLLISION_PREFIXES = ("CB",)
COLLISION_MODES = ("auto", "empty", "mixture")

# --- Serial Port Configuration ---
SERIAL_PORT = None  # None means stdio
BAUD_RATE = 115200
#BAUD_RATE = 9600

# --- Logging ---
LOG_LEVEL = "INFO"
LOG_FILENAME = None


@dataclass(frozen=True)
class BusConfig:
    """Per-run settings shared by the scanner, the responder and the transports."""
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    rng_seed: Optional[int] = None
    collision_mode: str = "auto"
    empty_collision_prefixes: Tuple[str, ...] = EMPTY_COLLISION_PREFIXES
    collision_max_len: int = COLLISION_MAX_LEN
    max_len: int = MAXLEN
    port: Optional[str] = SERIAL_PORT
    baud_rate: int = BAUD_RATE

    def __post_init__(self):
        if self.timeout_ms < 0:
            raise ConfigError(f"timeout must be a non-negative integer, got {self.timeout_ms}")
        if self.collision_mode not in COLLISION_MODES:
            raise ConfigError(f"unknown collision mode: {self.collision_mode!r}")
        if self.max_len < 0:
            raise ConfigError(f"max_len must be non-negative, got {self.max_len}")

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0
