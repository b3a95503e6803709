"""
UID Bus Discovery Package.

"""

from .config import (
    ALPHABET,
    MAXLEN,
    UID_LEN,
    UID_PREFIX_LEN,
    BusConfig,
)
from .errors import (
    UidBusError,
    BusClosedError,
    ConfigError,
    UsageError,
)
from .protocol import (
    Reply,
    ReplyKind,
    ControlCommand,
    classify_reply,
    encode_probe,
    matches,
)
from .responder import (
    CollisionPolicy,
    UidResponder,
    generate_collision,
)
from .scanner import (
    PrefixResult,
    ScanResult,
    SearchFrame,
    UidScanner,
)
from .transport import (
    LineTransport,
    LoopbackTransport,
    SerialLineTransport,
    StreamLineTransport,
    open_transport,
)
from .logging_config import setup_logging
