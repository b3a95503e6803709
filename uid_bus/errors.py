# uid_bus/errors.py

# --- Custom Exceptions for Error Handling ---
class UidBusError(Exception):
    """Base exception for all UID bus errors."""
    pass

class ConfigError(UidBusError):
    """Raised when a setting is out of range (negative timeout, bad prefix...)."""
    pass

class UsageError(UidBusError):
    """Raised for command-line usage problems. The CLIs exit with status 1."""
    pass

class BusClosedError(UidBusError):
    """Raised when the line reaches end-of-stream or the port goes away."""
    pass
