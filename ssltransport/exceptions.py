"""Transport failures raised by the TLS factory and socket wrappers."""

from typing import Optional


class TransportError(Exception):
    """Base transport failure carrying a type code and the underlying cause."""

    UNKNOWN = 0
    NOT_OPEN = 1
    ALREADY_OPEN = 2
    TIMED_OUT = 3
    END_OF_FILE = 4

    def __init__(self, message: str, type: int = UNKNOWN, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.type = type
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class TransportConfigurationError(TransportError):
    """Neither a key store nor a trust store was configured."""


class SecureContextError(TransportError):
    """Stores could not be loaded or the secure context could not be built."""


class BindError(TransportError):
    """A listening socket could not be created."""

    def __init__(self, port: int, cause: Optional[BaseException] = None):
        super().__init__(f"Could not bind to port {port}", cause=cause)
        self.port = port


class ConnectError(TransportError):
    """A client connection could not be established."""

    def __init__(self, host: str, port: int, cause: Optional[BaseException] = None):
        super().__init__(f"Could not connect to {host} on port {port}", cause=cause)
        self.host = host
        self.port = port
