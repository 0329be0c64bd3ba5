"""
MongoDB Relay Exceptions.

Custom exception hierarchy shared by the gateway and the client.
"""


class RelayError(Exception):
    """Base exception for all relay errors."""

    def __init__(self, message: str, code: int | None = None):
        self.message = message
        self.code = code
        super().__init__(message)


class ConfigurationError(RelayError):
    """Raised when the relay is constructed without required settings."""

    pass


class CodecError(RelayError):
    """Raised when a value cannot be encoded to or decoded from the wire."""

    pass


class AuthenticationError(RelayError):
    """Raised when the bearer credential does not match the shared secret."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code=401)


class ProtocolError(RelayError):
    """Raised for malformed relay requests or envelopes.

    ``code`` carries the HTTP status the gateway answers with.
    """

    def __init__(self, message: str, code: int = 400):
        super().__init__(message, code)


class OperationError(RelayError):
    """Raised when an operation failed on the gateway side.

    Reconstructed on the client from an ``$error`` envelope, keeping the
    remote error name and stack for diagnostics.
    """

    def __init__(self, message: str, name: str = "Error", stack: str | None = None):
        self.name = name
        self.stack = stack
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.name}: {self.message}"


class TransportError(RelayError):
    """Raised by the client when the gateway answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message, code=status_code)


class ConnectionError(RelayError):
    """Raised when the client cannot reach the gateway."""

    pass


class StreamError(RelayError):
    """Raised when a record stream ends before the cursor was exhausted.

    Once the first record has been sent there is no channel left for a
    well-formed error, so a failing stream is simply cut short.
    """

    pass
