"""
Result envelope for buffered relay operations.

Every non-streaming operation answers with exactly one of::

    {"$result": <value>}
    {"$error": {"name": ..., "message": ..., "stack": ...}}

``capture`` is the single place where gateway-side exceptions become wire
data; ``Envelope.unwrap`` turns an ``$error`` back into an exception on the
client.
"""

from __future__ import annotations

import traceback
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..exceptions import OperationError, ProtocolError

RESULT_KEY = "$result"
ERROR_KEY = "$error"


@dataclass
class ErrorInfo:
    """
    Structured description of an operation failure.

    Attributes:
        name: Exception class name (e.g. "DuplicateKeyError")
        message: Error message
        stack: Formatted traceback, if available
    """

    name: str
    message: str
    stack: str | None = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorInfo":
        """Capture name, message and traceback from an exception."""
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return cls(name=type(error).__name__, message=str(error), stack=stack)

    @classmethod
    def from_wire(cls, data: Any) -> "ErrorInfo":
        """
        Parse the ``$error`` payload.

        A bare string (as sent for unknown operations) becomes the message.
        """
        if isinstance(data, str):
            return cls(name="OperationError", message=data)
        if isinstance(data, dict):
            stack = data.get("stack")
            return cls(
                name=str(data.get("name") or "Error"),
                message=str(data.get("message", "Unknown error")),
                stack=str(stack) if stack is not None else None,
            )
        return cls(name="Error", message=repr(data))

    def to_wire(self) -> dict[str, Any]:
        """Convert to the ``$error`` payload."""
        data: dict[str, Any] = {"name": self.name, "message": self.message}
        if self.stack is not None:
            data["stack"] = self.stack
        return data

    def to_exception(self) -> OperationError:
        """Rebuild the remote failure as a local exception."""
        return OperationError(self.message, name=self.name, stack=self.stack)


@dataclass
class Envelope:
    """
    Outcome of a single operation.

    Exactly one of ``result`` / ``error`` is meaningful: ``error`` is None on
    success (``result`` may legitimately be None, e.g. findOne with no match).
    """

    result: Any = None
    error: ErrorInfo | None = None

    @property
    def is_error(self) -> bool:
        """Check if the operation failed."""
        return self.error is not None

    @property
    def is_success(self) -> bool:
        """Check if the operation succeeded."""
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> "Envelope":
        return cls(result=value)

    @classmethod
    def failure(cls, error: ErrorInfo) -> "Envelope":
        return cls(error=error)

    def to_wire(self) -> dict[str, Any]:
        """Convert to the wire mapping, before codec encoding."""
        if self.error is not None:
            return {ERROR_KEY: self.error.to_wire()}
        return {RESULT_KEY: self.result}

    @classmethod
    def from_wire(cls, data: Any) -> "Envelope":
        """
        Parse a decoded envelope.

        Raises:
            ProtocolError: If the payload is not a mapping holding exactly
                one of ``$result`` and ``$error``.
        """
        if not isinstance(data, dict):
            raise ProtocolError(f"Envelope must be an object, got {type(data).__name__}")
        has_result = RESULT_KEY in data
        has_error = ERROR_KEY in data
        if has_result == has_error:
            raise ProtocolError("Envelope must contain exactly one of $result and $error")
        if has_error:
            return cls.failure(ErrorInfo.from_wire(data[ERROR_KEY]))
        return cls.success(data[RESULT_KEY])

    def unwrap(self) -> Any:
        """
        Return the result value.

        Raises:
            OperationError: Reconstructed from the ``$error`` payload.
        """
        if self.error is not None:
            raise self.error.to_exception()
        return self.result


def unknown_operation(name: str) -> dict[str, Any]:
    """Wire envelope answered for an operation name outside the table."""
    return {ERROR_KEY: f"Unknown operation: {name}"}


async def capture(fn: Callable[[], Awaitable[Any]]) -> Envelope:
    """
    Run an operation and wrap its outcome.

    Never raises for operation failures: any ``Exception`` becomes a failure
    envelope. Cancellation still propagates.

    Args:
        fn: Zero-argument coroutine function performing the operation

    Returns:
        Success or failure envelope
    """
    try:
        value = await fn()
    except Exception as e:
        return Envelope.failure(ErrorInfo.from_exception(e))
    return Envelope.success(value)


def unwrap(data: Any) -> Any:
    """Parse a decoded wire envelope and return its value or raise its error."""
    return Envelope.from_wire(data).unwrap()
