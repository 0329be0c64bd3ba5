"""
Record stream transport.

Turns a driver cursor into newline-delimited records for a chunked HTTP
body. Records are pulled from the cursor only when the transport asks for
the next chunk, so at most one record is held in memory.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any, Self

from ..exceptions import StreamError
from ..protocol import ejson

logger = logging.getLogger(__name__)

RECORD_SEPARATOR = b"\n"


class RecordStream:
    """
    Async iterator of encoded records read from a driver cursor.

    Each chunk is one record encoded with ``encode`` and terminated by a
    newline. If the cursor fails mid-stream the cursor is closed and
    ``StreamError`` is raised; the HTTP server then aborts the response
    without a terminating chunk, which clients detect as truncation.

    Usage:
        stream = RecordStream(collection.find({"status": "active"}))
        async for chunk in stream:
            await send(chunk)
    """

    def __init__(self, cursor: Any, encode: Callable[[Any], bytes] = ejson.encode):
        """
        Initialize record stream.

        Args:
            cursor: Async driver cursor (motor or pymongo asyncio)
            encode: Single-line record encoder
        """
        self._cursor = cursor
        self._encode = encode
        self._iterator: Any = None
        self._records_sent = 0
        self._closed = False

    @property
    def records_sent(self) -> int:
        """Number of records handed to the transport so far."""
        return self._records_sent

    @property
    def is_closed(self) -> bool:
        """Check if the stream has finished or been closed."""
        return self._closed

    async def aclose(self) -> None:
        """Stop pulling records and close the driver cursor."""
        if self._closed:
            return
        self._closed = True
        close = getattr(self._cursor, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    # Async iterator protocol

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        if self._iterator is None:
            self._iterator = self._cursor.__aiter__()

        try:
            record = await self._iterator.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            logger.debug(f"Record stream finished after {self._records_sent} records")
            raise
        except Exception as e:
            logger.error(f"Record stream failed after {self._records_sent} records: {e}")
            await self.aclose()
            raise StreamError(f"Cursor failed after {self._records_sent} records: {e}") from e

        try:
            chunk = self._encode(record) + RECORD_SEPARATOR
        except Exception as e:
            logger.error(f"Could not encode record {self._records_sent}: {e}")
            await self.aclose()
            raise StreamError(f"Could not encode record {self._records_sent}: {e}") from e

        self._records_sent += 1
        return chunk

    # Context manager protocol

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
