"""
HTTP connection to a relay gateway.

Each operation is an independent POST carrying ``coll`` and ``op`` in the
query string and the encoded arguments in the body. Buffered operations
answer with a result envelope; ``findStream`` answers with
newline-delimited records.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Self

import httpx

from ..config import RelaySettings, resolve_password
from ..exceptions import ConnectionError, ProtocolError, StreamError, TransportError
from ..protocol import ejson
from ..protocol.codec import CBOR_CODEC, JSON_CODEC, NDJSON_CONTENT_TYPE, codec_for, media_type
from ..protocol.envelope import unwrap
from ..protocol.operations import RelayRequest

AUTH_HEADER = "bearer"


@dataclass(frozen=True)
class RequestOptions:
    """
    Per-call transport overrides.

    Attributes:
        headers: Extra headers sent with this call only
        timeout: Timeout in seconds for this call only
    """

    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float | None = None


class RelayConnection:
    """
    HTTP connection to a relay gateway.

    Usage:
        async with RelayConnection("https://relay.example.com/api/mongo", "secret") as conn:
            docs = await conn.execute(RelayRequest.find("users", {"active": True}))
    """

    def __init__(
        self,
        url: str,
        password: str | None = None,
        *,
        protocol: Literal["json", "cbor"] = "json",
        timeout: float = 30.0,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: RelaySettings | None = None,
    ):
        """
        Initialize relay connection.

        Args:
            url: Gateway endpoint URL
            password: Shared secret, defaults to ``MONGODB_RELAY_PASSWORD``
            protocol: Body encoding ("json" for extended JSON or "cbor")
            timeout: Default request timeout in seconds
            headers: Extra headers sent with every request
            transport: Custom httpx transport (e.g. ``httpx.ASGITransport``)
            settings: Settings to read the secret from instead of the environment

        Raises:
            ConfigurationError: If no secret is configured
            ValueError: For an unknown protocol
        """
        if protocol not in ("json", "cbor"):
            raise ValueError(f"Invalid protocol '{protocol}'. Must be 'json' or 'cbor'.")

        self.url = url
        self.protocol: Literal["json", "cbor"] = protocol
        self.codec = CBOR_CODEC if protocol == "cbor" else JSON_CODEC
        self.timeout = timeout
        self._password = resolve_password(password, settings)
        self._extra_headers = dict(headers or {})
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is open."""
        return self._connected

    @property
    def headers(self) -> dict[str, str]:
        """Headers sent with every request."""
        return {
            **self._extra_headers,
            "Content-Type": self.codec.content_type,
            "Accept": f"{self.codec.content_type}, {NDJSON_CONTENT_TYPE}",
            AUTH_HEADER: self._password,
        }

    async def connect(self) -> Self:
        """Open the HTTP client. Returns self for fluent API."""
        if self._connected:
            return self

        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        self._connected = True
        return self

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        self._connected = False

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.connect()
        assert self._client is not None
        return self._client

    def _request_kwargs(self, request: RelayRequest, options: RequestOptions | None) -> dict[str, Any]:
        headers = self.headers
        if not request.operation.is_cacheable:
            headers["Cache-Control"] = "no-store"
        kwargs: dict[str, Any] = {"params": request.query_params()}
        if options is not None:
            headers.update(options.headers)
            if options.timeout is not None:
                kwargs["timeout"] = options.timeout
        kwargs["headers"] = headers
        kwargs["content"] = self.codec.encode(request.arguments)
        return kwargs

    @staticmethod
    def _check_status(response: httpx.Response) -> None:
        if not response.is_success:
            text = response.text
            raise TransportError(
                f"HTTP error: {response.status_code} - {text}",
                status_code=response.status_code,
                body=text,
            )

    def _decode_envelope(self, response: httpx.Response) -> Any:
        codec = codec_for(response.headers.get("content-type"))
        if codec is None:
            raise ProtocolError(f"Unexpected response content type: {response.headers.get('content-type')}")
        return unwrap(codec.decode(response.content))

    async def execute(self, request: RelayRequest, options: RequestOptions | None = None) -> Any:
        """
        Run a buffered operation.

        Args:
            request: Operation to relay
            options: Per-call header and timeout overrides

        Returns:
            The ``$result`` value

        Raises:
            ConnectionError: If the gateway cannot be reached
            TransportError: On a non-2xx response
            OperationError: If the operation failed on the gateway
        """
        client = await self._ensure_client()
        try:
            response = await client.post(self.url, **self._request_kwargs(request, options))
        except httpx.RequestError as e:
            raise ConnectionError(f"Request failed: {e}") from e

        self._check_status(response)
        return self._decode_envelope(response)

    async def stream(self, request: RelayRequest, options: RequestOptions | None = None) -> AsyncGenerator[Any, None]:
        """
        Run a streamed operation, yielding records as they arrive.

        Raises:
            ConnectionError: If the gateway cannot be reached
            TransportError: On a non-2xx response
            OperationError: If the gateway answered with an ``$error`` envelope
            StreamError: If the stream ends before the last record is complete
        """
        client = await self._ensure_client()
        started = False
        try:
            async with client.stream("POST", self.url, **self._request_kwargs(request, options)) as response:
                started = True
                if not response.is_success or media_type(response.headers.get("content-type")) != NDJSON_CONTENT_TYPE:
                    await response.aread()
                    self._check_status(response)
                    self._decode_envelope(response)
                    raise ProtocolError("Expected a record stream")

                buffer = b""
                async for chunk in response.aiter_bytes():
                    buffer += chunk
                    while b"\n" in buffer:
                        line, buffer = buffer.split(b"\n", 1)
                        if line.strip():
                            yield ejson.decode(line)
                if buffer.strip():
                    raise StreamError("Record stream ended inside a record")
        except httpx.RequestError as e:
            if started:
                raise StreamError(f"Record stream interrupted: {e}") from e
            raise ConnectionError(f"Request failed: {e}") from e

    # Context manager protocol

    async def __aenter__(self) -> Self:
        return await self.connect()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
