"""
Gateway request dispatcher.

Framework-independent request handling: authenticate, parse, resolve the
operation, execute it against the database and build the response. The
FastAPI adapter in ``app.py`` only converts to and from these shapes.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any, NamedTuple

import httpx

from ..config import RelaySettings, resolve_password
from ..exceptions import AuthenticationError, CodecError, ProtocolError
from ..protocol.codec import JSON_CODEC, NDJSON_CONTENT_TYPE, Codec, codec_for
from ..protocol.envelope import Envelope, ErrorInfo, capture, unknown_operation
from ..protocol.operations import FindOptions, OperationName
from .operations import FIND_BODY, OPERATIONS, OperationSpec
from .streaming import RecordStream

logger = logging.getLogger(__name__)

AUTH_HEADER = "bearer"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
ALLOWED_METHODS = ("GET", "POST")


@dataclass
class RelayHttpRequest:
    """
    Incoming HTTP request, independent of the web framework.

    Attributes:
        method: HTTP method
        url: Full request URL including the query string
        headers: Case-insensitive request headers
        body: Raw request body
    """

    method: str
    url: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    def __post_init__(self) -> None:
        self.headers = httpx.Headers(self.headers)

    @property
    def query(self) -> httpx.QueryParams:
        """Parsed query string."""
        return httpx.URL(self.url).params


@dataclass
class RelayHttpResponse:
    """
    Outgoing HTTP response.

    ``body`` is bytes for buffered responses and an async iterator of
    chunks for streamed ones.
    """

    status: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes | AsyncIterator[bytes] = b""

    def __post_init__(self) -> None:
        self.headers = httpx.Headers(self.headers)

    @property
    def is_streaming(self) -> bool:
        """Check if the body is produced incrementally."""
        return not isinstance(self.body, bytes)

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @classmethod
    def text(cls, status: int, message: str) -> "RelayHttpResponse":
        """Plain-text response for rejected requests."""
        return cls(status, {"content-type": TEXT_CONTENT_TYPE}, message.encode("utf-8"))


class _ParsedRequest(NamedTuple):
    operation: str
    collection: str
    codec: Codec
    payload: Any


class RelayGateway:
    """
    Relay gateway bound to one database.

    Usage:
        gateway = RelayGateway(motor_client["app"], password="secret")
        response = await gateway.handle(
            RelayHttpRequest("POST", "http://relay/?coll=users&op=findOne", headers, body)
        )
    """

    def __init__(
        self,
        db: Any,
        password: str | None = None,
        *,
        settings: RelaySettings | None = None,
    ):
        """
        Initialize the gateway.

        Args:
            db: Async database handle; ``db[name]`` must return a collection
            password: Shared secret, defaults to ``MONGODB_RELAY_PASSWORD``
            settings: Settings to read the secret from instead of the environment

        Raises:
            ConfigurationError: If no secret is configured
        """
        self.db = db
        self._password = resolve_password(password, settings).encode("utf-8")
        self.operations: dict[OperationName, OperationSpec] = dict(OPERATIONS)

    def authenticate(self, headers: Mapping[str, str]) -> None:
        """
        Check the ``bearer`` header against the shared secret.

        Raises:
            AuthenticationError: If the header is missing or does not match
        """
        supplied = httpx.Headers(headers).get(AUTH_HEADER)
        if supplied is None or not hmac.compare_digest(supplied.encode("utf-8"), self._password):
            raise AuthenticationError()

    async def handle(self, request: RelayHttpRequest) -> RelayHttpResponse:
        """
        Process one relay request.

        Never raises for client mistakes or operation failures: those become
        4xx responses or ``$error`` envelopes.
        """
        try:
            self.authenticate(request.headers)
        except AuthenticationError as e:
            logger.warning(f"Rejected relay request: {e.message} ({request.method} {httpx.URL(request.url).path})")
            return RelayHttpResponse.text(401, e.message)

        try:
            parsed = self._parse(request)
        except ProtocolError as e:
            logger.warning(f"Malformed relay request: {e.message}")
            return RelayHttpResponse.text(e.code or 400, e.message)

        operation = OperationName.parse(parsed.operation)
        if operation is None:
            logger.warning(f"Unknown relay operation: {parsed.operation}")
            return self._respond(parsed.codec, unknown_operation(parsed.operation))

        spec = self.operations[operation]
        logger.debug(f"Dispatching {operation.value} on {parsed.collection}")

        envelope = await capture(lambda: self._execute(spec, parsed.collection, parsed.payload))
        if envelope.is_error:
            logger.debug(f"{operation.value} on {parsed.collection} failed: {envelope.error.message}")
        elif operation is OperationName.FIND_STREAM:
            return RelayHttpResponse(
                200,
                {"content-type": NDJSON_CONTENT_TYPE, "cache-control": "no-store"},
                RecordStream(envelope.result),
            )
        return self._respond(parsed.codec, envelope.to_wire())

    def _parse(self, request: RelayHttpRequest) -> _ParsedRequest:
        method = request.method.upper()
        if method not in ALLOWED_METHODS:
            raise ProtocolError(f"Method {method} not allowed", code=405)

        params = request.query
        operation = params.get("op")
        collection = params.get("coll")
        if not operation:
            raise ProtocolError("Missing 'op' query parameter")
        if not collection:
            raise ProtocolError("Missing 'coll' query parameter")

        codec = JSON_CODEC
        payload = None
        if method == "POST":
            content_type = request.headers.get("content-type")
            if request.body:
                found = codec_for(content_type)
                if found is None:
                    raise ProtocolError(f"Unsupported content type: {content_type}", code=415)
                codec = found
                try:
                    payload = codec.decode(request.body)
                except CodecError as e:
                    raise ProtocolError(f"Could not decode request body: {e.message}") from e
            else:
                codec = codec_for(content_type) or JSON_CODEC

        return _ParsedRequest(operation, collection, codec, payload)

    async def _execute(self, spec: OperationSpec, name: str, payload: Any) -> Any:
        # The driver validates collection names here
        collection = self.db[name]
        arguments = self._arguments(spec, payload)
        spec.check_arity(arguments)
        return await spec.handler(collection, *arguments)

    @staticmethod
    def _arguments(spec: OperationSpec, payload: Any) -> list[Any]:
        """
        Turn the decoded body into positional handler arguments.

        Raises:
            TypeError: If the body shape does not match the operation
            ValueError: For invalid find modifiers
        """
        if spec.body == FIND_BODY:
            if payload is None:
                return []
            if not isinstance(payload, Mapping):
                raise TypeError(f"{spec.name.value} body must be an object, got {type(payload).__name__}")
            unexpected = set(payload) - {"filter", "opts"}
            if unexpected:
                raise ValueError(f"Unexpected {spec.name.value} body keys: {', '.join(sorted(unexpected))}")
            return [payload.get("filter"), FindOptions.from_wire(payload.get("opts"))]

        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TypeError(f"{spec.name.value} arguments must be an array, got {type(payload).__name__}")
        return list(payload)

    @staticmethod
    def _respond(codec: Codec, data: Any) -> RelayHttpResponse:
        try:
            body = codec.encode(data)
        except CodecError as e:
            logger.error(f"Could not encode relay response: {e.message}")
            body = codec.encode(Envelope.failure(ErrorInfo.from_exception(e)).to_wire())
        return RelayHttpResponse(200, {"content-type": codec.content_type}, body)
