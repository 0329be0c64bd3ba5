"""
MongoDB Relay - MongoDB operations over HTTP.

Lets a process without direct network access to MongoDB use it through a
gateway that holds the real connection.

Supports:
- Type-preserving extended JSON and CBOR codecs (dates, ObjectIds, bytes)
- A ``$result`` / ``$error`` envelope for buffered operations
- Newline-delimited record streaming for large finds
- A FastAPI gateway guarded by a shared-secret ``bearer`` header
- A PyMongo-style async client (client, database, collection, cursor)
"""

from .client import (
    Collection,
    Cursor,
    Database,
    RelayConnection,
    RelayMongoClient,
    RequestOptions,
)
from .config import RelaySettings
from .exceptions import (
    AuthenticationError,
    CodecError,
    ConfigurationError,
    ConnectionError,
    OperationError,
    ProtocolError,
    RelayError,
    StreamError,
    TransportError,
)
from .gateway import (
    RecordStream,
    RelayGateway,
    RelayHttpRequest,
    RelayHttpResponse,
    create_app,
    create_relay_router,
)
from .protocol import (
    Envelope,
    ErrorInfo,
    FindOptions,
    OperationName,
    RelayRequest,
    ejson,
)
from .types import (
    BulkWriteResult,
    DeleteResult,
    InsertManyResult,
    InsertOneResult,
    UpdateResult,
)

__version__ = "0.1.0"
__all__ = [
    # Client
    "RelayMongoClient",
    "RelayConnection",
    "RequestOptions",
    "Database",
    "Collection",
    "Cursor",
    # Gateway
    "RelayGateway",
    "RelayHttpRequest",
    "RelayHttpResponse",
    "RecordStream",
    "create_app",
    "create_relay_router",
    # Protocol
    "ejson",
    "Envelope",
    "ErrorInfo",
    "FindOptions",
    "OperationName",
    "RelayRequest",
    # Config
    "RelaySettings",
    # Results
    "InsertOneResult",
    "InsertManyResult",
    "UpdateResult",
    "DeleteResult",
    "BulkWriteResult",
    # Exceptions
    "RelayError",
    "ConfigurationError",
    "CodecError",
    "AuthenticationError",
    "ProtocolError",
    "OperationError",
    "TransportError",
    "ConnectionError",
    "StreamError",
]
