"""
MongoDB Relay Gateway.

Server side of the relay: authenticates requests, dispatches operations
against an async MongoDB database and streams find results.
"""

from .app import create_app, create_relay_router, to_response
from .dispatcher import RelayGateway, RelayHttpRequest, RelayHttpResponse
from .operations import OPERATIONS, OperationSpec, build_find_cursor
from .streaming import RecordStream

__all__ = [
    "RelayGateway",
    "RelayHttpRequest",
    "RelayHttpResponse",
    "OperationSpec",
    "OPERATIONS",
    "build_find_cursor",
    "RecordStream",
    "create_app",
    "create_relay_router",
    "to_response",
]
