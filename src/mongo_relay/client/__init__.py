"""
MongoDB Relay Client.

PyMongo-style facade (client, database, collection, cursor) whose
operations are relayed to a gateway over HTTP.
"""

from .client import RelayMongoClient
from .collection import Collection, wire_options
from .connection import RelayConnection, RequestOptions
from .cursor import Cursor
from .database import Database

__all__ = [
    "RelayMongoClient",
    "RelayConnection",
    "RequestOptions",
    "Database",
    "Collection",
    "Cursor",
    "wire_options",
]
