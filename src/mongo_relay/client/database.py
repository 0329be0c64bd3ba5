"""
Database - handle for a relayed MongoDB database.

The gateway is bound to a single database, so the name only scopes
collection handles on the client side.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .collection import Collection

if TYPE_CHECKING:
    from .client import RelayMongoClient
    from .connection import RelayConnection

__all__ = ["Database"]


class Database:
    """
    Relayed database.

    Collections can be accessed using attribute access, subscript notation
    or ``collection()``; handles are cached by name.

    Example:
        db = client["myapp"]
        users = db.users
        orders = db["orders"]
    """

    __slots__ = ("_connection", "_client", "_name", "_collections")

    def __init__(self, connection: RelayConnection, client: RelayMongoClient, name: str) -> None:
        self._connection = connection
        self._client = client
        self._name = name
        self._collections: dict[str, Collection] = {}

    @property
    def name(self) -> str:
        """Get the database name."""
        return self._name

    @property
    def client(self) -> RelayMongoClient:
        """Get the parent client."""
        return self._client

    def collection(self, name: str) -> Collection:
        """
        Get a collection handle, creating it on first use.

        Raises:
            ValueError: If the name is empty
        """
        if name not in self._collections:
            self._collections[name] = Collection(self._connection, self, name)
        return self._collections[name]

    get_collection = collection

    def __getitem__(self, name: str) -> Collection:
        return self.collection(name)

    def __getattr__(self, name: str) -> Collection:
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")
        return self.collection(name)

    def __repr__(self) -> str:
        return f"Database(name={self._name!r})"
