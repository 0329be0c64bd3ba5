"""
RelayMongoClient - MongoDB client talking to a relay gateway.

Provides a PyMongo-style entry point for processes that can reach the
gateway over HTTP but not MongoDB itself.
"""

from __future__ import annotations

from typing import Any, Literal, Self

import httpx

from ..config import RelaySettings
from ..exceptions import ConfigurationError
from .connection import RelayConnection
from .database import Database

__all__ = ["RelayMongoClient"]


class RelayMongoClient:
    """
    MongoDB client for a relay gateway.

    Example:
        async with RelayMongoClient("https://app.example.com/api/mongo", "secret") as client:
            db = client["myapp"]
            users = await db.users.find({"active": True}).to_list()

    URL and secret default to ``MONGODB_RELAY_URL`` and
    ``MONGODB_RELAY_PASSWORD``.
    """

    __slots__ = ("_connection", "_databases")

    def __init__(
        self,
        url: str | None = None,
        password: str | None = None,
        *,
        protocol: Literal["json", "cbor"] = "json",
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: RelaySettings | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            url: Gateway endpoint URL
            password: Shared secret
            protocol: Body encoding ("json" or "cbor")
            timeout: Default request timeout in seconds
            headers: Extra headers sent with every request
            transport: Custom httpx transport
            settings: Settings used for anything not passed explicitly

        Raises:
            ConfigurationError: If no URL or no secret is configured
        """
        settings = settings or RelaySettings()
        url = url or settings.url
        if not url:
            raise ConfigurationError("Pass a gateway URL explicitly or set MONGODB_RELAY_URL")
        self._connection = RelayConnection(
            url,
            password,
            protocol=protocol,
            timeout=settings.timeout if timeout is None else timeout,
            headers=headers,
            transport=transport,
            settings=settings,
        )
        self._databases: dict[str, Database] = {}

    @property
    def url(self) -> str:
        """Get the gateway URL."""
        return self._connection.url

    @property
    def connection(self) -> RelayConnection:
        """Get the underlying relay connection."""
        return self._connection

    @property
    def is_connected(self) -> bool:
        """Check if the client is connected."""
        return self._connection.is_connected

    async def connect(self) -> Self:
        """Open the HTTP connection. Returns self for chaining."""
        await self._connection.connect()
        return self

    async def close(self) -> None:
        """Close the HTTP connection."""
        await self._connection.close()
        self._databases.clear()

    def db(self, name: str) -> Database:
        """Get a database handle, creating it on first use."""
        if name not in self._databases:
            self._databases[name] = Database(self._connection, self, name)
        return self._databases[name]

    get_database = db

    def __getitem__(self, name: str) -> Database:
        return self.db(name)

    def __getattr__(self, name: str) -> Database:
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")
        return self.db(name)

    async def __aenter__(self) -> Self:
        return await self.connect()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"RelayMongoClient(url={self.url!r})"
