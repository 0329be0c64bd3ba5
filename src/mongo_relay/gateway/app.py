"""
FastAPI adapter for the relay gateway.

Mounts ``RelayGateway.handle`` on a route accepting GET and POST and maps
its responses onto Starlette responses; record streams become chunked
``StreamingResponse`` bodies.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import StreamingResponse

from ..config import RelaySettings
from .dispatcher import ALLOWED_METHODS, RelayGateway, RelayHttpRequest, RelayHttpResponse
from .streaming import RecordStream


async def _chunks(body: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    # Closes the driver cursor when the client disconnects early
    if isinstance(body, RecordStream):
        async with body:
            async for chunk in body:
                yield chunk
    else:
        async for chunk in body:
            yield chunk


def to_response(response: RelayHttpResponse) -> Response:
    """Convert a gateway response into a Starlette response."""
    headers = dict(response.headers)
    if response.is_streaming:
        return StreamingResponse(_chunks(response.body), status_code=response.status, headers=headers)
    return Response(content=response.body, status_code=response.status, headers=headers)


def create_relay_router(gateway: RelayGateway, path: str = "/") -> APIRouter:
    """
    Build a router exposing the gateway at ``path``.

    Args:
        gateway: Configured gateway
        path: Route path the relay is mounted on

    Returns:
        Router to include in an application
    """
    router = APIRouter(tags=["relay"])

    @router.api_route(path, methods=list(ALLOWED_METHODS), include_in_schema=False)
    async def relay(request: Request) -> Response:
        relay_request = RelayHttpRequest(
            method=request.method,
            url=str(request.url),
            headers=list(request.headers.items()),
            body=await request.body(),
        )
        return to_response(await gateway.handle(relay_request))

    return router


def create_app(
    db: Any,
    password: str | None = None,
    *,
    path: str = "/",
    settings: RelaySettings | None = None,
) -> FastAPI:
    """
    Create a standalone relay application.

    Usage:
        from motor.motor_asyncio import AsyncIOMotorClient

        app = create_app(AsyncIOMotorClient(uri)["app"], password="secret")
        # uvicorn module:app

    Raises:
        ConfigurationError: If no secret is configured
    """
    gateway = RelayGateway(db, password, settings=settings)
    app = FastAPI(title="MongoDB Relay")
    app.state.gateway = gateway
    app.include_router(create_relay_router(gateway, path))
    return app
