"""Common API dependencies: per-browser client lookup, identity checks."""

from fastapi import Depends, HTTPException, Request, Response, status

from smarthome.config import settings
from smarthome.exceptions import AuthenticationError, ServiceError
from smarthome.services.client_registry import ClientRegistry, ClientState
from smarthome.utils.security import create_client_token, decode_client_token


def get_registry(request: Request) -> ClientRegistry:
    return request.app.state.registry


def find_client(request: Request) -> ClientState | None:
    """The browser's existing client, or None. Never creates one."""
    token = request.cookies.get(settings.cookie_name)
    return get_registry(request).get(decode_client_token(token) if token else None)


def set_client_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.cookie_name,
        token,
        max_age=settings.cookie_max_age,
        httponly=True,
        samesite="lax",
    )


async def get_client(request: Request, response: Response) -> ClientState:
    """The browser's client, created (and its cookie set) if it has none."""
    client = find_client(request)
    if client is None:
        client = await get_registry(request).create()
        set_client_cookie(response, create_client_token(client.id))
    return client


def require_client(client: ClientState | None = Depends(find_client)) -> ClientState:
    """Require the calling browser to be signed in."""
    if client is None or client.sessions.user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in",
        )
    return client


def service_error(err: ServiceError) -> HTTPException:
    """Map a hosted-service failure to an HTTP error, message untouched."""
    if isinstance(err, AuthenticationError):
        code = status.HTTP_401_UNAUTHORIZED
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail=err.message)
