"""Authentication API endpoints: sign in, sign up, sign out."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from smarthome.api.deps import find_client, get_client, get_registry, service_error
from smarthome.config import settings
from smarthome.exceptions import ServiceError
from smarthome.schemas.auth import AuthResultResponse, CredentialsRequest, SessionResponse
from smarthome.services.client_registry import ClientState

router = APIRouter(prefix="/auth", tags=["auth"])


def _check_fields(credentials: CredentialsRequest) -> None:
    if not credentials.mobile_number or not credentials.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please fill in all fields",
        )


async def _failed(request: Request, client: ClientState, err: ServiceError) -> HTTPException:
    # A browser that is still anonymous keeps nothing worth holding on to
    if client.sessions.user is None:
        await get_registry(request).discard(client.id)
    return service_error(err)


@router.post("/signin", response_model=AuthResultResponse)
async def sign_in(credentials: CredentialsRequest, request: Request, response: Response):
    """Log in with mobile number and password."""
    _check_fields(credentials)
    client = await get_client(request, response)
    try:
        await client.sessions.sign_in(credentials.mobile_number, credentials.password)
    except ServiceError as e:
        raise await _failed(request, client, e)
    await client.devices.wait_pending()
    return AuthResultResponse(message="Logged in successfully!", redirect="/")


@router.post("/signup", response_model=AuthResultResponse)
async def sign_up(credentials: CredentialsRequest, request: Request, response: Response):
    """Create an account. Succeeds even if the profile record could not be written."""
    _check_fields(credentials)
    client = await get_client(request, response)
    try:
        await client.sessions.sign_up(credentials.mobile_number, credentials.password)
    except ServiceError as e:
        raise await _failed(request, client, e)
    await client.devices.wait_pending()
    return AuthResultResponse(message="Account created successfully!", redirect="/")


@router.post("/signout", response_model=AuthResultResponse)
async def sign_out(
    request: Request,
    response: Response,
    client: ClientState | None = Depends(find_client),
):
    """Sign out and forget this browser's state."""
    if client is not None:
        await client.sessions.sign_out()
        await get_registry(request).discard(client.id)
    response.delete_cookie(settings.cookie_name)
    return AuthResultResponse(message="Logged out", redirect="/auth")


@router.get("/session", response_model=SessionResponse)
async def get_session(client: ClientState | None = Depends(find_client)):
    """Current identity of the calling browser, refreshed if it has expired."""
    if client is None:
        return SessionResponse(loading=False, authenticated=False)
    await client.sessions.refresh()
    user = client.sessions.user
    return SessionResponse(
        loading=client.sessions.loading,
        authenticated=user is not None,
        user_id=user.id if user else None,
        email=user.email if user else None,
    )
