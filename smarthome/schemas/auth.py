"""Auth request/response schemas."""

from typing import Optional

from pydantic import BaseModel


class CredentialsRequest(BaseModel):
    mobile_number: str = ""
    password: str = ""


class AuthResultResponse(BaseModel):
    message: str
    redirect: str


class SessionResponse(BaseModel):
    loading: bool
    authenticated: bool
    user_id: Optional[str] = None
    email: Optional[str] = None
