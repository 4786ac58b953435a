from fastapi import APIRouter, Response
from pydantic import BaseModel, Field

from chatline.core.modules.session.models import SESSION_TTL_SECONDS, AuthToken
from chatline.web.deps import AUTH_COOKIE_NAME, AppDep, AuthTokenDep
from chatline.web.openapi import ErrorResponse

router = APIRouter(tags=["auth"])


class LoginRequest(BaseModel):
    """Authentication request."""

    username: str = Field(..., description="Username for authentication")
    password: str = Field(..., description="Password for authentication")


class RegisterRequest(BaseModel):
    """Account registration request."""

    username: str = Field(..., min_length=1, description="Username, at least 3 characters")
    password: str = Field(..., min_length=1, description="Password, at least 6 characters")
    email: str | None = Field(None, description="Optional contact email")


class LoginResponse(BaseModel):
    """Authentication response."""

    token: str = Field(..., description="Authentication token for subsequent requests")


def _set_auth_cookie(response: Response, token: AuthToken) -> None:
    # EventSource cannot send an Authorization header, so the realtime stream relies on this cookie
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=False,  # Set to True in production with HTTPS
        max_age=SESSION_TTL_SECONDS,
    )


@router.post(
    "/auth/register",
    summary="Register account",
    description="Create a new account and receive an authentication token.",
    operation_id="register",
    status_code=201,
    responses={
        201: {"description": "Account created"},
        400: {"model": ErrorResponse, "description": "Invalid username or password, or username taken"},
    },
)
async def register(register_data: RegisterRequest, app: AppDep, response: Response) -> LoginResponse:
    token = await app.register(register_data.username, register_data.password, register_data.email)
    _set_auth_cookie(response, token)
    return LoginResponse(token=token)


@router.post(
    "/auth/login",
    summary="Authenticate user",
    description="Authenticate with username and password to receive an authentication token.",
    operation_id="login",
    responses={
        200: {"description": "Successfully authenticated"},
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
    },
)
async def login(login_data: LoginRequest, app: AppDep, response: Response) -> LoginResponse:
    """Authenticate user and create session."""
    token = await app.login(login_data.username, login_data.password)
    _set_auth_cookie(response, token)
    return LoginResponse(token=token)


@router.post(
    "/auth/logout",
    summary="End session",
    description="Invalidate the current authentication session.",
    operation_id="logout",
    status_code=204,
    responses={
        204: {"description": "Successfully logged out"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def logout(app: AppDep, auth_token: AuthTokenDep, response: Response) -> None:
    await app.logout(auth_token)
    response.delete_cookie(AUTH_COOKIE_NAME)
