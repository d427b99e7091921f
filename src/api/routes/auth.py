"""Authentication API routes."""

from fastapi import APIRouter, HTTPException, status

from src.api.deps import CurrentUser
from src.api.middleware.error_handler import ValidationError
from src.schemas.auth import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
    SignupRequest,
    SignupResponse,
)
from src.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register new student",
    description="Create a new account with email and password and provision its profile.",
)
async def signup(data: SignupRequest) -> SignupResponse:
    """Register a new student.

    Creates the identity in Supabase Auth, then provisions the profile row.
    Registration succeeds even when provisioning does not.

    Args:
        data: Signup request with email, password, and optional names.

    Returns:
        SignupResponse: User ID, email, verification and profile status.

    Raises:
        HTTPException: 400 if signup fails (e.g., email already exists).
    """
    service = AuthService()

    try:
        result = await service.signup(data)
        return SignupResponse(**result)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login user",
    description="Authenticate user with email and password. Returns JWT access token.",
)
async def login(data: LoginRequest) -> LoginResponse:
    """Login user with email and password.

    Args:
        data: Login request with email and password.

    Returns:
        LoginResponse: Access token, refresh token, and user information.

    Raises:
        HTTPException: 401 if login fails (invalid credentials or email not verified).
    """
    service = AuthService()

    try:
        result = await service.login(
            email=data.email,
            password=data.password,
        )
        return LoginResponse(**result)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        ) from e


@router.post(
    "/logout",
    summary="Logout user",
    description="Logout the current user and revoke their sessions.",
)
async def logout(user: CurrentUser) -> dict[str, str]:
    """Logout the authenticated user.

    Args:
        user: The authenticated user context.

    Returns:
        dict: Logout confirmation message.
    """
    service = AuthService()
    return await service.logout(user.access_token)


@router.get(
    "/me",
    summary="Get current user",
    description="Get the authenticated user's information from JWT token.",
)
async def get_current_user_info(user: CurrentUser) -> dict[str, str | None]:
    """Get current authenticated user information.

    Args:
        user: The authenticated user context.

    Returns:
        dict: User ID, email, and role.
    """
    return {
        "user_id": str(user.user_id),
        "email": user.email,
        "role": user.role,
    }


@router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    summary="Request password reset",
    description="Send password reset email to user's email address.",
)
async def forgot_password(data: ForgotPasswordRequest) -> ForgotPasswordResponse:
    """Request password reset email.

    For security, always returns success even if email doesn't exist.

    Args:
        data: Request with email address.

    Returns:
        ForgotPasswordResponse: Status message and email sent confirmation.
    """
    service = AuthService()
    result = await service.request_password_reset(email=data.email)
    return ForgotPasswordResponse(**result)


@router.post(
    "/refresh",
    response_model=RefreshTokenResponse,
    summary="Refresh access token",
    description="Refresh access token using refresh token.",
)
async def refresh_token(data: RefreshTokenRequest) -> RefreshTokenResponse:
    """Refresh access token using refresh token.

    Args:
        data: Refresh request with refresh token.

    Returns:
        RefreshTokenResponse: New access token, refresh token, and expiration.

    Raises:
        HTTPException: 401 if refresh fails (invalid/expired refresh token).
    """
    service = AuthService()

    try:
        result = await service.refresh_token(refresh_token=data.refresh_token)
        return RefreshTokenResponse(**result)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        ) from e
