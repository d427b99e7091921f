"""Profile API routes."""

from fastapi import APIRouter, HTTPException, status

from src.api.deps import CurrentUser
from src.schemas.profile import PublicProfile, StudentProfile, StudentProfileUpdate
from src.services.profile_service import ProfileService

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get(
    "/me",
    response_model=StudentProfile,
    summary="Get current user's profile",
    description="Returns the authenticated user's merged profile, creating the row if missing.",
)
async def get_my_profile(user: CurrentUser) -> StudentProfile:
    """Get the authenticated user's profile.

    Args:
        user: The authenticated user context.

    Returns:
        StudentProfile: The merged identity and profile data.
    """
    service = ProfileService()
    return await service.get_student_profile(user)


@router.patch(
    "/me",
    response_model=StudentProfile,
    summary="Update current user's profile",
    description="Partially updates the authenticated user's profile. Omitted fields are left unchanged.",
)
@router.put(
    "/me",
    response_model=StudentProfile,
    include_in_schema=False,
)
async def update_my_profile(
    data: StudentProfileUpdate,
    user: CurrentUser,
) -> StudentProfile:
    """Update the authenticated user's profile.

    Args:
        data: Fields to update.
        user: The authenticated user context.

    Returns:
        StudentProfile: The updated profile view.

    Raises:
        NotFoundError: 404 if the profile row does not exist.
    """
    service = ProfileService()
    return await service.update_profile(user, data)


@router.get(
    "/{username}",
    response_model=PublicProfile,
    summary="Get a public profile",
    description="Returns the public fields of a profile by username.",
)
async def get_public_profile(username: str) -> PublicProfile:
    """Get a profile by username.

    Args:
        username: The profile's username.

    Returns:
        PublicProfile: Public profile fields.

    Raises:
        HTTPException: 404 if no profile has this username.
    """
    service = ProfileService()
    profile = await service.get_public_profile(username)

    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found",
        )

    return PublicProfile(**profile)
