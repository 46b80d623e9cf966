from fastapi import APIRouter, Depends, Query

from medilocker.api.deps import CurrentPrincipal, get_user_directory
from medilocker.errors import NotFoundError
from medilocker.schemas import PatientSearchResult, RegisterRequest, UserResponse
from medilocker.services.users import UserDirectory

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserResponse)
async def register(
    payload: RegisterRequest,
    principal: CurrentPrincipal,
    users: UserDirectory = Depends(get_user_directory),
):
    """Create or refresh the caller's registry entry after identity-provider sign-in."""
    user = await users.register(
        principal,
        display_name=payload.display_name,
        specialization=payload.specialization,
        condition_tags=payload.condition_tags,
    )
    return UserResponse.model_validate(user)


@router.get("/me", response_model=UserResponse)
async def me(
    principal: CurrentPrincipal,
    users: UserDirectory = Depends(get_user_directory),
):
    user = await users.get(principal.subject_id)
    if user is None:
        raise NotFoundError("You have not registered yet")
    return UserResponse.model_validate(user)


@router.get("/patients/search", response_model=list[PatientSearchResult])
async def search_patients(
    principal: CurrentPrincipal,
    q: str = Query("", description="Name or email fragment (2+ characters)"),
    limit: int = Query(10, ge=1, le=25),
    users: UserDirectory = Depends(get_user_directory),
):
    """Doctors look up patients to address an access request to."""
    patients = await users.search_patients(principal, q, limit=limit)
    return [PatientSearchResult.model_validate(p) for p in patients]
