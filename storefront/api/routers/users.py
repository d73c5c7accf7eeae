# storefront/api/routers/users.py
from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_auth_service, get_current_user, get_user_service, ok, require_admin
from storefront.domain.schemas import ChangePasswordIn, Envelope, UpdateProfileIn, UserListOut, UserOut
from storefront.services.auth_service import AuthService
from storefront.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=Envelope[UserOut])
def get_me(user: dict = Depends(get_current_user), svc: UserService = Depends(get_user_service)):
    return ok(svc.get_profile(user["sub"]))


@router.put("/me", response_model=Envelope[UserOut])
def update_me(
    payload: UpdateProfileIn,
    user: dict = Depends(get_current_user),
    svc: UserService = Depends(get_user_service),
):
    return ok(svc.update_profile(user["sub"], payload.model_dump(exclude_unset=True)))


@router.delete("/me", response_model=Envelope[dict])
def delete_me(user: dict = Depends(get_current_user), svc: UserService = Depends(get_user_service)):
    svc.delete_account(user["sub"])
    return ok({"message": "Account deleted"})


@router.post("/me/change-password", response_model=Envelope[dict])
def change_password(
    payload: ChangePasswordIn,
    user: dict = Depends(get_current_user),
    svc: AuthService = Depends(get_auth_service),
):
    svc.change_password(user["sub"], payload.current_password, payload.new_password)
    return ok({"message": "Password changed, please log in again"})


@router.get("/", response_model=Envelope[UserListOut])
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: dict = Depends(require_admin),
    svc: UserService = Depends(get_user_service),
):
    return ok(svc.list_users(page=page, limit=limit))


@router.get("/{user_id}", response_model=Envelope[UserOut])
def get_user(user_id: str, admin: dict = Depends(require_admin), svc: UserService = Depends(get_user_service)):
    return ok(svc.get_user(user_id))
