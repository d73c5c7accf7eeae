# storefront/services/user_service.py
from typing import Any, Dict

from sqlalchemy.orm import Session

from storefront.domain.errors import NotFoundError
from storefront.domain.schemas import UserListOut, UserOut
from storefront.repos.user_repo import UserRepo
from storefront.services.token_service import TokenService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "phone")


class UserService:
    def __init__(self, db: Session, token_service: TokenService):
        self.repo = UserRepo(db)
        self.tokens = token_service

    def get_user(self, user_id: str) -> UserOut:
        user = self.repo.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return UserOut.model_validate(user)

    def get_profile(self, user_id: str) -> UserOut:
        return self.get_user(user_id)

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> UserOut:
        user = self.repo.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")

        for name in PROFILE_FIELDS:
            if name in fields:
                setattr(user, name, fields[name])

        user = self.repo.save(user)
        logger.info(f"Profile of user {user.id} updated")
        return UserOut.model_validate(user)

    def delete_account(self, user_id: str) -> None:
        user = self.repo.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")

        self.tokens.revoke_all(user.id)
        self.repo.delete_user(user)
        logger.info(f"User {user_id} deleted")

    def list_users(self, page: int = 1, limit: int = 20) -> UserListOut:
        users, total = self.repo.list_users(limit=limit, offset=(page - 1) * limit)
        return UserListOut(users=[UserOut.model_validate(u) for u in users], total=total)
