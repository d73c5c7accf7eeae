# storefront/repos/user_repo.py
from datetime import datetime, timezone

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from storefront.data.models.user import UserModel


class UserRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str) -> UserModel | None:
        return self.db.get(UserModel, user_id)

    def get_by_email(self, email: str) -> UserModel | None:
        return self.db.execute(
            select(UserModel).where(UserModel.email == email)
        ).scalar_one_or_none()

    def get_by_oauth(self, provider: str, provider_id: str) -> UserModel | None:
        return self.db.execute(
            select(UserModel).where(
                UserModel.oauth_provider == provider,
                UserModel.oauth_provider_id == provider_id,
            )
        ).scalar_one_or_none()

    def create_user(self, user: UserModel) -> UserModel:
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def save(self, user: UserModel) -> UserModel:
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def touch_last_login(self, user: UserModel) -> UserModel:
        user.last_login_at = datetime.now(timezone.utc)
        return self.save(user)

    def delete_user(self, user: UserModel) -> None:
        self.db.delete(user)
        self.db.commit()

    def list_users(self, limit: int, offset: int) -> tuple[list[UserModel], int]:
        total = self.db.execute(select(func.count()).select_from(UserModel)).scalar_one()
        users = self.db.execute(
            select(UserModel).order_by(UserModel.created_at.desc()).limit(limit).offset(offset)
        ).scalars().all()
        return list(users), total

    def rollback(self):
        self.db.rollback()
