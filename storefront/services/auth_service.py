# storefront/services/auth_service.py
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.user import UserModel
from storefront.domain.errors import (
    AlreadyExistsError,
    InvalidCredentialsError,
    InvalidCurrentPasswordError,
    NotFoundError,
    OAuthOnlyAccountError,
)
from storefront.domain.schemas import AuthResult, TokenPair, UserOut
from storefront.repos.user_repo import UserRepo
from storefront.services.password_hasher import PasswordHasher
from storefront.services.token_service import TokenService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(self, db: Session, token_service: TokenService, hasher: PasswordHasher):
        self.repo = UserRepo(db)
        self.tokens = token_service
        self.hasher = hasher

    def register(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> AuthResult:
        email = normalize_email(email)
        if self.repo.get_by_email(email):
            raise AlreadyExistsError()

        user = UserModel(
            email=email,
            password_hash=self.hasher.hash(password),
            first_name=first_name,
            last_name=last_name,
            phone=phone,
        )
        try:
            user = self.repo.create_user(user)
        except IntegrityError:
            # concurrent registration with the same email
            self.repo.rollback()
            raise AlreadyExistsError()

        logger.info(f"User {user.id} registered")
        return self._result(user)

    def login(self, email: str, password: str) -> AuthResult:
        user = self.repo.get_by_email(normalize_email(email))

        # unknown email, OAuth-only account and wrong password look the same
        if not user or not user.password_hash or not self.hasher.verify(user.password_hash, password):
            logger.info("Failed login attempt")
            raise InvalidCredentialsError()

        if self.hasher.needs_rehash(user.password_hash):
            user.password_hash = self.hasher.hash(password)

        user = self.repo.touch_last_login(user)
        logger.info(f"User {user.id} logged in")
        return self._result(user)

    def oauth_login(
        self,
        provider: str,
        provider_id: str,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> AuthResult:
        email = normalize_email(email)

        user = self.repo.get_by_oauth(provider, provider_id)
        if user is None:
            user = self.repo.get_by_email(email)
            if user is not None:
                user.oauth_provider = provider
                user.oauth_provider_id = provider_id
                user = self.repo.save(user)
                logger.info(f"Linked {provider} account to user {user.id}")
            else:
                user = self.repo.create_user(
                    UserModel(
                        email=email,
                        password_hash=None,
                        first_name=first_name,
                        last_name=last_name,
                        oauth_provider=provider,
                        oauth_provider_id=provider_id,
                        # the identity provider has verified the address
                        is_email_verified=True,
                    )
                )
                logger.info(f"Created user {user.id} from {provider} sign-in")

        user = self.repo.touch_last_login(user)
        return self._result(user)

    def refresh(self, refresh_token: str) -> TokenPair:
        return self.tokens.rotate_refresh_token(refresh_token, self.repo.get_user)

    def logout(self, refresh_token: str) -> None:
        if not self.tokens.is_refresh_token_active(refresh_token):
            logger.info("Logout with an inactive refresh token")
            return
        self.tokens.revoke(refresh_token)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        user = self.repo.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        if not user.password_hash:
            raise OAuthOnlyAccountError()
        if not self.hasher.verify(user.password_hash, current_password):
            raise InvalidCurrentPasswordError()

        user.password_hash = self.hasher.hash(new_password)
        self.repo.save(user)

        # every session must re-authenticate
        revoked = self.tokens.revoke_all(user.id)
        logger.info(f"Password changed for user {user.id}, {revoked} sessions revoked")

    def _result(self, user: UserModel) -> AuthResult:
        return AuthResult(
            user=UserOut.model_validate(user),
            tokens=self.tokens.issue_token_pair(user),
        )
