# storefront/data/models/user.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Boolean, UniqueConstraint

from storefront.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, unique=True, index=True)
    # null for OAuth-only accounts
    password_hash = Column(String(255), nullable=True)

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(32), nullable=True)

    role = Column(String(20), nullable=False, default="customer")
    is_email_verified = Column(Boolean, nullable=False, default=False)

    oauth_provider = Column(String(20), nullable=True)
    oauth_provider_id = Column(String(255), nullable=True)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint("oauth_provider", "oauth_provider_id", name="u_user_oauth"),
    )
