# storefront/api/deps.py
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from storefront.api.container import Container
from storefront.data.database import get_db
from storefront.domain.errors import AuthenticationError, AuthorizationError
from storefront.services.auth_service import AuthService
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService
from storefront.services.user_service import UserService

bearer = HTTPBearer(auto_error=False)


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_auth_service(db: Session = Depends(get_db), c: Container = Depends(get_container)) -> AuthService:
    return AuthService(db, c.token_service, c.hasher)


def get_user_service(db: Session = Depends(get_db), c: Container = Depends(get_container)) -> UserService:
    return UserService(db, c.token_service)


def get_cart_service(db: Session = Depends(get_db), c: Container = Depends(get_container)) -> CartService:
    return CartService(db, product_client=c.product_client, lock_service=c.lock_service)


def get_order_service(db: Session = Depends(get_db), c: Container = Depends(get_container)) -> OrderService:
    return OrderService(db, product_client=c.product_client, publisher=c.publisher)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    c: Container = Depends(get_container),
) -> Dict[str, Any]:
    """Access-token claims of the caller: sub, email, role."""
    if credentials is None:
        raise AuthenticationError("No token provided")
    return c.token_service.verify_access_token(credentials.credentials)


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise AuthorizationError("Admin access required")
    return user


def ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}
