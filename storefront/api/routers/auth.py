# storefront/api/routers/auth.py
from authlib.integrations.base_client.errors import OAuthError
from authlib.integrations.starlette_client import OAuth
from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from storefront.api.deps import get_auth_service, ok
from storefront.domain.errors import AuthenticationError, NotFoundError
from storefront.domain.schemas import AuthResult, Envelope, LoginIn, RefreshIn, RegisterIn, TokenPair
from storefront.services.auth_service import AuthService
from storefront.utils.settings import (
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    FACEBOOK_CLIENT_ID,
    FACEBOOK_CLIENT_SECRET,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

oauth = OAuth()
if GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET:
    oauth.register(
        name="google",
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_id=GOOGLE_CLIENT_ID,
        client_secret=GOOGLE_CLIENT_SECRET,
        client_kwargs={"scope": "openid email profile"},
    )
if FACEBOOK_CLIENT_ID and FACEBOOK_CLIENT_SECRET:
    oauth.register(
        name="facebook",
        client_id=FACEBOOK_CLIENT_ID,
        client_secret=FACEBOOK_CLIENT_SECRET,
        authorize_url="https://www.facebook.com/v18.0/dialog/oauth",
        access_token_url="https://graph.facebook.com/v18.0/oauth/access_token",
        api_base_url="https://graph.facebook.com/v18.0/",
        client_kwargs={"scope": "email public_profile"},
    )


@router.post("/register", response_model=Envelope[AuthResult], status_code=201)
def register(payload: RegisterIn, svc: AuthService = Depends(get_auth_service)):
    return ok(
        svc.register(
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
        )
    )


@router.post("/login", response_model=Envelope[AuthResult])
def login(payload: LoginIn, svc: AuthService = Depends(get_auth_service)):
    return ok(svc.login(payload.email, payload.password))


@router.post("/refresh", response_model=Envelope[TokenPair])
def refresh(payload: RefreshIn, svc: AuthService = Depends(get_auth_service)):
    return ok(svc.refresh(payload.refresh_token))


@router.post("/logout", response_model=Envelope[dict])
def logout(payload: RefreshIn, svc: AuthService = Depends(get_auth_service)):
    svc.logout(payload.refresh_token)
    return ok({"message": "Logged out successfully"})


def _client(provider: str):
    client = oauth.create_client(provider)
    if client is None:
        raise NotFoundError(f"OAuth provider {provider} is not configured")
    return client


async def _identity(provider: str, client, token: dict) -> dict:
    if provider == "google":
        info = token.get("userinfo") or await client.userinfo(token=token)
        return {
            "provider_id": info["sub"],
            "email": info.get("email"),
            "first_name": info.get("given_name"),
            "last_name": info.get("family_name"),
        }

    resp = await client.get("me", params={"fields": "id,email,first_name,last_name"}, token=token)
    info = resp.json()
    return {
        "provider_id": info["id"],
        "email": info.get("email"),
        "first_name": info.get("first_name"),
        "last_name": info.get("last_name"),
    }


@router.get("/{provider}")
async def oauth_start(provider: str, request: Request):
    client = _client(provider)
    redirect_uri = request.url_for("oauth_callback", provider=provider)
    return await client.authorize_redirect(request, str(redirect_uri))


@router.get("/{provider}/callback", response_model=Envelope[AuthResult], name="oauth_callback")
async def oauth_callback(provider: str, request: Request, svc: AuthService = Depends(get_auth_service)):
    client = _client(provider)
    try:
        token = await client.authorize_access_token(request)
        identity = await _identity(provider, client, token)
    except OAuthError as e:
        logger.warning(f"OAuth {provider} callback failed: {e.error}")
        raise AuthenticationError("OAuth sign-in failed")

    if not identity["email"]:
        raise AuthenticationError("OAuth provider did not return an email address")

    # the session and the database are sync
    result = await run_in_threadpool(svc.oauth_login, provider, **identity)
    return ok(result)
