"""
Token issuance, verification, rotation and revocation.
"""

from types import SimpleNamespace

import fakeredis
import jwt
import pytest

from storefront.domain.errors import (
    DependencyError,
    InvalidTokenError,
    TokenExpiredError,
    TokenRevokedError,
)
from storefront.services.token_service import TokenService


@pytest.fixture
def alice():
    return SimpleNamespace(id="user-alice", email="alice@example.com", role="customer")


@pytest.fixture
def users(alice):
    return {alice.id: alice}


def claims_of(token: str) -> dict:
    return jwt.decode(token, options={"verify_signature": False})


# ============================================================================
# Issue / verify
# ============================================================================


class TestIssue:

    def test_access_token_claims(self, token_service, alice):
        claims = token_service.verify_access_token(token_service.issue_access_token(alice))
        assert claims["sub"] == alice.id
        assert claims["email"] == alice.email
        assert claims["role"] == "customer"
        assert claims["type"] == "access"
        assert claims["exp"] - claims["iat"] == 900

    def test_refresh_token_is_recorded_with_ttl(self, token_service, redis_client, alice):
        token = token_service.issue_refresh_token(alice)
        claims = token_service.verify_refresh_token(token)

        key = f"refresh_token:{alice.id}:{claims['jti']}"
        assert redis_client.exists(key)
        assert 0 < redis_client.ttl(key) <= 3600
        assert token_service.is_refresh_token_active(token)

    def test_each_issue_gets_a_new_token_id(self, token_service, alice):
        first = claims_of(token_service.issue_refresh_token(alice))
        second = claims_of(token_service.issue_refresh_token(alice))
        assert first["jti"] != second["jti"]
        assert first["fam"] != second["fam"]

    def test_token_pair(self, token_service, alice):
        pair = token_service.issue_token_pair(alice)
        assert pair.token_type == "Bearer"
        assert pair.expires_in == 900
        assert token_service.verify_access_token(pair.access_token)["sub"] == alice.id

    def test_issue_fails_when_store_is_down(self, alice):
        server = fakeredis.FakeServer()
        server.connected = False
        service = TokenService(fakeredis.FakeRedis(server=server, decode_responses=True))
        with pytest.raises(DependencyError):
            service.issue_refresh_token(alice)


class TestVerify:

    def test_expired_access_token(self, redis_client, alice):
        service = TokenService(redis_client, access_ttl=-10)
        token = service.issue_access_token(alice)
        with pytest.raises(TokenExpiredError) as exc:
            service.verify_access_token(token)
        assert exc.value.message == "Invalid or expired token"

    def test_garbage_token(self, token_service):
        with pytest.raises(InvalidTokenError):
            token_service.verify_access_token("not.a.token")

    def test_access_token_is_not_a_refresh_token(self, token_service, alice):
        with pytest.raises(InvalidTokenError):
            token_service.verify_refresh_token(token_service.issue_access_token(alice))

    def test_wrong_type_with_right_secret(self, token_service, alice):
        token = jwt.encode(
            {"sub": alice.id, "type": "refresh", "iat": 1, "exp": 4102444800},
            "test-access-secret-0123456789abcdef",
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            token_service.verify_access_token(token)

    def test_foreign_signature(self, token_service, alice):
        other = TokenService(token_service.redis, access_secret="someone-else-entirely-0123456789abcdef")
        forged = other.issue_access_token(alice)
        with pytest.raises(InvalidTokenError):
            token_service.verify_access_token(forged)


# ============================================================================
# Rotation
# ============================================================================


class TestRotate:

    def test_rotation_returns_new_pair(self, token_service, alice, users):
        old = token_service.issue_refresh_token(alice)
        pair = token_service.rotate_refresh_token(old, users.get)

        assert pair.refresh_token != old
        assert token_service.is_refresh_token_active(pair.refresh_token)
        assert not token_service.is_refresh_token_active(old)

    def test_rotated_token_cannot_be_used_again(self, token_service, alice, users):
        old = token_service.issue_refresh_token(alice)
        token_service.rotate_refresh_token(old, users.get)

        with pytest.raises(TokenRevokedError):
            token_service.rotate_refresh_token(old, users.get)

    def test_family_is_preserved(self, token_service, alice, users):
        old = token_service.issue_refresh_token(alice)
        pair = token_service.rotate_refresh_token(old, users.get)
        assert claims_of(pair.refresh_token)["fam"] == claims_of(old)["fam"]

    def test_reuse_revokes_whole_family(self, token_service, alice, users):
        first = token_service.issue_refresh_token(alice)
        second = token_service.rotate_refresh_token(first, users.get).refresh_token
        unrelated = token_service.issue_refresh_token(alice)

        with pytest.raises(TokenRevokedError):
            token_service.rotate_refresh_token(first, users.get)

        assert not token_service.is_refresh_token_active(second)
        assert token_service.is_refresh_token_active(unrelated)

    def test_reuse_keeps_family_when_disabled(self, redis_client, alice, users):
        service = TokenService(redis_client, revoke_family_on_reuse=False)
        first = service.issue_refresh_token(alice)
        second = service.rotate_refresh_token(first, users.get).refresh_token

        with pytest.raises(TokenRevokedError):
            service.rotate_refresh_token(first, users.get)
        assert service.is_refresh_token_active(second)

    def test_rotation_for_deleted_user(self, token_service, alice):
        old = token_service.issue_refresh_token(alice)
        with pytest.raises(TokenRevokedError):
            token_service.rotate_refresh_token(old, lambda user_id: None)

    def test_rotation_rejects_access_token(self, token_service, alice, users):
        with pytest.raises(InvalidTokenError):
            token_service.rotate_refresh_token(token_service.issue_access_token(alice), users.get)


# ============================================================================
# Revocation
# ============================================================================


class TestRevoke:

    def test_revoke_is_idempotent(self, token_service, alice):
        token = token_service.issue_refresh_token(alice)
        token_service.revoke(token)
        token_service.revoke(token)
        assert not token_service.is_refresh_token_active(token)

    def test_revoke_garbage_is_noop(self, token_service):
        token_service.revoke("definitely-not-a-jwt")

    def test_revoke_expired_token(self, redis_client, alice):
        service = TokenService(redis_client)
        token = jwt.encode(
            {"sub": alice.id, "jti": "gone", "type": "refresh", "iat": 1, "exp": 2},
            service.refresh_secret,
            algorithm="HS256",
        )
        service.revoke(token)

    def test_revoke_all_only_touches_one_user(self, token_service, alice):
        bob = SimpleNamespace(id="user-bob", email="bob@example.com", role="customer")
        alice_tokens = [token_service.issue_refresh_token(alice) for _ in range(3)]
        bob_token = token_service.issue_refresh_token(bob)

        assert token_service.revoke_all(alice.id) == 3
        assert not any(token_service.is_refresh_token_active(t) for t in alice_tokens)
        assert token_service.is_refresh_token_active(bob_token)

    def test_revoke_all_with_no_tokens(self, token_service):
        assert token_service.revoke_all("nobody") == 0

    def test_store_outage_fails_closed(self, alice):
        server = fakeredis.FakeServer()
        service = TokenService(fakeredis.FakeRedis(server=server, decode_responses=True))
        token = service.issue_refresh_token(alice)
        assert service.is_refresh_token_active(token)

        server.connected = False
        assert not service.is_refresh_token_active(token)
        with pytest.raises(TokenRevokedError):
            service.rotate_refresh_token(token, lambda user_id: alice)

    def test_revoke_during_outage_does_not_raise(self, alice):
        server = fakeredis.FakeServer()
        service = TokenService(fakeredis.FakeRedis(server=server, decode_responses=True))
        token = service.issue_refresh_token(alice)

        server.connected = False
        service.revoke(token)

        server.connected = True
        assert service.is_refresh_token_active(token)
