from datetime import datetime, timedelta, timezone

import jwt
import pytest

from talaty_platform.talaty_platform.auth_service.errors import AuthError, AuthErrorKind
from talaty_platform.talaty_platform.auth_service.models import RefreshToken, User
from talaty_platform.talaty_platform.auth_service.tokens import RefreshTokenStore, TokenIssuer


class FakeClock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def issuer(settings, clock):
    return TokenIssuer(settings, clock=clock)


@pytest.fixture
def user(db_session):
    user = User(email="tokens@example.com", password="digest", first_name="Token", last_name="Owner")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def store(db_session):
    return RefreshTokenStore(db_session)


def test_verify_access_returns_user_id(issuer):
    pair = issuer.issue("user-123", email="owner@example.com")
    claims = issuer.verify_access(pair.access_token)
    assert claims.user_id == "user-123"
    assert claims.email == "owner@example.com"
    assert claims.token_type == "access"


def test_access_token_lifetime_matches_settings(issuer, settings):
    pair = issuer.issue("user-123")
    claims = issuer.verify_access(pair.access_token)
    assert claims.expires_at - claims.issued_at == timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def test_access_token_expires_after_ttl(issuer, clock, settings):
    pair = issuer.issue("user-123")
    clock.advance(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES - 1)
    assert issuer.verify_access(pair.access_token).user_id == "user-123"

    clock.advance(minutes=2)
    with pytest.raises(AuthError) as excinfo:
        issuer.verify_access(pair.access_token)
    assert excinfo.value.kind == AuthErrorKind.EXPIRED
    assert excinfo.value.code == "TOKEN_EXPIRED"


def test_refresh_token_outlives_access_token(issuer, clock):
    pair = issuer.issue("user-123")
    clock.advance(days=6)
    assert issuer.verify_refresh(pair.refresh_token).user_id == "user-123"
    clock.advance(days=2)
    with pytest.raises(AuthError) as excinfo:
        issuer.verify_refresh(pair.refresh_token)
    assert excinfo.value.kind == AuthErrorKind.EXPIRED


def test_tampered_signature_is_rejected(issuer):
    pair = issuer.issue("user-123")
    header, payload, signature = pair.access_token.split(".")
    # Swap a middle character; it stays valid base64url but changes the digest
    middle = len(signature) // 2
    replacement = "A" if signature[middle] != "A" else "B"
    forged_signature = signature[:middle] + replacement + signature[middle + 1:]
    forged = ".".join([header, payload, forged_signature])
    with pytest.raises(AuthError) as excinfo:
        issuer.verify_access(forged)
    assert excinfo.value.kind == AuthErrorKind.SIGNATURE_INVALID


def test_token_signed_with_another_secret_is_rejected(issuer, settings):
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": "user-123", "type": "access", "iss": settings.JWT_ISSUER,
         "iat": now, "exp": now + timedelta(minutes=5)},
        "some-other-secret-that-is-long-enough-to-sign",
        algorithm="HS256",
    )
    with pytest.raises(AuthError) as excinfo:
        issuer.verify_access(token)
    assert excinfo.value.kind == AuthErrorKind.SIGNATURE_INVALID


def test_refresh_token_is_not_an_access_token(issuer):
    pair = issuer.issue("user-123")
    with pytest.raises(AuthError) as excinfo:
        issuer.verify_access(pair.refresh_token)
    # Different signing secrets per token type
    assert excinfo.value.kind == AuthErrorKind.SIGNATURE_INVALID


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c", None])
def test_garbage_is_malformed(issuer, token):
    with pytest.raises(AuthError) as excinfo:
        issuer.verify_access(token)
    assert excinfo.value.kind == AuthErrorKind.MALFORMED


def test_missing_claims_are_malformed(issuer, settings):
    token = jwt.encode({"sub": "user-123", "iss": settings.JWT_ISSUER}, settings.JWT_SECRET, algorithm="HS256")
    with pytest.raises(AuthError) as excinfo:
        issuer.verify_access(token)
    assert excinfo.value.kind == AuthErrorKind.MALFORMED


def test_issue_records_refresh_jti(issuer, store, user, db_session):
    pair = issuer.issue(user.id, store=store)
    claims = issuer.verify_refresh(pair.refresh_token, store)
    row = db_session.query(RefreshToken).filter(RefreshToken.jti == claims.jti).one()
    assert row.user_id == user.id
    assert row.revoked is False


def test_rotate_issues_new_pair_and_consumes_old(issuer, store, user):
    first = issuer.issue(user.id, store=store)
    second = issuer.rotate(first.refresh_token, store)

    assert second.refresh_token != first.refresh_token
    assert issuer.verify_access(second.access_token).user_id == user.id
    assert issuer.verify_refresh(second.refresh_token, store).user_id == user.id

    with pytest.raises(AuthError) as excinfo:
        issuer.verify_refresh(first.refresh_token, store)
    assert excinfo.value.kind == AuthErrorKind.REVOKED


def test_replayed_refresh_token_is_revoked(issuer, store, user):
    pair = issuer.issue(user.id, store=store)
    issuer.rotate(pair.refresh_token, store)
    with pytest.raises(AuthError) as excinfo:
        issuer.rotate(pair.refresh_token, store)
    assert excinfo.value.kind == AuthErrorKind.REVOKED
    assert excinfo.value.code == "TOKEN_REVOKED"


def test_unrecorded_refresh_token_cannot_rotate(issuer, store):
    pair = issuer.issue("ghost-user")
    with pytest.raises(AuthError) as excinfo:
        issuer.rotate(pair.refresh_token, store)
    assert excinfo.value.kind == AuthErrorKind.REVOKED


def test_revoke_all_ends_every_session(issuer, store, user):
    pairs = [issuer.issue(user.id, store=store) for _ in range(3)]
    assert store.revoke_all(user.id) == 3
    for pair in pairs:
        with pytest.raises(AuthError):
            issuer.rotate(pair.refresh_token, store)


def test_revoke_single_token(issuer, store, user):
    kept = issuer.issue(user.id, store=store)
    dropped = issuer.issue(user.id, store=store)
    issuer.revoke(dropped.refresh_token, store)
    assert store.is_revoked(issuer.verify_refresh(kept.refresh_token).jti) is False
    with pytest.raises(AuthError):
        issuer.verify_refresh(dropped.refresh_token, store)
