import base64
import json
import time
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID

import hausly.auth as auth_module
from hausly.auth import (
    AuthIdentity,
    get_token_identity,
    identity_from_claims,
    load_principal,
    verify_firebase_token,
)
from hausly.errors import ApiError
from hausly.main import app

from conftest import make_user

PROJECT_ID = "hausly-test"
KID = "test-key-1"


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


@pytest.fixture(scope="module")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def certificate_pem(signing_key):
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "securetoken.test")])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(signing_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(signing_key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode()


@pytest.fixture(autouse=True)
def firebase_keys(monkeypatch, certificate_pem):
    async def fake_keys():
        return {KID: certificate_pem}

    monkeypatch.setattr(auth_module, "FIREBASE_PROJECT_ID", PROJECT_ID)
    monkeypatch.setattr(auth_module, "get_google_public_keys", fake_keys)


@pytest.fixture
def make_token(signing_key):
    def _make(kid=KID, alg="RS256", key=None, **overrides):
        now = int(time.time())
        claims = {
            "iss": f"https://securetoken.google.com/{PROJECT_ID}",
            "aud": PROJECT_ID,
            "auth_time": now - 10,
            "iat": now - 10,
            "exp": now + 3600,
            "sub": "cust1",
            "email": "cust1@example.com",
            "email_verified": True,
            **overrides,
        }
        header = _b64(json.dumps({"alg": alg, "kid": kid, "typ": "JWT"}).encode())
        payload = _b64(json.dumps(claims).encode())
        signature = (key or signing_key).sign(
            f"{header}.{payload}".encode(), padding.PKCS1v15(), hashes.SHA256()
        )
        return f"{header}.{payload}.{_b64(signature)}"

    return _make


async def test_valid_token_returns_claims(make_token):
    claims = await verify_firebase_token(make_token())

    assert claims["sub"] == "cust1"
    assert identity_from_claims(claims) == AuthIdentity(
        uid="cust1", email="cust1@example.com", email_verified=True
    )


async def test_expired_token_sets_header(make_token):
    with pytest.raises(ApiError) as exc_info:
        await verify_firebase_token(make_token(exp=int(time.time()) - 5))

    assert exc_info.value.status_code == 401
    assert exc_info.value.code == "TOKEN_EXPIRED"
    assert exc_info.value.headers == {"X-Token-Expired": "true"}


@pytest.mark.parametrize(
    "overrides",
    [
        {"aud": "another-project"},
        {"iss": "https://securetoken.google.com/another-project"},
        {"iat": int(time.time()) + 3600},
    ],
)
async def test_wrong_claims_are_unauthorized(make_token, overrides):
    with pytest.raises(ApiError) as exc_info:
        await verify_firebase_token(make_token(**overrides))

    assert exc_info.value.status_code == 401
    assert exc_info.value.code == "UNAUTHORIZED"


async def test_forged_signature_rejected(make_token):
    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    with pytest.raises(ApiError) as exc_info:
        await verify_firebase_token(make_token(key=other_key))

    assert exc_info.value.message == "Invalid token signature"


async def test_unknown_key_id_rejected(make_token):
    with pytest.raises(ApiError) as exc_info:
        await verify_firebase_token(make_token(kid="rotated-away"))

    assert exc_info.value.status_code == 401


async def test_non_rs256_rejected(make_token):
    with pytest.raises(ApiError) as exc_info:
        await verify_firebase_token(make_token(alg="HS256"))

    assert exc_info.value.message == "Invalid token algorithm"


async def test_malformed_token_rejected():
    with pytest.raises(ApiError) as exc_info:
        await verify_firebase_token("not-a-jwt")

    assert exc_info.value.message == "Invalid token format"


async def test_unconfigured_project_is_server_error(monkeypatch, make_token):
    monkeypatch.setattr(auth_module, "FIREBASE_PROJECT_ID", None)

    with pytest.raises(ApiError) as exc_info:
        await verify_firebase_token(make_token())

    assert exc_info.value.status_code == 500


def test_load_principal_requires_user_record(db):
    with pytest.raises(ApiError) as exc_info:
        load_principal(db, AuthIdentity(uid="nobody"))

    assert exc_info.value.status_code == 404
    assert exc_info.value.code == "USER_NOT_FOUND"


def test_load_principal_uses_stored_role(db):
    make_user(db, "prov1", "provider", name="Pat Provider")

    principal = load_principal(db, AuthIdentity(uid="prov1", email_verified=True))

    assert principal.role == "provider"
    assert principal.name == "Pat Provider"
    assert principal.is_admin is False


class TestThroughTheApi:
    """Real token verification wired into the dependency chain"""

    @pytest.fixture
    def real_auth_client(self, client):
        app.dependency_overrides.pop(get_token_identity, None)
        return client

    def test_signed_token_reaches_route(self, real_auth_client, db, make_token):
        make_user(db, "cust1", "customer")

        response = real_auth_client.get(
            "/api/users/me", headers={"Authorization": f"Bearer {make_token()}"}
        )

        assert response.status_code == 200
        assert response.json()["firebaseUid"] == "cust1"

    def test_expired_token_response(self, real_auth_client, db, make_token):
        make_user(db, "cust1", "customer")
        token = make_token(exp=int(time.time()) - 5)

        response = real_auth_client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.headers["X-Token-Expired"] == "true"
        assert response.json()["error"]["code"] == "TOKEN_EXPIRED"

    def test_missing_token_response(self, real_auth_client):
        response = real_auth_client.get("/api/users/me")

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": {"code": "UNAUTHORIZED", "message": "Not authorized, no token"},
        }
