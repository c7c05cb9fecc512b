import base64
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import httpx
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509 import load_pem_x509_certificate
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from . import errors
from .config import FIREBASE_PROJECT_ID
from .database import get_db
from .errors import ApiError
from .models import USERS, Role

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)

# Cache for Google's public keys
_cached_keys = None


@dataclass
class AuthIdentity:
    """Who the bearer token says the caller is"""

    uid: str
    email: Optional[str] = None
    email_verified: bool = False


@dataclass
class Principal:
    """Authenticated caller resolved to their persisted User document"""

    uid: str
    role: str
    name: str = ""
    email: str = ""
    photo_url: str = ""
    email_verified: bool = False
    user: dict = field(default_factory=dict, repr=False)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def _b64decode(segment: str) -> bytes:
    padding_len = 4 - len(segment) % 4
    return base64.urlsafe_b64decode(segment + ("=" * padding_len if padding_len != 4 else ""))


def _unauthorized(message: str) -> ApiError:
    return ApiError(401, errors.UNAUTHORIZED, message)


async def get_google_public_keys():
    """Fetch Google's public keys for Firebase token verification"""
    global _cached_keys
    if _cached_keys:
        return _cached_keys

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(GOOGLE_CERTS_URL)
            if response.status_code == 200:
                _cached_keys = response.json()
                logger.info(f"✅ Fetched {len(_cached_keys)} Google public keys")
                return _cached_keys
            logger.error(f"❌ Failed to fetch Google public keys: HTTP {response.status_code}")
    except httpx.HTTPError as e:
        logger.error(f"❌ Error fetching Google public keys: {str(e)}")
    return None


def invalidate_key_cache() -> None:
    global _cached_keys
    _cached_keys = None


async def verify_firebase_token(token: str) -> dict:
    """
    Verify a Firebase ID token and return its claims.

    Checks the RS256 signature against Google's published certificates, then
    the audience, issuer, expiry, issued-at and auth_time claims.
    """
    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise ApiError(500, errors.SERVER_ERROR, "Authentication service not configured")

    parts = token.split(".")
    if len(parts) != 3:
        raise _unauthorized("Invalid token format")

    header_b64, payload_b64, signature_b64 = parts

    try:
        header = json.loads(_b64decode(header_b64))
    except ValueError as e:
        logger.error(f"❌ Failed to decode token header: {str(e)}")
        raise _unauthorized("Invalid token header") from e

    kid = header.get("kid")
    if header.get("alg") != "RS256":
        logger.error(f"❌ Invalid token algorithm: {header.get('alg')}")
        raise _unauthorized("Invalid token algorithm")
    if not kid:
        raise _unauthorized("Token missing key ID")

    public_keys = await get_google_public_keys()
    if not public_keys or kid not in public_keys:
        logger.warning(f"⚠️ Key ID {kid} not found in public keys, invalidating cache and retrying")
        invalidate_key_cache()
        public_keys = await get_google_public_keys()
        if not public_keys or kid not in public_keys:
            raise _unauthorized("Unable to verify token signature")

    try:
        cert = load_pem_x509_certificate(public_keys[kid].encode(), default_backend())
        signature = _b64decode(signature_b64)
        cert.public_key().verify(
            signature,
            f"{header_b64}.{payload_b64}".encode(),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except Exception as e:
        logger.error(f"❌ Token signature verification failed: {type(e).__name__}")
        raise _unauthorized("Invalid token signature") from e

    try:
        claims = json.loads(_b64decode(payload_b64))
    except ValueError as e:
        raise _unauthorized("Invalid token payload") from e

    if claims.get("aud") != FIREBASE_PROJECT_ID:
        logger.error("❌ Token audience mismatch")
        raise _unauthorized("Invalid token audience")

    if claims.get("iss") != f"https://securetoken.google.com/{FIREBASE_PROJECT_ID}":
        logger.error("❌ Token issuer mismatch")
        raise _unauthorized("Invalid token issuer")

    now = time.time()
    if claims.get("exp", 0) < now:
        raise ApiError(
            401,
            errors.TOKEN_EXPIRED,
            "Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        )

    # Allow 60 seconds clock skew
    if claims.get("iat", 0) > now + 60:
        logger.warning("⚠️ Token issued in the future")
        raise _unauthorized("Invalid token")

    if "auth_time" not in claims:
        raise _unauthorized("Invalid token claims")

    return claims


def identity_from_claims(claims: dict) -> AuthIdentity:
    # Firebase ID tokens use 'sub' as the user ID claim
    uid = claims.get("sub") or claims.get("user_id") or claims.get("uid")
    if not uid:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(claims.keys())}")
        raise _unauthorized("Invalid token claims")
    return AuthIdentity(
        uid=uid,
        email=claims.get("email"),
        email_verified=bool(claims.get("email_verified", False)),
    )


async def get_token_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthIdentity:
    """Stage one: bearer token -> {uid, email, emailVerified}"""
    if not credentials or not credentials.credentials:
        raise _unauthorized("Not authorized, no token")

    claims = await verify_firebase_token(credentials.credentials)
    return identity_from_claims(claims)


def load_principal(db: Database, identity: AuthIdentity) -> Principal:
    user = db[USERS].find_one({"firebaseUid": identity.uid})
    if not user:
        raise ApiError(404, errors.USER_NOT_FOUND, "User not found")
    return Principal(
        uid=identity.uid,
        role=user.get("role", Role.CUSTOMER.value),
        name=user.get("name", ""),
        email=user.get("email") or identity.email or "",
        photo_url=user.get("photoURL", ""),
        email_verified=identity.email_verified,
        user=user,
    )


def get_current_user(
    identity: AuthIdentity = Depends(get_token_identity),
    db: Database = Depends(get_db),
) -> Principal:
    """Stage two: identity -> persisted User document"""
    return load_principal(db, identity)


async def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthIdentity]:
    """Like get_token_identity, but anonymous callers get None"""
    if not credentials or not credentials.credentials:
        return None
    return await get_token_identity(credentials)


def get_optional_user(
    identity: Optional[AuthIdentity] = Depends(get_optional_identity),
    db: Database = Depends(get_db),
) -> Optional[Principal]:
    if identity is None:
        return None
    try:
        return load_principal(db, identity)
    except ApiError:
        return None


def require_roles(*roles: str):
    """
    Dependency factory enforcing a role set on top of get_current_user.

    Admins always pass.

    Usage:
        @router.post("", dependencies=[Depends(require_roles("provider"))])
    """
    allowed = {r.value if isinstance(r, Role) else r for r in roles}

    def dependency(principal: Principal = Depends(get_current_user)) -> Principal:
        if principal.is_admin or principal.role in allowed:
            return principal
        logger.warning(
            f"🚫 Access denied: {principal.uid} ({principal.role}) needs {sorted(allowed)}"
        )
        raise ApiError(
            403,
            errors.INSUFFICIENT_PERMISSIONS,
            f"Access denied. Required role: {' or '.join(sorted(allowed))}.",
        )

    return dependency
