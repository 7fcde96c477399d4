"""
Identity: Firebase ID tokens verified against Google's signing certificates,
mapped onto local users. Role gates for admin and staff endpoints live here too.
"""

import base64
import json
import logging
import re
import time
from typing import Optional

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509 import load_pem_x509_certificate
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import FIREBASE_PROJECT_ID
from .database import get_db
from .domain.notifications.relay import resolve_channel_aliases
from .models import Role, User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)
CLOCK_SKEW_SECONDS = 60


class SigningKeyCache:
    """Google's certificates by key id, kept until the max-age Google sends"""

    def __init__(self, url: str = GOOGLE_CERTS_URL, default_ttl: int = 3600):
        self.url = url
        self.default_ttl = default_ttl
        self._certs: dict[str, str] = {}
        self._expires_at = 0.0

    async def get(self, kid: str, force_refresh: bool = False) -> Optional[str]:
        if force_refresh or time.time() >= self._expires_at or kid not in self._certs:
            await self._refresh()
        return self._certs.get(kid)

    async def _refresh(self) -> None:
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                response = await client.get(self.url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"❌ Could not fetch Google signing certificates: {str(e)}")
            return

        self._certs = response.json()
        self._expires_at = time.time() + self._max_age(response.headers.get("cache-control"))
        logger.info(f"🔑 Loaded {len(self._certs)} Google signing certificates")

    def _max_age(self, cache_control: Optional[str]) -> int:
        match = re.search(r"max-age=(\d+)", cache_control or "")
        return int(match.group(1)) if match else self.default_ttl


signing_keys = SigningKeyCache()


def _decode_segment(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _unauthorized(detail: str, **kwargs) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, **kwargs)


def _check_claims(claims: dict) -> None:
    now = time.time()
    if claims.get("aud") != FIREBASE_PROJECT_ID:
        raise _unauthorized("Invalid token audience")
    if claims.get("iss") != f"https://securetoken.google.com/{FIREBASE_PROJECT_ID}":
        raise _unauthorized("Invalid token issuer")
    if claims.get("exp", 0) < now:
        raise _unauthorized(
            "Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        )
    if claims.get("iat", 0) > now + CLOCK_SKEW_SECONDS:
        raise _unauthorized("Token issued in the future")
    if not claims.get("sub"):
        raise _unauthorized("Token has no subject")


async def verify_firebase_token(token: str) -> dict:
    """Check the RS256 signature and the standard claims, return the claims"""
    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise HTTPException(status_code=500, detail="Identity provider not configured")

    try:
        header_b64, claims_b64, signature_b64 = token.split(".")
        header = json.loads(_decode_segment(header_b64))
        claims = json.loads(_decode_segment(claims_b64))
        signature = _decode_segment(signature_b64)
    except ValueError as e:
        raise _unauthorized("Malformed token") from e

    kid = header.get("kid")
    if header.get("alg") != "RS256" or not kid:
        raise _unauthorized("Unsupported token algorithm")

    pem = await signing_keys.get(kid)
    if pem is None:
        # Google rotates keys; one forced refresh before giving up
        pem = await signing_keys.get(kid, force_refresh=True)
    if pem is None:
        logger.warning(f"⚠️ Unknown signing key id {kid}")
        raise _unauthorized("Unable to verify token signature")

    public_key = load_pem_x509_certificate(pem.encode()).public_key()
    try:
        public_key.verify(
            signature,
            f"{header_b64}.{claims_b64}".encode(),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except InvalidSignature as e:
        logger.warning("⚠️ Token signature did not verify")
        raise _unauthorized("Invalid token signature") from e

    _check_claims(claims)
    return claims


def get_or_create_user(db: Session, firebase_uid: str, email: str, name: str = "") -> User:
    """Find the local user for an identity-provider id, creating it on first sight"""
    user = db.query(User).filter(User.firebase_uid == firebase_uid).first()
    if user:
        return user

    user = User(firebase_uid=firebase_uid, email=email or "", full_name=name, role=Role.USER)
    db.add(user)
    try:
        db.flush()
        # Fan-out list is fixed once the internal id exists
        user.channel_aliases = resolve_channel_aliases(user)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error(f"❌ Sign-in for {email} collided with an existing account")
        raise HTTPException(
            status_code=409,
            detail="This email is already registered. Please sign in with your existing account.",
        ) from e

    db.refresh(user)
    logger.info(f"🆕 Registered user {user.id} ({user.email})")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise _unauthorized("Not authenticated", headers={"WWW-Authenticate": "Bearer"})

    claims = await verify_firebase_token(credentials.credentials)
    return get_or_create_user(db, claims["sub"], claims.get("email", ""), claims.get("name", ""))


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != Role.ADMIN:
        logger.warning(f"⚠️ User {user.id} attempted an admin-only action")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def require_staff(user: User = Depends(get_current_user)) -> User:
    """Admins and employees"""
    if user.role not in (Role.ADMIN, Role.EMPLOYEE):
        raise HTTPException(status_code=403, detail="Staff access required")
    return user
