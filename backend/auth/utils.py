import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from db.database import get_db
from db.models import CategorySettings, User
from services.settings_service import default_user_settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Who the identity provider says is calling."""

    external_id: str
    email: str | None = None
    name: str | None = None


def create_identity_token(
    external_id: str,
    *,
    email: str | None = None,
    name: str | None = None,
    expiry_hours_override: int | None = None,
) -> str:
    expiry_hours = (
        int(expiry_hours_override) if expiry_hours_override is not None else settings.AUTH_TOKEN_EXPIRY_HOURS
    )
    payload = {
        "sub": str(external_id),
        "email": email,
        "name": name,
        "exp": datetime.now(timezone.utc) + timedelta(hours=expiry_hours),
        "iat": datetime.now(timezone.utc),
    }
    if settings.AUTH_JWT_ISSUER:
        payload["iss"] = settings.AUTH_JWT_ISSUER
    return jwt.encode(payload, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    options = {"require": ["sub", "exp"]}
    try:
        if settings.AUTH_JWT_ISSUER:
            return jwt.decode(
                token,
                settings.AUTH_JWT_SECRET,
                algorithms=[settings.AUTH_JWT_ALGORITHM],
                issuer=settings.AUTH_JWT_ISSUER,
                options=options,
            )
        return jwt.decode(token, settings.AUTH_JWT_SECRET, algorithms=[settings.AUTH_JWT_ALGORITHM], options=options)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def identity_from_claims(claims: dict) -> Identity:
    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return Identity(external_id=subject, email=claims.get("email"), name=claims.get("name"))


def _token_from_request(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    if credentials and credentials.credentials:
        return credentials.credentials
    cookie_name = (settings.AUTH_COOKIE_NAME or "").strip() or "pokrok_session"
    cookie_token = request.cookies.get(cookie_name)
    if cookie_token:
        return cookie_token
    return None


def _find_user(db: Session, external_id: str) -> User | None:
    return db.query(User).filter(User.external_id == external_id).first()


def get_or_create_user(db: Session, identity: Identity) -> User:
    """Map an identity to its User row, creating it with default settings on first sight."""
    user = _find_user(db, identity.external_id)
    if user:
        return user
    user = User(external_id=identity.external_id, email=identity.email, name=identity.name)
    user.settings = default_user_settings()
    user.category_settings = CategorySettings(
        short_term_days=settings.DEFAULT_SHORT_TERM_DAYS,
        long_term_days=settings.DEFAULT_LONG_TERM_DAYS,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # A parallel first request created the same user.
        db.rollback()
        user = _find_user(db, identity.external_id)
        if not user:
            raise
        return user
    db.refresh(user)
    logger.info(f"Created user {user.id} for new identity")
    return user


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = _token_from_request(request, credentials)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    identity = identity_from_claims(decode_token(token))
    user = get_or_create_user(db, identity)
    request.state.user_id = user.id
    return user


def require_cron_secret(request: Request) -> None:
    expected = (settings.CRON_SECRET or "").strip()
    provided = request.headers.get("authorization") or ""
    if not expected or not hmac.compare_digest(provided.encode(), f"Bearer {expected}".encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
