"""
Bearer-token verification for tokens issued by the external identity provider.
Resolves the caller to a local User, provisioning one on first sight.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import settings
from ..models.base import get_db, generate_uuid
from ..models.user import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Mint a token shaped like the identity provider's (development and tests)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    if settings.AUTH_JWT_ISSUER:
        to_encode.setdefault("iss", settings.AUTH_JWT_ISSUER)
    return jwt.encode(to_encode, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Return the token claims, or None if the token is invalid or expired."""
    kwargs = {}
    if settings.AUTH_JWT_ISSUER:
        kwargs["issuer"] = settings.AUTH_JWT_ISSUER
    try:
        return jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            options={"verify_aud": False},
            **kwargs,
        )
    except JWTError as exc:
        logger.debug("Rejected access token: %s", exc)
        return None


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized
    payload = decode_access_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise unauthorized

    subject = payload["sub"]
    user = db.query(User).filter(User.auth_subject == subject).first()
    if user is not None:
        return user

    user = User(
        id=generate_uuid(),
        auth_subject=subject,
        email=payload.get("email"),
        name=payload.get("name"),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Another request provisioned the same subject first
        db.rollback()
        return db.query(User).filter(User.auth_subject == subject).one()
    db.refresh(user)
    logger.info("Provisioned user %s for subject %s", user.id, subject)
    return user
