"""
Authentication helpers.

Passwords are bcrypt hashes (passlib); sessions are HS256 JWTs (python-jose)
carried as ``Authorization: Bearer <token>``.
"""
from datetime import timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from constructmart.config import settings
from constructmart.db import get_db
from constructmart.errors import AuthenticationError, PermissionDeniedError
from constructmart.models.user import User
from constructmart.utils.identifiers import utcnow

security = HTTPBearer(auto_error=False)

pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS
)

RESET_PURPOSE = "password_reset"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user: User, remember_me: bool = False) -> str:
    if remember_me:
        expires = timedelta(days=settings.REMEMBER_ME_TTL_DAYS)
    else:
        expires = timedelta(hours=settings.ACCESS_TOKEN_TTL_HOURS)
    claims = {
        "uid": user.uid,
        "email": user.email,
        "user_type": user.user_type,
        "company_uid": user.company_uid,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "exp": utcnow() + expires,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_reset_token(user: User) -> str:
    claims = {
        "uid": user.uid,
        "purpose": RESET_PURPOSE,
        "exp": utcnow() + timedelta(minutes=settings.RESET_TOKEN_TTL_MINUTES),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Raises ``JWTError`` for bad signatures, malformed tokens and expiry."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


def user_from_token(db: Session, token: str) -> User:
    try:
        payload = decode_token(token)
    except JWTError:
        raise PermissionDeniedError("Invalid or expired token")
    if payload.get("purpose"):
        raise PermissionDeniedError("Invalid or expired token")
    user = db.query(User).filter(User.uid == payload.get("uid")).first()
    if not user or not user.is_active:
        raise AuthenticationError("User account not found or inactive")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if not credentials:
        raise AuthenticationError("Authentication token is required")
    return user_from_token(db, credentials.credentials)


def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    if not credentials:
        return None
    try:
        return user_from_token(db, credentials.credentials)
    except (AuthenticationError, PermissionDeniedError):
        return None


def require_user_types(*user_types: str):
    """
    Dependency factory for user-type access control.

    Usage:
        @router.get("/admin-only")
        def admin_route(user: User = Depends(require_user_types("system_admin"))):
            ...
    """

    def checker(user: User = Depends(get_current_user)) -> User:
        if user.user_type not in user_types:
            raise PermissionDeniedError(
                f"Access denied for user type {user.user_type}"
            )
        return user

    return checker


def require_seller(user: User = Depends(require_user_types("vendor_admin"))) -> User:
    if not user.company_id:
        raise PermissionDeniedError("Seller account is not linked to a company")
    return user
