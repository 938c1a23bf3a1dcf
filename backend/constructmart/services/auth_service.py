import logging
import secrets
from typing import Optional, Tuple

from jose import JWTError
from sqlalchemy.orm import Session

from constructmart.config import settings
from constructmart.errors import (
    AuthenticationError,
    ConflictError,
    InvalidRequestError,
    PermissionDeniedError,
)
from constructmart.models.company import Company
from constructmart.models.user import COMPANY_USER_TYPES, User
from constructmart.repositories.user_repo import UserRepository
from constructmart.schemas.user_schema import (
    ChangePasswordIn,
    RegisterIn,
    ResetPasswordIn,
)
from constructmart.security import (
    RESET_PURPOSE,
    create_access_token,
    create_reset_token,
    decode_token,
    hash_password,
    verify_password,
)
from constructmart.utils.identifiers import utcnow
from constructmart.utils.transactions import atomic

logger = logging.getLogger(__name__)


class AuthServiceException(InvalidRequestError):
    pass


class AuthService:
    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)

    def register(self, payload: RegisterIn) -> Tuple[User, str]:
        email = payload.email.lower()
        if self.users.get_by_email(email):
            raise ConflictError("User with this email already exists")

        company = None
        if payload.user_type in COMPANY_USER_TYPES:
            details = payload.company_details
            if not details or not details.name or not details.business_type:
                raise AuthServiceException(
                    "Company name and business type are required for business accounts"
                )
            company = Company(
                name=details.name,
                business_type=details.business_type,
                tax_id=details.tax_id,
                industry=details.industry,
                website=details.website,
            )

        token = secrets.token_hex(16)
        with atomic(self.db):
            if company is not None:
                self.db.add(company)
                self.db.flush()
            user = User(
                email=email,
                password_hash=hash_password(payload.password),
                first_name=payload.first_name,
                last_name=payload.last_name,
                phone_number=payload.phone_number,
                user_type=payload.user_type,
                company_id=company.id if company else None,
                verification_token=token,
                communication_preferences={"email": True, "sms": False},
            )
            self.db.add(user)
        self.db.refresh(user)
        logger.info("Registered user %s (%s)", user.uid, user.user_type)
        return user, token

    def verify_email(self, token: str) -> User:
        user = self.users.get_by_verification_token(token)
        if not user:
            raise AuthServiceException("Invalid or expired verification token")
        with atomic(self.db):
            user.is_verified = True
            user.verification_token = None
        return user

    def login(self, email: str, password: str, remember_me: bool = False) -> Tuple[User, str]:
        user = self.users.get_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid email or password")
        if not user.is_verified:
            raise PermissionDeniedError("Please verify your email before logging in")
        if not user.is_active:
            raise PermissionDeniedError("Your account has been deactivated")
        with atomic(self.db):
            user.last_login = utcnow()
        logger.info("User %s logged in", user.uid)
        return user, create_access_token(user, remember_me=remember_me)

    def forgot_password(self, email: str) -> Optional[str]:
        user = self.users.get_by_email(email)
        if not user:
            logger.info("Password reset requested for unknown email")
            return None
        token = create_reset_token(user)
        logger.info("Password reset token issued for user %s", user.uid)
        return token

    def reset_password(self, payload: ResetPasswordIn) -> User:
        if payload.new_password != payload.confirm_password:
            raise AuthServiceException("Passwords do not match")
        try:
            claims = decode_token(payload.token)
        except JWTError:
            raise AuthServiceException("Invalid or expired reset token")
        if claims.get("purpose") != RESET_PURPOSE:
            raise AuthServiceException("Invalid or expired reset token")
        user = self.users.get_by_uid(claims.get("uid"))
        if not user:
            raise AuthServiceException("Invalid or expired reset token")
        with atomic(self.db):
            user.password_hash = hash_password(payload.new_password)
        logger.info("Password reset for user %s", user.uid)
        return user

    def change_password(self, user: User, payload: ChangePasswordIn) -> None:
        if payload.new_password != payload.confirm_password:
            raise AuthServiceException("Passwords do not match")
        if not verify_password(payload.current_password, user.password_hash):
            raise AuthServiceException("Current password is incorrect")
        with atomic(self.db):
            user.password_hash = hash_password(payload.new_password)

    @staticmethod
    def expose_reset_token() -> bool:
        return settings.DEBUG
