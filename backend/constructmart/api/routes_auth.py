from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from constructmart.db import get_db
from constructmart.models.user import User
from constructmart.schemas.user_schema import (
    ChangePasswordIn,
    CompanyOut,
    ForgotPasswordIn,
    LoginIn,
    RegisterIn,
    ResetPasswordIn,
    UserOut,
)
from constructmart.security import get_current_user
from constructmart.services.auth_service import AuthService

router = APIRouter(prefix="/api/auth", tags=["auth"])


def user_payload(user: User) -> dict:
    data = UserOut.model_validate(user).model_dump()
    data["company"] = CompanyOut.model_validate(user.company).model_dump() if user.company else None
    return data


@router.post("/register", status_code=status.HTTP_201_CREATED, summary="Register a new account")
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    user, token = AuthService(db).register(payload)
    return {
        "success": True,
        "message": "Registration successful. Please verify your email.",
        "user": user_payload(user),
        "verification_token": token,
    }


@router.get("/verify-email/{token}", summary="Verify email address")
def verify_email(token: str, db: Session = Depends(get_db)):
    AuthService(db).verify_email(token)
    return {"success": True, "message": "Email verified successfully. You can now log in."}


@router.post("/login", summary="Log in")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user, token = AuthService(db).login(payload.email, payload.password, payload.remember_me)
    return {"success": True, "token": token, "user": user_payload(user)}


@router.post("/forgot-password", summary="Request a password reset")
def forgot_password(payload: ForgotPasswordIn, db: Session = Depends(get_db)):
    svc = AuthService(db)
    token = svc.forgot_password(payload.email)
    body = {
        "success": True,
        "message": "If an account with that email exists, a password reset link has been sent.",
    }
    if token and svc.expose_reset_token():
        body["reset_token"] = token
    return body


@router.post("/reset-password", summary="Reset password with a reset token")
def reset_password(payload: ResetPasswordIn, db: Session = Depends(get_db)):
    AuthService(db).reset_password(payload)
    return {"success": True, "message": "Password has been reset successfully."}


@router.post("/change-password", summary="Change password")
def change_password(
    payload: ChangePasswordIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    AuthService(db).change_password(user, payload)
    return {"success": True, "message": "Password changed successfully."}
