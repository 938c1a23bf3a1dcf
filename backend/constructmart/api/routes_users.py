from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from constructmart.api.routes_auth import user_payload
from constructmart.db import get_db
from constructmart.models.user import User
from constructmart.schemas.user_schema import (
    AddressIn,
    AddressOut,
    AddressUpdate,
    CompanyOut,
    CompanyUpdate,
    PaymentMethodIn,
    PaymentMethodOut,
    PaymentMethodUpdate,
    ProfileUpdate,
)
from constructmart.security import get_current_user
from constructmart.services.account_service import AccountService

router = APIRouter(prefix="/api/users", tags=["users"])
company_router = APIRouter(prefix="/api/companies", tags=["companies"])


def _address(a) -> dict:
    return AddressOut.model_validate(a).model_dump()


def _payment_method(pm) -> dict:
    return PaymentMethodOut.model_validate(pm).model_dump()


@router.get("/profile", summary="Current user's profile")
def get_profile(user: User = Depends(get_current_user)):
    return {"success": True, "user": user_payload(user)}


@router.put("/profile", summary="Update profile")
def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = AccountService(db).update_profile(user, payload)
    return {"success": True, "message": "Profile updated successfully", "user": user_payload(user)}


@company_router.put("/profile", summary="Update company profile")
def update_company(
    payload: CompanyUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    company = AccountService(db).update_company(user, payload)
    return {
        "success": True,
        "message": "Company profile updated successfully",
        "company": CompanyOut.model_validate(company).model_dump(),
    }


# addresses


@router.get("/addresses", summary="List addresses")
def list_addresses(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "addresses": [_address(a) for a in AccountService(db).list_addresses(user)]}


@router.post("/addresses", status_code=status.HTTP_201_CREATED, summary="Add address")
def create_address(
    payload: AddressIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    address = AccountService(db).create_address(user, payload)
    return {"success": True, "message": "Address added successfully", "address": _address(address)}


@router.put("/addresses/{uid}", summary="Update address")
def update_address(
    uid: str,
    payload: AddressUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    address = AccountService(db).update_address(user, uid, payload)
    return {"success": True, "message": "Address updated successfully", "address": _address(address)}


@router.delete("/addresses/{uid}", summary="Delete address")
def delete_address(uid: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    AccountService(db).delete_address(user, uid)
    return {"success": True, "message": "Address deleted successfully"}


# payment methods


@router.get("/payment-methods", summary="List payment methods")
def list_payment_methods(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    methods = AccountService(db).list_payment_methods(user)
    return {"success": True, "payment_methods": [_payment_method(pm) for pm in methods]}


@router.post("/payment-methods", status_code=status.HTTP_201_CREATED, summary="Add payment method")
def create_payment_method(
    payload: PaymentMethodIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    pm = AccountService(db).create_payment_method(user, payload)
    return {"success": True, "message": "Payment method added successfully", "payment_method": _payment_method(pm)}


@router.put("/payment-methods/{uid}", summary="Update payment method")
def update_payment_method(
    uid: str,
    payload: PaymentMethodUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    pm = AccountService(db).update_payment_method(user, uid, payload)
    return {"success": True, "message": "Payment method updated successfully", "payment_method": _payment_method(pm)}


@router.delete("/payment-methods/{uid}", summary="Delete payment method")
def delete_payment_method(uid: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    AccountService(db).delete_payment_method(user, uid)
    return {"success": True, "message": "Payment method deleted successfully"}
