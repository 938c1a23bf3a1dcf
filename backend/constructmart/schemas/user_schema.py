import re
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from constructmart.models.address import ADDRESS_TYPES
from constructmart.models.payment_method import PAYMENT_TYPES
from constructmart.models.user import USER_TYPES

EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])/\d{2}$")


class CompanyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    name: str
    business_type: str
    tax_id: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    description: Optional[str] = None
    is_verified: bool


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    user_type: str
    company_uid: Optional[str] = None
    profile_picture_url: Optional[str] = None
    communication_preferences: Optional[Dict[str, Any]] = None
    is_verified: bool
    last_login: Optional[datetime] = None
    created_at: datetime


class CompanyDetailsIn(BaseModel):
    name: Optional[str] = None
    business_type: Optional[str] = None
    tax_id: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[str] = None


class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    user_type: str
    phone_number: Optional[str] = None
    company_details: Optional[CompanyDetailsIn] = None

    @field_validator("user_type")
    @classmethod
    def check_user_type(cls, v):
        if v not in USER_TYPES:
            raise ValueError(f"user_type must be one of {', '.join(USER_TYPES)}")
        return v


class LoginIn(BaseModel):
    email: EmailStr
    password: str
    remember_me: bool = False


class ForgotPasswordIn(BaseModel):
    email: EmailStr


class ResetPasswordIn(BaseModel):
    token: str
    new_password: str = Field(min_length=8)
    confirm_password: str


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)
    confirm_password: str


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = Field(default=None, min_length=1)
    phone_number: Optional[str] = None
    profile_picture_url: Optional[str] = None
    communication_preferences: Optional[Dict[str, Any]] = None


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    business_type: Optional[str] = None
    tax_id: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    description: Optional[str] = None


class AddressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    address_type: str
    recipient_name: str
    street_address_1: str
    street_address_2: Optional[str] = None
    city: str
    state_province: str
    postal_code: str
    country: str
    phone_number: Optional[str] = None
    is_default_shipping: bool
    is_default_billing: bool
    special_instructions: Optional[str] = None


class AddressUpdate(BaseModel):
    address_type: Optional[str] = None
    recipient_name: Optional[str] = Field(default=None, min_length=1)
    street_address_1: Optional[str] = Field(default=None, min_length=1)
    street_address_2: Optional[str] = None
    city: Optional[str] = Field(default=None, min_length=1)
    state_province: Optional[str] = Field(default=None, min_length=1)
    postal_code: Optional[str] = Field(default=None, min_length=1)
    country: Optional[str] = Field(default=None, min_length=1)
    phone_number: Optional[str] = None
    is_default_shipping: Optional[bool] = None
    is_default_billing: Optional[bool] = None
    special_instructions: Optional[str] = None

    @field_validator("address_type")
    @classmethod
    def check_address_type(cls, v):
        if v is not None and v not in ADDRESS_TYPES:
            raise ValueError(f"address_type must be one of {', '.join(ADDRESS_TYPES)}")
        return v


class AddressIn(AddressUpdate):
    address_type: str
    recipient_name: str = Field(min_length=1)
    street_address_1: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state_province: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=1)
    is_default_shipping: bool = False
    is_default_billing: bool = False


class PaymentMethodOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    payment_type: str
    card_brand: Optional[str] = None
    card_last_four: Optional[str] = None
    card_holder_name: Optional[str] = None
    expiry_date: Optional[str] = None
    billing_address_uid: Optional[str] = None
    is_default: bool


class PaymentMethodUpdate(BaseModel):
    card_holder_name: Optional[str] = None
    expiry_date: Optional[str] = None
    billing_address_uid: Optional[str] = None
    is_default: Optional[bool] = None

    @field_validator("expiry_date")
    @classmethod
    def check_expiry(cls, v):
        if v is not None and not EXPIRY_RE.match(v):
            raise ValueError("expiry_date must be in MM/YY format")
        return v


class PaymentMethodIn(PaymentMethodUpdate):
    payment_type: str
    card_number: Optional[str] = None
    is_default: bool = False

    @field_validator("payment_type")
    @classmethod
    def check_payment_type(cls, v):
        if v not in PAYMENT_TYPES:
            raise ValueError(f"payment_type must be one of {', '.join(PAYMENT_TYPES)}")
        return v

    @field_validator("card_number")
    @classmethod
    def check_card_number(cls, v):
        if v is None:
            return v
        digits = re.sub(r"[\s-]", "", v)
        if not digits.isdigit() or not 12 <= len(digits) <= 19:
            raise ValueError("card_number must contain 12 to 19 digits")
        return digits
