import logging
from typing import List

from sqlalchemy.orm import Session

from constructmart.errors import InvalidRequestError, PermissionDeniedError, ResourceNotFoundError
from constructmart.models.address import Address
from constructmart.models.company import Company
from constructmart.models.payment_method import CARD_TYPES, PaymentMethod
from constructmart.models.user import COMPANY_USER_TYPES, User
from constructmart.repositories.user_repo import UserRepository
from constructmart.schemas.user_schema import (
    AddressIn,
    AddressUpdate,
    CompanyUpdate,
    PaymentMethodIn,
    PaymentMethodUpdate,
    ProfileUpdate,
)
from constructmart.utils.transactions import atomic

logger = logging.getLogger(__name__)

CARD_PREFIXES = (
    ("4", "visa"),
    ("34", "amex"),
    ("37", "amex"),
    ("51", "mastercard"),
    ("52", "mastercard"),
    ("53", "mastercard"),
    ("54", "mastercard"),
    ("55", "mastercard"),
    ("2", "mastercard"),
    ("6011", "discover"),
    ("65", "discover"),
)


def card_brand(number: str) -> str:
    for prefix, brand in CARD_PREFIXES:
        if number.startswith(prefix):
            return brand
    return "unknown"


class AccountServiceException(InvalidRequestError):
    pass


class AccountService:
    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)

    # profile

    def update_profile(self, user: User, payload: ProfileUpdate) -> User:
        changes = payload.model_dump(exclude_unset=True)
        with atomic(self.db):
            for field, value in changes.items():
                if value is None and field in ("first_name", "last_name"):
                    continue
                setattr(user, field, value)
        return user

    def update_company(self, user: User, payload: CompanyUpdate) -> Company:
        if not user.company:
            raise PermissionDeniedError("User is not associated with a company")
        if user.user_type not in COMPANY_USER_TYPES:
            raise PermissionDeniedError("Only company administrators can update the company profile")
        company = user.company
        with atomic(self.db):
            for field, value in payload.model_dump(exclude_unset=True).items():
                if value is None and field in ("name", "business_type"):
                    continue
                setattr(company, field, value)
        logger.info("Company %s updated by %s", company.uid, user.uid)
        return company

    # addresses

    def list_addresses(self, user: User) -> List[Address]:
        return self.users.addresses(user)

    def get_address(self, user: User, uid: str) -> Address:
        address = self.users.get_address(user, uid)
        if not address:
            raise ResourceNotFoundError("Address", uid)
        return address

    def create_address(self, user: User, payload: AddressIn) -> Address:
        data = payload.model_dump()
        with atomic(self.db):
            self.users.clear_default_addresses(
                user,
                shipping=data["is_default_shipping"],
                billing=data["is_default_billing"],
            )
            address = Address(user_id=user.id, company_id=user.company_id, **data)
            self.db.add(address)
        return address

    def update_address(self, user: User, uid: str, payload: AddressUpdate) -> Address:
        address = self.get_address(user, uid)
        changes = payload.model_dump(exclude_unset=True)
        with atomic(self.db):
            self.users.clear_default_addresses(
                user,
                shipping=bool(changes.get("is_default_shipping")),
                billing=bool(changes.get("is_default_billing")),
            )
            for field, value in changes.items():
                if value is None and field not in ("street_address_2", "phone_number", "special_instructions"):
                    continue
                setattr(address, field, value)
        return address

    def delete_address(self, user: User, uid: str) -> None:
        address = self.get_address(user, uid)
        with atomic(self.db):
            self.db.delete(address)

    # payment methods

    def list_payment_methods(self, user: User) -> List[PaymentMethod]:
        return self.users.payment_methods(user)

    def get_payment_method(self, user: User, uid: str) -> PaymentMethod:
        pm = self.users.get_payment_method(user, uid)
        if not pm:
            raise ResourceNotFoundError("Payment method", uid)
        return pm

    def _billing_address(self, user: User, uid):
        if not uid:
            return None
        address = self.users.get_address(user, uid)
        if not address:
            raise AccountServiceException("Invalid billing address")
        return address

    def create_payment_method(self, user: User, payload: PaymentMethodIn) -> PaymentMethod:
        is_card = payload.payment_type in CARD_TYPES
        if is_card:
            if not payload.card_number or not payload.card_holder_name or not payload.expiry_date:
                raise AccountServiceException(
                    "Card number, card holder name and expiry date are required for cards"
                )
        billing = self._billing_address(user, payload.billing_address_uid)
        with atomic(self.db):
            if payload.is_default:
                self.users.clear_default_payment_methods(user)
            pm = PaymentMethod(
                user_id=user.id,
                company_id=user.company_id,
                payment_type=payload.payment_type,
                card_brand=card_brand(payload.card_number) if is_card else None,
                card_last_four=payload.card_number[-4:] if is_card else None,
                card_holder_name=payload.card_holder_name,
                expiry_date=payload.expiry_date,
                billing_address=billing,
                is_default=payload.is_default,
            )
            self.db.add(pm)
        return pm

    def update_payment_method(self, user: User, uid: str, payload: PaymentMethodUpdate) -> PaymentMethod:
        pm = self.get_payment_method(user, uid)
        changes = payload.model_dump(exclude_unset=True)
        with atomic(self.db):
            if "billing_address_uid" in changes:
                pm.billing_address = self._billing_address(user, changes.pop("billing_address_uid"))
            if changes.get("is_default"):
                self.users.clear_default_payment_methods(user)
            for field, value in changes.items():
                if value is None:
                    continue
                setattr(pm, field, value)
        return pm

    def delete_payment_method(self, user: User, uid: str) -> None:
        pm = self.get_payment_method(user, uid)
        with atomic(self.db):
            self.db.delete(pm)
