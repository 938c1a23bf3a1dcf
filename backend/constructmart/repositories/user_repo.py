from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from constructmart.models.address import Address
from constructmart.models.payment_method import PaymentMethod
from constructmart.models.user import User


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.lower()).first()

    def get_by_uid(self, uid: str) -> Optional[User]:
        return self.db.query(User).filter(User.uid == uid).first()

    def get_by_verification_token(self, token: str) -> Optional[User]:
        return self.db.query(User).filter(User.verification_token == token).first()

    def vendor_admins(self, company_id: int) -> List[User]:
        return (
            self.db.query(User)
            .filter(
                User.company_id == company_id,
                User.user_type == "vendor_admin",
                User.is_active == True,
            )
            .all()
        )

    def _address_owner_filter(self, user: User):
        if user.company_id:
            return or_(Address.user_id == user.id, Address.company_id == user.company_id)
        return Address.user_id == user.id

    def addresses(self, user: User) -> List[Address]:
        return (
            self.db.query(Address)
            .filter(self._address_owner_filter(user))
            .order_by(Address.is_default_shipping.desc(), Address.created_at.desc(), Address.id.desc())
            .all()
        )

    def get_address(self, user: User, uid: str) -> Optional[Address]:
        return (
            self.db.query(Address)
            .filter(Address.uid == uid, self._address_owner_filter(user))
            .first()
        )

    def clear_default_addresses(self, user: User, shipping: bool = False, billing: bool = False):
        qry = self.db.query(Address).filter(self._address_owner_filter(user))
        for addr in qry.all():
            if shipping:
                addr.is_default_shipping = False
            if billing:
                addr.is_default_billing = False
        self.db.flush()

    def payment_methods(self, user: User) -> List[PaymentMethod]:
        return (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.user_id == user.id)
            .order_by(PaymentMethod.is_default.desc(), PaymentMethod.id.desc())
            .all()
        )

    def get_payment_method(self, user: User, uid: str) -> Optional[PaymentMethod]:
        return (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.uid == uid, PaymentMethod.user_id == user.id)
            .first()
        )

    def clear_default_payment_methods(self, user: User):
        self.db.query(PaymentMethod).filter(PaymentMethod.user_id == user.id).update(
            {PaymentMethod.is_default: False}, synchronize_session="fetch"
        )
