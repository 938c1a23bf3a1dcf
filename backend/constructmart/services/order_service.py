import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from constructmart.config import settings
from constructmart.errors import (
    InvalidRequestError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from constructmart.models.order import Order, OrderItem
from constructmart.models.promotion import PromotionUsage
from constructmart.models.user import User
from constructmart.repositories.cart_repo import CartRepository
from constructmart.repositories.order_repo import OrderRepository
from constructmart.repositories.promotion_repo import PromotionRepository
from constructmart.repositories.user_repo import UserRepository
from constructmart.schemas.order_schema import OrderCreate, OrderStatusUpdate
from constructmart.services.discounts import (
    DiscountRule,
    apply_rate,
    applies_to_product,
    calculate_order_discount,
    is_promotion_applicable,
)
from constructmart.services.inventory_service import InventoryService
from constructmart.services.notification_service import NotificationService
from constructmart.utils.identifiers import new_order_number, utcnow
from constructmart.utils.pagination import paginate

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "processing": ("Order Processing", "Your order #{number} is now being processed."),
    "shipped": ("Order Shipped", "Your order #{number} has been shipped!"),
    "delivered": ("Order Delivered", "Your order #{number} has been delivered! Enjoy your new products."),
    "cancelled": ("Order Cancelled", "Your order #{number} has been cancelled."),
}
DEFAULT_STATUS_MESSAGE = ("Order Status Updated", "Your order #{number} status has been updated to {status}.")
ITEM_STATUS_FOLLOWS = ("shipped", "delivered", "cancelled")


class OrderServiceException(InvalidRequestError):
    pass


def order_item_dict(it: OrderItem) -> Dict[str, Any]:
    return {
        "uid": it.uid,
        "product_uid": it.product.uid if it.product else None,
        "variant_uid": it.variant.uid if it.variant else None,
        "seller_uid": it.seller.uid if it.seller else None,
        "product_name": it.product_name,
        "sku": it.sku,
        "quantity": it.quantity,
        "unit_price_cents": it.unit_price_cents,
        "subtotal_cents": it.subtotal_cents,
        "tax_cents": it.tax_cents,
        "discount_cents": it.discount_cents,
        "status": it.status,
    }


def order_dict(order: Order, items: Optional[List[OrderItem]] = None) -> Dict[str, Any]:
    items = order.items if items is None else items
    return {
        "uid": order.uid,
        "order_number": order.order_number,
        "buyer_uid": order.buyer.uid if order.buyer else None,
        "status": order.order_status,
        "subtotal_cents": order.subtotal_cents,
        "tax_cents": order.tax_cents,
        "shipping_cents": order.shipping_cents,
        "discount_cents": order.discount_cents,
        "total_cents": order.total_cents,
        "currency": order.currency,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "shipping_method": order.shipping_method,
        "shipping_address_uid": order.shipping_address.uid if order.shipping_address else None,
        "billing_address_uid": order.billing_address.uid if order.billing_address else None,
        "special_instructions": order.special_instructions,
        "is_gift": order.is_gift,
        "gift_message": order.gift_message,
        "coupon_code": order.coupon_code,
        "tracking_number": order.tracking_number,
        "estimated_delivery_date": order.estimated_delivery_date,
        "actual_delivery_date": order.actual_delivery_date,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "items": [order_item_dict(it) for it in items],
    }


class OrderService:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.orders = OrderRepository(db)
        self.carts = CartRepository(db)
        self.users = UserRepository(db)
        self.promotions = PromotionRepository(db)
        self.inventory = InventoryService(db)
        self.notifier = notifier or NotificationService(db)

    def _gen_order_number(self) -> str:
        for _ in range(20):
            number = new_order_number()
            if not self.orders.number_exists(number):
                return number
        raise OrderServiceException("Could not allocate an order number; try again")

    def _resolve_coupon(self, user: User, code: str):
        promotion, coupon = self.promotions.resolve_code(code)
        if not promotion:
            raise OrderServiceException("Invalid coupon code")
        self._check_coupon(user, promotion, coupon)
        return promotion, coupon

    def _check_coupon(self, user: User, promotion, coupon) -> None:
        if coupon is not None:
            if not coupon.is_active:
                raise OrderServiceException("This coupon code is no longer active")
            if coupon.max_uses and coupon.times_used >= coupon.max_uses:
                raise OrderServiceException("This coupon code has reached its usage limit")
        reason = is_promotion_applicable(
            promotion,
            utcnow(),
            customer_order_count=self.orders.count_for_buyer(user.id),
            customer_uses=self.promotions.customer_uses(promotion.id, user.id),
        )
        if reason:
            raise OrderServiceException(reason)

    def create_order(self, user: User, payload: OrderCreate) -> Order:
        cart = self.carts.get_active(user)
        lines = cart.active_items if cart else []
        if not lines:
            raise OrderServiceException("Cart is empty")

        shipping_address = self.users.get_address(user, payload.shipping_address_uid)
        if not shipping_address:
            raise OrderServiceException("Invalid shipping address")
        billing_address = self.users.get_address(user, payload.billing_address_uid)
        if not billing_address:
            raise OrderServiceException("Invalid billing address")

        promotion = coupon = None
        if payload.coupon_code:
            promotion, coupon = self._resolve_coupon(user, payload.coupon_code)

        products = [it.product for it in lines]
        promotion_locks = [f"promotion_{promotion.uid}"] if promotion is not None else []
        with self.inventory.locked(products, extra=promotion_locks):
            try:
                if promotion is not None:
                    # usage counts may have moved while we waited for the lock
                    self.db.refresh(promotion)
                    if coupon is not None:
                        self.db.refresh(coupon)
                    self._check_coupon(user, promotion, coupon)
                order = self._place(user, payload, cart, lines, shipping_address, billing_address, promotion, coupon)
                self.db.commit()
            except Exception:
                self.db.rollback()
                self.notifier.discard()
                raise
        self.notifier.dispatch()
        logger.info(
            "Order %s placed by %s total=%d discount=%d",
            order.order_number, user.uid, order.total_cents, order.discount_cents,
        )
        return order

    def _place(self, user, payload, cart, lines, shipping_address, billing_address, promotion, coupon) -> Order:
        for it in lines:
            self.inventory.take(it.product, it.variant, it.quantity)

        subtotal = sum(it.quantity * it.price_snapshot_cents for it in lines)
        shipping = settings.FLAT_SHIPPING_CENTS
        line_discounts = [0] * len(lines)
        shipping_discount = 0

        if promotion is not None:
            eligible = [
                i for i, it in enumerate(lines)
                if it.product.seller_id == promotion.seller_id
                and applies_to_product(promotion.eligibility, it.product.uid, it.product.category_uids)
            ]
            if not eligible:
                raise OrderServiceException("Coupon does not apply to any item in your cart")
            result, allocated = calculate_order_discount(
                DiscountRule.from_promotion(promotion),
                [(lines[i].price_snapshot_cents, lines[i].quantity) for i in eligible],
                order_subtotal_cents=subtotal,
                shipping_cents=shipping,
            )
            if result.total_cents <= 0:
                raise OrderServiceException("Your order does not meet the requirements of this coupon")
            for i, amount in zip(eligible, allocated):
                line_discounts[i] = amount
            shipping_discount = result.shipping_discount_cents

        discount = sum(line_discounts)
        tax = apply_rate(subtotal - discount, settings.TAX_RATE)
        shipping -= shipping_discount
        order = Order(
            order_number=self._gen_order_number(),
            buyer_id=user.id,
            company_id=user.company_id,
            order_status="pending",
            subtotal_cents=subtotal,
            tax_cents=tax,
            shipping_cents=shipping,
            discount_cents=discount + shipping_discount,
            total_cents=subtotal - discount + tax + shipping,
            currency=settings.CURRENCY,
            payment_method=payload.payment_method,
            payment_status="pending",
            shipping_address=shipping_address,
            billing_address=billing_address,
            shipping_method=payload.shipping_method or "Standard",
            special_instructions=payload.special_instructions,
            is_gift=payload.is_gift,
            gift_message=payload.gift_message,
            coupon_code=payload.coupon_code.strip().upper() if promotion is not None else None,
            promotion_id=promotion.id if promotion is not None else None,
        )
        self.db.add(order)

        sellers = {}
        for it, line_discount in zip(lines, line_discounts):
            product = it.product
            line_subtotal = it.quantity * it.price_snapshot_cents
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    variant_id=it.variant_id,
                    seller_id=product.seller_id,
                    product_name=product.name,
                    sku=it.variant.sku if it.variant is not None and it.variant.sku else product.sku,
                    quantity=it.quantity,
                    unit_price_cents=it.price_snapshot_cents,
                    subtotal_cents=line_subtotal,
                    tax_cents=apply_rate(line_subtotal - line_discount, settings.TAX_RATE),
                    discount_cents=line_discount,
                    status="processing",
                )
            )
            product.total_orders = (product.total_orders or 0) + 1
            sellers.setdefault(product.seller_id, []).append(product.name)

        for it in lines:
            cart.items.remove(it)
        self.carts.touch(cart)
        self.db.flush()

        if promotion is not None:
            promotion.usage_count = (promotion.usage_count or 0) + 1
            if coupon is not None:
                coupon.times_used = (coupon.times_used or 0) + 1
            self.db.add(
                PromotionUsage(
                    promotion_id=promotion.id,
                    user_id=user.id,
                    order_id=order.id,
                    discount_cents=order.discount_cents,
                )
            )

        self._notify_sellers(user, order, sellers)
        self._notify_buyer_created(user, order)
        return order

    def _notify_sellers(self, buyer: User, order: Order, sellers: Dict[int, List[str]]):
        for seller_id, names in sellers.items():
            for admin in self.users.vendor_admins(seller_id):
                self.notifier.notify(
                    admin,
                    "new_order",
                    "New Order Received",
                    f"You have received a new order (#{order.order_number}) for {', '.join(names)}",
                    {"entity_type": "order", "entity_uid": order.uid},
                )
                self.notifier.queue_event(
                    f"user:{admin.uid}",
                    "seller_order_notification",
                    {
                        "company_uid": admin.company_uid,
                        "order_uid": order.uid,
                        "order_number": order.order_number,
                        "buyer_uid": buyer.uid,
                        "buyer_name": buyer.full_name,
                        "order_total_cents": order.total_cents,
                        "currency": order.currency,
                        "item_count": len(names),
                        "requires_attention": True,
                        "payment_status": order.payment_status,
                        "created_at": order.created_at,
                    },
                )

    def _notify_buyer_created(self, user: User, order: Order):
        self.notifier.queue_event(
            f"user:{user.uid}",
            "order_status_update",
            {
                "order_uid": order.uid,
                "order_number": order.order_number,
                "previous_status": None,
                "new_status": "pending",
                "updated_at": order.created_at,
                "updated_by": "system",
                "note": "Order created successfully",
            },
        )
        self.notifier.notify(
            user,
            "order_status",
            "Order Confirmed",
            f"Your order #{order.order_number} has been confirmed and is being processed.",
            {"entity_type": "order", "entity_uid": order.uid},
        )

    # reads

    def list_orders(self, user: User, status: Optional[str], page: int, limit: int, as_seller: bool = False):
        if as_seller:
            if not user.company_id or user.user_type != "vendor_admin":
                raise PermissionDeniedError("Only sellers can list seller orders")
            query = self.orders.for_seller(user.company_id, status)
        else:
            query = self.orders.for_buyer(user, status)
        orders, meta = paginate(query, page, limit)
        if as_seller:
            data = [order_dict(o, self._seller_items(o, user.company_id)) for o in orders]
        else:
            data = [order_dict(o) for o in orders]
        return data, meta

    def _seller_items(self, order: Order, seller_id: int) -> List[OrderItem]:
        return [it for it in order.items if it.seller_id == seller_id]

    def _load(self, uid: str) -> Order:
        order = self.orders.get_by_uid(uid)
        if not order:
            raise ResourceNotFoundError("Order", uid)
        return order

    def get_order(self, user: User, uid: str) -> Dict[str, Any]:
        order = self._load(uid)
        if order.buyer_id == user.id or user.is_staff:
            return order_dict(order)
        seller_items = self._seller_items(order, user.company_id) if user.company_id else []
        if seller_items:
            return order_dict(order, seller_items)
        raise PermissionDeniedError("You do not have permission to view this order")

    # status

    def update_status(self, user: User, uid: str, payload: OrderStatusUpdate) -> Order:
        order = self._load(uid)
        if user.is_staff:
            affected = list(order.items)
            updated_by = "admin"
        else:
            affected = self._seller_items(order, user.company_id) if user.company_id else []
            if not affected:
                raise PermissionDeniedError("You do not have permission to update this order")
            updated_by = "seller"

        previous = order.order_status
        status = payload.status
        products = [it.product for it in affected if it.product is not None]
        with self.inventory.locked(products):
            try:
                order.order_status = status
                if payload.tracking_number:
                    order.tracking_number = payload.tracking_number
                if payload.shipping_method:
                    order.shipping_method = payload.shipping_method
                if payload.estimated_delivery_date:
                    order.estimated_delivery_date = payload.estimated_delivery_date
                if status == "delivered":
                    order.actual_delivery_date = utcnow()
                if status in ITEM_STATUS_FOLLOWS:
                    for it in affected:
                        if status == "cancelled":
                            if it.status in ("shipped", "delivered", "cancelled"):
                                continue
                            if it.product is not None:
                                self.inventory.restock(it.product, it.variant, it.quantity)
                        it.status = status
                self._notify_status(order, previous, status, updated_by, payload)
                self.db.commit()
            except Exception:
                self.db.rollback()
                self.notifier.discard()
                raise
        self.notifier.dispatch()
        logger.info("Order %s status %s -> %s by %s", order.order_number, previous, status, user.uid)
        return order

    def _notify_status(self, order: Order, previous: str, status: str, updated_by: str, payload: OrderStatusUpdate):
        title, template = STATUS_MESSAGES.get(status, DEFAULT_STATUS_MESSAGE)
        message = template.format(number=order.order_number, status=status)
        if status == "shipped" and payload.tracking_number:
            message += f" Track your package with tracking number {payload.tracking_number}."
        buyer = order.buyer
        self.notifier.queue_event(
            f"user:{buyer.uid}",
            "order_status_update",
            {
                "order_uid": order.uid,
                "order_number": order.order_number,
                "previous_status": previous,
                "new_status": status,
                "updated_at": utcnow(),
                "updated_by": updated_by,
                "note": payload.note or "",
                "tracking_number": payload.tracking_number,
                "estimated_delivery": payload.estimated_delivery_date,
            },
        )
        self.notifier.notify(
            buyer, "order_status", title, message, {"entity_type": "order", "entity_uid": order.uid}
        )
        if status == "shipped" and payload.tracking_number:
            self.notifier.queue_event(
                f"order:{order.uid}",
                "delivery_update",
                {
                    "order_uid": order.uid,
                    "order_number": order.order_number,
                    "update_type": "shipped",
                    "tracking_number": payload.tracking_number,
                    "carrier": payload.shipping_method,
                    "estimated_delivery": payload.estimated_delivery_date,
                    "notes": payload.note or "Your order has been shipped!",
                    "updated_at": utcnow(),
                },
            )

    def can_join_order_room(self, user: User, order_uid: str) -> bool:
        order = self.orders.get_by_uid(order_uid)
        if not order:
            return False
        if order.buyer_id == user.id or user.is_staff:
            return True
        return bool(user.company_id and self._seller_items(order, user.company_id))
