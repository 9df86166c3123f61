import logging
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload, selectinload

from ..db.session import get_session
from ..errors import (
    AlreadyCancelledError,
    DomainStateError,
    InsufficientStockError,
    NotCancellableError,
    NotFoundError,
    StoreError,
    UnauthorizedError,
    ValidationError,
)
from ..models.order import (
    CANCELLABLE_STATUSES,
    ORDER_STATUSES,
    PAYMENT_STATUSES,
    Order,
    OrderItem,
)
from ..models.product import Product
from ..utils.dto import to_order_dto
from ..utils.fees import calculate_cancellation_fee, generate_tracking_number, to_money
from .logging import log_event


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShippingAddress:
    name: str
    phone: str
    address: str
    city: str
    postal_code: str

    @classmethod
    def from_payload(cls, data) -> "ShippingAddress":
        if not isinstance(data, dict):
            raise ValidationError("Shipping address is required", field="shippingAddress")
        values = {
            "name": data.get("name"),
            "phone": data.get("phone"),
            "address": data.get("address"),
            "city": data.get("city"),
            "postal_code": data.get("postal_code", data.get("postalCode")),
        }
        for key, value in values.items():
            if not str(value or "").strip():
                raise ValidationError(f"Shipping address {key} is required", field=f"shippingAddress.{key}")
        return cls(**{k: str(v).strip() for k, v in values.items()})

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    quantity: int
    price: Decimal

    @classmethod
    def from_payload(cls, data) -> "OrderLine":
        if not isinstance(data, dict):
            raise ValidationError("Invalid order item", field="items")
        product_id = str(data.get("productId") or data.get("product_id") or "").strip()
        if not product_id:
            raise ValidationError("Order item productId is required", field="items.productId")
        try:
            raw_quantity = Decimal(str(data.get("quantity")))
            price = to_money(data.get("price"))
        except (TypeError, ValueError, ArithmeticError):
            raise ValidationError("Order item quantity and price must be numeric", field="items") from None
        if not raw_quantity.is_finite() or raw_quantity != raw_quantity.to_integral_value():
            raise ValidationError("Order item quantity must be a whole number", field="items")
        quantity = int(raw_quantity)
        if quantity < 1 or not price.is_finite() or price < 0:
            raise ValidationError("Order item quantity must be >= 1 and price >= 0", field="items")
        return cls(product_id=product_id, quantity=quantity, price=price)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OrderService:
    """Order lifecycle backed by the record store.

    Each public operation runs in exactly one session; the session commits on
    success and rolls back on any exception, so order rows, line items and
    stock adjustments are written all-or-nothing. Stock is adjusted with
    conditional UPDATE statements rather than read-then-write, which keeps
    concurrent orders for the same product from losing decrements.
    """

    def __init__(
        self,
        session_factory=get_session,
        *,
        clock: Callable[[], datetime] = _utcnow,
        tracking_number_factory: Callable[[], str] = generate_tracking_number,
        on_stock_changed: Optional[Callable[[], None]] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._tracking_number_factory = tracking_number_factory
        # called after a commit that moved product stock (e.g. catalog cache reset)
        self._on_stock_changed = on_stock_changed

    def _stock_changed(self) -> None:
        if self._on_stock_changed is not None:
            self._on_stock_changed()

    @contextmanager
    def _store(self, operation: str):
        try:
            with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Store failure during %s: %s", operation, exc)
            raise StoreError(operation) from exc

    # -- stock ---------------------------------------------------------------

    def _reserve_stock(self, session, product_id: str, quantity: int) -> None:
        result = session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity, updated_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return
        exists = session.execute(select(Product.id).where(Product.id == product_id)).first()
        if exists is None:
            raise NotFoundError("product", product_id)
        raise InsufficientStockError(product_id, quantity)

    def _release_stock(self, session, order: Order) -> bool:
        """Return the order's reserved quantities to stock, at most once per order."""
        if not order.stock_reserved:
            return False
        order.stock_reserved = False
        for item in order.items:
            result = session.execute(
                update(Product)
                .where(Product.id == item.product_id)
                .values(stock_quantity=Product.stock_quantity + item.quantity, updated_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # product was deleted since the order was placed
                logger.warning("Stock not restored, product %s no longer exists", item.product_id)
        return True

    def _load_order(self, session, order_id: str) -> Optional[Order]:
        return session.execute(
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items).joinedload(OrderItem.product))
        ).scalars().first()

    def _require_order(self, session, order_id: str) -> Order:
        if not order_id:
            raise ValidationError("Order ID is required", field="orderId")
        order = self._load_order(session, order_id)
        if order is None:
            raise NotFoundError("order", order_id)
        return order

    # -- commands ------------------------------------------------------------

    def create_order(
        self,
        *,
        user_id: str,
        items: List[OrderLine],
        shipping_address: ShippingAddress,
        payment_method: str,
        total_amount,
    ) -> Dict:
        """Persist a pending order, its line items and the stock reservation.

        Line prices are taken from ``items`` as given; they are not re-read
        from the product table.
        """
        if not user_id:
            raise ValidationError("User ID is required", field="userId")
        if not items:
            raise ValidationError("Order must contain at least one item", field="items")
        if not payment_method:
            raise ValidationError("Payment method is required", field="paymentMethod")
        total = to_money(total_amount)
        if total < 0:
            raise ValidationError("Total amount must be >= 0", field="totalAmount")

        now = self._clock()
        oid = str(uuid4())
        with self._store("create_order") as session:
            order = Order(
                id=oid,
                user_id=user_id,
                status="pending",
                total_amount=total,
                shipping_address=shipping_address.to_dict(),
                payment_method=payment_method,
                payment_status="pending",
                created_at=now,
                updated_at=now,
            )
            order.items = [
                OrderItem(
                    id=str(uuid4()),
                    product_id=line.product_id,
                    position=position,
                    quantity=line.quantity,
                    price=line.price,
                )
                for position, line in enumerate(items)
            ]
            session.add(order)
            session.flush()
            for line in items:
                self._reserve_stock(session, line.product_id, line.quantity)
            session.flush()
            dto = to_order_dto(order)
        self._stock_changed()
        log_event("info", "order.created", order_id=oid, user_id=user_id, items=len(items), total_amount=total)
        return dto

    def update_order_status(self, order_id: str, status: str, tracking_number: Optional[str] = None) -> Dict:
        """Set ``status``; entering ``shipped`` assigns a tracking number once.

        An explicit ``tracking_number`` is used only while the order has none.
        Moving an order to ``cancelled`` here releases its stock reservation
        without charging a fee (staff cancellation). The reservation is not
        taken again if the order later leaves ``cancelled``.
        """
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid order status: {status}", field="status")
        released = False
        with self._store("update_order_status") as session:
            order = self._require_order(session, order_id)
            previous = order.status
            if not order.tracking_number:
                if tracking_number:
                    order.tracking_number = tracking_number
                elif status == "shipped":
                    order.tracking_number = self._tracking_number_factory()
            elif tracking_number and tracking_number != order.tracking_number:
                logger.warning("Order %s already has tracking number %s", order_id, order.tracking_number)
            if status == "cancelled":
                released = self._release_stock(session, order)
            order.status = status
            order.updated_at = self._clock()
            session.flush()
            dto = to_order_dto(order)
        if released:
            self._stock_changed()
        log_event(
            "info",
            "order.status_updated",
            order_id=order_id,
            previous=previous,
            status=status,
            tracking_number=dto["tracking_number"],
        )
        return dto

    def update_payment_status(self, order_id: str, payment_status: str, *, payment_id: Optional[str] = None) -> Dict:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"Invalid payment status: {payment_status}", field="paymentStatus")
        with self._store("update_payment_status") as session:
            order = self._require_order(session, order_id)
            order.payment_status = payment_status
            if payment_id:
                order.payment_id = payment_id
            order.updated_at = self._clock()
            session.flush()
            dto = to_order_dto(order)
        log_event("info", "order.payment_status_updated", order_id=order_id, payment_status=payment_status)
        return dto

    def cancel_order(self, order_id: str, user_id: str) -> Dict:
        """Customer cancellation: charge the tiered fee and restore stock."""
        with self._store("cancel_order") as session:
            order = self._require_order(session, order_id)
            if order.user_id != user_id:
                raise UnauthorizedError("Unauthorized to cancel this order")
            if order.status == "cancelled":
                raise AlreadyCancelledError(order_id)
            if order.status not in CANCELLABLE_STATUSES:
                raise NotCancellableError(order_id, order.status)

            fee = calculate_cancellation_fee(order.total_amount)
            order.status = "cancelled"
            order.cancellation_fee = fee
            order.updated_at = self._clock()
            released = self._release_stock(session, order)
            session.flush()
            dto = to_order_dto(order)
        if released:
            self._stock_changed()
        log_event("info", "order.cancelled", order_id=order_id, user_id=user_id, cancellation_fee=fee)
        return dto

    def apply_payment_outcome(
        self,
        order_id: str,
        *,
        success: bool,
        transaction_id: Optional[str] = None,
    ) -> Dict:
        """Record an asynchronous gateway outcome for an order.

        Success confirms a pending order and marks the payment completed.
        Failure marks the payment failed and, unless the order is already
        cancelled or has shipped, cancels it and releases its stock. Applying
        the same outcome twice leaves the order unchanged.
        """
        released = False
        with self._store("apply_payment_outcome") as session:
            order = self._require_order(session, order_id)
            if success:
                if order.status == "cancelled":
                    logger.warning("Payment completed for cancelled order %s", order_id)
                elif order.status == "pending":
                    order.status = "confirmed"
                order.payment_status = "completed"
                if transaction_id:
                    order.payment_id = transaction_id
            else:
                if order.status in CANCELLABLE_STATUSES:
                    released = self._release_stock(session, order)
                    order.status = "cancelled"
                order.payment_status = "failed"
            order.updated_at = self._clock()
            session.flush()
            dto = to_order_dto(order)
        if released:
            self._stock_changed()
        log_event(
            "info",
            "order.payment_outcome",
            order_id=order_id,
            success=success,
            status=dto["status"],
            payment_status=dto["payment_status"],
        )
        return dto

    def mark_refunded(self, order_id: str) -> Dict:
        with self._store("mark_refunded") as session:
            order = self._require_order(session, order_id)
            if order.payment_status != "completed":
                raise DomainStateError("Only completed payments can be refunded")
            order.payment_status = "refunded"
            order.updated_at = self._clock()
            session.flush()
            dto = to_order_dto(order)
        log_event("info", "order.payment_status_updated", order_id=order_id, payment_status="refunded")
        return dto

    # -- queries -------------------------------------------------------------

    def get_order_by_id(self, order_id: str) -> Optional[Dict]:
        if not order_id:
            return None
        with self._store("get_order_by_id") as session:
            order = self._load_order(session, order_id)
            return to_order_dto(order) if order is not None else None

    def get_orders_by_user_id(self, user_id: str) -> List[Dict]:
        if not user_id:
            return []
        with self._store("get_orders_by_user_id") as session:
            rows = session.execute(
                select(Order)
                .where(Order.user_id == user_id)
                .options(selectinload(Order.items).joinedload(OrderItem.product))
                .order_by(Order.created_at.desc())
            ).scalars().all()
            return [to_order_dto(o) for o in rows]

    def get_all_orders(self) -> List[Dict]:
        with self._store("get_all_orders") as session:
            rows = session.execute(
                select(Order)
                .options(
                    selectinload(Order.items).joinedload(OrderItem.product),
                    joinedload(Order.user),
                )
                .order_by(Order.created_at.desc())
            ).scalars().unique().all()
            return [to_order_dto(o, include_user=True) for o in rows]

    def get_order_stats(self) -> Dict:
        """Counts and delivered revenue; zeros when the store is unavailable."""
        try:
            with self._store("get_order_stats") as session:
                total, pending, delivered, revenue = session.execute(
                    select(
                        func.count(Order.id),
                        func.count(Order.id).filter(Order.status == "pending"),
                        func.count(Order.id).filter(Order.status == "delivered"),
                        func.coalesce(
                            func.sum(Order.total_amount).filter(Order.status == "delivered"), 0
                        ),
                    )
                ).one()
        except StoreError:
            return {"total_orders": 0, "pending_orders": 0, "completed_orders": 0, "total_revenue": 0.0}
        return {
            "total_orders": int(total or 0),
            "pending_orders": int(pending or 0),
            "completed_orders": int(delivered or 0),
            "total_revenue": float(revenue or 0),
        }
