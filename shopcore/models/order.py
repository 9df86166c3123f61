from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, func
from sqlalchemy.orm import relationship
from .base import Base


ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
CANCELLABLE_STATUSES = ("pending", "confirmed", "processing")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), nullable=False, index=True)
    status = Column(String(32), nullable=False, default="pending")
    total_amount = Column(Numeric(12, 2), nullable=False)
    shipping_address = Column(JSON, nullable=False)
    payment_method = Column(String(64), nullable=False)
    payment_status = Column(String(32), nullable=False, default="pending")
    payment_id = Column(String(128), nullable=True)
    tracking_number = Column(String(32), nullable=True)
    cancellation_fee = Column(Numeric(12, 2), nullable=True)
    # False once the reserved quantities have been returned to product stock
    stock_reserved = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now())

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    user = relationship("User", primaryjoin="foreign(Order.user_id) == User.id", viewonly=True)


class OrderItem(Base):
    """A line item; price is frozen at order creation."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # No FK: the product may be deleted later without touching order history
    product_id = Column(String(36), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship(
        "Product",
        primaryjoin="foreign(OrderItem.product_id) == Product.id",
        viewonly=True,
    )
