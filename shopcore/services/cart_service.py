from decimal import Decimal
from typing import Dict
from uuid import uuid4
from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from ..db.session import get_session
from ..errors import InsufficientStockError, NotFoundError, StoreError, ValidationError
from ..models.product import Product
from ..models.cart_item import CartItem
from ..utils.dto import to_cart_item_dto
from .logging import log_event


def _parse_quantity(quantity) -> int:
    try:
        qnty = int(quantity if quantity is not None else 1)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer", field="quantity") from None
    if qnty <= 0:
        raise ValidationError("quantity must be > 0", field="quantity")
    return qnty


class CartService:
    """Cart operations backed by DB, one row per (user, product)."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def _query(self, session, user_id: str, product_id: str):
        return (
            session.query(CartItem)
            .filter(and_(CartItem.user_id == user_id, CartItem.product_id == product_id))
            .first()
        )

    def get_cart(self, user_id: str) -> Dict:
        if not user_id:
            raise ValidationError("user_id required", field="userId")
        try:
            with self._session_factory() as session:
                rows = (
                    session.query(CartItem)
                    .filter(CartItem.user_id == user_id)
                    .order_by(CartItem.created_at, CartItem.id)
                    .all()
                )
                items = [to_cart_item_dto(it) for it in rows]
                subtotal = sum(
                    (Decimal(str(it.product.price)) * it.quantity for it in rows if it.product is not None),
                    Decimal("0"),
                )
        except SQLAlchemyError as exc:
            raise StoreError("get_cart") from exc
        return {
            "items": items,
            "total_items": sum(it["quantity"] for it in items),
            "subtotal": float(subtotal),
        }

    def add_item(self, *, user_id: str, product_id: str, quantity=1) -> Dict:
        if not user_id or not product_id:
            raise ValidationError("user_id and product_id required")
        qnty = _parse_quantity(quantity)
        try:
            with self._session_factory() as session:
                prod = session.query(Product).filter(Product.id == product_id).first()
                if not prod:
                    raise NotFoundError("product", product_id)

                # Merge into the existing row for this user + product
                existing = self._query(session, user_id, product_id)
                new_q = qnty + (existing.quantity if existing else 0)
                if new_q > int(prod.stock_quantity):
                    raise InsufficientStockError(product_id, new_q)
                if existing:
                    existing.quantity = new_q
                    item_id = existing.id
                else:
                    item = CartItem(
                        id=str(uuid4()),
                        user_id=user_id,
                        product_id=product_id,
                        quantity=qnty,
                    )
                    session.add(item)
                    item_id = item.id
                session.flush()
        except SQLAlchemyError as exc:
            raise StoreError("add_cart_item") from exc
        log_event("info", "cart.item_added", user_id=user_id, product_id=product_id, quantity=new_q)
        return {"status": "added", "item_id": item_id, "quantity": new_q}

    def update_item(self, *, user_id: str, product_id: str, quantity) -> Dict:
        """Set the quantity; zero or less removes the row."""
        try:
            qnty = int(quantity)
        except (TypeError, ValueError):
            raise ValidationError("quantity must be an integer", field="quantity") from None
        if qnty <= 0:
            self.remove_item(user_id=user_id, product_id=product_id)
            return {"status": "removed", "product_id": product_id}
        try:
            with self._session_factory() as session:
                it = self._query(session, user_id, product_id)
                if not it:
                    raise NotFoundError("cart item", product_id)
                prod = session.query(Product).filter(Product.id == product_id).first()
                if prod and qnty > int(prod.stock_quantity):
                    raise InsufficientStockError(product_id, qnty)
                it.quantity = qnty
                session.flush()
        except SQLAlchemyError as exc:
            raise StoreError("update_cart_item") from exc
        log_event("info", "cart.item_updated", user_id=user_id, product_id=product_id, quantity=qnty)
        return {"status": "updated", "product_id": product_id, "quantity": qnty}

    def remove_item(self, *, user_id: str, product_id: str) -> None:
        try:
            with self._session_factory() as session:
                it = self._query(session, user_id, product_id)
                if it:
                    session.delete(it)
                    session.flush()
        except SQLAlchemyError as exc:
            raise StoreError("remove_cart_item") from exc
        return None

    def clear(self, user_id: str) -> int:
        try:
            with self._session_factory() as session:
                removed = (
                    session.query(CartItem)
                    .filter(CartItem.user_id == user_id)
                    .delete(synchronize_session=False)
                )
        except SQLAlchemyError as exc:
            raise StoreError("clear_cart") from exc
        log_event("info", "cart.cleared", user_id=user_id, removed=removed)
        return removed
