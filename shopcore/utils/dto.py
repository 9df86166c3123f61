from typing import Any, Dict, Optional


def _money(value) -> Optional[float]:
    return float(value) if value is not None else None


def _ts(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def to_product_dto(row: Any) -> Dict:
    return {
        "id": getattr(row, "id", None),
        "name": getattr(row, "name", None),
        "description": getattr(row, "description", None),
        "price": float(getattr(row, "price", 0) or 0),
        "original_price": _money(getattr(row, "original_price", None)),
        "brand": getattr(row, "brand", None),
        "model": getattr(row, "model", None),
        "storage": getattr(row, "storage", None),
        "color": getattr(row, "color", None),
        "condition": getattr(row, "condition", None),
        "images": getattr(row, "images", None) or [],
        "specifications": getattr(row, "specifications", None) or {},
        "stock_quantity": getattr(row, "stock_quantity", 0) or 0,
        "category": getattr(row, "category", None),
        "created_at": _ts(getattr(row, "created_at", None)),
        "updated_at": _ts(getattr(row, "updated_at", None)),
    }


def to_order_item_dto(row: Any) -> Dict:
    product = getattr(row, "product", None)
    return {
        "id": row.id,
        "order_id": row.order_id,
        "product_id": row.product_id,
        "quantity": row.quantity,
        "price": float(row.price),
        "product": to_product_dto(product) if product is not None else None,
    }


def to_order_dto(row: Any, *, include_user: bool = False) -> Dict:
    data = {
        "id": row.id,
        "user_id": row.user_id,
        "status": row.status,
        "total_amount": float(row.total_amount),
        "shipping_address": dict(row.shipping_address or {}),
        "payment_method": row.payment_method,
        "payment_status": row.payment_status,
        "payment_id": row.payment_id,
        "tracking_number": row.tracking_number,
        "cancellation_fee": _money(row.cancellation_fee),
        "order_items": [to_order_item_dto(it) for it in row.items],
        "created_at": _ts(row.created_at),
        "updated_at": _ts(row.updated_at),
    }
    if include_user:
        user = getattr(row, "user", None)
        data["user"] = user.to_dict() if user is not None else None
    return data


def to_cart_item_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "product_id": row.product_id,
        "quantity": row.quantity,
        "product": to_product_dto(row.product) if row.product is not None else None,
    }
