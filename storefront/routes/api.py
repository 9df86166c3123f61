"""Public API routes: orders, payment callbacks, catalog and cart."""

from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, redirect, request

from shopcore.errors import ShopError, SignatureError, StoreError, UnauthorizedError, ValidationError
from shopcore.services.checkout_service import CheckoutRequest
from shopcore.services.payment_callbacks import failure_path

from ..auth import ensure_same_user, require_identity


logger = logging.getLogger(__name__)

api_bp = Blueprint("shop_api", __name__, url_prefix="/api")


def _components() -> Dict[str, Any]:
    return current_app.extensions["shop_components"]


def _config():
    return current_app.config["SHOP_CONFIG"]


@api_bp.errorhandler(ShopError)
def handle_shop_error(exc: ShopError):
    if isinstance(exc, StoreError):
        logger.error("Store failure during %s", exc.operation)
    return jsonify(exc.to_dict()), exc.http_status


# -- orders -------------------------------------------------------------------


@api_bp.post("/orders")
def create_order():
    payload = request.get_json(silent=True)
    try:
        checkout_request = CheckoutRequest.from_payload(payload)
        ensure_same_user(checkout_request.user_id)
        result = _components()["checkout_service"].place_order(checkout_request)
    except StoreError as exc:
        logger.error("Order creation failed in store operation %s", exc.operation)
        return jsonify({"error": exc.message, "code": exc.code}), 500
    except UnauthorizedError as exc:
        return jsonify({"error": exc.message, "code": exc.code}), exc.http_status
    except ShopError as exc:
        return jsonify({"error": exc.message, "code": exc.code}), 400

    if not result.success:
        return (
            jsonify(
                {
                    "success": False,
                    "error": result.error,
                    "message": result.message,
                    "order": result.order,
                }
            ),
            400,
        )
    body = {
        "success": True,
        "order": result.order,
        "transactionId": result.transaction_id,
        "message": result.message,
    }
    if result.redirect_url:
        body["redirectUrl"] = result.redirect_url
    return jsonify(body), 201


@api_bp.get("/orders")
def list_orders():
    user_id = (request.args.get("userId") or "").strip()
    if not user_id:
        return jsonify({"error": "User ID is required"}), 400
    ensure_same_user(user_id)
    orders = _components()["order_service"].get_orders_by_user_id(user_id)
    return jsonify({"success": True, "orders": orders})


@api_bp.get("/orders/<order_id>")
def get_order(order_id: str):
    identity = require_identity()
    order = _components()["order_service"].get_order_by_id(order_id)
    if order is None or (order["user_id"] != identity.user_id and not identity.is_admin):
        return jsonify({"success": False, "error": "Order not found"}), 404
    return jsonify({"success": True, "order": order})


@api_bp.post("/orders/<order_id>/cancel")
def cancel_order(order_id: str):
    payload = request.get_json(silent=True) or {}
    user_id = str(payload.get("userId") or "").strip()
    try:
        if not user_id:
            raise ValidationError("User ID is required", field="userId")
        ensure_same_user(user_id)
        order = _components()["order_service"].cancel_order(order_id, user_id)
    except StoreError as exc:
        logger.error("Order cancellation failed in store operation %s", exc.operation)
        return jsonify({"success": False, "error": exc.message}), 500
    except ShopError as exc:
        return jsonify({"success": False, "error": exc.message}), 400
    return jsonify(
        {
            "success": True,
            "order": order,
            "message": "Order cancelled successfully",
        }
    )


# -- payment callbacks --------------------------------------------------------


@api_bp.post("/payment/callback")
def payment_notification():
    pairs = list(request.form.items(multi=True))
    try:
        result = _components()["callback_handler"].handle_notification(pairs)
    except SignatureError as exc:
        # a forged or mis-signed notification gets no redirect
        return jsonify({"error": exc.message}), 400
    except ValidationError as exc:
        logger.warning("Unusable payment callback: %s", exc.message)
        return redirect(_config().app.get_app_url(failure_path(None)), code=302)
    except ShopError as exc:
        logger.error("Payment callback failed: %s", exc.message)
        return jsonify({"error": "Failed to process payment callback"}), 500
    return redirect(_config().app.get_app_url(result.redirect_path), code=302)


@api_bp.get("/payment/callback")
def payment_return():
    pairs = list(request.args.items(multi=True))
    result = _components()["callback_handler"].handle_return(pairs)
    return redirect(_config().app.get_app_url(result.redirect_path), code=302)


# -- catalog ------------------------------------------------------------------


@api_bp.get("/products")
def list_products():
    args = request.args
    result = _components()["catalog_service"].list_products(
        search=args.get("search"),
        brand=args.get("brand"),
        category=args.get("category"),
        condition=args.get("condition"),
        min_price=args.get("minPrice"),
        max_price=args.get("maxPrice"),
        sort_by=args.get("sortBy", "created_at"),
        sort_order=args.get("sortOrder", "desc"),
        page=args.get("page", 1),
        page_size=args.get("pageSize", 20),
    )
    return jsonify({"success": True, **result})


@api_bp.get("/products/brands")
def list_brands():
    return jsonify({"success": True, "brands": _components()["catalog_service"].list_brands()})


@api_bp.get("/products/<product_id>")
def get_product(product_id: str):
    product = _components()["catalog_service"].get_product(product_id)
    return jsonify({"success": True, "product": product})


# -- cart ---------------------------------------------------------------------


@api_bp.get("/cart")
def get_cart():
    identity = require_identity()
    return jsonify({"success": True, **_components()["cart_service"].get_cart(identity.user_id)})


@api_bp.post("/cart")
def add_to_cart():
    identity = require_identity()
    payload = request.get_json(silent=True) or {}
    result = _components()["cart_service"].add_item(
        user_id=identity.user_id,
        product_id=str(payload.get("productId") or ""),
        quantity=payload.get("quantity", 1),
    )
    return jsonify({"success": True, **result}), 201


@api_bp.patch("/cart/<product_id>")
def update_cart_item(product_id: str):
    identity = require_identity()
    payload = request.get_json(silent=True) or {}
    if "quantity" not in payload:
        raise ValidationError("quantity is required", field="quantity")
    result = _components()["cart_service"].update_item(
        user_id=identity.user_id,
        product_id=product_id,
        quantity=payload["quantity"],
    )
    return jsonify({"success": True, **result})


@api_bp.delete("/cart/<product_id>")
def remove_cart_item(product_id: str):
    identity = require_identity()
    _components()["cart_service"].remove_item(user_id=identity.user_id, product_id=product_id)
    return jsonify({"success": True})


@api_bp.delete("/cart")
def clear_cart():
    identity = require_identity()
    removed = _components()["cart_service"].clear(identity.user_id)
    return jsonify({"success": True, "removed": removed})


# -- profile ------------------------------------------------------------------


@api_bp.get("/me")
def get_profile():
    identity = require_identity()
    user = _components()["user_service"].get_user(identity.user_id)
    if user is None:
        return jsonify({"success": False, "error": "User not found"}), 404
    return jsonify({"success": True, "user": user})


@api_bp.patch("/me")
def update_profile():
    identity = require_identity()
    payload = request.get_json(silent=True) or {}
    user = _components()["user_service"].update_profile(identity.user_id, payload)
    return jsonify({"success": True, "user": user})
