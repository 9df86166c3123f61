"""Admin panel routes (role-gated)."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from shopcore.config import ALLOWED_HOT_KEYS, SENSITIVE_KEYS, refresh_non_sensitive, requires_restart
from shopcore.errors import DomainStateError, ShopError, StoreError

from ..auth import require_admin


logger = logging.getLogger(__name__)

admin_bp = Blueprint("shop_admin", __name__, url_prefix="/admin")

SETTINGS_KEYS = {
    "SECRET_KEY",
    "LOG_LEVEL",
    "APP_BASE_URL",
    "APP_ENV",
    "CURRENCY",
    "TAX_RATE",
    "PAYMENT_GATEWAY",
    "PAYFAST_MERCHANT_ID",
    "PAYFAST_MERCHANT_KEY",
    "PAYFAST_PASSPHRASE",
    "PAYFAST_BASE_URL",
    "JAZZCASH_MERCHANT_ID",
    "JAZZCASH_PASSWORD",
    "JAZZCASH_INTEGRITY_SALT",
    "JAZZCASH_BASE_URL",
    "PAYMENT_TIMEOUT_SECONDS",
    "AUTH_JWT_SECRET",
    "AUTH_JWT_AUDIENCE",
}


def _components() -> Dict[str, Any]:
    return current_app.extensions["shop_components"]


def _config():
    return current_app.config["SHOP_CONFIG"]


@admin_bp.before_request
def guard_admin_routes():
    require_admin()
    return None


@admin_bp.errorhandler(ShopError)
def handle_shop_error(exc: ShopError):
    if isinstance(exc, StoreError):
        logger.error("Store failure during %s", exc.operation)
    return jsonify(exc.to_dict()), exc.http_status


# -- products -----------------------------------------------------------------


@admin_bp.get("/products")
def list_products():
    args = request.args
    result = _components()["catalog_service"].list_products(
        search=args.get("search"),
        brand=args.get("brand"),
        sort_by=args.get("sortBy", "created_at"),
        sort_order=args.get("sortOrder", "desc"),
        page=args.get("page", 1),
        page_size=args.get("pageSize", 50),
    )
    return jsonify({"success": True, **result})


@admin_bp.post("/products")
def create_product():
    payload = request.get_json(silent=True) or {}
    product = _components()["catalog_service"].create_product(payload)
    return jsonify({"success": True, "product": product}), 201


@admin_bp.put("/products/<product_id>")
def update_product(product_id: str):
    payload = request.get_json(silent=True) or {}
    product = _components()["catalog_service"].update_product(product_id, payload)
    return jsonify({"success": True, "product": product})


@admin_bp.delete("/products/<product_id>")
def delete_product(product_id: str):
    if not _components()["catalog_service"].delete_product(product_id):
        return jsonify({"success": False, "error": "Product not found"}), 404
    return jsonify({"success": True})


# -- orders -------------------------------------------------------------------


@admin_bp.get("/orders")
def list_orders():
    orders = _components()["order_service"].get_all_orders()
    return jsonify({"success": True, "orders": orders})


@admin_bp.patch("/orders/<order_id>/status")
def update_order_status(order_id: str):
    payload = request.get_json(silent=True) or {}
    order = _components()["order_service"].update_order_status(
        order_id,
        str(payload.get("status") or ""),
        tracking_number=payload.get("trackingNumber") or None,
    )
    return jsonify({"success": True, "order": order})


@admin_bp.post("/orders/<order_id>/refund")
def refund_order(order_id: str):
    orders = _components()["order_service"]
    order = orders.get_order_by_id(order_id)
    if order is None:
        return jsonify({"success": False, "error": "Order not found"}), 404
    if order["payment_status"] != "completed" or not order["payment_id"]:
        raise DomainStateError("Only completed payments can be refunded")

    refund = _components()["payment_service"].refund_payment(order["payment_id"], Decimal(str(order["total_amount"])))
    if not refund.success:
        return jsonify({"success": False, "error": refund.error or "Refund failed"}), 502
    order = orders.mark_refunded(order_id)
    return jsonify({"success": True, "order": order, "message": refund.message})


@admin_bp.get("/stats")
def order_stats():
    return jsonify({"success": True, "stats": _components()["order_service"].get_order_stats()})


# -- users --------------------------------------------------------------------


@admin_bp.get("/users")
def list_users():
    result = _components()["user_service"].list_users(
        page=request.args.get("page", 1),
        page_size=request.args.get("pageSize", 50),
    )
    return jsonify({"success": True, **result})


# -- settings -----------------------------------------------------------------


@admin_bp.get("/settings")
def get_settings():
    """Current settings file; secrets are masked."""
    settings = _config().read_settings()
    masked = {k: ("********" if k in SENSITIVE_KEYS and v else v) for k, v in settings.items()}
    return jsonify({"success": True, "settings": masked})


@admin_bp.post("/settings")
def update_settings():
    payload = request.get_json(silent=True) or {}
    settings = payload.get("settings") or {}
    if not isinstance(settings, dict) or not settings:
        return jsonify({"success": False, "error": "No settings provided"}), 400

    filtered = {k: str(v) for k, v in settings.items() if k in SETTINGS_KEYS}
    config = _config()
    try:
        # validate hot keys before anything is written
        refreshed = refresh_non_sensitive(filtered, config.app)
    except ValueError as exc:
        return jsonify({"success": False, "error": str(exc)}), 400

    current = config.read_settings()
    changed = sorted(k for k, v in filtered.items() if current.get(k) != v)
    config.write_settings({**current, **filtered})

    config.app = refreshed
    if any(k in ALLOWED_HOT_KEYS for k in changed):
        _components()["checkout_service"].configure_pricing(
            tax_rate=refreshed.tax_rate,
            currency=refreshed.currency,
        )
    logger.info("Settings updated: %s", ", ".join(changed) or "no changes")
    return jsonify(
        {
            "success": True,
            "changed": changed,
            "restart_required": requires_restart(changed),
        }
    )
