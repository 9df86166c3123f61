"""Mobile shop storefront Flask application."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from flask import Flask

from shopcore.db.session import build_engine, make_session_factory
from shopcore.models import Base
from shopcore.services.auth_service import AuthService
from shopcore.services.cart_service import CartService
from shopcore.services.catalog_service import CatalogService
from shopcore.services.checkout_service import CheckoutService
from shopcore.services.order_service import OrderService
from shopcore.services.payment_callbacks import PaymentCallbackHandler
from shopcore.services.payment_service import PaymentService
from shopcore.services.user_service import UserService

from .config import StorefrontConfig
from .routes import admin, api


def build_components(config: StorefrontConfig, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Wire the shopcore services; any entry in ``overrides`` replaces the default."""

    overrides = dict(overrides or {})
    components: Dict[str, Any] = {}

    def provide(name: str, factory: Callable[[], Any]) -> Any:
        components[name] = overrides[name] if name in overrides else factory()
        return components[name]

    app_cfg = config.app
    if "session_factory" not in overrides:
        engine = provide("engine", lambda: build_engine(app_cfg.database_url))
        Base.metadata.create_all(engine)
    sessions = provide("session_factory", lambda: make_session_factory(components["engine"]))

    catalog = provide("catalog_service", lambda: CatalogService(sessions))
    orders = provide("order_service", lambda: OrderService(sessions, on_stock_changed=catalog.invalidate_cache))
    payments = provide(
        "payment_service",
        lambda: PaymentService(
            app_cfg.payment,
            app_base_url=app_cfg.app_base_url,
            production=app_cfg.is_production,
            currency=app_cfg.currency,
        ),
    )
    cart = provide("cart_service", lambda: CartService(sessions))
    provide("user_service", lambda: UserService(sessions))
    provide("auth_service", lambda: AuthService(app_cfg.jwt_secret, app_cfg.jwt_audience))
    provide(
        "checkout_service",
        lambda: CheckoutService(
            orders,
            payments,
            cart,
            tax_rate=app_cfg.tax_rate,
            currency=app_cfg.currency,
        ),
    )
    provide("callback_handler", lambda: PaymentCallbackHandler(orders, payments))
    return components


def create_app(config: Optional[StorefrontConfig] = None, components: Optional[Dict[str, Any]] = None) -> Flask:
    config = config or StorefrontConfig.load()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["SHOP_CONFIG"] = config
    app.extensions["shop_components"] = build_components(config, components)

    app.register_blueprint(api.api_bp)
    app.register_blueprint(admin.admin_bp)

    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=False)


if __name__ == "__main__":
    main()
