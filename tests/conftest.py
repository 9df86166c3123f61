"""Pytest fixtures for the shop tests."""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from shopcore.config import AppConfig, PaymentGatewayConfig
from shopcore.db.session import build_engine, make_session_factory
from shopcore.models import Base, Product, User
from shopcore.services.auth_service import AuthService
from shopcore.services.order_service import OrderLine, OrderService, ShippingAddress
from shopcore.services.payment_gateways import PaymentResponse


JWT_SECRET = "test-jwt-secret"
VALID_CARD = "4111 1111 1111 1111"


class FixedClock:
    """Deterministic clock; every call advances one second."""

    def __init__(self, start=datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


class FakePaymentService:
    """Stands in for PaymentService with a scripted outcome."""

    gateway_name = "fake"

    def __init__(self, success=True, transaction_id="TXN_TEST_1", redirect_url=None):
        self.success = success
        self.transaction_id = transaction_id
        self.redirect_url = redirect_url
        self.requests = []
        self.refunds = []
        self.accept_callbacks = True

    def process_payment(self, request):
        self.requests.append(request)
        if self.success:
            return PaymentResponse(
                success=True,
                transaction_id=self.transaction_id,
                message="Payment processed successfully (Fake)",
                redirect_url=self.redirect_url,
            )
        return PaymentResponse(success=False, error="Payment failed", message="Card declined")

    def refund_payment(self, transaction_id, amount):
        self.refunds.append((transaction_id, amount))
        return PaymentResponse(success=True, transaction_id=transaction_id, message="Refund processed successfully")

    def verify_callback(self, gateway, pairs):
        return self.accept_callbacks


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def make_product(session_factory):
    """Insert a product and return its id."""

    def _make(**overrides):
        values = {
            "id": str(uuid4()),
            "name": "Galaxy S24",
            "description": "Samsung flagship",
            "price": Decimal("250000"),
            "brand": "Samsung",
            "model": "S24",
            "storage": "256GB",
            "color": "Black",
            "condition": "new",
            "images": ["https://cdn.example.com/s24.jpg"],
            "specifications": {"ram": "8GB"},
            "stock_quantity": 10,
            "category": "smartphone",
        }
        values.update(overrides)
        with session_factory() as session:
            session.add(Product(**values))
        return values["id"]

    return _make


@pytest.fixture
def make_user(session_factory):
    def _make(role="user", **overrides):
        values = {
            "id": str(uuid4()),
            "email": f"{uuid4().hex[:8]}@example.com",
            "name": "Ayesha Khan",
            "phone": "03001234567",
            "role": role,
        }
        values.update(overrides)
        with session_factory() as session:
            session.add(User(**values))
        return values["id"]

    return _make


@pytest.fixture
def stock_of(session_factory):
    def _stock(product_id):
        with session_factory() as session:
            return session.get(Product, product_id).stock_quantity

    return _stock


@pytest.fixture
def order_service(session_factory, clock):
    return OrderService(session_factory, clock=clock, tracking_number_factory=lambda: "MS123456ABCD")


@pytest.fixture
def shipping_address():
    return ShippingAddress(
        name="Ayesha Khan",
        phone="03001234567",
        address="12 Mall Road",
        city="Lahore",
        postal_code="54000",
    )


@pytest.fixture
def place_order(order_service, shipping_address):
    """Create a pending order for ``quantity`` units of one product."""

    def _place(user_id, product_id, quantity=1, price="10000", total=None):
        line = OrderLine(product_id=product_id, quantity=quantity, price=Decimal(price))
        return order_service.create_order(
            user_id=user_id,
            items=[line],
            shipping_address=shipping_address,
            payment_method="card",
            total_amount=total if total is not None else line.line_total,
        )

    return _place


@pytest.fixture
def auth_service():
    return AuthService(JWT_SECRET, "authenticated")


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        database_url="sqlite://",
        secret_key="test",
        log_level="WARNING",
        app_base_url="https://shop.example.pk",
        currency="PKR",
        environment="development",
        tax_rate=Decimal("0.15"),
        jwt_secret=JWT_SECRET,
        jwt_audience="authenticated",
        payment=PaymentGatewayConfig(),
    )


@pytest.fixture
def fake_payments():
    return FakePaymentService()


@pytest.fixture
def app(app_config, session_factory, fake_payments, tmp_path):
    from storefront.app import create_app
    from storefront.config import StorefrontConfig

    config = StorefrontConfig(
        app=app_config,
        secret_key="test",
        project_root=tmp_path,
        settings_file=tmp_path / "data" / "settings.json",
    )
    app = create_app(
        config,
        components={
            "session_factory": session_factory,
            "payment_service": fake_payments,
        },
    )
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def bearer(auth_service):
    def _bearer(user_id, role="user"):
        return {"Authorization": f"Bearer {auth_service.issue(user_id, role=role)}"}

    return _bearer


@pytest.fixture
def checkout_payload():
    def _payload(user_id, product_id, quantity=1, price=10000):
        return {
            "userId": user_id,
            "items": [{"productId": product_id, "quantity": quantity, "price": price}],
            "shippingAddress": {
                "name": "Ayesha Khan",
                "phone": "03001234567",
                "address": "12 Mall Road",
                "city": "Lahore",
                "postalCode": "54000",
                "email": "ayesha@example.com",
            },
            "paymentMethod": "card",
            "cardInfo": {
                "number": VALID_CARD,
                "expiryMonth": "12",
                "expiryYear": "99",
                "cvv": "123",
                "name": "AYESHA KHAN",
            },
        }

    return _payload
