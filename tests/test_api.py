"""Tests for the public HTTP API."""

from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import pytest


@pytest.fixture
def user_id(make_user):
    return make_user()


class TestCreateOrder:
    def test_success(self, client, user_id, make_product, checkout_payload, stock_of, fake_payments):
        product_id = make_product(stock_quantity=5)
        response = client.post("/api/orders", json=checkout_payload(user_id, product_id, quantity=2, price=10000))

        assert response.status_code == 201
        body = response.get_json()
        assert body["success"] is True
        assert body["transactionId"] == "TXN_TEST_1"
        assert body["message"] == "Order created and payment processed successfully"
        order = body["order"]
        assert order["status"] == "confirmed"
        assert order["payment_status"] == "completed"
        assert order["payment_id"] == "TXN_TEST_1"
        assert order["total_amount"] == 23000.0
        assert stock_of(product_id) == 3

        sent = fake_payments.requests[0]
        assert sent.customer.email == "ayesha@example.com"
        assert sent.billing.postal_code == "54000"

    def test_tax_applied_to_full_subtotal(self, client, user_id, make_product, checkout_payload):
        first = make_product()
        second = make_product()
        payload = checkout_payload(user_id, first, quantity=1, price=1000)
        payload["items"].append({"productId": second, "quantity": 3, "price": 500})
        response = client.post("/api/orders", json=payload)
        assert response.get_json()["order"]["total_amount"] == 2875.0

    def test_charged_amount_matches_stored_total(self, client, user_id, make_product, checkout_payload, fake_payments):
        response = client.post("/api/orders", json=checkout_payload(user_id, make_product(), price=10.1))
        assert response.get_json()["order"]["total_amount"] == 11.62
        assert fake_payments.requests[0].amount == Decimal("11.62")

    def test_fractional_quantity_rejected(self, client, user_id, make_product, checkout_payload, stock_of):
        product_id = make_product(stock_quantity=5)
        response = client.post("/api/orders", json=checkout_payload(user_id, product_id, quantity=2.7))
        assert response.status_code == 400
        assert stock_of(product_id) == 5

    def test_clears_cart_on_success(self, app, client, user_id, make_product, checkout_payload):
        product_id = make_product()
        cart = app.extensions["shop_components"]["cart_service"]
        cart.add_item(user_id=user_id, product_id=product_id, quantity=1)
        client.post("/api/orders", json=checkout_payload(user_id, product_id))
        assert cart.get_cart(user_id)["items"] == []

    def test_payment_failure(self, client, user_id, make_product, checkout_payload, fake_payments, stock_of):
        fake_payments.success = False
        product_id = make_product(stock_quantity=5)
        response = client.post("/api/orders", json=checkout_payload(user_id, product_id))

        assert response.status_code == 400
        body = response.get_json()
        assert body == {
            "success": False,
            "error": "Payment failed",
            "message": "Card declined",
            "order": body["order"],
        }
        assert body["order"]["status"] == "pending"
        assert body["order"]["payment_status"] == "failed"
        assert stock_of(product_id) == 4

    def test_redirect_url_is_returned(self, client, user_id, make_product, checkout_payload, fake_payments):
        fake_payments.redirect_url = "https://sandbox.payfast.co.za/eng/process?x=1"
        response = client.post("/api/orders", json=checkout_payload(user_id, make_product()))
        assert response.get_json()["redirectUrl"] == "https://sandbox.payfast.co.za/eng/process?x=1"

    @pytest.mark.parametrize("missing", ["items", "shippingAddress", "paymentMethod", "cardInfo", "userId"])
    def test_missing_fields(self, client, user_id, make_product, checkout_payload, missing):
        payload = checkout_payload(user_id, make_product())
        del payload[missing]
        response = client.post("/api/orders", json=payload)
        assert response.status_code == 400
        assert response.get_json()["error"] == "Missing required fields"

    @pytest.mark.parametrize(
        "card, error",
        [
            ({"number": "4111111111111112"}, "Invalid card number"),
            ({"expiryYear": "20"}, "Invalid or expired card expiry date"),
            ({"cvv": "12"}, "Invalid CVV"),
        ],
    )
    def test_card_rejected_before_order_is_written(self, client, user_id, make_product, checkout_payload, stock_of, card, error):
        product_id = make_product(stock_quantity=5)
        payload = checkout_payload(user_id, product_id)
        payload["cardInfo"].update(card)
        response = client.post("/api/orders", json=payload)
        assert response.status_code == 400
        assert response.get_json()["error"] == error
        assert stock_of(product_id) == 5

    def test_out_of_stock(self, client, user_id, make_product, checkout_payload, fake_payments):
        product_id = make_product(stock_quantity=1)
        response = client.post("/api/orders", json=checkout_payload(user_id, product_id, quantity=2))
        assert response.status_code == 400
        assert response.get_json()["code"] == "insufficient_stock"
        assert fake_payments.requests == []

    def test_token_for_other_user_is_rejected(self, client, user_id, make_product, checkout_payload, bearer):
        response = client.post(
            "/api/orders",
            json=checkout_payload(user_id, make_product()),
            headers=bearer("someone-else"),
        )
        assert response.status_code == 403


class TestListOrders:
    def test_requires_user_id(self, client):
        response = client.get("/api/orders")
        assert response.status_code == 400
        assert response.get_json() == {"error": "User ID is required"}

    def test_lists_own_orders(self, client, user_id, place_order, make_product):
        place_order(user_id, make_product())
        place_order("other", make_product())
        body = client.get(f"/api/orders?userId={user_id}").get_json()
        assert body["success"] is True
        assert [o["user_id"] for o in body["orders"]] == [user_id]


class TestGetOrder:
    def test_owner_can_read(self, client, user_id, place_order, make_product, bearer):
        order = place_order(user_id, make_product())
        response = client.get(f"/api/orders/{order['id']}", headers=bearer(user_id))
        assert response.status_code == 200
        assert response.get_json()["order"]["id"] == order["id"]

    def test_other_user_sees_not_found(self, client, user_id, place_order, make_product, bearer):
        order = place_order(user_id, make_product())
        response = client.get(f"/api/orders/{order['id']}", headers=bearer("intruder"))
        assert response.status_code == 404

    def test_requires_token(self, client):
        assert client.get("/api/orders/any").status_code == 401


class TestCancelOrder:
    def test_cancel(self, client, user_id, place_order, make_product, stock_of):
        product_id = make_product(stock_quantity=2)
        order = place_order(user_id, product_id, price="60000")
        response = client.post(f"/api/orders/{order['id']}/cancel", json={"userId": user_id})

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["message"] == "Order cancelled successfully"
        assert body["order"]["cancellation_fee"] == 5000.0
        assert stock_of(product_id) == 2

    def test_wrong_user(self, client, user_id, place_order, make_product):
        order = place_order(user_id, make_product())
        response = client.post(f"/api/orders/{order['id']}/cancel", json={"userId": "other"})
        assert response.status_code == 400
        assert response.get_json() == {"success": False, "error": "Unauthorized to cancel this order"}

    def test_shipped(self, client, user_id, place_order, make_product, order_service):
        order = place_order(user_id, make_product())
        order_service.update_order_status(order["id"], "shipped")
        response = client.post(f"/api/orders/{order['id']}/cancel", json={"userId": user_id})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Cannot cancel order that has been shipped or delivered"

    def test_missing_user_id(self, client):
        response = client.post("/api/orders/whatever/cancel", json={})
        assert response.status_code == 400
        assert response.get_json()["success"] is False


class TestPaymentCallback:
    def test_post_success_redirects_and_confirms(self, client, user_id, place_order, make_product, order_service):
        order = place_order(user_id, make_product())
        response = client.post(
            "/api/payment/callback",
            data={"m_payment_id": order["id"], "payment_status": "COMPLETE", "pf_payment_id": "PF9"},
        )
        assert response.status_code == 302
        location = urlsplit(response.headers["Location"])
        assert location.netloc == "shop.example.pk"
        assert location.path == "/orders/success"
        assert parse_qs(location.query) == {"orderId": [order["id"]]}
        stored = order_service.get_order_by_id(order["id"])
        assert stored["payment_status"] == "completed"
        assert stored["payment_id"] == "PF9"

    def test_post_failure_redirects_to_checkout(self, client, user_id, place_order, make_product, order_service):
        order = place_order(user_id, make_product())
        response = client.post(
            "/api/payment/callback",
            data={"pp_ResponseCode": "124", "pp_BillReference": order["id"], "pp_ResponseMessage": "Declined"},
        )
        assert response.status_code == 302
        assert urlsplit(response.headers["Location"]).path == "/checkout"
        assert order_service.get_order_by_id(order["id"])["status"] == "cancelled"

    def test_rejected_signature(self, client, fake_payments, user_id, place_order, make_product):
        fake_payments.accept_callbacks = False
        order = place_order(user_id, make_product())
        response = client.post("/api/payment/callback", data={"m_payment_id": order["id"], "payment_status": "COMPLETE"})
        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_missing_order_reference_goes_to_failure_page(self, client):
        response = client.post("/api/payment/callback", data={"payment_status": "COMPLETE"})
        assert response.status_code == 302
        location = urlsplit(response.headers["Location"])
        assert location.path == "/checkout"
        assert parse_qs(location.query) == {"error": ["Payment failed"]}

    def test_unknown_order_is_server_error(self, client):
        response = client.post("/api/payment/callback", data={"m_payment_id": "missing", "payment_status": "COMPLETE"})
        assert response.status_code == 500
        assert response.get_json() == {"error": "Failed to process payment callback"}

    def test_get_is_redirect_only(self, client, user_id, place_order, make_product, order_service):
        order = place_order(user_id, make_product())
        response = client.get(f"/api/payment/callback?pp_ResponseCode=000&pp_BillReference={order['id']}")
        assert response.status_code == 302
        assert urlsplit(response.headers["Location"]).path == "/orders/success"
        assert order_service.get_order_by_id(order["id"])["status"] == "pending"


class TestCatalog:
    def test_list_and_filter(self, client, make_product):
        make_product(name="iPhone 15", brand="Apple", price=300000)
        make_product(name="Galaxy A15", brand="Samsung", price=45000, condition="used")
        body = client.get("/api/products?brand=Samsung").get_json()
        assert body["total"] == 1
        assert body["items"][0]["name"] == "Galaxy A15"

    def test_sort_by_price(self, client, make_product):
        make_product(name="B", price=2)
        make_product(name="A", price=1)
        body = client.get("/api/products?sortBy=price&sortOrder=asc").get_json()
        assert [p["name"] for p in body["items"]] == ["A", "B"]

    def test_invalid_sort(self, client):
        response = client.get("/api/products?sortBy=stock_quantity")
        assert response.status_code == 400
        assert response.get_json()["code"] == "validation_error"

    def test_listing_shows_stock_after_checkout(self, client, user_id, make_product, checkout_payload):
        product_id = make_product(stock_quantity=5)
        assert client.get("/api/products").get_json()["items"][0]["stock_quantity"] == 5
        client.post("/api/orders", json=checkout_payload(user_id, product_id, quantity=2))
        assert client.get("/api/products").get_json()["items"][0]["stock_quantity"] == 3

    def test_get_product(self, client, make_product):
        product_id = make_product(name="Pixel 8")
        assert client.get(f"/api/products/{product_id}").get_json()["product"]["name"] == "Pixel 8"

    def test_missing_product(self, client):
        response = client.get("/api/products/nope")
        assert response.status_code == 404
        assert response.get_json() == {"success": False, "error": "Product not found", "code": "not_found"}

    def test_brands(self, client, make_product):
        make_product(brand="Xiaomi")
        make_product(brand="Apple")
        make_product(brand="Apple")
        assert client.get("/api/products/brands").get_json()["brands"] == ["Apple", "Xiaomi"]


class TestCart:
    def test_requires_token(self, client):
        assert client.get("/api/cart").status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/api/cart", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.get_json()["code"] == "unauthenticated"

    def test_add_update_remove(self, client, user_id, make_product, bearer):
        headers = bearer(user_id)
        product_id = make_product(price=1000, stock_quantity=5)

        assert client.post("/api/cart", json={"productId": product_id, "quantity": 2}, headers=headers).status_code == 201
        client.post("/api/cart", json={"productId": product_id}, headers=headers)
        cart = client.get("/api/cart", headers=headers).get_json()
        assert cart["total_items"] == 3
        assert cart["subtotal"] == 3000.0

        client.patch(f"/api/cart/{product_id}", json={"quantity": 1}, headers=headers)
        assert client.get("/api/cart", headers=headers).get_json()["total_items"] == 1

        client.delete(f"/api/cart/{product_id}", headers=headers)
        assert client.get("/api/cart", headers=headers).get_json()["items"] == []

    def test_over_stock(self, client, user_id, make_product, bearer):
        product_id = make_product(stock_quantity=1)
        response = client.post("/api/cart", json={"productId": product_id, "quantity": 2}, headers=bearer(user_id))
        assert response.status_code == 409


class TestProfile:
    def test_get_and_update(self, client, user_id, bearer):
        headers = bearer(user_id)
        assert client.get("/api/me", headers=headers).get_json()["user"]["id"] == user_id
        body = client.patch("/api/me", json={"name": "Ayesha K.", "role": "admin"}, headers=headers).get_json()
        assert body["user"]["name"] == "Ayesha K."
        assert body["user"]["role"] == "user"
