from models.cart import CartItem
from models.order import Order
from models.profile import Profile
from models.user import User
from services import auth as auth_service
from services import local_store


def _headers(cart_token, extra=None):
    headers = {"X-Cart-Token": cart_token}
    headers.update(extra or {})
    return headers


class TestCheckoutView:

    def test_guest_checkout_view(self, client, filled_cart):
        response = client.get("/checkout/", headers=_headers(filled_cart))

        assert response.status_code == 200
        data = response.json()
        assert data["step"] == "address"
        assert data["actor"] == "guest"
        assert data["requires_password"] is True
        assert data["prefill"]["full_name"] == ""
        assert {m["id"] for m in data["payment_methods"]} == {"cod", "bkash", "nagad", "card"}
        assert data["attempt_token"]
        assert data["cart"]["total_amount"] == 160
        assert data["cart"]["total_quantity"] == 2

    def test_authenticated_user_prefill_from_profile(self, client, filled_cart, auth_headers, db_session_override, test_user):
        db_session_override.add(
            Profile(
                user_id=test_user.id,
                full_name="Nadia R.",
                email="nadia@example.com",
                phone="01812345678",
                city="Sylhet",
                postal_code="3100",
                address_line1="Zindabazar 5",
            )
        )
        db_session_override.commit()

        response = client.get("/checkout/", headers=_headers(filled_cart, auth_headers))

        assert response.status_code == 200
        data = response.json()
        assert data["actor"] == "authenticated"
        assert data["requires_password"] is False
        assert data["prefill"]["full_name"] == "Nadia R."
        assert data["prefill"]["city"] == "Sylhet"
        assert data["prefill"]["postal_code"] == "3100"
        assert data["prefill"]["phone"] == "01812345678"

    def test_authenticated_user_without_profile_uses_account(self, client, filled_cart, auth_headers):
        data = client.get("/checkout/", headers=_headers(filled_cart, auth_headers)).json()
        assert data["prefill"]["full_name"] == "Nadia Rahman"
        assert data["prefill"]["email"] == "nadia@example.com"
        assert data["prefill"]["city"] == ""

    def test_attempt_token_is_stable_across_requests(self, client, filled_cart):
        first = client.get("/checkout/", headers=_headers(filled_cart)).json()
        second = client.get("/checkout/", headers=_headers(filled_cart)).json()
        assert first["attempt_token"] == second["attempt_token"]


class TestAddressStep:

    def test_guest_weak_password_makes_no_account(self, client, filled_cart, guest_form, db_session_override, monkeypatch):
        calls = []
        monkeypatch.setattr(auth_service, "create_account", lambda *a, **kw: calls.append(a))

        response = client.post(
            "/checkout/address",
            json={**guest_form, "password": "abc", "confirm_password": "abc"},
            headers=_headers(filled_cart),
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["errors"]["password"] == "Password must be at least 6 characters"
        assert detail["step"] == "address"
        assert calls == []
        assert db_session_override.query(User).count() == 0

    def test_member_address_syncs_profile(self, client, filled_cart, shipping_form, auth_headers, db_session_override, test_user):
        response = client.post(
            "/checkout/address",
            json={**shipping_form, "city": "Khulna"},
            headers=_headers(filled_cart, auth_headers),
        )

        assert response.status_code == 200
        assert response.json()["step"] == "payment"
        profile = db_session_override.get(Profile, test_user.id)
        assert profile.city == "Khulna"
        assert local_store.get_cached_profile(test_user.id)["data"]["city"] == "Khulna"

    def test_guest_address_does_not_sync_profile(self, client, filled_cart, guest_form, db_session_override):
        response = client.post("/checkout/address", json=guest_form, headers=_headers(filled_cart))

        assert response.status_code == 200
        assert response.json()["shipping_details"]["email"] == "guest.buyer@example.com"
        assert db_session_override.query(Profile).count() == 0

    def test_edit_and_payment(self, client, filled_cart, guest_form):
        client.post("/checkout/address", json=guest_form, headers=_headers(filled_cart))

        response = client.post("/checkout/payment", json={"method": "bkash"}, headers=_headers(filled_cart))
        assert response.json()["payment_method"] == "bkash"

        response = client.post("/checkout/edit", headers=_headers(filled_cart))
        data = response.json()
        assert data["step"] == "address"
        assert data["prefill"]["city"] == "Dhaka"
        assert data["payment_method"] == "bkash"

    def test_payment_before_address_is_rejected(self, client, filled_cart):
        response = client.post("/checkout/payment", json={"method": "cod"}, headers=_headers(filled_cart))
        assert response.status_code == 409
        assert response.json()["detail"]["step"] == "address"


class TestConfirm:

    def _prepare(self, client, cart_token, form, headers=None, method="cod"):
        assert client.post("/checkout/address", json=form, headers=_headers(cart_token, headers)).status_code == 200
        if method:
            response = client.post("/checkout/payment", json={"method": method}, headers=_headers(cart_token, headers))
            assert response.status_code == 200

    def test_guest_confirm_creates_account_and_order(self, client, filled_cart, guest_form, db_session_override, mock_email_send):
        self._prepare(client, filled_cart, guest_form)

        response = client.post("/checkout/confirm", headers=_headers(filled_cart))

        assert response.status_code == 200
        data = response.json()
        assert data["order_number"].startswith("TSR-")
        assert data["tracking_url"] == f"/order-tracking?orderId={data['order_number']}"
        assert data["replayed"] is False
        assert data["order"]["total_amount"] == 160
        assert data["order"]["items_count"] == 2
        assert data["order"]["status"] == "processing"

        user = db_session_override.query(User).filter(User.email == "guest.buyer@example.com").one()
        order = db_session_override.query(Order).one()
        assert order.user_id == user.id
        assert db_session_override.get(Profile, user.id).city == "Dhaka"
        assert db_session_override.query(CartItem).count() == 0
        assert "tsr_session" in response.cookies
        assert [m["to"] for m in mock_email_send] == ["guest.buyer@example.com"]

        # The new session identifies the buyer
        me = client.get("/auth/me")
        assert me.status_code == 200
        assert me.json()["user"]["email"] == "guest.buyer@example.com"

    def test_confirmed_order_can_be_looked_up(self, client, filled_cart, shipping_form, auth_headers):
        self._prepare(client, filled_cart, shipping_form, auth_headers)
        order_number = client.post("/checkout/confirm", headers=_headers(filled_cart, auth_headers)).json()["order_number"]

        response = client.get(f"/orders/{order_number.lower()}")

        assert response.status_code == 200
        data = response.json()
        assert data["order_number"] == order_number
        assert data["total_amount"] == 160
        assert data["items_count"] == 2
        assert data["shipping_address"] == {
            "name": "Nadia Rahman",
            "phone": "01712345678",
            "address_line1": "House 12, Road 7",
            "address_line2": "Flat 4B",
            "city": "Dhaka",
            "postal_code": "1205",
        }
        assert data["notes"] == "Call before delivery"

    def test_empty_cart_redirects(self, client, shipping_form, auth_headers, db_session_override, cart_item):
        cart_token = client.post("/cart/items", json=cart_item).json()["token"]
        self._prepare(client, cart_token, shipping_form, auth_headers)
        client.delete("/cart/", headers=_headers(cart_token))

        response = client.post("/checkout/confirm", headers=_headers(cart_token, auth_headers))

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["message"] == "Your cart is empty."
        assert detail["redirect"] == "/cart"
        assert db_session_override.query(Order).count() == 0

    def test_missing_payment_creates_no_order(self, client, filled_cart, shipping_form, auth_headers, db_session_override):
        self._prepare(client, filled_cart, shipping_form, auth_headers, method=None)

        response = client.post("/checkout/confirm", headers=_headers(filled_cart, auth_headers))

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Select a payment method to continue."
        assert db_session_override.query(Order).count() == 0
        assert db_session_override.query(CartItem).count() == 1

    def test_missing_address_returns_to_address(self, client, filled_cart, auth_headers):
        response = client.post("/checkout/confirm", headers=_headers(filled_cart, auth_headers))
        assert response.status_code == 400
        assert response.json()["detail"]["step"] == "address"

    def test_same_idempotency_key_creates_one_order(self, client, filled_cart, shipping_form, auth_headers, db_session_override, mock_email_send):
        self._prepare(client, filled_cart, shipping_form, auth_headers)
        headers = _headers(filled_cart, {**auth_headers, "Idempotency-Key": "attempt-1"})

        first = client.post("/checkout/confirm", headers=headers)
        second = client.post("/checkout/confirm", headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["order_number"] == first.json()["order_number"]
        assert second.json()["replayed"] is True
        assert db_session_override.query(Order).count() == 1
        assert len(mock_email_send) == 1

    def test_key_from_another_buyer_is_not_replayed(self, client, filled_cart, shipping_form, auth_headers, db_session_override):
        self._prepare(client, filled_cart, shipping_form, auth_headers)
        first = client.post("/checkout/confirm", headers=_headers(filled_cart, {**auth_headers, "Idempotency-Key": "k1"}))
        assert first.status_code == 200

        # Anonymous caller without a cart or details
        client.cookies.clear()
        response = client.post("/checkout/confirm", headers={"Idempotency-Key": "k1"})

        assert response.status_code == 400
        assert "order" not in response.json()
        assert "House 12" not in response.text
        assert db_session_override.query(Order).count() == 1

    def test_key_from_another_account_runs_guards(self, client, filled_cart, shipping_form, auth_headers, db_session_override):
        self._prepare(client, filled_cart, shipping_form, auth_headers)
        client.post("/checkout/confirm", headers=_headers(filled_cart, {**auth_headers, "Idempotency-Key": "k1"}))

        other = auth_service.create_account(
            db_session_override, full_name="Rafiq Islam", email="rafiq@example.com", password="secret123"
        )
        other_token, _ = auth_service.issue_session(db_session_override, other)
        other_headers = {"Authorization": f"Bearer {other_token}"}
        client.cookies.clear()
        empty_cart = client.get("/checkout/", headers=other_headers).json()["cart"]["token"]
        self._prepare(client, empty_cart, {**shipping_form, "full_name": "Rafiq Islam"}, other_headers)

        response = client.post(
            "/checkout/confirm", headers=_headers(empty_cart, {**other_headers, "Idempotency-Key": "k1"})
        )

        assert response.status_code == 400
        assert response.json()["detail"]["redirect"] == "/cart"
        assert db_session_override.query(Order).count() == 1

    def test_same_key_for_different_accounts_creates_separate_orders(self, client, filled_cart, cart_item, shipping_form, auth_headers, db_session_override):
        self._prepare(client, filled_cart, shipping_form, auth_headers)
        client.post("/checkout/confirm", headers=_headers(filled_cart, {**auth_headers, "Idempotency-Key": "k1"}))

        other = auth_service.create_account(
            db_session_override, full_name="Rafiq Islam", email="rafiq@example.com", password="secret123"
        )
        other_headers = {"Authorization": f"Bearer {auth_service.issue_session(db_session_override, other)[0]}"}
        client.cookies.clear()
        other_cart = client.post("/cart/items", json=cart_item).json()["token"]
        self._prepare(client, other_cart, {**shipping_form, "full_name": "Rafiq Islam"}, other_headers)

        response = client.post(
            "/checkout/confirm", headers=_headers(other_cart, {**other_headers, "Idempotency-Key": "k1"})
        )

        assert response.status_code == 200
        assert response.json()["replayed"] is False
        assert response.json()["order"]["shipping_address"]["name"] == "Rafiq Islam"
        assert db_session_override.query(Order).count() == 2

    def test_overlong_idempotency_key_is_rejected(self, client, filled_cart, shipping_form, auth_headers, db_session_override):
        self._prepare(client, filled_cart, shipping_form, auth_headers)

        response = client.post(
            "/checkout/confirm", headers=_headers(filled_cart, {**auth_headers, "Idempotency-Key": "k" * 65})
        )

        assert response.status_code == 422
        assert db_session_override.query(Order).count() == 0

    def test_confirmation_in_progress(self, client, filled_cart, shipping_form, auth_headers, db_session_override):
        self._prepare(client, filled_cart, shipping_form, auth_headers)
        local_store.acquire_checkout_lock(filled_cart)

        response = client.post("/checkout/confirm", headers=_headers(filled_cart, auth_headers))

        assert response.status_code == 409
        assert db_session_override.query(Order).count() == 0

    def test_duplicate_email_keeps_details(self, client, filled_cart, guest_form, test_user, db_session_override):
        self._prepare(client, filled_cart, {**guest_form, "email": test_user.email}, method="nagad")

        response = client.post("/checkout/confirm", headers=_headers(filled_cart))

        assert response.status_code == 409
        assert response.json()["detail"]["message"] == "An account with this email already exists."
        assert response.json()["detail"]["step"] == "address"
        assert db_session_override.query(Order).count() == 0

        view = client.get("/checkout/", headers=_headers(filled_cart)).json()
        assert view["step"] == "address"
        assert view["prefill"]["email"] == test_user.email
        assert view["payment_method"] == "nagad"

    def test_persistence_failure_leaves_cart(self, client, filled_cart, shipping_form, auth_headers, db_session_override, monkeypatch):
        from services import checkout as checkout_service
        from services.errors import OrderPersistenceError

        def _fail(*args, **kwargs):
            db_session_override.rollback()
            raise OrderPersistenceError()

        monkeypatch.setattr(checkout_service, "persist_order", _fail)
        self._prepare(client, filled_cart, shipping_form, auth_headers)

        response = client.post("/checkout/confirm", headers=_headers(filled_cart, auth_headers))

        assert response.status_code == 503
        assert db_session_override.query(CartItem).count() == 1
        view = client.get("/checkout/", headers=_headers(filled_cart, auth_headers)).json()
        assert view["step"] == "payment"
        assert view["payment_method"] == "cod"
