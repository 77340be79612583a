"""Unit tests for API endpoints."""

from datetime import timedelta

import pytest

from conftest import TEST_PASSWORD
from travel_booking.core.database import utcnow


async def _register(client, email: str = "ana.silva@example.com", password: str = "pass1234") -> dict:
    response = await client.post(
        "/v1/account/register",
        json={
            "email": email,
            "password": password,
            "first_name": "Ana",
            "last_name": "Silva",
        },
    )
    assert response.status_code == 201
    return response.json()


class TestAccountEndpoints:
    """Test account API endpoints."""

    @pytest.mark.asyncio
    async def test_register_and_login(self, test_client):
        registered = await _register(test_client)
        assert registered["token_type"] == "Bearer"
        assert registered["expires_in"] == 3600
        assert registered["user"]["email"] == "ana.silva@example.com"
        assert registered["user"]["role"] == "USER"

        response = await test_client.post(
            "/v1/account/login",
            json={"email": "Ana.Silva@example.com", "password": "pass1234"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Login successful"
        assert data["user"]["last_login_at"] is not None

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, test_client):
        await _register(test_client)

        response = await test_client.post(
            "/v1/account/register",
            json={"email": "ana.silva@example.com", "password": "other-pass", "first_name": "A", "last_name": "S"},
        )
        assert response.status_code == 409
        data = response.json()
        assert data["status"] == 409
        assert data["code"] == "CONFLICT"
        assert data["detail"] == "Email already registered"

    @pytest.mark.asyncio
    async def test_register_invalid_payload(self, test_client):
        response = await test_client.post(
            "/v1/account/register",
            json={"email": "not-an-email", "password": "123", "first_name": "", "last_name": "S"},
        )
        assert response.status_code == 422
        data = response.json()
        assert data["status"] == 422
        fields = {violation["path"].split(".")[-1] for violation in data["violations"]}
        assert {"email", "password", "first_name"} <= fields

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, test_client, user):
        response = await test_client.post(
            "/v1/account/login",
            json={"email": user.email, "password": "wrong-password"},
        )
        assert response.status_code == 401
        data = response.json()
        assert data["status"] == 401
        assert data["detail"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_verify_token(self, test_client, auth_headers):
        token = auth_headers["Authorization"].split()[1]

        response = await test_client.post("/v1/account/verify-token", json={"token": token})
        assert response.json() == {"valid": True}

        response = await test_client.post("/v1/account/verify-token", json={"token": token + "x"})
        assert response.json() == {"valid": False}

    @pytest.mark.asyncio
    async def test_me_requires_token(self, test_client):
        response = await test_client.get("/v1/account/me")
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

        response = await test_client.get("/v1/account/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me(self, test_client, user, auth_headers):
        response = await test_client.get("/v1/account/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["id"] == str(user.id)

    @pytest.mark.asyncio
    async def test_change_password(self, test_client, user, auth_headers):
        response = await test_client.post(
            "/v1/account/change-password",
            json={"current_password": TEST_PASSWORD, "new_password": "another-pass"},
            headers=auth_headers,
        )
        assert response.status_code == 200

        response = await test_client.post(
            "/v1/account/login",
            json={"email": user.email, "password": "another-pass"},
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_password_reset_flow(self, test_client, user, email_sender):
        response = await test_client.post("/v1/account/forgot-password", json={"email": user.email})
        assert response.status_code == 200
        assert response.json()["email"] == "t***r@example.com"

        response = await test_client.post(
            "/v1/account/verify-code",
            json={"email": user.email, "code": email_sender.last_code},
        )
        assert response.status_code == 200
        reset_token = response.json()["reset_token"]

        response = await test_client.post(
            "/v1/account/reset-password",
            json={
                "email": user.email,
                "reset_token": reset_token,
                "new_password": "reset-pass",
                "confirm_password": "reset-pass",
            },
        )
        assert response.status_code == 200

        response = await test_client.post(
            "/v1/account/login",
            json={"email": user.email, "password": "reset-pass"},
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_forgot_password_unknown_email(self, test_client, email_sender):
        response = await test_client.post("/v1/account/forgot-password", json={"email": "ghost@example.com"})
        assert response.status_code == 200
        assert email_sender.codes == []

    @pytest.mark.asyncio
    async def test_forgot_password_email_failure(self, test_client, user, email_sender):
        email_sender.fail = True

        response = await test_client.post("/v1/account/forgot-password", json={"email": user.email})
        assert response.status_code == 502
        assert response.json()["status"] == 502


class TestPackageEndpoints:
    """Test package API endpoints."""

    @pytest.mark.asyncio
    async def test_admin_creates_package(self, test_client, admin_headers):
        start = utcnow() + timedelta(days=60)
        response = await test_client.post(
            "/v1/packages",
            json={
                "destination": "Marrakech, Morocco",
                "start_date": start.isoformat(),
                "end_date": (start + timedelta(days=5)).isoformat(),
                "price": {"amount": 89900, "currency": "EUR"},
                "available_rooms": 8,
            },
            headers=admin_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["price"] == {"amount": 89900, "currency": "EUR"}
        assert data["effective_price"] == {"amount": 89900, "currency": "EUR"}
        assert data["available_rooms"] == 8

    @pytest.mark.asyncio
    async def test_user_cannot_create_package(self, test_client, auth_headers):
        start = utcnow() + timedelta(days=60)
        response = await test_client.post(
            "/v1/packages",
            json={
                "destination": "Marrakech, Morocco",
                "start_date": start.isoformat(),
                "end_date": (start + timedelta(days=5)).isoformat(),
                "price": {"amount": 89900, "currency": "EUR"},
                "available_rooms": 8,
            },
            headers=auth_headers,
        )
        assert response.status_code == 403
        assert response.json()["status"] == 403

    @pytest.mark.asyncio
    async def test_get_package(self, test_client, package):
        response = await test_client.get(f"/v1/packages/{package.id}")
        assert response.status_code == 200
        assert response.json()["destination"] == "Lisbon, Portugal"

    @pytest.mark.asyncio
    async def test_get_package_not_found(self, test_client):
        response = await test_client.get("/v1/packages/00000000-0000-4000-8000-000000000000")
        assert response.status_code == 404
        assert response.json()["status"] == 404

    @pytest.mark.asyncio
    async def test_discount_changes_effective_price(self, test_client, admin_headers, package):
        now = utcnow()
        response = await test_client.post(
            f"/v1/packages/{package.id}/discount",
            json={
                "discounted_amount": 70000,
                "starts_at": (now - timedelta(hours=1)).isoformat(),
                "ends_at": (now + timedelta(days=2)).isoformat(),
            },
            headers=admin_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["discount_active"] is True
        assert data["effective_price"]["amount"] == 70000

        response = await test_client.delete(f"/v1/packages/{package.id}/discount", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["effective_price"]["amount"] == package.price_amount


class TestBookingAndPaymentEndpoints:
    """Test the booking and payment lifecycle over HTTP."""

    @pytest.mark.asyncio
    async def test_book_pay_and_conflict(self, test_client, auth_headers, package, card_details):
        response = await test_client.post(
            "/v1/bookings",
            json={"package_id": str(package.id), "number_of_guests": 2, "number_of_rooms": 3},
            headers=auth_headers,
        )
        assert response.status_code == 201
        booking = response.json()
        assert booking["status"] == "PENDING"
        assert booking["total_price"] == {"amount": 300000, "currency": "USD"}

        response = await test_client.post(
            "/v1/payments",
            json={"booking_id": booking["id"], **card_details},
            headers=auth_headers,
        )
        assert response.status_code == 201
        payment = response.json()
        assert payment["status"] == "COMPLETED"
        assert payment["method"] == "CREDIT_CARD"
        assert payment["amount"] == {"amount": 300000, "currency": "USD"}

        response = await test_client.get(f"/v1/bookings/{booking['id']}", headers=auth_headers)
        assert response.json()["status"] == "CONFIRMED"

        response = await test_client.get(f"/v1/packages/{package.id}")
        assert response.json()["available_rooms"] == 2

        response = await test_client.post(
            "/v1/payments",
            json={"booking_id": booking["id"], **card_details},
            headers=auth_headers,
        )
        assert response.status_code == 409
        data = response.json()
        assert data["status"] == 409
        assert data["reason"] == "ALREADY_PAID"

        response = await test_client.get(f"/v1/payments/booking/{booking['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["id"] == payment["id"]

    @pytest.mark.asyncio
    async def test_booking_requires_authentication(self, test_client, package):
        response = await test_client.post("/v1/bookings", json={"package_id": str(package.id)})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_booking_too_many_rooms(self, test_client, auth_headers, package):
        response = await test_client.post(
            "/v1/bookings",
            json={"package_id": str(package.id), "number_of_rooms": 6},
            headers=auth_headers,
        )
        assert response.status_code == 409
        assert response.json()["reason"] == "INSUFFICIENT_ROOMS"

    @pytest.mark.asyncio
    async def test_list_and_cancel(self, test_client, auth_headers, pending_booking):
        response = await test_client.get("/v1/bookings", headers=auth_headers)
        assert response.status_code == 200
        assert [item["id"] for item in response.json()["items"]] == [str(pending_booking.id)]

        response = await test_client.post(f"/v1/bookings/{pending_booking.id}/cancel", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    @pytest.mark.asyncio
    async def test_other_user_cannot_see_booking(self, test_client, token_service, other_identity, pending_booking):
        headers = {"Authorization": f"Bearer {token_service.issue_token(other_identity)}"}

        response = await test_client.get(f"/v1/bookings/{pending_booking.id}", headers=headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_card_details(self, test_client, auth_headers, pending_booking):
        response = await test_client.post(
            "/v1/payments",
            json={"booking_id": str(pending_booking.id), "card_number": "4111111111111111"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        data = response.json()
        assert data["detail"] == "Invalid card details"
        assert "cvv" in data["errors"]

    @pytest.mark.asyncio
    async def test_paypal_flow(self, test_client, auth_headers, pending_booking):
        response = await test_client.post(
            "/v1/payments/paypal/initiate",
            json={"booking_id": str(pending_booking.id)},
            headers=auth_headers,
        )
        assert response.status_code == 200
        order = response.json()
        assert order["approval_url"].startswith("http://test/booking/payment/success?")
        assert order["cancel_url"].startswith("http://test/booking/payment/cancel?")

        response = await test_client.post(
            "/v1/payments/paypal/capture",
            json={"booking_id": str(pending_booking.id), "order_id": order["order_id"]},
            headers=auth_headers,
        )
        assert response.status_code == 201
        assert response.json()["method"] == "PAYPAL"

        response = await test_client.post(
            "/v1/payments/paypal/initiate",
            json={"booking_id": str(pending_booking.id)},
            headers=auth_headers,
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_paypal_capture_after_card_payment_conflicts(
        self, test_client, auth_headers, pending_booking, package, card_details
    ):
        response = await test_client.post(
            "/v1/payments",
            json={"booking_id": str(pending_booking.id), **card_details},
            headers=auth_headers,
        )
        assert response.status_code == 201

        response = await test_client.post(
            "/v1/payments/paypal/capture",
            json={"booking_id": str(pending_booking.id), "order_id": "PAYPAL-LATE-1"},
            headers=auth_headers,
        )
        assert response.status_code == 409
        assert response.json()["reason"] == "ALREADY_PAID"

        response = await test_client.get(f"/v1/bookings/{pending_booking.id}", headers=auth_headers)
        assert response.json()["status"] == "CONFIRMED"

        response = await test_client.get(f"/v1/packages/{package.id}")
        assert response.json()["available_rooms"] == 2

    @pytest.mark.asyncio
    async def test_refund_is_admin_only(self, test_client, auth_headers, admin_headers, pending_booking, card_details):
        response = await test_client.post(
            "/v1/payments",
            json={"booking_id": str(pending_booking.id), **card_details},
            headers=auth_headers,
        )
        payment_id = response.json()["id"]

        response = await test_client.post(f"/v1/payments/{payment_id}/refund", json={}, headers=auth_headers)
        assert response.status_code == 403

        response = await test_client.post(
            f"/v1/payments/{payment_id}/refund",
            json={"reason": "Customer request"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "REFUNDED"
        assert data["refund_reason"] == "Customer request"
