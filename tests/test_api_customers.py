"""
Tests for customer API endpoints.

Tests cover:
- POST /api/v1/customers - Stripe first, then local row
- GET /api/v1/customers - pagination, search, subscriptions
- Stripe failures and authentication
"""

from unittest.mock import patch

import stripe
from sqlmodel import Session, select

from app.models import Customer

URL = "/api/v1/customers"


def _add_customers(session: Session, count: int):
    for i in range(count):
        session.add(Customer(
            stripe_customer_id=f"cus_bulk_{i}",
            email=f"user{i}@example.com",
            name=f"User {i}",
        ))
    session.commit()


class TestCreateCustomer:
    def test_requires_session(self, client, stripe_client):
        response = client.post(URL, json={"email": "a@example.com", "name": "A"})

        assert response.status_code == 401
        stripe_client.customers.create.assert_not_called()

    def test_creates_customer(self, client, auth_headers, stripe_client, test_session):
        body = {"email": "new@example.com", "name": "New Person", "metadata": {"company": "Acme"}}

        response = client.post(URL, json=body, headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["stripe_customer_id"] == "cus_new_1"
        assert data["email"] == "new@example.com"
        assert data["metadata"] == {"company": "Acme"}
        assert data["subscriptions"] == []

        stripe_client.customers.create.assert_called_once_with(
            params={"email": "new@example.com", "name": "New Person", "metadata": {"company": "Acme"}}
        )

        test_session.expire_all()
        customer = test_session.exec(select(Customer)).one()
        assert customer.stripe_customer_id == "cus_new_1"
        assert customer.metadata_ == {"company": "Acme"}

    def test_invalid_email(self, client, auth_headers, stripe_client):
        response = client.post(URL, json={"email": "not-an-email", "name": "X"}, headers=auth_headers)

        assert response.status_code == 422
        stripe_client.customers.create.assert_not_called()

    def test_empty_name(self, client, auth_headers):
        response = client.post(URL, json={"email": "a@example.com", "name": ""}, headers=auth_headers)

        assert response.status_code == 422

    def test_stripe_failure_persists_nothing(self, client, auth_headers, stripe_client, test_session):
        stripe_client.customers.create.side_effect = stripe.APIConnectionError("network down")

        response = client.post(URL, json={"email": "a@example.com", "name": "A"}, headers=auth_headers)

        assert response.status_code == 502
        test_session.expire_all()
        assert test_session.exec(select(Customer)).all() == []

    def test_row_already_mirrored_by_webhook(self, client, auth_headers, test_session):
        """customer.created can land before the admin insert commits."""
        test_session.add(Customer(stripe_customer_id="cus_new_1", email="new@example.com", name="From Webhook"))
        test_session.commit()

        response = client.post(URL, json={"email": "new@example.com", "name": "New Person"}, headers=auth_headers)

        assert response.status_code == 201
        assert response.json()["stripe_customer_id"] == "cus_new_1"
        assert response.json()["name"] == "From Webhook"
        test_session.expire_all()
        assert len(test_session.exec(select(Customer)).all()) == 1

    def test_session_checked_before_stripe_config(self, client):
        from app.main import app
        from app.api import deps

        app.dependency_overrides.pop(deps.get_stripe)
        with patch("app.services.stripe_billing.settings") as mock_settings:
            mock_settings.STRIPE_SECRET_KEY = ""
            response = client.post(URL, json={"email": "a@example.com", "name": "A"})

        assert response.status_code == 401


class TestListCustomers:
    def test_requires_session(self, client):
        assert client.get(URL).status_code == 401

    def test_default_pagination(self, client, auth_headers, test_session):
        _add_customers(test_session, 12)

        response = client.get(URL, headers=auth_headers)

        data = response.json()
        assert len(data["customers"]) == 10
        assert data["pagination"] == {"page": 1, "limit": 10, "total": 12, "total_pages": 2}
        # Newest first
        assert data["customers"][0]["stripe_customer_id"] == "cus_bulk_11"

    def test_second_page(self, client, auth_headers, test_session):
        _add_customers(test_session, 12)

        data = client.get(URL, params={"page": 2, "limit": 10}, headers=auth_headers).json()

        assert [c["stripe_customer_id"] for c in data["customers"]] == ["cus_bulk_1", "cus_bulk_0"]

    def test_search_is_case_insensitive(self, client, auth_headers, test_session, sample_customer):
        _add_customers(test_session, 3)

        by_name = client.get(URL, params={"search": "jane"}, headers=auth_headers).json()
        by_email = client.get(URL, params={"search": "USER1@"}, headers=auth_headers).json()

        assert [c["name"] for c in by_name["customers"]] == ["Jane Doe"]
        assert by_name["pagination"]["total"] == 1
        assert [c["email"] for c in by_email["customers"]] == ["user1@example.com"]

    def test_includes_subscriptions(self, client, auth_headers, sample_subscription):
        data = client.get(URL, headers=auth_headers).json()

        customer = data["customers"][0]
        assert customer["subscription_count"] == 1
        sub = customer["subscriptions"][0]
        assert sub["stripe_subscription_id"] == "sub_test_1"
        assert sub["status"] == "ACTIVE"
        assert sub["product_name"] == "Pro Plan"
        assert sub["amount"] == 1999

    def test_invalid_paging(self, client, auth_headers):
        assert client.get(URL, params={"page": 0}, headers=auth_headers).status_code == 422
        assert client.get(URL, params={"limit": 101}, headers=auth_headers).status_code == 422
