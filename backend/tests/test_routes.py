"""
HTTP-level tests for the back-office API.

Verifies:
- Unauthenticated requests return 401, customers are denied staff routes (403)
- Ledger writes return the documented status codes and JSON shapes
- Report endpoints pass query arguments through and reject bad ranges
"""

from datetime import datetime

import pytest

from backoffice.models import ProductStock, ServiceTransaction
from backoffice.services import auth_service, reporting_service


# =============================================================================
# AUTHENTICATION
# =============================================================================


class TestAuth:

    def test_login_logout_cycle(self, client, db_session):
        auth_service.create_user(email="Staff@Example.com", password="Password123!", role="operator")

        response = client.post("/api/auth/login", json={"email": "staff@example.com", "password": "Password123!"})
        assert response.status_code == 200
        data = response.get_json()
        assert data["user"]["role"] == "operator"
        headers = {"Authorization": f"Bearer {data['token']}"}

        assert client.get("/api/reports/service-used", headers=headers).status_code == 200
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/reports/service-used", headers=headers).status_code == 401

    def test_login_wrong_password(self, client, db_session):
        auth_service.create_user(email="staff@example.com", password="Password123!", role="operator")

        response = client.post("/api/auth/login", json={"email": "staff@example.com", "password": "nope-nope"})

        assert response.status_code == 401

    def test_login_requires_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={"email": "x@example.com"}).status_code == 400


class TestAccessControl:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/service-transactions"),
            ("DELETE", "/api/service-transactions/1"),
            ("GET", "/api/service-transactions/total-spend/1"),
            ("POST", "/api/service-transactions/credit-minutes"),
            ("GET", "/api/service-transactions/minutes-used"),
            ("POST", "/api/product-transactions"),
            ("POST", "/api/product-transactions/bulk"),
            ("GET", "/api/products/1/stock"),
            ("GET", "/api/reports/service-purchased"),
            ("GET", "/api/reports/daily-stats"),
        ],
    )
    def test_unauthenticated(self, client, db_session, method, path):
        response = client.open(path, method=method, json={})
        assert response.status_code == 401

    def test_garbage_token(self, client, db_session):
        response = client.get("/api/reports/service-used", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_customer_denied_staff_route(self, client, customer_headers):
        response = client.get("/api/reports/service-used", headers=customer_headers)

        assert response.status_code == 403
        assert response.get_json()["error"] == "Permission denied"

    def test_customer_reads_own_history_only(self, client, customer, customer_headers, operator):
        own = client.get(f"/api/service-transactions/user/{customer.id}", headers=customer_headers)
        other = client.get(f"/api/service-transactions/user/{operator.id}", headers=customer_headers)

        assert own.status_code == 200
        assert other.status_code == 403


# =============================================================================
# SERVICE LEDGER
# =============================================================================


class TestServiceTransactionRoutes:

    def test_create_purchase(self, client, db_session, operator_headers, customer, session_30, locations):
        response = client.post("/api/service-transactions", headers=operator_headers, json={
            "user_id": customer.id,
            "type": "purchased",
            "service_id": session_30.id,
            "quantity": 999,
            "location_id": locations["01"].id,
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body["message"] == "Service transaction created successfully"
        assert body["data"]["quantity"] == 30
        assert body["data"]["location"] == locations["01"].id
        assert body["data"]["created_at"].endswith("Z")

    def test_used_over_balance(self, client, db_session, operator_headers, make_user, session_15):
        user = make_user(email="low@example.com", balance=10)

        response = client.post("/api/service-transactions", headers=operator_headers, json={
            "user_id": user.id, "type": "used", "service_id": session_15.id,
        })

        assert response.status_code == 422
        assert response.get_json() == {"error": "Insufficient balance"}
        db_session.expire_all()
        assert db_session.query(ServiceTransaction).count() == 0

    def test_unknown_service(self, client, db_session, operator_headers, customer):
        response = client.post("/api/service-transactions", headers=operator_headers, json={
            "user_id": customer.id, "type": "purchased", "service_id": 6060,
        })

        assert response.status_code == 404

    @pytest.mark.parametrize("payload", [
        {"type": "purchased", "service_id": 1},
        {"user_id": 1, "type": "gift", "service_id": 1},
        {"user_id": 1, "type": "purchased"},
        {"user_id": 1, "type": "credit"},
        {"user_id": 1, "type": "credit", "quantity": 2.5},
        {"user_id": 1, "type": "credit", "quantity": 0},
        {"user_id": 1, "type": "credit", "quantity": 5, "created_at": "2026-01-01T00:00:00Z"},
    ])
    def test_invalid_payload(self, client, db_session, operator_headers, payload):
        response = client.post("/api/service-transactions", headers=operator_headers, json=payload)

        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_delete_reverses(self, client, db_session, operator_headers, customer, session_30, balance_of):
        created = client.post("/api/service-transactions", headers=operator_headers, json={
            "user_id": customer.id, "type": "purchased", "service_id": session_30.id,
        }).get_json()["data"]

        response = client.delete(f"/api/service-transactions/{created['id']}", headers=operator_headers)

        assert response.status_code == 200
        assert balance_of(customer.id) == 0
        assert client.delete(f"/api/service-transactions/{created['id']}", headers=operator_headers).status_code == 404

    def test_total_spend(self, client, db_session, operator_headers, customer, add_service_entry):
        t0 = datetime(2026, 3, 1, 9, 0, 0)
        add_service_entry(user_id=customer.id, type="purchased", quantity=30, created_at=t0)
        add_service_entry(user_id=customer.id, type="used", quantity=5, created_at=datetime(2026, 3, 1, 10, 0, 0))
        add_service_entry(user_id=customer.id, type="used", quantity=3, created_at=datetime(2026, 3, 2, 10, 0, 0))

        response = client.get(f"/api/service-transactions/total-spend/{customer.id}", headers=operator_headers)

        assert response.status_code == 200
        assert response.get_json()["total_spend"] == 8

    def test_total_spend_without_purchase(self, client, db_session, operator_headers, customer):
        response = client.get(f"/api/service-transactions/total-spend/{customer.id}", headers=operator_headers)
        assert response.status_code == 404

    def test_credit_minutes(self, client, db_session, operator_headers, customer):
        response = client.post("/api/service-transactions/credit-minutes", headers=operator_headers, json={
            "user_id": customer.id, "available_balance": 45,
        })

        assert response.status_code == 200
        assert response.get_json()["available_balance"] == 45
        db_session.expire_all()
        assert db_session.query(ServiceTransaction).count() == 0

    def test_credit_minutes_unknown_user(self, client, db_session, operator_headers):
        response = client.post("/api/service-transactions/credit-minutes", headers=operator_headers, json={
            "user_id": 5150, "available_balance": 45,
        })
        assert response.status_code == 404

    def test_minutes_used(self, client, db_session, operator_headers, customer, add_service_entry):
        add_service_entry(user_id=customer.id, type="purchased", quantity=30)
        add_service_entry(user_id=customer.id, type="used", quantity=15)

        everyone = client.get("/api/service-transactions/minutes-used", headers=operator_headers)
        one = client.get(f"/api/service-transactions/minutes-used/{customer.id}", headers=operator_headers)

        assert everyone.get_json() == {"total_quantity": {"totalUsed": 15, "totalPurchased": 30}}
        assert one.get_json() == everyone.get_json()

    def test_history(self, client, db_session, operator_headers, customer, session_30):
        client.post("/api/service-transactions", headers=operator_headers, json={
            "user_id": customer.id, "type": "purchased", "service_id": session_30.id,
        })

        response = client.get(f"/api/service-transactions/user/{customer.id}", headers=operator_headers)

        body = response.get_json()
        assert body["user_details"]["email"] == "jane@example.com"
        assert body["transactions"][0]["service"]["name"] == "30 Minute Session"


# =============================================================================
# PRODUCT LEDGER
# =============================================================================


class TestProductTransactionRoutes:

    def test_create_decrements_stock(self, client, db_session, operator_headers, customer, lotion, locations):
        response = client.post("/api/product-transactions", headers=operator_headers, json={
            "user_id": customer.id,
            "product_id": lotion.id,
            "location_id": locations["02"].id,
            "quantity": 4,
        })

        assert response.status_code == 201
        assert response.get_json()["transaction"]["quantity"] == 4

        stock = client.get(f"/api/products/{lotion.id}/stock", headers=operator_headers).get_json()
        assert stock["stock"] == {"01": 10, "02": 6, "03": 10}

    def test_invalid_location(self, client, db_session, operator_headers, customer, lotion):
        response = client.post("/api/product-transactions", headers=operator_headers, json={
            "user_id": customer.id, "product_id": lotion.id, "location_id": 4321, "quantity": 1,
        })

        assert response.status_code == 400
        assert response.get_json() == {"error": "Invalid location"}

    def test_unknown_product(self, client, db_session, operator_headers, customer, locations):
        response = client.post("/api/product-transactions", headers=operator_headers, json={
            "user_id": customer.id, "product_id": 4321, "location_id": locations["01"].id, "quantity": 1,
        })

        assert response.status_code == 404

    def test_bulk(self, client, db_session, operator_headers, customer, lotion, locations):
        response = client.post("/api/product-transactions/bulk", headers=operator_headers, json={
            "data": [
                {"user_id": customer.id, "product_id": lotion.id, "location_id": locations["01"].id, "quantity": 1},
                {"user_id": customer.id, "product_id": lotion.id, "location_id": locations["02"].id, "quantity": 2},
            ],
        })

        assert response.status_code == 201
        assert len(response.get_json()["transaction"]) == 2
        db_session.expire_all()
        assert {row.quantity for row in db_session.query(ProductStock).all()} == {10}

    def test_bulk_reports_bad_entry_index(self, client, db_session, operator_headers, customer, lotion):
        response = client.post("/api/product-transactions/bulk", headers=operator_headers, json={
            "data": [
                {"user_id": customer.id, "product_id": lotion.id, "quantity": 1},
                {"user_id": customer.id, "product_id": lotion.id, "quantity": -1},
            ],
        })

        assert response.status_code == 400
        assert response.get_json()["error"].startswith("data[1]:")

    def test_bulk_requires_list(self, client, db_session, operator_headers):
        response = client.post("/api/product-transactions/bulk", headers=operator_headers, json={"data": []})
        assert response.status_code == 400

    def test_customer_history(self, client, db_session, operator_headers, customer, lotion, locations):
        client.post("/api/product-transactions", headers=operator_headers, json={
            "user_id": customer.id, "product_id": lotion.id, "location_id": locations["01"].id, "quantity": 1,
        })

        response = client.get(f"/api/product-transactions/user/{customer.id}", headers=operator_headers)

        assert response.status_code == 200
        assert response.get_json()[0]["product"]["name"] == "Accelerator Lotion"


# =============================================================================
# REPORTS
# =============================================================================


class TestReportRoutes:

    def test_range_report_with_location(
        self, client, db_session, operator_headers, customer, session_30, locations, add_service_entry
    ):
        for loc in ("01", "02"):
            add_service_entry(user_id=customer.id, type="used", service_id=session_30.id, quantity=30,
                              location_id=locations[loc].id, created_at=datetime(2026, 5, 2, 9, 0, 0))

        response = client.get(
            "/api/reports/service-use",
            headers=operator_headers,
            query_string={"start_date": "2026-05-01", "end_date": "2026-05-31", "location_id": locations["02"].id},
        )

        assert response.status_code == 200
        rows = response.get_json()
        assert len(rows) == 1
        assert rows[0]["location"]["name"] == "Riverside"
        assert rows[0]["total_price"] == 25.0

    @pytest.mark.parametrize("path", [
        "/api/reports/service-purchase",
        "/api/reports/service-use",
        "/api/reports/product-sales",
        "/api/reports/customer-day-usage",
    ])
    def test_bad_dates(self, client, db_session, operator_headers, path):
        response = client.get(path, headers=operator_headers, query_string={"start_date": "yesterday"})
        assert response.status_code == 400

    @pytest.mark.parametrize("path", [
        "/api/reports/service-purchased",
        "/api/reports/service-used",
        "/api/reports/product-sale",
    ])
    def test_all_time_reports_empty(self, client, db_session, operator_headers, path):
        response = client.get(path, headers=operator_headers)

        assert response.status_code == 200
        assert response.get_json() == []

    def test_customer_day_usage_envelope(self, client, db_session, operator_headers):
        response = client.get(
            "/api/reports/customer-day-usage",
            headers=operator_headers,
            query_string={"start_date": "2026-05-01", "end_date": "2026-05-01"},
        )

        assert response.get_json() == {"data": []}

    def test_daily_stats(self, client, db_session, operator_headers, customer, locations):
        response = client.get("/api/reports/daily-stats", headers=operator_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body["customers_count"] == 1
        assert body["locations_count"] == 4


def test_health(client, db_session):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"


class TestReportArguments:

    @pytest.mark.parametrize("path", [
        "/api/reports/service-purchase",
        "/api/reports/service-use",
        "/api/reports/product-sales",
        "/api/reports/customer-day-usage",
    ])
    def test_non_integer_location_rejected(
        self, client, db_session, operator_headers, customer, session_30, locations, add_service_entry, path
    ):
        for loc in ("01", "02"):
            add_service_entry(user_id=customer.id, type="used", service_id=session_30.id, quantity=30,
                              location_id=locations[loc].id, created_at=datetime(2026, 5, 2, 9, 0, 0))

        response = client.get(
            path,
            headers=operator_headers,
            query_string={"start_date": "2026-05-01", "end_date": "2026-05-31", "location_id": "abc"},
        )

        assert response.status_code == 400
        assert response.get_json() == {"error": "location_id must be an integer"}

    def test_unknown_location_is_404(self, client, db_session, operator_headers, locations):
        response = client.get(
            "/api/reports/service-use",
            headers=operator_headers,
            query_string={"start_date": "2026-05-01", "end_date": "2026-05-31", "location_id": 31337},
        )

        assert response.status_code == 404
        assert response.get_json() == {"error": "Location not found"}

    @pytest.mark.parametrize("location_id,status", [("abc", 400), ("1.5", 400), ("31337", 404)])
    def test_daily_stats_location(self, client, db_session, operator_headers, locations, location_id, status):
        response = client.get(
            "/api/reports/daily-stats", headers=operator_headers, query_string={"location_id": location_id}
        )
        assert response.status_code == status

    def test_unexpected_failure_is_logged_500(self, client, db_session, operator_headers, monkeypatch):
        def boom():
            raise RuntimeError("database went away")

        monkeypatch.setattr(reporting_service, "service_used_report", boom)

        response = client.get("/api/reports/service-used", headers=operator_headers)

        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error"}


class TestCustomerLedgerViews:

    def test_customer_date_range(
        self, client, db_session, operator_headers, customer, session_30, add_service_entry
    ):
        add_service_entry(user_id=customer.id, type="purchased", service_id=session_30.id, quantity=30,
                          created_at=datetime(2026, 5, 2, 9, 0, 0))

        response = client.get(
            "/api/reports/customer-date-range",
            headers=operator_headers,
            query_string={"start_date": "2026-05-01", "end_date": "2026-05-31", "per_page": 10},
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["pagination"]["per_page"] == 10
        assert body["data"][0]["total_service_purchased_price"] == 25.0

    def test_customer_date_range_bad_page(self, client, db_session, operator_headers):
        response = client.get(
            "/api/reports/customer-date-range", headers=operator_headers, query_string={"page": "two"}
        )
        assert response.status_code == 400

    def test_all_service_transactions(self, client, db_session, operator_headers, customer, add_service_entry):
        add_service_entry(user_id=customer.id, type="credit", quantity=5)

        response = client.get("/api/service-transactions", headers=operator_headers)

        assert response.status_code == 200
        rows = response.get_json()
        assert rows[0]["user_details"]["email"] == "jane@example.com"
        assert rows[0]["service"] == {"id": 0, "name": "", "price": 0}

    def test_all_service_transactions_staff_only(self, client, customer_headers):
        assert client.get("/api/service-transactions", headers=customer_headers).status_code == 403

    def test_available_services(
        self, client, db_session, customer, customer_headers, session_30, add_service_entry
    ):
        add_service_entry(user_id=customer.id, type="purchased", service_id=session_30.id, quantity=30)

        response = client.get(f"/api/service-transactions/available/{customer.id}", headers=customer_headers)

        assert response.status_code == 200
        assert [row["serviceName"] for row in response.get_json()] == ["30 Minute Session"]

    def test_available_services_unknown_customer(self, client, db_session, operator_headers):
        response = client.get("/api/service-transactions/available/7070", headers=operator_headers)
        assert response.status_code == 404
