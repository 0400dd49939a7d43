"""
Integration tests for the HTTP API

Runs the FastAPI app against an in-memory store with real JWT
authentication and exercises the main loan workflow end to end.
"""

import pytest
from fastapi.testclient import TestClient

from olms.api import create_app
from olms.api.auth import LoanManagementSystem, get_system
from olms.storage import InMemoryStorage


class TestAPIIntegration:

    def setup_method(self):
        self.system = LoanManagementSystem(InMemoryStorage())
        self.app = create_app()
        self.app.dependency_overrides[get_system] = lambda: self.system
        self.client = TestClient(self.app)
        self.headers = self.login("admin", "admin")

    def login(self, username, password):
        response = self.client.post("/auth/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    def create_customer(self, phone="9000000001"):
        response = self.client.post("/customers", headers=self.headers, json={
            "firstName": "Asha",
            "lastName": "Verma",
            "phone": phone,
            "city": "Pune"
        })
        assert response.status_code == 201, response.text
        return response.json()["customer"]

    def create_ornament(self, customer_id, valuation="100000"):
        response = self.client.post("/ornaments", headers=self.headers, json={
            "customerId": customer_id,
            "name": "Necklace",
            "type": "NECKLACE",
            "metalType": "GOLD",
            "grossWeight": "25",
            "netWeight": "20",
            "valuationAmount": valuation
        })
        assert response.status_code == 201, response.text
        return response.json()["ornament"]

    def create_loan(self, customer_id, ornament_id, principal="70000"):
        return self.client.post("/loans", headers=self.headers, json={
            "customerId": customer_id,
            "principalAmount": principal,
            "interestRate": "12",
            "tenureMonths": 12,
            "ornamentIds": [ornament_id]
        })

    def test_health_and_info(self):
        response = self.client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

        info = self.client.get("/").json()
        assert info["endpoints"]["loans"] == "/loans"

    def test_login_rejects_bad_password(self):
        response = self.client.post("/auth/login", json={"username": "admin", "password": "nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials"}

    def test_me(self):
        response = self.client.get("/auth/me", headers=self.headers)
        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "admin"
        assert body["role"] == "ADMIN"
        assert "password_hash" not in body

    def test_requests_need_a_token(self):
        response = self.client.get("/customers")
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

        response = self.client.get("/customers", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid token"}

    def test_officer_can_not_change_settings(self):
        response = self.client.post("/users", headers=self.headers, json={
            "username": "officer",
            "email": "officer@example.com",
            "password": "s3cret",
            "role": "LOAN_OFFICER"
        })
        assert response.status_code == 201, response.text
        officer = self.login("officer", "s3cret")

        assert self.client.get("/settings", headers=officer).status_code == 200

        response = self.client.put("/settings", headers=officer, json={"loan_to_value_ratio": "90"})
        assert response.status_code == 403
        assert response.json() == {"error": "Insufficient permissions"}

        assert self.client.post("/import", headers=officer, json={"type": "customers", "records": []}).status_code == 403
        assert self.client.get("/audit", headers=officer).status_code == 403

    def test_admin_updates_settings(self):
        response = self.client.put("/settings", headers=self.headers, json={"loan_to_value_ratio": "85"})
        assert response.status_code == 200
        assert response.json()["settings"]["loan_to_value_ratio"] == "85"

        settings = self.client.get("/settings", headers=self.headers).json()
        assert settings["settings"]["loan_to_value_ratio"] == "85"

    def test_bad_setting_value_rejected(self):
        response = self.client.put("/settings", headers=self.headers, json={"loan_to_value_ratio": "abc"})
        assert response.status_code == 400
        assert response.json() == {"error": "loan_to_value_ratio must be a number, got 'abc'"}

        customer = self.create_customer()
        ornament = self.create_ornament(customer["id"])
        assert self.create_loan(customer["id"], ornament["id"]).status_code == 201

    def test_customer_crud(self):
        customer = self.create_customer()
        assert customer["customer_code"] == "CUS000001"

        duplicate = self.client.post("/customers", headers=self.headers, json={
            "firstName": "Other", "lastName": "Person", "phone": "9000000001"
        })
        assert duplicate.status_code == 400

        listing = self.client.get("/customers", headers=self.headers, params={"search": "asha"}).json()
        assert listing["pagination"]["total"] == 1
        assert listing["items"][0]["active_loans"] == 0

        response = self.client.put(f"/customers/{customer['id']}", headers=self.headers, json={"city": "Mumbai"})
        assert response.json()["customer"]["city"] == "Mumbai"

        response = self.client.delete(f"/customers/{customer['id']}", headers=self.headers)
        assert response.json() == {"message": "Customer deleted successfully"}

        response = self.client.get(f"/customers/{customer['id']}", headers=self.headers)
        assert response.status_code == 404
        assert response.json() == {"error": "Customer not found"}

    def test_missing_required_field(self):
        response = self.client.post("/customers", headers=self.headers, json={"firstName": "Asha"})
        assert response.status_code == 400
        assert response.json() == {"error": "First name, last name, and phone are required"}

    def test_loan_and_payment_workflow(self):
        customer = self.create_customer()
        ornament = self.create_ornament(customer["id"])
        assert ornament["valuation_amount"] == "100000.00"

        response = self.create_loan(customer["id"], ornament["id"])
        assert response.status_code == 201, response.text
        loan = response.json()["loan"]
        assert loan["status"] == "ACTIVE"
        assert loan["risk_zone"] == "GREEN"
        assert loan["loan_reference_number"] == "LN00000001"

        detail = self.client.get(f"/loans/{loan['id']}", headers=self.headers).json()
        assert detail["ornaments"][0]["status"] == "PLEDGED"
        assert detail["interest_ledger"][0]["interest_amount"] == "700.00"

        response = self.client.post("/payments", headers=self.headers, json={
            "loanId": loan["id"],
            "amount": "70000",
            "paymentType": "FULL_CLOSURE",
            "paymentMethod": "CASH",
            "principalAmount": "70000"
        })
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["loan"]["status"] == "CLOSED"
        assert body["payment"]["payment_code"] == "PAY00000001"

        payment_id = body["payment"]["id"]
        assert self.client.get(f"/payments/{payment_id}", headers=self.headers).status_code == 200
        assert self.client.get("/payments/missing", headers=self.headers).status_code == 404

        ornament = self.client.get(f"/ornaments/{ornament['id']}", headers=self.headers).json()
        assert ornament["status"] == "RELEASED"

        payments = self.client.get("/payments", headers=self.headers, params={"loanId": loan["id"]}).json()
        assert payments["items"][0]["loan_reference_number"] == "LN00000001"

    def test_loan_over_ltv_rejected(self):
        customer = self.create_customer()
        ornament = self.create_ornament(customer["id"])

        response = self.create_loan(customer["id"], ornament["id"], principal="80000")
        assert response.status_code == 400
        assert response.json() == {"error": "Loan to value ratio (80.00%) exceeds maximum allowed (75%)"}
        assert self.client.get("/loans", headers=self.headers).json()["pagination"]["total"] == 0

    def test_rates_and_risk_refresh(self):
        customer = self.create_customer()
        ornament = self.create_ornament(customer["id"])
        loan = self.create_loan(customer["id"], ornament["id"]).json()["loan"]

        response = self.client.post("/rates", headers=self.headers, json={
            "metalType": "GOLD", "karat": "22", "ratePerGram": "3000"
        })
        assert response.status_code == 201, response.text
        rates = self.client.get("/rates", headers=self.headers).json()
        assert rates["latest"][0]["rate_per_gram"] == "3000"

        summary = self.client.post("/loans/refresh-risk", headers=self.headers).json()
        assert summary["risk_zones"]["RED"] == 1

        listing = self.client.get("/loans", headers=self.headers, params={"riskZone": "RED"}).json()
        assert [item["id"] for item in listing["items"]] == [loan["id"]]

    def test_dashboard(self):
        customer = self.create_customer()
        ornament = self.create_ornament(customer["id"])
        self.create_loan(customer["id"], ornament["id"])

        response = self.client.get("/dashboard", headers=self.headers)
        assert response.status_code == 200
        stats = response.json()["stats"]
        assert stats["total_customers"] == 1
        assert stats["active_loans"] == 1
        assert stats["total_disbursed"] == "70000"

    def test_bulk_import(self):
        customer = self.create_customer()
        response = self.client.post("/import", headers=self.headers, json={
            "type": "loans",
            "records": [
                {"customerId": customer["customer_code"], "principalAmount": "50000"},
                {"customerId": "CUS999999", "principalAmount": "1000"},
                {"customerPhone": "9000000001", "principalAmount": "2000"},
            ]
        })
        assert response.status_code == 200, response.text
        results = response.json()["results"]
        assert results["success"] == 2
        assert results["failed"] == 1
        assert results["errors"] == ["Customer not found for loan: CUS999999"]

    def test_import_requires_records(self):
        response = self.client.post("/import", headers=self.headers, json={"type": "loans"})
        assert response.status_code == 400
        assert response.json() == {"error": "Type and records array are required"}

    def test_notes_and_branches(self):
        customer = self.create_customer()
        response = self.client.post("/notes", headers=self.headers, json={
            "customerId": customer["id"], "content": "Prefers calls after 6pm"
        })
        assert response.status_code == 201, response.text

        detail = self.client.get(f"/customers/{customer['id']}", headers=self.headers).json()
        assert detail["notes"][0]["content"] == "Prefers calls after 6pm"

        response = self.client.post("/notes", headers=self.headers, json={"loanId": "missing", "content": "x"})
        assert response.status_code == 400

        branches = self.client.get("/branches", headers=self.headers).json()["branches"]
        assert len(branches) == 1

    def test_notifications(self):
        response = self.client.post("/notifications", headers=self.headers, json={
            "title": "Rates updated", "message": "New gold rate posted", "channel": "SMS"
        })
        assert response.status_code == 201, response.text

        listing = self.client.get("/notifications", headers=self.headers, params={"status": "PENDING"}).json()
        assert [n["title"] for n in listing["notifications"]] == ["Rates updated"]

    def test_audit_log_and_verification(self):
        self.create_customer()

        listing = self.client.get("/audit", headers=self.headers, params={"module": "CUSTOMER"}).json()
        assert listing["pagination"]["total"] == 1
        assert listing["items"][0]["new_values"]["first_name"] == "Asha"

        verification = self.client.get("/audit/verify", headers=self.headers).json()
        assert verification["valid"] is True
