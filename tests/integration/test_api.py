"""Integration tests for API endpoints"""

from fastapi.testclient import TestClient

FIRM_ID = "firm-1"


def _create_expense(client: TestClient, total="100.00", **overrides) -> dict:
    body = {
        "firm_id": FIRM_ID,
        "party_name": "Agroinsumos del Este",
        "party_tax_id": "211234560019",
        "currency": "UYU",
        "total_amount": total,
        "invoice_series": "A",
        "invoice_number": "1001",
        "invoice_date": "2025-02-01",
        "due_date": "2025-03-01",
        "category": "Fertilizantes",
        "tax_rate": 22,
    }
    body.update(overrides)
    response = client.post("/v1/expenses", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def _approved_expense(client: TestClient, total="100.00") -> dict:
    expense = _create_expense(client, total)
    response = client.post(f"/v1/expenses/{expense['id']}/approve", json={"approver_id": "user-1"})
    assert response.status_code == 200
    return response.json()


def _create_account(client: TestClient, balance="1000.00", **overrides) -> dict:
    body = {
        "firm_id": FIRM_ID,
        "name": "Cuenta BROU",
        "account_type": "BANK",
        "currency": "UYU",
        "initial_balance": balance,
        "bank_name": "BROU",
        "account_number": "001-123456",
    }
    body.update(overrides)
    response = client.post("/v1/accounts", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-ID" in response.headers


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "http_request_duration_seconds" in response.text


def test_payment_terms_preview(client: TestClient):
    response = client.get("/v1/payment-terms/33_33_34", params={"total_amount": "100.00", "base_date": "2025-01-01"})

    assert response.status_code == 200
    installments = response.json()["installments"]
    assert [i["amount"] for i in installments] == ["33.00", "33.00", "34.00"]
    assert [i["due_date"] for i in installments] == ["2025-01-31", "2025-03-02", "2025-04-01"]


def test_payment_terms_unknown_code_is_empty(client: TestClient):
    response = client.get("/v1/payment-terms/45_dias", params={"total_amount": "100.00"})

    assert response.status_code == 200
    assert response.json()["installments"] == []


def test_purchase_order_schedule(client: TestClient):
    response = client.post(
        "/v1/purchase-orders/schedule",
        json={
            "purchase_order_id": "po-1",
            "firm_id": FIRM_ID,
            "order_number": "OC-1",
            "supplier_name": "Semillas Sur",
            "currency": "USD",
            "total_amount": "10.01",
            "order_date": "2025-01-01",
            "payment_terms": "50_50",
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert [d["total_amount"] for d in data] == ["5.01", "5.00"]
    assert all(d["status"] == "REGISTERED" for d in data)


def test_expense_payment_flow(client: TestClient):
    expense = _approved_expense(client)

    partial = client.post(f"/v1/expenses/{expense['id']}/payments", json={"amount": "40.00", "reference": "TRX-1"})
    assert partial.status_code == 201
    assert partial.json()["document"]["status"] == "PARTIALLY_PAID"
    assert partial.json()["payment"]["balance_after"] == "60.00"

    final = client.post(
        f"/v1/expenses/{expense['id']}/payments", json={"amount": "60.00", "payment_method": "check"}
    )
    assert final.json()["document"]["status"] == "FULLY_PAID"
    assert final.json()["document"]["balance"] == "0.00"

    history = client.get(f"/v1/expenses/{expense['id']}/payments").json()
    assert [h["amount"] for h in history] == ["40.00", "60.00"]


def test_overpayment_returns_conflict(client: TestClient):
    expense = _approved_expense(client)

    response = client.post(f"/v1/expenses/{expense['id']}/payments", json={"amount": "100.01"})

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["error"] == "amount_exceeds_balance"
    assert detail["document_id"] == expense["id"]
    assert client.get(f"/v1/expenses/{expense['id']}").json()["paid_amount"] == "0.00"


def test_sub_cent_amount_is_unprocessable(client: TestClient):
    expense = _approved_expense(client)

    response = client.post(f"/v1/expenses/{expense['id']}/payments", json={"amount": "10.005"})

    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "invalid_amount"


def test_unknown_document_is_not_found(client: TestClient):
    response = client.get("/v1/income/9b2f5c1e-8e0b-4d7e-9c55-0a4a1b7f6f10")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "document_not_found"


def test_cancel_requires_reason_and_blocks_settled(client: TestClient):
    expense = _approved_expense(client)

    missing = client.post(f"/v1/expenses/{expense['id']}/cancel", json={"actor_id": "user-1", "reason": " "})
    assert missing.status_code == 422
    assert missing.json()["detail"]["error"] == "missing_reason"

    client.post(f"/v1/expenses/{expense['id']}/payments", json={"amount": "100.00"})
    settled = client.post(f"/v1/expenses/{expense['id']}/cancel", json={"actor_id": "user-1", "reason": "error"})
    assert settled.status_code == 409
    assert settled.json()["detail"]["error"] == "invalid_state_transition"


def test_income_collection_into_account(client: TestClient):
    account = _create_account(client, "100.00")
    income = client.post(
        "/v1/income",
        json={"firm_id": FIRM_ID, "party_name": "Frigorífico Tacuarembó", "total_amount": "250.00"},
    ).json()
    client.post(f"/v1/income/{income['id']}/approve", json={"approver_id": "user-1"})

    response = client.post(
        f"/v1/income/{income['id']}/payments", json={"amount": "250.00", "account_id": account["id"]}
    )

    assert response.status_code == 201
    assert response.json()["document"]["status"] == "COLLECTED"
    assert client.get(f"/v1/accounts/{account['id']}").json()["current_balance"] == "350.00"
    outstanding = client.get("/v1/income/outstanding", params={"firm_id": FIRM_ID}).json()
    assert outstanding["outstanding"] == "0.00"


def test_document_validation(client: TestClient):
    base = {"firm_id": FIRM_ID, "party_name": "Agroinsumos", "total_amount": "10.00"}

    assert client.post("/v1/expenses", json={**base, "party_name": "AB"}).status_code == 422
    assert client.post("/v1/expenses", json={**base, "party_tax_id": "12345"}).status_code == 422
    assert client.post("/v1/expenses", json={**base, "currency": "EUR"}).status_code == 422
    assert client.post("/v1/expenses", json={**base, "invoice_number": "A-12"}).status_code == 422
    assert client.post("/v1/expenses", json={**base, "tax_rate": 18}).status_code == 422
    assert client.post("/v1/expenses", json={**base, "party_tax_id": "21123456001K"}).status_code == 201


def test_bank_account_needs_bank_details(client: TestClient):
    response = client.post(
        "/v1/accounts",
        json={"firm_id": FIRM_ID, "name": "Cuenta BROU", "account_type": "BANK", "currency": "UYU"},
    )
    assert response.status_code == 422

    cash = _create_account(client, "50.00", name="Caja chica", account_type="CASH", bank_name=None, account_number=None)
    assert cash["account_type"] == "CASH"


def test_payment_order_flow(client: TestClient):
    account = _create_account(client, "500.00")
    first = _approved_expense(client, "100.00")
    second = _approved_expense(client, "300.00")

    created = client.post(
        "/v1/payment-orders",
        json={
            "firm_id": FIRM_ID,
            "beneficiary_name": "Agroinsumos del Este",
            "account_id": account["id"],
            "expenses": [{"expense_id": first["id"]}, {"expense_id": second["id"], "amount": "120.00"}],
            "order_date": "2025-02-01",
            "concept": "Pago fertilizantes",
        },
    )
    assert created.status_code == 201, created.text
    order = created.json()
    assert order["order_number"] == "OP-2025-00001"
    assert order["amount"] == "220.00"
    assert order["status"] == "DRAFT"

    not_yet = client.post(f"/v1/payment-orders/{order['id']}/execute", json={})
    assert not_yet.status_code == 409

    client.post(f"/v1/payment-orders/{order['id']}/approve", json={"approver_id": "user-2"})
    executed = client.post(f"/v1/payment-orders/{order['id']}/execute", json={"actor_id": "user-3"})

    assert executed.status_code == 200
    data = executed.json()
    assert data["order"]["status"] == "EXECUTED"
    assert data["account_balance"] == "280.00"
    assert {d["status"] for d in data["documents"]} == {"FULLY_PAID", "PARTIALLY_PAID"}


def test_payment_order_insufficient_funds(client: TestClient):
    account = _create_account(client, "50.00")
    expense = _approved_expense(client, "100.00")
    order = client.post(
        "/v1/payment-orders",
        json={
            "firm_id": FIRM_ID,
            "beneficiary_name": "Agroinsumos",
            "account_id": account["id"],
            "expenses": [{"expense_id": expense["id"]}],
        },
    ).json()
    client.post(f"/v1/payment-orders/{order['id']}/approve", json={"approver_id": "user-2"})

    response = client.post(f"/v1/payment-orders/{order['id']}/execute", json={})

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "insufficient_funds"
    assert client.get(f"/v1/payment-orders/{order['id']}").json()["status"] == "APPROVED"
    assert client.get(f"/v1/accounts/{account['id']}").json()["current_balance"] == "50.00"


def test_payment_order_currency_mismatch(client: TestClient):
    account = _create_account(client, "500.00", currency="USD")
    expense = _approved_expense(client, "100.00")

    response = client.post(
        "/v1/payment-orders",
        json={
            "firm_id": FIRM_ID,
            "beneficiary_name": "Agroinsumos",
            "account_id": account["id"],
            "expenses": [{"expense_id": expense["id"]}],
        },
    )

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "currency_mismatch"


def test_account_adjustment_and_summary(client: TestClient):
    account = _create_account(client, "100.00")
    _create_account(client, "30.00", name="Caja", account_type="CASH", currency="USD")

    adjusted = client.post(
        f"/v1/accounts/{account['id']}/adjustments", json={"amount": "-25.00", "reason": "comisión bancaria"}
    )
    assert adjusted.status_code == 200
    assert adjusted.json()["current_balance"] == "75.00"

    locked = client.put(f"/v1/accounts/{account['id']}/initial-balance", json={"initial_balance": "500.00"})
    assert locked.status_code == 409

    summary = client.get("/v1/accounts/summary", params={"firm_id": FIRM_ID}).json()
    assert summary["account_count"] == 2
    assert summary["totals_by_currency"] == {"UYU": "75.00", "USD": "30.00"}


def test_alert_check_endpoint_is_idempotent(client: TestClient):
    _approved_expense(client)

    first = client.post("/v1/alerts/check", json={"firm_id": FIRM_ID, "today": "2025-03-10"})
    second = client.post("/v1/alerts/check", json={"firm_id": FIRM_ID, "today": "2025-03-10"})

    assert first.json()["created"]["invoices"] == 1
    assert second.json()["created"]["invoices"] == 0

    alerts = client.get("/v1/alerts", params={"firm_id": FIRM_ID}).json()["alerts"]
    assert len(alerts) == 1
    assert alerts[0]["rule_name"] == "FACTURA_VENCIDA"
    assert alerts[0]["priority"] == "high"

    resolved = client.post(f"/v1/alerts/{alerts[0]['id']}/resolve")
    assert resolved.json()["status"] == "completed"
    assert client.get("/v1/alerts", params={"firm_id": FIRM_ID}).json()["alerts"] == []


def test_payment_order_with_another_firms_account_is_not_found(client: TestClient):
    account = _create_account(client, "500.00", firm_id="firm-2")
    expense = _approved_expense(client)

    response = client.post(
        "/v1/payment-orders",
        json={
            "firm_id": FIRM_ID,
            "beneficiary_name": "Agroinsumos",
            "account_id": account["id"],
            "expenses": [{"expense_id": expense["id"]}],
        },
    )

    assert response.status_code == 404
    assert response.json()["detail"]["account_id"] == account["id"]


def test_payment_order_rejects_repeated_expense(client: TestClient):
    account = _create_account(client, "500.00")
    expense = _approved_expense(client)

    response = client.post(
        "/v1/payment-orders",
        json={
            "firm_id": FIRM_ID,
            "beneficiary_name": "Agroinsumos",
            "account_id": account["id"],
            "expenses": [
                {"expense_id": expense["id"], "amount": "10.00"},
                {"expense_id": expense["id"], "amount": "20.00"},
            ],
        },
    )

    assert response.status_code == 422
    assert client.get("/v1/payment-orders", params={"firm_id": FIRM_ID}).json() == []


def test_out_of_range_amount_is_unprocessable(client: TestClient):
    expense = _approved_expense(client)

    response = client.post(f"/v1/expenses/{expense['id']}/payments", json={"amount": "1e30"})

    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "invalid_amount"


def test_tax_rate_is_stored(client: TestClient):
    expense = _create_expense(client, tax_rate=10)

    assert expense["tax_rate"] == 10
    assert client.get(f"/v1/expenses/{expense['id']}").json()["tax_rate"] == 10
