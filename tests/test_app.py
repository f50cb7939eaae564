import pytest

from debt_schedule_web.app import create_app

FIXED_PAYLOAD = {
    "principal": "12000000",
    "start_date": "2024-01-01",
    "end_date": "2025-01-01",
    "due_day": 5,
    "interest_strategy": "Fixed",
    "installment": "1100000",
}


@pytest.fixture
def client(store_url):
    app = create_app(database_url=store_url)
    app.config["TESTING"] = True
    return app.test_client()


def _save(client, debt_id="kpr-1", expected_version=0, **overrides):
    payload = {**FIXED_PAYLOAD, "expected_version": expected_version, **overrides}
    return client.post(f"/debts/{debt_id}/schedule", json=payload)


class TestSaveSchedule:
    def test_first_save(self, client):
        resp = _save(client, expected_version=0)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["version"] == 1
        assert len(body["installments"]) == 12
        assert body["installments"][0]["due_date"] == "2024-01-05"
        assert body["summary"]["implied_annual_rate"] == pytest.approx(10)

    def test_edit_keeps_paid_status(self, client):
        _save(client, expected_version=0)
        resp = client.post("/debts/kpr-1/installments/3/status", json={"status": "paid"})
        assert resp.status_code == 200
        version = resp.get_json()["version"]

        resp = _save(client, installment="1200000", expected_version=version)

        assert resp.status_code == 200
        third = resp.get_json()["installments"][2]
        assert third["amount"] == 1200000
        assert third["status"] == "paid"

    def test_stale_edit_rejected(self, client):
        _save(client, expected_version=0)
        client.post("/debts/kpr-1/installments/1/status", json={"status": "paid"})

        resp = _save(client, installment="1200000", expected_version=1)

        assert resp.status_code == 409
        assert resp.get_json()["current_version"] == 2
        stored = client.get("/debts/kpr-1/installments").get_json()
        assert stored["installments"][0]["amount"] == 1100000
        assert stored["installments"][0]["status"] == "paid"

    def test_missing_expected_version_rejected(self, client):
        _save(client)
        client.post("/debts/kpr-1/installments/1/status", json={"status": "paid"})
        payload = {**FIXED_PAYLOAD, "installment": "1200000"}

        resp = client.post("/debts/kpr-1/schedule", json=payload)

        assert resp.status_code == 400
        stored = client.get("/debts/kpr-1/installments").get_json()
        assert stored["version"] == 2
        assert stored["installments"][0]["amount"] == 1100000

    @pytest.mark.parametrize("value", [None, "1", 1.5, True])
    def test_non_integer_expected_version(self, client, value):
        resp = _save(client, expected_version=value)
        assert resp.status_code == 400
        assert client.get("/debts/kpr-1/installments").get_json()["version"] == 0

    @pytest.mark.parametrize("field", ["principal", "installment"])
    def test_non_finite_amount_rejected(self, client, field):
        resp = _save(client, **{field: "NaN"})
        assert resp.status_code == 422
        assert resp.get_json()["field"] == field
        assert client.get("/debts/kpr-1/installments").get_json()["installments"] == []

    def test_overlapping_tiers(self, client):
        resp = _save(
            client,
            interest_strategy="StepUp",
            step_up_tiers=[
                {"start_month": 1, "end_month": 6, "amount": 900000},
                {"start_month": 6, "end_month": 12, "amount": 1000000},
            ],
        )
        assert resp.status_code == 422
        body = resp.get_json()
        assert body["field"] == "tiers"
        assert body["tier_indices"] == [0, 1]
        assert client.get("/debts/kpr-1/installments").get_json()["installments"] == []

    def test_missing_principal(self, client):
        payload = {k: v for k, v in FIXED_PAYLOAD.items() if k != "principal"}
        payload["expected_version"] = 0
        resp = client.post("/debts/kpr-1/schedule", json=payload)
        assert resp.status_code == 422
        assert resp.get_json()["field"] == "principal"

    def test_step_up_uses_default_installment(self, client):
        resp = _save(
            client,
            principal="6000000",
            end_date="2024-07-01",
            installment="1100000",
            interest_strategy="StepUp",
            step_up_tiers=[{"start_month": 1, "end_month": 3, "amount": "900000"}],
        )
        assert resp.status_code == 200
        amounts = [i["amount"] for i in resp.get_json()["installments"]]
        assert amounts == [900000, 900000, 900000, 1100000, 1100000, 1100000]


class TestStatusRoutes:
    def test_illegal_transition(self, client):
        _save(client)
        client.post("/debts/kpr-1/installments/2/status", json={"status": "paid"})
        resp = client.post("/debts/kpr-1/installments/2/status", json={"status": "overdue"})
        assert resp.status_code == 409

    def test_unknown_status(self, client):
        _save(client)
        resp = client.post("/debts/kpr-1/installments/2/status", json={"status": "lost"})
        assert resp.status_code == 400

    def test_unknown_period(self, client):
        _save(client)
        resp = client.post("/debts/kpr-1/installments/40/status", json={"status": "paid"})
        assert resp.status_code == 404

    def test_notes(self, client):
        _save(client)
        resp = client.post("/debts/kpr-1/installments/2/notes", json={"notes": "cash"})
        assert resp.status_code == 200
        assert resp.get_json()["installment"]["notes"] == "cash"


class TestBulkRoutes:
    def test_pay_through(self, client):
        _save(client)
        resp = client.post("/debts/kpr-1/installments/3/pay-through")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["version"] == 2
        assert [i["status"] for i in body["installments"][:4]] == ["paid", "paid", "paid", "pending"]

    def test_reset_from(self, client):
        _save(client)
        client.post("/debts/kpr-1/installments/5/pay-through")
        resp = client.post("/debts/kpr-1/installments/2/reset-from")
        assert resp.status_code == 200
        statuses = [i["status"] for i in resp.get_json()["installments"][:5]]
        assert statuses == ["paid", "pending", "pending", "pending", "pending"]

    def test_mark_overdue(self, client):
        _save(client)
        resp = client.post("/debts/kpr-1/installments/mark-overdue", json={"today": "2024-03-01"})
        assert resp.status_code == 200
        statuses = [i["status"] for i in resp.get_json()["installments"][:3]]
        assert statuses == ["overdue", "overdue", "pending"]

    def test_mark_overdue_bad_date(self, client):
        _save(client)
        resp = client.post("/debts/kpr-1/installments/mark-overdue", json={"today": "soon"})
        assert resp.status_code == 400

    def test_unknown_period_or_debt(self, client):
        _save(client)
        assert client.post("/debts/kpr-1/installments/40/pay-through").status_code == 404
        assert client.post("/debts/kpr-1/installments/40/reset-from").status_code == 404
        assert client.post("/debts/nope/installments/mark-overdue").status_code == 404


def test_delete(client):
    _save(client)
    assert client.delete("/debts/kpr-1").status_code == 204
    assert client.get("/debts/kpr-1/installments").get_json() == {"version": 0, "installments": []}
