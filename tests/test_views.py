"""
Endpoint tests through the Django test client with Firestore and FCM
replaced by the in-memory fakes.
"""
from datetime import timedelta

import pytest
from django.utils import timezone

from ops.functions_client import FunctionResult
from ops.notifications import get_default_preferences
from ops.push_service import fcm_service

JSON = "application/json"


@pytest.fixture(autouse=True)
def backend(firestore, app_push):
    return firestore


def seed_user(db, uid, role, tokens=("tok",)):
    db.seed("users", uid, {
        "role": role,
        "status": "active",
        "notificationPreferences": get_default_preferences(role),
        "fcmTokens": [{"token": t} for t in tokens],
    })


class TestHealth:
    def test_reports_integrations(self, client, monkeypatch):
        monkeypatch.setattr(fcm_service, "is_configured", lambda: False)
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["firestore"] == "connected"
        assert body["push"] == "not_configured"

    def test_get_only(self, client):
        assert client.post("/api/health").status_code == 405


def test_requires_authentication(client):
    response = client.get("/api/jobs")
    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


def test_partner_cannot_use_internal_routes(client, login):
    login("partner", partner_id="p1")
    assert client.get("/api/jobs").status_code == 403


class TestJobs:
    def test_sales_rep_creates_job_at_lead(self, client, login, backend):
        login("sales_rep", uid="rep-1")
        response = client.post("/api/jobs", {"customer": {"name": "Ada"}, "type": "kitchen", "status": "paid_in_full"}, content_type=JSON)

        assert response.status_code == 201
        job = response.json()["job"]
        assert job["status"] == "lead"
        assert job["salesRepId"] == "rep-1"
        assert job["jobNumber"].startswith("KR-")

    def test_rejects_unknown_type(self, client, login):
        login("admin")
        response = client.post("/api/jobs", {"customer": {"name": "Ada"}, "type": "pool"}, content_type=JSON)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_job_type"

    def test_contractor_cannot_create(self, client, login):
        login("contractor")
        assert client.post("/api/jobs", {"customer": {"name": "Ada"}}, content_type=JSON).status_code == 403

    def test_list_is_scoped_by_role(self, client, login, backend):
        backend.seed("jobs", "mine", {"salesRepId": "rep-1", "crewIds": ["c1"], "createdAt": timezone.now()})
        backend.seed("jobs", "theirs", {"salesRepId": "rep-2", "crewIds": [], "createdAt": timezone.now()})
        backend.seed("contractors", "c1", {"userId": "crew-user"})

        login("sales_rep", uid="rep-1")
        assert [j["id"] for j in client.get("/api/jobs").json()["jobs"]] == ["mine"]

        login("contractor", uid="crew-user")
        assert [j["id"] for j in client.get("/api/jobs").json()["jobs"]] == ["mine"]

        login("owner")
        assert client.get("/api/jobs").json()["count"] == 2

    def test_other_reps_job_is_hidden(self, client, login, backend):
        backend.seed("jobs", "j1", {"salesRepId": "rep-2"})
        login("sales_rep", uid="rep-1")
        assert client.get("/api/jobs/j1").status_code == 404

    def test_patch_ignores_status(self, client, login, backend):
        backend.seed("jobs", "j1", {"status": "sold", "notes": "", "dates": {}})
        login("admin")
        response = client.patch("/api/jobs/j1", {"status": "complete", "notes": "gate code"}, content_type=JSON)
        assert response.json()["job"]["status"] == "sold"
        assert response.json()["job"]["notes"] == "gate code"

    def test_transition(self, client, login, backend):
        backend.seed("jobs", "j1", {"status": "production", "pmId": "pm-1", "dates": {}})
        login("pm", uid="pm-1")

        response = client.post("/api/jobs/j1/transition", {"newStatus": "scheduled", "note": "ok"}, content_type=JSON)

        assert response.status_code == 200
        assert response.json()["job"]["status"] == "scheduled"
        comms = client.get("/api/jobs/j1/communications").json()["communications"]
        assert comms[0]["content"] == "Status changed from production to scheduled: ok"

    def test_transition_errors(self, client, login, backend):
        backend.seed("jobs", "j1", {"status": "sold", "salesRepId": "rep-1"})
        login("sales_rep", uid="rep-1")

        forbidden = client.post("/api/jobs/j1/transition", {"newStatus": "front_end_hold"}, content_type=JSON)
        assert forbidden.status_code == 403
        skip = client.post("/api/jobs/j1/transition", {"newStatus": "production"}, content_type=JSON)
        assert skip.status_code == 400
        bogus = client.post("/api/jobs/j1/transition", {"newStatus": "done"}, content_type=JSON)
        assert bogus.status_code == 400
        assert bogus.json()["error"] == "invalid_status"
        backwards = client.post("/api/jobs/j1/transition", {"newStatus": "lead"}, content_type=JSON)
        assert backwards.status_code == 400

    def test_available_transitions(self, client, login, backend):
        backend.seed("jobs", "j1", {"status": "sold"})
        login("admin")
        body = client.get("/api/jobs/j1/transitions").json()
        assert body == {
            "status": "sold",
            "next": "front_end_hold",
            "previous": "lead",
            "available": ["front_end_hold", "production"],
        }

    def test_crew_requires_list(self, client, login, backend):
        backend.seed("jobs", "j1", {"crewIds": []})
        login("admin")
        assert client.put("/api/jobs/j1/crew", {"crewIds": "c1"}, content_type=JSON).status_code == 400
        response = client.put("/api/jobs/j1/crew", {"crewIds": ["c1"]}, content_type=JSON)
        assert response.json()["job"]["crewIds"] == ["c1"]

    def test_add_communication(self, client, login, backend):
        backend.seed("jobs", "j1", {})
        login("admin", uid="boss")
        response = client.post("/api/jobs/j1/communications", {"content": "Called customer"}, content_type=JSON)
        assert response.status_code == 201
        [entry] = client.get("/api/jobs/j1/communications").json()["communications"]
        assert entry["type"] == "note"
        assert entry["userId"] == "boss"


class TestLeads:
    def test_create_validates_source(self, client, login):
        login("admin")
        bad = client.post("/api/leads", {"customer": {"name": "Ada"}, "source": "billboard"}, content_type=JSON)
        assert bad.json()["error"] == "invalid_source"
        good = client.post("/api/leads", {"customer": {"name": "Ada"}, "source": "meta"}, content_type=JSON)
        assert good.status_code == 201
        assert good.json()["lead"]["status"] == "new"

    def test_assign_pushes_hot_lead(self, client, login, backend, app_push):
        seed_user(backend, "rep-1", "sales_rep")
        backend.seed("leads", "l1", {"quality": "hot", "customer": {"name": "Ada"}})
        login("admin")

        response = client.post("/api/leads/l1/assign", {"assignedTo": "rep-1"}, content_type=JSON)

        assert response.json()["lead"]["assignedType"] == "internal"
        [sent] = app_push.sent
        assert sent["tokens"] == ["tok"]
        assert sent["data"]["type"] == "lead_hot"

    def test_rep_sees_only_assigned(self, client, login, backend):
        backend.seed("leads", "a", {"assignedTo": "rep-1", "status": "assigned", "createdAt": timezone.now()})
        backend.seed("leads", "b", {"assignedTo": "rep-2", "status": "assigned", "createdAt": timezone.now()})
        login("sales_rep", uid="rep-1")

        body = client.get("/api/leads").json()
        assert [lead["id"] for lead in body["leads"]] == ["a"]
        assert body["byStatus"]["assigned"] == 1
        assert client.get("/api/leads/b").status_code == 404

    def test_return_requires_reason(self, client, login, backend):
        backend.seed("leads", "l1", {"assignedTo": "rep-1"})
        login("sales_rep", uid="rep-1")
        assert client.post("/api/leads/l1/return", {}, content_type=JSON).status_code == 400
        response = client.post("/api/leads/l1/return", {"reason": "duplicate"}, content_type=JSON)
        assert response.json()["lead"]["status"] == "returned"

    def test_convert_once(self, client, login, backend):
        backend.seed("leads", "l1", {"assignedTo": "rep-1", "customer": {"name": "Ada"}})
        login("sales_rep", uid="rep-1")

        first = client.post("/api/leads/l1/convert", {"jobType": "bathroom"}, content_type=JSON)
        assert first.status_code == 201
        job_id = first.json()["job"]["id"]

        again = client.post("/api/leads/l1/convert", {"jobType": "bathroom"}, content_type=JSON)
        assert again.status_code == 409
        assert again.json()["jobId"] == job_id


class TestInvoices:
    payload = {
        "from": {"entity": "kr", "name": "Key Renovations"},
        "to": {"entity": "customer", "name": "Ada", "email": "ada@example.com"},
        "lineItems": [{"description": "Bathroom remodel", "qty": 1, "rate": 12000}],
    }

    def test_admin_only(self, client, login):
        login("sales_rep")
        assert client.get("/api/invoices").status_code == 403

    def test_create_validates(self, client, login):
        login("admin")
        bad_entity = client.post("/api/invoices", {**self.payload, "from": {"entity": "acme"}}, content_type=JSON)
        assert bad_entity.json()["error"] == "invalid_from_entity"
        no_items = client.post("/api/invoices", {**self.payload, "lineItems": []}, content_type=JSON)
        assert no_items.status_code == 400

        response = client.post("/api/invoices", self.payload, content_type=JSON)
        assert response.status_code == 201
        invoice = response.json()["invoice"]
        assert invoice["total"] == 12000
        assert invoice["invoiceType"] == "Customer Invoice"
        assert invoice["daysUntilDue"] == 30

    def test_send_then_pay(self, client, login, backend, monkeypatch):
        monkeypatch.setattr(
            "ops.invoices.send_invoice_email",
            lambda invoice_id, id_token=None: FunctionResult(ok=True, status=200),
        )
        backend.seed("invoices", "i1", {"status": "draft", "to": {"email": "ada@example.com"}, "total": 10})
        login("admin")

        sent = client.post("/api/invoices/i1/send")
        assert sent.json()["emailed"] is True
        assert sent.json()["invoice"]["status"] == "sent"

        paid = client.post("/api/invoices/i1/pay")
        assert paid.json()["invoice"]["status"] == "paid"
        assert client.post("/api/invoices/i1/pay").status_code == 409
        assert client.patch("/api/invoices/i1", {"discount": 5}, content_type=JSON).status_code == 409

    def test_stats_and_overdue_filter(self, client, login, backend):
        now = timezone.now()
        backend.seed("invoices", "late", {"status": "sent", "total": 50, "dueDate": now - timedelta(days=2), "createdAt": now})
        backend.seed("invoices", "ok", {"status": "sent", "total": 20, "dueDate": now + timedelta(days=2), "createdAt": now})
        login("owner")

        stats = client.get("/api/invoices/stats").json()
        assert stats["totalSent"] == 2
        assert stats["amountOverdue"] == 50
        overdue = client.get("/api/invoices?overdue=true").json()
        assert [inv["id"] for inv in overdue["invoices"]] == ["late"]

    def test_missing(self, client, login):
        login("admin")
        assert client.get("/api/invoices/nope").json() == {"error": "invoice_not_found"}


class TestPayouts:
    def test_status_changes(self, client, login, backend):
        backend.seed("payouts", "p1", {"status": "pending", "amount": 100})
        login("admin", uid="boss")

        missing_reason = client.post("/api/payouts/p1/status", {"status": "failed"}, content_type=JSON)
        assert missing_reason.status_code == 400
        done = client.post("/api/payouts/p1/status", {"status": "completed", "reference": "ACH-1"}, content_type=JSON)
        assert done.json()["payout"]["processedBy"] == "boss"
        assert client.post("/api/payouts/nope/status", {"status": "processing"}, content_type=JSON).status_code == 404

    def test_list_with_summary(self, client, login, backend):
        backend.seed("payouts", "p1", {"status": "pending", "amount": 100, "createdAt": timezone.now()})
        login("owner")
        body = client.get("/api/payouts").json()
        assert body["count"] == 1
        assert body["summary"]["pendingAmount"] == 100
        assert client.get("/api/payouts/summary").json()["totalPending"] == 1


class TestContractors:
    def test_detail_includes_tier(self, client, login, backend):
        backend.seed("contractors", "c1", {"rating": {"overall": 4.6}})
        login("pm")
        body = client.get("/api/contractors/c1").json()["contractor"]
        assert body["tier"] == "elite"
        assert body["commissionRate"] == 0.10

    def test_contractor_cannot_change_own_standing(self, client, login, backend):
        backend.seed("contractors", "c1", {"userId": "crew-user", "status": "pending", "phone": ""})
        login("contractor", uid="crew-user")
        response = client.patch("/api/contractors/c1", {"status": "active", "phone": "555"}, content_type=JSON)
        contractor = response.json()["contractor"]
        assert contractor["status"] == "pending"
        assert contractor["phone"] == "555"

    def test_availability_round_trip(self, client, login, backend):
        backend.seed("contractors", "c1", {"userId": "crew-user"})
        login("contractor", uid="crew-user")

        put = client.put(
            "/api/contractors/c1/availability",
            {"date": "2026-04-01", "blocks": {"am": "busy"}},
            content_type=JSON,
        )
        assert put.status_code == 200
        body = client.get("/api/contractors/c1/availability?date=2026-04-01").json()
        assert body["blocks"]["am"] == "busy"
        assert client.get("/api/contractors/c1/availability?date=April").status_code == 400

    def test_availability_rejects_bad_block(self, client, login, backend):
        backend.seed("contractors", "c1", {})
        login("admin")
        response = client.put(
            "/api/contractors/c1/availability",
            {"date": "2026-04-01", "blocks": {"night": "busy"}},
            content_type=JSON,
        )
        assert response.json()["error"] == "invalid_block"

    def test_recommendations_need_location(self, client, login):
        login("admin")
        assert client.get("/api/contractors/recommendations?date=bad").status_code == 400
        response = client.get("/api/contractors/recommendations?date=2026-04-01&block=am&lat=35.4&lng=-97.5")
        assert response.status_code == 200
        assert response.json()["recommendations"] == []

    def test_create_validates_trades(self, client, login):
        login("admin")
        response = client.post(
            "/api/contractors",
            {"businessName": "Bo's Tile", "address": {"lat": 35.2, "lng": -97.4}, "trades": ["plumber"]},
            content_type=JSON,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_trade"
