from datetime import datetime, timedelta

import pytest
from django.utils import timezone

from ops.contractors import ContractorRepository
from ops.functions_client import FunctionResult
from ops.invoices import (
    InvoiceRepository,
    calculate_invoice_totals,
    get_days_until_due,
    get_invoice_stats,
    get_invoice_type,
    group_invoices_by_status,
    is_overdue,
    sort_invoices_by_priority,
)
from ops.rating_requests import RatingRequestRepository

NOW = timezone.make_aware(datetime(2026, 3, 9, 12, 0))


@pytest.fixture
def repo(db, notifications):
    ratings = RatingRequestRepository(db=db, contractors=ContractorRepository(db=db))
    return InvoiceRepository(db=db, notifications=notifications, rating_requests=ratings)


def invoice(status="sent", due_in_days=None, total=100, **extra):
    data = {"status": status, "total": total, **extra}
    if due_in_days is not None:
        data["dueDate"] = NOW + timedelta(days=due_in_days)
    return data


class TestCalculations:
    def test_totals_with_discount(self):
        items = [{"total": 100}, {"total": 50.5}]
        assert calculate_invoice_totals(items, 20) == {"subtotal": 150.5, "total": 130.5}
        assert calculate_invoice_totals(items, 500)["total"] == 0

    def test_days_until_due(self):
        assert get_days_until_due(invoice(due_in_days=3), NOW) == 3
        assert get_days_until_due(invoice(status="paid", due_in_days=-3), NOW) is None
        assert get_days_until_due(invoice(), NOW) is None

    def test_overdue(self):
        assert is_overdue(invoice(due_in_days=-2), NOW)
        assert not is_overdue(invoice(due_in_days=0), NOW)
        assert not is_overdue(invoice(status="paid", due_in_days=-2), NOW)

    def test_invoice_type(self):
        assert get_invoice_type({"from": {"entity": "kd"}, "to": {"entity": "kr"}}) == "Lead Fee"
        assert get_invoice_type({"from": {"entity": "kr"}, "to": {"entity": "customer"}}) == "Customer Invoice"
        assert get_invoice_type({}) == "Invoice"


def test_priority_sort():
    paid = invoice(status="paid", due_in_days=-10, id="paid")
    overdue = invoice(due_in_days=-5, id="overdue")
    soon = invoice(due_in_days=2, id="soon")
    later = invoice(due_in_days=20, id="later")
    undated = invoice(id="undated")

    ordered = sort_invoices_by_priority([paid, later, undated, soon, overdue], NOW)
    assert [inv["id"] for inv in ordered] == ["overdue", "soon", "later", "undated", "paid"]


def test_group_by_status_moves_overdue():
    grouped = group_invoices_by_status([
        invoice(status="draft"),
        invoice(due_in_days=-1),
        invoice(due_in_days=5),
        invoice(status="paid"),
    ], NOW)
    assert [len(grouped[s]) for s in ("draft", "sent", "paid", "overdue")] == [1, 1, 1, 1]


def test_stats():
    stats = get_invoice_stats([
        invoice(status="draft", total=10),
        invoice(due_in_days=5, total=100),
        invoice(due_in_days=-5, total=200),
        invoice(total=50),
        invoice(status="overdue", total=25),
        invoice(status="paid", total=1000),
    ], NOW)
    assert stats == {
        "totalDraft": 1,
        "totalSent": 3,
        "totalPaid": 1,
        "totalOverdue": 2,
        "amountOutstanding": 375.0,
        "amountOverdue": 225.0,
    }


class TestRepository:
    def test_create_invoice(self, repo, db):
        created = repo.create_invoice({
            "from": {"entity": "kr", "name": "Key Renovations"},
            "to": {"entity": "customer", "name": "Ada"},
            "lineItems": [{"description": "Tile", "qty": 3, "rate": 50}, {"description": "Trip", "rate": 25}],
            "discount": 15,
        })
        stored = db.doc("invoices", created["id"])
        year = timezone.now().year
        assert stored["invoiceNumber"] == f"INV-{year}-0001"
        assert [item["total"] for item in stored["lineItems"]] == [150, 25]
        assert stored["subtotal"] == 175
        assert stored["total"] == 160
        assert stored["status"] == "draft"
        assert stored["dueDate"] > timezone.now() + timedelta(days=29)

        assert repo.create_invoice({"lineItems": []})["invoiceNumber"] == f"INV-{year}-0002"
        assert repo.create_invoice({"lineItems": []}, prefix="KD")["invoiceNumber"] == f"KD-{year}-0001"

    def test_update_recomputes_totals(self, repo, db):
        db.seed("invoices", "i1", {"lineItems": [{"total": 100}], "discount": 0, "subtotal": 100, "total": 100})
        updated = repo.update_invoice("i1", {"discount": 30})
        assert updated["subtotal"] == 100
        assert updated["total"] == 70

    def test_mark_sent_emails_recipient(self, repo, db, monkeypatch):
        calls = []

        def fake_send(invoice_id, id_token=None):
            calls.append((invoice_id, id_token))
            return FunctionResult(ok=True, status=200, body={"success": True})

        monkeypatch.setattr("ops.invoices.send_invoice_email", fake_send)
        db.seed("invoices", "i1", {"status": "draft", "invoiceNumber": "INV-2026-0001", "to": {"email": "a@b.c"}})

        result = repo.mark_sent("i1", id_token="tok")

        assert result.success
        assert result.emailed
        assert calls == [("i1", "tok")]
        assert db.doc("invoices", "i1")["status"] == "sent"
        assert db.doc("invoices", "i1")["sentAt"] is not None

    def test_mark_sent_without_email_skips_function(self, repo, db, monkeypatch):
        monkeypatch.setattr("ops.invoices.send_invoice_email", pytest.fail)
        db.seed("invoices", "i1", {"status": "draft", "to": {"entity": "kr"}})
        result = repo.mark_sent("i1")
        assert result.success
        assert not result.emailed

    def test_mark_sent_email_failure_keeps_status(self, repo, db, monkeypatch):
        monkeypatch.setattr(
            "ops.invoices.send_invoice_email",
            lambda invoice_id, id_token=None: FunctionResult(ok=False, status=502, error="function_failed"),
        )
        db.seed("invoices", "i1", {"status": "draft", "to": {"email": "a@b.c"}})

        result = repo.mark_sent("i1")
        assert not result.success
        assert (result.error, result.status) == ("function_failed", 502)
        assert db.doc("invoices", "i1")["status"] == "draft"

    def test_mark_sent_rejects_paid_and_missing(self, repo, db):
        db.seed("invoices", "i1", {"status": "paid"})
        assert repo.mark_sent("i1").status == 409
        assert repo.mark_sent("ghost").status == 404

    def test_mark_paid(self, repo, db):
        db.seed("invoices", "i1", {"status": "sent"})
        paid = repo.mark_paid("i1")
        assert paid["status"] == "paid"
        assert paid["paidAt"] is not None

    def test_mark_paid_stamps_rating_reminders_for_the_job(self, repo, db):
        earlier = NOW - timedelta(days=2)
        db.seed("invoices", "i1", {"status": "sent", "jobId": "j1"})
        db.seed("ratingRequests", "open", {"jobId": "j1", "status": "pending"})
        db.seed("ratingRequests", "reminded", {"jobId": "j1", "status": "pending", "reminderSentAt": earlier})
        db.seed("ratingRequests", "done", {"jobId": "j1", "status": "completed"})
        db.seed("ratingRequests", "other", {"jobId": "j2", "status": "pending"})

        repo.mark_paid("i1")

        assert db.doc("ratingRequests", "open")["reminderSentAt"] is not None
        assert db.doc("ratingRequests", "reminded")["reminderSentAt"] == earlier
        assert "reminderSentAt" not in db.doc("ratingRequests", "done")
        assert "reminderSentAt" not in db.doc("ratingRequests", "other")

    def test_mark_paid_without_job_leaves_ratings_alone(self, repo, db):
        db.seed("invoices", "i1", {"status": "sent"})
        db.seed("ratingRequests", "open", {"jobId": "j1", "status": "pending"})

        repo.mark_paid("i1")

        assert "reminderSentAt" not in db.doc("ratingRequests", "open")

    def test_sweep_overdue(self, repo, db, notifications):
        db.seed("invoices", "late", {"status": "sent", "invoiceNumber": "INV-1", "total": 80, "dueDate": NOW - timedelta(hours=1)})
        db.seed("invoices", "fine", {"status": "sent", "dueDate": NOW + timedelta(days=3)})
        db.seed("invoices", "draft", {"status": "draft", "dueDate": NOW - timedelta(days=3)})

        flipped = repo.sweep_overdue(NOW)

        assert [inv["id"] for inv in flipped] == ["late"]
        assert db.doc("invoices", "late")["status"] == "overdue"
        assert db.doc("invoices", "fine")["status"] == "sent"
        [(kind, data)] = notifications.admin_calls
        assert kind == "invoice_overdue"
        assert data["amount"] == "80.00"

    def test_list_invoices_filters(self, repo, db):
        db.seed("invoices", "a", {"status": "sent", "from": {"entity": "kd"}, "invoiceNumber": "KD-1", "createdAt": 1, "dueDate": NOW - timedelta(days=1)})
        db.seed("invoices", "b", {"status": "sent", "from": {"entity": "kts"}, "invoiceNumber": "KTS-1", "createdAt": 2, "dueDate": NOW + timedelta(days=1)})
        assert [i["id"] for i in repo.list_invoices({"fromEntity": "kd"})] == ["a"]
        assert [i["id"] for i in repo.list_invoices({"search": "kts"})] == ["b"]
        assert [i["id"] for i in repo.list_invoices({"overdue": True}, now=NOW)] == ["a"]

    def test_generated_invoices(self, repo, db):
        labor = repo.generate_labor_invoice("j1", "KR-2026-0001", 2000, 0, "Crew One")
        assert labor["invoiceNumber"].startswith("KTS-")
        assert len(labor["lineItems"]) == 1
        assert labor["to"] == {"entity": "kr", "name": "Key Renovations"}

        sub = repo.generate_subscription_invoice("s1", "Acme", "acme@example.com", 500, 1000)
        assert sub["total"] == 1500
        assert sub["to"]["email"] == "acme@example.com"
