from datetime import datetime

import pytest
from django.utils import timezone

from ops.chat_context import (
    ChatContextService,
    summarize_campaigns,
    summarize_invoices,
    summarize_leads,
)


def aware(*args):
    return timezone.make_aware(datetime(*args))


NOW = aware(2026, 3, 15, 12)
MONTH_START = aware(2026, 3, 1)


@pytest.fixture
def service(db):
    return ChatContextService(db=db)


@pytest.fixture
def seeded(db):
    db.seed("jobs", "j1", {
        "jobNumber": "KR-1", "status": "scheduled", "salesRepId": "rep-1", "pmId": "pm-1", "crewIds": ["c1"],
        "customer": {"name": "Ada"}, "costs": {"materialProjected": 1000, "laborProjected": 500},
        "dates": {"scheduledStart": aware(2026, 3, 20)},
        "commission": {"amount": 150, "status": "pending"},
    })
    db.seed("jobs", "j2", {
        "jobNumber": "KR-2", "status": "complete", "salesRepId": "rep-2", "crewIds": ["c1"],
        "costs": {"materialActual": 800, "laborActual": 700},
        "dates": {"actualCompletion": aware(2026, 3, 4)},
    })
    db.seed("leads", "l1", {"status": "converted", "assignedTo": "rep-1", "createdAt": aware(2026, 3, 2)})
    db.seed("leads", "l2", {"status": "new", "assignedTo": "rep-2", "createdAt": aware(2026, 2, 2)})
    db.seed("contractors", "c1", {"userId": "crew-user", "status": "active", "trades": ["installer"]})
    db.seed("invoices", "i1", {"status": "sent", "total": 400, "from": {"contractorId": "c1"}})
    return db


def test_admin_sees_everything(service, seeded):
    context = service.get_chat_context_for_user("owner-1", "Olive", "owner", now=NOW)

    assert context["user"] == {"name": "Olive", "role": "owner"}
    assert context["timestamp"] == NOW.isoformat()
    assert set(context) >= {"jobs", "leads", "invoices", "contractors", "campaigns"}
    assert context["jobs"]["total"] == 2
    assert context["jobs"]["revenueThisMonth"] == 1500
    assert context["jobs"]["recentJobs"][0]["jobNumber"] == "KR-1"
    assert context["leads"]["conversionRate"] == 50.0
    assert context["contractors"] == {"active": 1, "pending": 0, "byTrade": {"installer": 1}}


def test_sales_rep_only_sees_own(service, seeded):
    context = service.get_chat_context_for_user("rep-1", "Sam", "sales_rep", now=NOW)

    assert set(context) == {"user", "timestamp", "jobs", "leads", "commissions"}
    assert context["jobs"]["total"] == 1
    assert context["leads"]["total"] == 1
    assert context["commissions"] == {"pendingAmount": 150.0, "paidThisMonth": 0.0, "pendingCount": 1}


def test_pm_sees_managed_jobs(service, seeded):
    context = service.get_chat_context_for_user("pm-1", "Pat", "pm", now=NOW)
    assert set(context) == {"user", "timestamp", "jobs"}
    assert context["jobs"]["total"] == 1


def test_contractor_sees_crew_jobs_and_invoices(service, seeded):
    context = service.get_chat_context_for_user("crew-user", "Cal", "contractor", now=NOW)

    my_jobs = context["myJobs"]
    assert my_jobs["assigned"] == 1
    assert my_jobs["completedThisMonth"] == 1
    assert my_jobs["upcomingJobs"] == [
        {"jobNumber": "KR-1", "customer": "Ada", "scheduledDate": "2026-03-20", "type": "other"}
    ]
    assert context["myInvoices"] == {"pending": 1, "pendingAmount": 400.0, "paidThisMonth": 0}


def test_contractor_without_profile(service, db):
    context = service.get_chat_context_for_user("nobody", "N", "contractor", now=NOW)
    assert context["myJobs"]["upcomingJobs"] == []
    assert context["myInvoices"]["pending"] == 0


def test_unknown_role_gets_only_user(service, seeded):
    assert set(service.get_chat_context_for_user("p", "P", "partner", now=NOW)) == {"user", "timestamp"}


def test_failed_section_is_left_out(service, seeded, monkeypatch):
    def boom(*args):
        raise RuntimeError("index missing")

    monkeypatch.setattr("ops.chat_context.summarize_invoices", boom)
    context = service.get_chat_context_for_user("owner-1", "Olive", "admin", now=NOW)

    assert "invoices" not in context
    assert context["jobs"]["total"] == 2


def test_summarize_invoices():
    summary = summarize_invoices([
        {"status": "sent", "total": 100, "dueDate": aware(2026, 3, 1)},
        {"status": "overdue", "total": 50},
        {"status": "paid", "total": 75, "paidAt": aware(2026, 3, 3), "dueDate": aware(2026, 2, 1)},
    ], MONTH_START, NOW)
    assert summary["outstanding"] == 150
    assert summary["overdueCount"] == 1
    assert summary["overdueAmount"] == 100
    assert summary["paidThisMonth"] == 75
    assert summary["recentInvoices"][0]["dueDate"] == "2026-03-01"
    assert summary["recentInvoices"][2]["dueDate"] == "N/A"


def test_summarize_leads_rounds_conversion():
    leads = [{"status": "converted"}, {"status": "new"}, {"status": "new"}]
    assert summarize_leads(leads, MONTH_START)["conversionRate"] == 33.3
    assert summarize_leads([], MONTH_START)["conversionRate"] == 0.0


def test_summarize_campaigns():
    summary = summarize_campaigns([
        {"startDate": aware(2026, 3, 1), "endDate": None, "spend": 300, "leadsGenerated": 7},
        {"startDate": aware(2026, 1, 1), "endDate": aware(2026, 2, 1), "spend": 100, "leadsGenerated": 3},
        {"spend": 999, "leadsGenerated": 99},
    ], NOW)
    assert summary == {"active": 1, "totalSpend": 400.0, "leadsGenerated": 10, "avgCPL": 40.0}
