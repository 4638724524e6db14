from datetime import datetime

import pytest
from django.utils import timezone

from ops.contractors import ContractorRepository
from ops.invoices import InvoiceRepository
from ops.jobs import (
    JobRepository,
    add_years,
    can_transition_status,
    can_user_transition,
    flatten_dates,
    get_available_transitions,
    get_next_status,
    get_previous_status,
    status_updates,
)
from ops.payouts import PayoutRepository
from ops.rating_requests import RatingRequestRepository

NOW = timezone.make_aware(datetime(2026, 3, 9, 10, 0))


@pytest.fixture
def repo(db, notifications):
    invoices = InvoiceRepository(db=db, notifications=notifications)
    return JobRepository(
        db=db,
        notifications=notifications,
        payouts=PayoutRepository(db=db, invoices=invoices),
        rating_requests=RatingRequestRepository(db=db, contractors=ContractorRepository(db=db)),
    )


class TestStatusRules:
    def test_one_step_forward_only(self):
        assert can_transition_status("lead", "sold")
        assert not can_transition_status("lead", "production")
        assert not can_transition_status("scheduled", "production")
        assert not can_transition_status("paid_in_full", "lead")
        assert not can_transition_status("lead", "bogus")

    def test_neighbours(self):
        assert get_next_status("complete") == "paid_in_full"
        assert get_next_status("paid_in_full") is None
        assert get_previous_status("lead") is None
        assert get_previous_status("sold") == "lead"

    def test_permissions(self):
        assert can_user_transition("lead", "sold", "sales_rep")
        assert not can_user_transition("sold", "front_end_hold", "sales_rep")
        assert can_user_transition("started", "complete", "pm")
        assert not can_user_transition("started", "complete", "contractor")
        assert get_available_transitions("sold", "pm") == ["front_end_hold", "production"]
        assert get_available_transitions("sold", "sales_rep") == []
        assert get_available_transitions("paid_in_full", "owner") == []

    def test_complete_starts_warranty(self):
        updates = status_updates("complete", NOW)
        assert updates["dates.actualCompletion"] == NOW
        assert updates["warranty.status"] == "active"
        assert updates["warranty.endDate"] == NOW.replace(year=2027)

    def test_production_has_no_date_field(self):
        assert status_updates("production", NOW) == {"status": "production"}

    def test_add_years_leap_day(self):
        assert add_years(datetime(2028, 2, 29), 1) == datetime(2029, 2, 28)


def test_flatten_dates_parses_iso_strings():
    updates = flatten_dates({"notes": "x", "dates": {"scheduledStart": "2026-04-01T09:00:00", "sold": None}})
    assert updates["notes"] == "x"
    assert "dates" not in updates
    assert updates["dates.scheduledStart"] == timezone.make_aware(datetime(2026, 4, 1, 9, 0))
    assert updates["dates.sold"] is None


class TestCreateAndUpdate:
    def test_create_numbers_and_notifies_crew(self, repo, db, notifications):
        db.seed("contractors", "c1", {"userId": "u-c1"})
        db.seed("contractors", "c2", {})
        job = repo.create_job({"type": "kitchen", "crewIds": ["c1", "c2"]})

        stored = db.doc("jobs", job["id"])
        assert stored["status"] == "lead"
        assert stored["jobNumber"] == f"KR-{timezone.now().year}-0001"
        assert stored["costs"]["laborActual"] == 0
        assert [(uid, kind) for uid, kind, _ in notifications.user_calls] == [("u-c1", "job_assigned")]
        assert notifications.user_calls[0][2]["date"] == "TBD"

        second = repo.create_job({})
        assert second["jobNumber"].endswith("-0002")

    def test_reschedule_notifies_crew(self, repo, db, notifications):
        db.seed("contractors", "c1", {"userId": "u-c1"})
        db.seed("jobs", "j1", {
            "type": "bathroom",
            "crewIds": ["c1"],
            "customer": {"address": {"street": "9 Elm"}},
            "dates": {"scheduledStart": timezone.make_aware(datetime(2026, 3, 20, 9, 0))},
        })
        repo.update_job("j1", {"dates": {"scheduledStart": "2026-04-01T09:00:00"}})

        [(user_id, kind, data)] = notifications.user_calls
        assert (user_id, kind) == ("u-c1", "job_schedule_changed")
        assert data["newDate"] == "4/1/2026"
        assert data["address"] == "9 Elm"

    def test_unchanged_schedule_is_quiet(self, repo, db, notifications):
        db.seed("jobs", "j1", {"crewIds": [], "dates": {"scheduledStart": None}})
        repo.update_job("j1", {"notes": "call first"})
        assert notifications.user_calls == []
        assert db.doc("jobs", "j1")["notes"] == "call first"

    def test_set_crew_notifies_only_new_members(self, repo, db, notifications):
        db.seed("contractors", "c1", {"userId": "u-c1"})
        db.seed("contractors", "c2", {"userId": "u-c2"})
        db.seed("jobs", "j1", {"crewIds": ["c1"], "dates": {}})

        job = repo.set_crew("j1", ["c1", "c2", "c2"])
        assert job["crewIds"] == ["c1", "c2"]
        assert [uid for uid, _, _ in notifications.user_calls] == ["u-c2"]

    def test_update_missing(self, repo):
        assert repo.update_job("ghost", {"notes": "x"}) is None


class TestTransition:
    def test_rejects_skips_and_roles(self, repo, db):
        db.seed("jobs", "j1", {"status": "lead"})
        skipped = repo.transition_job_status("j1", "lead", "production", "u1", "owner")
        assert not skipped.success
        assert "Cannot transition" in skipped.error

        forbidden = repo.transition_job_status("j1", "lead", "sold", "u1", "contractor")
        assert not forbidden.success
        assert "permission" in forbidden.error
        assert db.doc("jobs", "j1")["status"] == "lead"

    def test_missing_job(self, repo):
        result = repo.transition_job_status("ghost", "lead", "sold", "u1", "owner")
        assert result.error == "Failed to update status"

    def test_stamps_date_and_logs_communication(self, repo, db):
        db.seed("jobs", "j1", {"status": "production", "dates": {}})
        result = repo.transition_job_status("j1", "production", "scheduled", "u1", "pm", note="crew confirmed", now=NOW)

        assert result.success
        assert result.job["status"] == "scheduled"
        assert result.job["dates"]["scheduledStart"] == NOW
        [entry] = repo.get_communications("j1")
        assert entry["type"] == "status_update"
        assert entry["userId"] == "u1"
        assert entry["content"] == "Status changed from production to scheduled: crew confirmed"

    def test_complete_creates_rating_request_per_crew_member(self, repo, db):
        db.seed("contractors", "c1", {"businessName": "Crew One", "userId": "u-c1"})
        db.seed("jobs", "j1", {
            "status": "started",
            "jobNumber": "KR-2026-0007",
            "crewIds": ["c1", "ghost"],
            "customer": {"name": "Ada", "email": "ada@example.com"},
            "dates": {},
        })

        result = repo.transition_job_status("j1", "started", "complete", "u1", "pm", now=NOW)

        assert result.success
        assert result.payouts is None
        [rating_request] = db.docs("ratingRequests").values()
        assert rating_request["jobId"] == "j1"
        assert rating_request["contractorName"] == "Crew One"
        assert rating_request["customerEmail"] == "ada@example.com"
        assert rating_request["status"] == "pending"

    def test_complete_without_customer_email_skips_ratings(self, repo, db):
        db.seed("contractors", "c1", {"businessName": "Crew One"})
        db.seed("jobs", "j1", {"status": "started", "crewIds": ["c1"], "customer": {"name": "Ada"}, "dates": {}})

        assert repo.transition_job_status("j1", "started", "complete", "u1", "admin", now=NOW).success
        assert db.docs("ratingRequests") == {}

    def test_paid_in_full_generates_payouts(self, repo, db):
        db.seed("contractors", "c1", {"businessName": "Crew One", "userId": "u-c1"})
        db.seed("leads", "l1", {"source": "meta"})
        db.seed("jobs", "j1", {
            "status": "complete",
            "jobNumber": "KR-2026-0007",
            "leadId": "l1",
            "crewIds": ["c1"],
            "costs": {"laborActual": 2000},
            "commission": {"contractValue": 10000, "amount": 500},
            "customer": {"name": "Ada", "email": "ada@example.com"},
            "dates": {},
        })

        result = repo.transition_job_status("j1", "complete", "paid_in_full", "u1", "owner", now=NOW)

        assert result.success
        assert set(result.payouts) == {"leadFeePayoutId", "laborPayoutId"}
        lead_fee = db.doc("payouts", result.payouts["leadFeePayoutId"])
        labor = db.doc("payouts", result.payouts["laborPayoutId"])
        assert lead_fee["amount"] == pytest.approx(500)
        assert lead_fee["toEntity"] == "kd"
        assert labor["amount"] == pytest.approx(2500)
        assert labor["contractorName"] == "Crew One"

        job = db.doc("jobs", "j1")
        assert job["dates"]["paidInFull"] == NOW
        assert set(job["linkedInvoices"]) == {"leadFeeInvoiceId", "laborInvoiceId"}
        # Rating links go out at completion, not on payment
        assert db.docs("ratingRequests") == {}

    def test_paid_in_full_without_contract_value_has_no_payouts(self, repo, db):
        db.seed("jobs", "j1", {"status": "complete", "crewIds": [], "customer": {"name": "Ada"}, "dates": {}})

        result = repo.transition_job_status("j1", "complete", "paid_in_full", "u1", "admin", now=NOW)

        assert result.success
        assert result.payouts == {}


def test_list_jobs_filters_and_search(repo, db):
    db.seed("jobs", "a", {"status": "sold", "crewIds": ["c1"], "customer": {"name": "Ada Lovelace"}, "createdAt": 1})
    db.seed("jobs", "b", {"status": "sold", "crewIds": [], "customer": {"name": "Grace"}, "createdAt": 2})
    db.seed("jobs", "c", {"status": "lead", "crewIds": ["c1"], "customer": {"name": "Alan"}, "createdAt": 3})

    assert [j["id"] for j in repo.list_jobs({"status": "sold"})] == ["b", "a"]
    assert [j["id"] for j in repo.list_jobs({"crewId": "c1"})] == ["c", "a"]
    assert [j["id"] for j in repo.list_jobs({"search": "lovelace"})] == ["a"]
