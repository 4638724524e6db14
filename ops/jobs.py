"""
Key Renovations job pipeline.

A job moves one step at a time through JOB_STATUS_ORDER; who may make each
move is governed by TRANSITION_PERMISSIONS. Every transition stamps the
matching date field and leaves a status_update entry in the job's
communications log.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

from django.utils import timezone

from .constants import (
    COMMUNICATIONS_SUBCOLLECTION,
    CONTRACTORS_COLLECTION,
    JOB_STATUS_ORDER,
    JOBS_COLLECTION,
    WARRANTY_YEARS,
)
from .firebase_service import FirestoreRepository
from .notification_service import notification_service
from .payouts import payout_repository
from .rating_requests import rating_request_repository
from .utils import format_short_date, normalize_datetime, text_matches

logger = logging.getLogger("ops")

PIPELINE_ROLES = ["owner", "admin", "pm"]

TRANSITION_PERMISSIONS = {
    "lead": {"sold": ["owner", "admin", "pm", "sales_rep"]},
    # sold -> production is listed but still blocked by the one-step rule
    "sold": {"front_end_hold": PIPELINE_ROLES, "production": PIPELINE_ROLES},
    "front_end_hold": {"production": PIPELINE_ROLES},
    "production": {"scheduled": PIPELINE_ROLES},
    "scheduled": {"started": PIPELINE_ROLES},
    "started": {"complete": PIPELINE_ROLES},
    "complete": {"paid_in_full": PIPELINE_ROLES},
    "paid_in_full": {},
}

STATUS_DATE_FIELDS = {
    "sold": "dates.sold",
    "scheduled": "dates.scheduledStart",
    "started": "dates.actualStart",
    "complete": "dates.actualCompletion",
    "paid_in_full": "dates.paidInFull",
}


@dataclass
class TransitionResult:
    """Result of a job status transition"""
    success: bool
    error: Optional[str] = None
    job: Optional[Dict[str, Any]] = None
    payouts: Optional[Dict[str, str]] = None


def can_transition_status(current: str, new: str) -> bool:
    """Only the immediate next status is reachable."""
    if current not in JOB_STATUS_ORDER or new not in JOB_STATUS_ORDER:
        return False
    return JOB_STATUS_ORDER.index(new) == JOB_STATUS_ORDER.index(current) + 1


def get_next_status(current: str) -> Optional[str]:
    if current not in JOB_STATUS_ORDER:
        return None
    index = JOB_STATUS_ORDER.index(current)
    if index == len(JOB_STATUS_ORDER) - 1:
        return None
    return JOB_STATUS_ORDER[index + 1]


def get_previous_status(current: str) -> Optional[str]:
    if current not in JOB_STATUS_ORDER:
        return None
    index = JOB_STATUS_ORDER.index(current)
    if index <= 0:
        return None
    return JOB_STATUS_ORDER[index - 1]


def can_user_transition(current: str, new: str, role: Optional[str]) -> bool:
    allowed = TRANSITION_PERMISSIONS.get(current, {}).get(new)
    if not allowed:
        return False
    return role in allowed


def get_available_transitions(current: str, role: Optional[str]) -> List[str]:
    return [
        status for status, roles in TRANSITION_PERMISSIONS.get(current, {}).items()
        if role in roles
    ]


def add_years(dt, years: int):
    try:
        return dt.replace(year=dt.year + years)
    except ValueError:
        # Feb 29 -> Feb 28
        return dt.replace(year=dt.year + years, day=28)


def status_updates(new_status: str, now) -> Dict[str, Any]:
    """Field updates a transition into new_status makes besides the status itself."""
    updates = {"status": new_status}
    date_field = STATUS_DATE_FIELDS.get(new_status)
    if date_field:
        updates[date_field] = now
    if new_status == "complete":
        updates["warranty.startDate"] = now
        updates["warranty.endDate"] = add_years(now, WARRANTY_YEARS)
        updates["warranty.status"] = "active"
    return updates


def empty_job(data: Dict[str, Any], now) -> Dict[str, Any]:
    """New-job defaults; explicitly provided fields win."""
    job = {
        "status": "lead",
        "type": "other",
        "salesRepId": None,
        "pmId": None,
        "crewIds": [],
        "leadId": None,
        "costs": {
            "materialProjected": 0,
            "materialActual": 0,
            "laborProjected": 0,
            "laborActual": 0,
        },
        "dates": {
            "created": now,
            "sold": None,
            "scheduledStart": None,
            "actualStart": None,
            "targetCompletion": None,
            "actualCompletion": None,
            "paidInFull": None,
        },
        "warranty": {"startDate": None, "endDate": None, "status": "pending"},
        "notes": "",
    }
    job.update(data)
    return job


def flatten_dates(data: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a partial `dates` map into dotted updates, parsing ISO strings."""
    updates = dict(data)
    dates = updates.pop("dates", None)
    if isinstance(dates, dict):
        for key, value in dates.items():
            updates[f"dates.{key}"] = normalize_datetime(value) if isinstance(value, str) else value
    elif dates is not None:
        updates["dates"] = dates
    return updates


def job_street(job: Dict[str, Any]) -> str:
    return ((job.get("customer") or {}).get("address") or {}).get("street") or "location"


class JobRepository(FirestoreRepository):
    collection_name = JOBS_COLLECTION

    def __init__(self, db=None, notifications=None, payouts=None, rating_requests=None):
        super().__init__(db=db)
        self.contractors = FirestoreRepository(CONTRACTORS_COLLECTION, db=db)
        self.notifications = notifications or notification_service
        self.payouts = payouts or payout_repository
        self.rating_requests = rating_requests or rating_request_repository

    def list_jobs(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        query = [
            (key, "==", filters[key])
            for key in ("status", "type", "salesRepId", "pmId")
            if filters.get(key)
        ]
        if filters.get("crewId"):
            query.append(("crewIds", "array_contains", filters["crewId"]))

        jobs = self.list(filters=query, order_by="createdAt")

        search = filters.get("search")
        if search:
            jobs = [
                job for job in jobs
                if text_matches(
                    search,
                    job.get("jobNumber"),
                    (job.get("customer") or {}).get("name"),
                    ((job.get("customer") or {}).get("address") or {}).get("city"),
                    (job.get("customer") or {}).get("phone"),
                )
            ]
        return jobs

    def get_by_crew_member(self, contractor_id: str) -> List[Dict[str, Any]]:
        return self.list(filters=[("crewIds", "array_contains", contractor_id)], order_by="createdAt")

    def generate_job_number(self) -> str:
        return self.next_sequence_number("KR", "jobNumber")

    def create_job(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = empty_job(data, timezone.now())
        if not record.get("jobNumber"):
            record["jobNumber"] = self.generate_job_number()
        created = self.create(record)
        if created and created.get("crewIds"):
            self._notify_new_crew(created, created["crewIds"])
        return created

    def update_job(self, job_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a job; a moved scheduled start is announced to the whole crew."""
        current = self.get(job_id)
        if current is None:
            return None

        updates = flatten_dates(data)
        updates.pop("id", None)
        updates.pop("createdAt", None)
        updated = self.update(job_id, updates)
        if updated is None:
            return None

        before = normalize_datetime((current.get("dates") or {}).get("scheduledStart"))
        after = normalize_datetime((updated.get("dates") or {}).get("scheduledStart"))
        if after and before and after != before:
            self._notify_schedule_change(updated)

        before_crew = set(current.get("crewIds") or [])
        added = [cid for cid in updated.get("crewIds") or [] if cid not in before_crew]
        if added:
            self._notify_new_crew(updated, added)
        return updated

    def set_crew(self, job_id: str, crew_ids: List[str]) -> Optional[Dict[str, Any]]:
        return self.update_job(job_id, {"crewIds": list(dict.fromkeys(crew_ids))})

    def add_communication(self, job_id: str, entry: Dict[str, Any]) -> Optional[str]:
        if not self.db:
            return None
        try:
            record = {"attachments": [], **entry, "createdAt": timezone.now()}
            comms = self.collection().document(job_id).collection(COMMUNICATIONS_SUBCOLLECTION)
            _, ref = comms.add(record)
            return ref.id
        except Exception as e:
            logger.error(f"Error logging communication on job {job_id}: {e}")
            return None

    def get_communications(self, job_id: str) -> List[Dict[str, Any]]:
        return FirestoreRepository(
            f"{self.collection_name}/{job_id}/{COMMUNICATIONS_SUBCOLLECTION}", db=self._db
        ).list(order_by="createdAt")

    def transition_job_status(
        self,
        job_id: str,
        current_status: str,
        new_status: str,
        user_id: str,
        role: Optional[str],
        note: Optional[str] = None,
        now=None,
    ) -> TransitionResult:
        if not can_transition_status(current_status, new_status):
            return TransitionResult(success=False, error=f"Cannot transition from {current_status} to {new_status}")

        if not can_user_transition(current_status, new_status, role):
            return TransitionResult(success=False, error="You don't have permission to perform this transition")

        now = now or timezone.now()
        job = self.update(job_id, status_updates(new_status, now))
        if job is None:
            return TransitionResult(success=False, error="Failed to update status")

        content = f"Status changed from {current_status} to {new_status}"
        if note:
            content = f"{content}: {note}"
        self.add_communication(job_id, {"type": "status_update", "userId": user_id, "content": content})
        logger.info(f"[JOBS/TRANSITION] {job.get('jobNumber')} {current_status} -> {new_status} by {user_id}")

        payouts = None
        if new_status == "complete":
            self._request_ratings(job, now)
        elif new_status == "paid_in_full":
            payouts = self.payouts.generate_job_payouts(job)
            job = self.get(job_id) or job

        return TransitionResult(success=True, job=job, payouts=payouts)

    def _request_ratings(self, job: Dict[str, Any], now) -> int:
        """One rating link per crew member once the work is complete."""
        customer = job.get("customer") or {}
        if not customer.get("email") or self.rating_requests.get_pending_for_job(job["id"]):
            return 0

        created = 0
        for contractor_id in job.get("crewIds") or []:
            contractor = self.contractors.get(contractor_id)
            if contractor is None:
                continue
            request = self.rating_requests.create_rating_request(
                job["id"],
                job.get("jobNumber", ""),
                contractor_id,
                contractor.get("businessName") or contractor.get("displayName") or "",
                customer["email"],
                customer.get("name", ""),
                now,
            )
            if request:
                created += 1
        logger.info(f"[JOBS/RATINGS] {job.get('jobNumber')} created {created} rating request(s)")
        return created

    # =========================================================================
    # Crew notifications
    # =========================================================================

    def _crew_user_ids(self, contractor_ids: List[str]) -> List[str]:
        user_ids = []
        for contractor_id in contractor_ids:
            contractor = self.contractors.get(contractor_id)
            if contractor and contractor.get("userId"):
                user_ids.append(contractor["userId"])
        return user_ids

    def _notify_new_crew(self, job: Dict[str, Any], contractor_ids: List[str]) -> None:
        scheduled = (job.get("dates") or {}).get("scheduledStart")
        for user_id in self._crew_user_ids(contractor_ids):
            self.notifications.notify_user(user_id, "job_assigned", {
                "jobId": job["id"],
                "jobType": job.get("type", ""),
                "address": job_street(job),
                "date": format_short_date(scheduled) or "TBD",
                "entityType": "job",
                "entityId": job["id"],
            })

    def _notify_schedule_change(self, job: Dict[str, Any]) -> None:
        new_date = format_short_date((job.get("dates") or {}).get("scheduledStart"))
        for user_id in self._crew_user_ids(job.get("crewIds") or []):
            self.notifications.notify_user(user_id, "job_schedule_changed", {
                "jobId": job["id"],
                "jobType": job.get("type", ""),
                "address": job_street(job),
                "newDate": new_date,
                "entityType": "job",
                "entityId": job["id"],
            })


job_repository = JobRepository()
