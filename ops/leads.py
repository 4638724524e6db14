"""
Keynote Digital leads: intake, assignment, returns and conversion into KR jobs.
"""
import logging
from typing import Optional, Dict, Any, List

from django.utils import timezone

from .constants import LEAD_STATUSES, LEADS_COLLECTION
from .firebase_service import FirestoreRepository
from .jobs import job_repository
from .notification_service import notification_service
from .utils import text_matches

logger = logging.getLogger("ops")

LEAD_FILTER_FIELDS = ("status", "source", "quality", "assignedTo", "assignedType", "campaignId", "market")


class LeadRepository(FirestoreRepository):
    collection_name = LEADS_COLLECTION

    def __init__(self, db=None, jobs=None, notifications=None):
        super().__init__(db=db)
        self.jobs = jobs or job_repository
        self.notifications = notifications or notification_service

    def list_leads(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        query = [(key, "==", filters[key]) for key in LEAD_FILTER_FIELDS if filters.get(key)]
        leads = self.list(filters=query, order_by="createdAt")

        search = filters.get("search")
        if search:
            leads = [
                lead for lead in leads
                if text_matches(
                    search,
                    (lead.get("customer") or {}).get("name"),
                    (lead.get("customer") or {}).get("email"),
                    (lead.get("customer") or {}).get("phone"),
                    ((lead.get("customer") or {}).get("address") or {}).get("city"),
                    lead.get("market"),
                    lead.get("trade"),
                )
            ]
        return leads

    def get_by_assignee(self, user_id: str) -> List[Dict[str, Any]]:
        return self.list(filters=[("assignedTo", "==", user_id)], order_by="createdAt")

    def create_lead(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = {
            "status": "new",
            "quality": "warm",
            "campaignId": None,
            "assignedTo": None,
            "assignedType": None,
            "returnReason": None,
            "returnedAt": None,
            **data,
        }
        return self.create(record)

    def update_lead(self, lead_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = dict(data)
        updates.pop("id", None)
        updates.pop("createdAt", None)
        return self.update(lead_id, updates)

    def assign_lead(self, lead_id: str, assigned_to: str, assigned_type: str) -> Optional[Dict[str, Any]]:
        """Assign a lead and push it to the assignee; hot leads go out as lead_hot."""
        current = self.get(lead_id)
        if current is None:
            return None

        lead = self.update(lead_id, {
            "assignedTo": assigned_to,
            "assignedType": assigned_type,
            "status": "assigned",
        })
        if lead is None:
            return None

        if current.get("assignedTo") != assigned_to:
            quality = lead.get("quality") or "warm"
            customer = lead.get("customer") or {}
            self.notifications.notify_user(assigned_to, "lead_hot" if quality == "hot" else "lead_assigned", {
                "leadId": lead_id,
                "customerName": customer.get("name", ""),
                "tradeType": lead.get("trade", ""),
                "city": (customer.get("address") or {}).get("city") or "your area",
                "quality": quality,
                "entityType": "lead",
                "entityId": lead_id,
            })
        logger.info(f"[LEADS/ASSIGN] {lead_id} -> {assigned_to} ({assigned_type})")
        return lead

    def return_lead(self, lead_id: str, reason: str) -> Optional[Dict[str, Any]]:
        return self.update(lead_id, {
            "status": "returned",
            "returnReason": reason,
            "returnedAt": timezone.now(),
        })

    def convert_lead(self, lead_id: str) -> Optional[Dict[str, Any]]:
        return self.update(lead_id, {"status": "converted"})

    def convert_lead_to_job(self, lead_id: str, job_type: str) -> Optional[Dict[str, Any]]:
        """Open a KR job for the lead's customer and mark the lead converted."""
        lead = self.get(lead_id)
        if lead is None:
            return None

        customer = lead.get("customer") or {}
        job = self.jobs.create_job({
            "customer": {
                "name": customer.get("name", ""),
                "phone": customer.get("phone") or "",
                "email": customer.get("email") or "",
                "address": customer.get("address") or {},
            },
            "type": job_type,
            "status": "lead",
            "salesRepId": lead.get("assignedTo"),
            "leadId": lead_id,
            "notes": customer.get("notes") or "",
        })
        if job is None:
            return None

        self.update(lead_id, {"status": "converted", "linkedJobId": job["id"]})
        logger.info(f"[LEADS/CONVERT] {lead_id} -> job {job.get('jobNumber')}")
        return job


def get_lead_counts_by_status(leads: List[Dict[str, Any]]) -> Dict[str, int]:
    counts = {status: 0 for status in LEAD_STATUSES}
    for lead in leads:
        status = lead.get("status")
        if status in counts:
            counts[status] += 1
    return counts


lead_repository = LeadRepository()
