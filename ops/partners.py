"""
Partner companies and what they submit through the partner portal: labor
requests (crews for the partner's own jobs) and service tickets (warranty,
repair and callback visits).
"""
import logging
from typing import Optional, Dict, Any, List

from django.utils import timezone

from .constants import (
    LABOR_REQUEST_STATUS_ORDER,
    LABOR_REQUESTS_COLLECTION,
    PARTNER_TICKET_STATUS_ORDER,
    PARTNER_TICKETS_COLLECTION,
    PARTNERS_COLLECTION,
)
from .firebase_service import FirestoreRepository
from .notification_service import build_notification, notification_service
from .utils import format_short_date, normalize_datetime, text_matches

logger = logging.getLogger("ops")


def generate_request_number(now=None) -> str:
    """LR-YYYYMMDD-NNNNNN from the clock; needs no read."""
    now = now or timezone.now()
    local = timezone.localtime(now)
    millis = str(int(now.timestamp() * 1000))
    return f"LR-{local:%Y%m%d}-{millis[-6:]}"


def get_next_labor_request_status(current: str) -> Optional[str]:
    if current == "cancelled" or current not in LABOR_REQUEST_STATUS_ORDER:
        return None
    index = LABOR_REQUEST_STATUS_ORDER.index(current)
    if index == len(LABOR_REQUEST_STATUS_ORDER) - 1:
        return None
    return LABOR_REQUEST_STATUS_ORDER[index + 1]


def get_next_partner_ticket_status(current: str) -> Optional[str]:
    if current not in PARTNER_TICKET_STATUS_ORDER:
        return None
    index = PARTNER_TICKET_STATUS_ORDER.index(current)
    if index == len(PARTNER_TICKET_STATUS_ORDER) - 1:
        return None
    return PARTNER_TICKET_STATUS_ORDER[index + 1]


def status_change(status: str, changed_by: str, notes: Optional[str] = None) -> Dict[str, Any]:
    return {
        "status": status,
        "changedAt": timezone.now(),
        "changedBy": changed_by,
        "notes": notes or None,
    }


class PartnerRepository(FirestoreRepository):
    collection_name = PARTNERS_COLLECTION

    def list_partners(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        query = [("status", "==", filters["status"])] if filters.get("status") else []
        partners = self.list(filters=query, order_by="createdAt")

        search = filters.get("search")
        if search:
            partners = [
                p for p in partners
                if text_matches(
                    search,
                    p.get("companyName"),
                    p.get("contactName"),
                    p.get("contactEmail"),
                    (p.get("address") or {}).get("city"),
                )
            ]
        return partners

    def create_partner(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.create({
            "notes": None,
            **data,
            "status": "pending",
            "approvedAt": None,
            "approvedBy": None,
        })

    def update_partner(self, partner_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = dict(data)
        updates.pop("id", None)
        updates.pop("createdAt", None)
        return self.update(partner_id, updates)

    def approve_partner(self, partner_id: str, approved_by: str) -> Optional[Dict[str, Any]]:
        return self.update(partner_id, {
            "status": "active",
            "approvedAt": timezone.now(),
            "approvedBy": approved_by,
        })

    def update_partner_status(self, partner_id: str, status: str) -> Optional[Dict[str, Any]]:
        return self.update(partner_id, {"status": status})


class PartnerRequestMixin:
    """Notification plumbing shared by labor requests and partner tickets."""

    notifications = None

    def _notify_admins(self, notification_type: str, data: Dict[str, Any]) -> None:
        self.notifications.notify_admins_of(notification_type, data)

    def _notify_submitter(self, user_id: Optional[str], notification_type: str, data: Dict[str, Any]) -> None:
        # Partners opt in through jobs.statusUpdates; their admin.* flags stay off
        if not user_id:
            return
        preferences = self.notifications.get_preferences(user_id)
        if preferences and not (preferences.get("jobs") or {}).get("statusUpdates"):
            return
        self.notifications.send_push_notification(user_id, build_notification(notification_type, data))


class LaborRequestRepository(PartnerRequestMixin, FirestoreRepository):
    collection_name = LABOR_REQUESTS_COLLECTION

    def __init__(self, db=None, notifications=None):
        super().__init__(db=db)
        self.notifications = notifications or notification_service

    def list_requests(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        # A partner user without a partnerId must not see everyone's requests
        if "partnerId" in filters and not filters["partnerId"]:
            return []

        query = [
            (key, "==", filters[key])
            for key in ("partnerId", "status", "workType")
            if filters.get(key)
        ]
        requests = self.list(filters=query, order_by="createdAt")

        search = filters.get("search")
        if search:
            requests = [
                r for r in requests
                if text_matches(
                    search,
                    r.get("requestNumber"),
                    r.get("partnerCompany"),
                    r.get("description"),
                    (r.get("location") or {}).get("city"),
                )
            ]
        return requests

    def create_request(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        created = self.create({
            "specialEquipment": None,
            "notes": None,
            "skillsRequired": [],
            **data,
            "requestNumber": generate_request_number(),
            "status": "new",
            "statusHistory": [status_change("new", data.get("submittedBy"), "Request submitted")],
            "assignedContractorIds": [],
            "reviewedAt": None,
            "reviewedBy": None,
            "completedAt": None,
        })
        if created:
            logger.info(f"[PARTNERS/LABOR] New request {created['requestNumber']} from {created.get('partnerCompany')}")
            self._notify_admins("partner_labor_request_new", {
                "requestId": created["id"],
                "partnerName": created.get("partnerCompany", ""),
                "workType": created.get("workType", ""),
                "crewSize": created.get("crewSize", ""),
                "entityType": "laborRequest",
                "entityId": created["id"],
            })
        return created

    def update_request(self, request_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = dict(data)
        for key in ("id", "createdAt", "requestNumber", "status", "statusHistory"):
            updates.pop(key, None)
        return self.update(request_id, updates)

    def update_status(
        self,
        request_id: str,
        status: str,
        changed_by: str,
        notes: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        extra = {}
        if status == "reviewed":
            extra["reviewedAt"] = timezone.now()
            extra["reviewedBy"] = changed_by
        if status == "complete":
            extra["completedAt"] = timezone.now()

        updated = self.append_status(request_id, status, changed_by, notes, extra)
        if updated:
            self._notify_status(updated)
        return updated

    def assign_contractors(self, request_id: str, contractor_ids: List[str], assigned_by: str) -> Optional[Dict[str, Any]]:
        updated = self.append_status(
            request_id,
            "assigned",
            assigned_by,
            f"Assigned {len(contractor_ids)} contractor(s)",
            {"assignedContractorIds": list(contractor_ids)},
        )
        if updated:
            self._notify_status(updated)
        return updated

    def _notify_status(self, request: Dict[str, Any]) -> None:
        self._notify_submitter(request.get("submittedBy"), "partner_labor_request_status_changed", {
            "requestId": request["id"],
            "requestNumber": request.get("requestNumber", ""),
            "status": request["status"],
            "entityType": "laborRequest",
            "entityId": request["id"],
        })


class PartnerTicketRepository(PartnerRequestMixin, FirestoreRepository):
    collection_name = PARTNER_TICKETS_COLLECTION

    def __init__(self, db=None, notifications=None):
        super().__init__(db=db)
        self.notifications = notifications or notification_service

    def list_tickets(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        if "partnerId" in filters and not filters["partnerId"]:
            return []

        query = [
            (key, "==", filters[key])
            for key in ("partnerId", "status", "urgency", "assignedTechId")
            if filters.get(key)
        ]
        tickets = self.list(filters=query, order_by="createdAt")

        search = filters.get("search")
        if search:
            tickets = [
                t for t in tickets
                if text_matches(
                    search,
                    t.get("ticketNumber"),
                    t.get("partnerCompany"),
                    t.get("customerName"),
                    t.get("issueDescription"),
                    (t.get("serviceAddress") or {}).get("city"),
                )
            ]
        return tickets

    def generate_ticket_number(self) -> str:
        return self.next_sequence_number("PST", "ticketNumber")

    def create_ticket(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        created = self.create({
            "customerEmail": None,
            "productInfo": None,
            "photos": [],
            "preferredDate": None,
            **data,
            "ticketNumber": self.generate_ticket_number(),
            "status": "new",
            "statusHistory": [status_change("new", data.get("submittedBy"), "Ticket submitted")],
            "assignedTechId": None,
            "scheduledDate": None,
            "resolution": None,
            "resolvedAt": None,
        })
        if created:
            logger.info(f"[PARTNERS/TICKETS] New ticket {created['ticketNumber']} from {created.get('partnerCompany')}")
            self._notify_admins("partner_ticket_new", {
                "ticketId": created["id"],
                "partnerName": created.get("partnerCompany", ""),
                "urgency": created.get("urgency", ""),
                "issue": created.get("issueDescription", ""),
                "entityType": "partnerTicket",
                "entityId": created["id"],
            })
        return created

    def update_ticket(self, ticket_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = dict(data)
        for key in ("id", "createdAt", "ticketNumber", "status", "statusHistory"):
            updates.pop(key, None)
        return self.update(ticket_id, updates)

    def update_status(
        self,
        ticket_id: str,
        status: str,
        changed_by: str,
        notes: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        extra = {"resolvedAt": timezone.now()} if status == "complete" else None
        updated = self.append_status(ticket_id, status, changed_by, notes, extra)
        if updated:
            self._notify_status(updated)
        return updated

    def assign_tech(
        self,
        ticket_id: str,
        tech_id: str,
        assigned_by: str,
        scheduled_date=None,
    ) -> Optional[Dict[str, Any]]:
        """Assign a technician; giving a date schedules the visit at once."""
        extra = {"assignedTechId": tech_id}
        if scheduled_date:
            status = "scheduled"
            notes = f"Assigned technician and scheduled for {format_short_date(scheduled_date)}"
            extra["scheduledDate"] = normalize_datetime(scheduled_date)
        else:
            status = "assigned"
            notes = "Assigned technician"

        updated = self.append_status(ticket_id, status, assigned_by, notes, extra)
        if updated:
            self._notify_status(updated)
        return updated

    def resolve(self, ticket_id: str, resolution: str, resolved_by: str) -> Optional[Dict[str, Any]]:
        updated = self.append_status(
            ticket_id,
            "complete",
            resolved_by,
            resolution,
            {"resolution": resolution, "resolvedAt": timezone.now()},
        )
        if updated:
            self._notify_status(updated)
        return updated

    def _notify_status(self, ticket: Dict[str, Any]) -> None:
        self._notify_submitter(ticket.get("submittedBy"), "partner_ticket_status_changed", {
            "ticketId": ticket["id"],
            "ticketNumber": ticket.get("ticketNumber", ""),
            "status": ticket["status"],
            "entityType": "partnerTicket",
            "entityId": ticket["id"],
        })


partner_repository = PartnerRepository()
labor_request_repository = LaborRequestRepository()
partner_ticket_repository = PartnerTicketRepository()
