"""
Invoices between the three entities, customers and subscribers.

Totals, due dates and overdue detection are plain functions over invoice
dicts; InvoiceRepository adds numbering, status changes and the automatic
invoices raised when a job is paid or a subscription renews.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Dict, Any, List

from django.utils import timezone

from .constants import ENTITY_NAMES, INVOICES_COLLECTION, INVOICE_STATUSES, NET_TERMS_DAYS
from .firebase_service import FirestoreRepository
from .functions_client import send_invoice_email
from .notification_service import notification_service
from .rating_requests import rating_request_repository
from .utils import days_between, normalize_datetime, text_matches, to_number

logger = logging.getLogger("ops")

INVOICE_TYPES = {
    ("kd", "kr"): "Lead Fee",
    ("kts", "kr"): "Labor & Commission",
    ("kr", "customer"): "Customer Invoice",
    ("kd", "subscriber"): "Subscription",
}


def calculate_line_item_total(qty: float, rate: float) -> float:
    return qty * rate


def calculate_invoice_totals(line_items: List[Dict[str, Any]], discount: float = 0) -> Dict[str, float]:
    subtotal = sum(to_number(item.get("total")) for item in line_items)
    return {"subtotal": subtotal, "total": max(0, subtotal - (discount or 0))}


def calculate_due_date(from_date=None):
    return (from_date or timezone.now()) + timedelta(days=NET_TERMS_DAYS)


def get_days_until_due(invoice: Dict[str, Any], now=None) -> Optional[int]:
    if invoice.get("status") == "paid":
        return None
    due = normalize_datetime(invoice.get("dueDate"))
    if due is None:
        return None
    return days_between(due, now or timezone.now())


def is_overdue(invoice: Dict[str, Any], now=None) -> bool:
    days = get_days_until_due(invoice, now)
    return days is not None and days < 0


def is_past_due(invoice: Dict[str, Any], now=None) -> bool:
    """Unpaid with a due date already behind `now` (no whole-day rounding)."""
    if invoice.get("status") == "paid":
        return False
    due = normalize_datetime(invoice.get("dueDate"))
    return due is not None and due < (now or timezone.now())


def get_invoice_type(invoice: Dict[str, Any]) -> str:
    key = ((invoice.get("from") or {}).get("entity"), (invoice.get("to") or {}).get("entity"))
    return INVOICE_TYPES.get(key, "Invoice")


def sort_invoices_by_priority(invoices: List[Dict[str, Any]], now=None) -> List[Dict[str, Any]]:
    """Unpaid before paid, overdue first, then earliest due date."""
    now = now or timezone.now()
    far_future = now + timedelta(days=365 * 100)

    def key(invoice):
        due = normalize_datetime(invoice.get("dueDate")) or far_future
        return (
            invoice.get("status") == "paid",
            not is_overdue(invoice, now),
            due,
        )

    return sorted(invoices, key=key)


def group_invoices_by_status(invoices: List[Dict[str, Any]], now=None) -> Dict[str, List[Dict[str, Any]]]:
    grouped = {status: [] for status in INVOICE_STATUSES}
    for invoice in invoices:
        if invoice.get("status") != "paid" and is_overdue(invoice, now):
            grouped["overdue"].append(invoice)
        else:
            grouped.setdefault(invoice.get("status") or "draft", []).append(invoice)
    return grouped


def get_invoice_stats(invoices: List[Dict[str, Any]], now=None) -> Dict[str, Any]:
    now = now or timezone.now()
    stats = {
        "totalDraft": 0,
        "totalSent": 0,
        "totalPaid": 0,
        "totalOverdue": 0,
        "amountOutstanding": 0.0,
        "amountOverdue": 0.0,
    }
    for invoice in invoices:
        status = invoice.get("status")
        total = to_number(invoice.get("total"))
        if status == "draft":
            stats["totalDraft"] += 1
        elif status == "sent":
            stats["totalSent"] += 1
            stats["amountOutstanding"] += total
            if is_past_due(invoice, now):
                stats["totalOverdue"] += 1
                stats["amountOverdue"] += total
        elif status == "paid":
            stats["totalPaid"] += 1
        elif status == "overdue":
            stats["totalOverdue"] += 1
            stats["amountOutstanding"] += total
            stats["amountOverdue"] += total
    return stats


def entity_party(entity: str, name: Optional[str] = None, email: Optional[str] = None) -> Dict[str, Any]:
    party = {"entity": entity, "name": name or ENTITY_NAMES.get(entity, entity)}
    if email:
        party["email"] = email
    return party


@dataclass
class SendInvoiceResult:
    """Result of sending an invoice"""
    success: bool
    invoice: Optional[Dict[str, Any]] = None
    emailed: bool = False
    error: Optional[str] = None
    status: int = 200


class InvoiceRepository(FirestoreRepository):
    collection_name = INVOICES_COLLECTION

    def __init__(self, db=None, notifications=None, rating_requests=None):
        super().__init__(db=db)
        self.notifications = notifications or notification_service
        self.rating_requests = rating_requests or rating_request_repository

    def list_invoices(self, filters: Optional[Dict[str, Any]] = None, now=None) -> List[Dict[str, Any]]:
        filters = filters or {}
        query = []
        if filters.get("status"):
            query.append(("status", "==", filters["status"]))
        if filters.get("fromEntity"):
            query.append(("from.entity", "==", filters["fromEntity"]))
        if filters.get("toEntity"):
            query.append(("to.entity", "==", filters["toEntity"]))

        invoices = self.list(filters=query, order_by="createdAt")

        search = filters.get("search")
        if search:
            invoices = [
                inv for inv in invoices
                if text_matches(
                    search,
                    inv.get("invoiceNumber"),
                    (inv.get("from") or {}).get("name"),
                    (inv.get("to") or {}).get("name"),
                )
            ]
        if filters.get("overdue"):
            invoices = [inv for inv in invoices if is_past_due(inv, now)]
        return invoices

    def get_by_entity(self, entity: str, direction: str) -> List[Dict[str, Any]]:
        return self.list(filters=[(f"{direction}.entity", "==", entity)], order_by="createdAt")

    def generate_invoice_number(self, prefix: str = "INV") -> str:
        return self.next_sequence_number(prefix, "invoiceNumber")

    def create_invoice(self, data: Dict[str, Any], prefix: str = "INV") -> Optional[Dict[str, Any]]:
        line_items = [
            {**item, "total": calculate_line_item_total(to_number(item.get("qty"), 1), to_number(item.get("rate")))}
            for item in data.get("lineItems") or []
        ]
        discount = to_number(data.get("discount"))
        totals = calculate_invoice_totals(line_items, discount)
        record = {
            "status": "draft",
            "sentAt": None,
            "paidAt": None,
            **data,
            "lineItems": line_items,
            "discount": discount,
            "subtotal": totals["subtotal"],
            "total": totals["total"],
        }
        if not record.get("invoiceNumber"):
            record["invoiceNumber"] = self.generate_invoice_number(prefix)
        if not record.get("dueDate"):
            record["dueDate"] = calculate_due_date()
        return self.create(record)

    def update_invoice(self, invoice_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = dict(data)
        updates.pop("id", None)
        updates.pop("createdAt", None)
        if "lineItems" in updates or "discount" in updates:
            current = self.get(invoice_id)
            if current is None:
                return None
            items = updates.get("lineItems", current.get("lineItems") or [])
            discount = to_number(updates.get("discount", current.get("discount")))
            updates.update(calculate_invoice_totals(items, discount))
        return self.update(invoice_id, updates)

    def mark_sent(self, invoice_id: str, id_token: Optional[str] = None) -> SendInvoiceResult:
        """
        Email the invoice through the sendInvoiceEmail function when the
        recipient has an address, then mark it sent.
        """
        invoice = self.get(invoice_id)
        if invoice is None:
            return SendInvoiceResult(success=False, error="invoice_not_found", status=404)
        if invoice.get("status") == "paid":
            return SendInvoiceResult(success=False, invoice=invoice, error="invoice_already_paid", status=409)

        emailed = False
        recipient = (invoice.get("to") or {}).get("email")
        if recipient:
            result = send_invoice_email(invoice_id, id_token=id_token)
            if not result.ok:
                logger.error(f"[INVOICES/SEND] Email for {invoice.get('invoiceNumber')} failed: {result.error}")
                return SendInvoiceResult(success=False, invoice=invoice, error=result.error, status=result.status)
            emailed = True

        updated = self.update(invoice_id, {"status": "sent", "sentAt": timezone.now()})
        if updated is None:
            return SendInvoiceResult(success=False, error="update_failed", status=500)
        logger.info(f"[INVOICES/SEND] {updated.get('invoiceNumber')} sent (emailed={emailed})")
        return SendInvoiceResult(success=True, invoice=updated, emailed=emailed)

    def mark_paid(self, invoice_id: str) -> Optional[Dict[str, Any]]:
        updated = self.update(invoice_id, {"status": "paid", "paidAt": timezone.now()})
        if updated and updated.get("jobId"):
            # Payment is the nudge for customers who have not rated the crew yet
            self.rating_requests.remind_pending_for_job(updated["jobId"])
        return updated

    # =========================================================================
    # Automatic invoices
    # =========================================================================

    def generate_labor_invoice(
        self,
        job_id: str,
        job_number: str,
        labor_amount: float,
        commission_amount: float,
        contractor_name: str,
    ) -> Optional[Dict[str, Any]]:
        """KTS bills KR for crew labor and sales commission on a paid job."""
        line_items = []
        if labor_amount > 0:
            line_items.append({
                "description": f"Labor for Job {job_number}",
                "qty": 1,
                "rate": labor_amount,
                "total": labor_amount,
            })
        if commission_amount > 0:
            line_items.append({
                "description": f"Sales Commission for Job {job_number}",
                "qty": 1,
                "rate": commission_amount,
                "total": commission_amount,
            })
        return self.create_invoice({
            "from": entity_party("kts"),
            "to": entity_party("kr"),
            "lineItems": line_items,
            "jobId": job_id,
            "contractorName": contractor_name,
        }, prefix="KTS")

    def generate_lead_fee_invoice(self, lead_id: str, lead_source: str, lead_fee: float) -> Optional[Dict[str, Any]]:
        """KD bills KR for the lead behind a paid job."""
        return self.create_invoice({
            "from": entity_party("kd"),
            "to": entity_party("kr"),
            "lineItems": [{
                "description": f"Lead Fee - {lead_source} Lead (ID: {lead_id[:8]})",
                "qty": 1,
                "rate": lead_fee,
                "total": lead_fee,
            }],
            "leadId": lead_id,
        }, prefix="KD")

    def generate_subscription_invoice(
        self,
        subscriber_id: str,
        subscriber_name: str,
        subscriber_email: str,
        subscription_fee: float,
        ad_spend_min: float,
    ) -> Optional[Dict[str, Any]]:
        return self.create_invoice({
            "from": entity_party("kd"),
            "to": entity_party("subscriber", subscriber_name, subscriber_email),
            "lineItems": [
                {"description": "Monthly Subscription Fee", "qty": 1, "rate": subscription_fee, "total": subscription_fee},
                {"description": "Minimum Ad Spend", "qty": 1, "rate": ad_spend_min, "total": ad_spend_min},
            ],
            "subscriberId": subscriber_id,
        }, prefix="SUB")

    def sweep_overdue(self, now=None) -> List[Dict[str, Any]]:
        """Flip sent invoices past their due date to overdue and tell the admins."""
        now = now or timezone.now()
        flipped = []
        for invoice in self.list(filters=[("status", "==", "sent")]):
            if not is_past_due(invoice, now):
                continue
            updated = self.update(invoice["id"], {"status": "overdue"})
            if updated is None:
                continue
            flipped.append(updated)
            self.notifications.notify_admins_of("invoice_overdue", {
                "invoiceId": invoice["id"],
                "invoiceNumber": invoice.get("invoiceNumber", ""),
                "amount": f"{to_number(invoice.get('total')):.2f}",
                "entityType": "invoice",
                "entityId": invoice["id"],
            }, now=now)
        logger.info(f"[INVOICES/OVERDUE] {len(flipped)} invoices marked overdue")
        return flipped


invoice_repository = InvoiceRepository()
