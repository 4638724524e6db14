"""
Business context handed to the AI assistant, scoped by the caller's role.

Owners and admins see company-wide numbers; sales reps, PMs and contractors
only see the jobs, leads and invoices that are theirs.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Dict, Any, List

from django.utils import timezone

from .constants import (
    ADMIN_ROLES,
    CAMPAIGNS_COLLECTION,
    CONTRACTORS_COLLECTION,
    INVOICES_COLLECTION,
    JOBS_COLLECTION,
    LEADS_COLLECTION,
)
from .firebase_service import FirestoreRepository
from .utils import normalize_datetime, round_half_up, start_of_month, to_number

logger = logging.getLogger("ops")

TOP_ITEMS = 5
ASSIGNED_JOB_STATUSES = ("sold", "front_end_hold", "production", "scheduled")


def _job_value(job, projected=True) -> float:
    costs = job.get("costs") or {}
    if projected:
        return to_number(costs.get("materialProjected")) + to_number(costs.get("laborProjected"))
    return to_number(costs.get("materialActual")) + to_number(costs.get("laborActual"))


def _on_or_after(value, since) -> bool:
    dt = normalize_datetime(value)
    return dt is not None and dt >= since


def _iso_date(value) -> Optional[str]:
    dt = normalize_datetime(value)
    return dt.date().isoformat() if dt else None


def summarize_jobs(jobs: List[Dict[str, Any]], month_start) -> Dict[str, Any]:
    by_status = {}
    revenue = 0.0
    recent = []
    for job in jobs:
        status = job.get("status") or "unknown"
        by_status[status] = by_status.get(status, 0) + 1
        if _on_or_after((job.get("dates") or {}).get("actualCompletion"), month_start):
            revenue += _job_value(job, projected=False)
        recent.append({
            "jobNumber": job.get("jobNumber") or "N/A",
            "customer": (job.get("customer") or {}).get("name") or "Unknown",
            "status": status,
            "value": _job_value(job),
            "type": job.get("type") or "other",
        })

    recent.sort(key=lambda j: j["value"], reverse=True)
    return {
        "total": len(jobs),
        "byStatus": by_status,
        "revenueThisMonth": revenue,
        "revenueMTD": revenue,
        "recentJobs": recent[:TOP_ITEMS],
    }


def summarize_leads(leads: List[Dict[str, Any]], month_start) -> Dict[str, Any]:
    by_status = {}
    converted = 0
    this_month = 0
    for lead in leads:
        status = lead.get("status") or "unknown"
        by_status[status] = by_status.get(status, 0) + 1
        if status == "converted":
            converted += 1
        if _on_or_after(lead.get("createdAt"), month_start):
            this_month += 1

    conversion = converted / len(leads) * 100 if leads else 0.0
    return {
        "total": len(leads),
        "byStatus": by_status,
        "thisMonth": this_month,
        "conversionRate": round_half_up(conversion * 10) / 10,
        "recentLeads": [
            {
                "name": (lead.get("customer") or {}).get("name") or "Unknown",
                "source": lead.get("source") or "unknown",
                "status": lead.get("status") or "unknown",
                "quality": lead.get("quality") or "unknown",
            }
            for lead in leads[:TOP_ITEMS]
        ],
    }


def summarize_invoices(invoices: List[Dict[str, Any]], month_start, now) -> Dict[str, Any]:
    outstanding = 0.0
    overdue_count = 0
    overdue_amount = 0.0
    paid_this_month = 0.0
    recent = []
    for invoice in invoices:
        status = invoice.get("status")
        total = to_number(invoice.get("total"))
        due = normalize_datetime(invoice.get("dueDate"))

        if status in ("sent", "overdue"):
            outstanding += total
        if due and due < now and status != "paid":
            overdue_count += 1
            overdue_amount += total
        if _on_or_after(invoice.get("paidAt"), month_start):
            paid_this_month += total

        recent.append({
            "number": invoice.get("invoiceNumber") or "N/A",
            "amount": total,
            "status": status or "unknown",
            "dueDate": _iso_date(due) or "N/A",
        })

    recent.sort(key=lambda i: i["amount"], reverse=True)
    return {
        "outstanding": outstanding,
        "overdueCount": overdue_count,
        "overdueAmount": overdue_amount,
        "paidThisMonth": paid_this_month,
        "recentInvoices": recent[:TOP_ITEMS],
    }


def summarize_contractors(contractors: List[Dict[str, Any]]) -> Dict[str, Any]:
    by_trade = {}
    for contractor in contractors:
        for trade in contractor.get("trades") or []:
            by_trade[trade] = by_trade.get(trade, 0) + 1
    return {
        "active": sum(1 for c in contractors if c.get("status") == "active"),
        "pending": sum(1 for c in contractors if c.get("status") == "pending"),
        "byTrade": by_trade,
    }


def summarize_campaigns(campaigns: List[Dict[str, Any]], now) -> Dict[str, Any]:
    active = 0
    spend = 0.0
    leads = 0
    for campaign in campaigns:
        start = normalize_datetime(campaign.get("startDate"))
        end = normalize_datetime(campaign.get("endDate"))
        if start and start <= now and (end is None or end >= now):
            active += 1
        if start:
            spend += to_number(campaign.get("spend"))
            leads += int(to_number(campaign.get("leadsGenerated")))

    return {
        "active": active,
        "totalSpend": spend,
        "leadsGenerated": leads,
        "avgCPL": round_half_up(spend / leads * 100) / 100 if leads else 0,
    }


def summarize_commissions(jobs: List[Dict[str, Any]], month_start) -> Dict[str, Any]:
    pending_amount = 0.0
    pending_count = 0
    paid_this_month = 0.0
    for job in jobs:
        commission = job.get("commission")
        if not commission:
            continue
        amount = to_number(commission.get("amount"))
        if commission.get("status") in ("pending", "approved"):
            pending_amount += amount
            pending_count += 1
        if commission.get("status") == "paid" and _on_or_after(commission.get("paidAt"), month_start):
            paid_this_month += amount
    return {
        "pendingAmount": pending_amount,
        "paidThisMonth": paid_this_month,
        "pendingCount": pending_count,
    }


def summarize_crew_jobs(jobs: List[Dict[str, Any]], month_start, now) -> Dict[str, Any]:
    upcoming = []
    for job in jobs:
        scheduled = normalize_datetime((job.get("dates") or {}).get("scheduledStart"))
        if scheduled and scheduled >= now:
            upcoming.append({
                "jobNumber": job.get("jobNumber") or "N/A",
                "customer": (job.get("customer") or {}).get("name") or "Unknown",
                "scheduledDate": _iso_date(scheduled),
                "type": job.get("type") or "other",
            })
    upcoming.sort(key=lambda j: j["scheduledDate"])

    return {
        "assigned": sum(1 for job in jobs if job.get("status") in ASSIGNED_JOB_STATUSES),
        "inProgress": sum(1 for job in jobs if job.get("status") == "started"),
        "completedThisMonth": sum(
            1 for job in jobs
            if _on_or_after((job.get("dates") or {}).get("actualCompletion"), month_start)
        ),
        "upcomingJobs": upcoming[:TOP_ITEMS],
    }


def summarize_contractor_invoices(invoices: List[Dict[str, Any]], month_start) -> Dict[str, Any]:
    pending = [inv for inv in invoices if inv.get("status") in ("sent", "draft")]
    return {
        "pending": len(pending),
        "pendingAmount": sum(to_number(inv.get("total")) for inv in pending),
        "paidThisMonth": sum(
            to_number(inv.get("total")) for inv in invoices
            if _on_or_after(inv.get("paidAt"), month_start)
        ),
    }


class ChatContextService:
    def __init__(self, db=None):
        self.jobs = FirestoreRepository(JOBS_COLLECTION, db=db)
        self.leads = FirestoreRepository(LEADS_COLLECTION, db=db)
        self.invoices = FirestoreRepository(INVOICES_COLLECTION, db=db)
        self.contractors = FirestoreRepository(CONTRACTORS_COLLECTION, db=db)
        self.campaigns = FirestoreRepository(CAMPAIGNS_COLLECTION, db=db)

    def get_chat_context_for_user(self, user_id: str, user_name: str, role: Optional[str], now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        month_start = start_of_month(now)
        context = {
            "user": {"name": user_name, "role": role},
            "timestamp": now.isoformat(),
        }

        if role in ADMIN_ROLES:
            sections = {
                "jobs": lambda: summarize_jobs(self.jobs.list(), month_start),
                "leads": lambda: summarize_leads(self.leads.list(order_by="createdAt"), month_start),
                "invoices": lambda: summarize_invoices(self.invoices.list(), month_start, now),
                "contractors": lambda: summarize_contractors(self.contractors.list()),
                "campaigns": lambda: summarize_campaigns(self.campaigns.list(), now),
            }
        elif role == "sales_rep":
            own_jobs = [("salesRepId", "==", user_id)]
            sections = {
                "jobs": lambda: summarize_jobs(self.jobs.list(filters=own_jobs), month_start),
                "leads": lambda: summarize_leads(
                    self.leads.list(filters=[("assignedTo", "==", user_id)], order_by="createdAt"), month_start
                ),
                "commissions": lambda: summarize_commissions(self.jobs.list(filters=own_jobs), month_start),
            }
        elif role == "pm":
            sections = {
                "jobs": lambda: summarize_jobs(self.jobs.list(filters=[("pmId", "==", user_id)]), month_start),
            }
        elif role == "contractor":
            sections = {
                "myJobs": lambda: self._crew_jobs(user_id, month_start, now),
                "myInvoices": lambda: self._contractor_invoices(user_id, month_start),
            }
        else:
            sections = {}

        if not sections:
            return context

        with ThreadPoolExecutor(max_workers=len(sections), thread_name_prefix="chat-context") as executor:
            futures = {key: executor.submit(build) for key, build in sections.items()}
        for key, future in futures.items():
            try:
                context[key] = future.result()
            except Exception as e:
                # Partial context is still useful to the assistant
                logger.error(f"[CHAT/CONTEXT] Failed to build {key} for {user_id}: {e}")
        return context

    def _contractor_id(self, user_id: str) -> Optional[str]:
        matches = self.contractors.list(filters=[("userId", "==", user_id)], limit=1)
        return matches[0]["id"] if matches else None

    def _crew_jobs(self, user_id, month_start, now):
        contractor_id = self._contractor_id(user_id)
        if contractor_id is None:
            return {"assigned": 0, "inProgress": 0, "completedThisMonth": 0, "upcomingJobs": []}
        jobs = self.jobs.list(filters=[("crewIds", "array_contains", contractor_id)])
        return summarize_crew_jobs(jobs, month_start, now)

    def _contractor_invoices(self, user_id, month_start):
        contractor_id = self._contractor_id(user_id)
        if contractor_id is None:
            return {"pending": 0, "pendingAmount": 0, "paidThisMonth": 0}
        invoices = self.invoices.list(filters=[("from.contractorId", "==", contractor_id)])
        return summarize_contractor_invoices(invoices, month_start)


chat_context_service = ChatContextService()


def get_chat_context_for_user(user_id: str, user_name: str, role: Optional[str], now=None) -> Dict[str, Any]:
    return chat_context_service.get_chat_context_for_user(user_id, user_name, role, now)
