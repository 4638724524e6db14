"""
Overview numbers for the admin dashboard. Everything here is a pure
function of already-fetched documents and an explicit `now`.
"""
from datetime import timedelta
from typing import Dict, Any, List

from django.utils import timezone

from .constants import CLOSED_JOB_STATUSES
from .utils import add_months, normalize_datetime, start_of_month, to_number

MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

LEAD_SOURCE_LABELS = {
    "google_ads": "Google Ads",
    "meta": "Meta",
    "tiktok": "TikTok",
    "referral": "Referral",
    "event": "Event",
    "other": "Other",
}

LEAD_SOURCE_COLORS = {
    "google_ads": "#4285F4",
    "meta": "#1877F2",
    "tiktok": "#000000",
    "referral": "#10B981",
    "event": "#F59E0B",
    "other": "#6B7280",
}

JOB_TYPE_LABELS = {
    "bathroom": "Bathroom",
    "kitchen": "Kitchen",
    "exterior": "Exterior",
    "other": "Other",
}


def start_of_week(now):
    """Midnight of the most recent Sunday."""
    local = timezone.localtime(now)
    days_since_sunday = (local.weekday() + 1) % 7
    return (local - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)


def _is_active(job) -> bool:
    return job.get("status") not in CLOSED_JOB_STATUSES


def _completed_since(job, since) -> bool:
    if job.get("status") not in CLOSED_JOB_STATUSES:
        return False
    completed = normalize_datetime((job.get("dates") or {}).get("actualCompletion"))
    return completed is not None and completed >= since


def _created_between(doc, start, end=None) -> bool:
    created = normalize_datetime(doc.get("createdAt"))
    if created is None or created < start:
        return False
    return end is None or created < end


def _paid_revenue(invoices, start, end=None, entity=None) -> float:
    total = 0.0
    for invoice in invoices:
        if invoice.get("status") != "paid":
            continue
        if entity and (invoice.get("from") or {}).get("entity") != entity:
            continue
        paid_at = normalize_datetime(invoice.get("paidAt"))
        if paid_at is None or paid_at < start:
            continue
        if end is not None and paid_at >= end:
            continue
        total += to_number(invoice.get("total"))
    return total


def _percent_change(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100


def calculate_dashboard_stats(
    jobs: List[Dict[str, Any]],
    leads: List[Dict[str, Any]],
    contractors: List[Dict[str, Any]],
    invoices: List[Dict[str, Any]],
    now=None,
) -> Dict[str, Any]:
    now = now or timezone.now()
    month_start = start_of_month(now)
    last_month_start = add_months(month_start, -1)
    week_start = start_of_week(now)
    week_end = week_start + timedelta(days=7)

    revenue = _paid_revenue(invoices, month_start)
    last_month_revenue = _paid_revenue(invoices, last_month_start, month_start)

    jobs_starting_this_week = 0
    for job in jobs:
        scheduled = normalize_datetime((job.get("dates") or {}).get("scheduledStart"))
        if scheduled and week_start <= scheduled <= week_end:
            jobs_starting_this_week += 1

    leads_mtd = sum(1 for lead in leads if _created_between(lead, month_start))
    leads_last_month = sum(1 for lead in leads if _created_between(lead, last_month_start, month_start))

    unpaid = [inv for inv in invoices if inv.get("status") != "paid"]
    overdue = 0
    for invoice in unpaid:
        due = normalize_datetime(invoice.get("dueDate"))
        if due and due < now:
            overdue += 1

    return {
        "totalRevenue": revenue,
        "revenueChange": _percent_change(revenue, last_month_revenue),
        "activeJobs": sum(1 for job in jobs if _is_active(job)),
        "jobsStartingThisWeek": jobs_starting_this_week,
        "completedJobsMTD": sum(1 for job in jobs if _completed_since(job, month_start)),
        "activeContractors": sum(1 for c in contractors if c.get("status") == "active"),
        "pendingContractors": sum(1 for c in contractors if c.get("status") == "pending"),
        "leadsMTD": leads_mtd,
        "leadsChange": _percent_change(leads_mtd, leads_last_month),
        "overdueInvoices": overdue,
        "outstandingAmount": sum(to_number(inv.get("total")) for inv in unpaid),
    }


def calculate_entity_stats(jobs, leads, contractors, invoices, campaign_count: int, now=None) -> Dict[str, Any]:
    now = now or timezone.now()
    month_start = start_of_month(now)
    return {
        "kts": {
            "activeContractors": sum(1 for c in contractors if c.get("status") == "active"),
            "jobsThisMonth": sum(1 for job in jobs if _created_between(job, month_start)),
            "revenue": _paid_revenue(invoices, month_start, entity="kts"),
        },
        "kr": {
            "activeJobs": sum(1 for job in jobs if _is_active(job)),
            "completedMTD": sum(1 for job in jobs if _completed_since(job, month_start)),
            "revenue": _paid_revenue(invoices, month_start, entity="kr"),
        },
        "kd": {
            "leadsGenerated": sum(1 for lead in leads if _created_between(lead, month_start)),
            "activeCampaigns": campaign_count,
            "revenue": _paid_revenue(invoices, month_start, entity="kd"),
        },
    }


def calculate_business_flow_stats(jobs, leads, contractors, invoices, campaign_count: int, now=None) -> Dict[str, Any]:
    now = now or timezone.now()
    month_start = start_of_month(now)

    converted = sum(1 for lead in leads if lead.get("status") == "converted")
    closed_jobs = [job for job in jobs if job.get("status") in CLOSED_JOB_STATUSES]
    ratings = [to_number((c.get("rating") or {}).get("overall")) for c in contractors]
    job_values = [
        to_number((job.get("costs") or {}).get("materialProjected"))
        + to_number((job.get("costs") or {}).get("laborProjected"))
        for job in closed_jobs
    ]

    return {
        "kd": {
            "leadsGenerated": sum(1 for lead in leads if _created_between(lead, month_start)),
            "activeCampaigns": campaign_count,
            "conversionRate": converted / len(leads) * 100 if leads else 0.0,
        },
        "kts": {
            "activeContractors": sum(1 for c in contractors if c.get("status") == "active"),
            "jobsCompleted": len(closed_jobs),
            "avgRating": sum(ratings) / len(ratings) if ratings else 0.0,
        },
        "kr": {
            "activeJobs": sum(1 for job in jobs if _is_active(job)),
            "revenue": _paid_revenue(invoices, month_start, entity="kr"),
            "avgJobValue": sum(job_values) / len(job_values) if job_values else 0.0,
        },
    }


def generate_revenue_trend(invoices: List[Dict[str, Any]], now=None) -> List[Dict[str, Any]]:
    """Paid revenue per internal entity for the last six months, oldest first."""
    month_start = start_of_month(now or timezone.now())
    trend = []
    for offset in range(5, -1, -1):
        start = add_months(month_start, -offset)
        end = add_months(start, 1)
        kd = _paid_revenue(invoices, start, end, entity="kd")
        kts = _paid_revenue(invoices, start, end, entity="kts")
        kr = _paid_revenue(invoices, start, end, entity="kr")
        trend.append({
            "month": MONTH_LABELS[start.month - 1],
            "kd": kd,
            "kts": kts,
            "kr": kr,
            "total": kd + kts + kr,
        })
    return trend


def get_lead_source_distribution(leads: List[Dict[str, Any]], now=None) -> List[Dict[str, Any]]:
    month_start = start_of_month(now or timezone.now())
    counts = {}
    for lead in leads:
        if _created_between(lead, month_start):
            source = lead.get("source") or "other"
            counts[source] = counts.get(source, 0) + 1

    return [
        {
            "name": LEAD_SOURCE_LABELS.get(source, source),
            "value": count,
            "color": LEAD_SOURCE_COLORS.get(source, LEAD_SOURCE_COLORS["other"]),
        }
        for source, count in counts.items()
    ]


def get_job_type_distribution(jobs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    counts = {}
    for job in jobs:
        job_type = job.get("type") or "other"
        counts[job_type] = counts.get(job_type, 0) + 1
    return [{"name": JOB_TYPE_LABELS.get(t, t), "count": count} for t, count in counts.items()]


def build_dashboard(jobs, leads, contractors, invoices, campaign_count: int = 0, now=None) -> Dict[str, Any]:
    now = now or timezone.now()
    return {
        "stats": calculate_dashboard_stats(jobs, leads, contractors, invoices, now),
        "entityStats": calculate_entity_stats(jobs, leads, contractors, invoices, campaign_count, now),
        "businessFlow": calculate_business_flow_stats(jobs, leads, contractors, invoices, campaign_count, now),
        "revenueTrend": generate_revenue_trend(invoices, now),
        "leadSources": get_lead_source_distribution(leads, now),
        "jobTypes": get_job_type_distribution(jobs),
    }
