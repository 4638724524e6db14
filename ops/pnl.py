"""
Profit and loss across the three companies, built from paid invoices.

Revenue for an entity is what it invoiced and got paid for; expenses are
the paid invoices addressed to it. Key Renovations also carries material
costs of finished jobs.
"""
from datetime import time, datetime
from typing import Optional, Dict, Any, List

from django.utils import timezone

from .constants import CLOSED_JOB_STATUSES, ENTITY_NAMES, INTERNAL_ENTITIES
from .utils import add_months, end_of_month, normalize_datetime, start_of_month, to_number

PNL_CATEGORIES = {
    ("kd", "kr"): "Lead Fees",
    ("kd", "subscriber"): "Subscription Revenue",
    ("kts", "kr"): "Labor & Commissions",
    ("kr", "customer"): "Job Revenue",
}


def get_entity_full_name(entity: str) -> str:
    return ENTITY_NAMES.get(entity, entity)


def get_category_from_invoice(invoice: Dict[str, Any]) -> str:
    key = ((invoice.get("from") or {}).get("entity"), (invoice.get("to") or {}).get("entity"))
    return PNL_CATEGORIES.get(key, "Other")


def _paid(invoices):
    return [inv for inv in invoices if inv.get("status") == "paid"]


def calculate_entity_pnl(
    entity: str,
    invoices: List[Dict[str, Any]],
    jobs: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    entries = []
    revenue = 0.0
    expenses = 0.0

    for invoice in _paid(invoices):
        total = to_number(invoice.get("total"))
        if (invoice.get("from") or {}).get("entity") == entity:
            entries.append({"category": get_category_from_invoice(invoice), "amount": total, "type": "revenue"})
            revenue += total

    for invoice in _paid(invoices):
        total = to_number(invoice.get("total"))
        if (invoice.get("to") or {}).get("entity") == entity:
            entries.append({"category": get_category_from_invoice(invoice), "amount": total, "type": "expense"})
            expenses += total

    if entity == "kr" and jobs:
        for job in jobs:
            if job.get("status") not in CLOSED_JOB_STATUSES:
                continue
            materials = to_number((job.get("costs") or {}).get("materialActual"))
            if materials > 0:
                entries.append({"category": "Materials", "amount": materials, "type": "expense"})
                expenses += materials

    return {
        "entity": entity,
        "entityName": get_entity_full_name(entity),
        "revenue": revenue,
        "expenses": expenses,
        "netIncome": revenue - expenses,
        "entries": entries,
    }


def calculate_combined_pnl(
    invoices: List[Dict[str, Any]],
    jobs: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Per-entity P&L for KD, KTS and KR plus consolidated totals.

    Invoices between two internal entities are reported separately as
    intercompany amounts; the consolidated totals still include them.
    """
    entities = [
        calculate_entity_pnl(entity, invoices, jobs if entity == "kr" else None)
        for entity in INTERNAL_ENTITIES
    ]

    intercompany = sum(
        to_number(inv.get("total"))
        for inv in _paid(invoices)
        if (inv.get("from") or {}).get("entity") in INTERNAL_ENTITIES
        and (inv.get("to") or {}).get("entity") in INTERNAL_ENTITIES
    )

    total_revenue = sum(e["revenue"] for e in entities)
    total_expenses = sum(e["expenses"] for e in entities)
    return {
        "totalRevenue": total_revenue,
        "totalExpenses": total_expenses,
        "netIncome": total_revenue - total_expenses,
        "intercompanyRevenue": intercompany,
        "intercompanyExpenses": intercompany,
        "entities": entities,
    }


def group_entries_by_category(entries: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    grouped = {}
    for entry in entries:
        bucket = grouped.setdefault(entry["category"], {"revenue": 0.0, "expense": 0.0})
        if entry["type"] == "revenue":
            bucket["revenue"] += entry["amount"]
        else:
            bucket["expense"] += entry["amount"]
    return grouped


def filter_invoices_by_date_range(invoices: List[Dict[str, Any]], start, end) -> List[Dict[str, Any]]:
    """Invoices created within [start, end], both ends inclusive."""
    start = normalize_datetime(start)
    end = normalize_datetime(end)
    result = []
    for invoice in invoices:
        created = normalize_datetime(invoice.get("createdAt"))
        if created is None:
            continue
        if start and created < start:
            continue
        if end and created > end:
            continue
        result.append(invoice)
    return result


def _end_of_day(dt):
    return datetime.combine(dt.date(), time.max, tzinfo=dt.tzinfo)


def get_date_range_presets(now=None) -> List[Dict[str, Any]]:
    """Report periods relative to `now`; each end is the last moment of its final day."""
    month_start = start_of_month(now)
    quarter_start = month_start.replace(month=(month_start.month - 1) // 3 * 3 + 1)
    year_start = month_start.replace(month=1)
    last_year_start = year_start.replace(year=year_start.year - 1)

    return [
        {"label": "This Month", "start": month_start, "end": _end_of_day(end_of_month(month_start))},
        {
            "label": "Last Month",
            "start": add_months(month_start, -1),
            "end": _end_of_day(end_of_month(add_months(month_start, -1))),
        },
        {
            "label": "This Quarter",
            "start": quarter_start,
            "end": _end_of_day(end_of_month(add_months(quarter_start, 2))),
        },
        {"label": "This Year", "start": year_start, "end": _end_of_day(year_start.replace(month=12, day=31))},
        {
            "label": "Last Year",
            "start": last_year_start,
            "end": _end_of_day(last_year_start.replace(month=12, day=31)),
        },
    ]


def find_date_range_preset(label: str, now=None) -> Optional[Dict[str, Any]]:
    wanted = (label or "").lower().replace("_", " ")
    for preset in get_date_range_presets(now):
        if preset["label"].lower() == wanted:
            return preset
    return None


def calculate_profit_margin(revenue: float, expenses: float) -> float:
    if revenue == 0:
        return 0.0
    return (revenue - expenses) / revenue * 100


def build_pnl_report(invoices, jobs, start=None, end=None, now=None) -> Dict[str, Any]:
    """Combined P&L for a period, with a category breakdown and margin per entity."""
    if start or end:
        invoices = filter_invoices_by_date_range(invoices, start, end)
    combined = calculate_combined_pnl(invoices, jobs)
    for entity in combined["entities"]:
        entity["categories"] = group_entries_by_category(entity["entries"])
        entity["profitMargin"] = calculate_profit_margin(entity["revenue"], entity["expenses"])
    combined["profitMargin"] = calculate_profit_margin(combined["totalRevenue"], combined["totalExpenses"])
    combined["generatedAt"] = now or timezone.now()
    return combined
