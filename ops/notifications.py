"""
Notification types, routing tables, templates and preference rules.

Everything here is pure: notification_service does the Firestore and FCM
work on top of it.
"""
import copy
from typing import Dict, Any, Optional

from django.utils import timezone

NOTIFICATION_CATEGORIES = {
    # Compliance
    "insurance_expiring_30": "compliance",
    "insurance_expiring_7": "compliance",
    "insurance_expired": "compliance",
    "license_expiring": "compliance",
    "w9_needed": "compliance",
    "background_check_complete": "compliance",
    "background_check_flagged": "compliance",
    # Jobs
    "job_assigned": "jobs",
    "job_schedule_changed": "jobs",
    "job_starting_tomorrow": "jobs",
    "job_status_updated": "jobs",
    "job_completed": "jobs",
    "service_ticket_created": "jobs",
    # Leads
    "lead_assigned": "leads",
    "lead_hot": "leads",
    "lead_not_contacted": "leads",
    "lead_replacement_ready": "leads",
    # Financial
    "payment_received": "financial",
    "commission_earned": "financial",
    "invoice_overdue": "financial",
    "subscription_renewal": "financial",
    "subscription_payment_failed": "financial",
    # Admin
    "user_pending_approval": "admin",
    "new_applicant": "admin",
    "system_alert": "admin",
    # Partner requests route to admins
    "partner_labor_request_new": "admin",
    "partner_labor_request_status_changed": "admin",
    "partner_ticket_new": "admin",
    "partner_ticket_status_changed": "admin",
}

NOTIFICATION_TYPES = tuple(NOTIFICATION_CATEGORIES)

NOTIFICATION_PRIORITIES = {
    "insurance_expiring_30": "medium",
    "insurance_expiring_7": "high",
    "insurance_expired": "urgent",
    "license_expiring": "medium",
    "w9_needed": "medium",
    "background_check_complete": "medium",
    "background_check_flagged": "high",
    "job_assigned": "high",
    "job_schedule_changed": "high",
    "job_starting_tomorrow": "medium",
    "job_status_updated": "low",
    "job_completed": "medium",
    "service_ticket_created": "high",
    "lead_assigned": "high",
    "lead_hot": "urgent",
    "lead_not_contacted": "medium",
    "lead_replacement_ready": "medium",
    "payment_received": "medium",
    "commission_earned": "medium",
    "invoice_overdue": "high",
    "subscription_renewal": "medium",
    "subscription_payment_failed": "urgent",
    "user_pending_approval": "high",
    "new_applicant": "medium",
    "system_alert": "medium",
    "partner_labor_request_new": "high",
    "partner_labor_request_status_changed": "medium",
    "partner_ticket_new": "high",
    "partner_ticket_status_changed": "medium",
}

# (category, preference key) deciding whether a type is delivered.
# lead_assigned and lead_hot have their own rules in is_notification_enabled.
PREFERENCE_KEYS = {
    "insurance_expiring_30": ("compliance", "insuranceExpiring"),
    "insurance_expiring_7": ("compliance", "insuranceExpiring"),
    "insurance_expired": ("compliance", "insuranceExpiring"),
    "license_expiring": ("compliance", "licenseExpiring"),
    "w9_needed": ("compliance", "w9Reminders"),
    "background_check_complete": ("compliance", "backgroundCheckUpdates"),
    "background_check_flagged": ("compliance", "backgroundCheckUpdates"),
    "job_assigned": ("jobs", "newAssignments"),
    "job_schedule_changed": ("jobs", "scheduleChanges"),
    "job_starting_tomorrow": ("jobs", "dayBeforeReminders"),
    "job_status_updated": ("jobs", "statusUpdates"),
    "job_completed": ("jobs", "statusUpdates"),
    "service_ticket_created": ("jobs", "statusUpdates"),
    "lead_not_contacted": ("leads", "inactivityReminders"),
    "lead_replacement_ready": ("leads", "leadReplacements"),
    "payment_received": ("financial", "paymentsReceived"),
    "commission_earned": ("financial", "commissionsEarned"),
    "invoice_overdue": ("financial", "invoiceOverdue"),
    "subscription_renewal": ("financial", "subscriptionReminders"),
    "subscription_payment_failed": ("financial", "subscriptionReminders"),
    "user_pending_approval": ("admin", "userApprovals"),
    "new_applicant": ("admin", "newApplicants"),
    "system_alert": ("admin", "systemAlerts"),
    "partner_labor_request_new": ("admin", "partnerRequests"),
    "partner_labor_request_status_changed": ("admin", "partnerRequests"),
    "partner_ticket_new": ("admin", "partnerRequests"),
    "partner_ticket_status_changed": ("admin", "partnerRequests"),
}

PREFERENCE_CATEGORIES = ("compliance", "jobs", "leads", "financial", "admin")

_NO_LEADS = {
    "newLeads": False,
    "hotLeadsOnly": False,
    "inactivityReminders": False,
    "leadReplacements": False,
}
_NO_COMPLIANCE = {
    "insuranceExpiring": False,
    "licenseExpiring": False,
    "w9Reminders": False,
    "backgroundCheckUpdates": False,
}
_NO_JOBS = {
    "newAssignments": False,
    "scheduleChanges": False,
    "dayBeforeReminders": False,
    "statusUpdates": False,
}

BASE_PREFERENCES = {
    "pushEnabled": True,
    "emailDigest": "none",
    "quietHours": {"enabled": True, "start": "21:00", "end": "07:00"},
    "compliance": {
        "insuranceExpiring": True,
        "licenseExpiring": True,
        "w9Reminders": True,
        "backgroundCheckUpdates": False,
    },
    "jobs": {
        "newAssignments": True,
        "scheduleChanges": True,
        "dayBeforeReminders": True,
        "statusUpdates": False,
    },
    "leads": {
        "newLeads": True,
        "hotLeadsOnly": False,
        "inactivityReminders": True,
        "leadReplacements": True,
    },
    "financial": {
        "paymentsReceived": True,
        "commissionsEarned": True,
        "invoiceOverdue": False,
        "subscriptionReminders": True,
    },
    "admin": {
        "userApprovals": False,
        "newApplicants": False,
        "systemAlerts": False,
        "partnerRequests": False,
    },
}

ROLE_PREFERENCE_OVERRIDES = {
    "owner": {
        "compliance": {"backgroundCheckUpdates": True},
        "financial": {"invoiceOverdue": True},
        "admin": {
            "userApprovals": True,
            "newApplicants": True,
            "systemAlerts": True,
            "partnerRequests": True,
        },
    },
    "contractor": {"leads": _NO_LEADS},
    "sales_rep": {
        # Sales reps get leads, not jobs
        "jobs": {"newAssignments": False, "dayBeforeReminders": False},
    },
    "pm": {"leads": _NO_LEADS},
    "subscriber": {"compliance": _NO_COMPLIANCE, "jobs": _NO_JOBS},
    "partner": {
        "compliance": _NO_COMPLIANCE,
        "jobs": {**_NO_JOBS, "statusUpdates": True},
        "leads": _NO_LEADS,
    },
}
ROLE_PREFERENCE_OVERRIDES["admin"] = ROLE_PREFERENCE_OVERRIDES["owner"]


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Merge source into a copy of target; nested dicts merge, everything else replaces."""
    result = dict(target)
    for key, value in source.items():
        current = result.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def get_default_preferences(role: Optional[str]) -> Dict[str, Any]:
    preferences = copy.deepcopy(BASE_PREFERENCES)
    overrides = ROLE_PREFERENCE_OVERRIDES.get(role)
    if overrides:
        preferences = deep_merge(preferences, copy.deepcopy(overrides))
    return preferences


def _job_url(data):
    return f"/kr/{data['jobId']}" if data.get("jobId") else "/kr"


def _lead_url(data):
    return f"/kd/leads/{data['leadId']}" if data.get("leadId") else "/kd"


def _applicant_url(data, fallback):
    return f"/recruiting/applicants/{data['applicantId']}" if data.get("applicantId") else fallback


def get_notification_template(notification_type: str, data: Dict[str, Any]) -> Dict[str, str]:
    """Title, body and actionUrl for a notification type filled from data."""
    d = {key: "" if value is None else value for key, value in (data or {}).items()}
    g = d.get

    templates = {
        "insurance_expiring_30": (
            "Insurance Expires in 30 Days",
            f"Your insurance policy expires on {g('expirationDate', '')}. Upload a new certificate to stay compliant.",
            "/portal/documents",
        ),
        "insurance_expiring_7": (
            "Insurance Expires in 7 Days",
            f"Your insurance expires {g('expirationDate', '')}. Upload new certificate now to avoid work interruption.",
            "/portal/documents",
        ),
        "insurance_expired": (
            "Insurance Expired - Action Required",
            "Your insurance has expired. You cannot be assigned jobs until updated.",
            "/portal/documents",
        ),
        "license_expiring": (
            "License Expiring Soon",
            f"Your {g('licenseType', '')} license expires on {g('expirationDate', '')}. Update your documents.",
            "/portal/documents",
        ),
        "w9_needed": (
            "W-9 Form Needed",
            f"Please submit your W-9 form for tax year {g('taxYear', '')}.",
            "/portal/documents",
        ),
        "background_check_complete": (
            "Background Check Complete",
            f"Background check for {g('applicantName', '')} has been completed.",
            _applicant_url(d, "/admin"),
        ),
        "background_check_flagged": (
            "Background Check Needs Review",
            f"{g('applicantName', '')}'s background check returned \"consider\" status. Review required.",
            _applicant_url(d, "/admin"),
        ),
        "job_assigned": (
            "New Job Assignment",
            f"You've been assigned to {g('jobType', '')} at {g('address', '')}. Scheduled for {g('date', '')}.",
            _job_url(d),
        ),
        "job_schedule_changed": (
            "Job Schedule Changed",
            f"{g('jobType', '')} at {g('address', '')} has been rescheduled to {g('newDate', '')}.",
            _job_url(d),
        ),
        "job_starting_tomorrow": (
            "Job Starting Tomorrow",
            f"Reminder: {g('jobType', '')} at {g('address', '')} starts tomorrow.",
            _job_url(d),
        ),
        "job_status_updated": (
            "Job Status Updated",
            f"Job {g('jobNumber', '')} status changed to {g('status', '')}.",
            _job_url(d),
        ),
        "job_completed": (
            "Job Completed",
            f"Job {g('jobNumber', '')} at {g('address', '')} has been marked complete.",
            _job_url(d),
        ),
        "service_ticket_created": (
            "New Service Ticket",
            f"Service ticket created for {g('address', '')}: {g('issue', '')}.",
            f"/kr/service/{d['ticketId']}" if d.get("ticketId") else "/kr",
        ),
        "lead_assigned": (
            f"New Lead: {g('customerName', '')}",
            f"{g('tradeType', '')} lead in {g('city', '')}. Quality: {g('quality', '')}. Contact within 1 hour.",
            _lead_url(d),
        ),
        "lead_hot": (
            f"Hot Lead: {g('customerName', '')}",
            f"High-intent {g('tradeType', '')} lead in {g('city', '')}. Call now!",
            _lead_url(d),
        ),
        "lead_not_contacted": (
            "Lead Needs Attention",
            f"{g('customerName', '')} hasn't been contacted in 24 hours. Follow up now.",
            _lead_url(d),
        ),
        "lead_replacement_ready": (
            "Replacement Lead Ready",
            f"Your replacement lead for {g('originalLeadName', '')} is now available.",
            _lead_url(d),
        ),
        "payment_received": (
            "Payment Received",
            f"${g('amount', '')} deposited for {g('description', '')}. View details in your earnings.",
            "/financials/earnings",
        ),
        "commission_earned": (
            "Commission Earned",
            f"You earned ${g('amount', '')} commission on job {g('jobNumber', '')}.",
            "/financials/earnings",
        ),
        "invoice_overdue": (
            "Invoice Overdue",
            f"Invoice {g('invoiceNumber', '')} for ${g('amount', '')} is now overdue.",
            f"/financials/invoices/{d['invoiceId']}" if d.get("invoiceId") else "/financials/invoices",
        ),
        "subscription_renewal": (
            "Subscription Renewal",
            f"Your subscription renews in {g('daysUntil', '')} days. Amount: ${g('amount', '')}.",
            "/subscriber/subscription",
        ),
        "subscription_payment_failed": (
            "Payment Failed",
            "Your subscription payment failed. Please update your payment method.",
            "/subscriber/subscription",
        ),
        "user_pending_approval": (
            "New User Awaiting Approval",
            f"{g('userName', '')} ({g('email', '')}) signed up as {g('requestedRole', '')}. Review their application.",
            "/admin",
        ),
        "new_applicant": (
            "New Job Applicant",
            f"{g('applicantName', '')} applied for {g('positionTitle', '')}.",
            _applicant_url(d, "/recruiting"),
        ),
        "system_alert": (
            g("title") or "System Alert",
            g("body") or "A system event requires your attention.",
            g("actionUrl") or "/overview",
        ),
        "partner_labor_request_new": (
            "New Labor Request",
            f"{g('partnerName', '')} submitted a {g('workType', '')} labor request for {g('crewSize', '')} crew member(s).",
            f"/admin/partner-requests/labor/{d['requestId']}" if d.get("requestId") else "/admin/partner-requests",
        ),
        "partner_labor_request_status_changed": (
            "Labor Request Updated",
            f"Your labor request {g('requestNumber', '')} status changed to {g('status', '')}.",
            f"/partner/labor-requests/{d['requestId']}" if d.get("requestId") else "/partner/labor-requests",
        ),
        "partner_ticket_new": (
            "New Partner Service Ticket",
            f"{g('partnerName', '')} submitted a {g('urgency', '')} priority service ticket: {g('issue', '')}.",
            f"/admin/partner-requests/tickets/{d['ticketId']}" if d.get("ticketId") else "/admin/partner-requests",
        ),
        "partner_ticket_status_changed": (
            "Service Ticket Updated",
            f"Your service ticket {g('ticketNumber', '')} status changed to {g('status', '')}.",
            f"/partner/service-tickets/{d['ticketId']}" if d.get("ticketId") else "/partner/service-tickets",
        ),
    }

    title, body, action_url = templates[notification_type]
    return {"title": title, "body": body, "actionUrl": action_url}


def is_notification_enabled(preferences: Dict[str, Any], notification_type: str) -> bool:
    if not preferences.get("pushEnabled"):
        return False

    leads = preferences.get("leads") or {}
    if notification_type == "lead_assigned":
        if leads.get("hotLeadsOnly"):
            return False
        return bool(leads.get("newLeads"))
    if notification_type == "lead_hot":
        return bool(leads.get("newLeads") or leads.get("hotLeadsOnly"))

    keys = PREFERENCE_KEYS.get(notification_type)
    if keys is None:
        return False
    category, key = keys
    return bool((preferences.get(category) or {}).get(key))


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def is_in_quiet_hours(quiet_hours: Optional[Dict[str, Any]], now=None) -> bool:
    """True when `now` (local time) falls inside the window; windows with start > end wrap midnight."""
    if not quiet_hours or not quiet_hours.get("enabled"):
        return False

    local = timezone.localtime(now or timezone.now())
    current = local.hour * 60 + local.minute
    start = _minutes(quiet_hours.get("start", "21:00"))
    end = _minutes(quiet_hours.get("end", "07:00"))

    if start > end:
        return current >= start or current < end
    return start <= current < end


def should_deliver(preferences: Optional[Dict[str, Any]], notification_type: str, now=None) -> bool:
    """
    Preference and quiet-hours gate shared by record creation and push.
    Users without stored preferences get everything.
    """
    if not preferences:
        return True
    if not is_notification_enabled(preferences, notification_type):
        return False
    if NOTIFICATION_PRIORITIES[notification_type] == "urgent":
        return True
    return not is_in_quiet_hours(preferences.get("quietHours"), now)
