from .health import health_check
from .contractors import contractor_list, contractor_detail, contractor_availability, contractor_recommendations
from .jobs import job_list, job_detail, job_transition, job_transitions, job_crew, job_communications
from .leads import lead_list, lead_detail, lead_assign, lead_return, lead_convert
from .invoices import invoice_list, invoice_stats, invoice_detail, invoice_send, invoice_pay
from .payouts import payout_list, payout_summary, payout_status
from .partners import (
    partner_list,
    partner_detail,
    partner_approve,
    partner_status,
    labor_requests,
    labor_request_detail,
    labor_request_status,
    labor_request_assign,
    partner_tickets,
    partner_ticket_detail,
    partner_ticket_status,
    partner_ticket_assign,
    partner_ticket_resolve,
)
from .notifications import (
    notification_history,
    notification_unread_count,
    notification_read,
    notification_read_all,
    notification_preferences,
    notification_preferences_reset,
    notification_tokens,
    notification_test,
)
from .reports import pnl, dashboard
from .chat import chat_message, chat_context
from .ratings import rating
from .sheets import sync_expenses
from .cron import daily, overdue_invoices

__all__ = [
    "health_check",
    "contractor_list",
    "contractor_detail",
    "contractor_availability",
    "contractor_recommendations",
    "job_list",
    "job_detail",
    "job_transition",
    "job_transitions",
    "job_crew",
    "job_communications",
    "lead_list",
    "lead_detail",
    "lead_assign",
    "lead_return",
    "lead_convert",
    "invoice_list",
    "invoice_stats",
    "invoice_detail",
    "invoice_send",
    "invoice_pay",
    "payout_list",
    "payout_summary",
    "payout_status",
    "partner_list",
    "partner_detail",
    "partner_approve",
    "partner_status",
    "labor_requests",
    "labor_request_detail",
    "labor_request_status",
    "labor_request_assign",
    "partner_tickets",
    "partner_ticket_detail",
    "partner_ticket_status",
    "partner_ticket_assign",
    "partner_ticket_resolve",
    "notification_history",
    "notification_unread_count",
    "notification_read",
    "notification_read_all",
    "notification_preferences",
    "notification_preferences_reset",
    "notification_tokens",
    "notification_test",
    "pnl",
    "dashboard",
    "chat_message",
    "chat_context",
    "rating",
    "sync_expenses",
    "daily",
    "overdue_invoices",
]
