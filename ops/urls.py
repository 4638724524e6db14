from django.urls import path
from . import views

urlpatterns = [
    # Health check
    path("health", views.health_check, name="health"),

    # KTS contractors (recommendations before <id> so it is not read as an id)
    path("contractors", views.contractor_list, name="contractors"),
    path("contractors/recommendations", views.contractor_recommendations, name="contractor_recommendations"),
    path("contractors/<str:contractor_id>", views.contractor_detail, name="contractor_detail"),
    path(
        "contractors/<str:contractor_id>/availability",
        views.contractor_availability,
        name="contractor_availability",
    ),

    # KR jobs
    path("jobs", views.job_list, name="jobs"),
    path("jobs/<str:job_id>", views.job_detail, name="job_detail"),
    path("jobs/<str:job_id>/transition", views.job_transition, name="job_transition"),
    path("jobs/<str:job_id>/transitions", views.job_transitions, name="job_transitions"),
    path("jobs/<str:job_id>/crew", views.job_crew, name="job_crew"),
    path("jobs/<str:job_id>/communications", views.job_communications, name="job_communications"),

    # KD leads
    path("leads", views.lead_list, name="leads"),
    path("leads/<str:lead_id>", views.lead_detail, name="lead_detail"),
    path("leads/<str:lead_id>/assign", views.lead_assign, name="lead_assign"),
    path("leads/<str:lead_id>/return", views.lead_return, name="lead_return"),
    path("leads/<str:lead_id>/convert", views.lead_convert, name="lead_convert"),

    # Invoices
    path("invoices", views.invoice_list, name="invoices"),
    path("invoices/stats", views.invoice_stats, name="invoice_stats"),
    path("invoices/<str:invoice_id>", views.invoice_detail, name="invoice_detail"),
    path("invoices/<str:invoice_id>/send", views.invoice_send, name="invoice_send"),
    path("invoices/<str:invoice_id>/pay", views.invoice_pay, name="invoice_pay"),

    # Payouts
    path("payouts", views.payout_list, name="payouts"),
    path("payouts/summary", views.payout_summary, name="payout_summary"),
    path("payouts/<str:payout_id>/status", views.payout_status, name="payout_status"),

    # Partner portal
    path("partners", views.partner_list, name="partners"),
    path("partners/<str:partner_id>", views.partner_detail, name="partner_detail"),
    path("partners/<str:partner_id>/approve", views.partner_approve, name="partner_approve"),
    path("partners/<str:partner_id>/status", views.partner_status, name="partner_status"),
    path("labor-requests", views.labor_requests, name="labor_requests"),
    path("labor-requests/<str:request_id>", views.labor_request_detail, name="labor_request_detail"),
    path("labor-requests/<str:request_id>/status", views.labor_request_status, name="labor_request_status"),
    path("labor-requests/<str:request_id>/assign", views.labor_request_assign, name="labor_request_assign"),
    path("partner-tickets", views.partner_tickets, name="partner_tickets"),
    path("partner-tickets/<str:ticket_id>", views.partner_ticket_detail, name="partner_ticket_detail"),
    path("partner-tickets/<str:ticket_id>/status", views.partner_ticket_status, name="partner_ticket_status"),
    path("partner-tickets/<str:ticket_id>/assign", views.partner_ticket_assign, name="partner_ticket_assign"),
    path("partner-tickets/<str:ticket_id>/resolve", views.partner_ticket_resolve, name="partner_ticket_resolve"),

    # Notifications for the signed-in user
    path("notifications", views.notification_history, name="notifications"),
    path("notifications/unread-count", views.notification_unread_count, name="notification_unread_count"),
    path("notifications/read-all", views.notification_read_all, name="notification_read_all"),
    path("notifications/preferences", views.notification_preferences, name="notification_preferences"),
    path(
        "notifications/preferences/reset",
        views.notification_preferences_reset,
        name="notification_preferences_reset",
    ),
    path("notifications/tokens", views.notification_tokens, name="notification_tokens"),
    path("notifications/test", views.notification_test, name="notification_test"),
    path("notifications/<str:notification_id>/read", views.notification_read, name="notification_read"),

    # Reports
    path("reports/pnl", views.pnl, name="pnl"),
    path("reports/dashboard", views.dashboard, name="dashboard"),

    # AI assistant
    path("chat", views.chat_message, name="chat"),
    path("chat/context", views.chat_context, name="chat_context"),

    # Public customer ratings
    path("ratings/<str:token>", views.rating, name="rating"),

    # Google Sheets
    path("sheets/sync-expenses", views.sync_expenses, name="sync_expenses"),

    # Scheduler
    path("cron/daily", views.daily, name="cron_daily"),
    path("cron/invoices/overdue", views.overdue_invoices, name="cron_overdue_invoices"),
]
