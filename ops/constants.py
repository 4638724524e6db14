import os

# Firestore collections
USERS_COLLECTION = "users"
CONTRACTORS_COLLECTION = "contractors"
AVAILABILITY_SUBCOLLECTION = "availability"
JOBS_COLLECTION = "jobs"
COMMUNICATIONS_SUBCOLLECTION = "communications"
LEADS_COLLECTION = "leads"
CAMPAIGNS_COLLECTION = "campaigns"
INVOICES_COLLECTION = "invoices"
PAYOUTS_COLLECTION = "payouts"
PARTNERS_COLLECTION = "partners"
LABOR_REQUESTS_COLLECTION = "laborRequests"
PARTNER_TICKETS_COLLECTION = "partnerServiceTickets"
NOTIFICATIONS_COLLECTION = "notifications"
RATING_REQUESTS_COLLECTION = "ratingRequests"

# Roles
ADMIN_ROLES = ("owner", "admin")
INTERNAL_ROLES = ("owner", "admin", "sales_rep", "contractor", "pm")

# Entities
INTERNAL_ENTITIES = ("kd", "kts", "kr")
ENTITY_NAMES = {
    "kd": "Keynote Digital",
    "kts": "Key Trade Solutions",
    "kr": "Key Renovations",
    "customer": "Customers",
    "subscriber": "Subscribers",
    "contractor": "Contractor",
}

# Jobs
JOB_STATUS_ORDER = [
    "lead",
    "sold",
    "front_end_hold",
    "production",
    "scheduled",
    "started",
    "complete",
    "paid_in_full",
]
JOB_TYPES = ("bathroom", "kitchen", "exterior", "other")
CLOSED_JOB_STATUSES = ("complete", "paid_in_full")
WARRANTY_YEARS = 1

# Leads
LEAD_STATUSES = ("new", "assigned", "contacted", "qualified", "converted", "lost", "returned")
LEAD_SOURCES = ("google_ads", "meta", "tiktok", "event", "referral", "other")
LEAD_QUALITIES = ("hot", "warm", "cold")

# Contractors
CONTRACTOR_STATUSES = ("pending", "active", "inactive", "suspended")
TRADES = ("installer", "sales_rep", "service_tech", "pm")
DEFAULT_SERVICE_RADIUS_MILES = 30
DEFAULT_RATING = 3.0

# Availability
TIME_BLOCKS = ("am", "pm", "evening")
AVAILABILITY_STATUSES = ("available", "busy", "unavailable", "on_leave")

# Recommendation scoring weights
RECOMMENDATION_WEIGHTS = {
    "availability": 0.40,
    "distance": 0.35,
    "rating": 0.25,
}

# Invoices
INVOICE_STATUSES = ("draft", "sent", "paid", "overdue")
INVOICE_ENTITIES = ("kd", "kts", "kr", "customer", "subscriber", "contractor")
NET_TERMS_DAYS = 30

# Payouts
PAYOUT_STATUSES = ("pending", "processing", "completed", "failed")
DEFAULT_LEAD_FEE_PERCENTAGE = 0.05

# Partners
PARTNER_STATUSES = ("pending", "active", "inactive", "suspended")
LABOR_REQUEST_STATUS_ORDER = [
    "new",
    "reviewed",
    "approved",
    "assigned",
    "in_progress",
    "complete",
]
LABOR_REQUEST_STATUSES = tuple(LABOR_REQUEST_STATUS_ORDER) + ("cancelled",)
WORK_TYPES = ("installation", "repair", "maintenance", "inspection", "other")
PARTNER_TICKET_STATUS_ORDER = [
    "new",
    "reviewed",
    "assigned",
    "scheduled",
    "in_progress",
    "complete",
]
ISSUE_TYPES = ("warranty", "repair", "callback", "other")
URGENCIES = ("low", "medium", "high", "emergency")

# Rating requests
RATING_REQUEST_EXPIRY_DAYS = 30

# Notifications
NOTIFICATION_HISTORY_LIMIT = 50
UNREGISTERED_TOKEN_ERROR = "registration-token-not-registered"

# Cron
CRON_SECRET_HEADER = "HTTP_X_CRON_SECRET"

# Outbound HTTP
FUNCTIONS_TIMEOUT_SECONDS = int(os.environ.get("FUNCTIONS_TIMEOUT_SECONDS", "30"))
GEOCODE_TIMEOUT_SECONDS = 10.0
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
