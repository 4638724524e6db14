# Models are stored in Firebase Firestore, not Django DB.
# This file is kept for Django app structure compatibility.
#
# Firestore Collections:
# - users/{uid}: role, status, notificationPreferences, fcmTokens
# - contractors/{id}: trades, address (lat/lng), serviceRadius, rating, status
#   - contractors/{id}/availability/{YYYY-MM-DD}: blocks.am/pm/evening
# - jobs/{id}: KR pipeline status, dates, costs, crewIds, commission
#   - jobs/{id}/communications/{id}: status_update/call/note log
# - leads, campaigns, invoices, payouts, partners, laborRequests,
#   partnerServiceTickets, notifications, ratingRequests
#
# See firebase_service.py for Firestore operations.
