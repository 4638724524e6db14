"""
Daily housekeeping run from cron (POST /cron/daily or `manage.py daily_checks`).

Warns contractors and admins about expiring insurance and licenses, reminds
crews and PMs of jobs starting tomorrow, tells admins about sign-ups awaiting
approval, and expires stale rating links.
"""
import logging
from datetime import timedelta
from typing import Optional, Dict, Any

from django.utils import timezone

from .constants import CONTRACTORS_COLLECTION, JOBS_COLLECTION, USERS_COLLECTION
from .firebase_service import FirestoreRepository
from .jobs import job_street
from .notification_service import build_notification, notification_service
from .rating_requests import rating_request_repository
from .utils import days_between, format_short_date, normalize_datetime

logger = logging.getLogger("ops")

TOMORROW_JOB_STATUSES = ["scheduled", "production"]


def insurance_admin_check(preferences: Dict[str, Any]) -> bool:
    return bool((preferences.get("compliance") or {}).get("insuranceExpiring"))


def user_approval_check(preferences: Dict[str, Any]) -> bool:
    return bool((preferences.get("admin") or {}).get("userApprovals"))


def contractor_label(contractor: Dict[str, Any]) -> str:
    return contractor.get("businessName") or contractor.get("displayName") or "Contractor"


class DailyChecks:
    def __init__(self, db=None, notifications=None, rating_requests=None):
        self.contractors = FirestoreRepository(CONTRACTORS_COLLECTION, db=db)
        self.jobs = FirestoreRepository(JOBS_COLLECTION, db=db)
        self.users = FirestoreRepository(USERS_COLLECTION, db=db)
        self.notifications = notifications or notification_service
        self.rating_requests = rating_requests or rating_request_repository

    def run(self, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        logger.info("[CRON/DAILY] Running daily expiration check")
        summary = {
            "insuranceWarnings": 0,
            "insuranceExpired": 0,
            "licenseWarnings": 0,
            "jobReminders": 0,
            "approvalNotices": 0,
            "ratingRequestsExpired": 0,
        }

        for contractor in self.contractors.list(filters=[("status", "==", "active")]):
            if not contractor.get("userId"):
                continue
            self._check_insurance(contractor, now, summary)
            self._check_licenses(contractor, now, summary)

        self._remind_jobs_tomorrow(now, summary)
        self._announce_pending_users(now, summary)
        summary["ratingRequestsExpired"] = self.rating_requests.expire_old_requests(now)

        logger.info(f"[CRON/DAILY] Completed: {summary}")
        return summary

    def _check_insurance(self, contractor, now, summary) -> None:
        expires = normalize_datetime((contractor.get("insurance") or {}).get("expiration"))
        if expires is None:
            return

        days = days_between(expires, now)
        contractor_id = contractor["id"]
        user_id = contractor["userId"]
        expiration = format_short_date(expires)
        name = contractor_label(contractor)
        base = {"entityType": "contractor", "entityId": contractor_id, "contractorId": contractor_id}

        if days == 30:
            notice_type = "insurance_expiring_30"
            admin_title = f"Insurance Expiring: {name}"
            admin_body = f"Contractor's insurance expires on {expiration}."
        elif days == 7:
            notice_type = "insurance_expiring_7"
            admin_title = "URGENT: Insurance Expiring Soon"
            admin_body = f"{name}'s insurance expires in 7 days."
        elif days <= 0:
            notice_type = "insurance_expired"
            admin_title = "Insurance EXPIRED"
            admin_body = f"{name}'s insurance has expired."
        else:
            return

        self.notifications.send_push_notification(
            user_id, build_notification(notice_type, {**base, "expirationDate": expiration}), now
        )

        if notice_type == "insurance_expired":
            self.contractors.update(contractor_id, {
                "compliance.insurance.status": "expired",
                "compliance.fullyCompliant": False,
            })
            summary["insuranceExpired"] += 1
        else:
            summary["insuranceWarnings"] += 1

        admin_notice = build_notification(notice_type, base)
        admin_notice["title"] = admin_title
        admin_notice["body"] = admin_body
        admin_notice["data"]["actionUrl"] = f"/kts/{contractor_id}"
        self.notifications.notify_admins(admin_notice, check_preference=insurance_admin_check, now=now)

    def _check_licenses(self, contractor, now, summary) -> None:
        for license_info in contractor.get("licenses") or []:
            expires = normalize_datetime(license_info.get("expiration"))
            if expires is None or days_between(expires, now) != 30:
                continue
            self.notifications.send_push_notification(contractor["userId"], build_notification("license_expiring", {
                "licenseType": license_info.get("type", ""),
                "expirationDate": format_short_date(expires),
            }), now)
            summary["licenseWarnings"] += 1

    def _remind_jobs_tomorrow(self, now, summary) -> None:
        local = timezone.localtime(now)
        tomorrow = (local + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
        day_after = tomorrow + timedelta(days=1)

        jobs = self.jobs.list(filters=[
            ("dates.scheduledStart", ">=", tomorrow),
            ("dates.scheduledStart", "<", day_after),
            ("status", "in", TOMORROW_JOB_STATUSES),
        ])
        for job in jobs:
            data = {
                "jobId": job["id"],
                "jobNumber": job.get("jobNumber", ""),
                "jobType": job.get("type", ""),
                "address": job_street(job),
                "entityType": "job",
                "entityId": job["id"],
            }
            recipients = [self._user_for_contractor(c) for c in job.get("crewIds") or []]
            if job.get("pmId"):
                recipients.append(self._user_for_pm(job["pmId"]))

            for user_id in recipients:
                if user_id and self.notifications.send_push_notification(
                    user_id, build_notification("job_starting_tomorrow", data), now
                ):
                    summary["jobReminders"] += 1

    def _user_for_contractor(self, contractor_id: str) -> Optional[str]:
        contractor = self.contractors.get(contractor_id)
        return contractor.get("userId") if contractor else None

    def _user_for_pm(self, pm_id: str) -> Optional[str]:
        # pmId is a user uid; older jobs stored the PM's contractor id
        if self.users.get(pm_id):
            return pm_id
        return self._user_for_contractor(pm_id)

    def _announce_pending_users(self, now, summary) -> None:
        """Tell admins once about each sign-up still waiting for a role."""
        for user in self.users.list(filters=[("status", "==", "pending")]):
            if user.get("approvalNoticeSentAt"):
                continue
            notification = build_notification("user_pending_approval", {
                "userName": user.get("displayName") or user.get("email", ""),
                "email": user.get("email", ""),
                "requestedRole": user.get("requestedRole") or "pending",
                "entityType": "user",
                "entityId": user["id"],
            })
            self.notifications.notify_admins(notification, check_preference=user_approval_check, now=now)
            self.users.update(user["id"], {"approvalNoticeSentAt": now})
            summary["approvalNotices"] += 1


daily_checks = DailyChecks()


def daily_expiration_check(now=None) -> Dict[str, Any]:
    return daily_checks.run(now)
