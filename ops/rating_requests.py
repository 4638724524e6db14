"""
Customer rating links sent after a job is paid.

Each request carries a random URL-safe token; the customer rates the crew
through the public /ratings/<token> endpoint and the averaged customer score
feeds the contractor's rating.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Dict, Any, List

from django.utils import timezone

from .constants import DEFAULT_RATING, RATING_REQUEST_EXPIRY_DAYS, RATING_REQUESTS_COLLECTION
from .contractors import contractor_repository
from .firebase_service import FirestoreRepository
from .utils import normalize_datetime, round_half_up, to_number

logger = logging.getLogger("ops")

TOKEN_BYTES = 24


class RatingRequestError(Exception):
    def __init__(self, code: str, status: int = 400):
        super().__init__(code)
        self.code = code
        self.status = status


@dataclass
class SubmitRatingResult:
    request: Dict[str, Any]
    customer_rating: float
    contractor: Optional[Dict[str, Any]] = None


def generate_rating_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def is_expired(request: Dict[str, Any], now=None) -> bool:
    if request.get("status") == "expired":
        return True
    expires_at = normalize_datetime(request.get("expiresAt"))
    return expires_at is not None and expires_at < (now or timezone.now())


def average_customer_rating(requests: List[Dict[str, Any]]) -> float:
    """Mean of submitted ratings to one decimal; the default rating when none exist."""
    scores = [to_number(r.get("rating")) for r in requests if r.get("rating") is not None]
    if not scores:
        return DEFAULT_RATING
    return round_half_up(sum(scores) / len(scores) * 10) / 10


class RatingRequestRepository(FirestoreRepository):
    collection_name = RATING_REQUESTS_COLLECTION

    def __init__(self, db=None, contractors=None):
        super().__init__(db=db)
        self.contractors = contractors or contractor_repository

    def create_rating_request(
        self,
        job_id: str,
        job_number: str,
        contractor_id: str,
        contractor_name: str,
        customer_email: str,
        customer_name: str,
        now=None,
    ) -> Optional[Dict[str, Any]]:
        now = now or timezone.now()
        return self.create({
            "jobId": job_id,
            "jobNumber": job_number,
            "contractorId": contractor_id,
            "contractorName": contractor_name,
            "customerEmail": customer_email,
            "customerName": customer_name,
            "token": generate_rating_token(),
            "status": "pending",
            "sentAt": now,
            "expiresAt": now + timedelta(days=RATING_REQUEST_EXPIRY_DAYS),
        })

    def get_by_token(self, token: str) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        matches = self.list(filters=[("token", "==", token)], limit=1)
        return matches[0] if matches else None

    def get_pending_for_job(self, job_id: str) -> List[Dict[str, Any]]:
        return self.list(filters=[("jobId", "==", job_id), ("status", "==", "pending")])

    def get_contractor_ratings(self, contractor_id: str) -> List[Dict[str, Any]]:
        return self.list(filters=[("contractorId", "==", contractor_id), ("status", "==", "completed")])

    def submit_rating(self, token: str, rating, comment: Optional[str] = None, now=None) -> SubmitRatingResult:
        """
        Record the customer's 1-5 score and fold the contractor's new
        average into their rating. Raises RatingRequestError when the token
        is unknown, already used or expired, or the score is out of range.
        """
        now = now or timezone.now()
        request = self.get_by_token(token)
        if request is None:
            raise RatingRequestError("rating_request_not_found", status=404)
        if request.get("status") == "completed":
            raise RatingRequestError("rating_already_submitted", status=409)
        if is_expired(request, now):
            raise RatingRequestError("rating_request_expired", status=410)

        score = to_number(rating, default=None)
        if score is None or score < 1 or score > 5:
            raise RatingRequestError("invalid_rating")

        updated = self.update(request["id"], {
            "rating": score,
            "comment": comment or None,
            "status": "completed",
            "completedAt": now,
        })
        if updated is None:
            raise RatingRequestError("update_failed", status=500)

        contractor_id = request.get("contractorId")
        customer_rating = average_customer_rating(self.get_contractor_ratings(contractor_id))
        contractor = self.contractors.update_contractor_rating(contractor_id, {"customer": customer_rating})
        logger.info(f"[RATINGS] {request.get('jobNumber')} rated {score} -> customer {customer_rating}")
        return SubmitRatingResult(request=updated, customer_rating=customer_rating, contractor=contractor)

    def mark_reminder_sent(self, request_id: str) -> Optional[Dict[str, Any]]:
        return self.update(request_id, {"reminderSentAt": timezone.now()})

    def get_needing_reminder(self, job_id: Optional[str] = None) -> List[Dict[str, Any]]:
        pending = self.get_pending_for_job(job_id) if job_id else self.list(filters=[("status", "==", "pending")])
        return [r for r in pending if not r.get("reminderSentAt")]

    def remind_pending_for_job(self, job_id: str) -> int:
        """Stamp reminderSentAt on the job's pending links that have not been reminded yet."""
        reminded = 0
        for request in self.get_needing_reminder(job_id):
            if self.mark_reminder_sent(request["id"]):
                reminded += 1
        if reminded:
            logger.info(f"[RATINGS] Sent {reminded} rating reminder(s) for job {job_id}")
        return reminded

    def expire_old_requests(self, now=None) -> int:
        now = now or timezone.now()
        expired = 0
        for request in self.list(filters=[("status", "==", "pending")]):
            if is_expired(request, now) and self.update(request["id"], {"status": "expired"}):
                expired += 1
        return expired


rating_request_repository = RatingRequestRepository()
