"""
Payouts owed by KR when a job is paid in full: the KD lead fee and the
KTS labor/commission payout, each backed by a draft invoice.
"""
import logging
from typing import Optional, Dict, Any, List

from django.utils import timezone

from .constants import (
    CONTRACTORS_COLLECTION,
    DEFAULT_LEAD_FEE_PERCENTAGE,
    JOBS_COLLECTION,
    LEADS_COLLECTION,
    PAYOUTS_COLLECTION,
)
from .firebase_service import FirestoreRepository
from .invoices import invoice_repository
from .utils import normalize_datetime, to_number

logger = logging.getLogger("ops")


def get_payout_summary(payouts: List[Dict[str, Any]]) -> Dict[str, Any]:
    summary = {
        "totalPending": 0,
        "totalProcessing": 0,
        "totalCompleted": 0,
        "totalFailed": 0,
        "pendingAmount": 0.0,
        "completedAmount": 0.0,
    }
    for payout in payouts:
        status = payout.get("status")
        amount = to_number(payout.get("amount"))
        if status == "pending":
            summary["totalPending"] += 1
            summary["pendingAmount"] += amount
        elif status == "processing":
            summary["totalProcessing"] += 1
            summary["pendingAmount"] += amount
        elif status == "completed":
            summary["totalCompleted"] += 1
            summary["completedAmount"] += amount
        elif status == "failed":
            summary["totalFailed"] += 1
    return summary


class PayoutRepository(FirestoreRepository):
    collection_name = PAYOUTS_COLLECTION

    def __init__(self, db=None, invoices=None):
        super().__init__(db=db)
        self.invoices = invoices or invoice_repository
        self.jobs = FirestoreRepository(JOBS_COLLECTION, db=db)
        self.leads = FirestoreRepository(LEADS_COLLECTION, db=db)
        self.contractors = FirestoreRepository(CONTRACTORS_COLLECTION, db=db)

    def list_payouts(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        query = [
            (key, "==", filters[key])
            for key in ("status", "type", "toEntity", "jobId", "contractorId")
            if filters.get(key)
        ]
        payouts = self.list(filters=query, order_by="createdAt")

        start = normalize_datetime(filters.get("startDate"))
        end = normalize_datetime(filters.get("endDate"))
        if start:
            payouts = [p for p in payouts if (normalize_datetime(p.get("createdAt")) or start) >= start]
        if end:
            payouts = [p for p in payouts if (normalize_datetime(p.get("createdAt")) or end) <= end]
        return payouts

    def get_job_payouts(self, job_id: str) -> List[Dict[str, Any]]:
        return self.list(filters=[("jobId", "==", job_id)], order_by="createdAt")

    def summary(self) -> Dict[str, Any]:
        return get_payout_summary(self.list())

    def update_payout_status(
        self,
        payout_id: str,
        status: str,
        processed_by: Optional[str] = None,
        notes: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        updates = {"status": status}
        if status == "completed":
            updates["processedAt"] = timezone.now()
            if processed_by:
                updates["processedBy"] = processed_by
            if notes:
                updates["notes"] = notes
        if status == "failed":
            updates["failedAt"] = timezone.now()
            if failure_reason:
                updates["failureReason"] = failure_reason
        return self.update(payout_id, updates)

    def mark_completed(self, payout_id: str, processed_by: str, reference: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return self.update_payout_status(payout_id, "completed", processed_by=processed_by, notes=reference)

    def mark_failed(self, payout_id: str, reason: str) -> Optional[Dict[str, Any]]:
        return self.update_payout_status(payout_id, "failed", failure_reason=reason)

    def generate_job_payouts(
        self,
        job: Dict[str, Any],
        lead_fee_percentage: float = DEFAULT_LEAD_FEE_PERCENTAGE,
    ) -> Dict[str, str]:
        """
        Create the lead-fee (KR -> KD) and labor (KR -> KTS) payouts for a
        paid job. Returns the ids of whatever was created.
        """
        result = {}
        commission = job.get("commission") or {}
        contract_value = to_number(commission.get("contractValue"))
        if contract_value <= 0:
            logger.warning(f"[PAYOUTS] Job {job.get('jobNumber')} has no contract value, skipping payouts")
            return result

        lead_id = job.get("leadId")
        if lead_id:
            lead = self.leads.get(lead_id)
            if lead:
                amount = contract_value * lead_fee_percentage
                invoice = self.invoices.generate_lead_fee_invoice(lead_id, lead.get("source", "other"), amount)
                payout = self.create({
                    "jobId": job["id"],
                    "jobNumber": job.get("jobNumber"),
                    "type": "lead_fee",
                    "fromEntity": "kr",
                    "toEntity": "kd",
                    "amount": amount,
                    "invoiceId": invoice["id"] if invoice else None,
                    "status": "pending",
                    "leadId": lead_id,
                    "leadSource": lead.get("source"),
                })
                if payout:
                    result["leadFeePayoutId"] = payout["id"]
                if invoice:
                    self.jobs.update(job["id"], {"linkedInvoices.leadFeeInvoiceId": invoice["id"]})

        labor_amount = to_number((job.get("costs") or {}).get("laborActual"))
        commission_amount = to_number(commission.get("amount"))
        total_labor = labor_amount + commission_amount
        crew_ids = job.get("crewIds") or []

        if total_labor > 0 and crew_ids:
            # The first crew member stands in for the crew on the invoice
            contractor_id = crew_ids[0]
            contractor = self.contractors.get(contractor_id) or {}
            contractor_name = contractor.get("businessName") or "Contractor"

            invoice = self.invoices.generate_labor_invoice(
                job["id"], job.get("jobNumber", ""), labor_amount, commission_amount, contractor_name
            )
            payout = self.create({
                "jobId": job["id"],
                "jobNumber": job.get("jobNumber"),
                "type": "labor",
                "fromEntity": "kr",
                "toEntity": "kts",
                "amount": total_labor,
                "invoiceId": invoice["id"] if invoice else None,
                "status": "pending",
                "contractorId": contractor_id,
                "contractorName": contractor_name,
            })
            if payout:
                result["laborPayoutId"] = payout["id"]
            if invoice:
                self.jobs.update(job["id"], {"linkedInvoices.laborInvoiceId": invoice["id"]})

        logger.info(f"[PAYOUTS] Generated for job {job.get('jobNumber')}: {result}")
        return result


payout_repository = PayoutRepository()
