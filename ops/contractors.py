"""
Contractor records and their per-day availability.

Availability documents live at contractors/{id}/availability/{YYYY-MM-DD}
with one status per time block; a missing document means every block is
available.
"""
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Dict, Any, List

from django.utils import timezone

from .constants import (
    AVAILABILITY_SUBCOLLECTION,
    CONTRACTORS_COLLECTION,
    TIME_BLOCKS,
)
from .firebase_service import FirestoreRepository, snapshot_to_dict
from .geocoding import ensure_coordinates
from .ratings import create_rating, update_rating
from .utils import date_key, run_async, text_matches

logger = logging.getLogger("ops")

AVAILABILITY_MAX_WORKERS = int(os.environ.get("AVAILABILITY_MAX_WORKERS", "8"))


def default_blocks() -> Dict[str, str]:
    return {block: "available" for block in TIME_BLOCKS}


def normalize_availability(data: Dict[str, Any]) -> Dict[str, Any]:
    """Older documents carry one `status` for the whole day instead of blocks."""
    if data.get("blocks"):
        return data
    status = data.get("status")
    blocks = {block: status for block in TIME_BLOCKS} if status else default_blocks()
    return {**data, "blocks": blocks}


def get_day_status(blocks: Dict[str, str]) -> str:
    statuses = [blocks.get(block, "available") for block in TIME_BLOCKS]
    if all(status == statuses[0] for status in statuses):
        return statuses[0]
    return "busy"


class ContractorRepository(FirestoreRepository):
    collection_name = CONTRACTORS_COLLECTION

    def list_contractors(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        query = []
        if filters.get("status"):
            query.append(("status", "==", filters["status"]))
        if filters.get("trade"):
            query.append(("trades", "array_contains", filters["trade"]))

        contractors = self.list(filters=query, order_by="createdAt")

        search = filters.get("search")
        if search:
            contractors = [
                c for c in contractors
                if text_matches(
                    search,
                    c.get("businessName"),
                    (c.get("address") or {}).get("city"),
                    (c.get("address") or {}).get("state"),
                )
            ]
        return contractors

    def get_by_user_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        matches = self.list(filters=[("userId", "==", user_id)], limit=1)
        return matches[0] if matches else None

    def create_contractor(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = dict(data)
        record.setdefault("status", "pending")
        record.setdefault("trades", [])
        record["rating"] = create_rating(record.get("rating"))
        if record.get("address"):
            record["address"] = run_async(ensure_coordinates(record["address"]))
        return self.create(record)

    def update_contractor(self, contractor_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = dict(data)
        updates.pop("id", None)
        updates.pop("createdAt", None)
        if updates.get("address"):
            updates["address"] = run_async(ensure_coordinates(updates["address"]))
        return self.update(contractor_id, updates)

    def update_contractor_rating(self, contractor_id: str, rating_updates: Dict[str, float]) -> Optional[Dict[str, Any]]:
        contractor = self.get(contractor_id)
        if contractor is None:
            return None
        rating = update_rating(contractor.get("rating") or {}, rating_updates)
        return self.update(contractor_id, {"rating": rating})

    def get_user_id(self, contractor_id: str) -> Optional[str]:
        contractor = self.get(contractor_id)
        return contractor.get("userId") if contractor else None

    # =========================================================================
    # Availability
    # =========================================================================

    def _availability(self, contractor_id: str):
        return self.collection().document(contractor_id).collection(AVAILABILITY_SUBCOLLECTION)

    def get_availability(self, contractor_id: str, day) -> Optional[Dict[str, Any]]:
        if not self.db:
            return None
        try:
            doc = self._availability(contractor_id).document(date_key(day)).get()
            if not doc.exists:
                return None
            return normalize_availability(snapshot_to_dict(doc))
        except Exception as e:
            logger.error(f"Error getting availability for {contractor_id}: {e}")
            return None

    def set_availability(
        self,
        contractor_id: str,
        day,
        blocks: Dict[str, str],
        notes: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        if not self.db:
            return None
        key = date_key(day)
        record = {
            "date": key,
            "blocks": {block: blocks.get(block, "available") for block in TIME_BLOCKS},
            "notes": notes or None,
            "updatedAt": timezone.now(),
            "syncSource": "app",
        }
        try:
            self._availability(contractor_id).document(key).set(record)
            return record
        except Exception as e:
            logger.error(f"Error setting availability for {contractor_id}/{key}: {e}")
            return None

    def set_block_availability(self, contractor_id: str, day, block: str, status: str) -> Optional[Dict[str, Any]]:
        existing = self.get_availability(contractor_id, day)
        blocks = dict(existing["blocks"]) if existing else default_blocks()
        blocks[block] = status
        return self.set_availability(contractor_id, day, blocks, (existing or {}).get("notes"))

    def clear_availability(self, contractor_id: str, day) -> bool:
        if not self.db:
            return False
        try:
            self._availability(contractor_id).document(date_key(day)).delete()
            return True
        except Exception as e:
            logger.error(f"Error clearing availability for {contractor_id}: {e}")
            return False

    def get_block_status(self, contractor_id: str, day, block: str) -> str:
        availability = self.get_availability(contractor_id, day)
        if availability is None:
            return "available"
        return availability["blocks"].get(block, "available")

    def get_block_statuses(self, contractor_ids: List[str], day, block: str) -> Dict[str, str]:
        """Availability status of one block for many contractors, fetched concurrently."""
        if not contractor_ids:
            return {}
        with ThreadPoolExecutor(max_workers=AVAILABILITY_MAX_WORKERS, thread_name_prefix="availability") as executor:
            statuses = executor.map(lambda cid: self.get_block_status(cid, day, block), contractor_ids)
            return dict(zip(contractor_ids, statuses))


contractor_repository = ContractorRepository()
