"""
Donation store.

Donations live in the `donation` collection. Reads apply the lazily computed
expiry status; writes go through the lifecycle controller and are persisted
with a conditional update so that two NGOs racing to accept the same
donation cannot both win.
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from database import create_document, get_documents, now_utc
from errors import Forbidden, InvalidTransition, NotFound, Unavailable, ValidationError
from lifecycle import transition, with_effective_status
from notifications import notify, record_change
from schemas import Donation, DONATION_STATUSES, from_document

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("foodItem", "quantity", "unit", "expiryDate", "address")
FILTER_FIELDS = ("foodItem", "quantity", "unit", "expiryDate", "address", "status", "donorId", "ngoId", "notes")


def parse_expiry(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Expiry date '{value}' is not a valid date (expected YYYY-MM-DD)")


def parse_quantity(value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError("Quantity must be a positive number")
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Quantity must be a positive number")
    if not math.isfinite(quantity) or not quantity > 0:
        raise ValidationError("Quantity must be a positive number")
    return quantity


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class DonationStore:
    collection = "donation"

    def __init__(self, db):
        self.db = db

    # ------------------ Reads ------------------

    def _find_raw(self, donation_id: str) -> Dict[str, Any]:
        if not ObjectId.is_valid(donation_id):
            raise NotFound(f"Donation {donation_id} not found")
        try:
            doc = self.db[self.collection].find_one({"_id": ObjectId(donation_id)})
        except PyMongoError as e:
            logger.exception("lookup of donation %s failed", donation_id)
            raise Unavailable(f"Could not load donation: {e}") from e
        if not doc:
            raise NotFound(f"Donation {donation_id} not found")
        return doc

    def _to_model(self, doc: Dict[str, Any]) -> Donation:
        return with_effective_status(from_document(Donation, doc))

    def get(self, donation_id: str) -> Donation:
        return self._to_model(self._find_raw(donation_id))

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Donation]:
        filters = dict(filters or {})
        unknown = sorted(set(filters) - set(FILTER_FIELDS))
        if unknown:
            raise ValidationError(f"Cannot filter donations by {', '.join(unknown)}")

        wanted_status = filters.pop("status", None)
        query: Dict[str, Any] = {}
        for field, value in filters.items():
            if field == "expiryDate":
                value = parse_expiry(value).isoformat()
            query[field] = value

        if wanted_status is not None:
            if wanted_status not in DONATION_STATUSES:
                raise ValidationError(f"'{wanted_status}' is not a donation status")
            # expiry is not stored, so pending/accepted rows may read back as expired
            if wanted_status == "expired":
                query["status"] = {"$in": ["pending", "accepted", "expired"]}
            else:
                query["status"] = wanted_status

        items = get_documents(self.db, self.collection, query, sort_field="createdAt")
        result = [self._to_model(it) for it in items]
        if wanted_status is not None:
            result = [d for d in result if d.status == wanted_status]
        return result

    def list_available(self) -> List[Donation]:
        return self.list({"status": "pending", "ngoId": None})

    def list_by_donor(self, donor_id: str) -> List[Donation]:
        return self.list({"donorId": donor_id})

    def list_by_ngo(self, ngo_id: str) -> List[Donation]:
        return self.list({"ngoId": ngo_id})

    # ------------------ Writes ------------------

    def create(self, donor_id: str, fields: Dict[str, Any]) -> Donation:
        missing = [f for f in REQUIRED_FIELDS if _is_blank(fields.get(f))]
        if missing:
            raise ValidationError(f"Missing required fields for donation: {', '.join(missing)}")

        stamp = now_utc()
        doc = {
            "foodItem": str(fields["foodItem"]).strip(),
            "quantity": parse_quantity(fields["quantity"]),
            "unit": str(fields["unit"]).strip(),
            "expiryDate": parse_expiry(fields["expiryDate"]).isoformat(),
            "address": str(fields["address"]).strip(),
            "notes": fields.get("notes") or None,
            "status": "pending",
            "donorId": donor_id,
            "ngoId": None,
            "createdAt": stamp,
            "updatedAt": stamp,
        }
        donation_id = create_document(self.db, self.collection, doc)
        record_change(self.db, self.collection, "insert", donation_id)
        logger.info("donation %s created by donor %s (%s %s %s)",
                    donation_id, donor_id, doc["quantity"], doc["unit"], doc["foodItem"])
        return self.get(donation_id)

    def update_status(self, donation_id: str, new_status: str, acting_user_id: str, acting_role: str) -> Donation:
        raw = self._find_raw(donation_id)
        current = self._to_model(raw)
        try:
            updated = transition(current, new_status, acting_user_id, acting_role)
        except (InvalidTransition, Forbidden) as e:
            logger.warning("rejected %s -> %s on donation %s by %s: %s",
                           current.status, new_status, donation_id, acting_user_id, e)
            raise

        try:
            doc = self.db[self.collection].find_one_and_update(
                {"_id": raw["_id"], "status": raw["status"], "ngoId": raw.get("ngoId")},
                {"$set": {
                    "status": updated.status,
                    "ngoId": updated.ngoId,
                    "updatedAt": updated.updatedAt,
                }},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.exception("status update of donation %s failed", donation_id)
            raise Unavailable(f"Could not update donation: {e}") from e

        if doc is None:
            latest = self._find_raw(donation_id)
            logger.warning("lost update race on donation %s (now %s, ngo %s)",
                           donation_id, latest.get("status"), latest.get("ngoId"))
            if latest.get("ngoId") and latest.get("ngoId") != acting_user_id:
                raise InvalidTransition("This donation was already accepted by another organization")
            raise InvalidTransition("This donation was changed by someone else; reload and try again")

        record_change(self.db, self.collection, "update", donation_id)
        logger.info("donation %s moved %s -> %s by %s", donation_id, current.status, updated.status, acting_user_id)
        self._notify_donor(updated, acting_user_id)
        return self._to_model(doc)

    def _notify_donor(self, donation: Donation, acting_user_id: str):
        org = self._user_name(acting_user_id) or "An organization"
        if donation.status == "accepted":
            message = f"{org} accepted your donation of {donation.foodItem}"
        else:
            message = f"{org} collected your donation of {donation.foodItem}"
        notify(
            self.db,
            donation.donorId,
            f"donation_{donation.status}",
            message,
            {"donation_id": donation.id, "ngo_id": acting_user_id},
        )

    def _user_name(self, user_id: str) -> Optional[str]:
        if not ObjectId.is_valid(user_id):
            return None
        user = self.db["user"].find_one({"_id": ObjectId(user_id)}, {"name": 1})
        return user.get("name") if user else None
