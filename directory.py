import logging
from typing import List

from bson import ObjectId
from pymongo.errors import PyMongoError

from database import get_documents, now_utc
from errors import NotFound, Unavailable, ValidationError
from notifications import record_change
from schemas import NGO, from_document

logger = logging.getLogger(__name__)

VERIFICATION_STATUSES = ("pending", "verified", "rejected")


class NgoDirectory:
    """NGO profiles are user records with role "ngo"; only verified ones are listed."""

    collection = "user"

    def __init__(self, db):
        self.db = db

    def list_verified(self) -> List[NGO]:
        return self.list_by_verification("verified")

    def list_by_verification(self, status: str) -> List[NGO]:
        if status not in VERIFICATION_STATUSES:
            raise ValidationError(f"'{status}' is not a verification status")
        items = get_documents(self.db, self.collection, {"role": "ngo", "verificationStatus": status})
        return [from_document(NGO, it) for it in items]

    def search(self, query: str) -> List[NGO]:
        if not query or not query.strip():
            return self.list_verified()
        needle = query.lower()
        return [
            ngo for ngo in self.list_verified()
            if needle in ngo.name.lower()
            or needle in (ngo.address or "").lower()
            or any(needle in area.lower() for area in ngo.serviceAreas)
        ]

    def get(self, ngo_id: str) -> NGO:
        if not ObjectId.is_valid(ngo_id):
            raise NotFound(f"NGO {ngo_id} not found")
        try:
            doc = self.db[self.collection].find_one({"_id": ObjectId(ngo_id), "role": "ngo"})
        except PyMongoError as e:
            logger.exception("lookup of NGO %s failed", ngo_id)
            raise Unavailable(f"Could not load NGO: {e}") from e
        if not doc:
            raise NotFound(f"NGO {ngo_id} not found")
        return from_document(NGO, doc)

    def set_verification(self, ngo_id: str, status: str) -> NGO:
        if status not in VERIFICATION_STATUSES:
            raise ValidationError(f"'{status}' is not a verification status")
        ngo = self.get(ngo_id)
        try:
            self.db[self.collection].update_one(
                {"_id": ObjectId(ngo_id)},
                {"$set": {"verificationStatus": status, "updatedAt": now_utc()}},
            )
        except PyMongoError as e:
            logger.exception("verification update of NGO %s failed", ngo_id)
            raise Unavailable(f"Could not update NGO: {e}") from e
        record_change(self.db, self.collection, "update", ngo_id)
        logger.info("NGO %s (%s) verification %s -> %s", ngo_id, ngo.name, ngo.verificationStatus, status)
        return self.get(ngo_id)
