import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from database import create_document, get_documents, next_sequence, now_utc
from errors import NotFound, Unavailable
from schemas import ChangeEvent, Notification, from_document

logger = logging.getLogger(__name__)


def record_change(db, table: str, op: str, record_id: str) -> Optional[ChangeEvent]:
    """Append one event to the change feed so list views know to re-fetch.

    Called after the record itself is saved, so a feed failure is logged and
    swallowed rather than reported as a failed write. Readers then miss one
    event and pick the record up on their next full re-fetch.
    """
    try:
        event = ChangeEvent(
            seq=next_sequence(db, "change"),
            table=table,
            op=op,
            recordId=record_id,
            createdAt=now_utc(),
        )
        create_document(db, "change", event.model_dump())
    except Unavailable:
        logger.exception("change event for %s %s %s was not recorded", table, op, record_id)
        return None
    return event


def changes_since(db, table: Optional[str] = None, since: int = 0, limit: int = 100) -> List[ChangeEvent]:
    query: Dict[str, Any] = {"seq": {"$gt": since}}
    if table:
        query["table"] = table
    try:
        items = list(db["change"].find(query).sort("seq", 1).limit(limit))
    except PyMongoError as e:
        logger.exception("change feed query failed")
        raise Unavailable(f"Could not read change feed: {e}") from e
    return [ChangeEvent(**{k: v for k, v in it.items() if k != "_id"}) for it in items]


def notify(db, user_id: str, type: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> str:
    notif = Notification(
        userId=user_id,
        type=type,
        message=message,
        metadata=metadata or {},
        createdAt=now_utc(),
    ).model_dump()
    return create_document(db, "notification", notif)


def list_notifications(db, user_id: str) -> List[Notification]:
    items = get_documents(db, "notification", {"userId": user_id}, sort_field="createdAt")
    return [from_document(Notification, it) for it in items]


def mark_read(db, user_id: str, notification_id: str) -> Notification:
    if not ObjectId.is_valid(notification_id):
        raise NotFound("Notification not found")
    try:
        res = db["notification"].update_one(
            {"_id": ObjectId(notification_id), "userId": user_id},
            {"$set": {"read": True}},
        )
        doc = db["notification"].find_one({"_id": ObjectId(notification_id)})
    except PyMongoError as e:
        logger.exception("marking notification %s read failed", notification_id)
        raise Unavailable(f"Could not update notification: {e}") from e
    if res.matched_count == 0 or doc is None:
        raise NotFound("Notification not found")
    return from_document(Notification, doc)
