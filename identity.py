"""
Identity store and sessions.

Users live in the `user` collection; NGO profile fields sit on the same
record. A Session is established at login or registration, stored server
side in the `session` collection keyed by the token's jti, resolved for
every authenticated request and removed at logout.
"""

import os
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

import jwt
from bson import ObjectId
from passlib.context import CryptContext
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from pymongo.errors import PyMongoError

from database import create_document, now_utc
from errors import NotFound, Unavailable, ValidationError
from notifications import record_change
from schemas import NGO, User, from_document

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")
JWT_ALGO = "HS256"
TOKEN_EXPIRE_MIN = int(os.getenv("TOKEN_EXPIRE_MIN", 60 * 24 * 7))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

PROFILE_FIELDS = ("name", "email", "phone", "address", "avatar", "bio", "website")
NGO_PROFILE_FIELDS = ("coverImage", "serviceAreas")


class Session(BaseModel):
    token: str
    jti: str
    user_id: str
    role: str
    user: Union[NGO, User]


def _describe(error: SchemaError) -> str:
    first = error.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ())) or "profile"
    return f"Invalid {field}: {first.get('msg')}"


def to_user(doc: Dict[str, Any]) -> Union[NGO, User]:
    if doc.get("role") == "ngo":
        return from_document(NGO, doc)
    return from_document(User, doc)


class IdentityStore:
    collection = "user"

    def __init__(self, db):
        self.db = db

    def _find(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self.db[self.collection].find_one(query)
        except PyMongoError as e:
            logger.exception("user lookup failed")
            raise Unavailable(f"Could not load user: {e}") from e

    def get(self, user_id: str) -> Union[NGO, User]:
        doc = self._find({"_id": ObjectId(user_id)}) if ObjectId.is_valid(user_id) else None
        if not doc:
            raise NotFound(f"User {user_id} not found")
        return to_user(doc)

    def register(self, name: str, email: str, password: str, role: str, profile: Optional[Dict[str, Any]] = None) -> Union[NGO, User]:
        email = email.lower()
        if self._find({"email": email}):
            raise ValidationError("Email already registered")
        if not password:
            raise ValidationError("Password is required")

        user_doc = {k: v for k, v in (profile or {}).items() if k in PROFILE_FIELDS + NGO_PROFILE_FIELDS}
        user_doc.update(name=name, email=email, role=role, password_hash=pwd_context.hash(password))
        if role == "ngo":
            user_doc["verificationStatus"] = "pending"
            user_doc.setdefault("serviceAreas", [])
        else:
            for field in NGO_PROFILE_FIELDS:
                user_doc.pop(field, None)

        model = NGO if role == "ngo" else User
        try:
            model(**user_doc)
        except SchemaError as e:
            raise ValidationError(_describe(e)) from e

        user_id = create_document(self.db, self.collection, user_doc)
        record_change(self.db, self.collection, "insert", user_id)
        logger.info("registered %s %s as %s", role, email, user_id)
        return self.get(user_id)

    def authenticate(self, email: str, password: str) -> Optional[Union[NGO, User]]:
        doc = self._find({"email": email.lower()})
        if not doc or not pwd_context.verify(password, doc.get("password_hash", "")):
            logger.warning("failed login for %s", email.lower())
            return None
        return to_user(doc)

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Union[NGO, User]:
        user = self.get(user_id)
        allowed = PROFILE_FIELDS + (NGO_PROFILE_FIELDS if user.role == "ngo" else ())
        rejected = sorted(k for k in fields if k not in allowed)
        if rejected:
            raise ValidationError(f"Cannot change {', '.join(rejected)} from the profile")

        changes = dict(fields)
        if "email" in changes:
            changes["email"] = str(changes["email"]).lower()
            other = self._find({"email": changes["email"]})
            if other and str(other["_id"]) != user_id:
                raise ValidationError("Email already registered")
        if "name" in changes and not str(changes["name"] or "").strip():
            raise ValidationError("Name cannot be empty")

        try:
            type(user)(**{**user.model_dump(), **changes})
        except SchemaError as e:
            raise ValidationError(_describe(e)) from e

        changes["updatedAt"] = now_utc()
        try:
            self.db[self.collection].update_one({"_id": ObjectId(user_id)}, {"$set": changes})
        except PyMongoError as e:
            logger.exception("profile update of %s failed", user_id)
            raise Unavailable(f"Could not update profile: {e}") from e
        record_change(self.db, self.collection, "update", user_id)
        return self.get(user_id)

    # ------------------ Sessions ------------------

    def open_session(self, user: Union[NGO, User]) -> Session:
        jti = uuid.uuid4().hex
        expires = datetime.now(timezone.utc) + timedelta(minutes=TOKEN_EXPIRE_MIN)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role,
            "name": user.name,
            "jti": jti,
            "exp": expires,
        }
        token = jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGO)
        create_document(self.db, "session", {"jti": jti, "userId": user.id, "expiresAt": expires})
        return Session(token=token, jti=jti, user_id=user.id, role=user.role, user=user)

    def resolve_session(self, token: str) -> Optional[Session]:
        """Return the live session for a token, or None once logged out or the user is gone.

        Raises jwt.InvalidTokenError (or its ExpiredSignatureError subclass) for bad tokens.
        """
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
        jti = payload.get("jti")
        user_id = payload.get("sub")
        if not jti or not user_id:
            raise jwt.InvalidTokenError("token is missing claims")
        try:
            live = self.db["session"].find_one({"jti": jti})
        except PyMongoError as e:
            logger.exception("session lookup failed")
            raise Unavailable(f"Could not load session: {e}") from e
        if not live:
            return None
        try:
            user = self.get(user_id)
        except NotFound:
            return None
        return Session(token=token, jti=jti, user_id=user.id, role=user.role, user=user)

    def close_session(self, session: Session):
        try:
            self.db["session"].delete_one({"jti": session.jti})
        except PyMongoError as e:
            logger.exception("logout of %s failed", session.user_id)
            raise Unavailable(f"Could not end session: {e}") from e
        logger.info("session closed for %s", session.user_id)
