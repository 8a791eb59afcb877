import os
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr
import jwt

import database
from database import get_db
from directory import NgoDirectory
from donations import DonationStore
from errors import FeedError, Forbidden
from identity import IdentityStore, Session
from notifications import changes_since, list_notifications, mark_read
from readmodel import dashboard_for, stats
from schemas import (
    ChangeEvent,
    DashboardView,
    Donation,
    DonationStatus,
    NGO,
    Notification,
    Stats,
    User,
    VerificationStatus,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

security = HTTPBearer()

app = FastAPI(title="Feed the Future API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FeedError)
async def feed_error_handler(request: Request, exc: FeedError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.kind})


# ------------------ Stores ------------------

def get_identity(db=Depends(get_db)) -> IdentityStore:
    return IdentityStore(db)


def get_donations(db=Depends(get_db)) -> DonationStore:
    return DonationStore(db)


def get_directory(db=Depends(get_db)) -> NgoDirectory:
    return NgoDirectory(db)


# ------------------ Auth ------------------

class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: str
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None
    coverImage: Optional[str] = None
    serviceAreas: Optional[List[str]] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Union[NGO, User]


def get_session(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    identity: IdentityStore = Depends(get_identity),
) -> Session:
    try:
        session = identity.resolve_session(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if session is None:
        raise HTTPException(status_code=401, detail="Session has ended, please log in again")
    return session


def require_role(roles: List[str]):
    def checker(session: Session = Depends(get_session)):
        if session.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return session

    return checker


@app.post("/auth/register", response_model=TokenResponse)
def register(payload: RegisterRequest, identity: IdentityStore = Depends(get_identity)):
    if payload.role not in ["donor", "ngo"]:
        raise HTTPException(status_code=400, detail="Invalid role")
    profile = payload.model_dump(exclude={"name", "email", "password", "role"}, exclude_none=True)
    user = identity.register(payload.name, payload.email, payload.password, payload.role, profile)
    session = identity.open_session(user)
    return TokenResponse(access_token=session.token, user=user)


@app.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginRequest, identity: IdentityStore = Depends(get_identity)):
    user = identity.authenticate(payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    session = identity.open_session(user)
    return TokenResponse(access_token=session.token, user=user)


@app.post("/auth/logout")
def logout(session: Session = Depends(get_session), identity: IdentityStore = Depends(get_identity)):
    identity.close_session(session)
    return {"message": "Logged out"}


@app.get("/auth/me", response_model=Union[NGO, User])
def me(session: Session = Depends(get_session)):
    return session.user


# ------------------ Profile ------------------

class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None
    coverImage: Optional[str] = None
    serviceAreas: Optional[List[str]] = None


@app.get("/profile", response_model=Union[NGO, User])
def get_profile(session: Session = Depends(get_session), identity: IdentityStore = Depends(get_identity)):
    return identity.get(session.user_id)


@app.put("/profile", response_model=Union[NGO, User])
def update_profile(
    payload: ProfileUpdate,
    session: Session = Depends(get_session),
    identity: IdentityStore = Depends(get_identity),
):
    return identity.update_profile(session.user_id, payload.model_dump(exclude_unset=True))


# ------------------ Donations ------------------

class DonationCreate(BaseModel):
    foodItem: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    expiryDate: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str


@app.post("/donations", response_model=Donation)
def create_donation(
    payload: DonationCreate,
    session: Session = Depends(require_role(["donor"])),
    store: DonationStore = Depends(get_donations),
):
    return store.create(session.user_id, payload.model_dump(exclude_none=True))


@app.get("/donations", response_model=List[Donation])
def list_donations(
    status: Optional[DonationStatus] = None,
    donorId: Optional[str] = None,
    ngoId: Optional[str] = None,
    foodItem: Optional[str] = None,
    store: DonationStore = Depends(get_donations),
):
    filters = {
        k: v
        for k, v in {"status": status, "donorId": donorId, "ngoId": ngoId, "foodItem": foodItem}.items()
        if v is not None
    }
    return store.list(filters)


@app.get("/donations/available", response_model=List[Donation])
def available_donations(store: DonationStore = Depends(get_donations)):
    return store.list_available()


@app.get("/donations/{donation_id}", response_model=Donation)
def get_donation(donation_id: str, store: DonationStore = Depends(get_donations)):
    return store.get(donation_id)


@app.post("/donations/{donation_id}/status", response_model=Donation)
def update_donation_status(
    donation_id: str,
    payload: StatusUpdate,
    session: Session = Depends(get_session),
    store: DonationStore = Depends(get_donations),
):
    if session.role == "ngo" and session.user.verificationStatus != "verified":
        raise Forbidden("Your organization has not been verified yet")
    return store.update_status(donation_id, payload.status, session.user_id, session.role)


@app.get("/stats", response_model=Stats)
def donation_stats(store: DonationStore = Depends(get_donations)):
    return stats(store.list())


@app.get("/dashboard", response_model=DashboardView)
def dashboard(session: Session = Depends(get_session), store: DonationStore = Depends(get_donations)):
    return dashboard_for(session, store)


# ------------------ NGO Directory ------------------

class VerificationUpdate(BaseModel):
    verificationStatus: VerificationStatus


@app.get("/ngos", response_model=List[NGO])
def search_ngos(q: str = "", directory: NgoDirectory = Depends(get_directory)):
    return directory.search(q)


@app.get("/ngos/{ngo_id}", response_model=NGO)
def get_ngo(ngo_id: str, directory: NgoDirectory = Depends(get_directory)):
    ngo = directory.get(ngo_id)
    if ngo.verificationStatus != "verified":
        raise HTTPException(status_code=404, detail=f"NGO {ngo_id} not found")
    return ngo


@app.get("/admin/ngos", response_model=List[NGO])
def admin_list_ngos(
    verificationStatus: VerificationStatus = "pending",
    session: Session = Depends(require_role(["admin"])),
    directory: NgoDirectory = Depends(get_directory),
):
    return directory.list_by_verification(verificationStatus)


@app.patch("/admin/ngos/{ngo_id}/verification", response_model=NGO)
def set_ngo_verification(
    ngo_id: str,
    payload: VerificationUpdate,
    session: Session = Depends(require_role(["admin"])),
    directory: NgoDirectory = Depends(get_directory),
):
    return directory.set_verification(ngo_id, payload.verificationStatus)


# ------------------ Notifications & Changes ------------------

@app.get("/notifications", response_model=List[Notification])
def get_notifications(session: Session = Depends(get_session), db=Depends(get_db)):
    return list_notifications(db, session.user_id)


@app.post("/notifications/{notification_id}/read", response_model=Notification)
def read_notification(notification_id: str, session: Session = Depends(get_session), db=Depends(get_db)):
    return mark_read(db, session.user_id, notification_id)


@app.get("/changes", response_model=List[ChangeEvent])
def get_changes(table: Optional[str] = None, since: int = 0, limit: int = 100, db=Depends(get_db)):
    return changes_since(db, table, since, min(max(limit, 1), 500))


# ------------------ Seed demo data ------------------

SEED_USERS = [
    {"name": "John Doe", "email": "john@example.com", "role": "donor",
     "phone": "123-456-7890", "address": "123 Main St, Anytown"},
    {"name": "Jane Smith", "email": "jane@example.com", "role": "donor",
     "phone": "123-456-7891", "address": "456 Oak St, Anytown"},
]

# created only when SEED_ADMIN_PASSWORD is set
SEED_ADMIN = {"name": "Site Admin", "email": "admin@feedthefuture.org", "role": "admin"}
SEED_PASSWORD = "password123"

SEED_NGOS = [
    {
        "name": "Food For All",
        "email": "info@foodforall.org",
        "phone": "123-456-7892",
        "address": "789 Charity Ave, Helptown",
        "website": "https://www.foodforall.org",
        "bio": "Collects excess food from restaurants, groceries and individuals for people in need.",
        "serviceAreas": ["Downtown", "Eastside", "North County"],
    },
    {
        "name": "Hunger Heroes",
        "email": "contact@hungerheroes.org",
        "phone": "123-456-7893",
        "address": "101 Hope St, Goodcity",
        "website": "https://www.hungerheroes.org",
        "bio": "Distributes food donations to homeless shelters and community centers.",
        "serviceAreas": ["Westside", "South County", "Central District"],
    },
    {
        "name": "Fresh Start Initiative",
        "email": "help@freshstart.org",
        "phone": "123-456-7894",
        "address": "202 Blessing Rd, Kindville",
        "website": "https://www.freshstart.org",
        "bio": "Rescues surplus produce from local farmers for food banks and families.",
        "serviceAreas": ["Rural Areas", "Urban Centers", "University District"],
    },
    {
        "name": "Community Food Bank",
        "email": "info@communityfoodbank.org",
        "phone": "123-456-7895",
        "address": "303 Giving Ave, Helperville",
        "website": "https://www.communityfoodbank.org",
        "bio": "Collects, stores and distributes food to vulnerable populations throughout the city.",
        "serviceAreas": ["All City Districts", "Suburban Areas"],
    },
]

# (food, quantity, unit, days until expiry, donor email, final status, NGO email)
SEED_DONATIONS = [
    ("Fresh Vegetables", 10, "kg", 7, "john@example.com", "pending", None),
    ("Canned Goods", 20, "cans", 100, "jane@example.com", "accepted", "info@foodforall.org"),
    ("Bread and Pastries", 15, "pcs", 4, "john@example.com", "collected", "contact@hungerheroes.org"),
    ("Rice", 25, "kg", 170, "jane@example.com", "pending", None),
    ("Dairy Products", 8, "liters", 6, "john@example.com", "accepted", "info@foodforall.org"),
]


@app.post("/seed")
def seed(
    db=Depends(get_db),
    identity: IdentityStore = Depends(get_identity),
    directory: NgoDirectory = Depends(get_directory),
    store: DonationStore = Depends(get_donations),
):
    if os.getenv("SEED_ENABLED", "").lower() not in ("1", "true", "yes"):
        raise Forbidden("Seeding is disabled on this server")

    entries = SEED_USERS + [dict(ngo, role="ngo") for ngo in SEED_NGOS]
    admin_password = os.getenv("SEED_ADMIN_PASSWORD")
    if admin_password:
        entries.append(dict(SEED_ADMIN, password=admin_password))

    created = []
    ids: Dict[str, str] = {}
    for entry in entries:
        existing = db["user"].find_one({"email": entry["email"]})
        if existing:
            ids[entry["email"]] = str(existing["_id"])
            continue
        profile = {k: v for k, v in entry.items() if k not in ("name", "email", "role", "password")}
        password = entry.get("password", SEED_PASSWORD)
        user = identity.register(entry["name"], entry["email"], password, entry["role"], profile)
        if user.role == "ngo":
            directory.set_verification(user.id, "verified")
        ids[entry["email"]] = user.id
        created.append(entry["email"])

    donations = 0
    if db["donation"].count_documents({}) == 0:
        for food, qty, unit, days, donor, status, ngo in SEED_DONATIONS:
            donor_user = identity.get(ids[donor])
            d = store.create(ids[donor], {
                "foodItem": food,
                "quantity": qty,
                "unit": unit,
                "expiryDate": date.today() + timedelta(days=days),
                "address": donor_user.address or "",
            })
            if status in ("accepted", "collected"):
                d = store.update_status(d.id, "accepted", ids[ngo], "ngo")
            if status == "collected":
                d = store.update_status(d.id, "collected", ids[ngo], "ngo")
            donations += 1

    logger.info("seeded %d users and %d donations", len(created), donations)
    return {"created": created, "donations": donations}


# ------------------ Health ------------------

@app.get("/")
def read_root():
    return {"message": "Feed the Future Backend Running"}


@app.get("/test")
def test_database():
    response: Dict[str, Any] = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }

    db = database.db
    if db is None:
        response["database"] = "⚠️  Available but not initialized"
        return response

    response["connection_status"] = "Connected"
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.exception("database check failed")
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"

    return response


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
