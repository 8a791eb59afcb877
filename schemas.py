"""
Database Schemas for Feed the Future

Each Pydantic model below maps to a MongoDB collection (lowercased class name).
Records read back from the database are converted with `from_document`, which
turns the `_id` ObjectId into a string `id`.
"""

from pydantic import BaseModel, ConfigDict, Field, EmailStr
from typing import Annotated, Optional, List, Literal, Dict, Any, Union
from datetime import date, datetime

Role = Literal["donor", "ngo", "admin"]
DonationStatus = Literal["pending", "accepted", "collected", "expired"]
VerificationStatus = Literal["pending", "verified", "rejected"]

DONATION_STATUSES = ("pending", "accepted", "collected", "expired")


def from_document(model, doc: Dict[str, Any]):
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    return model(**data)


class User(BaseModel):
    id: Optional[str] = None
    name: str
    email: EmailStr
    role: Role
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None


class NGO(User):
    role: Literal["ngo"] = "ngo"
    verificationStatus: VerificationStatus = "pending"
    coverImage: Optional[str] = None
    serviceAreas: List[str] = Field(default_factory=list)


class Donation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    foodItem: str
    quantity: float = Field(..., gt=0)
    unit: str
    expiryDate: date
    address: str
    status: DonationStatus = "pending"
    donorId: str
    ngoId: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime
    notes: Optional[str] = None


class Notification(BaseModel):
    id: Optional[str] = None
    userId: str
    type: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    createdAt: datetime


class ChangeEvent(BaseModel):
    seq: int
    table: str
    op: Literal["insert", "update"]
    recordId: str
    createdAt: datetime


class Stats(BaseModel):
    total: int = 0
    pending: int = 0
    accepted: int = 0
    collected: int = 0
    expired: int = 0


class DonorView(BaseModel):
    kind: Literal["donor"] = "donor"
    user: User
    donations: List[Donation]
    stats: Stats


class NgoView(BaseModel):
    kind: Literal["ngo"] = "ngo"
    user: NGO
    available: List[Donation]
    accepted: List[Donation]
    collected: List[Donation]
    stats: Stats


DashboardView = Annotated[Union[DonorView, NgoView], Field(discriminator="kind")]
