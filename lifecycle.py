"""
Donation lifecycle.

States are pending -> accepted -> collected, with expired reachable from
pending or accepted once the expiry date has passed. `transition` is pure: it
returns a new Donation or raises, and never touches the record it was given.
Expiry is never written to the database; `effective_status` derives it on read.
"""

from datetime import date, datetime, timezone
from typing import Optional

from errors import Forbidden, InvalidTransition
from schemas import Donation, DONATION_STATUSES

TERMINAL = ("collected", "expired")


def effective_status(donation: Donation, today: Optional[date] = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    if donation.status in ("pending", "accepted") and today > donation.expiryDate:
        return "expired"
    return donation.status


def with_effective_status(donation: Donation, today: Optional[date] = None) -> Donation:
    status = effective_status(donation, today)
    if status == donation.status:
        return donation
    return donation.model_copy(update={"status": status})


def transition(
    donation: Donation,
    requested_status: str,
    acting_user_id: str,
    acting_role: str,
    now: Optional[datetime] = None,
) -> Donation:
    now = now or datetime.now(timezone.utc)
    current = effective_status(donation, now.date())

    if requested_status not in DONATION_STATUSES:
        raise InvalidTransition(f"'{requested_status}' is not a donation status")

    if current == "collected":
        raise InvalidTransition("This donation has already been collected")
    if current == "expired":
        raise InvalidTransition(f"This donation expired on {donation.expiryDate.isoformat()}")

    if requested_status == "accepted":
        if acting_role != "ngo":
            raise Forbidden("Only NGOs can accept donations")
        if donation.ngoId and donation.ngoId != acting_user_id:
            raise InvalidTransition("This donation was already accepted by another organization")
        if current != "pending":
            raise InvalidTransition(f"Only pending donations can be accepted (this one is {current})")
        return donation.model_copy(
            update={"status": "accepted", "ngoId": acting_user_id, "updatedAt": now}
        )

    if requested_status == "collected":
        if current != "accepted":
            raise InvalidTransition(f"Only accepted donations can be collected (this one is {current})")
        if acting_role != "ngo" or acting_user_id != donation.ngoId:
            raise Forbidden("Only the organization that accepted this donation can mark it collected")
        return donation.model_copy(update={"status": "collected", "updatedAt": now})

    raise InvalidTransition(f"A donation cannot move from {current} to {requested_status}")
