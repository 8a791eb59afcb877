from typing import Iterable

from donations import DonationStore
from errors import Forbidden
from identity import Session
from schemas import DashboardView, Donation, DonorView, NgoView, Stats


def stats(donations: Iterable[Donation]) -> Stats:
    """Count donations by status in a single pass; total always equals the sum of the parts."""
    counts = {"pending": 0, "accepted": 0, "collected": 0, "expired": 0}
    for d in donations:
        counts[d.status] += 1
    return Stats(total=sum(counts.values()), **counts)


def dashboard_for(session: Session, store: DonationStore) -> DashboardView:
    if session.role == "donor":
        mine = store.list_by_donor(session.user_id)
        return DonorView(user=session.user, donations=mine, stats=stats(mine))

    if session.role == "ngo":
        mine = store.list_by_ngo(session.user_id)
        return NgoView(
            user=session.user,
            available=store.list_available(),
            accepted=[d for d in mine if d.status == "accepted"],
            collected=[d for d in mine if d.status == "collected"],
            stats=stats(mine),
        )

    raise Forbidden("Dashboards are available to donors and NGOs only")
