import random
from datetime import date, datetime, timezone

import pytest

from errors import Forbidden
from identity import Session
from readmodel import dashboard_for, stats
from schemas import DONATION_STATUSES, Donation, User

NOW = datetime(2026, 5, 1, tzinfo=timezone.utc)


def donation(status):
    return Donation(
        foodItem="Rice",
        quantity=1,
        unit="kg",
        expiryDate=date(2026, 6, 1),
        address="x",
        status=status,
        donorId="u",
        ngoId=None if status == "pending" else "n",
        createdAt=NOW,
        updatedAt=NOW,
    )


def test_empty():
    s = stats([])
    assert s.total == 0
    assert (s.pending, s.accepted, s.collected, s.expired) == (0, 0, 0, 0)


def test_counts():
    s = stats([donation("pending"), donation("accepted"), donation("accepted"), donation("collected")])
    assert (s.total, s.pending, s.accepted, s.collected, s.expired) == (4, 1, 2, 1, 0)


@pytest.mark.parametrize("seed", range(5))
def test_total_is_sum_of_parts(seed):
    rng = random.Random(seed)
    items = [donation(rng.choice(DONATION_STATUSES)) for _ in range(rng.randint(0, 40))]
    s = stats(items)
    assert s.total == len(items)
    assert s.total == s.pending + s.accepted + s.collected + s.expired


def test_admin_has_no_dashboard(store):
    admin = User(id="a1", name="Admin", email="admin@example.com", role="admin")
    session = Session(token="t", jti="j", user_id="a1", role="admin", user=admin)
    with pytest.raises(Forbidden):
        dashboard_for(session, store)
