import random
from collections import Counter
from decimal import Decimal
import pytest
from halan.config import settings
from halan.exceptions import AuthorizationError, NoPrizesAvailable, ValidationError
from halan.models import Prize, PrizeGrant, PrizeType
from halan.schemas.prize import PrizeCreate, PrizeUpdate
from halan.services import prize_service


class FixedRandom:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def wheel(*weights, active=True):
    return [
        Prize(id=i, name=name, prize_type=PrizeType.FLAT_DISCOUNT, prize_value=Decimal("5"),
              weight=Decimal(str(weight)), is_active=active)
        for i, (name, weight) in enumerate(zip("ABCDE", weights), start=1)
    ]


def test_spin_frequencies_follow_weights():
    prizes = wheel(10, 30, 60)
    rng = random.Random(20261019)
    spins = 10000

    counts = Counter(prize_service.select_prize(prizes, rng=rng).name for _ in range(spins))

    for name, expected in (("A", 0.10), ("B", 0.30), ("C", 0.60)):
        assert abs(counts[name] / spins - expected) < 0.02


@pytest.mark.parametrize("draw, expected", [
    (0.0, "A"), (0.0999, "A"), (0.1, "B"), (0.3999, "B"), (0.4, "C"), (0.9999, "C"),
])
def test_slice_boundaries(draw, expected):
    assert prize_service.select_prize(wheel(10, 30, 60), rng=FixedRandom(draw)).name == expected


def test_zero_weight_and_inactive_prizes_never_win():
    prizes = wheel(0, 5, 5)
    prizes[2].is_active = False
    rng = random.Random(7)
    assert {prize_service.select_prize(prizes, rng=rng).name for _ in range(200)} == {"B"}


def test_empty_wheel_raises():
    with pytest.raises(NoPrizesAvailable):
        prize_service.select_prize([])
    with pytest.raises(NoPrizesAvailable):
        prize_service.select_prize(wheel(0, 0))


def test_spin_without_prizes(db, customer, actor):
    with pytest.raises(NoPrizesAvailable):
        prize_service.spin(db, actor(customer))


def make_prize(db, owner, actor, **fields):
    data = {"name": "10% off", "prize_type": PrizeType.PERCENT_DISCOUNT, "prize_value": Decimal("10")}
    data.update(fields)
    return prize_service.create_prize(db, actor(owner), PrizeCreate(**data))


def test_spin_snapshots_the_prize(db, owner, customer, actor):
    prize = make_prize(db, owner, actor, provider_id="P1")
    grant = prize_service.spin(db, actor(customer), rng=random.Random(3))

    assert grant.prize_id == prize.id
    assert grant.user_id == customer.id
    assert grant.prize_type == PrizeType.PERCENT_DISCOUNT
    assert grant.provider_id == "P1"
    assert grant.is_redeemed is False

    # Later edits and deactivation leave the grant alone
    prize_service.update_prize(db, actor(owner), prize.id, PrizeUpdate(prize_value=Decimal("50")))
    prize_service.deactivate_prize(db, actor(owner), prize.id)
    db.refresh(grant)
    assert grant.prize_value == Decimal("10")
    assert [g.id for g in prize_service.list_grants(db, actor(customer))] == [grant.id]


def test_deactivated_prizes_leave_the_wheel(db, owner, customer, actor):
    prize = make_prize(db, owner, actor)
    prize_service.deactivate_prize(db, actor(owner), prize.id)

    assert prize_service.active_prizes(db) == []
    assert db.query(Prize).count() == 1
    with pytest.raises(NoPrizesAvailable):
        prize_service.spin(db, actor(customer))


def test_only_owner_manages_prizes(db, supervisor, actor):
    with pytest.raises(AuthorizationError):
        make_prize(db, supervisor, actor)


def test_percent_prize_cannot_exceed_100(db, owner, actor):
    with pytest.raises(ValidationError):
        make_prize(db, owner, actor, prize_value=Decimal("120"))


def test_spin_cooldown(db, owner, customer, actor, monkeypatch):
    monkeypatch.setattr(settings, "SPIN_COOLDOWN_HOURS", 24)
    make_prize(db, owner, actor)
    prize_service.spin(db, actor(customer))

    with pytest.raises(ValidationError):
        prize_service.spin(db, actor(customer))
    assert db.query(PrizeGrant).count() == 1
