"""
Prize wheel: weighted selection, spins and the owner's prize table.
"""
import bisect
import itertools
import logging
import random
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence
from sqlalchemy.orm import Session
from halan.config import settings
from halan.database import atomic
from halan.exceptions import AuthorizationError, NoPrizesAvailable, NotFoundError, ValidationError
from halan.models.prize import Prize, PrizeGrant, PrizeType
from halan.models.user import User, Role
from halan.schemas.prize import PrizeCreate, PrizeUpdate
from halan.services.scope_service import ActorContext

logger = logging.getLogger(__name__)


def select_prize(prizes: Sequence[Prize], rng=random) -> Prize:
    """
    Pick one prize with probability weight / total weight.

    Inactive and zero-weight prizes never win. The cumulative partition keeps
    the order of ``prizes``, so pass them in a stable order.
    """
    eligible = [p for p in prizes if p.is_active and Decimal(p.weight or 0) > 0]
    if not eligible:
        raise NoPrizesAvailable()

    bounds = list(itertools.accumulate(float(p.weight) for p in eligible))
    draw = rng.random() * bounds[-1]
    # First bound strictly greater than the draw
    index = bisect.bisect_right(bounds, draw)
    return eligible[min(index, len(eligible) - 1)]


def active_prizes(db: Session) -> List[Prize]:
    return db.query(Prize).filter(Prize.is_active.is_(True)).order_by(Prize.id).all()


def spin(db: Session, actor: ActorContext, rng=random) -> PrizeGrant:
    """Spin the wheel for the acting user and store what they won"""
    with atomic(db):
        # Serialises concurrent spins of the same user (row lock on PostgreSQL)
        user = db.query(User).filter(User.id == actor.id).with_for_update().first()
        if user is None or not user.is_active:
            raise NotFoundError("User not found", {"userId": actor.id})

        if settings.SPIN_COOLDOWN_HOURS > 0:
            since = datetime.utcnow() - timedelta(hours=settings.SPIN_COOLDOWN_HOURS)
            recent = db.query(PrizeGrant.id).filter(
                PrizeGrant.user_id == actor.id, PrizeGrant.won_at > since
            ).first()
            if recent is not None:
                raise ValidationError(
                    "You already spun the wheel recently, try again later",
                    {"cooldownHours": settings.SPIN_COOLDOWN_HOURS},
                )

        prize = select_prize(active_prizes(db), rng=rng)
        grant = PrizeGrant(
            user_id=actor.id,
            prize_id=prize.id,
            name=prize.name,
            prize_type=prize.prize_type,
            prize_value=prize.prize_value,
            provider_id=prize.provider_id,
        )
        db.add(grant)

    db.refresh(grant)
    logger.info(f"User {actor.id} won prize {prize.id} ({prize.name})")
    return grant


def list_grants(db: Session, actor: ActorContext, include_redeemed: bool = False) -> List[PrizeGrant]:
    query = db.query(PrizeGrant).filter(PrizeGrant.user_id == actor.id)
    if not include_redeemed:
        query = query.filter(PrizeGrant.is_redeemed.is_(False))
    return query.order_by(PrizeGrant.won_at.desc()).all()


# ================== OWNER ==================

def _require_owner(actor: ActorContext) -> None:
    if actor.role != Role.OWNER:
        raise AuthorizationError("Only the owner can manage prizes", {"role": actor.role.value})


def _check_value(prize_type: PrizeType, value: Decimal) -> None:
    if prize_type == PrizeType.PERCENT_DISCOUNT and value > 100:
        raise ValidationError("A percent discount cannot exceed 100", {"prize_value": str(value)})


def list_all_prizes(db: Session, actor: ActorContext) -> List[Prize]:
    _require_owner(actor)
    return db.query(Prize).order_by(Prize.id).all()


def get_prize(db: Session, prize_id: int) -> Prize:
    prize = db.query(Prize).filter(Prize.id == prize_id).first()
    if prize is None:
        raise NotFoundError("Prize not found", {"prizeId": prize_id})
    return prize


def create_prize(db: Session, actor: ActorContext, payload: PrizeCreate) -> Prize:
    _require_owner(actor)
    _check_value(payload.prize_type, payload.prize_value)
    with atomic(db):
        prize = Prize(**payload.model_dump())
        db.add(prize)
    db.refresh(prize)
    logger.info(f"Prize {prize.id} ({prize.name}) created")
    return prize


def update_prize(db: Session, actor: ActorContext, prize_id: int, payload: PrizeUpdate) -> Prize:
    """Existing grants keep the terms they were won with"""
    _require_owner(actor)
    with atomic(db):
        prize = get_prize(db, prize_id)
        for field, value in payload.model_dump(exclude_unset=True).items():
            if value is None and field != "provider_id":
                raise ValidationError(f"{field} cannot be null")
            setattr(prize, field, value)
        _check_value(prize.prize_type, Decimal(prize.prize_value))
    db.refresh(prize)
    return prize


def deactivate_prize(db: Session, actor: ActorContext, prize_id: int) -> Prize:
    _require_owner(actor)
    with atomic(db):
        prize = get_prize(db, prize_id)
        prize.is_active = False
    db.refresh(prize)
    logger.info(f"Prize {prize_id} deactivated")
    return prize


def get_user_grant(db: Session, user_id: str, grant_id: str, lock: bool = False) -> Optional[PrizeGrant]:
    query = db.query(PrizeGrant).filter(PrizeGrant.id == grant_id, PrizeGrant.user_id == user_id)
    if lock:
        query = query.with_for_update()
    return query.first()
