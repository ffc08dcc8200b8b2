"""
Courier roster: supervisor assignments, availability and removal.
"""
import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session, selectinload
from halan.database import atomic
from halan.exceptions import AuthorizationError, NotFoundError
from halan.models.assignment import CourierSupervisor
from halan.models.user import User, Role
from halan.services.scope_service import ActorContext, courier_scope_query, ensure_courier_in_scope, get_courier

logger = logging.getLogger(__name__)


def list_couriers(db: Session, actor: ActorContext, available: Optional[bool] = None,
                  include_unavailable: bool = False) -> List[User]:
    """
    Couriers in the actor's scope.

    ``include_unavailable`` is for the assignment-editing screen, where
    off-shift couriers must stay manageable. ``available`` is an explicit
    filter on top of the scope.
    """
    if actor.role not in (Role.OWNER, Role.SUPERVISOR, Role.COURIER):
        raise AuthorizationError("Your role cannot list couriers", {"role": actor.role.value})
    query = courier_scope_query(db, actor, available_only=not include_unavailable)
    if available is not None:
        query = query.filter(User.is_available.is_(available))
    return query.options(selectinload(User.supervisor_links)).order_by(User.created_at.desc(), User.name).all()


def set_assignment(db: Session, actor: ActorContext, courier_id: str, supervisor_id: str, action: str) -> bool:
    """
    Add or remove a courier/supervisor link. Repeating an add or removing a
    missing link succeeds without changes. Returns whether anything changed.
    """
    if actor.role != Role.OWNER:
        raise AuthorizationError("Only the owner can manage assignments", {"role": actor.role.value})

    with atomic(db):
        get_courier(db, courier_id)
        supervisor = db.query(User).filter(User.id == supervisor_id, User.role == Role.SUPERVISOR).first()
        if supervisor is None:
            raise NotFoundError("Supervisor not found", {"supervisorId": supervisor_id})

        link = db.query(CourierSupervisor).filter(
            CourierSupervisor.courier_id == courier_id,
            CourierSupervisor.supervisor_id == supervisor_id,
        ).first()

        changed = False
        if action == "add" and link is None:
            db.add(CourierSupervisor(courier_id=courier_id, supervisor_id=supervisor_id))
            changed = True
        elif action == "remove" and link is not None:
            db.delete(link)
            changed = True

    if changed:
        logger.info(f"Assignment {action}: courier {courier_id} / supervisor {supervisor_id}")
    return changed


def set_availability(db: Session, actor: ActorContext, courier_id: str, is_available: bool) -> User:
    """
    Couriers toggle themselves; owners and supervisors toggle couriers in
    their scope, including ones currently off shift.
    """
    if actor.role == Role.COURIER:
        if actor.id != courier_id:
            raise AuthorizationError("Couriers can only change their own availability")
    elif not actor.is_manager:
        raise AuthorizationError("Your role cannot change courier availability", {"role": actor.role.value})

    with atomic(db):
        courier = ensure_courier_in_scope(db, actor, courier_id, available_only=False)
        courier.is_available = is_available

    db.refresh(courier)
    logger.info(f"Courier {courier_id} availability set to {is_available} by {actor.role.value} {actor.id}")
    return courier


def remove_courier(db: Session, actor: ActorContext, courier_id: str) -> None:
    """
    Retire a courier. The account stays for order history; its supervisor
    links are dropped.
    """
    if actor.role != Role.OWNER:
        raise AuthorizationError("Only the owner can remove couriers", {"role": actor.role.value})

    with atomic(db):
        courier = get_courier(db, courier_id)
        courier.is_active = False
        courier.is_available = False
        courier.deactivated_at = datetime.utcnow()
        db.query(CourierSupervisor).filter(CourierSupervisor.courier_id == courier_id).delete(
            synchronize_session=False
        )
    db.expire(courier, ["supervisor_links"])
    logger.info(f"Courier {courier_id} removed by owner {actor.id}")
