"""
Courier roster endpoints: listing, supervisor assignments, availability, removal
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from halan.database import get_db
from halan.schemas.common import ResponseModel
from halan.schemas.courier import CourierResponse, AssignmentRequest, AvailabilityUpdate
from halan.api.deps import get_actor, require_owner
from halan.services import assignment_service
from halan.services.fleet_hub import FleetLocationHub, get_fleet_hub
from halan.services.order_service import active_order_counts
from halan.services.scope_service import ActorContext, scope_or_none

router = APIRouter()


async def _refresh_live_scopes(hub: FleetLocationHub, db: Session) -> None:
    await hub.refresh_scopes(lambda subscriber: scope_or_none(db, subscriber))


@router.get("", response_model=ResponseModel)
async def list_couriers(
    available: Optional[bool] = None,
    include_unavailable: bool = Query(False, alias="includeUnavailable"),
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    Couriers in the caller's scope. Supervisors only see available couriers
    unless ``includeUnavailable`` is set (assignment screen).
    """
    couriers = assignment_service.list_couriers(
        db, actor, available=available, include_unavailable=include_unavailable
    )
    counts = active_order_counts(db, [c.id for c in couriers])
    data = [
        CourierResponse.model_validate(c).model_copy(update={"active_orders": counts.get(c.id, 0)})
        for c in couriers
    ]
    return ResponseModel(success=True, data=data)


@router.post("/assignments", response_model=ResponseModel)
async def set_assignment(
    payload: AssignmentRequest,
    actor: ActorContext = Depends(require_owner),
    db: Session = Depends(get_db),
    hub: FleetLocationHub = Depends(get_fleet_hub)
):
    changed = assignment_service.set_assignment(
        db, actor, payload.courier_id, payload.supervisor_id, payload.action
    )
    if changed:
        await _refresh_live_scopes(hub, db)
    return ResponseModel(
        success=True,
        data={"changed": changed},
        message="Assignment updated" if changed else "Assignment already up to date"
    )


@router.put("/{courier_id}/availability", response_model=ResponseModel)
async def set_availability(
    courier_id: str,
    payload: AvailabilityUpdate,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
    hub: FleetLocationHub = Depends(get_fleet_hub)
):
    courier = assignment_service.set_availability(db, actor, courier_id, payload.is_available)
    # Evict before the scopes shrink so current viewers are told
    await hub.availability_changed(courier_id, payload.is_available)
    await _refresh_live_scopes(hub, db)
    return ResponseModel(
        success=True,
        data=CourierResponse.model_validate(courier),
        message="Availability updated"
    )


@router.delete("/{courier_id}", response_model=ResponseModel)
async def remove_courier(
    courier_id: str,
    actor: ActorContext = Depends(require_owner),
    db: Session = Depends(get_db),
    hub: FleetLocationHub = Depends(get_fleet_hub)
):
    assignment_service.remove_courier(db, actor, courier_id)
    await hub.availability_changed(courier_id, False)
    await _refresh_live_scopes(hub, db)
    return ResponseModel(success=True, message="Courier removed")
