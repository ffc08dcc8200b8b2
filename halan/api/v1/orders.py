"""
Delivery order endpoints for owners, supervisors, couriers, providers and customers
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from halan.database import get_db
from halan.models.order import OrderOrigin
from halan.schemas.common import ResponseModel
from halan.schemas.order import (
    OrderCreate, OrderUpdate, OrderStatusUpdate, OrderCancel, CourierAssignmentRequest,
    OrderResponse, StatusHistoryResponse,
)
from halan.api.deps import get_actor, require_manager
from halan.services import order_service
from halan.services.scope_service import ActorContext, get_order_for_read
from halan.utils.pagination import paginate

router = APIRouter()


def _order_data(order) -> OrderResponse:
    return OrderResponse.model_validate(order)


@router.get("", response_model=ResponseModel)
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    phase: Optional[str] = None,
    edited: Optional[bool] = None,
    courier_id: Optional[str] = Query(None, alias="courierId"),
    supervisor_id: Optional[str] = Query(None, alias="supervisorId"),
    origin: Optional[OrderOrigin] = None,
    bundle_id: Optional[str] = Query(None, alias="bundleId"),
    search: Optional[str] = None,
    history: bool = False,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    Orders in the caller's scope.
    Phase filter: waiting (pending, assigned), delivering (picked_up, in_transit).
    ``history`` switches couriers to their delivered orders.
    """
    query = order_service.list_orders(
        db, actor, status=status, phase=phase, edited=edited, courier_id=courier_id,
        supervisor_id=supervisor_id, origin=origin, bundle_id=bundle_id, search=search,
        history=history,
    )
    orders, pagination = paginate(query, page, limit)
    return ResponseModel(
        success=True,
        data={"items": [_order_data(o) for o in orders], "pagination": pagination}
    )


@router.get("/{order_id}", response_model=ResponseModel)
async def get_order(
    order_id: str,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    return ResponseModel(success=True, data=_order_data(get_order_for_read(db, actor, order_id)))


@router.get("/{order_id}/history", response_model=ResponseModel)
async def get_order_history(
    order_id: str,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    entries = order_service.status_history(db, actor, order_id)
    return ResponseModel(success=True, data=[StatusHistoryResponse.model_validate(e) for e in entries])


@router.post("", response_model=ResponseModel, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    order = order_service.create_order(db, actor, payload)
    return ResponseModel(success=True, data=_order_data(order), message="Order created")


@router.patch("/{order_id}", response_model=ResponseModel)
async def update_order(
    order_id: str,
    payload: OrderUpdate,
    actor: ActorContext = Depends(require_manager),
    db: Session = Depends(get_db)
):
    order = order_service.update_order(db, actor, order_id, payload)
    return ResponseModel(success=True, data=_order_data(order), message="Order updated")


@router.delete("/{order_id}", response_model=ResponseModel)
async def delete_order(
    order_id: str,
    actor: ActorContext = Depends(require_manager),
    db: Session = Depends(get_db)
):
    order_service.delete_order(db, actor, order_id)
    return ResponseModel(success=True, message="Order deleted")


@router.put("/{order_id}/status", response_model=ResponseModel)
async def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    order = order_service.change_status(db, actor, order_id, payload.status, payload.notes)
    return ResponseModel(
        success=True,
        data=_order_data(order),
        message=f"Order status updated to {order.status.value}"
    )


@router.post("/{order_id}/cancel", response_model=ResponseModel)
async def cancel_order(
    order_id: str,
    payload: OrderCancel,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    order = order_service.cancel_order(db, actor, order_id, payload.reason)
    return ResponseModel(success=True, data=_order_data(order), message="Order cancelled")


@router.post("/{order_id}/assign", response_model=ResponseModel)
async def assign_courier(
    order_id: str,
    payload: CourierAssignmentRequest,
    actor: ActorContext = Depends(require_manager),
    db: Session = Depends(get_db)
):
    order = order_service.assign_courier(db, actor, order_id, payload.courier_id)
    return ResponseModel(success=True, data=_order_data(order), message="Courier assigned")


@router.post("/{order_id}/auto-assign", response_model=ResponseModel)
async def auto_assign_courier(
    order_id: str,
    actor: ActorContext = Depends(require_manager),
    db: Session = Depends(get_db)
):
    order = order_service.auto_assign_courier(db, actor, order_id)
    return ResponseModel(
        success=True,
        data=_order_data(order),
        message=f"Order assigned to {order.courier_name}"
    )
