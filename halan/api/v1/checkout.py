from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from halan.database import get_db
from halan.schemas.common import ResponseModel
from halan.schemas.checkout import CheckoutRequest, BundleResponse
from halan.schemas.order import OrderResponse
from halan.api.deps import get_actor
from halan.services import checkout_service
from halan.services.scope_service import ActorContext

router = APIRouter()


@router.post("/quote", response_model=ResponseModel)
async def quote_checkout(
    payload: CheckoutRequest,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Preview how the cart will be split and discounted; nothing is written"""
    return ResponseModel(success=True, data=checkout_service.quote(db, actor, payload))


@router.post("", response_model=ResponseModel, status_code=status.HTTP_201_CREATED)
async def checkout(
    payload: CheckoutRequest,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Place one order per provider in the cart, all sharing a bundle id"""
    bundle = checkout_service.checkout(db, actor, payload)
    data = BundleResponse(
        bundle_id=bundle.bundle_id,
        grant_id=bundle.grant.id if bundle.grant is not None else None,
        orders=[OrderResponse.model_validate(o) for o in bundle.orders],
        subtotal=bundle.subtotal,
        discount=bundle.discount,
        delivery_fee=bundle.delivery_fee,
        total=bundle.total,
    )
    return ResponseModel(
        success=True,
        data=data,
        message=f"{len(bundle.orders)} order(s) placed"
    )
