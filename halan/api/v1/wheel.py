"""
Prize wheel endpoints
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from halan.database import get_db
from halan.schemas.common import ResponseModel
from halan.schemas.prize import (
    PrizeCreate, PrizeUpdate, PrizeResponse, PrizeAdminResponse, PrizeGrantResponse,
)
from halan.api.deps import get_actor, require_owner
from halan.services import prize_service
from halan.services.scope_service import ActorContext

router = APIRouter()


@router.get("/prizes", response_model=ResponseModel)
async def list_prizes(
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Active wheel slices, in wheel order"""
    prizes = prize_service.active_prizes(db)
    return ResponseModel(success=True, data=[PrizeResponse.model_validate(p) for p in prizes])


@router.post("/spin", response_model=ResponseModel, status_code=status.HTTP_201_CREATED)
async def spin(
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    grant = prize_service.spin(db, actor)
    return ResponseModel(
        success=True,
        data=PrizeGrantResponse.model_validate(grant),
        message=f"You won {grant.name}"
    )


@router.get("/my-prizes", response_model=ResponseModel)
async def my_prizes(
    include_redeemed: bool = False,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db)
):
    grants = prize_service.list_grants(db, actor, include_redeemed=include_redeemed)
    return ResponseModel(success=True, data=[PrizeGrantResponse.model_validate(g) for g in grants])


# ================== OWNER ==================

@router.get("/admin/prizes", response_model=ResponseModel)
async def admin_list_prizes(
    actor: ActorContext = Depends(require_owner),
    db: Session = Depends(get_db)
):
    prizes = prize_service.list_all_prizes(db, actor)
    return ResponseModel(success=True, data=[PrizeAdminResponse.model_validate(p) for p in prizes])


@router.post("/admin/prizes", response_model=ResponseModel, status_code=status.HTTP_201_CREATED)
async def admin_create_prize(
    payload: PrizeCreate,
    actor: ActorContext = Depends(require_owner),
    db: Session = Depends(get_db)
):
    prize = prize_service.create_prize(db, actor, payload)
    return ResponseModel(success=True, data=PrizeAdminResponse.model_validate(prize), message="Prize created")


@router.patch("/admin/prizes/{prize_id}", response_model=ResponseModel)
async def admin_update_prize(
    prize_id: int,
    payload: PrizeUpdate,
    actor: ActorContext = Depends(require_owner),
    db: Session = Depends(get_db)
):
    prize = prize_service.update_prize(db, actor, prize_id, payload)
    return ResponseModel(success=True, data=PrizeAdminResponse.model_validate(prize), message="Prize updated")


@router.delete("/admin/prizes/{prize_id}", response_model=ResponseModel)
async def admin_deactivate_prize(
    prize_id: int,
    actor: ActorContext = Depends(require_owner),
    db: Session = Depends(get_db)
):
    """Prizes are only ever deactivated; grants already won stay valid"""
    prize = prize_service.deactivate_prize(db, actor, prize_id)
    return ResponseModel(success=True, data=PrizeAdminResponse.model_validate(prize), message="Prize deactivated")
