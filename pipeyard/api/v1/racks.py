"""
Rack API endpoints
Yard areas, rack occupancy and audited manual adjustments
"""
from typing import Any, List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pipeyard.api import deps
from pipeyard.models.auth import User
from pipeyard.schemas.rack import (
    AreaSummary, AreaUtilisation, RackAdjustmentRequest, RackAdjustmentResponse,
    RackAdjustmentSummary, RackResponse
)
from pipeyard.services.rack_adjustment import RackAdjustmentService
from pipeyard.services.rack_ledger import RackLedgerService

router = APIRouter()


@router.get("/areas", response_model=List[AreaSummary])
def list_areas(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user)
) -> Any:
    """
    List yard areas.
    """
    return RackLedgerService(db).list_areas()


@router.get("/areas/{area_id}", response_model=AreaUtilisation)
def get_area(
    area_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user)
) -> Any:
    """
    Racks of an area with occupancy totals.
    """
    return RackLedgerService(db).get_area_utilisation(area_id)


@router.get("/{rack_id}", response_model=RackResponse)
def get_rack(
    rack_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user)
) -> Any:
    return RackLedgerService(db).get_rack(rack_id)


@router.post("/{rack_id}/adjust", response_model=RackAdjustmentSummary)
def adjust_rack(
    rack_id: str,
    adjustment: RackAdjustmentRequest,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    """
    Manually correct a rack's occupancy. Recorded in the rack's adjustment history.
    """
    return RackAdjustmentService(db).adjust_rack_occupancy(
        rack_id=rack_id,
        new_occupied_units=adjustment.new_occupied_units,
        new_occupied_length=adjustment.new_occupied_length,
        actor_id=current_user.username,
        justification=adjustment.justification,
    )


@router.get("/{rack_id}/adjustments", response_model=List[RackAdjustmentResponse])
def list_adjustments(
    rack_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    return RackAdjustmentService(db).list_adjustments(rack_id)
