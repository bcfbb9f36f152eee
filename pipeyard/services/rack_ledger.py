"""
Rack Ledger Service
Read-only view of yard areas, racks and their occupancy
"""
from typing import List
from decimal import Decimal
from sqlalchemy.orm import Session

from pipeyard.core.exceptions import NotFoundError
from pipeyard.models.yard import Rack, YardArea
from pipeyard.schemas.rack import AreaUtilisation, RackResponse


class RackLedgerService:
    """
    Authoritative read access to rack capacity and occupancy

    Occupancy is written only by AllocationGuard and RackAdjustmentService.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_rack(self, rack_id: str) -> Rack:
        rack = self.db.query(Rack).filter(Rack.id == rack_id).first()
        if rack is None:
            raise NotFoundError("Rack", rack_id)
        return rack

    def list_racks_by_area(self, area_id: str) -> List[Rack]:
        return self.db.query(Rack).filter(Rack.area_id == area_id).order_by(Rack.id).all()

    def list_areas(self) -> List[YardArea]:
        return self.db.query(YardArea).order_by(YardArea.yard_id, YardArea.id).all()

    def get_area_utilisation(self, area_id: str) -> AreaUtilisation:
        """Occupancy totals for an area, with its racks"""
        area = self.db.query(YardArea).filter(YardArea.id == area_id).first()
        if area is None:
            raise NotFoundError("Yard area", area_id)

        racks = self.list_racks_by_area(area_id)
        total_capacity = sum(r.capacity for r in racks)
        total_occupied = sum(r.occupied for r in racks)
        total_capacity_length = sum((Decimal(str(r.capacity_length)) for r in racks), Decimal("0"))
        total_occupied_length = sum((Decimal(str(r.occupied_length)) for r in racks), Decimal("0"))

        if total_capacity:
            utilisation = (Decimal(total_occupied) * 100 / Decimal(total_capacity)).quantize(Decimal("0.01"))
        else:
            utilisation = Decimal("0.00")

        return AreaUtilisation(
            area_id=area.id,
            rack_count=len(racks),
            total_capacity=total_capacity,
            total_occupied=total_occupied,
            total_capacity_length=total_capacity_length,
            total_occupied_length=total_occupied_length,
            utilisation_percent=utilisation,
            racks=[RackResponse.model_validate(r) for r in racks],
        )
